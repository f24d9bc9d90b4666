"""Configuración del Core.

Por qué aquí:
- Centraliza variables de entorno (pydantic-settings) sin contaminar la CLI.
- Permite que adaptadores (HTTP/host/proveedores) lean config de forma consistente.
"""

from __future__ import annotations

import os
import sys
from pathlib import Path

from pydantic import Field
from pydantic_settings import BaseSettings, SettingsConfigDict

from core.domain.models import RealmSelection


def get_user_config_dir() -> Path:
    """Directorio de configuración por usuario (cross-platform, sin dependencias)."""

    if sys.platform.startswith("win"):
        base = Path(os.environ.get("APPDATA", str(Path.home())))
        return base / "usage-probe"
    if sys.platform == "darwin":
        return Path.home() / "Library" / "Application Support" / "usage-probe"

    xdg = os.environ.get("XDG_CONFIG_HOME")
    if xdg:
        return Path(xdg) / "usage-probe"
    return Path.home() / ".config" / "usage-probe"


def get_user_env_file() -> Path:
    return get_user_config_dir() / ".env"


def _parse_env_lines(text: str) -> dict[str, str]:
    data: dict[str, str] = {}
    for raw_line in text.splitlines():
        line = raw_line.strip()
        if not line or line.startswith("#"):
            continue
        if "=" not in line:
            continue
        key, value = line.split("=", 1)
        key = key.strip()
        value = value.strip().strip('"').strip("'")
        if key:
            data[key] = value
    return data


def read_user_env_vars(env_path: Path | None = None) -> dict[str, str]:
    """Lee el .env global del usuario (vacío si no existe o no se puede leer)."""

    env_path = env_path or get_user_env_file()
    if not env_path.exists():
        return {}
    try:
        return _parse_env_lines(env_path.read_text(encoding="utf-8"))
    except OSError:
        return {}


def write_user_env_vars(values: dict[str, str], env_path: Path | None = None) -> Path:
    """Escribe/actualiza variables en el .env global del usuario."""

    env_path = env_path or get_user_env_file()
    env_path.parent.mkdir(parents=True, exist_ok=True)

    existing = read_user_env_vars(env_path)
    existing.update({k: v for k, v in values.items() if v is not None})

    lines = ["# usage-probe user config (.env)"]
    for key in sorted(existing.keys()):
        lines.append(f"{key}={existing[key]}")
    env_path.write_text("\n".join(lines) + "\n", encoding="utf-8")
    return env_path


class AppSettings(BaseSettings):
    """Configuración central de la aplicación.

    Por qué pydantic-settings:
    - Tipado + validación en el borde (env vars) sin ensuciar el Core con lógica.
    - Un único contrato de configuración para CLI/adapters.
    """

    model_config = SettingsConfigDict(
        env_prefix="USAGE_PROBE_",
        extra="ignore",
        case_sensitive=False,
        # Orden: proyecto primero (dev), luego config global de usuario.
        env_file=(".env", str(get_user_env_file())),
        env_file_encoding="utf-8",
    )

    http_timeout_seconds: float = Field(
        default=15.0,
        gt=0,
        description="Timeout por defecto del cliente HTTP (segundos).",
    )
    user_agent: str = Field(
        default="usage-probe/0.1",
        min_length=1,
        description="User-Agent por defecto del cliente HTTP.",
    )
    state_dir: Path = Field(
        default_factory=lambda: get_user_config_dir() / "state",
        description="Directorio para estado local por proveedor (auth.json, settings.json).",
    )
    minimax_region: RealmSelection = Field(
        default=RealmSelection.AUTO,
        description="Realm de MiniMax: AUTO (según env vars), GLOBAL o CN.",
    )
    copilot_budget_usd: float = Field(
        default=40.0,
        gt=0,
        description="Techo mensual (USD) para proyectar el presupuesto de Copilot.",
    )
    log_level: str = Field(
        default="WARNING",
        description="Nivel de logging (DEBUG, INFO, WARNING, ERROR).",
    )
