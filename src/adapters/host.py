"""Adaptadores del host (env, secure store, ficheros, reloj).

Por qué aquí:
- El Core solo conoce los Protocol de `core.interfaces.host`; este módulo es la
  implementación real para CLI/desktop.
- Los secure stores usan los binarios del sistema (`security` en macOS,
  `secret-tool` en Linux/libsecret), igual que los CLIs que guardan los tokens.
"""

from __future__ import annotations

import json
import logging
import os
import subprocess
import sys
import time
from pathlib import Path
from typing import Any, Mapping

from adapters.http_client import HttpxTransport
from core.config import AppSettings, read_user_env_vars
from core.interfaces.host import HostContext, HttpTransport, SecretStore

logger = logging.getLogger(__name__)

KEYCHAIN_ACCOUNT = "usage-probe"


class EnvironmentReader:
    """Lee `os.environ` y, como respaldo, el .env global del usuario."""

    def __init__(
        self,
        environ: Mapping[str, str] | None = None,
        fallback: Mapping[str, str] | None = None,
    ) -> None:
        self._environ = environ if environ is not None else os.environ
        self._fallback = dict(fallback or {})

    def get(self, name: str) -> str | None:
        value = self._environ.get(name)
        if value is None:
            value = self._fallback.get(name)
        return value


class MemorySecretStore:
    """Secure store en memoria (tests, plataformas sin keychain)."""

    def __init__(self, initial: Mapping[str, str] | None = None) -> None:
        self._items: dict[str, str] = dict(initial or {})

    def read(self, service: str) -> str | None:
        return self._items.get(service)

    def write(self, service: str, value: str) -> None:
        self._items[service] = value

    def delete(self, service: str) -> None:
        self._items.pop(service, None)


class KeychainStore:
    """Keychain de macOS vía `/usr/bin/security`."""

    def __init__(self, binary: str = "/usr/bin/security", account: str = KEYCHAIN_ACCOUNT) -> None:
        self._binary = binary
        self._account = account

    def read(self, service: str) -> str | None:
        result = subprocess.run(
            [self._binary, "find-generic-password", "-s", service, "-w"],
            capture_output=True,
            text=True,
            check=False,
        )
        if result.returncode != 0:
            return None
        return result.stdout.strip() or None

    def write(self, service: str, value: str) -> None:
        subprocess.run(
            [self._binary, "add-generic-password", "-U", "-s", service, "-a", self._account, "-w", value],
            capture_output=True,
            text=True,
            check=True,
        )

    def delete(self, service: str) -> None:
        subprocess.run(
            [self._binary, "delete-generic-password", "-s", service],
            capture_output=True,
            text=True,
            check=False,
        )


class SecretToolStore:
    """libsecret (GNOME Keyring/KWallet) vía `secret-tool`."""

    def __init__(self, binary: str = "secret-tool") -> None:
        self._binary = binary

    def read(self, service: str) -> str | None:
        result = subprocess.run(
            [self._binary, "lookup", "service", service],
            capture_output=True,
            text=True,
            check=False,
        )
        if result.returncode != 0:
            return None
        return result.stdout.strip() or None

    def write(self, service: str, value: str) -> None:
        subprocess.run(
            [self._binary, "store", f"--label={service}", "service", service],
            input=value,
            capture_output=True,
            text=True,
            check=True,
        )

    def delete(self, service: str) -> None:
        subprocess.run(
            [self._binary, "clear", "service", service],
            capture_output=True,
            text=True,
            check=False,
        )


def default_secret_store() -> SecretStore:
    if sys.platform == "darwin":
        return KeychainStore()
    if sys.platform.startswith("linux"):
        return SecretToolStore()
    logger.info("no OS secure store for %s, using in-memory store", sys.platform)
    return MemorySecretStore()


class JsonStateFiles:
    """Ficheros de estado JSON (UTF-8). Los errores de I/O se propagan al llamador."""

    def exists(self, path: Path) -> bool:
        return path.exists() and path.is_file()

    def read_json(self, path: Path) -> Any:
        return json.loads(path.read_text(encoding="utf-8"))

    def write_json(self, path: Path, value: Any) -> None:
        path.parent.mkdir(parents=True, exist_ok=True)
        path.write_text(json.dumps(value, ensure_ascii=False) + "\n", encoding="utf-8")


class SystemClock:
    def now_ms(self) -> float:
        return time.time() * 1000


def build_default_context(
    settings: AppSettings | None = None,
    *,
    http: HttpTransport | None = None,
    secrets: SecretStore | None = None,
) -> HostContext:
    """Contexto real: os.environ + .env de usuario, keychain del SO, httpx."""

    settings = settings or AppSettings()
    return HostContext(
        env=EnvironmentReader(fallback=read_user_env_vars()),
        secrets=secrets or default_secret_store(),
        files=JsonStateFiles(),
        http=http or HttpxTransport(settings=settings),
        clock=SystemClock(),
        state_dir=settings.state_dir,
        settings=settings,
    )
