"""Contratos del host que consume el engine.

Por qué Protocol:
- El engine no sabe si corre en un tray de macOS, en la CLI o en un test: solo
  ve estas capacidades (env, secure store, ficheros JSON, HTTP, reloj).
- Permite sustituir cada capacidad por un fake en tests sin monkeypatching global.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Mapping, Protocol, runtime_checkable

from core.config import AppSettings


@dataclass(frozen=True)
class HttpResponse:
    status: int
    body_text: str
    headers: Mapping[str, str] = field(default_factory=dict)


@runtime_checkable
class EnvReader(Protocol):
    def get(self, name: str) -> str | None:
        ...


@runtime_checkable
class SecretStore(Protocol):
    """Secure store del SO indexado por nombre de servicio."""

    def read(self, service: str) -> str | None:
        ...

    def write(self, service: str, value: str) -> None:
        ...

    def delete(self, service: str) -> None:
        ...


@runtime_checkable
class StateFiles(Protocol):
    """Lectura/escritura de estado JSON local. Puede lanzar OSError/ValueError."""

    def exists(self, path: Path) -> bool:
        ...

    def read_json(self, path: Path) -> Any:
        ...

    def write_json(self, path: Path, value: Any) -> None:
        ...


@runtime_checkable
class HttpTransport(Protocol):
    def request(
        self,
        method: str,
        url: str,
        headers: Mapping[str, str],
        timeout_ms: int,
    ) -> HttpResponse:
        """Nunca lanza por status HTTP; lanza `TransportError` por fallos de transporte."""

        ...


@runtime_checkable
class Clock(Protocol):
    def now_ms(self) -> float:
        ...


@dataclass
class HostContext:
    """Todo lo que un proveedor necesita del mundo exterior."""

    env: EnvReader
    secrets: SecretStore
    files: StateFiles
    http: HttpTransport
    clock: Clock
    state_dir: Path
    settings: AppSettings = field(default_factory=AppSettings)

    def provider_dir(self, provider_id: str) -> Path:
        return self.state_dir / provider_id
