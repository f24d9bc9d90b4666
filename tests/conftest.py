"""Pytest configuration and fixtures.

`FakeHost` sustituye cada capacidad del host por un doble en memoria:
- `http`: respuestas guionizadas por URL (o una función) y registro de llamadas.
- `env`: dict; un valor `Exception` hace que `get` lance.
- `clock`: instante fijo.
"""

from __future__ import annotations

import json
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Callable, Mapping

import pytest

from adapters.host import MemorySecretStore
from core.config import AppSettings
from core.domain.errors import TransportError
from core.interfaces.host import HostContext, HttpResponse

NOW_MS = 1_700_000_000_000


def json_response(payload: Any, status: int = 200) -> HttpResponse:
    return HttpResponse(status=status, body_text=json.dumps(payload))


def status_response(status: int, body: str = "") -> HttpResponse:
    return HttpResponse(status=status, body_text=body)


@dataclass
class RecordedCall:
    method: str
    url: str
    headers: dict[str, str]
    timeout_ms: int


class ScriptedHttp:
    """HTTP falso: `routes[url]` es una respuesta, una excepción o una lista (una por llamada)."""

    def __init__(self) -> None:
        self.routes: dict[str, Any] = {}
        self.default: Any = status_response(404, "{}")
        self.handler: Callable[[RecordedCall], HttpResponse] | None = None
        self.calls: list[RecordedCall] = []

    def route(self, url: str, response: Any) -> None:
        self.routes[url] = response

    def request(self, method: str, url: str, headers: Mapping[str, str], timeout_ms: int) -> HttpResponse:
        call = RecordedCall(method=method, url=url, headers=dict(headers), timeout_ms=timeout_ms)
        self.calls.append(call)
        if self.handler is not None:
            return self.handler(call)

        response = self.routes.get(url, self.default)
        if isinstance(response, list):
            response = response.pop(0) if len(response) > 1 else response[0]
        if isinstance(response, Exception):
            raise response
        return response

    @property
    def urls(self) -> list[str]:
        return [call.url for call in self.calls]


class DictEnv:
    def __init__(self, values: Mapping[str, Any] | None = None) -> None:
        self.values: dict[str, Any] = dict(values or {})

    def get(self, name: str) -> str | None:
        value = self.values.get(name)
        if isinstance(value, Exception):
            raise value
        return value


class MemoryStateFiles:
    def __init__(self) -> None:
        self.data: dict[Path, Any] = {}

    def exists(self, path: Path) -> bool:
        return path in self.data

    def read_json(self, path: Path) -> Any:
        value = self.data[path]
        if isinstance(value, Exception):
            raise value
        return value

    def write_json(self, path: Path, value: Any) -> None:
        self.data[path] = value


@dataclass
class FixedClock:
    now: float = NOW_MS

    def now_ms(self) -> float:
        return self.now


@dataclass
class FakeHost:
    http: ScriptedHttp = field(default_factory=ScriptedHttp)
    env: DictEnv = field(default_factory=DictEnv)
    secrets: MemorySecretStore = field(default_factory=MemorySecretStore)
    files: MemoryStateFiles = field(default_factory=MemoryStateFiles)
    clock: FixedClock = field(default_factory=FixedClock)
    state_dir: Path = Path("/state")
    settings: AppSettings = field(default_factory=lambda: AppSettings(_env_file=None))

    def context(self) -> HostContext:
        return HostContext(
            env=self.env,
            secrets=self.secrets,
            files=self.files,
            http=self.http,
            clock=self.clock,
            state_dir=self.state_dir,
            settings=self.settings,
        )


@pytest.fixture(autouse=True)
def _isolated_settings(monkeypatch: pytest.MonkeyPatch) -> None:
    for name in (
        "USAGE_PROBE_MINIMAX_REGION",
        "USAGE_PROBE_COPILOT_BUDGET_USD",
        "USAGE_PROBE_LOG_LEVEL",
        "USAGE_PROBE_STATE_DIR",
    ):
        monkeypatch.delenv(name, raising=False)


@pytest.fixture
def host() -> FakeHost:
    return FakeHost()


@pytest.fixture
def network_error() -> TransportError:
    return TransportError("ConnectError: connection refused")
