"""Prober multi-endpoint.

Responsabilidad:
- Probar una lista ordenada de URLs candidatas para un mismo recurso lógico.
- Clasificar cada fallo (red, auth, status HTTP, JSON inválido) y seguir.
- Si todas fallan, emitir un único error con precedencia fija:
  primer status HTTP genérico > error de red > auth > JSON ilegible.

Nota:
- La precedencia decide si al usuario se le pide re-autenticarse o reintentar
  más tarde; un 5xx temprano gana aunque una candidata posterior devuelva 401.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from typing import Any, Callable, Mapping, Sequence

from core.coercion import try_parse_json
from core.domain.errors import AuthError, HttpError, NetworkError, ParseError, ProbeError
from core.domain.models import Credential
from core.fallback import FallbackOutcome, Verdict, try_in_order
from core.interfaces.host import HttpResponse, HttpTransport

logger = logging.getLogger(__name__)

AUTH_STATUSES = frozenset({401, 403})

FAILURE_NETWORK = "network"
FAILURE_AUTH = "auth"
FAILURE_HTTP = "http"
FAILURE_PARSE = "parse"


def is_auth_status(status: int) -> bool:
    return status in AUTH_STATUSES


def is_success_status(status: int) -> bool:
    return 200 <= status < 300


@dataclass(frozen=True)
class ProbeMessages:
    """Textos finales por proveedor (el `kind` del error no cambia)."""

    auth: str = "Session expired. Please sign in again."
    network: str = "Request failed. Check your connection."
    http: str = "Request failed (HTTP {status}). Try again later."
    parse: str = "Could not parse usage data."


@dataclass
class EndpointProber:
    """Cliente de un recurso lógico con varias URLs candidatas."""

    http: HttpTransport
    build_headers: Callable[[Credential], Mapping[str, str]]
    timeout_ms: int = 15_000
    messages: ProbeMessages = field(default_factory=ProbeMessages)
    is_auth_wall: Callable[[HttpResponse], bool] = lambda response: is_auth_status(response.status)
    method: str = "GET"

    def try_candidates(
        self,
        urls: Sequence[str],
        credential: Credential,
        *,
        require_object: bool = True,
    ) -> Any:
        """Devuelve el JSON de la primera candidata 2xx parseable; si no, lanza `ProbeError`."""

        headers = dict(self.build_headers(credential))

        def attempt(url: str) -> HttpResponse:
            return self.http.request(self.method, url, headers, self.timeout_ms)

        def classify(url: str, response: HttpResponse | None, error: Exception | None) -> Verdict[Any]:
            if error is not None or response is None:
                return Verdict.reject(FAILURE_NETWORK, error)
            if self.is_auth_wall(response):
                return Verdict.reject(FAILURE_AUTH, response.status)
            if not is_success_status(response.status):
                return Verdict.reject(FAILURE_HTTP, response.status)
            parsed = try_parse_json(response.body_text)
            if parsed is None or (require_object and not isinstance(parsed, dict)):
                return Verdict.reject(FAILURE_PARSE, "invalid JSON")
            return Verdict.accept(parsed)

        outcome = try_in_order(
            urls,
            attempt=attempt,
            classify=classify,
            describe=lambda url: f"request {self.method} {url}",
            log=logger,
        )
        if outcome.succeeded:
            return outcome.value
        raise self.aggregate_error(outcome)

    def aggregate_error(self, outcome: FallbackOutcome[str, Any]) -> ProbeError:
        http_failure = outcome.first(FAILURE_HTTP)
        if http_failure is not None:
            status = int(http_failure.detail)  # type: ignore[arg-type]
            return HttpError(status, self.messages.http.format(status=status))
        if outcome.first(FAILURE_NETWORK) is not None:
            return NetworkError(self.messages.network)
        if outcome.count(FAILURE_AUTH) > 0:
            return AuthError(self.messages.auth)
        return ParseError(self.messages.parse)
