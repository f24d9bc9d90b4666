"""Wrapper de httpx.

Por qué un wrapper:
- Estandariza timeouts, headers y redirects para todos los proveedores.
- Expone el primitivo HTTP del host (`HttpTransport`): nunca lanza por status,
  solo por fallos de transporte (DNS, TLS, timeout), que llegan como
  `TransportError`.
"""

from __future__ import annotations

from typing import Mapping

import httpx

from core.config import AppSettings
from core.domain.errors import TransportError
from core.interfaces.host import HttpResponse


def build_client(
    settings: AppSettings | None = None,
    *,
    extra_headers: dict[str, str] | None = None,
) -> httpx.Client:
    """Crea un `httpx.Client` con defaults seguros.

    Por qué un builder:
    - Centraliza timeouts/headers para que todos los proveedores se comporten igual.
    - Facilita testeo (respx intercepta cualquier cliente creado aquí).
    """

    settings = settings or AppSettings()
    headers: dict[str, str] = {
        "User-Agent": settings.user_agent,
        "Accept": "application/json",
    }
    if extra_headers:
        headers.update(extra_headers)
    return httpx.Client(
        timeout=httpx.Timeout(settings.http_timeout_seconds),
        follow_redirects=True,
        headers=headers,
    )


class HttpxTransport:
    """Implementación de `HttpTransport` sobre un `httpx.Client` reutilizable."""

    def __init__(self, client: httpx.Client | None = None, settings: AppSettings | None = None) -> None:
        self._client = client or build_client(settings)

    def request(
        self,
        method: str,
        url: str,
        headers: Mapping[str, str],
        timeout_ms: int,
    ) -> HttpResponse:
        try:
            response = self._client.request(
                method,
                url,
                headers=dict(headers),
                timeout=httpx.Timeout(timeout_ms / 1000),
            )
        except httpx.HTTPError as exc:
            raise TransportError(f"{type(exc).__name__}: {exc}") from exc

        return HttpResponse(
            status=response.status_code,
            body_text=response.text,
            headers={key.lower(): value for key, value in response.headers.items()},
        )

    def close(self) -> None:
        self._client.close()

    def __enter__(self) -> "HttpxTransport":
        return self

    def __exit__(self, *exc_info: object) -> None:
        self.close()
