"""Taxonomía de errores del probe.

Por qué excepciones tipadas:
- Los componentes internos (prober, normalizer, resolver) clasifican el fallo
  con un `kind` estable; el borde del engine solo necesita `message`.
- Ningún tipo de esta jerarquía cruza el borde: `run_probe` los convierte en
  `ProbeFailed` con un único texto para el usuario.
"""

from __future__ import annotations

from enum import Enum


class ProbeErrorKind(str, Enum):
    AUTH = "auth"
    NETWORK = "network"
    HTTP = "http"
    PARSE = "parse"
    DATA_UNAVAILABLE = "data_unavailable"
    PLUGIN_SPECIFIC = "plugin_specific"


class ProbeError(Exception):
    """Fallo clasificado dentro de un probe."""

    kind: ProbeErrorKind = ProbeErrorKind.PLUGIN_SPECIFIC
    default_message = "Usage probe failed."

    def __init__(self, message: str | None = None) -> None:
        self.message = message or self.default_message
        super().__init__(self.message)


class AuthError(ProbeError):
    kind = ProbeErrorKind.AUTH
    default_message = "Authentication failed. Please sign in again."


class NetworkError(ProbeError):
    kind = ProbeErrorKind.NETWORK
    default_message = "Request failed. Check your connection."


class HttpError(ProbeError):
    kind = ProbeErrorKind.HTTP

    def __init__(self, status: int, message: str | None = None) -> None:
        self.status = status
        super().__init__(message or f"Request failed (HTTP {status}). Try again later.")


class ParseError(ProbeError):
    kind = ProbeErrorKind.PARSE
    default_message = "Could not parse usage data."


class DataUnavailableError(ProbeError):
    kind = ProbeErrorKind.DATA_UNAVAILABLE
    default_message = "Could not parse usage data."


class PluginSpecificError(ProbeError):
    kind = ProbeErrorKind.PLUGIN_SPECIFIC


class TransportError(Exception):
    """Fallo de transporte (DNS, TLS, timeout...) del primitivo HTTP del host."""


class ProbeFailed(RuntimeError):
    """Único error que sale del engine: su `str()` es el mensaje para el usuario."""

    def __init__(self, message: str) -> None:
        self.message = message
        super().__init__(message)
