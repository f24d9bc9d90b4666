"""Orquestación de probes.

Este módulo es el borde del engine: ningún `ProbeError` lo atraviesa. Cada
fallo sale como `ProbeFailed` con un único mensaje listo para el usuario, y un
resultado sin líneas se sustituye por el badge "No usage data".
"""

from __future__ import annotations

import logging
from typing import Iterable

from core.domain.errors import ProbeError, ProbeFailed
from core.domain.models import ProbeResult, ProviderReport
from core.interfaces.host import HostContext
from core.interfaces.provider import UsageProvider
from core.services.line_builder import no_data_badge

logger = logging.getLogger(__name__)


def run_probe(provider: UsageProvider, ctx: HostContext) -> ProbeResult:
    try:
        result = provider.probe(ctx)
    except ProbeError as exc:
        logger.warning("%s probe failed [%s]: %s", provider.provider_id, exc.kind.value, exc.message)
        raise ProbeFailed(exc.message) from None
    except Exception as exc:
        logger.exception("%s probe crashed", provider.provider_id)
        raise ProbeFailed(f"{provider.display_name} probe failed unexpectedly.") from exc

    if not result.lines:
        result = result.model_copy(update={"lines": [no_data_badge()]})
    return result


def probe_all(providers: Iterable[UsageProvider], ctx: HostContext) -> list[ProviderReport]:
    """Ejecuta varios proveedores en secuencia y agrega resultado o error por cada uno."""

    reports: list[ProviderReport] = []
    for provider in providers:
        report = ProviderReport(provider=provider.provider_id, display_name=provider.display_name)
        try:
            report.result = run_probe(provider, ctx)
        except ProbeFailed as exc:
            report.error = exc.message
        reports.append(report)
    return reports
