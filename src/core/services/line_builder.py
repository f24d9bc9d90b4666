"""Construcción de líneas de progreso.

Funciones puras: un `CanonicalUsageRecord` (o un resumen de presupuesto) entra,
una lista de `ProgressLine` sale. No hay I/O ni reloj aquí: los tiempos ya vienen
resueltos por el normalizador.
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import Iterable, Literal

from core.coercion import clamp, format_iso_ms, round_half_up
from core.domain.models import BadgeLine, CanonicalUsageRecord, LineFormat, ProgressLine

NO_DATA_COLOR = "#a3a3a3"


@dataclass(frozen=True)
class DisplayUnit:
    """Cómo mostrar un registro canónico.

    - `divisor`: convierte una unidad interna mayor a la del usuario
      (p.ej. llamadas de modelo -> prompts), redondeando al entero más cercano.
    - `scale_to_percent`: expresa `used/total` como porcentaje entero (límite 100).
    - `round_values=False` deja los valores tal cual (porcentajes ya calculados).
    """

    label: str
    kind: Literal["count", "percent", "dollars"] = "count"
    suffix: str | None = None
    divisor: float = 1
    scale_to_percent: bool = False
    round_values: bool = True


@dataclass(frozen=True)
class BudgetSummary:
    used: float
    limit: float


def progress_line(
    *,
    label: str,
    used: float,
    limit: float,
    kind: Literal["count", "percent", "dollars"] = "count",
    suffix: str | None = None,
    resets_at: str | None = None,
    period_duration_ms: float | None = None,
) -> ProgressLine:
    return ProgressLine(
        label=label,
        used=used,
        limit=limit,
        format=LineFormat(kind=kind, suffix=suffix),
        resets_at=resets_at,
        period_duration_ms=period_duration_ms,
    )


def badge_line(*, label: str, text: str, color: str | None = None) -> BadgeLine:
    return BadgeLine(label=label, text=text, color=color)


def no_data_badge() -> BadgeLine:
    return badge_line(label="Status", text="No usage data", color=NO_DATA_COLOR)


def build_lines(record: CanonicalUsageRecord, display_unit: DisplayUnit) -> list[ProgressLine]:
    used: float = record.used
    limit: float = record.total

    if display_unit.scale_to_percent:
        used = clamp(round_half_up(used / limit * 100), 0, 100)
        limit = 100
    elif display_unit.round_values:
        used = round_half_up(used / display_unit.divisor)
        limit = round_half_up(limit / display_unit.divisor)

    resets_at = None
    if record.resets_at_epoch_ms is not None:
        resets_at = format_iso_ms(record.resets_at_epoch_ms)

    return [
        progress_line(
            label=display_unit.label,
            used=used,
            limit=limit,
            kind=display_unit.kind,
            suffix=display_unit.suffix,
            resets_at=resets_at,
            period_duration_ms=record.period_duration_ms,
        )
    ]


def build_quota_lines(
    quotas: Iterable[tuple[CanonicalUsageRecord | None, DisplayUnit]],
) -> list[ProgressLine]:
    """Una línea por cupo; los cupos sin registro se omiten."""

    lines: list[ProgressLine] = []
    for record, display_unit in quotas:
        if record is not None:
            lines.extend(build_lines(record, display_unit))
    return lines


def project_overage_budget(
    *,
    overage_units: float,
    cost_per_unit: float,
    monthly_limit: float,
) -> BudgetSummary:
    """Proyecta gasto (USD, 2 decimales) a partir de unidades consumidas por encima del cupo."""

    spent = round_half_up(max(0.0, overage_units) * cost_per_unit * 100) / 100
    return BudgetSummary(used=spent, limit=monthly_limit)


def budget_line(
    summary: BudgetSummary | None,
    *,
    label: str = "Budget",
    resets_at: str | None = None,
    period_duration_ms: float | None = None,
) -> ProgressLine | None:
    if summary is None or summary.limit <= 0:
        return None
    return progress_line(
        label=label,
        used=max(0.0, summary.used),
        limit=summary.limit,
        kind="dollars",
        resets_at=resets_at,
        period_duration_ms=period_duration_ms,
    )
