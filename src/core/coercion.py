"""Coerción segura de escalares JSON.

Las APIs de los proveedores mezclan números, strings numéricos, nulls y
timestamps en segundos o milisegundos. Todo lo que está por encima de este
módulo asume que un valor "no usable" es `None`, nunca una excepción.
"""

from __future__ import annotations

import json
import math
from datetime import datetime, timezone
from typing import Any, Iterable

# Por debajo de este valor un epoch se interpreta en segundos.
EPOCH_SECONDS_THRESHOLD = 1e10


def read_number(value: Any) -> float | None:
    if isinstance(value, bool):
        return None
    if isinstance(value, (int, float)):
        return float(value) if math.isfinite(value) else None
    if not isinstance(value, str):
        return None
    trimmed = value.strip()
    # `1_000` no es un número JSON válido aunque `float` lo acepte.
    if not trimmed or "_" in trimmed:
        return None
    try:
        n = float(trimmed)
    except ValueError:
        return None
    return n if math.isfinite(n) else None


def read_string(value: Any) -> str | None:
    if not isinstance(value, str):
        return None
    trimmed = value.strip()
    return trimmed or None


def pick_first_string(values: Iterable[Any]) -> str | None:
    for value in values:
        text = read_string(value)
        if text:
            return text
    return None


def round_half_up(value: float) -> int:
    """Redondeo aritmético (0.5 hacia arriba), no el redondeo bancario de `round`."""

    return math.floor(value + 0.5)


def clamp(value: float, low: float, high: float) -> float:
    return max(low, min(high, value))


def epoch_to_ms(value: Any) -> float | None:
    n = read_number(value)
    if n is None:
        return None
    return n * 1000 if abs(n) < EPOCH_SECONDS_THRESHOLD else n


def format_iso_ms(epoch_ms: float) -> str:
    """Epoch ms -> `2023-11-15T03:13:20.000Z`."""

    dt = datetime.fromtimestamp(epoch_ms / 1000, tz=timezone.utc)
    return dt.isoformat(timespec="milliseconds").replace("+00:00", "Z")


def parse_timestamp_ms(value: Any) -> float | None:
    """Acepta epoch (s o ms) o un string ISO-8601/fecha y devuelve epoch ms."""

    numeric = epoch_to_ms(value)
    if numeric is not None:
        return numeric

    text = read_string(value)
    if text is None:
        return None
    if text.endswith(("Z", "z")):
        text = text[:-1] + "+00:00"
    try:
        dt = datetime.fromisoformat(text)
    except ValueError:
        return None
    if dt.tzinfo is None:
        dt = dt.replace(tzinfo=timezone.utc)
    return dt.timestamp() * 1000


def to_iso(value: Any) -> str | None:
    epoch_ms = parse_timestamp_ms(value)
    if epoch_ms is None:
        return None
    return format_iso_ms(epoch_ms)


def try_parse_json(text: Any) -> Any | None:
    if not isinstance(text, str) or not text.strip():
        return None
    try:
        return json.loads(text)
    except ValueError:
        return None


def as_object(value: Any) -> dict[str, Any] | None:
    return value if isinstance(value, dict) else None
