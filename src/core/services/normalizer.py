"""Normalizador de payloads de uso.

Responsabilidad:
- Convertir cuerpos JSON heterogéneos (wrappers, snake_case/camelCase, sinónimos)
  en un `CanonicalUsageRecord`.
- Resolver ambigüedades numéricas con heurísticas acotadas: segundos vs
  milisegundos, "usado" vs "restante", y tier/plan a partir del cupo total.

Por qué tablas declarativas:
- El contrato de aliasing (campo -> claves candidatas en orden) se prueba aislado
  y cada proveedor solo aporta datos, no cadenas de `if`.
"""

from __future__ import annotations

import re
from dataclasses import dataclass, field
from typing import Any, Mapping, Sequence

from core.coercion import (
    as_object,
    clamp,
    epoch_to_ms,
    pick_first_string,
    read_number,
    read_string,
    round_half_up,
)
from core.domain.errors import AuthError, PluginSpecificError
from core.domain.models import CanonicalUsageRecord


@dataclass(frozen=True)
class FieldAliases:
    """Campo canónico -> claves candidatas, en orden de preferencia."""

    items: tuple[str, ...]
    total: tuple[str, ...]
    used: tuple[str, ...] = ()
    remaining: tuple[str, ...] = ()
    # Campos que el proveedor usa para "restante" aunque su nombre diga otra cosa.
    remaining_fallback: tuple[str, ...] = ()
    start: tuple[str, ...] = ()
    end: tuple[str, ...] = ()
    remains_duration: tuple[str, ...] = ()
    plan_name: tuple[str, ...] = ()
    root_plan_name: tuple[str, ...] = ()


@dataclass(frozen=True)
class EnvelopeRules:
    """Cómo leer el sobre de estado embebido (`base_resp`) de un proveedor."""

    auth_message: str
    error_prefix: str = "API error"
    wrapper_key: str = "data"
    status_key: str = "base_resp"
    status_code_key: str = "status_code"
    status_message_key: str = "status_msg"
    auth_codes: frozenset[int] = frozenset()
    auth_markers: tuple[str, ...] = ("cookie", "log in", "login", "sign in", "session")


@dataclass(frozen=True)
class ResetWindow:
    """Ventana nominal del producto, usada como cota al desambiguar unidades."""

    duration_ms: float
    tolerance_ms: float = 0

    @property
    def max_expected_ms(self) -> float:
        return self.duration_ms + self.tolerance_ms


@dataclass(frozen=True)
class TierTable:
    """Cupo total -> nombre de tier, por realm.

    `divisors[realm]` indica que en ese realm el total puede venir en una unidad
    mayor (múltiplo entero de la unidad de la tabla); solo se infiere si la
    división es exacta.
    """

    tables: Mapping[str, Mapping[int, str]]
    divisors: Mapping[str, int] = field(default_factory=dict)

    def infer(self, total: Any, realm: str) -> str | None:
        n = read_number(total)
        if n is None or n <= 0:
            return None

        normalized = round_half_up(n)
        table = self.tables.get(realm, {})
        if normalized in table:
            return table[normalized]

        divisor = self.divisors.get(realm)
        if not divisor or normalized % divisor != 0:
            return None
        return table.get(normalized // divisor)


@dataclass(frozen=True)
class PlanNameRules:
    vendor_prefix: re.Pattern[str]
    generic_phrase: re.Pattern[str] = re.compile(r"coding\s+plan", re.IGNORECASE)
    generic_label: str = "Coding Plan"

    def normalize(self, value: Any) -> str | None:
        raw = read_string(value)
        if not raw:
            return None
        compact = re.sub(r"\s+", " ", raw).strip()
        without_prefix = self.vendor_prefix.sub("", compact, count=1).strip()
        if without_prefix:
            return without_prefix
        if self.generic_phrase.search(compact):
            return self.generic_label
        return compact


@dataclass(frozen=True)
class NormalizeContext:
    realm: str
    now_ms: float


def lookup_first(mapping: Mapping[str, Any], aliases: Sequence[str]) -> Any:
    """Valor del primer alias presente (no null) en `mapping`."""

    for key in aliases:
        value = mapping.get(key)
        if value is not None:
            return value
    return None


def lookup_number(mapping: Mapping[str, Any], aliases: Sequence[str]) -> float | None:
    return read_number(lookup_first(mapping, aliases))


def unwrap_envelope(payload: Mapping[str, Any], wrapper_key: str) -> Mapping[str, Any]:
    wrapped = as_object(payload.get(wrapper_key))
    return wrapped if wrapped is not None else payload


def check_embedded_status(
    view: Mapping[str, Any],
    payload: Mapping[str, Any],
    rules: EnvelopeRules,
) -> None:
    """Lanza si el sobre trae un status distinto de 0."""

    base_resp = as_object(view.get(rules.status_key))
    if base_resp is None:
        base_resp = as_object(payload.get(rules.status_key)) or {}
    status_code = read_number(base_resp.get(rules.status_code_key))
    if status_code is None or status_code == 0:
        return

    status_message = read_string(base_resp.get(rules.status_message_key))
    lowered = (status_message or "").lower()
    if int(status_code) in rules.auth_codes or any(marker in lowered for marker in rules.auth_markers):
        raise AuthError(rules.auth_message)
    if status_message:
        raise PluginSpecificError(f"{rules.error_prefix}: {status_message}")
    raise PluginSpecificError(f"{rules.error_prefix} (status {int(status_code)}).")


def find_items(
    view: Mapping[str, Any],
    payload: Mapping[str, Any],
    keys: Sequence[str],
) -> list[Any] | None:
    for key in keys:
        for source in (view, payload):
            value = source.get(key)
            if isinstance(value, list):
                return value
    return None


def select_item(items: Sequence[Any], total_aliases: Sequence[str]) -> Mapping[str, Any] | None:
    """Primera entrada con un total positivo; ignora nulls y totales <= 0."""

    for item in items:
        if not isinstance(item, dict):
            continue
        total = lookup_number(item, total_aliases)
        if total is not None and total > 0:
            return item
    return None


def reconcile_used(total: float, used: float | None, remaining: float | None) -> float | None:
    if used is None and remaining is not None:
        used = total - remaining
    if used is None:
        return None
    return clamp(used, 0, total)


def infer_remains_ms(
    remains_raw: float | None,
    end_ms: float | None,
    now_ms: float,
    window: ResetWindow,
) -> float | None:
    """Interpreta un "tiempo restante" ambiguo (segundos o ms) y lo devuelve en ms."""

    if remains_raw is None or remains_raw <= 0:
        return None

    as_seconds_ms = remains_raw * 1000
    as_milliseconds_ms = remains_raw

    if end_ms is not None:
        to_end_ms = end_ms - now_ms
        if to_end_ms > 0:
            sec_delta = abs(as_seconds_ms - to_end_ms)
            ms_delta = abs(as_milliseconds_ms - to_end_ms)
            return as_seconds_ms if sec_delta <= ms_delta else as_milliseconds_ms

    max_expected_ms = window.max_expected_ms
    seconds_fit = as_seconds_ms <= max_expected_ms
    milliseconds_fit = as_milliseconds_ms <= max_expected_ms

    if seconds_fit and not milliseconds_fit:
        return as_seconds_ms
    if milliseconds_fit and not seconds_fit:
        return as_milliseconds_ms
    if seconds_fit and milliseconds_fit:
        return as_seconds_ms

    sec_overflow = abs(as_seconds_ms - max_expected_ms)
    ms_overflow = abs(as_milliseconds_ms - max_expected_ms)
    return as_seconds_ms if sec_overflow <= ms_overflow else as_milliseconds_ms


@dataclass(frozen=True)
class UsageNormalizer:
    """Payload crudo -> `CanonicalUsageRecord` (o `None` si no hay datos usables)."""

    aliases: FieldAliases
    envelope: EnvelopeRules
    window: ResetWindow
    tiers: TierTable | None = None
    plan_names: PlanNameRules | None = None

    def normalize(self, payload: Any, context: NormalizeContext) -> CanonicalUsageRecord | None:
        root = as_object(payload)
        if root is None:
            return None

        view = unwrap_envelope(root, self.envelope.wrapper_key)
        check_embedded_status(view, root, self.envelope)

        items = find_items(view, root, self.aliases.items)
        if not items:
            return None
        item = select_item(items, self.aliases.total)
        if item is None:
            return None

        total = lookup_number(item, self.aliases.total)
        if total is None or total <= 0:
            return None

        remaining = lookup_number(item, self.aliases.remaining)
        if remaining is None:
            remaining = lookup_number(item, self.aliases.remaining_fallback)
        used = reconcile_used(total, lookup_number(item, self.aliases.used), remaining)
        if used is None:
            return None

        start_ms = epoch_to_ms(lookup_first(item, self.aliases.start))
        end_ms = epoch_to_ms(lookup_first(item, self.aliases.end))
        remains_ms = infer_remains_ms(
            lookup_number(item, self.aliases.remains_duration),
            end_ms,
            context.now_ms,
            self.window,
        )

        resets_at_ms = end_ms
        if resets_at_ms is None and remains_ms is not None:
            resets_at_ms = context.now_ms + remains_ms

        period_ms = None
        if start_ms is not None and end_ms is not None and end_ms > start_ms:
            period_ms = end_ms - start_ms

        return CanonicalUsageRecord(
            plan_name=self._plan_name(view, root, total, context.realm),
            used=used,
            total=total,
            resets_at_epoch_ms=resets_at_ms,
            period_duration_ms=period_ms,
        )

    def _plan_name(
        self,
        view: Mapping[str, Any],
        root: Mapping[str, Any],
        total: float,
        realm: str,
    ) -> str | None:
        candidates = [view.get(key) for key in self.aliases.plan_name]
        candidates += [root.get(key) for key in self.aliases.root_plan_name]
        explicit = pick_first_string(candidates)
        if explicit and self.plan_names is not None:
            explicit = self.plan_names.normalize(explicit)
        if explicit:
            return explicit
        if self.tiers is None:
            return None
        return self.tiers.infer(total, realm)
