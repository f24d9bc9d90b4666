"""Proveedor: MiniMax Coding Plan.

Implementación:
- API key desde variables de entorno, por realm (GLOBAL / CN).
- Varias URLs candidatas por realm; en AUTO se prueba primero el realm cuya
  key específica existe.
- `current_interval_usage_count` trae los prompts *restantes*, no los usados.
- En CN los totales vienen en llamadas de modelo (prompts × 15).
"""

from __future__ import annotations

import logging
import re
from typing import Any

from core.config import AppSettings
from core.domain.errors import AuthError, DataUnavailableError, ProbeError
from core.domain.models import CanonicalUsageRecord, Credential, ProbeResult, Realm, RealmSelection
from core.fallback import Verdict, try_in_order
from core.interfaces.host import HostContext
from core.interfaces.provider import UsageProvider
from core.services.credential_resolver import CredentialResolver, environment_source, read_env_first
from core.services.endpoint_prober import EndpointProber, ProbeMessages
from core.services.line_builder import DisplayUnit, build_lines
from core.services.normalizer import (
    EnvelopeRules,
    FieldAliases,
    NormalizeContext,
    PlanNameRules,
    ResetWindow,
    TierTable,
    UsageNormalizer,
)

logger = logging.getLogger(__name__)

USAGE_URLS: dict[Realm, tuple[str, ...]] = {
    Realm.GLOBAL: (
        "https://api.minimax.io/v1/api/openplatform/coding_plan/remains",
        "https://api.minimax.io/v1/coding_plan/remains",
        "https://www.minimax.io/v1/api/openplatform/coding_plan/remains",
    ),
    Realm.CN: (
        "https://api.minimaxi.com/v1/api/openplatform/coding_plan/remains",
        "https://api.minimaxi.com/v1/coding_plan/remains",
    ),
}
API_KEY_ENV_VARS: dict[Realm, tuple[str, ...]] = {
    Realm.GLOBAL: ("MINIMAX_API_KEY", "MINIMAX_API_TOKEN"),
    Realm.CN: ("MINIMAX_CN_API_KEY", "MINIMAX_API_KEY", "MINIMAX_API_TOKEN"),
}
CN_API_KEY_ENV_VAR = "MINIMAX_CN_API_KEY"

REQUEST_TIMEOUT_MS = 15_000
CODING_PLAN_WINDOW_MS = 5 * 60 * 60 * 1000
CODING_PLAN_WINDOW_TOLERANCE_MS = 10 * 60 * 1000
MODEL_CALLS_PER_PROMPT = 15

AUTH_MESSAGE = "Session expired. Check your MiniMax API key."
MISSING_KEY_MESSAGE = "MiniMax API key missing. Set MINIMAX_API_KEY or MINIMAX_CN_API_KEY."

# GLOBAL: límites en prompts. CN: límites en llamadas de modelo (prompts × 15).
TIERS = TierTable(
    tables={
        Realm.GLOBAL: {100: "Starter", 300: "Plus", 1000: "Max", 2000: "Ultra"},
        Realm.CN: {600: "Starter", 1500: "Plus", 4500: "Max"},
    },
    divisors={Realm.GLOBAL: MODEL_CALLS_PER_PROMPT},
)

ALIASES = FieldAliases(
    items=("model_remains", "modelRemains"),
    total=("current_interval_total_count", "currentIntervalTotalCount"),
    used=("current_interval_used_count", "currentIntervalUsedCount", "used_count", "used"),
    remaining=(
        "current_interval_remaining_count",
        "currentIntervalRemainingCount",
        "current_interval_remains_count",
        "currentIntervalRemainsCount",
        "current_interval_remain_count",
        "currentIntervalRemainCount",
        "remaining_count",
        "remainingCount",
        "remains_count",
        "remainsCount",
        "remaining",
        "remains",
        "left_count",
        "leftCount",
    ),
    remaining_fallback=("current_interval_usage_count", "currentIntervalUsageCount"),
    start=("start_time", "startTime"),
    end=("end_time", "endTime"),
    remains_duration=("remains_time", "remainsTime"),
    plan_name=("current_subscribe_title", "plan_name", "plan", "current_plan_title", "combo_title"),
    root_plan_name=("current_subscribe_title", "plan_name", "plan"),
)

NORMALIZER = UsageNormalizer(
    aliases=ALIASES,
    envelope=EnvelopeRules(
        auth_message=AUTH_MESSAGE,
        error_prefix="MiniMax API error",
        auth_codes=frozenset({1004}),
    ),
    window=ResetWindow(CODING_PLAN_WINDOW_MS, CODING_PLAN_WINDOW_TOLERANCE_MS),
    tiers=TIERS,
    plan_names=PlanNameRules(
        vendor_prefix=re.compile(r"^minimax\s+coding\s+plan\b[:\-]?\s*", re.IGNORECASE),
    ),
)

MESSAGES = ProbeMessages(auth=AUTH_MESSAGE)


def _headers(credential: Credential) -> dict[str, str]:
    return {
        "Authorization": f"Bearer {credential.value}",
        "Content-Type": "application/json",
        "Accept": "application/json",
    }


class MiniMaxProvider(UsageProvider):
    """Cupo de prompts de la ventana de 5 h del Coding Plan."""

    provider_id = "minimax"
    display_name = "MiniMax"

    def __init__(self, settings: AppSettings | None = None) -> None:
        self._settings = settings

    def probe(self, ctx: HostContext) -> ProbeResult:
        settings = self._settings or ctx.settings
        attempts = self.realm_attempts(ctx, settings.minimax_region)
        prober = EndpointProber(
            http=ctx.http,
            build_headers=_headers,
            timeout_ms=REQUEST_TIMEOUT_MS,
            messages=MESSAGES,
        )

        outcome = try_in_order(
            attempts,
            attempt=lambda realm: self._probe_realm(ctx, prober, realm),
            classify=_classify_realm,
            describe=lambda realm: f"minimax realm {realm.value}",
            log=logger,
        )
        if not outcome.succeeded:
            for failure in outcome.failures:
                if isinstance(failure.detail, ProbeError):
                    raise failure.detail
            raise AuthError(MISSING_KEY_MESSAGE)

        realm: Realm = outcome.item  # type: ignore[assignment]
        record: CanonicalUsageRecord = outcome.value  # type: ignore[assignment]
        divisor = MODEL_CALLS_PER_PROMPT if realm is Realm.CN else 1
        lines = build_lines(
            record,
            DisplayUnit(label="Session", kind="count", suffix="prompts", divisor=divisor),
        )
        plan = f"{record.plan_name} ({realm.value})" if record.plan_name else None
        return ProbeResult(plan=plan, lines=lines)

    @staticmethod
    def realm_attempts(ctx: HostContext, selection: RealmSelection) -> list[Realm]:
        if selection is RealmSelection.GLOBAL:
            return [Realm.GLOBAL]
        if selection is RealmSelection.CN:
            return [Realm.CN]
        if read_env_first(ctx.env, (CN_API_KEY_ENV_VAR,)):
            return [Realm.CN, Realm.GLOBAL]
        return [Realm.GLOBAL, Realm.CN]

    def _probe_realm(
        self,
        ctx: HostContext,
        prober: EndpointProber,
        realm: Realm,
    ) -> tuple[Credential | None, CanonicalUsageRecord | None]:
        resolver = CredentialResolver([environment_source(ctx.env, API_KEY_ENV_VARS[realm])])
        credential = resolver.resolve()
        if credential is None:
            return None, None

        payload: Any = prober.try_candidates(USAGE_URLS[realm], credential)
        record = NORMALIZER.normalize(payload, NormalizeContext(realm=realm, now_ms=ctx.clock.now_ms()))
        return credential, record


def _classify_realm(
    realm: Realm,
    result: tuple[Credential | None, CanonicalUsageRecord | None] | None,
    error: Exception | None,
) -> Verdict[CanonicalUsageRecord]:
    if error is not None:
        if isinstance(error, ProbeError):
            return Verdict.reject(error.kind.value, error)
        raise error
    credential, record = result or (None, None)
    if credential is None:
        return Verdict.reject("missing_key")
    if record is None:
        return Verdict.reject("data_unavailable", DataUnavailableError())
    return Verdict.accept(record)
