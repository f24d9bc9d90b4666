"""Proveedor: GitHub Copilot.

Fase 2:
- Token desde la caché propia (secure store), el keyring del `gh` CLI o el
  fichero de estado local; si la caché está caducada se invalida y se reintenta
  una vez con la siguiente fuente.
- Plan de pago: línea "Premium" (porcentaje) + "Budget" (USD). El presupuesto
  sale de la API de budgets de GitHub o, si no está accesible, se proyecta con
  el sobreuso de premium requests.
- Plan gratuito: líneas "Chat" y "Completions".
"""

from __future__ import annotations

import logging
from typing import Any, Mapping
from urllib.parse import quote

from core.coercion import as_object, clamp, parse_timestamp_ms, read_number, read_string, to_iso
from core.config import AppSettings
from core.domain.errors import AuthError, ProbeError
from core.domain.models import CanonicalUsageRecord, Credential, ProbeResult, ProgressLine
from core.interfaces.host import HostContext
from core.interfaces.provider import UsageProvider
from core.services.credential_resolver import (
    CredentialCache,
    CredentialResolver,
    cache_source,
    companion_cli_source,
    environment_source,
    state_file_source,
)
from core.services.endpoint_prober import EndpointProber, ProbeMessages
from core.services.line_builder import (
    BudgetSummary,
    DisplayUnit,
    budget_line,
    build_quota_lines,
    project_overage_budget,
)

logger = logging.getLogger(__name__)

CACHE_SERVICE = "usage-probe-copilot"
GH_CLI_SERVICE = "gh:github.com"
TOKEN_ENV_VARS = ("GH_TOKEN", "GITHUB_TOKEN")

USAGE_URL = "https://api.github.com/copilot_internal/user"
VIEWER_URL = "https://api.github.com/user"
USER_BUDGETS_URL = "https://api.github.com/users/{username}/settings/billing/budgets"
API_VERSION = "2022-11-28"
USER_AGENT = "GitHubCopilotChat/0.26.7"
EDITOR_VERSION = "vscode/1.96.2"
EDITOR_PLUGIN_VERSION = "copilot-chat/0.26.7"
REQUEST_TIMEOUT_MS = 10_000

THIRTY_DAYS_MS = 30 * 24 * 60 * 60 * 1000
BUDGET_SETTING_KEY = "copilotBudgetUsd"
COST_PER_ADDITIONAL_PREMIUM_REQUEST_USD = 0.04

USAGE_MESSAGES = ProbeMessages(
    auth="Token invalid. Run `gh auth login` to re-authenticate.",
    network="Usage request failed. Check your connection.",
    http="Usage request failed (HTTP {status}). Try again later.",
    parse="Usage response invalid. Try again later.",
)
NOT_LOGGED_IN_MESSAGE = "Not logged in. Run `gh auth login` first."


def github_headers(credential: Credential) -> dict[str, str]:
    return {
        "Authorization": f"token {credential.value}",
        "Accept": "application/json",
        "User-Agent": USER_AGENT,
        "X-Github-Api-Version": API_VERSION,
    }


def usage_headers(credential: Credential) -> dict[str, str]:
    return {
        **github_headers(credential),
        "Editor-Version": EDITOR_VERSION,
        "Editor-Plugin-Version": EDITOR_PLUGIN_VERSION,
    }


def plan_label(value: Any) -> str | None:
    """`individual_pro` -> `Individual Pro`."""

    raw = read_string(value)
    if not raw:
        return None
    words = raw.replace("_", " ").replace("-", " ").split()
    return " ".join(word[:1].upper() + word[1:] for word in words)


def _has_text(value: Any, fragment: str) -> bool:
    return fragment in str(value or "").lower()


def budget_priority(entry: Mapping[str, Any]) -> int:
    """Puntúa cuánto se parece un budget de GitHub al de Copilot premium requests."""

    score = 0
    if _has_text(entry.get("name"), "premium request"):
        score = max(score, 60)
    if _has_text(entry.get("name"), "copilot"):
        score = max(score, 50)

    items = entry.get("budget_items")
    for item in items if isinstance(items, list) else []:
        item = as_object(item) or {}
        item_type = str(item.get("type") or "").lower()
        target = str(item.get("target") or "").lower()
        if "premium request" in target and item_type == "sku":
            score = max(score, 100)
        elif "copilot" in target and item_type == "product":
            score = max(score, 90)
        elif "premium request" in target or "copilot" in target:
            score = max(score, 80)
    return score


def pick_budget_summary(payload: Any) -> BudgetSummary | None:
    """Budget de mayor prioridad; a igual prioridad, el de mayor límite."""

    if isinstance(payload, dict):
        payload = payload.get("budgets")
    entries = payload if isinstance(payload, list) else []

    best: tuple[int, BudgetSummary] | None = None
    for entry in entries:
        entry = as_object(entry)
        if entry is None:
            continue
        limit = read_number(entry.get("budget_limit"))
        used = read_number(entry.get("current_budget"))
        if limit is None or used is None or limit <= 0:
            continue
        score = budget_priority(entry)
        if score <= 0:
            continue
        if best is None or score > best[0] or (score == best[0] and limit > best[1].limit):
            best = (score, BudgetSummary(used=used, limit=limit))
    return best[1] if best else None


def viewer_login_from_usage(data: Mapping[str, Any]) -> str | None:
    for key in ("login", "user_login", "username"):
        login = read_string(data.get(key))
        if login:
            return login
    user = as_object(data.get("user"))
    return read_string(user.get("login")) if user else None


def percent_remaining_record(
    snapshot: Any,
    *,
    resets_at_ms: float | None,
) -> CanonicalUsageRecord | None:
    snapshot = as_object(snapshot)
    if snapshot is None:
        return None
    percent_remaining = snapshot.get("percent_remaining")
    if isinstance(percent_remaining, bool) or not isinstance(percent_remaining, (int, float)):
        return None
    return CanonicalUsageRecord(
        used=clamp(100 - percent_remaining, 0, 100),
        total=100,
        resets_at_epoch_ms=resets_at_ms,
        period_duration_ms=THIRTY_DAYS_MS,
    )


def remaining_count_record(
    remaining: Any,
    total: Any,
    *,
    resets_at_ms: float | None,
) -> CanonicalUsageRecord | None:
    if isinstance(remaining, bool) or isinstance(total, bool):
        return None
    if not isinstance(remaining, (int, float)) or not isinstance(total, (int, float)) or total <= 0:
        return None
    return CanonicalUsageRecord(
        used=clamp(total - remaining, 0, total),
        total=total,
        resets_at_epoch_ms=resets_at_ms,
        period_duration_ms=THIRTY_DAYS_MS,
    )


class CopilotProvider(UsageProvider):
    """Cupos mensuales de Copilot (premium requests, chat, completions) y presupuesto."""

    provider_id = "copilot"
    display_name = "Copilot"

    def __init__(self, settings: AppSettings | None = None) -> None:
        self._settings = settings

    def build_resolver(self, ctx: HostContext) -> CredentialResolver:
        state_path = ctx.provider_dir(self.provider_id) / "auth.json"
        cache = CredentialCache(
            secrets=ctx.secrets,
            service=CACHE_SERVICE,
            files=ctx.files,
            mirror_path=state_path,
        )
        return CredentialResolver(
            sources=[
                cache_source(cache),
                companion_cli_source(ctx.secrets, GH_CLI_SERVICE),
                state_file_source(ctx.files, state_path),
                environment_source(ctx.env, TOKEN_ENV_VARS),
            ],
            cache=cache,
        )

    def probe(self, ctx: HostContext) -> ProbeResult:
        resolver = self.build_resolver(ctx)
        credential = resolver.resolve()
        if credential is None:
            raise AuthError(NOT_LOGGED_IN_MESSAGE)

        prober = EndpointProber(
            http=ctx.http,
            build_headers=usage_headers,
            timeout_ms=REQUEST_TIMEOUT_MS,
            messages=USAGE_MESSAGES,
        )
        data, credential = resolver.with_fallback(
            credential,
            lambda cred: prober.try_candidates([USAGE_URL], cred),
        )
        logger.info("usage fetch succeeded")

        lines: list[ProgressLine] = []
        snapshots = as_object(data.get("quota_snapshots"))
        if snapshots is not None:
            lines.extend(self._paid_tier_lines(ctx, credential, data, snapshots))

        limited = as_object(data.get("limited_user_quotas"))
        monthly = as_object(data.get("monthly_quotas"))
        if limited is not None and monthly is not None:
            resets_at_ms = parse_timestamp_ms(data.get("limited_user_reset_date"))
            lines.extend(
                build_quota_lines(
                    [
                        (
                            remaining_count_record(limited.get("chat"), monthly.get("chat"), resets_at_ms=resets_at_ms),
                            DisplayUnit(label="Chat", kind="percent", scale_to_percent=True),
                        ),
                        (
                            remaining_count_record(
                                limited.get("completions"),
                                monthly.get("completions"),
                                resets_at_ms=resets_at_ms,
                            ),
                            DisplayUnit(label="Completions", kind="percent", scale_to_percent=True),
                        ),
                    ]
                )
            )

        return ProbeResult(plan=plan_label(data.get("copilot_plan")), lines=lines)

    def _paid_tier_lines(
        self,
        ctx: HostContext,
        credential: Credential,
        data: Mapping[str, Any],
        snapshots: Mapping[str, Any],
    ) -> list[ProgressLine]:
        reset_date = data.get("quota_reset_date")
        resets_at_ms = parse_timestamp_ms(reset_date)

        summary: BudgetSummary | None = None
        try:
            summary = self.fetch_budget_summary(ctx, credential, data)
        except ProbeError as exc:
            logger.warning("budget lookup failed: %s", exc.message)
        if summary is None:
            summary = self.project_budget_from_overage(ctx, snapshots)

        lines = build_quota_lines(
            [
                (
                    percent_remaining_record(snapshots.get("premium_interactions"), resets_at_ms=resets_at_ms),
                    DisplayUnit(label="Premium", kind="percent", round_values=False),
                )
            ]
        )
        budget = budget_line(summary, resets_at=to_iso(reset_date), period_duration_ms=THIRTY_DAYS_MS)
        if budget is not None:
            lines.append(budget)
        return lines

    def fetch_budget_summary(
        self,
        ctx: HostContext,
        credential: Credential,
        usage: Mapping[str, Any],
    ) -> BudgetSummary | None:
        prober = EndpointProber(http=ctx.http, build_headers=github_headers, timeout_ms=REQUEST_TIMEOUT_MS)

        login = viewer_login_from_usage(usage)
        if not login:
            viewer = prober.try_candidates([VIEWER_URL], credential)
            login = read_string(viewer.get("login"))
        if not login:
            return None

        budgets = prober.try_candidates(
            [USER_BUDGETS_URL.format(username=quote(login, safe=""))],
            credential,
            require_object=False,
        )
        return pick_budget_summary(budgets)

    def project_budget_from_overage(self, ctx: HostContext, snapshots: Mapping[str, Any]) -> BudgetSummary:
        premium = as_object(snapshots.get("premium_interactions")) or {}
        remaining = read_number(premium.get("remaining"))
        overage = max(0.0, -remaining) if remaining is not None else 0.0
        return project_overage_budget(
            overage_units=overage,
            cost_per_unit=COST_PER_ADDITIONAL_PREMIUM_REQUEST_USD,
            monthly_limit=self.budget_limit_usd(ctx),
        )

    def budget_limit_usd(self, ctx: HostContext) -> float:
        """Techo mensual: `settings.json` de la app, luego `AppSettings`."""

        settings_path = ctx.state_dir / "settings.json"
        try:
            if ctx.files.exists(settings_path):
                stored = as_object(ctx.files.read_json(settings_path)) or {}
                value = read_number(stored.get(BUDGET_SETTING_KEY))
                if value is not None and value > 0:
                    return value
        except (OSError, ValueError) as exc:
            logger.warning("settings read failed for %s: %s", settings_path, exc)
        return (self._settings or ctx.settings).copilot_budget_usd
