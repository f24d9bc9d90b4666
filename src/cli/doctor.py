"""Doctor command for environment diagnostics."""

from __future__ import annotations

from dataclasses import dataclass

import typer
from rich.console import Console
from rich.table import Table

from adapters.host import build_default_context
from adapters.providers.copilot import CopilotProvider
from adapters.providers.minimax import API_KEY_ENV_VARS, CN_API_KEY_ENV_VAR
from core.config import AppSettings, get_user_env_file, write_user_env_vars
from core.domain.errors import TransportError
from core.domain.models import Realm, RealmSelection
from core.interfaces.host import HostContext
from core.services.credential_resolver import read_env_first

_console = Console()

CONNECTIVITY_URLS = (
    "https://api.minimax.io",
    "https://api.github.com",
)
CONNECTIVITY_TIMEOUT_MS = 5_000


@dataclass(frozen=True)
class DoctorCheck:
    name: str
    status: str
    details: str


def _check_minimax_keys(ctx: HostContext) -> list[DoctorCheck]:
    checks: list[DoctorCheck] = []
    for realm in Realm:
        found = read_env_first(ctx.env, API_KEY_ENV_VARS[realm])
        if found:
            checks.append(DoctorCheck(f"MiniMax key ({realm.value})", "OK", f"from {found[1]}"))
        else:
            checks.append(DoctorCheck(f"MiniMax key ({realm.value})", "MISSING", f"Set {API_KEY_ENV_VARS[realm][0]}"))
    return checks


def _check_copilot_token(ctx: HostContext) -> DoctorCheck:
    try:
        credential = CopilotProvider().build_resolver(ctx).resolve()
    except Exception as exc:
        return DoctorCheck("Copilot token", "FAIL", str(exc))
    if credential is None:
        return DoctorCheck("Copilot token", "MISSING", "Run `gh auth login`")
    return DoctorCheck("Copilot token", "OK", f"{credential.source.value} ({credential.origin})")


def _check_state_dir(ctx: HostContext) -> DoctorCheck:
    probe_path = ctx.state_dir / ".doctor.json"
    try:
        ctx.files.write_json(probe_path, {"ok": True})
        probe_path.unlink(missing_ok=True)
    except OSError as exc:
        return DoctorCheck("State dir", "FAIL", str(exc))
    return DoctorCheck("State dir", "OK", str(ctx.state_dir))


def _check_http(ctx: HostContext, url: str) -> DoctorCheck:
    try:
        response = ctx.http.request("GET", url, {}, CONNECTIVITY_TIMEOUT_MS)
    except TransportError as exc:
        return DoctorCheck(f"HTTP {url}", "FAIL", str(exc))
    return DoctorCheck(f"HTTP {url}", "OK", f"HTTP {response.status}")


def collect_checks(ctx: HostContext, *, connectivity: bool = True) -> list[DoctorCheck]:
    """Diagnóstico best-effort: nunca lanza, cada fallo queda como fila FAIL."""

    checks = [
        DoctorCheck("MiniMax region", "OK", ctx.settings.minimax_region.value),
        DoctorCheck("Secure store", "OK", type(ctx.secrets).__name__),
        _check_state_dir(ctx),
    ]
    checks.extend(_check_minimax_keys(ctx))
    checks.append(_check_copilot_token(ctx))
    if connectivity:
        checks.extend(_check_http(ctx, url) for url in CONNECTIVITY_URLS)
    return checks


def run(
    offline: bool = typer.Option(False, "--offline", help="Skip connectivity checks."),
) -> None:
    """Run baseline diagnostics and show recommended fixes."""

    ctx = build_default_context(AppSettings())

    table = Table(title="usage-probe Doctor")
    table.add_column("Check", style="bright_green", no_wrap=True)
    table.add_column("Status", style="white")
    table.add_column("Details", style="dim")

    checks = collect_checks(ctx, connectivity=not offline)
    for check in checks:
        style = {"OK": "green", "MISSING": "yellow"}.get(check.status, "red")
        table.add_row(check.name, f"[{style}]{check.status}[/{style}]", check.details)

    _console.print(table)

    if any(c.status == "MISSING" and c.name.startswith("MiniMax") for c in checks):
        _console.print("\n[yellow]Note:[/yellow] run `usage-probe setup` to store MiniMax API keys.")


def setup() -> None:
    """Interactive setup (stores keys in the user config .env).

    Designed for non-Python users: no manual .env editing.
    """

    region = typer.prompt(
        "MiniMax region (AUTO, GLOBAL, CN)",
        default=RealmSelection.AUTO.value,
        show_default=True,
    ).strip().upper()
    try:
        selection = RealmSelection(region)
    except ValueError:
        raise typer.BadParameter(f"unknown region: {region}") from None

    values: dict[str, str] = {"USAGE_PROBE_MINIMAX_REGION": selection.value}
    if selection is not RealmSelection.CN:
        global_key = typer.prompt("MiniMax API key (GLOBAL)", default="", hide_input=True, show_default=False).strip()
        if global_key:
            values[API_KEY_ENV_VARS[Realm.GLOBAL][0]] = global_key
    if selection is not RealmSelection.GLOBAL:
        cn_key = typer.prompt("MiniMax API key (CN)", default="", hide_input=True, show_default=False).strip()
        if cn_key:
            values[CN_API_KEY_ENV_VAR] = cn_key

    budget = typer.prompt("Copilot monthly budget (USD)", default="", show_default=False).strip()
    if budget:
        try:
            if float(budget) <= 0:
                raise ValueError(budget)
        except ValueError:
            raise typer.BadParameter("budget must be a positive number") from None
        values["USAGE_PROBE_COPILOT_BUDGET_USD"] = budget

    env_path = write_user_env_vars(values, get_user_env_file())
    _console.print(f"[green]Saved config to:[/green] {env_path}")
