"""CLI principal (Typer + Rich).

Comandos:
- `probe [PROVIDER...]`: consulta cupos y los muestra como tabla o JSON.
- `providers`: lista los ids disponibles.
- `doctor` / `setup`: diagnóstico y configuración guiada.
"""

from __future__ import annotations

import logging
from pathlib import Path
from typing import List, Optional

import typer
from rich.console import Console
from rich.logging import RichHandler

from adapters.host import build_default_context
from adapters.json_exporter import dumps_reports, export_reports_json
from adapters.providers import PROVIDERS, all_providers, get_provider
from cli import doctor
from cli.ui_components import build_usage_table, print_banner
from core.config import AppSettings
from core.services.probe_engine import probe_all

app = typer.Typer(
    no_args_is_help=True,
    add_completion=False,
    help="Quota and usage probes for AI coding plans.",
)
app.command(name="doctor")(doctor.run)
app.command(name="setup")(doctor.setup)

_console = Console()
_err_console = Console(stderr=True)


def configure_logging(level: str, *, verbose: bool = False) -> None:
    """Logs a stderr vía RichHandler; `--verbose` fuerza DEBUG."""

    resolved = logging.DEBUG if verbose else getattr(logging, level.upper(), logging.WARNING)
    logging.basicConfig(
        level=resolved,
        format="%(name)s: %(message)s",
        handlers=[RichHandler(console=_err_console, show_path=False, rich_tracebacks=True)],
        force=True,
    )
    # httpx loguea cada request en INFO
    logging.getLogger("httpx").setLevel(max(resolved, logging.WARNING))


@app.command()
def probe(
    provider_ids: Optional[List[str]] = typer.Argument(None, metavar="[PROVIDER]...", help="minimax, copilot (default: all)."),
    as_json: bool = typer.Option(False, "--json", help="Print JSON instead of a table."),
    output: Optional[Path] = typer.Option(None, "--output", "-o", help="Also write the JSON report to this file."),
    verbose: bool = typer.Option(False, "--verbose", "-v", help="Debug logging to stderr."),
) -> None:
    """Probe one or more providers and show their usage lines."""

    settings = AppSettings()
    configure_logging(settings.log_level, verbose=verbose)

    if provider_ids:
        unknown = [p for p in provider_ids if p.strip().lower() not in PROVIDERS]
        if unknown:
            raise typer.BadParameter(
                f"unknown provider(s): {', '.join(unknown)}. Available: {', '.join(PROVIDERS)}",
                param_hint="PROVIDER",
            )
        providers = [get_provider(p, settings) for p in provider_ids]
    else:
        providers = all_providers(settings)

    ctx = build_default_context(settings)
    try:
        reports = probe_all(providers, ctx)
    finally:
        close = getattr(ctx.http, "close", None)
        if callable(close):
            close()

    if output is not None:
        export_reports_json(reports=reports, output_path=output)

    if as_json:
        typer.echo(dumps_reports(reports))
    else:
        print_banner(_console)
        _console.print(build_usage_table(reports))
        if output is not None:
            _console.print(f"[green]Saved JSON report to:[/green] {output}")

    if reports and all(report.error for report in reports):
        raise typer.Exit(code=1)


@app.command(name="providers")
def list_providers() -> None:
    """List available provider ids."""

    for provider_id, cls in PROVIDERS.items():
        typer.echo(f"{provider_id}\t{cls.display_name}")


def run() -> None:
    app()


if __name__ == "__main__":
    run()
