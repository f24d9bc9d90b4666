"""Componentes de UI para CLI (Rich).

Por qué separar componentes:
- Evita mezclar lógica de comandos con detalles visuales.
- Permite reutilizar tablas/paneles en múltiples comandos.
"""

from __future__ import annotations

from typing import Sequence

from rich.align import Align
from rich.console import Console
from rich.panel import Panel
from rich.table import Table
from rich.text import Text

from core.domain.models import BadgeLine, ProgressLine, ProviderReport


def print_banner(console: Console) -> None:
    """Imprime el banner de bienvenida.

    Por qué aquí:
    - Evita dependencias circulares (main <-> doctor).
    - Permite desactivar banner en modos no interactivos (JSON/pipelines).
    """

    title = Text("usage-probe", style="bold cyan")
    subtitle = Text("Cupos y consumo de planes de IA • MiniMax • Copilot", style="dim")
    body = Align.center(Text.assemble(title, "\n", subtitle), vertical="middle")
    console.print(Panel(body, border_style="cyan", padding=(1, 4)))


def _format_number(value: float) -> str:
    if float(value).is_integer():
        return str(int(value))
    return f"{value:.2f}".rstrip("0").rstrip(".")


def format_progress(line: ProgressLine) -> str:
    """`12 / 100 prompts`, `37.5%`, `$1.20 / $40.00`."""

    kind = line.format.kind
    if kind == "percent":
        return f"{_format_number(line.used)}%"
    if kind == "dollars":
        return f"${line.used:.2f} / ${line.limit:.2f}"
    text = f"{_format_number(line.used)} / {_format_number(line.limit)}"
    if line.format.suffix:
        text += f" {line.format.suffix}"
    return text


def _usage_style(line: ProgressLine) -> str:
    if line.limit <= 0:
        return "white"
    ratio = line.used / line.limit
    if ratio >= 0.9:
        return "red"
    if ratio >= 0.7:
        return "yellow"
    return "green"


def build_usage_table(reports: Sequence[ProviderReport]) -> Table:
    """Tabla Rich con una fila por línea de cada proveedor."""

    table = Table(title="Usage")
    table.add_column("Provider", style="cyan", no_wrap=True)
    table.add_column("Plan", style="magenta")
    table.add_column("Metric", style="white")
    table.add_column("Usage")
    table.add_column("Resets", style="dim")

    for report in reports:
        if report.result is None:
            table.add_row(report.display_name, "", "Error", Text(report.error or "", style="red"), "")
            continue

        plan = report.result.plan or ""
        for index, line in enumerate(report.result.lines):
            provider_cell = report.display_name if index == 0 else ""
            plan_cell = plan if index == 0 else ""
            if isinstance(line, BadgeLine):
                table.add_row(provider_cell, plan_cell, line.label, Text(line.text, style=line.color or "white"), "")
            else:
                table.add_row(
                    provider_cell,
                    plan_cell,
                    line.label,
                    Text(format_progress(line), style=_usage_style(line)),
                    line.resets_at or "",
                )
    return table
