"""Exportación JSON de los reports.

Por qué JSON:
- Interoperabilidad con barras de estado, widgets y pipelines.
- Es el mismo shape que consume un host de plugins (`plan` + `lines`).
"""

from __future__ import annotations

import json
from pathlib import Path
from typing import Any, Sequence

from core.domain.models import ProviderReport


def reports_payload(reports: Sequence[ProviderReport]) -> list[dict[str, Any]]:
    return [report.model_dump(mode="json", exclude_none=True) for report in reports]


def dumps_reports(reports: Sequence[ProviderReport]) -> str:
    """Serializa a JSON UTF-8 con formato estable."""

    return json.dumps(reports_payload(reports), ensure_ascii=False, indent=2, sort_keys=True)


def export_reports_json(*, reports: Sequence[ProviderReport], output_path: Path) -> Path:
    output_path.parent.mkdir(parents=True, exist_ok=True)
    output_path.write_text(dumps_reports(reports) + "\n", encoding="utf-8")
    return output_path
