"""
Server-side rendering for the uploads browser and the JSON data export.
"""

from __future__ import annotations

import json
import math
from datetime import date
from pathlib import Path
from typing import Iterable, Optional

from jinja2 import Environment, FileSystemLoader, select_autoescape

from tattoo_backend.db import TattooRecord
from tattoo_backend.reconcile import ReconciliationReport

TEMPLATES_DIR = Path(__file__).resolve().parent / "templates"


def format_size(size: Optional[int]) -> str:
    if size is None:
        return "unknown"
    if size < 1024:
        return f"{size} B"
    if size < 1024 * 1024:
        return f"{size / 1024:.1f} KB"
    return f"{size / (1024 * 1024):.1f} MB"


def _hours_text(hours: int) -> str:
    return "1 hr" if hours == 1 else f"{hours} hrs"


def format_duration(value: float, unit: str = "hours") -> str:
    """Render a duration as e.g. '2 hrs 30 min'."""
    total_minutes = round(value * 60) if unit == "hours" else round(value)
    hours, minutes = divmod(int(total_minutes), 60)
    if hours == 0:
        return f"{minutes} min"
    if minutes == 0:
        return _hours_text(hours)
    return f"{_hours_text(hours)} {minutes} min"


def format_price(value: float) -> str:
    if not math.isfinite(value):
        return "-"
    return f"${value:,.2f}"


_env = Environment(
    loader=FileSystemLoader(str(TEMPLATES_DIR)),
    autoescape=select_autoescape(["html", "xml"]),
)
_env.filters["filesize"] = format_size
_env.filters["price"] = format_price


def render_uploads_browser(
    report: ReconciliationReport,
    *,
    records: Iterable[TattooRecord] = (),
    duration_unit: str = "hours",
    environment: str,
    location: str,
    storage: str,
) -> str:
    template = _env.get_template("uploads_browser.html")
    return template.render(
        report=report,
        records=[
            (record, format_duration(record.duration, duration_unit)) for record in records
        ],
        environment=environment,
        location=location,
        storage=storage,
    )


def export_filename(today: Optional[date] = None) -> str:
    today = today or date.today()
    return f"tattoo-data-{today.isoformat()}.json"


def export_records(records: Iterable[TattooRecord], duration_unit: str) -> str:
    return json.dumps(
        [record.as_dict(duration_unit) for record in records], indent=2
    )
