"""Spreadsheet export of registrations grouped by school, event and age category."""

from __future__ import annotations

import re
from io import BytesIO
from typing import Dict, Iterable, List, Optional

from openpyxl import Workbook
from openpyxl.styles import Font

from .categories import category_rank
from .models import Participant

HEADER = ["Name", "Chest", "DOB", "Gender", "Timestamp"]
XLSX_MIMETYPE = "application/vnd.openxmlformats-officedocument.spreadsheetml.sheet"

Grouped = Dict[str, Dict[str, Dict[str, List[Participant]]]]


def group_records(records: Iterable[Participant]) -> Grouped:
    """Group as school -> event -> age category -> participants.

    Schools and events keep first-seen order; categories follow the fixed
    display order with Overage and unclassified entries last.
    """
    raw: Grouped = {}
    for record in records:
        events = raw.setdefault(record.school, {})
        for event in record.events:
            events.setdefault(event, {}).setdefault(record.age_category, []).append(record)
    grouped: Grouped = {}
    for school, events in raw.items():
        grouped[school] = {
            event: {cat: categories[cat] for cat in sorted(categories, key=category_rank)}
            for event, categories in events.items()
        }
    return grouped


def safe_filename(value: str) -> str:
    cleaned = re.sub(r"\s+", "_", (value or "").strip())
    cleaned = "".join(ch for ch in cleaned if ch not in '\\/:*?"<>|')
    return cleaned or "school"


def _sheet_title(value: str) -> str:
    # Excel limits sheet titles to 31 chars and forbids []:*?/\
    cleaned = "".join(ch for ch in value if ch not in "[]:*?/\\")
    return cleaned[:31] or "Responses"


def _write_events(ws, events: Dict[str, Dict[str, List[Participant]]]) -> None:
    bold = Font(bold=True)
    for event, categories in events.items():
        ws.append([f"Event: {event}"])
        ws.cell(row=ws.max_row, column=1).font = bold
        for category, participants in categories.items():
            ws.append([f"Age Category: {category}"])
            ws.append(HEADER)
            for col in range(1, len(HEADER) + 1):
                ws.cell(row=ws.max_row, column=col).font = bold
            for p in sorted(participants, key=lambda r: r.chest):
                ws.append([p.name, p.chest, p.dob, p.gender, p.created_at])
            ws.append([])
        ws.append([])


def build_workbook(records: Iterable[Participant], school: Optional[str] = None) -> Workbook:
    """Render the results workbook; with ``school`` only that school's sheet."""
    grouped = group_records(records)
    wb = Workbook()
    ws = wb.active
    if school is None:
        ws.title = _sheet_title("Sports Results")
        for name, events in grouped.items():
            ws.append([f"School: {name}"])
            ws.cell(row=ws.max_row, column=1).font = Font(bold=True, size=12)
            _write_events(ws, events)
            ws.append([])
    else:
        ws.title = _sheet_title(f"Responses - {school}")
        target = school.strip().lower()
        for name, events in grouped.items():
            if name.lower() == target:
                _write_events(ws, events)

    widths = {"A": 28, "B": 10, "C": 14, "D": 10, "E": 28}
    for col, width in widths.items():
        ws.column_dimensions[col].width = width
    return wb


def workbook_bytes(wb: Workbook) -> BytesIO:
    output = BytesIO()
    wb.save(output)
    output.seek(0)
    return output


__all__ = [
    "HEADER",
    "XLSX_MIMETYPE",
    "build_workbook",
    "group_records",
    "safe_filename",
    "workbook_bytes",
]
