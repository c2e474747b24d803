"""Spreadsheet export of a session's items (CSV and XLSX)."""

import csv
import io
import logging
import re
from typing import Any, Iterable

from openpyxl import Workbook
from openpyxl.styles import Font, PatternFill
from openpyxl.utils import get_column_letter

from easyscrapy.constants import EXPORT_COLUMNS, EXPORT_DESCRIPTION_MAX, EXPORT_FILENAME_PREFIX, MAX_ITEM_IMAGES
from easyscrapy.models.stored_item import StoredItem
from easyscrapy.services.item_normalizer import ScrapedItem

logger = logging.getLogger(__name__)

EXPORT_FORMATS = {
    "excel": ("xlsx", "application/vnd.openxmlformats-officedocument.spreadsheetml.sheet"),
    "csv": ("csv", "text/csv; charset=utf-8"),
}

_HEADER_FILL = PatternFill(start_color="1F4E78", end_color="1F4E78", fill_type="solid")
_COLUMN_WIDTHS = {"title": 40, "description": 60, "url": 50, "image_url": 50}


class ExportFormatError(ValueError):
    pass


def clean_description(text: str | None) -> str:
    """Collapse whitespace and cap the length."""
    if not text:
        return ""
    collapsed = re.sub(r"\s+", " ", text).strip()
    if len(collapsed) > EXPORT_DESCRIPTION_MAX:
        return collapsed[:EXPORT_DESCRIPTION_MAX - 3] + "..."
    return collapsed


def item_to_row(item: StoredItem | ScrapedItem) -> dict[str, Any]:
    images = list(item.images or [])[:MAX_ITEM_IMAGES]
    row = {
        "external_id": item.external_id or "",
        "title": item.title or "",
        "price": item.price or "",
        "description": clean_description(item.description),
        "location": item.location or "",
        "url": item.url or "",
        "posted_at": item.posted_at or "",
        "image_url": item.image_url or "",
        "image_count": len(images),
    }
    for index in range(MAX_ITEM_IMAGES):
        row[f"image_{index + 1}"] = images[index] if index < len(images) else ""
    return row


def export_filename(session_id: str, fmt: str) -> str:
    extension, _ = _resolve(fmt)
    return f"{EXPORT_FILENAME_PREFIX}_{session_id}.{extension}"


def media_type(fmt: str) -> str:
    return _resolve(fmt)[1]


def _resolve(fmt: str) -> tuple[str, str]:
    try:
        return EXPORT_FORMATS[fmt]
    except KeyError:
        raise ExportFormatError(f"Unsupported export format: {fmt}. Use 'excel' or 'csv'.")


def to_csv(items: Iterable[StoredItem | ScrapedItem]) -> bytes:
    output = io.StringIO()
    writer = csv.writer(output)
    writer.writerow([header for _, header in EXPORT_COLUMNS])
    for item in items:
        row = item_to_row(item)
        writer.writerow([row[key] for key, _ in EXPORT_COLUMNS])
    # BOM so spreadsheet apps detect UTF-8 (accented French headers)
    return ("\ufeff" + output.getvalue()).encode("utf-8")


def to_xlsx(items: Iterable[StoredItem | ScrapedItem], sheet_title: str = "Annonces") -> bytes:
    wb = Workbook()
    ws = wb.active
    ws.title = sheet_title

    ws.append([header for _, header in EXPORT_COLUMNS])
    for cell in ws[1]:
        cell.font = Font(bold=True, color="FFFFFF")
        cell.fill = _HEADER_FILL
    ws.freeze_panes = "A2"

    for item in items:
        row = item_to_row(item)
        ws.append([row[key] for key, _ in EXPORT_COLUMNS])

    for index, (key, _) in enumerate(EXPORT_COLUMNS, start=1):
        ws.column_dimensions[get_column_letter(index)].width = _COLUMN_WIDTHS.get(key, 18)

    buffer = io.BytesIO()
    wb.save(buffer)
    return buffer.getvalue()


def render_export(items: list[StoredItem | ScrapedItem], fmt: str) -> bytes:
    _resolve(fmt)
    data = to_xlsx(items) if fmt == "excel" else to_csv(items)
    logger.info("Rendered %s export with %d items (%d bytes)", fmt, len(items), len(data))
    return data
