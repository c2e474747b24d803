"""Unit tests for CSV and XLSX exports."""

import io

import pytest
from openpyxl import load_workbook

from easyscrapy.constants import EXPORT_COLUMNS
from easyscrapy.services.export_service import (
    ExportFormatError,
    clean_description,
    export_filename,
    media_type,
    render_export,
)
from easyscrapy.services.item_normalizer import normalize_item

ITEMS = [
    normalize_item({
        "id": "1",
        "title": "Vélo",
        "price": "100 000 MGA",
        "description": "  Très   bon\n état  ",
        "url": "https://www.facebook.com/marketplace/item/1",
        "listing_photos": [
            {"image": {"uri": "https://cdn.example.com/1.jpg"}},
            {"image": {"uri": "https://cdn.example.com/2.jpg"}},
        ],
    }),
    normalize_item({"id": "2", "title": "Casque"}),
]


@pytest.mark.unit
class TestExport:
    def test_csv_has_bom_header_and_rows(self) -> None:
        data = render_export(ITEMS, "csv")
        assert data.startswith(b"\xef\xbb\xbf")
        lines = data.decode("utf-8-sig").splitlines()
        assert lines[0].split(",")[:3] == ["ID Annonce", "Titre", "Prix"]
        assert len(lines) == 3
        assert "Très bon état" in lines[1]

    def test_xlsx_round_trips_headers_and_image_columns(self) -> None:
        wb = load_workbook(io.BytesIO(render_export(ITEMS, "excel")))
        ws = wb.active
        headers = [cell.value for cell in ws[1]]
        assert headers == [header for _, header in EXPORT_COLUMNS]
        first = {h: c.value for h, c in zip(headers, ws[2])}
        assert first["Nombre d'Images"] == 2
        assert first["Image 2"] == "https://cdn.example.com/2.jpg"
        assert ws.max_row == 3

    def test_unknown_format(self) -> None:
        with pytest.raises(ExportFormatError):
            render_export(ITEMS, "pdf")

    def test_filename_and_media_type(self) -> None:
        assert export_filename("sess_1", "excel") == "EasyScrapy_sess_1.xlsx"
        assert export_filename("sess_1", "csv") == "EasyScrapy_sess_1.csv"
        assert media_type("csv").startswith("text/csv")

    def test_clean_description_caps_length(self) -> None:
        cleaned = clean_description("mot " * 300)
        assert len(cleaned) == 500
        assert cleaned.endswith("...")
        assert clean_description(None) == ""
