"""Tests for the spreadsheet parser adapter."""

import io

import pytest
from openpyxl import Workbook

from src.rtb.core.exceptions import ValidationError
from src.rtb.workflow.adapters.sheet_parser import OpenpyxlSheetParser


def create_excel(rows: list[list]) -> bytes:
    """Create an in-memory Excel file with the given rows (header first)."""
    wb = Workbook()
    ws = wb.active
    for row in rows:
        ws.append(row)
    buffer = io.BytesIO()
    wb.save(buffer)
    return buffer.getvalue()


@pytest.fixture
def parser():
    return OpenpyxlSheetParser()


class TestParseDevices:
    """Tests for intake sheets."""

    def test_parses_excel(self, parser):
        content = create_excel([
            ["Serial Number", "Category", "Brand", "Model", "Condition", "Specifications"],
            ["5cg1234", "Laptop", "HP", "ProBook 450", "Good", "8GB RAM"],
            ["R58N123", "tablet", "Samsung", "Tab A8", None, None],
        ])

        result = parser.parse_devices(content)

        assert result.errors == []
        assert len(result.rows) == 2
        first, second = result.rows
        assert first.row_number == 2
        assert first.serial_number == "5CG1234"
        assert first.condition == "Good"
        assert first.specifications == "8GB RAM"
        assert second.category == "tablet"
        assert second.condition == "New"
        assert second.specifications is None

    def test_header_variations(self, parser):
        content = create_excel([
            ["SN", "Type", "Manufacturer", "MODEL"],
            ["ABC1", "Projector", "Epson", "EB-X06"],
        ])
        result = parser.parse_devices(content)
        assert result.rows[0].serial_number == "ABC1"
        assert result.rows[0].brand == "Epson"

    def test_skips_blank_rows(self, parser):
        content = create_excel([
            ["Serial Number", "Category", "Brand", "Model"],
            ["SN1", "Laptop", "Dell", "Latitude"],
            [None, None, None, None],
            ["SN2", "Desktop", "Dell", "OptiPlex"],
        ])
        result = parser.parse_devices(content)
        assert [r.row_number for r in result.rows] == [2, 4]

    def test_reports_row_errors(self, parser):
        content = create_excel([
            ["Serial Number", "Category", "Brand", "Model", "Condition"],
            ["SN1", "Phone", "Apple", "iPhone", "New"],
            ["SN2", "Laptop", None, "Latitude", "New"],
            ["SN3", "Laptop", "Dell", "Latitude", "Broken"],
            ["SN4", "Laptop", "Dell", "Latitude", "Fair"],
        ])

        result = parser.parse_devices(content)

        assert [r.serial_number for r in result.rows] == ["SN4"]
        assert [(e.row_number, e.field) for e in result.errors] == [
            (2, "category"),
            (3, "brand"),
            (4, "condition"),
        ]

    def test_missing_required_column(self, parser):
        content = create_excel([
            ["Serial Number", "Brand", "Model"],
            ["SN1", "Dell", "Latitude"],
        ])
        with pytest.raises(ValidationError) as exc_info:
            parser.parse_devices(content)
        assert "category" in exc_info.value.message
        assert exc_info.value.field == "file"

    def test_parses_csv(self, parser):
        content = (
            "Serial Number,Category,Brand,Model\n"
            "sn1,Laptop,Dell,Latitude 3420\n"
            "sn2,Others,Logitech,Webcam C270\n"
        ).encode("utf-8")

        result = parser.parse_devices(content)
        assert [r.serial_number for r in result.rows] == ["SN1", "SN2"]
        assert result.rows[1].model == "Webcam C270"

    def test_parses_semicolon_csv_with_bom(self, parser):
        content = (
            "\ufeffSerial Number;Category;Brand;Model\n"
            "SN1;Tablet;Lenovo;Tab M10\n"
        ).encode("utf-8")

        result = parser.parse_devices(content)
        assert result.rows[0].brand == "Lenovo"

    def test_empty_file(self, parser):
        with pytest.raises(ValidationError):
            parser.parse_devices(b"")

    def test_invalid_excel(self, parser):
        with pytest.raises(ValidationError):
            parser.parse_devices(b"\x00\x01\x02 not a workbook \xff\xfe")


class TestParseAssignments:
    """Tests for bulk assignment sheets."""

    def test_parses_excel(self, parser):
        content = create_excel([
            ["Serial Number", "School Code"],
            ["sn1", "sch00012"],
            ["SN2", None],
        ])

        result = parser.parse_assignments(content)

        assert len(result.rows) == 1
        assert result.rows[0].serial_number == "SN1"
        assert result.rows[0].school_code == "SCH00012"
        assert [(e.row_number, e.field) for e in result.errors] == [(3, "school_code")]

    def test_parses_csv(self, parser):
        content = b"serial,school\nSN1,SCH00012\nSN2,SCH00345\n"
        result = parser.parse_assignments(content)
        assert [(r.serial_number, r.school_code) for r in result.rows] == [
            ("SN1", "SCH00012"),
            ("SN2", "SCH00345"),
        ]

    def test_missing_school_column(self, parser):
        content = create_excel([["Serial Number"], ["SN1"]])
        with pytest.raises(ValidationError):
            parser.parse_assignments(content)
