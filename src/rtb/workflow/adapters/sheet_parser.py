"""Excel and CSV parser adapter.

This adapter implements ISheetParser to read bulk intake and bulk
assignment spreadsheets.
"""

import csv
import io
import logging
from typing import Any, Optional

from openpyxl import load_workbook

from ...core.exceptions import ValidationError
from ..domain.entities import (
    AssignmentRow,
    DeviceCategory,
    DeviceCondition,
    DeviceRow,
    RowError,
    SheetParseResult,
    normalize_serial,
    parse_enum,
)
from ..domain.ports import ISheetParser

logger = logging.getLogger(__name__)


class OpenpyxlSheetParser(ISheetParser):
    """Spreadsheet parser implementation using openpyxl (and csv for CSV).

    Expected intake format:
    | Serial Number | Category | Brand | Model    | Condition | Specifications |
    |---------------|----------|-------|----------|-----------|----------------|
    | SN12345       | Laptop   | Dell  | Latitude | New       | 8GB RAM        |

    Expected assignment format:
    | Serial Number | School Code |
    |---------------|-------------|
    | SN12345       | SCH00012    |

    - First row is treated as header; header names are case-insensitive
    - Blank rows are skipped
    - Rows with missing or invalid values are reported as RowError
    """

    # Column name variations we accept
    COLUMNS = {
        "serial_number": ["serial number", "serial", "serialnumber", "serial_number", "sn"],
        "category": ["category", "device category", "type"],
        "brand": ["brand", "make", "manufacturer"],
        "model": ["model"],
        "condition": ["condition"],
        "specifications": ["specifications", "specs", "specification"],
        "school_code": ["school code", "schoolcode", "school_code", "school"],
    }

    DEVICE_REQUIRED = ("serial_number", "category", "brand", "model")
    ASSIGNMENT_REQUIRED = ("serial_number", "school_code")

    def parse_devices(self, file_content: bytes) -> SheetParseResult:
        """Parse an intake sheet.

        Raises:
            ValidationError: If the file is unreadable or a required column is missing
        """
        result = SheetParseResult()
        for row_num, values in self._records(file_content, self.DEVICE_REQUIRED):
            missing = [name for name in self.DEVICE_REQUIRED if not values.get(name)]
            if missing:
                result.errors.extend(
                    RowError(row_num, name, "Value is required") for name in missing
                )
                continue

            row_errors = []
            for name, enum_cls in (("category", DeviceCategory), ("condition", DeviceCondition)):
                if name == "condition" and not values.get(name):
                    continue
                try:
                    parse_enum(enum_cls, values[name], name)
                except ValidationError as e:
                    row_errors.append(RowError(row_num, name, e.message))
            if row_errors:
                result.errors.extend(row_errors)
                continue

            result.rows.append(
                DeviceRow(
                    row_number=row_num,
                    serial_number=values["serial_number"],
                    category=values["category"],
                    brand=values["brand"],
                    model=values["model"],
                    condition=values.get("condition") or DeviceCondition.NEW.value,
                    specifications=values.get("specifications") or None,
                )
            )

        logger.info(
            f"Parsed intake sheet: {len(result.rows)} rows, {len(result.errors)} errors"
        )
        return result

    def parse_assignments(self, file_content: bytes) -> SheetParseResult:
        """Parse a bulk assignment sheet.

        Raises:
            ValidationError: If the file is unreadable or a required column is missing
        """
        result = SheetParseResult()
        for row_num, values in self._records(file_content, self.ASSIGNMENT_REQUIRED):
            missing = [name for name in self.ASSIGNMENT_REQUIRED if not values.get(name)]
            if missing:
                result.errors.extend(
                    RowError(row_num, name, "Value is required") for name in missing
                )
                continue
            result.rows.append(
                AssignmentRow(
                    row_number=row_num,
                    serial_number=values["serial_number"],
                    school_code=values["school_code"],
                )
            )

        logger.info(
            f"Parsed assignment sheet: {len(result.rows)} rows, {len(result.errors)} errors"
        )
        return result

    def _records(
        self, file_content: bytes, required: tuple[str, ...]
    ) -> list[tuple[int, dict[str, str]]]:
        """Read the sheet into (row number, {field: value}) pairs."""
        if not file_content:
            raise ValidationError("Uploaded file is empty", field="file")

        if self._is_csv(file_content):
            table = self._read_csv(file_content)
        else:
            table = self._read_excel(file_content)

        if not table:
            raise ValidationError("Spreadsheet is empty", field="file")

        columns = self._find_columns(table[0])
        missing = [name for name in required if name not in columns]
        if missing:
            expected = "; ".join(
                f"{name}: {', '.join(self.COLUMNS[name])}" for name in missing
            )
            raise ValidationError(
                f"Could not find required column(s). Expected one of - {expected}",
                field="file",
            )

        records = []
        for row_num, row in enumerate(table[1:], start=2):
            values = {
                name: self._cell(row, idx)
                for name, idx in columns.items()
            }
            # Skip empty rows
            if not any(values.values()):
                continue
            if "serial_number" in values:
                values["serial_number"] = normalize_serial(values["serial_number"])
            records.append((row_num, values))
        return records

    def _is_csv(self, file_content: bytes) -> bool:
        """Detect if file content is CSV format."""
        try:
            # Try to decode as text - CSV files are text-based
            text = file_content.decode("utf-8-sig")  # Handle BOM
            # Check if it looks like CSV (has commas/semicolons and newlines)
            first_line = text.split("\n")[0].split("\r")[0]
            if "," in first_line or ";" in first_line or "\t" in first_line:
                return True
        except UnicodeDecodeError:
            # Not a text file, likely Excel
            pass
        return False

    def _read_csv(self, file_content: bytes) -> list[list[Any]]:
        text = file_content.decode("utf-8-sig")

        # Detect delimiter
        try:
            dialect = csv.Sniffer().sniff(text[:1024], delimiters=",;\t")
        except csv.Error:
            # Default to comma if detection fails
            dialect = csv.excel

        try:
            return [row for row in csv.reader(io.StringIO(text), dialect)]
        except csv.Error as e:
            logger.error(f"Failed to parse CSV file: {e}")
            raise ValidationError(f"Failed to parse CSV file: {e}", field="file")

    def _read_excel(self, file_content: bytes) -> list[list[Any]]:
        try:
            wb = load_workbook(filename=io.BytesIO(file_content), read_only=True)
        except Exception as e:
            logger.error(f"Failed to parse Excel file: {e}")
            raise ValidationError(
                f"Failed to parse Excel file: {e}", field="file"
            )

        try:
            ws = wb.active
            if ws is None:
                raise ValidationError("Excel file has no active worksheet", field="file")
            return [list(row) for row in ws.iter_rows(values_only=True)]
        finally:
            wb.close()

    def _find_columns(self, header_row: list[Any]) -> dict[str, int]:
        """Map field names to column indices using the accepted header variations."""
        columns: dict[str, int] = {}
        for idx, cell in enumerate(header_row):
            if cell is None:
                continue
            header = str(cell).strip().lower()
            for name, aliases in self.COLUMNS.items():
                if header in aliases and name not in columns:
                    columns[name] = idx
                    break
        return columns

    @staticmethod
    def _cell(row: list[Any], idx: int) -> str:
        value: Optional[Any] = row[idx] if idx < len(row) else None
        if value is None:
            return ""
        return str(value).strip()
