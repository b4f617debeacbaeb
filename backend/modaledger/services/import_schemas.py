# Overview: Spreadsheet row parsing for catalog imports; turns raw cells into product records.

from __future__ import annotations

import csv
import io
from dataclasses import dataclass, field
from typing import Any, Iterable

from .money import parse_currency


# Fixed column positions of the store's inventory export (0-based)
COL_CATEGORY_FALLBACK = 1
COL_SKU = 2
COL_NAME = 3
COL_STATUS = 4
COL_COST = 7
COL_PRICE = 8
COL_STOCK = 10
COL_SIZE = 12
COL_COLOR = 13
COL_CATEGORY = 14

MIN_COLUMNS = 3
IN_STOCK_STATUS = "EM ESTOQUE"
DEFAULT_NAME = "Sem Nome"
DEFAULT_CATEGORY = "Geral"

RECORD_FIELDS = ("sku", "name", "category", "size", "color", "price_cents", "cost_cents", "stock")


@dataclass
class ParseResult:
    records: list[dict[str, Any]] = field(default_factory=list)
    error_rows: list[dict[str, Any]] = field(default_factory=list)

    @property
    def errors(self) -> int:
        return len(self.error_rows)


def _cell(columns: list[Any], index: int) -> str:
    if index >= len(columns):
        return ""
    value = columns[index]
    if value is None:
        return ""
    return str(value).replace('"', "").strip()


def _to_int(value: str) -> int | None:
    if not value:
        return None
    try:
        return int(float(value.replace(",", ".")))
    except ValueError:
        return None


def detect_delimiter(header_line: str) -> str:
    return ";" if header_line.count(";") > header_line.count(",") else ","


def normalize_row(columns: list[Any]) -> dict[str, Any]:
    """Map one row of cells to a product record (amounts in cents)."""
    status = _cell(columns, COL_STATUS).upper()
    stock = _to_int(_cell(columns, COL_STOCK))
    if stock is None:
        stock = 1 if status == IN_STOCK_STATUS else 0

    raw_cost = columns[COL_COST] if COL_COST < len(columns) else None
    raw_price = columns[COL_PRICE] if COL_PRICE < len(columns) else None

    return {
        "sku": _cell(columns, COL_SKU),
        "name": _cell(columns, COL_NAME) or DEFAULT_NAME,
        "category": _cell(columns, COL_CATEGORY) or _cell(columns, COL_CATEGORY_FALLBACK) or DEFAULT_CATEGORY,
        "size": _cell(columns, COL_SIZE),
        "color": _cell(columns, COL_COLOR),
        "price_cents": parse_currency(raw_price),
        "cost_cents": parse_currency(raw_cost),
        "stock": stock,
    }


def _collect(rows: Iterable[tuple[int, list[Any]]]) -> ParseResult:
    result = ParseResult()
    for row_number, columns in rows:
        if not any(_cell(columns, i) for i in range(len(columns))):
            continue
        if len(columns) < MIN_COLUMNS:
            result.error_rows.append({"row": row_number, "error": f"Row {row_number}: expected at least {MIN_COLUMNS} columns"})
            continue
        record = normalize_row(columns)
        if not record["sku"]:
            result.error_rows.append({"row": row_number, "error": f"Row {row_number}: sku is required"})
            continue
        record["row"] = row_number
        result.records.append(record)
    return result


def parse_product_rows(text: str) -> ParseResult:
    """
    Parse a delimited text export.

    The first line is a header and is skipped. The delimiter is ";" when the
    header holds more semicolons than commas, else ",". Quoted cells may
    contain the delimiter. Row numbers are 1-based file lines.
    """
    if text.startswith("\ufeff"):
        text = text[1:]
    lines = text.splitlines()
    if not lines:
        return ParseResult()

    delimiter = detect_delimiter(lines[0])
    reader = csv.reader(io.StringIO(text), delimiter=delimiter)
    next(reader, None)
    # line_num is the reader's position after the row was read
    return _collect((reader.line_num, row) for row in reader)


def parse_product_workbook(stream) -> ParseResult:
    """Parse the active sheet of an .xlsx workbook with the same column layout."""
    from openpyxl import load_workbook

    wb = load_workbook(stream, read_only=True, data_only=True)
    try:
        sheet = wb.active
        rows = sheet.iter_rows(min_row=2, values_only=True)
        return _collect((idx, list(row)) for idx, row in enumerate(rows, start=2))
    finally:
        wb.close()
