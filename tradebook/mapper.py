"""
Row mapping and type coercion.

Turns one decoded spreadsheet row (header text -> cell value) into a record
keyed by canonical column names, with numeric and date columns coerced.
"""

import math
import numbers
from dataclasses import dataclass, field
from datetime import date, datetime
from typing import Any, Dict, List, Mapping, Optional

import pandas as pd
from dateutil import parser as date_parser

from tradebook.columns import DATE_COLUMNS, NUMERIC_COLUMNS, is_known_column, normalize_column_name

# day 0 of the 1900 date system, shifted past the 1900 leap year bug
EXCEL_EPOCH = pd.Timestamp("1899-12-30")


@dataclass
class MappedRow:
    values: Dict[str, Any] = field(default_factory=dict)
    unknown_fields: List[str] = field(default_factory=list)

    def is_empty(self) -> bool:
        return all(value is None or value == "" for value in self.values.values())


def parse_number(value: Any) -> Optional[float]:
    """Coerce a cell to a finite float, or None when it is empty or not a number."""
    if value is None or isinstance(value, bool):
        return None
    if isinstance(value, (int, float)):
        number = float(value)
    else:
        text = str(value).strip()
        if not text:
            return None
        try:
            number = float(text)
        except ValueError:
            return None
    return number if math.isfinite(number) else None


def parse_date(value: Any) -> Any:
    """Format a cell as YYYY-MM-DD, passing unparseable values through untouched."""
    if isinstance(value, datetime):
        return value.date().isoformat()
    if isinstance(value, date):
        return value.isoformat()
    if isinstance(value, numbers.Real) and not isinstance(value, bool):
        return excel_serial_to_date(value)
    if not isinstance(value, str):
        return as_text(value)
    try:
        return date_parser.parse(value).date().isoformat()
    except (ValueError, OverflowError):
        return value


def excel_serial_to_date(serial: float) -> Any:
    """Excel day serial (xlsb has no date cells) -> YYYY-MM-DD; out of range values pass through as text."""
    if not math.isfinite(serial):
        return as_text(serial)
    try:
        return (EXCEL_EPOCH + pd.to_timedelta(float(serial), unit="D")).date().isoformat()
    except (ValueError, OverflowError):
        return as_text(serial)


def as_text(value: Any) -> str:
    """Render a non-string cell the way it reads in the sheet (123.0 -> "123")."""
    if isinstance(value, str):
        return value
    if isinstance(value, float) and value.is_integer():
        return str(int(value))
    if isinstance(value, datetime):
        return value.isoformat()
    return str(value)


def coerce_value(column: str, value: Any) -> Any:
    if value is None or value == "":
        return None
    if isinstance(value, float) and math.isnan(value):
        return None
    if column in NUMERIC_COLUMNS:
        return parse_number(value)
    if column in DATE_COLUMNS:
        return parse_date(value)
    return as_text(value)


def map_row(raw_row: Mapping[str, Any]) -> MappedRow:
    """Map a raw spreadsheet row onto the canonical transaction columns.

    Headers that do not resolve to a canonical column are reported in
    ``unknown_fields`` and their values dropped. The mapper never rejects a
    row; callers decide what to do with rows where ``is_empty()`` is true.
    """
    mapped = MappedRow()
    for header, value in raw_row.items():
        column = normalize_column_name(header)
        if column is None:
            continue
        if is_known_column(column):
            mapped.values[column] = coerce_value(column, value)
        else:
            mapped.unknown_fields.append(column)
    return mapped
