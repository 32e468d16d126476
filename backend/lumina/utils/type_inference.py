"""
Cell value tagging, numeric coercion and column type inference.
"""
import math
import numbers
from enum import Enum
from typing import List, Optional, Sequence, Tuple

from ..models.models import DataValue, Record


class ValueKind(str, Enum):
    NUMBER = "number"
    TEXT = "text"
    BOOLEAN = "boolean"
    NULL = "null"


def kind_of(value: DataValue) -> ValueKind:
    """Tag a cell value. bool is checked before numbers since it subclasses int."""
    if value is None:
        return ValueKind.NULL
    if isinstance(value, bool):
        return ValueKind.BOOLEAN
    if isinstance(value, numbers.Real):
        return ValueKind.NUMBER
    if isinstance(value, str):
        return ValueKind.TEXT
    return ValueKind.NULL


def to_number(value: DataValue) -> Optional[float]:
    """
    Coerce a cell value to a finite float.

    Returns None when the value is missing or not well-formed: null, blank or
    unparseable text, and NaN/infinite numbers. Booleans count as 1.0/0.0.
    """
    kind = kind_of(value)
    if kind is ValueKind.NULL:
        return None
    if kind is ValueKind.BOOLEAN:
        return 1.0 if value else 0.0
    if kind is ValueKind.NUMBER:
        number = float(value)
    else:
        text = value.strip()
        # float() accepts digit separators, decimal literals do not
        if not text or "_" in text:
            return None
        try:
            number = float(text)
        except ValueError:
            return None
    if not math.isfinite(number):
        return None
    return number


def infer_column_types(header: Sequence[str], rows: List[Record]) -> Tuple[List[str], List[str]]:
    """
    Classify columns as numeric or categorical from the first row only.

    A column whose first value is a number is numeric, text is categorical,
    anything else (null, missing, boolean) is left out of both lists.

    Returns:
        Tuple of (numeric_columns, categorical_columns) in header order
    """
    numeric_columns: List[str] = []
    categorical_columns: List[str] = []
    if not rows:
        return numeric_columns, categorical_columns

    first = rows[0]
    for column in header:
        kind = kind_of(first.get(column))
        if kind is ValueKind.NUMBER:
            numeric_columns.append(column)
        elif kind is ValueKind.TEXT:
            categorical_columns.append(column)

    return numeric_columns, categorical_columns
