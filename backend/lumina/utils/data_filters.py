import math
from typing import List, Optional, Sequence

from ..models.models import DataValue, Record


def render_value(value: DataValue) -> str:
    """Text shown for a cell: lowercase booleans and integral floats without '.0'."""
    if isinstance(value, bool):
        return "true" if value else "false"
    if isinstance(value, float):
        if math.isnan(value):
            return "NaN"
        if math.isinf(value):
            return "Infinity" if value > 0 else "-Infinity"
        if value.is_integer():
            return str(int(value))
    return str(value)


def filter_rows(rows: Sequence[Record], column: Optional[str], needle: Optional[str]) -> List[Record]:
    """
    Rows whose rendered value in ``column`` contains ``needle``, ignoring case.

    An empty column or needle returns every row. Null and missing values never
    match. The input rows are not modified; kept rows are the same objects.
    """
    if not column or not needle:
        return list(rows)

    folded = needle.casefold()
    matched = []
    for row in rows:
        value = row.get(column)
        if value is None:
            continue
        if folded in render_value(value).casefold():
            matched.append(row)
    return matched
