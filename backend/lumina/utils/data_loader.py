import io
import os
import logging
from datetime import datetime
from typing import Any, Dict, List, Sequence, Tuple

import numpy as np
import pandas as pd

from ..models.models import Dataset, DataValue, Record
from .type_inference import infer_column_types

logger = logging.getLogger(__name__)


def dataset_name_from_filename(filename: str) -> str:
    """Display name for an uploaded file: the filename without its extension."""
    name = os.path.splitext(os.path.basename(filename or ""))[0]
    return name or "dataset"


def _to_native(value: Any) -> DataValue:
    """Convert pandas/numpy cell values to plain Python values, blanks to None."""
    if value is None:
        return None
    if isinstance(value, np.generic):
        value = value.item()
    if isinstance(value, float) and np.isnan(value):
        return None
    if isinstance(value, (bool, int, float, str)):
        return value
    if value is pd.NaT:
        return None
    return str(value)


def load_grid_from_csv(content: bytes) -> Tuple[List[str], List[Record]]:
    """
    Parse uploaded CSV bytes into a header list and row mappings.

    pandas owns the CSV syntax and the number/boolean typing of cells;
    empty cells come back as None.

    Args:
        content: Raw file content

    Returns:
        Tuple of (header, rows)
    """
    try:
        df = pd.read_csv(io.BytesIO(content), skip_blank_lines=True)
    except pd.errors.EmptyDataError:
        logger.warning("Uploaded CSV has no content")
        return [], []

    header = [str(col) for col in df.columns]
    df.columns = header
    rows: List[Record] = []
    for raw in df.astype(object).to_dict(orient="records"):
        rows.append({col: _to_native(val) for col, val in raw.items()})

    logger.info(f"Parsed CSV with {len(header)} columns and {len(rows)} rows")
    return header, rows


def build_dataset(name: str, header: Sequence[str], rows: Sequence[Dict[str, Any]]) -> Dataset:
    """
    Create a Dataset from a parsed grid.

    Column types are inferred once here and never recomputed. Record keys
    that are not in the header are dropped.

    Args:
        name: Display name
        header: Ordered column names; duplicates keep their first position
        rows: Ordered row mappings

    Returns:
        New Dataset with a fresh id
    """
    columns: List[str] = []
    for column in header:
        if column not in columns:
            columns.append(column)
    known = set(columns)

    records: List[Record] = []
    dropped = set()
    for row in rows:
        record = {}
        for key, value in row.items():
            if key in known:
                record[key] = _to_native(value)
            else:
                dropped.add(key)
        records.append(record)

    if dropped:
        logger.warning(f"Dropped values for columns not in header: {sorted(dropped)}")

    numeric_columns, categorical_columns = infer_column_types(columns, records)

    dataset = Dataset(
        name=name,
        columns=tuple(columns),
        numeric_columns=tuple(numeric_columns),
        categorical_columns=tuple(categorical_columns),
        rows=records,
        created_at=datetime.now(),
    )
    logger.info(
        f"Built dataset '{name}' ({dataset.id}): {len(records)} rows, "
        f"{len(numeric_columns)} numeric, {len(categorical_columns)} categorical columns"
    )
    return dataset
