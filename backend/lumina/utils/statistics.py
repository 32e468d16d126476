"""
Descriptive statistics, pairwise correlation and histogram binning over a Dataset.

All functions are pure: they read the rows they are given and never modify them.
"""
import math
import logging
from typing import Dict, List, Optional, Sequence

import numpy as np
import pandas as pd

from ..models.models import CorrelationResult, Dataset, HistogramBucket, NumericSummary, Record
from .type_inference import to_number

logger = logging.getLogger(__name__)

# Pairs need strictly more overlapping values than this to be reported
MIN_CORRELATION_PAIRS = 5


def _finite_or_zero(value: float) -> float:
    value = float(value)
    return value if math.isfinite(value) else 0.0


def numeric_values(rows: Sequence[Record], column: str) -> pd.Series:
    """Well-formed numeric values of a column, in row order."""
    values = [to_number(row.get(column)) for row in rows]
    return pd.Series([v for v in values if v is not None], dtype="float64")


def calculate_numeric_summary(dataset: Dataset, rows: Optional[Sequence[Record]] = None) -> List[NumericSummary]:
    """
    Summarise every numeric column of the dataset, in column order.

    Args:
        dataset: Dataset whose numeric columns are summarised
        rows: Optional row view (e.g. a filtered one); defaults to dataset.rows

    Returns:
        One NumericSummary per numeric column
    """
    rows = dataset.rows if rows is None else rows
    total = len(rows)
    summaries: List[NumericSummary] = []

    for col in dataset.numeric_columns:
        values = numeric_values(rows, col)

        if values.empty:
            summaries.append(NumericSummary(
                column=col,
                min=0, max=0, mean=0, median=0, std_dev=0, q1=0, q3=0,
                null_count=total
            ))
            continue

        summaries.append(NumericSummary(
            column=col,
            min=float(values.min()),
            max=float(values.max()),
            mean=float(values.mean()),
            median=float(values.median()),
            # sample standard deviation; undefined for a single value
            std_dev=_finite_or_zero(values.std(ddof=1)),
            q1=float(values.quantile(0.25, interpolation="linear")),
            q3=float(values.quantile(0.75, interpolation="linear")),
            null_count=total - len(values)
        ))

    return summaries


def calculate_correlations(dataset: Dataset, rows: Optional[Sequence[Record]] = None) -> List[CorrelationResult]:
    """
    Pearson correlation for every unordered pair of numeric columns.

    Each pair uses only the rows where both columns hold well-formed numbers.
    Pairs with MIN_CORRELATION_PAIRS or fewer such rows are left out.
    Zero-variance pairs report 0.

    Args:
        dataset: Dataset whose numeric columns are paired
        rows: Optional row view; defaults to dataset.rows

    Returns:
        List of CorrelationResult with col1 before col2 in column order
    """
    rows = dataset.rows if rows is None else rows
    cols = list(dataset.numeric_columns)
    results: List[CorrelationResult] = []

    coerced = {col: [to_number(row.get(col)) for row in rows] for col in cols}

    for i, col1 in enumerate(cols):
        for col2 in cols[i + 1:]:
            pairs = [
                (a, b) for a, b in zip(coerced[col1], coerced[col2])
                if a is not None and b is not None
            ]
            if len(pairs) <= MIN_CORRELATION_PAIRS:
                logger.debug(f"Skipping correlation {col1}/{col2}: only {len(pairs)} paired values")
                continue

            paired = pd.DataFrame(pairs, columns=["x", "y"], dtype="float64")
            with np.errstate(divide="ignore", invalid="ignore"):
                correlation = paired["x"].corr(paired["y"], method="pearson")

            results.append(CorrelationResult(
                col1=col1,
                col2=col2,
                correlation=_finite_or_zero(correlation)
            ))

    return results


def correlation_lookup(results: Sequence[CorrelationResult], col_a: str, col_b: str) -> Optional[float]:
    """Correlation between two columns regardless of argument order; None if not reported."""
    for result in results:
        if {result.col1, result.col2} == {col_a, col_b} and col_a != col_b:
            return result.correlation
    return None


def correlation_matrix(results: Sequence[CorrelationResult], columns: Sequence[str]) -> Dict[str, Dict[str, Optional[float]]]:
    """
    Symmetric nested mapping of correlations for heatmap display.

    The diagonal is 1.0 and pairs that were not reported are None.
    """
    matrix: Dict[str, Dict[str, Optional[float]]] = {
        col1: {col2: (1.0 if col1 == col2 else None) for col2 in columns}
        for col1 in columns
    }
    for result in results:
        if result.col1 in matrix and result.col2 in matrix:
            matrix[result.col1][result.col2] = result.correlation
            matrix[result.col2][result.col1] = result.correlation
    return matrix


def get_histogram_data(
    dataset: Dataset,
    column: str,
    bins: int = 10,
    rows: Optional[Sequence[Record]] = None
) -> List[HistogramBucket]:
    """
    Equal-width histogram of a column's well-formed numeric values.

    Buckets are closed-open except the last, which also takes the maximum.
    When every value is the same they all land in the first bucket.

    Args:
        dataset: Source dataset
        column: Column to bin
        bins: Number of buckets, at least 1
        rows: Optional row view; defaults to dataset.rows

    Returns:
        ``bins`` buckets, or an empty list when the column has no numeric values
    """
    if bins < 1:
        raise ValueError(f"bins must be at least 1, got {bins}")

    rows = dataset.rows if rows is None else rows
    values = numeric_values(rows, column).to_numpy()
    if values.size == 0:
        return []

    lo = float(values.min())
    hi = float(values.max())
    step = (hi - lo) / bins

    if step > 0:
        indexes = np.floor((values - lo) / step).astype(int)
        indexes = np.clip(indexes, 0, bins - 1)
    else:
        indexes = np.zeros(values.size, dtype=int)
    counts = np.bincount(indexes, minlength=bins)

    buckets: List[HistogramBucket] = []
    for i in range(bins):
        bucket_min = lo + i * step
        bucket_max = lo + (i + 1) * step
        buckets.append(HistogramBucket(
            range_label=f"{bucket_min:.1f} - {bucket_max:.1f}",
            count=int(counts[i]),
            range_min=bucket_min,
            range_max=bucket_max
        ))

    return buckets
