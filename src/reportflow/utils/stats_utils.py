"""
Statistical utilities for the reporting pipeline.
Provides column type inference, typed conversion of raw CSV cells, and
per-column profiling.
"""

import pandas as pd
from typing import Dict, Any, Optional

from .logging_utils import get_logger

logger = get_logger(__name__)

# Recognized cell-level date patterns, tried in order
DATE_PATTERNS = ('%m/%d/%Y', '%m/%d/%y', '%Y-%m-%d')

BOOLEAN_VALUES = {'true': True, 'false': False}

INTEGER_PATTERN = r'[+-]?\d+'


def _non_empty(series: pd.Series) -> pd.Series:
    """Drop nulls and blank strings, returning stripped string values."""
    values = series.dropna().astype(str).str.strip()
    return values[values != '']


def match_date_pattern(series: pd.Series) -> Optional[str]:
    """
    Return the first recognized date pattern that every non-empty cell matches.

    Example:
        >>> match_date_pattern(pd.Series(['01/22/2020', '12/31/2021']))
        '%m/%d/%Y'
    """
    values = _non_empty(series)
    if len(values) == 0:
        return None

    for pattern in DATE_PATTERNS:
        parsed = pd.to_datetime(values, format=pattern, errors='coerce')
        if parsed.notna().all():
            return pattern

    return None


def infer_column_type(series: pd.Series) -> str:
    """
    Infer the kind of a column of raw CSV cells.

    Empty cells are ignored. Checks run in order: boolean, integer, real,
    date, and anything else is a string. A column with no non-empty cells
    is a string.

    Args:
        series: Raw cells as read from the CSV (strings / NaN)

    Returns:
        One of: 'boolean', 'integer', 'real', 'date', 'string'

    Example:
        >>> infer_column_type(pd.Series(['2020', '2021', None]))
        'integer'
        >>> infer_column_type(pd.Series(['1.5', '2']))
        'real'
    """
    values = _non_empty(series)
    if len(values) == 0:
        return 'string'

    if values.str.lower().isin(BOOLEAN_VALUES.keys()).all():
        return 'boolean'

    if values.str.fullmatch(INTEGER_PATTERN).all():
        return 'integer'

    if pd.to_numeric(values, errors='coerce').notna().all():
        return 'real'

    if match_date_pattern(values) is not None:
        return 'date'

    return 'string'


def convert_column(series: pd.Series, kind: str) -> pd.Series:
    """
    Convert raw CSV cells to the pandas dtype for `kind`.

    Blank cells become missing. Integer columns with gaps use the nullable
    Int64 dtype, and boolean columns with gaps use the nullable boolean dtype.
    """
    blank = series.isna() | (series.astype(str).str.strip() == '')
    values = series.where(~blank).astype(object)

    if kind == 'boolean':
        mapped = values.str.strip().str.lower().map(BOOLEAN_VALUES)
        return mapped.astype('boolean') if blank.any() else mapped.astype(bool)

    if kind == 'integer':
        numeric = pd.to_numeric(values)
        return numeric.astype('Int64') if blank.any() else numeric.astype('int64')

    if kind == 'real':
        return pd.to_numeric(values).astype(float)

    if kind == 'date':
        pattern = match_date_pattern(values)
        return pd.to_datetime(values, format=pattern, errors='coerce')

    return values


def calculate_basic_stats(series: pd.Series, kind: str) -> Dict[str, Any]:
    """
    Calculate basic statistics for a typed column.

    Args:
        series: Typed column
        kind: Column kind from its ColumnDescriptor

    Returns:
        Dictionary of statistics
    """
    stats = {
        'kind': kind,
        'null_count': int(series.isna().sum()),
        'null_rate': float(series.isna().mean()) if len(series) else 0.0,
        'total_count': int(len(series))
    }

    non_null = series.dropna()

    if kind in ('integer', 'real') and len(non_null):
        stats.update({
            'mean': float(non_null.mean()),
            'std': float(non_null.std()) if len(non_null) > 1 else 0.0,
            'min': float(non_null.min()),
            'max': float(non_null.max()),
            'median': float(non_null.median())
        })

    elif kind in ('categorical', 'boolean') and len(non_null):
        value_counts = non_null.value_counts()
        stats.update({
            'cardinality': int((value_counts > 0).sum()),
            'top_values': {str(k): int(v) for k, v in value_counts.head(10).items()},
        })

    elif kind == 'date' and len(non_null):
        stats.update({
            'min_date': str(non_null.min().date()),
            'max_date': str(non_null.max().date()),
            'date_range_days': int((non_null.max() - non_null.min()).days)
        })

    elif kind == 'string':
        stats['unique_count'] = int(non_null.nunique())

    return stats
