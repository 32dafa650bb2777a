"""
In-memory data model shared by all pipeline stages.

- ColumnDescriptor: declared type of a single column
- Table: immutable DataFrame + schema pair handed from stage to stage
- AggregationResult: group key -> scalar summary
- ModelResult: fitted regression with coefficient table and residuals

Nothing here persists across runs.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any, Dict, Iterator, List, Mapping, Optional, Tuple

import numpy as np
import pandas as pd

from .exceptions import FormatError


COLUMN_KINDS = ('integer', 'real', 'date', 'string', 'categorical', 'boolean')

# Table.attrs key: {column: raw CSV text} for columns the Loader typed as dates
RAW_DATES_ATTR = 'raw_dates'

_SEMANTIC_TYPES = {
    'integer': 'numeric',
    'real': 'numeric',
    'date': 'date',
    'string': 'free-text',
    'categorical': 'categorical',
    'boolean': 'boolean',
}


@dataclass(frozen=True)
class ColumnDescriptor:
    """
    Declared type of one column.

    For categorical columns, `labels` is the label set in reference order:
    the first label is the reference level used by the Modeler.
    """
    name: str
    kind: str
    labels: Tuple[Any, ...] = ()
    ordered: bool = False

    def __post_init__(self) -> None:
        if self.kind not in COLUMN_KINDS:
            raise FormatError(f"Unknown column kind '{self.kind}'", column=self.name)
        object.__setattr__(self, 'labels', tuple(self.labels))

    @property
    def semantic_type(self) -> str:
        return _SEMANTIC_TYPES[self.kind]

    @classmethod
    def from_series(cls, name: str, series: pd.Series) -> 'ColumnDescriptor':
        """Describe a column from its pandas dtype (no value inspection)."""
        dtype = series.dtype
        if isinstance(dtype, pd.CategoricalDtype):
            return cls(name, 'categorical', tuple(dtype.categories), bool(dtype.ordered))
        if pd.api.types.is_bool_dtype(dtype):
            return cls(name, 'boolean')
        if pd.api.types.is_integer_dtype(dtype):
            return cls(name, 'integer')
        if pd.api.types.is_float_dtype(dtype):
            return cls(name, 'real')
        if pd.api.types.is_datetime64_any_dtype(dtype):
            return cls(name, 'date')
        return cls(name, 'string')


@dataclass(frozen=True, eq=False)
class Table:
    """
    A DataFrame paired with its declared schema.

    Stages never mutate a Table; they build a new one with `replace`.
    `parse_errors` maps a column name to the row labels whose values could
    not be parsed as dates.
    """
    frame: pd.DataFrame = field(repr=False)
    schema: Dict[str, ColumnDescriptor] = field(repr=False)
    attrs: Dict[str, Any] = field(default_factory=dict, repr=False)
    parse_errors: Dict[str, Tuple[Any, ...]] = field(default_factory=dict, repr=False)

    def __post_init__(self) -> None:
        if not isinstance(self.frame, pd.DataFrame):
            raise FormatError("Table.frame must be a pandas DataFrame")

        columns = list(self.frame.columns)
        if len(set(columns)) != len(columns):
            raise FormatError(f"Duplicate column names: {columns}")
        if list(self.schema.keys()) != columns:
            raise FormatError(
                f"Schema columns {list(self.schema.keys())} do not match frame columns {columns}"
            )
        for name, descriptor in self.schema.items():
            if descriptor.name != name:
                raise FormatError(f"Descriptor name '{descriptor.name}' filed under '{name}'")

        object.__setattr__(self, 'schema', dict(self.schema))
        object.__setattr__(self, 'attrs', dict(self.attrs or {}))
        object.__setattr__(
            self, 'parse_errors',
            {col: tuple(rows) for col, rows in (self.parse_errors or {}).items() if len(rows)}
        )

    @classmethod
    def from_frame(
        cls,
        frame: pd.DataFrame,
        schema: Optional[Mapping[str, ColumnDescriptor]] = None,
        attrs: Optional[Dict[str, Any]] = None
    ) -> 'Table':
        """
        Wrap a DataFrame, describing any column missing from `schema` by its dtype.
        """
        schema = schema or {}
        full = {
            col: schema[col] if col in schema else ColumnDescriptor.from_series(col, frame[col])
            for col in frame.columns
        }
        return cls(frame=frame.copy(), schema=full, attrs=dict(attrs or {}))

    @property
    def columns(self) -> List[str]:
        return list(self.frame.columns)

    @property
    def n_rows(self) -> int:
        return int(len(self.frame))

    def __len__(self) -> int:
        return self.n_rows

    def __contains__(self, column: object) -> bool:
        return column in self.schema

    def descriptor(self, column: str, stage: Optional[str] = None) -> ColumnDescriptor:
        if column not in self.schema:
            raise FormatError(f"Column not found; available: {self.columns}", stage=stage, column=column)
        return self.schema[column]

    def require(self, columns: List[str], stage: Optional[str] = None) -> None:
        """Raise FormatError for the first name in `columns` that is not a column."""
        for col in columns:
            self.descriptor(col, stage=stage)

    def replace(self, **changes: Any) -> 'Table':
        """Return a new Table with the given fields replaced; the frame is always copied."""
        frame = changes.pop('frame', self.frame)
        return Table(
            frame=frame.copy(),
            schema=changes.pop('schema', self.schema),
            attrs=changes.pop('attrs', self.attrs),
            parse_errors=changes.pop('parse_errors', self.parse_errors),
        )


@dataclass(frozen=True)
class AggregationResult(Mapping):
    """
    Group key tuple -> summary scalar, one entry per group that had at least
    one contributing row. Keys are tuples even for a single grouping column.
    """
    group_by: Tuple[str, ...]
    function: str
    column: str
    values: Dict[Tuple[Any, ...], float] = field(default_factory=dict)

    def __getitem__(self, key: Any) -> float:
        if not isinstance(key, tuple):
            key = (key,)
        return self.values[key]

    def __iter__(self) -> Iterator[Tuple[Any, ...]]:
        return iter(self.values)

    def __len__(self) -> int:
        return len(self.values)

    def total(self) -> float:
        return float(sum(self.values.values()))

    def to_frame(self, name: Optional[str] = None) -> pd.DataFrame:
        """One row per group: the grouping columns followed by the summary column."""
        name = name or f"{self.column}_{self.function}"
        rows = [list(key) + [value] for key, value in self.values.items()]
        return pd.DataFrame(rows, columns=list(self.group_by) + [name])


@dataclass(frozen=True, eq=False)
class ModelResult:
    """
    Fitted regression.

    coefficients: DataFrame indexed by term with columns
        estimate, std_error, statistic, p_value
    residuals: one value per training row, in input row order
    summary: family-specific scalars (r_squared, deviance, log_likelihood, ...)
    """
    family: str
    outcome: str
    predictors: Tuple[str, ...]
    coefficients: pd.DataFrame = field(repr=False)
    residuals: np.ndarray = field(repr=False)
    fitted: np.ndarray = field(repr=False)
    summary: Dict[str, float] = field(default_factory=dict)
    metrics: Dict[str, float] = field(default_factory=dict)
    n_obs: int = 0
    converged: bool = True
    warnings: Tuple[str, ...] = ()
    outcome_levels: Tuple[Any, ...] = ()

    @property
    def terms(self) -> List[str]:
        return list(self.coefficients.index)

    def to_dict(self) -> Dict[str, Any]:
        return {
            'family': self.family,
            'outcome': self.outcome,
            'predictors': list(self.predictors),
            'n_obs': self.n_obs,
            'converged': self.converged,
            'outcome_levels': [str(level) for level in self.outcome_levels],
            'coefficients': self.coefficients.reset_index().rename(
                columns={'index': 'term'}
            ).to_dict('records'),
            'summary': self.summary,
            'metrics': self.metrics,
            'warnings': list(self.warnings),
        }
