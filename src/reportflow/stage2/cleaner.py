"""
Cleaner - Stage 2

Applies per-column cleaning operations to a Table, always in this order:
1. Parse date columns (month/day/year by default)
2. Convert columns to categorical labels
3. Missing values: drop rows or fill, chosen per column
4. Derive hour-of-day fields
5. Drop columns

Row drops run before column drops because the decision to drop a row can
depend on a column that is discarded afterwards.
"""

from dataclasses import dataclass, field
from typing import Dict, Any, List, Optional

import pandas as pd

from ..exceptions import FormatError, ValidationError
from ..schema import RAW_DATES_ATTR, ColumnDescriptor, Table
from ..utils.logging_utils import get_logger

logger = get_logger(__name__)

STAGE = 'cleaner'

DEFAULT_DATE_FORMAT = '%m/%d/%Y'
TIME_FORMAT = '%H:%M:%S'


@dataclass(frozen=True)
class CleaningSpec:
    """
    Per-column cleaning operations.

    Attributes:
        dates: {column: strptime format}; a format of None means month/day/year
        categorical: columns to convert to categorical labels
        category_order: {column: labels} explicit label order; the first label
            is the reference level (default order is sorted)
        ordered: categorical columns whose labels are ordinal
        drop_na: drop every row with a missing value in any of these columns
        fill_na: {column: value} fill missing values with value
        derive_hour: {new column: source time column} hour-of-day extraction
        drop_columns: columns removed last
    """
    dates: Dict[str, Optional[str]] = field(default_factory=dict)
    categorical: List[str] = field(default_factory=list)
    category_order: Dict[str, List[Any]] = field(default_factory=dict)
    ordered: List[str] = field(default_factory=list)
    drop_na: List[str] = field(default_factory=list)
    fill_na: Dict[str, Any] = field(default_factory=dict)
    derive_hour: Dict[str, str] = field(default_factory=dict)
    drop_columns: List[str] = field(default_factory=list)

    def __post_init__(self) -> None:
        repeated = sorted({col for col in self.drop_columns if self.drop_columns.count(col) > 1})
        if repeated:
            raise ValidationError(
                "Column listed more than once in drop_columns", stage=STAGE, column=repeated[0]
            )

        conflicts = sorted(set(self.drop_na) & set(self.fill_na))
        if conflicts:
            raise ValidationError(
                "A column cannot be both row-dropped and imputed in the same run",
                stage=STAGE, column=conflicts[0]
            )

        for col in list(self.category_order) + list(self.ordered):
            if col not in self.categorical:
                raise ValidationError(
                    "Label order given for a column that is not converted to categorical",
                    stage=STAGE, column=col
                )

    @classmethod
    def from_dict(cls, config: Optional[Dict[str, Any]]) -> 'CleaningSpec':
        """
        Build a spec from a report config block.

        Example:
            >>> CleaningSpec.from_dict({'dates': {'OCCUR_DATE': '%m/%d/%Y'}, 'drop_na': ['BORO']})
        """
        config = dict(config or {})
        unknown = set(config) - set(cls.__dataclass_fields__)
        if unknown:
            raise ValidationError(f"Unknown cleaning options: {sorted(unknown)}", stage=STAGE)

        dates = config.get('dates') or {}
        if isinstance(dates, list):
            dates = {col: None for col in dates}

        return cls(
            dates=dict(dates),
            categorical=list(config.get('categorical') or []),
            category_order=dict(config.get('category_order') or {}),
            ordered=list(config.get('ordered') or []),
            drop_na=list(config.get('drop_na') or []),
            fill_na=dict(config.get('fill_na') or {}),
            derive_hour=dict(config.get('derive_hour') or {}),
            drop_columns=list(config.get('drop_columns') or []),
        )


class Cleaner:
    """
    Stage 2: Cleaner

    Example:
        >>> spec = CleaningSpec(categorical=['BORO'], fill_na={'PERP_RACE': 'UNKNOWN'})
        >>> cleaned = Cleaner(spec).clean(table)
    """

    def __init__(self, spec: Optional[CleaningSpec] = None):
        self.spec = spec or CleaningSpec()

    def clean(self, table: Table) -> Table:
        """
        Run every configured operation and return a new Table.

        The input Table is left untouched.
        """
        spec = self.spec
        named = (
            list(spec.dates) + spec.categorical + spec.drop_na + list(spec.fill_na)
            + list(spec.derive_hour.values()) + spec.drop_columns
        )
        table.require(named, stage=STAGE)

        logger.info(f"Cleaning table: {table.n_rows} rows, {len(table.columns)} columns")

        frame = table.frame.copy()
        schema = dict(table.schema)
        parse_errors = dict(table.parse_errors)

        self._parse_dates(frame, schema, parse_errors, table.attrs.get(RAW_DATES_ATTR, {}))
        self._to_categorical(frame, schema)
        frame = self._handle_missing(frame, schema, parse_errors)
        self._derive_hours(frame, schema)
        frame = self._drop_columns(frame, schema, parse_errors)

        logger.info(f"Cleaned table: {len(frame)} rows, {len(frame.columns)} columns")

        attrs = {k: v for k, v in table.attrs.items() if k != RAW_DATES_ATTR}

        return Table(frame=frame, schema=schema, attrs=attrs, parse_errors=parse_errors)

    def _parse_dates(
        self,
        frame: pd.DataFrame,
        schema: Dict,
        parse_errors: Dict,
        raw_dates: Dict[str, pd.Series]
    ):
        """
        Parse date columns. A column the Loader already typed as a date is
        left alone unless an explicit format is given; it is then re-parsed
        from the raw CSV text with that format.
        """
        for col, fmt in self.spec.dates.items():
            source = frame[col]
            if schema[col].kind == 'date':
                if fmt is None:
                    logger.debug(f"Column '{col}' is already a date column")
                    continue
                if col not in raw_dates:
                    raise FormatError(
                        f"Column is already parsed as dates and has no raw text to re-parse with {fmt}",
                        stage=STAGE, column=col
                    )
                source = raw_dates[col].reindex(frame.index)

            fmt = fmt or DEFAULT_DATE_FORMAT
            raw = source.astype(object)
            blank = raw.isna() | (raw.astype(str).str.strip() == '')
            text = raw.where(~blank).astype(str).str.strip()

            parsed = pd.to_datetime(text.where(~blank), format=fmt, errors='coerce')
            failed = parsed.isna() & ~blank

            if failed.any():
                parse_errors[col] = tuple(frame.index[failed])
                sample = text[failed].iloc[0]
                logger.warning(
                    f"{int(failed.sum())} values in '{col}' do not match {fmt} (e.g. {sample!r})"
                )

            frame[col] = parsed
            schema[col] = ColumnDescriptor(col, 'date')
            logger.info(f"Parsed '{col}' as dates ({fmt})")

    def _to_categorical(self, frame: pd.DataFrame, schema: Dict):
        for col in self.spec.categorical:
            series = frame[col]
            observed = pd.Index(series.dropna().unique())

            if col in self.spec.category_order:
                labels = list(self.spec.category_order[col])
                unknown = [value for value in observed if value not in labels]
                if unknown:
                    raise ValidationError(
                        f"Values {unknown[:5]} are missing from the configured label order",
                        stage=STAGE, column=col
                    )
            else:
                labels = observed.sort_values().tolist()

            ordered = col in self.spec.ordered
            frame[col] = pd.Categorical(series, categories=labels, ordered=ordered)
            schema[col] = ColumnDescriptor(col, 'categorical', tuple(labels), ordered)

            logger.info(f"Converted '{col}' to categorical with {len(labels)} labels")

    def _handle_missing(self, frame: pd.DataFrame, schema: Dict, parse_errors: Dict) -> pd.DataFrame:
        if self.spec.drop_na:
            missing = frame[self.spec.drop_na].isna().any(axis=1)
            frame = frame.loc[~missing].copy()
            logger.info(
                f"Dropped {int(missing.sum())} rows with missing values in {self.spec.drop_na}"
            )

        for col, value in self.spec.fill_na.items():
            value = self._fill_value(col, value, schema[col])
            if schema[col].kind == 'categorical' and value not in frame[col].cat.categories:
                frame[col] = frame[col].cat.add_categories([value])
                descriptor = schema[col]
                schema[col] = ColumnDescriptor(
                    col, 'categorical', descriptor.labels + (value,), descriptor.ordered
                )

            count = int(frame[col].isna().sum())
            frame[col] = frame[col].fillna(value)
            logger.info(f"Filled {count} missing values in '{col}' with {value!r}")

        handled = set(self.spec.drop_na) | set(self.spec.fill_na)
        for col in list(parse_errors):
            if col in handled:
                del parse_errors[col]
            else:
                parse_errors[col] = tuple(row for row in parse_errors[col] if row in frame.index)

        return frame

    def _fill_value(self, col: str, value: Any, descriptor: ColumnDescriptor) -> Any:
        kind = descriptor.kind
        if kind == 'date':
            try:
                return pd.Timestamp(value)
            except (TypeError, ValueError):
                raise ValidationError(f"Fill value {value!r} is not a date", stage=STAGE, column=col)
        if kind in ('integer', 'real') and (
            isinstance(value, bool) or not isinstance(value, (int, float))
        ):
            raise ValidationError(f"Fill value {value!r} is not numeric", stage=STAGE, column=col)
        if kind == 'boolean' and not isinstance(value, bool):
            raise ValidationError(f"Fill value {value!r} is not a boolean", stage=STAGE, column=col)
        if kind == 'integer' and isinstance(value, float) and not value.is_integer():
            raise ValidationError(
                f"Fill value {value!r} is not an integer", stage=STAGE, column=col
            )
        return value

    def _derive_hours(self, frame: pd.DataFrame, schema: Dict):
        for target, source in self.spec.derive_hour.items():
            if target in schema and target != source:
                raise ValidationError("Derived column already exists", stage=STAGE, column=target)

            values = frame[source]
            if schema[source].kind == 'date':
                hours = values.dt.hour
            else:
                text = values.astype(object).where(values.notna())
                parsed = pd.to_datetime(text, format=TIME_FORMAT, errors='coerce')
                failed = parsed.isna() & values.notna()
                if failed.any():
                    raise FormatError(
                        f"Value {text[failed].iloc[0]!r} is not a {TIME_FORMAT} time",
                        stage=STAGE, column=source
                    )
                hours = parsed.dt.hour

            frame[target] = hours.astype('Int64')
            schema[target] = ColumnDescriptor(target, 'integer')
            logger.info(f"Derived hour-of-day '{target}' from '{source}'")

    def _drop_columns(self, frame: pd.DataFrame, schema: Dict, parse_errors: Dict) -> pd.DataFrame:
        if not self.spec.drop_columns:
            return frame

        for col in self.spec.drop_columns:
            schema.pop(col)
            parse_errors.pop(col, None)

        logger.info(f"Dropped columns: {self.spec.drop_columns}")

        return frame.drop(columns=self.spec.drop_columns)
