"""
Reshaper - Stage 3

Converts wide time-series tables (one column per date) into long tables
(one row per entity and date), and back.

Example:
    Region  1/1/20  1/2/20         Region  Date        Value
    A       5       6        ->    A       2020-01-01  5
                                   A       2020-01-02  6
"""

from datetime import datetime
from typing import Any, Callable, Dict, List, Optional

import numpy as np
import pandas as pd

from ..exceptions import FormatError, ValidationError
from ..schema import ColumnDescriptor, Table
from ..utils.logging_utils import get_logger

logger = get_logger(__name__)

STAGE = 'reshaper'

NUMERIC_KINDS = ('integer', 'real', 'boolean')


class Reshaper:
    """
    Stage 3: Reshaper

    Every column that is not an identifier column is a value column whose
    name encodes a date.

    Example:
        >>> reshaper = Reshaper(id_columns=['Province_State', 'Admin2'])
        >>> long_table = reshaper.to_long(wide_table)
        >>> long_table.columns
        ['Province_State', 'Admin2', 'Date', 'Value']
    """

    def __init__(
        self,
        id_columns: List[str],
        date_format: str = '%m/%d/%y',
        parser: Optional[Callable[[str], Any]] = None,
        date_column: str = 'Date',
        value_column: str = 'Value'
    ):
        """
        Initialize the Reshaper.

        Args:
            id_columns: Identifier columns carried through unchanged
            date_format: strptime format of the value-column names (M/D/YY by default)
            parser: Optional callable name -> date, used instead of date_format
            date_column: Name of the output date column
            value_column: Name of the output value column
        """
        if date_column == value_column or date_column in id_columns or value_column in id_columns:
            raise ValidationError(
                "Output column names must differ from each other and from the id columns",
                stage=STAGE
            )

        self.id_columns = list(id_columns)
        self.date_format = date_format
        self.parser = parser
        self.date_column = date_column
        self.value_column = value_column

    def parse_label(self, label: Any) -> pd.Timestamp:
        """Parse one value-column name into a date, or raise FormatError."""
        try:
            if self.parser is not None:
                parsed = self.parser(label)
            else:
                parsed = datetime.strptime(str(label).strip(), self.date_format)
            return pd.Timestamp(parsed)
        except (TypeError, ValueError) as e:
            raise FormatError(
                f"Column name is not a date ({self.date_format}): {e}",
                stage=STAGE, column=str(label)
            ) from e

    def to_long(self, table: Table) -> Table:
        """
        Reshape a wide Table to long format.

        Output rows follow the original row order, then the value-column
        order within each row.
        """
        table.require(self.id_columns, stage=STAGE)

        value_columns = [c for c in table.columns if c not in self.id_columns]
        if not value_columns:
            raise FormatError("Wide table has no value columns", stage=STAGE)

        dates = [self.parse_label(col) for col in value_columns]
        date_labels = dict(zip(dates, value_columns))
        if len(date_labels) != len(value_columns):
            raise FormatError("Two value columns name the same date", stage=STAGE)

        kinds = {table.schema[col].kind for col in value_columns}
        if not kinds <= set(NUMERIC_KINDS):
            bad = next(c for c in value_columns if table.schema[c].kind not in NUMERIC_KINDS)
            raise FormatError(
                f"Value columns must be numeric, found {table.schema[bad].kind}",
                stage=STAGE, column=bad
            )

        logger.info(
            f"Reshaping {table.n_rows} rows x {len(value_columns)} date columns to long format"
        )

        wide = table.frame.reset_index(drop=True)
        long = wide.melt(
            id_vars=self.id_columns,
            value_vars=value_columns,
            var_name=self.date_column,
            value_name=self.value_column,
            ignore_index=False,
        )
        # melt is column-major; a stable sort on the source row restores row-major order
        long = long.sort_index(kind='stable').reset_index(drop=True)

        label_to_date = dict(zip(value_columns, dates))
        long[self.date_column] = pd.to_datetime(long[self.date_column].map(label_to_date))

        value_kind = 'integer' if kinds <= {'integer', 'boolean'} else 'real'
        raw = long[self.value_column].astype(object)
        values = pd.to_numeric(raw.where(raw.notna(), np.nan))
        if value_kind == 'integer':
            values = values.astype('Int64') if values.isna().any() else values.astype('int64')
        else:
            values = values.astype(float)
        long[self.value_column] = values

        schema = {col: table.schema[col] for col in self.id_columns}
        schema[self.date_column] = ColumnDescriptor(self.date_column, 'date')
        schema[self.value_column] = ColumnDescriptor(self.value_column, value_kind)

        attrs = dict(table.attrs)
        attrs.update({
            'id_columns': list(self.id_columns),
            'date_labels': date_labels,
        })

        logger.info(f"Long table: {len(long)} rows")

        return Table(frame=long[list(schema)], schema=schema, attrs=attrs)

    def to_wide(self, table: Table) -> Table:
        """
        Pivot a long Table back to one column per date.

        Original column labels are restored from the long table's
        `date_labels`; entity and date order follow first appearance.

        Raises:
            FormatError: If an (entity, date) pair occurs more than once
        """
        if not self.id_columns:
            raise ValidationError("Widening needs at least one id column", stage=STAGE)

        table.require(self.id_columns + [self.date_column, self.value_column], stage=STAGE)
        frame = table.frame.reset_index(drop=True)

        if frame.duplicated(subset=self.id_columns + [self.date_column]).any():
            raise FormatError("Duplicate (entity, date) pairs; cannot widen", stage=STAGE)

        entity = frame.groupby(self.id_columns, sort=False, observed=True, dropna=False).ngroup()
        frame = frame.assign(_entity=entity.values)

        date_order = list(pd.unique(frame[self.date_column]))
        values = frame.pivot(index='_entity', columns=self.date_column, values=self.value_column)
        values = values.reindex(columns=date_order).sort_index()

        labels: Dict[Any, str] = table.attrs.get('date_labels', {})
        names = [
            labels.get(pd.Timestamp(d), pd.Timestamp(d).strftime(self.date_format))
            for d in date_order
        ]

        entities = frame.drop_duplicates('_entity').sort_values('_entity')[self.id_columns]
        wide = pd.concat(
            [entities.reset_index(drop=True), values.reset_index(drop=True)],
            axis=1
        )
        wide.columns = self.id_columns + names

        schema = {col: table.schema[col] for col in self.id_columns}
        value_kind = table.schema[self.value_column].kind
        for name in names:
            if value_kind == 'integer' and wide[name].isna().any():
                wide[name] = wide[name].astype('Int64')
            schema[name] = ColumnDescriptor(name, value_kind)

        attrs = {k: v for k, v in table.attrs.items() if k not in ('id_columns', 'date_labels')}

        return Table(frame=wide, schema=schema, attrs=attrs)
