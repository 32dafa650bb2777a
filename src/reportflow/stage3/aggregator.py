"""
Aggregator - Stage 3

Grouped count / sum / mean over a Table.

Missing values in the value column never contribute, except to a count
that explicitly asks for them. A group left with no contributing rows is
omitted from the result rather than reported as 0 or NaN, so a plot of the
result has gaps instead of a dense grid.
"""

from typing import Any, Dict, List, Tuple

import pandas as pd

from ..exceptions import ValidationError
from ..schema import AggregationResult, Table
from ..utils.logging_utils import get_logger

logger = get_logger(__name__)

STAGE = 'aggregator'

FUNCTIONS = ('count', 'sum', 'mean')


def _scalar(value: Any) -> Any:
    return value.item() if hasattr(value, 'item') else value


class Aggregator:
    """
    Stage 3: Aggregator

    Example:
        >>> daily = Aggregator(group_by=['Date'], function='sum', column='Value').aggregate(long_table)
        >>> daily[pd.Timestamp('2020-01-01')]
        12
    """

    def __init__(
        self,
        group_by: List[str],
        function: str = 'sum',
        column: str = 'Value',
        count_missing: bool = False
    ):
        """
        Initialize the Aggregator.

        Args:
            group_by: Grouping columns (at least one)
            function: 'count', 'sum' or 'mean'
            column: Value column the function applies to
            count_missing: With 'count', also count rows whose value is missing
        """
        if not group_by:
            raise ValidationError("At least one grouping column is required", stage=STAGE)
        if function not in FUNCTIONS:
            raise ValidationError(
                f"Unknown aggregation '{function}'; expected one of {FUNCTIONS}", stage=STAGE
            )
        if count_missing and function != 'count':
            raise ValidationError("count_missing only applies to 'count'", stage=STAGE)

        self.group_by = list(group_by)
        self.function = function
        self.column = column
        self.count_missing = count_missing

    def aggregate(self, table: Table) -> AggregationResult:
        table.require(self.group_by + [self.column], stage=STAGE)

        kind = table.schema[self.column].kind
        if self.function in ('sum', 'mean') and kind not in ('integer', 'real', 'boolean'):
            raise ValidationError(
                f"Cannot {self.function} a {kind} column", stage=STAGE, column=self.column
            )

        frame = table.frame
        if not self.count_missing:
            present = frame[self.column].notna()
            excluded = int((~present).sum())
            if excluded:
                logger.info(f"Excluding {excluded} rows with missing '{self.column}'")
            frame = frame.loc[present]

        # dropna=False: rows with a missing key form their own group so totals are conserved
        grouped = frame.groupby(self.group_by, sort=False, observed=True, dropna=False)[self.column]

        if self.function == 'count':
            series = grouped.size()
        elif self.function == 'sum':
            series = grouped.sum()
        else:
            series = grouped.mean()

        values: Dict[Tuple[Any, ...], Any] = {}
        for key, value in series.items():
            key = key if isinstance(key, tuple) else (key,)
            values[key] = _scalar(value)

        logger.info(
            f"Aggregated {len(frame)} rows into {len(values)} groups "
            f"({self.function} of '{self.column}' by {self.group_by})"
        )

        return AggregationResult(
            group_by=tuple(self.group_by),
            function=self.function,
            column=self.column,
            values=values,
        )

    @staticmethod
    def increments(result: AggregationResult) -> AggregationResult:
        """
        Convert a cumulative series into per-period increments.

        Keys are ordered ascending; each value becomes the difference from
        the previous key. The first key has no predecessor and is omitted.

        Raises:
            ValidationError: If the result has more than one grouping column
                or a missing key
        """
        if len(result.group_by) != 1:
            raise ValidationError(
                "Increments need exactly one grouping column", stage=STAGE
            )
        if any(pd.isna(key[0]) for key in result.values):
            raise ValidationError(
                "Increments need non-missing keys", stage=STAGE, column=result.group_by[0]
            )

        ordered = sorted(result.values.items(), key=lambda item: item[0][0])
        values = {
            key: value - previous
            for (_, previous), (key, value) in zip(ordered, ordered[1:])
        }

        return AggregationResult(
            group_by=result.group_by,
            function=f"{result.function}_increment",
            column=result.column,
            values=values,
        )
