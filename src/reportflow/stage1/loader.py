"""
Loader - Stage 1

Fetches a CSV resource (HTTP(S) URL or local path) into a Table:
- Single attempt with an explicit timeout; any failure is fatal
- Raw cells read as text, then typed once per column
- The inferred schema travels with the Table; later stages do not re-infer

Output: Table handed to the Cleaner
"""

import io
from pathlib import Path
from typing import Optional, Union

import pandas as pd
import requests

from ..exceptions import RetrievalError, ValidationError
from ..schema import RAW_DATES_ATTR, ColumnDescriptor, Table
from ..utils.logging_utils import get_logger
from ..utils.stats_utils import infer_column_type, convert_column

logger = get_logger(__name__)

STAGE = 'loader'


class Loader:
    """
    Stage 1: Loader

    Example:
        >>> loader = Loader(timeout=30)
        >>> table = loader.load("https://example.org/incidents.csv", expected_columns=19)
        >>> table.schema['OCCUR_DATE'].kind
        'date'
    """

    def __init__(self, timeout: float = 30.0, session: Optional[requests.Session] = None):
        """
        Initialize the Loader.

        Args:
            timeout: Seconds to wait for the remote resource before failing
            session: Optional requests session (defaults to module-level requests)
        """
        if timeout <= 0:
            raise ValidationError(f"timeout must be positive, got {timeout}", stage=STAGE)

        self.timeout = timeout
        self.session = session

    def load(self, locator: Union[str, Path], expected_columns: Optional[int] = None) -> Table:
        """
        Load one CSV resource into a typed Table.

        Args:
            locator: http(s) URL or local file path
            expected_columns: Exact column count the CSV must have (>= 1), if given

        Returns:
            Table with an inferred schema

        Raises:
            RetrievalError: Unreachable, timed out, non-200, or malformed CSV
            ValidationError: expected_columns below 1
        """
        if expected_columns is not None and expected_columns < 1:
            raise ValidationError(
                f"expected_columns must be >= 1, got {expected_columns}", stage=STAGE
            )

        locator = str(locator)
        logger.info(f"Loading CSV: {locator}")

        text = self._fetch(locator)
        raw = self._parse(text, locator)

        if expected_columns is not None and len(raw.columns) != expected_columns:
            raise RetrievalError(
                f"Expected {expected_columns} columns in {locator}, found {len(raw.columns)}",
                stage=STAGE
            )

        table = self._type_columns(raw)

        logger.info(f"Loaded {table.n_rows} rows, {len(table.columns)} columns from {locator}")

        return table

    def _fetch(self, locator: str) -> str:
        if locator.startswith(('http://', 'https://')):
            getter = self.session.get if self.session is not None else requests.get
            try:
                response = getter(locator, timeout=self.timeout)
            except requests.Timeout as e:
                raise RetrievalError(
                    f"Timed out after {self.timeout}s fetching {locator}", stage=STAGE
                ) from e
            except requests.RequestException as e:
                raise RetrievalError(f"Could not reach {locator}: {e}", stage=STAGE) from e

            if response.status_code != 200:
                raise RetrievalError(
                    f"HTTP {response.status_code} fetching {locator}", stage=STAGE
                )
            return response.text

        path = Path(locator)
        try:
            return path.read_text(encoding='utf-8-sig')
        except (OSError, UnicodeDecodeError) as e:
            raise RetrievalError(f"Could not read {path}: {e}", stage=STAGE) from e

    def _parse(self, text: str, locator: str) -> pd.DataFrame:
        try:
            raw = pd.read_csv(
                io.StringIO(text),
                dtype=str,
                keep_default_na=False,
                na_values=[''],
            )
        except (pd.errors.ParserError, pd.errors.EmptyDataError, UnicodeDecodeError) as e:
            raise RetrievalError(f"Malformed CSV at {locator}: {e}", stage=STAGE) from e

        if len(raw.columns) == 0:
            raise RetrievalError(f"No columns in CSV at {locator}", stage=STAGE)

        if len(raw) == 0:
            raise RetrievalError(f"No data rows in CSV at {locator}", stage=STAGE)

        return raw

    def _type_columns(self, raw: pd.DataFrame) -> Table:
        columns = {}
        schema = {}
        raw_dates = {}

        for col in raw.columns:
            kind = infer_column_type(raw[col])
            columns[col] = convert_column(raw[col], kind)
            schema[col] = ColumnDescriptor(col, kind)
            if kind == 'date':
                # kept so the Cleaner can re-parse with an explicit day/month order
                raw_dates[col] = raw[col].copy()
            logger.debug(f"  {col}: {kind}")

        attrs = {RAW_DATES_ATTR: raw_dates} if raw_dates else {}

        return Table(frame=pd.DataFrame(columns, index=raw.index), schema=schema, attrs=attrs)
