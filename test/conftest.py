# test/conftest.py
import matplotlib

matplotlib.use("Agg")

import pandas as pd
import pytest

from reportflow.schema import Table


@pytest.fixture
def region_wide():
    """Two rows for the same region, two date columns."""
    frame = pd.DataFrame({
        "Region": ["A", "A"],
        "1/1/20": [5, 7],
        "1/2/20": [6, 9],
    })
    return Table.from_frame(frame)


@pytest.fixture
def county_wide():
    """Three distinct counties, four date columns."""
    frame = pd.DataFrame({
        "State": ["NY", "NY", "CA"],
        "County": ["Kings", "Queens", "Alameda"],
        "3/1/20": [1, 0, 2],
        "3/2/20": [3, 1, 2],
        "3/3/20": [6, 4, 5],
        "3/4/20": [10, 9, 7],
    })
    return Table.from_frame(frame)


@pytest.fixture
def write_csv(tmp_path):
    def _write(name: str, text: str):
        path = tmp_path / name
        path.write_text(text)
        return path

    return _write
