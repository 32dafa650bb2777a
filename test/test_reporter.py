# test/test_reporter.py
import json

import numpy as np
import pandas as pd
import pytest

from reportflow.exceptions import ValidationError
from reportflow.schema import Table
from reportflow.stage4.models import Modeler
from reportflow.stage4.reporter import Reporter
from reportflow.stage4.visualizer import Visualizer


@pytest.fixture
def daily():
    return pd.DataFrame({
        "Date": pd.date_range("2020-03-01", periods=6),
        "cases": [3, 6, 10, 18, 28, 41],
        "deaths": [0, 1, 2, 4, 7, 10],
    })


@pytest.fixture
def fitted(daily):
    return Modeler("linear").fit(Table.from_frame(daily), "deaths", ["cases"])


class TestVisualizer:
    def test_series_plot(self, tmp_path, daily):
        path = Visualizer(tmp_path).plot_series(daily, x="Date", y=["cases", "deaths"], name="totals")
        assert path == tmp_path / "totals.png"
        assert path.exists()

    def test_series_hue_with_several_columns(self, tmp_path, daily):
        with pytest.raises(ValueError):
            Visualizer(tmp_path).plot_series(daily, x="Date", y=["cases", "deaths"], name="x", hue="cases")

    def test_hour_histogram(self, tmp_path):
        frame = pd.DataFrame({
            "OCCUR_HOUR": pd.array([0, 13, 13, None, 23], dtype="Int64"),
            "BORO": ["BRONX", "QUEENS", "BRONX", "BRONX", "QUEENS"],
        })
        path = Visualizer(tmp_path).plot_hour_histogram(frame, hour="OCCUR_HOUR", name="hours", hue="BORO")
        assert path.exists()

    def test_residual_plot(self, tmp_path, fitted):
        path = Visualizer(tmp_path, config={"dpi": 72}).plot_residuals(fitted.residuals, name="residuals")
        assert path.exists()


class TestReporter:
    def test_write_model(self, tmp_path, fitted):
        reporter = Reporter("covid_us", output_dir=tmp_path)

        files = reporter.write_model(fitted)

        coefficients = pd.read_csv(files["coefficients"])
        assert list(coefficients.columns) == ["term", "estimate", "std_error", "statistic", "p_value"]
        assert coefficients["term"].tolist() == ["Intercept", "cases"]

        payload = json.loads(files["model"].read_text())
        assert payload["report"] == "covid_us"
        assert payload["family"] == "linear"
        assert "r_squared" in payload["summary"]

    def test_outputs_land_in_report_directory(self, tmp_path, daily):
        reporter = Reporter("covid_us", output_dir=tmp_path)
        paths = reporter.write_aggregates({"daily": daily})
        assert paths == [tmp_path / "covid_us" / "covid_us_daily.csv"]

    def test_write_profile(self, tmp_path, daily):
        table = Table.from_frame(daily.assign(note=["a", None, "b", "c", "d", "e"]))
        path = Reporter("covid_us", output_dir=tmp_path).write_profile({"daily": table})

        profile = json.loads(path.read_text())["daily"]
        assert profile["rows"] == 6
        assert profile["columns"]["cases"]["max"] == 41.0
        assert profile["columns"]["Date"]["min_date"] == "2020-03-01"
        assert profile["columns"]["note"]["null_count"] == 1

    def test_render_plots(self, tmp_path, daily, fitted):
        reporter = Reporter("covid_us", output_dir=tmp_path)
        specs = [
            {"kind": "line", "name": "totals", "data": "daily", "x": "Date", "y": ["cases", "deaths"]},
            {"kind": "scatter", "data": "daily", "x": "cases", "y": "deaths"},
            {"kind": "residuals", "name": "residuals"},
        ]

        files = reporter.render_plots(specs, lambda data: daily, fitted)

        assert [f.name for f in files] == ["totals.png", "scatter_2.png", "residuals.png"]
        assert all(f.exists() for f in files)

    def test_plots_disabled(self, tmp_path, daily):
        reporter = Reporter("covid_us", output_dir=tmp_path, plots_enabled=False)
        specs = [{"kind": "line", "data": "daily", "x": "Date", "y": "cases"}]
        assert reporter.render_plots(specs, lambda data: daily) == []
        assert not (tmp_path / "covid_us" / "plots").exists()

    def test_unknown_plot_kind(self, tmp_path, daily):
        reporter = Reporter("covid_us", output_dir=tmp_path)
        with pytest.raises(ValidationError):
            reporter.render_plots([{"kind": "pie", "data": "daily"}], lambda data: daily)

    def test_residuals_need_a_model(self, tmp_path, daily):
        reporter = Reporter("covid_us", output_dir=tmp_path)
        with pytest.raises(ValidationError):
            reporter.render_plots([{"kind": "residuals"}], lambda data: daily)


class TestPlotValidation:
    def test_missing_column(self, tmp_path, daily):
        reporter = Reporter("covid_us", output_dir=tmp_path)
        specs = [{"kind": "line", "data": "daily", "x": "Date", "y": "hospitalized"}]

        with pytest.raises(ValidationError) as excinfo:
            reporter.validate_plots(specs, lambda data: daily)

        assert excinfo.value.stage == "reporter"
        assert excinfo.value.column == "hospitalized"

    def test_missing_keys(self, tmp_path, daily):
        reporter = Reporter("covid_us", output_dir=tmp_path)
        with pytest.raises(ValidationError):
            reporter.validate_plots([{"kind": "scatter", "data": "daily", "x": "cases"}], lambda data: daily)

    def test_several_y_with_hue(self, tmp_path, daily):
        reporter = Reporter("covid_us", output_dir=tmp_path)
        specs = [{"kind": "line", "data": "daily", "x": "Date", "y": ["cases", "deaths"], "hue": "cases"}]
        with pytest.raises(ValidationError):
            reporter.validate_plots(specs, lambda data: daily)

    def test_nothing_rendered_when_a_later_plot_is_invalid(self, tmp_path, daily):
        reporter = Reporter("covid_us", output_dir=tmp_path)
        specs = [
            {"kind": "line", "name": "totals", "data": "daily", "x": "Date", "y": "cases"},
            {"kind": "scatter", "data": "daily", "x": "cases", "y": "recovered"},
        ]
        with pytest.raises(ValidationError):
            reporter.render_plots(specs, lambda data: daily)
        assert not (tmp_path / "covid_us" / "plots").exists()


class TestStaging:
    def test_commit_moves_outputs(self, tmp_path, daily):
        reporter = Reporter("covid_us", output_dir=tmp_path, staged=True)
        files = {"aggregates": reporter.write_aggregates({"daily": daily})}

        assert not (tmp_path / "covid_us").exists()

        files = reporter.commit(files)

        assert files["aggregates"] == [tmp_path / "covid_us" / "covid_us_daily.csv"]
        assert files["aggregates"][0].exists()
        assert [p.name for p in tmp_path.iterdir()] == ["covid_us"]

    def test_commit_replaces_previous_outputs(self, tmp_path, daily):
        stale = tmp_path / "covid_us" / "covid_us_old.csv"
        stale.parent.mkdir()
        stale.write_text("a\n1\n")

        reporter = Reporter("covid_us", output_dir=tmp_path, staged=True)
        reporter.write_aggregates({"daily": daily})
        reporter.commit({})

        assert not stale.exists()
        assert (tmp_path / "covid_us" / "covid_us_daily.csv").exists()

    def test_discard_leaves_nothing(self, tmp_path, daily):
        reporter = Reporter("covid_us", output_dir=tmp_path, staged=True)
        reporter.write_aggregates({"daily": daily})

        reporter.discard()

        assert list(tmp_path.iterdir()) == []
