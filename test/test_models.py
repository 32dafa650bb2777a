# test/test_models.py
import math

import numpy as np
import pandas as pd
import pytest

from reportflow.exceptions import CollinearityError, FormatError, ValidationError
from reportflow.schema import Table
from reportflow.stage4.models import Modeler


def _categorical(values, categories):
    return pd.Categorical(values, categories=categories)


@pytest.fixture
def linear_table():
    x = np.arange(20, dtype=float)
    frame = pd.DataFrame({
        "cases": x,
        "deaths": 2.0 + 3.0 * x + np.sin(x),
        "day": pd.date_range("2020-03-01", periods=20),
    })
    return Table.from_frame(frame)


@pytest.fixture
def group_table():
    frame = pd.DataFrame({
        "flag": [0, 1, 0, 1, 1, 0, 1, 0, 0, 1],
        "g": _categorical(list("XXXXXYYYYY"), ["X", "Y"]),
    })
    return Table.from_frame(frame)


class TestLinear:
    def test_fit(self, linear_table):
        result = Modeler("linear").fit(linear_table, "deaths", ["cases"])

        assert result.terms == ["Intercept", "cases"]
        assert list(result.coefficients.columns) == ["estimate", "std_error", "statistic", "p_value"]
        assert result.coefficients.loc["cases", "estimate"] == pytest.approx(3.0, abs=0.2)
        assert len(result.residuals) == linear_table.n_rows
        assert result.n_obs == 20
        assert 0.9 < result.summary["r_squared"] <= 1.0
        assert set(result.metrics) == {"mae", "rmse", "r2"}

    def test_residuals_match_fitted(self, linear_table):
        result = Modeler("linear").fit(linear_table, "deaths", ["cases"])
        y = linear_table.frame["deaths"].to_numpy()
        np.testing.assert_allclose(result.fitted + result.residuals, y)

    def test_idempotent(self, linear_table):
        modeler = Modeler("linear")
        first = modeler.fit(linear_table, "deaths", ["cases"])
        second = modeler.fit(linear_table, "deaths", ["cases"])

        pd.testing.assert_frame_equal(first.coefficients, second.coefficients)
        np.testing.assert_array_equal(first.residuals, second.residuals)

    def test_date_predictor(self, linear_table):
        result = Modeler("linear").fit(linear_table, "deaths", ["day"])
        assert result.coefficients.loc["day", "estimate"] == pytest.approx(3.0, abs=0.2)

    def test_categorical_outcome_rejected(self, group_table):
        with pytest.raises(ValidationError):
            Modeler("linear").fit(group_table, "g", ["flag"])


class TestLogistic:
    def test_two_level_example(self):
        frame = pd.DataFrame({
            "y": [0, 1, 1, 0, 1],
            "g": _categorical(["X", "Y", "Y", "X", "Y"], ["X", "Y"]),
        })

        result = Modeler("logistic").fit(Table.from_frame(frame), "y", ["g"])

        assert result.terms == ["Intercept", "g[T.Y]"]
        assert result.outcome_levels == (0, 1)
        assert len(result.residuals) == 5

    def test_estimates_match_log_odds(self, group_table):
        result = Modeler("logistic").fit(group_table, "flag", ["g"])

        # X: 3 of 5, Y: 2 of 5
        assert result.converged
        assert result.coefficients.loc["Intercept", "estimate"] == pytest.approx(math.log(1.5), rel=1e-4)
        assert result.coefficients.loc["g[T.Y]", "estimate"] == pytest.approx(math.log(4 / 9), rel=1e-4)
        assert set(result.summary) >= {"deviance", "null_deviance", "log_likelihood"}
        assert 0.0 <= result.metrics["accuracy"] <= 1.0

    def test_reference_level_follows_label_order(self):
        frame = pd.DataFrame({
            "flag": [0, 1, 0, 1, 1, 0, 1, 0, 0, 1],
            "g": _categorical(list("XXXXXYYYYY"), ["Y", "X"]),
        })
        result = Modeler("logistic").fit(Table.from_frame(frame), "flag", ["g"])
        assert result.terms == ["Intercept", "g[T.X]"]

    def test_string_outcome_levels(self):
        frame = pd.DataFrame({
            "outcome": ["no", "yes", "no", "yes", "yes", "no", "yes", "no", "no", "yes"],
            "x": [1.0, 2.0, 2.5, 3.0, 1.5, 4.0, 5.0, 0.5, 3.5, 2.2],
        })
        result = Modeler("logistic").fit(Table.from_frame(frame), "outcome", ["x"])
        assert result.outcome_levels == ("no", "yes")

    def test_boolean_outcome(self, group_table):
        frame = group_table.frame.assign(flag=group_table.frame["flag"].astype(bool))
        result = Modeler("logistic").fit(Table.from_frame(frame), "flag", ["g"])
        assert result.outcome_levels == (False, True)

    def test_three_outcome_values_rejected(self):
        frame = pd.DataFrame({"y": [0, 1, 2, 0, 1, 2], "x": [1.0, 2, 3, 4, 5, 6]})
        with pytest.raises(ValidationError) as excinfo:
            Modeler("logistic").fit(Table.from_frame(frame), "y", ["x"])
        assert excinfo.value.column == "y"

    def test_single_outcome_value_rejected(self):
        frame = pd.DataFrame({"y": [1, 1, 1, 1], "x": [1.0, 2, 3, 4]})
        with pytest.raises(ValidationError):
            Modeler("logistic").fit(Table.from_frame(frame), "y", ["x"])


class TestDesign:
    def test_collinear_predictors(self, linear_table):
        frame = linear_table.frame.assign(doubled=linear_table.frame["cases"] * 2)
        with pytest.raises(CollinearityError) as excinfo:
            Modeler("linear").fit(Table.from_frame(frame), "deaths", ["cases", "doubled"])
        assert excinfo.value.column == "doubled"

    def test_single_level_categorical(self):
        frame = pd.DataFrame({
            "y": [1.0, 2.0, 3.0],
            "g": _categorical(["X", "X", "X"], ["X", "Y"]),
        })
        with pytest.raises(ValidationError):
            Modeler("linear").fit(Table.from_frame(frame), "y", ["g"])

    def test_string_predictor_rejected(self):
        frame = pd.DataFrame({"y": [1.0, 2.0, 3.0, 4.0], "s": ["a", "b", "a", "b"]})
        with pytest.raises(ValidationError):
            Modeler("linear").fit(Table.from_frame(frame), "y", ["s"])

    def test_too_few_rows(self):
        frame = pd.DataFrame({"y": [1.0, 2.0], "x": [1.0, 3.0]})
        with pytest.raises(ValidationError):
            Modeler("linear").fit(Table.from_frame(frame), "y", ["x"])

    def test_predictors_required(self, linear_table):
        with pytest.raises(ValidationError):
            Modeler("linear").fit(linear_table, "deaths", [])

    def test_unknown_column(self, linear_table):
        with pytest.raises(FormatError):
            Modeler("linear").fit(linear_table, "deaths", ["hospitalized"])

    def test_unknown_family(self):
        with pytest.raises(ValidationError):
            Modeler("poisson")


class TestMissingValues:
    @pytest.fixture
    def gappy(self, linear_table):
        frame = linear_table.frame.copy()
        frame.loc[3, "cases"] = np.nan
        return Table.from_frame(frame)

    def test_raise_by_default(self, gappy):
        with pytest.raises(ValidationError) as excinfo:
            Modeler("linear").fit(gappy, "deaths", ["cases"])
        assert excinfo.value.column == "cases"

    def test_drop(self, gappy):
        result = Modeler("linear", missing="drop").fit(gappy, "deaths", ["cases"])
        assert result.n_obs == 19
        assert len(result.residuals) == 19


def test_to_dict(group_table):
    payload = Modeler("logistic").fit(group_table, "flag", ["g"]).to_dict()

    assert payload["family"] == "logistic"
    assert [row["term"] for row in payload["coefficients"]] == ["Intercept", "g[T.Y]"]
    assert payload["outcome_levels"] == ["0", "1"]
