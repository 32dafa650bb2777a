"""
Model Fitting Module

Fits a single regression on a cleaned / aggregated table:
- Linear: ordinary least squares
- Logistic: binomial GLM (logit link) by maximum likelihood

Reports a coefficient table (estimate, standard error, test statistic,
p-value), one residual per training row, and family-specific summary
scalars.
"""

import warnings

import numpy as np
import pandas as pd
import statsmodels.api as sm
from sklearn.metrics import (
    accuracy_score,
    log_loss,
    mean_absolute_error,
    mean_squared_error,
    r2_score,
    roc_auc_score,
)
from typing import Dict, Any, List, Optional, Tuple

from ..exceptions import CollinearityError, ValidationError
from ..schema import ColumnDescriptor, ModelResult, Table
from ..utils.logging_utils import get_logger

logger = get_logger(__name__)

STAGE = 'modeler'

FAMILIES = ('linear', 'logistic')
MISSING_POLICIES = ('raise', 'drop')

INTERCEPT = 'Intercept'


class Modeler:
    """
    Fits one regression and returns a ModelResult.

    Categorical predictors are expanded into indicator columns named
    `column[T.level]`; the first label of the category set is the
    reference level. Reorder the labels in the Cleaner to pick a different
    reference. A rank-deficient design raises CollinearityError instead of
    silently dropping a column.

    Example:
        >>> modeler = Modeler(family='logistic')
        >>> result = modeler.fit(table, outcome='STATISTICAL_MURDER_FLAG', predictors=['BORO'])
        >>> result.coefficients[['estimate', 'p_value']]
    """

    def __init__(
        self,
        family: str = 'linear',
        missing: str = 'raise',
        config: Optional[Dict[str, Any]] = None
    ):
        """
        Initialize the Modeler.

        Args:
            family: 'linear' or 'logistic'
            missing: 'raise' to reject rows with missing model values,
                'drop' to fit on complete rows only
            config: Solver settings
        """
        if family not in FAMILIES:
            raise ValidationError(
                f"Unknown model family '{family}'; expected one of {FAMILIES}", stage=STAGE
            )
        if missing not in MISSING_POLICIES:
            raise ValidationError(
                f"Unknown missing-value policy '{missing}'; expected one of {MISSING_POLICIES}",
                stage=STAGE
            )

        self.family = family
        self.missing = missing

        self.config = {
            'logistic': {
                'maxiter': 100,
                'tol': 1e-8
            }
        }

        if config:
            for key, value in config.items():
                if isinstance(value, dict) and key in self.config:
                    self.config[key].update(value)
                else:
                    self.config[key] = value

    def fit(self, table: Table, outcome: str, predictors: List[str]) -> ModelResult:
        """
        Fit the model.

        Args:
            table: Input table
            outcome: Outcome column
            predictors: Non-empty list of predictor columns

        Returns:
            ModelResult

        Raises:
            ValidationError: Bad outcome cardinality/type, missing values
                under the 'raise' policy, too few rows
            CollinearityError: Design matrix is rank deficient
        """
        predictors = list(predictors)
        if not predictors:
            raise ValidationError("At least one predictor is required", stage=STAGE)
        if outcome in predictors:
            raise ValidationError("Outcome is also listed as a predictor", stage=STAGE, column=outcome)
        if len(set(predictors)) != len(predictors):
            raise ValidationError(f"Duplicate predictors in {predictors}", stage=STAGE)

        table.require([outcome] + predictors, stage=STAGE)

        frame = self._complete_rows(table.frame[[outcome] + predictors], outcome, predictors)

        y, levels = self._prepare_outcome(frame[outcome], table.schema[outcome])
        X = self._design_matrix(frame, predictors, table.schema)

        if len(X) <= X.shape[1]:
            raise ValidationError(
                f"{len(X)} rows cannot identify {X.shape[1]} coefficients", stage=STAGE
            )

        self._check_collinearity(X)

        logger.info(
            f"Fitting {self.family} model: {outcome} ~ {' + '.join(predictors)} "
            f"({len(X)} rows, {X.shape[1]} terms)"
        )

        with warnings.catch_warnings(record=True) as caught:
            warnings.simplefilter('always')
            if self.family == 'linear':
                results = sm.OLS(y, X).fit()
            else:
                settings = self.config['logistic']
                results = sm.GLM(y, X, family=sm.families.Binomial()).fit(
                    maxiter=settings['maxiter'], tol=settings['tol']
                )

        messages = tuple(dict.fromkeys(
            str(w.message) for w in caught
            if not issubclass(w.category, (DeprecationWarning, FutureWarning))
        ))
        for message in messages:
            logger.warning(f"Solver warning: {message}")

        converged = bool(getattr(results, 'converged', True))
        if not converged:
            logger.warning("Solver did not converge")

        coefficients = pd.DataFrame({
            'estimate': results.params,
            'std_error': results.bse,
            'statistic': results.tvalues,
            'p_value': results.pvalues,
        })
        coefficients.index.name = 'term'

        fitted = np.asarray(results.fittedvalues, dtype=float)
        if self.family == 'linear':
            residuals = np.asarray(results.resid, dtype=float)
            summary = self._linear_summary(results)
            metrics = self._linear_metrics(y, fitted)
        else:
            residuals = np.asarray(results.resid_deviance, dtype=float)
            summary = self._logistic_summary(results)
            metrics = self._logistic_metrics(y, fitted)

        logger.info(f"  {', '.join(f'{k}={v:.4g}' for k, v in metrics.items())}")

        return ModelResult(
            family=self.family,
            outcome=outcome,
            predictors=tuple(predictors),
            coefficients=coefficients,
            residuals=residuals,
            fitted=fitted,
            summary=summary,
            metrics=metrics,
            n_obs=int(len(X)),
            converged=converged,
            warnings=messages,
            outcome_levels=levels,
        )

    def _complete_rows(self, frame: pd.DataFrame, outcome: str, predictors: List[str]) -> pd.DataFrame:
        incomplete = frame.isna().any(axis=1)
        if not incomplete.any():
            return frame

        if self.missing == 'raise':
            column = next(c for c in [outcome] + predictors if frame[c].isna().any())
            raise ValidationError(
                f"{int(incomplete.sum())} rows have missing model values; "
                "clean them first or use missing='drop'",
                stage=STAGE, column=column
            )

        logger.info(f"Dropping {int(incomplete.sum())} incomplete rows before fitting")
        return frame.loc[~incomplete]

    def _prepare_outcome(
        self,
        series: pd.Series,
        descriptor: ColumnDescriptor
    ) -> Tuple[pd.Series, Tuple[Any, ...]]:
        if self.family == 'linear':
            if descriptor.kind not in ('integer', 'real', 'boolean'):
                raise ValidationError(
                    f"Linear outcome must be numeric, got {descriptor.kind}",
                    stage=STAGE, column=descriptor.name
                )
            return series.astype(float), ()

        distinct = list(pd.unique(series.dropna()))
        if len(distinct) != 2:
            raise ValidationError(
                f"Logistic outcome needs exactly two distinct values, found {len(distinct)}",
                stage=STAGE, column=descriptor.name
            )

        if descriptor.kind == 'categorical':
            levels = [label for label in series.cat.categories if label in distinct]
        else:
            levels = sorted(distinct)

        logger.debug(f"Outcome coding: {levels[0]!r} -> 0, {levels[1]!r} -> 1")

        return (series == levels[1]).astype(float), tuple(levels)

    def _design_matrix(
        self,
        frame: pd.DataFrame,
        predictors: List[str],
        schema: Dict[str, ColumnDescriptor]
    ) -> pd.DataFrame:
        columns = {INTERCEPT: np.ones(len(frame))}

        for col in predictors:
            kind = schema[col].kind
            series = frame[col]

            if kind in ('integer', 'real', 'boolean'):
                columns[col] = series.astype(float).to_numpy()

            elif kind == 'date':
                columns[col] = (series - series.min()).dt.days.astype(float).to_numpy()

            elif kind == 'categorical':
                observed = series.cat.remove_unused_categories()
                levels = list(observed.cat.categories)
                if len(levels) < 2:
                    raise ValidationError(
                        f"Categorical predictor needs at least two observed levels, found {levels}",
                        stage=STAGE, column=col
                    )
                logger.debug(f"  {col}: reference level {levels[0]!r}")
                for level in levels[1:]:
                    columns[f"{col}[T.{level}]"] = (observed == level).astype(float).to_numpy()

            else:
                raise ValidationError(
                    f"Cannot use a {kind} column as a predictor; convert it to categorical first",
                    stage=STAGE, column=col
                )

        return pd.DataFrame(columns, index=frame.index)

    def _check_collinearity(self, X: pd.DataFrame):
        """Raise on the first design column that adds no rank."""
        matrix = X.to_numpy(dtype=float)
        rank = 0

        for i, name in enumerate(X.columns):
            current = int(np.linalg.matrix_rank(matrix[:, :i + 1]))
            if current <= rank:
                raise CollinearityError(
                    "Design column is a linear combination of earlier columns",
                    stage=STAGE, column=name
                )
            rank = current

    def _linear_summary(self, results) -> Dict[str, float]:
        return {
            'r_squared': float(results.rsquared),
            'adj_r_squared': float(results.rsquared_adj),
            'f_statistic': float(results.fvalue),
            'f_pvalue': float(results.f_pvalue),
            'log_likelihood': float(results.llf),
            'aic': float(results.aic),
            'df_resid': float(results.df_resid),
        }

    def _logistic_summary(self, results) -> Dict[str, float]:
        deviance = float(results.deviance)
        null_deviance = float(results.null_deviance)
        return {
            'deviance': deviance,
            'null_deviance': null_deviance,
            'pseudo_r_squared': 1.0 - deviance / null_deviance if null_deviance else float('nan'),
            'log_likelihood': float(results.llf),
            'aic': float(results.aic),
            'df_resid': float(results.df_resid),
        }

    def _linear_metrics(self, y_true, y_pred) -> Dict[str, float]:
        return {
            'mae': float(mean_absolute_error(y_true, y_pred)),
            'rmse': float(np.sqrt(mean_squared_error(y_true, y_pred))),
            'r2': float(r2_score(y_true, y_pred)),
        }

    def _logistic_metrics(self, y_true, probabilities) -> Dict[str, float]:
        return {
            'accuracy': float(accuracy_score(y_true, (probabilities >= 0.5).astype(float))),
            'roc_auc': float(roc_auc_score(y_true, probabilities)),
            'log_loss': float(log_loss(y_true, np.clip(probabilities, 1e-15, 1 - 1e-15))),
        }
