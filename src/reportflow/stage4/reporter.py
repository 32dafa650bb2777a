"""
Reporter - Stage 4

Consumes the pipeline outputs and writes report artifacts:
- Coefficient table (CSV) and model summary (JSON)
- Aggregate tables (CSV)
- Source profiles (JSON)
- Plots described by the report config

A staged Reporter writes into a hidden directory next to the final one and
only moves it into place on `commit`, so a failed run leaves no output.
"""

import shutil
import tempfile
from datetime import datetime
from pathlib import Path
from typing import Any, Callable, Dict, List, Optional, Union

import pandas as pd

from ..exceptions import ValidationError
from ..schema import ModelResult, Table
from ..utils.file_utils import save_csv, save_json
from ..utils.logging_utils import get_logger
from ..utils.stats_utils import calculate_basic_stats
from .visualizer import Visualizer

logger = get_logger(__name__)

STAGE = 'reporter'

PLOT_KINDS = ('line', 'scatter', 'hour_histogram', 'residuals')


class Reporter:
    """
    Stage 4: Reporter

    Example:
        >>> reporter = Reporter('covid_us', output_dir='outputs')
        >>> files = reporter.write_model(result)
        >>> files['coefficients']
        PosixPath('outputs/covid_us/covid_us_coefficients.csv')
    """

    def __init__(
        self,
        report_name: str,
        output_dir: Union[str, Path] = 'outputs',
        plots_enabled: bool = True,
        config: Optional[Dict[str, Any]] = None,
        staged: bool = False
    ):
        """
        Initialize the Reporter.

        Args:
            report_name: Report name; outputs go to output_dir/report_name
            output_dir: Root output directory
            plots_enabled: Render plots (False skips rendering and plot checks)
            config: Output config (`visualization` settings are passed to the Visualizer)
            staged: Write into a staging directory until `commit` is called
        """
        self.report_name = report_name
        self.final_dir = Path(output_dir) / report_name
        self.staging_dir: Optional[Path] = None

        if staged:
            root = Path(output_dir)
            root.mkdir(parents=True, exist_ok=True)
            self.staging_dir = Path(tempfile.mkdtemp(prefix=f".{report_name}-", dir=root))
            self.output_dir = self.staging_dir / report_name
        else:
            self.output_dir = self.final_dir

        self.output_dir.mkdir(parents=True, exist_ok=True)
        self.plots_enabled = plots_enabled
        self.config = config or {}

        logger.info(f"Initialized Reporter for '{report_name}' (output: {self.final_dir})")

    def commit(self, files: Dict[str, Any]) -> Dict[str, Any]:
        """
        Move staged outputs into place, replacing any previous run's outputs.

        Returns:
            `files` with every path pointing at its final location
        """
        if self.staging_dir is None:
            return files

        staged_dir = self.output_dir
        if self.final_dir.exists():
            shutil.rmtree(self.final_dir)
        shutil.move(str(staged_dir), str(self.final_dir))
        shutil.rmtree(self.staging_dir)

        self.staging_dir = None
        self.output_dir = self.final_dir

        logger.info(f"Outputs written to {self.final_dir}")

        return self._relocate(files, staged_dir)

    def discard(self):
        """Delete everything staged so far."""
        if self.staging_dir is not None:
            shutil.rmtree(self.staging_dir)
            logger.info(f"Discarded partial outputs for '{self.report_name}'")
            self.staging_dir = None

    def _relocate(self, value: Any, staged_dir: Path) -> Any:
        if isinstance(value, dict):
            return {k: self._relocate(v, staged_dir) for k, v in value.items()}
        if isinstance(value, list):
            return [self._relocate(v, staged_dir) for v in value]
        if isinstance(value, Path):
            return self.final_dir / value.relative_to(staged_dir)
        return value

    def write_model(self, result: ModelResult) -> Dict[str, Path]:
        coefficients_file = save_csv(
            result.coefficients.reset_index(),
            self.output_dir / f"{self.report_name}_coefficients.csv"
        )

        model_output = result.to_dict()
        model_output.update({
            'report': self.report_name,
            'timestamp': datetime.now().isoformat(),
        })
        model_file = save_json(model_output, self.output_dir / f"{self.report_name}_model.json")

        return {'coefficients': coefficients_file, 'model': model_file}

    def write_aggregates(self, frames: Dict[str, pd.DataFrame]) -> List[Path]:
        return [
            save_csv(frame, self.output_dir / f"{self.report_name}_{name}.csv")
            for name, frame in frames.items()
        ]

    def write_profile(self, tables: Dict[str, Table]) -> Path:
        """Per-source column profile of the cleaned tables."""
        profile = {
            name: {
                'rows': table.n_rows,
                'parse_errors': {col: len(rows) for col, rows in table.parse_errors.items()},
                'columns': {
                    col: calculate_basic_stats(table.frame[col], descriptor.kind)
                    for col, descriptor in table.schema.items()
                },
            }
            for name, table in tables.items()
        }
        return save_json(profile, self.output_dir / f"{self.report_name}_profile.json")

    @staticmethod
    def _plot_name(spec: Dict[str, Any], i: int) -> str:
        return spec.get('name', f"{spec.get('kind')}_{i + 1}")

    def validate_plots(
        self,
        plot_specs: List[Dict[str, Any]],
        resolve: Callable[[Union[str, List[str]]], pd.DataFrame],
        model_result: Optional[ModelResult] = None
    ) -> None:
        """
        Check every plot definition before anything is rendered or written.

        Raises:
            ValidationError: Unknown kind, missing keys, columns absent from the
                plotted table, or a residual plot without a fitted model
        """
        if not self.plots_enabled:
            return

        for i, spec in enumerate(plot_specs):
            kind = spec.get('kind')
            name = self._plot_name(spec, i)

            if kind not in PLOT_KINDS:
                raise ValidationError(f"Unknown plot kind '{kind}' in plot '{name}'", stage=STAGE)

            if kind == 'residuals':
                if model_result is None:
                    raise ValidationError(f"Plot '{name}' needs a fitted model", stage=STAGE)
                continue

            required = ('data', 'x') if kind == 'hour_histogram' else ('data', 'x', 'y')
            missing = [key for key in required if not spec.get(key)]
            if missing:
                raise ValidationError(f"Plot '{name}' is missing {missing}", stage=STAGE)

            y = spec.get('y') or []
            y_columns = y if isinstance(y, list) else [y]
            if isinstance(y, list) and (kind != 'line' or spec.get('hue')):
                raise ValidationError(
                    f"Plot '{name}' can only list several y columns on a line plot without hue",
                    stage=STAGE
                )

            df = resolve(spec['data'])
            for col in [spec['x']] + y_columns + ([spec['hue']] if spec.get('hue') else []):
                if col not in df.columns:
                    raise ValidationError(
                        f"Plot '{name}' refers to a column not in {spec['data']}",
                        stage=STAGE, column=col
                    )

    def render_plots(
        self,
        plot_specs: List[Dict[str, Any]],
        resolve: Callable[[Union[str, List[str]]], pd.DataFrame],
        model_result: Optional[ModelResult] = None
    ) -> List[Path]:
        """
        Render every configured plot.

        Args:
            plot_specs: Plot definitions from the report config
            resolve: Maps a `data` entry (table name or list of names) to a DataFrame
            model_result: Fitted model, required by 'residuals' plots

        Returns:
            Paths of the saved plots
        """
        if not self.plots_enabled:
            logger.info("Plots disabled - skipping")
            return []

        self.validate_plots(plot_specs, resolve, model_result)

        visualizer = Visualizer(self.output_dir / 'plots', config=self.config.get('visualization'))
        files = []

        for i, spec in enumerate(plot_specs):
            kind = spec['kind']
            name = self._plot_name(spec, i)

            if kind == 'residuals':
                files.append(visualizer.plot_residuals(
                    model_result.residuals, name, title=spec.get('title')
                ))
                continue

            df = resolve(spec['data'])

            if kind == 'line':
                files.append(visualizer.plot_series(
                    df, x=spec['x'], y=spec['y'], name=name, hue=spec.get('hue'),
                    title=spec.get('title'), log_scale=spec.get('log_scale', False)
                ))
            elif kind == 'scatter':
                files.append(visualizer.plot_scatter(
                    df, x=spec['x'], y=spec['y'], name=name, hue=spec.get('hue'),
                    title=spec.get('title')
                ))
            else:
                files.append(visualizer.plot_hour_histogram(
                    df, hour=spec['x'], name=name, hue=spec.get('hue'), title=spec.get('title')
                ))

        logger.info(f"Rendered {len(files)} plots")

        return files
