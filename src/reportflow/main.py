"""
Main Pipeline Orchestrator

Runs one report definition end to end:
Loader -> Cleaner -> Reshaper -> Aggregator -> Modeler -> Reporter

Each stage completes before the next starts and hands an immutable result
forward. The first error aborts the run.

Usage:
    # Run every configured report
    reportflow --report all

    # Run one report with a custom config, without plots
    reportflow --report covid_us --config config/pipeline_config.yaml --no-plots
"""

import argparse
import sys
from functools import reduce
from pathlib import Path
from typing import Dict, Any, List, Optional, Union

import pandas as pd

from .config import Config
from .exceptions import PipelineError, ValidationError
from .schema import Table
from .stage1.loader import Loader
from .stage2.cleaner import Cleaner, CleaningSpec
from .stage3.aggregator import Aggregator
from .stage3.reshaper import Reshaper
from .stage4.models import Modeler
from .stage4.reporter import Reporter
from .utils.logging_utils import setup_logger, get_logger, set_level

logger = get_logger(__name__)


class Pipeline:
    """
    Main pipeline orchestrator.

    Example:
        >>> pipeline = Pipeline(Config("config/pipeline_config.yaml"))
        >>> run = pipeline.run_report("covid_us")
        >>> run['model'].coefficients
    """

    def __init__(self, config: Optional[Config] = None, plots: Optional[bool] = None):
        """
        Initialize the pipeline.

        Args:
            config: Loaded configuration (defaults to Config())
            plots: Override the config's output.plots setting
        """
        self.config = config or Config()
        self.plots = self.config.get('output.plots', True) if plots is None else plots

        log_config = self.config.get('logging', {})
        file_config = log_config.get('file', {})
        setup_logger(
            log_file=file_config.get('path') if file_config.get('enabled') else None,
            level=log_config.get('level', 'INFO')
        )

        self.loader = Loader(timeout=float(self.config.get('loader.timeout', 30.0)))

    def run_all(self) -> Dict[str, Dict[str, Any]]:
        """Run every configured report, stopping at the first failure."""
        return {name: self.run_report(name) for name in self.config.report_names()}

    def run_report(self, name: str) -> Dict[str, Any]:
        """
        Run a single report.

        Args:
            name: Report name under `reports` in the config

        Returns:
            Dict with the final tables, aggregates, model result and written files
        """
        report = self.config.get_report(name)

        logger.info("=" * 80)
        logger.info(f"REPORT: {name}")
        logger.info("=" * 80)

        sources = report.get('sources') or {}
        if not sources:
            raise ValidationError(f"Report '{name}' defines no sources", stage='config')

        cleaned = {}
        tables = {}
        for source_name, source in sources.items():
            logger.info("-" * 80)
            logger.info(f"SOURCE: {source_name}")
            logger.info("-" * 80)

            cleaned[source_name], tables[source_name] = self._prepare_source(source_name, source)

        aggregates = self._run_aggregates(report.get('aggregates') or {}, tables)

        model_result = None
        model_config = report.get('model')
        if model_config:
            logger.info("-" * 80)
            logger.info("MODEL")
            logger.info("-" * 80)
            model_result = self._run_model(model_config, tables, aggregates)

        logger.info("-" * 80)
        logger.info("REPORT OUTPUTS")
        logger.info("-" * 80)

        reporter = Reporter(
            name,
            output_dir=self.config.get('output.dir', 'outputs'),
            plots_enabled=self.plots,
            config=self.config.get('output', {}),
            staged=True
        )

        plot_specs = report.get('plots') or []

        def resolve(data):
            return self._resolve(data, tables, aggregates).frame

        try:
            reporter.validate_plots(plot_specs, resolve, model_result)

            files: Dict[str, Any] = {'profile': reporter.write_profile(cleaned)}
            files['aggregates'] = reporter.write_aggregates(
                {agg_name: table.frame for agg_name, table in aggregates.items()}
            )
            if model_result is not None:
                files.update(reporter.write_model(model_result))
            files['plots'] = reporter.render_plots(plot_specs, resolve, model_result)
        except Exception:
            reporter.discard()
            raise

        files = reporter.commit(files)

        logger.info(f"✓ Report '{name}' complete")

        return {
            'report': name,
            'tables': tables,
            'aggregates': aggregates,
            'model': model_result,
            'files': files,
        }

    def _prepare_source(self, name: str, source: Dict[str, Any]):
        """Load, clean and (optionally) reshape one source; returns (cleaned, final)."""
        locator = source.get('url') or source.get('path')
        if not locator:
            raise ValidationError(f"Source '{name}' needs a url or path", stage='config')

        table = self.loader.load(locator, expected_columns=source.get('expected_columns'))

        cleaned = Cleaner(CleaningSpec.from_dict(source.get('clean'))).clean(table)

        reshape = source.get('reshape')
        if not reshape:
            return cleaned, cleaned

        reshaper = Reshaper(
            id_columns=reshape.get('id_columns', []),
            date_format=reshape.get('date_format', '%m/%d/%y'),
            date_column=reshape.get('date_column', 'Date'),
            value_column=reshape.get('value_column', 'Value'),
        )
        return cleaned, reshaper.to_long(cleaned)

    def _run_aggregates(self, definitions: Dict[str, Dict[str, Any]], tables: Dict[str, Table]) -> Dict[str, Table]:
        aggregates: Dict[str, Table] = {}

        for agg_name, definition in definitions.items():
            source = definition.get('source')
            if source not in tables:
                raise ValidationError(
                    f"Aggregate '{agg_name}' refers to unknown source '{source}'", stage='config'
                )

            aggregator = Aggregator(
                group_by=definition.get('group_by', []),
                function=definition.get('function', 'sum'),
                column=definition.get('column', 'Value'),
                count_missing=definition.get('count_missing', False),
            )
            result = aggregator.aggregate(tables[source])
            if definition.get('increments'):
                result = Aggregator.increments(result)

            table = tables[source]
            key_schema = {col: table.schema[col] for col in result.group_by}
            frame = result.to_frame(definition.get('output', agg_name))
            for col, descriptor in key_schema.items():
                if descriptor.kind == 'categorical':
                    frame[col] = pd.Categorical(
                        frame[col], categories=descriptor.labels, ordered=descriptor.ordered
                    )
            aggregates[agg_name] = Table.from_frame(frame, schema=key_schema)

        return aggregates

    def _run_model(
        self,
        model_config: Dict[str, Any],
        tables: Dict[str, Table],
        aggregates: Dict[str, Table]
    ):
        data = self._resolve(model_config.get('data'), tables, aggregates)

        modeler = Modeler(
            family=model_config.get('family', 'linear'),
            missing=model_config.get('missing', 'raise'),
            config=model_config.get('solver'),
        )
        return modeler.fit(
            data,
            outcome=model_config.get('outcome'),
            predictors=model_config.get('predictors') or [],
        )

    def _resolve(
        self,
        data: Union[str, List[str], None],
        tables: Dict[str, Table],
        aggregates: Dict[str, Table]
    ) -> Table:
        """
        Look up a named table; a list of names is inner-joined on shared columns.
        """
        names = [data] if isinstance(data, str) else list(data or [])
        if not names:
            raise ValidationError("No table named for model or plot", stage='config')

        found = []
        for table_name in names:
            if table_name in aggregates:
                found.append(aggregates[table_name])
            elif table_name in tables:
                found.append(tables[table_name])
            else:
                raise ValidationError(f"Unknown table '{table_name}'", stage='config')

        if len(found) == 1:
            return found[0]

        def join(left: pd.DataFrame, right: pd.DataFrame) -> pd.DataFrame:
            on = [c for c in left.columns if c in right.columns]
            if not on:
                raise ValidationError(f"Tables {names} share no columns to join on", stage='config')
            return left.merge(right, on=on, how='inner')

        frame = reduce(join, [t.frame for t in found])
        schema = {}
        for t in found:
            for col, descriptor in t.schema.items():
                schema.setdefault(col, descriptor)

        logger.info(f"Joined {names}: {len(frame)} rows")

        return Table.from_frame(frame, schema={c: schema[c] for c in frame.columns})


def main(argv: Optional[List[str]] = None) -> int:
    """
    CLI entry point for the pipeline.

    Usage:
        reportflow --report all
        reportflow --report nypd_shootings --output-dir /tmp/reports --verbose
    """
    parser = argparse.ArgumentParser(
        description="Tabular ETL and regression reports",
        formatter_class=argparse.RawDescriptionHelpFormatter
    )

    parser.add_argument(
        '--report',
        default='all',
        help="Report name from the config, or 'all' (default: all)"
    )

    parser.add_argument(
        '--config',
        help='Path to config file (default: config/pipeline_config.yaml)'
    )

    parser.add_argument(
        '--output-dir',
        help='Directory for report outputs (overrides output.dir)'
    )

    parser.add_argument(
        '--no-plots',
        action='store_true',
        help='Skip plot rendering'
    )

    parser.add_argument(
        '--list',
        action='store_true',
        help='List configured reports and exit'
    )

    parser.add_argument(
        '--verbose',
        action='store_true',
        help='Enable verbose logging'
    )

    args = parser.parse_args(argv)

    try:
        config = Config(args.config)
        if args.output_dir:
            config.set('output.dir', args.output_dir)

        if args.list:
            for name in config.report_names():
                print(name)
            return 0

        pipeline = Pipeline(config, plots=False if args.no_plots else None)

        if args.verbose:
            set_level('DEBUG')

        if args.report == 'all':
            pipeline.run_all()
        else:
            pipeline.run_report(args.report)

    except (PipelineError, FileNotFoundError) as e:
        logger.error(f"✗ Run failed: {e}")
        return 1

    return 0


if __name__ == '__main__':
    sys.exit(main())
