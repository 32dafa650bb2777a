"""
Visualization Module

Creates the report plots:
- Line plots of a series over calendar date, one line per category
- Scatter plots of two coordinate columns colored by category
- Hour-of-day histograms colored by category
- Residual diagnostics (histogram, index plot, Q-Q plot)
"""

import pandas as pd
import numpy as np
import matplotlib.pyplot as plt
import seaborn as sns
from scipy import stats
from pathlib import Path
from typing import Dict, Any, List, Optional, Union

from ..utils.logging_utils import get_logger

logger = get_logger(__name__)

# Set style
sns.set_style("whitegrid")
plt.rcParams['font.size'] = 10


class Visualizer:
    """
    Creates and saves report plots.

    Example:
        >>> viz = Visualizer(output_dir="outputs/covid_us/plots")
        >>> viz.plot_series(daily, x='Date', y=['cases', 'deaths'], name='daily_totals')
    """

    def __init__(
        self,
        output_dir: Union[str, Path] = "outputs/plots",
        config: Optional[Dict[str, Any]] = None
    ):
        """
        Initialize the Visualizer.

        Args:
            output_dir: Directory to save plots
            config: Configuration dictionary (dpi, figsize)
        """
        self.output_dir = Path(output_dir)
        self.output_dir.mkdir(parents=True, exist_ok=True)

        self.config = {
            'dpi': 150,
            'figsize': (12, 7),
        }

        if config:
            self.config.update(config)

        logger.debug(f"Initialized Visualizer (output: {self.output_dir})")

    def _save(self, fig, name: str) -> Path:
        file_path = self.output_dir / f"{name}.png"
        fig.savefig(file_path, dpi=self.config['dpi'], bbox_inches='tight')
        plt.close(fig)
        logger.info(f"Saved plot: {file_path.name}")
        return file_path

    def plot_series(
        self,
        df: pd.DataFrame,
        x: str,
        y: Union[str, List[str]],
        name: str,
        hue: Optional[str] = None,
        title: Optional[str] = None,
        log_scale: bool = False
    ) -> Path:
        """
        Line plot of one or more numeric series over a date column.

        Args:
            df: Data to plot
            x: Date column
            y: Value column, or several value columns drawn as separate lines
            name: File name (without extension)
            hue: Categorical column, one line per label (single y only)
            title: Plot title
            log_scale: Use a log y axis

        Returns:
            Path to saved plot
        """
        if isinstance(y, list):
            if hue:
                raise ValueError("hue cannot be combined with several y columns")
            plot_df = df.melt(id_vars=[x], value_vars=y, var_name='series', value_name='value')
            y_col, hue = 'value', 'series'
        else:
            plot_df, y_col = df, y

        fig, ax = plt.subplots(figsize=self.config['figsize'])

        sns.lineplot(data=plot_df, x=x, y=y_col, hue=hue, ax=ax, linewidth=1.5)

        if log_scale:
            ax.set_yscale('log')

        ax.set_xlabel(x, fontsize=12)
        ax.set_ylabel(y_col if isinstance(y, str) else 'Value', fontsize=12)
        ax.set_title(title or name.replace('_', ' ').title(), fontsize=14, fontweight='bold')
        ax.grid(True, alpha=0.3)
        fig.autofmt_xdate()

        plt.tight_layout()

        return self._save(fig, name)

    def plot_scatter(
        self,
        df: pd.DataFrame,
        x: str,
        y: str,
        name: str,
        hue: Optional[str] = None,
        title: Optional[str] = None
    ) -> Path:
        """Scatter plot of two coordinate columns colored by category."""
        fig, ax = plt.subplots(figsize=self.config['figsize'])

        sns.scatterplot(data=df, x=x, y=y, hue=hue, ax=ax, s=8, alpha=0.5, linewidth=0)

        ax.set_xlabel(x, fontsize=12)
        ax.set_ylabel(y, fontsize=12)
        ax.set_title(title or name.replace('_', ' ').title(), fontsize=14, fontweight='bold')

        plt.tight_layout()

        return self._save(fig, name)

    def plot_hour_histogram(
        self,
        df: pd.DataFrame,
        hour: str,
        name: str,
        hue: Optional[str] = None,
        title: Optional[str] = None
    ) -> Path:
        """Histogram of an hour-of-day column (0-23), stacked by category."""
        plot_df = df[df[hour].notna()].copy()
        plot_df[hour] = plot_df[hour].astype(int)

        fig, ax = plt.subplots(figsize=self.config['figsize'])

        sns.histplot(
            data=plot_df, x=hour, hue=hue, discrete=True,
            multiple='stack' if hue else 'layer', ax=ax
        )

        ax.set_xticks(range(24))
        ax.set_xlabel('Hour of day', fontsize=12)
        ax.set_ylabel('Count', fontsize=12)
        ax.set_title(title or name.replace('_', ' ').title(), fontsize=14, fontweight='bold')

        plt.tight_layout()

        return self._save(fig, name)

    def plot_residuals(
        self,
        residuals: np.ndarray,
        name: str,
        title: Optional[str] = None
    ) -> Path:
        """
        Residual diagnostics: histogram, residual-vs-index plot and Q-Q plot.

        Args:
            residuals: One residual per training row, in row order
            name: File name (without extension)
            title: Figure title

        Returns:
            Path to saved plot
        """
        residuals = np.asarray(residuals, dtype=float)

        fig, (ax1, ax2, ax3) = plt.subplots(1, 3, figsize=(18, 6))

        # Histogram
        ax1.hist(residuals, bins=min(50, max(10, len(residuals) // 5)), edgecolor='black', alpha=0.7)
        ax1.axvline(0, color='red', linestyle='--', linewidth=2, label='Zero')
        ax1.set_xlabel('Residual', fontsize=12)
        ax1.set_ylabel('Frequency', fontsize=12)
        ax1.set_title('Residual Distribution', fontsize=12, fontweight='bold')
        ax1.legend()

        # Index plot
        ax2.plot(np.arange(len(residuals)), residuals, 'o', markersize=3, alpha=0.6)
        ax2.axhline(0, color='red', linestyle='--', linewidth=2)
        ax2.set_xlabel('Index', fontsize=12)
        ax2.set_ylabel('Residual', fontsize=12)
        ax2.set_title('Residuals by Index', fontsize=12, fontweight='bold')

        # Q-Q plot
        stats.probplot(residuals, dist="norm", plot=ax3)
        ax3.set_title('Q-Q Plot', fontsize=12, fontweight='bold')

        fig.suptitle(title or f'Residual Analysis - {name}', fontsize=14, fontweight='bold')

        plt.tight_layout()

        return self._save(fig, name)
