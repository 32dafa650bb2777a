"""
Utility modules for the reporting pipeline.
Provides common functionality for logging, file I/O, and column statistics.
"""

from .logging_utils import setup_logger, get_logger, set_level
from .file_utils import load_config, save_json, save_csv
from .stats_utils import infer_column_type, convert_column, calculate_basic_stats

__all__ = [
    'setup_logger',
    'get_logger',
    'set_level',
    'load_config',
    'save_json',
    'save_csv',
    'infer_column_type',
    'convert_column',
    'calculate_basic_stats',
]
