"""
File I/O utilities for the reporting pipeline.
Handles YAML config loading and JSON / CSV artifact writing.
"""

import json
import yaml
import pandas as pd
from pathlib import Path
from typing import Any, Dict, List, Union
from .logging_utils import get_logger

logger = get_logger(__name__)


def load_config(config_path: Union[str, Path]) -> Dict[str, Any]:
    """
    Load YAML configuration file.

    Args:
        config_path: Path to YAML config file

    Returns:
        Configuration dictionary (empty for an empty file)

    Raises:
        FileNotFoundError: If config file doesn't exist
        yaml.YAMLError: If YAML is malformed

    Example:
        >>> config = load_config("config/pipeline_config.yaml")
        >>> print(sorted(config['reports']))
        ['covid_us', 'nypd_shootings']
    """
    config_path = Path(config_path)

    if not config_path.exists():
        raise FileNotFoundError(f"Config file not found: {config_path}")

    logger.debug(f"Loading config from: {config_path}")

    with open(config_path, 'r') as f:
        config = yaml.safe_load(f)

    return config or {}


def save_json(
    data: Union[Dict, List],
    file_path: Union[str, Path],
    indent: int = 2
) -> Path:
    """
    Save data to JSON file, creating parent directories.

    Values JSON cannot encode natively (timestamps, numpy scalars) are
    written with str().
    """
    file_path = Path(file_path)
    file_path.parent.mkdir(parents=True, exist_ok=True)

    with open(file_path, 'w') as f:
        json.dump(data, f, indent=indent, default=str)

    logger.info(f"Saved JSON to: {file_path}")

    return file_path


def save_csv(
    df: pd.DataFrame,
    file_path: Union[str, Path],
    index: bool = False
) -> Path:
    """Save DataFrame to CSV file, creating parent directories."""
    file_path = Path(file_path)
    file_path.parent.mkdir(parents=True, exist_ok=True)

    df.to_csv(file_path, index=index)
    logger.info(f"Saved {len(df)} rows to: {file_path}")

    return file_path
