"""
Configuration Management

Loads report definitions and runtime settings from a YAML file, with
environment variable overrides (optionally read from a .env file).
"""

import copy
import os
from pathlib import Path
from typing import Dict, Any, List, Optional
from dotenv import load_dotenv

from .exceptions import ValidationError
from .utils.file_utils import load_config as load_yaml_config
from .utils.logging_utils import get_logger

logger = get_logger(__name__)

# Relative to the working directory, like .env
DEFAULT_CONFIG_FILE = Path('config') / 'pipeline_config.yaml'

DEFAULTS: Dict[str, Any] = {
    'loader': {'timeout': 30.0},
    'output': {'dir': 'outputs', 'plots': True},
    'logging': {'level': 'INFO', 'file': {'enabled': False, 'path': 'logs/reportflow.log'}},
    'reports': {},
}


class Config:
    """
    Pipeline configuration.

    Loads configuration from:
    1. Built-in defaults
    2. YAML file (config/pipeline_config.yaml under the working directory)
    3. Environment variables (.env in the working directory is read first)

    Example:
        >>> config = Config()
        >>> config.get('loader.timeout')
        30.0
    """

    def __init__(self, config_file: Optional[str] = None, env_file: Optional[str] = None):
        """
        Initialize configuration.

        Args:
            config_file: Path to YAML config file (optional)
            env_file: Path to a .env file (optional, defaults to ./.env)
        """
        env_path = Path(env_file) if env_file else Path.cwd() / '.env'
        if env_path.exists():
            load_dotenv(env_path)
            logger.info(f"Loaded environment variables from: {env_path}")

        self.config = copy.deepcopy(DEFAULTS)

        config_path = Path(config_file) if config_file else Path.cwd() / DEFAULT_CONFIG_FILE
        if config_path.exists():
            self._merge(self.config, load_yaml_config(config_path))
            logger.info(f"Loaded config from: {config_path}")
        elif config_file:
            raise FileNotFoundError(f"Config file not found: {config_path}")
        else:
            logger.warning(f"Config file not found: {config_path}")

        self.config_path = config_path
        self._apply_env_overrides()

    def _merge(self, base: Dict[str, Any], override: Dict[str, Any]):
        for key, value in override.items():
            if isinstance(value, dict) and isinstance(base.get(key), dict):
                self._merge(base[key], value)
            else:
                base[key] = value

    def _apply_env_overrides(self):
        """Apply environment variable overrides to config."""
        timeout = os.getenv('REPORTFLOW_TIMEOUT')
        if timeout:
            try:
                self.set('loader.timeout', float(timeout))
            except ValueError:
                raise ValidationError(
                    f"REPORTFLOW_TIMEOUT must be a number of seconds, got {timeout!r}",
                    stage='config'
                )

        if os.getenv('REPORTFLOW_OUTPUT_DIR'):
            self.set('output.dir', os.getenv('REPORTFLOW_OUTPUT_DIR'))

        if os.getenv('LOG_LEVEL'):
            self.set('logging.level', os.getenv('LOG_LEVEL'))

    def get(self, key: str, default: Any = None) -> Any:
        """
        Get a configuration value using dot notation.

        Example:
            >>> config.get('output.dir')
            'outputs'
            >>> config.get('nonexistent.key', 'default')
            'default'
        """
        value = self.config

        for k in key.split('.'):
            if isinstance(value, dict) and k in value:
                value = value[k]
            else:
                return default

        return value

    def set(self, key: str, value: Any):
        """Set a configuration value using dot notation."""
        keys = key.split('.')
        config = self.config

        for k in keys[:-1]:
            config = config.setdefault(k, {})

        config[keys[-1]] = value

    def report_names(self) -> List[str]:
        return list(self.config.get('reports', {}).keys())

    def get_report(self, name: str) -> Dict[str, Any]:
        """
        Get a report definition by name.

        Raises:
            ValidationError: If no report with that name is configured
        """
        reports = self.config.get('reports', {})
        if name not in reports:
            raise ValidationError(
                f"Unknown report '{name}'; configured reports: {self.report_names()}",
                stage='config'
            )
        return copy.deepcopy(reports[name])

    def to_dict(self) -> Dict[str, Any]:
        return copy.deepcopy(self.config)
