"""
Configuration management module for the budget tracker.

This module loads and saves ``config.yaml`` and merges it over the
built-in defaults, so every section the application reads is present.
"""

import copy
import logging
from pathlib import Path
from typing import Any, Dict, Optional

import yaml

from exceptions import ConfigError

logger = logging.getLogger(__name__)

# Default configuration values
DEFAULT_CONFIG: Dict[str, Any] = {
    'database': {
        'data_dir': 'data',
        'path': 'budget.db',
    },
    'logging': {
        'level': 'INFO',
        'format': '%(asctime)s - %(name)s - %(levelname)s - %(message)s',
    },
    'reports': {
        'recent_transactions_limit': 5,
    },
    'categorization': {
        'rules': [],
    },
}

CONFIG_FILE = 'config.yaml'


def _merge_defaults(config: Dict[str, Any], defaults: Dict[str, Any]) -> Dict[str, Any]:
    """
    Fill missing keys (one level of nested sections deep) from defaults.

    An empty section (``reports:`` with nothing under it) keeps its defaults.
    """
    merged = copy.deepcopy(defaults)
    for key, value in config.items():
        if value is None and isinstance(merged.get(key), dict):
            continue
        if isinstance(value, dict) and isinstance(merged.get(key), dict):
            merged[key].update(value)
        else:
            merged[key] = value
    return merged


def load_config(config_path: Optional[Path] = None) -> Dict[str, Any]:
    """
    Load configuration from a YAML file.

    A missing file yields the defaults.

    Args:
        config_path: Path to the config file (defaults to ``config.yaml``)

    Returns:
        Configuration dictionary with defaults for missing values

    Raises:
        ConfigError: If the file is not valid YAML or not a mapping
    """
    config_path = Path(config_path or CONFIG_FILE)
    if not config_path.exists():
        logger.info(f"Config file {config_path} not found; using defaults")
        return copy.deepcopy(DEFAULT_CONFIG)

    try:
        with open(config_path, 'r') as f:
            config = yaml.safe_load(f) or {}
    except yaml.YAMLError as e:
        raise ConfigError(
            "Config file is not valid YAML",
            details={"config_path": str(config_path)},
            original_error=e
        ) from e

    if not isinstance(config, dict):
        raise ConfigError("Config file must contain a mapping", details={"config_path": str(config_path)})

    logger.info("Configuration loaded successfully")
    return _merge_defaults(config, DEFAULT_CONFIG)


def save_config(config: Dict[str, Any], config_path: Optional[Path] = None) -> None:
    """
    Save configuration to a YAML file, preserving keys not in ``config``.

    Raises:
        ConfigError: If the file cannot be written
    """
    config_path = Path(config_path or CONFIG_FILE)
    try:
        existing_config: Dict[str, Any] = {}
        if config_path.exists():
            with open(config_path, 'r') as f:
                existing_config = yaml.safe_load(f) or {}

        existing_config.update(config)

        with open(config_path, 'w') as f:
            yaml.dump(existing_config, f, default_flow_style=False)
    except (OSError, yaml.YAMLError) as e:
        raise ConfigError(
            "Failed to save configuration",
            details={"config_path": str(config_path)},
            original_error=e
        ) from e

    logger.info("Configuration saved successfully")
