"""
Logging Configuration

Optional YAML dictConfig loading for the compose lifecycle plugin. Without an
explicit config the plugin leaves pytest's log capture untouched.
"""

from __future__ import annotations

import logging.config
import os
import string
from pathlib import Path

import yaml

from compose_lifecycle.constants import ENV_LOG_CONFIG

DEFAULT_CONFIG_PATH = Path(__file__).parent / "logging.yml"


def load_logging_config(config_path: str | Path) -> dict:
    """
    Read a YAML logging config, substituting ${VAR} references from the environment.
    """
    with open(config_path, "r", encoding="utf-8") as f:
        template = string.Template(f.read())

    mapping = os.environ.copy()
    if "LOG_LEVEL" not in mapping:
        mapping["LOG_LEVEL"] = "INFO"

    return yaml.safe_load(template.safe_substitute(mapping)) or {}


def setup_logging(config_path: str | Path | None = None) -> bool:
    """
    Apply a dictConfig from ``config_path`` or ``$COMPOSE_LIFECYCLE_LOG_CONFIG``.

    The value ``default`` selects the config bundled with the package.
    Returns True when a config was applied.
    """
    path = config_path or os.getenv(ENV_LOG_CONFIG)
    if not path:
        return False
    if str(path) == "default":
        path = DEFAULT_CONFIG_PATH
    if not os.path.exists(path):
        logging.getLogger(__name__).warning("Logging config not found: %s", path)
        return False

    logging.config.dictConfig(load_logging_config(path))
    return True
