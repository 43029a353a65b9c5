#!/usr/bin/env python3
# CUI // SP-CTI
"""Generator configuration.

Reads args/kms_config.yaml and merges it over built-in defaults. String
values support ${VAR:-default} environment expansion.
"""

import copy
import logging
import os
import re
from pathlib import Path
from typing import Dict, Optional, Union

import yaml

from kms_module.errors import ConfigurationError

logger = logging.getLogger("kms_module.config")

BASE_DIR = Path(__file__).resolve().parent.parent
DEFAULT_CONFIG_PATH = BASE_DIR / "args" / "kms_config.yaml"

DEFAULT_CONFIG = {
    "terraform": {
        "required_version": ">= 1.5.0",
        "provider_source": "hashicorp/google",
        "provider_version": ">= 5.0",
    },
    "output": {
        "directory": "terraform-kms",
        "module_dir": "modules/kms",
        "module_name": "kms",
        "header": True,
    },
    "logging": {
        "level": "INFO",
        "format": "%(asctime)s [%(name)s] %(levelname)s: %(message)s",
    },
    "lookup": {
        "backend": "none",
        "inventory_path": "",
    },
}


def _expand_env(value):
    """Expand ${VAR:-default} patterns in string values."""
    if not isinstance(value, str):
        return value
    pattern = r'\$\{([^}]+)\}'
    def replacer(match):
        expr = match.group(1)
        if ":-" in expr:
            var, default = expr.split(":-", 1)
            return os.environ.get(var, default)
        return os.environ.get(expr, match.group(0))
    return re.sub(pattern, replacer, value)


def _expand_all(node):
    if isinstance(node, dict):
        return {k: _expand_all(v) for k, v in node.items()}
    if isinstance(node, list):
        return [_expand_all(v) for v in node]
    return _expand_env(node)


def _merge(base: Dict, override: Dict) -> Dict:
    result = copy.deepcopy(base)
    for key, value in override.items():
        if isinstance(value, dict) and isinstance(result.get(key), dict):
            result[key] = _merge(result[key], value)
        else:
            result[key] = value
    return result


def load_config(config_path: Optional[Union[str, Path]] = None) -> Dict:
    """Load generator configuration.

    Args:
        config_path: YAML file to read. Defaults to args/kms_config.yaml;
            a missing default file falls back to DEFAULT_CONFIG, a missing
            explicit file is an error.

    Returns:
        Configuration dict with every DEFAULT_CONFIG key present.
    """
    explicit = config_path is not None
    path = Path(config_path) if explicit else DEFAULT_CONFIG_PATH

    if not path.exists():
        if explicit:
            raise ConfigurationError(f"Config file not found: {path}")
        logger.debug("No config at %s, using defaults", path)
        return _expand_all(copy.deepcopy(DEFAULT_CONFIG))

    try:
        with open(path, "r", encoding="utf-8") as f:
            data = yaml.safe_load(f) or {}
    except yaml.YAMLError as exc:
        raise ConfigurationError(f"Cannot parse config {path}: {exc}") from exc
    if not isinstance(data, dict):
        raise ConfigurationError(f"Config {path} must be a mapping")

    config = _expand_all(_merge(DEFAULT_CONFIG, data))
    if not isinstance(config["output"].get("header"), bool):
        raise ConfigurationError("output.header must be true or false",
                                 config_key="output.header")
    logger.debug("Loaded config from %s", path)
    return config
