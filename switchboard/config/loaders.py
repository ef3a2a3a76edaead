"""
Locating and reading the YAML configuration file.

Relative paths are anchored at the project root (the directory holding
``switchboard/`` and ``config/``), so the service reads the same file no
matter which directory it was launched from. ``${VAR}`` references are
expanded from the environment before the YAML is parsed.
"""

import os
from pathlib import Path
from typing import Any, Dict, Union

import yaml

PROJECT_ROOT = Path(__file__).resolve().parents[2]

DEFAULT_CONFIG_PATH = "config/switchboard.yaml"


def resolve_config_path(path: Union[str, Path]) -> str:
    """Return ``path`` as an absolute path, anchoring relative ones at the project root."""
    candidate = Path(path)
    if not candidate.is_absolute():
        candidate = PROJECT_ROOT / candidate
    return str(candidate)


def load_yaml_with_env_expansion(path: Union[str, Path]) -> Dict[str, Any]:
    """
    Read a YAML mapping, expanding environment references first.

    An empty file yields ``{}``.

    Raises:
        FileNotFoundError: the file does not exist
        yaml.YAMLError: the file is not valid YAML or its top level is not a mapping
    """
    config_path = Path(path)
    if not config_path.is_file():
        raise FileNotFoundError(f"Configuration file not found at: {config_path}")

    text = os.path.expandvars(config_path.read_text(encoding="utf-8"))
    try:
        data = yaml.safe_load(text)
    except yaml.YAMLError as exc:
        raise yaml.YAMLError(f"Error parsing {config_path.name}: {exc}") from exc

    if data is None:
        return {}
    if not isinstance(data, dict):
        raise yaml.YAMLError(f"{config_path.name} must contain a mapping at the top level")
    return data
