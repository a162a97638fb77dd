"""Configuration management."""

import copy
import yaml
from pathlib import Path
from typing import Any, Dict

_config: Dict[str, Any] = {}
_base_path: Path = None

DEFAULTS: Dict[str, Any] = {
    "timezone": "America/Montreal",
    "database": {"path": "data/roster.db"},
    "logging": {"file": "logs/roster.log", "level": "INFO"},
    "api": {"host": "127.0.0.1", "port": 8000},
    "tasks": {"registration_lead_days": 7, "assignment_strategy": "random"},
    "scheduler": {"sweep_interval": 1},
    "demo": {"seed": True},
}


def load_config(config_path: str = None) -> Dict[str, Any]:
    """Load configuration from YAML file."""
    global _config, _base_path

    if config_path is None:
        # Try to find config in common locations
        possible_paths = [
            Path("config/config.yaml"),
            Path("config.yaml"),
            Path.home() / ".config" / "roster" / "config.yaml",
        ]
        for path in possible_paths:
            if path.exists():
                config_path = str(path)
                break
        else:
            raise FileNotFoundError(
                "No config.yaml found. Copy config/config.example.yaml to config/config.yaml "
                "and fill in your values."
            )

    config_path = Path(config_path)
    _base_path = config_path.resolve().parent.parent  # Project root

    with open(config_path) as f:
        loaded = yaml.safe_load(f) or {}

    _config = _merge(DEFAULTS, loaded)

    # Resolve relative paths
    _resolve_paths()

    return _config


def _merge(base: Dict[str, Any], override: Dict[str, Any]) -> Dict[str, Any]:
    """Recursively overlay ``override`` on top of ``base``."""
    merged = copy.deepcopy(base)
    for key, value in override.items():
        if isinstance(value, dict) and isinstance(merged.get(key), dict):
            merged[key] = _merge(merged[key], value)
        else:
            merged[key] = value
    return merged


def _resolve_paths():
    """Resolve relative paths in config to absolute paths."""
    global _config

    if "database" in _config:
        path = Path(_config["database"]["path"])
        if not path.is_absolute():
            _config["database"]["path"] = str(_base_path / path)

    if "logging" in _config:
        path = Path(_config["logging"]["file"])
        if not path.is_absolute():
            _config["logging"]["file"] = str(_base_path / path)


def get_config() -> Dict[str, Any]:
    """Get the loaded configuration."""
    if not _config:
        load_config()
    return _config


def get(key: str, default: Any = None) -> Any:
    """Get a config value by dot-notation key (e.g., 'database.path')."""
    if not _config:
        load_config()

    keys = key.split(".")
    value = _config
    for k in keys:
        if isinstance(value, dict) and k in value:
            value = value[k]
        else:
            return default
    return value
