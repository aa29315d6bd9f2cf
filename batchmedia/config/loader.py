import yaml
from pathlib import Path
from typing import Any, Dict, Optional
from pydantic import ValidationError

from batchmedia.domain.errors import ConfigError
from .models import RunConfig


def load_config(config_path: Path) -> Dict[str, Any]:
    """Loads a YAML config file into a plain dict of RunConfig fields."""
    if not config_path.exists():
        raise FileNotFoundError(f"Config file not found: {config_path}")

    with open(config_path, 'r') as f:
        data = yaml.safe_load(f) or {}

    if not isinstance(data, dict):
        raise ConfigError(f"Config file must contain a mapping: {config_path}")
    return data


def _merge(base: Dict[str, Any], overrides: Dict[str, Any]) -> Dict[str, Any]:
    merged = dict(base)
    for key, value in overrides.items():
        if value is None:
            continue
        if isinstance(value, dict):
            merged[key] = _merge(merged.get(key) or {}, value)
        else:
            merged[key] = value
    return merged


def build_run_config(overrides: Dict[str, Any], file_values: Optional[Dict[str, Any]] = None) -> RunConfig:
    """Builds the immutable RunConfig; CLI overrides win over file values.

    Raises ConfigError for invalid values or a missing input directory.
    """
    data = _merge(file_values or {}, overrides)

    try:
        config = RunConfig(**data)
    except ValidationError as exc:
        messages = []
        for error in exc.errors():
            location = ".".join(str(part) for part in error.get("loc", ()))
            message = error.get("msg", "invalid value")
            messages.append(f"{location}: {message}" if location else message)
        raise ConfigError("; ".join(messages)) from exc

    if not config.input_dir.is_dir():
        raise ConfigError(f"input directory does not exist: {config.input_dir}")

    # Progress entries are keyed by path, so both roots are made absolute once
    return config.model_copy(update={
        "input_dir": config.input_dir.resolve(),
        "output_dir": config.output_dir.resolve(),
    })
