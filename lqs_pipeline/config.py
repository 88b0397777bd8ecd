"""Configuration helpers for the LQS ingestion pipeline."""
from __future__ import annotations

import json
import logging
import os
from dataclasses import dataclass
from pathlib import Path
from typing import Any, Dict, Mapping, Optional

import yaml

from .errors import ConfigurationError
from .ingestion.models import PhoneComparison

LOGGER = logging.getLogger(__name__)

_SUPPORTED_EXTENSIONS = {".json", ".yaml", ".yml"}

DEFAULT_BATCH_SIZE = 50
DEFAULT_PARSE_TIMEOUT_SECONDS = 60.0
DEFAULT_INTER_BATCH_DELAY_SECONDS = 0.5
DEFAULT_COMMISSION_RATE = 0.22


def load_configuration(path: str | Path) -> Dict[str, Any]:
    """Load configuration data from a JSON or YAML file."""

    file_path = Path(path)
    if not file_path.exists():
        raise ConfigurationError(f"Configuration file '{file_path}' was not found")

    if file_path.suffix.lower() not in _SUPPORTED_EXTENSIONS:
        raise ConfigurationError(
            f"Unsupported configuration format '{file_path.suffix}'. Supported extensions: {sorted(_SUPPORTED_EXTENSIONS)}"
        )

    text = file_path.read_text(encoding="utf-8")
    try:
        if file_path.suffix.lower() == ".json":
            data = json.loads(text)
        else:
            data = yaml.safe_load(text)
    except (json.JSONDecodeError, yaml.YAMLError) as exc:
        raise ConfigurationError(f"Configuration file '{file_path}' is malformed: {exc}") from exc

    if data is None:
        return {}
    if not isinstance(data, dict):
        raise ConfigurationError(f"Configuration file '{file_path}' must contain a mapping at the top level")
    return data


def expand_options(options: Mapping[str, Any]) -> Dict[str, Any]:
    """Expand ``$VAR`` references in string options so secrets can stay in the environment."""

    return {key: os.path.expandvars(value) if isinstance(value, str) else value for key, value in options.items()}


@dataclass
class UploadSettings:
    """Tunables of the background upload."""

    batch_size: int = DEFAULT_BATCH_SIZE
    parse_timeout_seconds: float = DEFAULT_PARSE_TIMEOUT_SECONDS
    inter_batch_delay_seconds: float = DEFAULT_INTER_BATCH_DELAY_SECONDS
    writes_per_minute: Optional[float] = None
    phone_comparison: PhoneComparison = PhoneComparison.EXACT


def load_settings(config: Mapping[str, Any]) -> UploadSettings:
    """Build :class:`UploadSettings` from the ``upload`` section, validating values."""

    section = config.get("upload") or {}
    if not isinstance(section, Mapping):
        raise ConfigurationError("The 'upload' configuration section must be a mapping")

    try:
        settings = UploadSettings(
            batch_size=int(section.get("batch_size", DEFAULT_BATCH_SIZE)),
            parse_timeout_seconds=float(section.get("parse_timeout_seconds", DEFAULT_PARSE_TIMEOUT_SECONDS)),
            inter_batch_delay_seconds=float(
                section.get("inter_batch_delay_seconds", DEFAULT_INTER_BATCH_DELAY_SECONDS)
            ),
            writes_per_minute=float(section["writes_per_minute"]) if section.get("writes_per_minute") else None,
            phone_comparison=PhoneComparison(str(section.get("phone_comparison", PhoneComparison.EXACT.value)).lower()),
        )
    except (TypeError, ValueError) as exc:
        raise ConfigurationError(f"Invalid upload settings: {exc}") from exc

    if settings.batch_size < 1:
        raise ConfigurationError("upload.batch_size must be at least 1")
    if settings.parse_timeout_seconds <= 0:
        raise ConfigurationError("upload.parse_timeout_seconds must be positive")
    if settings.inter_batch_delay_seconds < 0:
        raise ConfigurationError("upload.inter_batch_delay_seconds cannot be negative")
    return settings


def commission_rate(config: Mapping[str, Any]) -> float:
    try:
        return float(config.get("commission_rate", DEFAULT_COMMISSION_RATE))
    except (TypeError, ValueError) as exc:
        raise ConfigurationError(f"Invalid commission_rate: {exc}") from exc


__all__ = [
    "ConfigurationError",
    "UploadSettings",
    "commission_rate",
    "expand_options",
    "load_configuration",
    "load_settings",
]
