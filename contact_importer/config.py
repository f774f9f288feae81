"""Configuration helpers for the contact importer."""
from __future__ import annotations

import json
import logging
import os
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Dict, Mapping, Optional

import yaml

LOGGER = logging.getLogger(__name__)

CONFIG_ENV_VAR = "CONTACT_IMPORTER_CONFIG"
TOKEN_ENV_VAR = "CONTACT_IMPORTER_API_TOKEN"
DEFAULT_CHECKPOINT_DIR = Path("~/.contact_importer/checkpoints")


class ConfigurationError(RuntimeError):
    """Raised when configuration files are missing or malformed."""


_SUPPORTED_EXTENSIONS = {".json", ".yaml", ".yml"}


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
    if file_path.suffix.lower() == ".json":
        try:
            data = json.loads(text)
        except json.JSONDecodeError as exc:
            raise ConfigurationError(f"Configuration file '{file_path}' is not valid JSON: {exc}") from exc
    else:
        try:
            data = yaml.safe_load(text)
        except yaml.YAMLError as exc:
            raise ConfigurationError(f"Configuration file '{file_path}' is not valid YAML: {exc}") from exc

    if data is None:
        return {}
    if not isinstance(data, dict):
        raise ConfigurationError(f"Configuration file '{file_path}' must contain a mapping at the top level")
    return data


def _section(config: Mapping[str, Any], name: str) -> Mapping[str, Any]:
    section = config.get(name) or {}
    if not isinstance(section, Mapping):
        raise ConfigurationError(f"Configuration section '{name}' must be a mapping")
    return section


def _optional_float(value: Any, name: str) -> Optional[float]:
    if value is None or value == "":
        return None
    try:
        return float(value)
    except (TypeError, ValueError) as exc:
        raise ConfigurationError(f"'{name}' must be a number") from exc


@dataclass
class ImporterSettings:
    """Runtime settings for an import, usually read from a config file."""

    api_base_url: Optional[str] = None
    api_token: Optional[str] = None
    request_timeout: Optional[float] = 30.0
    checkpoint_dir: Path = DEFAULT_CHECKPOINT_DIR
    freshness_days: float = 7.0
    batch_size: int = 25
    rate_limit_per_minute: Optional[float] = None
    delay_seconds: float = 0.0
    writer_class: Optional[str] = None
    writer_options: Dict[str, Any] = field(default_factory=dict)

    @classmethod
    def from_mapping(cls, config: Mapping[str, Any]) -> "ImporterSettings":
        api = _section(config, "api")
        checkpoints = _section(config, "checkpoints")
        import_section = _section(config, "import")
        writer = _section(config, "writer")

        batch_size = import_section.get("batch_size", 25)
        if isinstance(batch_size, bool) or not isinstance(batch_size, int) or batch_size <= 0:
            raise ConfigurationError("'import.batch_size' must be a positive integer")

        freshness_days = _optional_float(checkpoints.get("freshness_days", 7), "checkpoints.freshness_days")
        if freshness_days is None or freshness_days <= 0:
            raise ConfigurationError("'checkpoints.freshness_days' must be positive")

        options = writer.get("options", {})
        if not isinstance(options, Mapping):
            raise ConfigurationError("'writer.options' must be a mapping")

        return cls(
            api_base_url=api.get("base_url"),
            api_token=api.get("token"),
            request_timeout=_optional_float(api.get("timeout", 30.0), "api.timeout"),
            checkpoint_dir=Path(checkpoints.get("directory") or DEFAULT_CHECKPOINT_DIR),
            freshness_days=freshness_days,
            batch_size=batch_size,
            rate_limit_per_minute=_optional_float(writer.get("rate_limit_per_minute"), "writer.rate_limit_per_minute"),
            delay_seconds=_optional_float(writer.get("delay_seconds"), "writer.delay_seconds") or 0.0,
            writer_class=writer.get("class"),
            writer_options=dict(options),
        )


def load_settings(
    path: str | Path | None = None,
    *,
    environ: Optional[Mapping[str, str]] = None,
) -> ImporterSettings:
    """Build settings from ``path`` or ``$CONTACT_IMPORTER_CONFIG``.

    Without either, defaults are used. ``$CONTACT_IMPORTER_API_TOKEN``
    overrides any token found in the file.
    """

    environ = os.environ if environ is None else environ
    config_path = path or environ.get(CONFIG_ENV_VAR)
    if config_path:
        settings = ImporterSettings.from_mapping(load_configuration(config_path))
    else:
        LOGGER.debug("No configuration file given, using defaults")
        settings = ImporterSettings()

    token = environ.get(TOKEN_ENV_VAR)
    if token:
        settings.api_token = token
    return settings


__all__ = [
    "CONFIG_ENV_VAR",
    "ConfigurationError",
    "ImporterSettings",
    "TOKEN_ENV_VAR",
    "load_configuration",
    "load_settings",
]
