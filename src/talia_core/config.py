"""Configuration loading for talia-core."""

from __future__ import annotations

import logging
from dataclasses import dataclass, field, fields
from pathlib import Path
from typing import Any

import yaml

from talia_core.exceptions import ConfigError

DEFAULT_LOCAL_URI = "http://localnode.org/"


@dataclass
class TaliaConfig:
    """Settings for a SourceStore.

    ``default_namespace`` is derived from ``local_uri`` when not given.
    """

    db_path: str = ":memory:"
    rdf_path: str | None = None
    rdf_format: str = "trig"
    rdf_context: str | None = None
    local_uri: str = DEFAULT_LOCAL_URI
    default_namespace: str | None = None
    namespaces: dict[str, str] = field(default_factory=dict)
    default_language: str = "en"
    log_level: str = "WARNING"

    def __post_init__(self) -> None:
        if not self.local_uri.endswith(("/", "#")):
            self.local_uri += "/"
        if self.default_namespace is None:
            self.default_namespace = self.local_uri + "default/"

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> TaliaConfig:
        known = {f.name for f in fields(cls)}
        unknown = sorted(set(data) - known)
        if unknown:
            raise ConfigError(f"Unknown configuration keys: {', '.join(unknown)}")
        namespaces = data.get("namespaces") or {}
        if not isinstance(namespaces, dict):
            raise ConfigError("Field 'namespaces' must be a mapping")
        values = dict(data)
        values["namespaces"] = {str(k): str(v) for k, v in namespaces.items()}
        for key in ("db_path", "rdf_path"):
            if values.get(key) is not None:
                values[key] = str(values[key])
        return cls(**values)


def load_config(source: str | Path | dict[str, Any]) -> TaliaConfig:
    """Load a configuration from a YAML file, a YAML string, or a dict.

    Raises:
        ConfigError: If the data is not a mapping or has unknown keys
        FileNotFoundError: If the file does not exist
    """
    if isinstance(source, dict):
        data = source
    elif isinstance(source, Path) or _is_file_path(source):
        path = Path(source)
        if not path.exists():
            raise FileNotFoundError(f"File not found: {path}")
        with open(path, "r", encoding="utf-8") as f:
            data = _safe_load(f)
    else:
        data = _safe_load(source)

    if data is None:
        data = {}
    if not isinstance(data, dict):
        raise ConfigError("Configuration root must be a mapping (dictionary)")
    return TaliaConfig.from_dict(data)


def configure_logging(config: TaliaConfig) -> None:
    """Set the level of the ``talia_core`` logger hierarchy."""
    level = logging.getLevelName(config.log_level.upper())
    if not isinstance(level, int):
        raise ConfigError(f"Unknown log level: {config.log_level}")
    if not logging.getLogger().handlers:
        logging.basicConfig(format="%(levelname)s %(name)s: %(message)s")
    logging.getLogger("talia_core").setLevel(level)


def _is_file_path(s: str) -> bool:
    # Inline YAML mappings contain "key: value" or span several lines
    if "\n" in s or ": " in s:
        return False
    if "/" in s or "\\" in s:
        return True
    return s.endswith((".yaml", ".yml"))


def _safe_load(stream) -> Any:
    try:
        return yaml.safe_load(stream)
    except yaml.YAMLError as e:
        raise ConfigError(f"Invalid YAML: {e}") from e
