"""Sync configuration loaded from ``cdd.yaml`` and command-line flags."""

from __future__ import annotations

from dataclasses import dataclass, field, fields, replace
from pathlib import Path
from typing import Any, Final

import yaml

from cdd_tools.shared.errors import ConfigError

DEFAULT_CONFIG_FILE: Final[str] = "cdd.yaml"

_PATH_KEYS: Final[frozenset[str]] = frozenset({
    "openapi_path",
    "handlers_dir",
    "route_config_path",
    "models_path",
    "tests_path",
})


@dataclass(frozen=True, slots=True)
class SyncConfig:
    """Where the contract lives and which generated files to keep in sync."""

    openapi_path: Path = Path("docs/openapi.yaml")
    handlers_dir: Path = Path("src/handlers")
    route_config_path: Path | None = None
    models_path: Path | None = None
    tests_path: Path | None = None
    app_factory: str = "crate::http::routes::config"
    type_overrides: dict[str, dict[str, str]] = field(default_factory=dict)
    strategy: str = "actix"

    @classmethod
    def from_mapping(cls, data: dict[str, Any], source_path: str | None = None) -> SyncConfig:
        """Build a config from a parsed mapping, validating keys and value types.

        Relative paths are kept as written.

        Raises:
            ConfigError: On unknown keys or wrongly typed values.
        """
        known = {f.name for f in fields(cls)}
        unknown = sorted(set(data) - known)
        if unknown:
            raise ConfigError(f"Unknown config keys: {', '.join(unknown)}", source_path)

        values: dict[str, Any] = {}
        for key, value in data.items():
            if value is None:
                continue
            if key in _PATH_KEYS:
                if not isinstance(value, str):
                    raise ConfigError(f"'{key}' must be a path string", source_path)
                values[key] = Path(value)
            elif key == "type_overrides":
                values[key] = _parse_overrides(value, source_path)
            elif not isinstance(value, str):
                raise ConfigError(f"'{key}' must be a string", source_path)
            else:
                values[key] = value
        return cls(**values)

    def with_overrides(self, **overrides: Any) -> SyncConfig:
        """Return a copy with every non-``None`` override applied."""
        return replace(self, **{k: v for k, v in overrides.items() if v is not None})


def _parse_overrides(value: Any, source_path: str | None) -> dict[str, dict[str, str]]:
    if not isinstance(value, dict):
        raise ConfigError("'type_overrides' must map declaration names to field mappings", source_path)
    overrides: dict[str, dict[str, str]] = {}
    for declaration, field_types in value.items():
        if not isinstance(field_types, dict) or not all(
            isinstance(name, str) and isinstance(type_text, str)
            for name, type_text in field_types.items()
        ):
            raise ConfigError(
                f"'type_overrides.{declaration}' must map field names to type strings",
                source_path,
            )
        overrides[str(declaration)] = dict(field_types)
    return overrides


def load_config(path: Path | None = None) -> SyncConfig:
    """Load configuration from ``path``, or from ``cdd.yaml`` if it exists.

    A missing default file yields the default configuration; a missing
    explicit file is an error. Settings may sit at the top level or under a
    ``cdd:`` key.

    Raises:
        ConfigError: If the file is unreadable, malformed or invalid.
    """
    explicit = path is not None
    config_path = path if path is not None else Path(DEFAULT_CONFIG_FILE)
    if not config_path.exists():
        if explicit:
            raise ConfigError("Config file not found", str(config_path))
        return SyncConfig()

    try:
        data = yaml.safe_load(config_path.read_text(encoding="utf-8"))
    except (OSError, yaml.YAMLError) as e:
        raise ConfigError(f"Cannot load config: {e}", str(config_path)) from e

    if data is None:
        return SyncConfig()
    if isinstance(data, dict) and isinstance(data.get("cdd"), dict) and len(data) == 1:
        data = data["cdd"]
    if not isinstance(data, dict):
        raise ConfigError("Config root must be a mapping", str(config_path))
    return SyncConfig.from_mapping(data, str(config_path))
