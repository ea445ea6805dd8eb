"""
YAML settings loader.

Loads a run configuration from a YAML file and layers explicit overrides
(typically CLI flags) on top of it.

File Format (YAML)::

    workers: 4
    grouping_default: per-object
    grouping:
      FileGroup: per-type
    exclude_schemas: [staging]
    exclude_name_patterns: ["dbo.tmp_*", "*_backup"]
    type_options:
      Table:
        include_permissions: true
    max_passes: 10
    variables:
      FG_DATA_PATH_FILE: /var/opt/mssql/data/TestDb_Data.ndf
"""

from __future__ import annotations

from pathlib import Path
from typing import Any

import yaml
from pydantic import ValidationError

from schemashift.core.config.settings import MigrationSettings
from schemashift.core.errors import InvalidConfigError
from schemashift.core.logging import get_logger

logger = get_logger(__name__)


def read_config_file(path: Path | str) -> dict[str, Any]:
    """Read a YAML configuration file into a plain mapping."""
    path = Path(path)
    try:
        data = yaml.safe_load(path.read_text(encoding="utf-8"))
    except OSError as e:
        raise InvalidConfigError("config", str(path), f"Cannot read config file {path}: {e}") from e
    except yaml.YAMLError as e:
        raise InvalidConfigError("config", str(path), f"Invalid YAML in {path}: {e}") from e

    if data is None:
        return {}
    if not isinstance(data, dict):
        raise InvalidConfigError(
            "config", str(path), f"Config file {path} must contain a mapping, got {type(data).__name__}"
        )
    return data


def load_settings(path: Path | str | None = None, **overrides: Any) -> MigrationSettings:
    """
    Build settings from an optional YAML file plus keyword overrides.

    Overrides whose value is ``None`` are ignored so CLI options that were
    not given do not mask file values.

    Raises:
        InvalidConfigError: unreadable file, non-mapping content, or values
            that fail validation
    """
    data: dict[str, Any] = read_config_file(path) if path is not None else {}
    data.update({k: v for k, v in overrides.items() if v is not None})

    try:
        settings = MigrationSettings(**data)
    except ValidationError as e:
        raise InvalidConfigError("config", data, f"Invalid configuration: {e}") from e

    logger.debug(
        "config.loaded",
        path=str(path) if path else None,
        workers=settings.workers,
        grouping_default=settings.grouping_default.value,
    )
    return settings


__all__ = ["read_config_file", "load_settings"]
