"""
Centralized, immutable settings for schemashift.

Manifesto:
    Worker counts, grouping policy, pass limits and replay variables used
    to be module-level state that any component could read. One validated,
    frozen ``MigrationSettings`` value is now built at startup and handed
    to each component's constructor; nothing reads process-wide state
    after that point.

All fields can be set via ``SCHEMASHIFT_*`` environment variables (e.g.
``SCHEMASHIFT_WORKERS=4``), a ``.env`` file, or a YAML file through
:func:`schemashift.core.config.loader.load_settings`.

Tags:
    schemashift, configuration, settings, pydantic

Doc-Types:
    api-reference
"""

from __future__ import annotations

from typing import Any

from pydantic import Field, field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict

from schemashift.core.buckets import OBJECT_TYPES
from schemashift.core.models import GroupingMode

# Types without a trustworthy modify date in common catalogs, plus foreign
# keys and indexes whose dates only track their parent table.
DEFAULT_ALWAYS_MODIFIED: frozenset[str] = frozenset(
    {
        "Role",
        "User",
        "DatabaseScopedCredential",
        "PartitionFunction",
        "PartitionScheme",
        "FileGroup",
        "DatabaseScopedConfiguration",
        "ForeignKey",
        "Index",
    }
)

MAX_WORKERS = 16
LOG_LEVELS = ("DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL")


class MigrationSettings(BaseSettings):
    """schemashift configuration for one export or replay run."""

    model_config = SettingsConfigDict(
        env_prefix="SCHEMASHIFT_",
        env_file=".env",
        env_file_encoding="utf-8",
        extra="ignore",
        env_nested_delimiter="__",
        frozen=True,
    )

    # ── Dispatch ─────────────────────────────────────────────────
    workers: int = Field(default=2, ge=1, le=MAX_WORKERS)
    progress_interval: float = Field(default=2.0, gt=0)

    # ── Planning ─────────────────────────────────────────────────
    grouping_default: GroupingMode = Field(default=GroupingMode.PER_OBJECT)
    grouping: dict[str, GroupingMode] = Field(default_factory=dict)
    type_options: dict[str, dict[str, Any]] = Field(default_factory=dict)

    # ── Catalog filters ──────────────────────────────────────────
    include_types: frozenset[str] | None = Field(default=None)
    exclude_types: frozenset[str] = Field(default_factory=frozenset)
    exclude_schemas: frozenset[str] = Field(default_factory=frozenset)
    exclude_name_patterns: tuple[str, ...] = Field(default=())

    # ── Delta ────────────────────────────────────────────────────
    always_modified_types: frozenset[str] = Field(default=DEFAULT_ALWAYS_MODIFIED)

    # ── Replay ───────────────────────────────────────────────────
    max_passes: int = Field(default=10, ge=1)
    retry_buckets: frozenset[str] = Field(default=frozenset({"Programmability"}))
    data_bucket: str = Field(default="Data")
    continue_on_error: bool = Field(default=True)
    include_data: bool = Field(default=True)
    exclude_buckets: frozenset[str] = Field(default_factory=frozenset)
    variables: dict[str, str] = Field(default_factory=dict)

    # ── Logging ──────────────────────────────────────────────────
    log_level: str = Field(default="WARNING")
    # None picks JSON when stderr is not a terminal
    log_format: str | None = Field(default=None)

    @field_validator("grouping", "type_options")
    @classmethod
    def _known_types(cls, value: dict[str, Any]) -> dict[str, Any]:
        unknown = sorted(set(value) - set(OBJECT_TYPES))
        if unknown:
            raise ValueError(f"unknown object types: {', '.join(unknown)}")
        return value

    @field_validator("log_level")
    @classmethod
    def _log_level(cls, value: str) -> str:
        value = value.upper()
        if value not in LOG_LEVELS:
            raise ValueError(f"log_level must be one of {', '.join(LOG_LEVELS)}")
        return value

    @field_validator("log_format")
    @classmethod
    def _log_format(cls, value: str | None) -> str | None:
        if value is None:
            return None
        value = value.lower()
        if value not in {"json", "console"}:
            raise ValueError("log_format must be 'json' or 'console'")
        return value

    # ── Derived ──────────────────────────────────────────────────

    @property
    def log_json(self) -> bool | None:
        """``json_format`` argument for :func:`configure_logging`."""
        if self.log_format is None:
            return None
        return self.log_format == "json"

    def grouping_for(self, object_type: str) -> GroupingMode:
        """Effective grouping mode for a type."""
        return self.grouping.get(object_type, self.grouping_default)

    def options_for(self, object_type: str) -> dict[str, Any]:
        return dict(self.type_options.get(object_type, {}))

    def is_retry_bucket(self, label: str) -> bool:
        return label.lower() in {b.lower() for b in self.retry_buckets}

    def is_data_bucket(self, label: str) -> bool:
        return label.lower() == self.data_bucket.lower()

    def is_excluded_bucket(self, label: str) -> bool:
        return label.lower() in {b.lower() for b in self.exclude_buckets}


__all__ = ["MigrationSettings", "DEFAULT_ALWAYS_MODIFIED", "MAX_WORKERS"]
