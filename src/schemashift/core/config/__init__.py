"""Run configuration: validated settings and the YAML loader.

Quick start::

    from schemashift.core.config import load_settings

    settings = load_settings("export.yml", workers=4)
    settings.grouping_for("View")   # GroupingMode.PER_OBJECT

Architecture::

    settings.py   MigrationSettings (pydantic-settings, frozen)
    loader.py     YAML file + override layering
"""

from .loader import load_settings, read_config_file
from .settings import DEFAULT_ALWAYS_MODIFIED, MAX_WORKERS, MigrationSettings

__all__ = [
    "MigrationSettings",
    "DEFAULT_ALWAYS_MODIFIED",
    "MAX_WORKERS",
    "load_settings",
    "read_config_file",
]
