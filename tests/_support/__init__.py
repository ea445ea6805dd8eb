"""
Test support utilities for schemashift tests.

Helpers that are not fixtures: writing config files and export trees.
"""

from __future__ import annotations

import textwrap
from pathlib import Path
from typing import Any

import yaml


def write_config(
    directory: Path, content: str | dict[str, Any], name: str = "schemashift"
) -> Path:
    """Write raw YAML text or a settings mapping to ``{name}.yml``."""
    if isinstance(content, str):
        text = textwrap.dedent(content)
    else:
        text = yaml.safe_dump(content, default_flow_style=False)
    path = directory / f"{name}.yml"
    path.write_text(text, encoding="utf-8")
    return path


def write_artifacts(root: Path, files: dict[str, str]) -> Path:
    """Create an export tree from ``relative path → script`` pairs."""
    for relative, script in files.items():
        path = root / relative
        path.parent.mkdir(parents=True, exist_ok=True)
        path.write_text(script, encoding="utf-8")
    return root
