"""Batch splitting and script-variable substitution for replay.

Artifacts are written as batches separated by ``GO`` lines, the convention
understood by sqlcmd and most SQL tooling. ``GO`` is not SQL; it is a client
directive, so it is handled here and never sent to the target store.

Recognised separator lines::

    GO
    GO            (trailing whitespace)
      GO          (leading whitespace)
    GO -- note    (trailing comment)
    GO 3          (repeat the preceding batch three times)

Variables use the sqlcmd ``$(NAME)`` form. They are substituted before
splitting so a variable may expand to text containing its own ``GO`` lines.
"""

from __future__ import annotations

import re
from collections.abc import Mapping

from schemashift.core.errors import MissingVariableError

_GO_LINE = re.compile(r"^\s*GO(?:\s+(?P<count>\d+))?\s*(?:--.*)?$", re.IGNORECASE)
_VARIABLE = re.compile(r"\$\((?P<name>[A-Za-z_][A-Za-z0-9_]*)\)")


def split_batches(script: str) -> list[str]:
    """Split a script into executable batches.

    Batches consisting only of whitespace are dropped. A repeat count
    expands into that many copies of the batch.
    """
    batches: list[str] = []
    current: list[str] = []

    for line in script.splitlines():
        match = _GO_LINE.match(line)
        if match is None:
            current.append(line)
            continue
        body = "\n".join(current).strip()
        current = []
        if not body:
            continue
        count = int(match.group("count") or 1)
        batches.extend([body] * count)

    tail = "\n".join(current).strip()
    if tail:
        batches.append(tail)
    return batches


def find_variables(script: str) -> list[str]:
    """Names of all ``$(NAME)`` variables referenced by a script, in order."""
    seen: dict[str, None] = {}
    for match in _VARIABLE.finditer(script):
        seen.setdefault(match.group("name"), None)
    return list(seen)


def substitute_variables(script: str, variables: Mapping[str, str]) -> str:
    """Replace ``$(NAME)`` references; undefined names raise MissingVariableError."""
    missing = [name for name in find_variables(script) if name not in variables]
    if missing:
        raise MissingVariableError(missing)
    return _VARIABLE.sub(lambda m: str(variables[m.group("name")]), script)


__all__ = ["split_batches", "find_variables", "substitute_variables"]
