"""Catalog provider protocol - the seam between the scheduler and a store.

Manifesto:
    The scheduler never knows how a store enumerates its catalog or how it
    scripts an object. It only knows object *types*, and for every type it
    supports, a provider registers one ``TypeHandler`` carrying three
    callables. The registry is built once, when the provider is created,
    and is read-only afterwards, so workers can share it freely while each
    owns its own ``ProviderSession``.

ARCHITECTURE
────────────
::

    CatalogProvider
      ├── .name                       ─ "sqlite", "fake", ...
      ├── .registry: TypeRegistry     ─ type → TypeHandler (built once)
      └── .connect() → ProviderSession

    TypeHandler(object_type, enumerate, lookup, generate)
      enumerate(session)                     → iterable of CatalogObject
      lookup(session, identity)              → CatalogObject | raises ObjectLookupFailure
      generate(session, objects, options)    → script text (batches ending in GO)

    ProviderSession
      ├── execute_batch(sql) → Result[int]   ─ Err for expected failures
      ├── suspend_constraints() → [names]
      ├── enable_constraints(names)
      ├── validate_constraints(names) → [violating names]
      └── close()

Tags:
    schemashift, provider, protocol, registry

Doc-Types:
    api-reference
"""

from __future__ import annotations

from collections.abc import Callable, Iterable, Mapping, Sequence
from dataclasses import dataclass
from typing import Any, Protocol, runtime_checkable

from schemashift.core.buckets import order_key, type_spec
from schemashift.core.errors import InvalidConfigError
from schemashift.core.models import CatalogObject, ObjectIdentity
from schemashift.core.result import Result

EnumerateFn = Callable[["ProviderSession"], Iterable[CatalogObject]]
LookupFn = Callable[["ProviderSession", ObjectIdentity], CatalogObject]
GenerateFn = Callable[["ProviderSession", Sequence[CatalogObject], Mapping[str, Any]], str]


@runtime_checkable
class ProviderSession(Protocol):
    """One connection to a store, owned by exactly one worker or runner."""

    def execute_batch(self, sql: str) -> Result[int]:
        """Execute one batch; expected failures come back as ``Err``."""
        ...

    def suspend_constraints(self) -> list[str]:
        """Disable referential-integrity enforcement; return affected names."""
        ...

    def enable_constraints(self, names: Sequence[str]) -> None:
        ...

    def validate_constraints(self, names: Sequence[str]) -> list[str]:
        """Names of the given constraints that existing rows violate."""
        ...

    def close(self) -> None:
        ...


@dataclass(frozen=True)
class TypeHandler:
    """The three provider capabilities for one object type."""

    object_type: str
    enumerate: EnumerateFn
    lookup: LookupFn
    generate: GenerateFn


class TypeRegistry:
    """Object type → TypeHandler lookup.

    Example:
        >>> registry = TypeRegistry()
        >>> registry.register(TypeHandler("Table", enum_tables, lookup_table, script_tables))
        >>> registry.get("Table").object_type
        'Table'
    """

    def __init__(self, handlers: Iterable[TypeHandler] = ()):
        self._handlers: dict[str, TypeHandler] = {}
        for handler in handlers:
            self.register(handler)

    def register(self, handler: TypeHandler) -> None:
        """Register a handler; the type must exist in the bucket table."""
        type_spec(handler.object_type)
        if handler.object_type in self._handlers:
            raise ValueError(f"Handler already registered for {handler.object_type!r}")
        self._handlers[handler.object_type] = handler

    def get(self, object_type: str) -> TypeHandler:
        try:
            return self._handlers[object_type]
        except KeyError:
            raise InvalidConfigError(
                "object_type",
                object_type,
                f"Provider does not support object type {object_type!r}. "
                f"Supported: {', '.join(self.types()) or 'none'}",
            ) from None

    def has(self, object_type: str) -> bool:
        return object_type in self._handlers

    def types(self) -> list[str]:
        """Supported types, in deployment order."""
        return sorted(self._handlers, key=order_key)

    def __len__(self) -> int:
        return len(self._handlers)


@runtime_checkable
class CatalogProvider(Protocol):
    """A store the scheduler can enumerate, script and replay against."""

    name: str
    registry: TypeRegistry

    def connect(self) -> ProviderSession:
        """Open a new session; raises SetupFailure when the store is unreachable."""
        ...


__all__ = [
    "ProviderSession",
    "TypeHandler",
    "TypeRegistry",
    "CatalogProvider",
    "EnumerateFn",
    "LookupFn",
    "GenerateFn",
]
