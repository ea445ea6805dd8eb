"""
Catalog Enumerator - lists the objects a run will export.

Enumeration walks the provider's supported types in deployment order and
applies the run's inclusion rules. It yields lazily; calling
``enumerate()`` again restarts from the first type.

Filtering order per object:
1. Type whitelist / blacklist (decided once, before any catalog access)
2. ``is_system=True`` objects are dropped; ``None`` means "unknown", kept
3. Schema blacklist (case-insensitive)
4. Name-pattern blacklist, ``*``/``?`` wildcards, matched against both
   ``schema.name`` and the bare name
5. Duplicate identities within the pass (first wins)

Provider errors propagate unchanged; a broken catalog connection is fatal.
"""

from __future__ import annotations

from collections.abc import Iterable, Iterator
from dataclasses import dataclass, field
from fnmatch import fnmatchcase

from schemashift.core.buckets import order_key, type_spec
from schemashift.core.config import MigrationSettings
from schemashift.core.logging import get_logger
from schemashift.core.models import CatalogObject, ObjectIdentity
from schemashift.providers.protocol import ProviderSession, TypeRegistry

logger = get_logger(__name__)


@dataclass(frozen=True)
class InclusionRules:
    """Which objects a run includes."""

    include_types: frozenset[str] | None = None
    exclude_types: frozenset[str] = field(default_factory=frozenset)
    exclude_schemas: frozenset[str] = field(default_factory=frozenset)
    exclude_name_patterns: tuple[str, ...] = ()

    @classmethod
    def from_settings(cls, settings: MigrationSettings) -> InclusionRules:
        return cls(
            include_types=settings.include_types,
            exclude_types=settings.exclude_types,
            exclude_schemas=settings.exclude_schemas,
            exclude_name_patterns=settings.exclude_name_patterns,
        )

    def excludes_schema(self, schema: str) -> bool:
        lowered = schema.lower()
        return any(lowered == s.lower() for s in self.exclude_schemas)

    def excludes_name(self, obj: CatalogObject) -> bool:
        candidates = (obj.qualified_name.lower(), obj.name.lower())
        return any(
            fnmatchcase(candidate, pattern.lower())
            for pattern in self.exclude_name_patterns
            for candidate in candidates
        )

    def excludes(self, obj: CatalogObject) -> bool:
        if obj.is_system is True:
            return True
        return self.excludes_schema(obj.schema) or self.excludes_name(obj)


class CatalogEnumerator:
    """
    Lists catalog objects of interest through a provider session.

    Example:
        enumerator = CatalogEnumerator(provider.registry, InclusionRules.from_settings(settings))
        session = provider.connect()
        objects = list(enumerator.enumerate(session))
    """

    def __init__(self, registry: TypeRegistry, rules: InclusionRules | None = None):
        self.registry = registry
        self.rules = rules or InclusionRules()

    def planned_types(self) -> list[str]:
        """
        Types this run will enumerate, in deployment order.

        Raises:
            InvalidConfigError: a whitelisted type is unknown or the
                provider does not support it
        """
        if self.rules.include_types is not None:
            for object_type in self.rules.include_types:
                type_spec(object_type)
                self.registry.get(object_type)
            candidates: Iterable[str] = self.rules.include_types
        else:
            candidates = self.registry.types()

        return sorted(
            (t for t in candidates if t not in self.rules.exclude_types),
            key=order_key,
        )

    def enumerate(self, session: ProviderSession) -> Iterator[CatalogObject]:
        seen: set[ObjectIdentity] = set()
        for object_type in self.planned_types():
            handler = self.registry.get(object_type)
            kept = skipped = 0
            for obj in handler.enumerate(session):
                if self.rules.excludes(obj):
                    skipped += 1
                    continue
                if obj.identity in seen:
                    logger.warning("catalog.duplicate_identity", identity=str(obj.identity))
                    continue
                seen.add(obj.identity)
                kept += 1
                yield obj
            logger.debug("catalog.type_enumerated", object_type=object_type, kept=kept, skipped=skipped)


__all__ = ["InclusionRules", "CatalogEnumerator"]
