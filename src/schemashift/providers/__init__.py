"""Catalog-and-scripting providers.

``protocol`` defines what the scheduler needs from a store; ``sqlite`` is
the reference implementation used by the CLI and the round-trip tests.
"""

from .protocol import CatalogProvider, ProviderSession, TypeHandler, TypeRegistry
from .sqlite import SQLiteProvider, SQLiteSession

__all__ = [
    "CatalogProvider",
    "ProviderSession",
    "TypeHandler",
    "TypeRegistry",
    "SQLiteProvider",
    "SQLiteSession",
]
