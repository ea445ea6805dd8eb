"""Catalog enumeration with inclusion rules."""

from .enumerator import CatalogEnumerator, InclusionRules

__all__ = ["CatalogEnumerator", "InclusionRules"]
