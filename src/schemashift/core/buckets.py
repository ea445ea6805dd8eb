"""
Static dependency order shared by generation and replay.

Manifesto:
    The order in which schema objects are created is not discovered at
    runtime; it is a fixed property of the store's object model. Keeping it
    in one table means the exporter and the importer can never disagree,
    and the on-disk prefix ``NN_Label`` lets replay recover the order
    without consulting this module at all.

Architecture:
    ::

        BUCKETS            ordinal → Bucket(ordinal, label)
        OBJECT_TYPES       type    → ObjectTypeSpec(bucket, priority, ...)
        HARD_PREREQUISITES type    → types that must already exist

        bucket_for("ForeignKey")   → Bucket(11, "Tables_ForeignKeys")
        type_spec("View").subfolder → "05_Views"

    Foreign keys follow both the tables and the indexes they may reference;
    data is last and is loaded with constraint enforcement suspended.

Guardrails:
    ❌ DON'T: Derive bucket order from directory listing at generation time
    ✅ DO: Use ``bucket_for()``; replay is the only consumer of directory order

    ❌ DON'T: Put a prerequisite in a later bucket than its dependant
    ✅ DO: Add the pair to HARD_PREREQUISITES; tests check the invariant

Tags:
    dependency-order, buckets, static-table, schemashift
"""

from __future__ import annotations

from dataclasses import dataclass

from schemashift.core.errors import InvalidConfigError
from schemashift.core.models import Bucket

BUCKETS: tuple[Bucket, ...] = (
    Bucket(0, "FileGroups"),
    Bucket(1, "DatabaseConfiguration"),
    Bucket(2, "Schemas"),
    Bucket(3, "Sequences"),
    Bucket(4, "PartitionFunctions"),
    Bucket(5, "PartitionSchemes"),
    Bucket(6, "Types"),
    Bucket(7, "XmlSchemaCollections"),
    Bucket(8, "Tables_PrimaryKey"),
    Bucket(9, "Defaults"),
    Bucket(10, "Indexes"),
    Bucket(11, "Tables_ForeignKeys"),
    Bucket(12, "Rules"),
    Bucket(13, "Programmability"),
    Bucket(14, "Synonyms"),
    Bucket(15, "FullTextSearch"),
    Bucket(16, "ExternalData"),
    Bucket(17, "SearchPropertyLists"),
    Bucket(18, "PlanGuides"),
    Bucket(19, "Security"),
    Bucket(20, "Data"),
)

_BUCKETS_BY_ORDINAL = {b.ordinal: b for b in BUCKETS}
_BUCKETS_BY_LABEL = {b.label.lower(): b for b in BUCKETS}

PROGRAMMABILITY = _BUCKETS_BY_ORDINAL[13]
DATA = _BUCKETS_BY_ORDINAL[20]


@dataclass(frozen=True)
class ObjectTypeSpec:
    """
    Static facts about one object type.

    Attributes:
        name: Type name used throughout the catalog ("StoredProcedure")
        bucket_ordinal: Dependency stage
        priority: Secondary order among types sharing a bucket
        plural: Label used in per-type artifact names ("StoredProcedures")
        subfolder: Directory under the bucket for per-object artifacts
        suffix: Extra file-name suffix before ``.sql`` (".data")
        reliable_timestamp: Whether modify dates can drive delta detection
        requires_secret: Replay needs externally supplied secret values
        handler: Special-handler tag passed through to the provider
    """

    name: str
    bucket_ordinal: int
    priority: int
    plural: str
    subfolder: str | None = None
    suffix: str = ""
    reliable_timestamp: bool = True
    requires_secret: bool = False
    handler: str | None = None

    @property
    def bucket(self) -> Bucket:
        return _BUCKETS_BY_ORDINAL[self.bucket_ordinal]


def _shared(name: str, ordinal: int, priority: int, plural: str, **kwargs) -> ObjectTypeSpec:
    # Buckets holding several types give each type its own subfolder
    return ObjectTypeSpec(
        name, ordinal, priority, plural, subfolder=f"{priority:02d}_{plural}", **kwargs
    )


OBJECT_TYPES: dict[str, ObjectTypeSpec] = {
    spec.name: spec
    for spec in (
        ObjectTypeSpec(
            "FileGroup", 0, 1, "FileGroups", reliable_timestamp=False, handler="filegroups"
        ),
        ObjectTypeSpec(
            "DatabaseScopedConfiguration", 1, 1, "DatabaseConfiguration", reliable_timestamp=False
        ),
        ObjectTypeSpec("Schema", 2, 1, "Schemas"),
        ObjectTypeSpec("Sequence", 3, 1, "Sequences"),
        ObjectTypeSpec("PartitionFunction", 4, 1, "PartitionFunctions", reliable_timestamp=False),
        ObjectTypeSpec("PartitionScheme", 5, 1, "PartitionSchemes", reliable_timestamp=False),
        _shared("UserDefinedDataType", 6, 1, "UserDefinedDataTypes"),
        _shared("UserDefinedTableType", 6, 2, "UserDefinedTableTypes"),
        ObjectTypeSpec("XmlSchemaCollection", 7, 1, "XmlSchemaCollections"),
        ObjectTypeSpec("Table", 8, 1, "Tables"),
        ObjectTypeSpec("Default", 9, 1, "Defaults"),
        ObjectTypeSpec("Index", 10, 1, "Indexes", reliable_timestamp=False),
        ObjectTypeSpec("ForeignKey", 11, 1, "ForeignKeys", reliable_timestamp=False),
        ObjectTypeSpec("Rule", 12, 1, "Rules"),
        _shared("Assembly", 13, 1, "Assemblies"),
        _shared("UserDefinedFunction", 13, 2, "Functions"),
        _shared("StoredProcedure", 13, 3, "StoredProcedures"),
        _shared("Trigger", 13, 4, "Triggers"),
        _shared("View", 13, 5, "Views"),
        ObjectTypeSpec("Synonym", 14, 1, "Synonyms"),
        ObjectTypeSpec("FullTextCatalog", 15, 1, "FullTextCatalogs"),
        ObjectTypeSpec("ExternalDataSource", 16, 1, "ExternalDataSources", requires_secret=True),
        ObjectTypeSpec("SearchPropertyList", 17, 1, "SearchPropertyLists"),
        ObjectTypeSpec("PlanGuide", 18, 1, "PlanGuides"),
        _shared("Role", 19, 1, "Roles", reliable_timestamp=False),
        _shared("User", 19, 2, "Users", reliable_timestamp=False, requires_secret=True),
        _shared("SecurityPolicy", 19, 3, "SecurityPolicies", suffix=".securitypolicy"),
        _shared(
            "DatabaseScopedCredential",
            19,
            4,
            "DatabaseScopedCredentials",
            reliable_timestamp=False,
            requires_secret=True,
        ),
        ObjectTypeSpec("TableData", 20, 1, "Data", suffix=".data", handler="data"),
    )
}

# type → types that must be materialized before it can be created
HARD_PREREQUISITES: dict[str, frozenset[str]] = {
    "PartitionScheme": frozenset({"PartitionFunction", "FileGroup"}),
    "Sequence": frozenset({"Schema"}),
    "UserDefinedDataType": frozenset({"Schema"}),
    "UserDefinedTableType": frozenset({"Schema", "UserDefinedDataType"}),
    "XmlSchemaCollection": frozenset({"Schema"}),
    "Table": frozenset(
        {
            "Schema",
            "FileGroup",
            "PartitionScheme",
            "UserDefinedDataType",
            "XmlSchemaCollection",
        }
    ),
    "Default": frozenset({"Schema", "Table"}),
    "Index": frozenset({"Table", "FileGroup", "PartitionScheme"}),
    "ForeignKey": frozenset({"Table", "Index"}),
    "Rule": frozenset({"Schema", "Table"}),
    "UserDefinedFunction": frozenset({"Schema", "Assembly", "UserDefinedTableType"}),
    "StoredProcedure": frozenset({"Schema", "Assembly", "UserDefinedTableType"}),
    "Trigger": frozenset({"Table"}),
    "View": frozenset({"Schema", "Table", "UserDefinedFunction"}),
    "Synonym": frozenset({"Schema"}),
    "FullTextCatalog": frozenset({"FileGroup"}),
    "User": frozenset({"Schema", "Role"}),
    "SecurityPolicy": frozenset({"Schema", "UserDefinedFunction", "Table"}),
    "TableData": frozenset({"Table", "Index", "ForeignKey", "Trigger", "Sequence"}),
}


def type_spec(object_type: str) -> ObjectTypeSpec:
    """Look up the static facts for a type; unknown types are a config error."""
    try:
        return OBJECT_TYPES[object_type]
    except KeyError:
        raise InvalidConfigError(
            "object_type", object_type, f"Unknown object type: {object_type!r}"
        ) from None


def bucket_for(object_type: str) -> Bucket:
    return type_spec(object_type).bucket


def bucket_by_label(label: str) -> Bucket | None:
    return _BUCKETS_BY_LABEL.get(label.lower())


def order_key(object_type: str) -> tuple[int, int]:
    """Sort key placing a type in deployment order (bucket, then priority)."""
    spec = type_spec(object_type)
    return spec.bucket_ordinal, spec.priority


def types_in_bucket(ordinal: int) -> list[ObjectTypeSpec]:
    return sorted(
        (spec for spec in OBJECT_TYPES.values() if spec.bucket_ordinal == ordinal),
        key=lambda s: s.priority,
    )


def deployment_order() -> list[tuple[Bucket, list[ObjectTypeSpec]]]:
    """All buckets in applied order with the types they hold."""
    return [(bucket, types_in_bucket(bucket.ordinal)) for bucket in BUCKETS]


__all__ = [
    "BUCKETS",
    "OBJECT_TYPES",
    "HARD_PREREQUISITES",
    "PROGRAMMABILITY",
    "DATA",
    "ObjectTypeSpec",
    "type_spec",
    "bucket_for",
    "bucket_by_label",
    "order_key",
    "types_in_bucket",
    "deployment_order",
]
