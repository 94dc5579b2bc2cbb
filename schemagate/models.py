# ==============================================
# Models (Data Classes)
# ==============================================
#
# PURPOSE:
#   Data classes shared by every component: the inferred schema
#   (SchemaShape / FieldShape), the registry entries
#   (DatabaseHandle / CollectionDescriptor) and the outcome of
#   validating a write (ValidationResult).
#
# ENUMS:
# ------
# - TypeTag(Enum): STRING, INTEGER, FLOAT, BOOLEAN, TIMESTAMP,
#                  ARRAY, OBJECT, NULL, MIXED, UNKNOWN
#     UNKNOWN is only used as the element type of empty arrays.
#
# - CollectionState(Enum): UNKNOWN, SCHEMA_DETECTED, STALE
#
# - ValidationStatus(Enum): ACCEPTED, ACCEPTED_WITH_NEW_FIELD, REJECTED
#
# CLASSES:
# --------
# - FieldShape      → type / optional / nullable / items for one path
# - SchemaShape     → path → FieldShape, plus sample metadata
# - DatabaseHandle  → one logical database scope
# - CollectionDescriptor → cached schema + freshness for one collection
# - ValidationResult → tagged result of permissive write validation
#
# ==============================================

import time
from enum import Enum
from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Any, Dict, Iterator, List, Optional


class TypeTag(Enum):
    """Type tags a field path can be inferred as."""
    STRING = "string"
    INTEGER = "integer"
    FLOAT = "float"
    BOOLEAN = "boolean"
    TIMESTAMP = "timestamp"
    ARRAY = "array"
    OBJECT = "object"
    NULL = "null"
    MIXED = "mixed"
    UNKNOWN = "unknown"


NUMERIC_TAGS = (TypeTag.INTEGER, TypeTag.FLOAT)


@dataclass
class FieldShape:
    """
    Inferred shape of a single field path.

    - type: the merged type tag
    - optional: True if the path was missing from at least one sample
    - nullable: True if the path was observed holding null
    - items: element type for arrays (UNKNOWN for empty arrays)
    """

    type: TypeTag
    optional: bool = False
    nullable: bool = False
    items: Optional[TypeTag] = None

    def to_dict(self) -> Dict[str, Any]:
        data: Dict[str, Any] = {"type": self.type.value, "optional": self.optional}
        if self.nullable:
            data["nullable"] = True
        if self.items is not None:
            data["items"] = self.items.value
        return data

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "FieldShape":
        items = data.get("items")
        return cls(
            type=TypeTag(data["type"]),
            optional=data.get("optional", False),
            nullable=data.get("nullable", False),
            items=TypeTag(items) if items else None,
        )


@dataclass
class SchemaShape:
    """
    Observed structure of a collection: dot-separated path → FieldShape.

    This is a best-effort description of the sampled documents, not a
    constraint every document in the collection is guaranteed to meet.
    """

    fields: Dict[str, FieldShape] = field(default_factory=dict)
    sample_size: int = 0  # Documents actually examined
    sample_empty: bool = False  # True when there was nothing to sample

    def get(self, path: str) -> Optional[FieldShape]:
        return self.fields.get(path)

    def __contains__(self, path: object) -> bool:
        return path in self.fields

    def __len__(self) -> int:
        return len(self.fields)

    def __iter__(self) -> Iterator[str]:
        return iter(self.fields)

    def to_dict(self) -> Dict[str, Dict[str, Any]]:
        """Serialize as ``{path: {"type": ..., "optional": ...}}``."""
        return {path: shape.to_dict() for path, shape in sorted(self.fields.items())}

    @classmethod
    def from_dict(cls, data: Dict[str, Dict[str, Any]]) -> "SchemaShape":
        return cls(fields={path: FieldShape.from_dict(raw) for path, raw in data.items()})

    @classmethod
    def empty(cls) -> "SchemaShape":
        return cls(fields={}, sample_size=0, sample_empty=True)


@dataclass
class DatabaseHandle:
    """A logical database scope known to the registry."""

    name: str
    created_at: datetime = field(default_factory=lambda: datetime.now(timezone.utc))
    connected: bool = True
    origin: str = "allocated"  # "allocated" or "discovered" (rebuilt from the store)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "name": self.name,
            "created_at": self.created_at.isoformat(),
            "connected": self.connected,
            "origin": self.origin,
        }


class CollectionState(Enum):
    UNKNOWN = "unknown"
    SCHEMA_DETECTED = "schema_detected"
    STALE = "stale"


@dataclass
class CollectionDescriptor:
    """
    Cached metadata for one collection.

    Instances are treated as immutable snapshots: the registry swaps
    in a new descriptor instead of mutating a shared one.
    """

    database: str
    name: str
    schema: Optional[SchemaShape] = None
    sample_size: int = 0  # Requested sample bound of the last inference
    detected_at: Optional[float] = None  # time.time() of the last inference
    stale: bool = False
    generation: int = 0  # Bumped by every invalidation

    @property
    def state(self) -> CollectionState:
        if self.schema is None:
            return CollectionState.UNKNOWN
        if self.stale:
            return CollectionState.STALE
        return CollectionState.SCHEMA_DETECTED

    def is_fresh(self, ttl_seconds: Optional[float] = None) -> bool:
        """True if the cached schema can be served without re-sampling."""
        if self.state is not CollectionState.SCHEMA_DETECTED:
            return False
        if ttl_seconds is None or self.detected_at is None:
            return True
        return (time.time() - self.detected_at) < ttl_seconds


class ValidationStatus(Enum):
    ACCEPTED = "accepted"
    ACCEPTED_WITH_NEW_FIELD = "accepted_with_new_field"
    REJECTED = "rejected"


@dataclass
class ValidationResult:
    """
    Outcome of validating a write against a cached SchemaShape.

    REJECTED aborts the write. ACCEPTED_WITH_NEW_FIELD lets it through
    and marks the cached schema stale. An ACCEPTED write still marks it
    stale when ``changed_fields`` is non-empty (known paths whose
    inferred shape the write would alter).
    """

    status: ValidationStatus
    new_fields: List[str] = field(default_factory=list)
    reasons: List[str] = field(default_factory=list)
    changed_fields: List[str] = field(default_factory=list)

    @classmethod
    def accepted(cls) -> "ValidationResult":
        return cls(ValidationStatus.ACCEPTED)

    @classmethod
    def accepted_with_new_fields(cls, new_fields: List[str]) -> "ValidationResult":
        return cls(ValidationStatus.ACCEPTED_WITH_NEW_FIELD, new_fields=list(new_fields))

    @classmethod
    def rejected(cls, reasons: List[str]) -> "ValidationResult":
        return cls(ValidationStatus.REJECTED, reasons=list(reasons))

    @property
    def is_rejected(self) -> bool:
        return self.status is ValidationStatus.REJECTED

    @property
    def invalidates_schema(self) -> bool:
        if self.is_rejected:
            return False
        return bool(self.new_fields or self.changed_fields)
