# ==============================================
# FieldStats
# ==============================================
#
# PURPOSE:
#   Data class that holds all observed evidence for a single
#   field path across the sampled documents. The inferrer turns
#   it into a FieldShape once sampling is done.
#
# CLASS: FieldStats (dataclass)
# -----------------------------
#   Attributes:
#   -----------
#   - name: str                        → Dot-notation field path
#   - presence_count: int              → Samples containing this path
#   - type_counts: dict[TypeTag, int]  → Non-null type observations
#   - null_count: int                  → Times the value was null
#   - item_type_counts: dict[TypeTag, int] → Array element types seen
#
#   Methods:
#   --------
#   - update(value, detected_type, item_type=None) -> None
#   - merged_type -> TypeTag
#   - to_field_shape(total_documents) -> FieldShape
#
# MERGE RULES:
# ------------
#   one non-null type            → that type
#   only {integer, float}        → float
#   any other combination        → mixed
#   only nulls                   → null
#
# ==============================================

from dataclasses import dataclass, field
from typing import Any, Dict, Iterable, Optional

from schemagate.models import NUMERIC_TAGS, FieldShape, TypeTag


def merge_type_tags(tags: Iterable[TypeTag], empty: TypeTag = TypeTag.NULL) -> TypeTag:
    """
    Reconcile the distinct types observed for one path.

    Args:
        tags: Observed non-null type tags
        empty: What to return when nothing was observed

    Returns:
        The merged tag.
    """
    distinct = set(tags)
    if not distinct:
        return empty
    if len(distinct) == 1:
        return next(iter(distinct))
    if distinct <= set(NUMERIC_TAGS):
        return TypeTag.FLOAT
    return TypeTag.MIXED


@dataclass
class FieldStats:
    """Observed evidence for one field path."""

    name: str
    nesting_depth: int = 0  # Number of dots in the path

    presence_count: int = 0
    type_counts: Dict[TypeTag, int] = field(default_factory=dict)
    null_count: int = 0
    item_type_counts: Dict[TypeTag, int] = field(default_factory=dict)

    def __post_init__(self):
        self.nesting_depth = self.name.count(".")

    def update(self, value: Any, detected_type: TypeTag, item_type: Optional[TypeTag] = None) -> None:
        """
        Record one observation of this path.

        Args:
            value: The raw value found in the document
            detected_type: Its type tag
            item_type: Element type when the value is an array
        """
        self.presence_count += 1

        if detected_type is TypeTag.NULL:
            self.null_count += 1
            return

        self.type_counts[detected_type] = self.type_counts.get(detected_type, 0) + 1

        if item_type is not None:
            self.item_type_counts[item_type] = self.item_type_counts.get(item_type, 0) + 1

    @property
    def merged_type(self) -> TypeTag:
        return merge_type_tags(self.type_counts)

    @property
    def merged_item_type(self) -> TypeTag:
        # Empty arrays tell us nothing about elements once a real element was seen
        known = [tag for tag in self.item_type_counts if tag is not TypeTag.UNKNOWN]
        return merge_type_tags(known, empty=TypeTag.UNKNOWN)

    def to_field_shape(self, total_documents: int) -> FieldShape:
        merged = self.merged_type
        return FieldShape(
            type=merged,
            optional=self.presence_count < total_documents,
            nullable=self.null_count > 0,
            items=self.merged_item_type if merged is TypeTag.ARRAY else None,
        )

