"""Permissive write validation against an inferred SchemaShape.

Unknown paths are let through and reported so the caller can mark the
cached shape stale. A value is rejected only when its path is required,
not ``mixed``, and the value's type cannot be reconciled with the
cached one.

Accepted writes that would still alter what a re-inference reports
(a required field left out of a new document, an integer field given a
float, a first null) are listed in ``changed_fields`` so the cached
shape is invalidated for them as well.
"""

from typing import Any, Dict, List, Optional, Tuple

from schemagate.models import NUMERIC_TAGS, FieldShape, SchemaShape, TypeTag, ValidationResult

from .field_stats import merge_type_tags
from .schema_inferrer import SchemaInferrer
from .type_detector import TypeDetector


class SchemaValidator:
    def __init__(self, inferrer: SchemaInferrer):
        self.inferrer = inferrer

    @property
    def type_detector(self) -> TypeDetector:
        return self.inferrer.type_detector

    def validate(self, shape: Optional[SchemaShape], document: dict, partial: bool = False) -> ValidationResult:
        """
        Check the fields present in ``document`` against ``shape``.

        Args:
            shape: Cached shape of the target collection (None = nothing known)
            document: Full document for a create, partial one for an update
            partial: True for updates; required fields may then be absent
                     unless a named top-level value drops them

        Returns:
            ValidationResult (ACCEPTED, ACCEPTED_WITH_NEW_FIELD or REJECTED)
        """
        flattened = self.inferrer.flatten(document)
        result = self.validate_fields(shape, flattened)
        if result.is_rejected or shape is None:
            return result

        # An update replaces each top-level value it names, nested paths included
        prefixes = tuple(f"{key}." for key in document) if partial else None
        for path, field_shape in shape.fields.items():
            if field_shape.optional or path in flattened:
                continue
            if prefixes is None or path.startswith(prefixes):
                result.changed_fields.append(path)
        return result

    def validate_fields(self, shape: Optional[SchemaShape], fields: Dict[str, Any]) -> ValidationResult:
        """Same as validate() for values already keyed by dot-notation path."""
        new_fields: List[str] = []
        changed_fields: List[str] = []
        reasons: List[str] = []

        for path, value in fields.items():
            field_shape = shape.get(path) if shape is not None else None
            if field_shape is None:
                new_fields.append(path)
                continue
            reason, changed = self._check(path, value, field_shape)
            if reason:
                reasons.append(reason)
            elif changed:
                changed_fields.append(path)

        if reasons:
            return ValidationResult.rejected(reasons)
        if new_fields:
            result = ValidationResult.accepted_with_new_fields(new_fields)
        else:
            result = ValidationResult.accepted()
        result.changed_fields = changed_fields
        return result

    def _check(self, path: str, value: Any, field_shape: FieldShape) -> Tuple[Optional[str], bool]:
        """Return (rejection reason or None, whether re-inference would differ)."""
        expected = field_shape.type
        actual = self.type_detector.detect(value)

        if actual is TypeTag.NULL:
            changed = not field_shape.nullable and expected is not TypeTag.NULL
            if expected in (TypeTag.MIXED, TypeTag.NULL) or field_shape.optional or field_shape.nullable:
                return None, changed
            return f"field '{path}' is required as {expected.value} and cannot be null", False

        changed = expected is not TypeTag.MIXED and merge_type_tags([expected, actual]) is not expected

        # Only required, non-mixed fields with known contents are enforced
        if expected in (TypeTag.MIXED, TypeTag.NULL) or field_shape.optional:
            return None, changed

        if not self._compatible(expected, actual, value):
            return f"field '{path}' expects {expected.value}, got {actual.value}", False

        if expected is TypeTag.ARRAY and field_shape.items not in (None, TypeTag.UNKNOWN, TypeTag.MIXED):
            for item in value:
                if item is None:
                    continue
                element = self.type_detector.detect(item)
                if not self._compatible(field_shape.items, element, item):
                    return (
                        f"field '{path}' expects array of {field_shape.items.value}, "
                        f"got element of {element.value}"
                    ), False
        return None, changed

    def _compatible(self, expected: TypeTag, actual: TypeTag, value: Any) -> bool:
        if expected is actual:
            return True
        if expected in NUMERIC_TAGS and actual in NUMERIC_TAGS:
            return True
        if expected is TypeTag.STRING and isinstance(value, str):
            # A plain string that happens to look like a date
            return True
        if expected is TypeTag.TIMESTAMP and isinstance(value, str):
            return self.type_detector.is_timestamp_string(value)
        return False
