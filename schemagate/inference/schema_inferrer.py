# ==============================================
# SchemaInferrer
# ==============================================
#
# PURPOSE:
#   Observe a sample of documents and turn the per-path
#   evidence (FieldStats) into a SchemaShape. This is pure
#   computation: it never talks to the store.
#
# CLASS: SchemaInferrer
# ---------------------
#   Constructor:
#   ------------
#   - __init__(type_detector=None, max_depth=5)
#
#   Methods:
#   --------
#   - infer(documents: list[dict]) -> SchemaShape
#       Flatten every document, detect the type of each path,
#       accumulate FieldStats, then merge.
#
#   - flatten(document: dict) -> dict[str, Any]
#       Dot-notation view of a document, bounded by max_depth.
#       Also used by the write validator so reads and writes
#       see identical paths.
#
#   - analyze(documents) -> dict[str, FieldStats]
#       Raw evidence, before merging.
#
# FLATTENING RULES:
# -----------------
#   {"item": "pen"}              → {"item": "pen"}
#   {"meta": {"v": 2}}           → {"meta": {...}, "meta.v": 2}
#   nested mapping at max_depth  → kept as an opaque "object" leaf
#   arrays                       → leaf, typed by first non-null element
#   top-level keys starting "_"  → system fields, skipped
#
# ==============================================

from typing import Any, Dict, List, Optional

from schemagate.models import SchemaShape, TypeTag

from .field_stats import FieldStats
from .type_detector import TypeDetector


class SchemaInferrer:
    """
    Builds a SchemaShape from sampled documents.
    """

    def __init__(self, type_detector: Optional[TypeDetector] = None, max_depth: int = 5):
        """
        Args:
            type_detector: Optional TypeDetector instance. If not provided,
                          a new one will be created.
            max_depth: Deepest path (in segments) that is walked into.
        """
        if max_depth < 1:
            raise ValueError("max_depth must be at least 1")
        self.type_detector = type_detector or TypeDetector()
        self.max_depth = max_depth

    def infer(self, documents: List[dict]) -> SchemaShape:
        """
        Infer the structural schema of a set of documents.

        Args:
            documents: Sampled documents, in any order

        Returns:
            SchemaShape whose optional flags are relative to len(documents).
            An empty sample gives an empty shape flagged sample_empty.
        """
        if not documents:
            return SchemaShape.empty()

        stats = self.analyze(documents)
        total = len(documents)
        fields = {path: field_stats.to_field_shape(total) for path, field_stats in stats.items()}
        return SchemaShape(fields=fields, sample_size=total, sample_empty=False)

    def analyze(self, documents: List[dict]) -> Dict[str, FieldStats]:
        stats: Dict[str, FieldStats] = {}
        for document in documents:
            for path, value in self.flatten(document).items():
                detected_type = self.type_detector.detect(value)
                item_type = None
                if detected_type is TypeTag.ARRAY:
                    item_type = self.type_detector.element_type(value)

                if path not in stats:
                    stats[path] = FieldStats(name=path)
                stats[path].update(value, detected_type, item_type)
        return stats

    def flatten(self, document: dict) -> Dict[str, Any]:
        return self._flatten_record(document, prefix="", depth=1)

    def _flatten_record(self, record: dict, prefix: str, depth: int) -> Dict[str, Any]:
        flattened: Dict[str, Any] = {}

        for key, value in record.items():
            key = str(key)
            # Store-managed fields such as _id are not part of the shape
            if not prefix and key.startswith("_"):
                continue

            path = self._flatten_key(prefix, key)
            flattened[path] = value

            if isinstance(value, dict) and depth < self.max_depth:
                flattened.update(self._flatten_record(value, path, depth + 1))

        return flattened

    @staticmethod
    def _flatten_key(prefix: str, key: str) -> str:
        """
        _flatten_key("", "item")       → "item"
        _flatten_key("meta", "version") → "meta.version"
        """
        if not prefix:
            return key
        return f"{prefix}.{key}"
