# ==============================================
# SCHEMA INFERENCE ENGINE
# ==============================================
#
# Everything needed to work out the shape of a collection
# nobody declared a schema for, and to hold writes up
# against that shape.
#
# Modules:
# --------
# - type_detector.py   → Value → TypeTag
# - field_stats.py     → Per-path evidence + type merge rules
# - schema_inferrer.py → Sampled documents → SchemaShape
# - validator.py       → Permissive write validation
# - engine.py          → Sampling through the driver + schema cache
#
# ==============================================

from .type_detector import TypeDetector
from .field_stats import FieldStats, merge_type_tags
from .schema_inferrer import SchemaInferrer
from .validator import SchemaValidator
from .engine import SchemaInferenceEngine

__all__ = [
    "TypeDetector",
    "FieldStats",
    "merge_type_tags",
    "SchemaInferrer",
    "SchemaValidator",
    "SchemaInferenceEngine",
]
