# ==============================================
# SchemaInferenceEngine
# ==============================================
#
# PURPOSE:
#   Answer "what do documents in <db>.<collection> look like?"
#   by sampling through the storage driver and caching the
#   inferred SchemaShape on the collection's descriptor.
#
# CACHE / STATE MACHINE (per collection):
# ---------------------------------------
#   Unknown ──detect──▶ SchemaDetected ──write with new field──▶ Stale
#      ▲                      │                                   │
#      └──────────────────────┴──────────── detect (re-sample) ◀──┘
#
#   A cached shape is served while it is fresh: not stale, within
#   the optional TTL, and inferred with the same sample bound.
#   force_refresh always re-samples. Concurrent refreshes each
#   re-sample the store and the last one wins, except that a
#   result sampled before a concurrent invalidation is not
#   cached (the descriptor generation moved on).
#
# ERRORS:
# -------
#   CollectionNotFound only when strict=True and the store has no
#   such collection. Otherwise a missing or empty collection gives
#   an empty shape with sample_empty=True.
#
# ==============================================

import logging
from typing import List, Optional

from schemagate.allocator import DatabaseAllocator
from schemagate.config import InferenceConfig
from schemagate.errors import CollectionNotFound, InvalidRequest, translate_storage_errors
from schemagate.models import DatabaseHandle, SchemaShape
from schemagate.registry import Registry
from schemagate.storage import Deadline, StorageDriver

from .schema_inferrer import SchemaInferrer
from .type_detector import TypeDetector

logger = logging.getLogger(__name__)


class SchemaInferenceEngine:
    def __init__(
        self,
        driver: StorageDriver,
        registry: Registry,
        config: Optional[InferenceConfig] = None,
        inferrer: Optional[SchemaInferrer] = None,
    ):
        self.driver = driver
        self.registry = registry
        self.config = config or InferenceConfig()
        self.inferrer = inferrer or SchemaInferrer(
            TypeDetector(detect_string_timestamps=self.config.detect_string_timestamps),
            max_depth=self.config.max_depth,
        )

    def detect_schema(
        self,
        handle: DatabaseHandle,
        collection: str,
        sample_size: Optional[int] = None,
        force_refresh: bool = False,
        strict: bool = False,
        deadline: Optional[Deadline] = None,
    ) -> SchemaShape:
        """
        Infer (or serve the cached) schema of a collection.

        Args:
            handle: Database the collection lives in
            collection: Collection name
            sample_size: Documents to sample (default from config)
            force_refresh: Bypass the cache
            strict: Raise CollectionNotFound for a collection the store lacks
            deadline: Bound on every store call made here

        Returns:
            The SchemaShape. Best effort: it describes the sampled
            documents, not every document in the collection.
        """
        DatabaseAllocator.validate_collection_name(collection)
        size = self.config.sample_size if sample_size is None else sample_size
        if size < 1:
            raise InvalidRequest("sample_size must be a positive integer")
        deadline = deadline or Deadline.none()

        operation = f"detect schema of {handle.name}.{collection}"
        if strict:
            # Checked against the store, never the cache
            with translate_storage_errors(operation, deadline):
                exists = self.driver.collection_exists(handle.name, collection, deadline)
            if not exists:
                raise CollectionNotFound(
                    f"collection '{collection}' does not exist in database '{handle.name}'"
                )

        if not force_refresh:
            cached = self.cached_schema(handle, collection, size)
            if cached is not None:
                return cached

        generation = self.registry.generation(handle.name, collection)
        with translate_storage_errors(operation, deadline):
            documents = self.driver.sample(
                handle.name, collection, size, self.config.sampling_strategy, deadline
            )

        shape = self.inferrer.infer(documents)
        self.registry.store_schema(handle.name, collection, shape, size, generation=generation)
        logger.info(
            "Inferred schema of %s.%s from %d document(s): %d field(s)",
            handle.name, collection, shape.sample_size, len(shape),
        )
        return shape

    def cached_schema(
        self, handle: DatabaseHandle, collection: str, sample_size: Optional[int] = None
    ) -> Optional[SchemaShape]:
        """The cached shape if it can be served as-is, else None."""
        descriptor = self.registry.get_collection(handle.name, collection)
        if descriptor is None or not descriptor.is_fresh(self.config.schema_ttl_seconds):
            return None
        size = self.config.sample_size if sample_size is None else sample_size
        if descriptor.sample_size != size:
            return None
        return descriptor.schema

    def invalidate(self, handle: DatabaseHandle, collection: str) -> None:
        self.registry.invalidate(handle.name, collection)

    def list_collections(self, handle: DatabaseHandle, deadline: Optional[Deadline] = None) -> List[str]:
        deadline = deadline or Deadline.none()
        with translate_storage_errors(f"list collections of {handle.name}", deadline):
            return self.driver.list_collections(handle.name, deadline)
