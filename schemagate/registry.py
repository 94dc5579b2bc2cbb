# ==============================================
# Registry
# ==============================================
#
# PURPOSE:
#   Process-wide, in-memory record of the database handles and
#   collection descriptors the gateway knows about. Constructed
#   once at service start and handed to every component that
#   needs it; nothing looks it up globally.
#
#   Nothing here is persisted. After a restart the registry is
#   rebuilt lazily from the store, which stays the source of
#   truth.
#
# CONCURRENCY:
# ------------
#   Reads are lock-free: each map is replaced wholesale on write
#   (copy-on-write), so a reader always sees a consistent
#   snapshot. Writes are serialized by one short-held lock and
#   never span a store call.
#
# ==============================================

import dataclasses
import logging
import threading
import time
from typing import Dict, List, Optional, Tuple

from schemagate.models import CollectionDescriptor, DatabaseHandle, SchemaShape

logger = logging.getLogger(__name__)


class Registry:
    """Holds DatabaseHandles and CollectionDescriptors."""

    def __init__(self):
        self._write_lock = threading.Lock()
        self._databases: Dict[str, DatabaseHandle] = {}
        self._collections: Dict[Tuple[str, str], CollectionDescriptor] = {}

    # ======================================
    # Databases
    # ======================================
    def get_database(self, name: str) -> Optional[DatabaseHandle]:
        return self._databases.get(name)

    def list_databases(self) -> List[DatabaseHandle]:
        return sorted(self._databases.values(), key=lambda handle: handle.name)

    def register_database(self, handle: DatabaseHandle) -> Tuple[DatabaseHandle, bool]:
        """
        Register ``handle`` unless its name is already taken.

        Returns:
            (registered handle, True if ``handle`` was newly added). When the
            name was taken the existing handle is returned with False.
        """
        with self._write_lock:
            existing = self._databases.get(handle.name)
            if existing is not None:
                return existing, False
            databases = dict(self._databases)
            databases[handle.name] = handle
            self._databases = databases
        logger.info("Registered database '%s' (%s)", handle.name, handle.origin)
        return handle, True

    # ======================================
    # Collections
    # ======================================
    def get_collection(self, database: str, collection: str) -> Optional[CollectionDescriptor]:
        return self._collections.get((database, collection))

    def list_collections(self, database: str) -> List[CollectionDescriptor]:
        return sorted(
            (desc for (db, _), desc in self._collections.items() if db == database),
            key=lambda desc: desc.name,
        )

    def generation(self, database: str, collection: str) -> int:
        descriptor = self._collections.get((database, collection))
        return descriptor.generation if descriptor is not None else 0

    def store_schema(
        self,
        database: str,
        collection: str,
        shape: SchemaShape,
        sample_size: int,
        generation: Optional[int] = None,
    ) -> Optional[CollectionDescriptor]:
        """
        Cache a freshly inferred shape. The most recent detection wins.

        Args:
            generation: Generation read before sampling. If the collection
                        was invalidated since, nothing is stored and None
                        is returned.
        """
        with self._write_lock:
            current = self._collections.get((database, collection))
            current_generation = current.generation if current is not None else 0
            if generation is not None and generation != current_generation:
                logger.debug(
                    "Discarding schema of %s.%s sampled before an invalidation", database, collection
                )
                return None
            descriptor = CollectionDescriptor(
                database=database,
                name=collection,
                schema=shape,
                sample_size=sample_size,
                detected_at=time.time(),
                stale=False,
                generation=current_generation,
            )
            self._put_locked(descriptor)
        return descriptor

    def invalidate(self, database: str, collection: str) -> CollectionDescriptor:
        """Mark the cached shape stale so the next detection re-samples."""
        with self._write_lock:
            current = self._collections.get((database, collection))
            if current is None:
                descriptor = CollectionDescriptor(database=database, name=collection, generation=1)
            else:
                descriptor = dataclasses.replace(current, stale=True, generation=current.generation + 1)
            self._put_locked(descriptor)
        logger.debug("Schema of %s.%s marked stale", database, collection)
        return descriptor

    def _put_locked(self, descriptor: CollectionDescriptor) -> None:
        collections = dict(self._collections)
        collections[(descriptor.database, descriptor.name)] = descriptor
        self._collections = collections
