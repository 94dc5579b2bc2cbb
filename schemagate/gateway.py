# ==============================================
# Gateway: Orchestrator
# ==============================================
#
# PURPOSE:
#   The single object the outer layers (HTTP API, CLI) talk to.
#   It owns the storage driver and the registry and wires the
#   three core components around them:
#
#   ┌───────────────────────────────────────────────────────┐
#   │                        Gateway                        │
#   │                                                       │
#   │   DatabaseAllocator   SchemaInferenceEngine           │
#   │          │                 │          ▲               │
#   │          │                 │          │ cached shape  │
#   │          │                 │    CrudDispatcher        │
#   │          ▼                 ▼          │               │
#   │   ┌──────────────┐   ┌────────────────┴──┐            │
#   │   │   Registry   │   │  StorageDriver    │            │
#   │   └──────────────┘   └───────────────────┘            │
#   └───────────────────────────────────────────────────────┘
#
#   Every public method takes database / collection names,
#   resolves the database to its handle and forwards. Timeouts
#   are in seconds; None means the configured default.
#
# ==============================================

import logging
from typing import Any, Dict, List, Optional

from schemagate.allocator import DatabaseAllocator
from schemagate.config import AppConfig, get_config
from schemagate.dispatcher import CrudDispatcher, EntryCursor
from schemagate.errors import translate_storage_errors
from schemagate.inference import SchemaInferenceEngine
from schemagate.models import DatabaseHandle, SchemaShape
from schemagate.registry import Registry
from schemagate.storage import Deadline, Document, StorageDriver, create_driver

logger = logging.getLogger(__name__)


class Gateway:
    """Dynamic schema detection and generic CRUD over one document store."""

    def __init__(
        self,
        config: Optional[AppConfig] = None,
        driver: Optional[StorageDriver] = None,
        registry: Optional[Registry] = None,
    ):
        """
        Args:
            config: Application configuration. If None, loads from environment.
            driver: Storage driver; built from config when omitted.
            registry: Registry to use; a fresh one when omitted.
        """
        self.config = config or get_config()
        self.driver = driver or create_driver(self.config)
        self.registry = registry or Registry()

        # Zero or negative disables the deadline
        timeout = self.config.server.request_timeout_seconds
        self.default_timeout = timeout if timeout and timeout > 0 else None

        self.allocator = DatabaseAllocator(self.driver, self.registry, self.config.allocator)
        self.engine = SchemaInferenceEngine(self.driver, self.registry, self.config.inference)
        self.dispatcher = CrudDispatcher(self.driver, self.engine, default_timeout=self.default_timeout)

    def _deadline(self, timeout: Optional[float]) -> Deadline:
        return Deadline(self.default_timeout if timeout is None else timeout)

    # ======================================
    # Lifecycle
    # ======================================
    def connect(self) -> None:
        with translate_storage_errors(f"connect to {self.driver.name} store"):
            self.driver.connect()

    def close(self) -> None:
        self.driver.close()

    def ping(self, timeout: Optional[float] = None) -> bool:
        deadline = self._deadline(timeout)
        with translate_storage_errors("ping", deadline):
            return self.driver.ping(deadline)

    def __enter__(self):
        self.connect()
        return self

    def __exit__(self, exc_type, exc_val, exc_tb):
        self.close()
        return False

    # ======================================
    # Databases / collections
    # ======================================
    def allocate(self, name: Optional[str] = None, timeout: Optional[float] = None) -> DatabaseHandle:
        return self.allocator.allocate(name, self._deadline(timeout))

    def resolve(self, database: str, timeout: Optional[float] = None) -> DatabaseHandle:
        return self.allocator.resolve(database, self._deadline(timeout))

    def list_databases(self) -> List[DatabaseHandle]:
        return self.allocator.list_databases()

    def list_collections(self, database: str, timeout: Optional[float] = None) -> List[str]:
        deadline = self._deadline(timeout)
        handle = self.allocator.resolve(database, deadline)
        return self.engine.list_collections(handle, deadline)

    def detect_schema(
        self,
        database: str,
        collection: str,
        sample_size: Optional[int] = None,
        refresh: bool = False,
        strict: bool = False,
        timeout: Optional[float] = None,
    ) -> SchemaShape:
        deadline = self._deadline(timeout)
        handle = self.allocator.resolve(database, deadline)
        return self.engine.detect_schema(
            handle, collection, sample_size=sample_size, force_refresh=refresh, strict=strict, deadline=deadline
        )

    # ======================================
    # Entries
    # ======================================
    def list_entries(
        self,
        database: str,
        collection: str,
        query: Optional[Dict[str, Any]] = None,
        offset: int = 0,
        limit: Optional[int] = None,
        timeout: Optional[float] = None,
    ) -> EntryCursor:
        handle = self._handle_for(database, collection, timeout)
        return self.dispatcher.list(handle, collection, query, offset=offset, limit=limit, timeout=timeout)

    def create_entry(self, database: str, collection: str, document: Any, timeout: Optional[float] = None) -> Document:
        handle = self._handle_for(database, collection, timeout)
        return self.dispatcher.create(handle, collection, document, timeout=timeout)

    def read_entry(self, database: str, collection: str, doc_id: str, timeout: Optional[float] = None) -> Document:
        handle = self._handle_for(database, collection, timeout)
        return self.dispatcher.read(handle, collection, doc_id, timeout=timeout)

    def update_entry(
        self, database: str, collection: str, doc_id: str, partial: Any, timeout: Optional[float] = None
    ) -> Document:
        handle = self._handle_for(database, collection, timeout)
        return self.dispatcher.update(handle, collection, doc_id, partial, timeout=timeout)

    def delete_entry(self, database: str, collection: str, doc_id: str, timeout: Optional[float] = None) -> None:
        handle = self._handle_for(database, collection, timeout)
        self.dispatcher.delete(handle, collection, doc_id, timeout=timeout)

    def add_fields(self, database: str, collection: str, defaults: Any, timeout: Optional[float] = None) -> int:
        handle = self._handle_for(database, collection, timeout)
        return self.dispatcher.add_fields(handle, collection, defaults, timeout=timeout)

    def remove_field(self, database: str, collection: str, field_path: str, timeout: Optional[float] = None) -> int:
        handle = self._handle_for(database, collection, timeout)
        return self.dispatcher.remove_field(handle, collection, field_path, timeout=timeout)

    def _handle_for(self, database: str, collection: str, timeout: Optional[float]) -> DatabaseHandle:
        handle = self.allocator.resolve(database, self._deadline(timeout))
        DatabaseAllocator.validate_collection_name(collection)
        return handle
