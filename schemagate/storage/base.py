"""Storage driver contract and request deadlines.

Drivers are thin: they talk to the store and raise whatever the store
raises. Classification into the gateway's error taxonomy happens above
them (see ``schemagate.errors.translate_storage_errors``), and so does
any decision about retries.
"""

import time
from abc import ABC, abstractmethod
from typing import Any, Dict, List, Optional

Document = Dict[str, Any]

# Field holding the store-assigned id in raw documents
NATIVE_ID_FIELD = "_id"


class Deadline:
    """
    Absolute point in time a store-facing call must finish by.

    ``Deadline(None)`` never expires. ``Deadline(0)`` is already expired.
    """

    def __init__(self, seconds: Optional[float] = None):
        self.seconds = seconds
        self._expires_at = None if seconds is None else time.monotonic() + seconds

    @classmethod
    def none(cls) -> "Deadline":
        return cls(None)

    def remaining(self) -> Optional[float]:
        """Seconds left, or None when unbounded."""
        if self._expires_at is None:
            return None
        return max(0.0, self._expires_at - time.monotonic())

    @property
    def expired(self) -> bool:
        return self._expires_at is not None and time.monotonic() >= self._expires_at

    def check(self, operation: str = "storage call") -> None:
        """Raise TimeoutError if the deadline has passed."""
        if self.expired:
            raise TimeoutError(f"{operation} exceeded its {self.seconds}s deadline")

    def __repr__(self) -> str:
        return f"Deadline(seconds={self.seconds!r})"


class StorageDriver(ABC):
    """
    Capability interface over a document store.

    Every data call is parameterized by database and collection name and
    takes a Deadline. Documents go in and come out as plain dicts with
    the store's id under ``_id``; ids passed in are the string form.
    """

    name = "abstract"

    @abstractmethod
    def connect(self) -> None:
        """Open the connection and verify the store answers."""

    @abstractmethod
    def close(self) -> None:
        """Release the connection."""

    @abstractmethod
    def ping(self, deadline: Deadline) -> bool:
        """Round-trip to the store."""

    # --- databases / collections ---

    @abstractmethod
    def create_database(self, database: str, deadline: Deadline) -> None:
        """Create or select a database, failing if the name is unusable."""

    @abstractmethod
    def list_databases(self, deadline: Deadline) -> List[str]:
        """Names of databases currently present in the store."""

    def database_exists(self, database: str, deadline: Deadline) -> bool:
        return database in self.list_databases(deadline)

    @abstractmethod
    def list_collections(self, database: str, deadline: Deadline) -> List[str]:
        """Names of collections in a database."""

    def collection_exists(self, database: str, collection: str, deadline: Deadline) -> bool:
        return collection in self.list_collections(database, deadline)

    # --- documents ---

    @abstractmethod
    def sample(
        self, database: str, collection: str, size: int, strategy: str, deadline: Deadline
    ) -> List[Document]:
        """Return up to ``size`` documents chosen by ``strategy``."""

    @abstractmethod
    def find(
        self,
        database: str,
        collection: str,
        query: Dict[str, Any],
        skip: int,
        limit: int,
        deadline: Deadline,
    ) -> List[Document]:
        """One page of documents matching an equality query, in stable order."""

    @abstractmethod
    def insert(self, database: str, collection: str, document: Document, deadline: Deadline) -> Document:
        """Insert a document and return it as stored (with ``_id``)."""

    @abstractmethod
    def get(self, database: str, collection: str, doc_id: str, deadline: Deadline) -> Optional[Document]:
        """Fetch one document by id, or None."""

    @abstractmethod
    def update(
        self, database: str, collection: str, doc_id: str, fields: Document, deadline: Deadline
    ) -> Optional[Document]:
        """Set top-level fields on one document; return it, or None if absent."""

    @abstractmethod
    def delete(self, database: str, collection: str, doc_id: str, deadline: Deadline) -> bool:
        """Remove one document; False if there was nothing to remove."""

    # --- bulk schema maintenance ---

    @abstractmethod
    def set_default(
        self, database: str, collection: str, field_path: str, value: Any, deadline: Deadline
    ) -> int:
        """Set ``field_path`` on every document lacking it. Returns count modified."""

    @abstractmethod
    def unset_field(self, database: str, collection: str, field_path: str, deadline: Deadline) -> int:
        """Remove ``field_path`` from every document. Returns count modified."""

    def __enter__(self):
        self.connect()
        return self

    def __exit__(self, exc_type, exc_val, exc_tb):
        self.close()
