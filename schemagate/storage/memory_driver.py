"""In-process storage driver.

Keeps documents in dicts keyed by database and collection, assigns
sequential string ids ("1", "2", ...) per collection, and hands out
deep copies so callers never alias stored state. Used by the test suite
and by ``STORAGE_BACKEND=memory`` for local experiments.
"""

import copy
import logging
import random
import threading
from typing import Any, Dict, List, Optional

from .base import NATIVE_ID_FIELD, Deadline, Document, StorageDriver

logger = logging.getLogger(__name__)

_MISSING = object()


def _lookup(document: Document, path: str) -> Any:
    node: Any = document
    for part in path.split("."):
        if not isinstance(node, dict) or part not in node:
            return _MISSING
        node = node[part]
    return node


def _blocked(document: Document, parts: List[str]) -> bool:
    """True if a value on the way down ``parts`` exists and is not an object."""
    node: Any = document
    for part in parts:
        if part not in node:
            return False
        node = node[part]
        if not isinstance(node, dict):
            return True
    return False


def _matches(document: Document, query: Dict[str, Any]) -> bool:
    for path, expected in query.items():
        if path == NATIVE_ID_FIELD:
            if str(document.get(NATIVE_ID_FIELD)) != str(expected):
                return False
            continue
        if _lookup(document, path) != expected:
            return False
    return True


class MemoryDriver(StorageDriver):
    name = "memory"

    def __init__(self):
        self._lock = threading.Lock()
        self._data: Dict[str, Dict[str, Dict[str, Document]]] = {}
        self._counters: Dict[tuple, int] = {}
        self._available = True
        self._connected = False

    # ======================================
    # Failure injection
    # ======================================
    def set_available(self, available: bool) -> None:
        """Make every subsequent call fail as if the store were down."""
        self._available = available

    def _enter(self, deadline: Deadline, operation: str) -> None:
        if not self._available:
            raise ConnectionError(f"memory store unavailable during {operation}")
        deadline.check(operation)

    # ======================================
    # Connection
    # ======================================
    def connect(self) -> None:
        if not self._available:
            raise ConnectionError("memory store unavailable")
        self._connected = True
        logger.info("Memory storage driver ready")

    def close(self) -> None:
        self._connected = False

    def ping(self, deadline: Deadline) -> bool:
        self._enter(deadline, "ping")
        return True

    # ======================================
    # Databases / collections
    # ======================================
    def create_database(self, database: str, deadline: Deadline) -> None:
        self._enter(deadline, "create_database")
        with self._lock:
            self._data.setdefault(database, {})

    def list_databases(self, deadline: Deadline) -> List[str]:
        self._enter(deadline, "list_databases")
        with self._lock:
            return sorted(self._data)

    def list_collections(self, database: str, deadline: Deadline) -> List[str]:
        self._enter(deadline, "list_collections")
        with self._lock:
            return sorted(self._data.get(database, {}))

    def _documents(self, database: str, collection: str) -> Dict[str, Document]:
        # Caller holds the lock
        return self._data.setdefault(database, {}).setdefault(collection, {})

    def _existing(self, database: str, collection: str) -> Dict[str, Document]:
        return self._data.get(database, {}).get(collection, {})

    # ======================================
    # Documents
    # ======================================
    def sample(
        self, database: str, collection: str, size: int, strategy: str, deadline: Deadline
    ) -> List[Document]:
        self._enter(deadline, "sample")
        with self._lock:
            docs = list(self._existing(database, collection).values())
        if strategy == "recent":
            docs = list(reversed(docs))[:size]
        elif strategy == "random":
            docs = random.sample(docs, min(size, len(docs)))
        else:
            docs = docs[:size]
        return copy.deepcopy(docs)

    def find(
        self,
        database: str,
        collection: str,
        query: Dict[str, Any],
        skip: int,
        limit: int,
        deadline: Deadline,
    ) -> List[Document]:
        self._enter(deadline, "find")
        with self._lock:
            docs = [doc for doc in self._existing(database, collection).values() if _matches(doc, query)]
        return copy.deepcopy(docs[skip:skip + limit])

    def insert(self, database: str, collection: str, document: Document, deadline: Deadline) -> Document:
        self._enter(deadline, "insert")
        with self._lock:
            key = (database, collection)
            self._counters[key] = self._counters.get(key, 0) + 1
            doc_id = str(self._counters[key])
            stored = copy.deepcopy(document)
            stored[NATIVE_ID_FIELD] = doc_id
            self._documents(database, collection)[doc_id] = stored
            return copy.deepcopy(stored)

    def get(self, database: str, collection: str, doc_id: str, deadline: Deadline) -> Optional[Document]:
        self._enter(deadline, "get")
        with self._lock:
            stored = self._existing(database, collection).get(str(doc_id))
            return copy.deepcopy(stored) if stored is not None else None

    def update(
        self, database: str, collection: str, doc_id: str, fields: Document, deadline: Deadline
    ) -> Optional[Document]:
        self._enter(deadline, "update")
        with self._lock:
            stored = self._existing(database, collection).get(str(doc_id))
            if stored is None:
                return None
            stored.update(copy.deepcopy(fields))
            return copy.deepcopy(stored)

    def delete(self, database: str, collection: str, doc_id: str, deadline: Deadline) -> bool:
        self._enter(deadline, "delete")
        with self._lock:
            return self._existing(database, collection).pop(str(doc_id), None) is not None

    # ======================================
    # Bulk schema maintenance
    # ======================================
    def set_default(
        self, database: str, collection: str, field_path: str, value: Any, deadline: Deadline
    ) -> int:
        self._enter(deadline, "set_default")
        parts = field_path.split(".")
        modified = 0
        with self._lock:
            for doc in self._existing(database, collection).values():
                if _lookup(doc, field_path) is not _MISSING or _blocked(doc, parts[:-1]):
                    continue
                node = doc
                for part in parts[:-1]:
                    node = node.setdefault(part, {})
                node[parts[-1]] = copy.deepcopy(value)
                modified += 1
        return modified

    def unset_field(self, database: str, collection: str, field_path: str, deadline: Deadline) -> int:
        self._enter(deadline, "unset_field")
        parent_path, _, leaf = field_path.rpartition(".")
        modified = 0
        with self._lock:
            for doc in self._existing(database, collection).values():
                parent = _lookup(doc, parent_path) if parent_path else doc
                if isinstance(parent, dict) and leaf in parent:
                    del parent[leaf]
                    modified += 1
        return modified
