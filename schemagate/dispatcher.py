# ==============================================
# CrudDispatcher
# ==============================================
#
# PURPOSE:
#   Generic create / read / update / delete / list over any
#   collection of any allocated database. Writes are validated
#   against the collection's inferred schema in permissive mode
#   before they reach the store; results come back normalized
#   (store id surfaced as "id") and store failures come back as
#   taxonomy errors.
#
# CLASS: CrudDispatcher
# ---------------------
#   Constructor:
#   ------------
#   - __init__(driver, engine: SchemaInferenceEngine,
#              default_timeout: float | None = None)
#
#   Methods:
#   --------
#   - list(handle, collection, query=None, offset=0, limit=None,
#          batch_size=100, timeout=None) -> EntryCursor
#   - create(handle, collection, document, timeout=None) -> dict
#   - read(handle, collection, doc_id, timeout=None) -> dict
#   - update(handle, collection, doc_id, partial, timeout=None) -> dict
#   - delete(handle, collection, doc_id, timeout=None) -> None
#   - add_fields(handle, collection, defaults, timeout=None) -> int
#   - remove_field(handle, collection, field_path, timeout=None) -> int
#
#   No lock is held across any store call; each call is atomic
#   at the store level only. Nothing is retried here.
#
# ==============================================

import logging
from typing import Any, Dict, Iterator, List, Optional

from bson import ObjectId

from schemagate.errors import InvalidRequest, NotFound, SchemaViolation, translate_storage_errors
from schemagate.inference import SchemaInferenceEngine, SchemaValidator
from schemagate.models import DatabaseHandle
from schemagate.storage import NATIVE_ID_FIELD, Deadline, Document, StorageDriver

logger = logging.getLogger(__name__)

ID_FIELD = "id"


def _plain(value: Any) -> Any:
    if isinstance(value, ObjectId):
        return str(value)
    if isinstance(value, dict):
        return {key: _plain(item) for key, item in value.items()}
    if isinstance(value, list):
        return [_plain(item) for item in value]
    return value


def normalize_document(document: Document) -> Document:
    """Surface the store id as ``id`` (string) and make ObjectIds plain strings."""
    normalized: Document = {}
    if NATIVE_ID_FIELD in document:
        normalized[ID_FIELD] = str(document[NATIVE_ID_FIELD])
    for key, value in document.items():
        if key == NATIVE_ID_FIELD:
            continue
        normalized[key] = _plain(value)
    return normalized


def _check_keys(document: Dict[str, Any], prefix: str = "") -> None:
    for key, value in document.items():
        if not isinstance(key, str) or not key:
            raise InvalidRequest(f"field names must be non-empty strings (at '{prefix or '<root>'}')")
        if key.startswith("$") or "." in key:
            raise InvalidRequest(f"field name '{prefix}{key}' must not start with '$' or contain '.'")
        _check_nested(value, f"{prefix}{key}.")


def _check_nested(value: Any, prefix: str) -> None:
    if isinstance(value, dict):
        _check_keys(value, prefix)
    elif isinstance(value, list):
        for item in value:
            _check_nested(item, prefix)


def _check_filter(query: Dict[str, Any]) -> None:
    """Equality filters only: field paths mapped to literal values, no operators."""
    for path, value in query.items():
        if not isinstance(path, str) or not path or path.startswith("$") or "" in path.split("."):
            raise InvalidRequest(f"filter key {path!r} is not a field path")
        _check_nested(value, f"{path}.")


class EntryCursor:
    """
    Lazy, finite, restartable view over the documents of a collection.

    Nothing is fetched until iteration starts; each iteration starts over
    from ``offset`` and pulls ``batch_size`` documents per store call, so
    the whole collection is never held in memory.
    """

    def __init__(
        self,
        dispatcher: "CrudDispatcher",
        handle: DatabaseHandle,
        collection: str,
        query: Dict[str, Any],
        offset: int,
        limit: Optional[int],
        batch_size: int,
        timeout: Optional[float],
    ):
        self._dispatcher = dispatcher
        self.handle = handle
        self.collection = collection
        self.query = query
        self.offset = offset
        self.limit = limit
        self.batch_size = batch_size
        self.timeout = timeout

    def __iter__(self) -> Iterator[Document]:
        position = self.offset
        remaining = self.limit
        while remaining is None or remaining > 0:
            size = self.batch_size if remaining is None else min(self.batch_size, remaining)
            batch = self._dispatcher._fetch_batch(
                self.handle, self.collection, self.query, position, size, self.timeout
            )
            for document in batch:
                yield normalize_document(document)
            if len(batch) < size:
                return
            position += len(batch)
            if remaining is not None:
                remaining -= len(batch)

    def page(self) -> List[Document]:
        return list(self)


class CrudDispatcher:
    def __init__(
        self,
        driver: StorageDriver,
        engine: SchemaInferenceEngine,
        default_timeout: Optional[float] = None,
    ):
        self.driver = driver
        self.engine = engine
        self.validator = SchemaValidator(engine.inferrer)
        self.default_timeout = default_timeout

    def _deadline(self, timeout: Optional[float]) -> Deadline:
        return Deadline(self.default_timeout if timeout is None else timeout)

    # ======================================
    # Reads
    # ======================================
    def list(
        self,
        handle: DatabaseHandle,
        collection: str,
        query: Optional[Dict[str, Any]] = None,
        offset: int = 0,
        limit: Optional[int] = None,
        batch_size: int = 100,
        timeout: Optional[float] = None,
    ) -> EntryCursor:
        """
        Documents matching an equality ``query``, in stable store order.

        Args:
            query: {path: value}; "id" matches the store id
            offset: Documents to skip
            limit: Maximum documents to yield (None = until exhausted)
            batch_size: Documents per store call
            timeout: Per-store-call deadline in seconds

        Returns:
            EntryCursor (nothing is fetched until it is iterated).
        """
        if offset < 0:
            raise InvalidRequest("offset must not be negative")
        if limit is not None and limit < 0:
            raise InvalidRequest("limit must not be negative")
        if batch_size < 1:
            raise InvalidRequest("batch_size must be positive")
        native_query = dict(query or {})
        _check_filter(native_query)
        if ID_FIELD in native_query:
            native_query[NATIVE_ID_FIELD] = str(native_query.pop(ID_FIELD))
        return EntryCursor(self, handle, collection, native_query, offset, limit, batch_size, timeout)

    def _fetch_batch(
        self,
        handle: DatabaseHandle,
        collection: str,
        query: Dict[str, Any],
        skip: int,
        limit: int,
        timeout: Optional[float],
    ) -> List[Document]:
        deadline = self._deadline(timeout)
        with translate_storage_errors(f"list {handle.name}.{collection}", deadline):
            return self.driver.find(handle.name, collection, query, skip, limit, deadline)

    def read(self, handle: DatabaseHandle, collection: str, doc_id: str, timeout: Optional[float] = None) -> Document:
        deadline = self._deadline(timeout)
        with translate_storage_errors(f"read {handle.name}.{collection}/{doc_id}", deadline):
            document = self.driver.get(handle.name, collection, doc_id, deadline)
        if document is None:
            raise NotFound(f"no document '{doc_id}' in {handle.name}.{collection}")
        return normalize_document(document)

    # ======================================
    # Writes
    # ======================================
    def _payload(self, document: Any) -> Dict[str, Any]:
        if not isinstance(document, dict):
            raise InvalidRequest("document must be a JSON object")
        _check_keys(document)
        # The store owns ids; caller-supplied ones are ignored
        return {key: value for key, value in document.items() if key not in (ID_FIELD, NATIVE_ID_FIELD)}

    def _validate(
        self,
        handle: DatabaseHandle,
        collection: str,
        payload: Dict[str, Any],
        deadline: Deadline,
        partial: bool = False,
    ):
        shape = self.engine.detect_schema(handle, collection, deadline=deadline)
        result = self.validator.validate(shape, payload, partial=partial)
        if result.is_rejected:
            logger.info(
                "Rejected write to %s.%s: %s", handle.name, collection, "; ".join(result.reasons)
            )
            raise SchemaViolation(
                f"document conflicts with the inferred schema of {handle.name}.{collection}",
                result.reasons,
            )
        return result

    def _after_write(self, handle: DatabaseHandle, collection: str, result) -> None:
        if not result.invalidates_schema:
            return
        logger.info(
            "Write to %s.%s altered field(s) %s; schema marked stale",
            handle.name, collection, ", ".join(result.new_fields + result.changed_fields),
        )
        self.engine.invalidate(handle, collection)

    def create(self, handle: DatabaseHandle, collection: str, document: Any, timeout: Optional[float] = None) -> Document:
        """
        Insert a document after permissive validation.

        Returns:
            The stored document with its store-assigned ``id``.

        Raises:
            SchemaViolation: A value conflicts with a required, non-mixed field.
        """
        payload = self._payload(document)
        deadline = self._deadline(timeout)
        result = self._validate(handle, collection, payload, deadline)

        with translate_storage_errors(f"create in {handle.name}.{collection}", deadline):
            stored = self.driver.insert(handle.name, collection, payload, deadline)

        self._after_write(handle, collection, result)
        return normalize_document(stored)

    def update(
        self,
        handle: DatabaseHandle,
        collection: str,
        doc_id: str,
        partial: Any,
        timeout: Optional[float] = None,
    ) -> Document:
        """Set only the fields present in ``partial``; the rest keep their values."""
        payload = self._payload(partial)
        deadline = self._deadline(timeout)
        result = self._validate(handle, collection, payload, deadline, partial=True)

        with translate_storage_errors(f"update {handle.name}.{collection}/{doc_id}", deadline):
            stored = self.driver.update(handle.name, collection, doc_id, payload, deadline)
        if stored is None:
            raise NotFound(f"no document '{doc_id}' in {handle.name}.{collection}")

        self._after_write(handle, collection, result)
        return normalize_document(stored)

    def delete(self, handle: DatabaseHandle, collection: str, doc_id: str, timeout: Optional[float] = None) -> None:
        """Remove a document. Deleting an already-deleted id raises NotFound."""
        deadline = self._deadline(timeout)
        with translate_storage_errors(f"delete {handle.name}.{collection}/{doc_id}", deadline):
            deleted = self.driver.delete(handle.name, collection, doc_id, deadline)
        if not deleted:
            raise NotFound(f"no document '{doc_id}' in {handle.name}.{collection}")

    # ======================================
    # Schema maintenance
    # ======================================
    def add_fields(
        self,
        handle: DatabaseHandle,
        collection: str,
        defaults: Any,
        timeout: Optional[float] = None,
    ) -> int:
        """
        Give every document lacking a field that field's default value.

        Args:
            defaults: {field path: default value}

        Returns:
            Number of document modifications.
        """
        if not isinstance(defaults, dict) or not defaults:
            raise InvalidRequest("fields must be a non-empty JSON object")
        for path in defaults:
            self._check_path(path)

        deadline = self._deadline(timeout)
        shape = self.engine.detect_schema(handle, collection, deadline=deadline)
        result = self.validator.validate_fields(shape, defaults)
        if result.is_rejected:
            raise SchemaViolation(
                f"default values conflict with the inferred schema of {handle.name}.{collection}",
                result.reasons,
            )

        modified = 0
        try:
            with translate_storage_errors(f"add fields to {handle.name}.{collection}", deadline):
                for path, value in defaults.items():
                    modified += self.driver.set_default(handle.name, collection, path, value, deadline)
        finally:
            # Earlier paths may have been applied before a failure
            self.engine.invalidate(handle, collection)
        return modified

    def remove_field(
        self, handle: DatabaseHandle, collection: str, field_path: str, timeout: Optional[float] = None
    ) -> int:
        """Strip ``field_path`` from every document. Returns documents modified."""
        self._check_path(field_path)
        deadline = self._deadline(timeout)
        try:
            with translate_storage_errors(f"remove field from {handle.name}.{collection}", deadline):
                modified = self.driver.unset_field(handle.name, collection, field_path, deadline)
        finally:
            self.engine.invalidate(handle, collection)
        return modified

    @staticmethod
    def _check_path(path: Any) -> None:
        if not isinstance(path, str) or not path or path.startswith("$") or "" in path.split("."):
            raise InvalidRequest(f"invalid field path: {path!r}")
        if path.split(".")[0] in (ID_FIELD, NATIVE_ID_FIELD):
            raise InvalidRequest("the id field cannot be modified")
