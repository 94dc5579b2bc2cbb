# ==============================================
# Error Taxonomy
# ==============================================
#
# PURPOSE:
#   Every failure the gateway reports is one of a small set of
#   kinds. Store-layer exceptions (pymongo, builtin timeouts and
#   connection errors) are classified into these kinds at the
#   inference / dispatcher boundary and never passed through raw.
#
# KINDS:
# ------
#   InvalidName         400  name violates the store's naming rules
#   InvalidRequest      400  malformed body / filter / id
#   DuplicateName       409  allocation of a taken name (only if configured)
#   StorageUnavailable  503  store unreachable or operation failed
#   StorageTimeout      504  caller deadline exceeded
#   DatabaseNotFound    404  database neither registered nor in the store
#   CollectionNotFound  404  collection required but absent
#   NotFound            404  no document with that id
#   SchemaViolation     422  write conflicts with the inferred schema
#
#   SampleEmpty is informational and lives on SchemaShape.sample_empty.
#
# ==============================================

import logging
from contextlib import contextmanager
from typing import TYPE_CHECKING, Any, Dict, Iterator, List, Optional

import bson.errors
import pymongo.errors

if TYPE_CHECKING:
    from schemagate.storage.base import Deadline

logger = logging.getLogger(__name__)


class GatewayError(Exception):
    """Base class for every error surfaced to gateway callers."""

    kind = "InternalError"
    status_code = 500

    def __init__(self, message: str, details: Optional[Dict[str, Any]] = None):
        super().__init__(message)
        self.message = message
        self.details = details

    def to_dict(self) -> Dict[str, Any]:
        payload: Dict[str, Any] = {"kind": self.kind, "message": self.message}
        if self.details:
            payload["details"] = self.details
        return payload


class InvalidName(GatewayError):
    kind = "InvalidName"
    status_code = 400


class InvalidRequest(GatewayError):
    kind = "InvalidRequest"
    status_code = 400


class DuplicateName(GatewayError):
    kind = "DuplicateName"
    status_code = 409


class StorageUnavailable(GatewayError):
    kind = "StorageUnavailable"
    status_code = 503


class StorageTimeout(GatewayError):
    kind = "StorageTimeout"
    status_code = 504


class DatabaseNotFound(GatewayError):
    kind = "DatabaseNotFound"
    status_code = 404


class CollectionNotFound(GatewayError):
    kind = "CollectionNotFound"
    status_code = 404


class NotFound(GatewayError):
    kind = "NotFound"
    status_code = 404


class SchemaViolation(GatewayError):
    kind = "SchemaViolation"
    status_code = 422

    def __init__(self, message: str, reasons: Optional[List[str]] = None):
        super().__init__(message, {"reasons": reasons} if reasons else None)
        self.reasons = reasons or []


ERROR_KINDS = {
    cls.kind: cls
    for cls in (
        InvalidName,
        InvalidRequest,
        DuplicateName,
        StorageUnavailable,
        StorageTimeout,
        DatabaseNotFound,
        CollectionNotFound,
        NotFound,
        SchemaViolation,
    )
}


def error_from_payload(payload: Dict[str, Any]) -> GatewayError:
    """Rebuild a GatewayError from a ``{"kind", "message"}`` payload."""
    kind = payload.get("kind", "InternalError")
    message = payload.get("message", "unknown error")
    details = payload.get("details")
    cls = ERROR_KINDS.get(kind)
    if cls is SchemaViolation:
        return SchemaViolation(message, (details or {}).get("reasons"))
    if cls is None:
        return GatewayError(message, details)
    return cls(message, details)


def classify_storage_error(
    exc: BaseException, operation: str, deadline: Optional["Deadline"] = None
) -> GatewayError:
    """
    Map a store-layer exception onto the taxonomy.

    Args:
        exc: The exception raised by a storage driver
        operation: Short description used in the caller-facing message
        deadline: The caller's deadline; server selection cut short by it
                  is a timeout, not an outage

    Returns:
        The GatewayError to raise in its place.
    """
    if isinstance(exc, pymongo.errors.InvalidName):
        return InvalidName(f"{operation}: name rejected by the store")
    if isinstance(exc, pymongo.errors.ServerSelectionTimeoutError):
        if deadline is not None and deadline.expired:
            return StorageTimeout(f"{operation}: deadline exceeded")
        return StorageUnavailable(f"{operation}: storage is unreachable")
    if isinstance(exc, TimeoutError):
        return StorageTimeout(f"{operation}: deadline exceeded")
    if isinstance(exc, pymongo.errors.PyMongoError) and exc.timeout:
        return StorageTimeout(f"{operation}: deadline exceeded")
    if isinstance(exc, pymongo.errors.WriteError):
        return InvalidRequest(f"{operation}: the store refused the write")
    if isinstance(exc, (pymongo.errors.ConnectionFailure, ConnectionError)):
        return StorageUnavailable(f"{operation}: storage is unreachable")
    if isinstance(exc, (bson.errors.InvalidDocument, pymongo.errors.DocumentTooLarge)):
        return InvalidRequest(f"{operation}: document cannot be stored")
    return StorageUnavailable(f"{operation}: storage operation failed")


@contextmanager
def translate_storage_errors(operation: str, deadline: Optional["Deadline"] = None) -> Iterator[None]:
    """
    Classify any store-layer failure raised inside the block.

    GatewayErrors pass through untouched; everything the drivers
    raise is logged with full detail and replaced by a taxonomy error
    carrying only a generic message.
    """
    try:
        yield
    except GatewayError:
        raise
    except (pymongo.errors.PyMongoError, bson.errors.BSONError, OSError) as exc:
        # TimeoutError and ConnectionError are OSError subclasses
        error = classify_storage_error(exc, operation, deadline)
        logger.warning("%s failed (%s): %r", operation, error.kind, exc)
        raise error from exc
