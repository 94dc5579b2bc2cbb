# ==============================================
# Tests for the error taxonomy
# ==============================================

import bson.errors
import pymongo.errors
import pytest

from schemagate.errors import (
    DatabaseNotFound,
    GatewayError,
    InvalidName,
    InvalidRequest,
    NotFound,
    SchemaViolation,
    StorageTimeout,
    StorageUnavailable,
    classify_storage_error,
    error_from_payload,
    translate_storage_errors,
)
from schemagate.storage import Deadline


class TestClassify:
    @pytest.mark.parametrize(
        "exc, expected",
        [
            (pymongo.errors.InvalidName("bad"), InvalidName),
            (pymongo.errors.ServerSelectionTimeoutError("no servers"), StorageUnavailable),
            (pymongo.errors.AutoReconnect("lost"), StorageUnavailable),
            (pymongo.errors.ExecutionTimeout("slow", code=50), StorageTimeout),
            (pymongo.errors.NetworkTimeout("slow"), StorageTimeout),
            (pymongo.errors.OperationFailure("failed", code=2), StorageUnavailable),
            (pymongo.errors.DocumentTooLarge("big"), InvalidRequest),
            (bson.errors.InvalidDocument("bad key"), InvalidRequest),
            (pymongo.errors.WriteError("Cannot create field", code=28), InvalidRequest),
            (TimeoutError("deadline"), StorageTimeout),
            (ConnectionError("down"), StorageUnavailable),
        ],
    )
    def test_kinds(self, exc, expected):
        assert type(classify_storage_error(exc, "op")) is expected

    def test_server_selection_past_deadline_is_timeout(self):
        exc = pymongo.errors.ServerSelectionTimeoutError("no servers")
        assert type(classify_storage_error(exc, "op", Deadline(0))) is StorageTimeout
        assert type(classify_storage_error(exc, "op", Deadline(None))) is StorageUnavailable

    def test_message_hides_store_detail(self):
        error = classify_storage_error(pymongo.errors.OperationFailure("secret detail"), "read x")
        assert "secret" not in error.message
        assert error.message.startswith("read x")


class TestTranslate:
    def test_deadline_is_passed_on(self):
        with pytest.raises(StorageTimeout):
            with translate_storage_errors("read x", Deadline(0)):
                raise pymongo.errors.ServerSelectionTimeoutError("no servers")

    def test_store_error_is_replaced(self):
        with pytest.raises(StorageUnavailable) as exc_info:
            with translate_storage_errors("read"):
                raise pymongo.errors.AutoReconnect("lost")
        assert isinstance(exc_info.value.__cause__, pymongo.errors.AutoReconnect)

    def test_gateway_errors_pass_through(self):
        with pytest.raises(NotFound):
            with translate_storage_errors("read"):
                raise NotFound("gone")

    def test_other_exceptions_propagate(self):
        with pytest.raises(KeyError):
            with translate_storage_errors("read"):
                raise KeyError("bug")


class TestPayloads:
    def test_to_dict(self):
        assert NotFound("gone").to_dict() == {"kind": "NotFound", "message": "gone"}
        assert SchemaViolation("bad", ["r1"]).to_dict() == {
            "kind": "SchemaViolation",
            "message": "bad",
            "details": {"reasons": ["r1"]},
        }

    def test_status_codes(self):
        assert InvalidName.status_code == 400
        assert DatabaseNotFound.status_code == 404
        assert SchemaViolation.status_code == 422
        assert StorageUnavailable.status_code == 503
        assert StorageTimeout.status_code == 504

    def test_round_trip_kind(self):
        error = error_from_payload({"kind": "DatabaseNotFound", "message": "nope"})
        assert isinstance(error, DatabaseNotFound)
        assert error.message == "nope"

    def test_unknown_kind(self):
        error = error_from_payload({"kind": "InternalError", "message": "boom"})
        assert type(error) is GatewayError
