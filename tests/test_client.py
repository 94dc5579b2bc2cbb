# ==============================================
# Tests for GatewayClient
# ==============================================
#
# requests.Session.request is replaced with a stub, so no
# server is started.
# ==============================================

from unittest.mock import MagicMock

import pytest
import requests

from schemagate.client import GatewayClient
from schemagate.errors import GatewayError, NotFound, SchemaViolation, StorageTimeout, StorageUnavailable


def _response(status_code, body):
    response = MagicMock(spec=requests.Response)
    response.status_code = status_code
    if isinstance(body, Exception):
        response.json.side_effect = body
    else:
        response.json.return_value = body
    return response


@pytest.fixture
def client():
    client = GatewayClient("http://gateway:9081/")
    client._session.request = MagicMock()
    yield client
    client.close()


class TestRequests:
    def test_urls_are_versioned_and_quoted(self, client):
        client._session.request.return_value = _response(200, {"id": "1"})
        client.read_entry("shop", "orders", "a/b")

        method, url = client._session.request.call_args.args
        assert method == "GET"
        assert url == "http://gateway:9081/api/v1/entry/shop/orders/a%2Fb"

    def test_detect_schema_params(self, client):
        client._session.request.return_value = _response(200, {})
        client.detect_schema("shop", "orders", sample_size=10, refresh=True)

        assert client._session.request.call_args.kwargs["params"] == {"sample_size": 10, "refresh": "true"}

    def test_list_entries_filter_is_json(self, client):
        client._session.request.return_value = _response(200, [])
        client.list_entries("shop", "orders", {"item": "pen"}, limit=5)

        params = client._session.request.call_args.kwargs["params"]
        assert params == {"offset": 0, "limit": 5, "filter": '{"item": "pen"}'}

    def test_allocate_without_name(self, client):
        client._session.request.return_value = _response(200, {"name": "db_x"})
        assert client.allocate()["name"] == "db_x"
        assert client._session.request.call_args.kwargs["json"] == {}

    def test_ping(self, client):
        client._session.request.return_value = _response(200, {"message": "pong"})
        assert client.ping() is True

    def test_unversioned_prefix(self):
        client = GatewayClient("http://gateway:9081", api_prefix="")
        assert client._url("ping") == "http://gateway:9081/ping"


class TestErrors:
    def test_error_envelope_is_raised(self, client):
        client._session.request.return_value = _response(
            404, {"success": False, "error": {"kind": "NotFound", "message": "no document '9'"}}
        )
        with pytest.raises(NotFound, match="no document"):
            client.read_entry("shop", "orders", "9")

    def test_schema_violation_keeps_reasons(self, client):
        client._session.request.return_value = _response(
            422,
            {
                "success": False,
                "error": {
                    "kind": "SchemaViolation",
                    "message": "conflict",
                    "details": {"reasons": ["field 'qty' expects integer, got string"]},
                },
            },
        )
        with pytest.raises(SchemaViolation) as exc_info:
            client.create_entry("shop", "orders", {"qty": "x"})
        assert exc_info.value.reasons == ["field 'qty' expects integer, got string"]

    def test_non_json_error(self, client):
        client._session.request.return_value = _response(502, ValueError("not json"))
        with pytest.raises(GatewayError, match="HTTP 502"):
            client.ping()

    def test_timeout(self, client):
        client._session.request.side_effect = requests.exceptions.Timeout()
        with pytest.raises(StorageTimeout):
            client.ping()

    def test_unreachable(self, client):
        client._session.request.side_effect = requests.exceptions.ConnectionError("refused")
        with pytest.raises(StorageUnavailable):
            client.ping()
