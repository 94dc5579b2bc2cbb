# ==============================================
# Tests for the HTTP API
# ==============================================
#
# Drives the FastAPI app through TestClient with a Gateway
# over the memory driver injected (the lifespan then leaves
# the connection alone).
# ==============================================

import json

import pytest
from fastapi.testclient import TestClient

from schemagate.api import create_app


@pytest.fixture
def allocated(api):
    assert api.post("/allocate", json={"name": "shop"}).status_code == 200
    return api


class TestService:
    def test_ping(self, api):
        response = api.get("/ping")
        assert response.status_code == 200
        assert response.json() == {"message": "pong"}

    def test_info(self, api):
        body = api.get("/").json()
        assert body["service"] == "schemagate"
        assert "GET /ping" in body["endpoints"]

    def test_versioned_alias(self, api):
        assert api.get("/api/v1/ping").json() == {"message": "pong"}

    def test_gateway_missing(self, config):
        app = create_app(config=config)
        # Lifespan not entered, so no gateway was built
        response = TestClient(app).post("/allocate", json={"name": "shop"})
        assert response.status_code == 503
        assert response.json()["error"]["kind"] == "StorageUnavailable"


class TestScenario:
    def test_orders_walkthrough(self, api):
        """allocate → detect (empty) → write → detect → write without qty → qty optional."""
        allocated = api.post("/allocate", json={"name": "shop"})
        assert allocated.status_code == 200
        assert allocated.json()["name"] == "shop"

        empty = api.get("/detect-schema/shop/orders")
        assert empty.status_code == 200
        assert empty.json() == {}
        assert empty.headers["X-Sample-Empty"] == "true"

        created = api.post("/entry/shop/orders", json={"item": "pen", "qty": 3})
        assert created.status_code == 201
        assert created.json() == {"id": "1", "item": "pen", "qty": 3}

        detected = api.get("/detect-schema/shop/orders")
        assert detected.json() == {
            "item": {"type": "string", "optional": False},
            "qty": {"type": "integer", "optional": False},
        }
        assert detected.headers["X-Sample-Size"] == "1"

        assert api.post("/entry/shop/orders", json={"item": "pen"}).status_code == 201
        assert api.get("/detect-schema/shop/orders").json()["qty"]["optional"] is True

        assert api.get("/collections/shop").json() == {"database": "shop", "collections": ["orders"]}


class TestAllocate:
    def test_generated_name(self, api):
        response = api.post("/allocate")
        assert response.status_code == 200
        assert response.json()["name"].startswith("db_")

    def test_empty_body_object(self, api):
        assert api.post("/allocate", json={}).json()["name"].startswith("db_")

    def test_idempotent(self, api):
        first = api.post("/allocate", json={"name": "shop"}).json()
        second = api.post("/allocate", json={"name": "shop"}).json()
        assert first == second

    def test_invalid_name(self, api):
        response = api.post("/allocate", json={"name": "bad/name"})
        assert response.status_code == 400
        assert response.json() == {
            "success": False,
            "error": {"kind": "InvalidName", "message": response.json()["error"]["message"]},
        }


class TestEntries:
    def test_crud(self, allocated):
        entry = allocated.post("/entry/shop/orders", json={"item": "pen", "qty": 3}).json()

        read = allocated.get(f"/entry/shop/orders/{entry['id']}")
        assert read.json() == entry

        updated = allocated.put(f"/entry/shop/orders/{entry['id']}", json={"qty": 4})
        assert updated.json() == {"id": entry["id"], "item": "pen", "qty": 4}

        deleted = allocated.delete(f"/entry/shop/orders/{entry['id']}")
        assert deleted.json() == {"success": True, "id": entry["id"]}

        gone = allocated.delete(f"/entry/shop/orders/{entry['id']}")
        assert gone.status_code == 404
        assert gone.json()["error"]["kind"] == "NotFound"

    def test_non_object_body(self, allocated):
        response = allocated.post("/entry/shop/orders", json=[1, 2, 3])
        assert response.status_code == 400
        assert response.json()["error"]["kind"] == "InvalidRequest"

    def test_schema_violation(self, allocated):
        allocated.post("/entry/shop/orders", json={"item": "pen", "qty": 3})
        allocated.get("/detect-schema/shop/orders")

        response = allocated.post("/entry/shop/orders", json={"item": "pen", "qty": "three"})
        assert response.status_code == 422
        error = response.json()["error"]
        assert error["kind"] == "SchemaViolation"
        assert error["details"]["reasons"]

    def test_unknown_database(self, api):
        response = api.get("/entries/nowhere/orders")
        assert response.status_code == 404
        assert response.json()["error"]["kind"] == "DatabaseNotFound"

    def test_store_down(self, allocated, driver):
        driver.set_available(False)
        response = allocated.get("/entries/shop/orders")
        assert response.status_code == 503
        error = response.json()["error"]
        assert error["kind"] == "StorageUnavailable"
        assert "memory store" not in error["message"]


class TestListing:
    @pytest.fixture
    def seeded(self, allocated):
        for n in range(5):
            allocated.post("/entry/shop/numbers", json={"n": n, "even": n % 2 == 0})
        return allocated

    def test_pagination_headers(self, seeded):
        first = seeded.get("/entries/shop/numbers", params={"limit": 2})
        assert [doc["n"] for doc in first.json()] == [0, 1]
        assert first.headers["X-Next-Offset"] == "2"

        last = seeded.get("/entries/shop/numbers", params={"offset": 4, "limit": 2})
        assert [doc["n"] for doc in last.json()] == [4]
        assert "X-Next-Offset" not in last.headers

    def test_filter(self, seeded):
        response = seeded.get("/entries/shop/numbers", params={"filter": json.dumps({"even": True})})
        assert [doc["n"] for doc in response.json()] == [0, 2, 4]

    @pytest.mark.parametrize("raw", ["{not json", "[1, 2]", '{"$where": "sleep(100)"}', '{"n": {"$gt": 1}}'])
    def test_bad_filter(self, seeded, raw):
        response = seeded.get("/entries/shop/numbers", params={"filter": raw})
        assert response.status_code == 400
        assert response.json()["error"]["kind"] == "InvalidRequest"

    def test_limit_too_large(self, seeded):
        response = seeded.get("/entries/shop/numbers", params={"limit": 100000})
        assert response.status_code == 400

    def test_negative_offset(self, seeded):
        assert seeded.get("/entries/shop/numbers", params={"offset": -1}).status_code == 400


class TestSchemaEndpoints:
    def test_strict_missing_collection(self, allocated):
        response = allocated.get("/detect-schema/shop/orders", params={"strict": "true"})
        assert response.status_code == 404
        assert response.json()["error"]["kind"] == "CollectionNotFound"

    def test_invalid_sample_size(self, allocated):
        assert allocated.get("/detect-schema/shop/orders", params={"sample_size": 0}).status_code == 400

    def test_refresh(self, allocated):
        allocated.get("/detect-schema/shop/orders")
        allocated.post("/entry/shop/orders", json={"item": "pen"})
        response = allocated.get("/detect-schema/shop/orders", params={"refresh": "true"})
        assert "item" in response.json()

    def test_add_and_remove_fields(self, allocated):
        allocated.post("/entry/shop/orders", json={"item": "pen"})
        allocated.post("/entry/shop/orders", json={"item": "ink"})

        added = allocated.put("/schema/shop/orders", json={"fields": {"status": "new"}})
        assert added.json() == {"success": True, "modified": 2, "fields": ["status"]}
        assert allocated.get("/detect-schema/shop/orders").json()["status"] == {
            "type": "string",
            "optional": False,
        }

        removed = allocated.delete("/schema/shop/orders/status")
        assert removed.json() == {"success": True, "modified": 2, "field": "status"}
        assert "status" not in allocated.get("/detect-schema/shop/orders").json()

    def test_remove_nested_field(self, allocated):
        allocated.post("/entry/shop/orders", json={"meta": {"source": "web"}})
        removed = allocated.delete("/api/v1/schema/shop/orders/meta.source")
        assert removed.json()["modified"] == 1
