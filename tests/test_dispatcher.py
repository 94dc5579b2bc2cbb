# ==============================================
# Tests for CrudDispatcher (through the Gateway)
# ==============================================

import pytest

from schemagate.dispatcher import normalize_document
from schemagate.errors import (
    DatabaseNotFound,
    InvalidName,
    InvalidRequest,
    NotFound,
    SchemaViolation,
    StorageTimeout,
    StorageUnavailable,
)
from schemagate.models import CollectionState, TypeTag


@pytest.fixture
def orders(gateway, shop, sample_orders):
    """shop.orders seeded with sample_orders; returns the created entries."""
    return [gateway.create_entry("shop", "orders", doc) for doc in sample_orders]


class TestCreateRead:
    def test_round_trip(self, gateway, shop):
        created = gateway.create_entry("shop", "orders", {"item": "pen", "qty": 3})

        assert created == {"id": "1", "item": "pen", "qty": 3}
        assert gateway.read_entry("shop", "orders", created["id"]) == created

    def test_supplied_ids_are_ignored(self, gateway, shop):
        created = gateway.create_entry("shop", "orders", {"id": "x", "_id": "y", "item": "pen"})
        assert created["id"] == "1"

    def test_read_missing(self, gateway, shop):
        with pytest.raises(NotFound):
            gateway.read_entry("shop", "orders", "404")

    def test_unknown_database(self, gateway):
        with pytest.raises(DatabaseNotFound):
            gateway.create_entry("nowhere", "orders", {"a": 1})

    def test_invalid_collection(self, gateway, shop):
        with pytest.raises(InvalidName):
            gateway.create_entry("shop", "bad$name", {"a": 1})

    def test_body_must_be_object(self, gateway, shop):
        with pytest.raises(InvalidRequest):
            gateway.create_entry("shop", "orders", ["not", "an", "object"])

    @pytest.mark.parametrize("document", [{"$set": 1}, {"a.b": 1}, {"meta": {"$x": 1}}])
    def test_operator_like_keys_rejected(self, gateway, shop, document):
        with pytest.raises(InvalidRequest):
            gateway.create_entry("shop", "orders", document)


class TestUpdateDelete:
    def test_partial_update(self, gateway, orders):
        target = orders[0]
        updated = gateway.update_entry("shop", "orders", target["id"], {"qty": 5})

        assert updated["qty"] == 5
        assert updated["item"] == target["item"]
        assert updated["price"] == target["price"]

    def test_update_missing(self, gateway, orders):
        with pytest.raises(NotFound):
            gateway.update_entry("shop", "orders", "999", {"qty": 5})

    def test_delete_twice(self, gateway, orders):
        doc_id = orders[1]["id"]
        gateway.delete_entry("shop", "orders", doc_id)

        with pytest.raises(NotFound):
            gateway.read_entry("shop", "orders", doc_id)
        with pytest.raises(NotFound):
            gateway.delete_entry("shop", "orders", doc_id)


class TestSchemaInteraction:
    def test_conflicting_write_rejected(self, gateway, orders):
        gateway.detect_schema("shop", "orders")
        with pytest.raises(SchemaViolation) as exc_info:
            gateway.create_entry("shop", "orders", {"item": "pen", "qty": "three", "price": 1.0, "meta": {}})

        assert any("qty" in reason for reason in exc_info.value.reasons)
        assert len(gateway.list_entries("shop", "orders").page()) == len(orders)

    def test_conflicting_update_rejected(self, gateway, orders):
        gateway.detect_schema("shop", "orders")
        with pytest.raises(SchemaViolation):
            gateway.update_entry("shop", "orders", orders[0]["id"], {"item": None})

    def test_new_field_marks_schema_stale(self, gateway, orders):
        gateway.detect_schema("shop", "orders")
        gateway.update_entry("shop", "orders", orders[0]["id"], {"colour": "red"})

        descriptor = gateway.registry.get_collection("shop", "orders")
        assert descriptor.state is CollectionState.STALE
        assert "colour" in gateway.detect_schema("shop", "orders")

    def test_conforming_update_keeps_cache(self, gateway, orders):
        gateway.detect_schema("shop", "orders")
        gateway.update_entry("shop", "orders", orders[0]["id"], {"qty": 7})

        descriptor = gateway.registry.get_collection("shop", "orders")
        assert descriptor.state is CollectionState.SCHEMA_DETECTED

    def test_omitted_field_becomes_optional(self, gateway, shop):
        gateway.create_entry("shop", "orders", {"item": "pen", "qty": 3})
        assert gateway.detect_schema("shop", "orders").get("qty").optional is False

        gateway.create_entry("shop", "orders", {"item": "pen"})
        assert gateway.detect_schema("shop", "orders").get("qty").optional is True

    def test_update_dropping_nested_field_marks_stale(self, gateway, shop):
        first = gateway.create_entry("shop", "carts", {"meta": {"v": 1}})
        gateway.create_entry("shop", "carts", {"meta": {"v": 2}})
        assert gateway.detect_schema("shop", "carts").get("meta.v").optional is False

        gateway.update_entry("shop", "carts", first["id"], {"meta": {}})

        assert gateway.registry.get_collection("shop", "carts").state is CollectionState.STALE
        assert gateway.detect_schema("shop", "carts").get("meta.v").optional is True


class TestList:
    def test_stable_order(self, gateway, orders):
        listed = gateway.list_entries("shop", "orders").page()
        assert [doc["id"] for doc in listed] == ["1", "2", "3"]

    def test_equality_filter(self, gateway, orders):
        listed = gateway.list_entries("shop", "orders", {"meta.source": "web"}).page()
        assert [doc["item"] for doc in listed] == ["pen", "pad"]

    def test_filter_by_id(self, gateway, orders):
        listed = gateway.list_entries("shop", "orders", {"id": 2}).page()
        assert [doc["item"] for doc in listed] == ["ink"]

    def test_offset_and_limit(self, gateway, orders):
        listed = gateway.list_entries("shop", "orders", offset=1, limit=1).page()
        assert [doc["id"] for doc in listed] == ["2"]

    def test_cursor_is_lazy_and_restartable(self, gateway, shop, driver):
        for n in range(7):
            gateway.create_entry("shop", "numbers", {"n": n})

        driver.set_available(False)
        # Building the cursor touches nothing
        cursor = gateway.dispatcher.list(shop, "numbers", batch_size=3)
        driver.set_available(True)

        assert [doc["n"] for doc in cursor] == list(range(7))
        assert [doc["n"] for doc in cursor] == list(range(7))

    def test_cursor_limit_across_batches(self, gateway, shop):
        for n in range(7):
            gateway.create_entry("shop", "numbers", {"n": n})

        cursor = gateway.dispatcher.list(shop, "numbers", offset=2, limit=4, batch_size=3)
        assert [doc["n"] for doc in cursor] == [2, 3, 4, 5]

    @pytest.mark.parametrize(
        "query",
        [{"$where": "sleep(100)"}, {"qty": {"$gt": 0}}, {"tags": [{"$in": ["x"]}]}, {"meta..source": "web"}],
    )
    def test_operator_filters_rejected(self, gateway, orders, query):
        with pytest.raises(InvalidRequest):
            gateway.list_entries("shop", "orders", query)

    def test_nested_equality_filter(self, gateway, orders):
        listed = gateway.list_entries("shop", "orders", {"meta": {"source": "app"}}).page()
        assert [doc["item"] for doc in listed] == ["ink"]

    @pytest.mark.parametrize("kwargs", [{"offset": -1}, {"limit": -1}, {"batch_size": 0}])
    def test_invalid_paging(self, gateway, shop, kwargs):
        with pytest.raises(InvalidRequest):
            gateway.dispatcher.list(shop, "orders", **kwargs)


class TestSchemaMaintenance:
    def test_add_fields(self, gateway, orders):
        modified = gateway.add_fields("shop", "orders", {"status": "new", "meta.version": 1})

        assert modified == 2 * len(orders)
        shape = gateway.detect_schema("shop", "orders")
        assert shape.get("status").optional is False
        assert shape.get("meta.version").type is TypeTag.INTEGER

    def test_add_fields_keeps_existing_values(self, gateway, orders):
        gateway.update_entry("shop", "orders", orders[0]["id"], {"status": "paid"})
        modified = gateway.add_fields("shop", "orders", {"status": "new"})

        assert modified == len(orders) - 1
        assert gateway.read_entry("shop", "orders", orders[0]["id"])["status"] == "paid"

    def test_add_fields_skips_scalar_parent(self, gateway, shop):
        gateway.create_entry("shop", "carts", {"item": "pen"})
        scalar = gateway.create_entry("shop", "carts", {"meta": "web"})
        gateway.create_entry("shop", "carts", {"meta": {"source": "app"}})

        modified = gateway.add_fields("shop", "carts", {"meta.version": 1})

        assert modified == 2
        assert gateway.read_entry("shop", "carts", scalar["id"])["meta"] == "web"

    def test_add_fields_conflicting_default(self, gateway, orders):
        gateway.detect_schema("shop", "orders")
        with pytest.raises(SchemaViolation):
            gateway.add_fields("shop", "orders", {"qty": "many"})

    @pytest.mark.parametrize("defaults", [{}, {"": 1}, {"$bad": 1}, {"id": 1}, "status"])
    def test_add_fields_invalid(self, gateway, orders, defaults):
        with pytest.raises(InvalidRequest):
            gateway.add_fields("shop", "orders", defaults)

    def test_remove_field(self, gateway, orders):
        modified = gateway.remove_field("shop", "orders", "meta.source")

        assert modified == len(orders)
        assert "meta.source" not in gateway.detect_schema("shop", "orders")


class TestStoreFailures:
    def test_timeout(self, gateway, orders):
        with pytest.raises(StorageTimeout):
            gateway.read_entry("shop", "orders", orders[0]["id"], timeout=0)

    def test_timeout_on_write(self, gateway, orders):
        gateway.detect_schema("shop", "orders")
        with pytest.raises(StorageTimeout):
            gateway.create_entry("shop", "orders", {"item": "x", "qty": 1, "price": 1.0, "meta": {}}, timeout=0)

    def test_timeout_on_list(self, gateway, orders):
        with pytest.raises(StorageTimeout):
            gateway.list_entries("shop", "orders", timeout=0).page()

    def test_unavailable(self, gateway, orders, driver):
        driver.set_available(False)
        with pytest.raises(StorageUnavailable):
            gateway.read_entry("shop", "orders", orders[0]["id"])
        with pytest.raises(StorageUnavailable):
            gateway.delete_entry("shop", "orders", orders[0]["id"])


class TestNormalize:
    def test_id_first_and_string(self):
        from bson import ObjectId

        oid = ObjectId()
        normalized = normalize_document({"item": "pen", "_id": oid, "ref": oid})

        assert list(normalized) == ["id", "item", "ref"]
        assert normalized["id"] == str(oid)
        assert normalized["ref"] == str(oid)
