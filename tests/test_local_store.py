"""
Tests for the local store, entity resolver, subcategory cleanup and backups.
"""
import json
import re

import pytest

from expense_tracker.errors import (
    ConflictError,
    NotFoundError,
    StoreClosedError,
    ValidationError,
)
from expense_tracker.local import (
    EntityResolver,
    MemoryBackend,
    ReceiptLine,
    SqliteBackend,
    close_store,
    open_store,
)
from expense_tracker.local.backup import export_data, export_json, import_data, import_json
from expense_tracker.local.store import DEFAULT_CATEGORIES
from expense_tracker.schemas import Merchant, Product, ReceiptDraft, ReceiptItem, Subcategory


# =====================================================================
# Store lifecycle and generic access
# =====================================================================
class TestStore:
    def test_seeds_default_categories(self, store):
        names = [c.name for c in store.get("categories")]
        assert names == [c.name for c in DEFAULT_CATEGORIES]
        assert all(c.is_default for c in store.get("categories"))

    def test_seeding_is_queued_for_push(self, store):
        items = store.outbox()
        assert len(items) == len(DEFAULT_CATEGORIES)
        assert {i.entity_type for i in items} == {"category"}
        assert {i.operation for i in items} == {"create"}

    def test_reopen_does_not_reseed(self):
        backend = MemoryBackend()
        first = open_store("u", backend)
        first.add_category("Pets")
        second = open_store("u", backend)
        assert len(second.get("categories")) == len(DEFAULT_CATEGORIES) + 1

    def test_owners_are_isolated(self):
        backend = MemoryBackend()
        alice = open_store("alice", backend)
        bob = open_store("bob", backend)
        alice.add_category("Pets")
        assert bob.find_product_by_name("x") is None
        assert "Pets" not in [c.name for c in bob.get("categories")]

    def test_generate_id_format(self, store):
        generated = store.generate_id("prod")
        assert re.fullmatch(r"prod-\d+-[a-z0-9]{9}", generated)
        assert store.generate_id("prod") != generated

    def test_closed_store_rejects_use(self, store):
        close_store(store)
        with pytest.raises(StoreClosedError):
            store.get("products")

    def test_sqlite_backend_persists(self, tmp_path):
        url = f"sqlite:///{tmp_path / 'local.db'}"
        backend = SqliteBackend(url)
        store = open_store("u", backend)
        store.add_category("Pets")
        backend.close()

        reopened = open_store("u", SqliteBackend(url))
        assert "Pets" in [c.name for c in reopened.get("categories")]

    def test_corrupt_blob_reads_as_empty(self):
        backend = MemoryBackend()
        store = open_store("u", backend, seed_defaults=False)
        backend.set("expense-tracker:u:products", "{not json")
        assert store.get("products") == []


# =====================================================================
# Typed CRUD
# =====================================================================
class TestCategories:
    def test_duplicate_name_conflicts(self, store):
        with pytest.raises(ConflictError):
            store.add_category("groceries")

    def test_blank_name_rejected(self, store):
        with pytest.raises(ValidationError):
            store.add_category("  ")

    def test_default_category_cannot_be_deleted(self, store):
        with pytest.raises(ValidationError):
            store.delete_category("cat-groceries")

    def test_default_category_can_be_edited(self, store):
        store.update("categories", "cat-groceries", icon="🥦")
        assert store.find("categories", "cat-groceries").icon == "🥦"

    def test_delete_category_clears_products_and_subcategories(self, store):
        pets = store.add_category("Pets")
        sub = store.add_subcategory("Food", pets.id)
        product = store.add_product("Kibble", category_id=pets.id, subcategory_id=sub.id)

        store.delete_category(pets.id)

        assert store.find("categories", pets.id) is None
        assert store.get("subcategories") == []
        kept = store.find("products", product.id)
        assert kept.category_id is None and kept.subcategory_id is None

    def test_update_unknown_raises(self, store):
        with pytest.raises(NotFoundError):
            store.update("categories", "cat-missing", name="X")


class TestOutbox:
    def test_put_update_remove_are_queued(self):
        store = open_store("u", MemoryBackend(), seed_defaults=False)
        merchant = store.add_merchant("Cafe")
        store.update("merchants", merchant.id, address="Rua 1")
        store.remove("merchants", merchant.id)

        ops = [(i.entity_type, i.operation) for i in store.outbox()]
        assert ops == [("merchant", "create"), ("merchant", "update"), ("merchant", "delete")]
        create, update, delete = store.outbox()
        assert create.data["name"] == "Cafe"
        assert update.data["address"] == "Rua 1"
        assert delete.data is None
        assert create.local_timestamp.endswith("Z")

    def test_unchanged_records_not_queued(self):
        store = open_store("u", MemoryBackend(), seed_defaults=False)
        merchant = store.add_merchant("Cafe")
        store.put(merchant)
        assert len(store.outbox()) == 1

    def test_remote_changes_not_queued(self):
        store = open_store("u", MemoryBackend(), seed_defaults=False)
        store.apply_remote("merchants", [])
        store.apply_remote("merchants", [Merchant(id="m1", name="Remote", server_id="s1")])
        assert store.outbox() == []
        assert store.find("merchants", "m1").server_id == "s1"


class TestMerchantsAndProducts:
    def test_add_merchant_is_solidified(self, store):
        assert store.add_merchant("Cafe").is_solidified

    def test_duplicate_merchant_nif_conflicts(self, store):
        store.add_merchant("Cafe", nif="500100144")
        with pytest.raises(ConflictError):
            store.add_merchant("Other Cafe", nif="500100144")

    def test_duplicate_merchant_name_conflicts(self, store):
        store.add_merchant("Cafe")
        with pytest.raises(ConflictError):
            store.add_merchant("CAFE")

    def test_duplicate_product_barcode_conflicts(self, store):
        store.add_product("Milk", barcode="560001")
        with pytest.raises(ConflictError):
            store.add_product("Leite", barcode="560001")

    def test_price_history_newest_first(self, store):
        product = store.add_product("Milk")
        store.record_price(product.id, "2024-01-01", 0.89, None)
        store.record_price(product.id, "2024-02-01", 0.95, None)
        history = store.find("products", product.id).price_history
        assert [h.price for h in history] == [0.95, 0.89]

    def test_price_history_exclusion(self, store):
        product = store.add_product("Bag", exclude_from_price_history=True)
        assert store.record_price(product.id, "2024-01-01", 0.10, None) is False
        assert store.find("products", product.id).price_history == []

    def test_delete_receipt_keeps_references(self, store, resolver):
        receipt = resolver.record_receipt("Cafe", "2024-01-01", [ReceiptLine(product_name="Coffee", unit_price=0.8)])
        store.delete_receipt(receipt.id)
        assert store.find_merchant_by_name("Cafe") is not None
        assert store.find_product_by_name("Coffee") is not None
        with pytest.raises(NotFoundError):
            store.get_receipt(receipt.id)


# =====================================================================
# Subcategory cleanup
# =====================================================================
class TestSubcategoryCleanup:
    def test_unreferenced_subcategories_removed_after_product_mutation(self, store):
        dairy = store.add_subcategory("Dairy", "cat-groceries")
        bakery = store.add_subcategory("Bakery", "cat-groceries")
        milk = store.add_product("Milk", category_id="cat-groceries", subcategory_id=dairy.id)

        store.mutate_products(lambda products: products)

        ids = [s.id for s in store.get("subcategories")]
        assert ids == [dairy.id]
        assert bakery.id not in ids
        assert store.find("products", milk.id).subcategory_id == dairy.id

    def test_sweep_runs_when_last_reference_goes(self, store):
        dairy = store.add_subcategory("Dairy", "cat-groceries")
        milk = store.add_product("Milk", subcategory_id=dairy.id)

        store.update("products", milk.id, subcategory_id=None)

        assert store.get("subcategories") == []
        deletes = [i for i in store.outbox() if i.entity_type == "subcategory" and i.operation == "delete"]
        assert [d.entity_id for d in deletes] == [dairy.id]

    def test_delete_subcategory_unlinks_products(self, store):
        dairy = store.add_subcategory("Dairy", "cat-groceries")
        milk = store.add_product("Milk", subcategory_id=dairy.id)
        store.delete_subcategory(dairy.id)
        assert store.find("products", milk.id).subcategory_id is None

    def test_subcategory_needs_parent(self, store):
        with pytest.raises(NotFoundError):
            store.add_subcategory("Dairy", "cat-missing")

    def test_no_sweep_without_orphans(self, store):
        dairy = store.add_subcategory("Dairy", "cat-groceries")
        store.add_product("Milk", subcategory_id=dairy.id)
        assert store.cleanup_subcategories() == 0


# =====================================================================
# Entity resolver
# =====================================================================
class TestResolver:
    def test_get_or_create_merchant_is_idempotent(self, resolver):
        first = resolver.get_or_create_merchant("Pingo Doce")
        second = resolver.get_or_create_merchant("  pingo doce ")
        assert first.id == second.id
        assert first.is_solidified is False
        assert len(resolver.store.get("merchants")) == 1

    def test_merchant_nif_wins_over_name(self, resolver):
        by_nif = resolver.get_or_create_merchant("Continente", nif="500100144")
        found = resolver.get_or_create_merchant("Continente Modelo", nif="500100144")
        assert found.id == by_nif.id

    def test_get_or_create_product_by_barcode(self, resolver):
        milk = resolver.get_or_create_product("Milk", barcode="560001")
        assert resolver.get_or_create_product("Leite", barcode="560001").id == milk.id
        assert resolver.get_or_create_product("MILK").id == milk.id

    def test_blank_name_rejected(self, resolver):
        with pytest.raises(ValidationError):
            resolver.get_or_create_product("   ")

    def test_existing_solidified_record_stays_solidified(self, store, resolver):
        solid = store.add_merchant("Cafe")
        assert resolver.get_or_create_merchant("cafe").is_solidified
        assert resolver.get_or_create_merchant("cafe").id == solid.id

    def test_solidify(self, resolver):
        limbo = resolver.get_or_create_product("Milk")
        solid = resolver.solidify_product(limbo.id, default_price=0.89)
        assert solid.is_solidified
        assert solid.default_price == 0.89
        assert resolver.solidify_product(limbo.id).is_solidified

    def test_solidify_cannot_demote(self, resolver):
        limbo = resolver.get_or_create_merchant("Cafe")
        merchant = resolver.solidify_merchant(limbo.id, is_solidified=False, address="Rua 1")
        assert merchant.is_solidified
        assert merchant.address == "Rua 1"

    def test_solidify_unknown_id(self, resolver):
        with pytest.raises(NotFoundError):
            resolver.solidify_merchant("mer-missing")

    def test_suggestions(self, resolver):
        for n in range(10):
            resolver.get_or_create_product(f"Yogurt {n}")
            resolver.get_or_create_merchant(f"Shop {n}")
        assert len(resolver.suggest_products("ygt")) == 8
        assert len(resolver.suggest_merchants("shop")) == 6
        assert resolver.suggest_products("") == []

    def test_merchant_for_draft(self, store, resolver):
        merchant = store.add_merchant("Continente", nif="500100144")
        assert resolver.merchant_for_draft(ReceiptDraft(nif="500100144")).id == merchant.id
        assert resolver.merchant_for_draft(ReceiptDraft(nif="999")) is None
        assert resolver.merchant_for_draft(ReceiptDraft()) is None


class TestRecordReceipt:
    def test_records_receipt_with_limbo_entities(self, store, resolver):
        receipt = resolver.record_receipt(
            "Pingo Doce",
            "2024-12-22",
            [
                ReceiptLine(product_name="Milk", quantity=2, unit_price=0.89),
                ReceiptLine(product_name="Bread", quantity=1, unit_price=1.2),
            ],
            customer_nif="123456789",
        )
        assert receipt.total == 2.98
        assert [i.total for i in receipt.items] == [1.78, 1.2]
        assert receipt.has_customer_nif
        assert store.get_receipt(receipt.id).merchant_id == receipt.merchant_id
        assert not store.find("merchants", receipt.merchant_id).is_solidified

    def test_explicit_total_is_authoritative(self, resolver):
        receipt = resolver.record_receipt(
            "Cafe", "2024-01-01", [ReceiptLine(product_name="Coffee", unit_price=0.8)], total=0.7,
        )
        assert receipt.total == 0.7

    def test_reuses_existing_products_and_records_prices(self, store, resolver):
        milk = store.add_product("Milk")
        resolver.record_receipt("Cafe", "2024-01-01", [ReceiptLine(product_name="milk", unit_price=0.89)])
        resolver.record_receipt("Cafe", "2024-02-01", [ReceiptLine(product_name="Milk", unit_price=0.95)])

        products = store.get("products")
        assert [p.id for p in products] == [milk.id]
        history = products[0].price_history
        assert [(h.date, h.price) for h in history] == [("2024-02-01", 0.95), ("2024-01-01", 0.89)]
        assert history[0].merchant_id == store.find_merchant_by_name("Cafe").id

    def test_excluded_lines_skip_price_history(self, store, resolver):
        resolver.record_receipt(
            "Cafe", "2024-01-01",
            [ReceiptLine(product_name="Bag", unit_price=0.1, exclude_from_price_history=True)],
        )
        assert store.find_product_by_name("Bag").price_history == []

    def test_date_required(self, resolver):
        with pytest.raises(ValidationError):
            resolver.record_receipt("Cafe", "", [])


def test_receipt_item_build_total():
    item = ReceiptItem.build("i1", None, "Apples", 1.235, 2.0)
    assert item.total == 2.47


# =====================================================================
# Backup
# =====================================================================
class TestBackup:
    def test_export_shape(self, store, resolver):
        resolver.record_receipt("Cafe", "2024-01-01", [ReceiptLine(product_name="Coffee", unit_price=0.8)])
        payload = export_data(store)
        assert payload["version"] == "1.0"
        assert payload["exportedAt"].endswith("Z")
        assert len(payload["receipts"]) == 1
        assert payload["products"][0]["priceHistory"][0]["price"] == 0.8

    def test_round_trip_into_fresh_store(self, store, resolver):
        resolver.record_receipt("Cafe", "2024-01-01", [ReceiptLine(product_name="Coffee", unit_price=0.8)])
        text = export_json(store)

        fresh = open_store("other", MemoryBackend(), seed_defaults=False)
        restored = import_json(fresh, text)

        assert set(restored) == {"categories", "subcategories", "merchants", "products", "receipts"}
        assert fresh.get("receipts") == store.get("receipts")
        assert fresh.get("products") == store.get("products")

    def test_missing_collections_left_untouched(self, store):
        store.add_merchant("Cafe")
        import_data(store, {"version": "1.0", "products": [Product(id="p1", name="Tea").to_wire()]})
        assert store.find_merchant_by_name("Cafe") is not None
        assert [p.name for p in store.get("products")] == ["Tea"]

    def test_version_required(self, store):
        with pytest.raises(ValidationError):
            import_data(store, {"products": []})

    def test_malformed_json(self, store):
        with pytest.raises(ValidationError):
            import_json(store, "{oops")

    def test_invalid_records_leave_store_untouched(self, store):
        store.add_merchant("Cafe")
        bad = {"version": "1.0", "merchants": [], "products": [{"id": "p1"}]}
        with pytest.raises(ValidationError):
            import_data(store, bad)
        assert store.find_merchant_by_name("Cafe") is not None

    def test_import_keeps_referenced_subcategories(self, store):
        payload = {
            "version": "1.0",
            "subcategories": [Subcategory(id="s1", name="Dairy", parent_category_id="cat-groceries").to_wire()],
            "products": [Product(id="p1", name="Milk", subcategory_id="s1").to_wire()],
        }
        import_data(store, json.loads(json.dumps(payload)))
        assert [s.id for s in store.get("subcategories")] == ["s1"]


def test_delete_merchant_and_product(store):
    merchant = store.add_merchant("Cafe")
    product = store.add_product("Coffee")
    store.delete_merchant(merchant.id)
    store.delete_product(product.id)
    assert store.get("merchants") == [] and store.get("products") == []
    with pytest.raises(NotFoundError):
        store.delete_product(product.id)
    deletes = [(i.entity_type, i.entity_id) for i in store.outbox() if i.operation == "delete"]
    assert deletes == [("merchant", merchant.id), ("product", product.id)]


def test_deleting_last_product_removes_its_subcategory(store):
    sub = store.add_subcategory("Dairy", "cat-groceries")
    product = store.add_product("Milk", category_id="cat-groceries", subcategory_id=sub.id)
    store.delete_product(product.id)
    assert store.find("subcategories", sub.id) is None
