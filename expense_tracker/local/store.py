"""
Local-first entity store.

A ``Store`` is opened for one owner over a key-value backend and holds the
five collections as JSON blobs. Every mutation made through it is also
queued in the outbox as a sync push item, unless it was applied from a
server pull. There is no module-level store: open one, pass it around,
close it.

Product mutations go through ``mutate_products``, which runs the
subcategory cleanup sweep after every change.
"""
from __future__ import annotations

import json
import logging
import random
import string
import time
from datetime import datetime, timezone
from typing import Any, Callable, Iterable, Optional

from pydantic import ValidationError as PydanticValidationError

from expense_tracker.errors import (
    ConflictError,
    NotFoundError,
    StoreClosedError,
    ValidationError,
)
from expense_tracker.local.backends import KeyValueBackend
from expense_tracker.schemas.base import (
    CamelModel,
    Category,
    Merchant,
    PriceHistoryEntry,
    Product,
    Receipt,
    Subcategory,
)
from expense_tracker.schemas.sync import SyncItem

logger = logging.getLogger(__name__)

STORAGE_PREFIX = "expense-tracker"

COLLECTIONS: dict[str, type[CamelModel]] = {
    "categories": Category,
    "subcategories": Subcategory,
    "merchants": Merchant,
    "products": Product,
    "receipts": Receipt,
}

ENTITY_TYPES = {
    "categories": "category",
    "subcategories": "subcategory",
    "merchants": "merchant",
    "products": "product",
    "receipts": "receipt",
}

ID_PREFIXES = {
    "categories": "cat",
    "subcategories": "subcat",
    "merchants": "mer",
    "products": "prod",
    "receipts": "rec",
}

DEFAULT_CATEGORIES = [
    Category(id="cat-groceries", name="Groceries", icon="🛒", color="hsl(152, 55%, 45%)", is_default=True),
    Category(id="cat-dining", name="Dining", icon="🍽️", color="hsl(15, 75%, 55%)", is_default=True),
    Category(id="cat-transport", name="Transport", icon="🚗", color="hsl(38, 85%, 50%)", is_default=True),
    Category(id="cat-shopping", name="Shopping", icon="🛍️", color="hsl(280, 55%, 55%)", is_default=True),
    Category(id="cat-health", name="Health", icon="💊", color="hsl(200, 70%, 50%)", is_default=True),
    Category(id="cat-utilities", name="Utilities", icon="💡", color="hsl(220, 60%, 55%)", is_default=True),
    Category(id="cat-entertainment", name="Entertainment", icon="🎬", color="hsl(340, 65%, 55%)", is_default=True),
    Category(id="cat-other", name="Other", icon="📦", color="hsl(0, 0%, 50%)", is_default=True),
]


def iso_now() -> str:
    return datetime.now(timezone.utc).isoformat(timespec="milliseconds").replace("+00:00", "Z")


def _collection_of(record: CamelModel) -> str:
    for name, model in COLLECTIONS.items():
        if isinstance(record, model):
            return name
    raise ValidationError(f"Not a storable record: {type(record).__name__}")


class Store:
    def __init__(self, owner_id: str, backend: KeyValueBackend):
        self.owner_id = owner_id
        self.backend = backend
        self.closed = False

    # ── raw blobs ───────────────────────────────────────────────────────

    def _key(self, name: str) -> str:
        return f"{STORAGE_PREFIX}:{self.owner_id}:{name}"

    def _check_open(self) -> None:
        if self.closed:
            raise StoreClosedError(f"Store for {self.owner_id} is closed")

    def _load_json(self, name: str, default: Any) -> Any:
        self._check_open()
        raw = self.backend.get(self._key(name))
        if raw is None:
            return default
        try:
            return json.loads(raw)
        except json.JSONDecodeError:
            logger.warning("Corrupt local blob %s, using default", name)
            return default

    def _save_json(self, name: str, value: Any) -> None:
        self._check_open()
        self.backend.set(self._key(name), json.dumps(value, ensure_ascii=False))

    def has(self, collection: str) -> bool:
        self._check_open()
        return self.backend.get(self._key(collection)) is not None

    def get(self, collection: str) -> list:
        model = COLLECTIONS[collection]
        return [model.model_validate(raw) for raw in self._load_json(collection, [])]

    def set(self, collection: str, records: Iterable[CamelModel]) -> None:
        self._save_json(collection, [record.to_wire() for record in records])

    def generate_id(self, prefix: str) -> str:
        suffix = "".join(random.choices(string.ascii_lowercase + string.digits, k=9))
        return f"{prefix}-{int(time.time() * 1000)}-{suffix}"

    # ── outbox / sync metadata ──────────────────────────────────────────

    def outbox(self) -> list[SyncItem]:
        return [SyncItem.model_validate(raw) for raw in self._load_json("outbox", [])]

    def set_outbox(self, items: Iterable[SyncItem]) -> None:
        self._save_json("outbox", [item.model_dump(by_alias=True) for item in items])

    def _enqueue(self, items: list[SyncItem]) -> None:
        if items:
            self.set_outbox(self.outbox() + items)

    @property
    def watermark(self) -> Optional[str]:
        return self._load_json("sync-meta", {}).get("lastSyncTimestamp")

    def set_watermark(self, value: Optional[str]) -> None:
        meta = self._load_json("sync-meta", {})
        meta["lastSyncTimestamp"] = value
        self._save_json("sync-meta", meta)

    # ── generic mutation ────────────────────────────────────────────────

    def mutate(self, collection: str, fn: Callable[[list], list], record: bool = True) -> list:
        """Replace ``collection`` with ``fn(records)`` and queue the diff.

        Products must go through ``mutate_products``.
        """
        if collection == "products":
            return self.mutate_products(fn, record=record)
        return self._mutate(collection, fn, record)

    def _mutate(self, collection: str, fn: Callable[[list], list], record: bool) -> list:
        before = {r.id: r for r in self.get(collection)}
        after = fn(list(before.values()))
        self.set(collection, after)

        if record:
            entity_type = ENTITY_TYPES[collection]
            stamp = iso_now()
            queued = []
            after_ids = set()
            for rec in after:
                after_ids.add(rec.id)
                old = before.get(rec.id)
                if old is None:
                    queued.append(SyncItem(entity_type=entity_type, entity_id=rec.id,
                                           operation="create", data=rec.to_wire(), local_timestamp=stamp))
                elif old != rec:
                    queued.append(SyncItem(entity_type=entity_type, entity_id=rec.id,
                                           operation="update", data=rec.to_wire(), local_timestamp=stamp))
            for old_id in before:
                if old_id not in after_ids:
                    queued.append(SyncItem(entity_type=entity_type, entity_id=old_id,
                                           operation="delete", local_timestamp=stamp))
            self._enqueue(queued)
        return after

    def mutate_products(self, fn: Callable[[list[Product]], list[Product]], record: bool = True) -> list[Product]:
        products = self._mutate("products", fn, record)
        self.cleanup_subcategories(products)
        return products

    def cleanup_subcategories(self, products: Optional[list[Product]] = None) -> int:
        """Drop every subcategory no product refers to; returns how many went."""
        if products is None:
            products = self.get("products")
        used = {p.subcategory_id for p in products if p.subcategory_id}
        current = self.get("subcategories")
        if all(s.id in used for s in current):
            return 0
        kept = self._mutate(
            "subcategories",
            lambda subs: [s for s in subs if s.id in used],
            record=True,
        )
        removed = len(current) - len(kept)
        logger.info("Removed %d orphaned subcategories", removed)
        return removed

    # ── single records ──────────────────────────────────────────────────

    def find(self, collection: str, record_id: str):
        return next((r for r in self.get(collection) if r.id == record_id), None)

    def require(self, collection: str, record_id: str):
        found = self.find(collection, record_id)
        if found is None:
            raise NotFoundError(f"{ENTITY_TYPES[collection]} {record_id} not found")
        return found

    def put(self, record: CamelModel):
        """Insert or replace ``record`` by id."""
        collection = _collection_of(record)

        def replace(records):
            out = [record if r.id == record.id else r for r in records]
            if not any(r.id == record.id for r in records):
                out.append(record)
            return out

        self.mutate(collection, replace)
        return record

    def update(self, collection: str, record_id: str, **fields):
        current = self.require(collection, record_id)
        try:
            updated = type(current).model_validate({**current.model_dump(), **fields})
        except PydanticValidationError as exc:
            raise ValidationError(f"Invalid {ENTITY_TYPES[collection]} update: {exc.error_count()} error(s)") from exc
        return self.put(updated)

    def remove(self, collection: str, record_id: str) -> bool:
        removed = False

        def drop(records):
            nonlocal removed
            kept = [r for r in records if r.id != record_id]
            removed = len(kept) != len(records)
            return kept

        self.mutate(collection, drop)
        return removed

    # ── categories ──────────────────────────────────────────────────────

    def add_category(self, name: str, icon: str = "", color: str = "", is_default: bool = False) -> Category:
        name = name.strip()
        if not name:
            raise ValidationError("Category name is required")
        if any(c.name.lower() == name.lower() for c in self.get("categories")):
            raise ConflictError(f"Category {name!r} already exists")
        return self.put(Category(id=self.generate_id("cat"), name=name, icon=icon,
                                 color=color, is_default=is_default))

    def delete_category(self, category_id: str) -> None:
        category = self.require("categories", category_id)
        if category.is_default:
            raise ValidationError(f"Default category {category.name!r} cannot be deleted")
        self.remove("categories", category_id)
        sub_ids = {s.id for s in self.get("subcategories") if s.parent_category_id == category_id}
        self.mutate_products(lambda products: [
            p.model_copy(update={"category_id": None, "subcategory_id": None})
            if p.category_id == category_id or p.subcategory_id in sub_ids else p
            for p in products
        ])
        # Subcategories nobody used are gone after the sweep; drop the rest too
        self.mutate("subcategories", lambda subs: [s for s in subs if s.parent_category_id != category_id])

    # ── subcategories ───────────────────────────────────────────────────

    def add_subcategory(self, name: str, parent_category_id: str) -> Subcategory:
        name = name.strip()
        if not name:
            raise ValidationError("Subcategory name is required")
        self.require("categories", parent_category_id)
        return self.put(Subcategory(id=self.generate_id("subcat"), name=name,
                                    parent_category_id=parent_category_id))

    def delete_subcategory(self, subcategory_id: str) -> None:
        self.require("subcategories", subcategory_id)
        self.remove("subcategories", subcategory_id)
        self.mutate_products(lambda products: [
            p.model_copy(update={"subcategory_id": None}) if p.subcategory_id == subcategory_id else p
            for p in products
        ])

    # ── merchants ───────────────────────────────────────────────────────

    def find_merchant_by_nif(self, nif: str) -> Optional[Merchant]:
        return next((m for m in self.get("merchants") if m.nif and m.nif == nif), None)

    def find_merchant_by_name(self, name: str) -> Optional[Merchant]:
        wanted = name.strip().lower()
        return next((m for m in self.get("merchants") if m.name.lower() == wanted), None)

    def add_merchant(self, name: str, nif: Optional[str] = None, address: Optional[str] = None) -> Merchant:
        """Explicit save from the merchant editor: stored solidified."""
        name = name.strip()
        if not name:
            raise ValidationError("Merchant name is required")
        if nif and self.find_merchant_by_nif(nif):
            raise ConflictError(f"A merchant with NIF {nif} already exists")
        if not nif and self.find_merchant_by_name(name):
            raise ConflictError(f"Merchant {name!r} already exists")
        return self.put(Merchant(id=self.generate_id("mer"), name=name, nif=nif or None,
                                 address=address, is_solidified=True))

    def delete_merchant(self, merchant_id: str) -> None:
        self.require("merchants", merchant_id)
        self.remove("merchants", merchant_id)

    # ── products ────────────────────────────────────────────────────────

    def find_product_by_name(self, name: str) -> Optional[Product]:
        wanted = name.strip().lower()
        return next((p for p in self.get("products") if p.name.lower() == wanted), None)

    def find_product_by_barcode(self, barcode: str) -> Optional[Product]:
        return next((p for p in self.get("products") if p.barcode and p.barcode == barcode), None)

    def add_product(self, name: str, **fields) -> Product:
        """Explicit save from the product editor: stored solidified."""
        name = name.strip()
        if not name:
            raise ValidationError("Product name is required")
        barcode = fields.get("barcode")
        if barcode and self.find_product_by_barcode(barcode):
            raise ConflictError(f"A product with barcode {barcode} already exists")
        if self.find_product_by_name(name):
            raise ConflictError(f"Product {name!r} already exists")
        fields["is_solidified"] = True
        return self.put(Product(id=self.generate_id("prod"), name=name, **fields))

    def delete_product(self, product_id: str) -> None:
        self.require("products", product_id)
        self.remove("products", product_id)

    def record_price(self, product_id: str, date: str, price: float, merchant_id: Optional[str]) -> bool:
        """Prepend a price observation unless the product opts out."""
        product = self.require("products", product_id)
        if product.exclude_from_price_history:
            return False
        entry = PriceHistoryEntry(date=date, price=price, merchant_id=merchant_id)
        self.put(product.model_copy(update={"price_history": [entry] + product.price_history}))
        return True

    # ── receipts ────────────────────────────────────────────────────────

    def get_receipt(self, receipt_id: str) -> Receipt:
        return self.require("receipts", receipt_id)

    def delete_receipt(self, receipt_id: str) -> None:
        """Referenced merchant and products are left alone."""
        self.require("receipts", receipt_id)
        self.remove("receipts", receipt_id)

    # ── server-originated changes (never queued) ────────────────────────

    def apply_remote(self, collection: str, records: Iterable[CamelModel]) -> int:
        incoming = {r.id: r for r in records}
        if not incoming:
            return 0

        def merge(current):
            out = []
            for rec in current:
                remote = incoming.pop(rec.id, None)
                out.append(_merge_remote(rec, remote) if remote is not None else rec)
            out.extend(_merge_remote(None, remote) for remote in incoming.values())
            return out

        count = len(incoming)
        self.mutate(collection, merge, record=False)
        return count

    def replace_all(self, snapshot: dict[str, list]) -> None:
        """Swap every collection for ``snapshot``; local-only fields of kept ids survive."""
        def replace(collection):
            def fn(current):
                local = {r.id: r for r in current}
                return [_merge_remote(local.get(r.id), r) for r in snapshot[collection]]
            return fn

        for collection in COLLECTIONS:
            if collection != "products":
                self._mutate(collection, replace(collection), False)
        self.mutate_products(replace("products"), record=False)


SYNCED = "synced"


def _merge_remote(local: Optional[CamelModel], remote: CamelModel) -> CamelModel:
    """Server copy wins; local-only history survives and solidified never reverts.

    A record first seen through the server counts as solidified once synced;
    a record this device already holds keeps its own lifecycle.
    """
    update: dict[str, Any] = {}
    if isinstance(remote, (Merchant, Product)):
        if local is None:
            solid = remote.is_solidified or remote.sync_status == SYNCED
        else:
            solid = local.is_solidified or remote.is_solidified
        update["is_solidified"] = solid
    if isinstance(remote, Product) and local is not None and not remote.price_history:
        update["price_history"] = local.price_history
    return remote.model_copy(update=update) if update else remote


def open_store(owner_id: str, backend: KeyValueBackend, seed_defaults: bool = True) -> Store:
    store = Store(owner_id, backend)
    if seed_defaults and not store.has("categories"):
        store.mutate("categories", lambda _: list(DEFAULT_CATEGORIES))
        logger.info("Seeded %d default categories for %s", len(DEFAULT_CATEGORIES), owner_id)
    return store


def close_store(store: Store) -> None:
    store.closed = True
