"""
Entity resolver: turns what the user typed into merchant / product records.

Typing a name on a receipt never duplicates an existing record: the extra
key (NIF, barcode) is tried first, then a case-insensitive exact name match,
and only then a new *limbo* record is created. Limbo records become
*solidified* when the user saves them explicitly in an editor; nothing here
ever turns a solidified record back into limbo.
"""
from __future__ import annotations

import logging
from typing import Optional

from pydantic import Field

from expense_tracker import fuzzy
from expense_tracker.errors import ValidationError
from expense_tracker.local.store import Store
from expense_tracker.schemas.base import (
    CamelModel,
    Merchant,
    Product,
    Receipt,
    ReceiptDraft,
    ReceiptItem,
    receipt_total,
)

logger = logging.getLogger(__name__)


class ReceiptLine(CamelModel):
    """One line as typed on the receipt form."""
    product_name: str = Field(..., min_length=1)
    quantity: float = 1
    unit_price: float = 0
    barcode: Optional[str] = None
    exclude_from_price_history: bool = False


class EntityResolver:
    def __init__(self, store: Store):
        self.store = store

    # ── get-or-create ───────────────────────────────────────────────────

    def get_or_create_merchant(self, name: str, nif: Optional[str] = None) -> Merchant:
        name = name.strip()
        nif = (nif or "").strip() or None
        if not name:
            raise ValidationError("Merchant name is required")

        merchants = self.store.get("merchants")
        if nif:
            found = next((m for m in merchants if m.nif == nif), None)
            if found:
                return found
        found = next((m for m in merchants if fuzzy.same_name(m.name, name)), None)
        if found:
            return found

        merchant = Merchant(id=self.store.generate_id("mer"), name=name, nif=nif)
        self.store.put(merchant)
        logger.debug("Created limbo merchant %s (%r)", merchant.id, name)
        return merchant

    def get_or_create_product(self, name: str, barcode: Optional[str] = None) -> Product:
        name = name.strip()
        barcode = (barcode or "").strip() or None
        if not name:
            raise ValidationError("Product name is required")

        products = self.store.get("products")
        if barcode:
            found = next((p for p in products if p.barcode == barcode), None)
            if found:
                return found
        found = next((p for p in products if fuzzy.same_name(p.name, name)), None)
        if found:
            return found

        product = Product(id=self.store.generate_id("prod"), name=name, barcode=barcode)
        self.store.put(product)
        logger.debug("Created limbo product %s (%r)", product.id, name)
        return product

    # ── solidification ──────────────────────────────────────────────────

    def solidify_merchant(self, merchant_id: str, **fields) -> Merchant:
        """Apply the editor's fields and mark the merchant as user-confirmed."""
        fields.pop("is_solidified", None)
        return self.store.update("merchants", merchant_id, is_solidified=True, **fields)

    def solidify_product(self, product_id: str, **fields) -> Product:
        fields.pop("is_solidified", None)
        return self.store.update("products", product_id, is_solidified=True, **fields)

    # ── autocomplete ────────────────────────────────────────────────────

    def suggest_merchants(self, query: str) -> list[Merchant]:
        return fuzzy.search(self.store.get("merchants"), query, fuzzy.MERCHANT_SUGGESTION_LIMIT)

    def suggest_products(self, query: str) -> list[Product]:
        return fuzzy.search(self.store.get("products"), query, fuzzy.PRODUCT_SUGGESTION_LIMIT)

    def merchant_for_draft(self, draft: ReceiptDraft) -> Optional[Merchant]:
        """Known merchant for a scanned QR draft, matched on the issuer NIF."""
        if not draft.nif:
            return None
        return self.store.find_merchant_by_nif(draft.nif)

    # ── receipts ────────────────────────────────────────────────────────

    def record_receipt(
        self,
        merchant_name: str,
        date: str,
        lines: list[ReceiptLine],
        merchant_nif: Optional[str] = None,
        time: Optional[str] = None,
        receipt_number: Optional[str] = None,
        customer_nif: Optional[str] = None,
        total: Optional[float] = None,
        notes: Optional[str] = None,
    ) -> Receipt:
        """Resolve everything the form references and store the receipt.

        Price history gets one entry per priced line, newest first, unless
        the product or the line opts out.
        """
        if not date:
            raise ValidationError("Receipt date is required")
        merchant = self.get_or_create_merchant(merchant_name, merchant_nif)

        items = []
        for line in lines:
            product = self.get_or_create_product(line.product_name, line.barcode)
            items.append(ReceiptItem.build(
                id=self.store.generate_id("item"),
                product_id=product.id,
                product_name=product.name,
                quantity=line.quantity,
                unit_price=line.unit_price,
                exclude_from_price_history=line.exclude_from_price_history,
            ))

        receipt = Receipt(
            id=self.store.generate_id("rec"),
            merchant_id=merchant.id,
            date=date,
            time=time,
            receipt_number=receipt_number,
            customer_nif=customer_nif,
            has_customer_nif=bool(customer_nif),
            items=items,
            total=receipt_total(items, total),
            notes=notes,
        )
        self.store.put(receipt)

        for item in items:
            if item.unit_price > 0 and not item.exclude_from_price_history:
                self.store.record_price(item.product_id, date, item.unit_price, merchant.id)

        logger.info("Recorded receipt %s at %s: %d items, total %.2f",
                    receipt.id, merchant.name, len(items), receipt.total)
        return receipt
