# Overview: Service-layer operations for catalog entities (items, categories, vendors, customers, bill types).

"""
Catalog Service

Catalog rows are created and edited here. Stock and balance fields are NOT:
those belong to the orchestrator and reconciliation, so every helper below
leaves current_quantity / average cost / outstanding balances untouched.

DELETION:
- Items are never deleted once the journal references them; they are archived.
- Vendors and customers may be deleted only when the recomputed balance is
  within epsilon. A counterparty with history is deactivated instead of
  removed so its purchases/payments keep their foreign keys.
"""

from __future__ import annotations

import logging

from sqlalchemy import func

from ..extensions import db
from ..models import (
    BillType,
    Category,
    Customer,
    CustomerPayment,
    Item,
    JournalEntry,
    POSTransaction,
    POSTransactionLine,
    Purchase,
    Vendor,
    VendorPayment,
)
from .balance_service import CUSTOMER, VENDOR, compute_balance, invalidate as invalidate_balance, within_epsilon
from .errors import (
    BalanceNotZero,
    CustomerNotFound,
    DuplicateBarcode,
    DuplicateName,
    DuplicateSKU,
    ItemNotFound,
    ValidationError,
    VendorNotFound,
)

logger = logging.getLogger(__name__)

DEFAULT_BILL_TYPES = (
    {
        "code": "regular",
        "name": "Regular Sale",
        "description": "Standard sale; deducts stock and posts to accounts",
        "affects_inventory": True,
        "affects_accounting": True,
        "is_default": True,
    },
    {
        "code": "quotation",
        "name": "Quotation",
        "description": "Price quote; no stock or account effect",
        "affects_inventory": False,
        "affects_accounting": False,
        "is_default": False,
    },
)


def _clean(value: str | None) -> str | None:
    if value is None:
        return None
    value = value.strip()
    return value or None


# =============================================================================
# LOOKUPS
# =============================================================================

def item_exists(item_id: int) -> bool:
    return db.session.query(Item.id).filter(Item.id == item_id).first() is not None


def vendor_exists(vendor_id: int) -> bool:
    return db.session.query(Vendor.id).filter(Vendor.id == vendor_id).first() is not None


def customer_exists(customer_id: int) -> bool:
    return db.session.query(Customer.id).filter(Customer.id == customer_id).first() is not None


def get_item(item_id: int) -> Item:
    item = db.session.get(Item, item_id)
    if item is None:
        raise ItemNotFound(item_id)
    return item


def get_vendor(vendor_id: int) -> Vendor:
    vendor = db.session.get(Vendor, vendor_id)
    if vendor is None:
        raise VendorNotFound(vendor_id)
    return vendor


def get_customer(customer_id: int) -> Customer:
    customer = db.session.get(Customer, customer_id)
    if customer is None:
        raise CustomerNotFound(customer_id)
    return customer


def list_items(*, search: str | None = None, include_archived: bool = False, limit: int = 200, offset: int = 0) -> list[Item]:
    query = db.session.query(Item)
    if not include_archived:
        query = query.filter(Item.is_archived.is_(False))
    if search:
        like = f"%{search.strip()}%"
        query = query.filter(
            (Item.name.ilike(like)) | (Item.sku.ilike(like)) | (Item.barcode.ilike(like))
        )
    return query.order_by(Item.name.asc(), Item.id.asc()).offset(offset).limit(limit).all()


def list_vendors(*, include_inactive: bool = False) -> list[Vendor]:
    query = db.session.query(Vendor)
    if not include_inactive:
        query = query.filter(Vendor.is_active.is_(True))
    return query.order_by(Vendor.name.asc()).all()


def list_customers(*, include_inactive: bool = False) -> list[Customer]:
    query = db.session.query(Customer)
    if not include_inactive:
        query = query.filter(Customer.is_active.is_(True))
    return query.order_by(Customer.name.asc()).all()


# =============================================================================
# CREATION
# =============================================================================

def get_or_create_category(name: str) -> Category:
    name = _clean(name)
    if not name:
        raise ValidationError("Category name is required")
    category = db.session.query(Category).filter(func.lower(Category.name) == name.lower()).first()
    if category is None:
        category = Category(name=name)
        db.session.add(category)
        db.session.flush()
    return category


def create_item(
    *,
    name: str,
    sku: str | None = None,
    barcode: str | None = None,
    category: str | None = None,
    unit: str | None = None,
    purchase_rate_cents: int | None = None,
    sale_rate_cents: int | None = None,
    low_stock_threshold: int | None = None,
    created_by: str | None = None,
) -> Item:
    """
    Create a catalog item with zero stock.

    Stock only ever arrives through a purchase or an adjustment, so there is
    no opening-quantity argument here.

    Raises:
        ValidationError: missing name or negative price
        DuplicateName / DuplicateSKU / DuplicateBarcode: clash with an active item
    """
    name = _clean(name)
    if not name:
        raise ValidationError("Item name is required", details={"field": "name"})
    sku = _clean(sku)
    barcode = _clean(barcode)
    for field_name, value in (("purchase_rate", purchase_rate_cents), ("sale_rate", sale_rate_cents)):
        if value is not None and value < 0:
            raise ValidationError(f"{field_name} cannot be negative", details={"field": field_name})

    active = db.session.query(Item).filter(Item.is_archived.is_(False))
    if active.filter(func.lower(Item.name) == name.lower()).first():
        raise DuplicateName(f"An item named '{name}' already exists", details={"name": name})
    if sku and db.session.query(Item.id).filter(Item.sku == sku).first():
        raise DuplicateSKU(f"SKU '{sku}' is already in use", details={"sku": sku})
    if barcode and db.session.query(Item.id).filter(Item.barcode == barcode).first():
        raise DuplicateBarcode(f"Barcode '{barcode}' is already in use", details={"barcode": barcode})

    item = Item(
        name=name,
        sku=sku,
        barcode=barcode,
        category_id=get_or_create_category(category).id if _clean(category) else None,
        unit=_clean(unit) or "pcs",
        purchase_rate_cents=purchase_rate_cents,
        sale_rate_cents=sale_rate_cents,
        low_stock_threshold=low_stock_threshold,
        created_by=created_by,
    )
    db.session.add(item)
    db.session.commit()
    return item


def archive_item(item_id: int) -> Item:
    """Hide an item from the catalog. Its journal history is kept intact."""
    item = get_item(item_id)
    if item.is_archived:
        return item
    item.is_archived = True
    db.session.commit()
    logger.info("Archived item %s (%s)", item.id, item.name)
    return item


def create_vendor(
    *,
    name: str,
    company: str | None = None,
    phone: str | None = None,
    email: str | None = None,
    address: str | None = None,
    tax_number: str | None = None,
    created_by: str | None = None,
) -> Vendor:
    name = _clean(name)
    if not name:
        raise ValidationError("Vendor name is required", details={"field": "name"})
    if db.session.query(Vendor.id).filter(func.lower(Vendor.name) == name.lower()).first():
        raise DuplicateName(f"Vendor '{name}' already exists", details={"name": name})

    vendor = Vendor(
        name=name,
        company=_clean(company),
        phone=_clean(phone),
        email=_clean(email),
        address=_clean(address),
        tax_number=_clean(tax_number),
        created_by=created_by,
    )
    db.session.add(vendor)
    db.session.commit()
    return vendor


def create_customer(
    *,
    name: str,
    phone: str | None = None,
    email: str | None = None,
    address: str | None = None,
    created_by: str | None = None,
) -> Customer:
    name = _clean(name)
    if not name:
        raise ValidationError("Customer name is required", details={"field": "name"})
    phone = _clean(phone)
    if phone and db.session.query(Customer.id).filter(Customer.phone == phone).first():
        raise DuplicateName(f"A customer with phone '{phone}' already exists", details={"phone": phone})

    customer = Customer(
        name=name,
        phone=phone,
        email=_clean(email),
        address=_clean(address),
        created_by=created_by,
    )
    db.session.add(customer)
    db.session.commit()
    return customer


# =============================================================================
# DELETION
# =============================================================================

def _guard_balance(kind: str, entity) -> None:
    """
    Block deletion unless the recomputed balance is within epsilon.

    The stored balance is only a hint: a stale non-zero value does not block
    the delete, and a stale zero does not let a real debt through.
    """
    computed = compute_balance(kind, entity.id)
    if not within_epsilon(0, computed):
        raise BalanceNotZero(kind, entity.id, computed)
    if entity.outstanding_balance_cents != computed:
        logger.info(
            "%s %s stored balance %s differs from recomputed %s; using recomputed",
            kind, entity.id, entity.outstanding_balance_cents, computed,
        )


def delete_vendor(vendor_id: int) -> dict:
    """
    Delete a vendor whose recomputed balance is within epsilon.

    Returns:
        {"id", "mode"} where mode is "deleted" or "deactivated" (vendor has history)

    Raises:
        VendorNotFound, BalanceNotZero
    """
    vendor = get_vendor(vendor_id)
    _guard_balance(VENDOR, vendor)

    has_history = (
        db.session.query(Purchase.id).filter(Purchase.vendor_id == vendor_id).first() is not None
        or db.session.query(VendorPayment.id).filter(VendorPayment.vendor_id == vendor_id).first() is not None
    )
    mode = _remove(vendor, has_history)
    invalidate_balance(VENDOR, vendor_id)
    return {"id": vendor_id, "mode": mode}


def delete_customer(customer_id: int) -> dict:
    customer = get_customer(customer_id)
    _guard_balance(CUSTOMER, customer)

    has_history = (
        db.session.query(CustomerPayment.id).filter(CustomerPayment.customer_id == customer_id).first() is not None
        or db.session.query(POSTransaction.id).filter(POSTransaction.customer_id == customer_id).first() is not None
    )
    mode = _remove(customer, has_history)
    invalidate_balance(CUSTOMER, customer_id)
    return {"id": customer_id, "mode": mode}


def _remove(entity, has_history: bool) -> str:
    if has_history:
        entity.is_active = False
        mode = "deactivated"
    else:
        db.session.delete(entity)
        mode = "deleted"
    db.session.commit()
    logger.info("%s %s %s", entity.__class__.__name__, entity.id, mode)
    return mode


# =============================================================================
# BILL TYPES
# =============================================================================

def seed_bill_types() -> int:
    """Insert the default bill types that are missing. Idempotent."""
    created = 0
    for defaults in DEFAULT_BILL_TYPES:
        if db.session.query(BillType.id).filter_by(code=defaults["code"]).first() is None:
            db.session.add(BillType(active=True, **defaults))
            created += 1
    if created:
        db.session.commit()
    return created


def resolve_bill_type(code: str | None) -> BillType:
    """
    Active bill type by code, or the default one.

    Raises ValidationError for an unknown or inactive code.
    """
    query = db.session.query(BillType).filter(BillType.active.is_(True))
    if code:
        bill_type = query.filter(BillType.code == code).first()
    else:
        bill_type = query.filter(BillType.is_default.is_(True)).first()
    if bill_type is None:
        raise ValidationError(f"Unknown bill type: {code}", details={"bill_type": code})
    return bill_type


def has_journal_history(item_id: int) -> bool:
    if db.session.query(JournalEntry.id).filter(JournalEntry.item_id == item_id).first() is not None:
        return True
    # quotation lines reference the item without moving stock
    return db.session.query(POSTransactionLine.id).filter(POSTransactionLine.item_id == item_id).first() is not None


def delete_item(item_id: int) -> dict:
    """Delete an unused item; an item with journal history is archived instead."""
    item = get_item(item_id)
    if has_journal_history(item_id):
        archive_item(item_id)
        return {"id": item_id, "mode": "archived"}
    db.session.delete(item)
    db.session.commit()
    return {"id": item_id, "mode": "deleted"}
