# Overview: Service-layer operations for purchases; atomic stock-in plus vendor balance posting.

"""
Purchase Service

One purchase is one atomic unit:
- Purchase + PurchaseLine rows
- one stock_in journal entry per line
- per item: quantity, lifetime stock-in totals, average cost, last rates
- vendor: outstanding_balance += pending_amount, total_purchases += total

Either all of it commits or none of it does.

PAYMENT STATUS is settled by schemas.resolve_payment before the unit opens,
so a contradictory status is rejected even when the store is down.
Overpaid purchases are accepted; pending goes negative and is_overpaid is set.
"""

from __future__ import annotations

import logging

from ..extensions import db
from ..models import Item, Purchase, PurchaseLine, Vendor
from ..models.journal import DIRECTION_STOCK_IN
from ..time_utils import utcnow
from . import balance_service, stock_service
from .concurrency import begin_atomic, lock_for_update, run_with_retry
from .document_service import PURCHASE, next_document_number
from .errors import ItemArchived, ItemNotFound, VendorNotFound
from .journal_service import append_journal_entry
from .schemas import PurchaseRequest, resolve_payment, validate_purchase

logger = logging.getLogger(__name__)


def find_by_client_ref(client_ref: str | None) -> Purchase | None:
    if not client_ref:
        return None
    return db.session.query(Purchase).filter_by(client_ref=client_ref).first()


def load_items_for_update(item_ids) -> dict[int, Item]:
    """Lock and return every item, raising for missing or archived ones."""
    ids = sorted(set(item_ids))
    rows = lock_for_update(db.session.query(Item).filter(Item.id.in_(ids))).all()
    items = {item.id: item for item in rows}
    for item_id in ids:
        item = items.get(item_id)
        if item is None:
            raise ItemNotFound(item_id)
        if item.is_archived:
            raise ItemArchived(item_id)
    return items


def record_purchase(request: PurchaseRequest) -> Purchase:
    """
    Record a vendor purchase atomically.

    Raises:
        ValidationError: malformed lines, negative total, inconsistent status
        VendorNotFound / ItemNotFound / ItemArchived: missing references
        StoreUnavailable / ConcurrencyConflict: from run_with_retry
    """
    validate_purchase(request)

    def _op():
        begin_atomic()

        existing = find_by_client_ref(request.client_ref)
        if existing is not None:
            db.session.rollback()
            return existing

        vendor = lock_for_update(db.session.query(Vendor).filter_by(id=request.vendor_id)).first()
        if vendor is None:
            raise VendorNotFound(request.vendor_id)

        items = load_items_for_update(line.item_id for line in request.lines)

        total = request.total_cents
        paid, status = resolve_payment(total, request.paid_amount_cents, request.payment_status)
        purchase_number = next_document_number(PURCHASE)

        purchase = Purchase(
            purchase_number=purchase_number,
            client_ref=request.client_ref,
            bill_number=request.bill_number,
            vendor_id=vendor.id,
            vendor_name=vendor.name,
            subtotal_cents=request.subtotal_cents,
            tax_cents=request.tax_cents,
            discount_cents=request.discount_cents,
            total_cents=total,
            payment_status=status,
            upfront_paid_cents=paid,
            paid_amount_cents=paid,
            pending_amount_cents=total - paid,
            purchase_date=request.purchase_date or utcnow(),
            notes=request.notes,
            created_by=request.created_by,
        )
        db.session.add(purchase)
        db.session.flush()

        for line in request.lines:
            item = items[line.item_id]
            purchase.lines.append(PurchaseLine(
                item_id=item.id,
                quantity=line.quantity,
                purchase_rate_cents=line.purchase_rate_cents,
                sale_rate_cents=line.sale_rate_cents,
                line_total_cents=line.total_cents,
                expiry_date=line.expiry_date,
                shelf_location=line.shelf_location,
                barcode=line.barcode,
            ))
            append_journal_entry(
                item_id=item.id,
                direction=DIRECTION_STOCK_IN,
                quantity=line.quantity,
                unit_price_cents=line.purchase_rate_cents,
                total_value_cents=line.total_cents,
                reference_type="purchase",
                reference_id=purchase.id,
                reference_number=purchase_number,
                movement_date=purchase.purchase_date,
                counterparty_name=vendor.name,
                expiry_date=line.expiry_date,
                shelf_location=line.shelf_location,
                created_by=request.created_by,
            )
            stock_service.apply_stock_in(item, line.quantity, line.purchase_rate_cents)
            item.purchase_rate_cents = line.purchase_rate_cents
            if line.sale_rate_cents is not None:
                item.sale_rate_cents = line.sale_rate_cents

        vendor.outstanding_balance_cents += purchase.pending_amount_cents
        vendor.total_purchases_cents += total

        if purchase.is_overpaid:
            logger.warning(
                "Purchase %s overpaid: total=%s paid=%s",
                purchase_number, total, paid,
            )

        db.session.commit()
        return purchase

    purchase = run_with_retry(_op)
    stock_service.invalidate(*[line.item_id for line in request.lines])
    balance_service.invalidate(balance_service.VENDOR, request.vendor_id)
    return purchase


def get_purchase(purchase_id: int) -> Purchase | None:
    return db.session.get(Purchase, purchase_id)


def list_purchases(*, vendor_id: int | None = None, payment_status: str | None = None, limit: int = 100, offset: int = 0) -> list[Purchase]:
    query = db.session.query(Purchase)
    if vendor_id is not None:
        query = query.filter(Purchase.vendor_id == vendor_id)
    if payment_status:
        query = query.filter(Purchase.payment_status == payment_status)
    return (
        query.order_by(Purchase.purchase_date.desc(), Purchase.id.desc())
        .offset(offset)
        .limit(limit)
        .all()
    )
