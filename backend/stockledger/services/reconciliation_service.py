# Overview: Recompute denormalized stock and balances from their source records and correct drift.

"""
Reconciliation

Items:
- recompute quantity, stock-in totals and average cost from the journal
- overwrite every field that differs (exact match required)
- a negative journal sum is written as-is and reported, never hidden

Counterparties:
- recompute the balance from the ledger
- overwrite only when |stored - computed| > BALANCE_EPSILON_CENTS
- never raises; failures come back in the report

Both are idempotent: a second run with no writes in between changes nothing.
Drift is logged, never raised.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field

from flask import current_app

from ..extensions import db
from ..models import Customer, Item, Vendor
from . import balance_service, stock_service
from .balance_service import CUSTOMER, VENDOR, compute_balance, within_epsilon
from .concurrency import begin_atomic, lock_for_update, run_with_retry
from .errors import ItemNotFound

logger = logging.getLogger(__name__)

ITEM_FIELDS = (
    ("current_quantity", "quantity"),
    ("stock_in_quantity", "stock_in_quantity"),
    ("stock_in_cost_cents", "stock_in_cost_cents"),
    ("average_unit_cost_cents", "average_unit_cost_cents"),
)


@dataclass
class ItemReconciliation:
    item_id: int
    changes: dict = field(default_factory=dict)
    quantity: int = 0
    is_negative: bool = False

    @property
    def corrected(self) -> bool:
        return bool(self.changes)

    def to_dict(self) -> dict:
        return {
            "item_id": self.item_id,
            "corrected": self.corrected,
            "changes": {name: {"from": old, "to": new} for name, (old, new) in self.changes.items()},
            "quantity": self.quantity,
            "is_negative": self.is_negative,
        }


@dataclass
class CounterpartyReconciliation:
    kind: str
    entity_id: int
    stored_cents: int | None = None
    computed_cents: int | None = None
    corrected: bool = False
    error: str | None = None

    def to_dict(self) -> dict:
        return {
            "kind": self.kind,
            "id": self.entity_id,
            "stored_cents": self.stored_cents,
            "computed_cents": self.computed_cents,
            "corrected": self.corrected,
            "error": self.error,
        }


@dataclass
class SweepReport:
    checked: int = 0
    corrected: int = 0
    failed: int = 0
    negative_items: list[int] = field(default_factory=list)
    corrections: list[dict] = field(default_factory=list)
    errors: list[dict] = field(default_factory=list)

    def to_dict(self) -> dict:
        return {
            "checked": self.checked,
            "corrected": self.corrected,
            "failed": self.failed,
            "negative_items": self.negative_items,
            "corrections": self.corrections,
            "errors": self.errors,
        }


# =============================================================================
# ITEMS
# =============================================================================

def _apply_item(item: Item) -> ItemReconciliation:
    """Bring one loaded item in line with its journal. Does not commit."""
    level = stock_service.compute_from_journal(item.id)
    report = ItemReconciliation(item_id=item.id, quantity=level.quantity, is_negative=level.is_negative)
    for column, attr in ITEM_FIELDS:
        target = getattr(level, attr)
        current = getattr(item, column)
        if current != target:
            report.changes[column] = (current, target)
            setattr(item, column, target)
    return report


def _log_item(report: ItemReconciliation) -> None:
    if report.corrected:
        logger.warning("Reconciled item %s: %s", report.item_id, report.to_dict()["changes"])


def reconcile_item(item_id: int) -> ItemReconciliation:
    """Recompute one item from its journal and overwrite differing fields."""
    def _op():
        begin_atomic()
        item = lock_for_update(db.session.query(Item).filter_by(id=item_id)).first()
        if item is None:
            raise ItemNotFound(item_id)
        report = _apply_item(item)
        db.session.commit()
        return report

    report = run_with_retry(_op)
    stock_service.invalidate(item_id)
    _log_item(report)
    return report


def reconcile_all_items(*, batch_size: int | None = None) -> SweepReport:
    """
    Sweep every item in id order, committing once per batch.

    A failing item is counted and skipped. If a batch commit itself fails,
    that batch is redone one item at a time.
    """
    batch_size = batch_size or current_app.config.get("RECONCILE_BATCH_SIZE", 500)
    sweep = SweepReport()
    last_id = 0

    while True:
        ids = [
            row.id
            for row in db.session.query(Item.id)
            .filter(Item.id > last_id)
            .order_by(Item.id.asc())
            .limit(batch_size)
            .all()
        ]
        if not ids:
            break
        last_id = ids[-1]

        reports = []
        try:
            for item in db.session.query(Item).filter(Item.id.in_(ids)).order_by(Item.id.asc()).all():
                reports.append(_apply_item(item))
            db.session.commit()
        except Exception:
            db.session.rollback()
            logger.warning("Batch ending at item %s failed; retrying item by item", last_id, exc_info=True)
            reports = []
            for item_id in ids:
                try:
                    reports.append(reconcile_item(item_id))
                except Exception as exc:
                    db.session.rollback()
                    sweep.failed += 1
                    sweep.errors.append({"item_id": item_id, "error": str(exc)})
                    logger.exception("Reconciliation failed for item %s", item_id)

        stock_service.invalidate(*ids)
        for report in reports:
            sweep.checked += 1
            if report.corrected:
                sweep.corrected += 1
                sweep.corrections.append(report.to_dict())
            if report.is_negative:
                sweep.negative_items.append(report.item_id)
            _log_item(report)

    logger.info(
        "Item sweep: checked=%s corrected=%s failed=%s negative=%s",
        sweep.checked, sweep.corrected, sweep.failed, len(sweep.negative_items),
    )
    return sweep


# =============================================================================
# COUNTERPARTIES
# =============================================================================

def reconcile_counterparty(kind: str, entity_id: int) -> CounterpartyReconciliation:
    """Correct a vendor/customer balance that drifted beyond epsilon. Never raises."""
    report = CounterpartyReconciliation(kind=kind, entity_id=entity_id)
    model = Vendor if kind == VENDOR else Customer

    def _op():
        begin_atomic()
        entity = lock_for_update(db.session.query(model).filter_by(id=entity_id)).first()
        if entity is None:
            report.error = f"{kind} {entity_id} not found"
            db.session.rollback()
            return report
        computed = compute_balance(kind, entity_id)
        report.stored_cents = entity.outstanding_balance_cents
        report.computed_cents = computed
        if not within_epsilon(entity.outstanding_balance_cents, computed):
            entity.outstanding_balance_cents = computed
            report.corrected = True
        db.session.commit()
        return report

    try:
        if kind not in (VENDOR, CUSTOMER):
            report.error = f"unknown counterparty kind {kind}"
            return report
        run_with_retry(_op)
    except Exception as exc:
        db.session.rollback()
        report.corrected = False
        report.error = getattr(exc, "message", None) or str(exc)
        logger.exception("Reconciliation failed for %s %s", kind, entity_id)
        return report

    balance_service.invalidate(kind, entity_id)
    if report.corrected:
        logger.warning(
            "Reconciled %s %s balance: %s -> %s",
            kind, entity_id, report.stored_cents, report.computed_cents,
        )
    return report


def reconcile_all_counterparties() -> SweepReport:
    sweep = SweepReport()
    targets = [(VENDOR, row.id) for row in db.session.query(Vendor.id).order_by(Vendor.id).all()]
    targets += [(CUSTOMER, row.id) for row in db.session.query(Customer.id).order_by(Customer.id).all()]

    for kind, entity_id in targets:
        report = reconcile_counterparty(kind, entity_id)
        sweep.checked += 1
        if report.error:
            sweep.failed += 1
            sweep.errors.append(report.to_dict())
        elif report.corrected:
            sweep.corrected += 1
            sweep.corrections.append(report.to_dict())

    logger.info(
        "Counterparty sweep: checked=%s corrected=%s failed=%s",
        sweep.checked, sweep.corrected, sweep.failed,
    )
    return sweep


def reconcile_touched(touched: dict[str, set]) -> dict:
    """Reconcile the entities an offline drain wrote to."""
    items = []
    for item_id in sorted(touched.get("items", ())):
        try:
            items.append(reconcile_item(item_id).to_dict())
        except Exception as exc:
            logger.exception("Post-drain reconciliation failed for item %s", item_id)
            items.append({"item_id": item_id, "error": str(exc)})

    counterparties = [
        reconcile_counterparty(VENDOR, vendor_id).to_dict()
        for vendor_id in sorted(touched.get("vendors", ()))
    ] + [
        reconcile_counterparty(CUSTOMER, customer_id).to_dict()
        for customer_id in sorted(touched.get("customers", ()))
    ]
    return {"items": items, "counterparties": counterparties}
