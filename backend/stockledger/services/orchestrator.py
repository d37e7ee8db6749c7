# Overview: Transaction orchestrator; runs one business event and returns a structured outcome.

"""
Transaction orchestrator

Every business event goes through here and comes back as exactly one of
Committed / Rejected / DeferredOffline. The services underneath raise;
this module is the only place those exceptions become outcomes.

Requests carrying a client_ref get one before the first attempt, so an
atomic commit whose acknowledgement was lost is not recorded again when the
queued copy is drained.

OFFLINE DEFERRAL (store unreachable):
- purchase, vendor payment, customer transaction: queued, DeferredOffline
- sale: queued only with allow_offline=True (the caller accepts that stock
  cannot be checked); otherwise Rejected(StoreUnavailable), retryable
- cancel, void, return, adjustment: never queued; Rejected(StoreUnavailable)
- an event the replay could never apply (see fallback_service.check_deferrable)
  is Rejected with its ValidationError instead of being queued

Anything that is not a LedgerError (programming errors, unclassified store
errors) propagates unchanged.
"""

from __future__ import annotations

import logging
from typing import Callable

from . import (
    inventory_service,
    offline_queue,
    payment_service,
    purchase_service,
    return_service,
    sales_service,
)
from .errors import LedgerError, StoreUnavailable
from .fallback_service import (
    KIND_CUSTOMER_TRANSACTION,
    KIND_PURCHASE,
    KIND_SALE,
    KIND_VENDOR_PAYMENT,
)
from .outcomes import Committed, DeferredOffline, Outcome, Rejected
from .schemas import (
    AdjustmentRequest,
    CustomerTransactionRequest,
    PurchaseRequest,
    ReturnRequest,
    SaleRequest,
    VendorPaymentRequest,
)

logger = logging.getLogger(__name__)


def _stamp_client_ref(request) -> None:
    # One ref per event across the atomic attempt and any offline replay
    if request is not None and hasattr(request, "client_ref") and not request.client_ref:
        request.client_ref = offline_queue.new_client_ref()


def _execute(operation: Callable[[], object], *, defer_kind: str | None = None, request=None) -> Outcome:
    _stamp_client_ref(request)
    try:
        return Committed(operation())
    except StoreUnavailable as exc:
        if defer_kind is None:
            logger.warning("Store unavailable; %s", exc.message)
            return Rejected(exc)
        try:
            event = offline_queue.enqueue(defer_kind, request)
        except LedgerError as invalid:
            logger.info("Not queuing %s offline: %s", defer_kind, invalid.message)
            return Rejected(invalid)
        except Exception:
            logger.exception("Could not queue %s offline", defer_kind)
            return Rejected(exc)
        return DeferredOffline(temp_id=event.temp_id, kind=defer_kind)
    except LedgerError as exc:
        logger.info("Rejected %s: %s", exc.code, exc.message)
        return Rejected(exc)


def record_purchase(request: PurchaseRequest) -> Outcome:
    return _execute(
        lambda: purchase_service.record_purchase(request),
        defer_kind=KIND_PURCHASE,
        request=request,
    )


def record_sale(request: SaleRequest, *, allow_offline: bool = False) -> Outcome:
    return _execute(
        lambda: sales_service.record_sale(request),
        defer_kind=KIND_SALE if allow_offline else None,
        request=request,
    )


def cancel_sale(transaction_id: int, reason: str | None = None, *, cancelled_by: str | None = None) -> Outcome:
    return _execute(lambda: sales_service.cancel_sale(transaction_id, reason, cancelled_by=cancelled_by))


def void_sale(transaction_id: int, reason: str | None = None, *, voided_by: str | None = None) -> Outcome:
    return _execute(lambda: sales_service.void_sale(transaction_id, reason, voided_by=voided_by))


def process_return(request: ReturnRequest) -> Outcome:
    return _execute(lambda: return_service.process_return(request))


def record_vendor_payment(request: VendorPaymentRequest) -> Outcome:
    return _execute(
        lambda: payment_service.record_vendor_payment(request),
        defer_kind=KIND_VENDOR_PAYMENT,
        request=request,
    )


def record_customer_transaction(request: CustomerTransactionRequest) -> Outcome:
    return _execute(
        lambda: payment_service.record_customer_transaction(request),
        defer_kind=KIND_CUSTOMER_TRANSACTION,
        request=request,
    )


def record_adjustment(request: AdjustmentRequest) -> Outcome:
    return _execute(lambda: inventory_service.record_adjustment(request))
