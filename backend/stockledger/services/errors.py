# Overview: Typed business errors raised by the ledger services.

"""
Ledger error taxonomy.

Validation      - bad input shape or range; rejected before any write.
Precondition    - business rule violated; the whole event is aborted.
Transient       - store unreachable; deferrable events go to the offline queue.
Conflict        - optimistic concurrency lost after retries; safe to retry.

Drift is not an error here: reconciliation logs and corrects it.
"""

from __future__ import annotations


class LedgerError(Exception):
    """Base for every business-level failure. Carries machine-readable details."""
    code = "ledger_error"
    http_status = 400
    retryable = False

    def __init__(self, message: str, details: dict | None = None):
        super().__init__(message)
        self.message = message
        self.details = details or {}

    def to_dict(self) -> dict:
        return {
            "error": self.message,
            "code": self.code,
            "details": self.details,
            "retryable": self.retryable,
        }


class ValidationError(LedgerError):
    code = "validation_error"


# =============================================================================
# PRECONDITIONS
# =============================================================================

class NotFoundError(LedgerError):
    code = "not_found"
    http_status = 404


class ItemNotFound(NotFoundError):
    code = "item_not_found"

    def __init__(self, item_id):
        super().__init__(f"Item {item_id} not found", details={"item_id": item_id})


class VendorNotFound(NotFoundError):
    code = "vendor_not_found"

    def __init__(self, vendor_id):
        super().__init__(f"Vendor {vendor_id} not found", details={"vendor_id": vendor_id})


class CustomerNotFound(NotFoundError):
    code = "customer_not_found"

    def __init__(self, customer_id):
        super().__init__(f"Customer {customer_id} not found", details={"customer_id": customer_id})


class TransactionNotFound(NotFoundError):
    code = "transaction_not_found"

    def __init__(self, transaction_id):
        super().__init__(
            f"POS transaction {transaction_id} not found",
            details={"transaction_id": transaction_id},
        )


class PreconditionError(LedgerError):
    code = "precondition_failed"
    http_status = 409


class InsufficientStock(PreconditionError):
    code = "insufficient_stock"

    def __init__(self, item_id: int, available: int, requested: int, item_name: str | None = None):
        label = item_name or f"item {item_id}"
        super().__init__(
            f"Insufficient stock for {label}. Available: {available}",
            details={"item_id": item_id, "available": available, "requested": requested},
        )
        self.item_id = item_id
        self.available = available
        self.requested = requested


class TransactionNotCancellable(PreconditionError):
    code = "transaction_not_cancellable"

    def __init__(self, transaction_id: int, status: str):
        super().__init__(
            f"POS transaction {transaction_id} cannot be cancelled from status {status}",
            details={"transaction_id": transaction_id, "status": status},
        )


class ReturnNotAllowed(PreconditionError):
    code = "return_not_allowed"


class ItemArchived(PreconditionError):
    code = "item_archived"

    def __init__(self, item_id: int):
        super().__init__(f"Item {item_id} is archived", details={"item_id": item_id})


class DuplicateName(PreconditionError):
    code = "duplicate_name"


class DuplicateBarcode(PreconditionError):
    code = "duplicate_barcode"


class DuplicateSKU(PreconditionError):
    code = "duplicate_sku"


class BalanceNotZero(PreconditionError):
    code = "balance_not_zero"

    def __init__(self, kind: str, entity_id: int, balance_cents: int):
        super().__init__(
            f"Cannot delete {kind} with outstanding balance ({balance_cents / 100:.2f}). "
            "Please clear the balance first.",
            details={"kind": kind, "id": entity_id, "balance_cents": balance_cents},
        )


# =============================================================================
# STORE FAILURES
# =============================================================================

class StoreUnavailable(LedgerError):
    """Shared store unreachable (connection refused, dropped, pool timeout)."""
    code = "store_unavailable"
    http_status = 503
    retryable = True


class ConcurrencyConflict(LedgerError):
    """Read set invalidated by a concurrent commit and retries ran out."""
    code = "concurrency_conflict"
    http_status = 409
    retryable = True


class DrainInProgress(LedgerError):
    """Another drain holds the offline queue lease."""
    code = "drain_in_progress"
    http_status = 409
    retryable = True

    def __init__(self, holder: str | None = None):
        super().__init__("Another drain of the offline queue is running", details={"holder": holder})
