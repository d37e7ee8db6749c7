# Overview: Canonical request shapes for ledger events and their JSON codecs.

"""
One canonical schema per event.

Legacy field aliases are folded in once, here, at the request boundary:
- money keys ending in _cents are integer cents
- bare money keys (rate, unit_price, purchase_price, price, amount, ...) are
  currency units and are converted to cents
Everything past this module only sees the canonical dataclasses.

to_payload()/from_payload() give the JSON form stored in the offline queue.
"""

from __future__ import annotations

from dataclasses import asdict, dataclass, fields
from datetime import datetime
from typing import Any

from ..models.counterparties import (
    CUSTOMER_ENTRY_PAYMENT,
    CUSTOMER_ENTRY_TYPES,
    CUSTOMER_PAYMENT_METHODS,
    VENDOR_PAYMENT_METHODS,
)
from ..models.journal import DIRECTIONS
from ..models.pos import PAYMENT_METHOD_CREDIT, REFUND_METHODS, SALE_PAYMENT_METHODS
from ..models.purchases import (
    PAYMENT_STATUS_PAID,
    PAYMENT_STATUS_PARTIAL,
    PAYMENT_STATUS_UNPAID,
    PAYMENT_STATUSES,
)
from ..time_utils import coerce_datetime
from .errors import ValidationError


def _to_int(value: Any) -> int | None:
    if value is None or value == "":
        return None
    if isinstance(value, bool):
        return int(value)
    if isinstance(value, int):
        return value
    if isinstance(value, float):
        return int(value)
    text = str(value).strip()
    if not text:
        return None
    return int(float(text))


def _amount_to_cents(value: Any) -> int | None:
    """Currency units (int, float or '1,250.50') to integer cents."""
    if value is None or value == "":
        return None
    if isinstance(value, bool):
        raise ValueError("boolean is not an amount")
    if isinstance(value, (int, float)):
        return int(round(value * 100))
    text = str(value).strip().replace(",", "")
    if not text:
        return None
    return int(round(float(text) * 100))


def _to_text(value: Any) -> str | None:
    if value is None:
        return None
    text = str(value).strip()
    return text if text else None


def _pick_cents(data: dict, cents_keys: tuple[str, ...], unit_keys: tuple[str, ...], *, field_name: str) -> int | None:
    """First present key wins: canonical *_cents keys, then legacy currency-unit keys."""
    try:
        for key in cents_keys:
            if data.get(key) not in (None, ""):
                return _to_int(data[key])
        for key in unit_keys:
            if data.get(key) not in (None, ""):
                return _amount_to_cents(data[key])
    except (TypeError, ValueError):
        raise ValidationError(f"{field_name} must be a number", details={"field": field_name})
    return None


def _require_int(data: dict, key: str, *aliases: str) -> int:
    for name in (key, *aliases):
        if data.get(name) not in (None, ""):
            try:
                return _to_int(data[name])
            except (TypeError, ValueError):
                raise ValidationError(f"{key} must be an integer", details={"field": key})
    raise ValidationError(f"{key} is required", details={"field": key})


def _optional_int(data: dict, key: str, *aliases: str) -> int | None:
    for name in (key, *aliases):
        if data.get(name) not in (None, ""):
            try:
                return _to_int(data[name])
            except (TypeError, ValueError):
                raise ValidationError(f"{key} must be an integer", details={"field": key})
    return None


def _date(data: dict, key: str, *, required: bool = False) -> datetime | None:
    value = data.get(key)
    if value in (None, ""):
        if required:
            return coerce_datetime(None)
        return None
    try:
        return coerce_datetime(value, field=key)
    except ValueError:
        raise ValidationError(f"{key} must be an ISO-8601 date", details={"field": key})


def _choice(value: str | None, allowed: tuple[str, ...], *, field_name: str) -> str:
    if value not in allowed:
        raise ValidationError(
            f"{field_name} must be one of: {', '.join(allowed)}",
            details={"field": field_name, "value": value},
        )
    return value


def _lines(data: dict, *keys: str) -> list[dict]:
    for key in keys:
        if key in data and data[key] is not None:
            lines = data[key]
            if not isinstance(lines, list):
                raise ValidationError(f"{key} must be a list", details={"field": key})
            return lines
    return []


class _Payload:
    """JSON codec shared by the request dataclasses."""

    _date_fields: tuple[str, ...] = ()
    _line_type = None

    def to_payload(self) -> dict:
        data = asdict(self)
        for name in self._date_fields:
            if data.get(name) is not None:
                data[name] = data[name].isoformat()
        if self._line_type is not None:
            data["lines"] = [line.to_payload() for line in self.lines]
        return data

    @classmethod
    def from_payload(cls, data: dict):
        names = {f.name for f in fields(cls)}
        kwargs = {k: v for k, v in data.items() if k in names}
        for name in cls._date_fields:
            if kwargs.get(name):
                kwargs[name] = coerce_datetime(kwargs[name], field=name)
        if cls._line_type is not None:
            kwargs["lines"] = [cls._line_type.from_payload(line) for line in kwargs.get("lines", [])]
        return cls(**kwargs)


# =============================================================================
# PURCHASES
# =============================================================================

@dataclass
class PurchaseLineInput(_Payload):
    item_id: int
    quantity: int
    purchase_rate_cents: int
    sale_rate_cents: int | None = None
    line_total_cents: int | None = None
    expiry_date: datetime | None = None
    shelf_location: str | None = None
    barcode: str | None = None

    _date_fields = ("expiry_date",)

    @property
    def total_cents(self) -> int:
        if self.line_total_cents is not None:
            return self.line_total_cents
        return self.quantity * self.purchase_rate_cents


@dataclass
class PurchaseRequest(_Payload):
    vendor_id: int
    lines: list[PurchaseLineInput]
    payment_status: str | None = None
    paid_amount_cents: int = 0
    tax_cents: int = 0
    discount_cents: int = 0
    bill_number: str | None = None
    purchase_date: datetime | None = None
    notes: str | None = None
    created_by: str | None = None
    client_ref: str | None = None

    _date_fields = ("purchase_date",)
    _line_type = PurchaseLineInput

    @property
    def subtotal_cents(self) -> int:
        return sum(line.total_cents for line in self.lines)

    @property
    def total_cents(self) -> int:
        return self.subtotal_cents + self.tax_cents - self.discount_cents


def purchase_request_from_json(data: dict, *, created_by: str | None = None) -> PurchaseRequest:
    raw_lines = _lines(data, "lines", "items", "line_items")
    if not raw_lines:
        raise ValidationError("Purchase needs at least one line", details={"field": "lines"})

    lines = []
    for index, raw in enumerate(raw_lines):
        quantity = _require_int(raw, "quantity", "qty")
        rate = _pick_cents(
            raw,
            ("purchase_rate_cents", "unit_price_cents", "rate_cents"),
            ("purchase_rate", "rate", "unit_price", "purchase_price", "price"),
            field_name="purchase_rate",
        )
        if rate is None:
            raise ValidationError("purchase_rate is required", details={"field": "purchase_rate", "line": index})
        lines.append(PurchaseLineInput(
            item_id=_require_int(raw, "item_id", "itemId"),
            quantity=quantity,
            purchase_rate_cents=rate,
            sale_rate_cents=_pick_cents(
                raw, ("sale_rate_cents", "sale_price_cents"), ("sale_rate", "sale_price"), field_name="sale_rate"
            ),
            line_total_cents=_pick_cents(raw, ("line_total_cents",), ("line_total", "total"), field_name="line_total"),
            expiry_date=_date(raw, "expiry_date"),
            shelf_location=_to_text(raw.get("shelf_location")),
            barcode=_to_text(raw.get("barcode")),
        ))

    request = PurchaseRequest(
        vendor_id=_require_int(data, "vendor_id", "vendorId"),
        lines=lines,
        payment_status=_to_text(data.get("payment_status")),
        paid_amount_cents=_pick_cents(
            data, ("paid_amount_cents",), ("paid_amount", "paid"), field_name="paid_amount"
        ) or 0,
        tax_cents=_pick_cents(data, ("tax_cents",), ("tax",), field_name="tax") or 0,
        discount_cents=_pick_cents(data, ("discount_cents",), ("discount",), field_name="discount") or 0,
        bill_number=_to_text(data.get("bill_number")),
        purchase_date=_date(data, "purchase_date", required=True),
        notes=_to_text(data.get("notes")),
        created_by=created_by or _to_text(data.get("created_by")),
        client_ref=_to_text(data.get("client_ref")),
    )
    validate_purchase(request)
    return request


def resolve_payment(total_cents: int, paid_cents: int, status: str | None) -> tuple[int, str]:
    """
    Return (paid_amount_cents, payment_status) for a new purchase.

    - no status: derived from paid vs total
    - "paid" with no amount means paid in full
    - paying more than the total is accepted (pending goes negative)
    Raises ValidationError when an explicit status contradicts the amount.
    """
    if status is None:
        if paid_cents <= 0:
            return 0, PAYMENT_STATUS_PAID if total_cents == 0 else PAYMENT_STATUS_UNPAID
        if paid_cents >= total_cents:
            return paid_cents, PAYMENT_STATUS_PAID
        return paid_cents, PAYMENT_STATUS_PARTIAL

    if status == PAYMENT_STATUS_PAID:
        if paid_cents == 0:
            return total_cents, status
        if paid_cents < total_cents:
            raise ValidationError(
                "Payment status 'paid' needs the full amount",
                details={"total_cents": total_cents, "paid_amount_cents": paid_cents},
            )
        return paid_cents, status

    if status == PAYMENT_STATUS_UNPAID:
        if paid_cents != 0:
            raise ValidationError(
                "Payment status 'unpaid' cannot carry a paid amount",
                details={"paid_amount_cents": paid_cents},
            )
        return 0, status

    if not 0 < paid_cents < total_cents:
        raise ValidationError(
            "Payment status 'partial' needs an amount between zero and the total",
            details={"total_cents": total_cents, "paid_amount_cents": paid_cents},
        )
    return paid_cents, status


def validate_purchase(request: PurchaseRequest) -> None:
    """Every purchase rule that needs no store read. Runs before the event is committed or queued."""
    if not request.lines:
        raise ValidationError("Purchase needs at least one line", details={"field": "lines"})
    for index, line in enumerate(request.lines):
        if line.quantity is None or line.quantity <= 0:
            raise ValidationError("Line quantity must be positive", details={"line": index, "field": "quantity"})
        if line.purchase_rate_cents < 0:
            raise ValidationError("Purchase rate cannot be negative", details={"line": index, "field": "purchase_rate"})
        if line.sale_rate_cents is not None and line.sale_rate_cents < 0:
            raise ValidationError("Sale rate cannot be negative", details={"line": index, "field": "sale_rate"})
    if request.tax_cents < 0 or request.discount_cents < 0:
        raise ValidationError("Tax and discount cannot be negative")
    if request.paid_amount_cents < 0:
        raise ValidationError("Paid amount cannot be negative", details={"field": "paid_amount"})
    if request.total_cents < 0:
        raise ValidationError("Purchase total cannot be negative", details={"total_cents": request.total_cents})
    if request.payment_status is not None:
        _choice(request.payment_status, PAYMENT_STATUSES, field_name="payment_status")
    resolve_payment(request.total_cents, request.paid_amount_cents, request.payment_status)


# =============================================================================
# SALES
# =============================================================================

@dataclass
class SaleLineInput(_Payload):
    item_id: int
    quantity: int
    unit_price_cents: int | None = None


@dataclass
class SaleRequest(_Payload):
    lines: list[SaleLineInput]
    payment_method: str = "cash"
    customer_id: int | None = None
    bill_type: str = "regular"
    tax_cents: int = 0
    discount_cents: int = 0
    amount_tendered_cents: int | None = None
    notes: str | None = None
    cashier_id: str | None = None
    client_ref: str | None = None

    _line_type = SaleLineInput

    @property
    def quoted_total_cents(self) -> int | None:
        """Total from the prices on the lines; None while any line waits for the catalog price."""
        if any(line.unit_price_cents is None for line in self.lines):
            return None
        subtotal = sum(line.quantity * line.unit_price_cents for line in self.lines)
        return subtotal + self.tax_cents - self.discount_cents


def sale_request_from_json(data: dict, *, cashier_id: str | None = None) -> SaleRequest:
    raw_lines = _lines(data, "lines", "items", "cart_items", "cart")
    if not raw_lines:
        raise ValidationError("Cart is empty", details={"field": "lines"})

    lines = [
        SaleLineInput(
            item_id=_require_int(raw, "item_id", "itemId", "id"),
            quantity=_require_int(raw, "quantity", "qty"),
            unit_price_cents=_pick_cents(
                raw,
                ("unit_price_cents", "sale_rate_cents", "price_cents"),
                ("unit_price", "sale_price", "price", "rate"),
                field_name="unit_price",
            ),
        )
        for raw in raw_lines
    ]
    request = SaleRequest(
        lines=lines,
        payment_method=(_to_text(data.get("payment_method")) or "cash").lower(),
        customer_id=_optional_int(data, "customer_id", "customerId"),
        bill_type=_to_text(data.get("bill_type")) or "regular",
        tax_cents=_pick_cents(data, ("tax_cents",), ("tax",), field_name="tax") or 0,
        discount_cents=_pick_cents(data, ("discount_cents",), ("discount",), field_name="discount") or 0,
        amount_tendered_cents=_pick_cents(
            data, ("amount_tendered_cents",), ("amount_tendered", "tendered"), field_name="amount_tendered"
        ),
        notes=_to_text(data.get("notes")),
        cashier_id=cashier_id or _to_text(data.get("cashier_id")),
        client_ref=_to_text(data.get("client_ref")),
    )
    validate_sale(request)
    return request


def validate_sale(request: SaleRequest) -> None:
    """
    Store-free sale rules. Lines without a unit price are priced from the
    catalog inside the atomic unit, which re-checks total and tender there.
    """
    if not request.lines:
        raise ValidationError("Cart is empty", details={"field": "lines"})
    for index, line in enumerate(request.lines):
        if line.quantity is None or line.quantity <= 0:
            raise ValidationError("Line quantity must be positive", details={"line": index, "field": "quantity"})
        if line.unit_price_cents is not None and line.unit_price_cents < 0:
            raise ValidationError("Unit price cannot be negative", details={"line": index, "field": "unit_price"})
    _choice(request.payment_method, SALE_PAYMENT_METHODS, field_name="payment_method")
    if request.tax_cents < 0 or request.discount_cents < 0:
        raise ValidationError("Tax and discount cannot be negative")
    if request.amount_tendered_cents is not None and request.amount_tendered_cents < 0:
        raise ValidationError("Amount tendered cannot be negative", details={"field": "amount_tendered"})

    is_credit = request.payment_method == PAYMENT_METHOD_CREDIT
    if is_credit and request.customer_id is None:
        raise ValidationError("Credit sales require a customer", details={"field": "customer_id"})

    total = request.quoted_total_cents
    if total is None:
        return
    if total < 0:
        raise ValidationError("Discount exceeds sale total", details={"total_cents": total})
    if not is_credit and request.amount_tendered_cents is not None and request.amount_tendered_cents < total:
        raise ValidationError(
            "Amount tendered is less than the total",
            details={"total_cents": total, "amount_tendered_cents": request.amount_tendered_cents},
        )


# =============================================================================
# RETURNS
# =============================================================================

@dataclass
class ReturnLineInput(_Payload):
    item_id: int
    quantity: int


@dataclass
class ReturnRequest(_Payload):
    transaction_id: int
    lines: list[ReturnLineInput]
    refund_method: str = "cash"
    reason: str | None = None
    created_by: str | None = None

    _line_type = ReturnLineInput


def return_request_from_json(transaction_id: int, data: dict, *, created_by: str | None = None) -> ReturnRequest:
    raw_lines = _lines(data, "lines", "items", "returned_items")
    request = ReturnRequest(
        transaction_id=transaction_id,
        lines=[
            ReturnLineInput(
                item_id=_require_int(raw, "item_id", "itemId"),
                quantity=_require_int(raw, "quantity", "qty"),
            )
            for raw in raw_lines
        ],
        refund_method=(_to_text(data.get("refund_method")) or "cash").lower(),
        reason=_to_text(data.get("reason")),
        created_by=created_by or _to_text(data.get("created_by")),
    )
    validate_return(request)
    return request


def validate_return(request: ReturnRequest) -> None:
    if not request.lines:
        raise ValidationError("Select at least one item to return", details={"field": "lines"})
    for index, line in enumerate(request.lines):
        if line.quantity is None or line.quantity <= 0:
            raise ValidationError("Return quantity must be positive", details={"line": index, "field": "quantity"})
    _choice(request.refund_method, REFUND_METHODS, field_name="refund_method")


# =============================================================================
# PAYMENTS
# =============================================================================

@dataclass
class VendorPaymentRequest(_Payload):
    vendor_id: int
    amount_cents: int
    payment_method: str = "cash"
    purchase_id: int | None = None
    reference_number: str | None = None
    notes: str | None = None
    payment_date: datetime | None = None
    created_by: str | None = None
    client_ref: str | None = None

    _date_fields = ("payment_date",)


def vendor_payment_request_from_json(vendor_id: int, data: dict, *, created_by: str | None = None) -> VendorPaymentRequest:
    amount = _pick_cents(data, ("amount_cents",), ("amount",), field_name="amount")
    if amount is None:
        raise ValidationError("amount is required", details={"field": "amount"})
    request = VendorPaymentRequest(
        vendor_id=vendor_id,
        amount_cents=amount,
        payment_method=(_to_text(data.get("payment_method")) or "cash").lower(),
        purchase_id=_optional_int(data, "purchase_id", "purchaseId"),
        reference_number=_to_text(data.get("reference_number")),
        notes=_to_text(data.get("notes")),
        payment_date=_date(data, "payment_date", required=True),
        created_by=created_by or _to_text(data.get("created_by")),
        client_ref=_to_text(data.get("client_ref")),
    )
    validate_vendor_payment(request)
    return request


def validate_vendor_payment(request: VendorPaymentRequest) -> None:
    if request.amount_cents is None or request.amount_cents <= 0:
        raise ValidationError("Payment amount must be positive", details={"field": "amount"})
    _choice(request.payment_method, VENDOR_PAYMENT_METHODS, field_name="payment_method")


@dataclass
class CustomerTransactionRequest(_Payload):
    customer_id: int
    amount_cents: int
    type: str = CUSTOMER_ENTRY_PAYMENT
    payment_method: str = "cash"
    reference_number: str | None = None
    notes: str | None = None
    payment_date: datetime | None = None
    created_by: str | None = None
    client_ref: str | None = None

    _date_fields = ("payment_date",)


def customer_transaction_request_from_json(
    customer_id: int, data: dict, *, created_by: str | None = None
) -> CustomerTransactionRequest:
    amount = _pick_cents(data, ("amount_cents",), ("amount",), field_name="amount")
    if amount is None:
        raise ValidationError("amount is required", details={"field": "amount"})
    request = CustomerTransactionRequest(
        customer_id=customer_id,
        amount_cents=amount,
        type=(_to_text(data.get("type")) or CUSTOMER_ENTRY_PAYMENT).lower(),
        payment_method=(_to_text(data.get("payment_method")) or "cash").lower(),
        reference_number=_to_text(data.get("reference_number")),
        notes=_to_text(data.get("notes")),
        payment_date=_date(data, "payment_date", required=True),
        created_by=created_by or _to_text(data.get("created_by")),
        client_ref=_to_text(data.get("client_ref")),
    )
    validate_customer_transaction(request)
    return request


def validate_customer_transaction(request: CustomerTransactionRequest) -> None:
    if request.amount_cents is None or request.amount_cents <= 0:
        raise ValidationError("Amount must be positive", details={"field": "amount"})
    _choice(request.type, CUSTOMER_ENTRY_TYPES, field_name="type")
    _choice(request.payment_method, CUSTOMER_PAYMENT_METHODS, field_name="payment_method")


# =============================================================================
# ADJUSTMENTS
# =============================================================================

@dataclass
class AdjustmentRequest(_Payload):
    item_id: int
    direction: str
    quantity: int
    unit_price_cents: int = 0
    reason: str | None = None
    created_by: str | None = None


def adjustment_request_from_json(item_id: int, data: dict, *, created_by: str | None = None) -> AdjustmentRequest:
    request = AdjustmentRequest(
        item_id=item_id,
        direction=(_to_text(data.get("direction")) or "").lower(),
        quantity=_require_int(data, "quantity", "qty"),
        unit_price_cents=_pick_cents(
            data, ("unit_price_cents",), ("unit_price", "rate", "price"), field_name="unit_price"
        ) or 0,
        reason=_to_text(data.get("reason")) or _to_text(data.get("notes")),
        created_by=created_by or _to_text(data.get("created_by")),
    )
    validate_adjustment(request)
    return request


def validate_adjustment(request: AdjustmentRequest) -> None:
    _choice(request.direction, DIRECTIONS, field_name="direction")
    if request.quantity is None or request.quantity <= 0:
        raise ValidationError("Adjustment quantity must be positive", details={"field": "quantity"})
    if request.unit_price_cents < 0:
        raise ValidationError("Unit price cannot be negative", details={"field": "unit_price"})
    if not request.reason:
        raise ValidationError("A reason is required for stock adjustments", details={"field": "reason"})


# =============================================================================
# CATALOG
# =============================================================================

def item_fields_from_json(data: dict) -> dict:
    """Keyword arguments for catalog_service.create_item from a JSON body."""
    return {
        "name": _to_text(data.get("name")),
        "sku": _to_text(data.get("sku")),
        "barcode": _to_text(data.get("barcode")),
        "category": _to_text(data.get("category")),
        "unit": _to_text(data.get("unit")),
        "purchase_rate_cents": _pick_cents(
            data, ("purchase_rate_cents",), ("purchase_rate", "purchase_price"), field_name="purchase_rate"
        ),
        "sale_rate_cents": _pick_cents(
            data, ("sale_rate_cents",), ("sale_rate", "sale_price", "price"), field_name="sale_rate"
        ),
        "low_stock_threshold": _optional_int(data, "low_stock_threshold", "lowStockThreshold"),
    }
