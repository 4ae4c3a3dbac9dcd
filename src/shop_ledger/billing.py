"""Invoice computation and the bill service.

:func:`calculate_bill_summary` is a pure function over line items and a tax
configuration. Amounts are exact :class:`~decimal.Decimal` values; rounding
to paise only happens for display through :func:`format_currency`.
"""

from __future__ import annotations

from dataclasses import dataclass
from decimal import ROUND_HALF_UP, Decimal
from typing import Any, Dict, Iterable, List, Mapping

from . import data_manager, log
from .constants import BILL_NUMBER_PREFIX, DEFAULT_PAYMENT_METHOD, GstType, SheetName
from .core_logic import (
    MissingReferenceError,
    RuntimeContext,
    ValidationError,
    clean_text,
    get_shop_settings,
    is_blank,
    now_timestamp,
    parse_decimal,
    read_records,
    today_iso,
    write_records,
)
from .data_manager import BillRow, to_bool, to_decimal

ZERO = Decimal("0")
HUNDRED = Decimal("100")
CENT = Decimal("0.01")


@dataclass(frozen=True)
class LineItem:
    """One priced line of a bill."""

    name: str
    quantity: Decimal
    price: Decimal

    @property
    def amount(self) -> Decimal:
        return self.quantity * self.price


@dataclass(frozen=True)
class TaxConfig:
    """GST settings applied to a bill.

    ``gst_type`` is ``"intra"`` for CGST + SGST and ``"inter"`` for IGST.
    Rates are plain percentages.
    """

    enabled: bool = False
    gst_type: str = GstType.INTRA.value
    cgst_rate: Decimal = ZERO
    sgst_rate: Decimal = ZERO
    igst_rate: Decimal = ZERO


@dataclass(frozen=True)
class BillSummary:
    subtotal: Decimal
    cgst_amount: Decimal
    sgst_amount: Decimal
    igst_amount: Decimal
    total: Decimal

    def as_dict(self) -> Dict[str, Decimal]:
        return {
            "subtotal": self.subtotal,
            "cgstAmount": self.cgst_amount,
            "sgstAmount": self.sgst_amount,
            "igstAmount": self.igst_amount,
            "total": self.total,
        }


def calculate_bill_summary(items: Iterable[LineItem], tax: TaxConfig) -> BillSummary:
    """Compute subtotal, GST components and grand total.

    Lines with a quantity of zero or less do not count towards the subtotal.
    When tax is disabled, or there is nothing to tax, every tax amount is
    zero and the total equals the subtotal.

    Args:
        items (Iterable[LineItem]): Bill lines in any order.
        tax (TaxConfig): Whether GST applies, its type and its rates.

    Returns:
        BillSummary: Exact amounts, unrounded.
    """

    subtotal = sum((item.amount for item in items if item.quantity > 0), ZERO)
    if not tax.enabled or subtotal == 0:
        return BillSummary(subtotal, ZERO, ZERO, ZERO, subtotal)

    if tax.gst_type == GstType.INTRA.value:
        cgst = subtotal * tax.cgst_rate / HUNDRED
        sgst = subtotal * tax.sgst_rate / HUNDRED
        return BillSummary(subtotal, cgst, sgst, ZERO, subtotal + cgst + sgst)

    igst = subtotal * tax.igst_rate / HUNDRED
    return BillSummary(subtotal, ZERO, ZERO, igst, subtotal + igst)


def format_currency(value: Any) -> str:
    """Render an amount with exactly two decimals, rounding half up."""

    return str(to_decimal(value).quantize(CENT, rounding=ROUND_HALF_UP))


def parse_line_item(raw: Any) -> LineItem:
    """Build a :class:`LineItem` from a submitted item mapping.

    Quantity and price are read leniently; anything unparseable counts as
    zero and so drops out of the subtotal.

    Raises:
        ValidationError: If ``raw`` is not a mapping.
    """

    if not isinstance(raw, Mapping):
        raise ValidationError("Each bill item must be an object")
    return LineItem(
        name=clean_text(raw.get("name")),
        quantity=to_decimal(raw.get("quantity")),
        price=to_decimal(raw.get("price")),
    )


def build_tax_config(context: RuntimeContext, payload: Mapping[str, Any]) -> TaxConfig:
    """Read GST fields from a bill request.

    Only the rates belonging to the chosen GST type are kept; the others are
    stored as zero. A rate left blank falls back to the shop's default.

    Raises:
        ValidationError: For an unknown GST type on a taxed bill or a
            non-numeric rate.
    """

    enabled = to_bool(payload.get("gstEnabled", False))
    gst_type = clean_text(payload.get("gstType")).lower() or GstType.INTRA.value
    if not enabled:
        return TaxConfig(enabled=False, gst_type=gst_type)
    if gst_type not in {member.value for member in GstType}:
        raise ValidationError(f"Unknown GST type '{gst_type}'")

    def _rate(field: str, fallback: Decimal) -> Decimal:
        value = payload.get(field)
        return fallback if is_blank(value) else parse_decimal(value, field)

    settings = None
    if any(is_blank(payload.get(field)) for field in ("cgstRate", "sgstRate", "igstRate")):
        settings = get_shop_settings(context)

    if gst_type == GstType.INTRA.value:
        return TaxConfig(
            enabled=True,
            gst_type=gst_type,
            cgst_rate=_rate("cgstRate", settings.default_cgst_rate if settings else ZERO),
            sgst_rate=_rate("sgstRate", settings.default_sgst_rate if settings else ZERO),
        )
    return TaxConfig(
        enabled=True,
        gst_type=gst_type,
        igst_rate=_rate("igstRate", settings.default_igst_rate if settings else ZERO),
    )


def bill_number(bill_id: int) -> str:
    """Format the printed invoice number, e.g. ``BILL-000042``."""

    return f"{BILL_NUMBER_PREFIX}{bill_id:06d}"


def list_bills(context: RuntimeContext) -> List[BillRow]:
    """Return every bill with its items decoded."""

    return [data_manager.deserialize_bill(record) for record in read_records(context, SheetName.BILLS)]


def get_bill(context: RuntimeContext, bill_id: int) -> BillRow:
    for bill in list_bills(context):
        if bill.bill_id == bill_id:
            return bill
    log.warning("Bill lookup failed for id '%s'", bill_id)
    raise MissingReferenceError("Bill not found")


def create_bill(context: RuntimeContext, payload: Mapping[str, Any]) -> BillRow:
    """Compute and store a new bill.

    The totals are calculated here from the submitted items and stored once.
    They are never recomputed when the bill is read back. Product stock is
    left unchanged.

    Args:
        context (RuntimeContext): Active runtime context.
        payload (Mapping[str, Any]): Buyer fields, ``items`` and GST options.

    Returns:
        BillRow: The stored bill including ``billNumber`` and totals.

    Raises:
        ValidationError: If the buyer name or items are missing, or a field
            cannot be interpreted.
    """

    raw_items = payload.get("items")
    if is_blank(payload.get("buyerName")) or not isinstance(raw_items, list) or not raw_items:
        log.warning("Rejected bill without buyer name or items")
        raise ValidationError("Buyer name and at least one item are required")

    lines = [parse_line_item(item) for item in raw_items]
    tax = build_tax_config(context, payload)
    summary = calculate_bill_summary(lines, tax)

    bills = list_bills(context)
    new_id = data_manager.next_id(data_manager.serialize_bill(b) for b in bills)
    bill = BillRow(
        bill_id=new_id,
        bill_number=bill_number(new_id),
        buyer_name=clean_text(payload["buyerName"]),
        buyer_phone=clean_text(payload.get("buyerPhone")),
        buyer_email=clean_text(payload.get("buyerEmail")),
        buyer_address=clean_text(payload.get("buyerAddress")),
        items=[dict(item) for item in raw_items],
        gst_enabled=tax.enabled,
        gst_type=tax.gst_type,
        cgst_rate=tax.cgst_rate,
        sgst_rate=tax.sgst_rate,
        igst_rate=tax.igst_rate,
        payment_method=clean_text(payload.get("paymentMethod")) or DEFAULT_PAYMENT_METHOD,
        notes=clean_text(payload.get("notes")),
        show_signature=to_bool(payload.get("showSignature", False)),
        subtotal=summary.subtotal,
        cgst_amount=summary.cgst_amount,
        sgst_amount=summary.sgst_amount,
        igst_amount=summary.igst_amount,
        total=summary.total,
        date=today_iso(),
        created_at=now_timestamp(),
    )
    bills.append(bill)
    write_records(context, SheetName.BILLS, [data_manager.serialize_bill(b) for b in bills])
    log.info("Created bill %s for '%s' (total %s)", bill.bill_number, bill.buyer_name, format_currency(bill.total))
    return bill


def delete_bill(context: RuntimeContext, bill_id: int) -> None:
    bills = list_bills(context)
    remaining = [b for b in bills if b.bill_id != bill_id]
    if len(remaining) == len(bills):
        log.warning("Delete failed, unknown bill id '%s'", bill_id)
        raise MissingReferenceError("Bill not found")
    write_records(context, SheetName.BILLS, [data_manager.serialize_bill(b) for b in remaining])
    log.info("Deleted bill %d", bill_id)


def summarize_bill(bill: BillRow) -> Dict[str, str]:
    """Display strings for a stored bill's amounts."""

    return {
        "billNumber": bill.bill_number,
        "subtotal": format_currency(bill.subtotal),
        "cgstAmount": format_currency(bill.cgst_amount),
        "sgstAmount": format_currency(bill.sgst_amount),
        "igstAmount": format_currency(bill.igst_amount),
        "total": format_currency(bill.total),
    }
