"""Tests for the GST calculator and the bill service."""

from __future__ import annotations

import itertools
from datetime import UTC, datetime
from decimal import Decimal

import pytest

from shop_ledger import billing, core_logic, data_manager
from shop_ledger.billing import LineItem, TaxConfig
from shop_ledger.constants import SheetName


def _items(*pairs):
    return [LineItem(name=f"item-{index}", quantity=Decimal(q), price=Decimal(p)) for index, (q, p) in enumerate(pairs)]


INTRA_9_9 = TaxConfig(enabled=True, gst_type="intra", cgst_rate=Decimal("9"), sgst_rate=Decimal("9"))
INTER_18 = TaxConfig(enabled=True, gst_type="inter", igst_rate=Decimal("18"))


# ---------------------------------------------------------------------------
# Calculator
# ---------------------------------------------------------------------------


def test_intra_state_bill_scenario():
    summary = billing.calculate_bill_summary(_items(("2", "100"), ("1", "50")), INTRA_9_9)

    assert summary.subtotal == Decimal("250")
    assert summary.cgst_amount == Decimal("22.5")
    assert summary.sgst_amount == Decimal("22.5")
    assert summary.igst_amount == 0
    assert summary.total == Decimal("295")


def test_subtotal_is_independent_of_item_order():
    items = _items(("3", "19.99"), ("1", "250"), ("0", "75"), ("2", "0.5"))
    subtotals = {
        billing.calculate_bill_summary(list(order), TaxConfig()).subtotal
        for order in itertools.permutations(items)
    }
    assert subtotals == {Decimal("3") * Decimal("19.99") + Decimal("250") + Decimal("1.0")}


def test_non_positive_quantities_are_excluded():
    summary = billing.calculate_bill_summary(_items(("0", "500"), ("-2", "40"), ("1", "10")), TaxConfig())
    assert summary.subtotal == Decimal("10")


def test_disabled_tax_means_total_equals_subtotal():
    tax = TaxConfig(enabled=False, gst_type="intra", cgst_rate=Decimal("9"), sgst_rate=Decimal("9"))
    summary = billing.calculate_bill_summary(_items(("2", "100")), tax)

    assert (summary.cgst_amount, summary.sgst_amount, summary.igst_amount) == (0, 0, 0)
    assert summary.total == summary.subtotal == Decimal("200")


def test_inter_state_bill_uses_igst_only():
    summary = billing.calculate_bill_summary(_items(("1", "1000")), INTER_18)

    assert summary.cgst_amount == 0
    assert summary.sgst_amount == 0
    assert summary.igst_amount == Decimal("180")
    assert summary.total == summary.subtotal + summary.igst_amount


def test_zero_subtotal_skips_tax():
    summary = billing.calculate_bill_summary(_items(("0", "100")), INTRA_9_9)
    assert summary.as_dict() == {
        "subtotal": 0,
        "cgstAmount": 0,
        "sgstAmount": 0,
        "igstAmount": 0,
        "total": 0,
    }


def test_amounts_are_not_rounded():
    summary = billing.calculate_bill_summary(_items(("1", "33.33")), INTER_18)
    assert summary.igst_amount == Decimal("5.9994")


@pytest.mark.parametrize(
    ("value", "expected"),
    [
        (Decimal("22.5"), "22.50"),
        (Decimal("0.125"), "0.13"),
        (295, "295.00"),
        ("12.344", "12.34"),
        ("abc", "0.00"),
    ],
)
def test_format_currency(value, expected):
    assert billing.format_currency(value) == expected


def test_bill_number_is_zero_padded():
    assert billing.bill_number(1) == "BILL-000001"
    assert billing.bill_number(42) == "BILL-000042"


def test_parse_line_item_is_lenient_about_numbers():
    line = billing.parse_line_item({"name": " Cable ", "quantity": "two", "price": "15"})
    assert line == LineItem(name="Cable", quantity=Decimal("0"), price=Decimal("15"))


def test_parse_line_item_rejects_non_mapping():
    with pytest.raises(core_logic.ValidationError):
        billing.parse_line_item(["Cable", 1, 15])


# ---------------------------------------------------------------------------
# Bill service
# ---------------------------------------------------------------------------


def _bill_payload(**overrides):
    payload = {
        "buyerName": " Asha ",
        "buyerPhone": "9876543210",
        "items": [
            {"id": 1, "type": "product", "name": "Charger", "quantity": 2, "price": 100},
            {"id": 4, "type": "service", "name": "Screen fix", "quantity": 1, "price": 50},
        ],
        "gstEnabled": True,
        "gstType": "intra",
        "cgstRate": 9,
        "sgstRate": 9,
        "igstRate": 18,
    }
    payload.update(overrides)
    return payload


def test_create_bill_stores_computed_totals(context, set_fixed_datetime):
    set_fixed_datetime(datetime(2026, 10, 19, 11, 45, 0, tzinfo=UTC))

    bill = billing.create_bill(context, _bill_payload())

    assert bill.bill_id == 1
    assert bill.bill_number == "BILL-000001"
    assert bill.buyer_name == "Asha"
    assert bill.total == Decimal("295")
    assert bill.igst_rate == 0
    assert bill.payment_method == "Cash"
    assert bill.date == "2026-10-19"
    assert bill.created_at == "2026-10-19T11:45:00.000Z"

    stored = billing.get_bill(context, 1)
    assert stored.subtotal == Decimal("250")
    assert stored.cgst_amount == Decimal("22.5")
    assert stored.sgst_amount == Decimal("22.5")
    assert stored.total == Decimal("295")
    assert [item["name"] for item in stored.items] == ["Charger", "Screen fix"]
    assert stored.gst_enabled is True


def test_items_are_persisted_as_json_text(context):
    billing.create_bill(context, _bill_payload())
    raw = data_manager.read_sheet(context.data_file, SheetName.BILLS)[0]
    assert isinstance(raw["items"], str)
    assert raw["items"].startswith("[")


def test_bill_ids_increase(context):
    billing.create_bill(context, _bill_payload())
    second = billing.create_bill(context, _bill_payload(buyerName="Ravi"))
    assert second.bill_number == "BILL-000002"
    assert [bill.buyer_name for bill in billing.list_bills(context)] == ["Asha", "Ravi"]


@pytest.mark.parametrize(
    "overrides",
    [{"buyerName": ""}, {"buyerName": None}, {"items": []}, {"items": None}],
)
def test_create_bill_requires_buyer_and_items(context, overrides):
    with pytest.raises(core_logic.ValidationError, match="Buyer name and at least one item are required"):
        billing.create_bill(context, _bill_payload(**overrides))
    assert billing.list_bills(context) == []


def test_inter_state_bill_keeps_only_igst_rate(context):
    bill = billing.create_bill(context, _bill_payload(gstType="inter"))
    assert (bill.cgst_rate, bill.sgst_rate, bill.igst_rate) == (0, 0, Decimal("18"))
    assert bill.igst_amount == Decimal("45")
    assert bill.total == Decimal("295")


def test_missing_rates_fall_back_to_shop_defaults(context):
    bill = billing.create_bill(context, _bill_payload(cgstRate=None, sgstRate=""))
    assert bill.cgst_rate == Decimal("9")
    assert bill.sgst_rate == Decimal("9")
    assert bill.total == Decimal("295")


def test_untaxed_bill_stores_zero_rates(context):
    bill = billing.create_bill(context, _bill_payload(gstEnabled=False))
    assert (bill.cgst_rate, bill.sgst_rate, bill.igst_rate) == (0, 0, 0)
    assert bill.total == bill.subtotal == Decimal("250")


def test_unknown_gst_type_is_rejected(context):
    with pytest.raises(core_logic.ValidationError):
        billing.create_bill(context, _bill_payload(gstType="export"))


def test_gst_type_is_not_checked_on_untaxed_bills(context):
    bill = billing.create_bill(context, _bill_payload(gstEnabled=False, gstType="export"))
    assert bill.gst_type == "export"
    assert bill.total == Decimal("250")


def test_creating_a_bill_leaves_stock_alone(context):
    core_logic.create_product(
        context,
        {"name": "Charger", "category": "Accessories", "quantity": 5, "buyPrice": 60, "sellPrice": 100},
    )
    billing.create_bill(context, _bill_payload())
    assert core_logic.get_product(context, 1).quantity == 5


def test_delete_unknown_bill_is_not_found_and_keeps_sheet(context):
    billing.create_bill(context, _bill_payload())
    before = data_manager.read_sheet(context.data_file, SheetName.BILLS)

    with pytest.raises(core_logic.MissingReferenceError, match="Bill not found"):
        billing.delete_bill(context, 99)

    assert data_manager.read_sheet(context.data_file, SheetName.BILLS) == before


def test_delete_bill(context):
    billing.create_bill(context, _bill_payload())
    billing.delete_bill(context, 1)
    with pytest.raises(core_logic.MissingReferenceError):
        billing.get_bill(context, 1)


def test_summarize_bill_formats_amounts(context):
    bill = billing.create_bill(context, _bill_payload())
    assert billing.summarize_bill(bill) == {
        "billNumber": "BILL-000001",
        "subtotal": "250.00",
        "cgstAmount": "22.50",
        "sgstAmount": "22.50",
        "igstAmount": "0.00",
        "total": "295.00",
    }
