"""Tests for the pure stock ledger helpers."""

from __future__ import annotations

import logging
from decimal import Decimal

import pytest

from conftest import make_item, make_purchase_invoice, make_sales_invoice
from farm_ledger import data_manager, stock
from farm_ledger.constants import StockDirection


def _sales_line(item_id: str, weight: str, rate: str = "10") -> data_manager.SalesLineRow:
    return data_manager.SalesLineRow(
        item_id=item_id,
        item_name=f"Item {item_id}",
        weight=Decimal(weight),
        rate=Decimal(rate),
        amount=Decimal(weight) * Decimal(rate),
    )


def _purchase_line(item_id: str, final_weight: str) -> data_manager.PurchaseLineRow:
    return data_manager.PurchaseLineRow(
        item_id=item_id,
        item_name=f"Item {item_id}",
        gross_weight=Decimal(final_weight),
        tare_weight=Decimal("0"),
        mud_deduction_percent=Decimal("0"),
        net_weight=Decimal(final_weight),
        final_weight=Decimal(final_weight),
        rate=Decimal("10"),
        amount=Decimal(final_weight) * 10,
    )


def _sale(*lines: data_manager.SalesLineRow) -> data_manager.SalesInvoiceRow:
    total = sum((line.amount for line in lines), Decimal("0"))
    return make_sales_invoice("S-20250615-001", "F001", total=total, lines=lines)


def _purchase(*lines: data_manager.PurchaseLineRow) -> data_manager.PurchaseInvoiceRow:
    total = sum((line.amount for line in lines), Decimal("0"))
    return make_purchase_invoice("P-20250615-001", "F001", total=total, lines=lines)


def test_purchase_apply_adds_final_weight() -> None:
    invoice = _purchase(_purchase_line("I001", "45.5"), _purchase_line("I002", "10"))

    deltas = stock.invoice_stock_delta(invoice, StockDirection.APPLY)

    assert deltas == [
        stock.StockDelta("I001", Decimal("45.5")),
        stock.StockDelta("I002", Decimal("10")),
    ]


def test_sale_apply_removes_weight_and_revert_restores_it() -> None:
    invoice = _sale(_sales_line("I001", "20"))

    applied = stock.invoice_stock_delta(invoice, StockDirection.APPLY)
    reverted = stock.invoice_stock_delta(invoice, StockDirection.REVERT)

    assert applied == [stock.StockDelta("I001", Decimal("-20"))]
    assert reverted == [stock.StockDelta("I001", Decimal("20"))]


def test_direction_accepts_plain_string() -> None:
    invoice = _purchase(_purchase_line("I001", "5"))

    assert stock.invoice_stock_delta(invoice, "revert") == [stock.StockDelta("I001", Decimal("-5"))]


@pytest.mark.parametrize(
    "invoice",
    [
        _sale(_sales_line("I001", "20"), _sales_line("I002", "3.25")),
        _purchase(_purchase_line("I001", "12.5")),
    ],
)
def test_apply_then_revert_leaves_stock_unchanged(invoice) -> None:
    item = make_item("I001", stock="50")

    for delta in stock.invoice_stock_delta(invoice, StockDirection.APPLY):
        if delta.item_id == item.item_id:
            item = stock.apply_stock_delta(item, delta.quantity)
    for delta in stock.invoice_stock_delta(invoice, StockDirection.REVERT):
        if delta.item_id == item.item_id:
            item = stock.apply_stock_delta(item, delta.quantity)

    assert item.stock == Decimal("50")


def test_invoice_stock_delta_rejects_other_records() -> None:
    with pytest.raises(TypeError):
        stock.invoice_stock_delta(make_item("I001"), StockDirection.APPLY)


def test_apply_stock_delta_returns_new_item_and_allows_negative() -> None:
    item = make_item("I001", stock="5")

    updated = stock.apply_stock_delta(item, Decimal("-8"))

    assert updated.stock == Decimal("-3")
    assert item.stock == Decimal("5")
    assert updated.item_name == item.item_name


def test_sale_within_stock_then_oversell_reports_shortfall() -> None:
    items = {"I001": make_item("I001", stock="50")}
    first_sale = _sale(_sales_line("I001", "20"))

    assert stock.find_stock_shortfalls(items, stock.invoice_stock_delta(first_sale, StockDirection.APPLY)) == []
    items["I001"] = stock.apply_stock_delta(items["I001"], Decimal("-20"))
    assert items["I001"].stock == Decimal("30")

    second_sale = _sale(_sales_line("I001", "40"))
    shortfalls = stock.find_stock_shortfalls(items, stock.invoice_stock_delta(second_sale, StockDirection.APPLY))

    assert shortfalls == [stock.StockShortfall("I001", Decimal("40"), Decimal("30"))]


def test_exact_stock_is_not_a_shortfall() -> None:
    items = {"I001": make_item("I001", stock="30")}
    sale = _sale(_sales_line("I001", "30"))

    assert stock.find_stock_shortfalls(items, stock.invoice_stock_delta(sale, StockDirection.APPLY)) == []


def test_lines_of_same_item_are_checked_together() -> None:
    items = {"I001": make_item("I001", stock="30")}
    sale = _sale(_sales_line("I001", "20"), _sales_line("I001", "15"))

    shortfalls = stock.find_stock_shortfalls(items, stock.invoice_stock_delta(sale, StockDirection.APPLY))

    assert shortfalls == [stock.StockShortfall("I001", Decimal("35"), Decimal("30"))]


def test_revert_of_edited_invoice_offsets_new_deduction() -> None:
    # 20 already sold from an original 50; editing that sale up to 45 needs 25 more.
    items = {"I001": make_item("I001", stock="30")}
    original = _sale(_sales_line("I001", "20"))
    edited = _sale(_sales_line("I001", "45"))

    deltas = stock.invoice_stock_delta(original, StockDirection.REVERT) + stock.invoice_stock_delta(
        edited, StockDirection.APPLY
    )

    assert stock.find_stock_shortfalls(items, deltas) == []

    too_much = _sale(_sales_line("I001", "60"))
    deltas = stock.invoice_stock_delta(original, StockDirection.REVERT) + stock.invoice_stock_delta(
        too_much, StockDirection.APPLY
    )
    assert stock.find_stock_shortfalls(items, deltas) == [
        stock.StockShortfall("I001", Decimal("40"), Decimal("30"))
    ]


def test_unknown_item_is_skipped_with_warning(caplog: pytest.LogCaptureFixture) -> None:
    sale = _sale(_sales_line("I999", "5"))

    with caplog.at_level(logging.WARNING, logger="farm_ledger"):
        shortfalls = stock.find_stock_shortfalls({}, stock.invoice_stock_delta(sale, StockDirection.APPLY))

    assert shortfalls == []
    assert "I999" in caplog.text


def test_merge_keeps_first_appearance_order() -> None:
    merged = stock.merge_stock_deltas(
        [
            stock.StockDelta("I002", Decimal("1")),
            stock.StockDelta("I001", Decimal("2")),
            stock.StockDelta("I002", Decimal("-4")),
        ]
    )

    assert merged == [stock.StockDelta("I002", Decimal("-3")), stock.StockDelta("I001", Decimal("2"))]
