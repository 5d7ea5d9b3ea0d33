"""Stock ledger: how invoice lines move item stock.

Purchases add each line's ``final_weight`` to stock; sales remove each line's
``weight``. Reverting an invoice (on delete, or before re-applying an edited
invoice) produces the same quantities with the opposite sign, so applying and
then reverting an invoice leaves stock unchanged.

Everything here is pure: functions return new values and never touch the
workbook. Business conditions such as a sale exceeding available stock are
reported as data (:class:`StockShortfall`) and left to the caller to reject.
"""

from __future__ import annotations

from dataclasses import dataclass, replace
from decimal import Decimal
from typing import Dict, Iterable, List, Mapping, Union

from . import log
from .constants import StockDirection
from .data_manager import ItemRow, PurchaseInvoiceRow, SalesInvoiceRow, to_decimal

Invoice = Union[SalesInvoiceRow, PurchaseInvoiceRow]


@dataclass(frozen=True)
class StockDelta:
    """Signed quantity to add to one item's stock."""

    item_id: str
    quantity: Decimal


@dataclass(frozen=True)
class StockShortfall:
    """An item whose stock cannot cover the quantity a sale removes."""

    item_id: str
    required: Decimal
    available: Decimal


def invoice_stock_delta(invoice: Invoice, direction: StockDirection) -> List[StockDelta]:
    """Compute one stock delta per invoice line, in line order.

    Args:
        invoice (SalesInvoiceRow | PurchaseInvoiceRow): Invoice whose lines
            drive the stock movement.
        direction (StockDirection): ``APPLY`` when the invoice is created or
            re-saved, ``REVERT`` when it is deleted or about to be edited.

    Returns:
        list[StockDelta]: Purchase lines yield ``+final_weight`` on apply and
            sales lines yield ``-weight``; revert flips the sign.

    Raises:
        TypeError: If ``invoice`` is neither a sales nor a purchase invoice.
    """

    sign = Decimal("1") if StockDirection(direction) is StockDirection.APPLY else Decimal("-1")
    if isinstance(invoice, PurchaseInvoiceRow):
        return [
            StockDelta(line.item_id, sign * to_decimal(line.final_weight, field="final_weight"))
            for line in invoice.lines
        ]
    if isinstance(invoice, SalesInvoiceRow):
        return [
            StockDelta(line.item_id, -sign * to_decimal(line.weight, field="weight"))
            for line in invoice.lines
        ]
    raise TypeError(f"Unsupported invoice type: {type(invoice).__name__}")


def apply_stock_delta(item: ItemRow, delta_quantity: Decimal) -> ItemRow:
    """Return a copy of ``item`` with ``delta_quantity`` added to its stock.

    No floor is applied; the result may be negative.
    """

    return replace(item, stock=to_decimal(item.stock, field="stock") + to_decimal(delta_quantity, field="delta"))


def merge_stock_deltas(deltas: Iterable[StockDelta]) -> List[StockDelta]:
    """Sum deltas per item, keeping the order in which items first appear."""

    totals: Dict[str, Decimal] = {}
    for delta in deltas:
        totals[delta.item_id] = totals.get(delta.item_id, Decimal("0")) + delta.quantity
    return [StockDelta(item_id, quantity) for item_id, quantity in totals.items()]


def find_stock_shortfalls(items: Mapping[str, ItemRow], deltas: Iterable[StockDelta]) -> List[StockShortfall]:
    """Report items whose stock cannot absorb the net negative deltas.

    Deltas are merged per item first, so two lines of the same item are
    checked against their combined quantity, and a revert delta for the same
    item (when editing an invoice) offsets the new deduction. An item is short
    when ``stock < required``; stock exactly equal to the requirement passes.

    Args:
        items (Mapping[str, ItemRow]): Current items keyed by id.
        deltas (Iterable[StockDelta]): Deltas about to be applied.

    Returns:
        list[StockShortfall]: Empty when every deduction is covered. Items
            missing from ``items`` are skipped with a warning.
    """

    shortfalls: List[StockShortfall] = []
    for delta in merge_stock_deltas(deltas):
        if delta.quantity >= 0:
            continue
        item = items.get(delta.item_id)
        if item is None:
            log.warning("Stock check skipped unknown item '%s'", delta.item_id)
            continue
        required = -delta.quantity
        available = to_decimal(item.stock, field="stock")
        if available < required:
            shortfalls.append(StockShortfall(delta.item_id, required, available))
    return shortfalls
