"""Ledger engine: read-side aggregation over farmer activity.

Every function in this module is a pure transform over record collections that
are already in memory. Nothing here reads or writes the workbook, so callers
may recompute as often as they like.

Sign convention for farmer balances: positive means the farmer owes the
business, negative means the business owes the farmer. Sales raise the
balance, purchases lower it, a ``Payment In`` (farmer paid us) lowers it and a
``Payment Out`` (we paid the farmer) raises it. Invoices contribute their
``total_amount - advance``.

Farmer and item references inside invoices and transactions are soft: a record
pointing at an id that is not in the lookup collection is skipped and logged,
never raised.
"""

from __future__ import annotations

from dataclasses import dataclass
from datetime import date, datetime, time
from decimal import ROUND_HALF_UP, Decimal
from typing import Any, Callable, Dict, Iterable, List, Mapping, Optional, Sequence, Tuple, TypeVar, Union

from . import log
from .constants import CashTransactionType, PaymentMethod, ReservedExpenseType, StatementKind
from .data_manager import (
    CashTransactionRow,
    ExpenseRow,
    FarmerRow,
    ItemRow,
    PurchaseInvoiceRow,
    SalesInvoiceRow,
    parse_date,
    parse_time,
    to_decimal,
)

T = TypeVar("T")

ZERO = Decimal("0")
CENT = Decimal("0.01")
# Purchased raw kilograms per kilogram of manufactured product.
MANUFACTURING_YIELD_DIVISOR = Decimal("4")
TOP_ITEMS_LIMIT = 5

# Tie-break order for entries sharing the same date and time.
_KIND_RANK = {
    StatementKind.SALE: 0,
    StatementKind.PURCHASE: 1,
    StatementKind.PAYMENT_IN: 2,
    StatementKind.PAYMENT_OUT: 2,
}


@dataclass(frozen=True)
class DateRange:
    """Inclusive date window; an open ``end`` means "up to today"."""

    start: date
    end: Optional[date] = None

    def contains(self, day: date, *, today: Optional[date] = None) -> bool:
        end = self.end if self.end is not None else (today or date.today())
        return self.start <= day <= end


@dataclass(frozen=True)
class StatementEntry:
    """One line of a farmer statement."""

    entry_date: date
    entry_time: time
    kind: StatementKind
    reference: str
    description: str
    debit: Decimal
    credit: Decimal
    running_balance: Decimal


@dataclass(frozen=True)
class CashFlowSummary:
    """Company-level cash position derived from expense entries."""

    cash_in_hand: Decimal
    total_cash_in_from_external: Decimal
    total_cash_out_to_external: Decimal
    total_operating_expenses: Decimal


@dataclass(frozen=True)
class ItemMovement:
    """Quantities bought and sold for one item within a window."""

    item_id: str
    item_name: str
    total_sales_kg: Decimal
    total_purchases_kg: Decimal
    net_movement_kg: Decimal
    closing_stock_kg: Decimal


@dataclass(frozen=True)
class DailySummary:
    """Totals of all farmer activity on a single day."""

    day: date
    sales_count: int
    total_sales_amount: Decimal
    purchase_count: int
    total_purchase_amount: Decimal
    total_payments_in: Decimal
    total_payments_out: Decimal
    net_cash_movement: Decimal


@dataclass(frozen=True)
class ConsolidatedEntry:
    """One row of the all-farmers transaction register."""

    entry_date: date
    entry_time: time
    kind: StatementKind
    reference: str
    farmer_name: str
    amount: Decimal
    method: Optional[str]
    details: str


@dataclass(frozen=True)
class PaymentTotals:
    """Sum of farmer payments in each direction."""

    total_in: Decimal
    total_out: Decimal
    net: Decimal


@dataclass(frozen=True)
class ManufacturingRates:
    """Per-kilogram labour and freight rates for a manufacturing run.

    Plant and khakhora labour are paid per purchased kilogram; loading and
    freight per manufactured kilogram.
    """

    plant_labour: Decimal = ZERO
    khakhora_labour: Decimal = ZERO
    loading_labour: Decimal = ZERO
    freight: Decimal = ZERO


@dataclass(frozen=True)
class ManufacturingExpenses:
    """Cost of turning purchased stock into manufactured product."""

    total_purchase_kg: Decimal
    manufactured_kg: Decimal
    plant_labour_cost: Decimal
    khakhora_labour_cost: Decimal
    loading_labour_cost: Decimal
    freight_cost: Decimal
    total_expense: Decimal


@dataclass(frozen=True)
class TopItems:
    """Items ranked by kilograms sold and by kilograms purchased."""

    most_sold: List[ItemMovement]
    most_purchased: List[ItemMovement]


# ---------------------------------------------------------------------------
# Helpers
# ---------------------------------------------------------------------------


def _require_collection(name: str, value: Any) -> Sequence[Any]:
    """Reject non-collection arguments and return a list snapshot."""

    if value is None or isinstance(value, (str, bytes, Mapping)) or not isinstance(value, Iterable):
        raise TypeError(f"{name} must be a collection of records, got {type(value).__name__}")
    return list(value)


def _invoice_net(invoice: Union[SalesInvoiceRow, PurchaseInvoiceRow]) -> Decimal:
    return to_decimal(invoice.total_amount, field="total_amount") - to_decimal(invoice.advance, field="advance")


def _cash_kind(transaction: CashTransactionRow) -> Optional[StatementKind]:
    if transaction.transaction_type == CashTransactionType.PAYMENT_IN:
        return StatementKind.PAYMENT_IN
    if transaction.transaction_type == CashTransactionType.PAYMENT_OUT:
        return StatementKind.PAYMENT_OUT
    log.warning(
        "Ignoring cash transaction '%s' with unknown type '%s'",
        transaction.transaction_id,
        transaction.transaction_type,
    )
    return None


def _sales_when(invoice: SalesInvoiceRow) -> Tuple[date, time]:
    return parse_date(invoice.invoice_date), parse_time(invoice.invoice_time)


def _purchase_when(invoice: PurchaseInvoiceRow) -> Tuple[date, time]:
    return parse_date(invoice.purchase_date), parse_time(invoice.purchase_time)


def _cash_when(transaction: CashTransactionRow) -> Tuple[date, time]:
    return parse_date(transaction.txn_date), parse_time(transaction.txn_time)


def _sort_key(when: Tuple[date, time], kind: StatementKind, sequence: int) -> Tuple[datetime, int, int]:
    return datetime.combine(when[0], when[1]), _KIND_RANK[kind], sequence


def _describe_sales(invoice: SalesInvoiceRow) -> str:
    return ", ".join(f"{line.item_name} ({format_money(line.weight)} KG)" for line in invoice.lines)


def _describe_purchase(invoice: PurchaseInvoiceRow) -> str:
    return ", ".join(f"{line.item_name} ({format_money(line.final_weight)} KG)" for line in invoice.lines)


def format_money(value: Any) -> str:
    """Render an amount with exactly two decimal places, rounding half up."""

    return f"{to_decimal(value).quantize(CENT, rounding=ROUND_HALF_UP):f}"


def filter_by_date_range(
    records: Iterable[T],
    date_range: Optional[DateRange],
    *,
    date_of: Callable[[T], date],
    today: Optional[date] = None,
) -> List[T]:
    """Keep records whose date falls inside ``date_range`` (all when ``None``)."""

    if date_range is None:
        return list(records)
    return [record for record in records if date_range.contains(parse_date(date_of(record)), today=today)]


# ---------------------------------------------------------------------------
# Farmer balances and statements
# ---------------------------------------------------------------------------


def compute_farmer_balances(
    farmers: Iterable[FarmerRow],
    sales_invoices: Iterable[SalesInvoiceRow],
    purchase_invoices: Iterable[PurchaseInvoiceRow],
    cash_transactions: Iterable[CashTransactionRow],
) -> Dict[str, Decimal]:
    """Compute the signed due balance of every farmer.

    Every farmer in ``farmers`` receives an entry, including those with no
    activity (balance ``0``), so callers can tell "no activity" from "unknown
    farmer". Invoices and transactions whose farmer id is not in ``farmers``
    are skipped and logged. Numeric fields pass through
    :func:`~farm_ledger.data_manager.to_decimal`, so string-encoded amounts
    are accepted. Inputs are never mutated.

    Args:
        farmers: Farmers to report on.
        sales_invoices: Sales invoices; each adds ``total - advance``.
        purchase_invoices: Purchase invoices; each subtracts ``total - advance``.
        cash_transactions: ``Payment In`` subtracts ``amount``; ``Payment Out``
            adds it.

    Returns:
        dict[str, Decimal]: Balance per farmer id, in the order of ``farmers``.

    Raises:
        TypeError: If any argument is not a collection of records.
    """

    farmers = _require_collection("farmers", farmers)
    sales_invoices = _require_collection("sales_invoices", sales_invoices)
    purchase_invoices = _require_collection("purchase_invoices", purchase_invoices)
    cash_transactions = _require_collection("cash_transactions", cash_transactions)

    balances: Dict[str, Decimal] = {farmer.farmer_id: ZERO for farmer in farmers}

    for invoice in sales_invoices:
        farmer_id = invoice.farmer.farmer_id
        if farmer_id not in balances:
            log.warning("Sales invoice '%s' references unknown farmer '%s'", invoice.invoice_no, farmer_id)
            continue
        balances[farmer_id] += _invoice_net(invoice)

    for invoice in purchase_invoices:
        farmer_id = invoice.farmer.farmer_id
        if farmer_id not in balances:
            log.warning("Purchase invoice '%s' references unknown farmer '%s'", invoice.purchase_no, farmer_id)
            continue
        balances[farmer_id] -= _invoice_net(invoice)

    for transaction in cash_transactions:
        if transaction.farmer_id not in balances:
            log.warning(
                "Cash transaction '%s' references unknown farmer '%s'",
                transaction.transaction_id,
                transaction.farmer_id,
            )
            continue
        kind = _cash_kind(transaction)
        amount = to_decimal(transaction.amount, field="amount")
        if kind is StatementKind.PAYMENT_IN:
            balances[transaction.farmer_id] -= amount
        elif kind is StatementKind.PAYMENT_OUT:
            balances[transaction.farmer_id] += amount

    log.debug("Computed balances for %d farmers", len(balances))
    return balances


def build_statement(
    farmer_id: str,
    sales_invoices: Iterable[SalesInvoiceRow],
    purchase_invoices: Iterable[PurchaseInvoiceRow],
    cash_transactions: Iterable[CashTransactionRow],
    date_range: Optional[DateRange] = None,
    *,
    today: Optional[date] = None,
) -> List[StatementEntry]:
    """Build a chronological statement with a running balance for one farmer.

    Sales are debits of ``total - advance``, purchases are credits of
    ``total - advance``, a ``Payment Out`` is a debit and a ``Payment In`` a
    credit. When ``date_range`` is given only entries dated inside it
    (inclusive) are kept. Entries are ordered by date and time; entries with
    the same timestamp are ordered sales, purchases, then cash, and by
    position in their source collection within each kind. The running balance
    accumulates ``debit - credit``, so the last entry's balance equals
    :func:`compute_farmer_balances` for the same filtered inputs.

    Args:
        farmer_id (str): Farmer the statement is for.
        sales_invoices: All sales invoices (filtered here by farmer).
        purchase_invoices: All purchase invoices.
        cash_transactions: All cash/bank transactions.
        date_range (DateRange | None): Optional inclusive window.
        today (date | None): Override for the open end of ``date_range``.

    Returns:
        list[StatementEntry]: Ordered statement lines; empty when the farmer
            has no activity in range.

    Raises:
        TypeError: If a collection argument is not a collection.
    """

    sales_invoices = _require_collection("sales_invoices", sales_invoices)
    purchase_invoices = _require_collection("purchase_invoices", purchase_invoices)
    cash_transactions = _require_collection("cash_transactions", cash_transactions)

    pending: List[Tuple[Tuple[datetime, int, int], date, time, StatementKind, str, str, Decimal, Decimal]] = []

    for sequence, invoice in enumerate(sales_invoices):
        if invoice.farmer.farmer_id != farmer_id:
            continue
        when = _sales_when(invoice)
        if date_range is not None and not date_range.contains(when[0], today=today):
            continue
        pending.append((
            _sort_key(when, StatementKind.SALE, sequence),
            when[0],
            when[1],
            StatementKind.SALE,
            invoice.invoice_no,
            _describe_sales(invoice),
            _invoice_net(invoice),
            ZERO,
        ))

    for sequence, invoice in enumerate(purchase_invoices):
        if invoice.farmer.farmer_id != farmer_id:
            continue
        when = _purchase_when(invoice)
        if date_range is not None and not date_range.contains(when[0], today=today):
            continue
        pending.append((
            _sort_key(when, StatementKind.PURCHASE, sequence),
            when[0],
            when[1],
            StatementKind.PURCHASE,
            invoice.purchase_no,
            _describe_purchase(invoice),
            ZERO,
            _invoice_net(invoice),
        ))

    for sequence, transaction in enumerate(cash_transactions):
        if transaction.farmer_id != farmer_id:
            continue
        kind = _cash_kind(transaction)
        if kind is None:
            continue
        when = _cash_when(transaction)
        if date_range is not None and not date_range.contains(when[0], today=today):
            continue
        amount = to_decimal(transaction.amount, field="amount")
        debit = amount if kind is StatementKind.PAYMENT_OUT else ZERO
        credit = amount if kind is StatementKind.PAYMENT_IN else ZERO
        description = transaction.remarks or f"{transaction.payment_method} payment"
        pending.append((
            _sort_key(when, kind, sequence),
            when[0],
            when[1],
            kind,
            transaction.transaction_id,
            description,
            debit,
            credit,
        ))

    pending.sort(key=lambda row: row[0])

    statement: List[StatementEntry] = []
    running = ZERO
    for _, entry_date, entry_time, kind, reference, description, debit, credit in pending:
        running += debit - credit
        statement.append(
            StatementEntry(
                entry_date=entry_date,
                entry_time=entry_time,
                kind=kind,
                reference=reference,
                description=description,
                debit=debit,
                credit=credit,
                running_balance=running,
            )
        )
    return statement


def net_business_balance(balances: Mapping[str, Decimal]) -> Decimal:
    """Sum of all farmer balances; positive means farmers owe the business."""

    return sum(balances.values(), ZERO)


def summarize_payments(cash_transactions: Iterable[CashTransactionRow]) -> PaymentTotals:
    """Total farmer payments received and made."""

    total_in = ZERO
    total_out = ZERO
    for transaction in _require_collection("cash_transactions", cash_transactions):
        kind = _cash_kind(transaction)
        if kind is StatementKind.PAYMENT_IN:
            total_in += to_decimal(transaction.amount, field="amount")
        elif kind is StatementKind.PAYMENT_OUT:
            total_out += to_decimal(transaction.amount, field="amount")
    return PaymentTotals(total_in=total_in, total_out=total_out, net=total_in - total_out)


# ---------------------------------------------------------------------------
# Company cash flow
# ---------------------------------------------------------------------------


def compute_cash_flow(expenses: Iterable[ExpenseRow]) -> CashFlowSummary:
    """Aggregate company-level expense entries into a cash position.

    ``Cash In (Bank/Home)`` entries bring cash in from outside the business,
    ``Cash Out (Bank/Home)`` entries take it out. Every other entry is an
    operating expense; it reduces cash in hand only when paid in ``Cash``,
    because bank-paid expenses do not touch the physical cash tracked here.

    Raises:
        TypeError: If ``expenses`` is not a collection.
    """

    cash_in_hand = ZERO
    cash_in = ZERO
    cash_out = ZERO
    operating = ZERO
    for expense in _require_collection("expenses", expenses):
        amount = to_decimal(expense.amount, field="amount")
        if expense.expense_type == ReservedExpenseType.CASH_IN:
            cash_in_hand += amount
            cash_in += amount
        elif expense.expense_type == ReservedExpenseType.CASH_OUT:
            cash_in_hand -= amount
            cash_out += amount
        else:
            operating += amount
            if expense.payment_method == PaymentMethod.CASH:
                cash_in_hand -= amount
    return CashFlowSummary(
        cash_in_hand=cash_in_hand,
        total_cash_in_from_external=cash_in,
        total_cash_out_to_external=cash_out,
        total_operating_expenses=operating,
    )


# ---------------------------------------------------------------------------
# Invoice invariants
# ---------------------------------------------------------------------------


def invoice_is_consistent(invoice: Union[SalesInvoiceRow, PurchaseInvoiceRow]) -> bool:
    """Check the arithmetic invariants of an invoice.

    ``due == total_amount - advance``, ``total_amount == sum(line.amount)``,
    and each line's amount matches its own weights and rate
    (``weight * rate`` for sales; ``net = gross - tare``,
    ``final = net * (1 - mud / 100)``, ``amount = final * rate`` for
    purchases).
    """

    total = to_decimal(invoice.total_amount)
    if to_decimal(invoice.due) != total - to_decimal(invoice.advance):
        return False
    if total != sum((to_decimal(line.amount) for line in invoice.lines), ZERO):
        return False

    if isinstance(invoice, SalesInvoiceRow):
        return all(
            to_decimal(line.amount) == to_decimal(line.weight) * to_decimal(line.rate) for line in invoice.lines
        )

    for line in invoice.lines:
        net = to_decimal(line.gross_weight) - to_decimal(line.tare_weight)
        final = net * (1 - to_decimal(line.mud_deduction_percent) / 100)
        if to_decimal(line.net_weight) != net or to_decimal(line.final_weight) != final:
            return False
        if to_decimal(line.amount) != final * to_decimal(line.rate):
            return False
    return True


# ---------------------------------------------------------------------------
# Reports
# ---------------------------------------------------------------------------


def summarize_item_movement(
    items: Iterable[ItemRow],
    sales_invoices: Iterable[SalesInvoiceRow],
    purchase_invoices: Iterable[PurchaseInvoiceRow],
    date_range: Optional[DateRange] = None,
    *,
    today: Optional[date] = None,
) -> List[ItemMovement]:
    """Summarize kilograms sold and bought per item within ``date_range``.

    ``closing_stock_kg`` is the item's current stock, not its stock at the
    end of the window. Lines for items not in ``items`` are ignored.
    """

    items = _require_collection("items", items)
    sold: Dict[str, Decimal] = {item.item_id: ZERO for item in items}
    bought: Dict[str, Decimal] = {item.item_id: ZERO for item in items}

    for invoice in filter_by_date_range(
        _require_collection("sales_invoices", sales_invoices), date_range, date_of=lambda inv: inv.invoice_date, today=today
    ):
        for line in invoice.lines:
            if line.item_id in sold:
                sold[line.item_id] += to_decimal(line.weight, field="weight")

    for invoice in filter_by_date_range(
        _require_collection("purchase_invoices", purchase_invoices), date_range, date_of=lambda inv: inv.purchase_date, today=today
    ):
        for line in invoice.lines:
            if line.item_id in bought:
                bought[line.item_id] += to_decimal(line.final_weight, field="final_weight")

    return [
        ItemMovement(
            item_id=item.item_id,
            item_name=item.item_name,
            total_sales_kg=sold[item.item_id],
            total_purchases_kg=bought[item.item_id],
            net_movement_kg=bought[item.item_id] - sold[item.item_id],
            closing_stock_kg=to_decimal(item.stock, field="stock"),
        )
        for item in items
    ]


def summarize_manufacturing_expenses(
    purchase_invoices: Iterable[PurchaseInvoiceRow],
    rates: ManufacturingRates,
    date_range: Optional[DateRange] = None,
    *,
    today: Optional[date] = None,
) -> ManufacturingExpenses:
    """Cost a manufacturing run from the purchased final weights.

    Every purchase line counts toward ``total_purchase_kg`` regardless of
    item. ``manufactured_kg`` is a quarter of it.

    Raises:
        TypeError: If ``purchase_invoices`` is not a collection.
    """

    purchases = filter_by_date_range(
        _require_collection("purchase_invoices", purchase_invoices),
        date_range,
        date_of=lambda inv: inv.purchase_date,
        today=today,
    )
    purchased = sum(
        (to_decimal(line.final_weight, field="final_weight") for invoice in purchases for line in invoice.lines),
        ZERO,
    )
    manufactured = purchased / MANUFACTURING_YIELD_DIVISOR

    plant = purchased * to_decimal(rates.plant_labour, field="plant_labour")
    khakhora = purchased * to_decimal(rates.khakhora_labour, field="khakhora_labour")
    loading = manufactured * to_decimal(rates.loading_labour, field="loading_labour")
    freight = manufactured * to_decimal(rates.freight, field="freight")
    return ManufacturingExpenses(
        total_purchase_kg=purchased,
        manufactured_kg=manufactured,
        plant_labour_cost=plant,
        khakhora_labour_cost=khakhora,
        loading_labour_cost=loading,
        freight_cost=freight,
        total_expense=plant + khakhora + loading + freight,
    )


def top_items(
    items: Iterable[ItemRow],
    sales_invoices: Iterable[SalesInvoiceRow],
    purchase_invoices: Iterable[PurchaseInvoiceRow],
    *,
    limit: int = TOP_ITEMS_LIMIT,
    date_range: Optional[DateRange] = None,
    today: Optional[date] = None,
) -> TopItems:
    """Rank items by kilograms sold and purchased, largest first.

    Items with equal totals keep their order in ``items``.
    """

    movements = summarize_item_movement(items, sales_invoices, purchase_invoices, date_range, today=today)
    return TopItems(
        most_sold=sorted(movements, key=lambda m: m.total_sales_kg, reverse=True)[:limit],
        most_purchased=sorted(movements, key=lambda m: m.total_purchases_kg, reverse=True)[:limit],
    )


def summarize_day(
    day: date,
    sales_invoices: Iterable[SalesInvoiceRow],
    purchase_invoices: Iterable[PurchaseInvoiceRow],
    cash_transactions: Iterable[CashTransactionRow],
) -> DailySummary:
    """Totals for every sale, purchase, and farmer payment dated ``day``."""

    sales = [inv for inv in _require_collection("sales_invoices", sales_invoices) if parse_date(inv.invoice_date) == day]
    purchases = [inv for inv in _require_collection("purchase_invoices", purchase_invoices) if parse_date(inv.purchase_date) == day]
    payments = summarize_payments(
        txn for txn in _require_collection("cash_transactions", cash_transactions) if parse_date(txn.txn_date) == day
    )
    return DailySummary(
        day=day,
        sales_count=len(sales),
        total_sales_amount=sum((to_decimal(inv.total_amount) for inv in sales), ZERO),
        purchase_count=len(purchases),
        total_purchase_amount=sum((to_decimal(inv.total_amount) for inv in purchases), ZERO),
        total_payments_in=payments.total_in,
        total_payments_out=payments.total_out,
        net_cash_movement=payments.net,
    )


def consolidate_transactions(
    sales_invoices: Iterable[SalesInvoiceRow],
    purchase_invoices: Iterable[PurchaseInvoiceRow],
    cash_transactions: Iterable[CashTransactionRow],
    date_range: Optional[DateRange] = None,
    *,
    today: Optional[date] = None,
) -> List[ConsolidatedEntry]:
    """List every sale, purchase, and payment across farmers in time order.

    Uses the same ordering and tie-break as :func:`build_statement`. Invoice
    amounts are gross totals, not net of advance.
    """

    keyed: List[Tuple[Tuple[datetime, int, int], ConsolidatedEntry]] = []

    sales = filter_by_date_range(
        _require_collection("sales_invoices", sales_invoices), date_range, date_of=lambda inv: inv.invoice_date, today=today
    )
    for sequence, invoice in enumerate(sales):
        when = _sales_when(invoice)
        keyed.append((
            _sort_key(when, StatementKind.SALE, sequence),
            ConsolidatedEntry(when[0], when[1], StatementKind.SALE, invoice.invoice_no,
                              invoice.farmer.farmer_name, to_decimal(invoice.total_amount), None,
                              _describe_sales(invoice)),
        ))

    purchases = filter_by_date_range(
        _require_collection("purchase_invoices", purchase_invoices), date_range, date_of=lambda inv: inv.purchase_date, today=today
    )
    for sequence, invoice in enumerate(purchases):
        when = _purchase_when(invoice)
        keyed.append((
            _sort_key(when, StatementKind.PURCHASE, sequence),
            ConsolidatedEntry(when[0], when[1], StatementKind.PURCHASE, invoice.purchase_no,
                              invoice.farmer.farmer_name, to_decimal(invoice.total_amount), None,
                              _describe_purchase(invoice)),
        ))

    cash = filter_by_date_range(
        _require_collection("cash_transactions", cash_transactions), date_range, date_of=lambda txn: txn.txn_date, today=today
    )
    for sequence, transaction in enumerate(cash):
        kind = _cash_kind(transaction)
        if kind is None:
            continue
        when = _cash_when(transaction)
        keyed.append((
            _sort_key(when, kind, sequence),
            ConsolidatedEntry(when[0], when[1], kind, transaction.transaction_id,
                              transaction.farmer_name, to_decimal(transaction.amount),
                              transaction.payment_method, transaction.remarks or "-"),
        ))

    keyed.sort(key=lambda pair: pair[0])
    return [entry for _, entry in keyed]
