"""Data access layer for the farm ledger.

This module provides low-level helpers that read from and write to the master
workbook. Business rules belong elsewhere.

The public API is designed around four responsibilities:

1. Configuration handling: finding and parsing ``config.ini`` and persisting
   the selected company session back into it.
2. Workbook lifecycle: opening, validating, and persisting the Excel file.
3. Normalization: every numeric, date, and time cell passes through
   :func:`to_decimal`, :func:`parse_date`, or :func:`parse_time` so the layers
   above only ever see ``Decimal``, ``date``, and ``time`` values.
4. Sheet operations: loading structured records and appending, updating, or
   deleting individual rows.
"""


from __future__ import annotations

import configparser
from collections import defaultdict
from dataclasses import dataclass
from datetime import date, datetime, time
from decimal import Decimal, InvalidOperation
from pathlib import Path
from typing import Any, Dict, Iterable, Iterator, List, Optional, Sequence, Tuple

from openpyxl.workbook import Workbook
import openpyxl

from . import log
from .constants import SheetName


CONFIG_FILE_NAME = "config.ini"
SESSION_SECTION = "Session"

COMPANIES_SHEET = SheetName.COMPANIES.value
FARMERS_SHEET = SheetName.FARMERS.value
ITEMS_SHEET = SheetName.ITEMS.value
SALES_INVOICES_SHEET = SheetName.SALES_INVOICES.value
SALES_LINES_SHEET = SheetName.SALES_INVOICE_LINES.value
PURCHASE_INVOICES_SHEET = SheetName.PURCHASE_INVOICES.value
PURCHASE_LINES_SHEET = SheetName.PURCHASE_INVOICE_LINES.value
CASH_TRANSACTIONS_SHEET = SheetName.CASH_TRANSACTIONS.value
EXPENSES_SHEET = SheetName.EXPENSES.value

_TIME_FORMATS = ("%H:%M:%S", "%H:%M", "%I:%M %p", "%I:%M:%S %p")
_FINANCIAL_YEAR_SEPARATOR = ","


@dataclass(frozen=True)
class ConfigSettings:
    """Typed representation of the ``config.ini`` settings we care about."""

    data_file: Path
    business_name: str
    schema_version: str
    company_id: Optional[str] = None
    financial_year: Optional[str] = None


@dataclass(frozen=True)
class CompanyRow:
    """In-memory view of a row from the ``Companies`` sheet."""

    company_id: str
    name: str
    address: str
    financial_years: Tuple[str, ...]


@dataclass(frozen=True)
class FarmerRow:
    """In-memory view of a row from the ``Farmers`` sheet."""

    farmer_id: str
    company_id: Optional[str]
    farmer_name: str
    fathers_name: Optional[str] = None
    village: Optional[str] = None
    mobile_no: Optional[str] = None
    aadhar_card_no: Optional[str] = None
    account_name: Optional[str] = None
    account_no: Optional[str] = None
    ifsc_code: Optional[str] = None


@dataclass(frozen=True)
class ItemRow:
    """In-memory view of a row from the ``Items`` sheet."""

    item_id: str
    company_id: Optional[str]
    item_name: str
    rate_per_kg: Decimal
    stock: Decimal


@dataclass(frozen=True)
class FarmerSnapshot:
    """Copy of the farmer fields embedded in an invoice at creation time."""

    farmer_id: str
    farmer_name: str
    village: Optional[str] = None
    mobile_no: Optional[str] = None


@dataclass(frozen=True)
class SalesLineRow:
    """One line of a sales invoice."""

    item_id: str
    item_name: str
    weight: Decimal
    rate: Decimal
    amount: Decimal


@dataclass(frozen=True)
class PurchaseLineRow:
    """One line of a purchase invoice, including weight adjustments."""

    item_id: str
    item_name: str
    gross_weight: Decimal
    tare_weight: Decimal
    mud_deduction_percent: Decimal
    net_weight: Decimal
    final_weight: Decimal
    rate: Decimal
    amount: Decimal


@dataclass(frozen=True)
class SalesInvoiceRow:
    """Sales invoice header together with its ordered lines."""

    invoice_id: str
    company_id: Optional[str]
    invoice_no: str
    invoice_date: date
    invoice_time: time
    farmer: FarmerSnapshot
    lines: Tuple[SalesLineRow, ...]
    total_amount: Decimal
    advance: Decimal
    due: Decimal


@dataclass(frozen=True)
class PurchaseInvoiceRow:
    """Purchase invoice header together with its ordered lines."""

    purchase_id: str
    company_id: Optional[str]
    purchase_no: str
    purchase_date: date
    purchase_time: time
    farmer: FarmerSnapshot
    lines: Tuple[PurchaseLineRow, ...]
    total_amount: Decimal
    advance: Decimal
    due: Decimal


@dataclass(frozen=True)
class CashTransactionRow:
    """In-memory view of a row from the ``CashBankTransactions`` sheet."""

    transaction_id: str
    company_id: Optional[str]
    transaction_type: str
    farmer_id: str
    farmer_name: str
    amount: Decimal
    payment_method: str
    remarks: Optional[str]
    txn_date: date
    txn_time: time


@dataclass(frozen=True)
class ExpenseRow:
    """In-memory view of a row from the ``Expenses`` sheet."""

    expense_id: str
    company_id: Optional[str]
    expense_type: str
    amount: Decimal
    payment_method: str
    expense_date: date
    expense_time: time
    remarks: Optional[str]


# ---------------------------------------------------------------------------
# Configuration
# ---------------------------------------------------------------------------


def find_config_file(explicit_path: Optional[Path] = None) -> Path:
    """Locate the configuration file that controls how the data layer behaves.

    If the caller provides ``explicit_path`` the value is returned immediately
    without any verification. Otherwise the function walks up from the current
    working directory toward the filesystem root looking for a file named
    ``CONFIG_FILE_NAME``; the first match is authoritative.

    Args:
        explicit_path (Path | None): Optional path to use instead of performing
            the upward search.

    Returns:
        Path: The path provided by the caller or the discovered configuration
            file.

    Raises:
        FileNotFoundError: If no parent directory contains ``CONFIG_FILE_NAME``.
    """

    if explicit_path:
        return explicit_path

    current = Path.cwd()
    for p in (current, *current.parents):
        candidate = p / CONFIG_FILE_NAME
        if candidate.exists():
            return candidate

    raise FileNotFoundError(
        f"Configuration file not found: {CONFIG_FILE_NAME}")


def read_config(config_path: Path) -> configparser.ConfigParser:
    """Load ``config.ini`` and return a populated ``ConfigParser`` instance.

    Args:
        config_path (Path): Path to the configuration file, relative or
            absolute. ``~`` is expanded.

    Returns:
        configparser.ConfigParser: Parser containing the raw configuration.

    Raises:
        FileNotFoundError: If ``config_path`` does not exist.
    """

    config_path = config_path.expanduser().resolve()
    if not config_path.exists():
        raise FileNotFoundError(f"Configuration file not found: {config_path}")

    parser = configparser.ConfigParser()
    parser.optionxform = str
    parser.read(config_path)
    return parser


def parse_settings(parser: configparser.ConfigParser, *, base_path: Optional[Path] = None) -> ConfigSettings:
    """Convert a ``ConfigParser`` into strongly typed :class:`ConfigSettings`.

    The ``[System]`` section is mandatory. The ``[Session]`` section is
    optional and carries the company and financial year selected by the last
    ``select-company`` call. Relative ``DataFile`` entries are anchored to
    ``base_path`` (or the current working directory).

    Args:
        parser (configparser.ConfigParser): Parsed configuration data.
        base_path (Path | None): Directory used to resolve relative data file
            paths.

    Returns:
        ConfigSettings: Immutable settings container.

    Raises:
        KeyError: If a required section or option is missing.
    """

    try:
        data_file_raw = parser.get("System", "DataFile")
        business_name = parser.get("System", "BusinessName")
        schema_version = parser.get("System", "SchemaVersion")
    except (configparser.NoSectionError, configparser.NoOptionError) as exc:
        raise KeyError(f"Missing required configuration entry: {exc}") from exc

    company_id = parser.get(SESSION_SECTION, "CompanyId", fallback=None) or None
    financial_year = parser.get(SESSION_SECTION, "FinancialYear", fallback=None) or None

    data_file_path = Path(data_file_raw)
    if not data_file_path.is_absolute():
        if base_path is None:
            base_path = Path.cwd()
        data_file_path = (base_path / data_file_path).resolve()

    return ConfigSettings(
        data_file=data_file_path,
        business_name=business_name,
        schema_version=schema_version,
        company_id=company_id,
        financial_year=financial_year,
    )


def write_session(config_path: Path, *, company_id: Optional[str], financial_year: Optional[str]) -> None:
    """Persist the selected company and financial year into ``config.ini``.

    Other sections are preserved. Passing ``None`` removes the option.

    Raises:
        FileNotFoundError: If ``config_path`` does not exist.
    """

    parser = read_config(config_path)
    if not parser.has_section(SESSION_SECTION):
        parser.add_section(SESSION_SECTION)
    for option, value in (("CompanyId", company_id), ("FinancialYear", financial_year)):
        if value is None:
            parser.remove_option(SESSION_SECTION, option)
        else:
            parser.set(SESSION_SECTION, option, value)

    resolved = config_path.expanduser().resolve()
    with resolved.open("w", encoding="utf-8") as handle:
        parser.write(handle)
    log.debug("Session written to '%s' (company=%s, year=%s)", resolved, company_id, financial_year)


# ---------------------------------------------------------------------------
# Workbook lifecycle
# ---------------------------------------------------------------------------


def open_workbook(data_file: Path) -> Workbook:
    """Open the master Excel workbook and return a live ``openpyxl`` workbook.

    Args:
        data_file (Path): Filesystem path to the master workbook.

    Returns:
        Workbook: ``openpyxl`` workbook instance backed by the provided file.

    Raises:
        FileNotFoundError: If ``data_file`` does not exist.
    """

    data_file = Path(data_file).expanduser().resolve()
    if not data_file.exists():
        raise FileNotFoundError(f"Workbook not found: {data_file}")

    return openpyxl.load_workbook(data_file)


def save_workbook(workbook: Workbook, destination: Path) -> None:
    """Persist the workbook to disk, creating parent directories on demand."""

    dest = Path(destination).expanduser().resolve()
    dest.parent.mkdir(parents=True, exist_ok=True)
    workbook.save(dest)


def refresh_workbook(data_file: Path) -> Workbook:
    """Reload the workbook from disk, discarding any unsaved in-memory changes."""

    return open_workbook(data_file)


# ---------------------------------------------------------------------------
# Normalization boundary
# ---------------------------------------------------------------------------


def to_decimal(value: Any, *, field: str = "value") -> Decimal:
    """Coerce a loosely typed numeric value into a :class:`~decimal.Decimal`.

    Worksheet cells and hand-built records may carry ``int``, ``float``,
    ``Decimal``, or numeric strings. Blank values (``None`` or empty strings)
    normalize to zero. Floats go through ``str`` so ``0.1`` becomes
    ``Decimal("0.1")`` rather than its binary expansion.

    Args:
        value (Any): Raw value to convert.
        field (str): Field name used in the error message.

    Returns:
        Decimal: The normalized value.

    Raises:
        ValueError: If ``value`` is a boolean, not numeric, or not finite.
    """

    if isinstance(value, Decimal):
        result = value
    elif value is None:
        return Decimal("0")
    elif isinstance(value, bool):
        raise ValueError(f"Invalid numeric value for {field}: {value!r}")
    elif isinstance(value, (int, float)):
        result = Decimal(str(value))
    elif isinstance(value, str):
        text = value.strip().replace(",", "")
        if not text:
            return Decimal("0")
        try:
            result = Decimal(text)
        except InvalidOperation as exc:
            raise ValueError(f"Invalid numeric value for {field}: {value!r}") from exc
    else:
        raise ValueError(f"Invalid numeric value for {field}: {value!r}")

    if not result.is_finite():
        raise ValueError(f"Invalid numeric value for {field}: {value!r}")
    return result


def parse_date(value: Any, *, field: str = "date") -> date:
    """Normalize ISO strings, ``datetime`` and ``date`` values into a ``date``.

    Raises:
        ValueError: If ``value`` is blank or not a recognizable date.
    """

    if isinstance(value, datetime):
        return value.date()
    if isinstance(value, date):
        return value
    if isinstance(value, str) and value.strip():
        try:
            return date.fromisoformat(value.strip()[:10])
        except ValueError as exc:
            raise ValueError(f"Invalid date for {field}: {value!r}") from exc
    raise ValueError(f"Invalid date for {field}: {value!r}")


def parse_time(value: Any, *, field: str = "time") -> time:
    """Normalize 24-hour or 12-hour (``"10:30 AM"``) strings into a ``time``.

    Blank values normalize to midnight because the original records allowed
    entries without a time of day.

    Raises:
        ValueError: If ``value`` matches none of the supported formats.
    """

    if isinstance(value, datetime):
        return value.time()
    if isinstance(value, time):
        return value
    if value is None or (isinstance(value, str) and not value.strip()):
        return time(0, 0)
    if isinstance(value, str):
        text = value.strip().upper()
        for fmt in _TIME_FORMATS:
            try:
                return datetime.strptime(text, fmt).time()
            except ValueError:
                continue
    raise ValueError(f"Invalid time for {field}: {value!r}")


def format_date(value: date) -> str:
    return value.isoformat()


def format_time(value: time) -> str:
    return value.strftime("%H:%M:%S")


def _optional_text(value: Any) -> Optional[str]:
    if value is None:
        return None
    text = str(value)
    return text if text.strip() else None


def _text(value: Any) -> str:
    return str(value) if value is not None else ""


# ---------------------------------------------------------------------------
# Sheet iteration
# ---------------------------------------------------------------------------


def _iter_raw_rows(workbook: Workbook, sheet_name: str) -> Iterator[Tuple[Any, ...]]:
    """Yield non-empty data rows (header excluded) from ``sheet_name``."""

    sheet = workbook[sheet_name]
    for raw in sheet.iter_rows(min_row=2, values_only=True):
        # skip fully empty rows
        if any(cell is not None for cell in raw):
            yield raw


def iter_companies(workbook: Workbook) -> Iterable[CompanyRow]:
    """Iterate over company records stored on the ``Companies`` worksheet."""

    for raw in _iter_raw_rows(workbook, COMPANIES_SHEET):
        yield deserialize_company(raw)


def iter_farmers(workbook: Workbook) -> Iterable[FarmerRow]:
    """Iterate over the ``Farmers`` worksheet and yield typed records."""

    for raw in _iter_raw_rows(workbook, FARMERS_SHEET):
        yield deserialize_farmer(raw)


def iter_items(workbook: Workbook) -> Iterable[ItemRow]:
    """Iterate over the ``Items`` worksheet and yield typed records.

    Rate and stock columns are normalized into :class:`~decimal.Decimal`
    values; blank stock cells count as zero.
    """

    for raw in _iter_raw_rows(workbook, ITEMS_SHEET):
        yield deserialize_item(raw)


def iter_sales_invoices(workbook: Workbook) -> Iterable[SalesInvoiceRow]:
    """Stream sales invoices joined with their lines.

    Lines are read once from ``SalesInvoiceLines``, grouped by invoice id, and
    ordered by their ``LineNo`` column. Headers come out in sheet order; an
    invoice with no stored lines yields an empty ``lines`` tuple.

    Args:
        workbook (Workbook): Workbook containing both invoice sheets.

    Yields:
        SalesInvoiceRow: Fully assembled invoice.
    """

    lines_by_invoice: Dict[str, List[Tuple[int, SalesLineRow]]] = defaultdict(list)
    for raw in _iter_raw_rows(workbook, SALES_LINES_SHEET):
        invoice_id, line_no, line = deserialize_sales_line(raw)
        lines_by_invoice[invoice_id].append((line_no, line))

    for raw in _iter_raw_rows(workbook, SALES_INVOICES_SHEET):
        invoice_id = str(raw[0])
        ordered = sorted(lines_by_invoice.get(invoice_id, []), key=lambda pair: pair[0])
        yield deserialize_sales_invoice(raw, tuple(line for _, line in ordered))


def iter_purchase_invoices(workbook: Workbook) -> Iterable[PurchaseInvoiceRow]:
    """Stream purchase invoices joined with their lines (see sales variant)."""

    lines_by_invoice: Dict[str, List[Tuple[int, PurchaseLineRow]]] = defaultdict(list)
    for raw in _iter_raw_rows(workbook, PURCHASE_LINES_SHEET):
        purchase_id, line_no, line = deserialize_purchase_line(raw)
        lines_by_invoice[purchase_id].append((line_no, line))

    for raw in _iter_raw_rows(workbook, PURCHASE_INVOICES_SHEET):
        purchase_id = str(raw[0])
        ordered = sorted(lines_by_invoice.get(purchase_id, []), key=lambda pair: pair[0])
        yield deserialize_purchase_invoice(raw, tuple(line for _, line in ordered))


def iter_cash_transactions(workbook: Workbook) -> Iterable[CashTransactionRow]:
    """Stream farmer cash/bank transactions from their worksheet."""

    for raw in _iter_raw_rows(workbook, CASH_TRANSACTIONS_SHEET):
        yield deserialize_cash_transaction(raw)


def iter_expenses(workbook: Workbook) -> Iterable[ExpenseRow]:
    """Stream company-level expense and cash-management entries."""

    for raw in _iter_raw_rows(workbook, EXPENSES_SHEET):
        yield deserialize_expense(raw)


# ---------------------------------------------------------------------------
# Appends
# ---------------------------------------------------------------------------


def append_company(workbook: Workbook, record: CompanyRow) -> None:
    workbook[COMPANIES_SHEET].append(serialize_company(record))


def append_farmer(workbook: Workbook, record: FarmerRow) -> None:
    workbook[FARMERS_SHEET].append(serialize_farmer(record))


def append_item(workbook: Workbook, record: ItemRow) -> None:
    workbook[ITEMS_SHEET].append(serialize_item(record))


def append_sales_invoice(workbook: Workbook, record: SalesInvoiceRow) -> None:
    """Append a sales invoice header and one row per line.

    Line numbers start at 1 and follow the order of ``record.lines``.
    """

    workbook[SALES_INVOICES_SHEET].append(serialize_sales_invoice(record))
    lines_sheet = workbook[SALES_LINES_SHEET]
    for line_no, line in enumerate(record.lines, start=1):
        lines_sheet.append(serialize_sales_line(record.invoice_id, line_no, line))


def append_purchase_invoice(workbook: Workbook, record: PurchaseInvoiceRow) -> None:
    """Append a purchase invoice header and one row per line."""

    workbook[PURCHASE_INVOICES_SHEET].append(serialize_purchase_invoice(record))
    lines_sheet = workbook[PURCHASE_LINES_SHEET]
    for line_no, line in enumerate(record.lines, start=1):
        lines_sheet.append(serialize_purchase_line(record.purchase_id, line_no, line))


def append_cash_transaction(workbook: Workbook, record: CashTransactionRow) -> None:
    workbook[CASH_TRANSACTIONS_SHEET].append(serialize_cash_transaction(record))


def append_expense(workbook: Workbook, record: ExpenseRow) -> None:
    workbook[EXPENSES_SHEET].append(serialize_expense(record))


# ---------------------------------------------------------------------------
# Updates and deletes
# ---------------------------------------------------------------------------


def _header_map(workbook: Workbook, sheet_name: str) -> Dict[Any, int]:
    sheet = workbook[sheet_name]
    return {cell.value: idx + 1 for idx, cell in enumerate(sheet[1])}


def update_record(workbook: Workbook, sheet_name: str, key_column: str, key_value: str, *, field_values: Dict[str, Any]) -> None:
    """Update selected columns for the first row whose key matches.

    Each requested field must exist in the header row; only those cells are
    written, leaving other columns untouched.

    Args:
        workbook (Workbook): Workbook containing ``sheet_name``.
        sheet_name (str): Worksheet to modify.
        key_column (str): Header title of the identifier column.
        key_value (str): Identifier of the row to update.
        field_values (dict[str, Any]): Column names mapped to new values.

    Raises:
        KeyError: If the row or any referenced column cannot be found.
    """

    row_index = locate_row(workbook, sheet_name, key_column, key_value)
    if row_index is None:
        raise KeyError(f"Record not found in {sheet_name}: {key_value}")

    sheet = workbook[sheet_name]
    header_map = _header_map(workbook, sheet_name)
    for field, value in field_values.items():
        if field not in header_map:
            raise KeyError(f"Unknown {sheet_name} field: {field}")
        sheet.cell(row=row_index, column=header_map[field]).value = value


def delete_records(workbook: Workbook, sheet_name: str, key_column: str, key_value: str) -> int:
    """Delete every row whose key column equals ``key_value``.

    Rows are removed bottom-up so earlier indices stay valid while deleting.

    Returns:
        int: Number of rows removed (zero when nothing matched).

    Raises:
        KeyError: If ``key_column`` is not present in the worksheet header.
    """

    sheet = workbook[sheet_name]
    header_map = _header_map(workbook, sheet_name)
    if key_column not in header_map:
        raise KeyError(f"Unknown column: {key_column}")
    key_col_index = header_map[key_column]

    matches = [
        row_idx
        for row_idx, row in enumerate(sheet.iter_rows(min_row=2, values_only=True), start=2)
        if row[key_col_index - 1] == key_value
    ]
    for row_idx in reversed(matches):
        sheet.delete_rows(row_idx)
    return len(matches)


def delete_sales_invoice(workbook: Workbook, invoice_id: str) -> None:
    """Remove a sales invoice header and all of its lines.

    Raises:
        KeyError: If no header row carries ``invoice_id``.
    """

    if delete_records(workbook, SALES_INVOICES_SHEET, "InvoiceID", invoice_id) == 0:
        raise KeyError(f"Sales invoice not found: {invoice_id}")
    delete_records(workbook, SALES_LINES_SHEET, "InvoiceID", invoice_id)


def delete_purchase_invoice(workbook: Workbook, purchase_id: str) -> None:
    """Remove a purchase invoice header and all of its lines.

    Raises:
        KeyError: If no header row carries ``purchase_id``.
    """

    if delete_records(workbook, PURCHASE_INVOICES_SHEET, "PurchaseID", purchase_id) == 0:
        raise KeyError(f"Purchase invoice not found: {purchase_id}")
    delete_records(workbook, PURCHASE_LINES_SHEET, "PurchaseID", purchase_id)


def adjust_item_stock(workbook: Workbook, item_id: str, delta: Decimal) -> Decimal:
    """Add ``delta`` to an item's stock cell and return the new stock.

    The read and the write happen inside one call against the in-memory
    workbook, so callers never hold a stale stock value between them. No
    floor is enforced; stock may become negative.

    Args:
        workbook (Workbook): Workbook containing the ``Items`` sheet.
        item_id (str): Identifier of the item to adjust.
        delta (Decimal): Signed quantity to add.

    Returns:
        Decimal: Stock value written back to the sheet.

    Raises:
        KeyError: If the item cannot be located.
    """

    row_index = locate_row(workbook, ITEMS_SHEET, "ItemID", item_id)
    if row_index is None:
        raise KeyError(f"Item not found: {item_id}")

    sheet = workbook[ITEMS_SHEET]
    stock_column = _header_map(workbook, ITEMS_SHEET)["Stock"]
    cell = sheet.cell(row=row_index, column=stock_column)
    new_stock = to_decimal(cell.value, field="Stock") + delta
    cell.value = new_stock
    return new_stock


def locate_row(workbook: Workbook, sheet_name: str, key_column: str, key_value: str) -> Optional[int]:
    """Find a row by matching a key value within the specified worksheet.

    Args:
        workbook (Workbook): Workbook providing access to ``sheet_name``.
        sheet_name (str): Name of the worksheet to search.
        key_column (str): Header title identifying the lookup column.
        key_value (str): Value to match within the key column.

    Returns:
        int | None: 1-based Excel row index when a match is found, otherwise
            ``None``.

    Raises:
        KeyError: If ``key_column`` is not present in the worksheet header.
    """

    sheet = workbook[sheet_name]
    header_map = _header_map(workbook, sheet_name)
    if key_column not in header_map:
        raise KeyError(f"Unknown column: {key_column}")

    key_col_index = header_map[key_column]

    for row_idx, row in enumerate(sheet.iter_rows(min_row=2, values_only=True), start=2):
        if row[key_col_index - 1] == key_value:
            return row_idx

    return None


# ---------------------------------------------------------------------------
# Serialization
# ---------------------------------------------------------------------------


def serialize_company(record: CompanyRow) -> list[object]:
    return [
        record.company_id,
        record.name,
        record.address,
        _FINANCIAL_YEAR_SEPARATOR.join(record.financial_years),
    ]


def serialize_farmer(record: FarmerRow) -> list[object]:
    return [
        record.farmer_id,
        record.company_id,
        record.farmer_name,
        record.fathers_name,
        record.village,
        record.mobile_no,
        record.aadhar_card_no,
        record.account_name,
        record.account_no,
        record.ifsc_code,
    ]


def serialize_item(record: ItemRow) -> list[object]:
    return [record.item_id, record.company_id, record.item_name, record.rate_per_kg, record.stock]


def serialize_sales_invoice(record: SalesInvoiceRow) -> list[object]:
    """Convert a sales invoice header into the worksheet column order.

    The farmer snapshot is flattened into its own columns; lines are written
    separately by :func:`serialize_sales_line`.
    """

    return [
        record.invoice_id,
        record.company_id,
        record.invoice_no,
        format_date(record.invoice_date),
        format_time(record.invoice_time),
        record.farmer.farmer_id,
        record.farmer.farmer_name,
        record.farmer.village,
        record.farmer.mobile_no,
        record.total_amount,
        record.advance,
        record.due,
    ]


def serialize_sales_line(invoice_id: str, line_no: int, line: SalesLineRow) -> list[object]:
    return [invoice_id, line_no, line.item_id, line.item_name, line.weight, line.rate, line.amount]


def serialize_purchase_invoice(record: PurchaseInvoiceRow) -> list[object]:
    return [
        record.purchase_id,
        record.company_id,
        record.purchase_no,
        format_date(record.purchase_date),
        format_time(record.purchase_time),
        record.farmer.farmer_id,
        record.farmer.farmer_name,
        record.farmer.village,
        record.farmer.mobile_no,
        record.total_amount,
        record.advance,
        record.due,
    ]


def serialize_purchase_line(purchase_id: str, line_no: int, line: PurchaseLineRow) -> list[object]:
    return [
        purchase_id,
        line_no,
        line.item_id,
        line.item_name,
        line.gross_weight,
        line.tare_weight,
        line.mud_deduction_percent,
        line.net_weight,
        line.final_weight,
        line.rate,
        line.amount,
    ]


def serialize_cash_transaction(record: CashTransactionRow) -> list[object]:
    return [
        record.transaction_id,
        record.company_id,
        record.transaction_type,
        record.farmer_id,
        record.farmer_name,
        record.amount,
        record.payment_method,
        record.remarks,
        format_date(record.txn_date),
        format_time(record.txn_time),
    ]


def serialize_expense(record: ExpenseRow) -> list[object]:
    return [
        record.expense_id,
        record.company_id,
        record.expense_type,
        record.amount,
        record.payment_method,
        format_date(record.expense_date),
        format_time(record.expense_time),
        record.remarks,
    ]


# ---------------------------------------------------------------------------
# Deserialization
# ---------------------------------------------------------------------------


def _padded(raw_row: Sequence[object], width: int) -> Tuple[object, ...]:
    """Pad short rows with ``None`` so trailing blank cells unpack cleanly."""

    values = tuple(raw_row)[:width]
    return values + (None,) * (width - len(values))


def deserialize_company(raw_row: Sequence[object]) -> CompanyRow:
    """Convert a raw worksheet row into a :class:`CompanyRow`.

    Financial years are stored as one comma-separated cell.
    """

    company_id, name, address, years_raw = _padded(raw_row, 4)
    years = tuple(
        part.strip()
        for part in _text(years_raw).split(_FINANCIAL_YEAR_SEPARATOR)
        if part.strip()
    )
    return CompanyRow(
        company_id=str(company_id),
        name=_text(name),
        address=_text(address),
        financial_years=years,
    )


def deserialize_farmer(raw_row: Sequence[object]) -> FarmerRow:
    """Convert a raw worksheet row into a :class:`FarmerRow`.

    Identifiers and names are coerced to ``str`` to avoid surprises caused by
    Excel interpreting digits (mobile or account numbers) as numbers.
    """

    (
        farmer_id,
        company_id,
        farmer_name,
        fathers_name,
        village,
        mobile_no,
        aadhar_card_no,
        account_name,
        account_no,
        ifsc_code,
    ) = _padded(raw_row, 10)
    return FarmerRow(
        farmer_id=str(farmer_id),
        company_id=_optional_text(company_id),
        farmer_name=_text(farmer_name),
        fathers_name=_optional_text(fathers_name),
        village=_optional_text(village),
        mobile_no=_optional_text(mobile_no),
        aadhar_card_no=_optional_text(aadhar_card_no),
        account_name=_optional_text(account_name),
        account_no=_optional_text(account_no),
        ifsc_code=_optional_text(ifsc_code),
    )


def deserialize_item(raw_row: Sequence[object]) -> ItemRow:
    item_id, company_id, item_name, rate_raw, stock_raw = _padded(raw_row, 5)
    return ItemRow(
        item_id=str(item_id),
        company_id=_optional_text(company_id),
        item_name=_text(item_name),
        rate_per_kg=to_decimal(rate_raw, field="RatePerKg"),
        stock=to_decimal(stock_raw, field="Stock"),
    )


def _deserialize_snapshot(farmer_id: object, farmer_name: object, village: object, mobile_no: object) -> FarmerSnapshot:
    return FarmerSnapshot(
        farmer_id=_text(farmer_id),
        farmer_name=_text(farmer_name),
        village=_optional_text(village),
        mobile_no=_optional_text(mobile_no),
    )


def deserialize_sales_line(raw_row: Sequence[object]) -> Tuple[str, int, SalesLineRow]:
    """Convert a raw ``SalesInvoiceLines`` row.

    Returns:
        tuple[str, int, SalesLineRow]: Owning invoice id, line number, and the
            typed line.
    """

    invoice_id, line_no, item_id, item_name, weight, rate, amount = _padded(raw_row, 7)
    line = SalesLineRow(
        item_id=_text(item_id),
        item_name=_text(item_name),
        weight=to_decimal(weight, field="Weight"),
        rate=to_decimal(rate, field="Rate"),
        amount=to_decimal(amount, field="Amount"),
    )
    return str(invoice_id), int(to_decimal(line_no, field="LineNo")), line


def deserialize_purchase_line(raw_row: Sequence[object]) -> Tuple[str, int, PurchaseLineRow]:
    (
        purchase_id,
        line_no,
        item_id,
        item_name,
        gross_weight,
        tare_weight,
        mud_deduction_percent,
        net_weight,
        final_weight,
        rate,
        amount,
    ) = _padded(raw_row, 11)
    line = PurchaseLineRow(
        item_id=_text(item_id),
        item_name=_text(item_name),
        gross_weight=to_decimal(gross_weight, field="GrossWeight"),
        tare_weight=to_decimal(tare_weight, field="TareWeight"),
        mud_deduction_percent=to_decimal(mud_deduction_percent, field="MudDeductionPercent"),
        net_weight=to_decimal(net_weight, field="NetWeight"),
        final_weight=to_decimal(final_weight, field="FinalWeight"),
        rate=to_decimal(rate, field="Rate"),
        amount=to_decimal(amount, field="Amount"),
    )
    return str(purchase_id), int(to_decimal(line_no, field="LineNo")), line


def deserialize_sales_invoice(raw_row: Sequence[object], lines: Tuple[SalesLineRow, ...]) -> SalesInvoiceRow:
    """Convert a raw ``SalesInvoices`` row plus its lines into a typed invoice."""

    (
        invoice_id,
        company_id,
        invoice_no,
        invoice_date,
        invoice_time,
        farmer_id,
        farmer_name,
        village,
        mobile_no,
        total_amount,
        advance,
        due,
    ) = _padded(raw_row, 12)
    return SalesInvoiceRow(
        invoice_id=str(invoice_id),
        company_id=_optional_text(company_id),
        invoice_no=_text(invoice_no),
        invoice_date=parse_date(invoice_date, field="InvoiceDate"),
        invoice_time=parse_time(invoice_time, field="InvoiceTime"),
        farmer=_deserialize_snapshot(farmer_id, farmer_name, village, mobile_no),
        lines=lines,
        total_amount=to_decimal(total_amount, field="TotalAmount"),
        advance=to_decimal(advance, field="Advance"),
        due=to_decimal(due, field="Due"),
    )


def deserialize_purchase_invoice(raw_row: Sequence[object], lines: Tuple[PurchaseLineRow, ...]) -> PurchaseInvoiceRow:
    (
        purchase_id,
        company_id,
        purchase_no,
        purchase_date,
        purchase_time,
        farmer_id,
        farmer_name,
        village,
        mobile_no,
        total_amount,
        advance,
        due,
    ) = _padded(raw_row, 12)
    return PurchaseInvoiceRow(
        purchase_id=str(purchase_id),
        company_id=_optional_text(company_id),
        purchase_no=_text(purchase_no),
        purchase_date=parse_date(purchase_date, field="PurchaseDate"),
        purchase_time=parse_time(purchase_time, field="PurchaseTime"),
        farmer=_deserialize_snapshot(farmer_id, farmer_name, village, mobile_no),
        lines=lines,
        total_amount=to_decimal(total_amount, field="TotalAmount"),
        advance=to_decimal(advance, field="Advance"),
        due=to_decimal(due, field="Due"),
    )


def deserialize_cash_transaction(raw_row: Sequence[object]) -> CashTransactionRow:
    (
        transaction_id,
        company_id,
        transaction_type,
        farmer_id,
        farmer_name,
        amount,
        payment_method,
        remarks,
        txn_date,
        txn_time,
    ) = _padded(raw_row, 10)
    return CashTransactionRow(
        transaction_id=str(transaction_id),
        company_id=_optional_text(company_id),
        transaction_type=_text(transaction_type),
        farmer_id=_text(farmer_id),
        farmer_name=_text(farmer_name),
        amount=to_decimal(amount, field="Amount"),
        payment_method=_text(payment_method),
        remarks=_optional_text(remarks),
        txn_date=parse_date(txn_date, field="TxnDate"),
        txn_time=parse_time(txn_time, field="TxnTime"),
    )


def deserialize_expense(raw_row: Sequence[object]) -> ExpenseRow:
    (
        expense_id,
        company_id,
        expense_type,
        amount,
        payment_method,
        expense_date,
        expense_time,
        remarks,
    ) = _padded(raw_row, 8)
    return ExpenseRow(
        expense_id=str(expense_id),
        company_id=_optional_text(company_id),
        expense_type=_text(expense_type),
        amount=to_decimal(amount, field="Amount"),
        payment_method=_text(payment_method),
        expense_date=parse_date(expense_date, field="ExpenseDate"),
        expense_time=parse_time(expense_time, field="ExpenseTime"),
        remarks=_optional_text(remarks),
    )
