"""Business logic layer for the farm ledger.

This module validates user intent, keeps item stock in step with the invoice
lifecycle, and exposes the report entry points. It consumes the Data Access
Layer (DAL) for all I/O and delegates arithmetic to the pure ledger and stock
engines, so every rule that touches the workbook lives here.
"""

from __future__ import annotations

import re
from dataclasses import dataclass, field, replace
from datetime import date, datetime
from decimal import Decimal
from pathlib import Path
from typing import Any, Callable, Dict, Iterable, List, Optional, Sequence, Tuple

from openpyxl.workbook import Workbook

from . import data_manager, ledger, log, stock
from .constants import (
    CASH_TRANSACTION_ID_PREFIX,
    COMPANY_ID_PREFIX,
    EXPECTED_SCHEMA_VERSION,
    EXPENSE_ID_PREFIX,
    FARMER_ID_PREFIX,
    ITEM_ID_PREFIX,
    PURCHASE_INVOICE_PREFIX,
    SALES_INVOICE_PREFIX,
    CashTransactionType,
    PaymentMethod,
    StockDirection,
)
from .identifiers import next_invoice_number, next_sequential_id

_FINANCIAL_YEAR_PATTERN = re.compile(r"^(\d{4})-(\d{4})$")


class BusinessRuleViolation(Exception):
    """Raised when a requested operation violates a domain constraint."""


class ValidationError(BusinessRuleViolation, ValueError):
    """Raised when user input is malformed or incomplete."""


class InsufficientStockError(ValidationError):
    """Raised when a sale would remove more stock than an item holds."""

    def __init__(self, shortfalls: Sequence[stock.StockShortfall]):
        self.shortfalls = tuple(shortfalls)
        details = ", ".join(
            f"{shortfall.item_id} (required {shortfall.required}, available {shortfall.available})"
            for shortfall in self.shortfalls
        )
        super().__init__(f"Insufficient stock for {details}")


class MissingReferenceError(BusinessRuleViolation):
    """Raised when a referenced company, farmer, item, or record is unknown."""


@dataclass(frozen=True)
class CompanySession:
    """Company and financial year the current run operates on."""

    company_id: Optional[str] = None
    financial_year: Optional[str] = None


@dataclass(frozen=True)
class RuntimeContext:
    """Container for configuration, session, and workbook used by the BLL."""

    settings: data_manager.ConfigSettings
    workbook: Workbook
    config_path: Optional[Path] = None
    session: CompanySession = field(default_factory=CompanySession)
    _cache: Dict[str, Dict[str, Any]] = field(default_factory=dict, repr=False, compare=False)


@dataclass(frozen=True)
class FarmerCommand:
    """User intent for creating or editing a farmer."""

    farmer_name: str
    fathers_name: Optional[str] = None
    village: Optional[str] = None
    mobile_no: Optional[str] = None
    aadhar_card_no: Optional[str] = None
    account_name: Optional[str] = None
    account_no: Optional[str] = None
    ifsc_code: Optional[str] = None


@dataclass(frozen=True)
class ItemCommand:
    """User intent for creating an item with its opening stock."""

    item_name: str
    rate_per_kg: Decimal
    stock: Decimal = Decimal("0")


@dataclass(frozen=True)
class SalesLineCommand:
    """One requested sales line; ``rate`` defaults to the item's rate."""

    item_id: str
    weight: Decimal
    rate: Optional[Decimal] = None


@dataclass(frozen=True)
class SalesInvoiceCommand:
    """User intent for creating or editing a sales invoice."""

    farmer_id: str
    lines: Sequence[SalesLineCommand]
    advance: Decimal = Decimal("0")
    timestamp: Optional[datetime] = None


@dataclass(frozen=True)
class PurchaseLineCommand:
    """One requested purchase line with its weighbridge readings."""

    item_id: str
    gross_weight: Decimal
    tare_weight: Decimal = Decimal("0")
    mud_deduction_percent: Decimal = Decimal("0")
    rate: Optional[Decimal] = None


@dataclass(frozen=True)
class PurchaseInvoiceCommand:
    """User intent for creating or editing a purchase invoice."""

    farmer_id: str
    lines: Sequence[PurchaseLineCommand]
    advance: Decimal = Decimal("0")
    timestamp: Optional[datetime] = None


@dataclass(frozen=True)
class CashTransactionCommand:
    """User intent for recording money exchanged with a farmer."""

    farmer_id: str
    transaction_type: CashTransactionType
    amount: Decimal
    payment_method: PaymentMethod = PaymentMethod.CASH
    remarks: Optional[str] = None
    timestamp: Optional[datetime] = None


@dataclass(frozen=True)
class ExpenseCommand:
    """User intent for a company-level expense or cash movement."""

    expense_type: str
    amount: Decimal
    payment_method: PaymentMethod = PaymentMethod.CASH
    remarks: Optional[str] = None
    timestamp: Optional[datetime] = None


def _resolve_timestamp(candidate: Optional[datetime]) -> datetime:
    """Return ``candidate`` or the current local time."""

    return candidate if candidate is not None else datetime.now()


# ---------------------------------------------------------------------------
# Caches
# ---------------------------------------------------------------------------

# bucket name -> (loader, id attribute)
_COLLECTIONS: Dict[str, Tuple[Callable[[Workbook], Iterable[Any]], str]] = {
    "companies": (lambda wb: data_manager.iter_companies(wb), "company_id"),
    "farmers": (lambda wb: data_manager.iter_farmers(wb), "farmer_id"),
    "items": (lambda wb: data_manager.iter_items(wb), "item_id"),
    "sales_invoices": (lambda wb: data_manager.iter_sales_invoices(wb), "invoice_id"),
    "purchase_invoices": (lambda wb: data_manager.iter_purchase_invoices(wb), "purchase_id"),
    "cash_transactions": (lambda wb: data_manager.iter_cash_transactions(wb), "transaction_id"),
    "expenses": (lambda wb: data_manager.iter_expenses(wb), "expense_id"),
}


def _get_cache_bucket(context: RuntimeContext, name: str) -> Dict[str, Any]:
    """Return a mutable cache bucket dedicated to the supplied name.

    Args:
        context (RuntimeContext): Runtime state carrying the shared cache
            dictionary.
        name (str): Logical bucket name to fetch or create.

    Returns:
        dict[str, Any]: Mutable mapping used to cache derived collections for
            one record type.
    """

    bucket = context._cache.get(name)
    if bucket is None:
        log.debug("Initializing cache bucket '%s'", name)
        bucket = {}
        context._cache[name] = bucket
    return bucket


def _invalidate_cache(context: RuntimeContext, *names: str) -> None:
    """Evict one or more cache buckets after mutating workbook state.

    Missing buckets are ignored.
    """

    if not names:
        return

    log.debug("Invalidating cache buckets: %s", ", ".join(names))

    for name in names:
        context._cache.pop(name, None)


def _ensure_cache(context: RuntimeContext, name: str) -> Dict[str, Any]:
    """Populate the named cache bucket on demand.

    The bucket stores ``all`` records in sheet order, the ``scoped`` subset
    belonging to the selected company, and a ``by_id`` lookup over the scoped
    subset. Companies are never scoped.

    Args:
        context (RuntimeContext): Runtime state used to access the workbook
            and shared caches.
        name (str): One of the keys of ``_COLLECTIONS``.

    Returns:
        dict[str, Any]: The populated bucket.
    """

    bucket = _get_cache_bucket(context, name)
    if "all" not in bucket:
        loader, id_attribute = _COLLECTIONS[name]
        records = list(loader(context.workbook))
        company_id = context.session.company_id
        if name == "companies" or company_id is None:
            scoped = records
        else:
            scoped = [record for record in records if record.company_id == company_id]
        bucket["all"] = records
        bucket["scoped"] = scoped
        bucket["by_id"] = {getattr(record, id_attribute): record for record in scoped}
        log.debug("Populated %s cache with %d entries (%d in scope)", name, len(records), len(scoped))
    return bucket


# ---------------------------------------------------------------------------
# Context lifecycle
# ---------------------------------------------------------------------------


def load_runtime_context(config_path: Optional[Path] = None) -> RuntimeContext:
    """Load configuration settings, the company session, and a live workbook.

    Args:
        config_path (Path | None): Optional override path for the configuration
            file. When omitted the data layer performs its upward search from
            the current working directory.

    Returns:
        RuntimeContext: Fully populated context whose session mirrors the
            ``[Session]`` section of ``config.ini``.

    Raises:
        FileNotFoundError: If the configuration file or workbook cannot be
            located.
        KeyError: When mandatory configuration options are missing.
    """
    located_config = data_manager.find_config_file(config_path)
    resolved_config = Path(located_config).expanduser().resolve()
    parser = data_manager.read_config(resolved_config)
    settings = data_manager.parse_settings(parser, base_path=resolved_config.parent)
    workbook = data_manager.open_workbook(settings.data_file)
    session = CompanySession(company_id=settings.company_id, financial_year=settings.financial_year)
    log.info(
        "Loaded runtime context for workbook '%s' (company=%s, year=%s)",
        settings.data_file,
        session.company_id,
        session.financial_year,
    )
    return RuntimeContext(settings=settings, workbook=workbook, config_path=resolved_config, session=session)


def ensure_schema_version(context: RuntimeContext) -> None:
    """Validate workbook compatibility before mutating state.

    Raises:
        RuntimeError: If the schema version declared in the configuration does
            not match ``EXPECTED_SCHEMA_VERSION``.
    """
    if context.settings.schema_version != EXPECTED_SCHEMA_VERSION:
        log.error(
            "Workbook schema mismatch: expected %s, found %s",
            EXPECTED_SCHEMA_VERSION,
            context.settings.schema_version,
        )
        raise RuntimeError(
            "Workbook schema mismatch: expected %s, found %s"
            % (EXPECTED_SCHEMA_VERSION, context.settings.schema_version)
        )

    log.debug("Schema version '%s' validated", context.settings.schema_version)


def persist_context(context: RuntimeContext) -> None:
    """Persist any in-memory workbook changes to the configured data file."""
    data_manager.save_workbook(
        context.workbook,
        destination=context.settings.data_file,
    )
    log.info("Persisted workbook '%s'", context.settings.data_file)


def refresh_context(context: RuntimeContext) -> RuntimeContext:
    """Reload the workbook to discard unsaved modifications.

    The session is kept; caches start empty.

    Raises:
        FileNotFoundError: If the backing workbook cannot be reloaded.
    """
    workbook = data_manager.refresh_workbook(context.settings.data_file)
    log.info("Reloaded workbook '%s'", context.settings.data_file)
    return replace(context, workbook=workbook, _cache={})


# ---------------------------------------------------------------------------
# Validation helpers
# ---------------------------------------------------------------------------


def _as_decimal(value: Any, field_name: str) -> Decimal:
    try:
        return data_manager.to_decimal(value, field=field_name)
    except ValueError as exc:
        log.error("Numeric validation failed for %s: %r", field_name, value)
        raise ValidationError(f"{field_name} must be a number, got {value!r}") from exc


def require_text(value: Optional[str], field_name: str) -> str:
    """Return ``value`` stripped, rejecting blanks.

    Raises:
        ValidationError: If ``value`` is ``None`` or only whitespace.
    """
    text = (value or "").strip()
    if not text:
        log.error("Required field '%s' is blank", field_name)
        raise ValidationError(f"{field_name} is required")
    return text


def require_positive_quantity(quantity: Any, field_name: str = "Quantity") -> Decimal:
    """Validate that a quantity is strictly positive and return it as ``Decimal``.

    Raises:
        ValidationError: If ``quantity`` is not numeric, zero, or negative.
    """
    value = _as_decimal(quantity, field_name)
    if value <= Decimal("0"):
        log.error("Quantity validation failed for %s: %s", field_name, value)
        raise ValidationError(f"{field_name} must be greater than zero")
    return value


def require_nonnegative_money(amount: Any, field_name: str = "Amount") -> Decimal:
    """Validate that a monetary value is zero or positive and return it.

    Raises:
        ValidationError: If ``amount`` is not numeric or is negative.
    """
    value = _as_decimal(amount, field_name)
    if value < Decimal("0"):
        log.error("Monetary value validation failed for %s: %s", field_name, value)
        raise ValidationError(f"{field_name} must be zero or positive")
    return value


def _require_company(context: RuntimeContext) -> str:
    if context.session.company_id is None:
        log.error("Write attempted without a selected company")
        raise BusinessRuleViolation("No company selected; run select-company first")
    return context.session.company_id


def _validate_financial_year(label: str) -> str:
    text = require_text(label, "Financial year")
    match = _FINANCIAL_YEAR_PATTERN.match(text)
    if match is None or int(match.group(2)) != int(match.group(1)) + 1:
        raise ValidationError(f"Financial year must look like 2025-2026, got {label!r}")
    return text


# ---------------------------------------------------------------------------
# Companies and session
# ---------------------------------------------------------------------------


def list_companies(context: RuntimeContext) -> List[data_manager.CompanyRow]:
    """Return every company in sheet order."""
    return list(_ensure_cache(context, "companies")["all"])


def get_company(context: RuntimeContext, company_id: str) -> data_manager.CompanyRow:
    """Resolve a company by id.

    Raises:
        MissingReferenceError: If ``company_id`` is unknown.
    """
    try:
        return _ensure_cache(context, "companies")["by_id"][company_id]
    except KeyError as exc:
        log.warning("Company lookup failed for id '%s'", company_id)
        raise MissingReferenceError(f"Unknown company id: {company_id}") from exc


def add_company(
    context: RuntimeContext,
    name: str,
    address: str = "",
    financial_years: Sequence[str] = (),
) -> data_manager.CompanyRow:
    """Create a company with an optional list of financial years.

    Raises:
        ValidationError: If the name is blank or a financial year label is
            malformed.
    """
    company_name = require_text(name, "Company name")
    years = tuple(dict.fromkeys(_validate_financial_year(label) for label in financial_years))
    company_id = next_sequential_id(COMPANY_ID_PREFIX, (row.company_id for row in list_companies(context)))
    record = data_manager.CompanyRow(
        company_id=company_id,
        name=company_name,
        address=(address or "").strip(),
        financial_years=years,
    )
    data_manager.append_company(context.workbook, record)
    _invalidate_cache(context, "companies")
    log.info("Added company '%s' (%s)", company_id, company_name)
    return record


def add_financial_year(context: RuntimeContext, company_id: str, label: str) -> data_manager.CompanyRow:
    """Append a financial year label to a company; existing labels are kept once.

    Raises:
        MissingReferenceError: If the company is unknown.
        ValidationError: If ``label`` is malformed.
    """
    company = get_company(context, company_id)
    year = _validate_financial_year(label)
    if year in company.financial_years:
        return company
    updated = replace(company, financial_years=company.financial_years + (year,))
    data_manager.update_record(
        context.workbook,
        data_manager.COMPANIES_SHEET,
        "CompanyID",
        company_id,
        field_values={"FinancialYears": data_manager.serialize_company(updated)[3]},
    )
    _invalidate_cache(context, "companies")
    log.info("Added financial year '%s' to company '%s'", year, company_id)
    return updated


def select_company(
    context: RuntimeContext,
    company_id: str,
    financial_year: Optional[str] = None,
) -> RuntimeContext:
    """Return a new context scoped to ``company_id``.

    When ``financial_year`` is omitted the company's latest year is selected.
    The session is not written to ``config.ini``; call :func:`save_session`.

    Raises:
        MissingReferenceError: If the company is unknown.
        ValidationError: If ``financial_year`` is not one of the company's
            years.
    """
    company = get_company(context, company_id)
    if financial_year is None:
        year = company.financial_years[-1] if company.financial_years else None
    elif financial_year in company.financial_years:
        year = financial_year
    else:
        raise ValidationError(f"Company '{company_id}' has no financial year {financial_year!r}")
    log.info("Selected company '%s' (year=%s)", company_id, year)
    return replace(context, session=CompanySession(company_id=company_id, financial_year=year), _cache={})


def select_financial_year(context: RuntimeContext, financial_year: str) -> RuntimeContext:
    """Return a new context with another financial year of the selected company."""
    company_id = _require_company(context)
    return select_company(context, company_id, financial_year)


def save_session(context: RuntimeContext) -> None:
    """Write the context's session into the ``[Session]`` section of ``config.ini``.

    Raises:
        RuntimeError: If the context was not loaded from a config file.
    """
    if context.config_path is None:
        raise RuntimeError("Cannot save session: context has no config file")
    data_manager.write_session(
        context.config_path,
        company_id=context.session.company_id,
        financial_year=context.session.financial_year,
    )
    log.info("Saved session (company=%s, year=%s)", context.session.company_id, context.session.financial_year)


# ---------------------------------------------------------------------------
# Listings and lookups
# ---------------------------------------------------------------------------


def list_farmers(context: RuntimeContext) -> List[data_manager.FarmerRow]:
    """Return the selected company's farmers in sheet order."""
    return list(_ensure_cache(context, "farmers")["scoped"])


def list_items(context: RuntimeContext) -> List[data_manager.ItemRow]:
    """Return the selected company's items in sheet order."""
    return list(_ensure_cache(context, "items")["scoped"])


def list_sales_invoices(context: RuntimeContext) -> List[data_manager.SalesInvoiceRow]:
    """Return the selected company's sales invoices in sheet order."""
    return list(_ensure_cache(context, "sales_invoices")["scoped"])


def list_purchase_invoices(context: RuntimeContext) -> List[data_manager.PurchaseInvoiceRow]:
    return list(_ensure_cache(context, "purchase_invoices")["scoped"])


def list_cash_transactions(context: RuntimeContext) -> List[data_manager.CashTransactionRow]:
    return list(_ensure_cache(context, "cash_transactions")["scoped"])


def list_expenses(context: RuntimeContext) -> List[data_manager.ExpenseRow]:
    return list(_ensure_cache(context, "expenses")["scoped"])


def _lookup(context: RuntimeContext, bucket_name: str, label: str, record_id: str) -> Any:
    try:
        return _ensure_cache(context, bucket_name)["by_id"][record_id]
    except KeyError as exc:
        log.warning("%s lookup failed for id '%s'", label.capitalize(), record_id)
        raise MissingReferenceError(f"Unknown {label} id: {record_id}") from exc


def get_farmer(context: RuntimeContext, farmer_id: str) -> data_manager.FarmerRow:
    """Resolve a farmer of the selected company by id.

    Raises:
        MissingReferenceError: If ``farmer_id`` is unknown.
    """
    return _lookup(context, "farmers", "farmer", farmer_id)


def get_item(context: RuntimeContext, item_id: str) -> data_manager.ItemRow:
    """Resolve an item of the selected company by id.

    Raises:
        MissingReferenceError: If ``item_id`` is unknown.
    """
    return _lookup(context, "items", "item", item_id)


def get_sales_invoice(context: RuntimeContext, invoice_id: str) -> data_manager.SalesInvoiceRow:
    return _lookup(context, "sales_invoices", "sales invoice", invoice_id)


def get_purchase_invoice(context: RuntimeContext, purchase_id: str) -> data_manager.PurchaseInvoiceRow:
    return _lookup(context, "purchase_invoices", "purchase invoice", purchase_id)


# ---------------------------------------------------------------------------
# Farmers and items
# ---------------------------------------------------------------------------


def _build_farmer(farmer_id: str, company_id: str, command: FarmerCommand) -> data_manager.FarmerRow:
    def optional(value: Optional[str]) -> Optional[str]:
        text = (value or "").strip()
        return text or None

    return data_manager.FarmerRow(
        farmer_id=farmer_id,
        company_id=company_id,
        farmer_name=require_text(command.farmer_name, "Farmer name"),
        fathers_name=optional(command.fathers_name),
        village=optional(command.village),
        mobile_no=optional(command.mobile_no),
        aadhar_card_no=optional(command.aadhar_card_no),
        account_name=optional(command.account_name),
        account_no=optional(command.account_no),
        ifsc_code=optional(command.ifsc_code),
    )


def add_farmer(context: RuntimeContext, command: FarmerCommand) -> data_manager.FarmerRow:
    """Register a farmer under the selected company.

    The id is the next ``F``-prefixed sequence across all companies.

    Raises:
        BusinessRuleViolation: If no company is selected.
        ValidationError: If the farmer name is blank.
    """
    company_id = _require_company(context)
    farmer_id = next_sequential_id(
        FARMER_ID_PREFIX, (row.farmer_id for row in _ensure_cache(context, "farmers")["all"])
    )
    record = _build_farmer(farmer_id, company_id, command)
    data_manager.append_farmer(context.workbook, record)
    _invalidate_cache(context, "farmers")
    log.info("Added farmer '%s' (%s)", farmer_id, record.farmer_name)
    return record


def update_farmer(context: RuntimeContext, farmer_id: str, command: FarmerCommand) -> data_manager.FarmerRow:
    """Replace a farmer's details.

    Snapshots already embedded in invoices are left as they were.
    """
    existing = get_farmer(context, farmer_id)
    record = _build_farmer(farmer_id, existing.company_id, command)
    data_manager.update_record(
        context.workbook,
        data_manager.FARMERS_SHEET,
        "FarmerID",
        farmer_id,
        field_values={
            "FarmerName": record.farmer_name,
            "FathersName": record.fathers_name,
            "Village": record.village,
            "MobileNo": record.mobile_no,
            "AadharCardNo": record.aadhar_card_no,
            "AccountName": record.account_name,
            "AccountNo": record.account_no,
            "IfscCode": record.ifsc_code,
        },
    )
    _invalidate_cache(context, "farmers")
    log.info("Updated farmer '%s'", farmer_id)
    return record


def delete_farmer(context: RuntimeContext, farmer_id: str) -> None:
    """Delete a farmer; invoices and transactions that reference it remain."""
    get_farmer(context, farmer_id)
    data_manager.delete_records(context.workbook, data_manager.FARMERS_SHEET, "FarmerID", farmer_id)
    _invalidate_cache(context, "farmers")
    log.info("Deleted farmer '%s'", farmer_id)


def add_item(context: RuntimeContext, command: ItemCommand) -> data_manager.ItemRow:
    """Register an item with its rate and opening stock.

    Raises:
        BusinessRuleViolation: If no company is selected.
        ValidationError: If the name is blank, the rate negative, or a value
            is not numeric.
    """
    company_id = _require_company(context)
    item_id = next_sequential_id(ITEM_ID_PREFIX, (row.item_id for row in _ensure_cache(context, "items")["all"]))
    record = data_manager.ItemRow(
        item_id=item_id,
        company_id=company_id,
        item_name=require_text(command.item_name, "Item name"),
        rate_per_kg=require_nonnegative_money(command.rate_per_kg, "Rate per kg"),
        stock=_as_decimal(command.stock, "Stock"),
    )
    data_manager.append_item(context.workbook, record)
    _invalidate_cache(context, "items")
    log.info("Added item '%s' (%s, stock=%s)", item_id, record.item_name, record.stock)
    return record


def update_item(
    context: RuntimeContext,
    item_id: str,
    *,
    item_name: Optional[str] = None,
    rate_per_kg: Optional[Decimal] = None,
) -> data_manager.ItemRow:
    """Rename an item or change its rate. Stock only moves through invoices."""
    existing = get_item(context, item_id)
    updated = replace(
        existing,
        item_name=require_text(item_name, "Item name") if item_name is not None else existing.item_name,
        rate_per_kg=(
            require_nonnegative_money(rate_per_kg, "Rate per kg") if rate_per_kg is not None else existing.rate_per_kg
        ),
    )
    data_manager.update_record(
        context.workbook,
        data_manager.ITEMS_SHEET,
        "ItemID",
        item_id,
        field_values={"ItemName": updated.item_name, "RatePerKg": updated.rate_per_kg},
    )
    _invalidate_cache(context, "items")
    log.info("Updated item '%s'", item_id)
    return updated


def delete_item(context: RuntimeContext, item_id: str) -> None:
    """Delete an item; invoice lines that reference it remain."""
    get_item(context, item_id)
    data_manager.delete_records(context.workbook, data_manager.ITEMS_SHEET, "ItemID", item_id)
    _invalidate_cache(context, "items")
    log.info("Deleted item '%s'", item_id)


# ---------------------------------------------------------------------------
# Invoices
# ---------------------------------------------------------------------------


def _snapshot(context: RuntimeContext, farmer_id: str) -> data_manager.FarmerSnapshot:
    if not (farmer_id or "").strip():
        log.error("Invoice submitted without a farmer")
        raise ValidationError("A farmer must be selected")
    farmer = get_farmer(context, farmer_id)
    return data_manager.FarmerSnapshot(
        farmer_id=farmer.farmer_id,
        farmer_name=farmer.farmer_name,
        village=farmer.village,
        mobile_no=farmer.mobile_no,
    )


def _require_lines(lines: Sequence[Any]) -> None:
    if not lines:
        log.error("Invoice submitted without lines")
        raise ValidationError("An invoice needs at least one line")


def build_sales_invoice(
    context: RuntimeContext,
    command: SalesInvoiceCommand,
    *,
    invoice_id: str,
    timestamp: datetime,
) -> data_manager.SalesInvoiceRow:
    """Materialize a :class:`SalesInvoiceCommand` into a DAL invoice row.

    Line rates default to the item's current ``rate_per_kg``. Amounts are
    ``weight * rate`` with no rounding; ``total_amount`` is their sum and
    ``due`` is ``total_amount - advance``.

    Raises:
        ValidationError: For a missing farmer, no lines, non-positive weights,
            or a negative rate or advance.
        MissingReferenceError: If the farmer or an item is unknown.
    """
    farmer = _snapshot(context, command.farmer_id)
    _require_lines(command.lines)
    lines = []
    for line in command.lines:
        item = get_item(context, line.item_id)
        weight = require_positive_quantity(line.weight, "Weight")
        rate = require_nonnegative_money(line.rate, "Rate") if line.rate is not None else item.rate_per_kg
        lines.append(
            data_manager.SalesLineRow(
                item_id=item.item_id,
                item_name=item.item_name,
                weight=weight,
                rate=rate,
                amount=weight * rate,
            )
        )
    advance = require_nonnegative_money(command.advance, "Advance")
    total = sum((line.amount for line in lines), Decimal("0"))
    return data_manager.SalesInvoiceRow(
        invoice_id=invoice_id,
        company_id=context.session.company_id,
        invoice_no=invoice_id,
        invoice_date=timestamp.date(),
        invoice_time=timestamp.time().replace(microsecond=0),
        farmer=farmer,
        lines=tuple(lines),
        total_amount=total,
        advance=advance,
        due=total - advance,
    )


def build_purchase_invoice(
    context: RuntimeContext,
    command: PurchaseInvoiceCommand,
    *,
    purchase_id: str,
    timestamp: datetime,
) -> data_manager.PurchaseInvoiceRow:
    """Materialize a :class:`PurchaseInvoiceCommand` into a DAL invoice row.

    ``net = gross - tare`` and ``final = net * (1 - mud / 100)``; the amount
    is ``final * rate``.

    Raises:
        ValidationError: For a missing farmer, no lines, a gross weight that
            is not positive, a tare that leaves no net weight, a mud deduction
            outside ``[0, 100)``, or negative money values.
        MissingReferenceError: If the farmer or an item is unknown.
    """
    farmer = _snapshot(context, command.farmer_id)
    _require_lines(command.lines)
    lines = []
    for line in command.lines:
        item = get_item(context, line.item_id)
        gross = require_positive_quantity(line.gross_weight, "Gross weight")
        tare = require_nonnegative_money(line.tare_weight, "Tare weight")
        mud = require_nonnegative_money(line.mud_deduction_percent, "Mud deduction")
        if mud >= 100:
            raise ValidationError("Mud deduction must be below 100 percent")
        net = gross - tare
        if net <= 0:
            raise ValidationError("Tare weight must be less than gross weight")
        final = net * (1 - mud / 100)
        rate = require_nonnegative_money(line.rate, "Rate") if line.rate is not None else item.rate_per_kg
        lines.append(
            data_manager.PurchaseLineRow(
                item_id=item.item_id,
                item_name=item.item_name,
                gross_weight=gross,
                tare_weight=tare,
                mud_deduction_percent=mud,
                net_weight=net,
                final_weight=final,
                rate=rate,
                amount=final * rate,
            )
        )
    advance = require_nonnegative_money(command.advance, "Advance")
    total = sum((line.amount for line in lines), Decimal("0"))
    return data_manager.PurchaseInvoiceRow(
        purchase_id=purchase_id,
        company_id=context.session.company_id,
        purchase_no=purchase_id,
        purchase_date=timestamp.date(),
        purchase_time=timestamp.time().replace(microsecond=0),
        farmer=farmer,
        lines=tuple(lines),
        total_amount=total,
        advance=advance,
        due=total - advance,
    )


def _check_invariants(invoice: stock.Invoice) -> None:
    if not ledger.invoice_is_consistent(invoice):
        log.error("Invoice failed arithmetic checks: %s", invoice)
        raise BusinessRuleViolation("Invoice totals do not add up")


def _check_stock(context: RuntimeContext, deltas: Sequence[stock.StockDelta]) -> None:
    items = _ensure_cache(context, "items")["by_id"]
    shortfalls = stock.find_stock_shortfalls(items, deltas)
    if shortfalls:
        for shortfall in shortfalls:
            log.warning(
                "Insufficient stock for item '%s': required %s, available %s",
                shortfall.item_id,
                shortfall.required,
                shortfall.available,
            )
        raise InsufficientStockError(shortfalls)


def _apply_stock(context: RuntimeContext, deltas: Sequence[stock.StockDelta]) -> None:
    """Write each delta through the DAL stock primitive, one call per line."""
    known = {row.item_id for row in _ensure_cache(context, "items")["all"]}
    for delta in deltas:
        if delta.item_id not in known:
            log.warning("Skipping stock change for unknown item '%s'", delta.item_id)
            continue
        new_stock = data_manager.adjust_item_stock(context.workbook, delta.item_id, delta.quantity)
        log.debug("Stock of '%s' changed by %s to %s", delta.item_id, delta.quantity, new_stock)
    _invalidate_cache(context, "items")


def record_sales_invoice(context: RuntimeContext, command: SalesInvoiceCommand) -> data_manager.SalesInvoiceRow:
    """Validate a sale, deduct stock, and append the invoice.

    The invoice number is the next ``S-YYYYMMDD-NNN`` for the invoice date and
    doubles as its id. Stock is checked for every item before anything is
    written, so a rejected sale leaves the workbook untouched. Stock changes
    and the invoice write are separate steps.

    Args:
        context (RuntimeContext): Runtime context providing workbook access and
            caches.
        command (SalesInvoiceCommand): Structured intent describing the sale.

    Returns:
        data_manager.SalesInvoiceRow: The invoice as written.

    Raises:
        BusinessRuleViolation: If no company is selected.
        ValidationError: If input is malformed.
        InsufficientStockError: If an item holds less stock than the sale
            removes.
        MissingReferenceError: If the farmer or an item is unknown.
    """
    _require_company(context)
    timestamp = _resolve_timestamp(command.timestamp)
    invoice_id = next_invoice_number(
        SALES_INVOICE_PREFIX,
        (row.invoice_no for row in _ensure_cache(context, "sales_invoices")["all"]),
        on=timestamp.date(),
    )
    invoice = build_sales_invoice(context, command, invoice_id=invoice_id, timestamp=timestamp)
    _check_invariants(invoice)
    deltas = stock.invoice_stock_delta(invoice, StockDirection.APPLY)
    _check_stock(context, deltas)

    _apply_stock(context, deltas)
    data_manager.append_sales_invoice(context.workbook, invoice)
    _invalidate_cache(context, "sales_invoices")
    log.info(
        "Recorded sales invoice '%s' for farmer '%s' (total=%s, advance=%s)",
        invoice.invoice_no,
        invoice.farmer.farmer_id,
        invoice.total_amount,
        invoice.advance,
    )
    return invoice


def update_sales_invoice(
    context: RuntimeContext,
    invoice_id: str,
    command: SalesInvoiceCommand,
) -> data_manager.SalesInvoiceRow:
    """Replace an existing sales invoice, keeping its number.

    Stock availability is judged after putting back the old invoice's
    weights. The old quantities are then reverted and the new ones applied.
    The edited invoice keeps its original date and time unless the command
    carries a timestamp, and it moves to the end of the sheet.

    Raises:
        MissingReferenceError: If the invoice, farmer, or an item is unknown.
        InsufficientStockError: If the edited lines need more stock than is
            available once the old lines are put back.
    """
    previous = get_sales_invoice(context, invoice_id)
    timestamp = command.timestamp or datetime.combine(previous.invoice_date, previous.invoice_time)
    invoice = build_sales_invoice(context, command, invoice_id=invoice_id, timestamp=timestamp)
    invoice = replace(invoice, company_id=previous.company_id)
    _check_invariants(invoice)
    revert = stock.invoice_stock_delta(previous, StockDirection.REVERT)
    apply = stock.invoice_stock_delta(invoice, StockDirection.APPLY)
    _check_stock(context, [*revert, *apply])

    _apply_stock(context, revert)
    _apply_stock(context, apply)
    data_manager.delete_sales_invoice(context.workbook, invoice_id)
    data_manager.append_sales_invoice(context.workbook, invoice)
    _invalidate_cache(context, "sales_invoices")
    log.info("Updated sales invoice '%s' (total=%s)", invoice_id, invoice.total_amount)
    return invoice


def delete_sales_invoice(context: RuntimeContext, invoice_id: str) -> None:
    """Delete a sales invoice and return its weights to stock."""
    previous = get_sales_invoice(context, invoice_id)
    _apply_stock(context, stock.invoice_stock_delta(previous, StockDirection.REVERT))
    data_manager.delete_sales_invoice(context.workbook, invoice_id)
    _invalidate_cache(context, "sales_invoices")
    log.info("Deleted sales invoice '%s'", invoice_id)


def record_purchase_invoice(
    context: RuntimeContext,
    command: PurchaseInvoiceCommand,
) -> data_manager.PurchaseInvoiceRow:
    """Validate a purchase, add final weights to stock, and append the invoice.

    Raises:
        BusinessRuleViolation: If no company is selected.
        ValidationError: If input is malformed.
        MissingReferenceError: If the farmer or an item is unknown.
    """
    _require_company(context)
    timestamp = _resolve_timestamp(command.timestamp)
    purchase_id = next_invoice_number(
        PURCHASE_INVOICE_PREFIX,
        (row.purchase_no for row in _ensure_cache(context, "purchase_invoices")["all"]),
        on=timestamp.date(),
    )
    invoice = build_purchase_invoice(context, command, purchase_id=purchase_id, timestamp=timestamp)
    _check_invariants(invoice)

    _apply_stock(context, stock.invoice_stock_delta(invoice, StockDirection.APPLY))
    data_manager.append_purchase_invoice(context.workbook, invoice)
    _invalidate_cache(context, "purchase_invoices")
    log.info(
        "Recorded purchase invoice '%s' for farmer '%s' (total=%s, advance=%s)",
        invoice.purchase_no,
        invoice.farmer.farmer_id,
        invoice.total_amount,
        invoice.advance,
    )
    return invoice


def update_purchase_invoice(
    context: RuntimeContext,
    purchase_id: str,
    command: PurchaseInvoiceCommand,
) -> data_manager.PurchaseInvoiceRow:
    """Replace an existing purchase invoice, keeping its number.

    Old final weights are taken out of stock before the new ones are added.
    """
    previous = get_purchase_invoice(context, purchase_id)
    timestamp = command.timestamp or datetime.combine(previous.purchase_date, previous.purchase_time)
    invoice = build_purchase_invoice(context, command, purchase_id=purchase_id, timestamp=timestamp)
    invoice = replace(invoice, company_id=previous.company_id)
    _check_invariants(invoice)

    _apply_stock(context, stock.invoice_stock_delta(previous, StockDirection.REVERT))
    _apply_stock(context, stock.invoice_stock_delta(invoice, StockDirection.APPLY))
    data_manager.delete_purchase_invoice(context.workbook, purchase_id)
    data_manager.append_purchase_invoice(context.workbook, invoice)
    _invalidate_cache(context, "purchase_invoices")
    log.info("Updated purchase invoice '%s' (total=%s)", purchase_id, invoice.total_amount)
    return invoice


def delete_purchase_invoice(context: RuntimeContext, purchase_id: str) -> None:
    """Delete a purchase invoice and take its final weights out of stock."""
    previous = get_purchase_invoice(context, purchase_id)
    _apply_stock(context, stock.invoice_stock_delta(previous, StockDirection.REVERT))
    data_manager.delete_purchase_invoice(context.workbook, purchase_id)
    _invalidate_cache(context, "purchase_invoices")
    log.info("Deleted purchase invoice '%s'", purchase_id)


# ---------------------------------------------------------------------------
# Cash transactions and expenses
# ---------------------------------------------------------------------------


def record_cash_transaction(
    context: RuntimeContext,
    command: CashTransactionCommand,
) -> data_manager.CashTransactionRow:
    """Record a payment received from or made to a farmer.

    Raises:
        BusinessRuleViolation: If no company is selected.
        ValidationError: If the farmer is missing, the amount is not positive,
            or the type or method is unsupported.
        MissingReferenceError: If the farmer is unknown.
    """
    company_id = _require_company(context)
    farmer = _snapshot(context, command.farmer_id)
    amount = require_positive_quantity(command.amount, "Amount")
    try:
        transaction_type = CashTransactionType(command.transaction_type)
        method = PaymentMethod(command.payment_method)
    except ValueError as exc:
        raise ValidationError(str(exc)) from exc
    if method is PaymentMethod.NOT_APPLICABLE:
        raise ValidationError("Farmer payments must be made in Cash or through the Bank")

    timestamp = _resolve_timestamp(command.timestamp)
    transaction_id = next_sequential_id(
        CASH_TRANSACTION_ID_PREFIX,
        (row.transaction_id for row in _ensure_cache(context, "cash_transactions")["all"]),
    )
    record = data_manager.CashTransactionRow(
        transaction_id=transaction_id,
        company_id=company_id,
        transaction_type=transaction_type.value,
        farmer_id=farmer.farmer_id,
        farmer_name=farmer.farmer_name,
        amount=amount,
        payment_method=method.value,
        remarks=(command.remarks or "").strip() or None,
        txn_date=timestamp.date(),
        txn_time=timestamp.time().replace(microsecond=0),
    )
    data_manager.append_cash_transaction(context.workbook, record)
    _invalidate_cache(context, "cash_transactions")
    log.info(
        "Recorded %s '%s' for farmer '%s' (amount=%s, method=%s)",
        record.transaction_type,
        transaction_id,
        farmer.farmer_id,
        amount,
        record.payment_method,
    )
    return record


def delete_cash_transaction(context: RuntimeContext, transaction_id: str) -> None:
    """Delete a farmer cash transaction.

    Raises:
        MissingReferenceError: If no transaction carries ``transaction_id``.
    """
    _lookup(context, "cash_transactions", "cash transaction", transaction_id)
    data_manager.delete_records(
        context.workbook, data_manager.CASH_TRANSACTIONS_SHEET, "TransactionID", transaction_id
    )
    _invalidate_cache(context, "cash_transactions")
    log.info("Deleted cash transaction '%s'", transaction_id)


def record_expense(context: RuntimeContext, command: ExpenseCommand) -> data_manager.ExpenseRow:
    """Record a company-level expense or a cash movement to or from outside.

    Raises:
        BusinessRuleViolation: If no company is selected.
        ValidationError: If the type is blank, the amount is not positive, or
            the payment method is unsupported.
    """
    company_id = _require_company(context)
    expense_type = require_text(command.expense_type, "Expense type")
    amount = require_positive_quantity(command.amount, "Amount")
    try:
        method = PaymentMethod(command.payment_method)
    except ValueError as exc:
        raise ValidationError(str(exc)) from exc

    timestamp = _resolve_timestamp(command.timestamp)
    expense_id = next_sequential_id(
        EXPENSE_ID_PREFIX, (row.expense_id for row in _ensure_cache(context, "expenses")["all"])
    )
    record = data_manager.ExpenseRow(
        expense_id=expense_id,
        company_id=company_id,
        expense_type=expense_type,
        amount=amount,
        payment_method=method.value,
        expense_date=timestamp.date(),
        expense_time=timestamp.time().replace(microsecond=0),
        remarks=(command.remarks or "").strip() or None,
    )
    data_manager.append_expense(context.workbook, record)
    _invalidate_cache(context, "expenses")
    log.info("Recorded expense '%s' (%s, amount=%s)", expense_id, expense_type, amount)
    return record


def delete_expense(context: RuntimeContext, expense_id: str) -> None:
    """Delete a company expense entry.

    Raises:
        MissingReferenceError: If no expense carries ``expense_id``.
    """
    _lookup(context, "expenses", "expense", expense_id)
    data_manager.delete_records(context.workbook, data_manager.EXPENSES_SHEET, "ExpenseID", expense_id)
    _invalidate_cache(context, "expenses")
    log.info("Deleted expense '%s'", expense_id)


# ---------------------------------------------------------------------------
# Reports
# ---------------------------------------------------------------------------


def farmer_balances(context: RuntimeContext) -> Dict[str, Decimal]:
    """Compute the due balance of every farmer of the selected company.

    Returns:
        dict[str, Decimal]: Balance per farmer id; positive means the farmer
            owes the business.
    """
    balances = ledger.compute_farmer_balances(
        list_farmers(context),
        list_sales_invoices(context),
        list_purchase_invoices(context),
        list_cash_transactions(context),
    )
    log.debug("Calculated balances for %d farmers", len(balances))
    return balances


def farmer_statement(
    context: RuntimeContext,
    farmer_id: str,
    date_range: Optional[ledger.DateRange] = None,
) -> List[ledger.StatementEntry]:
    """Build one farmer's chronological statement.

    Works for deleted farmers too, since invoices keep their own snapshot.
    """
    return ledger.build_statement(
        farmer_id,
        list_sales_invoices(context),
        list_purchase_invoices(context),
        list_cash_transactions(context),
        date_range,
    )


def cash_flow(context: RuntimeContext) -> ledger.CashFlowSummary:
    """Summarize cash in hand from the selected company's expense entries."""
    return ledger.compute_cash_flow(list_expenses(context))


def item_stock(context: RuntimeContext) -> Dict[str, Decimal]:
    """Return current stock per item id."""
    return {item.item_id: item.stock for item in list_items(context)}


def item_movement(
    context: RuntimeContext,
    date_range: Optional[ledger.DateRange] = None,
) -> List[ledger.ItemMovement]:
    """Summarize kilograms bought and sold per item."""
    return ledger.summarize_item_movement(
        list_items(context),
        list_sales_invoices(context),
        list_purchase_invoices(context),
        date_range,
    )


def daily_summary(context: RuntimeContext, day: Optional[date] = None) -> ledger.DailySummary:
    """Summarize one day of activity; defaults to today."""
    return ledger.summarize_day(
        day or _resolve_timestamp(None).date(),
        list_sales_invoices(context),
        list_purchase_invoices(context),
        list_cash_transactions(context),
    )


def consolidated_transactions(
    context: RuntimeContext,
    date_range: Optional[ledger.DateRange] = None,
) -> List[ledger.ConsolidatedEntry]:
    """List every sale, purchase, and farmer payment in time order."""
    return ledger.consolidate_transactions(
        list_sales_invoices(context),
        list_purchase_invoices(context),
        list_cash_transactions(context),
        date_range,
    )


def dashboard_totals(context: RuntimeContext) -> Dict[str, Decimal]:
    """Headline figures: payments in and out and the net of all balances."""
    payments = ledger.summarize_payments(list_cash_transactions(context))
    return {
        "total_payments_in": payments.total_in,
        "total_payments_out": payments.total_out,
        "net_balance": ledger.net_business_balance(farmer_balances(context)),
    }


def manufacturing_expenses(
    context: RuntimeContext,
    rates: ledger.ManufacturingRates,
    date_range: Optional[ledger.DateRange] = None,
) -> ledger.ManufacturingExpenses:
    """Cost a manufacturing run over the selected company's purchases.

    Raises:
        ValidationError: If any rate is negative or not numeric.
    """
    checked = ledger.ManufacturingRates(
        plant_labour=require_nonnegative_money(rates.plant_labour, "Plant labour rate"),
        khakhora_labour=require_nonnegative_money(rates.khakhora_labour, "Khakhora labour rate"),
        loading_labour=require_nonnegative_money(rates.loading_labour, "Loading labour rate"),
        freight=require_nonnegative_money(rates.freight, "Freight rate"),
    )
    return ledger.summarize_manufacturing_expenses(list_purchase_invoices(context), checked, date_range)


def top_items(context: RuntimeContext, limit: int = ledger.TOP_ITEMS_LIMIT) -> ledger.TopItems:
    """Most sold and most purchased items of the selected company."""
    if limit < 1:
        raise ValidationError("Limit must be at least 1")
    return ledger.top_items(
        list_items(context),
        list_sales_invoices(context),
        list_purchase_invoices(context),
        limit=limit,
    )
