"""Shared pytest fixtures and utilities for farm ledger tests."""

from __future__ import annotations

import argparse
import sys
import uuid
from dataclasses import dataclass
from datetime import date, datetime, time
from decimal import Decimal
from pathlib import Path
from typing import Callable, Iterator
from unittest.mock import Mock

import pytest

# Ensure source packages are importable without installation.
PROJECT_ROOT = Path(__file__).resolve().parents[1]
SRC_DIR = PROJECT_ROOT / "src"

if str(SRC_DIR) not in sys.path:
    sys.path.insert(0, str(SRC_DIR))

from farm_ledger import constants, core_logic, data_manager  # noqa: E402
from farm_ledger.setup_excel import create_master_workbook  # noqa: E402

DEFAULT_SCHEMA_VERSION = constants.EXPECTED_SCHEMA_VERSION
_CONFIG_TEMPLATE = (
    "[System]\n"
    "DataFile = {data_file}\n"
    "BusinessName = {business_name}\n"
    "SchemaVersion = {schema_version}\n"
)
_SESSION_TEMPLATE = (
    "\n[Session]\n"
    "CompanyId = {company_id}\n"
    "FinancialYear = {financial_year}\n"
)


@dataclass(frozen=True)
class ConfigBundle:
    """Container bundling together config metadata for tests."""

    directory: Path
    config_path: Path
    workbook_path: Path
    schema_version: str
    business_name: str


@pytest.fixture(scope="session", autouse=True)
def _restore_sys_path() -> Iterator[None]:
    """Ensure sys.path modifications are undone after the test session."""

    original = sys.path.copy()
    try:
        yield
    finally:
        sys.path[:] = original


@pytest.fixture
def workbook_factory(tmp_path: Path) -> Callable[..., Path]:
    """Factory that creates an initialized master workbook in a temp folder."""

    def _create_workbook(*, subdir: str | None = None, filename: str = "farm_ledger.xlsx") -> Path:
        base_dir = tmp_path if subdir is None else tmp_path / subdir
        base_dir.mkdir(parents=True, exist_ok=True)
        workbook_path = base_dir / filename
        create_master_workbook(workbook_path, overwrite=True)
        return workbook_path

    return _create_workbook


@pytest.fixture
def master_workbook_path(workbook_factory: Callable[..., Path]) -> Path:
    """Return a fresh master workbook ready for use in a test."""

    return workbook_factory(subdir=f"workbook_{uuid.uuid4().hex}")


@pytest.fixture
def config_factory(tmp_path: Path, workbook_factory: Callable[..., Path]) -> Callable[..., ConfigBundle]:
    """Provide a callable that creates config/workbook bundles on demand."""

    def _create_config(
        *,
        make_relative: bool = False,
        business_name: str = "Test Traders",
        schema_version: str = DEFAULT_SCHEMA_VERSION,
        company_id: str | None = None,
        financial_year: str | None = None,
    ) -> ConfigBundle:
        bundle_dir_name = f"bundle_{uuid.uuid4().hex}"
        bundle_dir = tmp_path / bundle_dir_name
        bundle_dir.mkdir(parents=True, exist_ok=True)
        workbook_path = workbook_factory(subdir=bundle_dir_name)
        data_file_entry = workbook_path.name if make_relative else str(workbook_path)
        text = _CONFIG_TEMPLATE.format(
            data_file=data_file_entry,
            business_name=business_name,
            schema_version=schema_version,
        )
        if company_id is not None:
            text += _SESSION_TEMPLATE.format(company_id=company_id, financial_year=financial_year or "")
        config_path = bundle_dir / "config.ini"
        config_path.write_text(text)
        return ConfigBundle(
            directory=bundle_dir,
            config_path=config_path,
            workbook_path=workbook_path,
            schema_version=schema_version,
            business_name=business_name,
        )

    return _create_config


@pytest.fixture
def config_file(config_factory: Callable[..., ConfigBundle]) -> Path:
    """Convenience fixture returning only the config path."""

    return config_factory().config_path


@pytest.fixture
def runtime_context(config_file: Path) -> core_logic.RuntimeContext:
    """Load the runtime context for tests through the public API."""

    context = core_logic.load_runtime_context(config_file)
    core_logic.ensure_schema_version(context)
    return context


@pytest.fixture
def company_context(runtime_context: core_logic.RuntimeContext) -> core_logic.RuntimeContext:
    """Runtime context with one company created and selected."""

    company = core_logic.add_company(runtime_context, "Green Fields", "Main Road", ["2025-2026"])
    return core_logic.select_company(runtime_context, company.company_id)


# ---------------------------------------------------------------------------
# CLI layer fixtures
# ---------------------------------------------------------------------------


@pytest.fixture
def cli_parser() -> argparse.ArgumentParser:
    """Return a fresh CLI parser instance for tests."""

    return argparse.ArgumentParser(prog="farm-ledger", description="Farm ledger CLI")


@pytest.fixture
def subparsers_action(
    cli_parser: argparse.ArgumentParser,
) -> argparse._SubParsersAction[argparse.ArgumentParser]:
    """Return the subparser action used to register commands."""

    return cli_parser.add_subparsers(dest="command")


# ---------------------------------------------------------------------------
# Core logic fixtures
# ---------------------------------------------------------------------------


@pytest.fixture
def settings(tmp_path: Path) -> data_manager.ConfigSettings:
    """Provide default configuration settings for runtime context tests."""

    return data_manager.ConfigSettings(
        data_file=tmp_path / "farm_ledger.xlsx",
        business_name="Test Traders",
        schema_version=constants.EXPECTED_SCHEMA_VERSION,
        company_id="C001",
        financial_year="2025-2026",
    )


@pytest.fixture
def workbook() -> Mock:
    """Return a mock workbook object for business logic tests."""

    return Mock(name="workbook")


@pytest.fixture
def context(settings: data_manager.ConfigSettings, workbook: Mock) -> core_logic.RuntimeContext:
    """Assemble a runtime context from injected settings and workbook mocks."""

    return core_logic.RuntimeContext(
        settings=settings,
        workbook=workbook,
        session=core_logic.CompanySession(company_id="C001", financial_year="2025-2026"),
    )


@pytest.fixture
def set_fixed_datetime(monkeypatch: pytest.MonkeyPatch) -> Callable[[datetime], datetime]:
    """Patch ``core_logic.datetime`` so ``now()`` returns a predetermined moment."""

    def _apply(moment: datetime) -> datetime:
        class _FixedDateTime(datetime):
            @classmethod
            def now(cls, tz=None):
                return moment

        monkeypatch.setattr(core_logic, "datetime", _FixedDateTime)
        return moment

    return _apply


# ---------------------------------------------------------------------------
# Record builders
# ---------------------------------------------------------------------------


def make_farmer(farmer_id: str, name: str = "Ramesh", company_id: str = "C001") -> data_manager.FarmerRow:
    return data_manager.FarmerRow(farmer_id=farmer_id, company_id=company_id, farmer_name=name, village="Rampur")


def make_item(item_id: str, stock: str = "0", rate: str = "10", company_id: str = "C001") -> data_manager.ItemRow:
    return data_manager.ItemRow(
        item_id=item_id,
        company_id=company_id,
        item_name=f"Item {item_id}",
        rate_per_kg=Decimal(rate),
        stock=Decimal(stock),
    )


def make_sales_invoice(
    invoice_no: str,
    farmer_id: str,
    *,
    total,
    advance="0",
    on: date = date(2025, 6, 15),
    at: time = time(10, 0),
    lines=(),
    company_id: str = "C001",
) -> data_manager.SalesInvoiceRow:
    """Build a sales invoice; ``total`` and ``advance`` may be strings to mimic loose storage."""

    return data_manager.SalesInvoiceRow(
        invoice_id=invoice_no,
        company_id=company_id,
        invoice_no=invoice_no,
        invoice_date=on,
        invoice_time=at,
        farmer=data_manager.FarmerSnapshot(farmer_id=farmer_id, farmer_name=f"Farmer {farmer_id}"),
        lines=tuple(lines),
        total_amount=total,
        advance=advance,
        due=data_manager.to_decimal(total) - data_manager.to_decimal(advance),
    )


def make_purchase_invoice(
    purchase_no: str,
    farmer_id: str,
    *,
    total,
    advance="0",
    on: date = date(2025, 6, 15),
    at: time = time(11, 0),
    lines=(),
    company_id: str = "C001",
) -> data_manager.PurchaseInvoiceRow:
    return data_manager.PurchaseInvoiceRow(
        purchase_id=purchase_no,
        company_id=company_id,
        purchase_no=purchase_no,
        purchase_date=on,
        purchase_time=at,
        farmer=data_manager.FarmerSnapshot(farmer_id=farmer_id, farmer_name=f"Farmer {farmer_id}"),
        lines=tuple(lines),
        total_amount=total,
        advance=advance,
        due=data_manager.to_decimal(total) - data_manager.to_decimal(advance),
    )


def make_cash(
    transaction_id: str,
    farmer_id: str,
    transaction_type: constants.CashTransactionType,
    amount,
    *,
    on: date = date(2025, 6, 15),
    at: time = time(12, 0),
    method: str = "Cash",
    company_id: str = "C001",
) -> data_manager.CashTransactionRow:
    return data_manager.CashTransactionRow(
        transaction_id=transaction_id,
        company_id=company_id,
        transaction_type=transaction_type.value,
        farmer_id=farmer_id,
        farmer_name=f"Farmer {farmer_id}",
        amount=amount,
        payment_method=method,
        remarks=None,
        txn_date=on,
        txn_time=at,
    )


def make_expense(
    expense_id: str,
    expense_type: str,
    amount,
    method: str = "Cash",
    *,
    on: date = date(2025, 6, 15),
) -> data_manager.ExpenseRow:
    return data_manager.ExpenseRow(
        expense_id=expense_id,
        company_id="C001",
        expense_type=expense_type,
        amount=amount,
        payment_method=method,
        expense_date=on,
        expense_time=time(9, 0),
        remarks=None,
    )
