"""Unit tests documenting the expected behavior of the data access layer."""

from __future__ import annotations

import configparser
from datetime import date, datetime, time
from decimal import Decimal
from pathlib import Path

import openpyxl
from openpyxl.workbook import Workbook as OpenpyxlWorkbook
import pytest

from farm_ledger import constants, data_manager
from farm_ledger.setup_excel import SHEET_COLUMNS, create_master_workbook, main as setup_main, write_default_config


def _sales_invoice(invoice_id: str = "S-20250615-001") -> data_manager.SalesInvoiceRow:
    lines = (
        data_manager.SalesLineRow("I001", "Urea", Decimal("20"), Decimal("12.50"), Decimal("250.00")),
        data_manager.SalesLineRow("I002", "DAP", Decimal("2.5"), Decimal("30"), Decimal("75.0")),
    )
    return data_manager.SalesInvoiceRow(
        invoice_id=invoice_id,
        company_id="C001",
        invoice_no=invoice_id,
        invoice_date=date(2025, 6, 15),
        invoice_time=time(10, 30),
        farmer=data_manager.FarmerSnapshot("F001", "Ramesh", "Rampur", "9876543210"),
        lines=lines,
        total_amount=Decimal("325.00"),
        advance=Decimal("25"),
        due=Decimal("300.00"),
    )


def _purchase_invoice(purchase_id: str = "P-20250615-001") -> data_manager.PurchaseInvoiceRow:
    line = data_manager.PurchaseLineRow(
        item_id="I001",
        item_name="Paddy",
        gross_weight=Decimal("100"),
        tare_weight=Decimal("5"),
        mud_deduction_percent=Decimal("2"),
        net_weight=Decimal("95"),
        final_weight=Decimal("93.1"),
        rate=Decimal("20"),
        amount=Decimal("1862.0"),
    )
    return data_manager.PurchaseInvoiceRow(
        purchase_id=purchase_id,
        company_id="C001",
        purchase_no=purchase_id,
        purchase_date=date(2025, 6, 15),
        purchase_time=time(11, 0),
        farmer=data_manager.FarmerSnapshot("F001", "Ramesh"),
        lines=(line,),
        total_amount=Decimal("1862.0"),
        advance=Decimal("0"),
        due=Decimal("1862.0"),
    )


# ---------------------------------------------------------------------------
# Configuration
# ---------------------------------------------------------------------------


def test_find_config_file_respects_explicit_path(config_file: Path):
    """Supplying an explicit path should be treated as the winning answer."""

    assert data_manager.find_config_file(config_file) == config_file


def test_find_config_file_discovers_in_parent_directory(tmp_path, monkeypatch):
    """Auto-discovery walks up from the working directory."""

    config_file = tmp_path / "config.ini"
    config_file.write_text("[System]\nDataFile=farm_ledger.xlsx")
    nested = tmp_path / "a" / "b"
    nested.mkdir(parents=True)
    monkeypatch.chdir(nested)

    assert data_manager.find_config_file() == config_file


def test_find_config_file_raises_when_missing(tmp_path, monkeypatch):
    monkeypatch.chdir(tmp_path)
    with pytest.raises(FileNotFoundError):
        data_manager.find_config_file()


def test_read_config_missing_file_raises(tmp_path):
    with pytest.raises(FileNotFoundError):
        data_manager.read_config(tmp_path / "not_there.ini")


def test_parse_settings_resolves_relative_paths(config_factory):
    """Relative DataFile entries should be anchored to the config location."""

    bundle = config_factory(make_relative=True)
    parser = data_manager.read_config(bundle.config_path)
    settings = data_manager.parse_settings(parser, base_path=bundle.config_path.parent)

    assert settings.data_file == bundle.workbook_path.resolve()
    assert settings.business_name == "Test Traders"
    assert settings.company_id is None
    assert settings.financial_year is None


def test_parse_settings_reads_session_section(config_factory):
    bundle = config_factory(company_id="C002", financial_year="2024-2025")
    parser = data_manager.read_config(bundle.config_path)

    settings = data_manager.parse_settings(parser, base_path=bundle.directory)

    assert settings.company_id == "C002"
    assert settings.financial_year == "2024-2025"


def test_parse_settings_requires_system_section(tmp_path):
    parser = configparser.ConfigParser()
    parser.read_string("[Other]\nvalue=1")
    with pytest.raises(KeyError):
        data_manager.parse_settings(parser, base_path=tmp_path)


def test_write_session_preserves_system_section(config_file: Path):
    data_manager.write_session(config_file, company_id="C001", financial_year="2025-2026")

    parser = data_manager.read_config(config_file)
    assert parser.get("Session", "CompanyId") == "C001"
    assert parser.get("Session", "FinancialYear") == "2025-2026"
    assert parser.get("System", "BusinessName") == "Test Traders"


def test_write_session_keeps_option_case(config_file: Path):
    data_manager.write_session(config_file, company_id="C002", financial_year=None)

    text = config_file.read_text(encoding="utf-8")
    assert "DataFile = " in text
    assert "BusinessName = " in text
    assert "CompanyId = C002" in text
    assert "datafile" not in text


def test_write_session_none_removes_option(config_factory):
    bundle = config_factory(company_id="C001", financial_year="2025-2026")

    data_manager.write_session(bundle.config_path, company_id="C001", financial_year=None)

    parser = data_manager.read_config(bundle.config_path)
    assert not parser.has_option("Session", "FinancialYear")
    assert parser.get("Session", "CompanyId") == "C001"


# ---------------------------------------------------------------------------
# Workbook lifecycle
# ---------------------------------------------------------------------------


def test_open_workbook_returns_openpyxl_instance(master_workbook_path):
    assert isinstance(data_manager.open_workbook(master_workbook_path), OpenpyxlWorkbook)


def test_open_workbook_missing_file_raises(tmp_path):
    with pytest.raises(FileNotFoundError):
        data_manager.open_workbook(tmp_path / "missing.xlsx")


def test_save_workbook_with_destination_creates_copy(master_workbook_path, tmp_path):
    workbook = data_manager.open_workbook(master_workbook_path)
    data_manager.append_item(workbook, data_manager.ItemRow("I001", "C001", "Urea", Decimal("12.5"), Decimal("40")))
    copy_path = tmp_path / "nested" / "copy.xlsx"

    data_manager.save_workbook(workbook, copy_path)

    copy = openpyxl.load_workbook(copy_path)
    assert [row[0] for row in copy[data_manager.ITEMS_SHEET].iter_rows(min_row=2, values_only=True)] == ["I001"]
    original = data_manager.open_workbook(master_workbook_path)
    assert list(data_manager.iter_items(original)) == []


def test_refresh_workbook_discards_unsaved_changes(master_workbook_path):
    workbook = data_manager.open_workbook(master_workbook_path)
    data_manager.append_company(workbook, data_manager.CompanyRow("C001", "Green Fields", "Main Road", ()))

    refreshed = data_manager.refresh_workbook(master_workbook_path)

    assert refreshed is not workbook
    assert list(data_manager.iter_companies(refreshed)) == []


# ---------------------------------------------------------------------------
# Normalization
# ---------------------------------------------------------------------------


@pytest.mark.parametrize(
    ("raw", "expected"),
    [
        (Decimal("1.50"), Decimal("1.50")),
        (3, Decimal("3")),
        (0.1, Decimal("0.1")),
        ("1,250.75", Decimal("1250.75")),
        ("  ", Decimal("0")),
        (None, Decimal("0")),
    ],
)
def test_to_decimal_normalizes_loose_values(raw, expected):
    assert data_manager.to_decimal(raw) == expected


@pytest.mark.parametrize("raw", ["abc", True, "NaN", "Infinity", object()])
def test_to_decimal_rejects_invalid_values(raw):
    with pytest.raises(ValueError):
        data_manager.to_decimal(raw, field="Amount")


def test_parse_date_accepts_strings_and_datetimes():
    assert data_manager.parse_date("2025-06-15") == date(2025, 6, 15)
    assert data_manager.parse_date("2025-06-15T08:00:00") == date(2025, 6, 15)
    assert data_manager.parse_date(datetime(2025, 6, 15, 8, 0)) == date(2025, 6, 15)
    with pytest.raises(ValueError):
        data_manager.parse_date("15/06/2025")
    with pytest.raises(ValueError):
        data_manager.parse_date(None)


@pytest.mark.parametrize(
    ("raw", "expected"),
    [
        ("10:30:15", time(10, 30, 15)),
        ("10:30", time(10, 30)),
        ("02:45 PM", time(14, 45)),
        ("12:05 am", time(0, 5)),
        (None, time(0, 0)),
        (time(9, 0), time(9, 0)),
    ],
)
def test_parse_time_accepts_24_and_12_hour_formats(raw, expected):
    assert data_manager.parse_time(raw) == expected


def test_parse_time_rejects_garbage():
    with pytest.raises(ValueError):
        data_manager.parse_time("quarter past ten")


# ---------------------------------------------------------------------------
# Sheet operations
# ---------------------------------------------------------------------------


def test_company_financial_years_round_trip(master_workbook_path):
    workbook = data_manager.open_workbook(master_workbook_path)
    data_manager.append_company(
        workbook, data_manager.CompanyRow("C001", "Green Fields", "Main Road", ("2024-2025", "2025-2026"))
    )

    assert list(data_manager.iter_companies(workbook)) == [
        data_manager.CompanyRow("C001", "Green Fields", "Main Road", ("2024-2025", "2025-2026"))
    ]


def test_farmer_numeric_cells_are_read_as_text(master_workbook_path):
    """Excel may store mobile numbers as numbers; the DAL hands back strings."""

    workbook = data_manager.open_workbook(master_workbook_path)
    workbook[data_manager.FARMERS_SHEET].append(["F001", "C001", "Ramesh", None, "Rampur", 9876543210])

    (farmer,) = data_manager.iter_farmers(workbook)
    assert farmer.mobile_no == "9876543210"
    assert farmer.fathers_name is None
    assert farmer.ifsc_code is None


def test_sales_invoice_lines_are_joined_in_order(master_workbook_path):
    workbook = data_manager.open_workbook(master_workbook_path)
    invoice = _sales_invoice()

    data_manager.append_sales_invoice(workbook, invoice)

    assert list(data_manager.iter_sales_invoices(workbook)) == [invoice]


def test_sales_invoice_survives_save_and_reload(master_workbook_path):
    workbook = data_manager.open_workbook(master_workbook_path)
    data_manager.append_sales_invoice(workbook, _sales_invoice())
    data_manager.save_workbook(workbook, master_workbook_path)

    (reloaded,) = data_manager.iter_sales_invoices(data_manager.open_workbook(master_workbook_path))

    assert reloaded.invoice_time == time(10, 30)
    assert reloaded.due == Decimal("300")
    assert [line.item_id for line in reloaded.lines] == ["I001", "I002"]
    assert reloaded.lines[1].weight == Decimal("2.5")
    assert reloaded.farmer.mobile_no == "9876543210"


def test_purchase_invoice_survives_save_and_reload(master_workbook_path):
    workbook = data_manager.open_workbook(master_workbook_path)
    data_manager.append_purchase_invoice(workbook, _purchase_invoice())
    data_manager.save_workbook(workbook, master_workbook_path)

    (reloaded,) = data_manager.iter_purchase_invoices(data_manager.open_workbook(master_workbook_path))

    assert reloaded.lines[0].final_weight == Decimal("93.1")
    assert reloaded.lines[0].mud_deduction_percent == Decimal("2")
    assert reloaded.farmer.village is None


def test_delete_sales_invoice_removes_header_and_lines(master_workbook_path):
    workbook = data_manager.open_workbook(master_workbook_path)
    data_manager.append_sales_invoice(workbook, _sales_invoice("S-20250615-001"))
    data_manager.append_sales_invoice(workbook, _sales_invoice("S-20250615-002"))

    data_manager.delete_sales_invoice(workbook, "S-20250615-001")

    remaining = list(data_manager.iter_sales_invoices(workbook))
    assert [invoice.invoice_id for invoice in remaining] == ["S-20250615-002"]
    assert len(remaining[0].lines) == 2
    line_ids = [row[0] for row in workbook[data_manager.SALES_LINES_SHEET].iter_rows(min_row=2, values_only=True)]
    assert "S-20250615-001" not in line_ids


def test_delete_missing_invoice_raises(master_workbook_path):
    workbook = data_manager.open_workbook(master_workbook_path)
    with pytest.raises(KeyError):
        data_manager.delete_sales_invoice(workbook, "S-20250615-404")
    with pytest.raises(KeyError):
        data_manager.delete_purchase_invoice(workbook, "P-20250615-404")


def test_append_after_delete_is_still_readable(master_workbook_path):
    workbook = data_manager.open_workbook(master_workbook_path)
    data_manager.append_purchase_invoice(workbook, _purchase_invoice("P-20250615-001"))
    data_manager.delete_purchase_invoice(workbook, "P-20250615-001")
    data_manager.append_purchase_invoice(workbook, _purchase_invoice("P-20250615-002"))

    assert [p.purchase_id for p in data_manager.iter_purchase_invoices(workbook)] == ["P-20250615-002"]


def test_adjust_item_stock_adds_delta_and_allows_negative(master_workbook_path):
    workbook = data_manager.open_workbook(master_workbook_path)
    data_manager.append_item(workbook, data_manager.ItemRow("I001", "C001", "Urea", Decimal("12.5"), Decimal("10")))

    assert data_manager.adjust_item_stock(workbook, "I001", Decimal("-4.5")) == Decimal("5.5")
    assert data_manager.adjust_item_stock(workbook, "I001", Decimal("-6")) == Decimal("-0.5")
    (item,) = data_manager.iter_items(workbook)
    assert item.stock == Decimal("-0.5")


def test_adjust_item_stock_unknown_item_raises(master_workbook_path):
    workbook = data_manager.open_workbook(master_workbook_path)
    with pytest.raises(KeyError):
        data_manager.adjust_item_stock(workbook, "I404", Decimal("1"))


def test_update_record_changes_only_named_columns(master_workbook_path):
    workbook = data_manager.open_workbook(master_workbook_path)
    data_manager.append_item(workbook, data_manager.ItemRow("I001", "C001", "Urea", Decimal("12.5"), Decimal("10")))

    data_manager.update_record(
        workbook, data_manager.ITEMS_SHEET, "ItemID", "I001", field_values={"RatePerKg": Decimal("14")}
    )

    (item,) = data_manager.iter_items(workbook)
    assert item.rate_per_kg == Decimal("14")
    assert item.stock == Decimal("10")


def test_update_record_can_clear_a_cell(master_workbook_path, tmp_path):
    workbook = data_manager.open_workbook(master_workbook_path)
    data_manager.append_farmer(
        workbook, data_manager.FarmerRow("F001", "C001", "Ramesh", village="Rampur", mobile_no="98765")
    )

    data_manager.update_record(
        workbook, data_manager.FARMERS_SHEET, "FarmerID", "F001", field_values={"MobileNo": None, "Village": None}
    )
    target = tmp_path / "cleared.xlsx"
    data_manager.save_workbook(workbook, target)

    (farmer,) = data_manager.iter_farmers(data_manager.open_workbook(target))
    assert farmer.mobile_no is None
    assert farmer.village is None
    assert farmer.farmer_name == "Ramesh"


def test_update_record_missing_row_or_column_raises(master_workbook_path):
    workbook = data_manager.open_workbook(master_workbook_path)
    data_manager.append_item(workbook, data_manager.ItemRow("I001", "C001", "Urea", Decimal("1"), Decimal("0")))

    with pytest.raises(KeyError):
        data_manager.update_record(workbook, data_manager.ITEMS_SHEET, "ItemID", "I404", field_values={"Stock": 1})
    with pytest.raises(KeyError):
        data_manager.update_record(workbook, data_manager.ITEMS_SHEET, "ItemID", "I001", field_values={"Colour": 1})


def test_locate_row_returns_index_or_none(master_workbook_path):
    workbook = data_manager.open_workbook(master_workbook_path)
    data_manager.append_farmer(workbook, data_manager.FarmerRow("F001", "C001", "Ramesh"))
    data_manager.append_farmer(workbook, data_manager.FarmerRow("F002", "C001", "Suresh"))

    assert data_manager.locate_row(workbook, data_manager.FARMERS_SHEET, "FarmerID", "F002") == 3
    assert data_manager.locate_row(workbook, data_manager.FARMERS_SHEET, "FarmerID", "F404") is None
    with pytest.raises(KeyError):
        data_manager.locate_row(workbook, data_manager.FARMERS_SHEET, "Nope", "F001")


def test_serialize_cash_transaction_follows_sheet_columns():
    record = data_manager.CashTransactionRow(
        transaction_id="T001",
        company_id="C001",
        transaction_type=constants.CashTransactionType.PAYMENT_IN.value,
        farmer_id="F001",
        farmer_name="Ramesh",
        amount=Decimal("500"),
        payment_method=constants.PaymentMethod.BANK.value,
        remarks=None,
        txn_date=date(2025, 6, 15),
        txn_time=time(12, 0),
    )

    row = data_manager.serialize_cash_transaction(record)

    assert len(row) == len(SHEET_COLUMNS[data_manager.CASH_TRANSACTIONS_SHEET])
    assert row == ["T001", "C001", "Payment In", "F001", "Ramesh", Decimal("500"), "Bank", None, "2025-06-15", "12:00:00"]
    assert data_manager.deserialize_cash_transaction(row) == record


def test_deserialize_expense_pads_short_rows():
    record = data_manager.deserialize_expense(["E001", "C001", "Diesel", "150", "Cash", "2025-06-15"])

    assert record.amount == Decimal("150")
    assert record.expense_time == time(0, 0)
    assert record.remarks is None


# ---------------------------------------------------------------------------
# Workbook setup
# ---------------------------------------------------------------------------


def test_create_master_workbook_writes_every_sheet(tmp_path):
    path = create_master_workbook(tmp_path / "ledger.xlsx")

    workbook = openpyxl.load_workbook(path)
    assert workbook.sheetnames == [sheet.value for sheet in constants.SheetName]
    headers = [cell.value for cell in workbook[data_manager.ITEMS_SHEET][1]]
    assert headers == list(SHEET_COLUMNS[data_manager.ITEMS_SHEET])


def test_create_master_workbook_refuses_to_overwrite(master_workbook_path):
    with pytest.raises(FileExistsError):
        create_master_workbook(master_workbook_path)


def test_setup_main_reports_existing_file(config_file: Path, capsys):
    assert setup_main(["--config", str(config_file)]) == 1
    assert "--force" in capsys.readouterr().out
    assert setup_main(["--config", str(config_file), "--force"]) == 0


def test_write_default_config_is_readable_by_the_data_layer(tmp_path):
    config_path = write_default_config(tmp_path / "config.ini", business_name="Green Fields")

    settings = data_manager.parse_settings(data_manager.read_config(config_path), base_path=tmp_path)
    assert settings.business_name == "Green Fields"
    assert settings.schema_version == constants.EXPECTED_SCHEMA_VERSION
    assert settings.data_file == (tmp_path / "farm_ledger.xlsx").resolve()
    assert settings.company_id is None

    with pytest.raises(FileExistsError):
        write_default_config(config_path, business_name="Other")


def test_setup_main_bootstraps_config_and_workbook(tmp_path, capsys):
    config_path = tmp_path / "shop" / "config.ini"

    assert setup_main(["--config", str(config_path), "--business-name", "Green Fields", "--data-file", "ledger.xlsx"]) == 0

    workbook = openpyxl.load_workbook(tmp_path / "shop" / "ledger.xlsx")
    assert workbook[data_manager.FARMERS_SHEET].freeze_panes == "A2"
    assert "Created" in capsys.readouterr().out

    # a second bootstrap must not clobber the existing config
    assert setup_main(["--config", str(config_path), "--business-name", "Green Fields"]) == 1
