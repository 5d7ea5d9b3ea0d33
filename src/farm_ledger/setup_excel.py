"""First-run setup: create ``config.ini`` and an empty master workbook.

Runs as ``farm-ledger-setup``. The workbook location comes from the same
``[System] DataFile`` entry the data access layer reads.
"""

from __future__ import annotations

import argparse
import configparser
import sys
from pathlib import Path
from typing import Mapping, Optional, Sequence

import openpyxl
from openpyxl.styles import Font, PatternFill
from openpyxl.utils import get_column_letter

from . import data_manager, log
from .constants import EXPECTED_SCHEMA_VERSION, SheetName

# Column order is positional: the DAL serializers emit values in this order.
SHEET_COLUMNS: Mapping[str, Sequence[str]] = {
    SheetName.COMPANIES.value: [
        "CompanyID",
        "CompanyName",
        "Address",
        "FinancialYears",
    ],
    SheetName.FARMERS.value: [
        "FarmerID",
        "CompanyID",
        "FarmerName",
        "FathersName",
        "Village",
        "MobileNo",
        "AadharCardNo",
        "AccountName",
        "AccountNo",
        "IfscCode",
    ],
    SheetName.ITEMS.value: [
        "ItemID",
        "CompanyID",
        "ItemName",
        "RatePerKg",
        "Stock",
    ],
    SheetName.SALES_INVOICES.value: [
        "InvoiceID",
        "CompanyID",
        "InvoiceNo",
        "InvoiceDate",
        "InvoiceTime",
        "FarmerID",
        "FarmerName",
        "Village",
        "MobileNo",
        "TotalAmount",
        "Advance",
        "Due",
    ],
    SheetName.SALES_INVOICE_LINES.value: [
        "InvoiceID",
        "LineNo",
        "ItemID",
        "ItemName",
        "Weight",
        "Rate",
        "Amount",
    ],
    SheetName.PURCHASE_INVOICES.value: [
        "PurchaseID",
        "CompanyID",
        "PurchaseNo",
        "PurchaseDate",
        "PurchaseTime",
        "FarmerID",
        "FarmerName",
        "Village",
        "MobileNo",
        "TotalAmount",
        "Advance",
        "Due",
    ],
    SheetName.PURCHASE_INVOICE_LINES.value: [
        "PurchaseID",
        "LineNo",
        "ItemID",
        "ItemName",
        "GrossWeight",
        "TareWeight",
        "MudDeductionPercent",
        "NetWeight",
        "FinalWeight",
        "Rate",
        "Amount",
    ],
    SheetName.CASH_TRANSACTIONS.value: [
        "TransactionID",
        "CompanyID",
        "TransactionType",
        "FarmerID",
        "FarmerName",
        "Amount",
        "PaymentMethod",
        "Remarks",
        "TxnDate",
        "TxnTime",
    ],
    SheetName.EXPENSES.value: [
        "ExpenseID",
        "CompanyID",
        "ExpenseType",
        "Amount",
        "PaymentMethod",
        "ExpenseDate",
        "ExpenseTime",
        "Remarks",
    ],
}


DEFAULT_DATA_FILE = "farm_ledger.xlsx"
HEADER_FONT = Font(bold=True)
HEADER_FILL = PatternFill(fill_type="solid", start_color="DDEBF7", end_color="DDEBF7")


def write_default_config(
    config_path: Path,
    *,
    business_name: str,
    data_file: str = DEFAULT_DATA_FILE,
) -> Path:
    """Write a fresh ``config.ini`` with only the ``[System]`` section.

    Raises:
        FileExistsError: If ``config_path`` already exists.
    """

    config_path = Path(config_path).expanduser().resolve()
    if config_path.exists():
        raise FileExistsError(f"Configuration file already exists: {config_path}")

    parser = configparser.ConfigParser()
    parser.optionxform = str
    parser["System"] = {
        "DataFile": data_file,
        "BusinessName": business_name,
        "SchemaVersion": EXPECTED_SCHEMA_VERSION,
    }
    config_path.parent.mkdir(parents=True, exist_ok=True)
    with config_path.open("w", encoding="utf-8") as handle:
        parser.write(handle)
    log.info("Wrote configuration for '%s' to '%s'", business_name, config_path)
    return config_path


def create_master_workbook(
    destination: Path,
    *,
    sheet_columns: Mapping[str, Sequence[str]] = SHEET_COLUMNS,
    overwrite: bool = False,
) -> Path:
    """Create a workbook holding one sheet per record type, headers only.

    Raises:
        FileExistsError: If ``destination`` exists and ``overwrite`` is false.
    """

    destination = Path(destination).expanduser().resolve()
    if destination.exists() and not overwrite:
        raise FileExistsError(f"Refusing to overwrite existing master workbook: {destination}")

    workbook = openpyxl.Workbook()
    workbook.remove(workbook.active)

    for sheet_name, columns in sheet_columns.items():
        worksheet = workbook.create_sheet(title=sheet_name)
        worksheet.append(list(columns))
        for cell in worksheet[1]:
            cell.font = HEADER_FONT
            cell.fill = HEADER_FILL
        for index, column in enumerate(columns, start=1):
            worksheet.column_dimensions[get_column_letter(index)].width = max(12, len(column) + 2)
        worksheet.freeze_panes = "A2"

    destination.parent.mkdir(parents=True, exist_ok=True)
    workbook.save(destination)
    log.info("Created master workbook '%s' with %d sheets", destination, len(sheet_columns))
    return destination


def run_from_config(config_path: Path, *, overwrite: bool = False) -> Path:
    """Create the workbook that ``config.ini`` points at."""

    config_path = Path(config_path).expanduser().resolve()
    settings = data_manager.parse_settings(
        data_manager.read_config(config_path),
        base_path=config_path.parent,
    )
    return create_master_workbook(settings.data_file, overwrite=overwrite)


def parse_args(argv: Optional[Sequence[str]] = None) -> argparse.Namespace:
    parser = argparse.ArgumentParser(
        prog="farm-ledger-setup",
        description="Create config.ini (if asked) and the empty farm ledger workbook.",
    )
    parser.add_argument(
        "--config",
        type=Path,
        default=Path(data_manager.CONFIG_FILE_NAME),
        help="Path to config.ini (default: ./config.ini).",
    )
    parser.add_argument(
        "--business-name",
        default=None,
        help="Write a new config.ini for this business before creating the workbook.",
    )
    parser.add_argument(
        "--data-file",
        default=DEFAULT_DATA_FILE,
        help="Workbook file name recorded in a new config.ini.",
    )
    parser.add_argument(
        "--force",
        action="store_true",
        help="Replace an existing workbook.",
    )
    return parser.parse_args(argv)


def main(argv: Optional[Sequence[str]] = None) -> int:
    """Entry point for ``farm-ledger-setup``; returns a process exit code."""

    args = parse_args(argv)
    config_path = args.config.expanduser().resolve()

    try:
        if args.business_name:
            write_default_config(config_path, business_name=args.business_name, data_file=args.data_file)
            print(f"Wrote {config_path}")
        output_path = run_from_config(config_path, overwrite=args.force)
    except FileExistsError as exc:
        print(f"Error: {exc}")
        if not args.business_name:
            print("Pass --force to replace the workbook.")
        return 1
    except (FileNotFoundError, KeyError) as exc:
        print(f"Error: {exc}")
        return 1
    except OSError as exc:
        print(f"Error: unable to write workbook: {exc}")
        return 1

    print(f"Created {output_path}")
    return 0


if __name__ == "__main__":
    sys.exit(main())
