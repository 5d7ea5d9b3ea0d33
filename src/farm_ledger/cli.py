"""Command-line entry points for the farm ledger.

All orchestration in this module is limited to argparse wiring, translating
command-line arguments into the command objects consumed by the business
layer, and printing report results. The workbook is saved only after a
mutating command succeeds.
"""

from __future__ import annotations

import argparse
import logging
from dataclasses import dataclass
from datetime import date
from decimal import Decimal, InvalidOperation
from pathlib import Path
from typing import Callable, Dict, Iterable, Mapping, MutableMapping, Optional, Sequence

from . import core_logic, ledger, log, set_console_level
from .constants import CashTransactionType, PaymentMethod


@dataclass(frozen=True)
class CommandSpec:
    """Describe how a CLI sub-command is configured and executed."""

    name: str
    help_text: str
    register: Callable[[argparse._SubParsersAction[argparse.ArgumentParser]], argparse.ArgumentParser]
    execute: Callable[[core_logic.RuntimeContext, argparse.Namespace], int]
    mutates: bool = True


def build_parser() -> argparse.ArgumentParser:
    """Construct the top-level CLI argument parser."""
    parser = argparse.ArgumentParser(
        prog="farm-ledger",
        description="Farmer balances, invoices, and stock kept in an Excel workbook.",
    )
    parser.add_argument(
        "--config",
        type=Path,
        default=None,
        help="Path to config.ini (default: nearest config.ini in this or a parent directory).",
    )
    parser.add_argument(
        "--verbose",
        "-v",
        action="store_true",
        help="Print debug messages to stderr.",
    )
    return parser


def configure_subcommands(
    parser: argparse.ArgumentParser,
) -> Mapping[str, CommandSpec]:
    """Wire all CLI sub-commands onto the supplied parser."""
    subparsers = parser.add_subparsers(dest="command", required=True, title="commands")
    write_specs = register_write_commands(subparsers)
    read_specs = register_read_commands(subparsers)
    return build_command_table([*write_specs.values(), *read_specs.values()])


# ---------------------------------------------------------------------------
# Argument types
# ---------------------------------------------------------------------------


def decimal_arg(text: str) -> Decimal:
    """argparse type for decimal amounts and weights."""
    try:
        return Decimal(text.replace(",", ""))
    except InvalidOperation as exc:
        raise argparse.ArgumentTypeError(f"not a number: {text!r}") from exc


def date_arg(text: str) -> date:
    """argparse type for ``YYYY-MM-DD`` dates."""
    try:
        return date.fromisoformat(text)
    except ValueError as exc:
        raise argparse.ArgumentTypeError(f"not a YYYY-MM-DD date: {text!r}") from exc


def sales_line_arg(text: str) -> core_logic.SalesLineCommand:
    """Parse ``ITEM:WEIGHT[:RATE]`` into a sales line."""
    parts = text.split(":")
    if len(parts) not in (2, 3) or not parts[0]:
        raise argparse.ArgumentTypeError(f"expected ITEM:WEIGHT[:RATE], got {text!r}")
    return core_logic.SalesLineCommand(
        item_id=parts[0],
        weight=decimal_arg(parts[1]),
        rate=decimal_arg(parts[2]) if len(parts) == 3 else None,
    )


def purchase_line_arg(text: str) -> core_logic.PurchaseLineCommand:
    """Parse ``ITEM:GROSS[:TARE[:MUD%]]`` into a purchase line."""
    parts = text.split(":")
    if not 2 <= len(parts) <= 4 or not parts[0]:
        raise argparse.ArgumentTypeError(f"expected ITEM:GROSS[:TARE[:MUD]], got {text!r}")
    return core_logic.PurchaseLineCommand(
        item_id=parts[0],
        gross_weight=decimal_arg(parts[1]),
        tare_weight=decimal_arg(parts[2]) if len(parts) > 2 else Decimal("0"),
        mud_deduction_percent=decimal_arg(parts[3]) if len(parts) > 3 else Decimal("0"),
    )


def _add_date_range_arguments(parser: argparse.ArgumentParser) -> None:
    parser.add_argument("--from", dest="start", type=date_arg, default=None, help="First day (inclusive).")
    parser.add_argument("--to", dest="end", type=date_arg, default=None, help="Last day (inclusive, default today).")


def _add_farmer_arguments(parser: argparse.ArgumentParser) -> None:
    parser.add_argument("--name", required=True)
    parser.add_argument("--fathers-name", default=None)
    parser.add_argument("--village", default=None)
    parser.add_argument("--mobile", default=None)
    parser.add_argument("--aadhar", default=None)
    parser.add_argument("--account-name", default=None)
    parser.add_argument("--account-no", default=None)
    parser.add_argument("--ifsc", default=None)


def _add_sales_invoice_arguments(parser: argparse.ArgumentParser) -> None:
    parser.add_argument("--farmer-id", required=True)
    parser.add_argument(
        "--line",
        dest="lines",
        type=sales_line_arg,
        action="append",
        required=True,
        help="ITEM:WEIGHT[:RATE]; repeat for several lines.",
    )
    parser.add_argument("--advance", type=decimal_arg, default=Decimal("0"))


def _add_purchase_invoice_arguments(parser: argparse.ArgumentParser) -> None:
    parser.add_argument("--farmer-id", required=True)
    parser.add_argument(
        "--line",
        dest="lines",
        type=purchase_line_arg,
        action="append",
        required=True,
        help="ITEM:GROSS[:TARE[:MUD%%]]; repeat for several lines.",
    )
    parser.add_argument("--advance", type=decimal_arg, default=Decimal("0"))


# ---------------------------------------------------------------------------
# Registration
# ---------------------------------------------------------------------------


def register_write_commands(
    subparsers: argparse._SubParsersAction[argparse.ArgumentParser],
) -> Dict[str, CommandSpec]:
    """Declare commands that change the workbook or the session."""
    specs = {
        "add-company": register_add_company_command(subparsers),
        "select-company": register_select_company_command(subparsers),
        "add-farmer": register_add_farmer_command(subparsers),
        "delete-farmer": register_delete_farmer_command(subparsers),
        "add-item": register_add_item_command(subparsers),
        "sale": register_sale_command(subparsers),
        "purchase": register_purchase_command(subparsers),
        "delete-sale": register_delete_sale_command(subparsers),
        "delete-purchase": register_delete_purchase_command(subparsers),
        "payment": register_payment_command(subparsers),
        "delete-payment": register_delete_payment_command(subparsers),
        "expense": register_expense_command(subparsers),
        "delete-expense": register_delete_expense_command(subparsers),
        "add-financial-year": register_add_financial_year_command(subparsers),
        "update-farmer": register_update_farmer_command(subparsers),
        "update-item": register_update_item_command(subparsers),
        "update-sale": register_update_sale_command(subparsers),
        "update-purchase": register_update_purchase_command(subparsers),
    }
    for spec in specs.values():
        spec.register(subparsers)
    return specs


def register_read_commands(
    subparsers: argparse._SubParsersAction[argparse.ArgumentParser],
) -> Dict[str, CommandSpec]:
    """Declare read-only report commands."""
    specs = {
        "balances": register_balances_command(subparsers),
        "statement": register_statement_command(subparsers),
        "stock": register_stock_command(subparsers),
        "movement": register_movement_command(subparsers),
        "cash-flow": register_cash_flow_command(subparsers),
        "daily": register_daily_command(subparsers),
        "consolidated": register_consolidated_command(subparsers),
        "manufacturing": register_manufacturing_command(subparsers),
        "top-items": register_top_items_command(subparsers),
    }
    for spec in specs.values():
        spec.register(subparsers)
    return specs


def register_add_company_command(
    subparsers: argparse._SubParsersAction[argparse.ArgumentParser],
) -> CommandSpec:
    """Register the parser and executor for ``add-company``."""
    name = "add-company"
    help_text = "Create a company with its financial years."

    def registrar(action: argparse._SubParsersAction[argparse.ArgumentParser]) -> argparse.ArgumentParser:
        parser = action.add_parser(name, help=help_text)
        parser.add_argument("--name", required=True)
        parser.add_argument("--address", default="")
        parser.add_argument(
            "--financial-year",
            dest="financial_years",
            action="append",
            default=[],
            help="Label such as 2025-2026; repeat for several years.",
        )
        parser.set_defaults(command=name)
        return parser

    return CommandSpec(name=name, help_text=help_text, register=registrar, execute=run_add_company)


def register_select_company_command(
    subparsers: argparse._SubParsersAction[argparse.ArgumentParser],
) -> CommandSpec:
    """Register the parser and executor for ``select-company``."""
    name = "select-company"
    help_text = "Choose the company and financial year later commands work on."

    def registrar(action: argparse._SubParsersAction[argparse.ArgumentParser]) -> argparse.ArgumentParser:
        parser = action.add_parser(name, help=help_text)
        parser.add_argument("--company-id", required=True)
        parser.add_argument("--financial-year", default=None)
        parser.set_defaults(command=name)
        return parser

    return CommandSpec(
        name=name, help_text=help_text, register=registrar, execute=run_select_company, mutates=False
    )


def register_add_farmer_command(
    subparsers: argparse._SubParsersAction[argparse.ArgumentParser],
) -> CommandSpec:
    """Register the parser and executor for ``add-farmer``."""
    name = "add-farmer"
    help_text = "Register a farmer under the selected company."

    def registrar(action: argparse._SubParsersAction[argparse.ArgumentParser]) -> argparse.ArgumentParser:
        parser = action.add_parser(name, help=help_text)
        _add_farmer_arguments(parser)
        parser.set_defaults(command=name)
        return parser

    return CommandSpec(name=name, help_text=help_text, register=registrar, execute=run_add_farmer)


def register_delete_farmer_command(
    subparsers: argparse._SubParsersAction[argparse.ArgumentParser],
) -> CommandSpec:
    """Register the parser and executor for ``delete-farmer``."""
    name = "delete-farmer"
    help_text = "Delete a farmer (their invoices and payments are kept)."

    def registrar(action: argparse._SubParsersAction[argparse.ArgumentParser]) -> argparse.ArgumentParser:
        parser = action.add_parser(name, help=help_text)
        parser.add_argument("--farmer-id", required=True)
        parser.set_defaults(command=name)
        return parser

    return CommandSpec(name=name, help_text=help_text, register=registrar, execute=run_delete_farmer)


def register_add_item_command(
    subparsers: argparse._SubParsersAction[argparse.ArgumentParser],
) -> CommandSpec:
    """Register the parser and executor for ``add-item``."""
    name = "add-item"
    help_text = "Register an item with its rate per kg and opening stock."

    def registrar(action: argparse._SubParsersAction[argparse.ArgumentParser]) -> argparse.ArgumentParser:
        parser = action.add_parser(name, help=help_text)
        parser.add_argument("--name", required=True)
        parser.add_argument("--rate", type=decimal_arg, required=True)
        parser.add_argument("--stock", type=decimal_arg, default=Decimal("0"))
        parser.set_defaults(command=name)
        return parser

    return CommandSpec(name=name, help_text=help_text, register=registrar, execute=run_add_item)


def register_sale_command(
    subparsers: argparse._SubParsersAction[argparse.ArgumentParser],
) -> CommandSpec:
    """Register the parser and executor for ``sale``."""
    name = "sale"
    help_text = "Record a sales invoice."

    def registrar(action: argparse._SubParsersAction[argparse.ArgumentParser]) -> argparse.ArgumentParser:
        parser = action.add_parser(name, help=help_text)
        _add_sales_invoice_arguments(parser)
        parser.set_defaults(command=name)
        return parser

    return CommandSpec(name=name, help_text=help_text, register=registrar, execute=run_sale)


def register_purchase_command(
    subparsers: argparse._SubParsersAction[argparse.ArgumentParser],
) -> CommandSpec:
    """Register the parser and executor for ``purchase``."""
    name = "purchase"
    help_text = "Record a purchase invoice."

    def registrar(action: argparse._SubParsersAction[argparse.ArgumentParser]) -> argparse.ArgumentParser:
        parser = action.add_parser(name, help=help_text)
        _add_purchase_invoice_arguments(parser)
        parser.set_defaults(command=name)
        return parser

    return CommandSpec(name=name, help_text=help_text, register=registrar, execute=run_purchase)


def register_delete_sale_command(
    subparsers: argparse._SubParsersAction[argparse.ArgumentParser],
) -> CommandSpec:
    """Register the parser and executor for ``delete-sale``."""
    name = "delete-sale"
    help_text = "Delete a sales invoice and return its weights to stock."

    def registrar(action: argparse._SubParsersAction[argparse.ArgumentParser]) -> argparse.ArgumentParser:
        parser = action.add_parser(name, help=help_text)
        parser.add_argument("--invoice-id", required=True)
        parser.set_defaults(command=name)
        return parser

    return CommandSpec(name=name, help_text=help_text, register=registrar, execute=run_delete_sale)


def register_delete_purchase_command(
    subparsers: argparse._SubParsersAction[argparse.ArgumentParser],
) -> CommandSpec:
    """Register the parser and executor for ``delete-purchase``."""
    name = "delete-purchase"
    help_text = "Delete a purchase invoice and take its weights out of stock."

    def registrar(action: argparse._SubParsersAction[argparse.ArgumentParser]) -> argparse.ArgumentParser:
        parser = action.add_parser(name, help=help_text)
        parser.add_argument("--purchase-id", required=True)
        parser.set_defaults(command=name)
        return parser

    return CommandSpec(name=name, help_text=help_text, register=registrar, execute=run_delete_purchase)


def register_payment_command(
    subparsers: argparse._SubParsersAction[argparse.ArgumentParser],
) -> CommandSpec:
    """Register the parser and executor for ``payment``."""
    name = "payment"
    help_text = "Record money received from or paid to a farmer."

    def registrar(action: argparse._SubParsersAction[argparse.ArgumentParser]) -> argparse.ArgumentParser:
        parser = action.add_parser(name, help=help_text)
        parser.add_argument("--farmer-id", required=True)
        parser.add_argument(
            "--type",
            dest="transaction_type",
            choices=[member.value for member in CashTransactionType],
            required=True,
        )
        parser.add_argument("--amount", type=decimal_arg, required=True)
        parser.add_argument(
            "--method",
            choices=[PaymentMethod.CASH.value, PaymentMethod.BANK.value],
            default=PaymentMethod.CASH.value,
        )
        parser.add_argument("--remarks", default=None)
        parser.set_defaults(command=name)
        return parser

    return CommandSpec(name=name, help_text=help_text, register=registrar, execute=run_payment)


def register_delete_payment_command(
    subparsers: argparse._SubParsersAction[argparse.ArgumentParser],
) -> CommandSpec:
    """Register the parser and executor for ``delete-payment``."""
    name = "delete-payment"
    help_text = "Delete a farmer cash/bank transaction."

    def registrar(action: argparse._SubParsersAction[argparse.ArgumentParser]) -> argparse.ArgumentParser:
        parser = action.add_parser(name, help=help_text)
        parser.add_argument("--transaction-id", required=True)
        parser.set_defaults(command=name)
        return parser

    return CommandSpec(name=name, help_text=help_text, register=registrar, execute=run_delete_payment)


def register_expense_command(
    subparsers: argparse._SubParsersAction[argparse.ArgumentParser],
) -> CommandSpec:
    """Register the parser and executor for ``expense``."""
    name = "expense"
    help_text = "Record a company expense or a cash movement to or from outside."

    def registrar(action: argparse._SubParsersAction[argparse.ArgumentParser]) -> argparse.ArgumentParser:
        parser = action.add_parser(name, help=help_text)
        parser.add_argument("--type", dest="expense_type", required=True)
        parser.add_argument("--amount", type=decimal_arg, required=True)
        parser.add_argument(
            "--method",
            choices=[member.value for member in PaymentMethod],
            default=PaymentMethod.CASH.value,
        )
        parser.add_argument("--remarks", default=None)
        parser.set_defaults(command=name)
        return parser

    return CommandSpec(name=name, help_text=help_text, register=registrar, execute=run_expense)


def register_delete_expense_command(
    subparsers: argparse._SubParsersAction[argparse.ArgumentParser],
) -> CommandSpec:
    """Register the parser and executor for ``delete-expense``."""
    name = "delete-expense"
    help_text = "Delete a company expense entry."

    def registrar(action: argparse._SubParsersAction[argparse.ArgumentParser]) -> argparse.ArgumentParser:
        parser = action.add_parser(name, help=help_text)
        parser.add_argument("--expense-id", required=True)
        parser.set_defaults(command=name)
        return parser

    return CommandSpec(name=name, help_text=help_text, register=registrar, execute=run_delete_expense)


def register_add_financial_year_command(
    subparsers: argparse._SubParsersAction[argparse.ArgumentParser],
) -> CommandSpec:
    """Register the parser and executor for ``add-financial-year``."""
    name = "add-financial-year"
    help_text = "Add a financial year to an existing company."

    def registrar(action: argparse._SubParsersAction[argparse.ArgumentParser]) -> argparse.ArgumentParser:
        parser = action.add_parser(name, help=help_text)
        parser.add_argument("--company-id", required=True)
        parser.add_argument("--financial-year", dest="financial_year", required=True, help="Label such as 2026-2027.")
        parser.set_defaults(command=name)
        return parser

    return CommandSpec(name=name, help_text=help_text, register=registrar, execute=run_add_financial_year)


def register_update_farmer_command(
    subparsers: argparse._SubParsersAction[argparse.ArgumentParser],
) -> CommandSpec:
    """Register the parser and executor for ``update-farmer``."""
    name = "update-farmer"
    help_text = "Replace a farmer's details; omitted optional fields are cleared."

    def registrar(action: argparse._SubParsersAction[argparse.ArgumentParser]) -> argparse.ArgumentParser:
        parser = action.add_parser(name, help=help_text)
        parser.add_argument("--farmer-id", required=True)
        _add_farmer_arguments(parser)
        parser.set_defaults(command=name)
        return parser

    return CommandSpec(name=name, help_text=help_text, register=registrar, execute=run_update_farmer)


def register_update_item_command(
    subparsers: argparse._SubParsersAction[argparse.ArgumentParser],
) -> CommandSpec:
    """Register the parser and executor for ``update-item``."""
    name = "update-item"
    help_text = "Rename an item or change its rate per kg."

    def registrar(action: argparse._SubParsersAction[argparse.ArgumentParser]) -> argparse.ArgumentParser:
        parser = action.add_parser(name, help=help_text)
        parser.add_argument("--item-id", required=True)
        parser.add_argument("--name", default=None)
        parser.add_argument("--rate", type=decimal_arg, default=None)
        parser.set_defaults(command=name)
        return parser

    return CommandSpec(name=name, help_text=help_text, register=registrar, execute=run_update_item)


def register_update_sale_command(
    subparsers: argparse._SubParsersAction[argparse.ArgumentParser],
) -> CommandSpec:
    """Register the parser and executor for ``update-sale``."""
    name = "update-sale"
    help_text = "Replace the lines and advance of a sales invoice."

    def registrar(action: argparse._SubParsersAction[argparse.ArgumentParser]) -> argparse.ArgumentParser:
        parser = action.add_parser(name, help=help_text)
        parser.add_argument("--invoice-id", required=True)
        _add_sales_invoice_arguments(parser)
        parser.set_defaults(command=name)
        return parser

    return CommandSpec(name=name, help_text=help_text, register=registrar, execute=run_update_sale)


def register_update_purchase_command(
    subparsers: argparse._SubParsersAction[argparse.ArgumentParser],
) -> CommandSpec:
    """Register the parser and executor for ``update-purchase``."""
    name = "update-purchase"
    help_text = "Replace the lines and advance of a purchase invoice."

    def registrar(action: argparse._SubParsersAction[argparse.ArgumentParser]) -> argparse.ArgumentParser:
        parser = action.add_parser(name, help=help_text)
        parser.add_argument("--purchase-id", required=True)
        _add_purchase_invoice_arguments(parser)
        parser.set_defaults(command=name)
        return parser

    return CommandSpec(name=name, help_text=help_text, register=registrar, execute=run_update_purchase)


def register_balances_command(
    subparsers: argparse._SubParsersAction[argparse.ArgumentParser],
) -> CommandSpec:
    """Register the parser and executor for ``balances``."""
    name = "balances"
    help_text = "Display every farmer's due balance."

    def registrar(action: argparse._SubParsersAction[argparse.ArgumentParser]) -> argparse.ArgumentParser:
        parser = action.add_parser(name, help=help_text)
        parser.set_defaults(command=name)
        return parser

    return CommandSpec(name=name, help_text=help_text, register=registrar, execute=run_balances_report, mutates=False)


def register_statement_command(
    subparsers: argparse._SubParsersAction[argparse.ArgumentParser],
) -> CommandSpec:
    """Register the parser and executor for ``statement``."""
    name = "statement"
    help_text = "Display one farmer's statement with a running balance."

    def registrar(action: argparse._SubParsersAction[argparse.ArgumentParser]) -> argparse.ArgumentParser:
        parser = action.add_parser(name, help=help_text)
        parser.add_argument("--farmer-id", required=True)
        _add_date_range_arguments(parser)
        parser.set_defaults(command=name)
        return parser

    return CommandSpec(name=name, help_text=help_text, register=registrar, execute=run_statement_report, mutates=False)


def register_stock_command(
    subparsers: argparse._SubParsersAction[argparse.ArgumentParser],
) -> CommandSpec:
    """Register the parser and executor for ``stock``."""
    name = "stock"
    help_text = "Display current stock levels."

    def registrar(action: argparse._SubParsersAction[argparse.ArgumentParser]) -> argparse.ArgumentParser:
        parser = action.add_parser(name, help=help_text)
        parser.set_defaults(command=name)
        return parser

    return CommandSpec(name=name, help_text=help_text, register=registrar, execute=run_stock_report, mutates=False)


def register_movement_command(
    subparsers: argparse._SubParsersAction[argparse.ArgumentParser],
) -> CommandSpec:
    """Register the parser and executor for ``movement``."""
    name = "movement"
    help_text = "Display kilograms bought and sold per item."

    def registrar(action: argparse._SubParsersAction[argparse.ArgumentParser]) -> argparse.ArgumentParser:
        parser = action.add_parser(name, help=help_text)
        _add_date_range_arguments(parser)
        parser.set_defaults(command=name)
        return parser

    return CommandSpec(name=name, help_text=help_text, register=registrar, execute=run_movement_report, mutates=False)


def register_cash_flow_command(
    subparsers: argparse._SubParsersAction[argparse.ArgumentParser],
) -> CommandSpec:
    """Register the parser and executor for ``cash-flow``."""
    name = "cash-flow"
    help_text = "Display cash in hand and expense totals."

    def registrar(action: argparse._SubParsersAction[argparse.ArgumentParser]) -> argparse.ArgumentParser:
        parser = action.add_parser(name, help=help_text)
        parser.set_defaults(command=name)
        return parser

    return CommandSpec(name=name, help_text=help_text, register=registrar, execute=run_cash_flow_report, mutates=False)


def register_daily_command(
    subparsers: argparse._SubParsersAction[argparse.ArgumentParser],
) -> CommandSpec:
    """Register the parser and executor for ``daily``."""
    name = "daily"
    help_text = "Display totals for one day (default today)."

    def registrar(action: argparse._SubParsersAction[argparse.ArgumentParser]) -> argparse.ArgumentParser:
        parser = action.add_parser(name, help=help_text)
        parser.add_argument("--date", dest="day", type=date_arg, default=None)
        parser.set_defaults(command=name)
        return parser

    return CommandSpec(name=name, help_text=help_text, register=registrar, execute=run_daily_report, mutates=False)


def register_consolidated_command(
    subparsers: argparse._SubParsersAction[argparse.ArgumentParser],
) -> CommandSpec:
    """Register the parser and executor for ``consolidated``."""
    name = "consolidated"
    help_text = "List every sale, purchase, and payment across farmers in time order."

    def registrar(action: argparse._SubParsersAction[argparse.ArgumentParser]) -> argparse.ArgumentParser:
        parser = action.add_parser(name, help=help_text)
        _add_date_range_arguments(parser)
        parser.set_defaults(command=name)
        return parser

    return CommandSpec(
        name=name, help_text=help_text, register=registrar, execute=run_consolidated_report, mutates=False
    )


def register_manufacturing_command(
    subparsers: argparse._SubParsersAction[argparse.ArgumentParser],
) -> CommandSpec:
    """Register the parser and executor for ``manufacturing``."""
    name = "manufacturing"
    help_text = "Cost labour and freight for manufacturing from purchased stock."

    def registrar(action: argparse._SubParsersAction[argparse.ArgumentParser]) -> argparse.ArgumentParser:
        parser = action.add_parser(name, help=help_text)
        parser.add_argument("--plant-rate", type=decimal_arg, default=Decimal("0"), help="Per purchased kg.")
        parser.add_argument("--khakhora-rate", type=decimal_arg, default=Decimal("0"), help="Per purchased kg.")
        parser.add_argument("--loading-rate", type=decimal_arg, default=Decimal("0"), help="Per manufactured kg.")
        parser.add_argument("--freight-rate", type=decimal_arg, default=Decimal("0"), help="Per manufactured kg.")
        _add_date_range_arguments(parser)
        parser.set_defaults(command=name)
        return parser

    return CommandSpec(
        name=name, help_text=help_text, register=registrar, execute=run_manufacturing_report, mutates=False
    )


def register_top_items_command(
    subparsers: argparse._SubParsersAction[argparse.ArgumentParser],
) -> CommandSpec:
    """Register the parser and executor for ``top-items``."""
    name = "top-items"
    help_text = "Display the most sold and most purchased items."

    def registrar(action: argparse._SubParsersAction[argparse.ArgumentParser]) -> argparse.ArgumentParser:
        parser = action.add_parser(name, help=help_text)
        parser.add_argument("--limit", type=int, default=ledger.TOP_ITEMS_LIMIT)
        parser.set_defaults(command=name)
        return parser

    return CommandSpec(name=name, help_text=help_text, register=registrar, execute=run_top_items_report, mutates=False)


# ---------------------------------------------------------------------------
# Dispatch
# ---------------------------------------------------------------------------


def load_runtime_context(config_path: Optional[Path] = None) -> core_logic.RuntimeContext:
    """Resolve the runtime context for CLI operations.

    Without ``config_path`` the nearest ``config.ini`` in the working directory
    or one of its parents is used.
    """
    return core_logic.load_runtime_context(Path(config_path) if config_path is not None else None)


def dispatch_command(
    context: core_logic.RuntimeContext,
    args: argparse.Namespace,
    command_table: Mapping[str, CommandSpec],
) -> int:
    """Dispatch the parsed arguments to the configured executor."""
    if not hasattr(args, "command") or args.command is None:
        raise KeyError("No command specified")
    spec = command_table.get(args.command)
    if spec is None:
        raise KeyError(f"Unknown command: {args.command}")
    return spec.execute(context, args)


def build_command_table(
    specs: Iterable[CommandSpec],
) -> MutableMapping[str, CommandSpec]:
    """Build an index of command specifications keyed by command name."""
    table: Dict[str, CommandSpec] = {}
    for spec in specs:
        if spec.name in table:
            raise ValueError(f"Duplicate command name: {spec.name}")
        table[spec.name] = spec
    return table


# ---------------------------------------------------------------------------
# Translation
# ---------------------------------------------------------------------------


def translate_add_farmer(args: argparse.Namespace) -> core_logic.FarmerCommand:
    """Translate CLI args into a farmer command object."""
    return core_logic.FarmerCommand(
        farmer_name=args.name,
        fathers_name=args.fathers_name,
        village=args.village,
        mobile_no=args.mobile,
        aadhar_card_no=args.aadhar,
        account_name=args.account_name,
        account_no=args.account_no,
        ifsc_code=args.ifsc,
    )


def translate_add_item(args: argparse.Namespace) -> core_logic.ItemCommand:
    """Translate CLI args into an item command object."""
    return core_logic.ItemCommand(item_name=args.name, rate_per_kg=args.rate, stock=args.stock)


def translate_sale(args: argparse.Namespace) -> core_logic.SalesInvoiceCommand:
    """Translate CLI args into a sales invoice command object."""
    return core_logic.SalesInvoiceCommand(
        farmer_id=args.farmer_id,
        lines=tuple(args.lines),
        advance=args.advance,
    )


def translate_purchase(args: argparse.Namespace) -> core_logic.PurchaseInvoiceCommand:
    """Translate CLI args into a purchase invoice command object."""
    return core_logic.PurchaseInvoiceCommand(
        farmer_id=args.farmer_id,
        lines=tuple(args.lines),
        advance=args.advance,
    )


def translate_payment(args: argparse.Namespace) -> core_logic.CashTransactionCommand:
    """Translate CLI args into a cash transaction command object."""
    return core_logic.CashTransactionCommand(
        farmer_id=args.farmer_id,
        transaction_type=CashTransactionType(args.transaction_type),
        amount=args.amount,
        payment_method=PaymentMethod(args.method),
        remarks=args.remarks,
    )


def translate_expense(args: argparse.Namespace) -> core_logic.ExpenseCommand:
    """Translate CLI args into an expense command object."""
    return core_logic.ExpenseCommand(
        expense_type=args.expense_type,
        amount=args.amount,
        payment_method=PaymentMethod(args.method),
        remarks=args.remarks,
    )


def translate_manufacturing_rates(args: argparse.Namespace) -> ledger.ManufacturingRates:
    """Translate CLI args into manufacturing rates."""
    return ledger.ManufacturingRates(
        plant_labour=args.plant_rate,
        khakhora_labour=args.khakhora_rate,
        loading_labour=args.loading_rate,
        freight=args.freight_rate,
    )


def translate_date_range(args: argparse.Namespace) -> Optional[ledger.DateRange]:
    """Build a date range from ``--from``/``--to``; ``None`` when neither is set."""
    start = getattr(args, "start", None)
    end = getattr(args, "end", None)
    if start is None and end is None:
        return None
    return ledger.DateRange(start=start or date.min, end=end)


# ---------------------------------------------------------------------------
# Executors
# ---------------------------------------------------------------------------


def run_add_company(context: core_logic.RuntimeContext, args: argparse.Namespace) -> int:
    """Execute the add-company workflow in the BLL."""
    company = core_logic.add_company(context, args.name, args.address, args.financial_years)
    print(f"Added company {company.company_id}: {company.name}")
    return 0


def run_select_company(context: core_logic.RuntimeContext, args: argparse.Namespace) -> int:
    """Select a company and remember the choice in ``config.ini``."""
    selected = core_logic.select_company(context, args.company_id, args.financial_year)
    core_logic.save_session(selected)
    print(f"Selected company {selected.session.company_id} ({selected.session.financial_year or 'no year'})")
    return 0


def run_add_farmer(context: core_logic.RuntimeContext, args: argparse.Namespace) -> int:
    farmer = core_logic.add_farmer(context, translate_add_farmer(args))
    print(f"Added farmer {farmer.farmer_id}: {farmer.farmer_name}")
    return 0


def run_delete_farmer(context: core_logic.RuntimeContext, args: argparse.Namespace) -> int:
    core_logic.delete_farmer(context, args.farmer_id)
    print(f"Deleted farmer {args.farmer_id}")
    return 0


def run_add_item(context: core_logic.RuntimeContext, args: argparse.Namespace) -> int:
    item = core_logic.add_item(context, translate_add_item(args))
    print(f"Added item {item.item_id}: {item.item_name}")
    return 0


def run_sale(context: core_logic.RuntimeContext, args: argparse.Namespace) -> int:
    """Execute the sales invoice workflow via the BLL."""
    invoice = core_logic.record_sales_invoice(context, translate_sale(args))
    print(
        f"Recorded {invoice.invoice_no}: total {ledger.format_money(invoice.total_amount)}, "
        f"due {ledger.format_money(invoice.due)}"
    )
    return 0


def run_purchase(context: core_logic.RuntimeContext, args: argparse.Namespace) -> int:
    """Execute the purchase invoice workflow via the BLL."""
    invoice = core_logic.record_purchase_invoice(context, translate_purchase(args))
    print(
        f"Recorded {invoice.purchase_no}: total {ledger.format_money(invoice.total_amount)}, "
        f"due {ledger.format_money(invoice.due)}"
    )
    return 0


def run_delete_sale(context: core_logic.RuntimeContext, args: argparse.Namespace) -> int:
    core_logic.delete_sales_invoice(context, args.invoice_id)
    print(f"Deleted {args.invoice_id}")
    return 0


def run_delete_purchase(context: core_logic.RuntimeContext, args: argparse.Namespace) -> int:
    core_logic.delete_purchase_invoice(context, args.purchase_id)
    print(f"Deleted {args.purchase_id}")
    return 0


def run_payment(context: core_logic.RuntimeContext, args: argparse.Namespace) -> int:
    """Execute the cash transaction workflow via the BLL."""
    transaction = core_logic.record_cash_transaction(context, translate_payment(args))
    print(
        f"Recorded {transaction.transaction_id}: {transaction.transaction_type} "
        f"{ledger.format_money(transaction.amount)} ({transaction.payment_method})"
    )
    return 0


def run_delete_payment(context: core_logic.RuntimeContext, args: argparse.Namespace) -> int:
    core_logic.delete_cash_transaction(context, args.transaction_id)
    print(f"Deleted {args.transaction_id}")
    return 0


def run_expense(context: core_logic.RuntimeContext, args: argparse.Namespace) -> int:
    """Execute the expense workflow via the BLL."""
    expense = core_logic.record_expense(context, translate_expense(args))
    print(f"Recorded {expense.expense_id}: {expense.expense_type} {ledger.format_money(expense.amount)}")
    return 0


def run_delete_expense(context: core_logic.RuntimeContext, args: argparse.Namespace) -> int:
    core_logic.delete_expense(context, args.expense_id)
    print(f"Deleted {args.expense_id}")
    return 0


def run_add_financial_year(context: core_logic.RuntimeContext, args: argparse.Namespace) -> int:
    company = core_logic.add_financial_year(context, args.company_id, args.financial_year)
    print(f"Company {company.company_id} years: {', '.join(company.financial_years)}")
    return 0


def run_update_farmer(context: core_logic.RuntimeContext, args: argparse.Namespace) -> int:
    farmer = core_logic.update_farmer(context, args.farmer_id, translate_add_farmer(args))
    print(f"Updated farmer {farmer.farmer_id}: {farmer.farmer_name}")
    return 0


def run_update_item(context: core_logic.RuntimeContext, args: argparse.Namespace) -> int:
    item = core_logic.update_item(context, args.item_id, item_name=args.name, rate_per_kg=args.rate)
    print(f"Updated item {item.item_id}: {item.item_name} at {ledger.format_money(item.rate_per_kg)}/kg")
    return 0


def run_update_sale(context: core_logic.RuntimeContext, args: argparse.Namespace) -> int:
    """Replace a sales invoice via the BLL, keeping its number and time."""
    invoice = core_logic.update_sales_invoice(context, args.invoice_id, translate_sale(args))
    print(
        f"Updated {invoice.invoice_no}: total {ledger.format_money(invoice.total_amount)}, "
        f"due {ledger.format_money(invoice.due)}"
    )
    return 0


def run_update_purchase(context: core_logic.RuntimeContext, args: argparse.Namespace) -> int:
    """Replace a purchase invoice via the BLL, keeping its number and time."""
    invoice = core_logic.update_purchase_invoice(context, args.purchase_id, translate_purchase(args))
    print(
        f"Updated {invoice.purchase_no}: total {ledger.format_money(invoice.total_amount)}, "
        f"due {ledger.format_money(invoice.due)}"
    )
    return 0


def run_balances_report(context: core_logic.RuntimeContext, args: argparse.Namespace) -> int:
    """Print each farmer's balance and the dashboard totals."""
    names = {farmer.farmer_id: farmer.farmer_name for farmer in core_logic.list_farmers(context)}
    for farmer_id, balance in core_logic.farmer_balances(context).items():
        print(f"{farmer_id}\t{names.get(farmer_id, '')}\t{ledger.format_money(balance)}")
    totals = core_logic.dashboard_totals(context)
    print(f"Payments in: {ledger.format_money(totals['total_payments_in'])}")
    print(f"Payments out: {ledger.format_money(totals['total_payments_out'])}")
    print(f"Net balance: {ledger.format_money(totals['net_balance'])}")
    return 0


def run_statement_report(context: core_logic.RuntimeContext, args: argparse.Namespace) -> int:
    """Print one farmer's statement."""
    entries = core_logic.farmer_statement(context, args.farmer_id, translate_date_range(args))
    for entry in entries:
        print(
            f"{entry.entry_date.isoformat()} {entry.entry_time.strftime('%H:%M')}\t{entry.kind.value}\t"
            f"{entry.reference}\t{ledger.format_money(entry.debit)}\t{ledger.format_money(entry.credit)}\t"
            f"{ledger.format_money(entry.running_balance)}"
        )
    if not entries:
        print("No entries.")
    return 0


def run_stock_report(context: core_logic.RuntimeContext, args: argparse.Namespace) -> int:
    """Print current stock per item."""
    names = {item.item_id: item.item_name for item in core_logic.list_items(context)}
    for item_id, quantity in core_logic.item_stock(context).items():
        print(f"{item_id}\t{names[item_id]}\t{ledger.format_money(quantity)} KG")
    return 0


def run_movement_report(context: core_logic.RuntimeContext, args: argparse.Namespace) -> int:
    """Print kilograms bought and sold per item."""
    for movement in core_logic.item_movement(context, translate_date_range(args)):
        print(
            f"{movement.item_id}\t{movement.item_name}\tsold {ledger.format_money(movement.total_sales_kg)}\t"
            f"bought {ledger.format_money(movement.total_purchases_kg)}\t"
            f"net {ledger.format_money(movement.net_movement_kg)}\t"
            f"stock {ledger.format_money(movement.closing_stock_kg)}"
        )
    return 0


def run_cash_flow_report(context: core_logic.RuntimeContext, args: argparse.Namespace) -> int:
    """Print the company cash position."""
    summary = core_logic.cash_flow(context)
    print(f"Cash in hand: {ledger.format_money(summary.cash_in_hand)}")
    print(f"Cash in from outside: {ledger.format_money(summary.total_cash_in_from_external)}")
    print(f"Cash out to outside: {ledger.format_money(summary.total_cash_out_to_external)}")
    print(f"Operating expenses: {ledger.format_money(summary.total_operating_expenses)}")
    return 0


def run_daily_report(context: core_logic.RuntimeContext, args: argparse.Namespace) -> int:
    """Print one day's totals."""
    summary = core_logic.daily_summary(context, args.day)
    print(f"Day: {summary.day.isoformat()}")
    print(f"Sales: {summary.sales_count} worth {ledger.format_money(summary.total_sales_amount)}")
    print(f"Purchases: {summary.purchase_count} worth {ledger.format_money(summary.total_purchase_amount)}")
    print(f"Payments in: {ledger.format_money(summary.total_payments_in)}")
    print(f"Payments out: {ledger.format_money(summary.total_payments_out)}")
    print(f"Net cash movement: {ledger.format_money(summary.net_cash_movement)}")
    return 0


def run_consolidated_report(context: core_logic.RuntimeContext, args: argparse.Namespace) -> int:
    """Print the all-farmers transaction register."""
    entries = core_logic.consolidated_transactions(context, translate_date_range(args))
    for entry in entries:
        print(
            f"{entry.entry_date.isoformat()} {entry.entry_time.strftime('%H:%M')}\t{entry.kind.value}\t"
            f"{entry.reference}\t{entry.farmer_name}\t{ledger.format_money(entry.amount)}\t{entry.details}"
        )
    if not entries:
        print("No entries.")
    return 0


def run_manufacturing_report(context: core_logic.RuntimeContext, args: argparse.Namespace) -> int:
    """Print the manufacturing cost breakdown."""
    summary = core_logic.manufacturing_expenses(
        context, translate_manufacturing_rates(args), translate_date_range(args)
    )
    print(f"Purchased: {ledger.format_money(summary.total_purchase_kg)} KG")
    print(f"Manufactured: {ledger.format_money(summary.manufactured_kg)} KG")
    print(f"Plant labour: {ledger.format_money(summary.plant_labour_cost)}")
    print(f"Khakhora labour: {ledger.format_money(summary.khakhora_labour_cost)}")
    print(f"Loading labour: {ledger.format_money(summary.loading_labour_cost)}")
    print(f"Freight: {ledger.format_money(summary.freight_cost)}")
    print(f"Total: {ledger.format_money(summary.total_expense)}")
    return 0


def run_top_items_report(context: core_logic.RuntimeContext, args: argparse.Namespace) -> int:
    """Print the most sold and most purchased items."""
    ranking = core_logic.top_items(context, args.limit)
    print("Most sold:")
    for movement in ranking.most_sold:
        print(f"{movement.item_id}\t{movement.item_name}\t{ledger.format_money(movement.total_sales_kg)} KG")
    print("Most purchased:")
    for movement in ranking.most_purchased:
        print(f"{movement.item_id}\t{movement.item_name}\t{ledger.format_money(movement.total_purchases_kg)} KG")
    return 0


def handle_cli_error(error: Exception) -> int:
    """Convert raised exceptions into user-friendly exit codes."""
    if isinstance(error, core_logic.BusinessRuleViolation):
        log.error("%s", error)
        return 2
    if isinstance(error, FileNotFoundError):
        log.error("%s", error)
        return 3
    log.error("%s", error)
    return 1


def persist_workbook(context: core_logic.RuntimeContext) -> None:
    """Persist workbook changes after successful execution."""
    try:
        core_logic.persist_context(context)
    except PermissionError as error:
        raise RuntimeError(f"Close the workbook in Excel and retry: {error}") from error


def main(argv: Sequence[str] | None = None) -> int:
    """CLI entry point that orchestrates parsing and execution."""
    parser = build_parser()
    command_table = configure_subcommands(parser)
    args = parser.parse_args(argv)
    if getattr(args, "verbose", False):
        set_console_level(logging.DEBUG)
    try:
        context = load_runtime_context(getattr(args, "config", None))
        core_logic.ensure_schema_version(context)
        exit_code = dispatch_command(context, args, command_table)
        if exit_code == 0 and command_table[args.command].mutates:
            persist_workbook(context)
        return exit_code
    except Exception as error:  # pragma: no cover - centralised error handler tested separately
        return handle_cli_error(error)
