"""Enumerations shared across the farm ledger modules.

Keeps the identifiers stored in the workbook in one place so the data access
layer (DAL), the ledger engines, and the business logic layer (BLL) agree on
the exact spelling of every persisted value.
"""

from __future__ import annotations

from enum import Enum


# Central schema version expected by all layers when validating workbooks.
EXPECTED_SCHEMA_VERSION = "1.0.0"

SALES_INVOICE_PREFIX = "S"
PURCHASE_INVOICE_PREFIX = "P"
COMPANY_ID_PREFIX = "C"
FARMER_ID_PREFIX = "F"
ITEM_ID_PREFIX = "I"
CASH_TRANSACTION_ID_PREFIX = "T"
EXPENSE_ID_PREFIX = "E"


class CashTransactionType(str, Enum):
    """Direction of money moving between the business and a farmer."""

    PAYMENT_IN = "Payment In"
    PAYMENT_OUT = "Payment Out"


class PaymentMethod(str, Enum):
    """Enumerate supported payment mechanisms."""

    CASH = "Cash"
    BANK = "Bank"
    NOT_APPLICABLE = "N/A"


class ReservedExpenseType(str, Enum):
    """Expense categories that move cash rather than spend it."""

    CASH_IN = "Cash In (Bank/Home)"
    CASH_OUT = "Cash Out (Bank/Home)"


class StatementKind(str, Enum):
    """Entry kinds appearing on a farmer statement, in tie-break order."""

    SALE = "Sale"
    PURCHASE = "Purchase"
    PAYMENT_IN = CashTransactionType.PAYMENT_IN.value
    PAYMENT_OUT = CashTransactionType.PAYMENT_OUT.value


class StockDirection(str, Enum):
    """Whether invoice quantities are being applied to or reverted from stock."""

    APPLY = "apply"
    REVERT = "revert"


class SheetName(str, Enum):
    """Enumerate the workbook sheet names managed by the DAL."""

    COMPANIES = "Companies"
    FARMERS = "Farmers"
    ITEMS = "Items"
    SALES_INVOICES = "SalesInvoices"
    SALES_INVOICE_LINES = "SalesInvoiceLines"
    PURCHASE_INVOICES = "PurchaseInvoices"
    PURCHASE_INVOICE_LINES = "PurchaseInvoiceLines"
    CASH_TRANSACTIONS = "CashBankTransactions"
    EXPENSES = "Expenses"


__all__ = [
    "EXPECTED_SCHEMA_VERSION",
    "SALES_INVOICE_PREFIX",
    "PURCHASE_INVOICE_PREFIX",
    "COMPANY_ID_PREFIX",
    "FARMER_ID_PREFIX",
    "ITEM_ID_PREFIX",
    "CASH_TRANSACTION_ID_PREFIX",
    "EXPENSE_ID_PREFIX",
    "CashTransactionType",
    "PaymentMethod",
    "ReservedExpenseType",
    "StatementKind",
    "StockDirection",
    "SheetName",
]
