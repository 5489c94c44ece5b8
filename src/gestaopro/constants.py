"""Enumerations shared across GestaoPro modules.

Keeps the identifiers used by the store, the transaction engine, the reports
and the command-line views in one place.
"""

from __future__ import annotations

from enum import Enum


# Record layout version expected by all layers when loading a store.
EXPECTED_SCHEMA_VERSION = "2.0.0"

# Namespace prefix for the two store keys when config.ini does not set one.
DEFAULT_STORE_NAME = "gestaopro"

# Label used by the category distribution for products without a category.
UNCATEGORIZED_LABEL = "Uncategorized"


class TransactionType(str, Enum):
    """Direction of a stock movement."""

    IN = "IN"
    OUT = "OUT"


class StoreKey(str, Enum):
    """Suffixes of the two collections held in the key-value store."""

    PRODUCTS = "products"
    TRANSACTIONS = "transactions"


class RangePreset(str, Enum):
    """Quick date ranges offered by the financial report."""

    TODAY = "today"
    WEEK = "week"
    MONTH = "month"
    ALL = "all"


class SheetName(str, Enum):
    """Worksheet names written by the Excel export."""

    PRODUCTS = "Products"
    TRANSACTIONS = "Transactions"
    SUMMARY = "Summary"


__all__ = [
    "EXPECTED_SCHEMA_VERSION",
    "DEFAULT_STORE_NAME",
    "UNCATEGORIZED_LABEL",
    "TransactionType",
    "StoreKey",
    "RangePreset",
    "SheetName",
]
