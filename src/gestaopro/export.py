"""Excel export of the catalog, the transaction log and a period report.

The workbook is built from scratch on every call with :mod:`openpyxl`; one
sheet per collection plus a summary sheet, each starting with a bold header
row.
"""

from __future__ import annotations

from pathlib import Path
from typing import Iterable, Mapping, Sequence

import openpyxl
from openpyxl.styles import Font
from openpyxl.workbook import Workbook

from . import log
from .constants import SheetName
from .data_manager import ProductRow, TransactionRow
from .reports import PeriodReport, margin_percent

SHEET_COLUMNS: Mapping[str, Sequence[str]] = {
    SheetName.PRODUCTS.value: [
        "ProductID",
        "Name",
        "SKU",
        "Category",
        "PurchasePrice",
        "Price",
        "MarginPercent",
        "Stock",
        "MinStock",
    ],
    SheetName.TRANSACTIONS.value: [
        "TransactionID",
        "Date",
        "Type",
        "ProductID",
        "ProductName",
        "Quantity",
        "PurchaseValue",
        "SaleValue",
        "DiscountPercent",
        "TotalValue",
        "Profit",
        "CustomerName",
    ],
    SheetName.SUMMARY.value: ["Metric", "Value"],
}


def build_workbook(
    products: Iterable[ProductRow],
    transactions: Iterable[TransactionRow],
    report: PeriodReport,
    *,
    sheet_columns: Mapping[str, Sequence[str]] = SHEET_COLUMNS,
) -> Workbook:
    """Assemble an in-memory workbook; ``transactions`` is usually the report's rows."""

    workbook = openpyxl.Workbook()

    # Remove the default sheet openpyxl generates so we can create ours.
    if workbook.active and workbook.active.title == "Sheet":
        workbook.remove(workbook.active)

    bold_font = Font(bold=True)
    for sheet_name, columns in sheet_columns.items():
        worksheet = workbook.create_sheet(title=sheet_name)
        for column_index, column_name in enumerate(columns, start=1):
            cell = worksheet.cell(row=1, column=column_index)
            cell.value = column_name
            cell.font = bold_font

    products_sheet = workbook[SheetName.PRODUCTS.value]
    for product in products:
        products_sheet.append(
            [
                product.product_id,
                product.name,
                product.sku,
                product.category,
                product.purchase_price,
                product.price,
                round(margin_percent(product), 2),
                product.stock,
                product.min_stock,
            ]
        )

    transactions_sheet = workbook[SheetName.TRANSACTIONS.value]
    for transaction in transactions:
        transactions_sheet.append(
            [
                transaction.transaction_id,
                transaction.timestamp_iso,
                transaction.transaction_type,
                transaction.product_id,
                transaction.product_name,
                transaction.quantity,
                transaction.purchase_value,
                transaction.sale_value,
                transaction.discount_percent,
                transaction.total_value,
                transaction.profit,
                transaction.customer_name,
            ]
        )

    summary_sheet = workbook[SheetName.SUMMARY.value]
    for metric, value in (
        ("Start", report.start.isoformat() if report.start else None),
        ("End", report.end.isoformat() if report.end else None),
        ("TotalSales", report.total_sales),
        ("TotalStockIn", report.total_stock_in),
        ("TotalProfit", report.total_profit),
        ("NetCashFlow", report.net_cash_flow),
        ("SalesCount", report.sales_count),
        ("StockInCount", report.stock_in_count),
    ):
        summary_sheet.append([metric, value])

    return workbook


def export_workbook(
    destination: Path,
    products: Iterable[ProductRow],
    report: PeriodReport,
    *,
    overwrite: bool = False,
) -> Path:
    """Write the export for ``report`` to ``destination`` and return its path.

    Raises:
        FileExistsError: If ``destination`` exists and ``overwrite`` is false.
    """

    destination = Path(destination).expanduser().resolve()
    if destination.exists() and not overwrite:
        raise FileExistsError(f"Refusing to overwrite existing export: {destination}")

    destination.parent.mkdir(parents=True, exist_ok=True)
    workbook = build_workbook(products, report.transactions, report)
    workbook.save(destination)
    log.info("Exported %d transactions to '%s'", len(report.transactions), destination)
    return destination
