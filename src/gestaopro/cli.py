"""Command-line entry points for GestaoPro.

The CLI is the presentation layer: argparse wiring, translation of arguments
into calls on the business layer, and plain-text rendering of the views
(inventory table, dashboard, financial report, transaction log). Display
formatting such as the currency symbol lives here and nowhere else.
"""

from __future__ import annotations

import argparse
from dataclasses import dataclass
from datetime import date
from decimal import Decimal
from pathlib import Path
from typing import Callable, Dict, Iterable, Mapping, MutableMapping, Optional, Sequence, Tuple

from . import core_logic, export, log, reports
from .constants import RangePreset, TransactionType
from .data_manager import ProductRow, TransactionRow


@dataclass(frozen=True)
class CommandSpec:
    """Describe how a CLI sub-command is configured and executed."""

    name: str
    help_text: str
    register: Callable[[argparse._SubParsersAction[argparse.ArgumentParser]], argparse.ArgumentParser]
    execute: Callable[[core_logic.RuntimeContext, argparse.Namespace], int]
    writes: bool = False


def build_parser() -> argparse.ArgumentParser:
    """Construct the top-level CLI argument parser."""
    parser = argparse.ArgumentParser(
        prog="gestaopro",
        description="Inventory and point-of-sale tools for the GestaoPro store.",
    )
    parser.add_argument(
        "--config",
        type=Path,
        default=None,
        help="Optional path to config.ini (searched upwards from the working directory by default).",
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


def register_write_commands(
    subparsers: argparse._SubParsersAction[argparse.ArgumentParser],
) -> Dict[str, CommandSpec]:
    """Declare mutating CLI commands such as sales and stock-in."""
    specs = {
        "add-product": register_add_product_command(subparsers),
        "sale": register_sale_command(subparsers),
        "stock-in": register_stock_in_command(subparsers),
        "quick-in": register_quick_in_command(subparsers),
    }
    for spec in specs.values():
        spec.register(subparsers)
    return specs


def register_read_commands(
    subparsers: argparse._SubParsersAction[argparse.ArgumentParser],
) -> Dict[str, CommandSpec]:
    """Declare read-only CLI commands such as reports."""
    specs = {
        "inventory": register_inventory_command(subparsers),
        "dashboard": register_dashboard_command(subparsers),
        "report": register_report_command(subparsers),
        "log": register_log_command(subparsers),
        "export": register_export_command(subparsers),
    }
    for spec in specs.values():
        spec.register(subparsers)
    return specs


def _add_range_arguments(parser: argparse.ArgumentParser) -> None:
    parser.add_argument(
        "--preset",
        choices=[member.value for member in RangePreset],
        default=None,
        help="Quick range; overrides --start/--end.",
    )
    parser.add_argument("--start", default=None, help="First day included (YYYY-MM-DD).")
    parser.add_argument("--end", default=None, help="Last day included (YYYY-MM-DD).")


def register_add_product_command(
    subparsers: argparse._SubParsersAction[argparse.ArgumentParser],
) -> CommandSpec:
    """Register the parser and executor for ``add-product``."""
    name = "add-product"
    help_text = "Register a new product in the catalog."

    def registrar(action: argparse._SubParsersAction[argparse.ArgumentParser]) -> argparse.ArgumentParser:
        parser = action.add_parser(name, help=help_text)
        parser.add_argument("--name", required=True)
        parser.add_argument("--sku", required=True)
        parser.add_argument("--category", default="")
        parser.add_argument("--purchase-price", required=True)
        parser.add_argument("--price", required=True)
        parser.add_argument("--stock", default="0")
        parser.add_argument("--min-stock", default=None, help="Defaults to MinStock from config.ini.")
        parser.set_defaults(command=name)
        return parser

    return CommandSpec(name=name, help_text=help_text, register=registrar, execute=run_add_product, writes=True)


def register_sale_command(
    subparsers: argparse._SubParsersAction[argparse.ArgumentParser],
) -> CommandSpec:
    """Register the parser and executor for ``sale``."""
    name = "sale"
    help_text = "Record a sale (stock-out)."

    def registrar(action: argparse._SubParsersAction[argparse.ArgumentParser]) -> argparse.ArgumentParser:
        parser = action.add_parser(name, help=help_text)
        parser.add_argument("--product-id", required=True)
        parser.add_argument("--quantity", required=True)
        parser.add_argument("--customer", dest="customer_name", default=None)
        parser.add_argument("--discount", dest="discount_percent", default=None, help="Discount in percent (0-100).")
        parser.set_defaults(command=name)
        return parser

    return CommandSpec(name=name, help_text=help_text, register=registrar, execute=run_sale, writes=True)


def register_stock_in_command(
    subparsers: argparse._SubParsersAction[argparse.ArgumentParser],
) -> CommandSpec:
    """Register the parser and executor for ``stock-in``."""
    name = "stock-in"
    help_text = "Record a stock entry, optionally updating the table prices."

    def registrar(action: argparse._SubParsersAction[argparse.ArgumentParser]) -> argparse.ArgumentParser:
        parser = action.add_parser(name, help=help_text)
        parser.add_argument("--product-id", required=True)
        parser.add_argument("--quantity", required=True)
        parser.add_argument("--purchase-price", dest="new_purchase_price", default=None)
        parser.add_argument("--sale-price", dest="new_sale_price", default=None)
        parser.set_defaults(command=name)
        return parser

    return CommandSpec(name=name, help_text=help_text, register=registrar, execute=run_stock_in, writes=True)


def register_quick_in_command(
    subparsers: argparse._SubParsersAction[argparse.ArgumentParser],
) -> CommandSpec:
    """Register the parser and executor for ``quick-in``."""
    name = "quick-in"
    help_text = "Add units at the current prices (one by default)."

    def registrar(action: argparse._SubParsersAction[argparse.ArgumentParser]) -> argparse.ArgumentParser:
        parser = action.add_parser(name, help=help_text)
        parser.add_argument("--product-id", required=True)
        parser.add_argument("--amount", default="1")
        parser.set_defaults(command=name)
        return parser

    return CommandSpec(name=name, help_text=help_text, register=registrar, execute=run_quick_in, writes=True)


def register_inventory_command(
    subparsers: argparse._SubParsersAction[argparse.ArgumentParser],
) -> CommandSpec:
    """Register the parser and executor for ``inventory``."""
    name = "inventory"
    help_text = "Display the product catalog with stock levels."

    def registrar(action: argparse._SubParsersAction[argparse.ArgumentParser]) -> argparse.ArgumentParser:
        parser = action.add_parser(name, help=help_text)
        parser.add_argument("--low-only", action="store_true", help="Only list products at or below minimum stock.")
        parser.set_defaults(command=name)
        return parser

    return CommandSpec(name=name, help_text=help_text, register=registrar, execute=run_inventory)


def register_dashboard_command(
    subparsers: argparse._SubParsersAction[argparse.ArgumentParser],
) -> CommandSpec:
    """Register the parser and executor for ``dashboard``."""
    name = "dashboard"
    help_text = "Display today's sales, stock value and alerts."

    def registrar(action: argparse._SubParsersAction[argparse.ArgumentParser]) -> argparse.ArgumentParser:
        parser = action.add_parser(name, help=help_text)
        parser.set_defaults(command=name)
        return parser

    return CommandSpec(name=name, help_text=help_text, register=registrar, execute=run_dashboard)


def register_report_command(
    subparsers: argparse._SubParsersAction[argparse.ArgumentParser],
) -> CommandSpec:
    """Register the parser and executor for ``report``."""
    name = "report"
    help_text = "Display the financial report for a date range."

    def registrar(action: argparse._SubParsersAction[argparse.ArgumentParser]) -> argparse.ArgumentParser:
        parser = action.add_parser(name, help=help_text)
        _add_range_arguments(parser)
        parser.set_defaults(command=name)
        return parser

    return CommandSpec(name=name, help_text=help_text, register=registrar, execute=run_report)


def register_log_command(
    subparsers: argparse._SubParsersAction[argparse.ArgumentParser],
) -> CommandSpec:
    """Register the parser and executor for ``log``."""
    name = "log"
    help_text = "Display the transaction log, most recent first."

    def registrar(action: argparse._SubParsersAction[argparse.ArgumentParser]) -> argparse.ArgumentParser:
        parser = action.add_parser(name, help=help_text)
        parser.add_argument("--limit", type=int, default=None)
        parser.add_argument("--type", dest="transaction_type", choices=[member.value for member in TransactionType])
        parser.set_defaults(command=name)
        return parser

    return CommandSpec(name=name, help_text=help_text, register=registrar, execute=run_log_report)


def register_export_command(
    subparsers: argparse._SubParsersAction[argparse.ArgumentParser],
) -> CommandSpec:
    """Register the parser and executor for ``export``."""
    name = "export"
    help_text = "Export the catalog and a period report to an Excel workbook."

    def registrar(action: argparse._SubParsersAction[argparse.ArgumentParser]) -> argparse.ArgumentParser:
        parser = action.add_parser(name, help=help_text)
        parser.add_argument("--output", type=Path, required=True)
        parser.add_argument("--force", action="store_true", help="Overwrite an existing file.")
        _add_range_arguments(parser)
        parser.set_defaults(command=name)
        return parser

    return CommandSpec(name=name, help_text=help_text, register=registrar, execute=run_export)


def load_runtime_context(config_path: Optional[Path] = None) -> core_logic.RuntimeContext:
    """Resolve the runtime context for CLI operations."""
    context = core_logic.load_runtime_context(config_path)
    core_logic.ensure_schema_version(context)
    return context


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


def parse_count(raw: str, *, label: str) -> int:
    """Convert a whole-number argument, reporting bad input as a rule violation."""
    try:
        return int(raw)
    except (TypeError, ValueError) as exc:
        raise core_logic.InvalidQuantity(f"The {label} must be a whole number, got {raw!r}") from exc


def parse_day(raw: Optional[str]) -> Optional[date]:
    """Convert a ``YYYY-MM-DD`` argument; ``None`` stays open."""
    if raw is None:
        return None
    try:
        return date.fromisoformat(raw)
    except ValueError as exc:
        raise ValueError(f"Invalid date {raw!r}; expected YYYY-MM-DD") from exc


def translate_range(args: argparse.Namespace, *, today: Optional[date] = None) -> Tuple[Optional[date], Optional[date]]:
    """Resolve ``--preset`` or ``--start``/``--end`` into report bounds."""
    if getattr(args, "preset", None):
        return reports.preset_range(RangePreset(args.preset), today=today)
    return parse_day(getattr(args, "start", None)), parse_day(getattr(args, "end", None))


def translate_add_product(args: argparse.Namespace) -> Mapping[str, object]:
    """Translate CLI args into an add-product request."""
    min_stock = getattr(args, "min_stock", None)
    return {
        "name": args.name,
        "sku": args.sku,
        "category": args.category,
        "purchase_price": args.purchase_price,
        "price": args.price,
        "stock": parse_count(args.stock, label="stock"),
        "min_stock": parse_count(min_stock, label="minimum stock") if min_stock is not None else None,
    }


def translate_sale(args: argparse.Namespace) -> core_logic.TransactionRequest:
    """Translate CLI args into an ``OUT`` request."""
    return core_logic.TransactionRequest(
        product_id=args.product_id,
        transaction_type=TransactionType.OUT,
        quantity=parse_count(args.quantity, label="quantity"),
        customer_name=args.customer_name,
        discount_percent=args.discount_percent,
    )


def translate_stock_in(args: argparse.Namespace) -> core_logic.TransactionRequest:
    """Translate CLI args into an ``IN`` request."""
    return core_logic.TransactionRequest(
        product_id=args.product_id,
        transaction_type=TransactionType.IN,
        quantity=parse_count(args.quantity, label="quantity"),
        new_purchase_price=args.new_purchase_price,
        new_sale_price=args.new_sale_price,
    )


def format_money(value: Decimal, symbol: str) -> str:
    return f"{symbol} {value:,.2f}"


def format_percent(value: Decimal) -> str:
    return f"{value:.1f}%"


def render_inventory(products: Sequence[ProductRow], symbol: str) -> str:
    """Render the inventory table."""
    lines = [f"{'ID':<32}  {'SKU':<10}  {'Name':<24}  {'Category':<12}  {'Cost':>12}  {'Price':>12}  {'Margin':>7}  {'Stock':>6}"]
    for product in products:
        flag = " !" if product.stock <= product.min_stock else ""
        lines.append(
            f"{product.product_id:<32}  {product.sku:<10}  {product.name[:24]:<24}  {product.category[:12]:<12}  "
            f"{format_money(product.purchase_price, symbol):>12}  {format_money(product.price, symbol):>12}  "
            f"{format_percent(reports.margin_percent(product)):>7}  {product.stock:>6}{flag}"
        )
    if not products:
        lines.append("No products registered.")
    return "\n".join(lines)


def render_transactions(transactions: Sequence[TransactionRow], symbol: str) -> str:
    """Render log rows, one movement per line."""
    lines = []
    for transaction in transactions:
        label = "SALE" if transaction.transaction_type == TransactionType.OUT.value else "ENTRY"
        customer = f"  ({transaction.customer_name})" if transaction.customer_name else ""
        lines.append(
            f"{transaction.timestamp_iso[:19]}  {label:<5}  {transaction.product_name[:24]:<24}  "
            f"x{transaction.quantity:<4}  {format_money(transaction.total_value, symbol):>14}{customer}"
        )
    if not transactions:
        lines.append("No transactions recorded.")
    return "\n".join(lines)


def render_dashboard(summary: reports.DashboardSummary, symbol: str) -> str:
    """Render the dashboard cards, margin chart, categories and last sales."""
    status = "restock needed" if summary.low_stock_count else "stock healthy"
    lines = [
        f"Sales today:       {format_money(summary.sales_today, symbol)} ({summary.sales_count_today} sales)",
        f"Net profit today:  {format_money(summary.profit_today, symbol)} "
        f"(average margin {format_percent(summary.average_margin_today)})",
        f"Stock value:       {format_money(summary.total_stock_value, symbol)} ({summary.product_count} products)",
        f"Low stock alerts:  {summary.low_stock_count} ({status})",
        "",
        "Margin per product:",
    ]
    lines.extend(f"  {name[:24]:<24} {format_percent(margin):>7}" for name, margin in summary.product_margins)
    lines.append("")
    lines.append("Stock per category:")
    lines.extend(f"  {category[:24]:<24} {stock:>7}" for category, stock in summary.category_distribution.items())
    lines.append("")
    lines.append("Latest sales:")
    lines.append(render_transactions(summary.recent_sales, symbol))
    return "\n".join(lines)


def render_report(report: reports.PeriodReport, symbol: str) -> str:
    """Render the financial report totals followed by its rows."""
    start = report.start.isoformat() if report.start else "beginning"
    end = report.end.isoformat() if report.end else "today"
    lines = [
        f"Period:         {start} .. {end}",
        f"Total sales:    {format_money(report.total_sales, symbol)} ({report.sales_count} sales)",
        f"Total stock-in: {format_money(report.total_stock_in, symbol)} ({report.stock_in_count} entries)",
        f"Net profit:     {format_money(report.total_profit, symbol)}",
        f"Net cash flow:  {format_money(report.net_cash_flow, symbol)}",
        "",
        render_transactions(report.transactions, symbol),
    ]
    return "\n".join(lines)


def run_add_product(context: core_logic.RuntimeContext, args: argparse.Namespace) -> int:
    """Execute the add-product workflow in the BLL."""
    payload = translate_add_product(args)
    product = core_logic.add_product(context, **payload)
    print(f"Product registered: {product.name} ({product.sku}) id={product.product_id}")
    return 0


def run_sale(context: core_logic.RuntimeContext, args: argparse.Namespace) -> int:
    """Execute the sale workflow via the BLL."""
    request = translate_sale(args)
    transaction = core_logic.record_transaction(context, request)
    symbol = context.settings.currency_symbol
    print(
        f"Sale recorded: {transaction.quantity} x {transaction.product_name} "
        f"= {format_money(transaction.total_value, symbol)} (profit {format_money(transaction.profit, symbol)})"
    )
    return 0


def run_stock_in(context: core_logic.RuntimeContext, args: argparse.Namespace) -> int:
    """Execute the stock-in workflow via the BLL."""
    request = translate_stock_in(args)
    transaction = core_logic.record_transaction(context, request)
    print(f"Entry recorded: {transaction.quantity} x {transaction.product_name}")
    return 0


def run_quick_in(context: core_logic.RuntimeContext, args: argparse.Namespace) -> int:
    """Execute the quick stock-in workflow via the BLL."""
    amount = parse_count(args.amount, label="amount")
    transaction = core_logic.quick_stock_in(context, args.product_id, amount)
    print(f"Entry recorded: {transaction.quantity} x {transaction.product_name}")
    return 0


def run_inventory(context: core_logic.RuntimeContext, args: argparse.Namespace) -> int:
    """Execute the inventory listing."""
    products = core_logic.list_products(context)
    if getattr(args, "low_only", False):
        products = reports.low_stock_products(products)
    print(render_inventory(products, context.settings.currency_symbol))
    return 0


def run_dashboard(context: core_logic.RuntimeContext, args: argparse.Namespace) -> int:
    """Execute the dashboard view."""
    summary = reports.build_dashboard(core_logic.list_products(context), core_logic.list_transactions(context))
    print(render_dashboard(summary, context.settings.currency_symbol))
    return 0


def run_report(context: core_logic.RuntimeContext, args: argparse.Namespace) -> int:
    """Execute the financial report for the requested range."""
    start, end = translate_range(args)
    report = reports.summarize_period(core_logic.list_transactions(context), start, end)
    print(render_report(report, context.settings.currency_symbol))
    return 0


def run_log_report(context: core_logic.RuntimeContext, args: argparse.Namespace) -> int:
    """Execute the transaction log listing."""
    transactions = core_logic.list_transactions(context)
    if getattr(args, "transaction_type", None):
        transactions = [t for t in transactions if t.transaction_type == args.transaction_type]
    limit = getattr(args, "limit", None)
    if limit is not None:
        transactions = transactions[:limit]
    print(render_transactions(transactions, context.settings.currency_symbol))
    return 0


def run_export(context: core_logic.RuntimeContext, args: argparse.Namespace) -> int:
    """Execute the Excel export."""
    start, end = translate_range(args)
    report = reports.summarize_period(core_logic.list_transactions(context), start, end)
    destination = export.export_workbook(
        args.output,
        core_logic.list_products(context),
        report,
        overwrite=getattr(args, "force", False),
    )
    print(f"Exported to {destination}")
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


def persist_store(context: core_logic.RuntimeContext) -> None:
    """Persist store changes after successful execution."""
    try:
        core_logic.persist_context(context)
    except PermissionError as error:
        raise RuntimeError(str(error)) from error


def main(argv: Sequence[str] | None = None) -> int:
    """CLI entry point that orchestrates parsing and execution."""
    parser = build_parser()
    command_table = configure_subcommands(parser)
    args = parser.parse_args(argv)
    try:
        context = load_runtime_context(getattr(args, "config", None))
        exit_code = dispatch_command(context, args, command_table)
        if exit_code == 0 and command_table[args.command].writes:
            persist_store(context)
        return exit_code
    except Exception as error:  # pragma: no cover - centralised error handler tested separately
        return handle_cli_error(error)
