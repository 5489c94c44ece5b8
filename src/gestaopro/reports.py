"""Read-only statistics over the product catalog and the transaction log.

Every function here is pure: it receives the current collections and derives
its figures from scratch, so callers simply call again after a mutation.
Calendar days are evaluated in local time.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import date, datetime, timedelta
from decimal import Decimal
from typing import Dict, Iterable, List, Optional, Sequence, Tuple

from . import log
from .constants import UNCATEGORIZED_LABEL, RangePreset, TransactionType
from .data_manager import ProductRow, TransactionRow, parse_timestamp

ZERO = Decimal("0")
HUNDRED = Decimal("100")


@dataclass(frozen=True)
class PeriodReport:
    """Totals of the financial report for one date range."""

    start: Optional[date]
    end: Optional[date]
    total_sales: Decimal
    total_stock_in: Decimal
    total_profit: Decimal
    sales_count: int
    stock_in_count: int
    transactions: List[TransactionRow] = field(default_factory=list)

    @property
    def net_cash_flow(self) -> Decimal:
        """Money taken from sales minus money spent on stock-in."""
        return self.total_sales - self.total_stock_in


@dataclass(frozen=True)
class DashboardSummary:
    """Figures shown on the dashboard cards and charts."""

    sales_today: Decimal
    profit_today: Decimal
    sales_count_today: int
    average_margin_today: Decimal
    total_stock_value: Decimal
    product_count: int
    low_stock_count: int
    product_margins: List[Tuple[str, Decimal]]
    category_distribution: Dict[str, int]
    recent_sales: List[TransactionRow]


def transaction_day(transaction: TransactionRow) -> date:
    """Return the local calendar day on which ``transaction`` happened.

    Naive timestamps are taken as local time already.
    """
    moment = parse_timestamp(transaction.timestamp_iso)
    if moment.tzinfo is not None:
        moment = moment.astimezone()
    return moment.date()


def _today(today: Optional[date]) -> date:
    return today if today is not None else datetime.now().astimezone().date()


def _sales_on(transactions: Iterable[TransactionRow], day: date) -> List[TransactionRow]:
    return [
        t for t in transactions
        if t.transaction_type == TransactionType.OUT.value and transaction_day(t) == day
    ]


def sales_today(transactions: Iterable[TransactionRow], *, today: Optional[date] = None) -> Decimal:
    """Sum of ``total_value`` over today's sales."""
    return sum((t.total_value for t in _sales_on(transactions, _today(today))), ZERO)


def profit_today(transactions: Iterable[TransactionRow], *, today: Optional[date] = None) -> Decimal:
    """Sum of ``profit`` over today's sales."""
    return sum((t.profit for t in _sales_on(transactions, _today(today))), ZERO)


def sales_count_today(transactions: Iterable[TransactionRow], *, today: Optional[date] = None) -> int:
    return len(_sales_on(transactions, _today(today)))


def average_margin_today(transactions: Iterable[TransactionRow], *, today: Optional[date] = None) -> Decimal:
    """Today's profit as a percentage of today's sales; ``0`` without sales."""
    todays = _sales_on(transactions, _today(today))
    revenue = sum((t.total_value for t in todays), ZERO)
    if revenue == ZERO:
        return ZERO
    return sum((t.profit for t in todays), ZERO) / revenue * HUNDRED


def total_stock_value(products: Iterable[ProductRow]) -> Decimal:
    """Stock valued at the current table sale price."""
    return sum((p.price * p.stock for p in products), ZERO)


def low_stock_products(products: Iterable[ProductRow]) -> List[ProductRow]:
    return [p for p in products if p.stock <= p.min_stock]


def low_stock_count(products: Iterable[ProductRow]) -> int:
    return len(low_stock_products(products))


def margin_percent(product: ProductRow) -> Decimal:
    """Return ``(price - cost) / price * 100``.

    A product priced at zero has no meaningful margin; it reports ``0``.
    """
    if product.price == ZERO:
        return ZERO
    return (product.price - product.purchase_price) / product.price * HUNDRED


def product_margins(products: Sequence[ProductRow], *, limit: Optional[int] = 5) -> List[Tuple[str, Decimal]]:
    """Name and margin of the first ``limit`` products (all when ``None``)."""
    selected = products if limit is None else products[:limit]
    return [(p.name, margin_percent(p)) for p in selected]


def category_distribution(products: Iterable[ProductRow]) -> Dict[str, int]:
    """Total stock per category, in first-seen order."""
    distribution: Dict[str, int] = {}
    for product in products:
        category = product.category.strip() or UNCATEGORIZED_LABEL
        distribution[category] = distribution.get(category, 0) + product.stock
    return distribution


def recent_sales(transactions: Iterable[TransactionRow], *, limit: int = 6) -> List[TransactionRow]:
    """Latest ``OUT`` movements, assuming the log is most-recent-first."""
    sales = [t for t in transactions if t.transaction_type == TransactionType.OUT.value]
    return sales[:limit]


def preset_range(preset: RangePreset, *, today: Optional[date] = None) -> Tuple[Optional[date], Optional[date]]:
    """Translate a quick range into inclusive ``(start, end)`` days.

    ``week`` starts on Monday and ``month`` on the first day of the month;
    both end today. ``all`` leaves both bounds open.
    """
    current = _today(today)
    preset = RangePreset(preset)
    if preset == RangePreset.TODAY:
        return current, current
    if preset == RangePreset.WEEK:
        return current - timedelta(days=current.weekday()), current
    if preset == RangePreset.MONTH:
        return current.replace(day=1), current
    return None, None


def filter_by_date_range(
    transactions: Iterable[TransactionRow],
    start: Optional[date] = None,
    end: Optional[date] = None,
) -> List[TransactionRow]:
    """Keep transactions whose calendar day lies within ``[start, end]``.

    Either bound may be ``None`` to leave that side open.
    """
    selected = []
    for transaction in transactions:
        day = transaction_day(transaction)
        if start is not None and day < start:
            continue
        if end is not None and day > end:
            continue
        selected.append(transaction)
    return selected


def summarize_period(
    transactions: Iterable[TransactionRow],
    start: Optional[date] = None,
    end: Optional[date] = None,
) -> PeriodReport:
    """Build the financial report for ``[start, end]``."""
    if start is not None and end is not None and start > end:
        log.warning("Report range starts after it ends: %s > %s", start, end)
    rows = filter_by_date_range(transactions, start, end)
    sales = [t for t in rows if t.transaction_type == TransactionType.OUT.value]
    inputs = [t for t in rows if t.transaction_type == TransactionType.IN.value]
    report = PeriodReport(
        start=start,
        end=end,
        total_sales=sum((t.total_value for t in sales), ZERO),
        total_stock_in=sum((t.total_value for t in inputs), ZERO),
        total_profit=sum((t.profit for t in sales), ZERO),
        sales_count=len(sales),
        stock_in_count=len(inputs),
        transactions=rows,
    )
    log.debug(
        "Summarized %d transactions between %s and %s: sales=%s stock_in=%s profit=%s",
        len(rows),
        start,
        end,
        report.total_sales,
        report.total_stock_in,
        report.total_profit,
    )
    return report


def build_dashboard(
    products: Sequence[ProductRow],
    transactions: Sequence[TransactionRow],
    *,
    today: Optional[date] = None,
) -> DashboardSummary:
    """Collect every dashboard figure from the current collections."""
    current = _today(today)
    return DashboardSummary(
        sales_today=sales_today(transactions, today=current),
        profit_today=profit_today(transactions, today=current),
        sales_count_today=sales_count_today(transactions, today=current),
        average_margin_today=average_margin_today(transactions, today=current),
        total_stock_value=total_stock_value(products),
        product_count=len(products),
        low_stock_count=low_stock_count(products),
        product_margins=product_margins(products),
        category_distribution=category_distribution(products),
        recent_sales=recent_sales(transactions),
    )
