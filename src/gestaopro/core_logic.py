"""Business logic layer for GestaoPro.

This module contains the transaction engine that applies stock movements to
the product catalog and the append-only transaction log. It consumes the Data
Access Layer (DAL) for all I/O while ensuring every mutation passes through
the validation rules below.
"""

from __future__ import annotations

import uuid
from dataclasses import dataclass, field, replace
from datetime import datetime
from decimal import Decimal, InvalidOperation
from pathlib import Path
from typing import Dict, List, Optional, Sequence, Tuple, Union

from . import data_manager, log
from .constants import EXPECTED_SCHEMA_VERSION, TransactionType


MoneyInput = Union[Decimal, int, str]

HUNDRED = Decimal("100")


class BusinessRuleViolation(Exception):
    """Raised when a requested operation violates a domain constraint."""


class MissingReferenceError(BusinessRuleViolation):
    """Raised when a referenced record is unknown."""


class ProductNotFound(MissingReferenceError):
    """Raised when a request names a product id absent from the catalog."""


class InsufficientStock(BusinessRuleViolation):
    """Raised when a sale asks for more units than are in stock."""


class InvalidQuantity(BusinessRuleViolation):
    """Raised when a quantity is not a positive whole number."""


class InvalidDiscount(BusinessRuleViolation):
    """Raised when a discount falls outside the 0-100 percent range."""


class InvalidPrice(BusinessRuleViolation):
    """Raised when a price or cost is negative or not a number."""


class DuplicateSku(BusinessRuleViolation):
    """Raised when a new product reuses the SKU of an existing one."""


@dataclass
class RuntimeContext:
    """Session state: configuration, the raw store and both collections.

    ``products`` and ``transactions`` are the authoritative in-memory copies
    for the session. ``store`` is the mirror written by :func:`persist_context`.
    """

    settings: data_manager.ConfigSettings
    store: Dict[str, str]
    products: List[data_manager.ProductRow] = field(default_factory=list)
    transactions: List[data_manager.TransactionRow] = field(default_factory=list)


@dataclass(frozen=True)
class TransactionRequest:
    """User intent for one stock movement.

    ``customer_name`` and ``discount_percent`` only matter for ``OUT``;
    ``discount_percent`` is ignored for ``IN``. New prices are applied to
    the movement being recorded and, for ``IN`` only, become the product's
    table prices.
    """

    product_id: str
    transaction_type: TransactionType
    quantity: int
    customer_name: Optional[str] = None
    new_purchase_price: Optional[MoneyInput] = None
    new_sale_price: Optional[MoneyInput] = None
    discount_percent: Optional[MoneyInput] = None


@dataclass(frozen=True)
class PriceBreakdown:
    """Unit prices resolved for one request before anything is written."""

    unit_cost: Decimal
    base_sale_price: Decimal
    sale_price: Decimal
    discount_percent: Decimal
    unit_profit: Decimal


def _resolve_timestamp(candidate: Optional[datetime]) -> datetime:
    """Return ``candidate`` or the current local time with its UTC offset."""

    return candidate if candidate is not None else datetime.now().astimezone()


def generate_id() -> str:
    """Return a fresh opaque identifier for products and transactions."""

    return uuid.uuid4().hex


def load_runtime_context(config_path: Optional[Path] = None) -> RuntimeContext:
    """Load configuration settings and the store contents for a session.

    Resolves ``config.ini``, parses the settings, opens the key-value store
    and decodes both collections. When the store has no products yet the
    seed catalog is used if ``SeedCatalog`` is enabled.

    Raises:
        FileNotFoundError: If the configuration file or store cannot be
            located.
        KeyError: When mandatory configuration options are missing.
    """
    located_config = data_manager.find_config_file(config_path)
    resolved_config = Path(located_config).expanduser().resolve()
    parser = data_manager.read_config(resolved_config)
    settings = data_manager.parse_settings(parser, base_path=resolved_config.parent)
    store = data_manager.open_store(settings.data_file)
    products = data_manager.get_products(store, settings.store_name, seed=settings.seed_catalog)
    transactions = data_manager.get_transactions(store, settings.store_name)
    log.info(
        "Loaded runtime context for store '%s' (%d products, %d transactions)",
        settings.data_file,
        len(products),
        len(transactions),
    )
    return RuntimeContext(settings=settings, store=store, products=products, transactions=transactions)


def ensure_schema_version(context: RuntimeContext) -> None:
    """Validate that ``config.ini`` declares the record layout this code reads.

    Raises:
        RuntimeError: If the configured schema version does not match
            ``EXPECTED_SCHEMA_VERSION``.
    """
    if context.settings.schema_version != EXPECTED_SCHEMA_VERSION:
        log.error(
            "Store schema mismatch: expected %s, found %s",
            EXPECTED_SCHEMA_VERSION,
            context.settings.schema_version,
        )
        raise RuntimeError(
            "Store schema mismatch: expected %s, found %s"
            % (EXPECTED_SCHEMA_VERSION, context.settings.schema_version)
        )

    log.debug("Schema version '%s' validated", context.settings.schema_version)


def persist_context(context: RuntimeContext) -> None:
    """Write both collections to the store and save it in a single replace.

    Transactions are encoded before products; the file on disk is only
    swapped once both keys hold their new values.
    """
    namespace = context.settings.store_name
    data_manager.save_transactions(context.store, namespace, context.transactions)
    data_manager.save_products(context.store, namespace, context.products)
    data_manager.save_store(context.store, destination=context.settings.data_file)
    log.info("Persisted store '%s'", context.settings.data_file)


def refresh_context(context: RuntimeContext) -> RuntimeContext:
    """Reload the store to discard unsaved modifications.

    Returns a new :class:`RuntimeContext`; the previous one keeps whatever
    in-memory state it had.
    """
    store = data_manager.refresh_store(context.settings.data_file)
    namespace = context.settings.store_name
    log.info("Reloaded store '%s'", context.settings.data_file)
    return RuntimeContext(
        settings=context.settings,
        store=store,
        products=data_manager.get_products(store, namespace, seed=context.settings.seed_catalog),
        transactions=data_manager.get_transactions(store, namespace),
    )


def list_products(context: RuntimeContext) -> List[data_manager.ProductRow]:
    """Return a copy of the catalog in insertion order."""
    return list(context.products)


def list_transactions(context: RuntimeContext) -> List[data_manager.TransactionRow]:
    """Return a copy of the transaction log, most recent first."""
    return list(context.transactions)


def find_product(products: Sequence[data_manager.ProductRow], product_id: str) -> data_manager.ProductRow:
    """Resolve ``product_id`` within ``products``.

    Raises:
        ProductNotFound: If no product carries the identifier.
    """
    for product in products:
        if product.product_id == product_id:
            return product
    log.warning("Product lookup failed for id '%s'", product_id)
    raise ProductNotFound(f"Unknown product id: {product_id}")


def get_product(context: RuntimeContext, product_id: str) -> data_manager.ProductRow:
    """Resolve a product of the session catalog by its identifier."""
    return find_product(context.products, product_id)


def add_product(
    context: RuntimeContext,
    *,
    name: str,
    sku: str,
    category: str,
    purchase_price: MoneyInput,
    price: MoneyInput,
    stock: int = 0,
    min_stock: Optional[int] = None,
) -> data_manager.ProductRow:
    """Register a new product with a generated identifier.

    The initial stock is taken as-is and does not produce a transaction.
    ``min_stock`` defaults to the configured ``MinStock``.

    Raises:
        BusinessRuleViolation: If the name is blank.
        DuplicateSku: If another product already uses ``sku``.
        InvalidPrice: If either price is negative or not numeric.
        InvalidQuantity: If stock or minimum stock is negative.
    """
    if not name or not name.strip():
        log.warning("Attempted to add a product without a name")
        raise BusinessRuleViolation("Product name is required")
    normalized_sku = sku.strip()
    if normalized_sku and any(p.sku.strip().casefold() == normalized_sku.casefold() for p in context.products):
        log.warning("Attempted to add product with duplicate SKU '%s'", normalized_sku)
        raise DuplicateSku(f"SKU already registered: {normalized_sku}")

    cost = require_nonnegative_money(purchase_price, label="purchase price")
    sale = require_nonnegative_money(price, label="sale price")
    if min_stock is None:
        min_stock = context.settings.default_min_stock
    require_nonnegative_count(stock, label="stock")
    require_nonnegative_count(min_stock, label="minimum stock")

    product = data_manager.ProductRow(
        product_id=generate_id(),
        name=name.strip(),
        sku=normalized_sku,
        category=category.strip(),
        purchase_price=cost,
        price=sale,
        stock=stock,
        min_stock=min_stock,
    )
    context.products = [*context.products, product]
    log.info("Added product '%s' (%s) with id '%s'", product.name, product.sku, product.product_id)
    return product


def resolve_prices(product: data_manager.ProductRow, request: TransactionRequest) -> PriceBreakdown:
    """Compute the unit figures a request would record for ``product``.

    Supplied prices override the table prices; the discount only applies to
    ``OUT`` and only to the sale price.

    Raises:
        InvalidPrice: If a supplied price is negative or not numeric.
        InvalidDiscount: If a sale's discount is outside ``[0, 100]``.
    """
    if request.new_purchase_price is not None:
        unit_cost = require_nonnegative_money(request.new_purchase_price, label="purchase price")
    else:
        unit_cost = product.purchase_price
    if request.new_sale_price is not None:
        base_sale_price = require_nonnegative_money(request.new_sale_price, label="sale price")
    else:
        base_sale_price = product.price

    is_sale = request.transaction_type == TransactionType.OUT
    discount = require_valid_discount(request.discount_percent) if is_sale else Decimal("0")
    factor = Decimal("1")
    if discount:
        factor = Decimal("1") - discount / HUNDRED
    sale_price = base_sale_price * factor
    unit_profit = sale_price - unit_cost if is_sale else Decimal("0")

    return PriceBreakdown(
        unit_cost=unit_cost,
        base_sale_price=base_sale_price,
        sale_price=sale_price,
        discount_percent=discount,
        unit_profit=unit_profit,
    )


def apply_transaction(
    products: Sequence[data_manager.ProductRow],
    transactions: Sequence[data_manager.TransactionRow],
    request: TransactionRequest,
    *,
    timestamp: Optional[datetime] = None,
) -> Tuple[List[data_manager.ProductRow], List[data_manager.TransactionRow], data_manager.TransactionRow]:
    """Validate ``request`` and derive the next state of both collections.

    Every check runs before anything is built, so a rejected request leaves
    the caller's collections exactly as they were. The inputs are never
    mutated; new lists are returned instead.

    Args:
        products: Current catalog.
        transactions: Current log, most recent first.
        request: Movement to apply.
        timestamp: Moment to stamp on the transaction; defaults to now.

    Returns:
        tuple: ``(updated_products, updated_transactions, transaction)`` where
            the new transaction is the first entry of ``updated_transactions``.

    Raises:
        ProductNotFound: If ``request.product_id`` is not in ``products``.
        InvalidQuantity: If the quantity is not a positive integer.
        InvalidDiscount: If the discount is outside ``[0, 100]``.
        InvalidPrice: If a supplied price is negative.
        InsufficientStock: If an ``OUT`` asks for more than the stock.
    """
    product = find_product(products, request.product_id)
    transaction_type = TransactionType(request.transaction_type)
    require_positive_quantity(request.quantity)
    prices = resolve_prices(product, request)

    if transaction_type == TransactionType.OUT and product.stock < request.quantity:
        log.warning(
            "Insufficient stock for product '%s': requested %d, available %d",
            product.product_id,
            request.quantity,
            product.stock,
        )
        raise InsufficientStock(
            f"Insufficient stock for '{product.name}': requested {request.quantity}, available {product.stock}"
        )

    moment = _resolve_timestamp(timestamp)
    if transaction_type == TransactionType.OUT:
        transaction = build_sale_transaction(product, request, prices, timestamp=moment)
        updated = replace(product, stock=product.stock - request.quantity)
    else:
        transaction = build_stock_in_transaction(product, request, prices, timestamp=moment)
        updated = replace(
            product,
            stock=product.stock + request.quantity,
            purchase_price=prices.unit_cost,
            price=prices.base_sale_price,
        )

    updated_products = [updated if p.product_id == product.product_id else p for p in products]
    updated_transactions = [transaction, *transactions]
    return updated_products, updated_transactions, transaction


def record_transaction(
    context: RuntimeContext,
    request: TransactionRequest,
    *,
    timestamp: Optional[datetime] = None,
) -> data_manager.TransactionRow:
    """Apply ``request`` to the session collections.

    Both collections are swapped in together only when the engine accepts
    the request. Persisting is left to :func:`persist_context`.
    """
    products, transactions, transaction = apply_transaction(
        context.products,
        context.transactions,
        request,
        timestamp=timestamp,
    )
    context.products = products
    context.transactions = transactions
    log.info(
        "Recorded %s transaction '%s' for product '%s' (quantity=%d, total=%s)",
        transaction.transaction_type,
        transaction.transaction_id,
        transaction.product_id,
        transaction.quantity,
        transaction.total_value,
    )
    return transaction


def record_sale(
    context: RuntimeContext,
    product_id: str,
    quantity: int,
    *,
    customer_name: Optional[str] = None,
    discount_percent: Optional[MoneyInput] = None,
    timestamp: Optional[datetime] = None,
) -> data_manager.TransactionRow:
    """Record an ``OUT`` movement as issued by the sales form."""
    request = TransactionRequest(
        product_id=product_id,
        transaction_type=TransactionType.OUT,
        quantity=quantity,
        customer_name=customer_name,
        discount_percent=discount_percent,
    )
    return record_transaction(context, request, timestamp=timestamp)


def record_stock_in(
    context: RuntimeContext,
    product_id: str,
    quantity: int,
    *,
    new_purchase_price: Optional[MoneyInput] = None,
    new_sale_price: Optional[MoneyInput] = None,
    timestamp: Optional[datetime] = None,
) -> data_manager.TransactionRow:
    """Record an ``IN`` movement, optionally replacing the table prices."""
    request = TransactionRequest(
        product_id=product_id,
        transaction_type=TransactionType.IN,
        quantity=quantity,
        new_purchase_price=new_purchase_price,
        new_sale_price=new_sale_price,
    )
    return record_transaction(context, request, timestamp=timestamp)


def quick_stock_in(context: RuntimeContext, product_id: str, amount: int = 1) -> data_manager.TransactionRow:
    """Add ``amount`` units at the current table prices."""
    return record_stock_in(context, product_id, amount)


def quote_sale(
    context: RuntimeContext,
    product_id: str,
    quantity: int,
    *,
    discount_percent: Optional[MoneyInput] = None,
) -> Decimal:
    """Return the total an ``OUT`` would charge, without recording it."""
    product = get_product(context, product_id)
    require_positive_quantity(quantity)
    request = TransactionRequest(
        product_id=product_id,
        transaction_type=TransactionType.OUT,
        quantity=quantity,
        discount_percent=discount_percent,
    )
    return resolve_prices(product, request).sale_price * quantity


def build_sale_transaction(
    product: data_manager.ProductRow,
    request: TransactionRequest,
    prices: PriceBreakdown,
    *,
    timestamp: datetime,
) -> data_manager.TransactionRow:
    """Materialize an ``OUT`` request into a log entry.

    ``total_value`` uses the discounted sale price and ``profit`` the
    difference between that price and the unit cost.
    """
    customer = request.customer_name.strip() if request.customer_name else None
    return data_manager.TransactionRow(
        transaction_id=generate_id(),
        product_id=product.product_id,
        product_name=product.name,
        transaction_type=TransactionType.OUT.value,
        quantity=request.quantity,
        timestamp_iso=timestamp.isoformat(),
        purchase_value=prices.unit_cost,
        sale_value=prices.sale_price,
        total_value=prices.sale_price * request.quantity,
        profit=prices.unit_profit * request.quantity,
        discount_percent=prices.discount_percent,
        customer_name=customer or None,
    )


def build_stock_in_transaction(
    product: data_manager.ProductRow,
    request: TransactionRequest,
    prices: PriceBreakdown,
    *,
    timestamp: datetime,
) -> data_manager.TransactionRow:
    """Materialize an ``IN`` request into a log entry valued at cost."""
    return data_manager.TransactionRow(
        transaction_id=generate_id(),
        product_id=product.product_id,
        product_name=product.name,
        transaction_type=TransactionType.IN.value,
        quantity=request.quantity,
        timestamp_iso=timestamp.isoformat(),
        purchase_value=prices.unit_cost,
        sale_value=prices.base_sale_price,
        total_value=prices.unit_cost * request.quantity,
        profit=Decimal("0"),
    )


def require_positive_quantity(quantity: int) -> None:
    """Validate that a quantity is a strictly positive integer.

    Raises:
        InvalidQuantity: If ``quantity`` is not an ``int`` or is below one.
    """
    if isinstance(quantity, bool) or not isinstance(quantity, int) or quantity <= 0:
        log.error("Quantity validation failed: %r", quantity)
        raise InvalidQuantity(f"Quantity must be a positive whole number, got {quantity!r}")


def require_nonnegative_count(value: int, *, label: str) -> None:
    """Validate that a stock-like count is a non-negative integer."""
    if isinstance(value, bool) or not isinstance(value, int) or value < 0:
        log.error("Count validation failed for %s: %r", label, value)
        raise InvalidQuantity(f"The {label} must be zero or a positive whole number, got {value!r}")


def require_nonnegative_money(amount: MoneyInput, *, label: str = "amount") -> Decimal:
    """Coerce ``amount`` to ``Decimal`` and reject negative values.

    Raises:
        InvalidPrice: If ``amount`` is not numeric, not finite, or negative.
    """
    try:
        value = Decimal(str(amount))
    except InvalidOperation as exc:
        log.error("Monetary value validation failed for %s: %r", label, amount)
        raise InvalidPrice(f"The {label} must be a number, got {amount!r}") from exc
    if not value.is_finite() or value < 0:
        log.error("Monetary value validation failed for %s: %s", label, value)
        raise InvalidPrice(f"The {label} must be zero or positive, got {value}")
    return value


def require_valid_discount(discount: Optional[MoneyInput]) -> Decimal:
    """Return the discount as ``Decimal``; ``None`` means no discount.

    Raises:
        InvalidDiscount: If the value is not numeric or outside ``[0, 100]``.
    """
    if discount is None:
        return Decimal("0")
    try:
        value = Decimal(str(discount))
    except InvalidOperation as exc:
        log.error("Discount validation failed: %r", discount)
        raise InvalidDiscount(f"Discount must be a number, got {discount!r}") from exc
    if not value.is_finite() or value < 0 or value > HUNDRED:
        log.error("Discount validation failed: %s", value)
        raise InvalidDiscount(f"Discount must be between 0 and 100 percent, got {value}")
    return value
