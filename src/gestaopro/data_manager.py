"""Data access layer for GestaoPro.

This module provides low-level helpers that read from and write to the local
key-value store file. Business logic belongs elsewhere.

The public API is designed around three responsibilities:

1. Configuration handling: finding and parsing ``config.ini``.
2. Store lifecycle: opening and atomically persisting the JSON store file.
3. Collection operations: loading and saving the product and transaction
   collections, each kept as a JSON-encoded array under its own key.
"""


from __future__ import annotations

import configparser
import json
import os
import tempfile
from dataclasses import dataclass
from datetime import datetime
from decimal import Decimal, InvalidOperation
from pathlib import Path
from typing import Any, Dict, Iterable, List, Mapping, Optional

from . import log
from .constants import DEFAULT_STORE_NAME, StoreKey


CONFIG_FILE_NAME = "config.ini"


@dataclass(frozen=True)
class ConfigSettings:
    """Typed representation of the ``config.ini`` settings we care about."""

    data_file: Path
    store_name: str
    schema_version: str
    seed_catalog: bool = True
    default_min_stock: int = 5
    currency_symbol: str = "R$"


@dataclass(frozen=True)
class ProductRow:
    """In-memory view of one entry of the products collection."""

    product_id: str
    name: str
    sku: str
    category: str
    purchase_price: Decimal
    price: Decimal
    stock: int
    min_stock: int


@dataclass(frozen=True)
class TransactionRow:
    """In-memory view of one entry of the transaction log."""

    transaction_id: str
    product_id: str
    product_name: str
    transaction_type: str
    quantity: int
    timestamp_iso: str
    purchase_value: Decimal
    sale_value: Decimal
    total_value: Decimal
    profit: Decimal
    discount_percent: Decimal = Decimal("0")
    customer_name: Optional[str] = None


# Catalog handed out when the store holds no products yet.
DEFAULT_PRODUCTS: tuple[ProductRow, ...] = (
    ProductRow("1", "Camiseta Algodão", "CAM-001", "Roupas", Decimal("25.00"), Decimal("59.90"), 45, 10),
    ProductRow("2", "Calça Jeans Slim", "CAL-002", "Roupas", Decimal("60.00"), Decimal("129.90"), 12, 5),
    ProductRow("3", "Tênis Esportivo", "TEN-003", "Calçados", Decimal("150.00"), Decimal("299.00"), 8, 5),
)


def find_config_file(explicit_path: Optional[Path] = None) -> Path:
    """Locate the configuration file that controls how the data layer behaves.

    If the caller provides ``explicit_path`` the value is returned immediately
    without any verification. Otherwise the function walks up from the current
    working directory toward the filesystem root looking for a file named
    ``CONFIG_FILE_NAME``; the first match wins.

    Args:
        explicit_path (Path | None): Optional path to use instead of performing
            the upward search.

    Returns:
        Path: The path provided by the caller or the discovered configuration
            file.

    Raises:
        FileNotFoundError: If no parent directory contains ``CONFIG_FILE_NAME``.
    """

    if explicit_path:
        return explicit_path

    current = Path.cwd()
    for p in (current, *current.parents):
        candidate = p / CONFIG_FILE_NAME
        if candidate.exists():
            return candidate

    raise FileNotFoundError(
        f"Configuration file not found: {CONFIG_FILE_NAME}")


def read_config(config_path: Path) -> configparser.ConfigParser:
    """Load ``config.ini`` and return a populated ``ConfigParser`` instance.

    Args:
        config_path (Path): Path to the configuration file, relative or
            absolute. ``~`` is expanded.

    Returns:
        configparser.ConfigParser: Parser holding the raw configuration data.

    Raises:
        FileNotFoundError: If ``config_path`` does not exist.
    """

    config_path = config_path.expanduser().resolve()
    if not config_path.exists():
        raise FileNotFoundError(f"Configuration file not found: {config_path}")

    parser = configparser.ConfigParser()
    parser.read(config_path, encoding="utf-8")
    return parser


def parse_settings(parser: configparser.ConfigParser, *, base_path: Optional[Path] = None) -> ConfigSettings:
    """Convert a ``ConfigParser`` into strongly typed :class:`ConfigSettings`.

    ``[System] DataFile`` and ``[System] SchemaVersion`` are required. The
    store namespace, seeding flag, default minimum stock and currency symbol
    fall back to their defaults when absent. Relative data file paths are
    anchored to ``base_path`` (or the working directory) and resolved.

    Raises:
        KeyError: If a required entry is missing.
        ValueError: If an optional entry cannot be converted to its type.
    """

    try:
        data_file_raw = parser.get("System", "DataFile")
        schema_version = parser.get("System", "SchemaVersion")
    except (configparser.NoSectionError, configparser.NoOptionError) as exc:
        raise KeyError(f"Missing required configuration entry: {exc}") from exc

    store_name = parser.get("System", "StoreName", fallback=DEFAULT_STORE_NAME).strip() or DEFAULT_STORE_NAME
    seed_catalog = parser.getboolean("Defaults", "SeedCatalog", fallback=True)
    default_min_stock = parser.getint("Defaults", "MinStock", fallback=5)
    currency_symbol = parser.get("Display", "CurrencySymbol", fallback="R$")

    data_file_path = Path(data_file_raw)
    if not data_file_path.is_absolute():
        if base_path is None:
            base_path = Path.cwd()
        data_file_path = (base_path / data_file_path).resolve()

    return ConfigSettings(
        data_file=data_file_path,
        store_name=store_name,
        schema_version=schema_version,
        seed_catalog=seed_catalog,
        default_min_stock=default_min_stock,
        currency_symbol=currency_symbol,
    )


def store_key(namespace: str, key: StoreKey) -> str:
    """Return the namespaced key under which a collection is stored."""

    return f"{namespace}_{key.value}"


def open_store(data_file: Path) -> Dict[str, str]:
    """Load the key-value store file into a plain dictionary.

    The file holds a single JSON object whose values are themselves JSON
    documents encoded as strings, one per key.

    Raises:
        FileNotFoundError: If ``data_file`` does not exist.
        ValueError: If the file is not a JSON object of string values.
    """

    data_file = Path(data_file).expanduser().resolve()
    if not data_file.exists():
        raise FileNotFoundError(f"Store not found: {data_file}")

    with data_file.open("r", encoding="utf-8") as handle:
        raw = json.load(handle)

    if not isinstance(raw, dict) or not all(isinstance(value, str) for value in raw.values()):
        raise ValueError(f"Store file is not a key-value mapping: {data_file}")
    log.debug("Opened store '%s' with %d keys", data_file, len(raw))
    return dict(raw)


def save_store(store: Mapping[str, str], destination: Path) -> None:
    """Persist the whole store to ``destination`` in one file replacement.

    The content is written to a temporary sibling file which then replaces
    the destination, so readers never observe one collection updated and the
    other stale.
    """

    dest = Path(destination).expanduser().resolve()
    dest.parent.mkdir(parents=True, exist_ok=True)
    fd, tmp_name = tempfile.mkstemp(prefix=f".{dest.name}.", suffix=".tmp", dir=dest.parent)
    try:
        with os.fdopen(fd, "w", encoding="utf-8") as handle:
            json.dump(dict(store), handle, ensure_ascii=False, indent=2, sort_keys=True)
            handle.flush()
            os.fsync(handle.fileno())
        os.replace(tmp_name, dest)
    except BaseException:
        Path(tmp_name).unlink(missing_ok=True)
        raise


def refresh_store(data_file: Path) -> Dict[str, str]:
    """Reload the store from disk, discarding unsaved in-memory changes."""

    return open_store(data_file)


def get_products(store: Mapping[str, str], namespace: str, *, seed: bool = True) -> List[ProductRow]:
    """Return the products collection held by ``store``.

    When the key is absent the seed catalog is returned if ``seed`` is true,
    otherwise an empty list. A key that is present but holds an empty array
    stays empty.
    """

    payload = store.get(store_key(namespace, StoreKey.PRODUCTS))
    if payload is None:
        return list(DEFAULT_PRODUCTS) if seed else []
    return [deserialize_product(item) for item in json.loads(payload)]


def save_products(store: Dict[str, str], namespace: str, products: Iterable[ProductRow]) -> None:
    """Encode ``products`` as a JSON array under the products key."""

    encoded = [serialize_product(product) for product in products]
    store[store_key(namespace, StoreKey.PRODUCTS)] = json.dumps(encoded, ensure_ascii=False)


def get_transactions(store: Mapping[str, str], namespace: str) -> List[TransactionRow]:
    """Return the transaction log held by ``store`` (empty when absent)."""

    payload = store.get(store_key(namespace, StoreKey.TRANSACTIONS))
    if payload is None:
        return []
    return [deserialize_transaction(item) for item in json.loads(payload)]


def save_transactions(store: Dict[str, str], namespace: str, transactions: Iterable[TransactionRow]) -> None:
    """Encode ``transactions`` as a JSON array under the transactions key."""

    encoded = [serialize_transaction(transaction) for transaction in transactions]
    store[store_key(namespace, StoreKey.TRANSACTIONS)] = json.dumps(encoded, ensure_ascii=False)


def serialize_product(record: ProductRow) -> dict[str, Any]:
    """Convert a product dataclass into its JSON object shape.

    Monetary values are written as decimal strings so reloading yields the
    exact same :class:`~decimal.Decimal`.
    """

    return {
        "id": record.product_id,
        "name": record.name,
        "sku": record.sku,
        "category": record.category,
        "purchasePrice": str(record.purchase_price),
        "price": str(record.price),
        "stock": record.stock,
        "minStock": record.min_stock,
    }


def serialize_transaction(record: TransactionRow) -> dict[str, Any]:
    """Convert a transaction dataclass into its JSON object shape."""

    payload: dict[str, Any] = {
        "id": record.transaction_id,
        "productId": record.product_id,
        "productName": record.product_name,
        "type": record.transaction_type,
        "quantity": record.quantity,
        "date": record.timestamp_iso,
        "purchaseValue": str(record.purchase_value),
        "saleValue": str(record.sale_value),
        "totalValue": str(record.total_value),
        "profit": str(record.profit),
        "discountPercent": str(record.discount_percent),
    }
    if record.customer_name is not None:
        payload["customerName"] = record.customer_name
    return payload


def deserialize_product(raw: Mapping[str, Any]) -> ProductRow:
    """Convert a decoded JSON object into a strongly typed product record.

    Records written before cost tracking existed carry no ``purchasePrice``;
    they load with a zero cost.
    """

    return ProductRow(
        product_id=str(raw["id"]),
        name=str(raw.get("name", "")),
        sku=str(raw.get("sku", "")),
        category=str(raw.get("category") or ""),
        purchase_price=_to_decimal(raw.get("purchasePrice"), "0.00"),
        price=_to_decimal(raw.get("price"), "0.00"),
        stock=int(raw.get("stock") or 0),
        min_stock=int(raw.get("minStock") or 0),
    )


def deserialize_transaction(raw: Mapping[str, Any]) -> TransactionRow:
    """Convert a decoded JSON object into a strongly typed transaction record.

    Missing monetary snapshots default to zero, and ``customerName`` stays
    ``None`` when blank.
    """

    customer_name = raw.get("customerName")
    timestamp = raw.get("date")
    if not timestamp:
        raise ValueError(f"Transaction {raw.get('id')!r} in store has no date")
    parse_timestamp(str(timestamp))
    return TransactionRow(
        transaction_id=str(raw["id"]),
        product_id=str(raw.get("productId", "")),
        product_name=str(raw.get("productName", "")),
        transaction_type=str(raw.get("type", "")),
        quantity=int(raw.get("quantity") or 0),
        timestamp_iso=str(timestamp),
        purchase_value=_to_decimal(raw.get("purchaseValue"), "0.00"),
        sale_value=_to_decimal(raw.get("saleValue"), "0.00"),
        total_value=_to_decimal(raw.get("totalValue"), "0.00"),
        profit=_to_decimal(raw.get("profit"), "0.00"),
        discount_percent=_to_decimal(raw.get("discountPercent"), "0"),
        customer_name=str(customer_name) if customer_name else None,
    )


def parse_timestamp(value: str) -> datetime:
    """Parse a stored ISO-8601 timestamp, including the UTC ``Z`` suffix.

    Raises:
        ValueError: If ``value`` is not an ISO-8601 timestamp.
    """

    text = value[:-1] + "+00:00" if value.endswith("Z") else value
    try:
        return datetime.fromisoformat(text)
    except ValueError as exc:
        raise ValueError(f"Invalid timestamp in store: {value!r}") from exc


def _to_decimal(value: Any, default: str) -> Decimal:
    """Coerce strings, ints and floats from JSON into a ``Decimal``."""

    if value is None or value == "":
        return Decimal(default)
    try:
        return Decimal(str(value))
    except InvalidOperation as exc:
        raise ValueError(f"Invalid decimal value in store: {value!r}") from exc
