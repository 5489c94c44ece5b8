"""Utility for initializing the GestaoPro key-value store file.

The module doubles as a script (``python setup_store.py``) and as a library
used by tests or other tooling. Shared helpers keep the store bootstrap logic
consistent regardless of the execution path.
"""

from __future__ import annotations

import argparse
import configparser
from dataclasses import dataclass
from pathlib import Path
from typing import Dict, Sequence
import sys

from gestaopro import data_manager
from gestaopro.constants import DEFAULT_STORE_NAME

CONFIG_FILE = "config.ini"


@dataclass(frozen=True)
class SetupSettings:
    """Type-safe representation of configuration values used during setup."""

    data_file: Path
    store_name: str
    seed_catalog: bool


def load_settings(config_path: Path) -> SetupSettings:
    """Read ``config.ini`` and produce :class:`SetupSettings`.

    Relative paths inside the config file are resolved against the config
    file's directory, the same way the application resolves them.
    """

    if not config_path.exists():
        raise FileNotFoundError(f"Configuration file not found: {config_path}")

    parser = configparser.ConfigParser()
    parser.read(config_path, encoding="utf-8")

    try:
        data_file_raw = parser.get("System", "DataFile")
    except (configparser.NoSectionError, configparser.NoOptionError) as exc:
        raise KeyError(f"Missing required configuration entry: {exc}") from exc

    data_file_path = Path(data_file_raw)
    if not data_file_path.is_absolute():
        data_file_path = (config_path.parent / data_file_path).resolve()

    return SetupSettings(
        data_file=data_file_path,
        store_name=parser.get("System", "StoreName", fallback=DEFAULT_STORE_NAME),
        seed_catalog=parser.getboolean("Defaults", "SeedCatalog", fallback=True),
    )


def create_store(
    destination: Path,
    *,
    store_name: str = DEFAULT_STORE_NAME,
    seed_catalog: bool = True,
    overwrite: bool = False,
) -> Path:
    """Create the GestaoPro store at ``destination``.

    With ``seed_catalog`` the demo products are written; otherwise the store
    starts with an empty catalog. The transaction log always starts empty.
    When ``overwrite`` is ``False`` (the default) this function raises
    ``FileExistsError`` if the target already exists.
    """

    destination = destination.expanduser().resolve()
    if destination.exists() and not overwrite:
        raise FileExistsError(
            f"Refusing to overwrite existing store: {destination}"
        )

    store: Dict[str, str] = {}
    products = data_manager.DEFAULT_PRODUCTS if seed_catalog else ()
    data_manager.save_products(store, store_name, products)
    data_manager.save_transactions(store, store_name, [])
    data_manager.save_store(store, destination)
    return destination


def run_from_config(config_path: Path, *, overwrite: bool = False) -> Path:
    """Create the store described by ``config_path``."""

    settings = load_settings(config_path)
    return create_store(
        settings.data_file,
        store_name=settings.store_name,
        seed_catalog=settings.seed_catalog,
        overwrite=overwrite,
    )


def parse_args(argv: Sequence[str] | None = None) -> argparse.Namespace:
    """Parse CLI arguments for the setup script."""

    parser = argparse.ArgumentParser(description="Initialize the GestaoPro store file")
    parser.add_argument(
        "--config",
        default=CONFIG_FILE,
        help="Path to configuration file (default: config.ini)",
    )
    parser.add_argument(
        "--force",
        action="store_true",
        help="Overwrite the target store if it already exists.",
    )
    return parser.parse_args(argv)


def main(argv: Sequence[str] | None = None) -> int:
    """Entry point for the CLI script."""

    args = parse_args(argv)
    config_path = Path(args.config).expanduser().resolve()

    print("--- GestaoPro Setup Script ---")
    print(f"Using configuration: {config_path}")

    try:
        output_path = run_from_config(config_path, overwrite=args.force)
    except FileNotFoundError as exc:
        print(f"\n[ERROR] {exc}")
        return 1
    except KeyError as exc:
        print(f"\n[ERROR] {exc}")
        return 1
    except FileExistsError as exc:
        print(f"\n[ERROR] {exc}")
        print("Run with --force to overwrite the existing file if appropriate.")
        return 1
    except (PermissionError, OSError) as exc:
        print(f"\n[ERROR] Unable to write store: {exc}")
        return 1

    print(f"\n[SUCCESS] Created store at '{output_path}'.")
    return 0


if __name__ == "__main__":  # pragma: no cover - exercised via manual runs
    sys.exit(main())
