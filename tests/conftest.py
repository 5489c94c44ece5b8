"""Shared pytest fixtures and utilities for GestaoPro tests."""

from __future__ import annotations

import argparse
import sys
import uuid
from dataclasses import dataclass
from decimal import Decimal
from pathlib import Path
from typing import Callable, Iterator

import pytest

# Ensure source packages are importable without installation.
PROJECT_ROOT = Path(__file__).resolve().parents[1]
SRC_DIR = PROJECT_ROOT / "src"

for candidate in (SRC_DIR, PROJECT_ROOT):
    candidate_str = str(candidate)
    if candidate_str not in sys.path:
        sys.path.insert(0, candidate_str)

from gestaopro import cli, constants, core_logic, data_manager  # noqa: E402
from setup_store import create_store  # noqa: E402

DEFAULT_SCHEMA_VERSION = constants.EXPECTED_SCHEMA_VERSION
DEFAULT_STORE_NAME = "teststore"
_CONFIG_TEMPLATE = (
    "[System]\n"
    "DataFile = {data_file}\n"
    "StoreName = {store_name}\n"
    "SchemaVersion = {schema_version}\n\n"
    "[Defaults]\n"
    "SeedCatalog = {seed_catalog}\n"
    "MinStock = 5\n\n"
    "[Display]\n"
    "CurrencySymbol = $\n"
)


@dataclass(frozen=True)
class ConfigBundle:
    """Container bundling together config metadata for tests."""

    directory: Path
    config_path: Path
    store_path: Path
    store_name: str
    schema_version: str


@pytest.fixture(scope="session", autouse=True)
def _restore_sys_path() -> Iterator[None]:
    """Ensure sys.path modifications are undone after the test session."""

    original = sys.path.copy()
    try:
        yield
    finally:
        sys.path[:] = original


@pytest.fixture
def store_factory(tmp_path: Path) -> Callable[..., Path]:
    """Factory that creates an initialized store file in a temp folder."""

    def _create_store(
        *,
        subdir: str | None = None,
        store_name: str = DEFAULT_STORE_NAME,
        seed_catalog: bool = True,
        filename: str = "store.json",
    ) -> Path:
        base_dir = tmp_path if subdir is None else tmp_path / subdir
        base_dir.mkdir(parents=True, exist_ok=True)
        store_path = base_dir / filename
        create_store(store_path, store_name=store_name, seed_catalog=seed_catalog, overwrite=True)
        return store_path

    return _create_store


@pytest.fixture
def store_path(store_factory: Callable[..., Path]) -> Path:
    """Return a fresh seeded store ready for use in a test."""

    return store_factory(subdir=f"store_{uuid.uuid4().hex}")


@pytest.fixture
def config_factory(tmp_path: Path, store_factory: Callable[..., Path]) -> Callable[..., ConfigBundle]:
    """Provide a callable that creates config/store bundles on demand."""

    def _create_config(
        *,
        make_relative: bool = False,
        schema_version: str = DEFAULT_SCHEMA_VERSION,
        store_name: str = DEFAULT_STORE_NAME,
        seed_catalog: bool = True,
    ) -> ConfigBundle:
        bundle_id = uuid.uuid4().hex
        bundle_dir = tmp_path / f"bundle_{bundle_id}"
        bundle_dir.mkdir(parents=True, exist_ok=True)
        store_path = store_factory(
            subdir=f"bundle_{bundle_id}",
            store_name=store_name,
            seed_catalog=seed_catalog,
        )
        data_file_entry = store_path.name if make_relative else str(store_path)
        config_path = bundle_dir / "config.ini"
        config_path.write_text(
            _CONFIG_TEMPLATE.format(
                data_file=data_file_entry,
                store_name=store_name,
                schema_version=schema_version,
                seed_catalog="yes" if seed_catalog else "no",
            ),
            encoding="utf-8",
        )
        return ConfigBundle(
            directory=bundle_dir,
            config_path=config_path,
            store_path=store_path,
            store_name=store_name,
            schema_version=schema_version,
        )

    return _create_config


@pytest.fixture
def config_file(config_factory: Callable[..., ConfigBundle]) -> Path:
    """Convenience fixture returning only the config path."""

    return config_factory().config_path


@pytest.fixture
def runtime_context(config_file: Path) -> core_logic.RuntimeContext:
    """Load the runtime context for tests through the public API."""

    context = core_logic.load_runtime_context(config_file)
    core_logic.ensure_schema_version(context)
    return context


# ---------------------------------------------------------------------------
# CLI layer fixtures
# ---------------------------------------------------------------------------


@pytest.fixture
def cli_parser() -> argparse.ArgumentParser:
    """Return a fresh CLI parser instance for tests."""

    return argparse.ArgumentParser(prog="gestaopro", description="GestaoPro CLI")


@pytest.fixture
def subparsers_action(
    cli_parser: argparse.ArgumentParser,
) -> argparse._SubParsersAction[argparse.ArgumentParser]:
    """Return the subparser action used to register commands."""

    return cli_parser.add_subparsers(dest="command")


@pytest.fixture
def command_spec_iterable() -> list[cli.CommandSpec]:
    """Provide a list of command specs for indexing tests."""

    def _make_spec(name: str) -> cli.CommandSpec:
        return cli.CommandSpec(
            name,
            f"{name} help",
            lambda subparsers: subparsers.add_parser(name),
            lambda *_: 0,
        )

    return [_make_spec("alpha"), _make_spec("beta"), _make_spec("gamma")]


# ---------------------------------------------------------------------------
# Core logic fixtures
# ---------------------------------------------------------------------------


@pytest.fixture
def settings(tmp_path: Path) -> data_manager.ConfigSettings:
    """Provide default configuration settings for runtime context tests."""

    return data_manager.ConfigSettings(
        data_file=tmp_path / "store.json",
        store_name=DEFAULT_STORE_NAME,
        schema_version=constants.EXPECTED_SCHEMA_VERSION,
        default_min_stock=5,
        currency_symbol="$",
    )


@pytest.fixture
def product() -> data_manager.ProductRow:
    """A product with ten units, priced 100 and costing 60."""

    return data_manager.ProductRow(
        product_id="P1",
        name="Widget",
        sku="WID-001",
        category="Tools",
        purchase_price=Decimal("60"),
        price=Decimal("100"),
        stock=10,
        min_stock=5,
    )


@pytest.fixture
def context(settings: data_manager.ConfigSettings, product: data_manager.ProductRow) -> core_logic.RuntimeContext:
    """Assemble an in-memory runtime context holding ``product`` only."""

    return core_logic.RuntimeContext(settings=settings, store={}, products=[product], transactions=[])
