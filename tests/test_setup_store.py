"""Tests for the store bootstrap script."""

from __future__ import annotations

import pytest

import setup_store
from gestaopro import data_manager


def test_run_from_config_creates_seedless_store(config_factory):
    bundle = config_factory(make_relative=True, seed_catalog=False)
    path = setup_store.run_from_config(bundle.config_path, overwrite=True)

    store = data_manager.open_store(path)
    assert data_manager.get_products(store, bundle.store_name) == []
    assert data_manager.get_transactions(store, bundle.store_name) == []


def test_create_store_refuses_existing_file(store_path):
    with pytest.raises(FileExistsError):
        setup_store.create_store(store_path, store_name="teststore")


def test_main_reports_missing_config(tmp_path, capsys):
    assert setup_store.main(["--config", str(tmp_path / "missing.ini")]) == 1
    assert "[ERROR]" in capsys.readouterr().out
