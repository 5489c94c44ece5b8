"""Unit tests describing the CLI presentation layer contract."""

from __future__ import annotations

import argparse
from datetime import date
from decimal import Decimal
from pathlib import Path
from unittest.mock import Mock

import pytest

from gestaopro import cli, constants, core_logic


WRITE_COMMANDS = {
    "add-product",
    "sale",
    "stock-in",
    "quick-in",
}

READ_COMMANDS = {
    "inventory",
    "dashboard",
    "report",
    "log",
    "export",
}


def _parse(argv):
    parser = cli.build_parser()
    table = cli.configure_subcommands(parser)
    return parser.parse_args(argv), table


# ---------------------------------------------------------------------------
# Parser construction
# ---------------------------------------------------------------------------


def test_build_parser_sets_program_metadata():
    """build_parser should set user-facing program metadata."""

    parser = cli.build_parser()
    assert isinstance(parser, argparse.ArgumentParser)
    assert parser.prog == "gestaopro"
    assert "GestaoPro" in (parser.description or "")


def test_configure_subcommands_registers_all_commands(cli_parser):
    command_table = cli.configure_subcommands(cli_parser)
    assert set(command_table) == WRITE_COMMANDS | READ_COMMANDS


def test_write_commands_are_flagged_for_persistence(subparsers_action):
    specs = cli.register_write_commands(subparsers_action)
    assert set(specs) == WRITE_COMMANDS
    assert all(spec.writes for spec in specs.values())


def test_read_commands_do_not_persist(subparsers_action):
    specs = cli.register_read_commands(subparsers_action)
    assert set(specs) == READ_COMMANDS
    assert not any(spec.writes for spec in specs.values())
    for name in READ_COMMANDS:
        assert name in subparsers_action.choices


def test_build_command_table_rejects_duplicates(command_spec_iterable):
    table = cli.build_command_table(command_spec_iterable)
    assert list(table) == ["alpha", "beta", "gamma"]
    with pytest.raises(ValueError):
        cli.build_command_table([*command_spec_iterable, command_spec_iterable[0]])


def test_dispatch_command_unknown_raises():
    with pytest.raises(KeyError):
        cli.dispatch_command(Mock(), argparse.Namespace(command="nope"), {})


# ---------------------------------------------------------------------------
# Argument translation
# ---------------------------------------------------------------------------


def test_translate_sale_builds_out_request():
    args, _ = _parse(["sale", "--product-id", "P1", "--quantity", "3", "--discount", "10", "--customer", "Ana"])
    request = cli.translate_sale(args)
    assert request == core_logic.TransactionRequest(
        product_id="P1",
        transaction_type=constants.TransactionType.OUT,
        quantity=3,
        customer_name="Ana",
        discount_percent="10",
    )


def test_translate_stock_in_builds_in_request():
    args, _ = _parse(["stock-in", "--product-id", "P1", "--quantity", "5", "--purchase-price", "70"])
    request = cli.translate_stock_in(args)
    assert request.transaction_type == constants.TransactionType.IN
    assert request.quantity == 5
    assert request.new_purchase_price == "70"
    assert request.new_sale_price is None


def test_translate_sale_rejects_non_numeric_quantity():
    args, _ = _parse(["sale", "--product-id", "P1", "--quantity", "many"])
    with pytest.raises(core_logic.InvalidQuantity):
        cli.translate_sale(args)


def test_translate_add_product_converts_counts():
    args, _ = _parse(
        ["add-product", "--name", "Mug", "--sku", "MUG-1", "--purchase-price", "4", "--price", "9.90", "--stock", "12"]
    )
    payload = cli.translate_add_product(args)
    assert payload["stock"] == 12
    assert payload["min_stock"] is None
    assert payload["category"] == ""


def test_translate_range_prefers_preset():
    args, _ = _parse(["report", "--preset", "month", "--start", "2020-01-01"])
    assert cli.translate_range(args, today=date(2025, 3, 14)) == (date(2025, 3, 1), date(2025, 3, 14))


def test_translate_range_parses_explicit_days():
    args, _ = _parse(["report", "--start", "2025-03-01"])
    assert cli.translate_range(args) == (date(2025, 3, 1), None)


def test_translate_range_rejects_bad_dates():
    args, _ = _parse(["report", "--end", "14/03/2025"])
    with pytest.raises(ValueError):
        cli.translate_range(args)


# ---------------------------------------------------------------------------
# Rendering and execution against an in-memory context
# ---------------------------------------------------------------------------


def test_format_money_uses_symbol_and_two_decimals():
    assert cli.format_money(Decimal("1234.5"), "R$") == "R$ 1,234.50"


def test_run_sale_updates_context_and_prints(context, capsys):
    args, _ = _parse(["sale", "--product-id", "P1", "--quantity", "3", "--discount", "10"])
    assert cli.run_sale(context, args) == 0
    assert context.products[0].stock == 7
    assert "$ 270.00" in capsys.readouterr().out


def test_run_quick_in_adds_amount(context):
    args, _ = _parse(["quick-in", "--product-id", "P1", "--amount", "2"])
    assert cli.run_quick_in(context, args) == 0
    assert context.products[0].stock == 12


def test_run_inventory_low_only_filters(context, capsys):
    args, _ = _parse(["inventory", "--low-only"])
    cli.run_inventory(context, args)
    out = capsys.readouterr().out
    assert "Widget" not in out
    assert "No products registered." in out


def test_run_log_report_filters_by_type(context, capsys):
    core_logic.record_sale(context, "P1", 1)
    core_logic.record_stock_in(context, "P1", 1)
    args, _ = _parse(["log", "--type", "IN"])
    cli.run_log_report(context, args)
    out = capsys.readouterr().out
    assert "ENTRY" in out
    assert "SALE" not in out


def test_run_dashboard_renders_cards(context, capsys):
    core_logic.record_sale(context, "P1", 1)
    cli.run_dashboard(context, argparse.Namespace(command="dashboard"))
    out = capsys.readouterr().out
    assert "Sales today:" in out
    assert "Tools" in out


def test_render_report_shows_open_bounds(context):
    from gestaopro import reports

    report = reports.summarize_period([], None, None)
    text = cli.render_report(report, "$")
    assert "beginning .. today" in text
    assert "No transactions recorded." in text


def test_handle_cli_error_maps_exit_codes():
    assert cli.handle_cli_error(core_logic.InsufficientStock("no")) == 2
    assert cli.handle_cli_error(FileNotFoundError("gone")) == 3
    assert cli.handle_cli_error(RuntimeError("boom")) == 1


# ---------------------------------------------------------------------------
# main() end to end
# ---------------------------------------------------------------------------


def test_main_sale_persists_store(config_file: Path, capsys):
    exit_code = cli.main(["--config", str(config_file), "sale", "--product-id", "1", "--quantity", "2"])
    assert exit_code == 0

    context = core_logic.load_runtime_context(config_file)
    assert core_logic.get_product(context, "1").stock == 43
    assert len(context.transactions) == 1


def test_main_rejected_sale_does_not_persist(config_file: Path):
    exit_code = cli.main(["--config", str(config_file), "sale", "--product-id", "3", "--quantity", "99"])
    assert exit_code == 2

    context = core_logic.load_runtime_context(config_file)
    assert core_logic.get_product(context, "3").stock == 8
    assert context.transactions == []


def test_main_read_command_does_not_touch_store(config_file: Path, monkeypatch):
    persist = Mock()
    monkeypatch.setattr(core_logic, "persist_context", persist)
    assert cli.main(["--config", str(config_file), "inventory"]) == 0
    persist.assert_not_called()


def test_main_missing_config_returns_file_error(tmp_path):
    assert cli.main(["--config", str(tmp_path / "absent.ini"), "dashboard"]) == 3


def test_main_export_writes_workbook(config_file: Path, tmp_path):
    output = tmp_path / "export.xlsx"
    assert cli.main(["--config", str(config_file), "export", "--output", str(output), "--preset", "all"]) == 0
    assert output.exists()
