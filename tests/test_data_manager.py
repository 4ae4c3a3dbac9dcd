"""Unit tests documenting the expected behavior of the data access layer."""

from __future__ import annotations

import configparser
import errno
import json
from decimal import Decimal
from pathlib import Path
from unittest.mock import Mock

import openpyxl
import pytest

from shop_ledger import data_manager
from shop_ledger.constants import SHEET_COLUMNS, SheetName


# ---------------------------------------------------------------------------
# Configuration
# ---------------------------------------------------------------------------


def test_find_config_file_respects_explicit_path(config_file: Path):
    """Supplying an explicit path should be treated as the winning answer."""

    assert data_manager.find_config_file(config_file) == config_file


def test_find_config_file_discovers_in_parent_directories(tmp_path, monkeypatch):
    """Auto-discovery should walk up from the working directory."""

    config_file = tmp_path / "config.ini"
    config_file.write_text("[System]\nDataFile=data.xlsx")
    nested = tmp_path / "a" / "b"
    nested.mkdir(parents=True)
    monkeypatch.chdir(nested)

    assert data_manager.find_config_file() == config_file


def test_find_config_file_raises_when_missing(tmp_path, monkeypatch):
    monkeypatch.chdir(tmp_path)
    with pytest.raises(FileNotFoundError):
        data_manager.find_config_file()


def test_read_config_missing_file_raises(tmp_path):
    with pytest.raises(FileNotFoundError):
        data_manager.read_config(tmp_path / "not_there.ini")


def test_parse_settings_resolves_relative_paths(config_factory):
    """Relative DataFile entries should be anchored to the config location."""

    bundle = config_factory(make_relative=True)
    parser = data_manager.read_config(bundle.config_path)
    settings = data_manager.parse_settings(parser, base_path=bundle.config_path.parent)
    assert settings.data_file == (bundle.config_path.parent / bundle.workbook_path.name).resolve()


def test_parse_settings_reads_optional_sections(tmp_path):
    parser = configparser.ConfigParser()
    parser.read_string(
        "[System]\nDataFile = data.xlsx\n"
        "[Storage]\nLockRetries = 5\nLockRetryDelayMs = 50\n"
        "[Inventory]\nLowStockThreshold = 2\n"
        "[Auth]\nMinPasswordLength = 8\n"
    )
    settings = data_manager.parse_settings(parser, base_path=tmp_path)

    assert settings.lock_retries == 5
    assert settings.lock_retry_delay == pytest.approx(0.05)
    assert settings.low_stock_threshold == 2
    assert settings.min_password_length == 8


def test_parse_settings_defaults_optional_values(tmp_path):
    parser = configparser.ConfigParser()
    parser.read_string("[System]\nDataFile = data.xlsx\n")
    settings = data_manager.parse_settings(parser, base_path=tmp_path)

    assert settings.lock_retries == 3
    assert settings.lock_retry_delay == pytest.approx(0.2)
    assert settings.low_stock_threshold == 5
    assert settings.min_password_length == 6


def test_parse_settings_requires_data_file(tmp_path):
    parser = configparser.ConfigParser()
    parser.read_string("[Other]\nvalue=1")
    with pytest.raises(KeyError):
        data_manager.parse_settings(parser, base_path=tmp_path)


# ---------------------------------------------------------------------------
# Workbook lifecycle
# ---------------------------------------------------------------------------


def test_created_workbook_has_every_sheet_with_headers(data_file: Path):
    workbook = openpyxl.load_workbook(data_file)
    assert workbook.sheetnames == [sheet.value for sheet in SHEET_COLUMNS]
    header = [cell.value for cell in workbook["Bills"][1]]
    assert header == list(SHEET_COLUMNS[SheetName.BILLS])
    assert workbook["Bills"]["A1"].font.bold is True


def test_create_data_workbook_refuses_to_overwrite(data_file: Path):
    from shop_ledger.setup_excel import create_data_workbook

    with pytest.raises(FileExistsError):
        create_data_workbook(data_file)


def test_open_workbook_rejects_corrupt_file(tmp_path):
    broken = tmp_path / "data.xlsx"
    broken.write_text("not a spreadsheet")
    with pytest.raises(data_manager.StorageError):
        data_manager.open_workbook(broken)


def test_read_sheet_returns_empty_list_when_file_missing(tmp_path):
    assert data_manager.read_sheet(tmp_path / "absent.xlsx", SheetName.PRODUCTS) == []


def test_read_sheet_returns_empty_list_for_unknown_sheet(data_file: Path):
    assert data_manager.read_sheet(data_file, "Nope") == []


def test_read_sheet_header_only_sheet_is_empty(data_file: Path):
    assert data_manager.read_sheet(data_file, SheetName.PRODUCTS) == []


# ---------------------------------------------------------------------------
# Sheet reads and writes
# ---------------------------------------------------------------------------


def test_write_then_read_round_trips_ids_and_values(data_file: Path):
    records = [
        {"id": 1, "name": "Charger", "quantity": 4, "sellPrice": Decimal("350.50")},
        {"id": 2, "name": "Case", "quantity": 10, "sellPrice": "120"},
    ]
    data_manager.write_sheet(data_file, SheetName.PRODUCTS, records)

    loaded = data_manager.read_sheet(data_file, SheetName.PRODUCTS)
    assert [data_manager.record_id(row) for row in loaded] == [1, 2]
    assert [row["name"] for row in loaded] == ["Charger", "Case"]
    assert data_manager.to_decimal(loaded[0]["sellPrice"]) == Decimal("350.5")
    assert data_manager.to_decimal(loaded[1]["sellPrice"]) == Decimal("120")


def test_write_sheet_uses_union_of_keys_as_header(data_file: Path):
    data_manager.write_sheet(
        data_file,
        SheetName.OTHERS,
        [{"id": 1, "amount": 10}, {"id": 2, "notes": "late", "amount": 5}],
    )

    worksheet = openpyxl.load_workbook(data_file)["Others"]
    assert [cell.value for cell in worksheet[1]] == ["id", "amount", "notes"]
    loaded = data_manager.read_sheet(data_file, SheetName.OTHERS)
    assert "notes" not in loaded[0]
    assert loaded[1]["notes"] == "late"


def test_write_sheet_keeps_tab_position(data_file: Path):
    before = openpyxl.load_workbook(data_file).sheetnames
    data_manager.write_sheet(data_file, SheetName.REPAIRS, [{"id": 1, "status": "Pending"}])
    assert openpyxl.load_workbook(data_file).sheetnames == before


def test_write_sheet_creates_missing_file(tmp_path):
    target = tmp_path / "new" / "data.xlsx"
    data_manager.write_sheet(target, SheetName.SALES, [{"id": 1, "amount": 20}])

    workbook = openpyxl.load_workbook(target)
    assert workbook.sheetnames == ["Sales"]


def test_sheet_lookup_is_case_insensitive(data_file: Path):
    data_manager.write_sheet(data_file, SheetName.PRODUCTS, [{"id": 7, "name": "Mouse"}])
    assert data_manager.read_sheet(data_file, "products")[0]["name"] == "Mouse"


def test_list_values_are_stored_as_json(data_file: Path):
    items = [{"name": "Cable", "quantity": 2, "price": Decimal("99.5")}]
    data_manager.write_sheet(data_file, SheetName.BILLS, [{"id": 1, "items": items}])

    raw = data_manager.read_sheet(data_file, SheetName.BILLS)[0]["items"]
    assert isinstance(raw, str)
    assert json.loads(raw) == [{"name": "Cable", "quantity": 2, "price": 99.5}]


def test_formula_like_text_is_stored_as_string_cells(data_file: Path):
    data_manager.write_sheet(data_file, SheetName.PRODUCTS, [{"id": 1, "name": "=1+1", "notes": "=SUM("}])

    worksheet = openpyxl.load_workbook(data_file)[SheetName.PRODUCTS.value]
    headers = [cell.value for cell in worksheet[1]]
    row = {header: cell for header, cell in zip(headers, worksheet[2])}
    assert (row["name"].data_type, row["notes"].data_type) == ("s", "s")
    assert (row["name"].value, row["notes"].value) == ("=1+1", "=SUM(")

    record = data_manager.read_sheet(data_file, SheetName.PRODUCTS)[0]
    assert (record["name"], record["notes"]) == ("=1+1", "=SUM(")


def test_control_characters_are_rejected_before_saving(data_file: Path):
    data_manager.write_sheet(data_file, SheetName.PRODUCTS, [{"id": 1, "name": "Charger"}])

    with pytest.raises(data_manager.UnstorableValueError):
        data_manager.write_sheet(data_file, SheetName.PRODUCTS, [{"id": 1, "name": "Cable\x01"}])

    assert data_manager.read_sheet(data_file, SheetName.PRODUCTS) == [{"id": 1, "name": "Charger"}]


# ---------------------------------------------------------------------------
# Id allocation and field lookup
# ---------------------------------------------------------------------------


def test_next_id_is_one_for_empty_sheet():
    assert data_manager.next_id([]) == 1


def test_next_id_is_max_plus_one():
    assert data_manager.next_id([{"id": 2}, {"id": 5}, {"id": 3}]) == 6


def test_next_id_ignores_non_numeric_and_reads_upper_case_key():
    records = [{"ID": "4"}, {"id": "abc"}, {"id": None}, {"id": -3}]
    assert data_manager.next_id(records) == 5


def test_get_next_id_reads_sheet(data_file: Path):
    assert data_manager.get_next_id(data_file, SheetName.PRODUCTS) == 1
    data_manager.write_sheet(data_file, SheetName.PRODUCTS, [{"id": 2}, {"id": 5}, {"id": 3}])
    assert data_manager.get_next_id(data_file, SheetName.PRODUCTS) == 6


def test_pick_field_prefers_camel_case_then_title_then_legacy():
    aliases = ("quantity", "Quantity", "stock", "Stock")
    assert data_manager.pick_field({"Quantity": 3, "stock": 9}, aliases) == 3
    assert data_manager.pick_field({"stock": 9}, aliases) == 9
    assert data_manager.pick_field({"quantity": "", "Stock": 1}, aliases) == 1
    assert data_manager.pick_field({}, aliases, 0) == 0


def test_pick_field_keeps_zero():
    assert data_manager.pick_field({"quantity": 0, "stock": 4}, ("quantity", "stock")) == 0


def test_deserialize_product_reads_legacy_stock_column():
    row = data_manager.deserialize_product(
        {"ID": 3, "Name": "Headset", "Category": "Audio", "Stock": "7", "Sell Price": "499"}
    )
    assert row.product_id == 3
    assert row.quantity == 7
    assert row.sell_price == Decimal("499")
    assert row.buy_price == Decimal("0")


def test_decode_items_tolerates_garbage():
    assert data_manager.decode_items("[{\"name\": \"A\"}]") == [{"name": "A"}]
    assert data_manager.decode_items("{not json") == []
    assert data_manager.decode_items(None) == []
    assert data_manager.decode_items("{\"name\": \"A\"}") == []


def test_deserialize_bill_falls_back_to_created_at_date():
    row = data_manager.deserialize_bill({"id": 1, "createdAt": "2026-10-18T09:15:00.000Z", "total": 10})
    assert row.date == "2026-10-18"
    assert row.gst_type == "intra"
    assert row.payment_method == "Cash"


# ---------------------------------------------------------------------------
# Record helpers
# ---------------------------------------------------------------------------


def test_append_and_update_record(data_file: Path):
    data_manager.append_record(data_file, SheetName.OTHERS, {"id": 1, "amount": 10})
    assert data_manager.update_record(data_file, SheetName.OTHERS, 1, {"amount": 25}) is True

    rows = data_manager.read_sheet(data_file, SheetName.OTHERS)
    assert rows == [{"id": 1, "amount": 25}]


def test_update_record_unknown_id_returns_false(data_file: Path):
    assert data_manager.update_record(data_file, SheetName.OTHERS, 99, {"amount": 1}) is False


def test_delete_record_unknown_id_leaves_sheet_untouched(data_file: Path, monkeypatch):
    data_manager.write_sheet(data_file, SheetName.PRODUCTS, [{"id": 1, "name": "Keep"}])
    write_mock = Mock(name="write_sheet")
    monkeypatch.setattr(data_manager, "write_sheet", write_mock)

    assert data_manager.delete_record(data_file, SheetName.PRODUCTS, 42) is False
    write_mock.assert_not_called()
    assert data_manager.read_sheet(data_file, SheetName.PRODUCTS) == [{"id": 1, "name": "Keep"}]


def test_delete_record_removes_match(data_file: Path):
    data_manager.write_sheet(data_file, SheetName.PRODUCTS, [{"id": 1}, {"id": 2}])
    assert data_manager.delete_record(data_file, SheetName.PRODUCTS, 1) is True
    assert data_manager.read_sheet(data_file, SheetName.PRODUCTS) == [{"id": 2}]


# ---------------------------------------------------------------------------
# Lock retry
# ---------------------------------------------------------------------------


def test_write_sheet_retries_locked_file_then_gives_up(data_file: Path, monkeypatch):
    waits = []
    monkeypatch.setattr(data_manager.time, "sleep", waits.append)
    save_mock = Mock(side_effect=PermissionError(errno.EACCES, "Permission denied"))
    monkeypatch.setattr(data_manager, "save_workbook", save_mock)

    with pytest.raises(data_manager.FileLockedError) as excinfo:
        data_manager.write_sheet(data_file, SheetName.PRODUCTS, [{"id": 1}])

    assert waits == pytest.approx([0.2, 0.4, 0.6])
    assert save_mock.call_count == 4
    assert "close data.xlsx" in str(excinfo.value)


def test_write_sheet_succeeds_after_transient_lock(data_file: Path, monkeypatch):
    waits = []
    monkeypatch.setattr(data_manager.time, "sleep", waits.append)
    real_save = data_manager.save_workbook
    attempts = {"count": 0}

    def flaky_save(workbook, destination):
        attempts["count"] += 1
        if attempts["count"] < 3:
            raise OSError(errno.EBUSY, "Resource busy")
        real_save(workbook, destination)

    monkeypatch.setattr(data_manager, "save_workbook", flaky_save)
    data_manager.write_sheet(data_file, SheetName.PRODUCTS, [{"id": 1, "name": "Late"}])

    assert waits == pytest.approx([0.2, 0.4])
    assert data_manager.read_sheet(data_file, SheetName.PRODUCTS) == [{"id": 1, "name": "Late"}]


def test_write_sheet_surfaces_other_io_errors_immediately(data_file: Path, monkeypatch):
    sleep_mock = Mock()
    monkeypatch.setattr(data_manager.time, "sleep", sleep_mock)
    monkeypatch.setattr(
        data_manager,
        "save_workbook",
        Mock(side_effect=OSError(errno.ENOSPC, "No space left on device")),
    )

    with pytest.raises(data_manager.StorageError) as excinfo:
        data_manager.write_sheet(data_file, SheetName.PRODUCTS, [{"id": 1}])

    assert not isinstance(excinfo.value, data_manager.FileLockedError)
    sleep_mock.assert_not_called()


# ---------------------------------------------------------------------------
# Reset and migration
# ---------------------------------------------------------------------------


def test_reset_all_data_keeps_users(data_file: Path):
    data_manager.write_sheet(data_file, SheetName.USERS, [{"id": 1, "username": "admin"}])
    data_manager.write_sheet(data_file, SheetName.PRODUCTS, [{"id": 1, "name": "Gone"}])
    data_manager.write_sheet(data_file, SheetName.BILLS, [{"id": 1, "total": 5}])

    cleared = data_manager.reset_all_data(data_file)

    assert "Users" not in cleared
    assert set(cleared) == {sheet.value for sheet in SheetName} - {"Users"}
    assert data_manager.read_sheet(data_file, SheetName.USERS) == [{"id": 1, "username": "admin"}]
    assert data_manager.read_sheet(data_file, SheetName.PRODUCTS) == []
    assert data_manager.read_sheet(data_file, SheetName.BILLS) == []


def _legacy_workbook(path: Path, header, *rows) -> None:
    workbook = openpyxl.Workbook()
    worksheet = workbook.active
    worksheet.append(list(header))
    for row in rows:
        worksheet.append(list(row))
    workbook.save(path)


def test_migrate_legacy_workbooks_imports_missing_sheets(tmp_path):
    data_file = tmp_path / "data.xlsx"
    _legacy_workbook(tmp_path / "products.xlsx", ("ID", "Name", "Stock"), (1, "Charger", 3))
    _legacy_workbook(tmp_path / "users.xlsx", ("id", "username", "password"), (1, "owner", "secret1"))

    migrated = data_manager.migrate_legacy_workbooks(data_file)

    assert set(migrated) == {"Products", "Users"}
    assert data_manager.read_sheet(data_file, SheetName.PRODUCTS) == [{"ID": 1, "Name": "Charger", "Stock": 3}]
    assert data_manager.migrate_legacy_workbooks(data_file) == []


def test_migrate_legacy_workbooks_skips_existing_sheets(data_file: Path):
    _legacy_workbook(data_file.parent / "products.xlsx", ("id", "name"), (1, "Old"))
    assert data_manager.migrate_legacy_workbooks(data_file) == []
    assert data_manager.read_sheet(data_file, SheetName.PRODUCTS) == []
