import json

import pytest
from typer.testing import CliRunner

from flash_tool.main import app
from flash_tool.partition.catalog import PARTITION_TABLE_OFFSET
from flash_tool.partition.importer import import_table
from flash_tool.partition.serializer import TABLE_SIZE

runner = CliRunner()
CAP = 2 * 1024 * 1024


@pytest.fixture(autouse=True)
def session_log(tmp_path, monkeypatch):
    path = tmp_path / "session.jsonl"
    monkeypatch.setattr("flash_tool.main.LOG_FILE", path)
    return path


def _events(path):
    return [json.loads(line) for line in path.read_text(encoding="utf-8").splitlines()]


def _plan(tmp_path, *extra):
    out = tmp_path / "table.bin"
    result = runner.invoke(app, ["plan", "game:100000", "--capacity", "2M", "--out", str(out), *extra])
    assert result.exit_code == 0, result.output
    return out


def test_catalog_command():
    result = runner.invoke(app, ["catalog"])
    assert result.exit_code == 0
    assert "0x00140000" in result.output


def test_plan_writes_table_and_csv(tmp_path, session_log):
    csv = tmp_path / "parts.csv"
    out = _plan(tmp_path, "--csv", str(csv))
    data = out.read_bytes()
    assert len(data) == TABLE_SIZE
    layout = import_table(data, CAP, verify_checksum=True)
    assert layout[-1].name == "ota_0"
    assert csv.read_text(encoding="utf-8").startswith("# ESP-IDF Partition Table")
    assert _events(session_log)[-1]["kind"] == "plan"


def test_plan_image_from_file(tmp_path):
    fw = tmp_path / "game.bin"
    fw.write_bytes(b"\x00" * 70_000)
    out = tmp_path / "t.bin"
    result = runner.invoke(app, ["plan", f"game={fw}", "--out", str(out)])
    assert result.exit_code == 0, result.output
    assert import_table(out.read_bytes(), 16 * 1024 * 1024)[-1].size == 0x20000


def test_plan_strict_failure(session_log):
    result = runner.invoke(app, ["plan", "big:3000000", "--capacity", "4M"])
    assert result.exit_code == 1
    assert "Разметка не построена" in result.output
    assert _events(session_log)[-1]["kind"] == "plan_error"


def test_plan_tolerant(tmp_path):
    out = tmp_path / "t.bin"
    result = runner.invoke(app, ["plan", "big:3000000", "next:10", "--capacity", "4M",
                                 "--tolerant", "--out", str(out)])
    assert result.exit_code == 0, result.output
    assert "Не размещены" in result.output
    layout = import_table(out.read_bytes(), 4 * 1024 * 1024)
    assert layout[-1].end == 4 * 1024 * 1024


@pytest.mark.parametrize("bad", ["nosize", "x:lots", "y=/no/such/file.bin"])
def test_plan_bad_image_spec(bad):
    assert runner.invoke(app, ["plan", bad]).exit_code == 2


def test_inspect(tmp_path):
    out = _plan(tmp_path)
    result = runner.invoke(app, ["inspect", str(out), "--capacity", "2M", "--verify"])
    assert result.exit_code == 0, result.output
    assert "Занято" in result.output


def test_inspect_empty(tmp_path):
    blank = tmp_path / "blank.bin"
    blank.write_bytes(b"\xff" * TABLE_SIZE)
    result = runner.invoke(app, ["inspect", str(blank)])
    assert result.exit_code == 0
    assert "пусто" in result.output


def test_inspect_bad_checksum(tmp_path):
    blank = tmp_path / "blank.bin"
    blank.write_bytes(b"\xff" * TABLE_SIZE)
    assert runner.invoke(app, ["inspect", str(blank), "--verify"]).exit_code == 1


def test_replan_and_diff(tmp_path):
    old = _plan(tmp_path)
    new = tmp_path / "new.bin"
    result = runner.invoke(app, ["replan", str(old), "a:100000", "b:100000",
                                 "--capacity", "2M", "--out", str(new)])
    assert result.exit_code == 0, result.output
    layout = import_table(new.read_bytes(), CAP)
    assert [r.name for r in layout.app_slots] == ["ota_0", "ota_1"]

    result = runner.invoke(app, ["diff", str(old), str(new), "--capacity", "2M"])
    assert result.exit_code == 0
    assert "added" in result.output
    assert "Таблицы совпадают" in runner.invoke(app, ["diff", str(old), str(old)]).output


def test_write_and_read_table_on_sim(tmp_path, session_log):
    image = tmp_path / "flash.bin"
    image.write_bytes(b"\xff" * CAP)
    table = _plan(tmp_path)
    backup = tmp_path / "backup.bin"

    result = runner.invoke(app, ["write-table", str(table), "--image", str(image), "--backup", str(backup)])
    assert result.exit_code == 0, result.output
    assert backup.read_bytes() == b"\xff" * TABLE_SIZE
    flash = image.read_bytes()
    assert flash[PARTITION_TABLE_OFFSET:PARTITION_TABLE_OFFSET + TABLE_SIZE] == table.read_bytes()

    dump = tmp_path / "dump.bin"
    result = runner.invoke(app, ["read-table", str(dump), "--image", str(image), "--verify"])
    assert result.exit_code == 0, result.output
    assert dump.read_bytes() == table.read_bytes()
    kinds = [e["kind"] for e in _events(session_log)]
    assert "write_table" in kinds and kinds[-1] == "read_table"


def test_inspect_full_image(tmp_path):
    image = tmp_path / "flash.bin"
    image.write_bytes(b"\xff" * CAP)
    table = _plan(tmp_path)
    runner.invoke(app, ["write-table", str(table), "--image", str(image)])
    result = runner.invoke(app, ["inspect", str(image), "--verify"])
    assert result.exit_code == 0, result.output
    assert "Занято" in result.output


@pytest.mark.parametrize("command", ["inspect", "replan"])
def test_bad_offset_is_usage_error(tmp_path, command):
    table = _plan(tmp_path)
    args = [command, str(table)] + (["a:100"] if command == "replan" else []) + ["--offset", "zz"]
    result = runner.invoke(app, args)
    assert result.exit_code == 2
    assert "Неверное смещение" in result.output
