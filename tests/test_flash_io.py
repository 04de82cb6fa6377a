import pytest

from flash_tool.flash.io import (
    MemoryDevice, SimBackend, backup_table, iter_chunks, read_table, restore_table, write_table,
)
from flash_tool.partition.catalog import PARTITION_TABLE_OFFSET, catalog
from flash_tool.partition.errors import (
    ChecksumMismatch, FlashIOError, InvalidArgument, OutOfBounds,
)
from flash_tool.partition.model import Kind, Layout, FlashRegion
from flash_tool.partition.planner import plan_fixed
from flash_tool.partition.serializer import TABLE_SIZE

CAP = 2 * 1024 * 1024


@pytest.fixture
def layout():
    return plan_fixed(CAP, catalog(), [("game", 100_000)])


@pytest.fixture
def sim_path(tmp_path):
    path = tmp_path / "flash.bin"
    path.write_bytes(b"\xff" * CAP)
    return path


def test_iter_chunks():
    assert list(iter_chunks(b"abcdefg", 3)) == [b"abc", b"def", b"g"]
    assert list(iter_chunks(b"", 3)) == []
    assert list(iter_chunks(None, 3)) == []


def test_memory_round_trip(layout):
    dev = MemoryDevice(CAP)
    res = write_table(dev, layout)
    assert res["bytes"] == TABLE_SIZE
    assert res["offset"] == PARTITION_TABLE_OFFSET
    assert res["partitions"] == len(layout)
    assert layout.is_valid
    assert read_table(dev, CAP, verify_checksum=True) == layout
    # соседние сектора не тронуты
    assert dev.buf[PARTITION_TABLE_OFFSET - 1] == 0xFF
    assert dev.buf[PARTITION_TABLE_OFFSET + TABLE_SIZE] == 0xFF


def test_blank_flash_reads_empty():
    assert len(read_table(MemoryDevice(CAP), CAP)) == 0


def test_blank_flash_fails_checksum():
    with pytest.raises(ChecksumMismatch):
        read_table(MemoryDevice(CAP), CAP, verify_checksum=True)


def test_invalid_layout_is_not_written():
    dev = MemoryDevice(CAP)
    bad = Layout(capacity=CAP, regions=[FlashRegion("ota_0", Kind.ota_slot(0), CAP, 0x10000)])
    with pytest.raises(OutOfBounds):
        write_table(dev, bad)
    assert set(dev.buf) == {0xFF}


def test_device_errors_are_wrapped(layout):
    dev = MemoryDevice(0x8000)
    with pytest.raises(FlashIOError) as exc:
        read_table(dev, CAP)
    assert isinstance(exc.value.__cause__, ValueError)
    with pytest.raises(FlashIOError):
        write_table(dev, layout)


def test_backup_and_restore(layout):
    dev = MemoryDevice(CAP)
    write_table(dev, layout)
    saved = backup_table(dev)
    write_table(dev, plan_fixed(CAP, catalog(), [("other", 300_000)]))
    assert read_table(dev, CAP) != layout
    assert restore_table(dev, saved) == {"bytes": TABLE_SIZE, "offset": PARTITION_TABLE_OFFSET}
    assert read_table(dev, CAP, verify_checksum=True) == layout


@pytest.mark.parametrize("data", [b"", b"\x00" * (TABLE_SIZE + 1)])
def test_restore_rejects_bad_backup(data):
    with pytest.raises(InvalidArgument):
        restore_table(MemoryDevice(CAP), data)


def test_sim_backend(sim_path, layout):
    dev = SimBackend(sim_path)
    assert dev.capacity == CAP
    res = write_table(dev, layout)
    assert res["info"]["backend"] == "sim_flash"
    assert res["info"]["crc32"].startswith("0x")
    # новый объект поверх того же файла видит записанную таблицу
    assert read_table(SimBackend(sim_path), CAP, verify_checksum=True) == layout


def test_sim_backend_creates_erased_image(tmp_path):
    path = tmp_path / "sub" / "new.bin"
    from flash_tool.flash.simulate import SimFlash
    flash = SimFlash(path, capacity=0x4000)
    assert path.read_bytes() == b"\xff" * 0x4000
    assert flash.info()["size"] == 0x4000


def test_sim_out_of_range(sim_path):
    with pytest.raises(FlashIOError):
        read_table(SimBackend(sim_path), CAP, offset=CAP - 16)


class BrokenDevice(MemoryDevice):
    def read(self, offset, length):
        raise PermissionError("нет доступа к флешу")

    def write(self, offset, data):
        raise OSError(5, "I/O error")


def test_os_errors_are_wrapped(layout):
    dev = BrokenDevice(CAP)
    with pytest.raises(FlashIOError) as exc:
        backup_table(dev)
    assert isinstance(exc.value.__cause__, PermissionError)
    with pytest.raises(FlashIOError) as exc:
        write_table(dev, layout)
    assert isinstance(exc.value.__cause__, OSError)


def test_other_device_errors_propagate(layout):
    class Buggy(MemoryDevice):
        def read(self, offset, length):
            raise RuntimeError("bug")

    with pytest.raises(RuntimeError):
        read_table(Buggy(CAP), CAP)
