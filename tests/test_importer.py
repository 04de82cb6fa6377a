import struct

import pytest

from flash_tool.partition.errors import ChecksumMismatch
from flash_tool.partition.importer import decode_kind, decode_region, import_table
from flash_tool.partition.model import (
    BOOTLOADER, FACTORY_APP, FIRMWARE_REGISTRY, NVS, OTA_METADATA, PARTITION_TABLE, Kind,
)
from flash_tool.partition.planner import plan_fixed, plan_proportional
from flash_tool.partition.serializer import RECORD_FMT, TABLE_SIZE, serialize


def _record(type_code, subtype, name, offset=0x10000, size=0x10000, flags=0, magic=b"\xaa\x50"):
    return struct.pack(RECORD_FMT, magic, type_code, subtype, offset, size,
                       name.encode().ljust(16, b"\x00"), flags)


def test_zeroed_buffer_is_empty_layout():
    layout = import_table(bytes(TABLE_SIZE), 0x400000)
    assert len(layout) == 0
    assert layout.capacity == 0x400000


def test_erased_buffer_is_empty_layout():
    assert len(import_table(b"\xff" * TABLE_SIZE, 0x400000)) == 0


def test_round_trip(capacity, system, images):
    layout = plan_fixed(capacity, system, images)
    back = import_table(serialize(layout), capacity, verify_checksum=True)
    assert back == layout
    assert [r.kind for r in back] == [r.kind for r in layout]


def test_round_trip_proportional(capacity, system, images):
    layout = plan_proportional(capacity, system, images)
    assert import_table(serialize(layout), capacity) == layout


def test_flags_survive(capacity, system, images):
    back = import_table(serialize(plan_fixed(capacity, system, images)), capacity)
    assert back.find("bootloader").read_only
    assert not back.find("nvs").read_only


def test_stops_at_foreign_magic():
    data = _record(0x01, 0x02, "nvs") + _record(0x00, 0x10, "ota_0", magic=b"\x00\x00") \
        + _record(0x01, 0x02, "late")
    layout = import_table(data, 0x400000)
    assert [r.name for r in layout] == ["nvs"]


@pytest.mark.parametrize("type_code, subtype, name, kind", [
    (0x00, 0x00, "x", FACTORY_APP),
    (0x00, 0x10, "x", Kind.ota_slot(0)),
    (0x00, 0x1F, "x", Kind.ota_slot(15)),
    (0x00, 0x20, "x", Kind.ota_slot(0x10)),
    (0x00, 0x05, "x", Kind.ota_slot(None)),
    (0x00, 0x05, "factory_app", FACTORY_APP),
    (0x01, 0x00, "x", OTA_METADATA),
    (0x01, 0x02, "x", NVS),
    (0x01, 0x99, "x", FIRMWARE_REGISTRY),
    (0x01, 0x81, "x", NVS),
    (0x02, 0x00, "x", BOOTLOADER),
    (0x03, 0x00, "x", PARTITION_TABLE),
    (0x40, 0x00, "x", NVS),
])
def test_decode_kind(type_code, subtype, name, kind):
    assert decode_kind(type_code, subtype, name) == kind


def test_unknown_data_subtype_preserved():
    region = decode_region(_record(0x01, 0x81, "coredump"))
    assert region.kind == NVS
    assert region.subtype == 0x81


def test_decode_region_foreign_magic():
    assert decode_region(_record(0x01, 0x02, "nvs", magic=b"\x12\x34")) is None


def test_checksum_verification(capacity, system, images):
    data = bytearray(serialize(plan_fixed(capacity, system, images)))
    data[4] ^= 0x01  # смещение первого раздела
    # без проверки таблица читается как есть
    assert len(import_table(bytes(data), capacity)) == len(system) + 3
    with pytest.raises(ChecksumMismatch):
        import_table(bytes(data), capacity, verify_checksum=True)


def test_missing_checksum_record():
    with pytest.raises(ChecksumMismatch):
        import_table(_record(0x01, 0x02, "nvs"), 0x400000, verify_checksum=True)
