from flash_tool.partition.catalog import (
    PARTITION_TABLE_OFFSET, available_after_catalog, available_space, catalog, first_free_offset,
)
from flash_tool.partition.model import KindTag


def test_catalog_order_and_fixed_offsets():
    regions = catalog()
    assert [r.name for r in regions] == [
        "bootloader", "partition-table", "factory_app", "nvs", "otadata", "firmware_reg",
    ]
    assert regions[0].offset == 0x2000
    assert regions[1].offset == PARTITION_TABLE_OFFSET
    assert regions[0].read_only and regions[1].read_only


def test_catalog_has_no_ota_slots():
    assert not any(r.is_app_slot for r in catalog())
    assert {r.kind.tag for r in catalog()} == {
        KindTag.BOOTLOADER, KindTag.PARTITION_TABLE, KindTag.FACTORY_APP,
        KindTag.NVS, KindTag.OTA_METADATA, KindTag.FIRMWARE_REGISTRY,
    }


def test_catalog_regions_are_aligned_and_disjoint():
    regions = catalog()
    for r in regions:
        assert r.offset % r.required_alignment == 0
    ordered = sorted(regions, key=lambda r: r.offset)
    for a, b in zip(ordered, ordered[1:]):
        assert a.end <= b.offset


def test_catalog_is_immutable_sequence():
    assert isinstance(catalog(), tuple)
    assert catalog() is catalog()


def test_available_after_catalog(capacity):
    assert first_free_offset() == 0x140000
    assert available_after_catalog(capacity) == (0x140000, capacity)


def test_available_space(capacity):
    space = available_space(capacity)
    assert space["first_free"] == 0x140000
    assert space["available"] == capacity - 0x140000
    assert space["system"] == sum(r.size for r in catalog())
