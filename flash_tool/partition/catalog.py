# partition/catalog.py
from __future__ import annotations

from typing import Tuple

from .model import (
    BOOTLOADER, FACTORY_APP, FIRMWARE_REGISTRY, NVS, OTA_ALIGNMENT, OTA_METADATA,
    PARTITION_TABLE, FlashRegion, align_up,
)

# Загрузчик и таблица стоят там, где их ищет ROM после сброса.
BOOTLOADER_OFFSET = 0x2000
BOOTLOADER_SIZE = 0x8000
PARTITION_TABLE_OFFSET = 0x10000
PARTITION_TABLE_SIZE = 0x1000
FACTORY_APP_OFFSET = 0x20000
FACTORY_APP_SIZE = 0x100000

# Остальные системные разделы идут подряд от базы сразу за factory.
SYSTEM_BASE_OFFSET = FACTORY_APP_OFFSET + FACTORY_APP_SIZE
NVS_SIZE = 0x8000
OTADATA_SIZE = 0x3000
REGISTRY_SIZE = 0x10000

_CATALOG = (
    FlashRegion("bootloader", BOOTLOADER, BOOTLOADER_OFFSET, BOOTLOADER_SIZE, read_only=True),
    FlashRegion("partition-table", PARTITION_TABLE, PARTITION_TABLE_OFFSET, PARTITION_TABLE_SIZE, read_only=True),
    FlashRegion("factory_app", FACTORY_APP, FACTORY_APP_OFFSET, FACTORY_APP_SIZE),
    FlashRegion("nvs", NVS, SYSTEM_BASE_OFFSET, NVS_SIZE),
    FlashRegion("otadata", OTA_METADATA, SYSTEM_BASE_OFFSET + NVS_SIZE, OTADATA_SIZE),
    FlashRegion("firmware_reg", FIRMWARE_REGISTRY, SYSTEM_BASE_OFFSET + NVS_SIZE + OTADATA_SIZE, REGISTRY_SIZE),
)

# Смещения: константы сборки, проверяются один раз при импорте.
for _r in _CATALOG:
    assert _r.offset % _r.required_alignment == 0, f"catalog region {_r.name} misaligned"
del _r


def catalog() -> Tuple[FlashRegion, ...]:
    """Фиксированные системные разделы в порядке записи в таблицу."""
    return _CATALOG


def first_free_offset(regions=_CATALOG) -> int:
    """Первое свободное смещение за разделами, выровненное под OTA."""
    end = max((r.end for r in regions), default=0)
    return align_up(end, OTA_ALIGNMENT)


def available_after_catalog(capacity: int) -> Tuple[int, int]:
    """Свободный диапазон ``[first_free_offset, capacity)``."""
    return first_free_offset(), capacity


def available_space(capacity: int) -> dict:
    system = sum(r.size for r in _CATALOG)
    start, end = available_after_catalog(capacity)
    return {
        "total": capacity,
        "system": system,
        "first_free": start,
        "available": max(0, end - start),
    }
