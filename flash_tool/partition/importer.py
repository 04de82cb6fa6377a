# partition/importer.py
"""Чтение бинарной таблицы обратно в ``Layout`` (обратная операция к
``serializer.serialize``).

Разбор терпимый: первая запись с чужим magic (или запись MD5) это
«конец таблицы», а не порча. Контрольная сумма по умолчанию не
проверяется; включается флагом ``verify_checksum``.
"""

from __future__ import annotations

import hashlib
import logging
import struct
from typing import Optional

from .errors import ChecksumMismatch
from .model import (
    BOOTLOADER, FACTORY_APP, FIRMWARE_REGISTRY, NVS, OTA_METADATA, PARTITION_TABLE,
    SUBTYPE_FACTORY, SUBTYPE_NVS, SUBTYPE_OTA_BASE, SUBTYPE_OTA_LAST, SUBTYPE_OTADATA,
    SUBTYPE_REGISTRY, TYPE_APP, TYPE_BOOTLOADER, TYPE_DATA, TYPE_PARTITION_TABLE,
    FlashRegion, Kind, Layout,
)
from .serializer import (
    CHECKSUM_MAGIC, FLAG_ENCRYPTED, FLAG_READONLY, RECORD_FMT, RECORD_SIZE, REGION_MAGIC,
    TABLE_SIZE,
)

log = logging.getLogger(__name__)

MAX_RECORDS = TABLE_SIZE // RECORD_SIZE

# Единственный случай, когда вид решает имя: app-запись с неизвестным подтипом.
FACTORY_NAMES = ("factory_app",)

_DATA_KINDS = {
    SUBTYPE_OTADATA: OTA_METADATA,
    SUBTYPE_NVS: NVS,
    SUBTYPE_REGISTRY: FIRMWARE_REGISTRY,
}


def decode_kind(type_code: int, subtype: int, name: str) -> Kind:
    """(type, subtype) -> Kind, с подстановкой по имени для неизвестных app-подтипов."""
    if type_code == TYPE_APP:
        if subtype == SUBTYPE_FACTORY:
            return FACTORY_APP
        if SUBTYPE_OTA_BASE <= subtype <= SUBTYPE_OTA_LAST:
            return Kind.ota_slot(subtype - SUBTYPE_OTA_BASE)
        if name in FACTORY_NAMES:
            return FACTORY_APP
        index = subtype - SUBTYPE_OTA_BASE if subtype >= SUBTYPE_OTA_BASE else None
        log.debug("app-подтип 0x%02X у %s неизвестен, считаю OTA-слотом", subtype, name)
        return Kind.ota_slot(index)
    if type_code == TYPE_DATA:
        return _DATA_KINDS.get(subtype, NVS)
    if type_code == TYPE_BOOTLOADER:
        return BOOTLOADER
    if type_code == TYPE_PARTITION_TABLE:
        return PARTITION_TABLE
    # неизвестный тип: как в прошивке загрузчика, по умолчанию NVS
    log.debug("Неизвестный тип 0x%02X у %s, считаю NVS", type_code, name)
    return NVS


def _decode_name(label: bytes) -> str:
    return label.split(b"\x00", 1)[0].decode("ascii", errors="replace")


def decode_region(record: bytes) -> Optional[FlashRegion]:
    """Запись -> раздел, или ``None``, если это не запись раздела."""
    magic, type_code, subtype, offset, size, label, flags = struct.unpack(RECORD_FMT, record)
    if magic != REGION_MAGIC:
        return None
    name = _decode_name(label)
    return FlashRegion(
        name=name,
        kind=decode_kind(type_code, subtype, name),
        offset=offset,
        size=size,
        subtype=subtype,
        read_only=bool(flags & FLAG_READONLY),
        encrypted=bool(flags & FLAG_ENCRYPTED),
    )


def _verify(data: bytes, count: int) -> None:
    n = count * RECORD_SIZE
    record = data[n:n + RECORD_SIZE]
    if len(record) < RECORD_SIZE or not record.startswith(CHECKSUM_MAGIC):
        raise ChecksumMismatch(f"Нет записи MD5 после {count} разделов")
    expected = record[-16:]
    actual = hashlib.md5(data[:n]).digest()
    if expected != actual:
        raise ChecksumMismatch(f"MD5: в таблице {expected.hex()}, посчитано {actual.hex()}")


def import_table(data: bytes, capacity: int, *, verify_checksum: bool = False) -> Layout:
    """Байты таблицы -> ``Layout`` в порядке записей на диске."""
    data = bytes(data)
    layout = Layout(capacity=capacity)
    for i in range(MAX_RECORDS):
        record = data[i * RECORD_SIZE:(i + 1) * RECORD_SIZE]
        if len(record) < RECORD_SIZE:
            break
        if record.startswith(CHECKSUM_MAGIC):
            log.debug("Запись MD5 на позиции %d", i)
            break
        region = decode_region(record)
        if region is None:
            log.debug("Чужой magic %s на позиции %d, конец таблицы", record[:2].hex(), i)
            break
        log.debug("Раздел %d: %s %s 0x%08X 0x%08X", i, region.name, region.kind,
                  region.offset, region.size)
        layout.regions.append(region)

    if verify_checksum:
        _verify(data, len(layout))
    log.info("Прочитано разделов: %d", len(layout))
    return layout
