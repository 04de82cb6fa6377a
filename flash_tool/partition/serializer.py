# partition/serializer.py
"""Бинарный формат таблицы разделов.

Каждая запись занимает 32 байта::

    0   2  magic      AA 50: раздел, EB EB: запись контрольной суммы
    2   1  type       0x00 app, 0x01 data, 0x02 bootloader, 0x03 таблица
    3   1  subtype
    4   4  offset     LE
    8   4  size       LE
    12 16  name       ASCII, до 15 символов + NUL
    28  4  flags      LE, bit0 - encrypted, bit1 - readonly

За последней записью раздела идёт ровно одна запись контрольной суммы:
``EB EB`` + 14 x ``FF`` + MD5 всех предыдущих записей. Остаток буфера:
``FF`` (стёртый флеш), не нули.
"""

from __future__ import annotations

import hashlib
import logging
import struct

from .errors import InvalidArgument, TooManyPartitions
from .model import MAX_NAME_LEN, MAX_REGIONS, FlashRegion, Layout

log = logging.getLogger(__name__)

RECORD_FMT = "<2sBBII16sI"
RECORD_SIZE = struct.calcsize(RECORD_FMT)   # 32
NAME_LEN = 16
REGION_MAGIC = b"\xaa\x50"
CHECKSUM_MAGIC = b"\xeb\xeb"
TABLE_SIZE = 0x1000                         # 128 записей
ERASED = 0xFF

FLAG_ENCRYPTED = 1 << 0
FLAG_READONLY = 1 << 1


def _encode_name(name: str) -> bytes:
    try:
        raw = name.encode("ascii")
    except UnicodeEncodeError:
        raise InvalidArgument(f"Имя раздела должно быть ASCII: {name!r}") from None
    return raw[:MAX_NAME_LEN].ljust(NAME_LEN, b"\x00")


def region_flags(region: FlashRegion) -> int:
    flags = 0
    if region.encrypted:
        flags |= FLAG_ENCRYPTED
    if region.read_only:
        flags |= FLAG_READONLY
    return flags


def encode_region(region: FlashRegion) -> bytes:
    """Одна 32-байтная запись раздела."""
    try:
        return struct.pack(
            RECORD_FMT,
            REGION_MAGIC,
            region.type_code,
            region.subtype & 0xFF,
            region.offset,
            region.size,
            _encode_name(region.name),
            region_flags(region),
        )
    except struct.error as e:
        raise InvalidArgument(f"Раздел {region.name}: {e}") from e


def checksum_record(records: bytes) -> bytes:
    md5 = hashlib.md5(records).digest()
    return CHECKSUM_MAGIC.ljust(16, b"\xff") + md5


def estimate_size(layout: Layout) -> int:
    """Сколько байт займут записи разметки вместе с записью MD5."""
    return RECORD_SIZE * (len(layout) + 1)


def serialize(layout: Layout, buffer_size: int = TABLE_SIZE) -> bytes:
    """Разметка -> байты таблицы размером ``buffer_size``, добитые ``0xFF``."""
    if len(layout) > MAX_REGIONS:
        raise TooManyPartitions(f"Разделов {len(layout)} > {MAX_REGIONS}")
    required = estimate_size(layout)
    if required > buffer_size:
        raise TooManyPartitions(f"Таблица {required} байт не влезает в буфер {buffer_size}")

    records = b"".join(encode_region(r) for r in layout)
    data = records + checksum_record(records)
    log.debug("Таблица: %d записей + MD5 %s", len(layout), data[-16:].hex())
    return data.ljust(buffer_size, bytes([ERASED]))
