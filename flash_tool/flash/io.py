# flash/io.py
from __future__ import annotations
from dataclasses import dataclass, field
from pathlib import Path
from typing import Protocol, Iterable

from ..partition.catalog import PARTITION_TABLE_OFFSET
from ..partition.errors import FlashIOError, InvalidArgument
from ..partition.importer import import_table
from ..partition.model import Layout
from ..partition.serializer import TABLE_SIZE, ERASED, serialize
from ..partition.validator import validate
from .simulate import SimFlash

# ---- Протокол блочного устройства ----
class BlockDevice(Protocol):
    """
    Устройство сообщает об отказе через OSError (файл, порт) или
    ValueError (адрес вне флеша). Только эти два типа оборачиваются в
    FlashIOError; прочие исключения считаются ошибкой в коде и летят как есть.
    """
    def read(self, offset: int, length: int) -> bytes: ...
    def write(self, offset: int, data: bytes) -> None: ...
    def erase(self, offset: int, length: int) -> None: ...
    def info(self) -> dict: ...

# ---- Реализация: флеш в памяти (тесты, предпросмотр) ----
@dataclass
class MemoryDevice:
    capacity: int
    buf: bytearray = field(default=None, repr=False)

    def __post_init__(self):
        if self.buf is None:
            self.buf = bytearray([ERASED] * self.capacity)

    def _check(self, offset: int, length: int):
        if offset < 0 or length < 0 or offset + length > len(self.buf):
            raise ValueError(f"out of range: 0x{offset:08X}+{length}")

    def read(self, offset: int, length: int) -> bytes:
        self._check(offset, length)
        return bytes(self.buf[offset:offset + length])

    def write(self, offset: int, data: bytes) -> None:
        self._check(offset, len(data))
        self.buf[offset:offset + len(data)] = data

    def erase(self, offset: int, length: int) -> None:
        self._check(offset, length)
        self.buf[offset:offset + length] = bytes([ERASED]) * length

    def info(self) -> dict:
        return {"backend": "memory", "size": len(self.buf)}

# ---- Реализация: DEMO / файл-образ флеша ----
@dataclass
class SimBackend:
    path: Path

    def __post_init__(self):
        self.flash = SimFlash(self.path)

    @property
    def capacity(self) -> int:
        return self.flash.capacity

    def read(self, offset: int, length: int) -> bytes:
        return self.flash.read(offset, length)

    def write(self, offset: int, data: bytes) -> None:
        self.flash.write(offset, data)

    def erase(self, offset: int, length: int) -> None:
        self.flash.erase(offset, length)

    def info(self) -> dict:
        return {"backend": "sim_flash", **self.flash.info()}

# ---- Обёртки: любая ошибка устройства -> FlashIOError, без повторов ----
def _read(device: BlockDevice, offset: int, length: int) -> bytes:
    try:
        return device.read(offset, length)
    except (OSError, ValueError) as e:
        raise FlashIOError(f"Чтение 0x{offset:08X}+{length}: {e}") from e

def _write(device: BlockDevice, offset: int, data: bytes) -> None:
    try:
        device.write(offset, data)
    except (OSError, ValueError) as e:
        raise FlashIOError(f"Запись 0x{offset:08X}+{len(data)}: {e}") from e

def _erase(device: BlockDevice, offset: int, length: int) -> None:
    try:
        device.erase(offset, length)
    except (OSError, ValueError) as e:
        raise FlashIOError(f"Стирание 0x{offset:08X}+{length}: {e}") from e

# ---- Высокоуровневые операции ----
def iter_chunks(data: bytes | None, chunk_size: int) -> Iterable[bytes]:
    if not data:
        return
    for i in range(0, len(data), chunk_size):
        yield data[i:i+chunk_size]

def read_table(device: BlockDevice, capacity: int, offset: int = PARTITION_TABLE_OFFSET,
               verify_checksum: bool = False) -> Layout:
    raw = _read(device, offset, TABLE_SIZE)
    return import_table(raw, capacity, verify_checksum=verify_checksum)

def write_table(device: BlockDevice, layout: Layout, offset: int = PARTITION_TABLE_OFFSET,
                chunk: int = 256) -> dict:
    validate(layout)
    data = serialize(layout)
    _erase(device, offset, TABLE_SIZE)
    written = 0
    for part in iter_chunks(data, chunk):
        _write(device, offset + written, part)
        written += len(part)
    return {"bytes": written, "offset": offset, "partitions": len(layout), "info": device.info()}

def backup_table(device: BlockDevice, offset: int = PARTITION_TABLE_OFFSET) -> bytes:
    """Снять копию сектора таблицы перед перезаписью."""
    return _read(device, offset, TABLE_SIZE)

def restore_table(device: BlockDevice, data: bytes, offset: int = PARTITION_TABLE_OFFSET) -> dict:
    if not data:
        raise InvalidArgument("Пустая резервная копия")
    if len(data) > TABLE_SIZE:
        raise InvalidArgument(f"Резервная копия {len(data)} байт больше сектора таблицы {TABLE_SIZE}")
    _erase(device, offset, TABLE_SIZE)
    _write(device, offset, data)
    return {"bytes": len(data), "offset": offset}
