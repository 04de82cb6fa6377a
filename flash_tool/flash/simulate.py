# flash/simulate.py
import zlib
from pathlib import Path

from ..config import SIM_CAPACITY

ERASED = 0xFF


class SimFlash:
    """
    Симулятор SPI-флеша поверх файла:
    - образ создаётся при первом запуске, целиком «стёртый» (0xFF)
    - читает/пишет/стирает байты по адресам
    - считает CRC32 образа для быстрой сверки
    """
    def __init__(self, store: Path, capacity: int = SIM_CAPACITY):
        self.store = Path(store)
        self.store.parent.mkdir(parents=True, exist_ok=True)
        if not self.store.exists():
            self.store.write_bytes(bytes([ERASED]) * capacity)
        self.capacity = self.store.stat().st_size

    def _check(self, addr: int, size: int, op: str):
        if addr < 0 or size < 0 or addr + size > self.capacity:
            raise ValueError(f"{op} out of range: 0x{addr:08X}+{size} > 0x{self.capacity:08X}")

    def read(self, addr: int, size: int) -> bytes:
        self._check(addr, size, "Read")
        with open(self.store, "rb") as f:
            f.seek(addr)
            return f.read(size)

    def write(self, addr: int, chunk: bytes):
        self._check(addr, len(chunk), "Write")
        with open(self.store, "r+b") as f:
            f.seek(addr)
            f.write(chunk)

    def erase(self, addr: int, size: int):
        self._check(addr, size, "Erase")
        with open(self.store, "r+b") as f:
            f.seek(addr)
            f.write(bytes([ERASED]) * size)

    def crc32(self) -> int:
        return zlib.crc32(self.store.read_bytes()) & 0xFFFFFFFF

    def info(self) -> dict:
        return {
            "size": self.capacity,
            "crc32": f"0x{self.crc32():08X}",
            "store": str(self.store)
        }
