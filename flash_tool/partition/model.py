# partition/model.py
"""Логическая модель разметки флеша.

* ``Kind``: закрытый набор видов разделов (загрузчик, сама таблица,
  реестр прошивок, OTA-метаданные, NVS, factory и OTA-слоты).
* ``FlashRegion``: один раздел: имя, вид, смещение, размер, флаги.
* ``Layout``: упорядоченный список разделов (порядок = порядок на диске).
* ``ImageRequest`` / ``AllocationRequest``: входные образы для планировщика.

Модель ничего не знает о бинарном формате, кроме пары (type, subtype),
которую каждый вид занимает в записи таблицы.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from enum import Enum
from typing import Iterator, List, Optional

# ---- Константы железа ----
DATA_ALIGNMENT = 0x1000     # 4 КБ, сектор стирания
OTA_ALIGNMENT = 0x10000     # 64 КБ, страница MMU для образов приложений
PADDING = 0x1000            # запас к каждому образу перед выравниванием
MIN_SLOT_SIZE = 0x10000     # минимальный OTA-слот
MAX_REGIONS = 127           # + 1 запись контрольной суммы = 128 * 32 = 4 КБ
MAX_NAME_LEN = 15           # видимых символов в имени
U32_MAX = 0xFFFFFFFF

# Коды типа записи
TYPE_APP = 0x00
TYPE_DATA = 0x01
TYPE_BOOTLOADER = 0x02
TYPE_PARTITION_TABLE = 0x03

# Подтипы
SUBTYPE_FACTORY = 0x00
SUBTYPE_OTA_BASE = 0x10
SUBTYPE_OTA_LAST = 0x1F     # 16 «известных» OTA-подтипов
SUBTYPE_OTADATA = 0x00
SUBTYPE_NVS = 0x02
SUBTYPE_REGISTRY = 0x99     # пользовательский data-подтип под реестр прошивок


def align_up(value: int, alignment: int) -> int:
    """Округлить ``value`` вверх до кратного ``alignment`` (степень двойки)."""
    return (value + alignment - 1) & ~(alignment - 1)


class KindTag(Enum):
    BOOTLOADER = "bootloader"
    PARTITION_TABLE = "partition_table"
    FIRMWARE_REGISTRY = "firmware_registry"
    OTA_METADATA = "ota_metadata"
    NVS = "nvs"
    FACTORY_APP = "factory_app"
    OTA_SLOT = "ota_slot"


# tag -> (type, subtype); для OTA_SLOT подтип считается от индекса
_WIRE_CODES = {
    KindTag.BOOTLOADER: (TYPE_BOOTLOADER, 0x00),
    KindTag.PARTITION_TABLE: (TYPE_PARTITION_TABLE, 0x00),
    KindTag.FIRMWARE_REGISTRY: (TYPE_DATA, SUBTYPE_REGISTRY),
    KindTag.OTA_METADATA: (TYPE_DATA, SUBTYPE_OTADATA),
    KindTag.NVS: (TYPE_DATA, SUBTYPE_NVS),
    KindTag.FACTORY_APP: (TYPE_APP, SUBTYPE_FACTORY),
}


@dataclass(frozen=True)
class Kind:
    """Вид раздела. ``index`` есть только у OTA-слотов."""

    tag: KindTag
    index: Optional[int] = None

    @classmethod
    def ota_slot(cls, index: Optional[int]) -> "Kind":
        return cls(KindTag.OTA_SLOT, index)

    @property
    def is_ota_slot(self) -> bool:
        return self.tag is KindTag.OTA_SLOT

    @property
    def is_app(self) -> bool:
        return self.tag in (KindTag.OTA_SLOT, KindTag.FACTORY_APP)

    @property
    def type_code(self) -> int:
        if self.is_ota_slot:
            return TYPE_APP
        return _WIRE_CODES[self.tag][0]

    @property
    def default_subtype(self) -> int:
        if self.is_ota_slot:
            return SUBTYPE_OTA_BASE + (self.index or 0)
        return _WIRE_CODES[self.tag][1]

    def __str__(self) -> str:
        if self.is_ota_slot:
            return f"ota_slot({'' if self.index is None else self.index})"
        return self.tag.value


BOOTLOADER = Kind(KindTag.BOOTLOADER)
PARTITION_TABLE = Kind(KindTag.PARTITION_TABLE)
FIRMWARE_REGISTRY = Kind(KindTag.FIRMWARE_REGISTRY)
OTA_METADATA = Kind(KindTag.OTA_METADATA)
NVS = Kind(KindTag.NVS)
FACTORY_APP = Kind(KindTag.FACTORY_APP)


@dataclass(frozen=True)
class ImageRequest:
    """Образ прошивки, который нужно разместить в OTA-слоте."""

    identifier: str
    byte_size: int


@dataclass(frozen=True)
class AllocationRequest:
    """Внутренний запрос планировщика (priority = индекс во входе, 0 - главный)."""

    image: ImageRequest
    minimum_size: int
    preferred_size: int
    priority: int


@dataclass(frozen=True)
class FlashRegion:
    name: str
    kind: Kind
    offset: int
    size: int
    subtype: Optional[int] = None   # None -> подтип по умолчанию для вида
    read_only: bool = False
    encrypted: bool = False
    # аннотации планировщика: в таблицу не пишутся и в сравнении не участвуют
    truncated: bool = field(default=False, compare=False)
    associated_image: Optional[ImageRequest] = field(default=None, compare=False)

    def __post_init__(self):
        if self.subtype is None:
            object.__setattr__(self, "subtype", self.kind.default_subtype)

    @property
    def end(self) -> int:
        return self.offset + self.size

    @property
    def is_app_slot(self) -> bool:
        return self.kind.is_ota_slot

    @property
    def type_code(self) -> int:
        return self.kind.type_code

    @property
    def required_alignment(self) -> int:
        return OTA_ALIGNMENT if self.kind.is_app else DATA_ALIGNMENT

    def overlaps(self, other: "FlashRegion") -> bool:
        return self.offset < other.end and self.end > other.offset


@dataclass
class Layout:
    """Упорядоченная разметка. Порядок списка = порядок записей в таблице."""

    capacity: int
    regions: List[FlashRegion] = field(default_factory=list)
    is_valid: bool = field(default=False, compare=False)
    # образы, которым не досталось места (только толерантный режим)
    unplaced: List[str] = field(default_factory=list, compare=False)

    @property
    def total_used_size(self) -> int:
        return sum(r.size for r in self.regions)

    @property
    def app_slots(self) -> List[FlashRegion]:
        return [r for r in self.regions if r.is_app_slot]

    def find(self, name: str) -> Optional[FlashRegion]:
        return next((r for r in self.regions if r.name == name), None)

    def __iter__(self) -> Iterator[FlashRegion]:
        return iter(self.regions)

    def __len__(self) -> int:
        return len(self.regions)

    def __getitem__(self, i: int) -> FlashRegion:
        return self.regions[i]
