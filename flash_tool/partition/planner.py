# partition/planner.py
"""Планировщик OTA-слотов.

Берёт ёмкость флеша, набор неподвижных разделов (каталог или то, что
осталось от прочитанной таблицы) и список образов, и раскладывает образы
по OTA-слотам сразу за последним неподвижным разделом.

Две политики:

* ``plan_fixed``: каждый слот ровно под свой образ
  (``align_up(size + PADDING, 64K)``, не меньше ``MIN_SLOT_SIZE``);
* ``plan_proportional``: свободное место делится пропорционально размерам
  образов, последний образ забирает остаток.

Порядок размещения совпадает с порядком входа. Сортировка по размеру (от большего)
доступна как альтернатива через ``order=PlacementOrder.SIZE_DESCENDING``.

При нехватке места строгий режим бросает ``InsufficientSpace``, а
толерантный (``tolerant=True``) обрезает слот до конца флеша, помечает его
``truncated`` и складывает оставшиеся образы в ``layout.unplaced``.
"""

from __future__ import annotations

import logging
from enum import Enum
from typing import Iterable, List, Sequence, Tuple, Union

from .catalog import first_free_offset
from .errors import InsufficientSpace, InvalidArgument, TooManyPartitions
from .model import (
    MAX_REGIONS, MIN_SLOT_SIZE, OTA_ALIGNMENT, PADDING, U32_MAX,
    AllocationRequest, FlashRegion, ImageRequest, Kind, Layout, align_up,
)

log = logging.getLogger(__name__)

ImageLike = Union[ImageRequest, Tuple[str, int]]


class AllocationPolicy(Enum):
    FIXED = "fixed"
    PROPORTIONAL = "proportional"


class PlacementOrder(Enum):
    INPUT = "input"
    SIZE_DESCENDING = "size"


def slot_size_for(byte_size: int) -> int:
    """Размер слота под образ: запас, выравнивание 64К, минимум 64К."""
    return max(align_up(byte_size + PADDING, OTA_ALIGNMENT), MIN_SLOT_SIZE)


def _coerce_image(img: ImageLike) -> ImageRequest:
    if isinstance(img, ImageRequest):
        image = img
    else:
        try:
            identifier, size = img
        except (TypeError, ValueError):
            raise InvalidArgument(f"Ожидался образ (имя, размер), получено: {img!r}") from None
        image = ImageRequest(str(identifier), size)
    if not isinstance(image.byte_size, int) or isinstance(image.byte_size, bool):
        raise InvalidArgument(f"Размер образа {image.identifier!r} должен быть целым числом")
    if image.byte_size < 0 or image.byte_size > U32_MAX:
        raise InvalidArgument(f"Недопустимый размер образа {image.identifier!r}: {image.byte_size}")
    return image


def allocation_requests(images: Iterable[ImageLike] | None,
                        order: PlacementOrder = PlacementOrder.INPUT) -> List[AllocationRequest]:
    if not images:
        raise InvalidArgument("Список образов пуст")
    requests = []
    for i, img in enumerate(images):
        image = _coerce_image(img)
        requests.append(AllocationRequest(
            image=image,
            minimum_size=image.byte_size + PADDING,
            preferred_size=slot_size_for(image.byte_size),
            priority=i,
        ))
    if not requests:
        raise InvalidArgument("Список образов пуст")
    if order is PlacementOrder.SIZE_DESCENDING:
        # sorted() стабилен: равные по размеру остаются в порядке входа
        requests.sort(key=lambda r: r.preferred_size, reverse=True)
    return requests


def _check_capacity(capacity: int) -> None:
    if not isinstance(capacity, int) or capacity <= 0 or capacity > U32_MAX + 1:
        raise InvalidArgument(f"Недопустимая ёмкость флеша: {capacity!r}")


def _base_regions(capacity: int, catalog: Sequence[FlashRegion]) -> List[FlashRegion]:
    base = list(catalog)
    for r in base:
        if r.end > capacity:
            raise InvalidArgument(
                f"Раздел {r.name} (0x{r.offset:08X}+0x{r.size:X}) не помещается во флеш 0x{capacity:X}")
    return base


def _allocate(capacity: int, base: List[FlashRegion], requests: List[AllocationRequest],
              slot_sizes: List[int], tolerant: bool, absorb_last: bool) -> Layout:
    if len(base) + len(requests) > MAX_REGIONS:
        raise TooManyPartitions(
            f"Разделов {len(base) + len(requests)} > {MAX_REGIONS} (таблица на 4 КБ)")

    layout = Layout(capacity=capacity, regions=list(base))
    offset = first_free_offset(base)
    log.info("Размещение %d образов с 0x%08X, свободно %d байт",
             len(requests), offset, max(0, capacity - offset))

    exhausted = False
    slot = 0
    for n, (req, size) in enumerate(zip(requests, slot_sizes)):
        name = req.image.identifier
        if exhausted:
            log.warning("Образ %s не размещён: флеш закончился", name)
            layout.unplaced.append(name)
            continue

        remaining = max(0, capacity - offset)
        if absorb_last and n == len(requests) - 1 and remaining >= req.preferred_size:
            size = remaining

        truncated = False
        if offset + size > capacity:
            if not tolerant:
                raise InsufficientSpace(
                    f"Образ {name} требует {size} байт, свободно {remaining} (с 0x{offset:08X})",
                    required=size, available=remaining)
            if remaining == 0:
                log.warning("Образ %s не размещён: свободного места нет", name)
                layout.unplaced.append(name)
                exhausted = True
                continue
            log.warning("Образ %s не помещается: %d байт, доступно %d, слот обрезан",
                        name, size, remaining)
            size = remaining
            truncated = True
            exhausted = True

        region = FlashRegion(
            name=f"ota_{slot}",
            kind=Kind.ota_slot(slot),
            offset=offset,
            size=size,
            truncated=truncated,
            associated_image=req.image,
        )
        layout.regions.append(region)
        log.info("Слот %s для %s: offset=0x%08X size=%d", region.name, name, offset, size)
        offset += size
        slot += 1

    log.info("Размещено слотов: %d, занято до 0x%08X, осталось %d байт",
             slot, offset, max(0, capacity - offset))
    return layout


def plan_fixed(capacity: int, catalog: Sequence[FlashRegion], images: Sequence[ImageLike], *,
               tolerant: bool = False, order: PlacementOrder = PlacementOrder.INPUT) -> Layout:
    """Операция A: слот каждого образа равен его собственный выровненный размер."""
    _check_capacity(capacity)
    requests = allocation_requests(images, order)
    base = _base_regions(capacity, catalog)
    sizes = [r.preferred_size for r in requests]
    return _allocate(capacity, base, requests, sizes, tolerant, absorb_last=False)


def plan_proportional(capacity: int, catalog: Sequence[FlashRegion], images: Sequence[ImageLike], *,
                      tolerant: bool = False, order: PlacementOrder = PlacementOrder.INPUT) -> Layout:
    """Операция B: свободное место делится пропорционально размерам образов.

    Доля каждого образа не опускается ниже его собственного слота из
    ``plan_fixed``, поэтому сумма может превысить номинал, и тогда последний
    образ упирается в ``InsufficientSpace`` (или обрезается в толерантном
    режиме). Одиночный образ получает всё оставшееся место.
    """
    _check_capacity(capacity)
    requests = allocation_requests(images, order)
    base = _base_regions(capacity, catalog)
    available = max(0, capacity - first_free_offset(base))
    total_request = sum(r.preferred_size for r in requests)

    sizes = []
    for r in requests:
        share = align_up(r.image.byte_size * available // total_request, OTA_ALIGNMENT)
        sizes.append(max(share, r.preferred_size))
        log.debug("Доля %s: share=%d floor=%d", r.image.identifier, share, r.preferred_size)
    return _allocate(capacity, base, requests, sizes, tolerant, absorb_last=True)


def plan_preserve_existing(existing_layout: Layout, capacity: int, images: Sequence[ImageLike], *,
                           policy: AllocationPolicy = AllocationPolicy.FIXED,
                           tolerant: bool = False,
                           order: PlacementOrder = PlacementOrder.INPUT) -> Layout:
    """Операция C: перепланировать только OTA-слоты существующей разметки.

    Все разделы, кроме OTA-слотов, остаются на своих местах и в своём
    порядке: системные разделы между перепланировками не переезжают.
    """
    if existing_layout is None:
        raise InvalidArgument("Нет исходной разметки")
    survivors = []
    for r in existing_layout:
        if r.is_app_slot:
            log.info("Удаляю старый OTA-слот %s (0x%08X, %d байт)", r.name, r.offset, r.size)
        else:
            survivors.append(r)
    log.info("Сохранено разделов: %d", len(survivors))

    if policy is AllocationPolicy.PROPORTIONAL:
        return plan_proportional(capacity, survivors, images, tolerant=tolerant, order=order)
    return plan_fixed(capacity, survivors, images, tolerant=tolerant, order=order)


def find_image_slot(layout: Layout, index: int) -> FlashRegion:
    """Слот, в который попал ``index``-й размещённый образ."""
    placed = [r for r in layout if r.associated_image is not None]
    if not 0 <= index < len(placed):
        raise LookupError(f"Образ #{index} не размещён")
    return placed[index]
