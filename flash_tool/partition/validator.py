# partition/validator.py
from __future__ import annotations

import logging
from typing import List

from .errors import (
    AlignmentWarning, InvalidArgument, OutOfBounds, OverlapDetected, PartitionError,
    TooManyPartitions, ValidationError,
)
from .model import MAX_NAME_LEN, MAX_REGIONS, MIN_SLOT_SIZE, Layout

log = logging.getLogger(__name__)


def validate(layout: Layout) -> List[AlignmentWarning]:
    """Проверить разметку перед тем, как ей доверять.

    Порядок проверок (до первой ошибки):

    1. число разделов 1..127;
    2. имена: ASCII, не длиннее 15 символов (иначе таблица их обрежет);
    3. каждый раздел целиком внутри ``[0, capacity)``;
    4. выравнивание: только предупреждение в лог, разметку не валит;
    5. пересечения, где хотя бы один раздел является OTA-слотом. Системные
       разделы между собой не сверяются: они верны по построению;
    6. сумма размеров не больше ёмкости флеша.

    Возвращает список предупреждений о выравнивании и ставит
    ``layout.is_valid = True``.
    """
    layout.is_valid = False
    count = len(layout)
    if count == 0:
        raise ValidationError("Разметка пуста")
    if count > MAX_REGIONS:
        raise TooManyPartitions(f"Разделов {count} > {MAX_REGIONS}")

    for r in layout:
        if not r.name.isascii() or len(r.name) > MAX_NAME_LEN:
            raise InvalidArgument(
                f"Имя раздела {r.name!r}: нужно ASCII до {MAX_NAME_LEN} символов")

    cap = layout.capacity
    for r in layout:
        if r.offset >= cap or r.end > cap:
            raise OutOfBounds(
                f"Раздел {r.name} выходит за флеш: 0x{r.offset:08X} + 0x{r.size:08X} > 0x{cap:08X}")

    warnings: List[AlignmentWarning] = []
    for r in layout:
        align = r.required_alignment
        if r.offset % align:
            w = AlignmentWarning(
                f"Раздел {r.name} не выровнен: offset=0x{r.offset:08X}, нужно {align}",
                region=r.name, offset=r.offset, alignment=align)
            log.warning("%s", w)
            warnings.append(w)
        if r.is_app_slot and r.size < MIN_SLOT_SIZE:
            log.warning("OTA-слот %s меньше минимума: %d < %d", r.name, r.size, MIN_SLOT_SIZE)

    regions = layout.regions
    for i, a in enumerate(regions):
        for b in regions[i + 1:]:
            if not (a.is_app_slot or b.is_app_slot):
                continue
            if a.overlaps(b):
                raise OverlapDetected(
                    f"{a.name} [0x{a.offset:08X}-0x{a.end:08X}] пересекается с "
                    f"{b.name} [0x{b.offset:08X}-0x{b.end:08X}]",
                    first=a.name, second=b.name)

    used = layout.total_used_size
    if used > cap:
        raise OutOfBounds(f"Разделы занимают {used} байт, флеш 0x{cap:X} ({cap} байт)")

    layout.is_valid = True
    log.info("Разметка из %d разделов прошла проверку", count)
    return warnings


def is_valid_layout(layout: Layout) -> bool:
    try:
        validate(layout)
    except PartitionError as e:
        log.error("Разметка отклонена: %s", e)
        return False
    return True
