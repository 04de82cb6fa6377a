# partition/report.py
"""Представления разметки для людей: CSV в стиле ESP-IDF, статистика,
сравнение двух таблиц и строки для таблиц CLI/GUI."""

from __future__ import annotations

from typing import Dict, List

from .model import TYPE_APP, TYPE_BOOTLOADER, TYPE_DATA, TYPE_PARTITION_TABLE, KindTag, Layout
from .serializer import region_flags

KB = 1024
MB = 1024 * 1024

KIND_TITLES = {
    KindTag.BOOTLOADER: "Загрузчик",
    KindTag.PARTITION_TABLE: "Таблица разделов",
    KindTag.FIRMWARE_REGISTRY: "Реестр прошивок",
    KindTag.OTA_METADATA: "OTA-данные",
    KindTag.NVS: "NVS",
    KindTag.FACTORY_APP: "Factory",
    KindTag.OTA_SLOT: "OTA-слот",
}

TYPE_NAMES = {
    TYPE_APP: "app",
    TYPE_DATA: "data",
    TYPE_BOOTLOADER: "bootloader",
    TYPE_PARTITION_TABLE: "partition_table",
}


def describe_kind(kind) -> str:
    title = KIND_TITLES[kind.tag]
    if kind.is_ota_slot and kind.index is not None:
        return f"{title} {kind.index}"
    return title


def human_size(size: int) -> str:
    if size < KB // 2:
        return f"{size} Б"
    if size < MB // 2:
        return f"{size / KB:.1f} КБ"
    return f"{size / MB:.2f} МБ"


def csv_size(size: int) -> str:
    if size and size % MB == 0:
        return f"{size // MB}M"
    if size and size % KB == 0:
        return f"{size // KB}K"
    return f"0x{size:X}"


def to_csv(layout: Layout) -> str:
    """CSV-таблица разделов (формат partitions.csv)."""
    lines = ["# ESP-IDF Partition Table", "# Name, Type, SubType, Offset, Size, Flags"]
    for r in layout:
        flags = []
        if r.encrypted:
            flags.append("encrypted")
        if r.read_only:
            flags.append("readonly")
        type_name = TYPE_NAMES.get(r.type_code, f"0x{r.type_code:02X}")
        lines.append(f"{r.name},{type_name},0x{r.subtype:02X},0x{r.offset:X},{csv_size(r.size)},{':'.join(flags)}")
    return "\n".join(lines) + "\n"


def layout_rows(layout: Layout) -> List[tuple]:
    """(имя, вид, type/subtype, offset, size, end, флаги, пометка) по каждому разделу."""
    rows = []
    for r in layout:
        note = ""
        if r.truncated:
            note = "обрезан"
        elif r.associated_image is not None:
            note = r.associated_image.identifier
        rows.append((
            r.name,
            describe_kind(r.kind),
            f"{r.type_code:02X}/{r.subtype:02X}",
            f"0x{r.offset:08X}",
            human_size(r.size),
            f"0x{r.end:08X}",
            f"0x{region_flags(r):X}",
            note,
        ))
    return rows


def statistics(layout: Layout) -> dict:
    used = layout.total_used_size
    image_bytes = sum(r.associated_image.byte_size for r in layout if r.associated_image)
    slot_bytes = sum(r.size for r in layout if r.associated_image)
    by_kind: Dict[str, dict] = {}
    for r in layout:
        entry = by_kind.setdefault(r.kind.tag.value, {"count": 0, "size": 0})
        entry["count"] += 1
        entry["size"] += r.size
    return {
        "count": len(layout),
        "capacity": layout.capacity,
        "used": used,
        "free": max(0, layout.capacity - used),
        "utilization": (used / layout.capacity * 100) if layout.capacity else 0.0,
        "image_bytes": image_bytes,
        "slot_bytes": slot_bytes,
        "slot_waste": slot_bytes - image_bytes,
        "by_kind": by_kind,
    }


def compare(old: Layout, new: Layout) -> dict:
    """Изменения между двумя разметками (сопоставление по имени)."""
    before = {r.name: r for r in old}
    after = {r.name: r for r in new}
    changes = []
    for name, r in before.items():
        if name not in after:
            changes.append({"type": "removed", "name": name, "old": r})
    for name, r in after.items():
        if name not in before:
            changes.append({"type": "added", "name": name, "new": r})
        elif before[name] != r:
            changes.append({"type": "modified", "name": name, "old": before[name], "new": r})
    summary = {k: sum(1 for c in changes if c["type"] == k) for k in ("added", "removed", "modified")}
    return {"changes": changes, "summary": summary}
