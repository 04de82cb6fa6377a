from __future__ import annotations
import json, logging
from pathlib import Path
from datetime import datetime, timezone
from typing import List

import typer
from rich import print
from rich.console import Console
from rich.logging import RichHandler
from rich.table import Table

from .config import LOG_FILE, DEFAULT_CAPACITY, DEFAULT_IMAGE
from .flash.io import MemoryDevice, SimBackend, read_table, write_table, backup_table
from .partition.catalog import catalog, available_space, PARTITION_TABLE_OFFSET
from .partition.errors import PartitionError
from .partition.importer import import_table
from .partition.model import ImageRequest, Layout
from .partition.planner import (
    AllocationPolicy, PlacementOrder, plan_fixed, plan_proportional, plan_preserve_existing,
)
from .partition.report import compare, layout_rows, statistics, to_csv, human_size
from .partition.serializer import TABLE_SIZE, serialize
from .partition.validator import validate

app = typer.Typer(add_completion=False, help="Flash CLI: разметка OTA-слотов, таблица разделов, образ флеша.")
console = Console()

def _log_event(kind: str, payload: dict):
    LOG_FILE.parent.mkdir(parents=True, exist_ok=True)
    record = {
        "ts": datetime.now(timezone.utc).isoformat().replace("+00:00", "Z"),
        "kind": kind,
        "payload": payload,
    }
    with open(LOG_FILE, "a", encoding="utf-8") as f:
        f.write(json.dumps(record, ensure_ascii=False) + "\n")

@app.callback()
def _setup(verbose: bool = typer.Option(False, "--verbose", "-v", help="Подробный лог движка")):
    logging.basicConfig(
        level=logging.DEBUG if verbose else logging.WARNING,
        format="%(message)s",
        handlers=[RichHandler(console=Console(stderr=True), show_path=False)],
        force=True,
    )

# ---------- разбор аргументов ----------

def _parse_size(text: str) -> int:
    """'3000000', '0x2E0000', '64K', '16M' -> байты."""
    s = text.strip().upper()
    mult = 1
    if s.endswith("K"):
        mult, s = 1024, s[:-1]
    elif s.endswith("M"):
        mult, s = 1024 * 1024, s[:-1]
    return int(s, 0) * mult

def _parse_images(specs: List[str]) -> List[ImageRequest]:
    images = []
    for spec in specs:
        if "=" in spec:
            name, path = spec.split("=", 1)
            p = Path(path)
            if not p.exists():
                print(f"[red]Файл образа не найден:[/] {p}")
                raise typer.Exit(code=2)
            images.append(ImageRequest(name, p.stat().st_size))
        elif ":" in spec:
            name, size = spec.split(":", 1)
            try:
                images.append(ImageRequest(name, _parse_size(size)))
            except ValueError:
                print(f"[red]Неверный размер образа:[/] {spec}")
                raise typer.Exit(code=2)
        else:
            print(f"[red]Образ задаётся как имя=файл или имя:размер, получено:[/] {spec}")
            raise typer.Exit(code=2)
    return images

def _capacity(text: str | None, default: int = DEFAULT_CAPACITY) -> int:
    if text is None:
        return default
    try:
        return _parse_size(text)
    except ValueError:
        print(f"[red]Неверная ёмкость флеша:[/] {text}")
        raise typer.Exit(code=2)

def _offset(text: str) -> int:
    try:
        return _parse_size(text)
    except ValueError:
        print(f"[red]Неверное смещение таблицы:[/] {text}")
        raise typer.Exit(code=2)

def _load_table(path: Path, capacity: str | None, offset: int, verify: bool = False) -> Layout:
    """Таблица из файла: «сырой» сектор таблицы или полный образ флеша."""
    if not path.exists():
        print(f"[red]Файл не найден:[/] {path}")
        raise typer.Exit(code=2)
    data = path.read_bytes()
    if len(data) > TABLE_SIZE:
        cap = _capacity(capacity, default=len(data))
        return read_table(MemoryDevice(len(data), bytearray(data)), cap, offset, verify_checksum=verify)
    return import_table(data, _capacity(capacity), verify_checksum=verify)

def _order(by_size: bool) -> PlacementOrder:
    return PlacementOrder.SIZE_DESCENDING if by_size else PlacementOrder.INPUT

# ---------- вывод ----------

def _print_layout(layout: Layout, title: str = "Разметка"):
    t = Table(title=f"{title} (флеш {human_size(layout.capacity)})")
    for col in ("Имя", "Вид", "T/S", "Offset", "Размер", "Конец", "Флаги", ""):
        t.add_column(col)
    for row in layout_rows(layout):
        style = "yellow" if row[-1] == "обрезан" else None
        t.add_row(*row, style=style)
    console.print(t)
    st = statistics(layout)
    print(f"Занято: [cyan]{human_size(st['used'])}[/] ({st['utilization']:.1f}%), "
          f"свободно: [cyan]{human_size(st['free'])}[/]")
    if layout.unplaced:
        print(f"[yellow]Не размещены:[/] {', '.join(layout.unplaced)}")

def _finish(layout: Layout, out: Path | None, csv: Path | None) -> dict:
    result = {"partitions": len(layout), "unplaced": layout.unplaced}
    if out:
        out.parent.mkdir(parents=True, exist_ok=True)
        out.write_bytes(serialize(layout))
        result["out"] = str(out)
        print(f"[green]Таблица записана:[/] {out}")
    if csv:
        csv.parent.mkdir(parents=True, exist_ok=True)
        csv.write_text(to_csv(layout), encoding="utf-8")
        result["csv"] = str(csv)
        print(f"[green]CSV записан:[/] {csv}")
    return result

# ---------- команды ----------

@app.command("catalog")
def catalog_cmd(capacity: str = typer.Option(None, help="Ёмкость флеша (16M, 0x1000000)")):
    """Показать неподвижные системные разделы и свободный диапазон."""
    cap = _capacity(capacity)
    _print_layout(Layout(capacity=cap, regions=list(catalog())), "Системные разделы")
    space = available_space(cap)
    print(f"Свободно под OTA: [cyan]0x{space['first_free']:08X}[/]..0x{cap:08X} "
          f"({human_size(space['available'])})")

@app.command()
def plan(
    images: List[str] = typer.Argument(..., help="Образы: имя=файл.bin или имя:размер"),
    capacity: str = typer.Option(None, help="Ёмкость флеша (16M, 0x1000000)"),
    proportional: bool = typer.Option(False, help="Делить свободное место пропорционально"),
    tolerant: bool = typer.Option(False, help="Обрезать последний слот вместо ошибки"),
    by_size: bool = typer.Option(False, help="Размещать от большего образа к меньшему"),
    out: Path = typer.Option(None, help="Куда сохранить бинарную таблицу"),
    csv: Path = typer.Option(None, help="Куда сохранить CSV"),
):
    """Разложить образы по OTA-слотам за системными разделами."""
    reqs = _parse_images(images)
    cap = _capacity(capacity)
    planner = plan_proportional if proportional else plan_fixed
    try:
        layout = planner(cap, catalog(), reqs, tolerant=tolerant, order=_order(by_size))
        validate(layout)
    except PartitionError as e:
        print(f"[red]Разметка не построена:[/] {e}")
        _log_event("plan_error", {"error": str(e)})
        raise typer.Exit(code=1)
    _print_layout(layout)
    _log_event("plan", _finish(layout, out, csv))

@app.command()
def inspect(
    table_file: Path = typer.Argument(..., help="Таблица (.bin) или полный образ флеша"),
    offset: str = typer.Option(hex(PARTITION_TABLE_OFFSET), help="Смещение таблицы в образе"),
    capacity: str = typer.Option(None, help="Ёмкость флеша"),
    verify: bool = typer.Option(False, help="Проверить MD5 таблицы"),
):
    """Прочитать таблицу разделов и показать разметку."""
    try:
        layout = _load_table(table_file, capacity, _offset(offset), verify)
    except PartitionError as e:
        print(f"[red]Ошибка чтения таблицы:[/] {e}")
        raise typer.Exit(code=1)
    if not len(layout):
        print("[yellow]Таблица разделов не найдена (пусто).[/]")
        return
    _print_layout(layout, f"Таблица из {table_file}")
    _log_event("inspect", {"file": str(table_file), "partitions": len(layout)})

@app.command()
def replan(
    table_file: Path = typer.Argument(..., help="Текущая таблица или образ флеша"),
    images: List[str] = typer.Argument(..., help="Новые образы: имя=файл.bin или имя:размер"),
    offset: str = typer.Option(hex(PARTITION_TABLE_OFFSET), help="Смещение таблицы в образе"),
    capacity: str = typer.Option(None, help="Ёмкость флеша"),
    proportional: bool = typer.Option(False, help="Делить свободное место пропорционально"),
    tolerant: bool = typer.Option(False, help="Обрезать последний слот вместо ошибки"),
    by_size: bool = typer.Option(False, help="Размещать от большего образа к меньшему"),
    out: Path = typer.Option(None, help="Куда сохранить бинарную таблицу"),
    csv: Path = typer.Option(None, help="Куда сохранить CSV"),
):
    """Перестроить только OTA-слоты, оставив системные разделы на месте."""
    reqs = _parse_images(images)
    policy = AllocationPolicy.PROPORTIONAL if proportional else AllocationPolicy.FIXED
    try:
        existing = _load_table(table_file, capacity, _offset(offset))
        layout = plan_preserve_existing(existing, existing.capacity, reqs,
                                        policy=policy, tolerant=tolerant, order=_order(by_size))
        validate(layout)
    except PartitionError as e:
        print(f"[red]Перепланирование не удалось:[/] {e}")
        _log_event("replan_error", {"error": str(e)})
        raise typer.Exit(code=1)
    _print_layout(layout)
    diff = compare(existing, layout)["summary"]
    print(f"Изменения: +{diff['added']} -{diff['removed']} ~{diff['modified']}")
    _log_event("replan", _finish(layout, out, csv))

@app.command()
def diff(
    old: Path = typer.Argument(..., help="Старая таблица"),
    new: Path = typer.Argument(..., help="Новая таблица"),
    capacity: str = typer.Option(None, help="Ёмкость флеша"),
):
    """Сравнить две таблицы разделов по именам."""
    try:
        a = _load_table(old, capacity, PARTITION_TABLE_OFFSET)
        b = _load_table(new, capacity, PARTITION_TABLE_OFFSET)
    except PartitionError as e:
        print(f"[red]Ошибка чтения таблицы:[/] {e}")
        raise typer.Exit(code=1)
    result = compare(a, b)
    if not result["changes"]:
        print("[green]Таблицы совпадают.[/]")
        return
    colors = {"added": "green", "removed": "red", "modified": "yellow"}
    for c in result["changes"]:
        r = c.get("new") or c.get("old")
        print(f"[{colors[c['type']]}]{c['type']:>8}[/] {c['name']} @ 0x{r.offset:08X} ({human_size(r.size)})")

@app.command("write-table")
def write_table_cmd(
    table_file: Path = typer.Argument(..., help="Таблица (.bin) для записи"),
    image: Path = typer.Option(DEFAULT_IMAGE, help="Образ флеша (симулятор)"),
    backup: Path = typer.Option(None, help="Сохранить прежний сектор таблицы сюда"),
):
    """
    Записать таблицу в образ флеша (DEMO: файл-симулятор).
    Таблица проверяется перед записью.
    """
    backend = SimBackend(image)
    try:
        layout = _load_table(table_file, str(backend.capacity), PARTITION_TABLE_OFFSET)
        if backup:
            backup.parent.mkdir(parents=True, exist_ok=True)
            backup.write_bytes(backup_table(backend))
            print(f"[dim]Резервная копия: {backup}[/]")
        result = write_table(backend, layout)
    except PartitionError as e:
        print(f"[red]Ошибка записи:[/] {e}")
        raise typer.Exit(code=1)
    _log_event("write_table", result)
    print(f"[green]Готово:[/] записано {result['bytes']} байт по 0x{result['offset']:08X} -> {image}")

@app.command("read-table")
def read_table_cmd(
    out_file: Path = typer.Argument(Path("logs/table.bin"), help="Куда сохранить сектор таблицы"),
    image: Path = typer.Option(DEFAULT_IMAGE, help="Образ флеша (симулятор)"),
    verify: bool = typer.Option(False, help="Проверить MD5 таблицы"),
):
    """Считать сектор таблицы из образа флеша и показать разметку."""
    backend = SimBackend(image)
    try:
        layout = read_table(backend, backend.capacity, verify_checksum=verify)
        raw = backup_table(backend)
    except PartitionError as e:
        print(f"[red]Ошибка чтения:[/] {e}")
        raise typer.Exit(code=1)
    out_file.parent.mkdir(parents=True, exist_ok=True)
    out_file.write_bytes(raw)
    _log_event("read_table", {"out": str(out_file), "partitions": len(layout), "info": backend.info()})
    if len(layout):
        _print_layout(layout, f"Таблица из {image}")
    else:
        print("[yellow]Таблица разделов не найдена (пусто).[/]")
    print(f"[green]Сектор сохранён:[/] {out_file}")


if __name__ == "__main__":
    app()
