# gui/main_qt.py
from __future__ import annotations
import sys
from pathlib import Path

from PySide6.QtWidgets import (
    QApplication, QMainWindow, QWidget, QVBoxLayout, QHBoxLayout, QPushButton, QLabel,
    QFileDialog, QCheckBox, QMessageBox, QLineEdit, QStatusBar, QGroupBox, QTextEdit,
    QTableView, QHeaderView,
)
from PySide6.QtGui import QPalette, QColor, QFontDatabase

from ..config import DEFAULT_CAPACITY, DEFAULT_IMAGE
from ..flash.io import MemoryDevice, SimBackend, read_table, write_table
from ..partition.catalog import catalog, PARTITION_TABLE_OFFSET
from ..partition.errors import PartitionError
from ..partition.importer import import_table
from ..partition.model import ImageRequest, Layout
from ..partition.planner import plan_fixed, plan_proportional
from ..partition.report import statistics, human_size
from ..partition.serializer import TABLE_SIZE, serialize
from ..partition.validator import validate
from .layout_model import LayoutTableModel

# ---------- тема ----------
def setup_theme(app):
    app.setStyle("Fusion")
    pal = QPalette()
    pal.setColor(QPalette.Window, QColor(30, 32, 36))
    pal.setColor(QPalette.WindowText, QColor(220, 220, 220))
    pal.setColor(QPalette.Base, QColor(30, 30, 30))
    pal.setColor(QPalette.AlternateBase, QColor(45, 45, 45))
    pal.setColor(QPalette.Text, QColor(220, 220, 220))
    pal.setColor(QPalette.Button, QColor(45, 45, 45))
    pal.setColor(QPalette.ButtonText, QColor(220, 220, 220))
    pal.setColor(QPalette.Highlight, QColor(77, 163, 255))
    pal.setColor(QPalette.HighlightedText, QColor(255, 255, 255))
    app.setPalette(pal)

# ---------- MainWindow ----------
class MainWindow(QMainWindow):
    def __init__(self):
        super().__init__()
        self.setWindowTitle("Flash Layout Tool")
        self.resize(1100, 700)
        self.setStatusBar(QStatusBar())

        w = QWidget(); root = QVBoxLayout(w)

        # верх: параметры планирования
        grp_plan = QGroupBox("Планирование")
        layp = QHBoxLayout(grp_plan)
        self.ed_capacity = QLineEdit(hex(DEFAULT_CAPACITY)); self.ed_capacity.setMaximumWidth(120)
        self.chk_prop = QCheckBox("Пропорционально")
        self.chk_tolerant = QCheckBox("Обрезать при нехватке")
        self.btn_add = QPushButton("Добавить образы…")
        self.btn_plan = QPushButton("Разложить")
        layp.addWidget(QLabel("Флеш:")); layp.addWidget(self.ed_capacity)
        for b in (self.chk_prop, self.chk_tolerant, self.btn_add, self.btn_plan):
            layp.addWidget(b)

        # действия с таблицей
        grp_actions = QGroupBox("Таблица")
        laya = QHBoxLayout(grp_actions)
        self.btn_open = QPushButton("Открыть таблицу/образ…")
        self.btn_save = QPushButton("Сохранить .bin…")
        self.btn_flash = QPushButton("Записать в симулятор (DEMO)")
        for b in (self.btn_open, self.btn_save, self.btn_flash):
            laya.addWidget(b)

        # таблица разделов
        self.table = QTableView()
        self.model = LayoutTableModel(Layout(capacity=DEFAULT_CAPACITY, regions=list(catalog())))
        self.table.setModel(self.model)
        self.table.setFont(QFontDatabase.systemFont(QFontDatabase.FixedFont))
        self.table.horizontalHeader().setSectionResizeMode(QHeaderView.ResizeToContents)
        self.table.setAlternatingRowColors(True)

        self.log = QTextEdit(); self.log.setReadOnly(True); self.log.setMaximumHeight(150)

        root.addWidget(grp_plan)
        root.addWidget(grp_actions)
        root.addWidget(self.table, 1)
        root.addWidget(self.log)
        self.setCentralWidget(w)

        self.btn_add.clicked.connect(self._add_images)
        self.btn_plan.clicked.connect(self._do_plan)
        self.btn_open.clicked.connect(self._open_table)
        self.btn_save.clicked.connect(self._save_table)
        self.btn_flash.clicked.connect(self._write_to_sim)

        # state
        self.images: list[ImageRequest] = []

    # ---------- utils ----------
    def _log(self, html: str):
        self.log.append(html)
        self.statusBar().showMessage(html, 3000)

    def _capacity(self) -> int:
        return int(self.ed_capacity.text().strip(), 0)

    def _show(self, layout: Layout):
        self.model.load_layout(layout)
        st = statistics(layout)
        self._log(f"Разделов: {st['count']}, занято {human_size(st['used'])} ({st['utilization']:.1f}%)")
        if layout.unplaced:
            self._log(f"<b style='color:#d7ba7d'>Не размещены:</b> {', '.join(layout.unplaced)}")

    # ---------- actions ----------
    def _add_images(self):
        paths, _ = QFileDialog.getOpenFileNames(self, "Образы прошивок", "", "BIN (*.bin)")
        for p in paths:
            p = Path(p)
            self.images.append(ImageRequest(p.stem, p.stat().st_size))
            self._log(f"Образ: <b>{p.stem}</b> ({human_size(p.stat().st_size)})")

    def _do_plan(self):
        if not self.images:
            QMessageBox.warning(self, "Нет образов", "Сначала добавь образы."); return
        planner = plan_proportional if self.chk_prop.isChecked() else plan_fixed
        try:
            layout = planner(self._capacity(), catalog(), self.images,
                             tolerant=self.chk_tolerant.isChecked())
            validate(layout)
        except (PartitionError, ValueError) as e:
            QMessageBox.critical(self, "Планирование", str(e)); return
        self._show(layout)

    def _open_table(self):
        p, _ = QFileDialog.getOpenFileName(self, "Таблица или образ флеша", "logs", "BIN (*.bin)")
        if not p: return
        data = Path(p).read_bytes()
        try:
            if len(data) > TABLE_SIZE:
                layout = read_table(MemoryDevice(len(data), bytearray(data)), len(data), PARTITION_TABLE_OFFSET)
            else:
                layout = import_table(data, self._capacity())
        except PartitionError as e:
            QMessageBox.critical(self, "Чтение таблицы", str(e)); return
        self._log(f"Открыт файл: <b>{p}</b>")
        self._show(layout)

    def _save_table(self):
        p, _ = QFileDialog.getSaveFileName(self, "Сохранить таблицу", "logs/partitions.bin", "BIN (*.bin)")
        if not p: return
        try:
            Path(p).write_bytes(serialize(self.model.layout()))
        except PartitionError as e:
            QMessageBox.critical(self, "Сохранение", str(e)); return
        self._log(f"Сохранено: <b>{p}</b>")

    def _write_to_sim(self):
        try:
            result = write_table(SimBackend(DEFAULT_IMAGE), self.model.layout())
        except PartitionError as e:
            QMessageBox.critical(self, "Запись таблицы", str(e)); return
        self._log(f"<b>Записано:</b> {result['bytes']} байт по 0x{result['offset']:08X}")

# ---------- entry ----------
def main():
    app = QApplication(sys.argv)
    setup_theme(app)
    win = MainWindow()
    win.show()
    sys.exit(app.exec())

if __name__ == "__main__":
    main()
