# gui/layout_model.py
from __future__ import annotations
from PySide6.QtCore import QAbstractTableModel, Qt, QModelIndex

from ..partition.model import Layout
from ..partition.report import layout_rows

COLUMNS = ("Имя", "Вид", "T/S", "Offset", "Размер", "Конец", "Флаги", "Образ")

class LayoutTableModel(QAbstractTableModel):
    """
    Табличная модель разметки: одна строка на раздел.
    Только чтение; OTA-слоты и обрезанные слоты подсвечиваются.
    """
    def __init__(self, layout: Layout | None = None):
        super().__init__()
        self._layout = layout if layout is not None else Layout(capacity=0)
        self._rows = layout_rows(self._layout)

    # ---------- Публичный API ----------
    def load_layout(self, layout: Layout):
        self.beginResetModel()
        self._layout = layout
        self._rows = layout_rows(layout)
        self.endResetModel()

    def layout(self) -> Layout:
        return self._layout

    # ---------- Qt model ----------
    def rowCount(self, parent=QModelIndex()) -> int:
        if parent.isValid(): return 0
        return len(self._rows)

    def columnCount(self, parent=QModelIndex()) -> int:
        return len(COLUMNS)

    def data(self, index, role=Qt.DisplayRole):
        if not index.isValid(): return None
        r, c = index.row(), index.column()
        if r >= len(self._rows): return None

        if role == Qt.DisplayRole:
            return self._rows[r][c]

        if role == Qt.TextAlignmentRole and c >= 3:
            return Qt.AlignRight | Qt.AlignVCenter

        if role == Qt.BackgroundRole:
            region = self._layout[r]
            from PySide6.QtGui import QBrush, QColor
            if region.truncated:
                return QBrush(QColor(255, 210, 160))  # обрезанный слот
            if region.is_app_slot:
                return QBrush(QColor(200, 230, 255))  # OTA-слот

        return None

    def headerData(self, section, orientation, role=Qt.DisplayRole):
        if role != Qt.DisplayRole: return None
        if orientation == Qt.Horizontal:
            return COLUMNS[section] if section < len(COLUMNS) else None
        return str(section)

    def flags(self, index):
        if not index.isValid(): return Qt.NoItemFlags
        return Qt.ItemIsEnabled | Qt.ItemIsSelectable
