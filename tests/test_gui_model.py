import pytest

pytest.importorskip("PySide6")

from PySide6.QtCore import QCoreApplication, Qt  # noqa: E402

from flash_tool.gui.layout_model import COLUMNS, LayoutTableModel  # noqa: E402
from flash_tool.partition.model import Layout  # noqa: E402
from flash_tool.partition.planner import plan_fixed  # noqa: E402


@pytest.fixture(scope="module", autouse=True)
def qt_app():
    app = QCoreApplication.instance() or QCoreApplication([])
    yield app


def test_model_shape(capacity, system, images):
    layout = plan_fixed(capacity, system, images)
    model = LayoutTableModel(layout)
    assert model.rowCount() == len(layout)
    assert model.columnCount() == len(COLUMNS)
    assert model.data(model.index(0, 0)) == "bootloader"
    assert model.data(model.index(len(layout) - 1, 7)) == "snake"
    assert model.headerData(0, Qt.Horizontal) == "Имя"


def test_model_reload(capacity, system, images):
    model = LayoutTableModel()
    assert model.rowCount() == 0
    layout = plan_fixed(capacity, system, images)
    model.load_layout(layout)
    assert model.rowCount() == len(layout)
    assert model.layout() is layout


def test_model_is_read_only(capacity, system, images):
    model = LayoutTableModel(plan_fixed(capacity, system, images))
    assert not model.flags(model.index(0, 0)) & Qt.ItemIsEditable


def test_empty_layout_keeps_capacity():
    empty = Layout(capacity=0x400000)
    model = LayoutTableModel(empty)
    assert model.layout() is empty
    assert model.rowCount() == 0
