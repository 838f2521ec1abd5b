"""测试前置配置与共享夹具。"""

from __future__ import annotations

import sys
from pathlib import Path

import pytest


def pytest_configure() -> None:
    """确保仓库根目录位于 Python 模块搜索路径。"""

    root = Path(__file__).resolve().parents[3]
    if str(root) not in sys.path:
        sys.path.insert(0, str(root))


SALES_ROWS = [
    {"category": "b", "region": "east", "value": 3, "score": None, "day": "2024-01-03"},
    {"category": "a", "region": "west", "value": -1, "score": None, "day": "2024-01-01"},
    {"category": "b", "region": "west", "value": 7, "score": None, "day": "2024-01-04"},
    {"category": "c", "region": "east", "value": 2, "score": None, "day": "2024-01-02"},
]


@pytest.fixture()
def dataset():
    """四行销售数据，score 全部缺失。"""

    from apps.chart_engine.contracts.dataset import Column, ColumnMetadata, Dataset, DataKind, DataType, Table

    columns = [
        Column(name="category", type=DataType.STRING, metadata=ColumnMetadata(kind=DataKind.CATEGORICAL)),
        Column(name="region", type=DataType.STRING, metadata=ColumnMetadata(kind=DataKind.CATEGORICAL)),
        Column(name="value", type=DataType.NUMBER, metadata=ColumnMetadata(kind=DataKind.NUMERICAL, format=".1f")),
        Column(name="score", type=DataType.NUMBER, metadata=ColumnMetadata(kind=DataKind.NUMERICAL)),
        Column(name="day", type=DataType.DATE, metadata=ColumnMetadata(kind=DataKind.TEMPORAL)),
    ]
    table = Table(name="sales", columns=columns, rows=[dict(row) for row in SALES_ROWS])
    return Dataset(name="demo", tables=[table])


@pytest.fixture()
def dataset_store(dataset):
    from apps.chart_engine.stores import DatasetStore

    return DatasetStore(dataset=dataset)


@pytest.fixture()
def empty_store(dataset):
    """只有图表根节点的编辑会话。"""

    from apps.chart_engine.contracts.specification import Chart
    from apps.chart_engine.services import ChartManager, ChartStore
    from apps.chart_engine.stores import DatasetStore

    manager = ChartManager(Chart(), DatasetStore(dataset=dataset))
    store = ChartStore(manager)
    store.solve_constraints_and_update_graphics()
    store.events.flush()
    return store


@pytest.fixture()
def bar_store(empty_store):
    """带一个矩形 glyph（含一个 rect 标记）与一个直角坐标绘图区的会话。"""

    from apps.chart_engine.contracts.actions import AddChartElement, AddGlyph, AddMarkToGlyph

    empty_store.dispatch(AddGlyph(table="sales"))
    glyph_id = empty_store.current_glyph
    empty_store.dispatch(AddMarkToGlyph(glyph=glyph_id, class_id="mark.rect"))
    empty_store.dispatch(AddChartElement(class_id="plot-segment.cartesian"))
    return empty_store

