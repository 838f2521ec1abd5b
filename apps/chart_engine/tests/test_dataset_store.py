"""数据集 Store 的分组、过滤与 DataFrame 转换测试。"""

from __future__ import annotations

import pandas as pd
import pytest

from apps.chart_engine.contracts.dataset import DataKind, DataType
from apps.chart_engine.contracts.specification import CategoryFilter, Filter, GroupBy, Ordering
from apps.chart_engine.errors import UnknownTableError
from apps.chart_engine.stores import group_key, table_from_dataframe


def test_row_groups_without_group_by_keep_one_row_each(dataset_store) -> None:
    """没有分组规则时每行单独成组，键为行号。"""

    groups = dataset_store.get_row_groups("sales")
    assert [group.key for group in groups] == ["0", "1", "2", "3"]
    assert [group.row_indices for group in groups] == [(0,), (1,), (2,), (3,)]


def test_row_groups_follow_first_occurrence(dataset_store) -> None:
    """分组顺序为首次出现顺序。"""

    groups = dataset_store.get_row_groups("sales", GroupBy(expression="category"))
    assert [(group.key, group.row_indices) for group in groups] == [("b", (0, 2)), ("a", (1,)), ("c", (3,))]


def test_filters_by_expression_and_categories(dataset_store) -> None:
    """表达式过滤与类别开关过滤。"""

    assert dataset_store.filter_rows("sales", Filter(expression="value > 2")) == [0, 2]
    category_filter = Filter(categories=CategoryFilter(expression="region", values={"west": False}))
    assert dataset_store.filter_rows("sales", category_filter) == [0, 3]


def test_ordering_sorts_groups_and_keeps_nulls_last(dataset_store) -> None:
    """排序按分组表达式取值，降序时最大值在前。"""

    groups = dataset_store.get_row_groups(
        "sales",
        GroupBy(expression="category"),
        order=Ordering(expression="sum(value)", direction="descending"),
    )
    assert [group.key for group in groups] == ["b", "c", "a"]


def test_grouped_values_aggregate_per_group(dataset_store) -> None:
    """分组取值每个分组一个结果。"""

    values = dataset_store.get_grouped_values("sales", GroupBy(expression="region"), "sum(value)")
    assert values == [5, 6]
    assert dataset_store.get_grouped_values("sales", None, "value") == [3, -1, 7, 2]


def test_unknown_table_raises(dataset_store) -> None:
    """未知数据表抛出 UnknownTableError，同时也是 KeyError。"""

    with pytest.raises(UnknownTableError):
        dataset_store.get_table("missing")
    with pytest.raises(KeyError):
        dataset_store.get_grouped_values("missing", None, "value")


def test_group_key_normalization() -> None:
    """整数值浮点与布尔值的键保持稳定。"""

    assert group_key(2.0) == "2"
    assert group_key(True) == "true"
    assert group_key(None) == "null"


def test_table_from_dataframe_infers_types() -> None:
    """DataFrame 转换时推断字段类型，缺失值变为 None，日期转为毫秒。"""

    frame = pd.DataFrame(
        {
            "name": ["x", "y"],
            "amount": [1.5, None],
            "when": pd.to_datetime(["2024-01-01", "2024-01-02"]),
        },
    )
    table = table_from_dataframe("frame", frame)
    kinds = {column.name: (column.type, column.metadata.kind) for column in table.columns}
    assert kinds["name"] == (DataType.STRING, DataKind.CATEGORICAL)
    assert kinds["amount"] == (DataType.NUMBER, DataKind.NUMERICAL)
    assert kinds["when"] == (DataType.DATE, DataKind.TEMPORAL)
    assert table.rows[1]["amount"] is None
    assert table.rows[0]["when"] == 1704067200000.0
