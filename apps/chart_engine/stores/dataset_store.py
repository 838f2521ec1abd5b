"""数据集只读访问 Store：取表、分组、过滤与分组表达式求值。"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from typing import Any, Dict, FrozenSet, List, Optional, Sequence, Tuple

from apps.chart_engine.contracts.dataset import Column, ColumnMetadata, Dataset, DataKind, DataType, Table
from apps.chart_engine.contracts.specification import Filter, GroupBy, Ordering
from apps.chart_engine.errors import ChartReferenceError, UnknownTableError
from apps.chart_engine.expression import GroupContext, RowContext, parse

_PD_MODULE: Any | None = None

LOGGER = logging.getLogger(__name__)


def _get_pandas() -> Any:
    """延迟加载 pandas，只有 DataFrame 转换才需要。"""

    global _PD_MODULE
    if _PD_MODULE is None:
        import pandas as pd  # noqa: WPS433 - 延迟导入

        _PD_MODULE = pd
    return _PD_MODULE


def group_key(value: Any) -> str:
    """将分组表达式的取值规范化为字符串键。"""

    if value is None:
        return "null"
    if isinstance(value, bool):
        return "true" if value else "false"
    if isinstance(value, float) and value.is_integer():
        return str(int(value))
    return str(value)


@dataclass(frozen=True)
class RowGroup:
    """一个数据分组：分组键与按原始顺序排列的行号。"""

    key: str
    row_indices: Tuple[int, ...]


@dataclass
class DatasetStore:
    """持有当前数据集并提供只读查询。

    所有查询都不修改行内容，同一输入多次调用返回顺序一致的结果。
    """

    dataset: Optional[Dataset] = None
    _tables: Dict[str, Table] = field(default_factory=dict)
    _columns: Dict[str, FrozenSet[str]] = field(default_factory=dict)

    def __post_init__(self) -> None:
        if self.dataset is not None:
            self.save(self.dataset)

    def save(self, dataset: Dataset) -> None:
        """替换当前数据集并重建索引。

        Parameters
        ----------
        dataset: Dataset
            新的数据集。
        """

        self.dataset = dataset
        self._tables = {table.name: table for table in dataset.tables}
        self._columns = {
            table.name: frozenset(column.name for column in table.columns) for table in dataset.tables
        }
        LOGGER.debug(
            "Dataset saved",
            extra={"dataset": dataset.name, "table_count": len(dataset.tables)},
        )

    def require(self) -> Dataset:
        """返回当前数据集，尚未加载时立即失败。"""

        if self.dataset is None:
            raise ChartReferenceError("尚未加载数据集。")
        return self.dataset

    def get_table(self, name: str) -> Table:
        """按名称取表。

        Raises
        ------
        UnknownTableError
            数据集中不存在该表。
        """

        table = self._tables.get(name)
        if table is None:
            message = f"数据集中不存在数据表 {name}。"
            raise UnknownTableError(message)
        return table

    def row_context(self, table_name: str, row_index: int) -> RowContext:
        """构造单行求值上下文。"""

        table = self.get_table(table_name)
        return RowContext(table_name=table_name, columns=self._columns[table_name], row=table.rows[row_index])

    def group_context(self, table_name: str, row_indices: Sequence[int]) -> GroupContext:
        """构造分组求值上下文。"""

        table = self.get_table(table_name)
        rows = [table.rows[index] for index in row_indices]
        return GroupContext(table_name=table_name, columns=self._columns[table_name], rows=rows)

    def filter_rows(self, table_name: str, filter: Optional[Filter]) -> List[int]:
        """返回通过过滤条件的行号。"""

        table = self.get_table(table_name)
        indices = list(range(len(table.rows)))
        if filter is None:
            return indices
        if filter.expression is not None:
            expression = parse(filter.expression)
            return [
                index for index in indices if expression.evaluate(self.row_context(table_name, index)) is True
            ]
        categories = filter.categories
        expression = parse(categories.expression)
        kept: List[int] = []
        for index in indices:
            key = group_key(expression.evaluate(self.row_context(table_name, index)))
            if categories.values.get(key, True):
                kept.append(index)
        return kept

    def get_row_groups(
        self,
        table_name: str,
        group_by: Optional[GroupBy] = None,
        filter: Optional[Filter] = None,
        order: Optional[Ordering] = None,
    ) -> List[RowGroup]:
        """按过滤、分组与排序规则切分数据表。

        Parameters
        ----------
        table_name: str
            数据表名称。
        group_by: Optional[GroupBy]
            分组规则，为空时每行单独成组，键为行号。
        filter: Optional[Filter]
            过滤条件。
        order: Optional[Ordering]
            分组排序规则，为空时保持首次出现顺序。

        Returns
        -------
        List[RowGroup]
            顺序稳定的分组列表。
        """

        indices = self.filter_rows(table_name, filter)
        if group_by is None:
            groups = [RowGroup(key=str(index), row_indices=(index,)) for index in indices]
        else:
            expression = parse(group_by.expression)
            buckets: Dict[str, List[int]] = {}
            for index in indices:
                key = group_key(expression.evaluate(self.row_context(table_name, index)))
                buckets.setdefault(key, []).append(index)
            groups = [RowGroup(key=key, row_indices=tuple(rows)) for key, rows in buckets.items()]
        if order is not None:
            groups = self._order_groups(table_name, groups, order)
        return groups

    def _order_groups(self, table_name: str, groups: List[RowGroup], order: Ordering) -> List[RowGroup]:
        expression = parse(order.expression)
        keyed = [(expression.evaluate(self.group_context(table_name, group.row_indices)), group) for group in groups]
        present = [(value, group) for value, group in keyed if value is not None]
        missing = [group for value, group in keyed if value is None]
        present.sort(key=lambda item: item[0], reverse=order.direction == "descending")
        return [group for _, group in present] + missing

    def get_grouped_values(
        self,
        table_name: str,
        group_by: Optional[GroupBy],
        expression: str,
        *,
        filter: Optional[Filter] = None,
    ) -> List[Any]:
        """对每个分组求值表达式。

        没有分组规则时每行一个取值，否则每个分组一个取值，
        顺序为分组首次出现的顺序。

        Raises
        ------
        UnknownTableError
            数据表不存在。
        UnknownColumnError
            表达式引用了不存在的字段。
        ExpressionError
            表达式无法解析或求值。
        """

        parsed = parse(expression)
        values: List[Any] = []
        for group in self.get_row_groups(table_name, group_by, filter):
            values.append(parsed.evaluate(self.group_context(table_name, group.row_indices)))
        return values


def _normalize_cell(value: Any, pd: Any) -> Any:
    """将 pandas/numpy 标量转换为可 JSON 序列化的 Python 取值。"""

    if value is None:
        return None
    if isinstance(value, pd.Timestamp):
        if pd.isna(value):
            return None
        if value.tzinfo is None:
            value = value.tz_localize("UTC")
        return value.value / 1_000_000
    try:
        if pd.isna(value):
            return None
    except (TypeError, ValueError):
        return value
    if hasattr(value, "item"):
        return value.item()
    return value


def _infer_series_type(series: Any) -> Tuple[DataType, DataKind]:
    """根据 Pandas dtype 推断字段类型与种类。"""

    pd = _get_pandas()
    dtype = series.dtype
    if pd.api.types.is_bool_dtype(dtype):
        return DataType.BOOLEAN, DataKind.CATEGORICAL
    if pd.api.types.is_datetime64_any_dtype(dtype):
        return DataType.DATE, DataKind.TEMPORAL
    if pd.api.types.is_numeric_dtype(dtype):
        return DataType.NUMBER, DataKind.NUMERICAL
    return DataType.STRING, DataKind.CATEGORICAL


def table_from_dataframe(name: str, frame: Any, *, display_name: Optional[str] = None) -> Table:
    """将 pandas DataFrame 转换为数据表契约。

    日期列转换为 UTC 毫秒时间戳，缺失值转换为 None。

    Parameters
    ----------
    name: str
        数据表名称。
    frame: pandas.DataFrame
        已在内存中的数据帧。
    display_name: Optional[str]
        展示名称。

    Returns
    -------
    Table
        通过校验的数据表。
    """

    pd = _get_pandas()
    columns: List[Column] = []
    for column_name in frame.columns:
        data_type, kind = _infer_series_type(frame[column_name])
        columns.append(
            Column(name=str(column_name), type=data_type, metadata=ColumnMetadata(kind=kind)),
        )
    rows: List[Dict[str, Any]] = []
    for record in frame.to_dict(orient="records"):
        rows.append({str(key): _normalize_cell(value, pd) for key, value in record.items()})
    LOGGER.debug(
        "DataFrame converted",
        extra={"table": name, "row_count": len(rows), "column_count": len(columns)},
    )
    return Table(name=name, display_name=display_name, columns=columns, rows=rows)
