"""表达式求值上下文：单行上下文与分组上下文。"""

from __future__ import annotations

from typing import Any, Dict, FrozenSet, Iterator, List, Sequence

from apps.chart_engine.errors import UnknownColumnError


class RowContext:
    """对单行求值的上下文。"""

    def __init__(self, *, table_name: str, columns: FrozenSet[str], row: Dict[str, Any]) -> None:
        self.table_name = table_name
        self.columns = columns
        self.row = row

    def get_value(self, name: str) -> Any:
        """读取字段值，字段未声明时抛出 UnknownColumnError。"""

        if name not in self.columns:
            message = f"数据表 {self.table_name} 中不存在字段 {name}。"
            raise UnknownColumnError(message)
        return self.row.get(name)

    def row_contexts(self) -> Iterator["RowContext"]:
        """聚合函数在单行上下文中只看到当前行。"""

        yield self


class GroupContext:
    """对一组行求值的上下文。

    普通字段引用读取分组首行，聚合函数通过 :meth:`row_contexts`
    逐行求值得到列向量。空分组的字段引用返回 None。
    """

    def __init__(self, *, table_name: str, columns: FrozenSet[str], rows: Sequence[Dict[str, Any]]) -> None:
        self.table_name = table_name
        self.columns = columns
        self.rows: List[Dict[str, Any]] = list(rows)

    def get_value(self, name: str) -> Any:
        """读取分组首行的字段值。"""

        if name not in self.columns:
            message = f"数据表 {self.table_name} 中不存在字段 {name}。"
            raise UnknownColumnError(message)
        if not self.rows:
            return None
        return self.rows[0].get(name)

    def row_contexts(self) -> Iterator[RowContext]:
        """逐行生成单行上下文。"""

        for row in self.rows:
            yield RowContext(table_name=self.table_name, columns=self.columns, row=row)
