"""数据集契约。

数据集由若干数据表组成，每张表是一组有序的行（字段名到取值的映射）
以及字段元数据。模型遵循以下约束：

* 字段必须显式声明数据类型（string/number/boolean/date）与数据种类
  （categorical/ordinal/numerical/temporal），引擎不做隐式推断。
* 字段名在同一张表内唯一，数据表名在同一数据集内唯一。
* 求解期间数据集只读，任何组件都不应修改行内容。
"""

from __future__ import annotations

from enum import Enum
from typing import Any, Dict, List, Literal, Optional

from pydantic import ConfigDict, Field, model_validator

from apps.chart_engine.contracts.metadata import ContractModel


class DataType(str, Enum):
    """字段的基础取值类型。"""

    STRING = "string"
    NUMBER = "number"
    BOOLEAN = "boolean"
    DATE = "date"


class DataKind(str, Enum):
    """字段的数据种类，决定 Scale 推断分支。"""

    CATEGORICAL = "categorical"
    ORDINAL = "ordinal"
    NUMERICAL = "numerical"
    TEMPORAL = "temporal"


OrderMode = Literal["alphabetically", "occurrence", "order"]


class ColumnMetadata(ContractModel):
    """字段元数据，描述种类、类别顺序与展示格式。"""

    model_config = ConfigDict(extra="forbid")

    @classmethod
    def schema_name(cls) -> str:
        """返回字段元数据的 Schema 名称。"""

        return "column_metadata"

    kind: DataKind = Field(description="字段的数据种类。")
    order: Optional[List[str]] = Field(
        default=None,
        description="显式的类别顺序，存在时优先于推断顺序。",
    )
    order_mode: Optional[OrderMode] = Field(
        default=None,
        description="未提供 order 时的类别排序方式。",
    )
    format: Optional[str] = Field(
        default=None,
        description="数值字段的默认展示格式，例如 .1f。",
    )


class Column(ContractModel):
    """数据表字段定义。"""

    model_config = ConfigDict(extra="forbid")

    @classmethod
    def schema_name(cls) -> str:
        """返回字段定义的 Schema 名称。"""

        return "column"

    name: str = Field(description="字段名称。", min_length=1)
    display_name: Optional[str] = Field(default=None, description="展示名称。")
    type: DataType = Field(description="字段的基础数据类型。")
    metadata: ColumnMetadata = Field(description="字段元数据。")

    @model_validator(mode="after")
    def validate_kind(self) -> "Column":
        """确保数据类型与数据种类相容。"""

        if self.metadata.kind == DataKind.TEMPORAL and self.type not in {DataType.DATE, DataType.NUMBER}:
            raise ValueError(f"字段 {self.name} 为时间种类，类型必须为 date 或 number。")
        if self.metadata.kind == DataKind.NUMERICAL and self.type != DataType.NUMBER:
            raise ValueError(f"字段 {self.name} 为数值种类，类型必须为 number。")
        return self


class Table(ContractModel):
    """数据表：字段定义与有序行集合。"""

    model_config = ConfigDict(extra="forbid")

    @classmethod
    def schema_name(cls) -> str:
        """返回数据表的 Schema 名称。"""

        return "table"

    name: str = Field(description="数据表名称。", min_length=1)
    display_name: Optional[str] = Field(default=None, description="展示名称。")
    columns: List[Column] = Field(default_factory=list, description="字段定义列表。")
    rows: List[Dict[str, Any]] = Field(default_factory=list, description="按原始顺序排列的行。")

    @model_validator(mode="after")
    def validate_columns(self) -> "Table":
        """确保字段名唯一。"""

        names = [column.name for column in self.columns]
        if len(names) != len(set(names)):
            raise ValueError(f"数据表 {self.name} 存在重复字段名。")
        return self

    def get_column(self, name: str) -> Optional[Column]:
        """按名称查找字段定义，不存在时返回 None。"""

        for column in self.columns:
            if column.name == name:
                return column
        return None


class Dataset(ContractModel):
    """数据集：命名的数据表集合。"""

    model_config = ConfigDict(extra="forbid")

    @classmethod
    def schema_name(cls) -> str:
        """返回数据集的 Schema 名称。"""

        return "dataset"

    name: str = Field(description="数据集名称。", min_length=1)
    tables: List[Table] = Field(default_factory=list, description="数据表列表。")

    @model_validator(mode="after")
    def validate_tables(self) -> "Dataset":
        """确保数据表名唯一。"""

        names = [table.name for table in self.tables]
        if len(names) != len(set(names)):
            raise ValueError("数据集中存在重复的数据表名称。")
        return self
