"""图表规范契约：图表、元素、映射、Scale 与约束。

规范树是可持久化的“意图”描述，所有节点都只由纯数据构成，
``model_dump(mode="json")`` 后即可落盘并通过 ``model_validate`` 还原。
"""

from __future__ import annotations

from typing import Annotated, Any, Dict, List, Literal, Optional, Union
from uuid import uuid4

from pydantic import ConfigDict, Field, model_validator

from apps.chart_engine.contracts.dataset import DataKind, DataType
from apps.chart_engine.contracts.metadata import SCHEMA_VERSION, ContractModel

StrengthName = Literal["hard", "strong", "medium", "weak", "weaker"]
OutputType = Literal["number", "color", "boolean"]


def unique_id() -> str:
    """生成规范节点的唯一标识。"""

    return uuid4().hex[:12]


class ValueMapping(ContractModel):
    """直接取值映射。"""

    model_config = ConfigDict(extra="forbid")

    @classmethod
    def schema_name(cls) -> str:
        """返回取值映射的 Schema 名称。"""

        return "value_mapping"

    type: Literal["value"] = "value"
    value: Any = Field(description="写入属性的常量值。")


class ScaleMapping(ContractModel):
    """经由 Scale 的数据映射。"""

    model_config = ConfigDict(extra="forbid")

    @classmethod
    def schema_name(cls) -> str:
        """返回 Scale 映射的 Schema 名称。"""

        return "scale_mapping"

    type: Literal["scale"] = "scale"
    table: str = Field(description="数据来源表。", min_length=1)
    expression: str = Field(description="对分组求值的表达式。", min_length=1)
    value_type: DataType = Field(description="表达式结果的数据类型。")
    scale: Optional[str] = Field(
        default=None,
        description="引用的 Scale 标识，为空时直接使用表达式结果。",
    )


class TextMapping(ContractModel):
    """文本模板映射。"""

    model_config = ConfigDict(extra="forbid")

    @classmethod
    def schema_name(cls) -> str:
        """返回文本映射的 Schema 名称。"""

        return "text_mapping"

    type: Literal["text"] = "text"
    table: str = Field(description="数据来源表。", min_length=1)
    text_expression: str = Field(description="形如 ${expr}{format} 的文本模板。")


class SnapMapping(ContractModel):
    """相对其他元素属性的吸附映射，应用时转换为 snap 约束。"""

    model_config = ConfigDict(extra="forbid")

    @classmethod
    def schema_name(cls) -> str:
        """返回吸附映射的 Schema 名称。"""

        return "snap_mapping"

    type: Literal["_element"] = "_element"
    element: str = Field(description="目标元素标识。", min_length=1)
    attribute: str = Field(description="目标属性名。", min_length=1)


Mapping = Annotated[
    Union[ValueMapping, ScaleMapping, TextMapping, SnapMapping],
    Field(discriminator="type"),
]
Mappings = Dict[str, Mapping]


class SnapAttributes(ContractModel):
    """snap 约束参数：element.attribute = target_element.target_attribute + gap。"""

    model_config = ConfigDict(extra="forbid")

    @classmethod
    def schema_name(cls) -> str:
        """返回 snap 参数的 Schema 名称。"""

        return "snap_attributes"

    element: str = Field(description="被约束元素。", min_length=1)
    attribute: str = Field(description="被约束属性。", min_length=1)
    target_element: str = Field(description="参照元素。", min_length=1)
    target_attribute: str = Field(description="参照属性。", min_length=1)
    gap: float = Field(default=0.0, description="两者之间的固定间距。")


class Constraint(ContractModel):
    """规范中累积的约束条目。"""

    model_config = ConfigDict(extra="forbid")

    @classmethod
    def schema_name(cls) -> str:
        """返回约束的 Schema 名称。"""

        return "constraint"

    type: Literal["snap"] = "snap"
    attributes: SnapAttributes = Field(description="约束参数。")
    strength: StrengthName = Field(default="hard", description="约束强度层级。")

    def references(self, element_id: str) -> bool:
        """判断约束是否引用了给定元素。"""

        return element_id in {self.attributes.element, self.attributes.target_element}


class GroupBy(ContractModel):
    """绘图区的分组规则，每个分组生成一个 glyph 实例。"""

    model_config = ConfigDict(extra="forbid")

    @classmethod
    def schema_name(cls) -> str:
        """返回分组规则的 Schema 名称。"""

        return "group_by"

    expression: str = Field(description="计算分组键的行表达式。", min_length=1)


class CategoryFilter(ContractModel):
    """按类别取值开关过滤。"""

    model_config = ConfigDict(extra="forbid")

    @classmethod
    def schema_name(cls) -> str:
        """返回类别过滤的 Schema 名称。"""

        return "category_filter"

    expression: str = Field(description="计算类别的行表达式。", min_length=1)
    values: Dict[str, bool] = Field(
        default_factory=dict,
        description="类别到是否保留的映射，未列出的类别视为保留。",
    )


class Filter(ContractModel):
    """绘图区的数据过滤条件。"""

    model_config = ConfigDict(extra="forbid")

    @classmethod
    def schema_name(cls) -> str:
        """返回过滤条件的 Schema 名称。"""

        return "filter"

    expression: Optional[str] = Field(default=None, description="返回布尔值的行表达式。")
    categories: Optional[CategoryFilter] = Field(default=None, description="类别开关过滤。")

    @model_validator(mode="after")
    def ensure_condition(self) -> "Filter":
        """过滤条件必须且只能提供一种形式。"""

        if (self.expression is None) == (self.categories is None):
            raise ValueError("filter 需要且仅需要 expression 或 categories 之一。")
        return self


class Ordering(ContractModel):
    """glyph 实例的排序规则。"""

    model_config = ConfigDict(extra="forbid")

    @classmethod
    def schema_name(cls) -> str:
        """返回排序规则的 Schema 名称。"""

        return "ordering"

    expression: str = Field(description="对分组求值的排序表达式。", min_length=1)
    direction: Literal["ascending", "descending"] = Field(default="ascending")


class AxisDataBinding(ContractModel):
    """绘图区坐标轴的数据绑定。"""

    model_config = ConfigDict(extra="forbid")

    @classmethod
    def schema_name(cls) -> str:
        """返回坐标轴绑定的 Schema 名称。"""

        return "axis_data_binding"

    type: Literal["default", "categorical", "numerical"] = Field(description="绑定类型。")
    expression: Optional[str] = Field(default=None, description="对分组求值的表达式。")
    value_type: Optional[DataType] = Field(default=None)
    categories: Optional[List[str]] = Field(default=None, description="类别轴的类别顺序。")
    domain_min: Optional[float] = Field(default=None)
    domain_max: Optional[float] = Field(default=None)
    numerical_mode: Optional[Literal["linear", "temporal"]] = Field(default=None)
    gap_ratio: float = Field(default=0.1, ge=0.0, le=1.0)
    visible: bool = Field(default=True)
    side: Literal["default", "opposite"] = Field(default="default")
    style: Dict[str, Any] = Field(default_factory=dict)


class ChartElement(ContractModel):
    """图表元素（标记、图例、连线等）以及 glyph 内的标记。"""

    model_config = ConfigDict(extra="forbid")

    @classmethod
    def schema_name(cls) -> str:
        """返回图表元素的 Schema 名称。"""

        return "chart_element"

    id: str = Field(default_factory=unique_id, min_length=1)
    class_id: str = Field(description="元素类标识，例如 mark.rect。", min_length=1)
    mappings: Mappings = Field(default_factory=dict)
    properties: Dict[str, Any] = Field(default_factory=dict)


class PlotSegment(ChartElement):
    """绘图区：按数据分组复制 glyph 的图表元素。"""

    model_config = ConfigDict(extra="forbid")

    @classmethod
    def schema_name(cls) -> str:
        """返回绘图区的 Schema 名称。"""

        return "plot_segment"

    glyph: str = Field(description="复制的 glyph 标识。", min_length=1)
    table: str = Field(description="数据来源表。", min_length=1)
    filter: Optional[Filter] = None
    group_by: Optional[GroupBy] = None
    order: Optional[Ordering] = None


class Glyph(ContractModel):
    """glyph 模板：由若干标记组成，按数据分组复制。"""

    model_config = ConfigDict(extra="forbid")

    @classmethod
    def schema_name(cls) -> str:
        """返回 glyph 的 Schema 名称。"""

        return "glyph"

    id: str = Field(default_factory=unique_id, min_length=1)
    class_id: str = Field(default="glyph.rectangle", min_length=1)
    table: str = Field(description="glyph 绑定的数据表。", min_length=1)
    marks: List[ChartElement] = Field(default_factory=list)
    mappings: Mappings = Field(default_factory=dict)
    properties: Dict[str, Any] = Field(default_factory=dict)
    constraints: List[Constraint] = Field(default_factory=list)


class Scale(ContractModel):
    """可复用的 Scale 对象。"""

    model_config = ConfigDict(extra="forbid")

    @classmethod
    def schema_name(cls) -> str:
        """返回 Scale 的 Schema 名称。"""

        return "scale"

    id: str = Field(default_factory=unique_id, min_length=1)
    class_id: str = Field(description="Scale 类标识，例如 scale.linear<number,number>。")
    table: Optional[str] = Field(default=None, description="推断 Scale 时使用的数据表。")
    data_kind: DataKind = Field(description="输入数据种类。")
    output_type: OutputType = Field(description="输出属性类型族。")
    expressions: List[str] = Field(default_factory=list, description="参与推断的表达式。")
    properties: Dict[str, Any] = Field(default_factory=dict)
    mappings: Mappings = Field(default_factory=dict)


class Chart(ContractModel):
    """图表规范根节点。"""

    model_config = ConfigDict(extra="forbid")

    @classmethod
    def schema_name(cls) -> str:
        """返回图表规范的 Schema 名称。"""

        return "chart"

    id: str = Field(default_factory=unique_id, min_length=1)
    class_id: str = Field(default="chart.rectangle", min_length=1)
    schema_version: str = Field(default=SCHEMA_VERSION)
    mappings: Mappings = Field(default_factory=dict)
    properties: Dict[str, Any] = Field(default_factory=dict)
    glyphs: List[Glyph] = Field(default_factory=list)
    elements: List[Union[PlotSegment, ChartElement]] = Field(default_factory=list)
    scales: List[Scale] = Field(default_factory=list)
    constraints: List[Constraint] = Field(default_factory=list)

    @model_validator(mode="after")
    def ensure_unique_ids(self) -> "Chart":
        """确保规范树内所有节点标识唯一。"""

        seen = {self.id}
        identifiers = [element.id for element in self.elements]
        identifiers.extend(scale.id for scale in self.scales)
        for glyph in self.glyphs:
            identifiers.append(glyph.id)
            identifiers.extend(mark.id for mark in glyph.marks)
        for identifier in identifiers:
            if identifier in seen:
                raise ValueError(f"规范树中存在重复标识 {identifier}。")
            seen.add(identifier)
        return self
