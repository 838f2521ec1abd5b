"""编辑动作契约。

每个动作都是一个以 ``action`` 字段区分的 Pydantic 模型，动作通过标识引用
规范节点，处理器在执行时解析引用，引用缺失视为空操作。
"""

from __future__ import annotations

from typing import Annotated, Any, Dict, List, Literal, Optional, Union

from pydantic import ConfigDict, Field, model_validator

from apps.chart_engine.contracts.dataset import ColumnMetadata, DataKind, DataType, OrderMode
from apps.chart_engine.contracts.metadata import ContractModel
from apps.chart_engine.contracts.specification import ChartElement, Filter, GroupBy, Mapping

AttributeType = Literal["number", "color", "boolean", "text", "string"]


class ScaleHints(ContractModel):
    """Scale 推断时的可选提示。"""

    model_config = ConfigDict(extra="forbid")

    @classmethod
    def schema_name(cls) -> str:
        """返回 Scale 提示的 Schema 名称。"""

        return "scale_hints"

    order_mode: Optional[OrderMode] = Field(default=None, description="类别排序方式。")
    order: Optional[List[str]] = Field(default=None, description="显式类别顺序。")
    range_min: Optional[float] = Field(default=None, description="数值输出的初始下界。")
    range_max: Optional[float] = Field(default=None, description="数值输出的初始上界。")


class MappingSeed(ContractModel):
    """新建元素时的属性初值与映射。"""

    model_config = ConfigDict(extra="forbid")

    @classmethod
    def schema_name(cls) -> str:
        """返回属性初值的 Schema 名称。"""

        return "mapping_seed"

    value: Optional[Any] = Field(default=None, description="写入状态的初值，作为 HARD 提示参与求解。")
    mapping: Optional[Mapping] = Field(default=None, description="写入规范的映射。")


class MapDataToChartElementAttribute(ContractModel):
    """将数据表达式映射到元素属性，必要时推断 Scale。"""

    model_config = ConfigDict(extra="forbid")

    @classmethod
    def schema_name(cls) -> str:
        return "map_data_to_chart_element_attribute"

    action: Literal["MapDataToChartElementAttribute"] = "MapDataToChartElementAttribute"
    element: str = Field(description="目标元素或标记标识。", min_length=1)
    attribute: str = Field(min_length=1)
    attribute_type: AttributeType
    table: str = Field(min_length=1)
    expression: str = Field(min_length=1)
    value_type: DataType
    value_kind: DataKind
    hints: Optional[ScaleHints] = None


class AddChartElement(ContractModel):
    """新建图表元素。"""

    model_config = ConfigDict(extra="forbid")

    @classmethod
    def schema_name(cls) -> str:
        return "add_chart_element"

    action: Literal["AddChartElement"] = "AddChartElement"
    class_id: str = Field(min_length=1)
    properties: Dict[str, Any] = Field(default_factory=dict)
    mappings: Dict[str, MappingSeed] = Field(default_factory=dict)
    glyph: Optional[str] = Field(default=None, description="绘图区复制的 glyph，缺省为首个 glyph。")
    table: Optional[str] = Field(default=None, description="绘图区数据表，缺省为 glyph 的数据表。")


class AddGlyph(ContractModel):
    """新建 glyph 模板。"""

    model_config = ConfigDict(extra="forbid")

    @classmethod
    def schema_name(cls) -> str:
        return "add_glyph"

    action: Literal["AddGlyph"] = "AddGlyph"
    table: str = Field(min_length=1)
    class_id: str = Field(default="glyph.rectangle", min_length=1)


class AddMarkToGlyph(ContractModel):
    """向 glyph 模板追加标记。"""

    model_config = ConfigDict(extra="forbid")

    @classmethod
    def schema_name(cls) -> str:
        return "add_mark_to_glyph"

    action: Literal["AddMarkToGlyph"] = "AddMarkToGlyph"
    glyph: str = Field(min_length=1)
    class_id: str = Field(min_length=1)
    properties: Dict[str, Any] = Field(default_factory=dict)
    mappings: Dict[str, Mapping] = Field(default_factory=dict)


class SetPlotSegmentFilter(ContractModel):
    """替换绘图区过滤条件。"""

    model_config = ConfigDict(extra="forbid")

    @classmethod
    def schema_name(cls) -> str:
        return "set_plot_segment_filter"

    action: Literal["SetPlotSegmentFilter"] = "SetPlotSegmentFilter"
    plot_segment: str = Field(min_length=1)
    filter: Optional[Filter] = None


class SetPlotSegmentGroupBy(ContractModel):
    """替换绘图区分组规则。"""

    model_config = ConfigDict(extra="forbid")

    @classmethod
    def schema_name(cls) -> str:
        return "set_plot_segment_group_by"

    action: Literal["SetPlotSegmentGroupBy"] = "SetPlotSegmentGroupBy"
    plot_segment: str = Field(min_length=1)
    group_by: Optional[GroupBy] = None


class UpdateChartElementAttribute(ContractModel):
    """直接修改元素属性值，移除该属性上的映射与吸附。"""

    model_config = ConfigDict(extra="forbid")

    @classmethod
    def schema_name(cls) -> str:
        return "update_chart_element_attribute"

    action: Literal["UpdateChartElementAttribute"] = "UpdateChartElementAttribute"
    element: str = Field(min_length=1)
    updates: Dict[str, Any] = Field(default_factory=dict)


class SetChartElementMapping(ContractModel):
    """设置或清除元素属性映射。"""

    model_config = ConfigDict(extra="forbid")

    @classmethod
    def schema_name(cls) -> str:
        return "set_chart_element_mapping"

    action: Literal["SetChartElementMapping"] = "SetChartElementMapping"
    element: str = Field(min_length=1)
    attribute: str = Field(min_length=1)
    mapping: Optional[Mapping] = None


class SnapChartElements(ContractModel):
    """将元素属性吸附到另一元素的属性上。"""

    model_config = ConfigDict(extra="forbid")

    @classmethod
    def schema_name(cls) -> str:
        return "snap_chart_elements"

    action: Literal["SnapChartElements"] = "SnapChartElements"
    element: str = Field(min_length=1)
    attribute: str = Field(min_length=1)
    target_element: str = Field(min_length=1)
    target_attribute: str = Field(min_length=1)
    gap: float = 0.0


class SetScaleAttribute(ContractModel):
    """设置或清除 Scale 属性映射。"""

    model_config = ConfigDict(extra="forbid")

    @classmethod
    def schema_name(cls) -> str:
        return "set_scale_attribute"

    action: Literal["SetScaleAttribute"] = "SetScaleAttribute"
    scale: str = Field(min_length=1)
    attribute: str = Field(min_length=1)
    mapping: Optional[Mapping] = None


class UpdateChartAttribute(ContractModel):
    """直接修改图表根节点属性值。"""

    model_config = ConfigDict(extra="forbid")

    @classmethod
    def schema_name(cls) -> str:
        return "update_chart_attribute"

    action: Literal["UpdateChartAttribute"] = "UpdateChartAttribute"
    updates: Dict[str, Any] = Field(default_factory=dict)


class BindDataToAxis(ContractModel):
    """将数据表达式绑定到绘图区或标记的坐标轴属性。"""

    model_config = ConfigDict(extra="forbid")

    @classmethod
    def schema_name(cls) -> str:
        return "bind_data_to_axis"

    action: Literal["BindDataToAxis"] = "BindDataToAxis"
    object: str = Field(description="绘图区或标记标识。", min_length=1)
    property: str = Field(min_length=1)
    append_to_property: Optional[str] = None
    table: str = Field(min_length=1)
    expression: str = Field(min_length=1)
    value_type: DataType
    metadata: ColumnMetadata


class SetChartAttribute(ContractModel):
    """设置或清除图表根节点映射。"""

    model_config = ConfigDict(extra="forbid")

    @classmethod
    def schema_name(cls) -> str:
        return "set_chart_attribute"

    action: Literal["SetChartAttribute"] = "SetChartAttribute"
    attribute: str = Field(min_length=1)
    mapping: Optional[Mapping] = None


class SetChartSize(ContractModel):
    """设置图表尺寸。"""

    model_config = ConfigDict(extra="forbid")

    @classmethod
    def schema_name(cls) -> str:
        return "set_chart_size"

    action: Literal["SetChartSize"] = "SetChartSize"
    width: float = Field(gt=0)
    height: float = Field(gt=0)


class SetObjectProperty(ContractModel):
    """修改任意规范节点的属性，可指定嵌套字段路径。"""

    model_config = ConfigDict(extra="forbid")

    @classmethod
    def schema_name(cls) -> str:
        return "set_object_property"

    action: Literal["SetObjectProperty"] = "SetObjectProperty"
    object: str = Field(min_length=1)
    property: str = Field(min_length=1)
    field: Optional[Union[str, List[str]]] = None
    value: Any = None
    no_update_state: bool = False
    no_compute_layout: bool = False


class ExtendPlotSegment(ContractModel):
    """扩展绘图区坐标系，必要时切换绘图区类。"""

    model_config = ConfigDict(extra="forbid")

    @classmethod
    def schema_name(cls) -> str:
        return "extend_plot_segment"

    action: Literal["ExtendPlotSegment"] = "ExtendPlotSegment"
    plot_segment: str = Field(min_length=1)
    extension: Literal["cartesian-x", "cartesian-y", "polar", "curve"]


class ReorderGlyphMark(ContractModel):
    """调整 glyph 内标记顺序。"""

    model_config = ConfigDict(extra="forbid")

    @classmethod
    def schema_name(cls) -> str:
        return "reorder_glyph_mark"

    action: Literal["ReorderGlyphMark"] = "ReorderGlyphMark"
    glyph: str = Field(min_length=1)
    from_index: int = Field(ge=0)
    to_index: int = Field(ge=0)


class ToggleLegendForScale(ContractModel):
    """为 Scale 添加或移除图例。"""

    model_config = ConfigDict(extra="forbid")

    @classmethod
    def schema_name(cls) -> str:
        return "toggle_legend_for_scale"

    action: Literal["ToggleLegendForScale"] = "ToggleLegendForScale"
    scale: str = Field(min_length=1)


class ReorderChartElement(ContractModel):
    """调整图表元素绘制顺序。"""

    model_config = ConfigDict(extra="forbid")

    @classmethod
    def schema_name(cls) -> str:
        return "reorder_chart_element"

    action: Literal["ReorderChartElement"] = "ReorderChartElement"
    from_index: int = Field(ge=0)
    to_index: int = Field(ge=0)


class AddLinks(ContractModel):
    """添加连线元素。"""

    model_config = ConfigDict(extra="forbid")

    @classmethod
    def schema_name(cls) -> str:
        return "add_links"

    action: Literal["AddLinks"] = "AddLinks"
    links: ChartElement

    @model_validator(mode="after")
    def ensure_links_class(self) -> "AddLinks":
        """连线元素的类标识必须属于 links 族。"""

        if self.links.class_id.split(".")[0] != "links":
            raise ValueError(f"AddLinks 只接受 links 类元素，收到 {self.links.class_id}。")
        return self


class DeleteChartElement(ContractModel):
    """删除图表元素。"""

    model_config = ConfigDict(extra="forbid")

    @classmethod
    def schema_name(cls) -> str:
        return "delete_chart_element"

    action: Literal["DeleteChartElement"] = "DeleteChartElement"
    element: str = Field(min_length=1)


Action = Annotated[
    Union[
        MapDataToChartElementAttribute,
        AddChartElement,
        AddGlyph,
        AddMarkToGlyph,
        SetPlotSegmentFilter,
        SetPlotSegmentGroupBy,
        UpdateChartElementAttribute,
        SetChartElementMapping,
        SnapChartElements,
        SetScaleAttribute,
        UpdateChartAttribute,
        BindDataToAxis,
        SetChartAttribute,
        SetChartSize,
        SetObjectProperty,
        ExtendPlotSegment,
        ReorderGlyphMark,
        ToggleLegendForScale,
        ReorderChartElement,
        AddLinks,
        DeleteChartElement,
    ],
    Field(discriminator="action"),
]
