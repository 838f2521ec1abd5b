"""图表状态契约：规范树的镜像，保存每个节点求解后的属性值。

状态树按标识索引，而不是引用规范节点，避免“规范拥有状态、状态又需要
规范”的循环所有权。状态节点由 ChartManager 派生与重建，属性值由每次
求解原地覆盖。
"""

from __future__ import annotations

from typing import Any, Dict, List, Optional, Union

from pydantic import ConfigDict, Field

from apps.chart_engine.contracts.metadata import ContractModel

AttributeMap = Dict[str, Any]


class ElementState(ContractModel):
    """单个元素（或 glyph 内标记）的属性值集合。"""

    model_config = ConfigDict(extra="forbid")

    @classmethod
    def schema_name(cls) -> str:
        """返回元素状态的 Schema 名称。"""

        return "element_state"

    attributes: AttributeMap = Field(default_factory=dict)


class GlyphState(ContractModel):
    """绘图区中某个数据分组对应的 glyph 实例。"""

    model_config = ConfigDict(extra="forbid")

    @classmethod
    def schema_name(cls) -> str:
        """返回 glyph 实例状态的 Schema 名称。"""

        return "glyph_state"

    group_key: str = Field(description="分组键，用于在重新分组时对应旧实例。")
    row_indices: List[int] = Field(default_factory=list, description="分组包含的行号。")
    attributes: AttributeMap = Field(default_factory=dict)
    marks: Dict[str, ElementState] = Field(default_factory=dict, description="按标记标识索引的标记状态。")


class PlotSegmentState(ContractModel):
    """绘图区状态，额外保存 glyph 实例列表。"""

    model_config = ConfigDict(extra="forbid")

    @classmethod
    def schema_name(cls) -> str:
        """返回绘图区状态的 Schema 名称。"""

        return "plot_segment_state"

    attributes: AttributeMap = Field(default_factory=dict)
    glyphs: List[GlyphState] = Field(description="按分组顺序排列的 glyph 实例。")


class ScaleState(ContractModel):
    """Scale 的可求解属性，例如数值输出的 range_min/range_max。"""

    model_config = ConfigDict(extra="forbid")

    @classmethod
    def schema_name(cls) -> str:
        """返回 Scale 状态的 Schema 名称。"""

        return "scale_state"

    attributes: AttributeMap = Field(default_factory=dict)


class ChartState(ContractModel):
    """图表状态根节点。"""

    model_config = ConfigDict(extra="forbid")

    @classmethod
    def schema_name(cls) -> str:
        """返回图表状态的 Schema 名称。"""

        return "chart_state"

    attributes: AttributeMap = Field(default_factory=dict)
    elements: Dict[str, Union[PlotSegmentState, ElementState]] = Field(default_factory=dict)
    scales: Dict[str, ScaleState] = Field(default_factory=dict)

    def plot_segment_state(self, element_id: str) -> Optional[PlotSegmentState]:
        """返回绘图区状态，元素不存在或不是绘图区时返回 None。"""

        state = self.elements.get(element_id)
        if isinstance(state, PlotSegmentState):
            return state
        return None
