"""图表求解引擎契约模型导出。"""

from apps.chart_engine.contracts.actions import Action, MappingSeed, ScaleHints
from apps.chart_engine.contracts.cycle import CycleRecord
from apps.chart_engine.contracts.dataset import Column, ColumnMetadata, Dataset, DataKind, DataType, Table
from apps.chart_engine.contracts.metadata import SCHEMA_VERSION, ContractModel, contract_schema_metadata
from apps.chart_engine.contracts.specification import (
    AxisDataBinding,
    CategoryFilter,
    Chart,
    ChartElement,
    Constraint,
    Filter,
    Glyph,
    GroupBy,
    Ordering,
    PlotSegment,
    Scale,
    ScaleMapping,
    SnapAttributes,
    SnapMapping,
    TextMapping,
    ValueMapping,
    unique_id,
)
from apps.chart_engine.contracts.state import (
    ChartState,
    ElementState,
    GlyphState,
    PlotSegmentState,
    ScaleState,
)

__all__ = [
    "SCHEMA_VERSION",
    "Action",
    "AxisDataBinding",
    "CategoryFilter",
    "Chart",
    "ChartElement",
    "ChartState",
    "Column",
    "ColumnMetadata",
    "Constraint",
    "ContractModel",
    "CycleRecord",
    "DataKind",
    "DataType",
    "Dataset",
    "ElementState",
    "Filter",
    "Glyph",
    "GlyphState",
    "GroupBy",
    "MappingSeed",
    "Ordering",
    "PlotSegment",
    "PlotSegmentState",
    "Scale",
    "ScaleHints",
    "ScaleMapping",
    "ScaleState",
    "SnapAttributes",
    "SnapMapping",
    "Table",
    "TextMapping",
    "ValueMapping",
    "contract_schema_metadata",
    "unique_id",
]
