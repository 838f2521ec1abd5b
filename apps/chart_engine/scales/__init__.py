"""Scale 推断与映射组件导出。"""

from apps.chart_engine.scales.categorical import CategoricalScale
from apps.chart_engine.scales.inference import ScaleInferenceEngine
from apps.chart_engine.scales.mapping import (
    has_range_variables,
    initial_scale_attributes,
    linear_fraction,
    map_value,
    scale_class_id,
)
from apps.chart_engine.scales.numeric import DateScale, LinearScale

__all__ = [
    "CategoricalScale",
    "DateScale",
    "LinearScale",
    "ScaleInferenceEngine",
    "has_range_variables",
    "initial_scale_attributes",
    "linear_fraction",
    "map_value",
    "scale_class_id",
]
