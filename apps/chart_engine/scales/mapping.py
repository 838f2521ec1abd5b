"""Scale 规范对象与运行期 Scale 的互转，以及取值映射。"""

from __future__ import annotations

from typing import Any, Dict, Optional, Union

from apps.chart_engine.contracts.dataset import DataKind
from apps.chart_engine.contracts.specification import Scale
from apps.chart_engine.contracts.state import ScaleState
from apps.chart_engine.scales.categorical import CategoricalScale
from apps.chart_engine.scales.numeric import DateScale, LinearScale
from apps.chart_engine.scales.palettes import SEQUENTIAL_END, SEQUENTIAL_START, interpolate_color
from apps.chart_engine.stores.dataset_store import group_key

RuntimeScale = Union[CategoricalScale, LinearScale, DateScale]

DEFAULT_RANGE_MIN = 0.0
DEFAULT_RANGE_MAX = 100.0


def is_categorical(scale: Scale) -> bool:
    return scale.data_kind in {DataKind.CATEGORICAL, DataKind.ORDINAL}


def has_range_variables(scale: Scale) -> bool:
    """数值输出的连续 Scale 以 range_min/range_max 作为求解变量。"""

    return not is_categorical(scale) and scale.output_type == "number"


def scale_class_id(data_kind: DataKind, output_type: str) -> str:
    """按数据种类与输出类型生成 Scale 类标识。"""

    if data_kind in {DataKind.CATEGORICAL, DataKind.ORDINAL}:
        return f"scale.categorical<string,{output_type}>"
    if data_kind == DataKind.TEMPORAL:
        return f"scale.linear<date,{output_type}>"
    return f"scale.linear<number,{output_type}>"


def to_runtime(scale: Scale) -> RuntimeScale:
    """由规范对象还原运行期 Scale。"""

    if is_categorical(scale):
        runtime = CategoricalScale()
        runtime.domain = {key: index for index, key in enumerate(scale.properties.get("order", []))}
        return runtime
    cls = DateScale if scale.data_kind == DataKind.TEMPORAL else LinearScale
    return cls(
        domain_min=float(scale.properties.get("domain_min", 0.0)),
        domain_max=float(scale.properties.get("domain_max", 1.0)),
    )


def initial_scale_attributes(scale: Scale) -> Dict[str, Any]:
    """新建 Scale 状态时的属性初值。"""

    if not has_range_variables(scale):
        return {}
    return {
        "range_min": float(scale.properties.get("range_min", DEFAULT_RANGE_MIN)),
        "range_max": float(scale.properties.get("range_max", DEFAULT_RANGE_MAX)),
    }


def linear_fraction(scale: Scale, value: Any) -> Optional[float]:
    """返回连续 Scale 中取值的相对位置 t，用于构造 ``(1-t)*range_min + t*range_max``。"""

    runtime = to_runtime(scale)
    if isinstance(runtime, CategoricalScale):
        raise ValueError(f"Scale {scale.id} 不是连续 Scale。")
    return runtime.fraction(value)


def map_value(scale: Scale, state: Optional[ScaleState], value: Any) -> Any:
    """将数据取值经 Scale 映射为属性值。

    Parameters
    ----------
    scale: Scale
        规范中的 Scale 对象。
    state: Optional[ScaleState]
        Scale 状态，数值输出的连续 Scale 从中读取 range_min/range_max。
    value: Any
        数据取值。

    Returns
    -------
    Any
        映射结果，取值为空或不在类别定义域内时返回 None。
    """

    if value is None:
        return None
    if is_categorical(scale):
        return scale.properties.get("mapping", {}).get(group_key(value))
    t = linear_fraction(scale, value)
    if scale.output_type == "color":
        start = scale.properties.get("color_start", SEQUENTIAL_START)
        end = scale.properties.get("color_end", SEQUENTIAL_END)
        return interpolate_color(start, end, t)
    if scale.output_type == "boolean":
        return t >= float(scale.properties.get("threshold", 0.5))
    attributes = state.attributes if state is not None else initial_scale_attributes(scale)
    range_min = float(attributes.get("range_min", DEFAULT_RANGE_MIN))
    range_max = float(attributes.get("range_max", DEFAULT_RANGE_MAX))
    return range_min + (range_max - range_min) * t
