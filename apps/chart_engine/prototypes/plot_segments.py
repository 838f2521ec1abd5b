"""绘图区元素类：直角坐标、极坐标与曲线坐标。

绘图区负责把每个 glyph 实例放到自身区域内。位置由坐标轴绑定或默认
子布局算出一个相对位置 t，再写成区域边界变量的线性组合，因此所有
布局约束都保持线性。
"""

from __future__ import annotations

import math
from typing import Any, Dict, List, Optional, Tuple

from apps.chart_engine.contracts.specification import AxisDataBinding
from apps.chart_engine.expression.values import to_epoch_ms
from apps.chart_engine.prototypes.base import (
    ConstraintContext,
    ElementClass,
    GlyphInstance,
    number,
    register,
)
from apps.chart_engine.solver.kernel import ConstraintStrength
from apps.chart_engine.stores.dataset_store import group_key

SHARED_PROPERTIES = (
    "name",
    "visible",
    "sublayout",
    "xData",
    "yData",
    "marginX1",
    "marginY1",
    "marginX2",
    "marginY2",
)
MIGRATED_MAPPINGS = ("x1", "x2", "y1", "y2")

DEFAULT_AXIS_STYLE: Dict[str, Any] = {
    "tickColor": "#000000",
    "lineColor": "#000000",
    "fontFamily": "Arial",
    "fontSize": 12.0,
    "tickSize": 5.0,
}

_BOX = {
    "x1": number(-300.0),
    "y1": number(-200.0),
    "x2": number(300.0),
    "y2": number(200.0),
}

_BASE_PROPERTIES: Dict[str, Any] = {
    "visible": True,
    "sublayout": {"type": "dodge-x", "ratio_x": 0.1, "ratio_y": 0.1},
    "xData": None,
    "yData": None,
    "marginX1": 0.0,
    "marginY1": 0.0,
    "marginX2": 0.0,
    "marginY2": 0.0,
}


def default_axis_binding() -> Dict[str, Any]:
    """ExtendPlotSegment 在类不变时写入的默认坐标轴绑定。"""

    return AxisDataBinding(type="default", gap_ratio=0.1).model_dump(mode="json")


def _binding(properties: Dict[str, Any], name: str) -> Optional[AxisDataBinding]:
    raw = properties.get(name)
    if raw is None:
        return None
    if isinstance(raw, AxisDataBinding):
        return raw
    return AxisDataBinding.model_validate(raw)


class PlotSegmentClass(ElementClass):
    """绘图区基类：计算每个 glyph 实例在两个方向上的相对位置。"""

    display_name = "PlotSegment"

    @staticmethod
    def axis_fraction(
        context: ConstraintContext,
        binding: Optional[AxisDataBinding],
        glyph: GlyphInstance,
        axis: str,
        index: int,
        count: int,
    ) -> Tuple[Optional[float], Optional[int], float]:
        """返回 ``(t, slots, gap_ratio)``。

        t 为 glyph 在该方向上的相对位置，无法定位时为 None；slots 为该方向
        上的槽位数，数值轴没有槽位。
        """

        sublayout = context.properties.get("sublayout") or {}
        if binding is not None and binding.expression and binding.type == "categorical":
            categories = binding.categories or []
            key = group_key(context.evaluate(glyph.state.row_indices, binding.expression))
            if key not in categories:
                return None, None, binding.gap_ratio
            return (categories.index(key) + 0.5) / len(categories), len(categories), binding.gap_ratio
        if binding is not None and binding.expression and binding.type == "numerical":
            value = context.evaluate(glyph.state.row_indices, binding.expression)
            if value is None:
                return None, None, binding.gap_ratio
            if binding.numerical_mode == "temporal":
                value = to_epoch_ms(value)
            low = binding.domain_min if binding.domain_min is not None else 0.0
            high = binding.domain_max if binding.domain_max is not None else 1.0
            span = high - low
            fraction = 0.5 if span == 0 else (float(value) - low) / span
            return fraction, None, binding.gap_ratio
        gap = float(sublayout.get(f"ratio_{axis}", 0.1))
        kind = sublayout.get("type", "dodge-x")
        if kind == f"dodge-{axis}":
            return (index + 0.5) / count, count, gap
        if kind == "grid":
            columns = max(1, math.ceil(math.sqrt(count)))
            rows = max(1, math.ceil(count / columns))
            if axis == "x":
                return (index % columns + 0.5) / columns, columns, gap
            return (index // columns + 0.5) / rows, rows, gap
        return 0.5, 1, gap


@register
class CartesianPlotSegment(PlotSegmentClass):
    """直角坐标绘图区：glyph 沿内框水平/竖直方向排布。"""

    class_id = "plot-segment.cartesian"
    attributes = {
        **_BOX,
        "innerX1": number(-300.0),
        "innerY1": number(-200.0),
        "innerX2": number(300.0),
        "innerY2": number(200.0),
    }
    default_properties = dict(_BASE_PROPERTIES)

    @classmethod
    def build_constraints(cls, context: ConstraintContext) -> None:
        properties = context.properties
        inner = {}
        for axis, low, high in (("x", "x1", "x2"), ("y", "y1", "y2")):
            inner_low, inner_high = context.var(f"inner{axis.upper()}1"), context.var(f"inner{axis.upper()}2")
            margin_low = float(properties.get(f"margin{axis.upper()}1") or 0.0)
            margin_high = float(properties.get(f"margin{axis.upper()}2") or 0.0)
            context.hard(bias=margin_low, lhs=[(1.0, context.var(low))], rhs=[(1.0, inner_low)])
            context.hard(bias=-margin_high, lhs=[(1.0, context.var(high))], rhs=[(1.0, inner_high)])
            inner[axis] = (inner_low, inner_high)

        count = len(context.glyphs)
        bindings = {"x": _binding(properties, "xData"), "y": _binding(properties, "yData")}
        for index, glyph in enumerate(context.glyphs):
            for axis, size in (("x", "width"), ("y", "height")):
                fraction, slots, gap = cls.axis_fraction(context, bindings[axis], glyph, axis, index, count)
                low, high = inner[axis]
                if fraction is not None:
                    context.hard(
                        lhs=[(1.0, context.glyph_var(glyph, axis))],
                        rhs=[(1.0 - fraction, low), (fraction, high)],
                    )
                if slots:
                    # slots * size = (1 - gap) * (high - low)
                    context.builder.linear(
                        ConstraintStrength.MEDIUM,
                        lhs=[(float(slots), context.glyph_var(glyph, size))],
                        rhs=[(1.0 - gap, high), (gap - 1.0, low)],
                    )


@register
class PolarPlotSegment(PlotSegmentClass):
    """极坐标绘图区：x 方向映射为角度，y 方向映射为半径。"""

    class_id = "plot-segment.polar"
    attributes = {
        **_BOX,
        "cx": number(0.0),
        "cy": number(0.0),
        "radial1": number(0.0),
        "radial2": number(300.0),
        "angle1": number(0.0, solver_exclude=True),
        "angle2": number(360.0, solver_exclude=True),
    }
    default_properties = {
        **_BASE_PROPERTIES,
        "startAngle": 0.0,
        "endAngle": 360.0,
        "innerRatio": 0.0,
        "outerRatio": 1.0,
    }

    @classmethod
    def build_constraints(cls, context: ConstraintContext) -> None:
        properties = context.properties
        x1, x2, y1, y2 = context.var("x1"), context.var("x2"), context.var("y1"), context.var("y2")
        cx, cy = context.var("cx"), context.var("cy")
        radial1, radial2 = context.var("radial1"), context.var("radial2")
        context.hard(lhs=[(2.0, cx)], rhs=[(1.0, x1), (1.0, x2)])
        context.hard(lhs=[(2.0, cy)], rhs=[(1.0, y1), (1.0, y2)])
        for variable, ratio in ((radial1, properties.get("innerRatio", 0.0)), (radial2, properties.get("outerRatio", 1.0))):
            half = float(ratio) / 2.0
            context.hard(lhs=[(1.0, variable)], rhs=[(half, x2), (-half, x1)])

        start = float(properties.get("startAngle", 0.0))
        end = float(properties.get("endAngle", 360.0))
        context.attributes["angle1"] = start
        context.attributes["angle2"] = end
        count = len(context.glyphs)
        angular = _binding(properties, "xData")
        radial = _binding(properties, "yData")
        for index, glyph in enumerate(context.glyphs):
            fraction, _, _ = cls.axis_fraction(context, angular, glyph, "x", index, count)
            depth, _, _ = cls.axis_fraction(context, radial, glyph, "y", index, count)
            if fraction is None or depth is None:
                continue
            theta = math.radians(start + fraction * (end - start))
            # 角度 0 指向正上方，顺时针增加。
            for axis, center, factor in (("x", cx, math.sin(theta)), ("y", cy, math.cos(theta))):
                context.hard(
                    lhs=[(1.0, context.glyph_var(glyph, axis))],
                    rhs=[(1.0, center), (factor * (1.0 - depth), radial1), (factor * depth, radial2)],
                )


def _cubic(points: List[List[float]], t: float) -> Tuple[Tuple[float, float], Tuple[float, float]]:
    """返回三次贝塞尔曲线在 t 处的点与切向量。"""

    (x0, y0), (x1, y1), (x2, y2), (x3, y3) = points
    u = 1.0 - t
    point = (
        u**3 * x0 + 3 * u**2 * t * x1 + 3 * u * t**2 * x2 + t**3 * x3,
        u**3 * y0 + 3 * u**2 * t * y1 + 3 * u * t**2 * y2 + t**3 * y3,
    )
    tangent = (
        3 * u**2 * (x1 - x0) + 6 * u * t * (x2 - x1) + 3 * t**2 * (x3 - x2),
        3 * u**2 * (y1 - y0) + 6 * u * t * (y2 - y1) + 3 * t**2 * (y3 - y2),
    )
    return point, tangent


def curve_frame(curve: List[List[List[float]]], t: float) -> Tuple[Tuple[float, float], Tuple[float, float]]:
    """返回分段曲线在 t∈[0,1] 处的点与单位法向量（归一化坐标）。"""

    segments = len(curve)
    t = min(1.0, max(0.0, t))
    segment = min(int(t * segments), segments - 1)
    point, tangent = _cubic(curve[segment], t * segments - segment)
    length = math.hypot(*tangent)
    if length == 0:
        return point, (0.0, 1.0)
    return point, (-tangent[1] / length, tangent[0] / length)


@register
class CurvePlotSegment(PlotSegmentClass):
    """曲线坐标绘图区：glyph 沿归一化贝塞尔曲线及其法向排布。"""

    class_id = "plot-segment.curve"
    attributes = {
        **_BOX,
        "cx": number(0.0),
        "cy": number(0.0),
    }
    default_properties = {
        **_BASE_PROPERTIES,
        "curve": [[[-1.0, 0.0], [-0.25, -0.5], [0.25, 0.5], [1.0, 0.0]]],
        "normalStart": -0.2,
        "normalEnd": 0.2,
    }

    @classmethod
    def build_constraints(cls, context: ConstraintContext) -> None:
        properties = context.properties
        x1, x2, y1, y2 = context.var("x1"), context.var("x2"), context.var("y1"), context.var("y2")
        context.hard(lhs=[(2.0, context.var("cx"))], rhs=[(1.0, x1), (1.0, x2)])
        context.hard(lhs=[(2.0, context.var("cy"))], rhs=[(1.0, y1), (1.0, y2)])
        curve = properties.get("curve") or cls.default_properties["curve"]
        normal_start = float(properties.get("normalStart", -0.2))
        normal_end = float(properties.get("normalEnd", 0.2))
        count = len(context.glyphs)
        tangential = _binding(properties, "xData")
        normal = _binding(properties, "yData")
        for index, glyph in enumerate(context.glyphs):
            fraction, _, _ = cls.axis_fraction(context, tangential, glyph, "x", index, count)
            depth, _, _ = cls.axis_fraction(context, normal, glyph, "y", index, count)
            if fraction is None or depth is None:
                continue
            (px, py), (nx, ny) = curve_frame(curve, fraction)
            offset = normal_start + depth * (normal_end - normal_start)
            # 归一化坐标 k ∈ [-1, 1] 对应 (1-k)/2 * low + (1+k)/2 * high。
            for axis, k, low, high in (("x", px + offset * nx, x1, x2), ("y", py + offset * ny, y1, y2)):
                context.hard(
                    lhs=[(1.0, context.glyph_var(glyph, axis))],
                    rhs=[((1.0 - k) / 2.0, low), ((1.0 + k) / 2.0, high)],
                )
