"""图表根节点与 glyph 模板的元素类。"""

from __future__ import annotations

from apps.chart_engine.prototypes.base import ConstraintContext, ElementClass, excluded, number, register


@register
class RectangleChart(ElementClass):
    """矩形图表：原点位于图表中心，绘图区域由四边留白确定。

    留白不参与求解，作为常量并入约束，改变图表尺寸时只移动绘图区域边界。
    """

    class_id = "chart.rectangle"
    display_name = "Chart"
    attributes = {
        "width": number(900.0),
        "height": number(600.0),
        "marginLeft": number(50.0, solver_exclude=True),
        "marginRight": number(50.0, solver_exclude=True),
        "marginTop": number(50.0, solver_exclude=True),
        "marginBottom": number(50.0, solver_exclude=True),
        "x1": number(-400.0),
        "y1": number(-250.0),
        "x2": number(400.0),
        "y2": number(250.0),
        "cx": number(0.0),
        "cy": number(0.0),
        "backgroundColor": excluded("color", None),
    }
    default_properties = {"backgroundColor": None}

    @classmethod
    def build_constraints(cls, context: ConstraintContext) -> None:
        width, height = context.var("width"), context.var("height")
        x1, x2, y1, y2 = context.var("x1"), context.var("x2"), context.var("y1"), context.var("y2")
        # x1 = -width/2 + marginLeft, x2 = width/2 - marginRight
        context.hard(bias=-context.constant("marginLeft"), lhs=[(1.0, x1)], rhs=[(-0.5, width)])
        context.hard(bias=context.constant("marginRight"), lhs=[(1.0, x2)], rhs=[(0.5, width)])
        context.hard(bias=-context.constant("marginBottom"), lhs=[(1.0, y1)], rhs=[(-0.5, height)])
        context.hard(bias=context.constant("marginTop"), lhs=[(1.0, y2)], rhs=[(0.5, height)])
        context.hard(lhs=[(2.0, context.var("cx"))], rhs=[(1.0, x1), (1.0, x2)])
        context.hard(lhs=[(2.0, context.var("cy"))], rhs=[(1.0, y1), (1.0, y2)])


@register
class RectangleGlyph(ElementClass):
    """矩形 glyph：x/y 为中心在图表坐标中的位置，ix*/iy* 为以中心为原点的内框。"""

    class_id = "glyph.rectangle"
    display_name = "Glyph"
    attributes = {
        "x": number(0.0),
        "y": number(0.0),
        "width": number(60.0),
        "height": number(60.0),
        "ix1": number(-30.0),
        "iy1": number(-30.0),
        "ix2": number(30.0),
        "iy2": number(30.0),
    }

    @classmethod
    def build_constraints(cls, context: ConstraintContext) -> None:
        width, height = context.var("width"), context.var("height")
        context.hard(lhs=[(1.0, context.var("ix1"))], rhs=[(-0.5, width)])
        context.hard(lhs=[(1.0, context.var("ix2"))], rhs=[(0.5, width)])
        context.hard(lhs=[(1.0, context.var("iy1"))], rhs=[(-0.5, height)])
        context.hard(lhs=[(1.0, context.var("iy2"))], rhs=[(0.5, height)])
