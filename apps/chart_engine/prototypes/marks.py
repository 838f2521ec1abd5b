"""glyph 内的标记元素类，坐标相对于 glyph 中心。"""

from __future__ import annotations

from apps.chart_engine.prototypes.base import ConstraintContext, ElementClass, excluded, number, register

_STYLE = {
    "opacity": number(1.0, solver_exclude=True),
    "visible": excluded("boolean", True),
}


def _box_constraints(context: ConstraintContext) -> None:
    x1, x2, y1, y2 = context.var("x1"), context.var("x2"), context.var("y1"), context.var("y2")
    context.hard(lhs=[(1.0, x2)], rhs=[(1.0, x1), (1.0, context.var("width"))])
    context.hard(lhs=[(1.0, y2)], rhs=[(1.0, y1), (1.0, context.var("height"))])
    context.hard(lhs=[(2.0, context.var("cx"))], rhs=[(1.0, x1), (1.0, x2)])
    context.hard(lhs=[(2.0, context.var("cy"))], rhs=[(1.0, y1), (1.0, y2)])


@register
class RectMark(ElementClass):
    class_id = "mark.rect"
    display_name = "Shape"
    attributes = {
        "x1": number(-15.0),
        "y1": number(-15.0),
        "x2": number(15.0),
        "y2": number(15.0),
        "cx": number(0.0),
        "cy": number(0.0),
        "width": number(30.0),
        "height": number(30.0),
        "fill": excluded("color", "#4e79a7"),
        "stroke": excluded("color", None),
        "strokeWidth": number(1.0, solver_exclude=True),
        **_STYLE,
    }
    default_properties = {"shape": "rectangle"}

    @classmethod
    def build_constraints(cls, context: ConstraintContext) -> None:
        _box_constraints(context)


@register
class SymbolMark(ElementClass):
    class_id = "mark.symbol"
    display_name = "Symbol"
    attributes = {
        "x": number(0.0),
        "y": number(0.0),
        "size": number(60.0, solver_exclude=True),
        "fill": excluded("color", "#4e79a7"),
        "stroke": excluded("color", None),
        "symbol": excluded("string", "circle"),
        **_STYLE,
    }


@register
class TextMark(ElementClass):
    class_id = "mark.text"
    display_name = "Text"
    attributes = {
        "x": number(0.0),
        "y": number(0.0),
        "text": excluded("text", ""),
        "fontFamily": excluded("string", "Arial"),
        "fontSize": number(14.0, solver_exclude=True),
        "color": excluded("color", "#000000"),
        **_STYLE,
    }
    default_properties = {"alignX": "middle", "alignY": "middle"}


@register
class LineMark(ElementClass):
    class_id = "mark.line"
    display_name = "Line"
    attributes = {
        "x1": number(-15.0),
        "y1": number(-15.0),
        "x2": number(15.0),
        "y2": number(15.0),
        "cx": number(0.0),
        "cy": number(0.0),
        "dx": number(30.0),
        "dy": number(30.0),
        "stroke": excluded("color", "#000000"),
        "strokeWidth": number(1.0, solver_exclude=True),
        **_STYLE,
    }

    @classmethod
    def build_constraints(cls, context: ConstraintContext) -> None:
        x1, x2, y1, y2 = context.var("x1"), context.var("x2"), context.var("y1"), context.var("y2")
        context.hard(lhs=[(1.0, x2)], rhs=[(1.0, x1), (1.0, context.var("dx"))])
        context.hard(lhs=[(1.0, y2)], rhs=[(1.0, y1), (1.0, context.var("dy"))])
        context.hard(lhs=[(2.0, context.var("cx"))], rhs=[(1.0, x1), (1.0, x2)])
        context.hard(lhs=[(2.0, context.var("cy"))], rhs=[(1.0, y1), (1.0, y2)])
