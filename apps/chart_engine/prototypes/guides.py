"""图例与连线元素类，二者都没有内在约束。"""

from __future__ import annotations

from apps.chart_engine.prototypes.base import ElementClass, excluded, number, register


@register
class CategoricalLegend(ElementClass):
    class_id = "legend.categorical"
    display_name = "Legend"
    attributes = {
        "x": number(0.0),
        "y": number(0.0),
    }
    default_properties = {
        "scale": None,
        "alignX": "start",
        "alignY": "end",
        "fontSize": 14.0,
        "textColor": "#000000",
        "markerShape": "circle",
    }


@register
class NumericalLegend(ElementClass):
    class_id = "legend.numerical"
    display_name = "Legend"
    attributes = {
        "x": number(0.0),
        "y": number(0.0),
        "length": number(200.0, solver_exclude=True),
    }
    default_properties = {
        "scale": None,
        "alignX": "start",
        "alignY": "end",
        "axis": {"side": "default", "visible": True},
    }


@register
class ThroughLinks(ElementClass):
    """沿分组顺序连接相邻 glyph 的连线。"""

    class_id = "links.through"
    display_name = "Link"
    attributes = {
        "color": excluded("color", "#888888"),
        "opacity": number(1.0, solver_exclude=True),
    }
    default_properties = {
        "linkType": "line",
        "interpolationType": "line",
        "anchor1": [{"attribute": "x", "value": 0}],
        "anchor2": [{"attribute": "x", "value": 0}],
        "linkThrough": {"plotSegment": None, "facetExpressions": []},
    }


@register
class TableLinks(ElementClass):
    """按连线表的行连接 glyph 的连线。"""

    class_id = "links.table"
    display_name = "Link"
    attributes = dict(ThroughLinks.attributes)
    default_properties = {
        "linkType": "line",
        "interpolationType": "line",
        "linkTable": {"table": None, "plotSegments": []},
    }
