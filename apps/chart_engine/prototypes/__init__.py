"""元素类注册表导出，导入即完成全部内置类的注册。"""

from apps.chart_engine.prototypes import chart, guides, marks, plot_segments
from apps.chart_engine.prototypes.base import (
    ELEMENT_CLASSES,
    AttributeDescription,
    ConstraintContext,
    ElementClass,
    GlyphInstance,
    get_class,
    is_type,
    register,
)

__all__ = [
    "ELEMENT_CLASSES",
    "AttributeDescription",
    "ConstraintContext",
    "ElementClass",
    "GlyphInstance",
    "chart",
    "get_class",
    "guides",
    "is_type",
    "marks",
    "plot_segments",
    "register",
]
