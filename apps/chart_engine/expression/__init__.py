"""表达式求值组件导出。"""

from apps.chart_engine.expression.context import GroupContext, RowContext
from apps.chart_engine.expression.functions import FUNCTIONS
from apps.chart_engine.expression.nodes import Expression
from apps.chart_engine.expression.parser import parse
from apps.chart_engine.expression.text import TextExpression, format_value, parse_text_expression

__all__ = [
    "FUNCTIONS",
    "Expression",
    "GroupContext",
    "RowContext",
    "TextExpression",
    "format_value",
    "parse",
    "parse_text_expression",
]
