"""文本模板表达式：``"前缀 ${expr}{format} 后缀"``。

格式串支持 d3 的一个子集：``[,][.precision][f|d|e|g|%]``，
仅在取值为数值时生效。
"""

from __future__ import annotations

import re
from dataclasses import dataclass
from typing import Any, List, Optional, Union

from apps.chart_engine.errors import ExpressionParseError
from apps.chart_engine.expression.context import GroupContext, RowContext
from apps.chart_engine.expression.nodes import Expression
from apps.chart_engine.expression.parser import parse
from apps.chart_engine.expression.values import is_date, is_number, to_datetime

_FORMAT_PATTERN = re.compile(r"^(?P<comma>,)?(?:\.(?P<precision>\d+))?(?P<kind>[fdeg%])?$")


@dataclass(frozen=True)
class TextPart:
    """模板中的一个插值片段。"""

    expression: Expression
    source: str
    format: Optional[str] = None


Part = Union[str, TextPart]


def validate_format(spec: str) -> None:
    """校验数值格式串，不支持时抛出 ExpressionParseError。"""

    if not _FORMAT_PATTERN.match(spec):
        raise ExpressionParseError(f"不支持的数值格式 {spec!r}。")


def format_value(value: Any, spec: Optional[str] = None) -> str:
    """将取值格式化为文本。

    Parameters
    ----------
    value: Any
        表达式求值结果。
    spec: Optional[str]
        数值格式串，非数值取值忽略格式。

    Returns
    -------
    str
        格式化后的文本，空值返回空串。
    """

    if value is None:
        return ""
    if isinstance(value, bool):
        return "true" if value else "false"
    if is_date(value):
        return to_datetime(value).isoformat()
    if not is_number(value):
        return str(value)
    if not spec:
        if isinstance(value, float) and value.is_integer():
            return str(int(value))
        return str(value)
    match = _FORMAT_PATTERN.match(spec)
    if match is None:
        raise ExpressionParseError(f"不支持的数值格式 {spec!r}。")
    comma = match.group("comma") or ""
    precision = match.group("precision")
    kind = match.group("kind") or "g"
    if kind == "d":
        return format(int(round(value)), f"{comma}d")
    if precision is None:
        precision = "0" if kind == "%" else "6"
    return format(float(value), f"{comma}.{precision}{kind}")


def _find_closing(text: str, start: int) -> int:
    """从 start 开始寻找未被引号包裹的右花括号。"""

    quote: Optional[str] = None
    index = start
    while index < len(text):
        char = text[index]
        if quote is not None:
            if char == "\\":
                index += 2
                continue
            if char == quote:
                quote = None
        elif char in {"'", '"', "`"}:
            quote = char
        elif char == "}":
            return index
        index += 1
    raise ExpressionParseError(f"文本模板 {text!r} 中的 ${{ 缺少对应的 }}。")


class TextExpression:
    """由字面文本与插值片段组成的模板。"""

    def __init__(self, parts: List[Part]) -> None:
        self.parts = parts

    def evaluate(self, context: Union[RowContext, GroupContext]) -> str:
        """依次求值并拼接各片段。"""

        pieces: List[str] = []
        for part in self.parts:
            if isinstance(part, str):
                pieces.append(part)
                continue
            pieces.append(format_value(part.expression.evaluate(context), part.format))
        return "".join(pieces)

    def expressions(self) -> List[Expression]:
        return [part.expression for part in self.parts if isinstance(part, TextPart)]

    def __str__(self) -> str:
        pieces: List[str] = []
        for part in self.parts:
            if isinstance(part, str):
                pieces.append(part.replace("${", "$\\{"))
                continue
            pieces.append(f"${{{part.expression}}}")
            if part.format is not None:
                pieces.append(f"{{{part.format}}}")
        return "".join(pieces)


def parse_text_expression(text: str) -> TextExpression:
    """解析文本模板。

    Raises
    ------
    ExpressionParseError
        插值表达式或格式串无法解析时抛出。
    """

    parts: List[Part] = []
    buffer: List[str] = []
    index = 0
    while index < len(text):
        if text.startswith("$\\{", index):
            buffer.append("${")
            index += 3
            continue
        if not text.startswith("${", index):
            buffer.append(text[index])
            index += 1
            continue
        if buffer:
            parts.append("".join(buffer))
            buffer = []
        closing = _find_closing(text, index + 2)
        source = text[index + 2 : closing]
        expression = parse(source.strip())
        index = closing + 1
        spec: Optional[str] = None
        if text.startswith("{", index):
            end = text.find("}", index)
            if end < 0:
                raise ExpressionParseError(f"文本模板 {text!r} 中的格式串缺少 }}。")
            spec = text[index + 1 : end]
            validate_format(spec)
            index = end + 1
        parts.append(TextPart(expression=expression, source=source.strip(), format=spec))
    if buffer:
        parts.append("".join(buffer))
    return TextExpression(parts)
