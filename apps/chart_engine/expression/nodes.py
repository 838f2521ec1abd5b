"""表达式语法树节点。

每个节点实现 ``evaluate(context)`` 与 ``__str__``，``str(parse(text))``
得到语义等价的规范文本。
"""

from __future__ import annotations

import operator
import re
from typing import Any, Callable, Dict, List, Set, Union

from apps.chart_engine.errors import ExpressionTypeError
from apps.chart_engine.expression.context import GroupContext, RowContext
from apps.chart_engine.expression.functions import FUNCTIONS
from apps.chart_engine.expression.values import is_date, is_number, type_name

Context = Union[RowContext, GroupContext]

_IDENTIFIER = re.compile(r"^[A-Za-z_][A-Za-z0-9_]*$")
KEYWORDS = {"and", "or", "not", "true", "false", "null"}

PRECEDENCE: Dict[str, int] = {
    "or": 1,
    "and": 2,
    "not": 3,
    "==": 4,
    "!=": 4,
    "<": 4,
    "<=": 4,
    ">": 4,
    ">=": 4,
    "+": 5,
    "-": 5,
    "*": 6,
    "/": 6,
    "%": 6,
    "neg": 7,
    "^": 8,
}
_ATOM = 9


class Expression:
    """语法树节点基类。"""

    precedence = _ATOM

    def evaluate(self, context: Context) -> Any:
        raise NotImplementedError

    def column_names(self) -> Set[str]:
        """返回表达式引用的全部字段名。"""

        return set()


class Literal(Expression):
    """常量：数值、字符串、布尔或空值。"""

    def __init__(self, value: Any) -> None:
        self.value = value
        if is_number(value) and value < 0:
            self.precedence = PRECEDENCE["neg"]

    def evaluate(self, context: Context) -> Any:
        return self.value

    def __str__(self) -> str:
        if self.value is None:
            return "null"
        if isinstance(self.value, bool):
            return "true" if self.value else "false"
        if isinstance(self.value, str):
            escaped = self.value.replace("\\", "\\\\").replace("'", "\\'")
            return f"'{escaped}'"
        return repr(self.value)


class ColumnRef(Expression):
    """字段引用。"""

    def __init__(self, name: str) -> None:
        self.name = name

    def evaluate(self, context: Context) -> Any:
        return context.get_value(self.name)

    def column_names(self) -> Set[str]:
        return {self.name}

    def __str__(self) -> str:
        if _IDENTIFIER.match(self.name) and self.name not in KEYWORDS and self.name not in FUNCTIONS:
            return self.name
        return f"`{self.name}`"


class FunctionCall(Expression):
    """函数调用，聚合函数在分组上下文中逐行求值参数。"""

    def __init__(self, name: str, args: List[Expression]) -> None:
        self.name = name
        self.args = args
        self.spec = FUNCTIONS[name]

    def evaluate(self, context: Context) -> Any:
        if self.spec.aggregate:
            rows = list(context.row_contexts())
            if not self.args:
                return len(rows)
            vector = [self.args[0].evaluate(row) for row in rows]
            return self.spec.impl(vector)
        values = [arg.evaluate(context) for arg in self.args]
        return self.spec.impl(*values)

    def column_names(self) -> Set[str]:
        names: Set[str] = set()
        for arg in self.args:
            names |= arg.column_names()
        return names

    def __str__(self) -> str:
        return f"{self.name}({', '.join(str(arg) for arg in self.args)})"


def _wrap(child: Expression, parent_precedence: int, *, right: bool = False) -> str:
    """子节点优先级低于父节点时加括号。"""

    text = str(child)
    if child.precedence < parent_precedence or (right and child.precedence == parent_precedence):
        return f"({text})"
    return text


class UnaryOp(Expression):
    """一元运算：取负与逻辑非。"""

    def __init__(self, op: str, operand: Expression) -> None:
        self.op = op
        self.operand = operand
        self.precedence = PRECEDENCE["neg" if op == "-" else "not"]

    def evaluate(self, context: Context) -> Any:
        value = self.operand.evaluate(context)
        if value is None:
            return None
        if self.op == "-":
            if not is_number(value):
                raise ExpressionTypeError(f"无法对 {type_name(value)} 取负。")
            return -value
        if not isinstance(value, bool):
            raise ExpressionTypeError(f"not 只接受布尔值，收到 {type_name(value)}。")
        return not value

    def column_names(self) -> Set[str]:
        return self.operand.column_names()

    def __str__(self) -> str:
        operand = _wrap(self.operand, self.precedence)
        if self.op == "-":
            return f"-{operand}"
        return f"not {operand}"


_ARITHMETIC: Dict[str, Callable[[float, float], float]] = {
    "-": operator.sub,
    "*": operator.mul,
    "/": operator.truediv,
    "%": operator.mod,
    "^": operator.pow,
}

_COMPARISON: Dict[str, Callable[[Any, Any], bool]] = {
    "<": operator.lt,
    "<=": operator.le,
    ">": operator.gt,
    ">=": operator.ge,
}


def _same_family(left: Any, right: Any) -> bool:
    """判断两个取值能否比较大小。"""

    if is_number(left) and is_number(right):
        return True
    if isinstance(left, str) and isinstance(right, str):
        return True
    return is_date(left) and is_date(right)


class BinaryOp(Expression):
    """二元运算：算术、比较与逻辑。"""

    def __init__(self, op: str, left: Expression, right: Expression) -> None:
        self.op = op
        self.left = left
        self.right = right
        self.precedence = PRECEDENCE[op]

    def evaluate(self, context: Context) -> Any:
        if self.op in {"and", "or"}:
            return self._evaluate_logical(context)
        left = self.left.evaluate(context)
        right = self.right.evaluate(context)
        if self.op == "==":
            return left == right
        if self.op == "!=":
            return left != right
        if left is None or right is None:
            return None
        if self.op in _COMPARISON:
            if not _same_family(left, right):
                raise ExpressionTypeError(
                    f"无法比较 {type_name(left)} 与 {type_name(right)}。",
                )
            return _COMPARISON[self.op](left, right)
        if self.op == "+":
            if isinstance(left, str) and isinstance(right, str):
                return left + right
            if is_number(left) and is_number(right):
                return left + right
            raise ExpressionTypeError(f"无法对 {type_name(left)} 与 {type_name(right)} 执行 +。")
        if not (is_number(left) and is_number(right)):
            raise ExpressionTypeError(
                f"运算符 {self.op} 只接受数值，收到 {type_name(left)} 与 {type_name(right)}。",
            )
        if self.op in {"/", "%"} and right == 0:
            return None
        return _ARITHMETIC[self.op](left, right)

    def _evaluate_logical(self, context: Context) -> Any:
        left = self.left.evaluate(context)
        if left is not None and not isinstance(left, bool):
            raise ExpressionTypeError(f"{self.op} 只接受布尔值，收到 {type_name(left)}。")
        if self.op == "and" and left is False:
            return False
        if self.op == "or" and left is True:
            return True
        right = self.right.evaluate(context)
        if right is not None and not isinstance(right, bool):
            raise ExpressionTypeError(f"{self.op} 只接受布尔值，收到 {type_name(right)}。")
        if self.op == "and" and right is False:
            return False
        if self.op == "or" and right is True:
            return True
        if left is None or right is None:
            return None
        return right

    def column_names(self) -> Set[str]:
        return self.left.column_names() | self.right.column_names()

    def __str__(self) -> str:
        # 幂运算右结合，其余运算左结合。
        right_assoc = self.op == "^"
        left = _wrap(self.left, self.precedence, right=right_assoc)
        right = _wrap(self.right, self.precedence, right=not right_assoc)
        return f"{left} {self.op} {right}"

