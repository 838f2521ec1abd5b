"""表达式解析器：正则分词 + 递归下降。

优先级由低到高：or、and、not、比较、加减、乘除取模、一元负号、幂（右结合）、
函数调用与原子。
"""

from __future__ import annotations

import re
from dataclasses import dataclass
from functools import lru_cache
from typing import List, Optional

from apps.chart_engine.errors import ExpressionParseError
from apps.chart_engine.expression.functions import FUNCTIONS
from apps.chart_engine.expression.nodes import (
    BinaryOp,
    ColumnRef,
    Expression,
    FunctionCall,
    Literal,
    UnaryOp,
)

_TOKEN_PATTERN = re.compile(
    r"""
    (?P<space>\s+)
    |(?P<number>(?:\d+\.\d*|\.\d+|\d+)(?:[eE][+-]?\d+)?)
    |(?P<string>'(?:[^'\\]|\\.)*'|"(?:[^"\\]|\\.)*")
    |(?P<quoted>`[^`]+`)
    |(?P<name>[A-Za-z_][A-Za-z0-9_]*)
    |(?P<op>==|!=|<=|>=|<|>|\+|-|\*|/|%|\^|\(|\)|,)
    """,
    re.VERBOSE,
)

_COMPARISON_OPS = {"==", "!=", "<", "<=", ">", ">="}
_ESCAPES = {"n": "\n", "t": "\t", "\\": "\\", "'": "'", '"': '"'}


@dataclass(frozen=True)
class Token:
    """词法单元。"""

    kind: str
    text: str
    position: int


def tokenize(text: str) -> List[Token]:
    """将表达式文本切分为词法单元，无法识别的字符抛出 ExpressionParseError。"""

    tokens: List[Token] = []
    position = 0
    while position < len(text):
        match = _TOKEN_PATTERN.match(text, position)
        if match is None:
            raise ExpressionParseError(f"表达式在位置 {position} 处出现无法识别的字符 {text[position]!r}。")
        kind = match.lastgroup
        if kind != "space":
            tokens.append(Token(kind=kind, text=match.group(), position=position))
        position = match.end()
    return tokens


def _unescape(body: str) -> str:
    result: List[str] = []
    index = 0
    while index < len(body):
        char = body[index]
        if char == "\\" and index + 1 < len(body):
            following = body[index + 1]
            result.append(_ESCAPES.get(following, following))
            index += 2
            continue
        result.append(char)
        index += 1
    return "".join(result)


class _Parser:
    def __init__(self, text: str) -> None:
        self.text = text
        self.tokens = tokenize(text)
        self.index = 0

    def peek(self) -> Optional[Token]:
        if self.index < len(self.tokens):
            return self.tokens[self.index]
        return None

    def advance(self) -> Token:
        token = self.peek()
        if token is None:
            raise ExpressionParseError(f"表达式 {self.text!r} 意外结束。")
        self.index += 1
        return token

    def accept(self, *texts: str) -> Optional[Token]:
        token = self.peek()
        if token is not None and token.kind in {"op", "name"} and token.text in texts:
            self.index += 1
            return token
        return None

    def expect(self, text: str) -> Token:
        token = self.accept(text)
        if token is None:
            found = self.peek()
            where = f"位置 {found.position} 处的 {found.text!r}" if found else "结尾"
            raise ExpressionParseError(f"表达式 {self.text!r} 在{where}缺少 {text!r}。")
        return token

    def parse(self) -> Expression:
        if not self.tokens:
            raise ExpressionParseError("表达式不能为空。")
        node = self.parse_or()
        leftover = self.peek()
        if leftover is not None:
            raise ExpressionParseError(
                f"表达式 {self.text!r} 在位置 {leftover.position} 处有多余内容 {leftover.text!r}。",
            )
        return node

    def parse_or(self) -> Expression:
        node = self.parse_and()
        while self.accept("or"):
            node = BinaryOp("or", node, self.parse_and())
        return node

    def parse_and(self) -> Expression:
        node = self.parse_not()
        while self.accept("and"):
            node = BinaryOp("and", node, self.parse_not())
        return node

    def parse_not(self) -> Expression:
        if self.accept("not"):
            return UnaryOp("not", self.parse_not())
        return self.parse_comparison()

    def parse_comparison(self) -> Expression:
        node = self.parse_additive()
        token = self.peek()
        if token is not None and token.kind == "op" and token.text in _COMPARISON_OPS:
            self.index += 1
            node = BinaryOp(token.text, node, self.parse_additive())
            following = self.peek()
            if following is not None and following.kind == "op" and following.text in _COMPARISON_OPS:
                raise ExpressionParseError(f"比较运算不能链式书写: {self.text!r}。")
        return node

    def parse_additive(self) -> Expression:
        node = self.parse_multiplicative()
        while True:
            token = self.accept("+", "-")
            if token is None:
                return node
            node = BinaryOp(token.text, node, self.parse_multiplicative())

    def parse_multiplicative(self) -> Expression:
        node = self.parse_unary()
        while True:
            token = self.accept("*", "/", "%")
            if token is None:
                return node
            node = BinaryOp(token.text, node, self.parse_unary())

    def parse_unary(self) -> Expression:
        if self.accept("-"):
            operand = self.parse_unary()
            if isinstance(operand, Literal) and isinstance(operand.value, (int, float)) and not isinstance(
                operand.value, bool
            ):
                return Literal(-operand.value)
            return UnaryOp("-", operand)
        return self.parse_power()

    def parse_power(self) -> Expression:
        base = self.parse_primary()
        if self.accept("^"):
            return BinaryOp("^", base, self.parse_unary())
        return base

    def parse_primary(self) -> Expression:
        token = self.advance()
        if token.kind == "number":
            value = float(token.text)
            if value.is_integer() and re.fullmatch(r"\d+", token.text):
                return Literal(int(token.text))
            return Literal(value)
        if token.kind == "string":
            return Literal(_unescape(token.text[1:-1]))
        if token.kind == "quoted":
            return ColumnRef(token.text[1:-1])
        if token.kind == "name":
            return self._parse_name(token)
        if token.text == "(":
            node = self.parse_or()
            self.expect(")")
            return node
        raise ExpressionParseError(f"表达式 {self.text!r} 在位置 {token.position} 处出现意外的 {token.text!r}。")

    def _parse_name(self, token: Token) -> Expression:
        name = token.text
        if name == "true":
            return Literal(True)
        if name == "false":
            return Literal(False)
        if name == "null":
            return Literal(None)
        if name in {"and", "or", "not"}:
            raise ExpressionParseError(f"表达式 {self.text!r} 在位置 {token.position} 处出现意外的关键字 {name}。")
        if not self.accept("("):
            return ColumnRef(name)
        spec = FUNCTIONS.get(name)
        if spec is None:
            raise ExpressionParseError(f"未知函数 {name}。")
        args: List[Expression] = []
        if not self.accept(")"):
            args.append(self.parse_or())
            while self.accept(","):
                args.append(self.parse_or())
            self.expect(")")
        if not spec.min_args <= len(args) <= spec.max_args:
            raise ExpressionParseError(
                f"函数 {name} 需要 {spec.min_args}-{spec.max_args} 个参数，收到 {len(args)} 个。",
            )
        return FunctionCall(name, args)


@lru_cache(maxsize=512)
def parse(text: str) -> Expression:
    """解析表达式文本。

    Parameters
    ----------
    text: str
        表达式源文本。

    Returns
    -------
    Expression
        语法树根节点，节点不可变，可安全地在多次求值间共享。

    Raises
    ------
    ExpressionParseError
        文本无法解析时抛出。
    """

    return _Parser(text).parse()
