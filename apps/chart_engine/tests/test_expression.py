"""表达式解析、求值与文本模板测试。"""

from __future__ import annotations

import pytest

from apps.chart_engine.errors import ExpressionParseError, ExpressionTypeError, UnknownColumnError
from apps.chart_engine.expression import GroupContext, RowContext, format_value, parse, parse_text_expression

COLUMNS = frozenset({"category", "value", "flag"})


def _row(**values):
    return RowContext(table_name="sales", columns=COLUMNS, row=values)


def _group(*rows):
    return GroupContext(table_name="sales", columns=COLUMNS, rows=list(rows))


def test_arithmetic_precedence_and_power_associativity() -> None:
    """乘除优先于加减，幂运算右结合。"""

    assert parse("1 + 2 * 3").evaluate(_row()) == 7
    assert parse("(1 + 2) * 3").evaluate(_row()) == 9
    assert parse("2 ^ 3 ^ 2").evaluate(_row()) == 512
    assert parse("-2 ^ 2").evaluate(_row()) == -4


def test_division_by_zero_yields_null() -> None:
    """除零与对零取模返回空值而不是抛错。"""

    assert parse("value / 0").evaluate(_row(value=3)) is None
    assert parse("value % 0").evaluate(_row(value=3)) is None


def test_logical_operators_use_three_valued_logic() -> None:
    """and/or 对空值采用三值逻辑。"""

    assert parse("flag and false").evaluate(_row(flag=None)) is False
    assert parse("flag or true").evaluate(_row(flag=None)) is True
    assert parse("flag and true").evaluate(_row(flag=None)) is None
    assert parse("not (value > 2)").evaluate(_row(value=1)) is True


def test_aggregates_evaluate_over_group_rows() -> None:
    """聚合函数逐行求值，普通字段读取首行。"""

    group = _group({"category": "b", "value": 3}, {"category": "b", "value": 7})
    assert parse("avg(value)").evaluate(group) == 5
    assert parse("sum(value) + max(value)").evaluate(group) == 17
    assert parse("count()").evaluate(group) == 2
    assert parse("category").evaluate(group) == "b"
    assert parse("avg(value)").evaluate(_group()) is None


def test_unknown_column_raises_reference_error() -> None:
    """引用未声明的字段抛出 UnknownColumnError。"""

    with pytest.raises(UnknownColumnError):
        parse("missing + 1").evaluate(_row(value=1))


def test_type_mismatch_raises_expression_type_error() -> None:
    """字符串与数值相加属于类型错误。"""

    with pytest.raises(ExpressionTypeError):
        parse("category + 1").evaluate(_row(category="a"))
    with pytest.raises(ExpressionTypeError):
        parse("category < 1").evaluate(_row(category="a"))


@pytest.mark.parametrize(
    "text",
    ["", "1 +", "(1 + 2", "1 < 2 < 3", "unknown_fn(value)", "avg()", "value $ 2"],
)
def test_invalid_expressions_fail_to_parse(text: str) -> None:
    """非法文本在解析阶段失败。"""

    with pytest.raises(ExpressionParseError):
        parse(text)


def test_string_form_parses_back_to_same_value() -> None:
    """语法树的字符串形式可以再次解析并得到相同结果。"""

    row = _row(value=4, category="x y")
    for text in ["1 - (2 - value)", "`category` + 'z'", "(value + 1) * 2", "not (value > 2 and value < 9)"]:
        expression = parse(text)
        assert parse(str(expression)).evaluate(row) == expression.evaluate(row)


def test_text_template_interpolates_and_formats() -> None:
    """文本模板插值并按格式串输出数值。"""

    template = parse_text_expression("${category}: ${avg(value)}{.1f}")
    group = _group({"category": "b", "value": 3}, {"category": "b", "value": 4})
    assert template.evaluate(group) == "b: 3.5"
    assert str(template) == "${category}: ${avg(value)}{.1f}"


def test_text_template_escape_and_errors() -> None:
    """``$\\{`` 表示字面量，未闭合的插值与非法格式串报错。"""

    assert parse_text_expression("cost $\\{x}").evaluate(_row()) == "cost ${x}"
    with pytest.raises(ExpressionParseError):
        parse_text_expression("${value")
    with pytest.raises(ExpressionParseError):
        parse_text_expression("${value}{.2q}")


def test_format_value_variants() -> None:
    """格式化覆盖整数、千分位、百分比与空值。"""

    assert format_value(None) == ""
    assert format_value(3.0) == "3"
    assert format_value(1234.5, ",.2f") == "1,234.50"
    assert format_value(0.25, "%") == "25%"
    assert format_value(2.6, "d") == "3"
    assert format_value("text", ".1f") == "text"
