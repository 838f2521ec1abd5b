"""分层线性约束求解内核测试。"""

from __future__ import annotations

import pytest

from apps.chart_engine.solver import ConstraintBuilder, ConstraintStrength, Hint, LinearConstraint, solve

HARD = ConstraintStrength.HARD


def test_hard_equality_with_hint() -> None:
    """HARD 等式精确满足，提示决定自由度。"""

    result = solve(
        {"a": 0.0, "b": 0.0},
        [LinearConstraint(strength=HARD, bias=5.0, lhs=((1.0, "b"),), rhs=((1.0, "a"),))],
        [Hint(strength=ConstraintStrength.STRONG, variable="b", value=10.0)],
    )
    assert result.values["b"] == pytest.approx(10.0)
    assert result.values["a"] == pytest.approx(15.0)
    assert result.failures == []
    assert result.subgraph_count == 1


def test_higher_tier_wins_over_lower_tier() -> None:
    """同一变量上的 STRONG 提示优先于 WEAK 提示。"""

    result = solve(
        {"x": 0.0},
        [],
        [
            Hint(strength=ConstraintStrength.WEAK, variable="x", value=1.0),
            Hint(strength=ConstraintStrength.STRONG, variable="x", value=2.0),
        ],
    )
    assert result.values["x"] == pytest.approx(2.0)


def test_free_variables_stay_at_current_values() -> None:
    """不受约束的自由度保持当前值。"""

    result = solve(
        {"x": 3.0, "y": 4.0},
        [LinearConstraint(strength=HARD, lhs=((1.0, "x"),), rhs=((1.0, "y"),), bias=1.0)],
    )
    # x + 1 = y，最小改动解在 (3, 4) 附近
    assert result.values["x"] + 1.0 == pytest.approx(result.values["y"])
    assert result.values["x"] == pytest.approx(3.0)


def test_unsatisfiable_subgraph_is_isolated() -> None:
    """矛盾的 HARD 子图失败并保留原值，其他子图照常求解。"""

    result = solve(
        {"a": 1.0, "b": 2.0, "c": 0.0},
        [
            LinearConstraint(strength=HARD, bias=-5.0, rhs=((1.0, "a"),)),
            LinearConstraint(strength=HARD, bias=-6.0, rhs=((1.0, "a"),)),
            LinearConstraint(strength=HARD, bias=-3.0, rhs=((1.0, "c"),)),
        ],
    )
    assert result.subgraph_count == 2
    assert len(result.failures) == 1
    assert result.values["a"] == 1.0
    assert result.values["c"] == pytest.approx(-3.0)


def test_unknown_variable_is_rejected() -> None:
    """约束引用未登记变量时立即失败。"""

    with pytest.raises(KeyError):
        solve({"a": 0.0}, [LinearConstraint(strength=HARD, lhs=((1.0, "a"),), rhs=((1.0, "b"),))])


def test_builder_writes_back_into_attribute_maps() -> None:
    """装配器把结果原地写回属性字典。"""

    left = {"x": 0.0}
    right = {"x": 10.0}
    builder = ConstraintBuilder()
    a = builder.attr("A", left, "x")
    b = builder.attr("B", right, "x")
    builder.equal(HARD, a, b, gap=5.0)
    builder.hint(HARD, b, 10.0)
    builder.solve()
    assert right["x"] == pytest.approx(10.0)
    assert left["x"] == pytest.approx(15.0)
