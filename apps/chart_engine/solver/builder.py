"""约束装配器：登记属性变量、收集约束与提示，并把解写回属性字典。"""

from __future__ import annotations

from typing import Any, Dict, Iterable, List, Tuple

from apps.chart_engine.expression.values import is_number
from apps.chart_engine.solver.kernel import ConstraintStrength, Hint, LinearConstraint, SolveResult, Term, solve

AttributeMap = Dict[str, Any]
VariableKey = Tuple[str, str]


class ConstraintBuilder:
    """以 ``(owner, attribute)`` 为键登记求解变量。

    变量绑定到具体的属性字典，求解后原地覆盖其中的值，属性字典对象
    本身不会被替换。
    """

    def __init__(self) -> None:
        self.variables: Dict[VariableKey, float] = {}
        self.constraints: List[LinearConstraint] = []
        self.hints: List[Hint] = []
        self._bindings: Dict[VariableKey, Tuple[AttributeMap, str]] = {}

    def attr(self, owner: str, attributes: AttributeMap, name: str) -> VariableKey:
        """登记并返回变量键，非数值的当前值按 0 处理。"""

        key = (owner, name)
        if key not in self.variables:
            current = attributes.get(name)
            self.variables[key] = float(current) if is_number(current) else 0.0
            self._bindings[key] = (attributes, name)
        return key

    def linear(
        self,
        strength: ConstraintStrength,
        *,
        bias: float = 0.0,
        lhs: Iterable[Term] = (),
        rhs: Iterable[Term] = (),
    ) -> None:
        """添加 ``bias + Σ lhs = Σ rhs``。"""

        self.constraints.append(
            LinearConstraint(strength=strength, bias=float(bias), lhs=tuple(lhs), rhs=tuple(rhs)),
        )

    def equal(
        self,
        strength: ConstraintStrength,
        left: VariableKey,
        right: VariableKey,
        gap: float = 0.0,
    ) -> None:
        """添加 ``left = right + gap``。"""

        self.linear(strength, bias=-gap, lhs=[(1.0, left)], rhs=[(1.0, right)])

    def fix(self, strength: ConstraintStrength, key: VariableKey, value: float) -> None:
        """添加 ``key = value``。"""

        self.linear(strength, bias=float(value), rhs=[(1.0, key)])

    def hint(self, strength: ConstraintStrength, key: VariableKey, value: float) -> None:
        self.hints.append(Hint(strength=strength, variable=key, value=float(value)))

    def solve(self, tolerance: float = 1e-7) -> SolveResult:
        """求解并把新值写回绑定的属性字典。"""

        result = solve(self.variables, self.constraints, self.hints, tolerance=tolerance)
        for key, value in result.values.items():
            attributes, name = self._bindings[key]
            attributes[name] = value
        return result
