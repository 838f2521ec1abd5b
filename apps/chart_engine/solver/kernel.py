"""分层线性约束求解内核。

约束形如 ``bias + Σ a·x = Σ b·y``。求解按连通子图独立进行，每个子图内
先精确满足 HARD 等式，再在剩余零空间内按强度依次做最小二乘
（词典序最小二乘），最后以 STAY 层把自由变量拉回当前值，保证解唯一。
某个子图的 HARD 等式矛盾时，仅该子图失败并保留原值。
"""

from __future__ import annotations

import logging
from collections import defaultdict
from dataclasses import dataclass, field
from enum import IntEnum
from typing import Dict, Hashable, Iterable, List, Mapping, Sequence, Tuple

import numpy as np

from apps.chart_engine.errors import ConstraintError

LOGGER = logging.getLogger(__name__)

Term = Tuple[float, Hashable]

RESULT_DECIMALS = 9


class ConstraintStrength(IntEnum):
    """约束强度，数值越小优先级越高。"""

    HARD = 0
    STRONG = 1
    MEDIUM = 2
    WEAK = 3
    WEAKER = 4

    @classmethod
    def from_name(cls, name: str) -> "ConstraintStrength":
        return cls[name.upper()]


@dataclass(frozen=True)
class LinearConstraint:
    """线性等式 ``bias + Σ lhs = Σ rhs``。"""

    strength: ConstraintStrength
    bias: float = 0.0
    lhs: Tuple[Term, ...] = ()
    rhs: Tuple[Term, ...] = ()

    def coefficients(self) -> Dict[Hashable, float]:
        """合并同类项，返回移项到左侧后的系数。"""

        merged: Dict[Hashable, float] = defaultdict(float)
        for weight, variable in self.lhs:
            merged[variable] += weight
        for weight, variable in self.rhs:
            merged[variable] -= weight
        return dict(merged)

    def variables(self) -> List[Hashable]:
        return [variable for _, variable in self.lhs] + [variable for _, variable in self.rhs]


@dataclass(frozen=True)
class Hint:
    """预求解提示：希望变量取某个值。"""

    strength: ConstraintStrength
    variable: Hashable
    value: float


@dataclass
class SolveResult:
    """求解结果。

    Attributes
    ----------
    values: Dict[Hashable, float]
        所有变量的新值，失败子图中的变量保持原值。
    failures: List[ConstraintError]
        每个无解子图一个错误。
    subgraph_count: int
        含有约束或提示的子图数量。
    """

    values: Dict[Hashable, float]
    failures: List[ConstraintError] = field(default_factory=list)
    subgraph_count: int = 0


class _UnionFind:
    def __init__(self, items: Iterable[Hashable]) -> None:
        self.parent: Dict[Hashable, Hashable] = {item: item for item in items}

    def find(self, item: Hashable) -> Hashable:
        root = item
        while self.parent[root] != root:
            root = self.parent[root]
        while self.parent[item] != root:
            self.parent[item], item = root, self.parent[item]
        return root

    def union(self, first: Hashable, second: Hashable) -> None:
        a, b = self.find(first), self.find(second)
        if a != b:
            self.parent[b] = a


def _null_space(matrix: np.ndarray, tolerance: float) -> np.ndarray:
    """返回矩阵零空间的一组正交基（按列排列）。"""

    columns = matrix.shape[1]
    if matrix.shape[0] == 0:
        return np.eye(columns)
    _, singular, vt = np.linalg.svd(matrix, full_matrices=True)
    if singular.size == 0 or singular[0] == 0:
        return np.eye(columns)
    rank = int(np.sum(singular > tolerance * singular[0]))
    return vt[rank:].T


class _Component:
    """一个连通子图的分层求解。"""

    def __init__(
        self,
        variables: List[Hashable],
        current: Mapping[Hashable, float],
        tolerance: float,
    ) -> None:
        self.variables = variables
        self.index = {variable: position for position, variable in enumerate(variables)}
        self.current = np.array([float(current[variable]) for variable in variables])
        self.tolerance = tolerance
        self.tiers: Dict[int, List[Tuple[np.ndarray, float]]] = defaultdict(list)
        self.hard: List[Tuple[np.ndarray, float]] = []

    def add_constraint(self, constraint: LinearConstraint) -> None:
        row = np.zeros(len(self.variables))
        for variable, weight in constraint.coefficients().items():
            row[self.index[variable]] += weight
        target = -constraint.bias
        if constraint.strength == ConstraintStrength.HARD:
            self.hard.append((row, target))
        else:
            # 软约束层从 2 开始，HARD 提示占用第 1 层。
            self.tiers[int(constraint.strength) + 1].append((row, target))

    def add_hint(self, hint: Hint) -> None:
        row = np.zeros(len(self.variables))
        row[self.index[hint.variable]] = 1.0
        tier = 1 if hint.strength == ConstraintStrength.HARD else int(hint.strength) + 1
        self.tiers[tier].append((row, float(hint.value)))

    @staticmethod
    def _stack(rows: Sequence[Tuple[np.ndarray, float]], width: int) -> Tuple[np.ndarray, np.ndarray]:
        if not rows:
            return np.zeros((0, width)), np.zeros(0)
        return np.vstack([row for row, _ in rows]), np.array([target for _, target in rows])

    def solve(self) -> np.ndarray:
        width = len(self.variables)
        matrix, target = self._stack(self.hard, width)
        if matrix.shape[0]:
            solution, *_ = np.linalg.lstsq(matrix, target, rcond=None)
            residual = float(np.max(np.abs(matrix @ solution - target)))
            scale = 1.0 + float(np.max(np.abs(target)))
            if residual > self.tolerance * scale:
                message = f"HARD 约束子图无解，最大残差 {residual:.6g}。"
                raise ConstraintError(message, variables=tuple(self.variables))
        else:
            solution = np.zeros(width)
        basis = _null_space(matrix, self.tolerance)
        stay = [(np.eye(width)[position], value) for position, value in enumerate(self.current)]
        ordered = [self.tiers[tier] for tier in sorted(self.tiers)] + [stay]
        for rows in ordered:
            if basis.shape[1] == 0:
                break
            if not rows:
                continue
            tier_matrix, tier_target = self._stack(rows, width)
            projected = tier_matrix @ basis
            step, *_ = np.linalg.lstsq(projected, tier_target - tier_matrix @ solution, rcond=None)
            solution = solution + basis @ step
            basis = basis @ _null_space(projected, self.tolerance)
        return solution


def solve(
    variables: Mapping[Hashable, float],
    constraints: Sequence[LinearConstraint],
    hints: Sequence[Hint] = (),
    *,
    tolerance: float = 1e-7,
) -> SolveResult:
    """求解分层线性约束系统。

    Parameters
    ----------
    variables: Mapping[Hashable, float]
        变量及其当前值，当前值作为最低优先级的保持目标。
    constraints: Sequence[LinearConstraint]
        线性约束集合。
    hints: Sequence[Hint]
        预求解提示，HARD 提示在与 HARD 约束相容时被精确满足。
    tolerance: float
        判定 HARD 约束矛盾与矩阵秩的相对容差。

    Returns
    -------
    SolveResult
        新值与失败子图列表，失败不会影响其他子图。
    """

    for constraint in constraints:
        for variable in constraint.variables():
            if variable not in variables:
                raise KeyError(f"约束引用了未登记的变量 {variable!r}。")
    for hint in hints:
        if hint.variable not in variables:
            raise KeyError(f"提示引用了未登记的变量 {hint.variable!r}。")

    finder = _UnionFind(variables)
    for constraint in constraints:
        involved = constraint.variables()
        for other in involved[1:]:
            finder.union(involved[0], other)

    members: Dict[Hashable, List[Hashable]] = defaultdict(list)
    for variable in variables:
        members[finder.find(variable)].append(variable)
    grouped_constraints: Dict[Hashable, List[LinearConstraint]] = defaultdict(list)
    for constraint in constraints:
        involved = constraint.variables()
        if involved:
            grouped_constraints[finder.find(involved[0])].append(constraint)
    grouped_hints: Dict[Hashable, List[Hint]] = defaultdict(list)
    for hint in hints:
        grouped_hints[finder.find(hint.variable)].append(hint)

    values: Dict[Hashable, float] = {variable: float(value) for variable, value in variables.items()}
    failures: List[ConstraintError] = []
    subgraph_count = 0
    for root, component_variables in members.items():
        component_constraints = grouped_constraints.get(root, [])
        component_hints = grouped_hints.get(root, [])
        if not component_constraints and not component_hints:
            continue
        subgraph_count += 1
        component = _Component(component_variables, variables, tolerance)
        for constraint in component_constraints:
            component.add_constraint(constraint)
        for hint in component_hints:
            component.add_hint(hint)
        try:
            solution = component.solve()
        except ConstraintError as error:
            failures.append(error)
            LOGGER.warning(
                "Constraint subgraph unsolvable",
                extra={"variable_count": len(component_variables), "detail": str(error)},
            )
            continue
        for variable, value in zip(component_variables, solution):
            rounded = round(float(value), RESULT_DECIMALS)
            values[variable] = rounded + 0.0
    return SolveResult(values=values, failures=failures, subgraph_count=subgraph_count)
