"""约束求解组件导出。"""

from apps.chart_engine.solver.builder import ConstraintBuilder
from apps.chart_engine.solver.kernel import ConstraintStrength, Hint, LinearConstraint, SolveResult, solve

__all__ = [
    "ConstraintBuilder",
    "ConstraintStrength",
    "Hint",
    "LinearConstraint",
    "SolveResult",
    "solve",
]
