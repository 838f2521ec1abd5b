"""元素类注册表。

每个元素类以 ``class_id`` 注册，描述属性表、默认属性、初始状态与内在
约束。ChartManager 与求解器只通过注册表做多态分派。
"""

from __future__ import annotations

import copy
from dataclasses import dataclass, field
from typing import Any, Callable, ClassVar, Dict, List, Optional, Sequence, Type

from apps.chart_engine.contracts.state import GlyphState
from apps.chart_engine.errors import ChartReferenceError
from apps.chart_engine.expression.values import is_number
from apps.chart_engine.solver.builder import AttributeMap, ConstraintBuilder, VariableKey
from apps.chart_engine.solver.kernel import ConstraintStrength


@dataclass(frozen=True)
class AttributeDescription:
    """属性描述。

    Attributes
    ----------
    type: str
        ``number``、``color``、``boolean``、``text``、``string`` 或 ``enum``。
    default: Any
        新建状态时的初值。
    solver_exclude: bool
        为 True 时属性不参与约束求解，只由映射或提示直接写入。
    """

    type: str
    default: Any = None
    solver_exclude: bool = False

    @property
    def solvable(self) -> bool:
        return self.type == "number" and not self.solver_exclude


def number(default: float = 0.0, *, solver_exclude: bool = False) -> AttributeDescription:
    return AttributeDescription(type="number", default=default, solver_exclude=solver_exclude)


def excluded(kind: str, default: Any = None) -> AttributeDescription:
    return AttributeDescription(type=kind, default=default, solver_exclude=True)


@dataclass
class GlyphInstance:
    """绘图区内的一个 glyph 实例及其变量前缀。"""

    owner: str
    state: GlyphState


@dataclass
class ConstraintContext:
    """传给元素类的约束装配上下文。

    ``evaluate(row_indices, expression)`` 在给定行组上求值表达式，
    绘图区据此计算 glyph 的布局位置。
    """

    builder: ConstraintBuilder
    owner: str
    properties: Dict[str, Any]
    attributes: AttributeMap
    glyphs: List[GlyphInstance] = field(default_factory=list)
    glyph_class: Optional[Type["ElementClass"]] = None
    evaluate: Optional[Callable[[Sequence[int], str], Any]] = None

    def var(self, name: str) -> VariableKey:
        return self.builder.attr(self.owner, self.attributes, name)

    def constant(self, name: str) -> float:
        """不参与求解的数值属性的当前值，缺失或非数值时为 0。"""

        value = self.attributes.get(name)
        return float(value) if is_number(value) else 0.0

    def glyph_var(self, glyph: GlyphInstance, name: str) -> VariableKey:
        return self.builder.attr(glyph.owner, glyph.state.attributes, name)

    def hard(self, *, bias: float = 0.0, lhs=(), rhs=()) -> None:
        self.builder.linear(ConstraintStrength.HARD, bias=bias, lhs=lhs, rhs=rhs)


class ElementClass:
    """元素类基类。"""

    class_id: ClassVar[str] = ""
    display_name: ClassVar[str] = "Object"
    attributes: ClassVar[Dict[str, AttributeDescription]] = {}
    default_properties: ClassVar[Dict[str, Any]] = {}

    @classmethod
    def create_properties(cls) -> Dict[str, Any]:
        """返回默认属性的深拷贝。"""

        return copy.deepcopy(cls.default_properties)

    @classmethod
    def initialize_state(cls, attributes: AttributeMap, properties: Optional[Dict[str, Any]] = None) -> None:
        """为缺失的属性写入默认值，已有值保持不变。"""

        for name, description in cls.attributes.items():
            if name not in attributes:
                attributes[name] = copy.deepcopy(description.default)

    @classmethod
    def build_constraints(cls, context: ConstraintContext) -> None:
        """添加类内在约束，默认没有。"""

    @classmethod
    def is_solvable(cls, attribute: str) -> bool:
        description = cls.attributes.get(attribute)
        return description is not None and description.solvable


ELEMENT_CLASSES: Dict[str, Type[ElementClass]] = {}


def register(cls: Type[ElementClass]) -> Type[ElementClass]:
    """注册元素类，类标识重复时抛出 ValueError。"""

    if cls.class_id in ELEMENT_CLASSES:
        raise ValueError(f"元素类 {cls.class_id} 重复注册。")
    ELEMENT_CLASSES[cls.class_id] = cls
    return cls


def get_class(class_id: str) -> Type[ElementClass]:
    """按类标识取元素类。

    Raises
    ------
    ChartReferenceError
        类标识未注册。
    """

    cls = ELEMENT_CLASSES.get(class_id)
    if cls is None:
        raise ChartReferenceError(f"未注册的元素类 {class_id}。")
    return cls


def is_type(class_id: str, family: str) -> bool:
    """判断类标识是否属于某个族，例如 ``is_type("mark.rect", "mark")``。"""

    return class_id == family or class_id.startswith(f"{family}.")
