"""图表求解引擎的异常分类。

所有异常都继承自 :class:`ChartEngineError`，同时继承与语义最接近的内置
异常，便于调用方沿用 ``KeyError``/``ValueError`` 的既有处理分支：

* 引用类错误（元素、Scale、数据表、字段缺失）继承 ``KeyError``。
* 表达式解析与类型错误继承 ``ValueError``/``TypeError``。
* 值域推断错误继承 ``ValueError``。
* 约束子图矛盾继承 ``RuntimeError``，只在对应子图内隔离。
"""

from __future__ import annotations


class ChartEngineError(Exception):
    """引擎内所有业务异常的基类。"""


class ChartReferenceError(ChartEngineError, KeyError):
    """变更目标（元素、Scale、属性）不存在。"""

    def __str__(self) -> str:
        # KeyError 默认会给消息加引号，这里保持原样输出。
        return str(self.args[0]) if self.args else ""


class UnknownTableError(ChartReferenceError):
    """数据集中不存在指定的数据表。"""


class UnknownColumnError(ChartReferenceError):
    """数据表中不存在表达式引用的字段。"""


class ConstraintError(ChartEngineError, RuntimeError):
    """某个 HARD 约束子图无解。"""

    def __init__(self, message: str, variables: tuple = ()) -> None:
        super().__init__(message)
        self.variables = variables


class DomainError(ChartEngineError, ValueError):
    """Scale 推断时值向量为空或类型不一致。"""


class EmptyDomainError(DomainError):
    """值向量为空或全部为空值。"""


class ExpressionError(ChartEngineError, ValueError):
    """表达式解析或求值失败。"""


class ExpressionParseError(ExpressionError):
    """表达式文本格式非法。"""


class ExpressionTypeError(ExpressionError, TypeError):
    """运算符作用于不兼容的取值类型。"""
