"""表达式内置函数表。

聚合函数接收逐行求值得到的列向量，标量函数接收单个取值。
标量函数遇到空值参数直接返回空值；聚合函数忽略空值。
"""

from __future__ import annotations

import math
import statistics
from dataclasses import dataclass
from typing import Any, Callable, Dict, List, Optional

from apps.chart_engine.errors import ExpressionTypeError
from apps.chart_engine.expression.values import is_date, is_number, to_datetime, type_name


@dataclass(frozen=True)
class FunctionSpec:
    """内置函数描述。"""

    name: str
    impl: Callable[..., Any]
    aggregate: bool
    min_args: int
    max_args: int


def _numbers(name: str, values: List[Any]) -> List[float]:
    """过滤空值并确保其余取值均为数值。"""

    result: List[float] = []
    for value in values:
        if value is None:
            continue
        if not is_number(value):
            raise ExpressionTypeError(f"{name} 只接受数值，收到 {type_name(value)}。")
        result.append(float(value))
    return result


def _comparable(name: str, values: List[Any]) -> List[Any]:
    """过滤空值并确保其余取值类型一致。"""

    present = [value for value in values if value is not None]
    kinds = {type_name(value) for value in present}
    if len(kinds) > 1:
        raise ExpressionTypeError(f"{name} 的取值类型不一致: {sorted(kinds)}。")
    if kinds and kinds <= {"boolean"}:
        raise ExpressionTypeError(f"{name} 不接受布尔值。")
    return present


def _avg(values: List[Any]) -> Optional[float]:
    numbers = _numbers("avg", values)
    if not numbers:
        return None
    return sum(numbers) / len(numbers)


def _sum(values: List[Any]) -> float:
    return sum(_numbers("sum", values))


def _min(values: List[Any]) -> Any:
    present = _comparable("min", values)
    return min(present) if present else None


def _max(values: List[Any]) -> Any:
    present = _comparable("max", values)
    return max(present) if present else None


def _count(values: List[Any]) -> int:
    return sum(1 for value in values if value is not None)


def _first(values: List[Any]) -> Any:
    return values[0] if values else None


def _last(values: List[Any]) -> Any:
    return values[-1] if values else None


def _median(values: List[Any]) -> Optional[float]:
    numbers = _numbers("median", values)
    if not numbers:
        return None
    return float(statistics.median(numbers))


def _stdev(values: List[Any]) -> Optional[float]:
    numbers = _numbers("stdev", values)
    if not numbers:
        return None
    if len(numbers) < 2:
        return 0.0
    return statistics.stdev(numbers)


def _unary_math(name: str, fn: Callable[[float], float]) -> Callable[[Any], Optional[float]]:
    def impl(value: Any) -> Optional[float]:
        if value is None:
            return None
        if not is_number(value):
            raise ExpressionTypeError(f"{name} 只接受数值，收到 {type_name(value)}。")
        try:
            return fn(float(value))
        except ValueError as error:
            raise ExpressionTypeError(f"{name}({value}) 超出定义域。") from error

    return impl


def _round(value: Any, digits: Any = 0) -> Optional[float]:
    if value is None:
        return None
    if not is_number(value) or not is_number(digits):
        raise ExpressionTypeError("round 只接受数值参数。")
    return round(float(value), int(digits))


def _string_fn(name: str, fn: Callable[[str], Any]) -> Callable[[Any], Any]:
    def impl(value: Any) -> Any:
        if value is None:
            return None
        if not isinstance(value, str):
            raise ExpressionTypeError(f"{name} 只接受字符串，收到 {type_name(value)}。")
        return fn(value)

    return impl


def _date_part(name: str, attribute: str) -> Callable[[Any], Optional[int]]:
    def impl(value: Any) -> Optional[int]:
        if value is None:
            return None
        if not (is_date(value) or isinstance(value, str) or is_number(value)):
            raise ExpressionTypeError(f"{name} 只接受日期，收到 {type_name(value)}。")
        return getattr(to_datetime(value), attribute)

    return impl


def _date(value: Any) -> Any:
    if value is None:
        return None
    return to_datetime(value)


FUNCTIONS: Dict[str, FunctionSpec] = {}


def _register(name: str, impl: Callable[..., Any], *, aggregate: bool, min_args: int = 1, max_args: int = 1) -> None:
    FUNCTIONS[name] = FunctionSpec(
        name=name,
        impl=impl,
        aggregate=aggregate,
        min_args=min_args,
        max_args=max_args,
    )


_register("avg", _avg, aggregate=True)
_register("mean", _avg, aggregate=True)
_register("sum", _sum, aggregate=True)
_register("min", _min, aggregate=True)
_register("max", _max, aggregate=True)
_register("count", _count, aggregate=True, min_args=0)
_register("first", _first, aggregate=True)
_register("last", _last, aggregate=True)
_register("median", _median, aggregate=True)
_register("stdev", _stdev, aggregate=True)
_register("abs", _unary_math("abs", abs), aggregate=False)
_register("sqrt", _unary_math("sqrt", math.sqrt), aggregate=False)
_register("log", _unary_math("log", math.log), aggregate=False)
_register("exp", _unary_math("exp", math.exp), aggregate=False)
_register("floor", _unary_math("floor", lambda value: float(math.floor(value))), aggregate=False)
_register("ceil", _unary_math("ceil", lambda value: float(math.ceil(value))), aggregate=False)
_register("round", _round, aggregate=False, max_args=2)
_register("lower", _string_fn("lower", str.lower), aggregate=False)
_register("upper", _string_fn("upper", str.upper), aggregate=False)
_register("length", _string_fn("length", len), aggregate=False)
_register("year", _date_part("year", "year"), aggregate=False)
_register("month", _date_part("month", "month"), aggregate=False)
_register("day", _date_part("day", "day"), aggregate=False)
_register("date", _date, aggregate=False)
