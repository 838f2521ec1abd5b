"""表达式取值的类型判定与转换工具。"""

from __future__ import annotations

from datetime import date, datetime, timezone
from typing import Any, Optional

from apps.chart_engine.errors import ExpressionTypeError


def is_number(value: Any) -> bool:
    """判断取值是否为数值，布尔值不视为数值。"""

    return isinstance(value, (int, float)) and not isinstance(value, bool)


def is_date(value: Any) -> bool:
    """判断取值是否为日期时间。"""

    return isinstance(value, (datetime, date))


def type_name(value: Any) -> str:
    """返回取值在表达式语言中的类型名。"""

    if value is None:
        return "null"
    if isinstance(value, bool):
        return "boolean"
    if is_number(value):
        return "number"
    if is_date(value):
        return "date"
    if isinstance(value, str):
        return "string"
    return type(value).__name__


def to_datetime(value: Any) -> Optional[datetime]:
    """将日期、ISO 字符串或毫秒时间戳统一转换为 UTC datetime。"""

    if value is None:
        return None
    if isinstance(value, datetime):
        if value.tzinfo is None:
            return value.replace(tzinfo=timezone.utc)
        return value.astimezone(timezone.utc)
    if isinstance(value, date):
        return datetime(value.year, value.month, value.day, tzinfo=timezone.utc)
    if is_number(value):
        return datetime.fromtimestamp(float(value) / 1000.0, tz=timezone.utc)
    if isinstance(value, str):
        try:
            parsed = datetime.fromisoformat(value)
        except ValueError as error:
            raise ExpressionTypeError(f"无法将 {value!r} 解析为日期。") from error
        return to_datetime(parsed)
    raise ExpressionTypeError(f"{type_name(value)} 类型无法转换为日期。")


def to_epoch_ms(value: Any) -> Optional[float]:
    """将日期取值转换为毫秒时间戳，数值原样返回。"""

    if value is None:
        return None
    if is_number(value):
        return float(value)
    moment = to_datetime(value)
    return moment.timestamp() * 1000.0
