"""连续 Scale：数值线性 Scale 与日期 Scale。"""

from __future__ import annotations

from typing import Any, Optional, Sequence

from apps.chart_engine.errors import DomainError, EmptyDomainError
from apps.chart_engine.expression.values import is_date, is_number, to_epoch_ms, type_name


class LinearScale:
    """线性 Scale，定义域为值向量的 ``[min, max]``。"""

    kind = "numerical"

    def __init__(self, domain_min: float = 0.0, domain_max: float = 1.0) -> None:
        self.domain_min = domain_min
        self.domain_max = domain_max

    def _coerce(self, value: Any) -> float:
        if not is_number(value):
            raise DomainError(f"线性 Scale 只接受数值，收到 {type_name(value)}。")
        return float(value)

    def infer_parameters(self, values: Sequence[Any]) -> "LinearScale":
        """推断定义域。

        Raises
        ------
        EmptyDomainError
            值向量为空或全部为空值。
        DomainError
            值向量中存在非数值取值。
        """

        present = [self._coerce(value) for value in values if value is not None]
        if not present:
            raise EmptyDomainError(f"{type(self).__name__} 的值向量为空。")
        self.domain_min = min(present)
        self.domain_max = max(present)
        return self

    def fraction(self, value: Any) -> Optional[float]:
        """返回取值在定义域中的相对位置，定义域退化时返回 0.5。"""

        if value is None:
            return None
        number = self._coerce(value)
        span = self.domain_max - self.domain_min
        if span == 0:
            return 0.5
        return (number - self.domain_min) / span


class DateScale(LinearScale):
    """日期 Scale，定义域以 UTC 毫秒时间戳保存。"""

    kind = "temporal"

    def _coerce(self, value: Any) -> float:
        if is_number(value) or is_date(value) or isinstance(value, str):
            try:
                return to_epoch_ms(value)
            except ValueError as error:
                raise DomainError(f"无法将 {value!r} 解释为日期。") from error
        raise DomainError(f"日期 Scale 只接受日期，收到 {type_name(value)}。")
