"""类别 Scale：将离散取值映射为稳定序号。"""

from __future__ import annotations

from typing import Any, Dict, List, Optional, Sequence

from apps.chart_engine.errors import DomainError, EmptyDomainError
from apps.chart_engine.expression.values import is_number, type_name
from apps.chart_engine.stores.dataset_store import group_key


def _natural_key(value: Any) -> tuple:
    if is_number(value):
        return (0, float(value), "")
    return (1, 0.0, str(value))


class CategoricalScale:
    """类别 Scale，``domain`` 为类别到序号的映射，序号即排序位置。"""

    def __init__(self) -> None:
        self.domain: Dict[str, int] = {}

    @property
    def length(self) -> int:
        return len(self.domain)

    @property
    def categories(self) -> List[str]:
        return sorted(self.domain, key=self.domain.__getitem__)

    def infer_parameters(
        self,
        values: Sequence[Any],
        order_mode: str = "alphabetically",
        order: Optional[Sequence[str]] = None,
    ) -> "CategoricalScale":
        """根据值向量推断类别顺序。

        Parameters
        ----------
        values: Sequence[Any]
            分组取值，空值会被忽略。
        order_mode: str
            ``alphabetically`` 按字典序，``occurrence`` 按首次出现，
            ``order`` 按自然顺序（数值按大小）。
        order: Optional[Sequence[str]]
            显式顺序，存在时优先，未列出的类别按首次出现追加在末尾。

        Raises
        ------
        EmptyDomainError
            值向量为空或全部为空值。
        """

        present = [value for value in values if value is not None]
        if not present:
            raise EmptyDomainError("类别 Scale 的值向量为空。")
        kinds = {type_name(value) for value in present}
        if len(kinds) > 1:
            raise DomainError(f"类别取值类型不一致: {sorted(kinds)}。")
        seen: Dict[str, Any] = {}
        for value in present:
            seen.setdefault(group_key(value), value)
        if order:
            ordered = [key for key in order if key in seen]
            ordered.extend(key for key in seen if key not in set(order))
        elif order_mode == "occurrence":
            ordered = list(seen)
        elif order_mode == "order":
            ordered = sorted(seen, key=lambda key: _natural_key(seen[key]))
        elif order_mode == "alphabetically":
            ordered = sorted(seen)
        else:
            raise DomainError(f"不支持的类别排序方式 {order_mode}。")
        self.domain = {key: index for index, key in enumerate(ordered)}
        return self

    def get(self, value: Any) -> Optional[int]:
        """返回取值对应的序号，不在定义域内时返回 None。"""

        if value is None:
            return None
        return self.domain.get(group_key(value))
