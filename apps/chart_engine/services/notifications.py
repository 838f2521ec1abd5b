"""变更周期结束时派发的通知。"""

from __future__ import annotations

import logging
from typing import Callable, Dict, List, Set

LOGGER = logging.getLogger(__name__)

EVENT_STRUCTURE = "structure"
EVENT_SELECTION = "selection"
EVENT_GRAPHICS = "graphics"
EVENT_ORDER = (EVENT_STRUCTURE, EVENT_SELECTION, EVENT_GRAPHICS)

Listener = Callable[[str], None]


class EventHub:
    """收集一个周期内的通知，周期结束时按固定顺序各派发一次。

    同一周期内重复触发的事件只派发一次，顺序固定为
    structure → selection → graphics。
    """

    def __init__(self) -> None:
        self._listeners: Dict[str, List[Listener]] = {event: [] for event in EVENT_ORDER}
        self._pending: Set[str] = set()

    @staticmethod
    def _check(event: str) -> None:
        if event not in EVENT_ORDER:
            raise ValueError(f"未知的通知类型 {event}，仅支持 {'/'.join(EVENT_ORDER)}。")

    def subscribe(self, event: str, listener: Listener) -> Callable[[], None]:
        """注册监听器，返回取消注册的函数。"""

        self._check(event)
        self._listeners[event].append(listener)

        def unsubscribe() -> None:
            if listener in self._listeners[event]:
                self._listeners[event].remove(listener)

        return unsubscribe

    def emit(self, event: str) -> None:
        self._check(event)
        self._pending.add(event)

    @property
    def pending(self) -> List[str]:
        return [event for event in EVENT_ORDER if event in self._pending]

    def discard(self) -> None:
        """丢弃尚未派发的通知，用于回滚失败的周期。"""

        self._pending.clear()

    def flush(self) -> List[str]:
        """派发并清空待发通知，返回实际派发的事件序列。"""

        events = self.pending
        self._pending.clear()
        for event in events:
            for listener in list(self._listeners[event]):
                listener(event)
        if events:
            LOGGER.debug("Notifications flushed", extra={"events": events})
        return events
