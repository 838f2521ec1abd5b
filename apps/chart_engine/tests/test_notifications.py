"""通知汇总与派发顺序测试。"""

from __future__ import annotations

import pytest

from apps.chart_engine.services import EventHub


def test_flush_orders_and_deduplicates_events() -> None:
    """同一周期内的重复通知只派发一次，顺序固定。"""

    hub = EventHub()
    received = []
    for event in ("structure", "selection", "graphics"):
        hub.subscribe(event, received.append)
    for event in ("graphics", "selection", "graphics", "structure"):
        hub.emit(event)
    assert hub.pending == ["structure", "selection", "graphics"]
    assert hub.flush() == ["structure", "selection", "graphics"]
    assert received == ["structure", "selection", "graphics"]
    assert hub.flush() == []


def test_discard_drops_pending_events() -> None:
    hub = EventHub()
    received = []
    hub.subscribe("graphics", received.append)
    hub.emit("graphics")
    hub.discard()
    assert hub.flush() == []
    assert received == []


def test_unsubscribe_and_unknown_event() -> None:
    """取消注册后不再收到通知，未知事件名被拒绝。"""

    hub = EventHub()
    received = []
    unsubscribe = hub.subscribe("selection", received.append)
    unsubscribe()
    unsubscribe()
    hub.emit("selection")
    hub.flush()
    assert received == []
    with pytest.raises(ValueError):
        hub.emit("layout")
    with pytest.raises(ValueError):
        hub.subscribe("layout", received.append)


def test_dispatch_flushes_once_per_cycle(bar_store) -> None:
    """一个动作周期内多次求解只派发一次 graphics。"""

    from apps.chart_engine.contracts.actions import AddChartElement

    received = []
    for event in ("structure", "selection", "graphics"):
        bar_store.events.subscribe(event, received.append)
    record = bar_store.dispatch(AddChartElement(class_id="legend.numerical"))
    assert received == ["structure", "selection", "graphics"]
    assert record.events == received
