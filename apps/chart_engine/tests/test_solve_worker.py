"""后台求解与代号校验测试。"""

from __future__ import annotations

import asyncio

import pytest

from apps.chart_engine.contracts.specification import ValueMapping
from apps.chart_engine.services import SolveResponse, SolveWorker
from apps.chart_engine.services.solve_worker import run_solve


def test_run_solve_works_on_copies(empty_store) -> None:
    """后台求解只修改请求中的副本。"""

    empty_store.chart.mappings["width"] = ValueMapping(value=1000.0)
    request = empty_store.create_solve_request()
    response = run_solve(request)
    assert response.state.attributes["x2"] == pytest.approx(450.0)
    assert empty_store.chart_state.attributes["x2"] == pytest.approx(400.0)
    assert response.generation == empty_store.generation


def test_worker_result_applied_when_generation_matches(empty_store) -> None:
    """代号一致的结果被写回当前状态并派发 graphics 通知。"""

    events = []
    empty_store.events.subscribe("graphics", events.append)
    empty_store.chart.mappings["height"] = ValueMapping(value=800.0)
    worker = SolveWorker()
    response = asyncio.run(worker.solve(empty_store.create_solve_request()))
    assert empty_store.apply_worker_result(response) is True
    assert empty_store.chart_state.attributes["y2"] == pytest.approx(350.0)
    assert events == ["graphics"]


def test_stale_result_is_discarded(empty_store) -> None:
    """请求发出后又有新周期时，旧结果被丢弃。"""

    from apps.chart_engine.contracts.actions import SetChartSize

    request = empty_store.create_solve_request()
    empty_store.dispatch(SetChartSize(width=1200.0, height=600.0))
    response = run_solve(request)
    assert empty_store.apply_worker_result(response) is False
    assert empty_store.chart_state.attributes["x2"] == pytest.approx(550.0)


def test_submit_invokes_callback(empty_store) -> None:
    """submit 返回的任务完成后回调收到结果。"""

    received = []

    async def scenario() -> None:
        worker = SolveWorker()
        task = await worker.submit(empty_store.create_solve_request(), received.append)
        await task

    asyncio.run(scenario())
    assert len(received) == 1
    assert isinstance(received[0], SolveResponse)


def test_submit_records_failure(bar_store) -> None:
    """后台求解抛错时记录失败信息，不调用回调。"""

    request = bar_store.create_solve_request()
    request.dataset.tables.clear()
    received = []
    worker = SolveWorker()

    async def scenario() -> None:
        task = await worker.submit(request, received.append)
        await task
        await asyncio.sleep(0)

    asyncio.run(scenario())
    assert received == []
    assert worker.last_failure is not None
    assert worker.last_failure.error_type == "UnknownTableError"
    assert worker.last_failure.generation == request.generation
