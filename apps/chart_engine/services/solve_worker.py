"""后台求解：在工作线程中求解图表副本，结果按代号交回 ChartStore。"""

from __future__ import annotations

import asyncio
import logging
from dataclasses import dataclass
from typing import Callable, Optional, Tuple

from apps.chart_engine.contracts.dataset import Dataset
from apps.chart_engine.contracts.specification import Chart
from apps.chart_engine.contracts.state import ChartState
from apps.chart_engine.services.chart_manager import ChartManager, SolveReport
from apps.chart_engine.solver.chart_solver import PresolveHint
from apps.chart_engine.stores.dataset_store import DatasetStore

LOGGER = logging.getLogger(__name__)


@dataclass(frozen=True)
class SolveRequest:
    """一次后台求解的输入，图表、状态与数据集都必须是副本。"""

    generation: int
    chart: Chart
    state: ChartState
    dataset: Dataset
    hints: Tuple[PresolveHint, ...] = ()
    mapping_only: bool = False


@dataclass(frozen=True)
class SolveResponse:
    """后台求解的结果。"""

    generation: int
    state: ChartState
    report: SolveReport


@dataclass(frozen=True)
class SolveFailure:
    """后台求解失败描述信息。"""

    generation: int
    error_type: str
    error_message: str


def run_solve(request: SolveRequest, *, tolerance: float = 1e-7) -> SolveResponse:
    """同步求解请求中的副本，不触碰任何共享状态。"""

    manager = ChartManager(
        request.chart,
        DatasetStore(dataset=request.dataset),
        request.state,
        tolerance=tolerance,
    )
    report = manager.solve_constraints_and_update_graphics(request.hints, mapping_only=request.mapping_only)
    return SolveResponse(generation=request.generation, state=manager.state, report=report)


class SolveWorker:
    """负责在线程池中执行求解，避免阻塞事件循环。"""

    def __init__(self, *, tolerance: float = 1e-7) -> None:
        self._tolerance = tolerance
        self.last_failure: Optional[SolveFailure] = None

    async def solve(self, request: SolveRequest) -> SolveResponse:
        """等待求解完成并返回结果。"""

        return await asyncio.to_thread(lambda: run_solve(request, tolerance=self._tolerance))

    async def submit(
        self,
        request: SolveRequest,
        on_result: Callable[[SolveResponse], None],
    ) -> "asyncio.Task[None]":
        """提交后台求解，完成后在事件循环线程中回调 ``on_result``。

        Returns
        -------
        asyncio.Task[None]
            后台任务，可用于等待或取消。
        """

        loop = asyncio.get_running_loop()

        async def runner() -> None:
            try:
                response = await asyncio.to_thread(lambda: run_solve(request, tolerance=self._tolerance))
            except Exception as exc:  # noqa: BLE001
                loop.call_soon_threadsafe(self._handle_failure, request.generation, exc)
                return
            on_result(response)

        LOGGER.debug("Solve submitted", extra={"generation": request.generation})
        return loop.create_task(runner())

    def _handle_failure(self, generation: int, exc: Exception) -> None:
        self.last_failure = SolveFailure(
            generation=generation,
            error_type=exc.__class__.__name__,
            error_message=str(exc),
        )
        LOGGER.warning(
            "Background solve failed",
            extra={"generation": generation, "error_type": exc.__class__.__name__},
        )
