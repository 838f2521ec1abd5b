"""编辑会话缓存：以 session_id 为键保存 ChartStore。"""

from __future__ import annotations

import logging
import uuid
from dataclasses import dataclass, field
from collections import OrderedDict
from typing import Optional

from apps.chart_engine.contracts.dataset import Dataset
from apps.chart_engine.contracts.specification import Chart
from apps.chart_engine.contracts.state import ChartState
from apps.chart_engine.infra.clock import UtcClock
from apps.chart_engine.infra.settings import Settings
from apps.chart_engine.infra.tracing import CycleRecorder
from apps.chart_engine.services.chart_manager import ChartManager
from apps.chart_engine.services.chart_store import ChartStore
from apps.chart_engine.stores.dataset_store import DatasetStore

LOGGER = logging.getLogger(__name__)


def _generate_session_id() -> str:
    """生成随机 session_id。"""

    return f"chart_{uuid.uuid4()}"


@dataclass
class SessionRegistry:
    """进程内的编辑会话集合，数量超过 ``settings.session_limit`` 时淘汰最早创建的会话。"""

    settings: Settings
    clock: UtcClock
    _sessions: OrderedDict[str, ChartStore] = field(default_factory=OrderedDict)

    def create(
        self,
        *,
        dataset: Dataset,
        chart: Optional[Chart] = None,
        state: Optional[ChartState] = None,
        session_id: Optional[str] = None,
    ) -> str:
        """创建会话并完成首次求解，返回 session_id。

        Raises
        ------
        ValueError
            session_id 已存在。
        """

        session_id = session_id or _generate_session_id()
        if session_id in self._sessions:
            raise ValueError(f"session_id={session_id} 已存在。")
        manager = ChartManager(
            chart if chart is not None else Chart(),
            DatasetStore(dataset=dataset),
            state,
            tolerance=self.settings.solver_tolerance,
        )
        store = ChartStore(
            manager,
            recorder=CycleRecorder(self.clock, limit=self.settings.history_limit),
        )
        store.solve_constraints_and_update_graphics()
        store.events.flush()
        self._sessions[session_id] = store
        while len(self._sessions) > self.settings.session_limit:
            evicted, _ = self._sessions.popitem(last=False)
            LOGGER.info("Chart session evicted", extra={"session_id": evicted})
        LOGGER.info(
            "Chart session created",
            extra={"session_id": session_id, "dataset": dataset.name, "chart_id": manager.chart.id},
        )
        return session_id

    def require(self, session_id: str) -> ChartStore:
        """根据 session_id 获取会话，若不存在立即失败。"""

        store = self._sessions.get(session_id)
        if store is None:
            raise KeyError(f"session_id={session_id} 不存在。")
        return store

    def discard(self, session_id: str) -> None:
        self.require(session_id)
        del self._sessions[session_id]
