"""周期记录器：记录每次“变更 → 求解 → 通知”周期并输出契约对象。"""

from __future__ import annotations

import json
import logging
from dataclasses import dataclass
from datetime import datetime
from typing import Any, Dict, List, Optional, Sequence
from uuid import uuid4

from apps.chart_engine.contracts.cycle import CycleRecord
from apps.chart_engine.infra.clock import UtcClock

LOGGER = logging.getLogger(__name__)

_STATUSES = {"success", "partial", "failed", "noop"}


@dataclass
class _CycleRuntime:
    """周期运行期数据，用于在完成前累积信息。"""

    cycle_id: str
    action: str
    started_at: datetime
    subgraph_count: int = 0
    failed_subgraphs: int = 0


class CycleRecorder:
    """记录周期执行情况，按完成顺序保留最近的若干条记录。"""

    def __init__(self, clock: UtcClock, *, limit: int = 200) -> None:
        """初始化记录器。

        Parameters
        ----------
        clock: UtcClock
            提供时间戳的统一时钟。
        limit: int
            保留的已完成记录数量上限。
        """

        if limit <= 0:
            raise ValueError("limit 必须为正整数。")
        self._clock = clock
        self._limit = limit
        self._active: Dict[str, _CycleRuntime] = {}
        self._records: List[CycleRecord] = []

    @staticmethod
    def _serialize_detail(detail: Optional[Any]) -> Optional[str]:
        """将附加信息序列化为 JSON 字符串。"""

        if detail is None:
            return None
        if isinstance(detail, str):
            return detail
        try:
            return json.dumps(detail, ensure_ascii=True, separators=(",", ":"), sort_keys=True)
        except TypeError:
            fallback = {"detail": str(detail)}
            return json.dumps(fallback, ensure_ascii=True, separators=(",", ":"), sort_keys=True)

    def start_cycle(self, action: str) -> str:
        """开始一个周期并返回标识。"""

        cycle_id = str(uuid4())
        self._active[cycle_id] = _CycleRuntime(cycle_id=cycle_id, action=action, started_at=self._clock.now())
        LOGGER.debug("Cycle started", extra={"cycle_id": cycle_id, "action": action})
        return cycle_id

    def record_solve(self, cycle_id: str, *, subgraph_count: int, failed_subgraphs: int) -> None:
        """累加一次求解的子图计数。"""

        if cycle_id not in self._active:
            message = f"cycle_id={cycle_id} 不存在，无法记录求解。"
            raise KeyError(message)
        runtime = self._active[cycle_id]
        runtime.subgraph_count += subgraph_count
        runtime.failed_subgraphs += failed_subgraphs

    def finish_cycle(
        self,
        cycle_id: str,
        status: str,
        *,
        events: Sequence[str] = (),
        error_class: Optional[str] = None,
        detail: Optional[Any] = None,
    ) -> CycleRecord:
        """结束周期并返回对应的契约对象。

        Parameters
        ----------
        cycle_id: str
            需要结束的周期标识。
        status: str
            ``success``、``partial``、``failed`` 或 ``noop``。
        events: Sequence[str]
            周期结束时派发的通知序列。
        error_class: Optional[str]
            失败时的错误分类。
        detail: Optional[Any]
            可序列化的附加信息。

        Returns
        -------
        CycleRecord
            可用于序列化的周期记录。
        """

        if status not in _STATUSES:
            message = f"status={status} 非法，仅支持 {'/'.join(sorted(_STATUSES))}。"
            raise ValueError(message)
        runtime = self._active.pop(cycle_id, None)
        if runtime is None:
            message = f"cycle_id={cycle_id} 不存在，无法结束。"
            raise KeyError(message)
        completed_at = self._clock.now()
        duration_ms = self._clock.elapsed_ms(runtime.started_at, completed_at)
        ratio = 1.0
        if runtime.subgraph_count:
            ratio = (runtime.subgraph_count - runtime.failed_subgraphs) / runtime.subgraph_count
        record = CycleRecord(
            cycle_id=runtime.cycle_id,
            action=runtime.action,
            status=status,
            started_at=runtime.started_at,
            duration_ms=duration_ms,
            subgraph_count=runtime.subgraph_count,
            failed_subgraphs=runtime.failed_subgraphs,
            failure_isolation_ratio=ratio,
            error_class=error_class,
            detail=self._serialize_detail(detail=detail),
            events=list(events),
        )
        self._records.append(record)
        if len(self._records) > self._limit:
            del self._records[: len(self._records) - self._limit]
        log = LOGGER.warning if status in {"partial", "failed"} else LOGGER.info
        log(
            "Cycle finished",
            extra={
                "cycle_id": cycle_id,
                "action": runtime.action,
                "status": status,
                "duration_ms": duration_ms,
                "failed_subgraphs": runtime.failed_subgraphs,
            },
        )
        return record

    @property
    def records(self) -> List[CycleRecord]:
        return list(self._records)
