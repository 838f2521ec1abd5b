"""变更周期记录契约，支撑回放与失败隔离指标。"""

from __future__ import annotations

from datetime import datetime, timezone
from typing import List, Literal, Optional

from pydantic import ConfigDict, Field, model_validator

from apps.chart_engine.contracts.metadata import ContractModel


def _ensure_utc(dt: datetime, field_name: str) -> None:
    """确保时间戳包含 UTC 时区。"""

    if dt.tzinfo is None:
        message = f"{field_name} 必须包含 UTC 时区。"
        raise ValueError(message)
    if dt.tzinfo.utcoffset(dt) != timezone.utc.utcoffset(dt):
        message = f"{field_name} 必须为 UTC 时间。"
        raise ValueError(message)


class CycleRecord(ContractModel):
    """一次“变更 → 求解 → 通知”周期的执行记录。"""

    model_config = ConfigDict(extra="forbid")

    @classmethod
    def schema_name(cls) -> str:
        """返回周期记录的 Schema 名称。"""

        return "cycle_record"

    cycle_id: str = Field(description="周期唯一标识。", min_length=1)
    action: str = Field(description="触发周期的动作名称。", min_length=1)
    status: Literal["success", "partial", "failed", "noop"] = Field(
        description="周期状态，partial 表示部分约束子图求解失败。",
    )
    started_at: datetime = Field(description="周期开始时间（UTC）。")
    duration_ms: int = Field(description="周期耗时（毫秒）。", ge=0)
    subgraph_count: int = Field(default=0, description="参与求解的约束子图数量。", ge=0)
    failed_subgraphs: int = Field(default=0, description="无解的子图数量。", ge=0)
    failure_isolation_ratio: float = Field(
        default=1.0,
        description="成功求解的子图占比，没有子图时为 1。",
        ge=0.0,
        le=1.0,
    )
    error_class: Optional[str] = Field(default=None, description="失败时的错误分类。")
    detail: Optional[str] = Field(default=None, description="附加说明。")
    events: List[str] = Field(default_factory=list, description="周期结束时派发的通知序列。")

    @model_validator(mode="after")
    def ensure_consistency(self) -> "CycleRecord":
        """校验时间与子图计数。"""

        _ensure_utc(dt=self.started_at, field_name="started_at")
        if self.failed_subgraphs > self.subgraph_count:
            raise ValueError("failed_subgraphs 不能大于 subgraph_count。")
        if self.status == "failed" and self.error_class is None:
            raise ValueError("status=failed 时必须提供 error_class。")
        return self
