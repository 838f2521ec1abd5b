"""图表引擎 API 请求与响应模型。"""

from __future__ import annotations

from typing import Dict, List, Optional

from pydantic import BaseModel, ConfigDict, Field

from apps.chart_engine.contracts.actions import Action
from apps.chart_engine.contracts.cycle import CycleRecord
from apps.chart_engine.contracts.dataset import Dataset
from apps.chart_engine.contracts.specification import Chart
from apps.chart_engine.contracts.state import ChartState


class ApiModel(BaseModel):
    """统一约束的 API 模型基类，强制禁止额外字段。"""

    model_config = ConfigDict(extra="forbid")


class SessionCreateRequest(ApiModel):
    """创建编辑会话的请求。"""

    dataset: Dataset = Field(description="会话使用的数据集。")
    chart: Optional[Chart] = Field(default=None, description="初始图表规范，缺省时创建空图表。")
    state: Optional[ChartState] = Field(default=None, description="可选的初始状态树。")
    session_id: Optional[str] = Field(
        default=None,
        description="可选的自定义会话 ID，缺省时自动生成。",
    )


class SessionResponse(ApiModel):
    """会话快照响应。"""

    session_id: str = Field(description="会话标识。", min_length=1)
    chart: Chart = Field(description="当前图表规范。")
    state: ChartState = Field(description="当前状态树。")
    chart_hash: str = Field(description="图表规范的稳定哈希。", min_length=1)
    selection: Optional[str] = Field(default=None, description="当前选中的元素标识。")


class ActionRequest(ApiModel):
    """提交编辑动作的请求。"""

    action: Action = Field(description="编辑动作。")


class ActionResponse(ApiModel):
    """编辑动作执行结果。"""

    cycle: CycleRecord = Field(description="本次周期的执行记录。")
    chart_hash: str = Field(description="执行后图表规范的哈希。", min_length=1)
    state: ChartState = Field(description="执行后的状态树。")


class CycleListResponse(ApiModel):
    """会话周期记录列表。"""

    session_id: str = Field(description="会话标识。", min_length=1)
    cycles: List[CycleRecord] = Field(description="按完成顺序排列的周期记录。")


class SchemaExportResponse(ApiModel):
    """JSONSchema 批量导出响应。"""

    files: List[str] = Field(description="已落盘的 Schema 文件路径。")
    schemas: Dict[str, object] = Field(description="按 schema_name 索引的 JSONSchema 内容。")
