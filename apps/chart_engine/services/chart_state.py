"""图表规范的序列化、反序列化与稳定哈希。"""

from __future__ import annotations

import hashlib
import json
from typing import Any, Dict, Optional, Tuple

from apps.chart_engine.contracts.metadata import SCHEMA_VERSION
from apps.chart_engine.contracts.specification import Chart
from apps.chart_engine.contracts.state import ChartState


def compute_chart_hash(*, chart: Chart) -> str:
    """计算图表规范的稳定哈希值，用于状态一致性校验。

    Parameters
    ----------
    chart: Chart
        需要计算哈希的图表规范。

    Returns
    -------
    str
        经过排序后的 SHA256 哈希字符串。
    """

    # 序列化时按键排序，确保不同运行环境得到一致字符串。
    payload = chart.model_dump(mode="json")
    canonical = json.dumps(payload, sort_keys=True, separators=(",", ":"))
    digest = hashlib.sha256(canonical.encode("utf-8")).hexdigest()
    return digest


def serialize_chart(*, chart: Chart, state: Optional[ChartState] = None) -> Dict[str, Any]:
    """把图表规范（及可选的状态树）转换为可写入 JSON 的字典。

    Parameters
    ----------
    chart: Chart
        图表规范。
    state: Optional[ChartState]
        求解后的状态树，为空时只输出规范。

    Returns
    -------
    Dict[str, Any]
        包含 ``schema_version``、``chart`` 与可选 ``state`` 的字典。
    """

    payload: Dict[str, Any] = {
        "schema_version": SCHEMA_VERSION,
        "chart": chart.model_dump(mode="json"),
    }
    if state is not None:
        payload["state"] = state.model_dump(mode="json")
    return payload


def deserialize_chart(payload: Dict[str, Any]) -> Tuple[Chart, Optional[ChartState]]:
    """从 :func:`serialize_chart` 的输出还原图表规范与状态树。

    Raises
    ------
    ValueError
        缺少 ``chart`` 字段或版本号不一致。
    """

    if "chart" not in payload:
        raise ValueError("序列化内容缺少 chart 字段。")
    version = payload.get("schema_version", SCHEMA_VERSION)
    if version != SCHEMA_VERSION:
        message = f"不支持的 schema_version {version}，当前版本为 {SCHEMA_VERSION}。"
        raise ValueError(message)
    chart = Chart.model_validate(payload["chart"])
    raw_state = payload.get("state")
    state = ChartState.model_validate(raw_state) if raw_state is not None else None
    return chart, state
