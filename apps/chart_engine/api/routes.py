"""FastAPI 路由定义。"""

from __future__ import annotations

import json
import logging
from typing import List

from fastapi import APIRouter, Depends, HTTPException, status

from apps.chart_engine.api.dependencies import get_session_registry, get_settings
from apps.chart_engine.api.schemas import (
    ActionRequest,
    ActionResponse,
    CycleListResponse,
    SchemaExportResponse,
    SessionCreateRequest,
    SessionResponse,
)
from apps.chart_engine.contracts.actions import MappingSeed, ScaleHints
from apps.chart_engine.contracts.cycle import CycleRecord
from apps.chart_engine.contracts.dataset import Dataset
from apps.chart_engine.contracts.specification import Chart, Scale
from apps.chart_engine.contracts.state import ChartState
from apps.chart_engine.errors import ChartEngineError
from apps.chart_engine.infra.settings import Settings
from apps.chart_engine.services.chart_state import compute_chart_hash
from apps.chart_engine.services.chart_store import ChartStore
from apps.chart_engine.services.sessions import SessionRegistry

LOGGER = logging.getLogger(__name__)

router = APIRouter()

SCHEMA_EXPORT_MODELS: dict[str, type] = {
    Dataset.schema_name(): Dataset,
    Chart.schema_name(): Chart,
    ChartState.schema_name(): ChartState,
    Scale.schema_name(): Scale,
    ScaleHints.schema_name(): ScaleHints,
    MappingSeed.schema_name(): MappingSeed,
    CycleRecord.schema_name(): CycleRecord,
}


def _record_error(endpoint: str, *, error_type: str, status_code: int) -> None:
    """记录错误日志。"""

    LOGGER.warning(
        "API 调用失败",
        extra={
            "endpoint": endpoint,
            "error_type": error_type,
            "status_code": status_code,
        },
    )


def _snapshot(session_id: str, store: ChartStore) -> SessionResponse:
    """构造会话快照响应。"""

    return SessionResponse(
        session_id=session_id,
        chart=store.chart,
        state=store.chart_state,
        chart_hash=compute_chart_hash(chart=store.chart),
        selection=store.selection,
    )


def _require_session(registry: SessionRegistry, session_id: str, endpoint: str) -> ChartStore:
    """获取会话，不存在时返回 404。"""

    try:
        return registry.require(session_id)
    except KeyError as error:
        _record_error(endpoint, error_type=error.__class__.__name__, status_code=status.HTTP_404_NOT_FOUND)
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail=str(error)) from error


@router.post("/api/charts", response_model=SessionResponse)
def create_chart_session(
    request: SessionCreateRequest,
    registry: SessionRegistry = Depends(get_session_registry),
) -> SessionResponse:
    """创建编辑会话并返回首次求解后的快照。"""

    endpoint = "api_charts_create"
    try:
        session_id = registry.create(
            dataset=request.dataset,
            chart=request.chart,
            state=request.state,
            session_id=request.session_id,
        )
    except KeyError as error:
        _record_error(endpoint, error_type=error.__class__.__name__, status_code=status.HTTP_404_NOT_FOUND)
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail=str(error)) from error
    except ValueError as error:
        _record_error(endpoint, error_type=error.__class__.__name__, status_code=status.HTTP_400_BAD_REQUEST)
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail=str(error)) from error
    store = registry.require(session_id)
    return _snapshot(session_id, store)


@router.get("/api/charts/{session_id}", response_model=SessionResponse)
def get_chart_session(
    session_id: str,
    registry: SessionRegistry = Depends(get_session_registry),
) -> SessionResponse:
    """读取会话快照。"""

    store = _require_session(registry, session_id, "api_charts_get")
    return _snapshot(session_id, store)


@router.get("/api/charts/{session_id}/state", response_model=ChartState)
def get_chart_state(
    session_id: str,
    registry: SessionRegistry = Depends(get_session_registry),
) -> ChartState:
    """读取当前状态树。"""

    store = _require_session(registry, session_id, "api_charts_state")
    return store.chart_state


@router.post("/api/charts/{session_id}/actions", response_model=ActionResponse)
def dispatch_chart_action(
    session_id: str,
    request: ActionRequest,
    registry: SessionRegistry = Depends(get_session_registry),
) -> ActionResponse:
    """执行一个编辑动作，失败时规范与状态保持动作前的样子。"""

    endpoint = "api_charts_actions"
    store = _require_session(registry, session_id, endpoint)
    try:
        cycle = store.dispatch(request.action)
    except KeyError as error:
        _record_error(endpoint, error_type=error.__class__.__name__, status_code=status.HTTP_404_NOT_FOUND)
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail=str(error)) from error
    except ValueError as error:
        _record_error(endpoint, error_type=error.__class__.__name__, status_code=status.HTTP_400_BAD_REQUEST)
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail=str(error)) from error
    except RuntimeError as error:
        _record_error(
            endpoint,
            error_type=error.__class__.__name__,
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
        )
        raise HTTPException(status_code=status.HTTP_500_INTERNAL_SERVER_ERROR, detail=str(error)) from error
    except ChartEngineError as error:
        _record_error(endpoint, error_type=error.__class__.__name__, status_code=status.HTTP_400_BAD_REQUEST)
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail=str(error)) from error
    except Exception:  # noqa: BLE001 - 记录未知异常并抛出
        LOGGER.exception("动作执行失败", extra={"endpoint": endpoint, "session_id": session_id})
        raise
    LOGGER.info(
        "Action dispatched",
        extra={"session_id": session_id, "cycle_id": cycle.cycle_id, "cycle_status": cycle.status},
    )
    return ActionResponse(
        cycle=cycle,
        chart_hash=compute_chart_hash(chart=store.chart),
        state=store.chart_state,
    )


@router.get("/api/charts/{session_id}/cycles", response_model=CycleListResponse)
def list_chart_cycles(
    session_id: str,
    registry: SessionRegistry = Depends(get_session_registry),
) -> CycleListResponse:
    """列出会话的周期记录。"""

    store = _require_session(registry, session_id, "api_charts_cycles")
    return CycleListResponse(session_id=session_id, cycles=store.recorder.records)


@router.delete("/api/charts/{session_id}", status_code=status.HTTP_204_NO_CONTENT)
def delete_chart_session(
    session_id: str,
    registry: SessionRegistry = Depends(get_session_registry),
) -> None:
    """释放会话。"""

    _require_session(registry, session_id, "api_charts_delete")
    registry.discard(session_id)


@router.get("/api/schema/export", response_model=SchemaExportResponse)
def export_contract_schemas(
    settings: Settings = Depends(get_settings),
) -> SchemaExportResponse:
    """导出核心契约的 JSONSchema，并落盘保存。"""

    endpoint = "api_schema_export"
    try:
        schema_dir = settings.schema_dir
        schema_dir.mkdir(parents=True, exist_ok=True)
        files: List[str] = []
        schemas: dict[str, object] = {}
        for schema_name, model in SCHEMA_EXPORT_MODELS.items():
            schema_payload = model.model_json_schema()
            target = schema_dir / f"{schema_name}.json"
            target.write_text(json.dumps(schema_payload, ensure_ascii=False, indent=2), encoding="utf-8")
            files.append(str(target))
            schemas[schema_name] = schema_payload
        response = SchemaExportResponse(files=files, schemas=schemas)
    except Exception as error:  # noqa: BLE001 - 统一兜底记录
        LOGGER.exception("Schema 导出失败", extra={"endpoint": endpoint})
        _record_error(
            endpoint,
            error_type=error.__class__.__name__,
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
        )
        raise
    return response
