"""HTTP 接口测试。"""

from __future__ import annotations

import json

import pytest
from fastapi.testclient import TestClient

from apps.chart_engine.api import dependencies
from apps.chart_engine.api.app import create_app
from apps.chart_engine.infra import Settings, UtcClock
from apps.chart_engine.services import SessionRegistry


@pytest.fixture()
def client(tmp_path):
    """使用独立会话缓存与临时 Schema 目录的客户端。"""

    settings = Settings(schema_dir=tmp_path / "schemas")
    registry = SessionRegistry(settings=settings, clock=UtcClock())
    app = create_app()
    app.dependency_overrides[dependencies.get_settings] = lambda: settings
    app.dependency_overrides[dependencies.get_session_registry] = lambda: registry
    return TestClient(app)


@pytest.fixture()
def session_id(client, dataset) -> str:
    response = client.post(
        "/api/charts",
        json={"dataset": dataset.model_dump(mode="json"), "session_id": "demo"},
    )
    assert response.status_code == 200
    return response.json()["session_id"]


def _dispatch(client, session_id: str, action: dict):
    return client.post(f"/api/charts/{session_id}/actions", json={"action": action})


def test_create_session_returns_solved_snapshot(client, session_id) -> None:
    """创建会话后可以读取快照与状态树。"""

    snapshot = client.get(f"/api/charts/{session_id}").json()
    assert snapshot["state"]["attributes"]["x2"] == pytest.approx(400.0)
    assert len(snapshot["chart_hash"]) == 64
    state = client.get(f"/api/charts/{session_id}/state").json()
    assert state == snapshot["state"]


def test_duplicate_session_is_rejected(client, session_id, dataset) -> None:
    response = client.post(
        "/api/charts",
        json={"dataset": dataset.model_dump(mode="json"), "session_id": session_id},
    )
    assert response.status_code == 400


def test_dispatch_actions_and_list_cycles(client, session_id) -> None:
    """动作依次生效，周期记录按执行顺序返回。"""

    first = _dispatch(client, session_id, {"action": "AddGlyph", "table": "sales"})
    assert first.status_code == 200
    assert first.json()["cycle"]["status"] == "success"
    glyph_id = client.get(f"/api/charts/{session_id}").json()["chart"]["glyphs"][0]["id"]
    second = _dispatch(client, session_id, {"action": "AddMarkToGlyph", "glyph": glyph_id, "class_id": "mark.rect"})
    assert second.json()["cycle"]["events"] == ["structure", "selection", "graphics"]
    resize = _dispatch(client, session_id, {"action": "SetChartSize", "width": 1000, "height": 800})
    assert resize.json()["state"]["attributes"]["x2"] == pytest.approx(450.0)
    cycles = client.get(f"/api/charts/{session_id}/cycles").json()["cycles"]
    assert [cycle["action"] for cycle in cycles] == ["AddGlyph", "AddMarkToGlyph", "SetChartSize"]


def test_dispatch_error_mapping(client, session_id) -> None:
    """未知数据表返回 404，非法请求体返回 422，未知会话返回 404。"""

    assert _dispatch(client, session_id, {"action": "AddGlyph", "table": "missing"}).status_code == 404
    assert _dispatch(client, session_id, {"action": "Unknown"}).status_code == 422
    assert _dispatch(client, "missing", {"action": "AddGlyph", "table": "sales"}).status_code == 404
    cycles = client.get(f"/api/charts/{session_id}/cycles").json()["cycles"]
    assert cycles[-1]["status"] == "failed"
    assert cycles[-1]["error_class"] == "UnknownTableError"


def test_dispatch_value_error_returns_400(client, session_id) -> None:
    """动作参数不合法时返回 400。"""

    _dispatch(client, session_id, {"action": "AddGlyph", "table": "sales"})
    glyph_id = client.get(f"/api/charts/{session_id}").json()["chart"]["glyphs"][0]["id"]
    response = _dispatch(client, session_id, {"action": "AddMarkToGlyph", "glyph": glyph_id, "class_id": "legend.categorical"})
    assert response.status_code == 400


def test_delete_session(client, session_id) -> None:
    assert client.delete(f"/api/charts/{session_id}").status_code == 204
    assert client.get(f"/api/charts/{session_id}").status_code == 404


def test_schema_export_writes_files(client, tmp_path) -> None:
    """导出的 Schema 带有 $id 与版本号并落盘。"""

    payload = client.get("/api/schema/export").json()
    assert "chart" in payload["schemas"]
    chart_schema = payload["schemas"]["chart"]
    assert chart_schema["$id"].endswith("/chart.json")
    assert chart_schema["version"] == "1.0.0"
    written = json.loads((tmp_path / "schemas" / "chart.json").read_text(encoding="utf-8"))
    assert written == chart_schema
