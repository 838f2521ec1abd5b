"""服务层导出。"""

from apps.chart_engine.services.action_handlers import REGISTRY, ActionHandlerRegistry, default_registry
from apps.chart_engine.services.chart_manager import ChartManager, SolveReport
from apps.chart_engine.services.chart_state import compute_chart_hash, deserialize_chart, serialize_chart
from apps.chart_engine.services.chart_store import ChartStore
from apps.chart_engine.services.notifications import EventHub
from apps.chart_engine.services.sessions import SessionRegistry
from apps.chart_engine.services.solve_worker import SolveRequest, SolveResponse, SolveWorker

__all__ = [
    "REGISTRY",
    "ActionHandlerRegistry",
    "ChartManager",
    "ChartStore",
    "EventHub",
    "SessionRegistry",
    "SolveReport",
    "SolveRequest",
    "SolveResponse",
    "SolveWorker",
    "compute_chart_hash",
    "default_registry",
    "deserialize_chart",
    "serialize_chart",
]
