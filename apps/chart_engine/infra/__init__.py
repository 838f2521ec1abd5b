"""基础设施组件导出。"""

from apps.chart_engine.infra.clock import UtcClock
from apps.chart_engine.infra.settings import Settings, get_settings
from apps.chart_engine.infra.tracing import CycleRecorder

__all__ = [
    "CycleRecorder",
    "Settings",
    "UtcClock",
    "get_settings",
]
