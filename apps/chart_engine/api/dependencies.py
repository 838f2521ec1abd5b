"""FastAPI 依赖注入配置。"""

from __future__ import annotations

from functools import lru_cache

from apps.chart_engine.infra.clock import UtcClock
from apps.chart_engine.infra.settings import Settings
from apps.chart_engine.infra.settings import get_settings as load_settings
from apps.chart_engine.services.sessions import SessionRegistry


@lru_cache
def get_settings() -> Settings:
    """提供进程级配置。"""

    return load_settings()


@lru_cache
def get_clock() -> UtcClock:
    """提供全局 UTC 时钟实例。"""

    return UtcClock()


@lru_cache
def get_session_registry() -> SessionRegistry:
    """提供编辑会话缓存。"""

    return SessionRegistry(settings=get_settings(), clock=get_clock())
