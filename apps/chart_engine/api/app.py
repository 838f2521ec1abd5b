"""FastAPI 应用工厂。"""

from __future__ import annotations

import logging

from fastapi import FastAPI

from apps.chart_engine.api.dependencies import get_settings
from apps.chart_engine.api.routes import router


def create_app() -> FastAPI:
    """构建 FastAPI 应用实例。"""

    logging.getLogger("apps.chart_engine").setLevel(get_settings().log_level)
    app = FastAPI(
        title="Chart Engine API",
        version="0.1.0",
    )
    app.include_router(router)
    return app


app = create_app()
