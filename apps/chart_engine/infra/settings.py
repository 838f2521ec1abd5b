"""运行配置：从 ``CHART_ENGINE_*`` 环境变量读取。"""

from __future__ import annotations

import os
from dataclasses import dataclass
from functools import lru_cache
from pathlib import Path
from typing import Mapping, Optional

ENV_PREFIX = "CHART_ENGINE_"


@dataclass(frozen=True)
class Settings:
    """引擎配置。

    Attributes
    ----------
    solver_tolerance: float
        HARD 约束残差的容忍度，超过即视为子图无解。
    history_limit: int
        ChartStore 保留的周期记录数量上限。
    session_limit: int
        进程内同时保留的编辑会话数量上限，超出时淘汰最早创建的会话。
    schema_dir: Path
        JSONSchema 导出目录。
    log_level: str
        ``logging`` 日志级别名称。
    """

    solver_tolerance: float = 1e-7
    history_limit: int = 200
    session_limit: int = 100
    schema_dir: Path = Path("var/schemas")
    log_level: str = "INFO"

    @classmethod
    def from_env(cls, environ: Optional[Mapping[str, str]] = None) -> "Settings":
        """从环境变量构造配置，缺失的变量取默认值。

        Raises
        ------
        ValueError
            数值变量无法解析或超出范围。
        """

        env = os.environ if environ is None else environ
        defaults = cls()
        tolerance = float(env.get(f"{ENV_PREFIX}SOLVER_TOLERANCE", defaults.solver_tolerance))
        if tolerance <= 0:
            raise ValueError(f"{ENV_PREFIX}SOLVER_TOLERANCE 必须为正数。")
        history_limit = int(env.get(f"{ENV_PREFIX}HISTORY_LIMIT", defaults.history_limit))
        if history_limit <= 0:
            raise ValueError(f"{ENV_PREFIX}HISTORY_LIMIT 必须为正整数。")
        session_limit = int(env.get(f"{ENV_PREFIX}SESSION_LIMIT", defaults.session_limit))
        if session_limit <= 0:
            raise ValueError(f"{ENV_PREFIX}SESSION_LIMIT 必须为正整数。")
        return cls(
            solver_tolerance=tolerance,
            history_limit=history_limit,
            session_limit=session_limit,
            schema_dir=Path(env.get(f"{ENV_PREFIX}SCHEMA_DIR", str(defaults.schema_dir))),
            log_level=env.get(f"{ENV_PREFIX}LOG_LEVEL", defaults.log_level).upper(),
        )


@lru_cache
def get_settings() -> Settings:
    """返回进程级配置实例。"""

    return Settings.from_env()
