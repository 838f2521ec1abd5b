"""默认调色板与颜色插值。"""

from __future__ import annotations

import re
from typing import List, Tuple

CATEGORICAL_PALETTE: List[str] = [
    "#1f77b4",
    "#ff7f0e",
    "#2ca02c",
    "#d62728",
    "#9467bd",
    "#8c564b",
    "#e377c2",
    "#7f7f7f",
    "#bcbd22",
    "#17becf",
]

SEQUENTIAL_START = "#f7fbff"
SEQUENTIAL_END = "#08306b"

_HEX = re.compile(r"^#(?P<r>[0-9a-fA-F]{2})(?P<g>[0-9a-fA-F]{2})(?P<b>[0-9a-fA-F]{2})$")


def categorical_color(index: int) -> str:
    """按类别序号循环取色。"""

    return CATEGORICAL_PALETTE[index % len(CATEGORICAL_PALETTE)]


def parse_color(color: str) -> Tuple[int, int, int]:
    """解析 ``#rrggbb`` 颜色。"""

    match = _HEX.match(color)
    if match is None:
        raise ValueError(f"颜色 {color!r} 不是 #rrggbb 格式。")
    return int(match.group("r"), 16), int(match.group("g"), 16), int(match.group("b"), 16)


def interpolate_color(start: str, end: str, t: float) -> str:
    """在两种颜色之间按 t 线性插值，t 会被截断到 [0, 1]。"""

    t = min(1.0, max(0.0, t))
    first = parse_color(start)
    second = parse_color(end)
    channels = [round(a + (b - a) * t) for a, b in zip(first, second)]
    return "#" + "".join(f"{channel:02x}" for channel in channels)
