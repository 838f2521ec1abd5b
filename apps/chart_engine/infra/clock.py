"""UTC 时钟，周期记录的时间戳与耗时都经由它获取。"""

from __future__ import annotations

from datetime import datetime, timezone


class UtcClock:
    """返回带时区信息的 UTC 时间，测试中可替换为步进时钟。"""

    def now(self) -> datetime:
        return datetime.now(timezone.utc)

    @staticmethod
    def elapsed_ms(started_at: datetime, completed_at: datetime) -> int:
        """两个时间点之间的毫秒数，时钟回拨时记为 0。"""

        return max(int((completed_at - started_at).total_seconds() * 1000), 0)
