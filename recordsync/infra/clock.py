from __future__ import annotations

import asyncio
from datetime import datetime, timezone

from recordsync.domain.ports.clock import ClockProtocol


class SystemClock(ClockProtocol):
    """Реальные часы: datetime.now(UTC) и asyncio.sleep."""

    def now(self) -> datetime:
        return datetime.now(timezone.utc)

    async def sleep(self, seconds: float) -> None:
        await asyncio.sleep(max(seconds, 0.0))
