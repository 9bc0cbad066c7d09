from __future__ import annotations

import logging
import time
from typing import Callable

from guildbot.storage import characters as repo
from guildbot.storage.database import Database

from .records import RankingEntry


# period key -> (window in seconds, display name)
PERIODS: dict[str, tuple[int, str]] = {
    "24h": (24 * 3600, "24 Horas"),
    "7d": (7 * 86400, "7 Dias"),
    "30d": (30 * 86400, "30 Dias"),
}
DEFAULT_PERIOD = "24h"


def resolve_period(period: str | None) -> str:
    return period if period in PERIODS else DEFAULT_PERIOD


async def progress_ranking(
    db: Database,
    period: str | None = None,
    *,
    clock: Callable[[], float] = time.time,
    limit: int = 10,
) -> list[RankingEntry]:
    """Uncached ranking query for one period."""
    window, _ = PERIODS[resolve_period(period)]
    return await repo.progress_since(db, clock() - window, limit)


class ProgressRanking:
    """
    Top characters by progress score (level gained + 1000 per reset gained)
    over a period. Results are reused per period for `ttl` seconds.
    """

    def __init__(
        self,
        db: Database,
        *,
        ttl: float = 300.0,
        limit: int = 10,
        clock: Callable[[], float] = time.time,
    ):
        self.db = db
        self.ttl = ttl
        self.limit = limit
        self.clock = clock
        self._cached: dict[str, tuple[float, list[RankingEntry]]] = {}

    async def top(self, period: str | None = None) -> list[RankingEntry]:
        period = resolve_period(period)
        now = self.clock()
        cached = self._cached.get(period)
        if cached and now - cached[0] <= self.ttl:
            return cached[1]

        entries = await progress_ranking(self.db, period, clock=lambda: now, limit=self.limit)
        self._cached[period] = (now, entries)
        logging.info("ProgressRanking: %d entries for %s", len(entries), period)
        return entries

    def invalidate(self) -> None:
        self._cached.clear()
