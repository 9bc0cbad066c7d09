"""
guildbot/tracking/trends.py

Progress statistics over a character's recent history.

Works pair by pair over consecutive history entries (oldest first). Pairs
with no elapsed time are skipped entirely, so no average ever divides by
zero. Units: rates in levels/hour, projections in hours, reset cadence in
days.
"""

from __future__ import annotations

import logging
import time
from typing import Callable, Optional, Sequence

from guildbot.storage import characters as repo
from guildbot.storage.database import Database

from .errors import StorageError
from .records import LEVEL_CAP, HistoryEntry, Milestone, TrendStats


def _mean(values: Sequence[float]) -> Optional[float]:
    return sum(values) / len(values) if values else None


def compute_trend_stats(entries: Sequence[HistoryEntry]) -> Optional[TrendStats]:
    """Derive TrendStats from history ordered oldest-first; None below 2 entries."""
    if len(entries) < 2:
        return None

    level_rates: list[float] = []
    reset_gap_days: list[float] = []
    hours_per_reset: list[float] = []
    hours_to_cap: list[float] = []

    for prev, curr in zip(entries, entries[1:]):
        elapsed_hours = (curr.recorded_at - prev.recorded_at) / 3600
        if elapsed_hours <= 0:
            continue
        level_delta = curr.level - prev.level
        reset_delta = curr.resets - prev.resets
        rate = level_delta / elapsed_hours
        level_rates.append(rate)

        if reset_delta > 0:
            reset_gap_days.append(elapsed_hours / 24)
            hours_per_reset.append(elapsed_hours / reset_delta)

        if prev.level < LEVEL_CAP and level_delta > 0:
            hours_to_cap.append((LEVEL_CAP - prev.level) / rate)

    level_per_hour = _mean(level_rates) or 0.0
    avg_time_per_reset = _mean(reset_gap_days)

    latest = entries[-1]
    if latest.level >= LEVEL_CAP:
        projection_to_cap = Milestone.ALREADY_REACHED
    else:
        projection_to_cap = _mean(hours_to_cap)

    mean_hours_per_reset = _mean(hours_per_reset)
    projection_next_reset = mean_hours_per_reset
    if mean_hours_per_reset is not None and isinstance(projection_to_cap, float):
        projection_next_reset = projection_to_cap + mean_hours_per_reset

    return TrendStats(
        level_per_hour=level_per_hour,
        avg_time_per_reset=avg_time_per_reset,
        next_level_prediction=1 / level_per_hour if level_per_hour > 0 else None,
        next_reset_prediction=avg_time_per_reset,
        projection_to_400=projection_to_cap,
        projection_next_reset=projection_next_reset,
    )


async def calculate_advanced_stats(
    db: Database,
    character_id: int,
    *,
    clock: Callable[[], float] = time.time,
    window_days: int = 30,
) -> Optional[TrendStats]:
    """
    Load the trailing `window_days` of history and compute TrendStats.
    Returns None for insufficient data or on storage failure.
    """
    if not character_id:
        logging.error("TrendEngine: invalid character id %r", character_id)
        return None
    since = clock() - window_days * 86400
    try:
        entries = await repo.history_since(db, character_id, since)
    except StorageError as e:
        logging.error("TrendEngine: could not load history for %s: %s", character_id, e)
        return None
    return compute_trend_stats(entries)
