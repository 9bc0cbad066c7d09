"""
guildbot/tracking/tracker.py

Characters that Discord users asked to follow. Each tracked row stores the
last level/resets the user was told about; check_tracked() refreshes every
tracked character through the cache and reports what moved.
"""

from __future__ import annotations

import logging
import time
from typing import Callable, Optional

from guildbot.storage import characters as repo
from guildbot.storage.database import Database

from .cache import CharacterCache
from .errors import CharacterNotFoundError, TrackingError
from .records import ProgressChange, TrackedCharacter


def describe_changes(tracked: TrackedCharacter, level: int, resets: int) -> list[str]:
    changes = []
    if level != tracked.last_level:
        before = tracked.last_level if tracked.last_level is not None else "N/A"
        changes.append(f"Level: {before} → {level}")
    if resets != tracked.last_resets:
        before = tracked.last_resets if tracked.last_resets is not None else "N/A"
        changes.append(f"Resets: {before} → {resets}")
    return changes


class CharacterTracker:
    def __init__(
        self,
        db: Database,
        cache: CharacterCache,
        clock: Callable[[], float] = time.time,
    ):
        self.db = db
        self.cache = cache
        self.clock = clock

    async def add_tracking(
        self, name: str, user_id: int, channel_id: Optional[int] = None
    ) -> TrackedCharacter:
        record = await self.cache.lookup(name)
        if record is None:
            raise CharacterNotFoundError(f"Character '{name}' was not found in any guild")

        await repo.upsert_tracking(
            self.db, record.name, user_id, channel_id,
            record.last_level, record.last_resets, self.clock(),
        )
        logging.info("Tracker: user %s now follows '%s'", user_id, record.name)
        for tracked in await repo.list_tracking(self.db, user_id):
            if tracked.name.lower() == record.name.lower():
                return tracked
        raise TrackingError(f"Tracking row for '{record.name}' was not stored")

    async def remove_tracking(self, name: str, user_id: int) -> bool:
        removed = await repo.delete_tracking(self.db, name, user_id)
        if removed:
            logging.info("Tracker: user %s stopped following '%s'", user_id, name)
        return removed

    async def list_tracked(self, user_id: int) -> list[TrackedCharacter]:
        return await repo.list_tracking(self.db, user_id)

    async def check_tracked(self) -> list[ProgressChange]:
        """Refresh every tracked character and return the ones that changed."""
        tracked_rows = await repo.list_tracking(self.db)
        logging.info("Tracker: checking %d tracked characters", len(tracked_rows))

        updates: list[ProgressChange] = []
        for tracked in tracked_rows:
            try:
                record = await self.cache.lookup(tracked.name)
                if record is None:
                    continue
                changes = describe_changes(tracked, record.last_level, record.last_resets)
                if not changes:
                    continue
                await repo.update_tracking_snapshot(
                    self.db, tracked.id, record.last_level, record.last_resets
                )
                updates.append(ProgressChange(tracked=tracked, current=record, changes=changes))
            except TrackingError as e:
                logging.error("Tracker: failed to check '%s': %s", tracked.name, e)
        return updates
