"""
guildbot/tracking/cache.py

Character lookup with a short reuse window.

A persisted CharacterRecord confirmed within the TTL is returned without
touching the network. Otherwise the guilds are searched; a hit updates (or
creates) the record and appends one history entry, both inside a single
transaction. A miss falls back to the last known record.

Concurrent lookups for the same name are not coalesced: each one checks
freshness on its own and may start its own guild search. Their stores land
on the same row and each appends its own history entry.
"""

from __future__ import annotations

import logging
import time
from dataclasses import replace
from typing import Callable, Optional

import httpx

from guildbot.config.settings import ScraperSettings
from guildbot.storage import characters as repo
from guildbot.storage.database import Database

from .errors import StorageError
from .lookup import parallel_guild_search
from .records import CharacterRecord, ScrapeResult


class CharacterCache:
    def __init__(
        self,
        db: Database,
        client: httpx.AsyncClient,
        settings: ScraperSettings,
        clock: Callable[[], float] = time.time,
    ):
        self.db = db
        self.client = client
        self.settings = settings
        self.clock = clock

    async def _find_record(self, name: str) -> Optional[CharacterRecord]:
        record = await repo.get_character_by_name(self.db, name)
        if record is None:
            record = await repo.get_character_by_name_ci(self.db, name)
        return record

    async def _store(
        self, existing: Optional[CharacterRecord], result: ScrapeResult
    ) -> Optional[CharacterRecord]:
        async with self.db.transaction():
            if existing is not None:
                await repo.update_character(self.db, existing.id, result)
                character_id = existing.id
            else:
                character_id = await repo.upsert_character(self.db, result)
            await repo.insert_history(self.db, character_id, result)
        return await repo.get_character_by_id(self.db, character_id)

    async def lookup(self, name: str, *, force: bool = False) -> Optional[CharacterRecord]:
        """
        Return the freshest known CharacterRecord for `name`, or None when the
        character was never seen. Storage failures are logged and yield None.

        force: search the guilds even when the stored record is still fresh.
        """
        if not name or not isinstance(name, str) or not name.strip():
            logging.error("CharacterCache: invalid character name %r", name)
            return None
        name = name.strip()

        try:
            existing = await self._find_record(name)
            now = self.clock()
            if not force and existing is not None and existing.is_fresh(now, self.settings.cache_ttl):
                logging.info("CharacterCache: hit for '%s'", existing.name)
                return existing

            result = await parallel_guild_search(self.client, name, settings=self.settings)
            if result is None:
                if existing is not None:
                    logging.info("CharacterCache: '%s' not found, returning last known record", name)
                return existing

            result = replace(result, observed_at=self.clock())
            record = await self._store(existing, result)
            logging.info(
                "CharacterCache: refreshed '%s' (level %d, resets %d, guild %s)",
                name, result.level, result.resets, result.guild,
            )
            return record
        except StorageError as e:
            logging.error("CharacterCache: storage failure for '%s': %s", name, e)
            return None
