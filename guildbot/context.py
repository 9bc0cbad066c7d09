"""
Process-wide resources, created once at startup and passed to every handler.

BotContext.create() opens the database and the HTTP client; aclose() releases
them at shutdown. Handlers receive the context explicitly instead of reaching
for module-level state.
"""

from __future__ import annotations

import asyncio
import logging
import time
from dataclasses import dataclass, field
from typing import Any, Callable, Optional

import httpx

from guildbot.config.settings import ScraperSettings, scraper_settings_from_config
from guildbot.storage.database import Database
from guildbot.tracking.cache import CharacterCache
from guildbot.tracking.ranking import ProgressRanking
from guildbot.tracking.records import CharacterRecord
from guildbot.tracking.tracker import CharacterTracker


DEFAULT_DATABASE_PATH = "guildbot.db"


def build_http_client(settings: ScraperSettings) -> httpx.AsyncClient:
    transport = httpx.AsyncHTTPTransport(retries=settings.retries)
    return httpx.AsyncClient(
        transport=transport,
        timeout=settings.timeout,
        headers={"User-Agent": settings.user_agent},
        follow_redirects=True,
    )


@dataclass
class BotContext:
    config: dict[str, Any]
    settings: ScraperSettings
    db: Database
    http: httpx.AsyncClient
    cache: CharacterCache
    tracker: CharacterTracker
    ranking: ProgressRanking
    clock: Callable[[], float] = field(default=time.time)
    pending: set[asyncio.Task] = field(default_factory=set)

    @property
    def admin_ids(self) -> list[int]:
        return list((self.config.get("permissions") or {}).get("admin_ids", []) or [])

    @classmethod
    async def create(
        cls,
        config: dict[str, Any],
        *,
        http: httpx.AsyncClient | None = None,
        clock: Callable[[], float] = time.time,
    ) -> "BotContext":
        settings = scraper_settings_from_config(config)
        db_path = (config.get("database") or {}).get("path", DEFAULT_DATABASE_PATH)
        db = Database(db_path)
        await db.connect()
        client = http or build_http_client(settings)
        cache = CharacterCache(db, client, settings, clock=clock)
        logging.info(
            "Context ready | guilds: %d (%d primary) | cache ttl: %ss",
            len(settings.guilds), len(settings.primary_guilds), settings.cache_ttl,
        )
        return cls(
            config=config,
            settings=settings,
            db=db,
            http=client,
            cache=cache,
            tracker=CharacterTracker(db, cache, clock=clock),
            ranking=ProgressRanking(db, ttl=settings.cache_ttl, clock=clock),
            clock=clock,
        )

    def start_lookup(self, name: str, *, force: bool = False) -> "asyncio.Task[Optional[CharacterRecord]]":
        """
        Run a cache lookup as its own task. Callers that stop waiting leave it
        running until it has searched every guild and stored the result.
        """
        task = asyncio.create_task(self.cache.lookup(name, force=force), name=f"lookup:{name}")
        self.pending.add(task)
        task.add_done_callback(self.pending.discard)
        return task

    async def aclose(self) -> None:
        if self.pending:
            logging.info("Waiting for %d pending lookups", len(self.pending))
            await asyncio.gather(*self.pending, return_exceptions=True)
        try:
            await self.http.aclose()
        finally:
            await self.db.close()
        logging.info("Context closed")
