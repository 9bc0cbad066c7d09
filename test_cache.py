#!/usr/bin/env python3
"""
Tests for CharacterCache: reuse window, persistence and history log.

Usage:
    python -m pytest test_cache.py
"""

import asyncio
import unittest

from guildbot.config.settings import ScraperSettings
from guildbot.storage import characters as repo
from guildbot.storage.database import Database
from guildbot.tracking.cache import CharacterCache
from guildbot.tracking.records import ScrapeResult
from test_lookup import FakeSite


SETTINGS = ScraperSettings(
    ranking_url="https://example.com/?go=guild&n=",
    guilds=("G1", "G2", "G3"),
    primary_guilds=("G1",),
    cache_ttl=300.0,
)
REQUESTS_PER_SEARCH = len(SETTINGS.guilds) * len(SETTINGS.pages)


class FakeClock:
    def __init__(self, now=1_700_000_000.0):
        self.now = now

    def __call__(self):
        return self.now

    def advance(self, seconds):
        self.now += seconds


class CharacterCacheTests(unittest.IsolatedAsyncioTestCase):
    async def asyncSetUp(self):
        self.db = Database(":memory:")
        await self.db.connect()
        self.clock = FakeClock()
        self.site = FakeSite({("G2", 1): [("DarkLord", 250, 4)]})
        self.client = self.site.client()
        self.cache = CharacterCache(self.db, self.client, SETTINGS, clock=self.clock)

    async def asyncTearDown(self):
        await self.client.aclose()
        await self.db.close()

    async def history_count(self):
        row = await self.db.fetchone("SELECT COUNT(*) AS n FROM character_history")
        return row["n"]

    async def test_never_seen_character_returns_none(self):
        self.assertIsNone(await self.cache.lookup("Nobody"))
        row = await self.db.fetchone("SELECT COUNT(*) AS n FROM characters")
        self.assertEqual(row["n"], 0)
        self.assertEqual(await self.history_count(), 0)

    async def test_found_character_is_stored_with_history(self):
        record = await self.cache.lookup("DarkLord")

        self.assertEqual((record.last_level, record.last_resets, record.guild), (250, 4, "G2"))
        self.assertEqual(record.last_seen, self.clock.now)
        stored = await repo.get_character_by_name(self.db, "DarkLord")
        self.assertEqual(stored, record)
        history = await repo.recent_history(self.db, record.id)
        self.assertEqual(len(history), 1)
        self.assertEqual((history[0].level, history[0].resets), (250, 4))
        self.assertEqual(history[0].recorded_at, self.clock.now)

    async def test_lookup_within_ttl_reuses_record(self):
        first = await self.cache.lookup("DarkLord")
        self.clock.advance(120)
        second = await self.cache.lookup("DarkLord")

        self.assertEqual(first, second)
        self.assertEqual(len(self.site.requests), REQUESTS_PER_SEARCH)
        self.assertEqual(await self.history_count(), 1)

    async def test_expired_record_is_refreshed(self):
        await self.cache.lookup("DarkLord")
        self.site.pages[("G2", 1)] = [("DarkLord", 260, 4)]
        self.clock.advance(301)
        record = await self.cache.lookup("DarkLord")

        self.assertEqual(record.last_level, 260)
        self.assertEqual(record.last_seen, self.clock.now)
        self.assertEqual(len(self.site.requests), 2 * REQUESTS_PER_SEARCH)
        self.assertEqual(await self.history_count(), 2)

    async def test_missing_character_falls_back_to_last_known_record(self):
        first = await self.cache.lookup("DarkLord")
        self.site.pages.clear()
        self.clock.advance(600)
        record = await self.cache.lookup("DarkLord")

        self.assertEqual(record, first)
        self.assertFalse(record.is_fresh(self.clock(), SETTINGS.cache_ttl))
        self.assertEqual(await self.history_count(), 1)

    async def test_different_casing_updates_the_same_record(self):
        first = await self.cache.lookup("DarkLord")
        self.clock.advance(400)
        second = await self.cache.lookup("darklord")

        self.assertEqual(second.id, first.id)
        row = await self.db.fetchone("SELECT COUNT(*) AS n FROM characters")
        self.assertEqual(row["n"], 1)
        self.assertEqual(await self.history_count(), 2)

    async def test_concurrent_lookups_of_new_character_share_one_record(self):
        first, second = await asyncio.gather(
            self.cache.lookup("DarkLord"), self.cache.lookup("darklord")
        )

        self.assertIsNotNone(first)
        self.assertIsNotNone(second)
        self.assertEqual(first.id, second.id)
        self.assertEqual(second.name, "DarkLord")
        row = await self.db.fetchone("SELECT COUNT(*) AS n FROM characters")
        self.assertEqual(row["n"], 1)
        # one history entry per guild search that found the character
        searches = len(self.site.requests) // REQUESTS_PER_SEARCH
        self.assertEqual(await self.history_count(), searches)

    async def test_upsert_reuses_row_stored_under_other_casing(self):
        first_id = await repo.upsert_character(self.db, ScrapeResult("DarkLord", 1, 0, "G1", 1, 10.0))
        second_id = await repo.upsert_character(self.db, ScrapeResult("darklord", 2, 0, "G2", 1, 20.0))

        self.assertEqual(first_id, second_id)
        record = await repo.get_character_by_id(self.db, first_id)
        self.assertEqual((record.name, record.last_level, record.guild, record.last_seen), ("DarkLord", 2, "G2", 20.0))

    async def test_lookup_survives_rollback_in_another_task(self):
        entered = asyncio.Event()

        async def failing_transaction():
            async with self.db.transaction():
                await self.db.execute(
                    "INSERT INTO command_permissions (command_name, role_id) VALUES (?, ?)",
                    ("char", 1),
                )
                entered.set()
                await asyncio.sleep(0.05)
                raise RuntimeError("boom")

        async def lookup():
            await entered.wait()
            return await self.cache.lookup("DarkLord")

        _, record = await asyncio.gather(failing_transaction(), lookup(), return_exceptions=True)

        self.assertEqual(record.last_level, 250)
        self.assertEqual(await repo.get_character_by_id(self.db, record.id), record)
        self.assertEqual(await self.history_count(), 1)

    async def test_forced_lookup_ignores_fresh_record(self):
        await self.cache.lookup("DarkLord")
        self.site.pages[("G2", 1)] = [("DarkLord", 251, 4)]
        self.clock.advance(10)
        record = await self.cache.lookup("DarkLord", force=True)

        self.assertEqual(record.last_level, 251)
        self.assertEqual(len(self.site.requests), 2 * REQUESTS_PER_SEARCH)

    async def test_blank_name_returns_none(self):
        self.assertIsNone(await self.cache.lookup("  "))
        self.assertEqual(self.site.requests, [])

    async def test_storage_failure_returns_none(self):
        await self.db.close()
        self.assertIsNone(await self.cache.lookup("DarkLord"))


if __name__ == "__main__":
    unittest.main()
