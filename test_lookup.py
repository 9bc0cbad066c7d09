#!/usr/bin/env python3
"""
Tests for the parallel guild search.

Usage:
    python -m pytest test_lookup.py
"""

import asyncio
import unittest

import httpx

from guildbot.config.settings import ScraperSettings
from guildbot.tracking.lookup import parallel_guild_search, split_guilds
from test_scraper import ranking_html


SETTINGS = ScraperSettings(
    ranking_url="https://example.com/?go=guild&n=",
    guilds=("G1", "G2", "G3", "G4", "G5"),
    primary_guilds=("G1", "G2"),
)


class FakeSite:
    """Serves ranking pages from a {(guild, page): [(name, level, resets)]} map."""

    def __init__(self, pages=None, failing=()):
        self.pages = pages or {}
        self.failing = set(failing)
        self.requests = []

    def __call__(self, request):
        guild = request.url.params.get("n")
        page = int(request.url.params.get("p", "1"))
        self.requests.append((guild, page))
        if (guild, page) in self.failing:
            raise httpx.ReadTimeout("timed out", request=request)
        return httpx.Response(200, text=ranking_html(self.pages.get((guild, page), [])))

    def client(self):
        return httpx.AsyncClient(transport=httpx.MockTransport(self))


class SlowSite(FakeSite):
    """FakeSite whose pages answer after `delays[(guild, page)]` seconds."""

    def __init__(self, pages=None, delays=None, default_delay=0.0):
        super().__init__(pages)
        self.delays = delays or {}
        self.default_delay = default_delay
        self.finished = []

    async def __call__(self, request):
        guild = request.url.params.get("n")
        page = int(request.url.params.get("p", "1"))
        self.requests.append((guild, page))
        await asyncio.sleep(self.delays.get((guild, page), self.default_delay))
        self.finished.append((guild, page))
        return httpx.Response(200, text=ranking_html(self.pages.get((guild, page), [])))


class SplitGuildsTests(unittest.TestCase):
    def test_preserves_configured_order(self):
        primary, others = split_guilds(["G3", "G1", "G4", "G2"], ["G2", "G1"])
        self.assertEqual(primary, ["G1", "G2"])
        self.assertEqual(others, ["G3", "G4"])


class ParallelGuildSearchTests(unittest.IsolatedAsyncioTestCase):
    async def search(self, site, name="DarkLord"):
        async with site.client() as client:
            return await parallel_guild_search(client, name, settings=SETTINGS)

    async def test_primary_guild_wins_over_other_guilds(self):
        site = FakeSite({
            ("G4", 1): [("DarkLord", 300, 9)],
            ("G2", 2): [("DarkLord", 310, 9)],
        })
        result = await self.search(site)
        self.assertEqual((result.guild, result.page, result.level), ("G2", 2, 310))

    async def test_guild_order_beats_page_order(self):
        site = FakeSite({
            ("G3", 2): [("DarkLord", 100, 1)],
            ("G4", 1): [("DarkLord", 200, 2)],
        })
        result = await self.search(site)
        self.assertEqual((result.guild, result.page), ("G3", 2))

    async def test_page_one_beats_page_two_in_same_guild(self):
        site = FakeSite({
            ("G1", 1): [("DarkLord", 100, 1)],
            ("G1", 2): [("DarkLord", 200, 2)],
        })
        result = await self.search(site)
        self.assertEqual(result.page, 1)

    async def test_timed_out_requests_are_excluded(self):
        site = FakeSite(
            {("G1", 1): [("DarkLord", 50, 0)], ("G5", 1): [("DarkLord", 60, 0)]},
            failing=[("G1", 1)],
        )
        result = await self.search(site)
        self.assertEqual(result.guild, "G5")

    async def test_every_request_is_made(self):
        site = FakeSite({("G1", 1): [("DarkLord", 50, 0)]})
        await self.search(site)
        expected = {(g, p) for g in SETTINGS.guilds for p in SETTINGS.pages}
        self.assertEqual(set(site.requests), expected)
        self.assertEqual(len(site.requests), len(expected))

    async def test_not_found_anywhere(self):
        site = FakeSite()
        self.assertIsNone(await self.search(site))

    async def test_slow_pages_are_waited_for(self):
        site = SlowSite(
            {("G1", 2): [("DarkLord", 90, 1)], ("G3", 1): [("DarkLord", 80, 1)]},
            delays={("G1", 2): 0.2},
            default_delay=0.01,
        )
        result = await self.search(site)

        # the slow primary page still wins over the fast non-primary hit
        self.assertEqual((result.guild, result.page), ("G1", 2))
        self.assertEqual(len(site.finished), len(SETTINGS.guilds) * len(SETTINGS.pages))

    async def test_page_slower_than_its_deadline_is_no_match(self):
        settings = ScraperSettings(
            ranking_url=SETTINGS.ranking_url,
            guilds=("G1", "G2"),
            primary_guilds=("G1",),
            primary_timeout=0.05,
            timeout=1.0,
        )
        site = SlowSite(
            {("G1", 1): [("DarkLord", 90, 1)], ("G2", 1): [("DarkLord", 80, 1)]},
            delays={("G1", 1): 0.5},
        )
        async with site.client() as client:
            result = await parallel_guild_search(client, "DarkLord", settings=settings)
        self.assertEqual(result.guild, "G2")

    async def test_invalid_name_makes_no_requests(self):
        site = FakeSite()
        self.assertIsNone(await self.search(site, name="   "))
        self.assertEqual(site.requests, [])


if __name__ == "__main__":
    unittest.main()
