"""
guildbot/tracking/scraper.py

Fetch one guild ranking page and look for a character row.

The ranking site is an opaque HTML source. The only contract relied on:
each character is a <tr> with at least four <td> cells, where cell 2 is the
character name, cell 3 the level and cell 4 the reset count.

Every failure (timeout, DNS, non-2xx, malformed markup) is logged and turned
into "no match"; nothing here raises to the caller.
"""

from __future__ import annotations

import asyncio
import logging
import re
import time
from typing import Optional
from urllib.parse import quote

import httpx
from bs4 import BeautifulSoup

from guildbot.config.settings import ScraperSettings

from .records import ScrapeResult


def build_guild_url(ranking_url: str, guild: str, page: int) -> str:
    url = f"{ranking_url}{quote(guild, safe='')}"
    return f"{url}&p={page}" if page > 1 else url


_LEADING_INT = re.compile(r"^\s*[-+]?\d+")


def _to_int(text: str) -> int:
    """Leading integer of a cell, 0 when there is none."""
    match = _LEADING_INT.match(text or "")
    return max(int(match.group()), 0) if match else 0


def parse_ranking_page(
    html: str,
    guild: str,
    page: int,
    name: str,
    observed_at: float | None = None,
) -> Optional[ScrapeResult]:
    """Scan every table row for `name` (case-insensitive). Pure, no I/O."""
    target = name.strip().lower()
    soup = BeautifulSoup(html, "html.parser")
    for tr in soup.find_all("tr"):
        cells = tr.find_all("td")
        if len(cells) < 4:
            continue
        char_name = cells[1].get_text(strip=True)
        if char_name and char_name.lower() == target:
            return ScrapeResult(
                name=char_name,
                level=_to_int(cells[2].get_text(strip=True)),
                resets=_to_int(cells[3].get_text(strip=True)),
                guild=guild,
                page=page,
                observed_at=observed_at if observed_at is not None else time.time(),
            )
    return None


async def fetch_guild_page(
    client: httpx.AsyncClient,
    guild: str,
    page: int,
    name: str,
    *,
    settings: ScraperSettings,
    timeout: float | None = None,
) -> Optional[ScrapeResult]:
    """
    Fetch one ranking page and return the matching row, or None.

    timeout: total deadline for the request in seconds (defaults to
    settings.timeout), covering connect retries and a slow body.
    """
    url = build_guild_url(settings.ranking_url, guild, page)
    deadline = timeout if timeout is not None else settings.timeout
    try:
        # httpx applies its timeout per phase; wait_for bounds the whole request
        response = await asyncio.wait_for(
            client.get(url, headers={"User-Agent": settings.user_agent}, timeout=deadline),
            timeout=deadline,
        )
        response.raise_for_status()
    except asyncio.TimeoutError:
        logging.warning("GuildScraper: guild %s page %d exceeded %.1fs", guild, page, deadline)
        return None
    except httpx.HTTPError as e:
        logging.warning("GuildScraper: fetch failed for guild %s page %d: %s", guild, page, e)
        return None

    try:
        result = parse_ranking_page(response.text, guild, page, name)
    except Exception as e:  # noqa: BLE001
        logging.error("GuildScraper: could not parse guild %s page %d: %s", guild, page, e)
        return None

    if result:
        logging.debug("GuildScraper: %s found in %s (page %d)", result.name, guild, page)
    return result
