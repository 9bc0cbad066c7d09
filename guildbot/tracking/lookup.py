"""
guildbot/tracking/lookup.py

Fan a character search out over every configured guild (pages 1 and 2).

The primary guilds and the remaining guilds are dispatched at the same time
and both groups are awaited until every request settles; nothing is
cancelled early. The winner is picked by request order, not completion
order: primary guilds first, then guild index, then page 1 before page 2.
"""

from __future__ import annotations

import asyncio
import logging
from typing import Iterable, Optional, Sequence

import httpx

from guildbot.config.settings import ScraperSettings

from .records import ScrapeResult
from .scraper import fetch_guild_page


def split_guilds(
    guilds: Iterable[str], primary: Iterable[str]
) -> tuple[list[str], list[str]]:
    """Split `guilds` into (primary, others), both preserving input order."""
    primary_set = set(primary)
    ordered = [g for g in guilds if g]
    return (
        [g for g in ordered if g in primary_set],
        [g for g in ordered if g not in primary_set],
    )


def _first_match(results: Sequence[object]) -> Optional[ScrapeResult]:
    for result in results:
        if isinstance(result, BaseException):
            logging.warning("ParallelLookup: request ended with %s", type(result).__name__)
            continue
        if result is not None:
            return result
    return None


async def _search_group(
    client: httpx.AsyncClient,
    name: str,
    guilds: Sequence[str],
    settings: ScraperSettings,
    timeout: float,
) -> list[object]:
    requests = [
        fetch_guild_page(client, guild, page, name, settings=settings, timeout=timeout)
        for guild in guilds
        for page in settings.pages
    ]
    return await asyncio.gather(*requests, return_exceptions=True)


async def parallel_guild_search(
    client: httpx.AsyncClient,
    name: str,
    *,
    settings: ScraperSettings,
    guilds: Iterable[str] | None = None,
) -> Optional[ScrapeResult]:
    """
    Return the first ScrapeResult in request order, or None.

    guilds: identifiers to search (default: settings.guilds)
    """
    if not name or not isinstance(name, str) or not name.strip():
        logging.error("ParallelLookup: invalid character name %r", name)
        return None

    primary, others = split_guilds(
        settings.guilds if guilds is None else guilds, settings.primary_guilds
    )
    logging.info(
        "ParallelLookup: searching '%s' in %d primary + %d other guilds",
        name, len(primary), len(others),
    )

    primary_results, other_results = await asyncio.gather(
        _search_group(client, name, primary, settings, settings.primary_timeout),
        _search_group(client, name, others, settings, settings.timeout),
    )

    result = _first_match(primary_results) or _first_match(other_results)
    if result is None:
        logging.info("ParallelLookup: '%s' not found in any guild", name)
    return result
