from __future__ import annotations

from dataclasses import dataclass
from typing import Any


DEFAULT_GUILDS = (
    "ToHeLL_", "ToHeLL2", "ToHeLL3", "ToHeLL4", "ToHeLL5",
    "ToHeLL6", "ToHeLL7", "ToHeLL8_", "ToHeLL9", "ToHeLL10",
)
DEFAULT_PRIMARY_GUILDS = ("ToHeLL_", "ToHeLL2", "ToHeLL3")
DEFAULT_RANKING_URL = "https://www.mucabrasil.com.br/?go=guild&n="
DEFAULT_USER_AGENT = "ToHeLL-Discord-Bot/1.0"


@dataclass(frozen=True)
class ScraperSettings:
    ranking_url: str = DEFAULT_RANKING_URL
    guilds: tuple[str, ...] = DEFAULT_GUILDS
    primary_guilds: tuple[str, ...] = DEFAULT_PRIMARY_GUILDS
    pages: tuple[int, ...] = (1, 2)
    user_agent: str = DEFAULT_USER_AGENT
    timeout: float = 5.0
    primary_timeout: float = 3.0
    retries: int = 2
    cache_ttl: float = 300.0
    history_window_days: int = 30


def scraper_settings_from_config(config: dict[str, Any]) -> ScraperSettings:
    """
    Build ScraperSettings from the validated `scraper` / `cache` sections.
    Missing keys fall back to the defaults above.
    """
    scraper = config.get("scraper") or {}
    cache = config.get("cache") or {}
    defaults = ScraperSettings()
    return ScraperSettings(
        ranking_url=scraper.get("ranking_url", defaults.ranking_url),
        guilds=tuple(scraper.get("guilds", defaults.guilds)),
        primary_guilds=tuple(scraper.get("primary_guilds", defaults.primary_guilds)),
        pages=tuple(scraper.get("pages", defaults.pages)),
        user_agent=scraper.get("user_agent", defaults.user_agent),
        timeout=float(scraper.get("timeout_seconds", defaults.timeout)),
        primary_timeout=float(scraper.get("primary_timeout_seconds", defaults.primary_timeout)),
        retries=int(scraper.get("retries", defaults.retries)),
        cache_ttl=float(cache.get("ttl_seconds", defaults.cache_ttl)),
        history_window_days=int(cache.get("history_window_days", defaults.history_window_days)),
    )
