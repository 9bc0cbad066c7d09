"""
YAML configuration validator for config.yaml.

Validates structure, required fields, and common misconfigurations.
"""

from __future__ import annotations

import logging
from typing import Any


logger = logging.getLogger(__name__)


class ConfigValidationError(Exception):
    """Raised when config validation fails."""
    pass


def _is_number(value: Any) -> bool:
    return isinstance(value, (int, float)) and not isinstance(value, bool)


def _check_positive(errors: list[str], section: str, cfg: dict[str, Any], key: str) -> None:
    if key in cfg:
        value = cfg[key]
        if not _is_number(value) or value <= 0:
            errors.append(f"'{section}.{key}' must be a positive number, got {value!r}")


def _check_id_list(errors: list[str], label: str, ids: Any) -> None:
    if not isinstance(ids, list):
        errors.append(f"'{label}' must be a list, got {type(ids).__name__}")
        return
    for i, value in enumerate(ids):
        if isinstance(value, bool) or not isinstance(value, int):
            errors.append(f"'{label}[{i}]' must be an integer Discord ID, got {value!r}")


def validate_config(cfg: dict[str, Any], config_path: str = "config.yaml") -> None:
    """
    Comprehensive validation of config.yaml structure and content.

    Raises ConfigValidationError if validation fails.
    Logs detailed error messages before raising.

    Args:
        cfg: The loaded config dictionary
        config_path: Path to config file (for error messages)

    Raises:
        ConfigValidationError: If validation fails
    """
    errors = []
    warnings = []

    # ── Check root structure ────────────────────────────────────────────────
    if not isinstance(cfg, dict):
        errors.append(f"Config root must be a mapping, got {type(cfg).__name__}")
        cfg = {}

    # ── Check required top-level keys ───────────────────────────────────────
    token = cfg.get("bot_token")
    if not token:
        errors.append("Missing required 'bot_token' (or set DISCORD_TOKEN in the environment)")
    elif not isinstance(token, str):
        errors.append(f"'bot_token' must be a string, got {type(token).__name__}")

    # ── Validate database section ──────────────────────────────────────────
    if "database" in cfg:
        database = cfg["database"]
        if not isinstance(database, dict):
            errors.append(f"'database' must be a mapping, got {type(database).__name__}")
        elif "path" in database and not isinstance(database["path"], str):
            errors.append(f"'database.path' must be a string, got {type(database['path']).__name__}")

    # ── Validate scraper section ───────────────────────────────────────────
    if "scraper" in cfg:
        scraper = cfg["scraper"]
        if not isinstance(scraper, dict):
            errors.append(f"'scraper' must be a mapping, got {type(scraper).__name__}")
        else:
            guilds = scraper.get("guilds")
            if guilds is not None:
                if not isinstance(guilds, list) or not guilds:
                    errors.append("'scraper.guilds' must be a non-empty list of guild names")
                else:
                    for i, guild in enumerate(guilds):
                        if not isinstance(guild, str) or not guild.strip():
                            errors.append(f"'scraper.guilds[{i}]' must be a non-empty string")

            primary = scraper.get("primary_guilds")
            if primary is not None:
                if not isinstance(primary, list):
                    errors.append(
                        f"'scraper.primary_guilds' must be a list, got {type(primary).__name__}"
                    )
                elif isinstance(guilds, list):
                    for guild in primary:
                        if guild not in guilds:
                            warnings.append(
                                f"Primary guild '{guild}' is not listed in scraper.guilds "
                                f"and will never be searched"
                            )

            pages = scraper.get("pages")
            if pages is not None and (
                not isinstance(pages, list)
                or not pages
                or not all(isinstance(p, int) and not isinstance(p, bool) and p >= 1 for p in pages)
            ):
                errors.append("'scraper.pages' must be a non-empty list of page numbers >= 1")

            for key in ("timeout_seconds", "primary_timeout_seconds"):
                _check_positive(errors, "scraper", scraper, key)

            if "retries" in scraper:
                retries = scraper["retries"]
                if isinstance(retries, bool) or not isinstance(retries, int) or retries < 0:
                    errors.append(f"'scraper.retries' must be a non-negative integer, got {retries!r}")

            for key in ("ranking_url", "user_agent"):
                if key in scraper and not isinstance(scraper[key], str):
                    errors.append(f"'scraper.{key}' must be a string")

    # ── Validate cache section ─────────────────────────────────────────────
    if "cache" in cfg:
        cache = cfg["cache"]
        if not isinstance(cache, dict):
            errors.append(f"'cache' must be a mapping, got {type(cache).__name__}")
        else:
            _check_positive(errors, "cache", cache, "ttl_seconds")
            _check_positive(errors, "cache", cache, "history_window_days")

    # ── Validate tracking section ──────────────────────────────────────────
    if "tracking" in cfg:
        tracking = cfg["tracking"]
        if not isinstance(tracking, dict):
            errors.append(f"'tracking' must be a mapping, got {type(tracking).__name__}")
        else:
            if "enabled" in tracking and not isinstance(tracking["enabled"], bool):
                errors.append(
                    f"'tracking.enabled' must be boolean, got {type(tracking['enabled']).__name__}"
                )
            interval = tracking.get("interval_minutes")
            if interval is not None and (
                isinstance(interval, bool) or not isinstance(interval, int) or interval <= 0
            ):
                errors.append(f"'tracking.interval_minutes' must be a positive integer, got {interval!r}")
            cron = tracking.get("cron")
            if cron is not None and (not isinstance(cron, str) or len(cron.split()) != 5):
                errors.append(
                    f"'tracking.cron' must be a 5-field cron expression (minute hour day month weekday), got {cron!r}"
                )

    # ── Validate permissions section ───────────────────────────────────────
    if "permissions" in cfg:
        perms = cfg["permissions"]
        if not isinstance(perms, dict):
            errors.append(
                f"'permissions' must be a mapping, got {type(perms).__name__}"
            )
        elif "admin_ids" in perms:
            _check_id_list(errors, "permissions.admin_ids", perms["admin_ids"])
    else:
        warnings.append("No 'permissions' section: nobody can manage command permissions")

    # ── Log warnings ────────────────────────────────────────────────────────
    for warning in warnings:
        logger.warning("Config warning: %s", warning)

    # ── Log errors and exit if any ──────────────────────────────────────────
    if errors:
        logger.error("=" * 70)
        logger.error("CONFIG VALIDATION FAILED (%s)", config_path)
        logger.error("=" * 70)
        for i, error in enumerate(errors, 1):
            logger.error("[%d] %s", i, error)
        logger.error("=" * 70)
        logger.error("Please fix the errors above and restart the bot.")
        logger.error("=" * 70)
        raise ConfigValidationError(f"Config validation failed with {len(errors)} error(s)")
