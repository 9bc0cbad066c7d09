"""
guildbot/storage/characters.py

Every SQL statement the tracking engine issues against the characters,
character_history and tracked_characters tables. Functions return typed
records; malformed rows surface as MalformedRowError.
"""

from __future__ import annotations

import logging
from typing import Optional

from guildbot.tracking.errors import MalformedRowError, StorageError
from guildbot.tracking.records import (
    CharacterRecord,
    HistoryEntry,
    RankingEntry,
    ScrapeResult,
    TrackedCharacter,
)

from .database import Database


# ── characters ───────────────────────────────────────────────────────────────

async def get_character_by_name(db: Database, name: str) -> Optional[CharacterRecord]:
    row = await db.fetchone(
        "SELECT * FROM characters WHERE name = ? COLLATE BINARY LIMIT 1",
        (name,),
    )
    return CharacterRecord.from_row(row) if row is not None else None


async def get_character_by_name_ci(db: Database, name: str) -> Optional[CharacterRecord]:
    row = await db.fetchone(
        "SELECT * FROM characters WHERE LOWER(name) = LOWER(?) LIMIT 1",
        (name,),
    )
    return CharacterRecord.from_row(row) if row is not None else None


async def get_character_by_id(db: Database, character_id: int) -> Optional[CharacterRecord]:
    row = await db.fetchone("SELECT * FROM characters WHERE id = ?", (character_id,))
    return CharacterRecord.from_row(row) if row is not None else None


async def upsert_character(db: Database, result: ScrapeResult) -> int:
    """
    Insert the character or, when the name is already stored in any casing,
    update that row. Returns the row id.
    """
    await db.execute(
        "INSERT INTO characters (name, guild, last_level, last_resets, last_seen) "
        "VALUES (?, ?, ?, ?, ?) "
        "ON CONFLICT (name) DO UPDATE SET "
        "guild = excluded.guild, "
        "last_level = excluded.last_level, "
        "last_resets = excluded.last_resets, "
        "last_seen = excluded.last_seen",
        (result.name, result.guild, result.level, result.resets, result.observed_at),
    )
    row = await db.fetchone("SELECT id FROM characters WHERE name = ?", (result.name,))
    if row is None:
        raise StorageError(f"character '{result.name}' was not stored")
    return row["id"]


async def update_character(db: Database, character_id: int, result: ScrapeResult) -> None:
    await db.execute(
        "UPDATE characters SET guild = ?, last_level = ?, last_resets = ?, last_seen = ? "
        "WHERE id = ?",
        (result.guild, result.level, result.resets, result.observed_at, character_id),
    )


async def count_characters_min_resets(db: Database, min_resets: int) -> int:
    row = await db.fetchone(
        "SELECT COUNT(*) AS n FROM characters WHERE last_resets >= ?", (min_resets,)
    )
    return row["n"] if row is not None else 0


async def list_characters_min_resets(
    db: Database, min_resets: int, limit: int = -1, offset: int = 0
) -> list[CharacterRecord]:
    """Characters with at least `min_resets`, most resets first (limit -1: all)."""
    rows = await db.fetchall(
        "SELECT * FROM characters WHERE last_resets >= ? "
        "ORDER BY last_resets DESC, last_level DESC, name ASC "
        "LIMIT ? OFFSET ?",
        (min_resets, limit, offset),
    )
    return _convert(rows, CharacterRecord.from_row)


# ── character_history ────────────────────────────────────────────────────────

async def insert_history(db: Database, character_id: int, result: ScrapeResult) -> int:
    history_id, _ = await db.execute(
        "INSERT INTO character_history (character_id, level, resets, recorded_at) "
        "VALUES (?, ?, ?, ?)",
        (character_id, result.level, result.resets, result.observed_at),
    )
    return history_id


async def history_since(db: Database, character_id: int, since: float) -> list[HistoryEntry]:
    """History rows recorded at or after `since`, oldest first."""
    rows = await db.fetchall(
        "SELECT id, character_id, level, resets, recorded_at FROM character_history "
        "WHERE character_id = ? AND recorded_at >= ? "
        "ORDER BY recorded_at ASC, id ASC",
        (character_id, since),
    )
    return _convert(rows, HistoryEntry.from_row)


async def recent_history(db: Database, character_id: int, limit: int = 5) -> list[HistoryEntry]:
    """The newest `limit` history rows, newest first."""
    rows = await db.fetchall(
        "SELECT id, character_id, level, resets, recorded_at FROM character_history "
        "WHERE character_id = ? ORDER BY recorded_at DESC, id DESC LIMIT ?",
        (character_id, limit),
    )
    return _convert(rows, HistoryEntry.from_row)


async def progress_since(db: Database, since: float, limit: int) -> list[RankingEntry]:
    rows = await db.fetchall(
        """
        SELECT
            c.name,
            c.guild,
            c.last_level AS current_level,
            c.last_resets AS current_resets,
            MAX(h.level) - MIN(h.level) AS level_change,
            MAX(h.resets) - MIN(h.resets) AS reset_change,
            (MAX(h.level) - MIN(h.level)) + (MAX(h.resets) - MIN(h.resets)) * 1000 AS progress_score
        FROM character_history h
        JOIN characters c ON h.character_id = c.id
        WHERE h.recorded_at >= ?
        GROUP BY h.character_id, c.name, c.guild, c.last_level, c.last_resets
        ORDER BY progress_score DESC, c.name ASC
        LIMIT ?
        """,
        (since, limit),
    )
    return _convert(rows, RankingEntry.from_row)


# ── tracked_characters ───────────────────────────────────────────────────────

async def upsert_tracking(
    db: Database,
    name: str,
    user_id: int,
    channel_id: Optional[int],
    level: int,
    resets: int,
    created_at: float,
) -> None:
    await db.execute(
        "INSERT INTO tracked_characters "
        "(name, discord_user_id, channel_id, last_level, last_resets, created_at) "
        "VALUES (?, ?, ?, ?, ?, ?) "
        "ON CONFLICT (name, discord_user_id) DO UPDATE SET "
        "channel_id = excluded.channel_id, "
        "last_level = excluded.last_level, "
        "last_resets = excluded.last_resets",
        (name, user_id, channel_id, level, resets, created_at),
    )


async def delete_tracking(db: Database, name: str, user_id: int) -> bool:
    _, rowcount = await db.execute(
        "DELETE FROM tracked_characters WHERE LOWER(name) = LOWER(?) AND discord_user_id = ?",
        (name, user_id),
    )
    return rowcount > 0


async def list_tracking(db: Database, user_id: Optional[int] = None) -> list[TrackedCharacter]:
    if user_id is None:
        rows = await db.fetchall("SELECT * FROM tracked_characters ORDER BY id")
    else:
        rows = await db.fetchall(
            "SELECT * FROM tracked_characters WHERE discord_user_id = ? ORDER BY id",
            (user_id,),
        )
    return _convert(rows, TrackedCharacter.from_row)


async def update_tracking_snapshot(db: Database, tracking_id: int, level: int, resets: int) -> None:
    await db.execute(
        "UPDATE tracked_characters SET last_level = ?, last_resets = ? WHERE id = ?",
        (level, resets, tracking_id),
    )


# ── helpers ──────────────────────────────────────────────────────────────────

def _convert(rows, factory):
    records = []
    for row in rows:
        try:
            records.append(factory(row))
        except MalformedRowError as e:
            logging.warning("Skipping malformed row: %s", e)
    return records
