"""
guildbot/tracking/records.py

Typed records exchanged between the scraper, the cache, the trend engine and
the Discord layer. Raw database rows are converted here, at the persistence
boundary; a row that does not satisfy the field contract raises
MalformedRowError instead of leaking loosely-typed values upward.
"""

from __future__ import annotations

import enum
from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Any, Optional, Union

from .errors import MalformedRowError


LEVEL_CAP = 400


class Milestone(enum.Enum):
    ALREADY_REACHED = "already_reached"


# ── Row coercion helpers ─────────────────────────────────────────────────────

def _column(row: Any, key: str) -> Any:
    try:
        return row[key]
    except (KeyError, IndexError) as e:
        raise MalformedRowError(f"row is missing column '{key}'") from e


def _count(row: Any, key: str, *, nullable: bool = False) -> Optional[int]:
    value = _column(row, key)
    if value is None and nullable:
        return None
    if isinstance(value, bool) or not isinstance(value, int):
        raise MalformedRowError(f"column '{key}' must be an integer, got {value!r}")
    if value < 0:
        raise MalformedRowError(f"column '{key}' must be >= 0, got {value}")
    return value


def _timestamp(row: Any, key: str) -> float:
    value = _column(row, key)
    if isinstance(value, bool) or not isinstance(value, (int, float)):
        raise MalformedRowError(f"column '{key}' must be a unix timestamp, got {value!r}")
    return float(value)


def to_datetime(ts: float) -> datetime:
    return datetime.fromtimestamp(ts, tz=timezone.utc)


# ── Records ──────────────────────────────────────────────────────────────────

@dataclass(frozen=True)
class ScrapeResult:
    name: str
    level: int
    resets: int
    guild: str
    page: int
    observed_at: float


@dataclass(frozen=True)
class CharacterRecord:
    id: int
    name: str
    guild: Optional[str]
    last_level: int
    last_resets: int
    last_seen: Optional[float]

    @classmethod
    def from_row(cls, row: Any) -> "CharacterRecord":
        name = _column(row, "name")
        if not isinstance(name, str) or not name:
            raise MalformedRowError(f"column 'name' must be a non-empty string, got {name!r}")
        guild = _column(row, "guild")
        last_seen = _column(row, "last_seen")
        return cls(
            id=_count(row, "id"),
            name=name,
            guild=str(guild) if guild is not None else None,
            last_level=_count(row, "last_level", nullable=True) or 0,
            last_resets=_count(row, "last_resets", nullable=True) or 0,
            last_seen=_timestamp(row, "last_seen") if last_seen is not None else None,
        )

    def is_fresh(self, now: float, ttl: float) -> bool:
        return self.last_seen is not None and now - self.last_seen <= ttl


@dataclass(frozen=True)
class HistoryEntry:
    id: int
    character_id: int
    level: int
    resets: int
    recorded_at: float

    @classmethod
    def from_row(cls, row: Any) -> "HistoryEntry":
        return cls(
            id=_count(row, "id"),
            character_id=_count(row, "character_id"),
            level=_count(row, "level"),
            resets=_count(row, "resets"),
            recorded_at=_timestamp(row, "recorded_at"),
        )


@dataclass(frozen=True)
class TrendStats:
    level_per_hour: float
    avg_time_per_reset: Optional[float]          # days
    next_level_prediction: Optional[float]       # hours
    next_reset_prediction: Optional[float]       # days
    projection_to_400: Union[float, Milestone, None]  # hours
    projection_next_reset: Optional[float]       # hours


@dataclass(frozen=True)
class RankingEntry:
    name: str
    guild: Optional[str]
    current_level: int
    current_resets: int
    level_change: int
    reset_change: int
    progress_score: int

    @classmethod
    def from_row(cls, row: Any) -> "RankingEntry":
        guild = _column(row, "guild")
        return cls(
            name=str(_column(row, "name")),
            guild=str(guild) if guild is not None else None,
            current_level=_count(row, "current_level", nullable=True) or 0,
            current_resets=_count(row, "current_resets", nullable=True) or 0,
            level_change=_count(row, "level_change"),
            reset_change=_count(row, "reset_change"),
            progress_score=_count(row, "progress_score"),
        )


@dataclass(frozen=True)
class TrackedCharacter:
    id: int
    name: str
    discord_user_id: int
    channel_id: Optional[int]
    last_level: Optional[int]
    last_resets: Optional[int]

    @classmethod
    def from_row(cls, row: Any) -> "TrackedCharacter":
        channel_id = _column(row, "channel_id")
        return cls(
            id=_count(row, "id"),
            name=str(_column(row, "name")),
            discord_user_id=int(_column(row, "discord_user_id")),
            channel_id=int(channel_id) if channel_id is not None else None,
            last_level=_count(row, "last_level", nullable=True),
            last_resets=_count(row, "last_resets", nullable=True),
        )


@dataclass(frozen=True)
class ProgressChange:
    tracked: TrackedCharacter
    current: CharacterRecord
    changes: list[str] = field(default_factory=list)
