"""
guildbot/tracking/roster.py

Browsable list of high-reset characters, one character per page.

The page a message shows is not stored anywhere: every button carries the
action and page number in its custom_id (plus the character name for a
refresh), and the handler rebuilds the page from the database on each click.
"""

from __future__ import annotations

import enum
from dataclasses import dataclass
from typing import Iterable, Optional

from guildbot.storage import characters as repo
from guildbot.storage.database import Database

from .records import CharacterRecord


HIGH_RESET_THRESHOLD = 500
CUSTOM_ID_PREFIX = "char500"
CUSTOM_ID_MAX = 100
STALE_AFTER_SECONDS = 7 * 86400

ACTIONS = ("prev", "next", "update", "close")


class Relation(enum.Enum):
    ALLY = "ally"
    FREE_AGENT = "free_agent"
    OUTSIDER = "outsider"


def relation_for(record: CharacterRecord, guilds: Iterable[str]) -> Relation:
    if not record.guild:
        return Relation.FREE_AGENT
    if record.guild in set(guilds):
        return Relation.ALLY
    return Relation.OUTSIDER


@dataclass(frozen=True)
class RosterPage:
    character: CharacterRecord
    page: int
    total: int

    @property
    def has_prev(self) -> bool:
        return self.page > 1

    @property
    def has_next(self) -> bool:
        return self.page < self.total


async def roster_page(
    db: Database, page: int, *, min_resets: int = HIGH_RESET_THRESHOLD
) -> Optional[RosterPage]:
    """The `page`-th character (1-based, clamped to the list), or None if the list is empty."""
    total = await repo.count_characters_min_resets(db, min_resets)
    if total == 0:
        return None
    page = min(max(page, 1), total)
    records = await repo.list_characters_min_resets(db, min_resets, limit=1, offset=page - 1)
    if not records:
        return None
    return RosterPage(character=records[0], page=page, total=total)


# ── Button state ─────────────────────────────────────────────────────────────

@dataclass(frozen=True)
class RosterAction:
    action: str
    page: int = 1
    name: Optional[str] = None

    @property
    def target_page(self) -> int:
        if self.action == "prev":
            return max(1, self.page - 1)
        if self.action == "next":
            return self.page + 1
        return self.page


def roster_custom_id(action: str, page: int = 1, name: Optional[str] = None) -> str:
    if action not in ACTIONS:
        raise ValueError(f"Unknown roster action: {action}")
    if action == "close":
        return f"{CUSTOM_ID_PREFIX}:close"
    custom_id = f"{CUSTOM_ID_PREFIX}:{action}:{page}"
    if action == "update":
        custom_id = f"{custom_id}:{name or ''}"
    return custom_id[:CUSTOM_ID_MAX]


def parse_roster_custom_id(custom_id: Optional[str]) -> Optional[RosterAction]:
    """Decode a roster button id; None for ids that are not roster buttons."""
    if not custom_id:
        return None
    parts = custom_id.split(":", 3)
    if parts[0] != CUSTOM_ID_PREFIX or len(parts) < 2 or parts[1] not in ACTIONS:
        return None
    action = parts[1]
    if action == "close":
        return RosterAction(action)
    if len(parts) < 3 or not parts[2].isdigit():
        return None
    page = int(parts[2])
    if action == "update":
        name = parts[3] if len(parts) == 4 else ""
        if not name:
            return None
        return RosterAction(action, page, name)
    return RosterAction(action, page)
