"""
guildbot/storage/database.py

Thin aiosqlite wrapper shared by the tracking engine and the Discord layer.
One Database instance is opened at startup (see guildbot.context) and passed
explicitly to every call; its lifecycle belongs to the caller.

All tasks share one connection, so access is serialized: a transaction holds
the lock from BEGIN to COMMIT/ROLLBACK and every statement issued outside a
transaction takes the lock for itself. Statements run by the task that owns
the open transaction join it.
"""

from __future__ import annotations

import asyncio
import logging
from contextlib import asynccontextmanager
from contextvars import ContextVar
from typing import Any, AsyncIterator, Iterable, Optional

import aiosqlite

from guildbot.tracking.errors import StorageError


SCHEMA = (
    """
    CREATE TABLE IF NOT EXISTS characters (
        id          INTEGER PRIMARY KEY AUTOINCREMENT,
        name        TEXT NOT NULL UNIQUE COLLATE NOCASE,
        guild       TEXT,
        last_level  INTEGER,
        last_resets INTEGER,
        last_seen   REAL
    )
    """,
    """
    CREATE TABLE IF NOT EXISTS character_history (
        id           INTEGER PRIMARY KEY AUTOINCREMENT,
        character_id INTEGER NOT NULL REFERENCES characters(id) ON DELETE CASCADE,
        level        INTEGER NOT NULL CHECK (level >= 0),
        resets       INTEGER NOT NULL CHECK (resets >= 0),
        recorded_at  REAL NOT NULL
    )
    """,
    """
    CREATE INDEX IF NOT EXISTS idx_history_character_time
        ON character_history (character_id, recorded_at)
    """,
    """
    CREATE TABLE IF NOT EXISTS tracked_characters (
        id              INTEGER PRIMARY KEY AUTOINCREMENT,
        name            TEXT NOT NULL,
        discord_user_id INTEGER NOT NULL,
        channel_id      INTEGER,
        last_level      INTEGER,
        last_resets     INTEGER,
        created_at      REAL,
        UNIQUE (name, discord_user_id)
    )
    """,
    """
    CREATE TABLE IF NOT EXISTS command_permissions (
        id           INTEGER PRIMARY KEY AUTOINCREMENT,
        command_name TEXT NOT NULL,
        role_id      INTEGER NOT NULL,
        created_at   REAL,
        UNIQUE (command_name, role_id)
    )
    """,
)


# Database whose transaction the current task is running, if any
_active_tx: ContextVar[Optional["Database"]] = ContextVar("guildbot_active_tx", default=None)


class Database:
    def __init__(self, path: str):
        self.path = path
        self.conn: aiosqlite.Connection | None = None
        self._lock = asyncio.Lock()

    async def connect(self) -> None:
        self.conn = await aiosqlite.connect(self.path)
        self.conn.row_factory = aiosqlite.Row
        await self.conn.execute("PRAGMA foreign_keys=ON;")
        if self.path != ":memory:":
            await self.conn.execute("PRAGMA journal_mode=WAL;")
        await self.migrate()
        logging.info("Database ready at %s", self.path)

    async def close(self) -> None:
        if self.conn:
            async with self._lock:
                await self.conn.close()
                self.conn = None
            logging.info("Database connection closed")

    def _require(self) -> aiosqlite.Connection:
        if self.conn is None:
            raise StorageError("database is not connected")
        return self.conn

    def in_transaction(self) -> bool:
        """True when the calling task owns this database's open transaction."""
        return _active_tx.get() is self

    async def migrate(self) -> None:
        async with self.transaction():
            for ddl in SCHEMA:
                await self.execute(ddl)

    async def _run(self, sql: str, params: Iterable[Any], fetch: str | None = None) -> Any:
        conn = self._require()
        try:
            cur = await conn.execute(sql, tuple(params))
            if fetch == "one":
                result = await cur.fetchone()
            elif fetch == "all":
                result = list(await cur.fetchall())
            else:
                result = cur.lastrowid, cur.rowcount
            await cur.close()
            if fetch is None and not self.in_transaction():
                await conn.commit()
        except aiosqlite.Error as e:
            # a failed standalone write must not leave sqlite3's implicit BEGIN open
            if fetch is None and not self.in_transaction():
                await conn.rollback()
            raise StorageError(str(e)) from e
        return result

    async def _serialized(self, sql: str, params: Iterable[Any], fetch: str | None = None) -> Any:
        if self.in_transaction():
            return await self._run(sql, params, fetch)
        async with self._lock:
            return await self._run(sql, params, fetch)

    async def execute(self, sql: str, params: Iterable[Any] = ()) -> tuple[int | None, int]:
        """
        Run one statement and return (lastrowid, rowcount).
        Commits immediately unless the calling task is inside transaction().
        """
        return await self._serialized(sql, params)

    async def fetchone(self, sql: str, params: Iterable[Any] = ()) -> aiosqlite.Row | None:
        return await self._serialized(sql, params, "one")

    async def fetchall(self, sql: str, params: Iterable[Any] = ()) -> list[aiosqlite.Row]:
        return await self._serialized(sql, params, "all")

    async def ping(self) -> bool:
        try:
            await self.fetchone("SELECT 1")
        except StorageError:
            return False
        return True

    @asynccontextmanager
    async def transaction(self) -> AsyncIterator["Database"]:
        """
        BEGIN on enter, COMMIT on success, ROLLBACK on exception.

        Other tasks wait until the transaction ends. Nested use from the owning
        task joins the outer transaction.
        """
        if self.in_transaction():
            yield self
            return

        async with self._lock:
            conn = self._require()
            token = _active_tx.set(self)
            try:
                try:
                    await conn.execute("BEGIN")
                except aiosqlite.Error as e:
                    raise StorageError(str(e)) from e
                try:
                    yield self
                    await conn.commit()
                except aiosqlite.Error as e:
                    await conn.rollback()
                    raise StorageError(str(e)) from e
                except BaseException:
                    await conn.rollback()
                    raise
            finally:
                _active_tx.reset(token)
