#!/usr/bin/env python3
"""
Tests for the shared aiosqlite Database: transactions and task isolation.

Usage:
    python -m pytest test_database.py
"""

import asyncio
import unittest

from guildbot.storage.database import Database
from guildbot.tracking.errors import StorageError


INSERT = "INSERT INTO command_permissions (command_name, role_id) VALUES (?, ?)"


class DatabaseTests(unittest.IsolatedAsyncioTestCase):
    async def asyncSetUp(self):
        self.db = Database(":memory:")
        await self.db.connect()

    async def asyncTearDown(self):
        await self.db.close()

    async def commands(self):
        rows = await self.db.fetchall("SELECT command_name FROM command_permissions ORDER BY id")
        return [row["command_name"] for row in rows]

    async def test_transaction_commits(self):
        async with self.db.transaction():
            await self.db.execute(INSERT, ("char", 1))
            await self.db.execute(INSERT, ("track", 2))
        self.assertEqual(await self.commands(), ["char", "track"])

    async def test_transaction_rolls_back_on_error(self):
        with self.assertRaises(RuntimeError):
            async with self.db.transaction():
                await self.db.execute(INSERT, ("char", 1))
                raise RuntimeError("boom")
        self.assertEqual(await self.commands(), [])

    async def test_nested_transaction_joins_outer(self):
        with self.assertRaises(RuntimeError):
            async with self.db.transaction():
                async with self.db.transaction():
                    await self.db.execute(INSERT, ("char", 1))
                raise RuntimeError("boom")
        self.assertEqual(await self.commands(), [])

    async def test_constraint_violation_is_storage_error(self):
        await self.db.execute(INSERT, ("char", 1))
        with self.assertRaises(StorageError):
            await self.db.execute(INSERT, ("char", 1))

        async with self.db.transaction():
            await self.db.execute(INSERT, ("track", 2))
        self.assertEqual(await self.commands(), ["char", "track"])

    async def test_other_task_writes_survive_a_rollback(self):
        entered = asyncio.Event()

        async def failing_transaction():
            async with self.db.transaction():
                await self.db.execute(INSERT, ("rolled-back", 1))
                entered.set()
                await asyncio.sleep(0.05)
                raise RuntimeError("boom")

        async def plain_write():
            await entered.wait()
            await self.db.execute(INSERT, ("kept", 2))

        results = await asyncio.gather(failing_transaction(), plain_write(), return_exceptions=True)

        self.assertIsInstance(results[0], RuntimeError)
        self.assertIsNone(results[1])
        self.assertEqual(await self.commands(), ["kept"])

    async def test_overlapping_transactions_take_turns(self):
        events = []
        first_open = asyncio.Event()

        async def first():
            async with self.db.transaction():
                events.append("first:begin")
                first_open.set()
                await self.db.execute(INSERT, ("first", 1))
                await asyncio.sleep(0.05)
                events.append("first:end")

        async def second():
            await first_open.wait()
            async with self.db.transaction():
                events.append("second:begin")
                await self.db.execute(INSERT, ("second", 2))
                events.append("second:end")

        await asyncio.gather(first(), second())

        self.assertEqual(events, ["first:begin", "first:end", "second:begin", "second:end"])
        self.assertEqual(await self.commands(), ["first", "second"])

    async def test_reads_wait_for_open_transaction(self):
        entered = asyncio.Event()

        async def failing_transaction():
            async with self.db.transaction():
                await self.db.execute(INSERT, ("uncommitted", 1))
                entered.set()
                await asyncio.sleep(0.05)
                raise RuntimeError("boom")

        async def reader():
            await entered.wait()
            return await self.commands()

        _, seen = await asyncio.gather(failing_transaction(), reader(), return_exceptions=True)
        self.assertEqual(seen, [])

    async def test_closed_database_raises_storage_error(self):
        await self.db.close()
        with self.assertRaises(StorageError):
            await self.db.execute(INSERT, ("char", 1))
        self.assertFalse(await self.db.ping())


if __name__ == "__main__":
    unittest.main()
