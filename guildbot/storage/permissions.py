"""
Per-command role permissions.

A command with no roles configured is open to everyone; otherwise the
member needs one of the configured roles. Configured admins always pass.
"""

from __future__ import annotations

import logging
import time
from typing import Iterable

from guildbot.tracking.errors import StorageError

from .database import Database


async def add_command_permission(db: Database, command_name: str, role_id: int) -> bool:
    if not command_name or not role_id:
        logging.error("Invalid parameters for add_command_permission")
        return False
    try:
        _, rowcount = await db.execute(
            "INSERT OR IGNORE INTO command_permissions (command_name, role_id, created_at) "
            "VALUES (?, ?, ?)",
            (command_name, role_id, time.time()),
        )
    except StorageError as e:
        logging.error("Failed to add permission %s -> %s: %s", command_name, role_id, e)
        return False
    return rowcount > 0


async def remove_command_permission(db: Database, command_name: str, role_id: int) -> bool:
    if not command_name or not role_id:
        logging.error("Invalid parameters for remove_command_permission")
        return False
    try:
        _, rowcount = await db.execute(
            "DELETE FROM command_permissions WHERE command_name = ? AND role_id = ?",
            (command_name, role_id),
        )
    except StorageError as e:
        logging.error("Failed to remove permission %s -> %s: %s", command_name, role_id, e)
        return False
    return rowcount > 0


async def get_command_permissions(db: Database, command_name: str) -> list[int]:
    if not command_name:
        return []
    try:
        rows = await db.fetchall(
            "SELECT role_id FROM command_permissions WHERE command_name = ? ORDER BY id",
            (command_name,),
        )
    except StorageError as e:
        logging.error("Failed to load permissions for %s: %s", command_name, e)
        return []
    return [int(row["role_id"]) for row in rows]


async def check_user_permission(
    db: Database,
    command_name: str,
    role_ids: Iterable[int],
    user_id: int,
    admin_ids: Iterable[int] = (),
) -> bool:
    if user_id in set(admin_ids):
        return True
    allowed_roles = await get_command_permissions(db, command_name)
    if not allowed_roles:
        return True
    return any(role_id in allowed_roles for role_id in role_ids)
