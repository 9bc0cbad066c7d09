from __future__ import annotations

from datetime import datetime
import logging
from typing import Iterable

import discord

from guildbot.tracking.errors import error_messages, parse_error_message


async def notify_admin_error(
    discord_bot: discord.Client,
    admin_ids: Iterable[int],
    error: Exception,
    context: str = "",
) -> None:
    """
    Send a concise error notification to all configured admins.
    """
    try:
        admin_ids = list(admin_ids)
        if not admin_ids:
            return

        msg = (
            "🤖 **Bot Error Notification**\n"
            f"⏰ Time: {datetime.now().strftime('%Y-%m-%d %H:%M:%S')}\n"
            f"📝 Context: {context}\n\nError: {parse_error_message(error)}"
        )
        for admin_id in admin_ids:
            try:
                user = discord_bot.get_user(admin_id) or await discord_bot.fetch_user(
                    admin_id
                )
                await user.send(msg)
            except discord.HTTPException as e:
                logging.warning("Could not notify admin %s: %s", admin_id, e)
    except Exception as e:  # noqa: BLE001
        logging.warning("Failed to notify admins: %s", e)


async def send_ephemeral(interaction: discord.Interaction, content: str) -> None:
    """Reply or follow up, whichever the interaction still allows."""
    try:
        if not interaction.response.is_done():
            await interaction.response.send_message(content, ephemeral=True)
        else:
            await interaction.followup.send(content, ephemeral=True)
    except discord.HTTPException as e:
        logging.warning("Could not deliver error reply: %s", e)


async def handle_app_command_error(
    interaction: discord.Interaction,
    error: Exception,
    discord_bot: discord.Client,
    admin_ids: Iterable[int],
) -> None:
    """
    Standard handler for slash command errors.
    """
    original = getattr(error, "original", error)
    logging.exception("App command error: %s", original)
    await notify_admin_error(
        discord_bot,
        admin_ids,
        original,
        f"App command error: {getattr(interaction.command, 'name', 'unknown')}",
    )
    _, user_message = error_messages(original)
    await send_ephemeral(interaction, user_message)
