"""
Message components (buttons) for paginated results.

Buttons have no callbacks: their custom_id carries the state and the bot's
interaction listener decodes it (see guildbot.tracking.roster).
"""

from __future__ import annotations

import discord

from guildbot.tracking.roster import RosterPage, roster_custom_id


def roster_view(page: RosterPage) -> discord.ui.View:
    view = discord.ui.View(timeout=None)
    view.add_item(discord.ui.Button(
        label="◀️ Anterior",
        style=discord.ButtonStyle.secondary,
        custom_id=roster_custom_id("prev", page.page),
        disabled=not page.has_prev,
        row=0,
    ))
    view.add_item(discord.ui.Button(
        label="🔄 Atualizar este Char",
        style=discord.ButtonStyle.success,
        custom_id=roster_custom_id("update", page.page, page.character.name),
        row=0,
    ))
    view.add_item(discord.ui.Button(
        label="Próxima ▶️",
        style=discord.ButtonStyle.secondary,
        custom_id=roster_custom_id("next", page.page),
        disabled=not page.has_next,
        row=0,
    ))
    view.add_item(discord.ui.Button(
        label="❌ Fechar Lista",
        style=discord.ButtonStyle.danger,
        custom_id=roster_custom_id("close"),
        row=1,
    ))
    return view
