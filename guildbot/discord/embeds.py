"""
Embed builders for the slash commands and tracking notifications.
Pure functions: records in, discord.Embed out.
"""

from __future__ import annotations

from datetime import datetime
from typing import Iterable, Optional, Sequence
from urllib.parse import quote
from zoneinfo import ZoneInfo

import discord

from guildbot.tracking.records import (
    CharacterRecord,
    HistoryEntry,
    Milestone,
    ProgressChange,
    RankingEntry,
    TrackedCharacter,
    TrendStats,
    to_datetime,
)
from guildbot.tracking.roster import STALE_AFTER_SECONDS, Relation, RosterPage, relation_for


DISPLAY_TZ = ZoneInfo("America/Sao_Paulo")
COLOR_FOUND = discord.Color.green()
COLOR_MISSING = discord.Color.red()
COLOR_RANKING = discord.Color.orange()
COLOR_INFO = discord.Color.blurple()
NO_GUILD = "Nenhuma"
USERBAR_URL = "https://www.mucabrasil.com.br/forum/userbar.php?n={name}&size=small"

RELATION_STYLE = {
    Relation.ALLY: (discord.Color.blue(), "🛡️ Jogador Aliado"),
    Relation.FREE_AGENT: (discord.Color.green(), "✨ Potencial Recruta (Sem Guild)"),
    Relation.OUTSIDER: (discord.Color.red(), "🚨 Jogador de Outra Guild"),
}


def format_timestamp(ts: Optional[float]) -> str:
    if ts is None:
        return "Desconhecido"
    return to_datetime(ts).astimezone(DISPLAY_TZ).strftime("%d/%m/%Y %H:%M")


def _stats_fields(stats: TrendStats) -> list[tuple[str, str]]:
    fields = []
    if stats.level_per_hour > 0:
        fields.append(("📊 Progresso", f"Média: {stats.level_per_hour:.2f} levels/hora"))
        if stats.next_level_prediction:
            fields.append(("⏱️ Próximo Level", f"~{stats.next_level_prediction:.2f} horas"))

    if stats.projection_to_400 is Milestone.ALREADY_REACHED:
        fields.append(("🎯 Projeção para 400", "Já atingiu level 400"))
    elif stats.projection_to_400:
        fields.append(("🎯 Projeção para 400", f"~{stats.projection_to_400 / 24:.2f} dias"))

    if stats.projection_next_reset:
        fields.append(("🔄 Próximo Reset", f"~{stats.projection_next_reset / 24:.2f} dias"))
    return fields


def character_embed(
    record: CharacterRecord,
    *,
    found: bool,
    history: Sequence[HistoryEntry] = (),
    stats: Optional[TrendStats] = None,
) -> discord.Embed:
    embed = discord.Embed(
        title=f"Personagem: {record.name}",
        color=COLOR_FOUND if found else COLOR_MISSING,
    )
    embed.add_field(name="⚔️ Level", value=str(record.last_level), inline=True)
    embed.add_field(name="🔄 Resets", value=str(record.last_resets), inline=True)
    embed.add_field(name="🏰 Guilda", value=record.guild or NO_GUILD, inline=True)

    if not found:
        embed.description = "❗ Personagem não encontrado atualmente em nenhuma guilda"
        if record.last_seen is not None:
            embed.add_field(
                name="Última vez visto", value=format_timestamp(record.last_seen), inline=False
            )

    if history:
        lines = [
            f"📅 {format_timestamp(entry.recorded_at)}: Level {entry.level} | Resets {entry.resets}"
            for entry in history
        ]
        embed.add_field(name="📜 Histórico Recente", value="\n".join(lines), inline=False)

    if stats:
        for name, value in _stats_fields(stats):
            embed.add_field(name=name, value=value, inline=True)

    embed.timestamp = datetime.now(DISPLAY_TZ)
    return embed


def ranking_embed(entries: Sequence[RankingEntry], period_name: str) -> discord.Embed:
    embed = discord.Embed(
        title=f"🏆 Ranking de Progresso - {period_name}",
        description=f"Top {len(entries)} personagens com maior progresso",
        color=COLOR_RANKING,
    )
    for position, entry in enumerate(entries, 1):
        level_gain = f" **(+{entry.level_change})**" if entry.level_change > 0 else ""
        reset_gain = f" **(+{entry.reset_change})**" if entry.reset_change > 0 else ""
        embed.add_field(
            name=f"#{position} {entry.name}",
            value=(
                f"🏰 {entry.guild or NO_GUILD}\n"
                f"⚔️ Level: {entry.current_level}{level_gain}\n"
                f"🔄 Resets: {entry.current_resets}{reset_gain}\n"
                f"📊 Pontuação: **{entry.progress_score}**"
            ),
            inline=False,
        )
    return embed


def tracked_list_embed(tracked: Sequence[TrackedCharacter]) -> discord.Embed:
    embed = discord.Embed(title="👀 Personagens monitorados", color=COLOR_INFO)
    if not tracked:
        embed.description = "Você não está monitorando nenhum personagem."
        return embed
    embed.description = "\n".join(
        f"• **{t.name}** - Level {t.last_level if t.last_level is not None else 'N/A'} | "
        f"Resets {t.last_resets if t.last_resets is not None else 'N/A'}"
        + (f" | <#{t.channel_id}>" if t.channel_id else " | DM")
        for t in tracked
    )
    return embed


def progress_embed(change: ProgressChange) -> discord.Embed:
    embed = discord.Embed(
        title=f"📢 Progresso de {change.current.name}",
        description=f"O personagem {change.current.name} teve mudanças!",
        color=COLOR_FOUND,
    )
    embed.add_field(name="🏰 Guilda", value=change.current.guild or NO_GUILD, inline=True)
    embed.add_field(name="Mudanças", value="\n".join(change.changes), inline=False)
    embed.timestamp = datetime.now(DISPLAY_TZ)
    return embed


def roster_embed(page: RosterPage, guilds: Iterable[str], now: float) -> discord.Embed:
    char = page.character
    color, title = RELATION_STYLE[relation_for(char, guilds)]
    stale = char.last_seen is None or now - char.last_seen > STALE_AFTER_SECONDS
    embed = discord.Embed(
        title=title,
        description=f"**{char.name}**\nRanking: {page.page}/{page.total}",
        color=color,
    )
    embed.add_field(name="🏰 Guilda Atual", value=f"`{char.guild or 'Sem Guild'}`", inline=True)
    embed.add_field(name="🔄 Resets", value=f"**{char.last_resets}**", inline=True)
    embed.add_field(name="⚔️ Level", value=str(char.last_level), inline=True)
    embed.add_field(name="📅 Dados do Banco", value=format_timestamp(char.last_seen), inline=True)
    embed.add_field(
        name="🕵️ Status",
        value="💤 Dados Antigos (>7 dias)" if stale else "✅ Dados Recentes",
        inline=True,
    )
    embed.set_image(url=USERBAR_URL.format(name=quote(char.name, safe="")))
    embed.set_footer(text="Use \"Atualizar\" para checar a guilda em tempo real")
    return embed


def help_embed() -> discord.Embed:
    embed = discord.Embed(title="📖 Comandos disponíveis", color=COLOR_INFO)
    embed.add_field(name="/char nome", value="Busca um personagem nas guildas", inline=False)
    embed.add_field(name="/ranking período", value="Ranking de progresso (24h, 7d, 30d)", inline=False)
    embed.add_field(name="/track nome [canal]", value="Monitora um personagem", inline=False)
    embed.add_field(name="/untrack nome", value="Para de monitorar um personagem", inline=False)
    embed.add_field(name="/tracked", value="Lista seus personagens monitorados", inline=False)
    embed.add_field(
        name="/permissions comando ação [cargo]",
        value="Gerencia cargos autorizados por comando (admins)",
        inline=False,
    )
    embed.add_field(name="/char500", value="Lista personagens com 500+ resets", inline=False)
    return embed
