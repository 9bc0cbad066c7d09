import asyncio
import logging
import os
import signal
from typing import Any, Optional

import discord
from discord import app_commands
from discord.app_commands import Choice
from discord.ext import commands
from apscheduler.schedulers.asyncio import AsyncIOScheduler

from guildbot.config.loader import get_config
from guildbot.context import BotContext
from guildbot.discord.components import roster_view
from guildbot.discord.embeds import (
    character_embed,
    help_embed,
    progress_embed,
    ranking_embed,
    roster_embed,
    tracked_list_embed,
)
from guildbot.discord.errors import handle_app_command_error, notify_admin_error, send_ephemeral
from guildbot.storage import characters as repo
from guildbot.storage.permissions import (
    add_command_permission,
    check_user_permission,
    get_command_permissions,
    remove_command_permission,
)
from guildbot.tracking.errors import CharacterNotFoundError, StorageError, format_user_friendly_error
from guildbot.tracking.ranking import PERIODS, resolve_period
from guildbot.tracking.records import CharacterRecord
from guildbot.tracking.roster import HIGH_RESET_THRESHOLD, parse_roster_custom_id, roster_page
from guildbot.tracking.trends import calculate_advanced_stats

if os.environ.get("DEBUG"):
    logging.basicConfig(level=logging.DEBUG)
    logging.getLogger("httpx").setLevel(logging.DEBUG)

logging.basicConfig(level=logging.INFO, format="%(asctime)s %(levelname)s: %(message)s")

SEARCH_TIMEOUT_SECONDS = 15
RECENT_HISTORY_LIMIT = 5
DEFAULT_TRACKING_INTERVAL_MINUTES = 5
PERMISSION_COMMANDS = ("char", "char500", "ranking", "track")


class GuildBot(commands.Bot):
    def __init__(self, ctx: BotContext, **kwargs: Any):
        super().__init__(**kwargs)
        self.ctx = ctx
        self.scheduler = AsyncIOScheduler()

    async def notify_admins(self, error: Exception, context: str = "") -> None:
        await notify_admin_error(self, self.ctx.admin_ids, error, context)

    async def close(self) -> None:
        if self.scheduler.running:
            self.scheduler.shutdown(wait=False)
            logging.info("Scheduler stopped")
        await super().close()


# ── Scheduled tracking ───────────────────────────────────────────────────────

def parse_cron(expr: str) -> dict[str, Any]:
    parts = expr.split()
    if len(parts) != 5:
        raise ValueError(f"Invalid cron: {expr}")
    minute, hour, day, month, dow = parts
    kwargs = {"second": 0}
    if minute != "*": kwargs["minute"] = minute
    if hour != "*": kwargs["hour"] = hour
    if day != "*": kwargs["day"] = day
    if month != "*": kwargs["month"] = month
    if dow != "*": kwargs["day_of_week"] = dow
    return kwargs


async def run_tracking_check(bot: GuildBot) -> None:
    try:
        updates = await bot.ctx.tracker.check_tracked()
    except StorageError as e:
        logging.exception("Tracking check failed")
        await bot.notify_admins(e, "Scheduled tracking check")
        return

    for change in updates:
        tracked = change.tracked
        try:
            if tracked.channel_id:
                target = bot.get_channel(tracked.channel_id) or await bot.fetch_channel(tracked.channel_id)
            else:
                target = bot.get_user(tracked.discord_user_id) or await bot.fetch_user(tracked.discord_user_id)
            await target.send(embed=progress_embed(change))
            logging.info(f"Tracking notification sent for {tracked.name}")
        except discord.HTTPException as e:
            logging.error(f"Could not notify about {tracked.name}: {e}")


def setup_tracking_job(bot: GuildBot) -> None:
    tracking = bot.ctx.config.get("tracking") or {}
    if not tracking.get("enabled", True):
        logging.info("Character tracking disabled")
        return
    try:
        if cron := tracking.get("cron"):
            bot.scheduler.add_job(run_tracking_check, "cron", id="tracking_check", replace_existing=True,
                                  args=[bot], **parse_cron(cron))
            logging.info(f"Tracking check scheduled: {cron}")
        else:
            minutes = tracking.get("interval_minutes", DEFAULT_TRACKING_INTERVAL_MINUTES)
            bot.scheduler.add_job(run_tracking_check, "interval", id="tracking_check", replace_existing=True,
                                  args=[bot], minutes=minutes)
            logging.info(f"Tracking check every {minutes} minutes")
    except ValueError as e:
        logging.error(f"Failed to setup tracking job: {e}")


# ── Character search ─────────────────────────────────────────────────────────

async def _safe_recent_history(ctx: BotContext, character_id: int) -> list:
    try:
        return await repo.recent_history(ctx.db, character_id, RECENT_HISTORY_LIMIT)
    except StorageError as e:
        logging.warning(f"Could not load recent history for {character_id}: {e}")
        return []


async def search_character(interaction: discord.Interaction, ctx: BotContext, name: str) -> None:
    if not name or not name.strip():
        await interaction.response.send_message("Por favor, forneça um nome de personagem válido.", ephemeral=True)
        return

    if not await ctx.db.ping():
        await interaction.response.send_message(
            "Erro de conexão com o banco de dados. Por favor, tente novamente mais tarde.", ephemeral=True
        )
        return

    await interaction.response.defer()

    try:
        record = await asyncio.wait_for(asyncio.shield(ctx.start_lookup(name)), timeout=SEARCH_TIMEOUT_SECONDS)
    except asyncio.TimeoutError:
        logging.warning(f"Character search for '{name}' still running after {SEARCH_TIMEOUT_SECONDS}s")
        await interaction.edit_original_response(
            content="A busca está demorando mais que o esperado. Por favor, tente novamente."
        )
        return

    if record is None:
        last_known: Optional[CharacterRecord] = None
        try:
            last_known = await repo.get_character_by_name_ci(ctx.db, name.strip())
        except StorageError as e:
            logging.warning(f"Fallback lookup for '{name}' failed: {e}")
        if last_known is None:
            await interaction.edit_original_response(
                content=f'Personagem "{name}" não encontrado em nenhuma guilda monitorada.'
            )
            return
        await interaction.edit_original_response(embed=character_embed(last_known, found=False))
        return

    found = record.is_fresh(ctx.clock(), ctx.settings.cache_ttl)
    history, stats = await asyncio.gather(
        _safe_recent_history(ctx, record.id),
        calculate_advanced_stats(
            ctx.db, record.id, clock=ctx.clock, window_days=ctx.settings.history_window_days
        ),
    )
    await interaction.edit_original_response(
        embed=character_embed(record, found=found, history=history, stats=stats)
    )


# ── High-reset roster ────────────────────────────────────────────────────────

async def handle_roster_interaction(interaction: discord.Interaction, ctx: BotContext) -> None:
    action = parse_roster_custom_id((interaction.data or {}).get("custom_id"))
    if action is None:
        return

    if action.action == "close":
        await interaction.response.defer()
        try:
            await interaction.message.delete()
        except discord.HTTPException as e:
            logging.warning(f"Could not close roster message: {e}")
        return

    await interaction.response.defer()
    refreshed: Optional[CharacterRecord] = None
    if action.action == "update":
        try:
            refreshed = await asyncio.wait_for(
                asyncio.shield(ctx.start_lookup(action.name, force=True)), timeout=SEARCH_TIMEOUT_SECONDS
            )
        except asyncio.TimeoutError:
            logging.warning(f"Roster refresh for '{action.name}' still running after {SEARCH_TIMEOUT_SECONDS}s")
        if refreshed is None or not refreshed.is_fresh(ctx.clock(), ctx.settings.cache_ttl):
            await interaction.followup.send(
                f"❌ Não foi possível atualizar **{action.name}**. O site pode estar indisponível.", ephemeral=True
            )
            return

    page = await roster_page(ctx.db, action.target_page)
    if page is None:
        await interaction.followup.send("Fim da lista ou erro ao carregar.", ephemeral=True)
        return
    await interaction.edit_original_response(
        embed=roster_embed(page, ctx.settings.guilds, ctx.clock()), view=roster_view(page)
    )
    if refreshed is not None:
        await interaction.followup.send(f"✅ Dados de **{action.name}** atualizados direto do site!", ephemeral=True)


# ── Bot factory ──────────────────────────────────────────────────────────────

def build_bot(ctx: BotContext) -> GuildBot:
    intents = discord.Intents.default()
    activity = discord.CustomActivity(name=(ctx.config.get("status_message") or "/char para buscar personagens")[:128])
    bot = GuildBot(ctx, intents=intents, activity=activity, command_prefix=None)

    async def ensure_allowed(interaction: discord.Interaction, command_name: str) -> bool:
        role_ids = [role.id for role in getattr(interaction.user, "roles", ())]
        allowed = await check_user_permission(
            ctx.db, command_name, role_ids, interaction.user.id, ctx.admin_ids
        )
        if not allowed:
            await send_ephemeral(interaction, "Você não tem permissão para usar este comando.")
        return allowed

    @bot.tree.command(name="char", description="Busca um personagem nas guildas")
    @app_commands.describe(name="Nome do personagem")
    async def char_command(interaction: discord.Interaction, name: str) -> None:
        if not await ensure_allowed(interaction, "char"):
            return
        await search_character(interaction, ctx, name)

    @bot.tree.command(name="char500", description=f"Lista personagens com {HIGH_RESET_THRESHOLD}+ resets")
    async def char500_command(interaction: discord.Interaction) -> None:
        if not await ensure_allowed(interaction, "char500"):
            return
        await interaction.response.defer()
        page = await roster_page(ctx.db, 1)
        if page is None:
            await interaction.followup.send(f"Nenhum personagem com {HIGH_RESET_THRESHOLD}+ resets encontrado.")
            return
        await interaction.followup.send(
            embed=roster_embed(page, ctx.settings.guilds, ctx.clock()), view=roster_view(page)
        )

    @bot.listen("on_interaction")
    async def on_roster_button(interaction: discord.Interaction) -> None:
        if interaction.type != discord.InteractionType.component:
            return
        if parse_roster_custom_id((interaction.data or {}).get("custom_id")) is None:
            return
        if not await ensure_allowed(interaction, "char500"):
            return
        try:
            await handle_roster_interaction(interaction, ctx)
        except StorageError as e:
            await handle_app_command_error(interaction, e, bot, ctx.admin_ids)

    @bot.tree.command(name="ranking", description="Ranking de progresso dos personagens")
    @app_commands.describe(period="Período do ranking")
    @app_commands.choices(period=[
        Choice(name="24 horas", value="24h"),
        Choice(name="7 dias", value="7d"),
        Choice(name="30 dias", value="30d"),
    ])
    async def ranking_command(interaction: discord.Interaction, period: Optional[Choice[str]] = None) -> None:
        if not await ensure_allowed(interaction, "ranking"):
            return
        await interaction.response.defer()
        key = resolve_period(period.value if period else None)
        _, period_name = PERIODS[key]
        try:
            entries = await ctx.ranking.top(key)
        except StorageError as e:
            logging.error(f"Ranking query failed: {e}")
            await interaction.edit_original_response(content=format_user_friendly_error(e))
            return
        if not entries:
            await interaction.edit_original_response(
                content=f"Nenhum dado de ranking disponível para o período de {period_name.lower()}."
            )
            return
        await interaction.edit_original_response(embed=ranking_embed(entries, period_name))

    @bot.tree.command(name="track", description="Monitora o progresso de um personagem")
    @app_commands.describe(name="Nome do personagem", channel="Canal para notificações (padrão: DM)")
    async def track_command(
        interaction: discord.Interaction, name: str, channel: Optional[discord.TextChannel] = None
    ) -> None:
        if not await ensure_allowed(interaction, "track"):
            return
        await interaction.response.defer(ephemeral=True)
        try:
            tracked = await ctx.tracker.add_tracking(name, interaction.user.id, channel.id if channel else None)
        except (CharacterNotFoundError, StorageError) as e:
            await interaction.followup.send(format_user_friendly_error(e), ephemeral=True)
            return
        await interaction.followup.send(
            f"✅ Monitorando **{tracked.name}** (Level {tracked.last_level} | Resets {tracked.last_resets}).",
            ephemeral=True,
        )

    @bot.tree.command(name="untrack", description="Para de monitorar um personagem")
    @app_commands.describe(name="Nome do personagem")
    async def untrack_command(interaction: discord.Interaction, name: str) -> None:
        removed = await ctx.tracker.remove_tracking(name, interaction.user.id)
        out = f"🛑 Monitoramento de **{name}** removido." if removed else f"Você não monitora **{name}**."
        await interaction.response.send_message(out, ephemeral=True)

    @bot.tree.command(name="tracked", description="Lista seus personagens monitorados")
    async def tracked_command(interaction: discord.Interaction) -> None:
        tracked = await ctx.tracker.list_tracked(interaction.user.id)
        await interaction.response.send_message(embed=tracked_list_embed(tracked), ephemeral=True)

    @bot.tree.command(name="permissions", description="Gerencia cargos autorizados por comando")
    @app_commands.describe(command="Comando", action="Ação", role="Cargo")
    @app_commands.choices(
        command=[Choice(name=c, value=c) for c in PERMISSION_COMMANDS],
        action=[
            Choice(name="Adicionar cargo", value="add"),
            Choice(name="Remover cargo", value="remove"),
            Choice(name="Listar cargos", value="list"),
        ],
    )
    async def permissions_command(
        interaction: discord.Interaction,
        command: Choice[str],
        action: Choice[str],
        role: Optional[discord.Role] = None,
    ) -> None:
        if interaction.user.id not in ctx.admin_ids:
            await interaction.response.send_message("Apenas administradores podem gerenciar permissões.", ephemeral=True)
            return

        if action.value == "list":
            role_ids = await get_command_permissions(ctx.db, command.value)
            out = (
                f"Cargos autorizados para `/{command.value}`: " + ", ".join(f"<@&{r}>" for r in role_ids)
                if role_ids else f"`/{command.value}` está liberado para todos."
            )
        elif role is None:
            out = "Informe o cargo para esta ação."
        elif action.value == "add":
            ok = await add_command_permission(ctx.db, command.value, role.id)
            out = f"✅ {role.mention} autorizado em `/{command.value}`." if ok else "Cargo já autorizado ou erro ao salvar."
        else:
            ok = await remove_command_permission(ctx.db, command.value, role.id)
            out = f"🗑️ {role.mention} removido de `/{command.value}`." if ok else "Cargo não estava autorizado."
        logging.info(f"Permissions {action.value} on /{command.value} by {interaction.user.id}")
        await interaction.response.send_message(out, ephemeral=True)

    @bot.tree.command(name="help", description="Mostra os comandos disponíveis")
    async def help_command(interaction: discord.Interaction) -> None:
        await interaction.response.send_message(embed=help_embed(), ephemeral=True)

    @bot.tree.error
    async def on_app_command_error(interaction: discord.Interaction, error: app_commands.AppCommandError) -> None:
        await handle_app_command_error(interaction, error, bot, ctx.admin_ids)

    @bot.event
    async def on_ready() -> None:
        if client_id := ctx.config.get("client_id"):
            logging.info(f"\n\nBOT INVITE URL:\nhttps://discord.com/oauth2/authorize?client_id={client_id}&permissions=2147485696&scope=bot\n")
        await bot.tree.sync()
        logging.info(f"Synced {len(bot.tree.get_commands())} slash commands")
        if not bot.scheduler.running:
            setup_tracking_job(bot)
            bot.scheduler.start()
            logging.info("Scheduler started")

    return bot


async def main() -> None:
    config = get_config()
    ctx = await BotContext.create(config)
    bot = build_bot(ctx)

    loop = asyncio.get_running_loop()
    try:
        loop.add_signal_handler(signal.SIGTERM, lambda: asyncio.create_task(bot.close()))
    except NotImplementedError:
        pass

    logging.info(f"🚀 Bot starting | guilds: {list(ctx.settings.guilds)}")
    try:
        await bot.start(config["bot_token"])
    finally:
        if not bot.is_closed():
            await bot.close()
        await ctx.aclose()
        logging.info("🛑 Shutdown complete")


if __name__ == "__main__":
    try:
        asyncio.run(main())
    except KeyboardInterrupt:
        pass
