# cogs/palmap.py: /palmap add|remove|status|force + the periodic live map loop
from __future__ import annotations

import logging
from datetime import datetime

import discord
from discord import app_commands
from discord.ext import commands, tasks

from palmap.colors import ColorTable
from palmap.config import ICON_PATHS, INTERVAL_MINUTES, MAP_IMAGE, STATE_PATH
from palmap.icons import IconCache
from palmap.renderer import SnapshotRenderer
from palmap.telemetry import fetch_snapshot
from palmap.updater import MapUpdater
from utils.state import StateStore

logger = logging.getLogger(__name__)


def admin_check():
    def pred(i: discord.Interaction):
        perms = getattr(i.user, "guild_permissions", None)
        return bool(perms and (perms.administrator or perms.manage_guild))
    return app_commands.check(lambda i: pred(i))


def _fmt_when(iso: str | None) -> str:
    if not iso:
        return "never"
    try:
        return datetime.fromisoformat(iso).strftime("%Y-%m-%d %H:%M:%S UTC")
    except ValueError:
        return iso


def build_updater(bot: commands.Bot) -> MapUpdater:
    store = StateStore(STATE_PATH)
    colors = ColorTable(store.colors(), persist=store.save_colors)
    renderer = SnapshotRenderer(IconCache(ICON_PATHS), MAP_IMAGE)
    return MapUpdater(bot, store, renderer, colors, fetch_snapshot)


class PalMapCog(commands.Cog):
    palmap = app_commands.Group(
        name="palmap",
        description="Live Palworld map posted in this server",
        guild_only=True,
    )

    def __init__(self, bot: commands.Bot, updater: MapUpdater | None = None):
        self.bot = bot
        self.updater = updater or build_updater(bot)
        self.live_map.change_interval(minutes=INTERVAL_MINUTES)
        self.live_map.start()

    def cog_unload(self):
        self.live_map.cancel()

    @property
    def store(self) -> StateStore:
        return self.updater.store

    @palmap.command(name="add", description="Attach the live map to a text channel (one message, edited in place)")
    @app_commands.describe(channel="Channel where the map message lives")
    @admin_check()
    async def add(self, interaction: discord.Interaction, channel: discord.TextChannel):
        gid = str(interaction.guild_id)
        self.store.attach(gid, channel.id)
        await interaction.response.send_message(
            f"✅ Live map attached to {channel.mention}.\nI post and edit **a single message** there.",
            ephemeral=True,
        )
        if not await self.updater.run_cycle(force_guild_id=gid):
            await interaction.followup.send("⏳ An update is already running; the map will appear on the next cycle.", ephemeral=True)

    @palmap.command(name="remove", description="Detach the live map from this server")
    @admin_check()
    async def remove(self, interaction: discord.Interaction):
        had = self.store.detach(str(interaction.guild_id))
        await interaction.response.send_message(
            "🧹 Live map detached. I won't edit anything anymore."
            if had else "There was no live map attached in this server.",
            ephemeral=True,
        )

    @palmap.command(name="status", description="Show where the live map is posted")
    @admin_check()
    async def status(self, interaction: discord.Interaction):
        b = self.store.get_binding(str(interaction.guild_id))
        if not b or not b.get("channel_id"):
            return await interaction.response.send_message("No live map attached in this server.", ephemeral=True)
        await interaction.response.send_message(
            f"📌 Live map attached to <#{b['channel_id']}>\n"
            f"🧾 Message ID: {b.get('message_id') or 'not created yet'}\n"
            f"⏱️ Last update: {_fmt_when(b.get('last_updated_at'))}",
            ephemeral=True,
        )

    @palmap.command(name="force", description="Re-render the live map now")
    @admin_check()
    async def force(self, interaction: discord.Interaction):
        gid = str(interaction.guild_id)
        b = self.store.get_binding(gid)
        if not b or not b.get("channel_id"):
            return await interaction.response.send_message(
                "No live map attached. Run `/palmap add #channel` first.", ephemeral=True
            )
        await interaction.response.send_message("⚡ Forced update in progress…", ephemeral=True)
        if not await self.updater.run_cycle(force_guild_id=gid):
            await interaction.followup.send("⏳ An update is already running; try again in a moment.", ephemeral=True)

    # ------------------ Background loop owned by the Cog ------------------
    @tasks.loop(minutes=10.0)
    async def live_map(self):
        try:
            await self.updater.run_cycle()
        except Exception as e:
            logger.error(f"Live map cycle crashed: {e}", exc_info=True)

    @live_map.before_loop
    async def _before_live_map(self):
        await self.bot.wait_until_ready()


async def setup(bot: commands.Bot):
    await bot.add_cog(PalMapCog(bot))
