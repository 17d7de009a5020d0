# palmap/updater.py
from __future__ import annotations

import asyncio
import io
import logging
from datetime import datetime, timezone
from typing import Awaitable, Callable, Optional

import discord

from palmap.colors import ColorTable, build_membership, guild_for_player
from palmap.errors import PalmapError
from palmap.renderer import SnapshotRenderer, build_legend
from palmap.telemetry import Snapshot
from utils.state import StateStore, now_iso

logger = logging.getLogger(__name__)

PLACEHOLDER_TEXT = "🗺️ Initialising map…"
FORCED_NOTE = "⚡ Forced update"
ATTACHMENT_NAME = "palworld-map.jpg"

SnapshotFetcher = Callable[[], Awaitable[Snapshot]]


def format_header(players_count: int, camps_count: int, note: str = "") -> str:
    ts = datetime.now(timezone.utc).strftime("%Y-%m-%d %H:%M:%S UTC")
    extra = f"\n{note}" if note else ""
    return (
        f"🗺️ **Palworld — Live map**\n"
        f"🧍 Players: **{players_count}** • 🏕️ Camps: **{camps_count}**\n"
        f"⏱️ Last update: **{ts}**{extra}"
    )


class MapUpdater:
    """
    Keeps one map message per bound Discord server up to date.

    A cycle fetches telemetry once and reconciles every binding with it. Only
    one cycle runs at a time; a trigger arriving meanwhile is dropped.
    """

    def __init__(
        self,
        bot: discord.Client,
        store: StateStore,
        renderer: SnapshotRenderer,
        colors: ColorTable,
        fetch_snapshot: SnapshotFetcher,
    ):
        self.bot = bot
        self.store = store
        self.renderer = renderer
        self.colors = colors
        self.fetch_snapshot = fetch_snapshot
        self._cycle_lock = asyncio.Lock()

    @property
    def busy(self) -> bool:
        return self._cycle_lock.locked()

    # ----------------------------- destination ---------------------------
    async def _resolve_channel(self, guild_id: str, channel_id) -> Optional[discord.abc.Messageable]:
        try:
            ch = self.bot.get_channel(int(channel_id)) or await self.bot.fetch_channel(int(channel_id))
        except (discord.NotFound, discord.Forbidden) as e:
            logger.warning(f"[guild {guild_id}] channel {channel_id} unavailable: {e}")
            return None
        except discord.HTTPException as e:
            logger.error(f"[guild {guild_id}] fetching channel {channel_id} failed: {e}", exc_info=True)
            return None
        if not isinstance(ch, discord.abc.Messageable):
            logger.warning(f"[guild {guild_id}] channel {channel_id} is not a text channel")
            return None
        return ch

    async def _ensure_message(self, guild_id: str, channel, message_id) -> discord.Message:
        if message_id:
            try:
                return await channel.fetch_message(int(message_id))
            except discord.NotFound:
                logger.info(f"[guild {guild_id}] map message {message_id} is gone; posting a new one")
            except discord.HTTPException as e:
                logger.warning(f"[guild {guild_id}] could not fetch map message {message_id}: {e}")

        msg = await channel.send(PLACEHOLDER_TEXT)
        self.store.update_binding(guild_id, message_id=str(msg.id))
        logger.info(f"[guild {guild_id}] posted map message {msg.id}")
        return msg

    def assign_colors(self, snapshot: Snapshot) -> None:
        """Give every guild seen in the snapshot (camp owners and players' guilds) its color."""
        membership = build_membership(snapshot.guilds)
        gids = [c.guild_id for c in snapshot.camps]
        gids += [guild_for_player(p, membership) for p in snapshot.players]
        self.colors.assign_all(gids)

    def render(self, snapshot: Snapshot) -> bytes:
        legend = build_legend(snapshot.camps, self.colors)
        membership = build_membership(snapshot.guilds)
        return self.renderer.render(snapshot.players, snapshot.camps, self.colors, legend, membership)

    async def update_binding(self, guild_id: str, binding: dict, snapshot: Snapshot, force: bool = False) -> bool:
        """Reconcile one destination. Returns True when the message was edited."""
        channel = await self._resolve_channel(guild_id, binding.get("channel_id"))
        if channel is None:
            return False

        msg = await self._ensure_message(guild_id, channel, binding.get("message_id"))

        if not force and binding.get("last_hash") and binding["last_hash"] == snapshot.content_hash:
            logger.debug(f"[guild {guild_id}] snapshot unchanged; skipping render")
            return False

        self.assign_colors(snapshot)
        # worker thread; colors above are already settled so layout only reads the table
        jpeg = await asyncio.to_thread(self.render, snapshot)
        file = discord.File(io.BytesIO(jpeg), filename=ATTACHMENT_NAME)
        await msg.edit(
            content=format_header(len(snapshot.players), len(snapshot.camps), FORCED_NOTE if force else ""),
            attachments=[file],
        )
        self.store.update_binding(guild_id, last_hash=snapshot.content_hash, last_updated_at=now_iso())
        logger.info(f"[guild {guild_id}] map updated{' (forced)' if force else ''}")
        return True

    # ----------------------------- cycle ---------------------------------
    async def _update_guarded(self, guild_id: str, binding: dict, snapshot: Snapshot, force: bool) -> bool:
        try:
            return await self.update_binding(guild_id, binding, snapshot, force=force)
        except Exception as e:
            logger.error(f"[guild {guild_id}] update failed: {e}", exc_info=True)
            return False

    async def run_cycle(self, force_guild_id: Optional[str] = None) -> bool:
        """
        One poll -> render -> edit pass. With force_guild_id only that binding
        is processed and it always re-renders. Returns False if dropped because
        another cycle is in flight.
        """
        if self._cycle_lock.locked():
            logger.info(f"Cycle already running; trigger dropped (force={force_guild_id})")
            return False

        async with self._cycle_lock:
            bindings = self.store.bindings()
            if force_guild_id is not None:
                key = str(force_guild_id)
                bindings = {key: bindings[key]} if key in bindings else {}
            if not bindings:
                logger.debug("No bound channels; nothing to do")
                return True

            try:
                snapshot = await self.fetch_snapshot()
            except PalmapError as e:
                logger.error(f"Cycle aborted: {e}")
                return True
            except Exception as e:
                logger.error(f"Cycle aborted, snapshot fetch failed: {e}", exc_info=True)
                return True

            # colors first, in a stable order, so assignment doesn't depend on fan-out timing
            self.assign_colors(snapshot)

            results = await asyncio.gather(*(
                self._update_guarded(gid, b, snapshot, force=force_guild_id is not None)
                for gid, b in bindings.items()
            ))
            logger.info(f"Cycle done: {sum(results)}/{len(results)} map(s) edited")
            return True
