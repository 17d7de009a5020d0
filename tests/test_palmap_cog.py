import asyncio
from types import SimpleNamespace

from cogs.palmap import PalMapCog
from palmap.colors import ColorTable
from palmap.updater import MapUpdater
from utils.state import StateStore

from conftest import CAMP_1, GUILD_1, PLAYER_A, FakeBot, FakeChannel, make_snapshot

SNAP = make_snapshot([PLAYER_A], [CAMP_1], {"g1": GUILD_1})


class Replies:
    def __init__(self):
        self.messages = []

    async def send_message(self, content=None, **kwargs):
        self.messages.append(content)

    async def send(self, content=None, **kwargs):
        self.messages.append(content)


class LoopBot(FakeBot):
    async def wait_until_ready(self):
        await asyncio.Event().wait()


def _interaction(guild_id=1):
    replies = Replies()
    return SimpleNamespace(guild_id=guild_id, response=replies, followup=replies), replies


async def _with_cog(tmp_path, renderer, body, *channels):
    store = StateStore(str(tmp_path / "state.json"))

    async def feed():
        return SNAP

    bot = LoopBot(*channels)
    updater = MapUpdater(bot, store, renderer, ColorTable(), feed)
    cog = PalMapCog(bot, updater=updater)
    try:
        return await body(cog, store)
    finally:
        cog.cog_unload()


def test_status_without_binding(tmp_path, renderer) -> None:
    async def body(cog, store):
        inter, replies = _interaction()
        await PalMapCog.status.callback(cog, inter)
        return replies.messages

    assert asyncio.run(_with_cog(tmp_path, renderer, body)) == ["No live map attached in this server."]


def test_force_requires_binding(tmp_path, renderer) -> None:
    async def body(cog, store):
        inter, replies = _interaction()
        await PalMapCog.force.callback(cog, inter)
        return replies.messages

    [reply] = asyncio.run(_with_cog(tmp_path, renderer, body))
    assert "/palmap add" in reply


def test_add_posts_map_then_status_and_remove(tmp_path, renderer) -> None:
    ch = FakeChannel(100)
    ch.mention = "<#100>"

    async def body(cog, store):
        inter, replies = _interaction()
        await PalMapCog.add.callback(cog, inter, ch)
        await PalMapCog.status.callback(cog, inter)
        binding = store.get_binding("1")
        await PalMapCog.remove.callback(cog, inter)
        await PalMapCog.remove.callback(cog, inter)
        return replies.messages, binding

    messages, binding = asyncio.run(_with_cog(tmp_path, renderer, body, ch))

    assert len(ch.sent) == 1 and len(ch.sent[0].edits) == 1
    assert binding["message_id"] == str(ch.sent[0].id)
    assert "<#100>" in messages[0]
    assert f"Message ID: {ch.sent[0].id}" in messages[1]
    assert messages[2].startswith("🧹")
    assert messages[3] == "There was no live map attached in this server."
