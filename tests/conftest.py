from types import SimpleNamespace
from typing import Dict, List, Optional

import discord
import pytest
from PIL import Image, ImageDraw

from palmap.colors import ColorTable
from palmap.coords import MapPoint, WorldPoint
from palmap.fingerprint import fingerprint
from palmap.icons import IconCache
from palmap.renderer import SnapshotRenderer
from palmap.telemetry import Camp, GuildInfo, Player, Snapshot


# --- Builders ---


def make_player(pid: str, name: str, x: float, y: float) -> Player:
    return Player(id=pid, name=name, world=WorldPoint(x, y))


def make_camp(cid: str, guild_id: str, guild_name: str, mx: Optional[float] = None, my: Optional[float] = None) -> Camp:
    map_pos = MapPoint(mx, my) if mx is not None and my is not None else None
    return Camp(id=cid, guild_id=guild_id, guild_name=guild_name, map_pos=map_pos)


def make_snapshot(players: List[Player], camps: List[Camp], guilds: Optional[Dict[str, GuildInfo]] = None) -> Snapshot:
    return Snapshot(players=players, camps=camps, guilds=guilds or {}, content_hash=fingerprint(players, camps))


# Two players whose world positions land inside the map, one guild with one camp
PLAYER_A = make_player("0A1B2C3D-0000-0000-0000-00000000000A", "Alice", -599707.69, -360077.13)
PLAYER_B = make_player("0A1B2C3D-0000-0000-0000-00000000000B", "Bob", 35266.16, 321438.91)
CAMP_1 = make_camp("camp-1", "g1", "Lamball Lovers", -589.057, 276.5)
GUILD_1 = GuildInfo(
    id="g1",
    name="Lamball Lovers",
    admin_id="0a1b2c3d00000000000000000000000a",
    member_ids=("0a1b2c3d00000000000000000000000a",),
)


# --- Assets ---


@pytest.fixture
def icon_paths(tmp_path):
    camp = Image.new("RGBA", (16, 16), (0, 0, 0, 0))
    ImageDraw.Draw(camp).rectangle([2, 2, 13, 13], fill=(128, 128, 128, 255))
    player = Image.new("RGBA", (16, 16), (0, 0, 0, 0))
    ImageDraw.Draw(player).ellipse([2, 0, 13, 11], fill=(200, 200, 200, 255))
    paths = {"camp": str(tmp_path / "camp.png"), "player": str(tmp_path / "player.png")}
    camp.save(paths["camp"])
    player.save(paths["player"])
    return paths


@pytest.fixture
def map_path(tmp_path):
    # same aspect as the 8192px reference, smaller so tests stay fast
    path = tmp_path / "map.png"
    Image.new("RGB", (1024, 1024), (30, 70, 40)).save(path)
    return str(path)


@pytest.fixture
def renderer(icon_paths, map_path):
    return SnapshotRenderer(
        IconCache(icon_paths), map_path, output_size=512, camp_icon_size=32, player_icon_size=28,
    )


@pytest.fixture
def colors():
    return ColorTable()


# --- Discord fakes ---


def not_found() -> discord.NotFound:
    return discord.NotFound(SimpleNamespace(status=404, reason="Not Found"), "Unknown")


class FakeMessage:
    def __init__(self, message_id: int, content: str = ""):
        self.id = message_id
        self.content = content
        self.edits: List[dict] = []

    async def edit(self, **kwargs):
        self.edits.append(kwargs)
        if "content" in kwargs:
            self.content = kwargs["content"]
        return self


class FakeChannel(discord.abc.Messageable):
    def __init__(self, channel_id: int):
        self.id = channel_id
        self.messages: Dict[int, FakeMessage] = {}
        self.sent: List[FakeMessage] = []
        self._next_id = 9000

    async def _get_channel(self):
        return self

    async def fetch_message(self, message_id: int):
        if message_id not in self.messages:
            raise not_found()
        return self.messages[message_id]

    async def send(self, content=None, **kwargs):
        self._next_id += 1
        msg = FakeMessage(self._next_id, content or "")
        self.messages[msg.id] = msg
        self.sent.append(msg)
        return msg


class FakeBot:
    def __init__(self, *channels: FakeChannel):
        self.channels = {c.id: c for c in channels}

    def get_channel(self, channel_id: int):
        return self.channels.get(channel_id)

    async def fetch_channel(self, channel_id: int):
        raise not_found()
