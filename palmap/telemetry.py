# palmap/telemetry.py
from __future__ import annotations

import asyncio
import base64
import json
import logging
import math
from dataclasses import dataclass, field
from typing import Any, Dict, List, Optional, Sequence
from urllib.error import HTTPError, URLError
from urllib.request import Request, urlopen

from palmap.config import (
    ApiConfig, HTTP_TIMEOUT_SEC, PLAYERS_API_USER, USER_AGENT, load_api_config,
)
from palmap.coords import MapPoint, WorldPoint
from palmap.errors import TelemetryError
from palmap.fingerprint import fingerprint

logger = logging.getLogger(__name__)

# Accepted field aliases, highest priority first
PLAYER_ID_KEYS = ("playerId", "userId", "player_id", "uid")
PLAYER_NAME_KEYS = ("name", "nickname", "accountName")
GUILD_ADMIN_KEYS = ("admin", "admin_player_uid", "admin_uid")
MEMBER_ID_KEYS = ("uid", "player_uid", "id")


@dataclass(frozen=True)
class Player:
    id: str
    name: str
    world: WorldPoint


@dataclass(frozen=True)
class Camp:
    id: str
    guild_id: str
    guild_name: str
    map_pos: Optional[MapPoint] = None
    world_pos: Optional[WorldPoint] = None


@dataclass(frozen=True)
class GuildInfo:
    id: str
    name: str
    admin_id: str = ""
    member_ids: tuple = ()


@dataclass
class Snapshot:
    players: List[Player]
    camps: List[Camp]
    guilds: Dict[str, GuildInfo] = field(default_factory=dict)
    content_hash: str = ""


# ----------------------------- parsing -----------------------------------
def _first(rec: dict, keys: Sequence[str]) -> Optional[Any]:
    for k in keys:
        v = rec.get(k)
        if v is not None and v != "":
            return v
    return None


def _num(value: Any, what: str) -> float:
    if value is None:
        return 0.0
    try:
        num = float(value)
    except (TypeError, ValueError):
        raise TelemetryError(f"{what} is not a number: {value!r}")
    # float() and json.loads both let NaN/Infinity through
    if not math.isfinite(num):
        raise TelemetryError(f"{what} is not finite: {value!r}")
    return num


def _point(obj: Any) -> Optional[tuple]:
    """{x, y} with finite numeric members, else None."""
    if not isinstance(obj, dict):
        return None
    x, y = obj.get("x"), obj.get("y")
    if isinstance(x, bool) or isinstance(y, bool):
        return None
    if not isinstance(x, (int, float)) or not isinstance(y, (int, float)):
        return None
    if not (math.isfinite(x) and math.isfinite(y)):
        return None
    return float(x), float(y)


def parse_player(rec: dict) -> Player:
    if not isinstance(rec, dict):
        raise TelemetryError(f"player record is not an object: {rec!r}")
    pid = _first(rec, PLAYER_ID_KEYS)
    name = _first(rec, PLAYER_NAME_KEYS)
    if pid is None and name is None:
        raise TelemetryError(f"player record has no id or name field: {sorted(rec)}")
    name = str(name) if name is not None else ""
    return Player(
        id=str(pid) if pid is not None else name,
        name=name,
        world=WorldPoint(
            _num(rec.get("location_x"), "location_x"),
            _num(rec.get("location_y"), "location_y"),
        ),
    )


def parse_players(doc: Any) -> List[Player]:
    """Player feed body: a list, or an object wrapping it under "players"."""
    rows = doc.get("players", []) if isinstance(doc, dict) else doc
    if rows is None:
        return []
    if not isinstance(rows, list):
        raise TelemetryError(f"unexpected players payload: {type(rows).__name__}")
    return [parse_player(r) for r in rows]


def _member_id(m: Any) -> Optional[str]:
    if isinstance(m, str):
        return m
    if isinstance(m, dict):
        v = _first(m, MEMBER_ID_KEYS)
        return str(v) if v is not None else None
    return None


def parse_guilds(doc: Any) -> tuple:
    """Guild feed body -> (guilds by id, flat camp list)."""
    if not isinstance(doc, dict):
        raise TelemetryError(f"unexpected guilds payload: {type(doc).__name__}")

    guilds: Dict[str, GuildInfo] = {}
    camps: List[Camp] = []
    for gid, g in doc.items():
        if not isinstance(g, dict):
            logger.warning(f"Guild {gid} entry is not an object; skipped")
            continue
        name = str(g.get("name") or "")
        for c in g.get("camps") or []:
            if not isinstance(c, dict):
                continue
            mp = _point(c.get("map_pos"))
            wp = _point(c.get("world_pos"))
            camps.append(Camp(
                id=str(c.get("id") or ""),
                guild_id=str(gid),
                guild_name=name,
                map_pos=MapPoint(*mp) if mp else None,
                world_pos=WorldPoint(*wp) if wp else None,
            ))

        members = tuple(m for m in (_member_id(x) for x in (g.get("members") or [])) if m)
        admin = _first(g, GUILD_ADMIN_KEYS)
        guilds[str(gid)] = GuildInfo(
            id=str(gid),
            name=name,
            admin_id=str(admin) if admin is not None else "",
            member_ids=members,
        )
    return guilds, camps


# ----------------------------- fetching ----------------------------------
def _get_json(url: str, authorization: str, what: str) -> Any:
    req = Request(url, headers={
        "Authorization": authorization,
        "Accept": "application/json",
        "User-Agent": USER_AGENT,
    })
    try:
        with urlopen(req, timeout=HTTP_TIMEOUT_SEC) as resp:  # nosec
            charset = resp.headers.get_content_charset() or "utf-8"
            raw = resp.read().decode(charset, errors="replace")
    except HTTPError as e:
        raise TelemetryError(f"{what} API HTTP {e.code}") from e
    except (URLError, OSError) as e:
        raise TelemetryError(f"{what} API unreachable: {e}") from e
    try:
        return json.loads(raw)
    except ValueError as e:
        raise TelemetryError(f"{what} API returned invalid JSON") from e


def fetch_players_json(cfg: ApiConfig) -> Any:
    token = base64.b64encode(f"{PLAYERS_API_USER}:{cfg.admin_password}".encode("utf-8")).decode("ascii")
    return _get_json(cfg.players_url, f"Basic {token}", "Players")


def fetch_guilds_json(cfg: ApiConfig) -> Any:
    return _get_json(cfg.guilds_url, f"Bearer {cfg.guilds_token}", "Guilds")


def build_snapshot(players_doc: Any, guilds_doc: Any) -> Snapshot:
    players = parse_players(players_doc)
    guilds, camps = parse_guilds(guilds_doc)
    return Snapshot(
        players=players,
        camps=camps,
        guilds=guilds,
        content_hash=fingerprint(players, camps),
    )


async def fetch_snapshot(cfg: Optional[ApiConfig] = None) -> Snapshot:
    """
    Pull both feeds once. Raises ConfigError when endpoints/credentials are
    missing and TelemetryError on any upstream failure.
    """
    cfg = cfg or load_api_config()
    players_doc = await asyncio.to_thread(fetch_players_json, cfg)
    guilds_doc = await asyncio.to_thread(fetch_guilds_json, cfg)
    snap = build_snapshot(players_doc, guilds_doc)
    logger.info(
        f"Fetched snapshot: {len(snap.players)} player(s), {len(snap.camps)} camp(s), "
        f"{len(snap.guilds)} guild(s), hash={snap.content_hash[:12]}"
    )
    return snap
