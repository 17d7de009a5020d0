# palmap/colors.py
from __future__ import annotations

import logging
import random
import re
import threading
from typing import Callable, Dict, Iterable, Mapping, Optional, Sequence

from palmap.config import NO_GUILD_COLOR, PALETTE

logger = logging.getLogger(__name__)

_ID_JUNK = re.compile(r"[^a-z0-9]")


def normalize_player_id(raw: Optional[str]) -> str:
    """
    The REST API reports ids hyphenated + upper case ("0A1B2C3D-0000-..."),
    the guild API as compact lower case. Both collapse to the same key here.
    """
    return _ID_JUNK.sub("", str(raw or "").lower())


def build_membership(guilds: Mapping[str, object]) -> Dict[str, str]:
    """normalized member id -> guild id (admins included)."""
    out: Dict[str, str] = {}
    for gid, g in guilds.items():
        ids = list(getattr(g, "member_ids", ()) or ())
        admin = getattr(g, "admin_id", "")
        if admin:
            ids.append(admin)
        for mid in ids:
            key = normalize_player_id(mid)
            if key:
                out.setdefault(key, str(gid))
    return out


def guild_for_player(player, membership: Mapping[str, str]) -> Optional[str]:
    return membership.get(normalize_player_id(player.id))


class ColorTable:
    """
    guild id -> "#rrggbb". Once a guild has a color it keeps it; new guilds take
    the first palette entry nobody uses. `persist` is called with the whole table
    after each new assignment.
    """

    def __init__(
        self,
        assigned: Optional[Mapping[str, str]] = None,
        persist: Optional[Callable[[Dict[str, str]], None]] = None,
        palette: Sequence[str] = PALETTE,
    ):
        self._colors: Dict[str, str] = dict(assigned or {})
        self._persist = persist
        self._lock = threading.RLock()
        self.palette = list(palette)

    def __contains__(self, guild_id: str) -> bool:
        return str(guild_id) in self._colors

    def __len__(self) -> int:
        return len(self._colors)

    def as_dict(self) -> Dict[str, str]:
        return dict(self._colors)

    def color_for(self, guild_id: Optional[str]) -> str:
        if not guild_id:
            return NO_GUILD_COLOR
        key = str(guild_id)
        with self._lock:
            color = self._colors.get(key)
            if color:
                return color

            used = set(self._colors.values())
            color = next((c for c in self.palette if c not in used), None)
            if color is None:
                # palette exhausted: colors start repeating across guilds
                color = random.choice(self.palette)
                logger.warning(f"Palette exhausted ({len(self.palette)} colors); guild {key} shares {color}")

            self._colors[key] = color
            logger.info(f"Assigned color {color} to guild {key}")
            if self._persist is not None:
                self._persist(dict(self._colors))
            return color

    def assign_all(self, guild_ids: Iterable[str]) -> None:
        """Assign in a stable (sorted) order so a fresh table is reproducible."""
        for gid in sorted({str(g) for g in guild_ids if g}):
            self.color_for(gid)
