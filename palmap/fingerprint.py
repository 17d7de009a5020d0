# palmap/fingerprint.py
from __future__ import annotations

import hashlib
import json
from typing import TYPE_CHECKING, Any, Dict, Iterable, List

if TYPE_CHECKING:
    from palmap.telemetry import Camp, Player


def _f(v: Any) -> float:
    try:
        return float(v) if v is not None else 0.0
    except (TypeError, ValueError):
        return 0.0


def canonical_snapshot(players: Iterable["Player"], camps: Iterable["Camp"]) -> Dict[str, List[dict]]:
    """
    Order-independent view of what the rendered image depends on.
    Upstream ordering changes between polls, so both lists are sorted.
    """
    p = [
        {
            "id": pl.id or "",
            "name": pl.name or "",
            "x": _f(pl.world.x if pl.world else None),
            "y": _f(pl.world.y if pl.world else None),
        }
        for pl in (players or [])
    ]
    p.sort(key=lambda r: (r["id"] or r["name"], r["name"], r["x"], r["y"]))

    c = [
        {
            "id": cp.id or "",
            "guild": cp.guild_name or "",
            "mx": _f(cp.map_pos.x if cp.map_pos else None),
            "my": _f(cp.map_pos.y if cp.map_pos else None),
        }
        for cp in (camps or [])
    ]
    c.sort(key=lambda r: (r["id"], r["guild"], r["mx"], r["my"]))

    return {"players": p, "camps": c}


def fingerprint(players: Iterable["Player"], camps: Iterable["Camp"]) -> str:
    payload = json.dumps(canonical_snapshot(players, camps), separators=(",", ":"), ensure_ascii=False)
    return hashlib.sha256(payload.encode("utf-8")).hexdigest()
