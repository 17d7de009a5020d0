# utils/state.py
import json
import logging
import threading
from datetime import datetime, timezone
from pathlib import Path
from typing import Dict, Optional

logger = logging.getLogger(__name__)

# State format:
# {
#   "guilds": {
#     "<discord guild id>": {
#       "channel_id": "...",
#       "message_id": "...",
#       "last_hash": "...",
#       "last_updated_at": "ISO..."
#     }
#   },
#   "colors": { "<palworld guild id>": "#rrggbb" }
# }

BINDING_KEYS = ("channel_id", "message_id", "last_hash", "last_updated_at")


def _empty() -> dict:
    return {"guilds": {}, "colors": {}}


def _read_json(path: str) -> dict:
    p = Path(path)
    if not p.exists():
        return _empty()
    try:
        data = json.loads(p.read_text(encoding="utf-8"))
    except Exception as e:
        logger.error(f"Failed to read state from {path}: {e}", exc_info=True)
        return _empty()
    if not isinstance(data, dict):
        return _empty()
    data.setdefault("guilds", {})
    data.setdefault("colors", {})
    return data


def _write_json(path: str, obj: dict):
    p = Path(path)
    p.parent.mkdir(parents=True, exist_ok=True)
    tmp = p.with_suffix(p.suffix + ".tmp")
    tmp.write_text(json.dumps(obj, indent=2), encoding="utf-8")
    tmp.replace(p)


def now_iso() -> str:
    return datetime.now(timezone.utc).isoformat()


class StateStore:
    """
    Sole owner of the state file. The record is loaded once; every mutation
    happens under one lock and is written through, so concurrent per-channel
    updates can't lose each other's writes.
    """

    def __init__(self, path: str):
        self.path = path
        self._lock = threading.RLock()
        self._data = _read_json(path)

    def _save(self):
        _write_json(self.path, self._data)

    # ----------------------------- bindings ------------------------------
    def bindings(self) -> Dict[str, dict]:
        with self._lock:
            return {gid: dict(b) for gid, b in self._data["guilds"].items() if b.get("channel_id")}

    def get_binding(self, guild_id) -> Optional[dict]:
        with self._lock:
            b = self._data["guilds"].get(str(guild_id))
            return dict(b) if b else None

    def attach(self, guild_id, channel_id) -> dict:
        """Create or replace a binding; the next cycle posts a fresh message."""
        with self._lock:
            b = {"channel_id": str(channel_id), "message_id": None, "last_hash": None, "last_updated_at": None}
            self._data["guilds"][str(guild_id)] = b
            self._save()
            logger.info(f"Bound guild {guild_id} to channel {channel_id}")
            return dict(b)

    def detach(self, guild_id) -> bool:
        with self._lock:
            had = bool((self._data["guilds"].get(str(guild_id)) or {}).get("channel_id"))
            self._data["guilds"].pop(str(guild_id), None)
            self._save()
            if had:
                logger.info(f"Unbound guild {guild_id}")
            return had

    def update_binding(self, guild_id, **fields) -> Optional[dict]:
        """Merge fields into an existing binding. A binding removed meanwhile stays removed."""
        unknown = set(fields) - set(BINDING_KEYS)
        if unknown:
            raise KeyError(f"unknown binding field(s): {sorted(unknown)}")
        with self._lock:
            b = self._data["guilds"].get(str(guild_id))
            if not b:
                logger.debug(f"Binding for guild {guild_id} vanished; update dropped")
                return None
            b.update(fields)
            self._save()
            return dict(b)

    # ----------------------------- colors --------------------------------
    def colors(self) -> Dict[str, str]:
        with self._lock:
            return dict(self._data["colors"])

    def save_colors(self, table: Dict[str, str]):
        with self._lock:
            self._data["colors"] = dict(table)
            self._save()
