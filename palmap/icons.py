# palmap/icons.py
from __future__ import annotations

import logging
from pathlib import Path
from typing import Dict, Mapping, Tuple

from PIL import Image, ImageColor, ImageDraw, ImageOps

logger = logging.getLogger(__name__)

IconKey = Tuple[str, int, str]


def tint(img: Image.Image, color_hex: str) -> Image.Image:
    """Recolor keeping luminance: black stays black, white stays white, mid-tones take the color."""
    rgba = img.convert("RGBA")
    alpha = rgba.getchannel("A")
    gray = ImageOps.grayscale(rgba)
    rgb = ImageColor.getrgb(color_hex)[:3]
    out = ImageOps.colorize(gray, black=(0, 0, 0), white=(255, 255, 255), mid=rgb).convert("RGBA")
    out.putalpha(alpha)
    return out


def _placeholder(icon_id: str) -> Image.Image:
    """Stand-in drawn when an icon asset is missing (mid-gray so tint shows fully)."""
    side = 64
    img = Image.new("RGBA", (side, side), (0, 0, 0, 0))
    drw = ImageDraw.Draw(img)
    if icon_id == "player":
        # pin: disc on top of a triangle whose tip is the bottom-center
        drw.polygon([(16, 30), (48, 30), (32, 63)], fill=(128, 128, 128, 255))
        drw.ellipse([8, 2, 56, 50], fill=(128, 128, 128, 255), outline=(0, 0, 0, 255), width=3)
        drw.ellipse([24, 18, 40, 34], fill=(255, 255, 255, 255))
    else:
        drw.rectangle([6, 6, 57, 57], fill=(128, 128, 128, 255), outline=(0, 0, 0, 255), width=4)
        drw.polygon([(32, 14), (50, 46), (14, 46)], fill=(255, 255, 255, 255))
    return img


class IconCache:
    """
    Tinted, resized icons keyed by (icon id, size, color). Assets and palette
    don't change while the bot runs, so entries are never evicted.
    """

    def __init__(self, paths: Mapping[str, str]):
        self.paths = dict(paths)
        self._cache: Dict[IconKey, Image.Image] = {}
        self._missing_logged: set = set()
        self.misses = 0

    def __len__(self) -> int:
        return len(self._cache)

    def _load_base(self, icon_id: str) -> Image.Image:
        path = self.paths.get(icon_id)
        if path and Path(path).is_file():
            with Image.open(path) as im:
                return im.convert("RGBA")
        if icon_id not in self._missing_logged:
            self._missing_logged.add(icon_id)
            logger.warning(f"Icon asset for '{icon_id}' not found at {path}; using placeholder")
        return _placeholder(icon_id)

    def get(self, icon_id: str, size: int, color_hex: str) -> Image.Image:
        key = (icon_id, int(size), color_hex.lower())
        hit = self._cache.get(key)
        if hit is not None:
            return hit

        self.misses += 1
        base = self._load_base(icon_id)
        resized = base.resize((key[1], key[1]), Image.Resampling.NEAREST)
        icon = tint(resized, key[2])
        self._cache[key] = icon
        logger.debug(f"Icon cache miss {key} (entries={len(self._cache)})")
        return icon
