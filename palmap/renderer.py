# palmap/renderer.py
from __future__ import annotations

import io
import logging
import math
import threading
from collections import Counter
from dataclasses import dataclass
from pathlib import Path
from typing import Dict, Iterable, List, Mapping, Optional, Sequence, Tuple

from PIL import Image, ImageColor, ImageDraw, ImageFont

from palmap.colors import ColorTable, guild_for_player
from palmap.config import (
    CAMP_ICON_SIZE, JPEG_QUALITY, OUTPUT_SIZE, PLAYER_ICON_SIZE,
)
from palmap.coords import DEFAULT_CALIBRATION, Calibration, PixelPoint, scale_to_output
from palmap.icons import IconCache

logger = logging.getLogger(__name__)

# Name badge offsets from the player's anchor point (output pixels)
LABEL_DX = 12
LABEL_DY = -56
LABEL_FONT_SIZE = 18

LEGEND_MARGIN = 32
LEGEND_PAD = 24
LEGEND_ROW_H = 56
LEGEND_SWATCH = 36
LEGEND_TITLE = "Guilds"


@dataclass(frozen=True)
class LegendEntry:
    guild_id: str
    name: str
    color: str
    camp_count: int


@dataclass(frozen=True)
class Placement:
    kind: str              # "camp" | "player" | "label"
    left: int
    top: int
    image: Image.Image
    anchor: PixelPoint     # output-pixel point this element marks


# ----------------------------- fonts -----------------------------------------
_FONT_CANDIDATES = {
    False: (
        "/usr/share/fonts/truetype/dejavu/DejaVuSans.ttf",
        "/usr/share/fonts/truetype/freefont/FreeSans.ttf",
        "arial.ttf",
    ),
    True: (
        "/usr/share/fonts/truetype/dejavu/DejaVuSans-Bold.ttf",
        "/usr/share/fonts/truetype/freefont/FreeSansBold.ttf",
        "arialbd.ttf",
    ),
}
_fonts: Dict[Tuple[int, bool], ImageFont.ImageFont] = {}


def _load_font(size: int, bold: bool = False) -> ImageFont.ImageFont:
    key = (size, bold)
    if key in _fonts:
        return _fonts[key]
    font = None
    for path in _FONT_CANDIDATES[bold]:
        try:
            font = ImageFont.truetype(path, size)
            break
        except OSError:
            continue
    if font is None:
        font = ImageFont.load_default(size=size)
    _fonts[key] = font
    return font


# ----------------------------- legend ----------------------------------------
def build_legend(camps: Iterable, colors: ColorTable) -> List[LegendEntry]:
    """One row per guild owning at least one camp; most camps first, then by name."""
    counts: Counter = Counter()
    names: Dict[str, str] = {}
    for c in camps:
        if not c.guild_id:
            continue
        counts[c.guild_id] += 1
        names.setdefault(c.guild_id, c.guild_name or c.guild_id)

    entries = [
        LegendEntry(guild_id=gid, name=names[gid], color=colors.color_for(gid), camp_count=n)
        for gid, n in counts.items()
    ]
    entries.sort(key=lambda e: (-e.camp_count, e.name))
    return entries


def make_legend_panel(entries: Sequence[LegendEntry]) -> Image.Image:
    title_font = _load_font(36, bold=True)
    row_font = _load_font(28, bold=False)

    probe = ImageDraw.Draw(Image.new("RGBA", (1, 1)))
    rows = [(e, f"{e.name}", f"{e.camp_count}") for e in entries]
    name_w = max([probe.textlength(n, font=row_font) for _, n, _ in rows] + [0])
    count_w = max([probe.textlength(c, font=row_font) for _, _, c in rows] + [0])
    title_w = probe.textlength(LEGEND_TITLE, font=title_font)

    inner_w = max(title_w, LEGEND_SWATCH + 16 + name_w + 32 + count_w)
    w = int(inner_w) + LEGEND_PAD * 2
    h = LEGEND_PAD * 2 + 52 + LEGEND_ROW_H * len(rows)

    panel = Image.new("RGBA", (w, h), (0, 0, 0, 0))
    drw = ImageDraw.Draw(panel)
    drw.rounded_rectangle([0, 0, w - 1, h - 1], radius=16, fill=(0, 0, 0, 190), outline=(255, 255, 255, 60), width=2)
    drw.text((LEGEND_PAD, LEGEND_PAD), LEGEND_TITLE, font=title_font, fill=(255, 255, 255, 255))

    y = LEGEND_PAD + 52
    for entry, name, count in rows:
        sy = y + (LEGEND_ROW_H - LEGEND_SWATCH) // 2
        drw.rounded_rectangle(
            [LEGEND_PAD, sy, LEGEND_PAD + LEGEND_SWATCH, sy + LEGEND_SWATCH],
            radius=6, fill=ImageColor.getrgb(entry.color)[:3] + (255,), outline=(0, 0, 0, 255), width=2,
        )
        ty = y + (LEGEND_ROW_H - 28) // 2 - 2
        drw.text((LEGEND_PAD + LEGEND_SWATCH + 16, ty), name, font=row_font, fill=(255, 255, 255, 255))
        cw = drw.textlength(count, font=row_font)
        drw.text((w - LEGEND_PAD - cw, ty), count, font=row_font, fill=(220, 220, 220, 255))
        y += LEGEND_ROW_H
    return panel


# ----------------------------- labels ----------------------------------------
def label_size(text: str) -> Tuple[int, int]:
    pad_x, pad_y = 8, 4
    return max(60, len(text) * 7) + pad_x * 2, LABEL_FONT_SIZE + pad_y * 2 + 2


def make_label(text: str) -> Image.Image:
    w, h = label_size(text)
    img = Image.new("RGBA", (w, h), (0, 0, 0, 0))
    drw = ImageDraw.Draw(img)
    drw.rounded_rectangle([0, 0, w - 1, h - 1], radius=6, fill=(0, 0, 0, 191))
    drw.text((8, 3), text, font=_load_font(LABEL_FONT_SIZE, bold=True), fill=(255, 255, 255, 255))
    return img


def _composite(canvas: Image.Image, img: Image.Image, left: int, top: int) -> None:
    """alpha_composite that tolerates elements hanging off any edge."""
    x0, y0 = max(0, -left), max(0, -top)
    if x0 >= img.width or y0 >= img.height or left >= canvas.width or top >= canvas.height:
        return
    if x0 or y0:
        img = img.crop((x0, y0, img.width, img.height))
    canvas.alpha_composite(img, dest=(left + x0, top + y0))


# ----------------------------- base map --------------------------------------
def _fallback_map(side: int) -> Image.Image:
    img = Image.new("RGBA", (side, side), (18, 18, 22, 255))
    drw = ImageDraw.Draw(img)
    step = max(1, side // 16)
    for k in range(0, side + 1, step):
        drw.line([(k, 0), (k, side)], fill=(40, 40, 46, 255), width=2)
        drw.line([(0, k), (side, k)], fill=(40, 40, 46, 255), width=2)
    drw.text((24, 24), "world map (fallback)", fill=(200, 200, 200, 255), font=_load_font(48))
    return img


class SnapshotRenderer:
    """Composites camps, players, name badges and the guild legend over the world map."""

    def __init__(
        self,
        icons: IconCache,
        map_path: Optional[str],
        output_size: int = OUTPUT_SIZE,
        calibration: Calibration = DEFAULT_CALIBRATION,
        camp_icon_size: int = CAMP_ICON_SIZE,
        player_icon_size: int = PLAYER_ICON_SIZE,
    ):
        self.icons = icons
        self.map_path = map_path
        self.output_size = output_size
        self.calibration = calibration
        self.camp_icon_size = camp_icon_size
        self.player_icon_size = player_icon_size
        self.renders = 0
        self._lock = threading.Lock()
        self._base: Optional[Image.Image] = None
        self._src_size: Tuple[int, int] = calibration.reference_size

    # -- base map, resized once --
    def _load_base(self) -> Tuple[Image.Image, Tuple[int, int]]:
        with self._lock:
            return self._load_base_locked()

    def _load_base_locked(self) -> Tuple[Image.Image, Tuple[int, int]]:
        if self._base is None:
            side = self.output_size
            if self.map_path and Path(self.map_path).is_file():
                with Image.open(self.map_path) as im:
                    self._src_size = im.size
                    self._base = im.convert("RGBA").resize((side, side), Image.Resampling.LANCZOS)
                logger.info(f"Map image loaded: {self.map_path} native={self._src_size} output={side}")
            else:
                logger.warning(f"Map image not found at {self.map_path}; using fallback grid")
                self._src_size = self.calibration.reference_size
                self._base = _fallback_map(side)
        return self._base, self._src_size

    def to_output(self, p: PixelPoint) -> PixelPoint:
        """Calibrated pixel -> this map export's pixels -> output canvas."""
        _, (src_w, src_h) = self._load_base()
        ref_w, ref_h = self.calibration.reference_size
        native = scale_to_output(p, ref_w, ref_h, src_w, src_h)
        return scale_to_output(native, src_w, src_h, self.output_size, self.output_size)

    def layout(
        self,
        players: Iterable,
        camps: Iterable,
        colors: ColorTable,
        membership: Mapping[str, str],
    ) -> List[Placement]:
        placements: List[Placement] = []

        for c in camps:
            if c.map_pos is None:
                continue
            pt = self.to_output(self.calibration.map_to_pixel(c.map_pos.x, c.map_pos.y))
            size = self.camp_icon_size
            icon = self.icons.get("camp", size, colors.color_for(c.guild_id))
            placements.append(Placement(
                "camp", round(pt.x - size / 2), round(pt.y - size / 2), icon, pt,
            ))

        for p in players:
            wx, wy = p.world.x, p.world.y
            # (0, 0) is the feed's "not placed"
            if (not wx and not wy) or not (math.isfinite(wx) and math.isfinite(wy)):
                continue
            pt = self.to_output(self.calibration.world_to_pixel(wx, wy))
            size = self.player_icon_size
            gid = guild_for_player(p, membership)
            icon = self.icons.get("player", size, colors.color_for(gid))
            # bottom-center of the pin marks the position
            placements.append(Placement(
                "player", round(pt.x - size / 2), round(pt.y - size), icon, pt,
            ))
            placements.append(Placement(
                "label", round(pt.x + LABEL_DX), round(pt.y + LABEL_DY), make_label(p.name or "Player"), pt,
            ))
        return placements

    def render(
        self,
        players: Iterable,
        camps: Iterable,
        colors: ColorTable,
        legend: Sequence[LegendEntry],
        membership: Mapping[str, str],
    ) -> bytes:
        base, _ = self._load_base()
        side = self.output_size
        canvas = base.copy()

        placements = self.layout(players, camps, colors, membership)
        for pl in placements:
            _composite(canvas, pl.image, pl.left, pl.top)

        if legend:
            panel = make_legend_panel(legend)
            _composite(canvas, panel, side - panel.width - LEGEND_MARGIN, side - panel.height - LEGEND_MARGIN)

        out = canvas.convert("RGB")
        buf = io.BytesIO()
        out.save(buf, format="JPEG", quality=JPEG_QUALITY, optimize=True)
        with self._lock:
            self.renders += 1
        logger.info(
            f"Rendered snapshot: {sum(1 for p in placements if p.kind == 'camp')} camp icon(s), "
            f"{sum(1 for p in placements if p.kind == 'player')} player icon(s), "
            f"{len(legend)} legend row(s), {buf.tell()} bytes"
        )
        return buf.getvalue()
