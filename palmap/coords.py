# palmap/coords.py
from __future__ import annotations

from dataclasses import dataclass
from typing import NamedTuple

from palmap.config import REFERENCE_SIZE


class WorldPoint(NamedTuple):
    x: float
    y: float


class MapPoint(NamedTuple):
    x: float
    y: float


class PixelPoint(NamedTuple):
    x: float
    y: float


@dataclass(frozen=True)
class Calibration:
    """
    Two chained affine stages: world -> map -> reference image pixels.

    world -> map was fitted on player positions seen both in the save file and
    in-game; map -> pixel on camp map_pos values located by hand on the 8192px
    world map export.
    """
    transl_x: float = 123888.0
    transl_y: float = 158000.0
    scale: float = 459.0
    a: float = 2.5953628006591515
    b: float = 5073.702848050116
    c: float = -2.596070066847979
    d: float = 3233.9698454713814
    # pixel space the a..d constants were fitted in
    reference_size: tuple = (REFERENCE_SIZE, REFERENCE_SIZE)

    def world_to_map(self, world_x: float, world_y: float) -> MapPoint:
        # axes are swapped between the save format and the map
        new_x = world_x + self.transl_x
        new_y = world_y - self.transl_y
        return MapPoint(new_y / self.scale, new_x / self.scale)

    def map_to_pixel(self, map_x: float, map_y: float) -> PixelPoint:
        return PixelPoint(self.a * map_x + self.b, self.c * map_y + self.d)

    def world_to_pixel(self, world_x: float, world_y: float) -> PixelPoint:
        m = self.world_to_map(world_x, world_y)
        return self.map_to_pixel(m.x, m.y)


DEFAULT_CALIBRATION = Calibration()


def world_to_map(world_x: float, world_y: float) -> MapPoint:
    return DEFAULT_CALIBRATION.world_to_map(world_x, world_y)


def map_to_pixel(map_x: float, map_y: float) -> PixelPoint:
    return DEFAULT_CALIBRATION.map_to_pixel(map_x, map_y)


def world_to_pixel(world_x: float, world_y: float) -> PixelPoint:
    return DEFAULT_CALIBRATION.world_to_pixel(world_x, world_y)


def scale_to_output(p: PixelPoint, src_w: int, src_h: int, out_w: int, out_h: int) -> PixelPoint:
    """Reference image pixels -> output canvas pixels (independent x/y factors)."""
    return PixelPoint(p.x * (out_w / src_w), p.y * (out_h / src_h))
