import pytest

from palmap.config import OUTPUT_SIZE, REFERENCE_SIZE
from palmap.coords import (
    Calibration, PixelPoint, map_to_pixel, scale_to_output, world_to_map, world_to_pixel,
)

# camp map_pos located by hand on the 8192px export
MAP_PIXEL_PAIRS = [
    ((-589.057, 276.500), (3546, 2518)),
    ((399.670, -467.508), (6110, 4447)),
    ((-556.759, 10.149), (3628, 3206)),
    ((419.385, -317.217), (6163, 4057)),
    ((-1123.327, -1036.224), (2158, 5925)),
]

# save-file world position -> in-game map X
WORLD_MAPX_PAIRS = [
    ((-599707.69, -360077.13), -1129),
    ((35266.16, 321438.91), 356),
    ((-1856.02, -148615.58), -668),
    ((-558096.00, 120982.28), -81),
]


@pytest.mark.parametrize("map_xy, expected_px", MAP_PIXEL_PAIRS)
def test_map_to_pixel_hits_calibration_points_within_one_output_pixel(map_xy, expected_px) -> None:
    px = map_to_pixel(*map_xy)
    factor = OUTPUT_SIZE / REFERENCE_SIZE
    assert abs(px.x - expected_px[0]) * factor <= 1.0
    assert abs(px.y - expected_px[1]) * factor <= 1.0


@pytest.mark.parametrize("world_xy, expected_map_x", WORLD_MAPX_PAIRS)
def test_world_to_map_x_matches_calibration(world_xy, expected_map_x) -> None:
    assert world_to_map(*world_xy).x == pytest.approx(expected_map_x, abs=1.0)


def test_world_to_map_swaps_and_scales_axes() -> None:
    cal = Calibration(transl_x=100.0, transl_y=50.0, scale=10.0)
    m = cal.world_to_map(900.0, 250.0)
    assert m.x == pytest.approx((250.0 - 50.0) / 10.0)
    assert m.y == pytest.approx((900.0 + 100.0) / 10.0)


def test_world_to_pixel_is_composition() -> None:
    wx, wy = -1856.02, -148615.58
    m = world_to_map(wx, wy)
    assert world_to_pixel(wx, wy) == map_to_pixel(m.x, m.y)


def test_origin_of_map_lands_on_offsets() -> None:
    cal = Calibration()
    assert cal.map_to_pixel(0.0, 0.0) == PixelPoint(cal.b, cal.d)
    # world point that sits on map (0, 0)
    m = cal.world_to_map(-cal.transl_x, cal.transl_y)
    assert (m.x, m.y) == (0.0, 0.0)


def test_scale_to_output_uses_independent_factors() -> None:
    p = scale_to_output(PixelPoint(800.0, 300.0), 1600, 600, 400, 400)
    assert p == PixelPoint(200.0, 200.0)
