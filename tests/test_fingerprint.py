from dataclasses import replace

from palmap.coords import MapPoint, WorldPoint
from palmap.fingerprint import canonical_snapshot, fingerprint

from conftest import make_camp, make_player

PLAYERS = [
    make_player("p-2", "Zed", 10.0, 20.0),
    make_player("p-1", "Amy", -5.5, 7.25),
    make_player("", "NoId", 1.0, 1.0),
]
CAMPS = [
    make_camp("c-b", "g1", "Alpha", 1.0, 2.0),
    make_camp("c-a", "g2", "Beta", -3.0, 4.0),
    make_camp("c-c", "g2", "Beta"),
]


def test_fingerprint_is_stable_across_recomputation() -> None:
    assert fingerprint(PLAYERS, CAMPS) == fingerprint(PLAYERS, CAMPS)


def test_fingerprint_ignores_input_order() -> None:
    assert fingerprint(PLAYERS, CAMPS) == fingerprint(list(reversed(PLAYERS)), list(reversed(CAMPS)))


def test_canonical_form_sorts_and_zero_fills() -> None:
    canon = canonical_snapshot(PLAYERS, CAMPS)
    assert [p["id"] or p["name"] for p in canon["players"]] == ["NoId", "p-1", "p-2"]
    assert [c["id"] for c in canon["camps"]] == ["c-a", "c-b", "c-c"]
    assert canon["camps"][2]["mx"] == 0.0 and canon["camps"][2]["my"] == 0.0


def test_fingerprint_changes_with_player_position() -> None:
    moved = [replace(PLAYERS[0], world=WorldPoint(10.0, 20.5))] + PLAYERS[1:]
    assert fingerprint(moved, CAMPS) != fingerprint(PLAYERS, CAMPS)


def test_fingerprint_changes_with_player_name_or_id() -> None:
    renamed = [replace(PLAYERS[0], name="Zeddy")] + PLAYERS[1:]
    reid = [replace(PLAYERS[0], id="p-9")] + PLAYERS[1:]
    base = fingerprint(PLAYERS, CAMPS)
    assert fingerprint(renamed, CAMPS) != base
    assert fingerprint(reid, CAMPS) != base


def test_fingerprint_changes_with_camp_position_or_guild() -> None:
    moved = [replace(CAMPS[0], map_pos=MapPoint(1.0, 2.1))] + CAMPS[1:]
    regild = [replace(CAMPS[0], guild_name="Gamma")] + CAMPS[1:]
    base = fingerprint(PLAYERS, CAMPS)
    assert fingerprint(PLAYERS, moved) != base
    assert fingerprint(PLAYERS, regild) != base


def test_fingerprint_of_empty_snapshot() -> None:
    assert fingerprint([], []) == fingerprint(None, None)
    assert len(fingerprint([], [])) == 64
