"""test_world.py — Location graph, gated exits, transition lock.

Run: python test_world.py   (or: pytest test_world.py)
"""
from __future__ import annotations
import sys, tempfile, traceback
from pathlib import Path

import pygame

from core.events import (
    EventBus, LocationChange, TransitionBlocked, TransitionZoneEntered,
)
from simulation.providers import PlayerQueries, NeutralPlayerQueries
from simulation.timers import TimerQueue
from simulation.world import (
    LOCK_TAG, Location, LocationConnection, LocationGraph,
    TransitionRequirement, WorldSystem,
)


# ── Test harness ─────────────────────────────────────────────────────

_passed = 0
_failed = 0

def ok(label: str):
    global _passed
    _passed += 1
    print(f"  [PASS] {label}")

def fail(label: str, detail: str = ""):
    global _failed
    _failed += 1
    msg = f"  [FAIL] {label}"
    if detail:
        msg += f" — {detail}"
    print(msg)

def check(cond: bool, label: str, detail: str = ""):
    if cond:
        ok(label)
    else:
        fail(label, detail)
    assert cond, f"{label} {detail}".strip()


class FakeQueries(PlayerQueries):
    """Player facts set directly by the test."""

    def __init__(self, hour: int = 12, gold: int = 0,
                 items: set[str] | None = None,
                 standing: dict[str, float] | None = None):
        self._hour = hour
        self._gold = gold
        self.items = items or set()
        self.standing = standing or {}

    def reputation(self, faction_id: str) -> float:
        return self.standing.get(faction_id, 0.0)

    def has_item(self, item_id: str) -> bool:
        return item_id in self.items

    def gold(self) -> int:
        return self._gold

    def hour(self) -> int:
        return self._hour


def _world(queries: PlayerQueries | None = None, start: str = "ribeira_grande"):
    bus = EventBus()
    timers = TimerQueue()
    seen: list = []
    for kind in (LocationChange, TransitionBlocked, TransitionZoneEntered):
        bus.subscribe(kind, seen.append)
    world = WorldSystem(bus, timers, LocationGraph.from_toml(strict=True), queries)
    world.set_current_location(start)
    return world, timers, seen


def _exit_to(world: WorldSystem, target: str) -> LocationConnection:
    for conn in world.current_location.connections:
        if conn.target == target:
            return conn
    raise AssertionError(f"no exit to {target}")


def _conn(target: str, zone: tuple[int, int, int, int], **kwargs) -> LocationConnection:
    return LocationConnection(target=target, zone=pygame.Rect(*zone), **kwargs)


# ═══════════════════════════════════════════════════════════════════════
#  Graph
# ═══════════════════════════════════════════════════════════════════════

def test_shipped_graph_is_valid():
    print("\n=== Shipped graph ===")
    graph = LocationGraph.from_toml(strict=True)
    check(len(graph) == 7, "seven locations", str(len(graph)))
    check(graph.start == "ribeira_grande", "starts at the Ribeira")
    check(graph.validate() == [], "no dangling targets or overlaps")
    customs = graph.get("alfandega")
    check(customs.faction_territory == "crown", "customs house is crown land")
    check(graph.get("tavern").ambient_sound == "tavern_ambience", "optional fields load")
    check("docks" in graph and "atlantis" not in graph, "membership")


def test_validate_reports_problems():
    print("\n=== Validation ===")
    graph = LocationGraph([
        Location("a", "A", connections=(
            _conn("b", (0, 0, 4, 4)),
            _conn("b", (3, 3, 2, 2)),
            _conn("nowhere", (10, 10, 1, 1)),
            _conn("b", (20, 20, 0, 3)),
        )),
        Location("b", "B"),
    ], start="c")
    problems = graph.validate()
    check(any("overlap" in p for p in problems), "overlapping zones reported")
    check(any("unknown location 'nowhere'" in p for p in problems), "dangling target reported")
    check(any("empty zone" in p for p in problems), "empty zone reported")
    check(any("start location 'c'" in p for p in problems), "bad start reported")

    touching = LocationGraph([
        Location("a", "A", connections=(
            _conn("b", (0, 0, 2, 2)),
            _conn("b", (2, 0, 2, 2)),
        )),
        Location("b", "B"),
    ])
    check(touching.validate() == [], "edge-adjacent zones do not overlap")


def test_strict_load_raises():
    print("\n=== Strict load ===")
    text = (
        'start = "a"\n'
        '[locations.a]\nname = "A"\n'
        '[[locations.a.connections]]\ntarget = "ghost"\nzone = [0, 0, 2, 2]\n'
    )
    with tempfile.TemporaryDirectory() as tmp:
        path = Path(tmp) / "locations.toml"
        path.write_text(text, encoding="utf-8")
        try:
            LocationGraph.from_toml(path, strict=True)
            check(False, "strict load rejects a dangling target")
        except ValueError as exc:
            check("ghost" in str(exc), "strict load rejects a dangling target")
        lenient = LocationGraph.from_toml(path)
        check(len(lenient) == 1, "lenient load keeps going")


# ═══════════════════════════════════════════════════════════════════════
#  Zones
# ═══════════════════════════════════════════════════════════════════════

def test_zone_edges():
    print("\n=== Zone edges ===")
    world, _, _ = _world()
    conn = world.check_transition_zone(1, 11)
    check(conn is not None and conn.target == "alfandega", "inside the customs zone")
    check(world.check_transition_zone(0, 10) is conn, "left/top edge inclusive")
    check(world.check_transition_zone(2, 11) is None, "right edge exclusive")
    check(world.check_transition_zone(1, 14) is None, "bottom edge exclusive")
    check(world.check_transition_zone(15, 15) is None, "market square is no exit")


def test_poll_position_announces_zone():
    print("\n=== Zone announcement ===")
    world, _, seen = _world()
    seen.clear()
    world.poll_position(1, 11)
    entered = [e for e in seen if isinstance(e, TransitionZoneEntered)]
    check(len(entered) == 1 and entered[0].display_name == "To Customs House",
          "display name from data")
    bare = _conn("docks", (0, 0, 1, 1))
    check(world.display_name(bare) == "To The Docks", "fallback display name")


# ═══════════════════════════════════════════════════════════════════════
#  Requirements
# ═══════════════════════════════════════════════════════════════════════

def test_tavern_opens_in_the_evening():
    print("\n=== Time gate ===")
    queries = FakeQueries(hour=10)
    world, _, seen = _world(queries)
    tavern = _exit_to(world, "tavern")

    check(not world.attempt_transition(tavern), "closed at 10:00")
    blocked = [e for e in seen if isinstance(e, TransitionBlocked)]
    check(len(blocked) == 1 and blocked[0].reason == "Only accessible from 17:00 to 24:00",
          "reason names the window")
    check(world.current_location.id == "ribeira_grande", "player stays put")

    queries._hour = 20
    check(world.attempt_transition(tavern), "open at 20:00")
    check(world.current_location.id == "tavern", "moved into the tavern")
    moves = [e for e in seen if isinstance(e, LocationChange) and e.connection is tavern]
    check(len(moves) == 1 and moves[0].spawn_point == (5, 2), "spawn from the connection")


def test_requirement_order_and_reasons():
    print("\n=== Requirement checks ===")
    queries = FakeQueries(hour=3)
    world, _, _ = _world(queries)
    req = TransitionRequirement(reputation=("crown", 10), item="customs_pass",
                                gold=50, time=(17, 24))
    check(world.check_requirements(req).reason == "Requires 10 reputation with crown",
          "reputation checked first")
    queries.standing["crown"] = 10
    check(world.check_requirements(req).reason == "Requires item: customs_pass",
          "then the item")
    queries.items.add("customs_pass")
    check(world.check_requirements(req).reason == "Requires 50 gold", "then gold")
    queries._gold = 50
    check(world.check_requirements(req).reason == "Only accessible from 17:00 to 24:00",
          "then the hour")
    queries._hour = 17
    check(world.check_requirements(req).allowed, "all satisfied")
    check(world.check_requirements(None).allowed, "no requirement, no gate")

    gate = TransitionRequirement(custom=lambda: False)
    check(world.check_requirements(gate).reason == "Access requirements not met",
          "custom predicate last")


def test_overnight_window_wraps():
    print("\n=== Overnight window ===")
    queries = FakeQueries(hour=23)
    world, _, _ = _world(queries)
    req = TransitionRequirement(time=(22, 4))
    check(world.check_requirements(req).allowed, "23:00 inside 22-4")
    queries._hour = 2
    check(world.check_requirements(req).allowed, "02:00 inside 22-4")
    queries._hour = 4
    check(not world.check_requirements(req).allowed, "04:00 outside (end exclusive)")


def test_reputation_gate_and_neutral_defaults():
    print("\n=== Reputation gate ===")
    world, _, _ = _world(NeutralPlayerQueries(), start="alfandega")
    warehouses = _exit_to(world, "warehouse_district")
    check(not world.attempt_transition(warehouses), "neutral standing cannot pass")
    exits = world.get_available_connections()
    check([c.target for c, _ in exits] == ["ribeira_grande"], "blocked exit hidden")
    every = world.get_available_connections(include_blocked=True)
    check(len(every) == 2 and not every[1][1].allowed, "include_blocked lists it with a reason")

    trusted, _, _ = _world(FakeQueries(standing={"crown": 25}), start="alfandega")
    check(trusted.attempt_transition(_exit_to(trusted, "warehouse_district")),
          "crown friends pass")


# ═══════════════════════════════════════════════════════════════════════
#  Transition lock
# ═══════════════════════════════════════════════════════════════════════

def test_transition_lock_releases_after_500ms():
    print("\n=== Transition lock ===")
    world, timers, seen = _world()
    check(world.attempt_transition(_exit_to(world, "alfandega")), "walked into customs")
    check(world.is_transitioning(), "lock held")
    check(timers.pending_count(LOCK_TAG) == 1, "release scheduled")

    back = _exit_to(world, "ribeira_grande")
    check(world.check_transition_zone(28, 11) is None, "zones ignored while locked")
    check(not world.attempt_transition(back), "cannot bounce straight back")

    timers.advance(499)
    check(world.is_transitioning(), "still locked at 499 ms")
    timers.advance(1)
    check(not world.is_transitioning(), "released at 500 ms")
    check(world.check_transition_zone(28, 11) is back, "zones live again")


def test_set_location_and_save():
    print("\n=== Placement and save ===")
    world, timers, seen = _world()
    seen.clear()
    check(not world.set_current_location("atlantis"), "unknown id refused")
    check(world.set_current_location("docks"), "direct placement")
    change = seen[-1]
    check(change.connection is None and change.spawn_point == (15, 15),
          "no connection, default spawn")
    check(world.get_current_faction_territory() is None, "docks are nobody's")
    check([l.id for l in world.get_faction_locations("crown")] == ["alfandega", "se_cathedral"],
          "crown territory listed")

    other, _, _ = _world()
    other.load_save_data(world.get_save_data())
    check(other.current_location.id == "docks", "location restored")
    check(other.get_debug_info()["current_location"] == "docks", "debug info")


# ═══════════════════════════════════════════════════════════════════════
#  MAIN
# ═══════════════════════════════════════════════════════════════════════

if __name__ == "__main__":
    sections = [(name, fn) for name, fn in list(globals().items())
                if name.startswith("test_") and callable(fn)]
    for name, fn in sections:
        try:
            fn()
        except Exception:
            _failed += 1
            print(f"\n  [CRASH] {name} — unhandled exception:")
            traceback.print_exc()

    print(f"\n{'=' * 60}")
    print(f"  World Tests: {_passed} passed, {_failed} failed")
    print(f"{'=' * 60}")
    sys.exit(1 if _failed else 0)
