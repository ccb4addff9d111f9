"""simulation/world.py — Locations of Goa and the gated exits between them.

The graph is static: built once from data/locations.toml, never mutated.
Only the *current location* pointer moves.  Each location lists its
outbound connections; a connection has a rectangular trigger zone in
tile coordinates, an optional requirement, and a spawn point in the
target location.

    graph = LocationGraph.from_toml(strict=True)
    world = WorldSystem(bus, timers, graph, queries)
    world.set_current_location("ribeira_grande")
    conn = world.check_transition_zone(1, 11)
    if conn:
        world.attempt_transition(conn)

A successful transition holds a 500 ms lock (virtual time) so a player
standing in the arrival zone cannot bounce straight back.
"""

from __future__ import annotations
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Callable

import pygame

from core import tuning
from core.constants import DATA_DIR, FALLBACK_SPAWN
from core.events import (
    EventBus, LocationChange, TransitionBlocked, TransitionZoneEntered,
)
from simulation.clock import in_hour_window
from simulation.providers import PlayerQueries, NeutralPlayerQueries
from simulation.timers import TimerQueue


LOCK_TAG = "world.lock"


# ── Data ─────────────────────────────────────────────────────────────

@dataclass(frozen=True)
class TransitionRequirement:
    """Checked in field order; the first failure wins."""
    reputation: tuple[str, float] | None = None     # (faction, minimum)
    item: str | None = None
    gold: int = 0
    time: tuple[int, int] | None = None             # (start_hour, end_hour)
    custom: Callable[[], bool] | None = field(default=None, compare=False)


@dataclass(frozen=True)
class RequirementCheck:
    allowed: bool
    reason: str | None = None


@dataclass(frozen=True, eq=False)
class LocationConnection:
    target: str
    zone: pygame.Rect
    spawn: tuple[int, int] | None = None
    display_name: str = ""
    requirements: TransitionRequirement | None = None

    def contains(self, tile_x: int, tile_y: int) -> bool:
        return bool(self.zone.collidepoint(tile_x, tile_y))


@dataclass(frozen=True)
class Location:
    id: str
    name: str
    map_file: str = ""
    description: str = ""
    connections: tuple[LocationConnection, ...] = ()
    faction_territory: str | None = None
    default_spawn: tuple[int, int] | None = None
    ambient_sound: str | None = None


def _parse_requirements(raw: dict | None) -> TransitionRequirement | None:
    if not raw:
        return None
    reputation = None
    if "reputation" in raw:
        rep = raw["reputation"]
        reputation = (rep["faction"], float(rep.get("min", 0)))
    time = None
    if "time" in raw:
        window = raw["time"]
        time = (int(window["start_hour"]), int(window["end_hour"]))
    return TransitionRequirement(
        reputation=reputation,
        item=raw.get("item"),
        gold=int(raw.get("gold", 0)),
        time=time,
    )


def _parse_point(raw: Any) -> tuple[int, int] | None:
    if raw is None:
        return None
    return int(raw[0]), int(raw[1])


# ── Graph ────────────────────────────────────────────────────────────

class LocationGraph:
    """Immutable set of locations, keyed by id."""

    def __init__(self, locations: list[Location] | None = None,
                 start: str | None = None) -> None:
        self._locations: dict[str, Location] = {}
        for location in locations or []:
            self._locations[location.id] = location
        self.start = start

    @classmethod
    def from_toml(cls, path: str | Path | None = None,
                  strict: bool = False) -> "LocationGraph":
        """Build the graph from a TOML file.

        With *strict*, any problem ``validate()`` reports raises
        ``ValueError``; otherwise each is printed as a warning.
        """
        data = tuning.read_toml(DATA_DIR / "locations.toml" if path is None else path)
        if not data:
            return cls()

        locations: list[Location] = []
        for lid, ldata in data.get("locations", {}).items():
            if not isinstance(ldata, dict):
                continue
            connections = tuple(
                LocationConnection(
                    target=cdata["target"],
                    zone=pygame.Rect(*cdata["zone"]),
                    spawn=_parse_point(cdata.get("spawn")),
                    display_name=cdata.get("display_name", ""),
                    requirements=_parse_requirements(cdata.get("requirements")),
                )
                for cdata in ldata.get("connections", [])
            )
            locations.append(Location(
                id=lid,
                name=ldata.get("name", lid),
                map_file=ldata.get("map_file", ""),
                description=ldata.get("description", ""),
                connections=connections,
                faction_territory=ldata.get("faction_territory"),
                default_spawn=_parse_point(ldata.get("default_spawn")),
                ambient_sound=ldata.get("ambient_sound"),
            ))

        graph = cls(locations, start=data.get("start"))
        problems = graph.validate()
        if problems:
            if strict:
                raise ValueError("invalid location graph:\n  " + "\n  ".join(problems))
            for problem in problems:
                print(f"[WORLD] Warning: {problem}")
        print(f"[WORLD] Loaded {len(graph)} locations")
        return graph

    def validate(self) -> list[str]:
        """Dangling targets and overlapping zones, as readable lines."""
        problems: list[str] = []
        for location in self._locations.values():
            conns = location.connections
            for i, conn in enumerate(conns):
                if conn.target not in self._locations:
                    problems.append(f"{location.id}: connection to unknown "
                                    f"location '{conn.target}'")
                if conn.zone.width <= 0 or conn.zone.height <= 0:
                    problems.append(f"{location.id}: empty zone toward '{conn.target}'")
                for other in conns[i + 1:]:
                    if conn.zone.colliderect(other.zone):
                        problems.append(f"{location.id}: zones toward '{conn.target}' "
                                        f"and '{other.target}' overlap")
        if self.start is not None and self.start not in self._locations:
            problems.append(f"start location '{self.start}' does not exist")
        return problems

    def get(self, location_id: str) -> Location | None:
        return self._locations.get(location_id)

    def all(self) -> list[Location]:
        return list(self._locations.values())

    def __contains__(self, location_id: object) -> bool:
        return location_id in self._locations

    def __len__(self) -> int:
        return len(self._locations)


# ── World system ─────────────────────────────────────────────────────

class WorldSystem:
    """Current location, requirement checks and transitions."""

    def __init__(self, bus: EventBus, timers: TimerQueue,
                 graph: LocationGraph | None = None,
                 queries: PlayerQueries | None = None) -> None:
        self.bus = bus
        self.timers = timers
        self.graph = graph if graph is not None else LocationGraph.from_toml()
        self.queries: PlayerQueries = queries if queries is not None else NeutralPlayerQueries()
        self.current_location: Location | None = None
        self.transition_in_progress = False
        self.lock_ms = float(tuning.get("world", "transition_lock_ms", 500.0))

    # ── Placement ────────────────────────────────────────────────────

    def set_current_location(self, location_id: str) -> bool:
        """Place the player directly, no connection involved."""
        location = self.graph.get(location_id)
        if location is None:
            print(f"[WORLD] Warning: location not found: {location_id}")
            return False
        previous = self.current_location
        self.current_location = location
        self.bus.emit(LocationChange(
            previous_location=previous,
            new_location=location,
            connection=None,
            spawn_point=location.default_spawn or FALLBACK_SPAWN,
        ))
        return True

    def get_location(self, location_id: str) -> Location | None:
        return self.graph.get(location_id)

    def get_all_locations(self) -> list[Location]:
        return self.graph.all()

    # ── Requirements ─────────────────────────────────────────────────

    def check_requirements(self, req: TransitionRequirement | None) -> RequirementCheck:
        if req is None:
            return RequirementCheck(True)

        if req.reputation is not None:
            faction, minimum = req.reputation
            if self.queries.reputation(faction) < minimum:
                return RequirementCheck(False, f"Requires {minimum:g} reputation with {faction}")

        if req.item and not self.queries.has_item(req.item):
            return RequirementCheck(False, f"Requires item: {req.item}")

        if req.gold and self.queries.gold() < req.gold:
            return RequirementCheck(False, f"Requires {req.gold} gold")

        if req.time is not None:
            start, end = req.time
            if not in_hour_window(self.queries.hour(), start, end):
                return RequirementCheck(False, f"Only accessible from {start}:00 to {end}:00")

        if req.custom is not None and not req.custom():
            return RequirementCheck(False, "Access requirements not met")

        return RequirementCheck(True)

    # ── Transitions ──────────────────────────────────────────────────

    def check_transition_zone(self, tile_x: int, tile_y: int) -> LocationConnection | None:
        """First connection of the current location whose zone holds the tile."""
        if self.current_location is None or self.transition_in_progress:
            return None
        for conn in self.current_location.connections:
            if conn.contains(tile_x, tile_y):
                return conn
        return None

    def attempt_transition(self, conn: LocationConnection) -> bool:
        if self.transition_in_progress:
            return False

        check = self.check_requirements(conn.requirements)
        if not check.allowed:
            print(f"[WORLD] Blocked: {check.reason}")
            self.bus.emit(TransitionBlocked(connection=conn, reason=check.reason or ""))
            return False

        target = self.graph.get(conn.target)
        if target is None:
            print(f"[WORLD] Warning: target location not found: {conn.target}")
            return False

        self.transition_in_progress = True
        previous = self.current_location
        self.current_location = target
        spawn = conn.spawn or target.default_spawn or FALLBACK_SPAWN

        print(f"[WORLD] {previous.id if previous else '-'} -> {target.id} at {spawn}")
        self.bus.emit(LocationChange(previous_location=previous, new_location=target,
                                     connection=conn, spawn_point=spawn))
        self.timers.after(self.lock_ms, self._release_lock, tag=LOCK_TAG)
        return True

    def _release_lock(self) -> None:
        self.transition_in_progress = False

    def poll_position(self, tile_x: int, tile_y: int) -> LocationConnection | None:
        """Frame hook: announce when the player stands in an exit zone."""
        conn = self.check_transition_zone(tile_x, tile_y)
        if conn is not None:
            self.bus.emit(TransitionZoneEntered(connection=conn,
                                                display_name=self.display_name(conn)))
        return conn

    def display_name(self, conn: LocationConnection) -> str:
        if conn.display_name:
            return conn.display_name
        target = self.graph.get(conn.target)
        return f"To {target.name if target else 'Unknown'}"

    def is_transitioning(self) -> bool:
        return self.transition_in_progress

    # ── Queries ──────────────────────────────────────────────────────

    def get_available_connections(self, include_blocked: bool = False
                                  ) -> list[tuple[LocationConnection, RequirementCheck]]:
        if self.current_location is None:
            return []
        result = []
        for conn in self.current_location.connections:
            check = self.check_requirements(conn.requirements)
            if include_blocked or check.allowed:
                result.append((conn, check))
        return result

    def get_current_faction_territory(self) -> str | None:
        if self.current_location is None:
            return None
        return self.current_location.faction_territory

    def is_in_faction_territory(self, faction: str) -> bool:
        return self.get_current_faction_territory() == faction

    def get_faction_locations(self, faction: str) -> list[Location]:
        return [loc for loc in self.graph.all() if loc.faction_territory == faction]

    def get_debug_info(self) -> dict[str, Any]:
        return {
            "current_location": self.current_location.id if self.current_location else None,
            "total_locations": len(self.graph),
            "available_exits": len(self.get_available_connections()),
            "faction_territory": self.get_current_faction_territory(),
            "transitioning": self.transition_in_progress,
        }

    # ── Persistence ──────────────────────────────────────────────────

    def get_save_data(self) -> dict[str, Any]:
        return {"current_location": self.current_location.id if self.current_location else None}

    def load_save_data(self, data: dict[str, Any]) -> None:
        location_id = data.get("current_location")
        if location_id:
            self.set_current_location(location_id)
