"""simulation/scheduler.py — Day-driven harbour event scheduler.

Ships arrive, unload, linger and leave.  Two lists drive it:

    scheduled   future events, heap-ordered by the day they fire
    active      events currently in effect, dropped once their expiry
                day has passed

Each ``NewDay`` runs, in order: drain everything scheduled for today or
earlier, roll one arrival check per ship archetype, expire stale active
events.  Monsoon onset sinks most pending ship traffic.

    scheduler = EventScheduler(bus, rng, weather=weather, trade=trade)
    scheduler.schedule_event("ship_departure", day + 3, {...})
"""

from __future__ import annotations
import copy
import heapq
import math
import random
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, TYPE_CHECKING

from core import tuning
from core.constants import DATA_DIR
from core.events import (
    EventBus, NewDay, SeasonChange, ShipArrived, ShipDeparted, CargoUnloaded,
    CargoDemand, WorldEventExpired,
)

if TYPE_CHECKING:
    from simulation.economy import TradeSystem
    from simulation.weather import WeatherSystem


EVENT_TYPES = ("ship_arrival", "ship_departure", "cargo_unloaded", "cargo_demand")
SHIP_EVENT_TYPES = ("ship_arrival", "ship_departure")


@dataclass(frozen=True)
class ShipType:
    id: str
    name: str
    origin: str = ""
    description: str = ""
    arrival_probability: float = 0.0
    stay_min: int = 1
    stay_max: int = 1
    coastal: bool = False
    captains: tuple[str, ...] = ()
    cargo: tuple[tuple[str, int], ...] = ()           # (good_id, typical qty)
    exports: tuple[tuple[str, float], ...] = ()       # (good_id, price multiplier)


@dataclass(order=True)
class ScheduledEvent:
    """A future event, ordered by the day it fires."""
    scheduled_for: int
    # heapq tiebreaker (insertion order)
    _seq: int = field(compare=True, repr=False)
    id: str = field(compare=False, default="")
    type: str = field(compare=False, default="")
    data: dict[str, Any] = field(compare=False, default_factory=dict)


@dataclass
class ActiveEvent:
    id: str
    type: str
    started_at: int
    expires_at: int
    data: dict[str, Any] = field(default_factory=dict)


def _copy_active(event: ActiveEvent) -> ActiveEvent:
    return ActiveEvent(event.id, event.type, event.started_at, event.expires_at,
                       copy.deepcopy(event.data))


def load_ship_types(path: str | Path | None = None) -> dict[str, ShipType]:
    data = tuning.read_toml(DATA_DIR / "ships.toml" if path is None else path)
    if not data:
        return {}
    ships: dict[str, ShipType] = {}
    for sid, sdata in data.get("ships", {}).items():
        if not isinstance(sdata, dict):
            continue
        ships[sid] = ShipType(
            id=sid,
            name=sdata.get("name", sid),
            origin=sdata.get("origin", ""),
            description=sdata.get("description", ""),
            arrival_probability=float(sdata.get("arrival_probability", 0.0)),
            stay_min=int(sdata.get("stay_min", 1)),
            stay_max=int(sdata.get("stay_max", sdata.get("stay_min", 1))),
            coastal=bool(sdata.get("coastal", False)),
            captains=tuple(sdata.get("captains", [])),
            cargo=tuple((g, int(q)) for g, q in sdata.get("cargo", {}).items()),
            exports=tuple((g, float(m)) for g, m in sdata.get("exports", {}).items()),
        )
    return ships


def arrival_probability(ship: ShipType, season: str, trade_modifier: float) -> float:
    """Chance *ship* calls today, given the season and its trade modifier."""
    probability = ship.arrival_probability * trade_modifier
    if season == "monsoon":
        if ship.coastal:
            probability *= tuning.get("events.monsoon", "coastal_penalty", 0.2)
        else:
            probability *= tuning.get("events.monsoon", "ocean_penalty", 0.05)
    elif season in ("pre_monsoon", "post_monsoon"):
        probability *= tuning.get("events", "shoulder_season_penalty", 0.7)
    return min(1.0, probability)


class EventScheduler:
    """Ship arrivals/departures and the market events they cause."""

    def __init__(self, bus: EventBus, rng: random.Random,
                 weather: "WeatherSystem | None" = None,
                 trade: "TradeSystem | None" = None,
                 ship_types: dict[str, ShipType] | None = None,
                 current_day: int = 1) -> None:
        self.bus = bus
        self.rng = rng
        self.weather = weather
        self.trade = trade
        self.ship_types = ship_types if ship_types is not None else load_ship_types()

        self._scheduled: list[ScheduledEvent] = []
        self._active: list[ActiveEvent] = []
        self._seq: int = 0
        self._id_counter: int = 0
        self.current_day = current_day
        self.events_processed: int = 0

        bus.subscribe(NewDay, self._on_new_day)
        bus.subscribe(SeasonChange, self._on_season_change)

    # ── Event handlers ───────────────────────────────────────────────

    def _on_new_day(self, event: NewDay) -> None:
        self.process_day(event.day_count)

    def _on_season_change(self, event: SeasonChange) -> None:
        if event.current == "monsoon":
            self.apply_monsoon_closure()

    def process_day(self, day: int) -> None:
        """Run one day tick: scheduled, arrivals, expiry."""
        self.current_day = day
        self._drain_scheduled()
        self.check_ship_arrivals()
        self._expire_active()

    # ── Scheduling ───────────────────────────────────────────────────

    def _next_id(self, prefix: str) -> str:
        self._id_counter += 1
        return f"{prefix}_{self._id_counter}"

    def schedule_event(self, event_type: str, scheduled_for: int,
                       data: dict[str, Any] | None = None) -> str:
        """Queue *event_type* to fire on day *scheduled_for*.  Returns its id."""
        self._seq += 1
        evt = ScheduledEvent(scheduled_for=scheduled_for, _seq=self._seq,
                             id=self._next_id("scheduled"), type=event_type,
                             data=copy.deepcopy(data or {}))
        heapq.heappush(self._scheduled, evt)
        return evt.id

    def _drain_scheduled(self) -> None:
        while self._scheduled and self._scheduled[0].scheduled_for <= self.current_day:
            evt = heapq.heappop(self._scheduled)
            self.trigger_event(evt.type, evt.data)
            self.events_processed += 1

    def trigger_event(self, event_type: str, data: dict[str, Any]) -> None:
        if event_type == "ship_arrival":
            ship = self.ship_types.get(data.get("ship_type", ""))
            if ship is None:
                print(f"[EVENTS] Warning: unknown ship type '{data.get('ship_type')}'")
                return
            self.trigger_ship_arrival(ship)
        elif event_type == "ship_departure":
            self.trigger_ship_departure(data)
        elif event_type == "cargo_unloaded":
            self.trigger_cargo_unloaded(list(data.get("goods", [])))
        elif event_type == "cargo_demand":
            self._add_cargo_demand(data.get("good_id", ""),
                                   float(data.get("demand_price", 1.0)),
                                   int(data.get("quantity", 0)),
                                   int(data.get("expires_at", self.current_day + 1)))
        else:
            print(f"[EVENTS] Warning: unknown event type '{event_type}'")

    # ── Ships ────────────────────────────────────────────────────────

    def check_ship_arrivals(self) -> int:
        """One arrival roll per archetype.  Returns the number that arrived."""
        season = self.weather.current_season if self.weather else "dry"
        modifier = self.weather.get_trade_modifier() if self.weather else 1.0
        arrived = 0
        for ship in self.ship_types.values():
            if self.rng.random() < arrival_probability(ship, season, modifier):
                self.trigger_ship_arrival(ship)
                arrived += 1
        return arrived

    def trigger_ship_arrival(self, ship: ShipType) -> ActiveEvent:
        stay = self.rng.randint(ship.stay_min, ship.stay_max)
        captain = self._captain_for(ship)

        cargo = []
        for good_id, qty in ship.cargo:
            if qty <= 0:
                continue
            jitter = math.floor((self.rng.random() - 0.5) * qty)
            cargo.append({"good_id": good_id, "quantity": max(1, qty + jitter)})

        active = ActiveEvent(
            id=self._next_id("ship_arrival"),
            type="ship_arrival",
            started_at=self.current_day,
            expires_at=self.current_day + stay,
            data={"ship_type": ship.id, "cargo": cargo,
                  "captain_name": captain, "stay_duration": stay},
        )
        self._active.append(active)

        print(f"[EVENTS] {ship.name} from {ship.origin} arrived, "
              f"Captain {captain}, staying {stay} days")
        self.bus.emit(ShipArrived(event_id=active.id, ship_type=ship.id,
                                  cargo=[dict(c) for c in cargo],
                                  captain_name=captain, stay_duration=stay,
                                  day=self.current_day))

        if cargo:
            self.trigger_cargo_unloaded(cargo)

        self.schedule_event("ship_departure", self.current_day + stay, {
            "ship_type": ship.id,
            "captain_name": captain,
            "export_opportunity": [{"good_id": g, "demand_price": m}
                                   for g, m in ship.exports],
        })
        return _copy_active(active)

    def trigger_cargo_unloaded(self, goods: list[dict]) -> None:
        impact = float(tuning.get("events", "cargo_price_impact", 0.85))
        self._active.append(ActiveEvent(
            id=self._next_id("cargo_unloaded"),
            type="cargo_unloaded",
            started_at=self.current_day,
            expires_at=self.current_day + 1,
            data={"goods": [dict(g) for g in goods], "price_impact": impact},
        ))
        if self.trade is not None:
            self.trade.ship_arrival(goods)
        print("[EVENTS] Cargo unloaded: "
              + ", ".join(f"{g['quantity']}x {g['good_id']}" for g in goods))
        self.bus.emit(CargoUnloaded(goods=[dict(g) for g in goods],
                                    price_impact=impact))

    def trigger_ship_departure(self, data: dict[str, Any]) -> None:
        ship_id = data.get("ship_type", "")
        captain = data.get("captain_name", "")
        self._active = [
            e for e in self._active
            if not (e.type == "ship_arrival"
                    and e.data.get("ship_type") == ship_id
                    and e.data.get("captain_name") == captain)
        ]

        exports = list(data.get("export_opportunity", []))
        for opportunity in exports:
            quantity = 5 + self.rng.randint(0, 9)
            self._add_cargo_demand(opportunity["good_id"],
                                   float(opportunity["demand_price"]),
                                   quantity, self.current_day + 1)

        ship = self.ship_types.get(ship_id)
        print(f"[EVENTS] {ship.name if ship else ship_id} departed, Captain {captain}")
        self.bus.emit(ShipDeparted(event_id=self._next_id("ship_departure"),
                                   ship_type=ship_id, captain_name=captain,
                                   export_opportunity=[dict(o) for o in exports]))

    def _add_cargo_demand(self, good_id: str, demand_price: float,
                          quantity: int, expires_at: int) -> ActiveEvent:
        active = ActiveEvent(
            id=self._next_id("cargo_demand"),
            type="cargo_demand",
            started_at=self.current_day,
            expires_at=expires_at,
            data={"good_id": good_id, "demand_price": demand_price,
                  "quantity": quantity, "expires_at": expires_at},
        )
        self._active.append(active)
        self.bus.emit(CargoDemand(event_id=active.id, good_id=good_id,
                                  demand_price=demand_price, quantity=quantity,
                                  expires_at=expires_at))
        return active

    def _captain_for(self, ship: ShipType) -> str:
        if not ship.captains:
            return "Unknown"
        return self.rng.choice(ship.captains)

    # ── Expiry and seasons ───────────────────────────────────────────

    def _expire_active(self) -> None:
        expired = [e for e in self._active if e.expires_at < self.current_day]
        if not expired:
            return
        self._active = [e for e in self._active if e.expires_at >= self.current_day]
        for event in expired:
            if event.type == "cargo_demand":
                print(f"[EVENTS] Export opportunity expired: {event.data.get('good_id')}")
            self.bus.emit(WorldEventExpired(event_id=event.id, kind=event.type,
                                            day=self.current_day))

    def apply_monsoon_closure(self) -> int:
        """Drop most pending ship traffic.  Returns how many were cancelled."""
        keep_chance = float(tuning.get("events.monsoon", "keep_chance", 0.2))
        kept: list[ScheduledEvent] = []
        cancelled = 0
        for evt in self._scheduled:
            if evt.type in SHIP_EVENT_TYPES and self.rng.random() >= keep_chance:
                cancelled += 1
                continue
            kept.append(evt)
        heapq.heapify(kept)
        self._scheduled = kept
        if cancelled:
            print(f"[EVENTS] Monsoon closed the sea lanes: {cancelled} sailings cancelled")
        return cancelled

    # ── Export demand ────────────────────────────────────────────────

    def best_demand_offer(self, good_id: str) -> ActiveEvent | None:
        """Highest-paying open captain demand for *good_id*, if any."""
        offers = [e for e in self._active
                  if e.type == "cargo_demand" and e.data.get("good_id") == good_id
                  and e.data.get("quantity", 0) > 0]
        if not offers:
            return None
        best = max(offers, key=lambda e: e.data.get("demand_price", 0.0))
        return _copy_active(best)

    def fill_demand(self, event_id: str, quantity: int = 1) -> int:
        """Sell into a captain's demand.  Returns units actually taken."""
        for event in self._active:
            if event.id == event_id and event.type == "cargo_demand":
                taken = min(quantity, int(event.data.get("quantity", 0)))
                event.data["quantity"] = int(event.data.get("quantity", 0)) - taken
                return taken
        return 0

    # ── Queries (copies) ─────────────────────────────────────────────

    def get_active_events(self) -> list[ActiveEvent]:
        return [_copy_active(e) for e in self._active]

    def get_active_events_by_type(self, event_type: str) -> list[ActiveEvent]:
        return [e for e in self.get_active_events() if e.type == event_type]

    def get_scheduled_events(self) -> list[ScheduledEvent]:
        return [ScheduledEvent(e.scheduled_for, e._seq, e.id, e.type,
                               copy.deepcopy(e.data))
                for e in sorted(self._scheduled)]

    def get_ship_type(self, ship_type_id: str) -> ShipType | None:
        return self.ship_types.get(ship_type_id)

    def get_all_ship_types(self) -> list[ShipType]:
        return list(self.ship_types.values())

    # ── Persistence ──────────────────────────────────────────────────

    def get_save_data(self) -> dict[str, Any]:
        return {
            "current_day": self.current_day,
            "id_counter": self._id_counter,
            "scheduled": [
                {"id": e.id, "type": e.type, "scheduled_for": e.scheduled_for,
                 "data": copy.deepcopy(e.data)}
                for e in sorted(self._scheduled)
            ],
            "active": [
                {"id": e.id, "type": e.type, "started_at": e.started_at,
                 "expires_at": e.expires_at, "data": copy.deepcopy(e.data)}
                for e in self._active
            ],
        }

    def load_save_data(self, data: dict[str, Any]) -> None:
        self.current_day = int(data.get("current_day", self.current_day))
        self._id_counter = int(data.get("id_counter", 0))
        self._scheduled = []
        for edata in data.get("scheduled", []):
            if edata.get("type") not in EVENT_TYPES:
                print(f"[EVENTS] Warning: dropping saved event of type '{edata.get('type')}'")
                continue
            self._seq += 1
            heapq.heappush(self._scheduled, ScheduledEvent(
                scheduled_for=int(edata["scheduled_for"]), _seq=self._seq,
                id=edata.get("id", ""), type=edata["type"],
                data=copy.deepcopy(edata.get("data", {}))))
        self._active = [
            ActiveEvent(id=e.get("id", ""), type=e["type"],
                        started_at=int(e.get("started_at", 0)),
                        expires_at=int(e.get("expires_at", 0)),
                        data=copy.deepcopy(e.get("data", {})))
            for e in data.get("active", [])
            if e.get("type") in EVENT_TYPES
        ]

    def __repr__(self) -> str:
        return (f"EventScheduler(day={self.current_day}, "
                f"scheduled={len(self._scheduled)}, active={len(self._active)})")
