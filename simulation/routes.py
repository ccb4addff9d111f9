"""simulation/routes.py — Long-distance trade expeditions.

The player loads goods onto a hired ship bound for Cochin, Hormuz,
Malacca, Macau or Mozambique.  The cargo leaves the pack at once; the
ship comes back a round trip later with gold, or does not come back.

    outbound ──(half way)──► returning ──(return time)──► resolved
                                                          completed | lost

Routes open with merchant rank (``trade_routes`` / ``bulk_trading``)
and close to anyone the controlling faction dislikes.  Wind at the
moment of sailing stretches or shortens the voyage; faction standing
moves both the profit and the odds of losing the ship.
"""

from __future__ import annotations
import copy
import math
import random
from dataclasses import asdict, dataclass, field, fields
from pathlib import Path
from typing import Any, TYPE_CHECKING

from core import tuning
from core.constants import DATA_DIR, HOURS_PER_DAY
from core.events import (
    EventBus, HourChange, GoldChange,
    ExpeditionStarted, ExpeditionReturning, ExpeditionCompleted, ExpeditionLost,
)

if TYPE_CHECKING:
    from simulation.clock import TimeSystem
    from simulation.economy import TradeSystem
    from simulation.factions import FactionSystem
    from simulation.player import PlayerLedger
    from simulation.progression import ProgressionSystem
    from simulation.wind import WindSystem


# Value of a good the catalog cannot price (no market attached)
DEFAULT_GOOD_VALUE = 10

# (reputation at least, profit bonus, risk change)
STANDING_EFFECTS: list[tuple[float, float, float]] = [
    (50.0, 0.1, -0.05),
    (80.0, 0.1, -0.05),
]
DISLIKED_RISK = 0.10


@dataclass(frozen=True)
class TradeRoute:
    id: str
    name: str
    destination: str = ""
    description: str = ""
    travel_hours: int = 24          # one way, before wind
    heading: float = 0.0            # wind-model degrees
    base_risk: float = 0.1
    profit_multiplier: float = 1.0
    goods_affinity: tuple[str, ...] = ()
    faction: str = ""
    unlock: str | None = None


@dataclass
class Expedition:
    id: str
    route_id: str
    goods: list[dict] = field(default_factory=list)
    departure_time: int = 0
    return_time: int = 0
    status: str = "outbound"        # outbound | returning | completed | lost
    investment: int = 0
    expected_return: int = 0
    actual_return: int = 0
    wind_factor: float = 1.0


@dataclass
class ExpeditionResult:
    success: bool
    expedition_id: str = ""
    message: str = ""


_EXPEDITION_FIELDS = {f.name for f in fields(Expedition)}


def load_routes(path: str | Path | None = None) -> dict[str, TradeRoute]:
    data = tuning.read_toml(DATA_DIR / "routes.toml" if path is None else path)
    if not data:
        return {}
    routes: dict[str, TradeRoute] = {}
    for rid, rdata in data.get("routes", {}).items():
        if not isinstance(rdata, dict):
            continue
        routes[rid] = TradeRoute(
            id=rid,
            name=rdata.get("name", rid),
            destination=rdata.get("destination", ""),
            description=rdata.get("description", ""),
            travel_hours=max(1, int(rdata.get("travel_hours", 24))),
            heading=float(rdata.get("heading", 0.0)),
            base_risk=float(rdata.get("base_risk", 0.1)),
            profit_multiplier=float(rdata.get("profit_multiplier", 1.0)),
            goods_affinity=tuple(rdata.get("goods_affinity", [])),
            faction=rdata.get("faction", ""),
            unlock=rdata.get("unlock") or None,
        )
    return routes


def affinity_bonus(route: TradeRoute, goods: list[dict]) -> float:
    """Extra profit for a hold full of what the destination wants."""
    total = sum(int(g.get("quantity", 0)) for g in goods)
    if total <= 0:
        return 0.0
    liked = sum(int(g.get("quantity", 0)) for g in goods
                if g.get("good_id") in route.goods_affinity)
    return liked / total * float(tuning.get("routes", "affinity_bonus", 0.3))


class TradeRouteSystem:
    """Expeditions at sea and the routes open to the player."""

    def __init__(self, bus: EventBus, rng: random.Random,
                 clock: "TimeSystem | None" = None,
                 ledger: "PlayerLedger | None" = None,
                 trade: "TradeSystem | None" = None,
                 factions: "FactionSystem | None" = None,
                 progression: "ProgressionSystem | None" = None,
                 wind: "WindSystem | None" = None,
                 routes: dict[str, TradeRoute] | None = None) -> None:
        self.bus = bus
        self.rng = rng
        self.clock = clock
        self.ledger = ledger
        self.trade = trade
        self.factions = factions
        self.progression = progression
        self.wind = wind
        self.routes = routes if routes is not None else load_routes()

        self._active: dict[str, Expedition] = {}
        self.completed_count = 0
        self.lost_count = 0
        self.total_profit = 0
        self._id_counter = 0

        bus.subscribe(HourChange, self._on_hour_change)

    def _on_hour_change(self, event: HourChange) -> None:
        self.check_returns(event.day_count * HOURS_PER_DAY + event.hour)

    # ── Helpers ──────────────────────────────────────────────────────

    def _now(self) -> int:
        return self.clock.absolute_hour() if self.clock is not None else 0

    def _reputation(self, faction_id: str) -> float:
        return self.factions.reputation(faction_id) if self.factions is not None else 0.0

    def _has_unlock(self, unlock: str) -> bool:
        return self.progression is not None and self.progression.has_unlock(unlock)

    def _good_value(self, good_id: str) -> int | None:
        if self.trade is None:
            return DEFAULT_GOOD_VALUE
        good = self.trade.get_good_info(good_id)
        return good.base_price if good is not None else None

    # ── Routes ───────────────────────────────────────────────────────

    def is_route_open(self, route: TradeRoute) -> bool:
        if route.unlock and self.progression is not None:
            if not self.progression.has_unlock(route.unlock):
                return False
        closed_below = float(tuning.get("routes", "closed_below", -20.0))
        return self._reputation(route.faction) >= closed_below

    def get_available_routes(self) -> list[TradeRoute]:
        return [r for r in self.routes.values() if self.is_route_open(r)]

    def get_route(self, route_id: str) -> TradeRoute | None:
        return self.routes.get(route_id)

    def voyage_hours(self, route: TradeRoute) -> int:
        """One-way sailing time with today's wind."""
        factor = self.wind.get_trade_route_difficulty(route.heading) if self.wind else 1.0
        return max(1, math.ceil(route.travel_hours * factor))

    def risk_for(self, route: TradeRoute) -> float:
        risk = route.base_risk
        rep = self._reputation(route.faction)
        for at_least, _, risk_change in STANDING_EFFECTS:
            if rep >= at_least:
                risk += risk_change
        if rep < 0:
            risk += DISLIKED_RISK
        lo = float(tuning.get("routes", "min_risk", 0.01))
        hi = float(tuning.get("routes", "max_risk", 0.5))
        return max(lo, min(hi, risk))

    def profit_multiplier(self, route: TradeRoute, goods: list[dict]) -> float:
        multiplier = route.profit_multiplier + affinity_bonus(route, goods)
        rep = self._reputation(route.faction)
        for at_least, bonus, _ in STANDING_EFFECTS:
            if rep >= at_least:
                multiplier += bonus
        return multiplier

    # ── Expeditions ──────────────────────────────────────────────────

    def expedition_count(self) -> int:
        return len(self._active)

    def max_expeditions(self) -> int:
        if self._has_unlock("bulk_trading"):
            return 5
        if self._has_unlock("trade_routes"):
            return 3
        return 1

    def can_start_expedition(self) -> bool:
        return self.expedition_count() < self.max_expeditions()

    def start_expedition(self, route_id: str, goods: list[dict]) -> ExpeditionResult:
        """Send ``[{"good_id": ..., "quantity": ...}, ...]`` down a route.

        Nothing leaves the pack unless the whole cargo can be loaded.
        """
        route = self.routes.get(route_id)
        if route is None:
            return ExpeditionResult(False, message="Unknown route.")
        if not self.is_route_open(route):
            return ExpeditionResult(False, message=f"The {route.name} is closed to you.")
        if not self.can_start_expedition():
            return ExpeditionResult(
                False, message=f"You already have {self.max_expeditions()} ships at sea.")
        if self.ledger is None:
            return ExpeditionResult(False, message="No cargo to send.")

        cargo = [{"good_id": g.get("good_id", ""), "quantity": int(g.get("quantity", 0))}
                 for g in goods if int(g.get("quantity", 0)) > 0]
        if not cargo:
            return ExpeditionResult(False, message="Nothing to send.")

        needed: dict[str, int] = {}
        for item in cargo:
            needed[item["good_id"]] = needed.get(item["good_id"], 0) + item["quantity"]
        investment = 0
        for good_id, quantity in needed.items():
            value = self._good_value(good_id)
            if value is None:
                return ExpeditionResult(False, message=f"Unknown good {good_id}.")
            if self.ledger.inventory.get(good_id, 0) < quantity:
                return ExpeditionResult(False, message=f"Not enough {good_id}.")
            investment += value * quantity

        for good_id, quantity in needed.items():
            self.ledger.remove_item(good_id, quantity)

        now = self._now()
        one_way = self.voyage_hours(route)
        self._id_counter += 1
        expedition = Expedition(
            id=f"expedition_{self._id_counter}",
            route_id=route.id,
            goods=cargo,
            departure_time=now,
            return_time=now + one_way * 2,
            investment=investment,
            expected_return=math.floor(investment * self.profit_multiplier(route, cargo)),
            wind_factor=one_way / route.travel_hours,
        )
        self._active[expedition.id] = expedition

        print(f"[ROUTE] {route.name} sails for {route.destination}: "
              f"{investment} gold of cargo, back in {one_way * 2} hours")
        self.bus.emit(ExpeditionStarted(expedition_id=expedition.id, route_id=route.id,
                                        return_time=expedition.return_time,
                                        expected_return=expedition.expected_return))
        return ExpeditionResult(True, expedition.id,
                                f"Goods sent via {route.name}. Returns in {one_way * 2} hours.")

    def check_returns(self, now: int) -> int:
        """Advance every voyage to *now*.  Returns how many were resolved."""
        resolved = 0
        for expedition in list(self._active.values()):
            if expedition.status == "outbound":
                halfway = (expedition.departure_time
                           + (expedition.return_time - expedition.departure_time) / 2)
                if now >= halfway:
                    expedition.status = "returning"
                    self.bus.emit(ExpeditionReturning(expedition_id=expedition.id,
                                                      route_id=expedition.route_id))
            if expedition.status == "returning" and now >= expedition.return_time:
                self._resolve(expedition)
                resolved += 1
        return resolved

    def _resolve(self, expedition: Expedition) -> None:
        del self._active[expedition.id]
        route = self.routes.get(expedition.route_id)
        if route is None:
            print(f"[ROUTE] Warning: expedition on unknown route '{expedition.route_id}'")
            return

        if self.rng.random() < self.risk_for(route):
            expedition.status = "lost"
            self.lost_count += 1
            print(f"[ROUTE] The {route.name} expedition was lost at sea "
                  f"({expedition.investment} gold of goods)")
            self.bus.emit(ExpeditionLost(expedition_id=expedition.id, route_id=route.id,
                                         investment=expedition.investment))
            return

        variance = 0.8 + self.rng.random() * 0.4
        expedition.actual_return = math.floor(expedition.expected_return * variance)
        expedition.status = "completed"
        self.completed_count += 1
        profit = expedition.actual_return - expedition.investment
        self.total_profit += profit
        if self.ledger is not None:
            self.ledger.earn(expedition.actual_return)
            self.bus.emit(GoldChange(gold=self.ledger.gold))
        print(f"[ROUTE] The {route.name} expedition returned: "
              f"{expedition.actual_return} gold ({profit:+d})")
        self.bus.emit(ExpeditionCompleted(expedition_id=expedition.id, route_id=route.id,
                                          investment=expedition.investment,
                                          actual_return=expedition.actual_return,
                                          profit=profit))

    # ── Queries (copies) ─────────────────────────────────────────────

    def get_active_expeditions(self) -> list[dict[str, Any]]:
        now = self._now()
        result = []
        for expedition in self._active.values():
            total = max(1, expedition.return_time - expedition.departure_time)
            elapsed = now - expedition.departure_time
            result.append({
                "expedition": copy.deepcopy(expedition),
                "route": self.routes.get(expedition.route_id),
                "time_remaining": max(0, expedition.return_time - now),
                "progress": max(0.0, min(100.0, elapsed / total * 100)),
            })
        return result

    def get_stats(self) -> dict[str, float]:
        closed = self.completed_count + self.lost_count
        return {
            "completed": self.completed_count,
            "lost": self.lost_count,
            "total_profit": self.total_profit,
            "success_rate": self.completed_count / closed * 100 if closed else 100.0,
            "active": self.expedition_count(),
        }

    # ── Persistence ──────────────────────────────────────────────────

    def get_save_data(self) -> dict[str, Any]:
        return {
            "active": [asdict(e) for e in self._active.values()],
            "completed_count": self.completed_count,
            "lost_count": self.lost_count,
            "total_profit": self.total_profit,
            "id_counter": self._id_counter,
        }

    def load_save_data(self, data: dict[str, Any]) -> None:
        self._active = {}
        for edata in data.get("active", []):
            if edata.get("route_id") not in self.routes:
                print(f"[ROUTE] Warning: dropping expedition on unknown route "
                      f"'{edata.get('route_id')}'")
                continue
            expedition = Expedition(**{k: copy.deepcopy(v) for k, v in edata.items()
                                       if k in _EXPEDITION_FIELDS})
            self._active[expedition.id] = expedition
        self.completed_count = int(data.get("completed_count", 0))
        self.lost_count = int(data.get("lost_count", 0))
        self.total_profit = int(data.get("total_profit", 0))
        self._id_counter = int(data.get("id_counter", 0))

    def __repr__(self) -> str:
        return (f"TradeRouteSystem(at_sea={len(self._active)}, "
                f"done={self.completed_count}, lost={self.lost_count})")
