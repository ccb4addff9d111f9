"""simulation/economy.py — The Ribeira market.

Authoritative price, supply and demand for every tradeable good.

    periodic update   random walk on supply/demand, price re-derived from
                      their ratio plus rarity-scaled noise
    NPC trading       roster traders buy/sell on their own schedule
    ship arrival      cargo floods supply and knocks prices down
    time of day       out-of-hours surcharge (compounds; caller applies
                      it once per open→closed change)

Player-facing prices pass through optional modifier sources (faction
reputation, NPC relationship, merchant rank).  A missing source is a
1.0 multiplier.  Unknown good ids degrade to price 0 or a failed
``TradeResult`` and are never raised.
"""

from __future__ import annotations
import copy
import math
import random
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any

from core import tuning
from core.constants import DATA_DIR, MIN_PRICE, MIN_DEMAND, MAX_DEMAND
from core.events import EventBus, MarketUpdate, NpcTrade
from simulation.providers import (
    ReputationSource, RelationshipSource, ProgressionSource,
)
from simulation.timers import IntervalTimer
from simulation.traders import (
    MarketTrader, decide, load_traders, trader_save_data, load_trader_save_data,
)


CATEGORIES = ("spice", "fabric", "luxury", "commodity")
TRENDS = ("rising", "falling", "stable")

# (minimum reputation, buy multiplier, sell multiplier), descending.
REPUTATION_BANDS: list[tuple[float, float, float]] = [
    (80, 0.80, 1.20),
    (50, 0.90, 1.10),
    (10, 0.95, 1.05),
    (-10, 1.00, 1.00),
]
UNFRIENDLY_BAND = (1.15, 0.85)     # above -50
HOSTILE_BAND = (1.30, 0.60)        # -50 and below

SELL_DISCOUNT = 0.75


def reputation_multipliers(reputation: float) -> tuple[float, float]:
    """(buy, sell) multipliers for a standing in [-100, 100]."""
    for minimum, buy, sell in REPUTATION_BANDS:
        if reputation >= minimum:
            return buy, sell
    if reputation > -50:
        return UNFRIENDLY_BAND
    return HOSTILE_BAND


def price_factor(supply: int, demand: int) -> float:
    if supply <= 0:
        return 2.0
    return max(0.5, min(2.0, demand / supply))


# ── Data ─────────────────────────────────────────────────────────────

@dataclass(frozen=True)
class TradeGood:
    id: str
    name: str
    base_price: int
    category: str = "commodity"
    origin: str = ""
    description: str = ""
    weight: int = 1
    rarity: int = 1


@dataclass
class MarketState:
    current_price: int
    supply: int
    demand: int
    trend: str = "stable"


@dataclass
class TradeResult:
    success: bool
    price: int
    message: str


def load_goods(path: str | Path | None = None) -> dict[str, TradeGood]:
    """Load the goods catalog, keyed by id.

    Expected format::

        [goods.good_pepper]
        name = "Black Pepper"
        base_price = 15
        category = "spice"
        rarity = 3
    """
    data = tuning.read_toml(DATA_DIR / "goods.toml" if path is None else path)
    if not data:
        return {}
    goods: dict[str, TradeGood] = {}
    for gid, gdata in data.get("goods", {}).items():
        if not isinstance(gdata, dict):
            continue
        category = gdata.get("category", "commodity")
        if category not in CATEGORIES:
            print(f"[TRADE] Warning: good '{gid}' has unknown category '{category}'")
            category = "commodity"
        goods[gid] = TradeGood(
            id=gid,
            name=gdata.get("name", gid),
            base_price=int(gdata.get("base_price", 1)),
            category=category,
            origin=gdata.get("origin", ""),
            description=gdata.get("description", ""),
            weight=int(gdata.get("weight", 1)),
            rarity=max(1, min(10, int(gdata.get("rarity", 1)))),
        )
    return goods


# ── Trade system ─────────────────────────────────────────────────────

class TradeSystem:
    """Market state for every good plus the NPC traders working it."""

    def __init__(self, bus: EventBus, rng: random.Random,
                 reputation: ReputationSource | None = None,
                 relationships: RelationshipSource | None = None,
                 progression: ProgressionSource | None = None,
                 goods: dict[str, TradeGood] | None = None,
                 traders: list[MarketTrader] | None = None) -> None:
        self.bus = bus
        self.rng = rng
        self.reputation = reputation
        self.relationships = relationships
        self.progression = progression

        self.goods: dict[str, TradeGood] = goods if goods is not None else load_goods()
        self.traders: list[MarketTrader] = traders if traders is not None else load_traders()
        self.history_length = int(tuning.get("trade", "history_length", 20))

        self._market: dict[str, MarketState] = {}
        self._history: dict[str, list[int]] = {}
        self._market_timer = IntervalTimer(tuning.get("trade", "update_interval_ms", 30_000))
        self._npc_timer = IntervalTimer(tuning.get("trade", "npc_interval_ms", 10_000))
        self._elapsed_ms = 0.0

        self._initialize_market()
        print(f"[TRADE] Market open with {len(self.goods)} goods, "
              f"{len(self.traders)} traders")

    def _initialize_market(self) -> None:
        for gid, good in self.goods.items():
            supply = math.floor(10 * (0.5 + self.rng.random()))
            demand = max(MIN_DEMAND, min(MAX_DEMAND,
                                         math.floor(10 * (0.5 + self.rng.random()))))
            price = max(MIN_PRICE, math.floor(good.base_price * price_factor(supply, demand)))
            self._market[gid] = MarketState(current_price=price, supply=supply,
                                            demand=demand)
            self._history[gid] = [price]

    # ── Frame hook ───────────────────────────────────────────────────

    def update(self, dt_ms: float, hour: int) -> None:
        """Advance the market and NPC timers by *dt_ms* of virtual time."""
        self._elapsed_ms += dt_ms
        for _ in range(self._market_timer.advance(dt_ms)):
            self.update_market()
        for _ in range(self._npc_timer.advance(dt_ms)):
            self.simulate_npc_trading(hour)

    # ── Pricing ──────────────────────────────────────────────────────

    def get_price(self, good_id: str, is_buying: bool,
                  vendor_faction: str | None = None,
                  vendor_npc_id: str | None = None) -> int:
        """Price the player pays (*is_buying*) or receives for one unit."""
        state = self._market.get(good_id)
        if state is None:
            return 0

        price = float(state.current_price)
        if vendor_faction and self.reputation is not None:
            buy, sell = reputation_multipliers(self.reputation.reputation(vendor_faction))
            price *= buy if is_buying else sell
        if vendor_npc_id and self.relationships is not None:
            if is_buying:
                price *= self.relationships.price_modifier(vendor_npc_id)
            else:
                price *= self.relationships.sell_modifier(vendor_npc_id)
        if self.progression is not None:
            if is_buying:
                price *= self.progression.price_modifier()
            else:
                price *= self.progression.sell_modifier()
        if not is_buying:
            price *= SELL_DISCOUNT
        return max(MIN_PRICE, math.floor(price))

    # ── Simple trades ────────────────────────────────────────────────

    def buy_good(self, good_id: str) -> TradeResult:
        state = self._market.get(good_id)
        good = self.goods.get(good_id)
        if state is None or good is None:
            return TradeResult(False, 0, "Unknown good.")
        if state.supply <= 0:
            return TradeResult(False, 0, f"No {good.name} available.")

        price = self.get_price(good_id, True)
        state.supply -= 1
        state.demand = min(MAX_DEMAND, state.demand + 1)
        return TradeResult(True, price, f"Purchased {good.name} for {price} gold.")

    def sell_good(self, good_id: str) -> TradeResult:
        state = self._market.get(good_id)
        good = self.goods.get(good_id)
        if state is None or good is None:
            return TradeResult(False, 0, "Unknown good.")

        price = self.get_price(good_id, False)
        state.supply += 1
        state.demand = max(MIN_DEMAND, state.demand - 1)
        return TradeResult(True, price, f"Sold {good.name} for {price} gold.")

    # ── Periodic market movement ─────────────────────────────────────

    def update_market(self) -> None:
        for gid, state in self._market.items():
            good = self.goods[gid]
            supply_change = math.floor((self.rng.random() - 0.5) * 4)
            demand_change = math.floor((self.rng.random() - 0.5) * 4)
            state.supply = max(0, state.supply + supply_change)
            state.demand = max(MIN_DEMAND, min(MAX_DEMAND, state.demand + demand_change))

            old_price = state.current_price
            volatility = 1 + (good.rarity / 100) * (self.rng.random() - 0.5)
            new_price = math.floor(good.base_price
                                   * price_factor(state.supply, state.demand)
                                   * volatility)
            state.current_price = max(MIN_PRICE, new_price)

            if state.current_price > old_price * 1.05:
                state.trend = "rising"
            elif state.current_price < old_price * 0.95:
                state.trend = "falling"
            else:
                state.trend = "stable"

            self._record_price(gid, state.current_price)

        self.bus.emit(MarketUpdate(summary=self.get_market_summary()))

    def _record_price(self, good_id: str, price: int) -> None:
        history = self._history.setdefault(good_id, [])
        history.append(price)
        if len(history) > self.history_length:
            del history[:len(history) - self.history_length]

    # ── NPC traders ──────────────────────────────────────────────────

    def simulate_npc_trading(self, hour: int) -> int:
        """One round of NPC trading.  Returns the number of trades made."""
        trades = 0
        min_gold = int(tuning.get("trade.npc", "min_gold", 10))
        skip_chance = float(tuning.get("trade.npc", "skip_chance", 0.6))

        for trader in self.traders:
            if not trader.is_active(hour) or trader.gold < min_gold:
                continue
            if self.rng.random() < skip_chance:
                continue

            candidates = [g for g in trader.preferred_goods
                          if g not in trader.avoided_goods
                          and g in self._market and self._market[g].supply > 2]
            if not candidates:
                continue
            good_id = self.rng.choice(candidates)
            state = self._market[good_id]

            decision = decide(trader, state.trend, state.supply,
                              state.current_price, self.rng)
            if decision is None or decision.quantity <= 0:
                continue

            if decision.action == "buy":
                unit = state.current_price
                total = unit * decision.quantity
                if total > trader.gold:
                    continue
                trader.gold -= total
                state.supply = max(0, state.supply - decision.quantity)
                state.demand = min(MAX_DEMAND, state.demand + decision.quantity)
            else:
                unit = max(MIN_PRICE, math.floor(state.current_price * SELL_DISCOUNT))
                trader.gold += unit * decision.quantity
                state.supply += decision.quantity
                state.demand = max(MIN_DEMAND, state.demand - decision.quantity)

            trader.last_action_ms = self._elapsed_ms
            trades += 1
            print(f"[NPC] {trader.name} {decision.action}s "
                  f"{decision.quantity}x {good_id} @ {unit}")
            self.bus.emit(NpcTrade(trader=trader.name, action=decision.action,
                                   good_id=good_id, quantity=decision.quantity,
                                   price=unit))
        return trades

    # ── External shocks ──────────────────────────────────────────────

    def ship_arrival(self, goods: list[dict]) -> None:
        """Unload cargo: ``[{"good_id": ..., "quantity": ...}, ...]``."""
        drop_per_unit = float(tuning.get("trade", "ship_price_drop_per_unit", 0.02))
        for cargo in goods:
            gid = cargo.get("good_id", "")
            qty = int(cargo.get("quantity", 0))
            state = self._market.get(gid)
            good = self.goods.get(gid)
            if state is None or good is None:
                print(f"[TRADE] Warning: ship cargo of unknown good '{gid}'")
                continue
            state.supply += qty
            drop = math.floor(state.current_price * qty * drop_per_unit)
            floor_price = max(MIN_PRICE, math.floor(good.base_price * 0.5))
            state.current_price = max(floor_price, state.current_price - drop)

    def apply_time_modifier(self, is_market_hours: bool) -> None:
        """Out-of-hours surcharge on every good.  Compounds on repeat calls."""
        if is_market_hours:
            return
        surcharge = float(tuning.get("trade", "after_hours_surcharge", 1.15))
        for state in self._market.values():
            state.current_price = max(MIN_PRICE, math.floor(state.current_price * surcharge))

    # ── Accessors (copies) ───────────────────────────────────────────

    def get_market_state(self, good_id: str) -> MarketState | None:
        state = self._market.get(good_id)
        return copy.copy(state) if state else None

    def get_good_info(self, good_id: str) -> TradeGood | None:
        return self.goods.get(good_id)

    def get_all_goods(self) -> list[TradeGood]:
        return list(self.goods.values())

    def get_price_history(self, good_id: str) -> list[int]:
        return list(self._history.get(good_id, []))

    def get_market_summary(self) -> list[dict[str, Any]]:
        return [
            {"good_id": gid, "name": self.goods[gid].name,
             "price": state.current_price, "trend": state.trend,
             "supply": state.supply, "demand": state.demand}
            for gid, state in self._market.items()
        ]

    def get_trader(self, trader_id: str) -> MarketTrader | None:
        for trader in self.traders:
            if trader.id == trader_id:
                return copy.deepcopy(trader)
        return None

    # ── Persistence ──────────────────────────────────────────────────

    def get_save_data(self) -> dict[str, Any]:
        return {
            "market": {gid: {"current_price": s.current_price, "supply": s.supply,
                             "demand": s.demand, "trend": s.trend}
                       for gid, s in self._market.items()},
            "history": {gid: list(h) for gid, h in self._history.items()},
            "traders": trader_save_data(self.traders),
        }

    def load_save_data(self, data: dict[str, Any]) -> None:
        for gid, entry in data.get("market", {}).items():
            if gid not in self.goods:
                print(f"[TRADE] Warning: save references unknown good '{gid}'")
                continue
            trend = entry.get("trend", "stable")
            self._market[gid] = MarketState(
                current_price=max(MIN_PRICE, int(entry.get("current_price", MIN_PRICE))),
                supply=max(0, int(entry.get("supply", 0))),
                demand=max(MIN_DEMAND, min(MAX_DEMAND, int(entry.get("demand", MIN_DEMAND)))),
                trend=trend if trend in TRENDS else "stable",
            )
        for gid, history in data.get("history", {}).items():
            if gid in self.goods:
                self._history[gid] = [int(p) for p in history][-self.history_length:]
        load_trader_save_data(self.traders, data.get("traders", {}))

    def __repr__(self) -> str:
        return f"TradeSystem(goods={len(self.goods)}, traders={len(self.traders)})"
