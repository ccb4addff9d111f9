"""simulation/session.py — One running game of Goa 1590.

The session owns everything: the event bus, the seeded RNG, the virtual
timer queue and every simulation system.  Nothing is a module-level
singleton, so two sessions never share state and a test can build as
many as it likes.

Wiring order matters.  Systems subscribe as they are constructed and
the bus delivers in subscription order, so weather sees ``NewDay``
before the harbour scheduler reads the season.

    session = GameSession(seed=1590)
    session.update(16.7, player_tile=(15, 15))
    session.buy("good_pepper", vendor_faction="crown")
"""

from __future__ import annotations
import math
import random
from typing import Any

from core import tuning
from core.constants import START_DAY, START_HOUR, START_LOCATION
from core.events import EventBus, GoldChange, GoodsSold, HourChange
from simulation.clock import TimeSystem
from simulation.contracts import ContractSystem
from simulation.economy import TradeSystem, TradeResult
from simulation.factions import FactionSystem
from simulation.player import PlayerLedger
from simulation.progression import ProgressionSystem
from simulation.providers import SessionPlayerQueries
from simulation.relationships import RelationshipSystem
from simulation.routes import TradeRouteSystem
from simulation.scheduler import EventScheduler
from simulation.timers import TimerQueue
from simulation.weather import WeatherSystem
from simulation.wind import WindSystem
from simulation.world import LocationGraph, WorldSystem, LOCK_TAG


class GameSession:
    def __init__(self, seed: int | None = None,
                 start_day: int = START_DAY, start_hour: int = START_HOUR,
                 graph: LocationGraph | None = None) -> None:
        self.seed = seed
        self.bus = EventBus()
        self.rng = random.Random(seed)
        self.timers = TimerQueue()

        self.clock = TimeSystem(self.bus, start_day, start_hour)
        self.factions = FactionSystem(self.bus)
        self.ledger = PlayerLedger(gold=int(tuning.get("player", "starting_gold", 100)))
        self.progression = ProgressionSystem(self.bus, self.ledger.gold)
        self.relationships = RelationshipSystem()

        # weather → wind → harbour events
        self.weather = WeatherSystem(self.bus, self.rng, self.timers)
        self.wind = WindSystem(self.bus)
        self.trade = TradeSystem(self.bus, self.rng,
                                 reputation=self.factions,
                                 relationships=self.relationships,
                                 progression=self.progression)
        self.events = EventScheduler(self.bus, self.rng, weather=self.weather,
                                     trade=self.trade, current_day=start_day)
        self.world = WorldSystem(
            self.bus, self.timers,
            graph if graph is not None else LocationGraph.from_toml(),
            SessionPlayerQueries(self.factions, self.ledger, self.clock),
        )
        self.contracts = ContractSystem(self.bus, self.rng, self.clock,
                                        ledger=self.ledger, factions=self.factions,
                                        progression=self.progression)
        self.routes = TradeRouteSystem(self.bus, self.rng, self.clock,
                                       ledger=self.ledger, trade=self.trade,
                                       factions=self.factions,
                                       progression=self.progression, wind=self.wind)

        self.weather.update_season(start_day)
        self.wind.set_season(self.weather.current_season)
        self.world.set_current_location(self.world.graph.start or START_LOCATION)

        self._market_was_open = self.clock.is_market_open()
        self.bus.subscribe(HourChange, self._on_hour_change)
        print(f"[SESSION] New game, seed={seed}, day {start_day} "
              f"{self.clock.formatted_time()}")

    # ── Frame ────────────────────────────────────────────────────────

    def update(self, dt_ms: float,
               player_tile: tuple[int, int] | None = None) -> None:
        """Advance everything by *dt_ms* virtual milliseconds."""
        minutes = self.clock.update(dt_ms)
        self.timers.advance(dt_ms)
        self.weather.update(dt_ms, game_minutes=minutes)
        self.wind.update(dt_ms)
        self.trade.update(dt_ms, self.clock.hour)
        if player_tile is not None:
            self.world.poll_position(*player_tile)

    def _on_hour_change(self, event: HourChange) -> None:
        # Surcharge lands once, on the hour the stalls close
        if self._market_was_open and not event.is_market_open:
            self.trade.apply_time_modifier(False)
        self._market_was_open = event.is_market_open

    # ── Player trades ────────────────────────────────────────────────

    def buy(self, good_id: str, quantity: int = 1,
            vendor_faction: str | None = None,
            vendor_npc_id: str | None = None) -> TradeResult:
        """Buy up to *quantity* units at the modified price.

        Stops early when supply or gold runs out; fails only if not a
        single unit changed hands.
        """
        good = self.trade.get_good_info(good_id)
        if good is None:
            return TradeResult(False, 0, "Unknown good.")

        bought = 0
        spent = 0
        reason = ""
        for _ in range(max(0, quantity)):
            state = self.trade.get_market_state(good_id)
            if state is None or state.supply <= 0:
                reason = f"No {good.name} available."
                break
            price = self.trade.get_price(good_id, True, vendor_faction, vendor_npc_id)
            if self.ledger.gold < price:
                reason = "Not enough gold."
                break
            if not self.trade.buy_good(good_id).success:
                reason = f"No {good.name} available."
                break
            self.ledger.spend(price)
            self.ledger.add_item(good_id)
            bought += 1
            spent += price

        if bought == 0:
            return TradeResult(False, 0, reason or "Nothing bought.")

        if vendor_npc_id:
            self.relationships.record_trade(vendor_npc_id, spent)
        self.progression.record_trade()
        self.bus.emit(GoldChange(gold=self.ledger.gold))
        print(f"[TRADE] Bought {bought}x {good_id} for {spent} gold")
        return TradeResult(True, spent, f"Purchased {bought} {good.name} for {spent} gold.")

    def sell(self, good_id: str, quantity: int = 1,
             vendor_faction: str | None = None,
             vendor_npc_id: str | None = None) -> TradeResult:
        good = self.trade.get_good_info(good_id)
        if good is None:
            return TradeResult(False, 0, "Unknown good.")

        count = min(max(0, quantity), self.ledger.inventory.get(good_id, 0))
        if count == 0:
            return TradeResult(False, 0, f"You have no {good.name} to sell.")

        earned = 0
        for _ in range(count):
            price = self.trade.get_price(good_id, False, vendor_faction, vendor_npc_id)
            self.trade.sell_good(good_id)
            self.ledger.remove_item(good_id)
            self.ledger.earn(price)
            earned += price

        if vendor_npc_id:
            self.relationships.record_trade(vendor_npc_id, earned)
        self.progression.record_trade(earned)
        self.bus.emit(GoldChange(gold=self.ledger.gold))
        self.bus.emit(GoodsSold(good_id=good_id, quantity=count, earned=earned))
        print(f"[TRADE] Sold {count}x {good_id} for {earned} gold")
        return TradeResult(True, earned, f"Sold {count} {good.name} for {earned} gold.")

    def sell_to_ship(self, good_id: str, quantity: int = 1) -> TradeResult:
        """Fill a departing captain's export order above market price."""
        good = self.trade.get_good_info(good_id)
        offer = self.events.best_demand_offer(good_id)
        if good is None or offer is None:
            return TradeResult(False, 0, "No captain is buying that.")

        wanted = min(max(0, quantity), self.ledger.inventory.get(good_id, 0))
        taken = self.events.fill_demand(offer.id, wanted)
        if taken == 0:
            return TradeResult(False, 0, f"You have no {good.name} to sell.")

        unit = max(1, math.floor(self.trade.get_price(good_id, False)
                                 * offer.data["demand_price"]))
        self.ledger.remove_item(good_id, taken)
        self.ledger.earn(unit * taken)
        self.progression.record_trade(unit * taken)
        self.bus.emit(GoldChange(gold=self.ledger.gold))
        print(f"[TRADE] Sold {taken}x {good_id} to a departing ship @ {unit}")
        return TradeResult(True, unit * taken,
                           f"The captain took {taken} {good.name} for {unit * taken} gold.")

    # ── Persistence ──────────────────────────────────────────────────

    def get_save_data(self) -> dict[str, Any]:
        return {
            "seed": self.seed,
            "clock": self.clock.get_save_data(),
            "weather": self.weather.get_save_data(),
            "wind": self.wind.get_save_data(),
            "trade": self.trade.get_save_data(),
            "events": self.events.get_save_data(),
            "world": self.world.get_save_data(),
            "contracts": self.contracts.get_save_data(),
            "routes": self.routes.get_save_data(),
            "factions": self.factions.get_save_data(),
            "progression": self.progression.get_save_data(),
            "relationships": self.relationships.get_save_data(),
            "player": self.ledger.get_save_data(),
        }

    def load_save_data(self, data: dict[str, Any]) -> None:
        self.clock.load_save_data(data.get("clock", {}))
        self.weather.load_save_data(data.get("weather", {}))
        self.wind.load_save_data(data.get("wind", {}))
        self.trade.load_save_data(data.get("trade", {}))
        self.events.load_save_data(data.get("events", {}))
        self.factions.load_save_data(data.get("factions", {}))
        self.progression.load_save_data(data.get("progression", {}))
        self.relationships.load_save_data(data.get("relationships", []))
        self.ledger.load_save_data(data.get("player", {}))
        self.contracts.load_save_data(data.get("contracts", {}))
        self.routes.load_save_data(data.get("routes", {}))

        self.timers.cancel_tag(LOCK_TAG)
        self.world.transition_in_progress = False
        self.world.load_save_data(data.get("world", {}))
        self._market_was_open = self.clock.is_market_open()
        print(f"[SESSION] Loaded day {self.clock.day_count} "
              f"{self.clock.formatted_time()}")

    def __repr__(self) -> str:
        return (f"GameSession(day={self.clock.day_count}, "
                f"{self.weather.current_season}/{self.weather.current_weather}, "
                f"at={self.world.current_location.id if self.world.current_location else None})")
