"""core/events.py — Typed, synchronous event bus.

Decouples systems that need to *signal* something from systems that
*react* to it.  The bus is owned by the ``GameSession`` and handed to
every system at construction::

    from core.events import EventBus, NewDay
    bus = EventBus()
    bus.subscribe(NewDay, on_new_day)
    bus.emit(NewDay(day_count=2))     # on_new_day has run when this returns

Design rules:
  - Events are plain dataclasses — no behaviour.  One class per channel.
  - ``emit()`` dispatches immediately, in subscription order.
  - Handlers may emit new events; those are dispatched before the
    outer ``emit()`` returns (depth-first).
  - A failing handler is reported and skipped; the others still run.
"""

from __future__ import annotations
from dataclasses import dataclass, field
from typing import Any, Callable
from collections import defaultdict


# ═══════════════════════════════════════════════════════════════════
#  Time
# ═══════════════════════════════════════════════════════════════════

@dataclass
class NewDay:
    """Midnight passed."""
    day_count: int = 1


@dataclass
class HourChange:
    hour: int = 0
    minute: int = 0
    period: str = ""
    day_count: int = 1
    is_market_open: bool = False


@dataclass
class MinuteChange:
    hour: int = 0
    minute: int = 0


@dataclass
class PeriodChange:
    """The named part of the day changed (e.g. Morning → Afternoon)."""
    previous: str = ""
    current: str = ""
    is_market_open: bool = False


# ═══════════════════════════════════════════════════════════════════
#  Climate
# ═══════════════════════════════════════════════════════════════════

@dataclass
class SeasonChange:
    previous: str = ""
    current: str = ""
    description: str = ""
    trade_modifier: float = 1.0


@dataclass
class WeatherChange:
    previous: str = ""
    current: str = ""
    intensity: float = 0.0
    season: str = ""


@dataclass
class WeatherTransitionComplete:
    """An in-flight weather blend reached its target."""
    state: str = ""
    intensity: float = 0.0


@dataclass
class LightningStrike:
    intensity: float = 1.0
    thunder_delay_ms: float = 0.0


@dataclass
class ThunderHeard:
    intensity: float = 1.0


@dataclass
class WindSeasonChange:
    season: str = ""
    base_direction: float = 0.0
    base_speed: float = 0.0


# ═══════════════════════════════════════════════════════════════════
#  World events (ships, cargo)
# ═══════════════════════════════════════════════════════════════════

@dataclass
class ShipArrived:
    event_id: str = ""
    ship_type: str = ""
    cargo: list[dict] = field(default_factory=list)
    captain_name: str = ""
    stay_duration: int = 0
    day: int = 0


@dataclass
class ShipDeparted:
    event_id: str = ""
    ship_type: str = ""
    captain_name: str = ""
    export_opportunity: list[dict] = field(default_factory=list)


@dataclass
class CargoUnloaded:
    goods: list[dict] = field(default_factory=list)
    price_impact: float = 1.0


@dataclass
class CargoDemand:
    """A departing captain wants to buy a good above market price."""
    event_id: str = ""
    good_id: str = ""
    demand_price: float = 1.0      # multiplier over the market price
    quantity: int = 0
    expires_at: int = 0


@dataclass
class WorldEventExpired:
    event_id: str = ""
    kind: str = ""
    day: int = 0


# ═══════════════════════════════════════════════════════════════════
#  Trade
# ═══════════════════════════════════════════════════════════════════

@dataclass
class MarketUpdate:
    summary: list[dict] = field(default_factory=list)


@dataclass
class NpcTrade:
    trader: str = ""
    action: str = ""               # "buy" or "sell"
    good_id: str = ""
    quantity: int = 0
    price: int = 0


@dataclass
class GoldChange:
    gold: int = 0


@dataclass
class ReputationChange:
    faction_id: str = ""
    previous: float = 0.0
    current: float = 0.0
    previous_level: str = ""
    current_level: str = ""
    amount: float = 0.0


@dataclass
class RankUp:
    previous_rank: int = 0
    new_rank: int = 0
    title: str = ""
    unlocks: list[str] = field(default_factory=list)


@dataclass
class GoodsSold:
    """The player sold goods at the stalls."""
    good_id: str = ""
    quantity: int = 0
    earned: int = 0


# ═══════════════════════════════════════════════════════════════════
#  Contracts and expeditions
# ═══════════════════════════════════════════════════════════════════

@dataclass
class ContractsRefreshed:
    contract_ids: list[str] = field(default_factory=list)


@dataclass
class ContractAccepted:
    contract_id: str = ""
    good_id: str = ""
    quantity: int = 0
    expires_at: int = 0            # absolute game hour


@dataclass
class ContractProgress:
    contract_id: str = ""
    delivered: int = 0
    required: int = 0


@dataclass
class ContractCompleted:
    contract_id: str = ""
    client_name: str = ""
    faction: str = ""
    reward: int = 0


@dataclass
class ContractFailed:
    contract_id: str = ""
    client_name: str = ""
    faction: str = ""
    penalty: int = 0
    reason: str = ""               # "expired" or "cancelled"


@dataclass
class ExpeditionStarted:
    expedition_id: str = ""
    route_id: str = ""
    return_time: int = 0           # absolute game hour
    expected_return: int = 0


@dataclass
class ExpeditionReturning:
    """The cargo reached its market and the ship turned for home."""
    expedition_id: str = ""
    route_id: str = ""


@dataclass
class ExpeditionCompleted:
    expedition_id: str = ""
    route_id: str = ""
    investment: int = 0
    actual_return: int = 0
    profit: int = 0


@dataclass
class ExpeditionLost:
    expedition_id: str = ""
    route_id: str = ""
    investment: int = 0


# ═══════════════════════════════════════════════════════════════════
#  Locations
# ═══════════════════════════════════════════════════════════════════

@dataclass
class LocationChange:
    previous_location: Any = None
    new_location: Any = None
    connection: Any = None         # None on direct placement
    spawn_point: tuple[int, int] = (15, 15)


@dataclass
class TransitionBlocked:
    connection: Any = None
    reason: str = ""


@dataclass
class TransitionZoneEntered:
    connection: Any = None
    display_name: str = ""


# ═══════════════════════════════════════════════════════════════════
#  Event Bus
# ═══════════════════════════════════════════════════════════════════

class EventBus:
    """Synchronous publish/subscribe bus keyed by event class."""

    def __init__(self):
        self._subs: dict[type, list[Callable]] = defaultdict(list)
        self._stats: dict[str, int] = defaultdict(int)

    # ── Public API ───────────────────────────────────────────────────

    def subscribe(self, event_type: type, handler: Callable) -> None:
        """Register *handler* to receive events of class *event_type*."""
        self._subs[event_type].append(handler)

    def unsubscribe(self, event_type: type, handler: Callable) -> bool:
        """Remove a handler.  Returns False if it was not registered."""
        handlers = self._subs.get(event_type, [])
        if handler in handlers:
            handlers.remove(handler)
            return True
        return False

    def emit(self, event) -> int:
        """Dispatch *event* to its subscribers right now.

        Returns the number of handlers that ran without raising.
        """
        name = type(event).__name__
        self._stats[name] += 1
        delivered = 0
        # Copy so handlers may (un)subscribe while we iterate
        for handler in list(self._subs.get(type(event), [])):
            try:
                handler(event)
                delivered += 1
            except Exception as exc:
                print(f"[EVENT] handler error for {name}: {exc}")
                import traceback; traceback.print_exc()
        return delivered

    def subscriber_count(self, event_type: type) -> int:
        return len(self._subs.get(event_type, []))

    def clear(self) -> None:
        """Drop every subscription."""
        self._subs.clear()

    def stats(self) -> dict[str, int]:
        """Return cumulative event counts by type."""
        return dict(self._stats)

    def __repr__(self) -> str:
        return f"EventBus(channels={len(self._subs)}, emitted={sum(self._stats.values())})"
