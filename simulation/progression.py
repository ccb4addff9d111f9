"""simulation/progression.py — Merchant rank.

Rank follows the *highest* purse ever held, so a bad week never costs a
title.  Each rank shaves the buy price and sweetens the sell price.
"""

from __future__ import annotations
from dataclasses import dataclass, field
from typing import Any

from core.events import EventBus, GoldChange, RankUp
from simulation.providers import ProgressionSource


@dataclass(frozen=True)
class Rank:
    name: str
    title: str
    gold_threshold: int
    carry_capacity: int
    price_modifier: float
    sell_modifier: float
    unlocks: tuple[str, ...] = field(default_factory=tuple)


RANKS: list[Rank] = [
    Rank("Peddler", "Humble Peddler", 0, 20, 1.0, 1.0),
    Rank("Trader", "Licensed Trader", 500, 30, 0.95, 1.05,
         ("contracts", "warehouse_access")),
    Rank("Merchant", "Respected Merchant", 2000, 50, 0.90, 1.10,
         ("trade_routes", "bulk_trading", "special_contracts")),
    Rank("Master", "Master Merchant", 10000, 100, 0.85, 1.15,
         ("luxury_goods", "exclusive_contracts", "price_information")),
    Rank("Magnate", "Trade Magnate", 50000, 200, 0.80, 1.20,
         ("win_condition", "crown_audience", "monopoly_rights")),
]


def rank_for_gold(gold: int) -> int:
    for index in range(len(RANKS) - 1, -1, -1):
        if gold >= RANKS[index].gold_threshold:
            return index
    return 0


class ProgressionSystem(ProgressionSource):
    def __init__(self, bus: EventBus, starting_gold: int = 100) -> None:
        self.bus = bus
        self.current_rank = 0
        self.highest_gold = starting_gold
        self.total_trades = 0
        self.total_earned = 0
        bus.subscribe(GoldChange, self._on_gold_change)

    def _on_gold_change(self, event: GoldChange) -> None:
        self.check_rank(event.gold)

    def check_rank(self, gold: int) -> bool:
        """Record *gold*; returns True if that earned a new rank."""
        self.highest_gold = max(self.highest_gold, gold)
        new_rank = rank_for_gold(self.highest_gold)
        if new_rank <= self.current_rank:
            return False
        previous = self.current_rank
        self.current_rank = new_rank
        rank = RANKS[new_rank]
        print(f"[RANK] Promoted to {rank.title}")
        self.bus.emit(RankUp(previous_rank=previous, new_rank=new_rank,
                             title=rank.title, unlocks=list(rank.unlocks)))
        return True

    def record_trade(self, earned: int = 0) -> None:
        self.total_trades += 1
        self.total_earned += max(0, earned)

    @property
    def rank(self) -> Rank:
        return RANKS[self.current_rank]

    def price_modifier(self) -> float:
        return self.rank.price_modifier

    def sell_modifier(self) -> float:
        return self.rank.sell_modifier

    def has_unlock(self, unlock: str) -> bool:
        return any(unlock in r.unlocks for r in RANKS[:self.current_rank + 1])

    def progress_to_next(self) -> dict[str, float] | None:
        if self.current_rank + 1 >= len(RANKS):
            return None
        lo = self.rank.gold_threshold
        hi = RANKS[self.current_rank + 1].gold_threshold
        pct = (self.highest_gold - lo) / (hi - lo) * 100
        return {"current": self.highest_gold, "required": hi,
                "percentage": max(0.0, min(100.0, pct))}

    def get_save_data(self) -> dict[str, Any]:
        return {
            "current_rank": self.current_rank,
            "highest_gold": self.highest_gold,
            "total_trades": self.total_trades,
            "total_earned": self.total_earned,
        }

    def load_save_data(self, data: dict[str, Any]) -> None:
        self.current_rank = max(0, min(len(RANKS) - 1, int(data.get("current_rank", 0))))
        self.highest_gold = int(data.get("highest_gold", 100))
        self.total_trades = int(data.get("total_trades", 0))
        self.total_earned = int(data.get("total_earned", 0))
