"""simulation/traders.py — The NPC merchants who trade alongside the player.

Each trader has a fixed roster entry (data/traders.toml), a purse, and a
personality that decides what to do with the one good picked for a
round.  The market itself applies the trade; this module only decides.
"""

from __future__ import annotations
import random
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any

from core import tuning
from core.constants import DATA_DIR


PERSONALITIES = ("aggressive", "cautious", "speculator")


@dataclass
class MarketTrader:
    id: str
    name: str
    faction: str = ""
    gold: int = 0
    personality: str = "cautious"
    preferred_goods: list[str] = field(default_factory=list)
    avoided_goods: list[str] = field(default_factory=list)
    active_hours: list[int] = field(default_factory=list)
    last_action_ms: float = 0.0

    def is_active(self, hour: int) -> bool:
        return hour in self.active_hours


@dataclass
class TradeDecision:
    action: str        # "buy" | "sell"
    quantity: int


def load_traders(path: str | Path | None = None) -> list[MarketTrader]:
    data = tuning.read_toml(DATA_DIR / "traders.toml" if path is None else path)
    if not data:
        return []
    traders: list[MarketTrader] = []
    for tid, tdata in data.get("traders", {}).items():
        if not isinstance(tdata, dict):
            continue
        personality = tdata.get("personality", "cautious")
        if personality not in PERSONALITIES:
            print(f"[NPC] Warning: trader '{tid}' has unknown personality "
                  f"'{personality}', using cautious")
            personality = "cautious"
        traders.append(MarketTrader(
            id=tid,
            name=tdata.get("name", tid),
            faction=tdata.get("faction", ""),
            gold=int(tdata.get("gold", 0)),
            personality=personality,
            preferred_goods=list(tdata.get("preferred_goods", [])),
            avoided_goods=list(tdata.get("avoided_goods", [])),
            active_hours=[int(h) for h in tdata.get("active_hours", [])],
        ))
    return traders


def decide(trader: MarketTrader, trend: str, supply: int, price: int,
           rng: random.Random) -> TradeDecision | None:
    """What *trader* does with one good at *price*, or None to pass."""
    if price <= 0:
        return None

    if trader.personality == "aggressive":
        if trader.gold >= price * 2:
            qty = min(3, supply, trader.gold // price)
            if qty > 0:
                return TradeDecision("buy", qty)
        return None

    if trader.personality == "cautious":
        if trend != "rising" and trader.gold >= price:
            return TradeDecision("buy", 1)
        return None

    # speculator: ride rising prices, dump into falling ones
    if trend == "rising" and trader.gold >= price * 2:
        return TradeDecision("buy", min(2, supply))
    if trend == "falling" and rng.random() < 0.5:
        return TradeDecision("sell", 1)
    return None


def trader_save_data(traders: list[MarketTrader]) -> dict[str, Any]:
    return {t.id: {"gold": t.gold, "last_action_ms": t.last_action_ms}
            for t in traders}


def load_trader_save_data(traders: list[MarketTrader],
                          data: dict[str, Any]) -> None:
    for trader in traders:
        entry = data.get(trader.id)
        if entry:
            trader.gold = int(entry.get("gold", trader.gold))
            trader.last_action_ms = float(entry.get("last_action_ms", 0.0))
