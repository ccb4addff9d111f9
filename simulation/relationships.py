"""simulation/relationships.py — What individual NPCs remember of the player.

Attitude in [-100, 100] per NPC, nudged by trades.  Friendlier vendors
charge less and pay more.
"""

from __future__ import annotations
from dataclasses import dataclass, asdict
from typing import Any

from simulation.providers import RelationshipSource


# (minimum attitude, buy multiplier, sell multiplier), descending
ATTITUDE_BANDS: list[tuple[float, float, float]] = [
    (80, 0.85, 1.15),      # trusted
    (50, 0.90, 1.10),      # friendly
    (20, 0.95, 1.05),
    (-20, 1.00, 1.00),     # neutral
    (-50, 1.10, 0.90),     # unfriendly
]
HOSTILE = (1.25, 0.75)


@dataclass
class NpcMemory:
    npc_id: str
    attitude: float = 0.0
    interactions: int = 0
    trades: int = 0
    trade_value: int = 0


class RelationshipSystem(RelationshipSource):
    def __init__(self) -> None:
        self._memories: dict[str, NpcMemory] = {}

    def _memory(self, npc_id: str) -> NpcMemory:
        mem = self._memories.get(npc_id)
        if mem is None:
            mem = NpcMemory(npc_id=npc_id)
            self._memories[npc_id] = mem
        return mem

    def attitude(self, npc_id: str) -> float:
        mem = self._memories.get(npc_id)
        return mem.attitude if mem else 0.0

    def adjust_attitude(self, npc_id: str, amount: float) -> float:
        mem = self._memory(npc_id)
        mem.attitude = max(-100.0, min(100.0, mem.attitude + amount))
        return mem.attitude

    def record_interaction(self, npc_id: str) -> None:
        self._memory(npc_id).interactions += 1

    def record_trade(self, npc_id: str, value: int) -> None:
        """Every completed deal warms the vendor up a little."""
        mem = self._memory(npc_id)
        mem.trades += 1
        mem.trade_value += value
        mem.attitude = min(100.0, mem.attitude + 1.0)

    def _band(self, npc_id: str) -> tuple[float, float]:
        att = self.attitude(npc_id)
        for minimum, buy, sell in ATTITUDE_BANDS:
            if att >= minimum:
                return buy, sell
        return HOSTILE

    def price_modifier(self, npc_id: str) -> float:
        return self._band(npc_id)[0]

    def sell_modifier(self, npc_id: str) -> float:
        return self._band(npc_id)[1]

    def has_met(self, npc_id: str) -> bool:
        return npc_id in self._memories

    def get_save_data(self) -> list[dict[str, Any]]:
        return [asdict(m) for m in self._memories.values()]

    def load_save_data(self, data: list[dict[str, Any]]) -> None:
        self._memories.clear()
        for entry in data:
            if "npc_id" in entry:
                self._memories[entry["npc_id"]] = NpcMemory(**entry)
