"""simulation/player.py — The player's purse and pack."""

from __future__ import annotations
from dataclasses import dataclass, field
from typing import Any


@dataclass
class PlayerLedger:
    gold: int = 100
    inventory: dict[str, int] = field(default_factory=dict)

    def has_item(self, item_id: str) -> bool:
        return self.inventory.get(item_id, 0) > 0

    def add_item(self, item_id: str, count: int = 1) -> None:
        self.inventory[item_id] = self.inventory.get(item_id, 0) + count

    def remove_item(self, item_id: str, count: int = 1) -> int:
        """Take up to *count*; returns how many were actually removed."""
        have = self.inventory.get(item_id, 0)
        actual = min(have, count)
        if actual <= 0:
            return 0
        if have - actual <= 0:
            del self.inventory[item_id]
        else:
            self.inventory[item_id] = have - actual
        return actual

    def spend(self, amount: int) -> bool:
        if amount > self.gold:
            return False
        self.gold -= amount
        return True

    def earn(self, amount: int) -> None:
        self.gold += amount

    def get_save_data(self) -> dict[str, Any]:
        return {"gold": self.gold, "inventory": dict(self.inventory)}

    def load_save_data(self, data: dict[str, Any]) -> None:
        self.gold = int(data.get("gold", 100))
        self.inventory = {k: int(v) for k, v in data.get("inventory", {}).items()}
