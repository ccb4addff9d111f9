"""simulation/factions.py — Faction standing.

Reputation per faction in [-100, 100], bucketed into six named levels.
Serves as the ``ReputationSource`` for vendor pricing and for gated
location transitions.
"""

from __future__ import annotations
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any

from core import tuning
from core.constants import DATA_DIR
from core.events import EventBus, ReputationChange
from simulation.providers import ReputationSource


# (level, minimum reputation), ascending
LEVELS: list[tuple[str, float]] = [
    ("hostile", -100),
    ("unfriendly", -50),
    ("neutral", -10),
    ("friendly", 10),
    ("honored", 50),
    ("champion", 80),
]
LEVEL_ORDER = [name for name, _ in LEVELS]


@dataclass
class Faction:
    id: str
    name: str = ""
    description: str = ""
    key_npcs: list[str] = field(default_factory=list)


def level_for(reputation: float) -> str:
    level = LEVELS[0][0]
    for name, minimum in LEVELS:
        if reputation >= minimum:
            level = name
    return level


def load_factions(path: str | Path | None = None) -> dict[str, Faction]:
    data = tuning.read_toml(DATA_DIR / "factions.toml" if path is None else path)
    if not data:
        return {}
    factions = {}
    for fid, fdata in data.get("factions", {}).items():
        if not isinstance(fdata, dict):
            continue
        factions[fid] = Faction(id=fid, name=fdata.get("name", fid),
                                description=fdata.get("description", ""),
                                key_npcs=list(fdata.get("key_npcs", [])))
    return factions


class FactionSystem(ReputationSource):
    def __init__(self, bus: EventBus,
                 factions: dict[str, Faction] | None = None) -> None:
        self.bus = bus
        self.factions = factions if factions is not None else load_factions()
        self._reputation: dict[str, float] = {fid: 0.0 for fid in self.factions}

    def reputation(self, faction_id: str) -> float:
        return self._reputation.get(faction_id, 0.0)

    def get_level(self, faction_id: str) -> str:
        return level_for(self.reputation(faction_id))

    def adjust_reputation(self, faction_id: str, amount: float) -> float:
        """Shift standing by *amount* (clamped).  Returns the new value."""
        if faction_id not in self._reputation:
            print(f"[FACTION] Warning: unknown faction '{faction_id}'")
            return 0.0
        previous = self._reputation[faction_id]
        current = max(-100.0, min(100.0, previous + amount))
        self._reputation[faction_id] = current
        self.bus.emit(ReputationChange(
            faction_id=faction_id,
            previous=previous,
            current=current,
            previous_level=level_for(previous),
            current_level=level_for(current),
            amount=amount,
        ))
        return current

    def set_reputation(self, faction_id: str, value: float) -> None:
        if faction_id not in self._reputation:
            print(f"[FACTION] Warning: unknown faction '{faction_id}'")
            return
        self._reputation[faction_id] = max(-100.0, min(100.0, value))

    def meets_requirement(self, faction_id: str, minimum_level: str | None = None,
                          minimum_reputation: float | None = None) -> bool:
        if minimum_reputation is not None and self.reputation(faction_id) < minimum_reputation:
            return False
        if minimum_level is not None:
            if LEVEL_ORDER.index(self.get_level(faction_id)) < LEVEL_ORDER.index(minimum_level):
                return False
        return True

    def get_npc_faction(self, npc_id: str) -> str | None:
        for faction in self.factions.values():
            if npc_id in faction.key_npcs:
                return faction.id
        return None

    def get_reputation_summary(self) -> list[dict[str, Any]]:
        return [
            {"faction_id": fid, "name": f.name,
             "reputation": self.reputation(fid), "level": self.get_level(fid)}
            for fid, f in self.factions.items()
        ]

    def get_save_data(self) -> dict[str, float]:
        return dict(self._reputation)

    def load_save_data(self, data: dict[str, float]) -> None:
        for fid, value in data.items():
            if fid in self._reputation:
                self._reputation[fid] = max(-100.0, min(100.0, float(value)))
