"""simulation/providers.py — Capability interfaces between systems.

The trade engine and the location graph need a few facts they do not
own (faction standing, NPC attitude, merchant rank, purse, clock).
They depend on these small interfaces instead of on concrete systems;
``None`` / ``NeutralPlayerQueries`` stand for "no such system", which
means a 1.0 price multiplier, reputation 0, gold 0, no items and noon.
"""

from __future__ import annotations
from abc import ABC, abstractmethod
from typing import TYPE_CHECKING

if TYPE_CHECKING:
    from simulation.clock import TimeSystem
    from simulation.factions import FactionSystem
    from simulation.player import PlayerLedger


class ReputationSource(ABC):
    @abstractmethod
    def reputation(self, faction_id: str) -> float:
        """Standing with *faction_id* in [-100, 100]."""


class RelationshipSource(ABC):
    @abstractmethod
    def price_modifier(self, npc_id: str) -> float:
        """Multiplier on what the player pays this NPC."""

    @abstractmethod
    def sell_modifier(self, npc_id: str) -> float:
        """Multiplier on what this NPC pays the player."""


class ProgressionSource(ABC):
    @abstractmethod
    def price_modifier(self) -> float: ...

    @abstractmethod
    def sell_modifier(self) -> float: ...


class PlayerQueries(ABC):
    """What a transition requirement may ask about the player."""

    @abstractmethod
    def reputation(self, faction_id: str) -> float: ...

    @abstractmethod
    def has_item(self, item_id: str) -> bool: ...

    @abstractmethod
    def gold(self) -> int: ...

    @abstractmethod
    def hour(self) -> int: ...


class NeutralPlayerQueries(PlayerQueries):
    """Answers used when nothing is wired in."""

    def reputation(self, faction_id: str) -> float:
        return 0.0

    def has_item(self, item_id: str) -> bool:
        return False

    def gold(self) -> int:
        return 0

    def hour(self) -> int:
        return 12


class SessionPlayerQueries(PlayerQueries):
    """Live answers backed by the session's own systems.

    Any collaborator left as ``None`` falls back to the neutral value.
    """

    def __init__(self, factions: "FactionSystem | None" = None,
                 ledger: "PlayerLedger | None" = None,
                 clock: "TimeSystem | None" = None) -> None:
        self.factions = factions
        self.ledger = ledger
        self.clock = clock
        self._neutral = NeutralPlayerQueries()

    def reputation(self, faction_id: str) -> float:
        if self.factions is None:
            return self._neutral.reputation(faction_id)
        return self.factions.reputation(faction_id)

    def has_item(self, item_id: str) -> bool:
        if self.ledger is None:
            return self._neutral.has_item(item_id)
        return self.ledger.has_item(item_id)

    def gold(self) -> int:
        if self.ledger is None:
            return self._neutral.gold()
        return self.ledger.gold

    def hour(self) -> int:
        if self.clock is None:
            return self._neutral.hour()
        return self.clock.hour
