"""simulation/contracts.py — Delivery contracts.

Clients around the market post orders: bring N units of a good within
so many game hours.  The board is reposted at 07:00 and 17:00 from the
templates in ``data/contracts.toml``.  An accepted contract runs against
the clock on every ``HourChange`` and is filled either by selling the
good at the stalls (``GoodsSold``) or by handing it over directly with
``deliver_goods``.

Deadlines are absolute game hours (``TimeSystem.absolute_hour()``).

    contracts = ContractSystem(bus, rng, clock, ledger=ledger,
                               factions=factions, progression=progression)
    offer = contracts.get_available_contracts()[0]
    contracts.accept_contract(offer.id)
"""

from __future__ import annotations
import math
import random
from dataclasses import asdict, dataclass, fields, replace
from pathlib import Path
from typing import Any, TYPE_CHECKING

from core import tuning
from core.constants import DATA_DIR, HOURS_PER_DAY
from core.events import (
    EventBus, HourChange, GoodsSold, GoldChange,
    ContractsRefreshed, ContractAccepted, ContractProgress,
    ContractCompleted, ContractFailed,
)

if TYPE_CHECKING:
    from simulation.clock import TimeSystem
    from simulation.factions import FactionSystem
    from simulation.player import PlayerLedger
    from simulation.progression import ProgressionSystem


DIFFICULTIES = ("easy", "medium", "hard")

# (unlock, board size), checked in order; the last one held wins
BOARD_SIZES: list[tuple[str, int]] = [
    ("contracts", 3),
    ("special_contracts", 4),
    ("exclusive_contracts", 5),
]

# (reputation above, reward multiplier), best first
REWARD_BONUSES: list[tuple[float, float]] = [
    (50.0, 1.2),
    (25.0, 1.1),
]


@dataclass
class Contract:
    id: str
    client_id: str = ""
    client_name: str = ""
    faction: str = ""
    good_id: str = ""
    quantity: int = 1
    deadline_hours: int = 24
    reward: int = 0
    penalty: int = 0
    reputation_reward: float = 0.0
    reputation_penalty: float = 0.0
    difficulty: str = "easy"
    description: str = ""
    accepted_at: int = 0
    expires_at: int = 0
    delivered: int = 0
    status: str = "offered"     # offered | active | completed | failed

    @property
    def remaining(self) -> int:
        return max(0, self.quantity - self.delivered)


_CONTRACT_FIELDS = {f.name for f in fields(Contract)}


def _contract_from(data: dict[str, Any]) -> Contract:
    return Contract(**{k: v for k, v in data.items() if k in _CONTRACT_FIELDS})


def load_contract_templates(path: str | Path | None = None) -> dict[str, Contract]:
    data = tuning.read_toml(DATA_DIR / "contracts.toml" if path is None else path)
    if not data:
        return {}
    templates: dict[str, Contract] = {}
    for cid, cdata in data.get("contracts", {}).items():
        if not isinstance(cdata, dict):
            continue
        difficulty = cdata.get("difficulty", "easy")
        if difficulty not in DIFFICULTIES:
            print(f"[CONTRACT] Warning: template '{cid}' has unknown difficulty "
                  f"'{difficulty}', using easy")
            difficulty = "easy"
        templates[cid] = Contract(
            id=cid,
            client_id=cdata.get("client_id", cid),
            client_name=cdata.get("client_name", cid),
            faction=cdata.get("faction", ""),
            good_id=cdata.get("good_id", ""),
            quantity=max(1, int(cdata.get("quantity", 1))),
            deadline_hours=int(cdata.get("deadline_hours", 24)),
            reward=int(cdata.get("reward", 0)),
            penalty=int(cdata.get("penalty", 0)),
            reputation_reward=float(cdata.get("reputation_reward", 0)),
            reputation_penalty=float(cdata.get("reputation_penalty", 0)),
            difficulty=difficulty,
            description=cdata.get("description", ""),
        )
    return templates


class ContractSystem:
    """The contract board and the player's accepted orders."""

    def __init__(self, bus: EventBus, rng: random.Random,
                 clock: "TimeSystem | None" = None,
                 ledger: "PlayerLedger | None" = None,
                 factions: "FactionSystem | None" = None,
                 progression: "ProgressionSystem | None" = None,
                 templates: dict[str, Contract] | None = None) -> None:
        self.bus = bus
        self.rng = rng
        self.clock = clock
        self.ledger = ledger
        self.factions = factions
        self.progression = progression
        self.templates = templates if templates is not None else load_contract_templates()

        self._offers: list[Contract] = []
        self._active: dict[str, Contract] = {}
        self.completed_count = 0
        self.failed_count = 0
        self.total_offered = 0
        self._id_counter = 0
        self._last_refresh_hour: int | None = None

        bus.subscribe(HourChange, self._on_hour_change)
        bus.subscribe(GoodsSold, self._on_goods_sold)
        self.refresh_contracts()

    # ── Event handlers ───────────────────────────────────────────────

    def _on_hour_change(self, event: HourChange) -> None:
        self.check_deadlines(event.day_count * HOURS_PER_DAY + event.hour)
        self.maybe_refresh(event.hour)

    def _on_goods_sold(self, event: GoodsSold) -> None:
        left = event.quantity
        for contract in list(self._active.values()):
            if left <= 0:
                break
            if contract.good_id != event.good_id:
                continue
            taken = min(left, contract.remaining)
            left -= taken
            self._record_delivery(contract, taken)

    # ── Board ────────────────────────────────────────────────────────

    def _now(self) -> int:
        return self.clock.absolute_hour() if self.clock is not None else 0

    def _reputation(self, faction_id: str) -> float:
        return self.factions.reputation(faction_id) if self.factions is not None else 0.0

    def _has_unlock(self, unlock: str) -> bool:
        return self.progression is not None and self.progression.has_unlock(unlock)

    def offer_count(self) -> int:
        count = int(tuning.get("contracts", "base_offers", 2))
        for unlock, size in BOARD_SIZES:
            if self._has_unlock(unlock):
                count = size
        return count

    def max_active(self) -> int:
        if self._has_unlock("special_contracts"):
            return 5
        return int(tuning.get("contracts", "max_active", 3))

    def maybe_refresh(self, hour: int) -> bool:
        hours = tuning.get("contracts", "refresh_hours", [7, 17])
        if hour not in hours or hour == self._last_refresh_hour:
            return False
        self._last_refresh_hour = hour
        self.refresh_contracts()
        return True

    def refresh_contracts(self) -> list[Contract]:
        """Repost the board.  Accepted contracts are untouched."""
        cutoff = float(tuning.get("contracts", "hostile_cutoff", -30.0))
        pool = list(self.templates.values())
        self.rng.shuffle(pool)

        self._offers = []
        for template in pool[:self.offer_count()]:
            rep = self._reputation(template.faction)
            if rep < cutoff:
                continue
            reward = template.reward
            for above, multiplier in REWARD_BONUSES:
                if rep > above:
                    reward = math.floor(reward * multiplier)
                    break
            self._id_counter += 1
            self._offers.append(replace(template, id=f"contract_{self._id_counter}",
                                        reward=reward, status="offered"))
            self.total_offered += 1

        print(f"[CONTRACT] {len(self._offers)} contracts posted")
        self.bus.emit(ContractsRefreshed(contract_ids=[c.id for c in self._offers]))
        return self.get_available_contracts()

    # ── Player actions ───────────────────────────────────────────────

    def accept_contract(self, contract_id: str) -> bool:
        offer = next((c for c in self._offers if c.id == contract_id), None)
        if offer is None:
            print(f"[CONTRACT] Warning: no offer '{contract_id}'")
            return False
        limit = self.max_active()
        if len(self._active) >= limit:
            print(f"[CONTRACT] Too many contracts: at most {limit} at once")
            return False

        now = self._now()
        contract = replace(offer, accepted_at=now, expires_at=now + offer.deadline_hours,
                           delivered=0, status="active")
        self._active[contract.id] = contract
        self._offers = [c for c in self._offers if c.id != contract_id]

        print(f"[CONTRACT] Accepted: {contract.quantity}x {contract.good_id} for "
              f"{contract.client_name} within {contract.deadline_hours} hours")
        self.bus.emit(ContractAccepted(contract_id=contract.id, good_id=contract.good_id,
                                       quantity=contract.quantity,
                                       expires_at=contract.expires_at))
        return True

    def deliver_goods(self, contract_id: str, quantity: int) -> int:
        """Hand goods from the pack to a client.  Returns units delivered.

        Without a ledger the delivery is taken on trust.
        """
        contract = self._active.get(contract_id)
        if contract is None or quantity <= 0:
            return 0
        wanted = min(quantity, contract.remaining)
        if self.ledger is not None:
            wanted = self.ledger.remove_item(contract.good_id, wanted)
        if wanted > 0:
            self._record_delivery(contract, wanted)
        return wanted

    def cancel_contract(self, contract_id: str) -> bool:
        contract = self._active.get(contract_id)
        if contract is None:
            return False
        if self.factions is not None:
            self.factions.adjust_reputation(
                contract.faction, float(tuning.get("contracts", "cancel_reputation", -2.0)))
        self._close(contract, "failed")
        self.failed_count += 1
        print(f"[CONTRACT] Cancelled: {contract.client_name}")
        self.bus.emit(ContractFailed(contract_id=contract.id,
                                     client_name=contract.client_name,
                                     faction=contract.faction, penalty=0,
                                     reason="cancelled"))
        return True

    # ── Resolution ───────────────────────────────────────────────────

    def _record_delivery(self, contract: Contract, quantity: int) -> None:
        if quantity <= 0:
            return
        contract.delivered += quantity
        if contract.remaining == 0:
            self._complete(contract)
        else:
            self.bus.emit(ContractProgress(contract_id=contract.id,
                                           delivered=contract.delivered,
                                           required=contract.quantity))

    def _close(self, contract: Contract, status: str) -> None:
        contract.status = status
        self._active.pop(contract.id, None)

    def _complete(self, contract: Contract) -> None:
        self._close(contract, "completed")
        self.completed_count += 1
        if self.ledger is not None:
            self.ledger.earn(contract.reward)
            self.bus.emit(GoldChange(gold=self.ledger.gold))
        if self.factions is not None and contract.reputation_reward > 0:
            self.factions.adjust_reputation(contract.faction, contract.reputation_reward)
        print(f"[CONTRACT] Completed for {contract.client_name}: +{contract.reward} gold")
        self.bus.emit(ContractCompleted(contract_id=contract.id,
                                        client_name=contract.client_name,
                                        faction=contract.faction,
                                        reward=contract.reward))

    def _fail(self, contract: Contract) -> None:
        self._close(contract, "failed")
        self.failed_count += 1
        if self.ledger is not None and contract.penalty > 0:
            self.ledger.spend(min(contract.penalty, self.ledger.gold))
            self.bus.emit(GoldChange(gold=self.ledger.gold))
        if self.factions is not None and contract.reputation_penalty != 0:
            self.factions.adjust_reputation(contract.faction, contract.reputation_penalty)
        print(f"[CONTRACT] Failed: {contract.client_name} is disappointed "
              f"(-{contract.penalty} gold)")
        self.bus.emit(ContractFailed(contract_id=contract.id,
                                     client_name=contract.client_name,
                                     faction=contract.faction,
                                     penalty=contract.penalty, reason="expired"))

    def check_deadlines(self, now: int) -> int:
        """Fail every active contract whose deadline has come.  Returns count."""
        due = [c for c in self._active.values() if now >= c.expires_at]
        for contract in due:
            self._fail(contract)
        return len(due)

    # ── Queries (copies) ─────────────────────────────────────────────

    def get_available_contracts(self) -> list[Contract]:
        return [replace(c) for c in self._offers]

    def get_active_contracts(self) -> list[Contract]:
        return [replace(c) for c in self._active.values()]

    def get_contract(self, contract_id: str) -> Contract | None:
        contract = self._active.get(contract_id)
        return replace(contract) if contract is not None else None

    def time_remaining(self, contract_id: str) -> int:
        contract = self._active.get(contract_id)
        if contract is None:
            return 0
        return max(0, contract.expires_at - self._now())

    def get_contract_progress(self, contract_id: str) -> dict[str, float] | None:
        contract = self._active.get(contract_id)
        if contract is None:
            return None
        return {"delivered": contract.delivered, "required": contract.quantity,
                "percentage": contract.delivered / contract.quantity * 100}

    def get_stats(self) -> dict[str, float]:
        closed = self.completed_count + self.failed_count
        return {
            "completed": self.completed_count,
            "failed": self.failed_count,
            "total_offered": self.total_offered,
            "success_rate": self.completed_count / closed * 100 if closed else 100.0,
        }

    # ── Persistence ──────────────────────────────────────────────────

    def get_save_data(self) -> dict[str, Any]:
        return {
            "offers": [asdict(c) for c in self._offers],
            "active": [asdict(c) for c in self._active.values()],
            "completed_count": self.completed_count,
            "failed_count": self.failed_count,
            "total_offered": self.total_offered,
            "id_counter": self._id_counter,
            "last_refresh_hour": self._last_refresh_hour,
        }

    def load_save_data(self, data: dict[str, Any]) -> None:
        self._offers = [_contract_from(c) for c in data.get("offers", [])]
        self._active = {}
        for cdata in data.get("active", []):
            contract = _contract_from(cdata)
            self._active[contract.id] = contract
        self.completed_count = int(data.get("completed_count", 0))
        self.failed_count = int(data.get("failed_count", 0))
        self.total_offered = int(data.get("total_offered", 0))
        self._id_counter = int(data.get("id_counter", 0))
        last = data.get("last_refresh_hour")
        self._last_refresh_hour = int(last) if last is not None else None

    def __repr__(self) -> str:
        return (f"ContractSystem(offers={len(self._offers)}, active={len(self._active)}, "
                f"done={self.completed_count}, failed={self.failed_count})")
