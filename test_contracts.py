"""test_contracts.py — Delivery contracts and trade-route expeditions.

Run: python test_contracts.py   (or: pytest test_contracts.py)
"""
from __future__ import annotations
import json, random, sys, traceback

from core.events import (
    EventBus, HourChange, GoodsSold,
    ContractsRefreshed, ContractAccepted, ContractProgress,
    ContractCompleted, ContractFailed,
    ExpeditionStarted, ExpeditionReturning, ExpeditionCompleted, ExpeditionLost,
)
from simulation.clock import TimeSystem
from simulation.contracts import ContractSystem, load_contract_templates
from simulation.economy import TradeSystem, load_goods
from simulation.factions import FactionSystem
from simulation.player import PlayerLedger
from simulation.progression import ProgressionSystem
from simulation.routes import TradeRouteSystem, affinity_bonus, load_routes
from simulation.session import GameSession
from simulation.wind import WindSystem


# ── Test harness ─────────────────────────────────────────────────────

_passed = 0
_failed = 0

def ok(label: str):
    global _passed
    _passed += 1
    print(f"  [PASS] {label}")

def fail(label: str, detail: str = ""):
    global _failed
    _failed += 1
    msg = f"  [FAIL] {label}"
    if detail:
        msg += f" — {detail}"
    print(msg)

def check(cond: bool, label: str, detail: str = ""):
    if cond:
        ok(label)
    else:
        fail(label, detail)
    assert cond, f"{label} {detail}".strip()


class FixedRandom(random.Random):
    """random() is pinned; shuffle/randint still draw from the seeded state."""

    def __init__(self, value: float):
        super().__init__(0)
        self.value = value

    def random(self):
        return self.value


CONTRACT_EVENTS = (ContractsRefreshed, ContractAccepted, ContractProgress,
                   ContractCompleted, ContractFailed)
ROUTE_EVENTS = (ExpeditionStarted, ExpeditionReturning, ExpeditionCompleted,
                ExpeditionLost)


def _board(only: str | None = None, gold: int = 100, rank_gold: int | None = None):
    """A contract board on day 1, 07:00 with a purse, factions and a rank."""
    bus = EventBus()
    seen: list = []
    for kind in CONTRACT_EVENTS:
        bus.subscribe(kind, seen.append)
    templates = load_contract_templates()
    if only is not None:
        templates = {only: templates[only]}
    progression = ProgressionSystem(bus)
    if rank_gold is not None:
        progression.check_rank(rank_gold)
    ledger = PlayerLedger(gold=gold)
    factions = FactionSystem(bus)
    board = ContractSystem(bus, random.Random(5), TimeSystem(bus, 1, 7),
                           ledger=ledger, factions=factions,
                           progression=progression, templates=templates)
    return board, bus, ledger, factions, seen


def _fleet(rng: random.Random | None = None, wind: WindSystem | None = None,
           progression: ProgressionSystem | None = None):
    """A route office on day 1, 07:00 with ten pepper in the pack."""
    bus = EventBus()
    seen: list = []
    for kind in ROUTE_EVENTS:
        bus.subscribe(kind, seen.append)
    ledger = PlayerLedger(gold=100, inventory={"good_pepper": 10, "good_silk": 2})
    factions = FactionSystem(bus)
    trade = TradeSystem(bus, random.Random(1))
    fleet = TradeRouteSystem(bus, rng or FixedRandom(0.99), TimeSystem(bus, 1, 7),
                             ledger=ledger, trade=trade, factions=factions,
                             progression=progression, wind=wind)
    return fleet, bus, ledger, factions, seen


# ═══════════════════════════════════════════════════════════════════════
#  Contract board
# ═══════════════════════════════════════════════════════════════════════

def test_contract_catalog():
    print("\n=== Contract catalog ===")
    templates = load_contract_templates()
    goods = load_goods()
    check(len(templates) == 7, "seven templates", str(len(templates)))
    check(all(t.good_id in goods for t in templates.values()), "every good is traded here")
    pepper = templates["crown_pepper"]
    check((pepper.quantity, pepper.deadline_hours, pepper.reward) == (5, 48, 100),
          "crown pepper: 5 within 48 hours for 100")
    check({t.difficulty for t in templates.values()} == {"easy", "medium", "hard"},
          "all three difficulties")


def test_board_grows_with_rank():
    print("\n=== Board size ===")
    board, _, _, _, seen = _board()
    check(len(board.get_available_contracts()) == 2, "a peddler sees two offers")
    check(isinstance(seen[-1], ContractsRefreshed) and len(seen[-1].contract_ids) == 2,
          "posting announced")
    trader, _, _, _, _ = _board(rank_gold=500)
    check(len(trader.get_available_contracts()) == 3, "contracts unlock: three")
    merchant, _, _, _, _ = _board(rank_gold=2000)
    check(len(merchant.get_available_contracts()) == 4, "special contracts: four")
    check(merchant.max_active() == 5, "merchants juggle five")
    master, _, _, _, _ = _board(rank_gold=10000)
    check(len(master.get_available_contracts()) == 5, "exclusive contracts: five")

    ids = [c.id for c in board.get_available_contracts()]
    board.refresh_contracts()
    check(not set(ids) & {c.id for c in board.get_available_contracts()},
          "reposted offers get fresh ids")
    check(board.total_offered == 4, "every posting counted")


def test_faction_standing_shapes_offers():
    print("\n=== Standing and offers ===")
    board, _, _, factions, _ = _board(only="crown_pepper")
    factions.set_reputation("crown", 60)
    check(board.refresh_contracts()[0].reward == 120, "honored clients pay 20% more")
    factions.set_reputation("crown", 30)
    check(board.refresh_contracts()[0].reward == 110, "friendly clients pay 10% more")
    factions.set_reputation("crown", 25)
    check(board.refresh_contracts()[0].reward == 100, "25 is not above 25")
    factions.set_reputation("crown", -31)
    check(board.refresh_contracts() == [], "hostile factions post nothing")


def test_refresh_hours():
    print("\n=== Refresh hours ===")
    board, bus, _, _, seen = _board()
    check(board.maybe_refresh(7), "morning posting")
    check(not board.maybe_refresh(7), "not twice in a row")
    check(not board.maybe_refresh(12), "noon is not a posting hour")
    check(board.maybe_refresh(17), "evening posting")
    seen.clear()
    bus.emit(HourChange(hour=7, day_count=2))
    check(any(isinstance(e, ContractsRefreshed) for e in seen), "HourChange drives the board")


def test_accept_and_deliver():
    print("\n=== Deliveries ===")
    board, bus, ledger, factions, seen = _board(only="crown_pepper")
    offer = board.get_available_contracts()[0]
    check(not board.accept_contract("contract_999"), "unknown offer refused")
    check(board.accept_contract(offer.id), "accepted")
    check(board.get_available_contracts() == [], "taken off the board")
    active = board.get_active_contracts()[0]
    check(active.status == "active" and active.expires_at == 31 + 48,
          "deadline counted from acceptance", str(active.expires_at))
    check(board.time_remaining(offer.id) == 48, "48 hours left")

    ledger.add_item("good_pepper", 3)
    check(board.deliver_goods(offer.id, 5) == 3, "only what is in the pack")
    check(not ledger.has_item("good_pepper"), "pack emptied")
    progress = board.get_contract_progress(offer.id)
    check(progress == {"delivered": 3, "required": 5, "percentage": 60.0},
          "progress tracked", str(progress))
    check(isinstance(seen[-1], ContractProgress), "progress announced")

    bus.emit(GoodsSold(good_id="good_cinnamon", quantity=4, earned=80))
    check(board.get_contract_progress(offer.id)["delivered"] == 3, "other goods ignored")
    bus.emit(GoodsSold(good_id="good_pepper", quantity=4, earned=60))
    check(board.get_active_contracts() == [], "a sale at the stalls finishes it")
    done = [e for e in seen if isinstance(e, ContractCompleted)]
    check(len(done) == 1 and done[0].reward == 100, "completion announced")
    check(ledger.gold == 200 and factions.reputation("crown") == 5, "paid and remembered")
    check(board.get_stats()["completed"] == 1 and board.get_stats()["success_rate"] == 100.0,
          "stats")
    check(board.deliver_goods(offer.id, 1) == 0, "closed contracts take nothing")


def test_missed_deadline_costs_gold_and_standing():
    print("\n=== Missed deadline ===")
    board, bus, ledger, factions, seen = _board(only="royal_cinnamon", gold=30)
    offer = board.get_available_contracts()[0]
    board.accept_contract(offer.id)
    expires = board.get_active_contracts()[0].expires_at
    check(expires == 31 + 36, "36-hour deadline")

    bus.emit(HourChange(hour=(expires - 1) % 24, day_count=(expires - 1) // 24))
    check(len(board.get_active_contracts()) == 1, "still open an hour before")
    bus.emit(HourChange(hour=expires % 24, day_count=expires // 24))
    check(board.get_active_contracts() == [], "failed on the hour")
    failed = [e for e in seen if isinstance(e, ContractFailed)]
    check(len(failed) == 1 and failed[0].reason == "expired" and failed[0].penalty == 50,
          "failure announced")
    check(ledger.gold == 0, "penalty takes what there is")
    check(factions.reputation("crown") == -5, "crown remembers")
    check(board.get_stats()["success_rate"] == 0.0, "nothing delivered")


def test_cancel_and_limit():
    print("\n=== Cancelling and the limit ===")
    board, _, _, factions, seen = _board()
    for _ in range(2):
        for offer in board.get_available_contracts():
            if len(board.get_active_contracts()) < 3:
                board.accept_contract(offer.id)
        board.refresh_contracts()
    check(len(board.get_active_contracts()) == 3, "three at once")
    spare = board.get_available_contracts()[0]
    check(not board.accept_contract(spare.id), "a fourth is refused")

    victim = board.get_active_contracts()[0]
    check(board.cancel_contract(victim.id), "cancelled")
    check(factions.reputation(victim.faction) == -2, "small loss of face")
    check(isinstance(seen[-1], ContractFailed) and seen[-1].reason == "cancelled",
          "cancellation announced")
    check(not board.cancel_contract(victim.id), "cannot cancel twice")
    check(board.accept_contract(spare.id), "room again")


def test_contract_copies_and_save():
    print("\n=== Contract save/load ===")
    board, _, _, _, _ = _board()
    offer = board.get_available_contracts()[0]
    board.accept_contract(offer.id)
    board.get_active_contracts()[0].delivered = 99
    board.get_available_contracts()[0].reward = 0
    check(board.get_active_contracts()[0].delivered == 0, "active list is a copy")
    check(board.get_available_contracts()[0].reward > 0, "offer list is a copy")

    data = json.loads(json.dumps(board.get_save_data()))
    other, _, _, _, _ = _board()
    other.load_save_data(data)
    check(other.get_save_data() == data, "board and orders restored")
    other.refresh_contracts()
    check(not {c.id for c in other.get_available_contracts()}
          & {c["id"] for c in data["offers"] + data["active"]}, "fresh ids do not collide")


# ═══════════════════════════════════════════════════════════════════════
#  Trade routes
# ═══════════════════════════════════════════════════════════════════════

def test_route_catalog():
    print("\n=== Route catalog ===")
    routes = load_routes()
    goods = load_goods()
    check(list(routes) == ["route_malabar", "route_hormuz", "route_malacca",
                           "route_macau", "route_africa"], "five routes")
    check(routes["route_macau"].unlock == "bulk_trading", "Macau wants bulk trading")
    check(all(g in goods for r in routes.values() for g in r.goods_affinity),
          "affinities name real goods")
    malabar = routes["route_malabar"]
    check(affinity_bonus(malabar, [{"good_id": "good_pepper", "quantity": 3},
                                   {"good_id": "good_silk", "quantity": 1}]) == 0.75 * 0.3,
          "affinity by share of the hold")
    check(affinity_bonus(malabar, []) == 0.0, "empty hold, no bonus")


def test_routes_open_with_rank_and_standing():
    print("\n=== Route access ===")
    peddler = ProgressionSystem(EventBus())
    fleet, _, _, factions, _ = _fleet(progression=peddler)
    check(fleet.get_available_routes() == [], "peddlers stay ashore")
    check(fleet.max_expeditions() == 1, "one ship for a peddler")
    check(not fleet.start_expedition("route_malabar",
                                     [{"good_id": "good_pepper", "quantity": 1}]).success,
          "locked route refused")

    peddler.check_rank(2000)
    check(len(fleet.get_available_routes()) == 5, "merchants sail everywhere")
    check(fleet.max_expeditions() == 5, "bulk trading: five ships")
    factions.set_reputation("crown", -30)
    open_ids = {r.id for r in fleet.get_available_routes()}
    check(open_ids == {"route_hormuz", "route_malacca"}, "the crown closes its lanes",
          str(open_ids))


def test_expedition_launch():
    print("\n=== Launch ===")
    fleet, _, ledger, _, seen = _fleet()
    check(not fleet.start_expedition("route_cathay", [{"good_id": "good_pepper",
                                                        "quantity": 1}]).success,
          "unknown route")
    check(not fleet.start_expedition("route_malabar", []).success, "empty hold")
    result = fleet.start_expedition("route_malabar", [{"good_id": "good_pepper", "quantity": 5},
                                                      {"good_id": "good_pepper", "quantity": 6}])
    check(not result.success and ledger.inventory["good_pepper"] == 10,
          "short cargo loads nothing", result.message)
    check(not fleet.start_expedition("route_malabar", [{"good_id": "saffron",
                                                         "quantity": 1}]).success,
          "unpriced goods refused")

    result = fleet.start_expedition("route_malabar", [{"good_id": "good_pepper", "quantity": 10}])
    check(result.success and result.expedition_id == "expedition_1", "sailed", result.message)
    check(not ledger.has_item("good_pepper"), "cargo left the pack")
    voyage = fleet.get_active_expeditions()[0]
    exp = voyage["expedition"]
    check(exp.investment == 150, "10 pepper at base 15")
    check(exp.expected_return == 240, "150 x (1.3 + 0.3 affinity)", str(exp.expected_return))
    check((exp.departure_time, exp.return_time) == (31, 55), "12 hours each way")
    check(voyage["time_remaining"] == 24 and voyage["progress"] == 0.0, "just left")
    check(isinstance(seen[-1], ExpeditionStarted) and seen[-1].return_time == 55,
          "launch announced")

    check(not fleet.can_start_expedition(), "one ship without a rank")
    check(not fleet.start_expedition("route_hormuz", [{"good_id": "good_silk",
                                                        "quantity": 1}]).success,
          "second ship refused")
    check(ledger.inventory["good_silk"] == 2, "silk stays home")


def test_wind_stretches_the_voyage():
    print("\n=== Wind ===")
    wind = WindSystem(EventBus())
    fleet, _, _, _, _ = _fleet(wind=wind)
    malabar = fleet.get_route("route_malabar")
    wind.wind.speed = 0.5
    wind.wind.direction = malabar.heading + 180
    check(fleet.voyage_hours(malabar) == 18, "headwind: 12 x 1.5")
    wind.wind.direction = malabar.heading
    check(fleet.voyage_hours(malabar) == 11, "tailwind: ceil(12 x 0.875)")

    fleet.start_expedition("route_malabar", [{"good_id": "good_pepper", "quantity": 1}])
    exp = fleet.get_active_expeditions()[0]["expedition"]
    check(exp.return_time == 31 + 22, "round trip at the sailing wind")
    check(abs(exp.wind_factor - 11 / 12) < 1e-9, "wind factor kept")


def test_expedition_returns_with_profit():
    print("\n=== Safe return ===")
    fleet, bus, ledger, _, seen = _fleet(FixedRandom(0.99))
    fleet.start_expedition("route_malabar", [{"good_id": "good_pepper", "quantity": 10}])
    check(fleet.check_returns(42) == 0, "still outbound")
    check(fleet.get_active_expeditions()[0]["expedition"].status == "outbound", "outbound")
    fleet.check_returns(43)
    check(fleet.get_active_expeditions()[0]["expedition"].status == "returning",
          "turned for home at the half-way hour")
    check(any(isinstance(e, ExpeditionReturning) for e in seen), "turn announced")

    bus.emit(HourChange(hour=7, day_count=2))
    check(fleet.expedition_count() == 0, "home on day 2, 07:00")
    done = [e for e in seen if isinstance(e, ExpeditionCompleted)]
    check(len(done) == 1 and done[0].actual_return == 287,
          "240 x 1.196 variance", str(done[0].actual_return if done else None))
    check(ledger.gold == 100 + 287, "gold paid out")
    stats = fleet.get_stats()
    check(stats["completed"] == 1 and stats["total_profit"] == 137, "profit recorded")


def test_expedition_lost_at_sea():
    print("\n=== Lost at sea ===")
    fleet, _, ledger, _, seen = _fleet(FixedRandom(0.01))
    fleet.start_expedition("route_malabar", [{"good_id": "good_pepper", "quantity": 4}])
    fleet.check_returns(200)
    lost = [e for e in seen if isinstance(e, ExpeditionLost)]
    check(len(lost) == 1 and lost[0].investment == 60, "loss announced")
    check(ledger.gold == 100 and fleet.get_stats()["lost"] == 1, "nothing comes back")
    check(fleet.get_stats()["success_rate"] == 0.0, "success rate")


def test_standing_moves_risk_and_profit():
    print("\n=== Standing at sea ===")
    fleet, _, _, factions, _ = _fleet()
    malabar = fleet.get_route("route_malabar")
    check(fleet.risk_for(malabar) == 0.05, "neutral: base risk")
    factions.set_reputation("crown", 85)
    check(fleet.risk_for(malabar) == 0.01, "champion: floored at 0.01")
    check(abs(fleet.profit_multiplier(malabar, []) - 1.5) < 1e-9, "champion: +0.2 profit")
    factions.set_reputation("crown", -10)
    check(abs(fleet.risk_for(malabar) - 0.15) < 1e-9, "disliked: +0.10 risk")
    macau = fleet.get_route("route_macau")
    factions.set_reputation("crown", -100)
    check(fleet.risk_for(macau) <= 0.5, "capped at 0.5")


def test_expedition_copies_and_save():
    print("\n=== Route save/load ===")
    fleet, _, _, _, _ = _fleet()
    fleet.start_expedition("route_malabar", [{"good_id": "good_pepper", "quantity": 3}])
    fleet.get_active_expeditions()[0]["expedition"].goods.clear()
    check(fleet.get_active_expeditions()[0]["expedition"].goods
          == [{"good_id": "good_pepper", "quantity": 3}], "expedition list is a copy")

    data = json.loads(json.dumps(fleet.get_save_data()))
    other, _, _, _, _ = _fleet()
    other.load_save_data(data)
    check(other.get_save_data() == data, "ships at sea restored")
    data["active"][0]["route_id"] = "route_atlantis"
    other.load_save_data(data)
    check(other.expedition_count() == 0, "unknown routes dropped")


# ═══════════════════════════════════════════════════════════════════════
#  Session
# ═══════════════════════════════════════════════════════════════════════

def test_session_wires_contracts_and_routes():
    print("\n=== Session wiring ===")
    session = GameSession(seed=12)
    check(len(session.contracts.get_available_contracts()) == 2, "board posted at start")
    check(session.routes.wind is session.wind, "voyages read the session wind")
    check(session.routes.get_available_routes() == [], "no routes for a new peddler")

    offer = next(c for c in session.contracts.get_available_contracts())
    session.contracts.accept_contract(offer.id)
    state = session.trade._market[offer.good_id]
    state.current_price, state.supply = 20, 5
    session.ledger.add_item(offer.good_id, 2)
    session.sell(offer.good_id, 2)
    check(session.contracts.get_contract_progress(offer.id)["delivered"] == 2,
          "stall sales count toward the contract")

    session.progression.check_rank(2000)
    check(len(session.routes.get_available_routes()) == 5, "rank opens the sea lanes")
    data = session.get_save_data()
    check("contracts" in data and "routes" in data, "both saved with the session")


# ═══════════════════════════════════════════════════════════════════════
#  MAIN
# ═══════════════════════════════════════════════════════════════════════

if __name__ == "__main__":
    sections = [(name, fn) for name, fn in list(globals().items())
                if name.startswith("test_") and callable(fn)]
    for name, fn in sections:
        try:
            fn()
        except Exception:
            _failed += 1
            print(f"\n  [CRASH] {name} — unhandled exception:")
            traceback.print_exc()

    print(f"\n{'=' * 60}")
    print(f"  Contract & Route Tests: {_passed} passed, {_failed} failed")
    print(f"{'=' * 60}")
    sys.exit(1 if _failed else 0)
