"""
main.py — Bootstrap

1. Load tuning
2. Create the app (which builds a fresh GameSession)
3. Overlay a save slot if one exists
4. Run, printing a status line every game hour
5. Save on exit
"""

import argparse

from core import tuning
from core.app import App
from core.events import ContractsRefreshed, HourChange, ShipArrived, WeatherChange
from core.save import restore_session, save_game_state


def main():
    parser = argparse.ArgumentParser(description="Goa 1590 headless simulation")
    parser.add_argument("--seed", type=int, default=None)
    parser.add_argument("--slot", type=int, default=0)
    parser.add_argument("--frames", type=int, default=None,
                        help="stop after this many frames")
    parser.add_argument("--speed", type=float, default=1.0,
                        help="multiplier on real frame time")
    parser.add_argument("--new", action="store_true",
                        help="ignore any existing save")
    args = parser.parse_args()

    # -- Tuning --
    tuning.load()

    # -- Session --
    app = App(seed=args.seed)
    session = app.session
    if not args.new and restore_session(session, args.slot):
        print(f"[MAIN] Resumed slot {args.slot}")

    # -- Console reporting --
    def on_hour(event: HourChange) -> None:
        prices = ", ".join(f"{s['good_id']} {s['price']}"
                           for s in session.trade.get_market_summary())
        print(f"[MAIN] Day {event.day_count} {event.hour:02d}:00 "
              f"{event.period} | {session.weather.current_season}/"
              f"{session.weather.current_weather} | {prices}")

    session.bus.subscribe(HourChange, on_hour)
    session.bus.subscribe(ShipArrived,
                          lambda e: print(f"[MAIN] Sail sighted: {e.ship_type}"))
    session.bus.subscribe(WeatherChange,
                          lambda e: print(f"[MAIN] Weather: {e.current}"))
    session.bus.subscribe(ContractsRefreshed,
                          lambda e: print(f"[MAIN] Contract board: {len(e.contract_ids)} offers"))

    # -- Run --
    app.run(frames=args.frames, time_scale=args.speed)
    save_game_state(session, args.slot)


if __name__ == "__main__":
    main()
