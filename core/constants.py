"""core/constants.py — Shared constants used across the codebase.

Centralises magic numbers so there's exactly one place to change them.

Unit System
-----------
    Position                tiles   (integer tile coordinates)
    Time (virtual)          ms      (accumulated frame ``dt``)
    Time (game)             min     (game-minutes, see below)
    Weather duration        h       (game-hours)
    Day counter             days    (30 days per month, 12 months)
    Angles                  °       (0 = East, 90 = South)
    Prices                  gold    (integers, never below 1)
    Normalised scalars      0..1    (intensity, wetness, wind speed)

Game Time Scale
~~~~~~~~~~~~~~~
``MS_PER_GAME_MINUTE`` virtual milliseconds = 1 game minute, so one
real second at time-scale 1 is one minute in Goa and a full day takes
24 real minutes.  Nothing in ``simulation/`` reads the wall clock; the
frame loop feeds ``dt`` and everything else accumulates it.
"""

from pathlib import Path

# ── Paths ───────────────────────────────────────────────────────────
ROOT_DIR = Path(__file__).resolve().parent.parent
DATA_DIR = ROOT_DIR / "data"

# ── Game-time conversion ────────────────────────────────────────────
MS_PER_GAME_MINUTE: float = 1000.0
MINUTES_PER_HOUR: int = 60
HOURS_PER_DAY: int = 24
DAYS_PER_MONTH: int = 30
MONTHS_PER_YEAR: int = 12

# Reference frame used by per-frame probabilities and smoothing
FRAME_MS: float = 1000.0 / 60.0     # ~16.67 ms

# ── Calendar start ──────────────────────────────────────────────────
START_DAY: int = 1
START_HOUR: int = 7                 # market opening

# ── Locations ───────────────────────────────────────────────────────
FALLBACK_SPAWN: tuple[int, int] = (15, 15)
START_LOCATION: str = "ribeira_grande"

# ── Market invariants ───────────────────────────────────────────────
MIN_PRICE: int = 1
MIN_DEMAND: int = 1
MAX_DEMAND: int = 20
