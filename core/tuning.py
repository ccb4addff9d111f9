"""core/tuning.py — Data-driven tuning constants.

Simulation numbers (market intervals, arrival penalties, wetness rates,
transition timings) live in ``data/tuning.toml`` and are loaded once at
startup.  Any system can read a value with::

    from core import tuning
    interval = tuning.get("trade", "update_interval_ms", 30000)

Every call site passes its own default, so a missing file simply means
"use the built-in numbers".  Call ``reload()`` to re-read the file.

Catalog files (goods, ships, seasons, locations) are parsed with
``read_toml()`` so there is exactly one TOML backend in the project.
"""

from __future__ import annotations
from pathlib import Path

try:
    import tomllib                         # Python 3.11+
except ModuleNotFoundError:
    try:
        import tomli as tomllib            # pip install tomli
    except ModuleNotFoundError:
        tomllib = None                     # type: ignore[assignment]

from core.constants import DATA_DIR


_data: dict = {}
_path: Path | None = None


def read_toml(path: str | Path) -> dict | None:
    """Parse a TOML file.  Returns None if it is missing or unreadable."""
    path = Path(path)
    if not path.exists():
        print(f"[TUNING] {path} not found")
        return None
    if tomllib is None:
        print("[TUNING] No TOML parser available (need Python 3.11+ or `pip install tomli`)")
        return None
    with open(path, "rb") as f:
        return tomllib.load(f)


def load(path: str | Path | None = None) -> None:
    """Load (or reload) tuning constants from *path*.

    If *path* is ``None``, default to ``data/tuning.toml`` at the
    project root.
    """
    global _data, _path

    path = DATA_DIR / "tuning.toml" if path is None else Path(path)
    _path = path

    loaded = read_toml(path)
    if loaded is None:
        print("[TUNING] using built-in defaults")
        _data = {}
        return

    _data = loaded
    count = _count_values(_data)
    print(f"[TUNING] Loaded {count} values from {path}")


def reload() -> None:
    """Re-read the tuning file from disk."""
    load(_path)


def _table(section_path: str) -> dict | None:
    """Walk ``"weather.wetness"`` down to ``[weather.wetness]``, or None."""
    node = _data
    for part in section_path.split("."):
        node = node.get(part) if isinstance(node, dict) else None
    return node if isinstance(node, dict) else None


def get(section: str, key: str, default=None):
    """Read a tuning value.

    *section* uses dot-notation to traverse nested tables, e.g.
    ``"events.monsoon"`` looks up ``[events.monsoon]``.

    >>> get("trade", "history_length", 20)
    20
    """
    table = _table(section)
    if table is None:
        return default
    return table.get(key, default)


def section(section_path: str) -> dict:
    """A shallow copy of a whole table, e.g. ``section("trade.npc")``.

    Missing tables come back empty.
    """
    table = _table(section_path)
    return dict(table) if table is not None else {}


def _count_values(table: dict) -> int:
    return sum(_count_values(v) if isinstance(v, dict) else 1
               for v in table.values())
