"""core/save.py — Game state persistence.

Save files (JSON) hold only runtime state, one snapshot per system:
- clock (day, hour, minute, time scale)
- weather and season, wind
- market states, price history, NPC trader purses
- scheduled and active harbour events
- current location
- faction standing, rank, NPC attitudes, the player's purse and pack

Static catalogs (goods, ships, seasons, locations) stay in data/*.toml
and are never written.

When loading a game:
1. Build a fresh ``GameSession`` (loads the catalogs)
2. Read the save JSON with ``load_game_state``
3. ``session.load_save_data(data["session"])`` overlays the runtime state
"""

from __future__ import annotations
import json
import time
from pathlib import Path
from typing import Any, TYPE_CHECKING

if TYPE_CHECKING:
    from simulation.session import GameSession


SAVES_DIR = Path("saves")
FORMAT_VERSION = 1


def get_save_file(slot: int = 0, saves_dir: Path | None = None) -> Path:
    """Get the path for a save slot."""
    directory = SAVES_DIR if saves_dir is None else Path(saves_dir)
    directory.mkdir(parents=True, exist_ok=True)
    return directory / f"slot{slot}.json"


def save_game_state(session: "GameSession", slot: int = 0,
                    saves_dir: Path | None = None) -> Path:
    """Write the session's runtime state to a slot.  Returns the path."""
    save_path = get_save_file(slot, saves_dir)
    save_data = {
        "format_version": FORMAT_VERSION,
        "saved_at": time.time(),
        "session": session.get_save_data(),
    }
    with open(save_path, "w", encoding="utf-8") as f:
        json.dump(save_data, f, indent=2, ensure_ascii=False)
    print(f"[SAVE] Wrote {save_path}")
    return save_path


def load_game_state(slot: int = 0,
                    saves_dir: Path | None = None) -> dict[str, Any] | None:
    """Read a save slot.

    Returns the whole save dict (``format_version``, ``saved_at``,
    ``session``), or None if the slot is empty or unreadable.
    """
    save_path = get_save_file(slot, saves_dir)
    if not save_path.exists():
        return None

    try:
        with open(save_path, "r", encoding="utf-8") as f:
            data = json.load(f)
    except (OSError, json.JSONDecodeError) as ex:
        print(f"[SAVE] Error loading save file: {ex}")
        return None

    if not isinstance(data, dict) or "session" not in data:
        print(f"[SAVE] Error loading save file: {save_path} has no session data")
        return None
    return data


def restore_session(session: "GameSession", slot: int = 0,
                    saves_dir: Path | None = None) -> bool:
    """Load a slot straight into *session*.  False if nothing was loaded."""
    data = load_game_state(slot, saves_dir)
    if data is None:
        return False
    session.load_save_data(data["session"])
    return True
