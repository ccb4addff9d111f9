"""core — plumbing shared by every simulation system.

Event bus, tuning loader, constants, save slots and the headless frame
loop.  Nothing in here knows about markets, ships or weather.
"""

__all__ = ["app", "constants", "events", "save", "tuning"]
