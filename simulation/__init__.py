"""simulation — The world of Goa 1590, headless.

Every system here is a plain object owned by a ``GameSession``; they
talk through the session's ``EventBus`` and a few capability interfaces.
Time only moves when the session is given a ``dt``.

Submodules
----------
session         GameSession — owns the bus, RNG, timers and every system
clock           TimeSystem — minutes, hours, days, market hours
timers          TimerQueue, IntervalTimer — virtual-time callbacks
weather         WeatherSystem — seasons, weather transitions, wetness, lightning
wind            WindSystem — smoothed seasonal wind
world           LocationGraph, WorldSystem — locations and gated transitions
scheduler       EventScheduler — ship arrivals, departures, cargo events
economy         TradeSystem — market prices, supply and demand
traders         MarketTrader — NPC trader roster and personalities
contracts       ContractSystem — delivery contracts on a deadline
routes          TradeRouteSystem — long-distance expeditions by rank
factions        FactionSystem — reputation per faction
progression     ProgressionSystem — merchant rank
relationships   RelationshipSystem — per-NPC attitude
player          PlayerLedger — gold and inventory
providers       Capability interfaces between systems
"""
