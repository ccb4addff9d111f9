"""simulation/weather.py — Seasons, weather and their derived effects.

Goa's year splits into four seasons keyed purely off the day counter
(30-day months).  Each season carries a weather-probability table; the
current weather re-rolls when its duration runs out, or on a 10 % hourly
chance.  Changing weather blends intensity over a short transition so
mid-blend queries see an in-between value.

Derived signals consumed elsewhere:
  trade modifier   — ship arrival odds (EventScheduler)
  visibility       — presentation
  outdoor market   — heavy rain closes stalls
  ground wetness   — accumulates in rain, dries out otherwise
  lightning        — flash now, thunder 0.5–3 s later
"""

from __future__ import annotations
import random
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any

from core import tuning
from core.constants import (
    DATA_DIR, FRAME_MS, MS_PER_GAME_MINUTE, DAYS_PER_MONTH, MONTHS_PER_YEAR,
    MINUTES_PER_HOUR,
)
from core.events import (
    EventBus, HourChange, NewDay, PeriodChange, SeasonChange, WeatherChange,
    WeatherTransitionComplete, LightningStrike, ThunderHeard,
)
from simulation.timers import TimerQueue


WEATHER_STATES = ("clear", "overcast", "rain", "heavy_rain", "heat_haze", "fog")

VISIBILITY: dict[str, float] = {
    "clear": 1.0,
    "overcast": 0.85,
    "rain": 0.7,
    "heavy_rain": 0.5,
    "heat_haze": 0.9,
    "fog": 0.4,
}

DESCRIPTIONS: dict[str, str] = {
    "clear": "Clear skies",
    "overcast": "Cloudy skies",
    "rain": "Light rain",
    "heavy_rain": "Heavy monsoon rain",
    "heat_haze": "Oppressive heat",
    "fog": "Morning mist",
}


@dataclass
class SeasonConfig:
    name: str
    months: list[int] = field(default_factory=list)
    weather_probabilities: dict[str, float] = field(default_factory=dict)
    description: str = ""
    trade_modifier: float = 1.0


@dataclass
class WeatherTransition:
    """An in-flight blend between two (state, intensity) pairs."""
    from_state: str
    to_state: str
    from_intensity: float
    to_intensity: float
    duration_ms: float
    elapsed_ms: float = 0.0

    @property
    def progress(self) -> float:
        if self.duration_ms <= 0:
            return 1.0
        return min(1.0, self.elapsed_ms / self.duration_ms)

    def intensity_at(self, progress: float | None = None) -> float:
        p = self.progress if progress is None else progress
        return self.from_intensity + (self.to_intensity - self.from_intensity) * p


def load_seasons(path: str | Path | None = None) -> list[SeasonConfig]:
    """Load the season table.  Order in the file is lookup order.

    Expected format::

        [seasons.dry]
        months = [11, 12, 1, 2, 3, 4, 5]
        trade_modifier = 1.0

        [seasons.dry.weather]
        clear = 0.7
        ...
    """
    data = tuning.read_toml(DATA_DIR / "seasons.toml" if path is None else path)
    if not data:
        return []
    seasons: list[SeasonConfig] = []
    for name, sdata in data.get("seasons", {}).items():
        if not isinstance(sdata, dict):
            continue
        probs = {k: float(v) for k, v in sdata.get("weather", {}).items()}
        total = sum(probs.values())
        if abs(total - 1.0) > 1e-6:
            print(f"[WEATHER] Warning: season '{name}' probabilities sum to {total:.3f}")
        seasons.append(SeasonConfig(
            name=name,
            months=[int(m) for m in sdata.get("months", [])],
            weather_probabilities=probs,
            description=sdata.get("description", ""),
            trade_modifier=float(sdata.get("trade_modifier", 1.0)),
        ))
    return seasons


def month_for_day(day_count: int) -> int:
    """1-based month under the 30-day calendar."""
    return (day_count // DAYS_PER_MONTH) % MONTHS_PER_YEAR + 1


def season_for_day(day_count: int, seasons: list[SeasonConfig]) -> str | None:
    """Season owning *day_count*.  Pure — same month, same answer."""
    month = month_for_day(day_count)
    for season in seasons:
        if month in season.months:
            return season.name
    return None


class WeatherSystem:
    """Season + weather state with a transition overlay."""

    def __init__(self, bus: EventBus, rng: random.Random,
                 timers: TimerQueue,
                 seasons: list[SeasonConfig] | None = None) -> None:
        self.bus = bus
        self.rng = rng
        self.timers = timers
        self.seasons = seasons if seasons is not None else load_seasons()

        self.current_weather: str = "clear"
        self.current_season: str = "dry"
        self.weather_intensity: float = 0.0
        self.weather_duration: float = 0.0       # game hours
        self.elapsed_minutes: float = 0.0        # game minutes in this weather
        self.ground_wetness: float = 0.0
        self.lightning_flash: float = 0.0
        self.transition: WeatherTransition | None = None

        self.transition_ms = float(tuning.get("weather", "transition_ms", 3000.0))
        self.hourly_change_chance = float(tuning.get("weather", "hourly_change_chance", 0.1))
        self.ms_per_minute = float(tuning.get("time", "ms_per_minute", MS_PER_GAME_MINUTE))

        bus.subscribe(HourChange, self._on_hour_change)
        bus.subscribe(NewDay, self._on_new_day)
        bus.subscribe(PeriodChange, self._on_period_change)

        self.set_weather("clear", 0.0, 24, instant=True)

    # ── Event handlers ───────────────────────────────────────────────

    def _on_hour_change(self, _event: HourChange) -> None:
        self.check_weather_change()

    def _on_new_day(self, event: NewDay) -> None:
        self.update_season(event.day_count)

    def _on_period_change(self, event: PeriodChange) -> None:
        # Hot dry-season afternoons shimmer
        if (event.current == "Afternoon" and self.current_weather == "clear"
                and self.current_season == "dry"
                and self.rng.random() < tuning.get("weather", "heat_haze_chance", 0.3)):
            self.set_weather("heat_haze", 0.6, 3)

    # ── Weather control ──────────────────────────────────────────────

    def set_weather(self, state: str, intensity: float = 0.5,
                    duration_hours: float = 4, instant: bool = False) -> None:
        """Change the weather.

        Same state or ``instant`` applies at once; otherwise the
        intensity blends from its current value over the transition
        window.  Starting a new blend replaces any blend in flight.
        """
        if state not in VISIBILITY:
            print(f"[WEATHER] Warning: unknown weather state '{state}'")
            return

        previous = self.current_weather
        target = max(0.0, min(1.0, intensity))
        self.weather_duration = duration_hours
        self.elapsed_minutes = 0.0

        if instant or state == previous:
            self.transition = None
            self.weather_intensity = target
        else:
            self.transition = WeatherTransition(
                from_state=previous,
                to_state=state,
                from_intensity=self.weather_intensity,
                to_intensity=target,
                duration_ms=self.transition_ms,
            )
        self.current_weather = state

        self.bus.emit(WeatherChange(previous=previous, current=state,
                                    intensity=target,
                                    season=self.current_season))
        print(f"[WEATHER] {previous} -> {state} (intensity {target:.2f}, "
              f"{duration_hours:.1f}h)")

    def check_weather_change(self) -> None:
        """Hourly roll: small chance the weather turns early."""
        if self.rng.random() < self.hourly_change_chance:
            self.transition_to_random_weather()

    def transition_to_random_weather(self) -> None:
        config = self.get_season_config()
        if config is None:
            return

        roll = self.rng.random()
        cumulative = 0.0
        for weather, probability in config.weather_probabilities.items():
            if probability <= 0:
                continue
            cumulative += probability
            if roll <= cumulative:
                duration = 2 + self.rng.random() * 6       # 2–8 hours
                intensity = 0.3 + self.rng.random() * 0.7
                self.set_weather(weather, intensity, duration)
                return

        # Float rounding left the roll unmatched
        self.set_weather("clear", 0.0, 4)

    def update_season(self, day_count: int) -> None:
        name = season_for_day(day_count, self.seasons)
        if name is None or name == self.current_season:
            return
        previous = self.current_season
        self.current_season = name
        config = self.get_season_config()
        print(f"[WEATHER] Season changed: {previous} -> {name}")
        self.bus.emit(SeasonChange(
            previous=previous,
            current=name,
            description=config.description if config else "",
            trade_modifier=config.trade_modifier if config else 1.0,
        ))

    # ── Tick ─────────────────────────────────────────────────────────

    def update(self, dt_ms: float, game_minutes: float | None = None) -> None:
        """Advance blends, weather age, wetness and lightning.

        *game_minutes* is how much in-game time passed; by default it is
        derived from *dt_ms* at time-scale 1.
        """
        if game_minutes is None:
            game_minutes = dt_ms / self.ms_per_minute

        self._update_transition(dt_ms)

        self.elapsed_minutes += game_minutes
        if (self.weather_duration > 0
                and self.elapsed_minutes >= self.weather_duration * MINUTES_PER_HOUR):
            self.transition_to_random_weather()

        self._update_wetness(dt_ms)
        self._update_lightning(dt_ms)

    def _update_transition(self, dt_ms: float) -> None:
        t = self.transition
        if t is None:
            return
        t.elapsed_ms += dt_ms
        if t.progress >= 1.0:
            self.weather_intensity = t.to_intensity
            self.transition = None
            self.bus.emit(WeatherTransitionComplete(state=t.to_state,
                                                    intensity=t.to_intensity))
        else:
            self.weather_intensity = t.intensity_at()

    def _update_wetness(self, dt_ms: float) -> None:
        seconds = dt_ms / 1000.0
        soak = self.weather_intensity * seconds
        if self.current_weather == "heavy_rain":
            self.ground_wetness += tuning.get("weather.wetness", "heavy_rain_rate", 0.05) * soak
        elif self.current_weather == "rain":
            self.ground_wetness += tuning.get("weather.wetness", "rain_rate", 0.02) * soak
        elif self.current_season == "monsoon":
            self.ground_wetness -= tuning.get("weather.wetness", "monsoon_dry_rate", 0.004) * seconds
        else:
            self.ground_wetness -= tuning.get("weather.wetness", "dry_rate", 0.01) * seconds
        self.ground_wetness = max(0.0, min(1.0, self.ground_wetness))

    def _update_lightning(self, dt_ms: float) -> None:
        if self.lightning_flash > 0:
            decay_ms = tuning.get("weather.lightning", "flash_decay_ms", 250.0)
            self.lightning_flash = max(0.0, self.lightning_flash - dt_ms / decay_ms)

        if not self.lightning_possible() or dt_ms <= 0:
            return
        per_frame = tuning.get("weather.lightning", "chance_per_frame", 0.02)
        chance = 1.0 - (1.0 - per_frame) ** (dt_ms / FRAME_MS)
        if self.rng.random() < chance:
            self.strike_lightning()

    def lightning_possible(self) -> bool:
        if self.current_weather == "heavy_rain":
            return True
        return (self.current_weather == "rain"
                and self.weather_intensity > 0.7
                and self.current_season == "monsoon")

    def strike_lightning(self) -> None:
        """Flash now, thunder after the sound has travelled."""
        intensity = self.weather_intensity
        self.lightning_flash = 1.0
        delay = self.rng.uniform(
            tuning.get("weather.lightning", "thunder_min_ms", 500.0),
            tuning.get("weather.lightning", "thunder_max_ms", 3000.0),
        )
        self.bus.emit(LightningStrike(intensity=intensity, thunder_delay_ms=delay))
        self.timers.after(delay,
                          lambda: self.bus.emit(ThunderHeard(intensity=intensity)),
                          tag="weather.thunder")

    # ── Queries ──────────────────────────────────────────────────────

    def get_season_config(self) -> SeasonConfig | None:
        for season in self.seasons:
            if season.name == self.current_season:
                return season
        return None

    def get_trade_modifier(self) -> float:
        config = self.get_season_config()
        return config.trade_modifier if config else 1.0

    def get_visibility(self) -> float:
        t = self.transition
        if t is not None:
            a = VISIBILITY.get(t.from_state, 1.0)
            b = VISIBILITY.get(t.to_state, 1.0)
            return a + (b - a) * t.progress
        return VISIBILITY.get(self.current_weather, 1.0)

    def is_outdoor_market_affected(self) -> bool:
        """Heavy rain, or hard rain, closes the outdoor stalls."""
        return (self.current_weather == "heavy_rain"
                or (self.current_weather == "rain" and self.weather_intensity > 0.7))

    def get_weather_description(self) -> str:
        return DESCRIPTIONS.get(self.current_weather, "")

    def is_transitioning(self) -> bool:
        return self.transition is not None

    # ── Persistence ──────────────────────────────────────────────────

    def get_save_data(self) -> dict[str, Any]:
        return {
            "current_weather": self.current_weather,
            "current_season": self.current_season,
            "weather_intensity": self.weather_intensity,
            "weather_duration": self.weather_duration,
            "elapsed_minutes": self.elapsed_minutes,
            "ground_wetness": self.ground_wetness,
        }

    def load_save_data(self, data: dict[str, Any]) -> None:
        self.transition = None
        self.lightning_flash = 0.0
        self.current_weather = data.get("current_weather", "clear")
        self.current_season = data.get("current_season", "dry")
        self.weather_intensity = float(data.get("weather_intensity", 0.0))
        self.weather_duration = float(data.get("weather_duration", 4.0))
        self.elapsed_minutes = float(data.get("elapsed_minutes", 0.0))
        self.ground_wetness = max(0.0, min(1.0, float(data.get("ground_wetness", 0.0))))

    def __repr__(self) -> str:
        return (f"WeatherSystem({self.current_season}, {self.current_weather} "
                f"@{self.weather_intensity:.2f}, wet={self.ground_wetness:.2f})")
