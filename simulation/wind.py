"""simulation/wind.py — Smoothed wind over the Mandovi.

Direction and speed drift toward a seasonal target (north-east trades in
the dry months, the south-west monsoon from June) nudged by a layered
sine noise table, and scaled by the weather.  Purely a derived signal:
presentation reads it for rain angle and sail sway, trade routes read
``get_trade_route_difficulty``.
"""

from __future__ import annotations
import math
from dataclasses import dataclass, asdict
from typing import Any

from core.constants import FRAME_MS
from core.events import EventBus, SeasonChange, WeatherChange, WindSeasonChange


@dataclass
class WindState:
    direction: float = 45.0    # degrees: 0 = East, 90 = South, 180 = West, 270 = North
    speed: float = 0.3         # 0..1
    gustiness: float = 0.2     # 0..1


@dataclass(frozen=True)
class WindPattern:
    base_direction: float
    direction_variance: float
    base_speed: float
    speed_variance: float
    gustiness: float


SEASONAL_PATTERNS: dict[str, WindPattern] = {
    "dry": WindPattern(45, 30, 0.3, 0.2, 0.2),              # NE trades
    "pre_monsoon": WindPattern(90, 60, 0.4, 0.3, 0.4),      # shifting easterlies
    "monsoon": WindPattern(225, 20, 0.7, 0.2, 0.6),         # SW monsoon
    "post_monsoon": WindPattern(180, 45, 0.4, 0.25, 0.3),   # retreating westerlies
}

# weather → (speed multiplier, gust multiplier)
WEATHER_MODIFIERS: dict[str, tuple[float, float]] = {
    "clear": (0.8, 0.5),
    "overcast": (1.0, 0.8),
    "rain": (1.2, 1.0),
    "heavy_rain": (1.5, 1.2),
    "heat_haze": (0.3, 0.2),
    "fog": (0.4, 0.3),
}

NOISE_TABLE_SIZE = 512
SMOOTHING = 0.02       # fraction closed per reference frame


def _build_noise_table(size: int = NOISE_TABLE_SIZE) -> list[float]:
    table = []
    for i in range(size):
        v1 = math.sin(i * 0.05) * 0.5
        v2 = math.sin(i * 0.13 + 2.1) * 0.3
        v3 = math.sin(i * 0.27 + 4.5) * 0.2
        table.append((v1 + v2 + v3 + 1) / 2)
    return table


def lerp_angle(a: float, b: float, t: float) -> float:
    """Interpolate degrees along the short way round."""
    diff = (b - a) % 360.0
    if diff > 180.0:
        diff -= 360.0
    return a + diff * t


class WindSystem:
    def __init__(self, bus: EventBus) -> None:
        self.bus = bus
        self.current_season = "dry"
        self.current_weather = "clear"
        self.wind = WindState()
        self.noise_time = 0.0
        self._noise = _build_noise_table()

        bus.subscribe(SeasonChange, self._on_season_change)
        bus.subscribe(WeatherChange, self._on_weather_change)

    def _on_season_change(self, event: SeasonChange) -> None:
        self.set_season(event.current)

    def _on_weather_change(self, event: WeatherChange) -> None:
        self.set_weather(event.current)

    def _sample(self, offset: float) -> float:
        index = int((self.noise_time + offset) * 5) % len(self._noise)
        return self._noise[index]

    # ── Control ──────────────────────────────────────────────────────

    def set_season(self, season: str) -> None:
        pattern = SEASONAL_PATTERNS.get(season)
        if pattern is None:
            print(f"[WIND] Warning: no wind pattern for season '{season}'")
            return
        self.current_season = season
        self.wind = WindState(pattern.base_direction, pattern.base_speed,
                              pattern.gustiness)
        self.bus.emit(WindSeasonChange(season=season,
                                       base_direction=pattern.base_direction,
                                       base_speed=pattern.base_speed))

    def set_weather(self, weather: str) -> None:
        self.current_weather = weather

    def update(self, dt_ms: float) -> None:
        self.noise_time += dt_ms * 0.001

        pattern = SEASONAL_PATTERNS[self.current_season]
        speed_mult, gust_mult = WEATHER_MODIFIERS.get(self.current_weather, (1.0, 1.0))

        direction_noise = (self._sample(0) - 0.5) * 2          # -1..1
        target_direction = pattern.base_direction + direction_noise * pattern.direction_variance

        speed_noise = self._sample(100)
        gust_noise = self._sample(200) * pattern.gustiness * gust_mult
        target_speed = (pattern.base_speed + speed_noise * pattern.speed_variance
                        + gust_noise) * speed_mult

        # Same convergence per second regardless of frame rate
        t = 1.0 - (1.0 - SMOOTHING) ** (dt_ms / FRAME_MS) if dt_ms > 0 else 0.0
        w = self.wind
        w.direction = lerp_angle(w.direction, target_direction, t) % 360.0
        w.speed += (min(1.0, target_speed) - w.speed) * t
        w.gustiness += (min(1.0, pattern.gustiness * gust_mult) - w.gustiness) * t

    # ── Queries ──────────────────────────────────────────────────────

    def get_wind_state(self) -> WindState:
        return WindState(**asdict(self.wind))

    def get_direction_radians(self) -> float:
        return math.radians(self.wind.direction)

    def get_wind_vector(self) -> tuple[float, float]:
        rad = self.get_direction_radians()
        return math.cos(rad) * self.wind.speed, math.sin(rad) * self.wind.speed

    def is_calm(self) -> bool:
        return self.wind.speed < 0.3 and self.wind.gustiness < 0.3

    def is_stormy(self) -> bool:
        return self.wind.speed > 0.7 or self.wind.gustiness > 0.5

    def get_trade_route_difficulty(self, route_direction: float) -> float:
        """1.0 = normal, above 1 = headwind, below 1 = tailwind."""
        angle = abs(self.wind.direction - route_direction) % 360.0
        if angle > 180:
            angle = 360 - angle
        headwind = angle / 180.0
        speed = self.wind.speed
        if headwind > 0.5:
            return 1 + headwind * speed
        return 1 - (0.5 - headwind) * speed * 0.5

    # ── Persistence ──────────────────────────────────────────────────

    def get_save_data(self) -> dict[str, Any]:
        return {
            "current_season": self.current_season,
            "current_weather": self.current_weather,
            "wind": asdict(self.wind),
            "noise_time": self.noise_time,
        }

    def load_save_data(self, data: dict[str, Any]) -> None:
        season = data.get("current_season", "dry")
        self.current_season = season if season in SEASONAL_PATTERNS else "dry"
        self.current_weather = data.get("current_weather", "clear")
        wind = data.get("wind", {})
        self.wind = WindState(
            direction=float(wind.get("direction", 45.0)),
            speed=float(wind.get("speed", 0.3)),
            gustiness=float(wind.get("gustiness", 0.2)),
        )
        self.noise_time = float(data.get("noise_time", 0.0))
