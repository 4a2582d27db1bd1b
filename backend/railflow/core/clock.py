"""
Virtual simulation clock.

The clock never sleeps or blocks. A driver (the realtime loop, a test, any
timer) reports elapsed real time through `tick` or lets `advance` measure it.
"""
import logging
import time as _time
from datetime import datetime, timedelta
from typing import Optional

from railflow.core.config import settings

logger = logging.getLogger(__name__)


def default_start_time(now: Optional[datetime] = None) -> datetime:
    """Today's date at the configured start hour:minute"""
    now = now or datetime.now()
    hour, minute = settings.start_hour_minute
    return now.replace(hour=hour, minute=minute, second=0, microsecond=0)


class SimulationClock:
    def __init__(
        self,
        start_time: Optional[datetime] = None,
        time_multiplier: Optional[float] = None,
    ) -> None:
        self.start_time: datetime = start_time or default_start_time()
        self.time_multiplier = settings.TIME_MULTIPLIER if time_multiplier is None else time_multiplier
        self.time: datetime = self.start_time
        self.is_paused = False
        self.speed_multiplier = 1.0
        self.generation = 0
        self._last_update = _time.monotonic()

    def tick(self, elapsed_real_seconds: float) -> datetime:
        """Advance virtual time by elapsed real seconds (no-op while paused)"""
        if not self.is_paused and elapsed_real_seconds > 0:
            virtual_seconds = elapsed_real_seconds * self.time_multiplier * self.speed_multiplier
            self.time = self.time + timedelta(seconds=virtual_seconds)
        return self.time

    def advance(self, now: Optional[float] = None) -> datetime:
        """Tick by the real time elapsed since the previous call"""
        now = _time.monotonic() if now is None else now
        elapsed = now - self._last_update
        self._last_update = now
        return self.tick(elapsed)

    def toggle_pause(self) -> bool:
        self.is_paused = not self.is_paused
        if not self.is_paused:
            # Resuming: forget the paused interval
            self._last_update = _time.monotonic()
        logger.info(f"Simulation {'paused' if self.is_paused else 'resumed'} at {self.time:%H:%M}")
        return self.is_paused

    def set_speed(self, multiplier: float) -> None:
        if multiplier < 0:
            raise ValueError(f"Speed multiplier must be non-negative, got {multiplier}")
        self.speed_multiplier = float(multiplier)

    def reset(self) -> int:
        """Back to the start instant; bumps `generation` so owners rebuild their state"""
        self.time = self.start_time
        self.is_paused = False
        self.speed_multiplier = 1.0
        self._last_update = _time.monotonic()
        self.generation += 1
        logger.info(f"Simulation clock reset (generation {self.generation})")
        return self.generation

    def to_dict(self) -> dict:
        return {
            "time": self.time.isoformat(),
            "isPaused": self.is_paused,
            "speed": self.speed_multiplier,
            "generation": self.generation,
        }
