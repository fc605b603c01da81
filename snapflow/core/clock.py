"""Clock, timer and metronome used to pace snapshot runs."""

import time
from datetime import datetime, timezone
from typing import Callable


class Clock:
    """Source of wall-clock time; tests substitute their own."""

    def current_time_ms(self) -> int:
        return int(time.time() * 1000)

    def current_time(self) -> datetime:
        return datetime.fromtimestamp(self.current_time_ms() / 1000, tz=timezone.utc)


SYSTEM_CLOCK = Clock()


class Timer:
    """Expires once ``duration_ms`` has passed on the given clock."""

    def __init__(self, clock: Clock, duration_ms: int):
        self.clock = clock
        self.duration_ms = duration_ms
        self._deadline = clock.current_time_ms() + duration_ms

    def expired(self) -> bool:
        return self.clock.current_time_ms() >= self._deadline

    def remaining_ms(self) -> int:
        return max(0, self._deadline - self.clock.current_time_ms())


class Metronome:
    """Pauses the calling thread for a fixed interval on every ``pause()``."""

    def __init__(
        self, interval_ms: int, sleeper: Callable[[float], None] = time.sleep
    ):
        self.interval_ms = interval_ms
        self._sleeper = sleeper

    def pause(self) -> None:
        self._sleeper(self.interval_ms / 1000)


def format_duration(duration_ms: int) -> str:
    """Format milliseconds as ``HH:MM:SS.mmm``."""
    seconds, millis = divmod(max(0, duration_ms), 1000)
    minutes, seconds = divmod(seconds, 60)
    hours, minutes = divmod(minutes, 60)
    return f"{hours:02d}:{minutes:02d}:{seconds:02d}.{millis:03d}"
