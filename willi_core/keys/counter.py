"""
Free tier rate tracking.

Counters live in process memory only. They are rolled lazily: every check
compares the current minute/day bucket with the stored one and zeroes the
counter when the bucket changed. No background timer is involved.
"""

from dataclasses import dataclass, field
from datetime import datetime
from typing import Any

__all__ = ["BackoffState", "UsageCounter", "day_bucket", "minute_bucket"]


def minute_bucket(now: datetime) -> str:
    """Identity of the rate window containing `now`."""
    return now.strftime("%Y-%m-%d-%H-%M")


def day_bucket(now: datetime) -> str:
    """Identity of the calendar day containing `now`."""
    return now.strftime("%Y-%m-%d")


@dataclass
class UsageCounter:
    """Per-minute and per-day call counter for one tier.

    `daily_usage <= daily_limit` is soft: it only holds at check time.
    """

    daily_limit: int
    minute_limit: int
    daily_usage: int = 0
    minute_usage: int = 0
    last_minute_bucket: str = ""
    last_day_bucket: str = ""

    def roll(self, now: datetime) -> None:
        """Zero any counter whose window has passed."""
        current_minute = minute_bucket(now)
        if current_minute != self.last_minute_bucket:
            self.minute_usage = 0
            self.last_minute_bucket = current_minute

        current_day = day_bucket(now)
        if current_day != self.last_day_bucket:
            self.daily_usage = 0
            self.last_day_bucket = current_day

    @property
    def daily_available(self) -> bool:
        return self.daily_usage < self.daily_limit

    @property
    def minute_exhausted(self) -> bool:
        return self.minute_usage >= self.minute_limit

    def has_capacity(self, now: datetime) -> bool:
        """Roll the windows, then report whether one more call fits both limits."""
        self.roll(now)
        return self.daily_available and not self.minute_exhausted

    def increment(self) -> None:
        self.daily_usage += 1
        self.minute_usage += 1

    def status(self) -> dict[str, Any]:
        return {
            "daily_usage": self.daily_usage,
            "daily_limit": self.daily_limit,
            "minute_usage": self.minute_usage,
            "minute_limit": self.minute_limit,
        }


@dataclass
class BackoffState:
    """Position in a fixed ascending sequence of wait durations (seconds)."""

    sequence: tuple[float, ...] = field(default=(1.0, 2.0, 5.0, 10.0, 15.0))
    index: int = 0

    def __post_init__(self) -> None:
        if not self.sequence:
            raise ValueError("Backoff sequence must not be empty")

    @property
    def delay(self) -> float:
        """Wait duration for the current position."""
        return self.sequence[self.index]

    def advance(self) -> None:
        """Move one step further, capped at the last entry."""
        self.index = min(self.index + 1, len(self.sequence) - 1)

    def reset(self) -> None:
        self.index = 0
