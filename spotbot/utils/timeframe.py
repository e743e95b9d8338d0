"""
Duration Parsing Module
=======================

Provides the single conversion point between human-readable periods and
seconds used by the engine's periodic checks:
- Duration: Human-readable time period ('60s', '10m', '24h', '1d')
- duration_to_seconds(): number or string -> seconds

Usage:
    from spotbot.utils.timeframe import duration_to_seconds

    duration_to_seconds("10m")   # -> 600.0
    duration_to_seconds("24h")   # -> 86400.0
    duration_to_seconds(60)      # -> 60.0 (plain numbers are seconds)

Reference:
    connection check = 60s, balance check = 10m,
    daily window = 24h, hourly window = 1h
"""
from __future__ import annotations

from dataclasses import dataclass
from typing import Literal, Dict, Union
import re


SECONDS_PER_MINUTE = 60
SECONDS_PER_HOUR = 3600  # 60 * 60
SECONDS_PER_DAY = 86400  # 24 * 3600

UNIT_SECONDS: Dict[str, int] = {
    's': 1,
    'm': SECONDS_PER_MINUTE,
    'h': SECONDS_PER_HOUR,
    'd': SECONDS_PER_DAY,
}


@dataclass(frozen=True)
class Duration:
    """
    Time duration with a unit.

    Examples:
        Duration(10, 'm').total_seconds  # -> 600.0
        Duration.parse('24h')            # -> Duration(24.0, 'h')
    """
    value: float
    unit: Literal['s', 'm', 'h', 'd']

    @property
    def total_seconds(self) -> float:
        """Total duration in seconds."""
        return float(self.value * UNIT_SECONDS[self.unit])

    @classmethod
    def parse(cls, s: str) -> Duration:
        """
        Parse duration string like '60s', '10m', '24h', '1d'.

        Raises:
            ValueError: If format is invalid
        """
        match = re.match(r'^(\d+(?:\.\d+)?)\s*(s|m|h|d)$', s.strip().lower())
        if not match:
            raise ValueError(
                f"Invalid duration format: '{s}'. "
                "Expected format: '60s', '10m', '24h', '1d', etc."
            )
        return cls(value=float(match.group(1)), unit=match.group(2))

    def __str__(self) -> str:
        if self.value == int(self.value):
            return f"{int(self.value)}{self.unit}"
        return f"{self.value}{self.unit}"


def duration_to_seconds(duration: Union[str, int, float]) -> float:
    """
    Convert a config duration to seconds.

    Args:
        duration: "10m" style string, or a number already in seconds

    Returns:
        Seconds as float

    Raises:
        ValueError: If the string form is invalid or the value is negative
    """
    if isinstance(duration, bool):
        raise ValueError(f"Invalid duration: {duration!r}")
    if isinstance(duration, (int, float)):
        seconds = float(duration)
    else:
        seconds = Duration.parse(str(duration)).total_seconds
    if seconds < 0:
        raise ValueError(f"Duration must be non-negative: {duration!r}")
    return seconds
