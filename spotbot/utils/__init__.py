"""
Utils Package
=============

Utility modules for spotbot.
"""
from .timeframe import (
    Duration,
    duration_to_seconds,
    SECONDS_PER_MINUTE,
    SECONDS_PER_HOUR,
    SECONDS_PER_DAY,
)
from .clock import Clock, SystemClock, ManualClock
from .schedule import PeriodicCheck, window_elapsed, prune_window, window_total
from .log import BotLogger, setup_logging, TRADE

__all__ = [
    'Duration',
    'duration_to_seconds',
    'SECONDS_PER_MINUTE',
    'SECONDS_PER_HOUR',
    'SECONDS_PER_DAY',
    'Clock',
    'SystemClock',
    'ManualClock',
    'PeriodicCheck',
    'window_elapsed',
    'prune_window',
    'window_total',
    'BotLogger',
    'setup_logging',
    'TRADE',
]
