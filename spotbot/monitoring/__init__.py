"""
Monitoring Module
=================

성과 지표 조회 + 정지/오류 카운터.
"""
from .incidents import IncidentLog
from .stats import BotStats, StatsReporter

__all__ = [
    'IncidentLog',
    'BotStats',
    'StatsReporter',
]
