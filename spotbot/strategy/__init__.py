"""
Strategy Module
===============

전략 capability 인터페이스 + 변형 registry.
"""
from .base import Action, Signal, Strategy
from .registry import register_strategy, create_strategy, list_strategies
from .ema_cross import EmaCrossStrategy

__all__ = [
    'Action',
    'Signal',
    'Strategy',
    'register_strategy',
    'create_strategy',
    'list_strategies',
    'EmaCrossStrategy',
]
