"""
Strategy Registry
=================

전략 변형 이름 -> factory.

사용법:
    from spotbot.strategy import register_strategy, create_strategy

    @register_strategy("my_variant")
    def _make(**params):
        return MyVariant(**params)

    strategy = create_strategy("ema_cross", fast=9, slow=21)
"""
from typing import Callable, Dict, List

from .base import Strategy

StrategyFactory = Callable[..., Strategy]

_REGISTRY: Dict[str, StrategyFactory] = {}


def register_strategy(name: str) -> Callable[[StrategyFactory], StrategyFactory]:
    def decorator(factory: StrategyFactory) -> StrategyFactory:
        if name in _REGISTRY:
            raise ValueError(f"Strategy '{name}' already registered")
        _REGISTRY[name] = factory
        return factory
    return decorator


def create_strategy(name: str, **params) -> Strategy:
    if name not in _REGISTRY:
        raise KeyError(f"Unknown strategy: '{name}'. Valid options: {list_strategies()}")
    return _REGISTRY[name](**params)


def list_strategies() -> List[str]:
    return sorted(_REGISTRY)
