# -*- coding: utf-8 -*-
"""
Strategy Capability
===================

엔진이 의존하는 전략 인터페이스. 전략 변형은 클래스 계층이 아니라
이 capability 를 구현하고 registry 에 등록된다.

- analyze(candles, current_price) -> Signal
- record_trade(): 진입 쿨다운 기록
- restore_position_state(entry_price, current_price): startup reconcile 시 내부 상태 재동기화
- reset()
"""
from dataclasses import dataclass
from enum import Enum
from typing import Optional, Protocol, runtime_checkable

import pandas as pd


class Action(Enum):
    BUY = "buy"
    SELL = "sell"
    HOLD = "hold"
    CLOSE = "close"


@dataclass(frozen=True)
class Signal:
    """tick 단위 전략 출력"""
    action: Action
    price: float
    reason: str = ""
    stop_loss: Optional[float] = None
    take_profit: Optional[float] = None

    @property
    def is_exit(self) -> bool:
        return self.action in (Action.SELL, Action.CLOSE)

    @classmethod
    def hold(cls, price: float, reason: str = "") -> "Signal":
        return cls(action=Action.HOLD, price=price, reason=reason)


@runtime_checkable
class Strategy(Protocol):
    """전략 capability"""
    name: str

    def analyze(self, candles: pd.DataFrame, current_price: float) -> Signal:
        ...

    def record_trade(self) -> None:
        ...

    def restore_position_state(self, entry_price: float, current_price: float) -> None:
        ...

    def reset(self) -> None:
        ...
