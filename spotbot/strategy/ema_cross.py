# -*- coding: utf-8 -*-
"""
EMA Crossover Strategy
======================

참조용 전략 변형.

- 진입: fast EMA 가 slow EMA 를 상향 돌파 (쿨다운 30분)
- 청산: fast EMA 하향 돌파
- SL / TP: 진입가 대비 고정 비율

candles: 'close' 컬럼을 가진 DataFrame (시간순)
"""
import time
from typing import Callable, Optional

import pandas as pd

from .base import Action, Signal
from .registry import register_strategy


class EmaCrossStrategy:
    """EMA 크로스 전략"""

    def __init__(
        self,
        fast: int = 9,
        slow: int = 21,
        stop_loss_pct: float = 0.02,
        take_profit_pct: float = 0.04,
        cooldown_seconds: float = 30 * 60,
        time_fn: Optional[Callable[[], float]] = None,
    ):
        if fast >= slow:
            raise ValueError(f"fast ({fast}) must be shorter than slow ({slow})")
        self.name = "ema_cross"
        self.fast = fast
        self.slow = slow
        self.stop_loss_pct = stop_loss_pct
        self.take_profit_pct = take_profit_pct
        self.cooldown_seconds = cooldown_seconds
        self._time_fn = time_fn or time.time
        self.reset()

    def reset(self) -> None:
        self.in_position = False
        self.entry_price: Optional[float] = None
        self.last_trade_time: Optional[float] = None

    def record_trade(self) -> None:
        self.last_trade_time = self._time_fn()
        self.in_position = True

    def restore_position_state(self, entry_price: float, current_price: float) -> None:
        self.in_position = True
        self.entry_price = entry_price

    def can_trade_again(self) -> bool:
        if self.last_trade_time is None:
            return True
        return self._time_fn() - self.last_trade_time >= self.cooldown_seconds

    def analyze(self, candles: pd.DataFrame, current_price: float) -> Signal:
        if len(candles) < self.slow + 1:
            return Signal.hold(current_price, f"Waiting for data ({len(candles)}/{self.slow + 1})")

        close = candles['close'].astype(float)
        fast_ema = close.ewm(span=self.fast, adjust=False).mean()
        slow_ema = close.ewm(span=self.slow, adjust=False).mean()

        prev_diff = fast_ema.iloc[-2] - slow_ema.iloc[-2]
        diff = fast_ema.iloc[-1] - slow_ema.iloc[-1]

        if self.in_position:
            if prev_diff >= 0 > diff:
                self.in_position = False
                self.entry_price = None
                return Signal(Action.SELL, current_price, "EMA cross down")
            return Signal.hold(current_price, "In position")

        if prev_diff <= 0 < diff:
            if not self.can_trade_again():
                return Signal.hold(current_price, "Cooldown")
            self.entry_price = current_price
            return Signal(
                Action.BUY,
                current_price,
                f"EMA{self.fast} crossed above EMA{self.slow}",
                stop_loss=current_price * (1 - self.stop_loss_pct),
                take_profit=current_price * (1 + self.take_profit_pct),
            )
        return Signal.hold(current_price, "No cross")


@register_strategy("ema_cross")
def _make_ema_cross(**params) -> EmaCrossStrategy:
    return EmaCrossStrategy(**params)
