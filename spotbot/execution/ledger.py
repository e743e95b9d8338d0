# -*- coding: utf-8 -*-
"""
Position Ledger
===============

봇 인스턴스 하나의 포지션 / 예산 장부.

- 포지션은 최대 1개 (spot, long only, 헤지 없음)
- 거래 기록(TradeRecord)은 append-only
- 예산은 체결 notional ± 수수료로만, 추적 잔고는 실현 손익으로만 변경
"""
from collections import deque
from dataclasses import dataclass, asdict
from typing import Any, Deque, Dict, List, Optional

from spotbot.risk.state import BudgetState


class LedgerError(RuntimeError):
    """장부 불변식 위반"""


@dataclass
class Position:
    """오픈 포지션"""
    symbol: str
    side: str
    entry_price: float
    amount: float
    current_price: float
    timestamp: float
    unrealized_pnl: float = 0.0
    stop_loss: Optional[float] = None
    take_profit: Optional[float] = None
    stop_order_id: Optional[str] = None
    software_stop: bool = False
    actual_fill_price: Optional[float] = None
    expected_price: Optional[float] = None
    slippage: Optional[float] = None

    @property
    def entry_notional(self) -> float:
        return self.amount * self.entry_price

    def mark(self, price: float) -> None:
        self.current_price = price
        self.unrealized_pnl = self.amount * (price - self.entry_price)

    def to_dict(self) -> Dict[str, Any]:
        return asdict(self)


@dataclass(frozen=True)
class TradeRecord:
    """완료된 거래 (불변)"""
    profit: float
    win: bool
    entry_price: float
    exit_price: float
    actual_fill_price: float
    expected_price: float
    slippage: float
    amount: float
    reason: str
    timestamp: float
    fees: float = 0.0
    entry_notional: float = 0.0
    exit_notional: float = 0.0

    def to_dict(self) -> Dict[str, Any]:
        return asdict(self)


class PositionLedger:
    """포지션 + 예산 장부"""

    def __init__(self, budget: BudgetState, slippage_sample_size: int = 100):
        self.budget = budget
        self.position: Optional[Position] = None
        self.trades: List[TradeRecord] = []
        self.slippage_samples: Deque[float] = deque(maxlen=slippage_sample_size)

    @property
    def has_position(self) -> bool:
        return self.position is not None

    @property
    def positions(self) -> List[Position]:
        return [self.position] if self.position is not None else []

    @property
    def unrealized_pnl(self) -> float:
        return self.position.unrealized_pnl if self.position is not None else 0.0

    def mark_price(self, price: float) -> None:
        if self.position is not None:
            self.position.mark(price)

    def record_slippage(self, slippage: float) -> None:
        self.slippage_samples.append(slippage)

    def open_position(self, position: Position, notional: float, fee: float) -> None:
        """매수 체결 반영: 예산 -= notional + fee"""
        if self.position is not None:
            raise LedgerError(f"Position already open for {self.position.symbol}")
        self.position = position
        self.budget.current_budget -= notional + fee

    def adopt_position(self, position: Position) -> None:
        """
        기존 보유분 편입 (startup reconcile fallback)

        수수료 없이 notional 만 예산에서 예약한다. 나중에 청산하면 돌려받음.
        """
        if self.position is not None:
            raise LedgerError(f"Position already open for {self.position.symbol}")
        self.position = position
        self.budget.current_budget -= position.entry_notional

    def close_position(self, trade: TradeRecord, exit_notional: float, exit_fee: float) -> None:
        """매도 체결 반영: 예산 += exit_notional - exit_fee, 추적 잔고 += 순손익"""
        if self.position is None:
            raise LedgerError("No open position to close")
        self.budget.current_budget += exit_notional - exit_fee
        self.budget.current_real_balance += trade.profit
        self.trades.append(trade)
        self.position = None
