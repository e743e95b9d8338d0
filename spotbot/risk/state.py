# -*- coding: utf-8 -*-
"""
Risk / Budget State
===================

엔진 인스턴스 하나가 소유하는 명시적 상태 구조체.

- BudgetState: 할당 예산(포지션 사이징) + 추적 잔고(P&L / drawdown 계산)
- RiskState: 리스크 래치, 연속 손실, 일일/시간당 카운터
- ConnectionHealth: 거래소 연결 상태

RiskGate / OrderExecutor 는 이 구조체를 받아서 읽고 갱신한다.
거래소 연결 없이도 결정적으로 테스트할 수 있도록 전부 직렬화 가능 (to_dict / from_dict).

불변식:
- current_budget 은 체결된 notional ± 수수료로만 변한다
- current_real_balance 는 실현 손익으로만 변한다 (미실현 P&L 은 반영 안 함)
- emergency_stop_triggered 는 한 번 켜지면 프로세스 종료까지 꺼지지 않는다
"""
from dataclasses import dataclass, field, asdict
from typing import Any, Dict, List, Optional, Tuple


@dataclass
class BudgetState:
    """예산 / 잔고"""
    initial_budget: float
    current_budget: float
    initial_real_balance: float
    current_real_balance: float
    multi_bot_mode: bool = False

    @classmethod
    def from_budget(cls, budget: float) -> "BudgetState":
        return cls(
            initial_budget=budget,
            current_budget=budget,
            initial_real_balance=budget,
            current_real_balance=budget,
        )

    def set_real_baseline(self, balance: float) -> None:
        """추적 잔고 기준점 설정 (startup 전용)"""
        self.initial_real_balance = balance
        self.current_real_balance = balance

    def to_dict(self) -> Dict[str, Any]:
        return asdict(self)

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "BudgetState":
        return cls(**data)


@dataclass
class RiskState:
    """리스크 상태"""
    emergency_stop_triggered: bool = False
    emergency_stop_reason: str = ""
    consecutive_losses: int = 0
    position_size_multiplier: float = 1.0

    # 일일 윈도우 (rolling 24h, 전부 같이 리셋)
    daily_start_balance: float = 0.0
    daily_start_time: float = 0.0
    daily_trade_count: int = 0
    daily_loss_triggered: bool = False
    trades_per_day_triggered: bool = False

    # (timestamp, pnl) 시간순, trailing 60분
    hourly_pnl_history: List[Tuple[float, float]] = field(default_factory=list)

    def latch_emergency(self, reason: str) -> None:
        if not self.emergency_stop_triggered:
            self.emergency_stop_triggered = True
            self.emergency_stop_reason = reason

    def start_daily_window(self, balance: float, now: float) -> None:
        """일일 카운터 리셋 (현재 잔고가 새 기준점)"""
        self.daily_start_balance = balance
        self.daily_start_time = now
        self.daily_trade_count = 0
        self.daily_loss_triggered = False
        self.trades_per_day_triggered = False

    def to_dict(self) -> Dict[str, Any]:
        data = asdict(self)
        data['hourly_pnl_history'] = [list(entry) for entry in self.hourly_pnl_history]
        return data

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "RiskState":
        data = dict(data)
        data['hourly_pnl_history'] = [
            (float(ts), float(pnl)) for ts, pnl in data.get('hourly_pnl_history', [])
        ]
        return cls(**data)


@dataclass
class ConnectionHealth:
    """거래소 연결 상태"""
    healthy: bool = False
    last_checked: Optional[float] = None
    last_error: str = ""

    def mark(self, healthy: bool, now: float, error: str = "") -> None:
        self.healthy = healthy
        self.last_checked = now
        self.last_error = error
