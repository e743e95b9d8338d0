# -*- coding: utf-8 -*-
"""
Risk Gate - Pre-trade Safety Checks
===================================

주문 전 리스크 게이트.

체크 순서 (첫 실패에서 중단):
0. Emergency latch - 이미 정지 상태면 거래소 호출 없이 거부
1. Connection Health - 60초마다 재확인, 실패 시 인프라 오류로 tick 중단
2. Drawdown - 추적 잔고 + 미실현 P&L 이 기준 대비 15% 이상 이탈 시 비상 정지 + 강제 청산
3. Daily Loss Limit - 24h 윈도우 기준 5% 손실 시 롤오버까지 래치
4. Hourly Loss Rate - 최근 60분 손실이 일일 기준의 2% 이상이면 신규 진입 차단
5. Trades-per-day - 신규 진입 전용, 10회 이상이면 롤오버까지 래치
6. Consecutive Losses - 신규 진입 전용, 3연패 거부 / 2연패 사이즈 50%

2~6 은 오류가 아니라 의도된 정지(HaltReason). 인프라 오류(ErrorKind)와 구분해서 보고한다.
3~4 의 래치는 신규 진입만 막는다. 청산과 SL/TP 체크는 계속 허용.

사용법:
```python
from spotbot.risk import RiskGate, RiskState, BudgetState, ConnectionHealth

gate = RiskGate(config.risk, config.schedule)
decision = gate.evaluate(
    state, budget, health,
    now=clock.now(),
    opening=True,
    unrealized_pnl=0.0,
    probe=gateway.fetch_time,
)
if not decision.allowed:
    print(decision.halt, decision.message)
```
"""
import logging
from dataclasses import dataclass
from enum import Enum
from typing import Callable, Optional

from spotbot.config.loader import RiskParams, ScheduleParams
from spotbot.exchange.result import Err, Result
from spotbot.utils.schedule import prune_window, window_elapsed, window_total
from .state import BudgetState, ConnectionHealth, RiskState

logger = logging.getLogger(__name__)


class HaltReason(Enum):
    """의도된 거래 정지 사유 (오류 아님)"""
    EMERGENCY_STOP = "emergency_stop"
    DRAWDOWN = "drawdown"
    DAILY_LOSS = "daily_loss"
    HOURLY_LOSS = "hourly_loss"
    TRADES_PER_DAY = "trades_per_day"
    CONSECUTIVE_LOSSES = "consecutive_losses"


@dataclass(frozen=True)
class GateDecision:
    """게이트 판정"""
    allowed: bool
    halt: Optional[HaltReason] = None
    error: Optional[Err] = None
    message: str = ""
    force_close: bool = False

    @property
    def is_infra_error(self) -> bool:
        return self.error is not None

    @classmethod
    def allow(cls) -> "GateDecision":
        return cls(allowed=True)

    @classmethod
    def deny(cls, halt: HaltReason, message: str, force_close: bool = False) -> "GateDecision":
        return cls(allowed=False, halt=halt, message=message, force_close=force_close)

    @classmethod
    def infra(cls, error: Err) -> "GateDecision":
        return cls(allowed=False, error=error, message=str(error))


class RiskGate:
    """리스크 게이트"""

    def __init__(
        self,
        risk: Optional[RiskParams] = None,
        schedule: Optional[ScheduleParams] = None,
    ):
        self.risk = risk or RiskParams()
        self.schedule = schedule or ScheduleParams()

    def evaluate(
        self,
        state: RiskState,
        budget: BudgetState,
        health: ConnectionHealth,
        now: float,
        opening: bool,
        unrealized_pnl: float,
        probe: Callable[[], Result],
    ) -> GateDecision:
        """
        tick 단위 게이트 평가

        Args:
            opening: 이번 tick 에서 신규 포지션 진입을 시도하는지
            unrealized_pnl: 오픈 포지션의 현재가 기준 미실현 손익
            probe: 연결 확인용 거래소 호출 (fetch_time)

        Returns:
            GateDecision
        """
        # 0. Emergency latch
        if state.emergency_stop_triggered:
            return GateDecision.deny(
                HaltReason.EMERGENCY_STOP,
                f"Emergency stop active ({state.emergency_stop_reason}), restart required",
            )

        # 1. Connection health
        decision = self.check_connection(health, now, probe)
        if not decision.allowed:
            return decision

        # 2. Drawdown
        decision = self.check_drawdown(state, budget, unrealized_pnl)
        if not decision.allowed:
            return decision

        # 3. Daily loss
        decision = self.check_daily_loss(state, budget, now)
        if not decision.allowed and opening:
            return decision

        # 4. Hourly loss rate
        decision = self.check_hourly_loss(state, now)
        if not decision.allowed and opening:
            return decision

        if opening:
            # 5. Trades per day
            decision = self.check_trades_per_day(state)
            if not decision.allowed:
                return decision

            # 6. Consecutive losses
            decision = self.check_consecutive_losses(state)
            if not decision.allowed:
                return decision

        return GateDecision.allow()

    # ------------------------------------------------------------------
    # Individual checks
    # ------------------------------------------------------------------
    def check_connection(
        self,
        health: ConnectionHealth,
        now: float,
        probe: Callable[[], Result],
    ) -> GateDecision:
        """연결 재확인 (60초 초과 경과 또는 unhealthy 일 때만 probe 호출)"""
        due = (
            not health.healthy
            or health.last_checked is None
            or now - health.last_checked > self.schedule.connection_check
        )
        if not due:
            return GateDecision.allow()

        result = probe()
        if result.ok:
            if not health.healthy:
                logger.info("Exchange connection healthy")
            health.mark(True, now)
            return GateDecision.allow()

        health.mark(False, now, str(result))
        return GateDecision.infra(result)

    def check_drawdown(
        self,
        state: RiskState,
        budget: BudgetState,
        unrealized_pnl: float,
    ) -> GateDecision:
        """기준 잔고 대비 총 평가액 이탈률"""
        drawdown = self.drawdown_ratio(budget, unrealized_pnl)
        if drawdown < self.risk.max_drawdown:
            return GateDecision.allow()

        reason = (
            f"Max drawdown {drawdown * 100:.2f}% >= {self.risk.max_drawdown * 100:.1f}% "
            f"(value ${budget.current_real_balance + unrealized_pnl:,.2f} "
            f"vs baseline ${budget.initial_real_balance:,.2f})"
        )
        state.latch_emergency(reason)
        logger.critical(f"EMERGENCY STOP: {reason}")
        return GateDecision.deny(HaltReason.DRAWDOWN, reason, force_close=True)

    def roll_daily_window(self, state: RiskState, budget: BudgetState, now: float) -> bool:
        """24h 경과 시 일일 카운터 롤오버"""
        if not window_elapsed(state.daily_start_time, self.schedule.daily_window, now):
            return False
        logger.info(
            f"Daily window rollover: baseline ${budget.current_real_balance:,.2f}, "
            f"{state.daily_trade_count} trades in previous window"
        )
        state.start_daily_window(budget.current_real_balance, now)
        return True

    def check_daily_loss(self, state: RiskState, budget: BudgetState, now: float) -> GateDecision:
        if self.roll_daily_window(state, budget, now):
            return GateDecision.allow()

        if not state.daily_loss_triggered:
            loss = self.daily_loss_ratio(state, budget)
            if loss >= self.risk.daily_loss_limit:
                state.daily_loss_triggered = True
                logger.warning(
                    f"Daily loss limit reached: {loss * 100:.2f}% "
                    f">= {self.risk.daily_loss_limit * 100:.1f}%"
                )

        if state.daily_loss_triggered:
            return GateDecision.deny(
                HaltReason.DAILY_LOSS,
                f"Daily loss limit ({self.risk.daily_loss_limit * 100:.1f}%) reached",
            )
        return GateDecision.allow()

    def check_hourly_loss(self, state: RiskState, now: float) -> GateDecision:
        hourly = self.hourly_pnl(state, now)
        if hourly >= 0 or state.daily_start_balance <= 0:
            return GateDecision.allow()

        rate = abs(hourly) / state.daily_start_balance
        if rate >= self.risk.hourly_loss_limit:
            return GateDecision.deny(
                HaltReason.HOURLY_LOSS,
                f"Hourly loss rate {rate * 100:.2f}% >= {self.risk.hourly_loss_limit * 100:.1f}% "
                f"(${hourly:,.2f} in last hour)",
            )
        return GateDecision.allow()

    def check_trades_per_day(self, state: RiskState) -> GateDecision:
        if state.daily_trade_count >= self.risk.max_trades_per_day:
            state.trades_per_day_triggered = True
        if state.trades_per_day_triggered:
            return GateDecision.deny(
                HaltReason.TRADES_PER_DAY,
                f"Max trades per day ({self.risk.max_trades_per_day}) reached",
            )
        return GateDecision.allow()

    def check_consecutive_losses(self, state: RiskState) -> GateDecision:
        if state.consecutive_losses >= self.risk.consecutive_loss_limit:
            return GateDecision.deny(
                HaltReason.CONSECUTIVE_LOSSES,
                f"Consecutive loss protection: {state.consecutive_losses} losses in a row",
            )
        if state.consecutive_losses >= self.risk.reduce_size_after_losses:
            state.position_size_multiplier = self.risk.reduced_size_multiplier
        return GateDecision.allow()

    # ------------------------------------------------------------------
    # State updates from executed trades
    # ------------------------------------------------------------------
    def record_entry(self, state: RiskState) -> None:
        """신규 포지션 진입 기록"""
        state.daily_trade_count += 1

    def record_close(self, state: RiskState, net_profit: float, now: float) -> None:
        """
        청산 결과 반영

        승: 연속 손실 0, 사이즈 1.0 / 패: 연속 손실 +1, 2연패부터 사이즈 축소
        """
        state.hourly_pnl_history.append((now, net_profit))
        state.hourly_pnl_history = prune_window(state.hourly_pnl_history, now, self.schedule.hourly_window)

        if net_profit > 0:
            state.consecutive_losses = 0
            state.position_size_multiplier = 1.0
        else:
            state.consecutive_losses += 1
            if state.consecutive_losses >= self.risk.reduce_size_after_losses:
                state.position_size_multiplier = self.risk.reduced_size_multiplier
                logger.warning(
                    f"{state.consecutive_losses} consecutive losses: "
                    f"position size x{state.position_size_multiplier}"
                )

    # ------------------------------------------------------------------
    # Metrics
    # ------------------------------------------------------------------
    @staticmethod
    def drawdown_ratio(budget: BudgetState, unrealized_pnl: float = 0.0) -> float:
        """|총 평가액 - 기준| / 기준"""
        if budget.initial_real_balance <= 0:
            return 0.0
        total_value = budget.current_real_balance + unrealized_pnl
        return abs(total_value - budget.initial_real_balance) / budget.initial_real_balance

    @staticmethod
    def daily_loss_ratio(state: RiskState, budget: BudgetState) -> float:
        if state.daily_start_balance <= 0:
            return 0.0
        return (state.daily_start_balance - budget.current_real_balance) / state.daily_start_balance

    def hourly_pnl(self, state: RiskState, now: float) -> float:
        """trailing 60분 실현 손익 합 (오래된 항목 정리 포함)"""
        state.hourly_pnl_history = prune_window(state.hourly_pnl_history, now, self.schedule.hourly_window)
        return window_total(state.hourly_pnl_history)
