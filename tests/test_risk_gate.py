# -*- coding: utf-8 -*-
"""
Risk Gate Tests
===============

RiskGate 단위 테스트 (거래소 없이 명시적 상태 구조체만 사용).
"""
import sys
import os
sys.path.insert(0, os.path.dirname(os.path.dirname(os.path.abspath(__file__))))

import pytest

from spotbot.config import RiskParams, ScheduleParams
from spotbot.exchange.result import Ok, Err, ErrorKind
from spotbot.risk import (
    RiskGate,
    RiskState,
    BudgetState,
    ConnectionHealth,
    HaltReason,
)

T0 = 1_700_000_000.0
DAY = 86400.0


class Probe:
    """연결 확인 호출 카운터"""

    def __init__(self, result=None):
        self.calls = 0
        self.result = result or Ok(int(T0 * 1000))

    def __call__(self):
        self.calls += 1
        return self.result


def make_state(balance: float = 500.0):
    state = RiskState()
    state.start_daily_window(balance, T0)
    budget = BudgetState.from_budget(balance)
    health = ConnectionHealth()
    health.mark(True, T0)
    return state, budget, health


def evaluate(gate, state, budget, health, now=T0 + 1, opening=True, unrealized=0.0, probe=None):
    return gate.evaluate(
        state, budget, health,
        now=now,
        opening=opening,
        unrealized_pnl=unrealized,
        probe=probe or Probe(),
    )


class TestRiskParams:
    """RiskParams 기본값 테스트"""

    def test_default_values(self):
        cfg = RiskParams()
        assert cfg.max_drawdown == 0.15
        assert cfg.daily_loss_limit == 0.05
        assert cfg.hourly_loss_limit == 0.02
        assert cfg.max_trades_per_day == 10
        assert cfg.consecutive_loss_limit == 3
        assert cfg.reduced_size_multiplier == 0.5


class TestConnectionCheck:
    """1. Connection health"""

    def test_no_probe_within_interval(self):
        gate = RiskGate()
        state, budget, health = make_state()
        probe = Probe()
        decision = evaluate(gate, state, budget, health, now=T0 + 30, probe=probe)
        assert decision.allowed is True
        assert probe.calls == 0

    def test_no_recheck_at_exact_interval(self):
        gate = RiskGate()
        state, budget, health = make_state()
        probe = Probe()
        evaluate(gate, state, budget, health, now=T0 + 60, probe=probe)
        assert probe.calls == 0

    def test_recheck_after_interval(self):
        gate = RiskGate()
        state, budget, health = make_state()
        probe = Probe()
        decision = evaluate(gate, state, budget, health, now=T0 + 60.001, probe=probe)
        assert decision.allowed is True
        assert probe.calls == 1
        assert health.last_checked == T0 + 60.001

    def test_probe_failure_is_infra_error(self):
        """연결 실패는 halt 가 아니라 인프라 오류"""
        gate = RiskGate()
        state, budget, health = make_state()
        probe = Probe(Err(ErrorKind.CONNECTIVITY, "timeout", "fetch_time"))
        decision = evaluate(gate, state, budget, health, now=T0 + 61, probe=probe)

        assert decision.allowed is False
        assert decision.is_infra_error
        assert decision.halt is None
        assert decision.error.kind is ErrorKind.CONNECTIVITY
        assert health.healthy is False

    def test_unhealthy_reprobes_every_tick(self):
        gate = RiskGate()
        state, budget, health = make_state()
        health.mark(False, T0)
        probe = Probe()
        decision = evaluate(gate, state, budget, health, now=T0 + 1, probe=probe)
        assert probe.calls == 1
        assert decision.allowed is True
        assert health.healthy is True


class TestDrawdown:
    """2. Drawdown / emergency stop"""

    def test_drawdown_triggers_emergency(self):
        """$500 -> $424 (15.2%) 비상 정지 + 강제 청산 요청"""
        gate = RiskGate()
        state, budget, health = make_state(500.0)
        budget.current_real_balance = 424.0

        decision = evaluate(gate, state, budget, health, opening=False)
        assert decision.allowed is False
        assert decision.halt is HaltReason.DRAWDOWN
        assert decision.force_close is True
        assert state.emergency_stop_triggered is True

    def test_emergency_latch_survives_recovery(self):
        gate = RiskGate()
        state, budget, health = make_state(500.0)
        budget.current_real_balance = 424.0
        evaluate(gate, state, budget, health)

        budget.current_real_balance = 520.0
        probe = Probe()
        decision = evaluate(gate, state, budget, health, now=T0 + 3600, probe=probe)
        assert decision.allowed is False
        assert decision.halt is HaltReason.EMERGENCY_STOP
        assert decision.force_close is False
        # 정지 후에는 거래소 호출 없음
        assert probe.calls == 0

    def test_unrealized_loss_counts(self):
        gate = RiskGate()
        state, budget, health = make_state(500.0)
        decision = evaluate(gate, state, budget, health, unrealized=-80.0)
        assert decision.halt is HaltReason.DRAWDOWN

    def test_below_threshold_allowed(self):
        gate = RiskGate()
        state, budget, health = make_state(500.0)
        budget.current_real_balance = 426.0  # 14.8%
        decision = evaluate(gate, state, budget, health, opening=False)
        assert decision.allowed is True
        assert state.emergency_stop_triggered is False

    def test_absolute_deviation_includes_gains(self):
        """이탈률은 절대값 기준 (+15% 도 정지)"""
        gate = RiskGate()
        state, budget, health = make_state(500.0)
        budget.current_real_balance = 580.0
        decision = evaluate(gate, state, budget, health)
        assert decision.halt is HaltReason.DRAWDOWN


class TestDailyWindow:
    """3. Daily loss + rollover"""

    def test_no_reset_just_before_boundary(self):
        gate = RiskGate()
        state, budget, health = make_state()
        state.daily_trade_count = 4

        evaluate(gate, state, budget, health, now=T0 + DAY - 0.001)
        assert state.daily_trade_count == 4
        assert state.daily_start_time == T0

    def test_reset_just_after_boundary(self):
        gate = RiskGate()
        state, budget, health = make_state()
        state.daily_trade_count = 4
        state.trades_per_day_triggered = True

        evaluate(gate, state, budget, health, now=T0 + DAY + 0.001)
        assert state.daily_trade_count == 0
        assert state.trades_per_day_triggered is False
        assert state.daily_start_time == T0 + DAY + 0.001

    def test_rollover_uses_current_balance(self):
        gate = RiskGate()
        state, budget, health = make_state(500.0)
        budget.current_real_balance = 480.0
        evaluate(gate, state, budget, health, now=T0 + DAY)
        assert state.daily_start_balance == 480.0

    def test_daily_loss_latches(self):
        gate = RiskGate()
        state, budget, health = make_state(500.0)
        budget.current_real_balance = 474.0  # 5.2%

        decision = evaluate(gate, state, budget, health)
        assert decision.allowed is False
        assert decision.halt is HaltReason.DAILY_LOSS
        assert state.daily_loss_triggered is True

        # 잔고가 회복돼도 롤오버 전까지 유지
        budget.current_real_balance = 500.0
        decision = evaluate(gate, state, budget, health, now=T0 + 10)
        assert decision.halt is HaltReason.DAILY_LOSS

    def test_daily_loss_does_not_block_closing(self):
        gate = RiskGate()
        state, budget, health = make_state(500.0)
        budget.current_real_balance = 474.0
        decision = evaluate(gate, state, budget, health, opening=False)
        assert decision.allowed is True
        assert state.daily_loss_triggered is True

    def test_daily_latch_cleared_on_rollover(self):
        gate = RiskGate()
        state, budget, health = make_state(500.0)
        budget.current_real_balance = 474.0
        evaluate(gate, state, budget, health)

        decision = evaluate(gate, state, budget, health, now=T0 + DAY)
        assert decision.allowed is True
        assert state.daily_loss_triggered is False
        assert state.daily_start_balance == 474.0


class TestHourlyLoss:
    """4. Hourly loss rate"""

    def test_hourly_loss_blocks_entries(self):
        gate = RiskGate()
        state, budget, health = make_state(500.0)
        state.hourly_pnl_history = [(T0 - 100, -6.0), (T0 - 50, -6.0)]  # 2.4%

        decision = evaluate(gate, state, budget, health, now=T0 + 1)
        assert decision.halt is HaltReason.HOURLY_LOSS

    def test_hourly_loss_recovers_when_window_ages_out(self):
        gate = RiskGate()
        state, budget, health = make_state(500.0)
        state.hourly_pnl_history = [(T0 - 100, -12.0)]

        decision = evaluate(gate, state, budget, health, now=T0 - 100 + 3600)
        assert decision.allowed is True
        assert state.hourly_pnl_history == []

    def test_hourly_gain_never_blocks(self):
        gate = RiskGate()
        state, budget, health = make_state(500.0)
        state.hourly_pnl_history = [(T0, -20.0), (T0, 30.0)]
        decision = evaluate(gate, state, budget, health)
        assert decision.allowed is True


class TestEntryOnlyChecks:
    """5, 6. Trades per day / consecutive losses"""

    def test_trades_per_day_cap(self):
        gate = RiskGate()
        state, budget, health = make_state()
        state.daily_trade_count = 10

        decision = evaluate(gate, state, budget, health)
        assert decision.halt is HaltReason.TRADES_PER_DAY
        assert state.trades_per_day_triggered is True

    def test_trades_per_day_not_checked_for_exits(self):
        gate = RiskGate()
        state, budget, health = make_state()
        state.daily_trade_count = 10
        decision = evaluate(gate, state, budget, health, opening=False)
        assert decision.allowed is True
        assert state.trades_per_day_triggered is False

    def test_three_losses_refused(self):
        gate = RiskGate()
        state, budget, health = make_state()
        state.consecutive_losses = 3

        decision = evaluate(gate, state, budget, health)
        assert decision.allowed is False
        assert decision.halt is HaltReason.CONSECUTIVE_LOSSES
        assert "Consecutive loss protection" in decision.message

    def test_two_losses_halve_size(self):
        gate = RiskGate()
        state, budget, health = make_state()
        state.consecutive_losses = 2

        decision = evaluate(gate, state, budget, health)
        assert decision.allowed is True
        assert state.position_size_multiplier == 0.5


class TestRecordClose:
    """record_close() 테스트"""

    def test_loss_streak_and_size_reduction(self):
        gate = RiskGate()
        state = RiskState()
        gate.record_close(state, -1.0, T0)
        assert state.consecutive_losses == 1
        assert state.position_size_multiplier == 1.0

        gate.record_close(state, -1.0, T0 + 1)
        assert state.consecutive_losses == 2
        assert state.position_size_multiplier == 0.5

    def test_win_resets_any_streak(self):
        gate = RiskGate()
        state = RiskState()
        for i in range(7):
            gate.record_close(state, -1.0, T0 + i)
        gate.record_close(state, 0.01, T0 + 10)
        assert state.consecutive_losses == 0
        assert state.position_size_multiplier == 1.0

    def test_breakeven_counts_as_loss(self):
        gate = RiskGate()
        state = RiskState()
        gate.record_close(state, 0.0, T0)
        assert state.consecutive_losses == 1

    def test_hourly_history_pruned(self):
        gate = RiskGate()
        state = RiskState()
        gate.record_close(state, -1.0, T0)
        gate.record_close(state, -2.0, T0 + 3601)
        assert state.hourly_pnl_history == [(T0 + 3601, -2.0)]
        assert gate.hourly_pnl(state, T0 + 3601) == pytest.approx(-2.0)


class TestStateSerialization:
    """RiskState / BudgetState 직렬화"""

    def test_risk_state_round_trip(self):
        state = RiskState(consecutive_losses=2, position_size_multiplier=0.5)
        state.start_daily_window(480.0, T0)
        state.hourly_pnl_history = [(T0, -1.5)]
        state.latch_emergency("test")

        restored = RiskState.from_dict(state.to_dict())
        assert restored == state

    def test_latch_keeps_first_reason(self):
        state = RiskState()
        state.latch_emergency("first")
        state.latch_emergency("second")
        assert state.emergency_stop_reason == "first"
