# -*- coding: utf-8 -*-
"""
Order Executor Tests
====================

매수 / 청산 / 체결 검증 / 스탑 주문 단위 테스트 (PaperExchange 사용).
"""
import sys
import os
sys.path.insert(0, os.path.dirname(os.path.dirname(os.path.abspath(__file__))))

import ccxt
import pytest

from spotbot.config import ExecutionParams
from spotbot.exchange import ExchangeGateway, PaperExchange
from spotbot.execution import OrderExecutor, Position, PositionLedger, LedgerError
from spotbot.monitoring import IncidentLog
from spotbot.risk import BudgetState, RiskGate, RiskState
from spotbot.strategy import Action, Signal
from spotbot.utils import ManualClock

T0 = 1_700_000_000.0


class CountingStrategy:
    name = "counting"

    def __init__(self):
        self.trades = 0

    def analyze(self, candles, current_price):
        return Signal.hold(current_price)

    def record_trade(self):
        self.trades += 1

    def restore_position_state(self, entry_price, current_price):
        pass

    def reset(self):
        pass


def make_executor(price=30000.0, balances=None, budget=500.0, **paper_kwargs):
    clock = ManualClock(T0)
    paper = PaperExchange(
        price=price,
        balances=balances if balances is not None else {"USDT": 1000.0},
        time_fn=clock.now,
        **paper_kwargs,
    )
    paper.load_markets()
    ledger = PositionLedger(BudgetState.from_budget(budget))
    risk_state = RiskState()
    executor = OrderExecutor(
        gateway=ExchangeGateway(paper, "BTC/USDT"),
        ledger=ledger,
        gate=RiskGate(),
        risk_state=risk_state,
        params=ExecutionParams(),
        clock=clock,
        incidents=IncidentLog(),
        strategy=CountingStrategy(),
    )
    return executor, paper, clock


def buy_signal(price, stop_loss=None, take_profit=None):
    return Signal(Action.BUY, price, "test entry", stop_loss=stop_loss, take_profit=take_profit)


def open_manual_position(executor, paper, entry=100.0, amount=1.0, **kwargs):
    """거래소 보유분 + 장부 포지션을 직접 구성"""
    paper.free["BTC"] = paper.free.get("BTC", 0.0) + amount
    position = Position(
        symbol="BTC/USDT", side="long", entry_price=entry, amount=amount,
        current_price=entry, timestamp=T0, **kwargs,
    )
    executor.ledger.open_position(position, entry * amount, entry * amount * 0.00075)
    return position


class TestBuy:
    """buy() 테스트"""

    def test_scenario_a_budget_math(self):
        """budget $500 -> notional $60, fee $0.045, budget $439.955"""
        executor, paper, _ = make_executor(price=30000.0)
        position = executor.buy(buy_signal(30000.0), 30000.0)

        assert position is not None
        assert position.amount == pytest.approx(0.002)
        assert position.entry_notional == pytest.approx(60.0)
        assert executor.ledger.budget.current_budget == pytest.approx(439.955)
        assert executor.ledger.budget.current_real_balance == 500.0

    def test_buy_records_entry(self):
        executor, paper, _ = make_executor()
        executor.buy(buy_signal(30000.0), 30000.0)
        assert executor.risk_state.daily_trade_count == 1
        assert executor.strategy.trades == 1
        assert len(executor.ledger.slippage_samples) == 1

    def test_multiplier_halves_notional(self):
        executor, paper, _ = make_executor(price=30000.0)
        executor.risk_state.position_size_multiplier = 0.5
        position = executor.buy(buy_signal(30000.0), 30000.0)
        assert position.entry_notional == pytest.approx(30.0)

    def test_no_second_position(self):
        executor, paper, _ = make_executor()
        executor.buy(buy_signal(30000.0), 30000.0)
        assert executor.buy(buy_signal(30000.0), 30000.0) is None
        assert len(paper.calls_to("create_market_buy_order")) == 1

    def test_below_minimum_amount(self):
        executor, paper, _ = make_executor(price=30000.0, min_amount=0.01)
        assert executor.buy(buy_signal(30000.0), 30000.0) is None
        assert paper.calls_to("create_market_buy_order") == []
        assert executor.ledger.budget.current_budget == 500.0

    def test_order_rejection_leaves_ledger(self):
        executor, paper, _ = make_executor()
        paper.fail("create_market_buy_order", ccxt.InsufficientFunds("not enough USDT"))

        assert executor.buy(buy_signal(30000.0), 30000.0) is None
        assert executor.ledger.position is None
        assert executor.ledger.budget.current_budget == 500.0
        assert executor.incidents.errors["insufficient_funds"] == 1

    def test_slippage_recorded(self):
        executor, paper, _ = make_executor(price=30000.0, fill_slippage=0.002)
        position = executor.buy(buy_signal(30000.0), 30000.0)
        assert position.actual_fill_price == pytest.approx(30060.0)
        assert position.expected_price == 30000.0
        assert position.slippage == pytest.approx(0.002)


class TestFillVerification:
    """체결 검증 테스트"""

    def test_delayed_fill_waits_once(self):
        executor, paper, clock = make_executor(fill_mode="delayed")
        position = executor.buy(buy_signal(30000.0), 30000.0)

        assert position is not None
        assert clock.now() == T0 + 2.0
        assert len(paper.calls_to("fetch_order")) == 1

    def test_unfilled_order_creates_no_position(self):
        """미체결 -> 포지션 없음, 예산 변화 없음"""
        executor, paper, clock = make_executor(fill_mode="never")
        assert executor.buy(buy_signal(30000.0), 30000.0) is None

        assert executor.ledger.position is None
        assert executor.ledger.budget.current_budget == 500.0
        assert len(paper.calls_to("fetch_order")) == 1
        assert len(paper.calls_to("cancel_order")) == 1
        assert clock.now() == T0 + 2.0

    def test_fetch_failure_after_wait(self):
        executor, paper, _ = make_executor(fill_mode="delayed")
        paper.fail("fetch_order", ccxt.RequestTimeout("timeout"))
        assert executor.buy(buy_signal(30000.0), 30000.0) is None
        assert executor.incidents.errors["connectivity"] == 1


class TestStopLoss:
    """거래소 스탑 주문"""

    def test_stop_order_bound(self):
        executor, paper, _ = make_executor()
        position = executor.buy(buy_signal(30000.0, stop_loss=29000.0), 30000.0)

        assert position.stop_order_id is not None
        assert position.software_stop is False
        args = paper.calls_to("create_order")[0]
        assert args[1] == "STOP_LOSS_LIMIT"
        assert args[4] == pytest.approx(28710.0)  # 29000 * 0.99
        assert args[5] == {"stopPrice": 29000.0, "timeInForce": "GTC"}

    def test_rejected_stop_degrades_to_software(self):
        """스탑 거부 -> 매수는 유지, 소프트웨어 감시"""
        executor, paper, _ = make_executor(reject_stop_orders=True)
        position = executor.buy(buy_signal(30000.0, stop_loss=29000.0), 30000.0)

        assert position is not None
        assert executor.ledger.position is position
        assert position.stop_order_id is None
        assert position.software_stop is True
        assert executor.incidents.errors["order_rejected"] == 1


class TestClose:
    """close() 테스트"""

    def test_scenario_b_profit_math(self):
        """entry $100, amount 1, exit $102 -> net $1.8485 (win)"""
        executor, paper, _ = make_executor(price=102.0)
        open_manual_position(executor, paper, entry=100.0, amount=1.0)
        budget_before = executor.ledger.budget.current_budget

        trade = executor.close(102.0, "signal")

        assert trade.fees == pytest.approx(0.1515)
        assert trade.profit == pytest.approx(1.8485)
        assert trade.win is True
        assert executor.ledger.position is None
        assert executor.ledger.budget.current_budget == pytest.approx(budget_before + 102.0 - 0.0765)
        assert executor.ledger.budget.current_real_balance == pytest.approx(500.0 + 1.8485)
        assert executor.risk_state.hourly_pnl_history == [(T0, pytest.approx(1.8485))]

    def test_losing_close_updates_streak(self):
        executor, paper, _ = make_executor(price=95.0)
        open_manual_position(executor, paper)
        executor.risk_state.consecutive_losses = 1

        trade = executor.close(95.0, "signal")
        assert trade.win is False
        assert executor.risk_state.consecutive_losses == 2
        assert executor.risk_state.position_size_multiplier == 0.5

    def test_budget_round_trip_exact(self):
        """예산 = 이전 - 매수 notional - 수수료 + 매도 notional - 수수료"""
        executor, paper, _ = make_executor(price=30000.0)
        budget0 = executor.ledger.budget.current_budget
        position = executor.buy(buy_signal(30000.0), 30000.0)
        entry_cost = position.entry_notional * (1 + 0.00075)
        assert executor.ledger.budget.current_budget == pytest.approx(budget0 - entry_cost, abs=1e-9)

        paper.set_price(31000.0)
        trade = executor.close(31000.0, "signal")
        exit_proceeds = trade.exit_notional * (1 - 0.00075)
        assert executor.ledger.budget.current_budget == pytest.approx(
            budget0 - entry_cost + exit_proceeds, abs=1e-9
        )

    def test_close_cancels_bound_stop(self):
        executor, paper, _ = make_executor()
        position = executor.buy(buy_signal(30000.0, stop_loss=29000.0), 30000.0)
        stop_id = position.stop_order_id

        executor.close(30000.0, "signal")
        assert (stop_id, "BTC/USDT") in paper.calls_to("cancel_order")
        assert paper.fetch_open_orders("BTC/USDT") == []

    def test_already_cancelled_stop_ignored(self):
        executor, paper, _ = make_executor()
        position = executor.buy(buy_signal(30000.0, stop_loss=29000.0), 30000.0)
        paper.cancel_order(position.stop_order_id, "BTC/USDT")

        trade = executor.close(30000.0, "signal")
        assert trade is not None
        assert "order_not_found" not in executor.incidents.errors

    def test_exchange_stop_fill_settled(self):
        """거래소 스탑 체결 -> 그 체결로 정산, 시장가 매도 없음"""
        executor, paper, _ = make_executor(price=30000.0)
        executor.buy(buy_signal(30000.0, stop_loss=29000.0), 30000.0)
        budget_before = executor.ledger.budget.current_budget

        paper.set_price(28800.0)
        trade = executor.check_exit_conditions(28800.0)

        assert trade.reason == "Stop loss (exchange)"
        assert trade.exit_price == 28800.0
        assert trade.expected_price == 29000.0
        assert trade.profit == pytest.approx(-2.4 - (60.0 + 57.6) * 0.00075)
        assert executor.ledger.position is None
        assert executor.ledger.budget.current_budget == pytest.approx(budget_before + 57.6 - 57.6 * 0.00075)
        assert executor.ledger.budget.current_real_balance == pytest.approx(500.0 + trade.profit)
        assert executor.risk_state.consecutive_losses == 1
        assert len(executor.risk_state.hourly_pnl_history) == 1
        assert paper.calls_to("create_market_sell_order") == []

    def test_stop_status_unknown_keeps_position(self):
        """스탑 상태 조회 실패 -> 이번 tick 은 청산 보류, 다음 tick 에 정산"""
        executor, paper, _ = make_executor(price=30000.0)
        position = executor.buy(buy_signal(30000.0, stop_loss=29000.0), 30000.0)
        paper.set_price(28800.0)
        paper.fail("fetch_order", ccxt.RequestTimeout("timeout"))

        assert executor.close(28800.0, "Stop loss") is None
        assert executor.ledger.position is position
        assert paper.calls_to("create_market_sell_order") == []
        assert executor.incidents.errors["connectivity"] == 1

        trade = executor.close(28800.0, "Stop loss")
        assert trade.reason == "Stop loss (exchange)"
        assert executor.ledger.position is None

    def test_sweeps_stray_stops(self):
        executor, paper, _ = make_executor(price=102.0)
        open_manual_position(executor, paper)
        paper.free["BTC"] += 0.5
        paper.create_order("BTC/USDT", "STOP_LOSS_LIMIT", "sell", 0.5, 90.0, {"stopPrice": 91.0})

        executor.close(102.0, "signal")
        assert paper.fetch_open_orders("BTC/USDT") == []

    def test_failed_sell_keeps_position(self):
        executor, paper, _ = make_executor(price=102.0)
        position = open_manual_position(executor, paper)
        paper.fail("create_market_sell_order", ccxt.ExchangeNotAvailable("maintenance"))

        assert executor.close(102.0, "signal") is None
        assert executor.ledger.position is position
        assert executor.ledger.trades == []
        assert executor.ledger.budget.current_real_balance == 500.0

    def test_close_without_position(self):
        executor, paper, _ = make_executor()
        assert executor.close(30000.0, "signal") is None
        assert paper.calls_to("create_market_sell_order") == []


class TestExitConditions:
    """SL / TP 체크"""

    def test_stop_loss_triggers(self):
        executor, paper, _ = make_executor(price=94.0)
        open_manual_position(executor, paper, stop_loss=95.0, take_profit=110.0)
        trade = executor.check_exit_conditions(94.0)
        assert trade.reason == "Stop loss"

    def test_take_profit_triggers(self):
        executor, paper, _ = make_executor(price=111.0)
        open_manual_position(executor, paper, stop_loss=95.0, take_profit=110.0)
        trade = executor.check_exit_conditions(111.0)
        assert trade.reason == "Take profit"

    def test_inside_band_no_action(self):
        executor, paper, _ = make_executor(price=100.0)
        open_manual_position(executor, paper, stop_loss=95.0, take_profit=110.0)
        assert executor.check_exit_conditions(100.0) is None
        assert paper.calls_to("create_market_sell_order") == []


class TestLedger:
    """PositionLedger 불변식"""

    def test_single_position_invariant(self):
        ledger = PositionLedger(BudgetState.from_budget(500.0))
        position = Position("BTC/USDT", "long", 100.0, 1.0, 100.0, T0)
        ledger.open_position(position, 100.0, 0.075)
        with pytest.raises(LedgerError):
            ledger.open_position(position, 100.0, 0.075)

    def test_mark_price(self):
        ledger = PositionLedger(BudgetState.from_budget(500.0))
        ledger.open_position(Position("BTC/USDT", "long", 100.0, 2.0, 100.0, T0), 200.0, 0.15)
        ledger.mark_price(97.0)
        assert ledger.unrealized_pnl == pytest.approx(-6.0)
        # 미실현 손익은 추적 잔고에 반영 안 됨
        assert ledger.budget.current_real_balance == 500.0
