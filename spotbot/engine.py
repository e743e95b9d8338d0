# -*- coding: utf-8 -*-
"""
Trading Engine - Risk-gated Live Execution
==========================================

봇 인스턴스 하나(전략 1개 + 심볼 1개)의 실거래 엔진.

tick 흐름:
    process_signal(signal, price)
      -> RiskGate.evaluate()          (연결 / drawdown / 일일 / 시간당 / 거래수 / 연패)
      -> OrderExecutor.buy / close    (게이트 통과 시)
      -> 포지션 평가가 갱신
      -> SL / TP 체크
      -> 잔고 검증 (10분 주기, single-bot 모드만)

주의:
- 실거래 모드는 실제 자금으로 주문한다
- 외부 호출 실패로 호스트 프로세스가 죽지 않도록 public 메서드는 예외를 삼키고 로그만 남긴다
- emergency stop 이후에는 재시작 전까지 어떤 주문도 내지 않는다

사용법:
```python
from spotbot.config import load_config
from spotbot.engine import TradingEngine
from spotbot.strategy import create_strategy

config = load_config()
engine = TradingEngine(create_strategy(config.strategy), config)
if engine.start():
    engine.process_signal(signal, current_price)
    print(engine.get_stats().to_dict())
    engine.stop()
```
"""
import logging
from typing import Any, Dict, Optional

from spotbot.config.loader import EngineConfig
from spotbot.exchange.factory import create_exchange
from spotbot.exchange.gateway import ExchangeGateway, free_balance
from spotbot.execution.executor import OrderExecutor
from spotbot.execution.ledger import PositionLedger
from spotbot.execution.reconciler import ReconcileResult, StartupReconciler
from spotbot.monitoring.incidents import IncidentLog
from spotbot.monitoring.stats import BotStats, StatsReporter
from spotbot.risk.gate import HaltReason, RiskGate
from spotbot.risk.state import BudgetState, ConnectionHealth, RiskState
from spotbot.strategy.base import Action, Signal, Strategy
from spotbot.utils.clock import Clock, SystemClock
from spotbot.utils.log import BotLogger
from spotbot.utils.schedule import PeriodicCheck

logger = logging.getLogger(__name__)


class TradingEngine:
    """리스크 게이트 실거래 엔진"""

    def __init__(
        self,
        strategy: Strategy,
        config: EngineConfig,
        client: Optional[Any] = None,
        clock: Optional[Clock] = None,
        bot_name: Optional[str] = None,
    ):
        self.strategy = strategy
        self.config = config
        self.clock = clock or SystemClock()
        self.bot_name = bot_name or f"{strategy.name}-{config.exchange.mode}"
        self.log = BotLogger(logger, self.bot_name)

        self.gateway = ExchangeGateway(client if client is not None else create_exchange(config),
                                       config.exchange.symbol)

        # 상태
        self.budget = BudgetState.from_budget(config.budget)
        self.risk_state = RiskState()
        self.health = ConnectionHealth()
        self.incidents = IncidentLog()
        self.ledger = PositionLedger(self.budget, config.execution.slippage_sample_size)

        # 구성 요소
        self.gate = RiskGate(config.risk, config.schedule)
        self.executor = OrderExecutor(
            gateway=self.gateway,
            ledger=self.ledger,
            gate=self.gate,
            risk_state=self.risk_state,
            params=config.execution,
            clock=self.clock,
            incidents=self.incidents,
            strategy=strategy,
            bot_name=self.bot_name,
        )
        self.reconciler = StartupReconciler(
            gateway=self.gateway,
            ledger=self.ledger,
            executor=self.executor,
            exchange=config.exchange,
            schedule=config.schedule,
            clock=self.clock,
            strategy=strategy,
            bot_name=self.bot_name,
        )
        self.stats = StatsReporter(
            self.ledger, self.risk_state, self.health, self.incidents,
            config.risk, config.schedule,
        )

        self.balance_check = PeriodicCheck("balance", config.schedule.balance_check)
        self.last_balance_check: Optional[float] = None
        self.balance_discrepancy: Optional[float] = None
        self.reconcile_result: Optional[ReconcileResult] = None
        self.is_running = False

    # ------------------------------------------------------------------
    # Lifecycle
    # ------------------------------------------------------------------
    def start(self) -> bool:
        """
        startup reconcile 후 실행 상태로 전환

        Returns:
            거래소 접속 + reconcile 성공 여부 (실패 시 엔진은 정지 상태 유지)
        """
        if self.is_running:
            return True

        try:
            result = self.reconciler.run(self.budget)
        except Exception as e:
            self.log.error(f"Failed to start: {e}", exc_info=True)
            return False

        self.reconcile_result = result
        if not result.connected:
            self.health.mark(False, self.clock.now(), result.error)
            self.log.error(f"Failed to start: exchange unreachable ({result.error})")
            return False

        now = self.clock.now()
        self.health.mark(True, now)
        self.risk_state.start_daily_window(self.budget.current_real_balance, now)
        self.balance_check.mark(now)
        self.is_running = True

        self.log.info(f"Strategy: {self.strategy.name}")
        self.log.info(
            f"Trading engine started ({self.config.exchange.mode}, {self.config.exchange.symbol}) | "
            f"Budget: ${self.budget.initial_budget:,.2f} | "
            f"Tracked balance: ${self.budget.initial_real_balance:,.2f}"
        )
        return True

    def stop(self) -> None:
        """오픈 포지션 청산 + 미체결 주문 취소 + 정지"""
        self.is_running = False
        self.log.info("Stopping trading engine...")

        try:
            if self.ledger.has_position:
                price = self.gateway.fetch_price()
                if price.ok:
                    self.log.info("Closing 1 open position")
                    self.executor.close(price.value, "Manual stop")
                else:
                    self.incidents.record_error(price)
                    self.log.error(f"Cannot close position on stop, price unavailable: {price}")

            orders = self.gateway.fetch_open_orders()
            if orders.ok and orders.value:
                self.log.info(f"Cancelling {len(orders.value)} open order(s)")
                for order in orders.value:
                    cancel = self.gateway.cancel_order(order['id'])
                    if not cancel.ok:
                        self.log.warning(f"Could not cancel order {order['id']}: {cancel}")
            elif not orders.ok:
                self.log.error(f"Could not list open orders on stop: {orders}")

            self.strategy.reset()
            self.log.info("Trading engine stopped")
        except Exception as e:
            self.log.error(f"Error stopping engine: {e}", exc_info=True)

    # ------------------------------------------------------------------
    # Tick
    # ------------------------------------------------------------------
    def process_signal(self, signal: Signal, current_price: float) -> None:
        """tick 처리 (예외를 밖으로 던지지 않음)"""
        if not self.is_running:
            return
        try:
            self._process(signal, current_price)
        except Exception as e:
            self.log.error(f"Error processing signal: {e}", exc_info=True)

    def _process(self, signal: Signal, current_price: float) -> None:
        self.log.debug(f"Signal: {signal.action.value} - {signal.reason}")
        now = self.clock.now()
        self.ledger.mark_price(current_price)

        opening = signal.action is Action.BUY and not self.ledger.has_position
        decision = self.gate.evaluate(
            self.risk_state,
            self.budget,
            self.health,
            now=now,
            opening=opening,
            unrealized_pnl=self.ledger.unrealized_pnl,
            probe=self.gateway.fetch_time,
        )

        if decision.is_infra_error:
            self.incidents.record_error(decision.error)
            self.log.error(f"Exchange connection check failed, skipping tick: {decision.message}")
            return

        if decision.force_close:
            self.incidents.record_halt(decision.halt, decision.message)
            self._liquidate(current_price)
            return

        if decision.halt is HaltReason.EMERGENCY_STOP:
            self.incidents.record_halt(decision.halt, decision.message)
            self.log.debug(f"HALT [{decision.halt.value}] {decision.message}")
            return

        if signal.action is Action.BUY:
            if decision.allowed:
                self.executor.buy(signal, current_price)
            else:
                self.incidents.record_halt(decision.halt, decision.message)
                self.log.warning(f"HALT [{decision.halt.value}] {decision.message}; buy signal ignored")
        elif signal.is_exit:
            self.executor.close(current_price, signal.reason or signal.action.value)

        self.ledger.mark_price(current_price)
        self.executor.check_exit_conditions(current_price)

        if self.balance_check.is_due(now):
            self.reconcile_balance(current_price, now)

    def _liquidate(self, current_price: float) -> None:
        """drawdown 한도 도달 시 강제 청산 (이후 재시작 전까지 주문 없음)"""
        self.log.critical(f"HALT [{HaltReason.DRAWDOWN.value}] {self.risk_state.emergency_stop_reason}")
        if not self.ledger.has_position:
            return
        trade = self.executor.close(current_price, "Emergency stop: max drawdown")
        if trade is None:
            self.log.critical("Forced liquidation failed; manual intervention required")

    def reconcile_balance(self, current_price: float, now: float) -> Optional[float]:
        """
        거래소 평가액 vs 추적 평가액 비교 (장부는 변경하지 않음)

        Returns:
            불일치율 (%) 또는 None (multi-bot 모드 / 조회 실패)
        """
        self.balance_check.mark(now)
        if self.budget.multi_bot_mode:
            return None

        result = self.gateway.fetch_balance()
        if not result.ok:
            self.incidents.record_error(result)
            self.log.warning(f"Balance check failed: {result}")
            return None

        balance = result.value
        quote = free_balance(balance, self.config.exchange.quote_asset)
        base_entry = balance.get(self.config.exchange.base_asset) or {}
        base = float(base_entry.get('total') or base_entry.get('free') or 0.0)
        exchange_value = quote + base * current_price
        tracked_value = self.budget.current_real_balance + self.ledger.unrealized_pnl

        self.last_balance_check = now
        if tracked_value <= 0:
            self.balance_discrepancy = None
            return None

        discrepancy = abs(exchange_value - tracked_value) / tracked_value
        self.balance_discrepancy = discrepancy * 100
        if discrepancy > self.config.schedule.balance_discrepancy_warn:
            self.log.warning(
                f"Balance discrepancy {discrepancy * 100:.2f}%: exchange ${exchange_value:,.2f} "
                f"vs tracked ${tracked_value:,.2f}"
            )
        return self.balance_discrepancy

    # ------------------------------------------------------------------
    # Reporting
    # ------------------------------------------------------------------
    def get_stats(self) -> BotStats:
        return self.stats.report(
            now=self.clock.now(),
            bot_name=self.bot_name,
            strategy_name=self.strategy.name,
            is_running=self.is_running,
            last_balance_check=self.last_balance_check,
            balance_discrepancy=self.balance_discrepancy,
        )

    def snapshot(self) -> Dict[str, Any]:
        """직렬화 가능한 엔진 상태"""
        return {
            'bot_name': self.bot_name,
            'budget': self.budget.to_dict(),
            'risk': self.risk_state.to_dict(),
            'position': self.ledger.position.to_dict() if self.ledger.position else None,
            'trades': [t.to_dict() for t in self.ledger.trades],
        }
