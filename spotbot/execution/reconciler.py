# -*- coding: utf-8 -*-
"""
Startup Reconciler
==================

엔진 시작 시 거래소 상태와 장부를 맞춘다.

1. load_markets / fetch_balance / fetch_open_orders
2. multi-bot 모드 감지 (할당 예산 < 거래소 free 잔고 * 0.5)
   - multi-bot: 추적 잔고 기준 = 할당 예산, 잔고 검증 생략
   - single-bot: 추적 잔고 기준 = 거래소 quote free 잔고
3. base 자산 보유분(최소 주문량 이상) = 이전 세션의 고아 포지션 (진입가 모름)
   - 즉시 시장가 청산 시도
   - 청산 실패 시 현재가를 진입가로 포지션 편입 + 전략 상태 재동기화
4. 추적 포지션에 연결되지 않은 스탑 주문 전부 취소

거래소에 아예 접근 못 하면 (load_markets / fetch_balance 실패) ReconcileResult.connected = False.
그 외 reconcile 단계 오류는 로그만 남기고 빈 포지션으로 진행한다.
"""
import logging
from dataclasses import dataclass
from typing import Optional

from spotbot.config.loader import ExchangeParams, ScheduleParams
from spotbot.exchange.gateway import ExchangeGateway, free_balance, is_stop_order
from spotbot.risk.state import BudgetState
from spotbot.strategy.base import Strategy
from spotbot.utils.clock import Clock
from spotbot.utils.log import BotLogger
from .executor import OrderExecutor
from .ledger import Position, PositionLedger

logger = logging.getLogger(__name__)


@dataclass
class ReconcileResult:
    """startup reconcile 결과"""
    connected: bool
    quote_balance: float = 0.0
    base_balance: float = 0.0
    multi_bot_mode: bool = False
    orphan_found: bool = False
    orphan_closed: bool = False
    orphan_adopted: bool = False
    stop_orders_cancelled: int = 0
    error: str = ""


class StartupReconciler:
    """거래소 상태 -> 장부 정렬"""

    def __init__(
        self,
        gateway: ExchangeGateway,
        ledger: PositionLedger,
        executor: OrderExecutor,
        exchange: ExchangeParams,
        schedule: ScheduleParams,
        clock: Clock,
        strategy: Optional[Strategy] = None,
        bot_name: str = "spotbot",
    ):
        self.gateway = gateway
        self.ledger = ledger
        self.executor = executor
        self.exchange = exchange
        self.schedule = schedule
        self.clock = clock
        self.strategy = strategy
        self.log = BotLogger(logger, bot_name)

    def detect_multi_bot_mode(self, allocated_budget: float, quote_free: float) -> bool:
        """
        할당 예산이 거래소 free 잔고의 절반 미만이면 multi-bot 모드로 본다.

        휴리스틱일 뿐, 같은 계좌를 쓰는 봇들 사이의 잔고 격리는 보장하지 않음.
        """
        return allocated_budget < quote_free * self.schedule.multi_bot_ratio

    def run(self, budget: BudgetState) -> ReconcileResult:
        markets = self.gateway.load_markets()
        if not markets.ok:
            self.log.error(f"Failed to load markets: {markets}")
            return ReconcileResult(connected=False, error=str(markets))

        balance = self.gateway.fetch_balance()
        if not balance.ok:
            self.log.error(f"Failed to fetch balance: {balance}")
            return ReconcileResult(connected=False, error=str(balance))

        quote_free = free_balance(balance.value, self.exchange.quote_asset)
        base_free = free_balance(balance.value, self.exchange.base_asset)
        result = ReconcileResult(connected=True, quote_balance=quote_free, base_balance=base_free)

        self.log.info(f"{self.exchange.quote_asset} balance: ${quote_free:,.2f}")
        self.log.info(f"Allocated budget: ${budget.initial_budget:,.2f}")
        if quote_free < budget.initial_budget:
            self.log.warning(
                f"{self.exchange.quote_asset} balance (${quote_free:,.2f}) is less than "
                f"allocated budget (${budget.initial_budget:,.2f})"
            )

        try:
            self._reconcile_holdings(result)
        except Exception as e:
            # 포지션 상태가 불확실하면 빈 상태로 시작
            self.log.error(f"Reconciliation error, starting with no position: {e}")
            self.ledger.position = None
            result.error = str(e)

        result.stop_orders_cancelled = self._cancel_unbound_stops()
        self._set_real_baseline(budget, result)
        return result

    def _reconcile_holdings(self, result: ReconcileResult) -> None:
        if result.base_balance <= 0:
            self.log.info("No existing position on exchange")
            return

        min_result = self.gateway.min_amount()
        min_amount = min_result.value if min_result.ok else 0.0
        if result.base_balance < min_amount:
            self.log.info(
                f"Ignoring {self.exchange.base_asset} dust {result.base_balance} "
                f"(< minimum {min_amount})"
            )
            return

        result.orphan_found = True
        price = self.gateway.fetch_price()
        if not price.ok:
            self.log.error(f"Orphaned {self.exchange.base_asset} holding found but price unavailable: {price}")
            result.error = str(price)
            return
        current_price = price.value

        self.log.warning(
            f"Found orphaned position: {result.base_balance} {self.exchange.base_asset} "
            f"(~${result.base_balance * current_price:,.2f}), entry price unknown. Closing at market."
        )

        if self._close_orphan(result.base_balance, current_price):
            result.orphan_closed = True
            return

        amount = self.gateway.amount_to_precision(result.base_balance)
        adopted_amount = amount.value if amount.ok else result.base_balance
        position = Position(
            symbol=self.exchange.symbol,
            side='long',
            entry_price=current_price,
            amount=adopted_amount,
            current_price=current_price,
            timestamp=self.clock.now(),
            software_stop=False,
        )
        self.ledger.adopt_position(position)
        result.orphan_adopted = True
        if self.strategy is not None:
            self.strategy.restore_position_state(current_price, current_price)
        self.log.warning(
            f"Orphan close failed; adopted {adopted_amount} {self.exchange.base_asset} "
            f"with entry = current price ${current_price:,.2f}"
        )

    def _close_orphan(self, amount: float, current_price: float) -> bool:
        rounded = self.gateway.amount_to_precision(amount)
        if not rounded.ok:
            self.log.error(f"Orphan close sizing failed: {rounded}")
            return False

        order = self.gateway.market_sell(rounded.value)
        if not order.ok:
            self.executor.incidents.record_error(order)
            self.log.error(f"Orphan close failed: {order}")
            return False

        fill = self.executor.verify_fill(order.value, current_price, "Orphan close")
        if fill is None:
            return False
        sold, fill_price = fill
        self.log.info(f"Closed orphaned position: {sold} {self.exchange.base_asset} @ ${fill_price:,.2f}")
        return True

    def _cancel_unbound_stops(self) -> int:
        orders = self.gateway.fetch_open_orders()
        if not orders.ok:
            self.log.error(f"Failed to fetch open orders: {orders}")
            return 0

        bound = self.ledger.position.stop_order_id if self.ledger.position else None
        cancelled = 0
        for order in orders.value:
            if not is_stop_order(order) or order.get('id') == bound:
                continue
            cancel = self.gateway.cancel_order(order['id'])
            if cancel.ok:
                cancelled += 1
                self.log.info(f"Cancelled orphaned stop order {order['id']}")
            else:
                self.log.warning(f"Could not cancel orphaned stop order {order['id']}: {cancel}")
        return cancelled

    def _set_real_baseline(self, budget: BudgetState, result: ReconcileResult) -> None:
        quote_free = result.quote_balance
        if result.orphan_closed:
            refreshed = self.gateway.fetch_balance()
            if refreshed.ok:
                quote_free = free_balance(refreshed.value, self.exchange.quote_asset)
                result.quote_balance = quote_free

        result.multi_bot_mode = self.detect_multi_bot_mode(budget.initial_budget, quote_free)
        budget.multi_bot_mode = result.multi_bot_mode
        if result.multi_bot_mode:
            self.log.info(
                f"Multi-bot mode: budget ${budget.initial_budget:,.2f} < "
                f"{self.schedule.multi_bot_ratio:.0%} of free balance ${quote_free:,.2f}; "
                f"tracking P&L against allocated budget, balance verification disabled"
            )
            budget.set_real_baseline(budget.initial_budget)
        else:
            budget.set_real_baseline(quote_free if quote_free > 0 else budget.initial_budget)
