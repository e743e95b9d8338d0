# -*- coding: utf-8 -*-
"""
Order Executor
==============

매수 / 청산 주문 실행 + 체결 검증 + 장부 반영.

Buy:
1. notional = min(budget * 15%, budget * 12%) * size multiplier
2. 거래소 precision 으로 수량 변환, 최소 주문량 미만이면 skip
3. 시장가 매수 -> 체결 검증 (미체결이면 2초 1회 대기 후 재조회, 그래도 미체결이면 포기)
4. 슬리피지 계산 (0.1% 초과 경고), 예산 -= notional + 수수료
5. SL 이 있으면 거래소 STOP_LOSS_LIMIT 주문, 거부되면 소프트웨어 감시로 강등

Close:
1. 연결된 스탑 주문 취소 (이미 취소된 경우 무시, 거래소에서 체결된 경우 그 체결로 정산)
2. 시장가 매도 -> 같은 체결 검증
3. 순손익 = (fill - entry) * amount - (entry_notional + exit_notional) * fee_rate
4. 예산 += exit_notional - exit_fee, 추적 잔고 += 순손익, 연속 손실 상태 갱신
5. 남은 스탑 주문 정리 (best effort)

주문 실패는 예외가 아니라 Err 결과로 받고, 해당 액션만 중단한다.
"""
import logging
from typing import Optional, Tuple

from spotbot.config.loader import ExecutionParams
from spotbot.exchange.gateway import (
    ExchangeGateway,
    is_stop_order,
    order_filled,
    order_fill_price,
)
from spotbot.exchange.result import Err, ErrorKind
from spotbot.monitoring.incidents import IncidentLog
from spotbot.risk.gate import RiskGate
from spotbot.risk.state import RiskState
from spotbot.strategy.base import Signal, Strategy
from spotbot.utils.clock import Clock
from spotbot.utils.log import BotLogger
from .ledger import Position, PositionLedger, TradeRecord

logger = logging.getLogger(__name__)


class OrderExecutor:
    """주문 실행기"""

    def __init__(
        self,
        gateway: ExchangeGateway,
        ledger: PositionLedger,
        gate: RiskGate,
        risk_state: RiskState,
        params: ExecutionParams,
        clock: Clock,
        incidents: IncidentLog,
        strategy: Optional[Strategy] = None,
        bot_name: str = "spotbot",
    ):
        self.gateway = gateway
        self.ledger = ledger
        self.gate = gate
        self.risk_state = risk_state
        self.params = params
        self.clock = clock
        self.incidents = incidents
        self.strategy = strategy
        self.log = BotLogger(logger, bot_name)

    @property
    def symbol(self) -> str:
        return self.gateway.symbol

    def _fail(self, action: str, error: Err) -> None:
        self.incidents.record_error(error)
        self.log.error(f"{action} failed: {error}")

    # ------------------------------------------------------------------
    # Sizing / fills
    # ------------------------------------------------------------------
    def position_notional(self) -> float:
        """포지션 notional (사이즈 배수 반영)"""
        budget = self.ledger.budget.current_budget
        notional = min(budget * self.params.max_position_pct, budget * self.params.default_position_pct)
        return notional * self.risk_state.position_size_multiplier

    def slippage(self, fill_price: float, expected_price: float) -> float:
        if expected_price <= 0:
            return 0.0
        return abs(fill_price - expected_price) / expected_price

    def verify_fill(self, order: dict, expected_price: float, action: str) -> Optional[Tuple[float, float]]:
        """
        체결 확인 -> (filled_amount, fill_price)

        주문 응답에 체결량이 없으면 fill_wait 만큼 한 번만 기다린 뒤 재조회.
        그래도 미체결이면 주문 취소 시도 후 None (장부 변경 없음).
        """
        if order_filled(order) > 0:
            return order_filled(order), order_fill_price(order, expected_price)

        order_id = order.get('id')
        self.log.info(f"{action} order {order_id} not filled yet, re-checking in {self.params.fill_wait:.0f}s")
        self.clock.sleep(self.params.fill_wait)

        result = self.gateway.fetch_order(order_id)
        if result.ok and order_filled(result.value) > 0:
            return order_filled(result.value), order_fill_price(result.value, expected_price)

        if result.ok:
            self._fail(action, Err(ErrorKind.EXCHANGE, f"order {order_id} unfilled after wait", "verify_fill"))
        else:
            self._fail(action, result)

        cancel = self.gateway.cancel_order(order_id)
        if not cancel.ok:
            self.log.debug(f"Cancel of unfilled order {order_id} ignored: {cancel}")
        return None

    # ------------------------------------------------------------------
    # Buy
    # ------------------------------------------------------------------
    def buy(self, signal: Signal, current_price: float) -> Optional[Position]:
        """시장가 매수 -> Position (실패 시 None)"""
        if self.ledger.has_position:
            self.log.debug("Already have open position, skipping buy signal")
            return None

        target_notional = self.position_notional()
        if target_notional <= 0 or current_price <= 0:
            self.log.warning(f"Insufficient budget for trade (${self.ledger.budget.current_budget:,.2f})")
            return None

        amount_result = self.gateway.amount_to_precision(target_notional / current_price)
        if not amount_result.ok:
            if amount_result.kind is ErrorKind.ORDER_REJECTED:
                self.log.warning(f"Order size too small: ${target_notional:,.2f} @ ${current_price:,.2f}")
            else:
                self._fail("Buy sizing", amount_result)
            return None
        amount = amount_result.value

        min_result = self.gateway.min_amount()
        if not min_result.ok:
            self._fail("Buy sizing", min_result)
            return None
        if amount < min_result.value:
            self.log.warning(f"Order size too small: {amount} < {min_result.value}")
            return None

        order_result = self.gateway.market_buy(amount)
        if not order_result.ok:
            self._fail("Buy", order_result)
            return None

        fill = self.verify_fill(order_result.value, current_price, "Buy")
        if fill is None:
            return None
        filled_amount, fill_price = fill

        slippage = self.slippage(fill_price, current_price)
        if slippage > self.params.slippage_warn_pct:
            self.log.warning(
                f"High buy slippage {slippage * 100:.3f}%: expected ${current_price:,.2f}, "
                f"filled ${fill_price:,.2f}"
            )

        notional = filled_amount * fill_price
        fee = notional * self.params.fee_rate
        position = Position(
            symbol=self.symbol,
            side='long',
            entry_price=fill_price,
            amount=filled_amount,
            current_price=current_price,
            timestamp=self.clock.now(),
            stop_loss=signal.stop_loss,
            take_profit=signal.take_profit,
            actual_fill_price=fill_price,
            expected_price=current_price,
            slippage=slippage,
        )
        position.mark(current_price)

        self.ledger.open_position(position, notional, fee)
        self.ledger.record_slippage(slippage)
        self.gate.record_entry(self.risk_state)
        if self.strategy is not None:
            self.strategy.record_trade()

        self.log.trade(
            f"BUY: {filled_amount} {self.symbol} @ ${fill_price:,.2f} | "
            f"Value: ${notional:,.2f} | Fee: ${fee:,.4f} | "
            f"SL: {signal.stop_loss} | TP: {signal.take_profit} | "
            f"Order ID: {order_result.value.get('id')}"
        )

        if signal.stop_loss:
            self.place_stop_loss(position)
        return position

    def place_stop_loss(self, position: Position) -> bool:
        """
        거래소 스탑 주문 (STOP_LOSS_LIMIT, limit = stop * 0.99)

        거부되면 software_stop 플래그만 세우고 매수는 유지한다.
        """
        stop = self.gateway.price_to_precision(position.stop_loss)
        limit = self.gateway.price_to_precision(position.stop_loss * self.params.stop_limit_offset)
        amount = self.gateway.amount_to_precision(position.amount)
        for result in (stop, limit, amount):
            if not result.ok:
                return self._degrade_stop(position, result)

        result = self.gateway.stop_loss_limit(amount.value, stop.value, limit.value)
        if not result.ok:
            return self._degrade_stop(position, result)

        position.stop_order_id = result.value.get('id')
        position.software_stop = False
        self.log.info(f"Stop loss order {position.stop_order_id} placed at ${stop.value:,.2f}")
        return True

    def _degrade_stop(self, position: Position, error: Err) -> bool:
        self.incidents.record_error(error)
        position.software_stop = True
        self.log.warning(
            f"Stop loss order rejected ({error}); falling back to software-monitored exit "
            f"at ${position.stop_loss:,.2f}"
        )
        return False

    # ------------------------------------------------------------------
    # Close
    # ------------------------------------------------------------------
    def _release_bound_stop(self, position: Position) -> Tuple[bool, Optional[dict]]:
        """
        연결된 스탑 주문 해제

        Returns:
            (청산 진행 가능 여부, 이미 체결된 스탑 주문 또는 None)
        """
        if not position.stop_order_id:
            return True, None
        order_id = position.stop_order_id
        result = self.gateway.cancel_order(order_id)
        if result.ok:
            self.log.debug(f"Cancelled stop order {order_id}")
        elif result.kind is ErrorKind.ORDER_NOT_FOUND:
            # 취소 불가 = 이미 취소됐거나 거래소에서 체결됨
            status = self.gateway.fetch_order(order_id)
            if not status.ok:
                self._fail("Stop order status", status)
                return False, None
            if order_filled(status.value) > 0:
                return True, status.value
            self.log.debug(f"Stop order {order_id} already cancelled")
        else:
            self.incidents.record_error(result)
            self.log.warning(f"Could not cancel stop order {order_id}: {result}")
            return True, None
        position.stop_order_id = None
        if position.stop_loss is not None:
            position.software_stop = True
        return True, None

    def close(self, current_price: float, reason: str) -> Optional[TradeRecord]:
        """전량 시장가 매도 -> TradeRecord (실패 시 None, 포지션 유지)"""
        position = self.ledger.position
        if position is None:
            return None

        proceed, stop_fill = self._release_bound_stop(position)
        if stop_fill is not None:
            return self.settle_stop_fill(stop_fill, current_price)
        if not proceed:
            return None

        amount_result = self.gateway.amount_to_precision(position.amount)
        if not amount_result.ok:
            self._fail("Close sizing", amount_result)
            return None

        order_result = self.gateway.market_sell(amount_result.value)
        if not order_result.ok:
            self._fail(f"Close ({reason})", order_result)
            return None

        fill = self.verify_fill(order_result.value, current_price, "Close")
        if fill is None:
            return None
        sold, fill_price = fill
        return self._settle(position, sold, fill_price, current_price, reason, order_result.value.get('id'))

    def settle_stop_fill(self, order: dict, current_price: float) -> Optional[TradeRecord]:
        """거래소에서 체결된 스탑 주문으로 포지션 정산"""
        position = self.ledger.position
        if position is None:
            return None
        sold = order_filled(order)
        fill_price = order_fill_price(order, position.stop_loss or current_price)
        position.stop_order_id = None
        self.log.warning(f"Exchange stop order {order.get('id')} filled at ${fill_price:,.2f}")
        expected = position.stop_loss if position.stop_loss is not None else current_price
        return self._settle(position, sold, fill_price, expected, "Stop loss (exchange)", order.get('id'))

    def _settle(
        self,
        position: Position,
        sold: float,
        fill_price: float,
        expected_price: float,
        reason: str,
        order_id: Optional[str],
    ) -> TradeRecord:
        """매도 체결 -> 수수료 / 손익 계산 + 장부 반영"""
        if sold < position.amount:
            self.log.warning(
                f"Partial close fill: {sold} of {position.amount}; "
                f"remainder is left for startup reconciliation"
            )

        entry_notional = sold * position.entry_price
        exit_notional = sold * fill_price
        exit_fee = exit_notional * self.params.fee_rate
        fees = (entry_notional + exit_notional) * self.params.fee_rate
        gross = sold * (fill_price - position.entry_price)
        net = gross - fees
        slippage = self.slippage(fill_price, expected_price)
        if slippage > self.params.slippage_warn_pct:
            self.log.warning(
                f"High sell slippage {slippage * 100:.3f}%: expected ${expected_price:,.2f}, "
                f"filled ${fill_price:,.2f}"
            )

        now = self.clock.now()
        trade = TradeRecord(
            profit=net,
            win=net > 0,
            entry_price=position.entry_price,
            exit_price=fill_price,
            actual_fill_price=fill_price,
            expected_price=expected_price,
            slippage=slippage,
            amount=sold,
            reason=reason,
            timestamp=now,
            fees=fees,
            entry_notional=entry_notional,
            exit_notional=exit_notional,
        )
        self.ledger.close_position(trade, exit_notional, exit_fee)
        self.ledger.record_slippage(slippage)
        self.gate.record_close(self.risk_state, net, now)

        pct = net / entry_notional * 100 if entry_notional else 0.0
        self.log.trade(
            f"SELL: {sold} {self.symbol} @ ${fill_price:,.2f} | "
            f"PnL: ${net:,.4f} ({pct:+.2f}%) | Fees: ${fees:,.4f} | "
            f"Reason: {reason} | Order ID: {order_id}"
        )

        self.sweep_stop_orders()
        return trade

    def check_exit_conditions(self, current_price: float) -> Optional[TradeRecord]:
        """SL / TP 체크 (tick 당 최대 1회 청산)"""
        position = self.ledger.position
        if position is None:
            return None
        if position.stop_loss is not None and current_price <= position.stop_loss:
            self.log.warning(f"Stop loss triggered at ${current_price:,.2f}")
            return self.close(current_price, "Stop loss")
        if position.take_profit is not None and current_price >= position.take_profit:
            self.log.info(f"Take profit triggered at ${current_price:,.2f}")
            return self.close(current_price, "Take profit")
        return None

    def sweep_stop_orders(self) -> int:
        """
        추적 중인 포지션에 연결되지 않은 스탑 주문 취소 (best effort)

        Returns:
            취소한 주문 수
        """
        result = self.gateway.fetch_open_orders()
        if not result.ok:
            self.log.debug(f"Stop order sweep skipped: {result}")
            return 0

        bound = self.ledger.position.stop_order_id if self.ledger.position else None
        cancelled = 0
        for order in result.value:
            if not is_stop_order(order) or order.get('id') == bound:
                continue
            cancel = self.gateway.cancel_order(order['id'])
            if cancel.ok:
                cancelled += 1
            else:
                self.log.debug(f"Stray stop order {order['id']} cancel ignored: {cancel}")
        if cancelled:
            self.log.info(f"Cancelled {cancelled} stray stop order(s)")
        return cancelled
