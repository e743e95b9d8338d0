# -*- coding: utf-8 -*-
"""
Exchange Gateway
================

ccxt 형태의 클라이언트를 한 심볼에 묶고, 모든 호출을 Ok / Err 결과로 감싼다.

지원 클라이언트: ccxt.Exchange 인스턴스 또는 PaperExchange
(load_markets, fetch_balance, fetch_ticker, fetch_open_orders,
create_market_buy_order, create_market_sell_order, create_order,
cancel_order, fetch_order, fetch_time, amount_to_precision,
price_to_precision, market).
"""
import logging
from typing import Any, Callable, Dict

from .result import Ok, Err, ErrorKind, Result, classify_exception

logger = logging.getLogger(__name__)

STOP_ORDER_TYPES = ('stop_loss_limit', 'stop_loss', 'stop_limit', 'stop', 'stop-loss')


def is_stop_order(order: Dict[str, Any]) -> bool:
    """스탑 계열 주문 여부"""
    order_type = str(order.get('type') or '').lower()
    return order_type in STOP_ORDER_TYPES


def free_balance(balance: Dict[str, Any], asset: str) -> float:
    """fetch_balance() 결과에서 자산의 free 수량"""
    entry = balance.get(asset) or {}
    return float(entry.get('free') or 0.0)


def order_filled(order: Dict[str, Any]) -> float:
    return float(order.get('filled') or 0.0)


def order_fill_price(order: Dict[str, Any], fallback: float) -> float:
    """체결 평균가 (average -> price -> fallback 순)"""
    for key in ('average', 'price'):
        value = order.get(key)
        if value:
            return float(value)
    return float(fallback)


class ExchangeGateway:
    """심볼 고정 거래소 게이트웨이"""

    def __init__(self, client: Any, symbol: str):
        self.client = client
        self.symbol = symbol

    def _call(self, operation: str, fn: Callable[..., Any], *args) -> Result:
        try:
            return Ok(fn(*args))
        except Exception as e:
            kind = classify_exception(e)
            logger.debug(f"{operation} failed ({kind.value}): {e}")
            return Err(kind=kind, message=str(e), operation=operation)

    # ------------------------------------------------------------------
    # Account / market data
    # ------------------------------------------------------------------
    def load_markets(self) -> Result:
        return self._call("load_markets", self.client.load_markets)

    def fetch_time(self) -> Result:
        return self._call("fetch_time", self.client.fetch_time)

    def fetch_balance(self) -> Result:
        return self._call("fetch_balance", self.client.fetch_balance)

    def fetch_ticker(self) -> Result:
        return self._call("fetch_ticker", self.client.fetch_ticker, self.symbol)

    def fetch_price(self) -> Result:
        """마지막 체결가"""
        result = self.fetch_ticker()
        if not result.ok:
            return result
        last = result.value.get('last')
        if not last:
            return Err(ErrorKind.EXCHANGE, "ticker has no last price", "fetch_price")
        return Ok(float(last))

    def fetch_open_orders(self) -> Result:
        return self._call("fetch_open_orders", self.client.fetch_open_orders, self.symbol)

    def fetch_order(self, order_id: str) -> Result:
        return self._call("fetch_order", self.client.fetch_order, order_id, self.symbol)

    # ------------------------------------------------------------------
    # Orders
    # ------------------------------------------------------------------
    def market_buy(self, amount: float) -> Result:
        return self._call("create_market_buy_order", self.client.create_market_buy_order, self.symbol, amount)

    def market_sell(self, amount: float) -> Result:
        return self._call("create_market_sell_order", self.client.create_market_sell_order, self.symbol, amount)

    def stop_loss_limit(self, amount: float, stop_price: float, limit_price: float) -> Result:
        params = {'stopPrice': stop_price, 'timeInForce': 'GTC'}
        return self._call(
            "create_order",
            self.client.create_order,
            self.symbol, 'STOP_LOSS_LIMIT', 'sell', amount, limit_price, params,
        )

    def cancel_order(self, order_id: str) -> Result:
        return self._call("cancel_order", self.client.cancel_order, order_id, self.symbol)

    # ------------------------------------------------------------------
    # Precision / limits
    # ------------------------------------------------------------------
    def amount_to_precision(self, amount: float) -> Result:
        result = self._call("amount_to_precision", self.client.amount_to_precision, self.symbol, amount)
        return Ok(float(result.value)) if result.ok else result

    def price_to_precision(self, price: float) -> Result:
        result = self._call("price_to_precision", self.client.price_to_precision, self.symbol, price)
        return Ok(float(result.value)) if result.ok else result

    def min_amount(self) -> Result:
        result = self._call("market", self.client.market, self.symbol)
        if not result.ok:
            return result
        limits = (result.value.get('limits') or {}).get('amount') or {}
        return Ok(float(limits.get('min') or 0.0))
