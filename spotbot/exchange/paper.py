# -*- coding: utf-8 -*-
"""
Paper Exchange
==============

ccxt 호환 인메모리 거래소 (paper 모드 + 테스트용).

실제 주문 없이 잔고/주문/체결을 시뮬레이션한다. ccxt 와 같은 메서드명,
같은 주문 dict 형태, 같은 예외 클래스(ccxt.InvalidOrder 등)를 사용하므로
ExchangeGateway 는 실거래소와 구분하지 않는다.

시뮬레이션 옵션:
- fill_mode: 'immediate' (즉시 체결), 'delayed' (fetch_order 시 체결), 'never'
- fill_slippage: 체결가 불리 방향 슬리피지 비율
- reject_stop_orders: STOP_LOSS_LIMIT 주문 거부
- set_price(): 가격이 stopPrice 이하로 내려오면 대기 중인 스탑 주문 발동
  (limit 가격 이상이면 현재가로 체결, 그보다 낮으면 미체결로 남음)
- fail(operation, exc): 다음 호출에서 예외 발생 (장애 주입)

사용법:
```python
from spotbot.exchange.paper import PaperExchange

exchange = PaperExchange(symbol="BTC/USDT", price=30000, balances={"USDT": 1000})
exchange.create_market_buy_order("BTC/USDT", 0.002)
exchange.set_price(31000)
```
"""
import itertools
import time
from decimal import Decimal, ROUND_DOWN, ROUND_HALF_UP
from typing import Any, Callable, Dict, List, Optional, Tuple

import ccxt


FILL_MODES = ('immediate', 'delayed', 'never')


class PaperExchange:
    """인메모리 spot 거래소"""

    def __init__(
        self,
        symbol: str = "BTC/USDT",
        price: float = 30000.0,
        balances: Optional[Dict[str, float]] = None,
        amount_precision: int = 6,
        price_precision: int = 2,
        min_amount: float = 0.0001,
        fee_rate: float = 0.00075,
        fill_mode: str = 'immediate',
        fill_slippage: float = 0.0,
        reject_stop_orders: bool = False,
        time_fn: Optional[Callable[[], float]] = None,
    ):
        if fill_mode not in FILL_MODES:
            raise ValueError(f"fill_mode must be one of {FILL_MODES}")
        self.symbol = symbol
        self.base, self.quote = symbol.split("/")
        self.price = float(price)
        self.amount_precision = amount_precision
        self.price_precision = price_precision
        self.min_amount = min_amount
        self.fee_rate = fee_rate
        self.fill_mode = fill_mode
        self.fill_slippage = fill_slippage
        self.reject_stop_orders = reject_stop_orders
        self._time_fn = time_fn or time.time

        self.free: Dict[str, float] = {self.base: 0.0, self.quote: 0.0}
        self.used: Dict[str, float] = {self.base: 0.0, self.quote: 0.0}
        for asset, amount in (balances or {}).items():
            self.free[asset] = float(amount)
            self.used.setdefault(asset, 0.0)

        self.orders: Dict[str, Dict[str, Any]] = {}
        self.calls: List[Tuple[str, tuple]] = []
        self._failures: Dict[str, List[BaseException]] = {}
        self._ids = itertools.count(1)
        self.markets: Dict[str, Dict[str, Any]] = {}

    # ------------------------------------------------------------------
    # Simulation controls
    # ------------------------------------------------------------------
    def set_price(self, price: float) -> None:
        self.price = float(price)
        self._trigger_stops()

    def _trigger_stops(self) -> None:
        for order in self.orders.values():
            if order['type'] != 'stop_loss_limit' or order['status'] != 'open':
                continue
            stop = order['stopPrice']
            if stop is None or self.price > stop or self.price < (order['price'] or 0.0):
                continue
            amount = order['remaining']
            cost = amount * self.price
            fee = cost * self.fee_rate
            self._adjust(self.used, self.base, -amount)
            self._adjust(self.free, self.quote, cost - fee)
            order.update({
                'average': self.price,
                'filled': amount,
                'remaining': 0.0,
                'cost': cost,
                'fee': {'currency': self.quote, 'cost': fee},
                'status': 'closed',
            })

    def fail(self, operation: str, exc: BaseException, times: int = 1) -> None:
        """operation 의 다음 times 회 호출에서 exc 발생"""
        self._failures.setdefault(operation, []).extend([exc] * times)

    def calls_to(self, operation: str) -> List[tuple]:
        return [args for name, args in self.calls if name == operation]

    def _record(self, operation: str, *args) -> None:
        self.calls.append((operation, args))
        pending = self._failures.get(operation)
        if pending:
            raise pending.pop(0)

    def _adjust(self, bucket: Dict[str, float], asset: str, delta: float) -> None:
        """잔고 가감 (Decimal 연산, float 누적 오차로 dust 가 남지 않게)"""
        current = Decimal(str(bucket.get(asset, 0.0)))
        bucket[asset] = float(current + Decimal(str(delta)))

    def _now_ms(self) -> int:
        return int(self._time_fn() * 1000)

    def _require_symbol(self, symbol: str) -> None:
        if symbol != self.symbol:
            raise ccxt.BadSymbol(f"paper exchange does not have market symbol {symbol}")

    # ------------------------------------------------------------------
    # Market data
    # ------------------------------------------------------------------
    def load_markets(self, reload: bool = False) -> Dict[str, Dict[str, Any]]:
        self._record("load_markets")
        self.markets = {
            self.symbol: {
                'symbol': self.symbol,
                'base': self.base,
                'quote': self.quote,
                'spot': True,
                'precision': {'amount': self.amount_precision, 'price': self.price_precision},
                'limits': {
                    'amount': {'min': self.min_amount, 'max': None},
                    'price': {'min': None, 'max': None},
                },
            }
        }
        return self.markets

    def market(self, symbol: str) -> Dict[str, Any]:
        self._record("market", symbol)
        if not self.markets:
            raise ccxt.ExchangeError("markets not loaded")
        self._require_symbol(symbol)
        return self.markets[symbol]

    def fetch_time(self) -> int:
        self._record("fetch_time")
        return self._now_ms()

    def fetch_ticker(self, symbol: str) -> Dict[str, Any]:
        self._record("fetch_ticker", symbol)
        self._require_symbol(symbol)
        return {
            'symbol': symbol,
            'last': self.price,
            'bid': self.price,
            'ask': self.price,
            'timestamp': self._now_ms(),
        }

    def fetch_balance(self) -> Dict[str, Any]:
        self._record("fetch_balance")
        balance: Dict[str, Any] = {'free': {}, 'used': {}, 'total': {}}
        for asset in set(self.free) | set(self.used):
            free = self.free.get(asset, 0.0)
            used = self.used.get(asset, 0.0)
            balance[asset] = {'free': free, 'used': used, 'total': free + used}
            balance['free'][asset] = free
            balance['used'][asset] = used
            balance['total'][asset] = free + used
        return balance

    # ------------------------------------------------------------------
    # Precision
    # ------------------------------------------------------------------
    def amount_to_precision(self, symbol: str, amount: float) -> str:
        self._require_symbol(symbol)
        quantum = Decimal(1).scaleb(-self.amount_precision)
        value = Decimal(str(amount)).quantize(quantum, rounding=ROUND_DOWN)
        if value <= 0:
            raise ccxt.InvalidOrder(
                f"{symbol} amount of {amount} must be greater than minimum amount precision of {quantum}"
            )
        return str(value)

    def price_to_precision(self, symbol: str, price: float) -> str:
        self._require_symbol(symbol)
        quantum = Decimal(1).scaleb(-self.price_precision)
        return str(Decimal(str(price)).quantize(quantum, rounding=ROUND_HALF_UP))

    # ------------------------------------------------------------------
    # Orders
    # ------------------------------------------------------------------
    def _new_order(self, order_type: str, side: str, amount: float, price: Optional[float],
                   params: Optional[Dict[str, Any]] = None) -> Dict[str, Any]:
        order_id = f"PAPER-{next(self._ids)}"
        order = {
            'id': order_id,
            'symbol': self.symbol,
            'type': order_type,
            'side': side,
            'price': price,
            'average': None,
            'amount': amount,
            'filled': 0.0,
            'remaining': amount,
            'cost': 0.0,
            'status': 'open',
            'timestamp': self._now_ms(),
            'stopPrice': (params or {}).get('stopPrice'),
            'timeInForce': (params or {}).get('timeInForce'),
        }
        self.orders[order_id] = order
        return order

    def _fill_market(self, order: Dict[str, Any]) -> None:
        amount = order['amount']
        if order['side'] == 'buy':
            fill_price = self.price * (1 + self.fill_slippage)
            cost = amount * fill_price
            fee = cost * self.fee_rate
            if self.free.get(self.quote, 0.0) < cost + fee:
                order['status'] = 'rejected'
                raise ccxt.InsufficientFunds(f"Account has insufficient balance for requested action")
            self._adjust(self.free, self.quote, -(cost + fee))
            self._adjust(self.free, self.base, amount)
        else:
            fill_price = self.price * (1 - self.fill_slippage)
            if self.free.get(self.base, 0.0) < amount - 1e-12:
                order['status'] = 'rejected'
                raise ccxt.InsufficientFunds(f"Account has insufficient balance for requested action")
            cost = amount * fill_price
            fee = cost * self.fee_rate
            self._adjust(self.free, self.base, -amount)
            self._adjust(self.free, self.quote, cost - fee)
        order.update({
            'average': fill_price,
            'price': fill_price,
            'filled': amount,
            'remaining': 0.0,
            'cost': cost,
            'fee': {'currency': self.quote, 'cost': fee},
            'status': 'closed',
        })

    def _market_order(self, side: str, amount: float) -> Dict[str, Any]:
        if amount < self.min_amount:
            raise ccxt.InvalidOrder(f"amount {amount} below minimum {self.min_amount}")
        order = self._new_order('market', side, amount, None)
        if self.fill_mode == 'immediate':
            self._fill_market(order)
        return dict(order)

    def create_market_buy_order(self, symbol: str, amount: float, params: Optional[Dict] = None) -> Dict[str, Any]:
        self._record("create_market_buy_order", symbol, amount)
        self._require_symbol(symbol)
        return self._market_order('buy', float(amount))

    def create_market_sell_order(self, symbol: str, amount: float, params: Optional[Dict] = None) -> Dict[str, Any]:
        self._record("create_market_sell_order", symbol, amount)
        self._require_symbol(symbol)
        return self._market_order('sell', float(amount))

    def create_order(self, symbol: str, type: str, side: str, amount: float,
                     price: Optional[float] = None, params: Optional[Dict] = None) -> Dict[str, Any]:
        self._record("create_order", symbol, type, side, amount, price, params)
        self._require_symbol(symbol)
        order_type = type.lower()
        if order_type == 'market':
            return self._market_order(side, float(amount))
        if order_type != 'stop_loss_limit':
            raise ccxt.NotSupported(f"paper exchange does not support {type} orders")
        if self.reject_stop_orders:
            raise ccxt.InvalidOrder("Stop price would trigger immediately.")
        if side != 'sell' or self.free.get(self.base, 0.0) < amount - 1e-12:
            raise ccxt.InsufficientFunds("Account has insufficient balance for requested action")
        order = self._new_order('stop_loss_limit', side, float(amount), price, params)
        self._adjust(self.free, self.base, -amount)
        self._adjust(self.used, self.base, amount)
        return dict(order)

    def cancel_order(self, id: str, symbol: Optional[str] = None, params: Optional[Dict] = None) -> Dict[str, Any]:
        self._record("cancel_order", id, symbol)
        order = self.orders.get(id)
        if order is None or order['status'] != 'open':
            raise ccxt.OrderNotFound(f"Unknown order sent. {id}")
        order['status'] = 'canceled'
        if order['type'] == 'stop_loss_limit':
            self._adjust(self.used, self.base, -order['remaining'])
            self._adjust(self.free, self.base, order['remaining'])
        return dict(order)

    def fetch_order(self, id: str, symbol: Optional[str] = None, params: Optional[Dict] = None) -> Dict[str, Any]:
        self._record("fetch_order", id, symbol)
        order = self.orders.get(id)
        if order is None:
            raise ccxt.OrderNotFound(f"Order does not exist. {id}")
        if order['type'] == 'market' and order['status'] == 'open' and self.fill_mode == 'delayed':
            self._fill_market(order)
        return dict(order)

    def fetch_open_orders(self, symbol: Optional[str] = None, since=None, limit=None,
                          params: Optional[Dict] = None) -> List[Dict[str, Any]]:
        self._record("fetch_open_orders", symbol)
        return [
            dict(order) for order in self.orders.values()
            if order['status'] == 'open' and (symbol is None or order['symbol'] == symbol)
        ]
