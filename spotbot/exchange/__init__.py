"""
Exchange Module
===============

거래소 접근 계층: Ok/Err 결과 게이트웨이, ccxt 팩토리, paper 거래소.
"""
from .result import Ok, Err, ErrorKind, Result, classify_exception
from .gateway import (
    ExchangeGateway,
    is_stop_order,
    free_balance,
    order_filled,
    order_fill_price,
)
from .paper import PaperExchange
from .factory import create_exchange, load_credentials

__all__ = [
    'Ok',
    'Err',
    'ErrorKind',
    'Result',
    'classify_exception',
    'ExchangeGateway',
    'is_stop_order',
    'free_balance',
    'order_filled',
    'order_fill_price',
    'PaperExchange',
    'create_exchange',
    'load_credentials',
]
