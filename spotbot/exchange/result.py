# -*- coding: utf-8 -*-
"""
Exchange Call Results
=====================

모든 거래소 호출은 예외 대신 Ok / Err 결과로 돌려준다.
인프라 장애(ErrorKind)와 리스크 정지(HaltReason)를 구조적으로 구분하기 위함.

사용법:
```python
result = gateway.fetch_ticker()
if result.ok:
    price = result.value['last']
elif result.kind is ErrorKind.CONNECTIVITY:
    ...
```
"""
from dataclasses import dataclass
from enum import Enum
from typing import Any, Generic, TypeVar, Union

import ccxt


T = TypeVar("T")


class ErrorKind(Enum):
    """거래소 오류 분류"""
    CONNECTIVITY = "connectivity"
    ORDER_REJECTED = "order_rejected"
    ORDER_NOT_FOUND = "order_not_found"
    INSUFFICIENT_FUNDS = "insufficient_funds"
    AUTHENTICATION = "authentication"
    EXCHANGE = "exchange"
    UNKNOWN = "unknown"


@dataclass(frozen=True)
class Ok(Generic[T]):
    value: T

    @property
    def ok(self) -> bool:
        return True


@dataclass(frozen=True)
class Err:
    kind: ErrorKind
    message: str
    operation: str = ""

    @property
    def ok(self) -> bool:
        return False

    def __str__(self) -> str:
        return f"{self.operation}: {self.kind.value}: {self.message}"


Result = Union[Ok[Any], Err]


def classify_exception(exc: BaseException) -> ErrorKind:
    """
    ccxt 예외 계층 -> ErrorKind

    OrderNotFound 는 InvalidOrder 의 하위 클래스이므로 먼저 검사한다.
    """
    if isinstance(exc, ccxt.NetworkError):
        return ErrorKind.CONNECTIVITY
    if isinstance(exc, ccxt.OrderNotFound):
        return ErrorKind.ORDER_NOT_FOUND
    if isinstance(exc, ccxt.InsufficientFunds):
        return ErrorKind.INSUFFICIENT_FUNDS
    if isinstance(exc, ccxt.InvalidOrder):
        return ErrorKind.ORDER_REJECTED
    if isinstance(exc, ccxt.AuthenticationError):
        return ErrorKind.AUTHENTICATION
    if isinstance(exc, ccxt.BaseError):
        return ErrorKind.EXCHANGE
    if isinstance(exc, (ConnectionError, TimeoutError)):
        return ErrorKind.CONNECTIVITY
    return ErrorKind.UNKNOWN
