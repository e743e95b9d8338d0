"""
Clock
=====

엔진 시간 소스 (epoch seconds).

실시간 운영은 SystemClock, 테스트는 ManualClock 으로 시간 경과를
시뮬레이션한다. 체결 재확인 대기(2초)도 clock.sleep() 을 통해서만 한다.
"""
import time
from typing import Protocol


class Clock(Protocol):
    """시간 소스 인터페이스"""

    def now(self) -> float:
        ...

    def sleep(self, seconds: float) -> None:
        ...


class SystemClock:
    """wall-clock 시간"""

    def now(self) -> float:
        return time.time()

    def sleep(self, seconds: float) -> None:
        if seconds > 0:
            time.sleep(seconds)


class ManualClock:
    """
    수동 진행 시계 (테스트용)

    sleep() 은 실제로 기다리지 않고 시간을 앞으로 당긴다.
    """

    def __init__(self, start: float = 1_700_000_000.0):
        self._now = float(start)

    def now(self) -> float:
        return self._now

    def sleep(self, seconds: float) -> None:
        self.advance(seconds)

    def advance(self, seconds: float) -> float:
        if seconds < 0:
            raise ValueError("ManualClock cannot go backwards")
        self._now += seconds
        return self._now

    def set(self, timestamp: float) -> None:
        self._now = float(timestamp)
