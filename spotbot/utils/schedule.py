# -*- coding: utf-8 -*-
"""
Scheduler Primitives
====================

주기적 체크를 독립 타이머 없이, 매 tick 마다 주입된 clock 시간으로
평가하기 위한 도구.

- PeriodicCheck: 간격 기반 체크 (connection 60s, balance 10m)
- window_elapsed(): 고정 윈도우 경과 여부 (daily 24h)
- prune_window() / window_total(): trailing 윈도우 (hourly PnL 1h)

사용법:
```python
from spotbot.utils.schedule import PeriodicCheck

balance_check = PeriodicCheck(name="balance", interval=600)
if balance_check.is_due(clock.now()):
    ...
    balance_check.mark(clock.now())
```
"""
from dataclasses import dataclass
from typing import List, Optional, Sequence, Tuple


@dataclass
class PeriodicCheck:
    """간격 기반 lazy 체크"""
    name: str
    interval: float  # seconds
    last_run: Optional[float] = None

    def is_due(self, now: float) -> bool:
        if self.last_run is None:
            return True
        return now - self.last_run >= self.interval

    def mark(self, now: float) -> None:
        self.last_run = now

    def reset(self) -> None:
        self.last_run = None


def window_elapsed(start: float, span: float, now: float) -> bool:
    """start 부터 span 초가 지났는지 (경계 포함)"""
    return now - start >= span


def prune_window(
    entries: Sequence[Tuple[float, float]],
    now: float,
    span: float,
) -> List[Tuple[float, float]]:
    """
    trailing 윈도우 밖의 (timestamp, value) 항목 제거

    now - span 보다 오래된 항목은 버린다. 입력은 시간순이라고 가정.
    """
    cutoff = now - span
    return [(ts, value) for ts, value in entries if ts > cutoff]


def window_total(entries: Sequence[Tuple[float, float]]) -> float:
    return float(sum(value for _, value in entries))
