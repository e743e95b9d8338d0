"""
Incident Counters
=================

리스크 정지(HaltReason)와 인프라 오류(ErrorKind)를 따로 센다.
Stats 에서 두 종류가 섞이지 않게 보고하기 위함.
"""
from collections import Counter
from dataclasses import dataclass, field
from typing import Dict

from spotbot.exchange.result import Err
from spotbot.risk.gate import HaltReason


@dataclass
class IncidentLog:
    halts: Counter = field(default_factory=Counter)
    errors: Counter = field(default_factory=Counter)
    last_halt: str = ""
    last_error: str = ""

    def record_halt(self, reason: HaltReason, message: str = "") -> None:
        self.halts[reason.value] += 1
        self.last_halt = message or reason.value

    def record_error(self, error: Err) -> None:
        self.errors[error.kind.value] += 1
        self.last_error = str(error)

    def summary(self) -> Dict[str, Dict[str, int]]:
        return {'halts': dict(self.halts), 'errors': dict(self.errors)}
