"""
Risk Module
===========

주문 전 리스크 게이트 + 명시적 리스크/예산 상태.
"""
from .state import BudgetState, RiskState, ConnectionHealth
from .gate import RiskGate, GateDecision, HaltReason

__all__ = [
    'BudgetState',
    'RiskState',
    'ConnectionHealth',
    'RiskGate',
    'GateDecision',
    'HaltReason',
]
