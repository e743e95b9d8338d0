"""
Execution Layer
===============

포지션 장부, 주문 실행기, startup reconciler.
"""
from .ledger import Position, TradeRecord, PositionLedger, LedgerError
from .executor import OrderExecutor
from .reconciler import StartupReconciler, ReconcileResult

__all__ = [
    'Position',
    'TradeRecord',
    'PositionLedger',
    'LedgerError',
    'OrderExecutor',
    'StartupReconciler',
    'ReconcileResult',
]
