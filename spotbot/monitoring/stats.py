# -*- coding: utf-8 -*-
"""
Stats Reporter
==============

거래 기록 + 리스크 상태 -> 성과 지표 (읽기 전용, 상태 변경 없음).

외부 모니터링 / 대시보드가 소비하는 조회 surface.

단위:
- win_rate, current_drawdown, daily_loss, average_slippage, balance_discrepancy: %
- total_pnl, hourly_pnl: quote 통화 금액

사용법:
```python
stats = engine.get_stats()
print(stats.win_rate, stats.current_drawdown)
print(engine.stats.format_stats(stats))

df = engine.stats.trades_frame()   # pandas DataFrame
```
"""
from dataclasses import dataclass, field, asdict
from typing import Any, Dict, List, Optional

import numpy as np
import pandas as pd

from spotbot.config.loader import RiskParams, ScheduleParams
from spotbot.execution.ledger import PositionLedger, TradeRecord
from spotbot.risk.state import ConnectionHealth, RiskState
from spotbot.utils.schedule import prune_window, window_total
from .incidents import IncidentLog


TRADE_COLUMNS = [field_name for field_name in TradeRecord.__dataclass_fields__]


@dataclass
class BotStats:
    """봇 상태 보고"""
    bot_name: str
    strategy: str
    is_running: bool
    initial_budget: float
    current_budget: float
    initial_real_balance: float
    current_real_balance: float
    multi_bot_mode: bool
    total_trades: int
    winning_trades: int
    losing_trades: int
    win_rate: float
    total_pnl: float
    current_drawdown: float
    average_slippage: float
    positions: List[Dict[str, Any]] = field(default_factory=list)
    open_orders: List[Dict[str, Any]] = field(default_factory=list)
    emergency_stop_triggered: bool = False
    emergency_stop_reason: str = ""
    last_balance_check: Optional[float] = None
    balance_discrepancy: Optional[float] = None
    daily_loss: float = 0.0
    daily_loss_triggered: bool = False
    daily_trade_count: int = 0
    max_trades_per_day: int = 0
    trades_per_day_triggered: bool = False
    hourly_pnl: float = 0.0
    consecutive_losses: int = 0
    position_size_multiplier: float = 1.0
    connection_healthy: bool = False
    software_stop_active: bool = False
    halts: Dict[str, int] = field(default_factory=dict)
    errors: Dict[str, int] = field(default_factory=dict)

    def to_dict(self) -> Dict[str, Any]:
        return asdict(self)


class StatsReporter:
    """성과 지표 계산기"""

    def __init__(
        self,
        ledger: PositionLedger,
        risk_state: RiskState,
        health: ConnectionHealth,
        incidents: IncidentLog,
        risk: Optional[RiskParams] = None,
        schedule: Optional[ScheduleParams] = None,
    ):
        self.ledger = ledger
        self.risk_state = risk_state
        self.health = health
        self.incidents = incidents
        self.risk = risk or RiskParams()
        self.schedule = schedule or ScheduleParams()

    def current_drawdown(self) -> float:
        """기준 잔고 대비 총 평가액 손실률 (%) - 이익이면 음수"""
        budget = self.ledger.budget
        if budget.initial_real_balance <= 0:
            return 0.0
        total_value = budget.current_real_balance + self.ledger.unrealized_pnl
        return (budget.initial_real_balance - total_value) / budget.initial_real_balance * 100

    def average_slippage(self) -> float:
        """최근 N회 체결 평균 슬리피지 (%)"""
        samples = list(self.ledger.slippage_samples)
        if not samples:
            return 0.0
        return float(np.mean(samples) * 100)

    def daily_loss(self) -> float:
        start = self.risk_state.daily_start_balance
        if start <= 0:
            return 0.0
        return (start - self.ledger.budget.current_real_balance) / start * 100

    def hourly_pnl(self, now: float) -> float:
        entries = prune_window(self.risk_state.hourly_pnl_history, now, self.schedule.hourly_window)
        return window_total(entries)

    def report(
        self,
        now: float,
        bot_name: str,
        strategy_name: str,
        is_running: bool,
        last_balance_check: Optional[float] = None,
        balance_discrepancy: Optional[float] = None,
    ) -> BotStats:
        trades = self.ledger.trades
        profits = np.array([t.profit for t in trades], dtype=float)
        wins = int(sum(1 for t in trades if t.win))
        total = len(trades)
        budget = self.ledger.budget
        state = self.risk_state
        position = self.ledger.position

        open_orders = []
        if position is not None and position.stop_order_id:
            open_orders.append({
                'id': position.stop_order_id,
                'symbol': position.symbol,
                'type': 'stop_loss_limit',
                'side': 'sell',
                'amount': position.amount,
                'stop_price': position.stop_loss,
            })

        return BotStats(
            bot_name=bot_name,
            strategy=strategy_name,
            is_running=is_running,
            initial_budget=budget.initial_budget,
            current_budget=budget.current_budget,
            initial_real_balance=budget.initial_real_balance,
            current_real_balance=budget.current_real_balance,
            multi_bot_mode=budget.multi_bot_mode,
            total_trades=total,
            winning_trades=wins,
            losing_trades=total - wins,
            win_rate=wins / total * 100 if total > 0 else 0.0,
            total_pnl=float(profits.sum()) if total else 0.0,
            current_drawdown=self.current_drawdown(),
            average_slippage=self.average_slippage(),
            positions=[p.to_dict() for p in self.ledger.positions],
            open_orders=open_orders,
            emergency_stop_triggered=state.emergency_stop_triggered,
            emergency_stop_reason=state.emergency_stop_reason,
            last_balance_check=last_balance_check,
            balance_discrepancy=balance_discrepancy,
            daily_loss=self.daily_loss(),
            daily_loss_triggered=state.daily_loss_triggered,
            daily_trade_count=state.daily_trade_count,
            max_trades_per_day=self.risk.max_trades_per_day,
            trades_per_day_triggered=state.trades_per_day_triggered,
            hourly_pnl=self.hourly_pnl(now),
            consecutive_losses=state.consecutive_losses,
            position_size_multiplier=state.position_size_multiplier,
            connection_healthy=self.health.healthy,
            software_stop_active=bool(position is not None and position.software_stop),
            halts=dict(self.incidents.halts),
            errors=dict(self.incidents.errors),
        )

    def trades_frame(self) -> pd.DataFrame:
        """거래 기록 DataFrame (timestamp -> UTC datetime)"""
        df = pd.DataFrame([t.to_dict() for t in self.ledger.trades], columns=TRADE_COLUMNS)
        if not df.empty:
            df['timestamp'] = pd.to_datetime(df['timestamp'], unit='s', utc=True)
        return df

    def format_stats(self, stats: BotStats) -> str:
        """상태 포맷팅"""
        lines = [
            "=" * 50,
            f"{stats.bot_name} ({stats.strategy})",
            "=" * 50,
            f"Running: {stats.is_running} | Connection: {'OK' if stats.connection_healthy else 'DOWN'}",
            f"Budget: ${stats.current_budget:,.2f} / ${stats.initial_budget:,.2f}",
            f"Real Balance: ${stats.current_real_balance:,.2f} (Drawdown {stats.current_drawdown:+.2f}%)",
            f"Trades: {stats.total_trades} (W:{stats.winning_trades} L:{stats.losing_trades}) "
            f"Win Rate: {stats.win_rate:.1f}%",
            f"PnL: ${stats.total_pnl:+,.2f} | Hourly: ${stats.hourly_pnl:+,.2f} | "
            f"Avg Slippage: {stats.average_slippage:.3f}%",
            f"Consecutive Losses: {stats.consecutive_losses}/{self.risk.consecutive_loss_limit} "
            f"(size x{stats.position_size_multiplier})",
            f"Daily: loss {stats.daily_loss:.2f}% | trades {stats.daily_trade_count}/{stats.max_trades_per_day}",
            f"Emergency Stop: {'ACTIVE - ' + stats.emergency_stop_reason if stats.emergency_stop_triggered else 'OFF'}",
            "=" * 50,
        ]
        return "\n".join(lines)
