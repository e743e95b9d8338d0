"""
Config Loader
=============

YAML 기반 엔진 파라미터 로더.

사용법:
    from spotbot.config import load_config

    config = load_config()
    print(config.risk.max_drawdown)         # 0.15
    print(config.execution.fee_rate)        # 0.00075
    print(config.schedule.balance_check)    # 600.0 (seconds)

    # 배포별 override 파일
    config = load_config(path="config/prod.yaml")

환경변수 오버라이드:
    SPOTBOT_MODE=testnet       # real | testnet | paper
    SPOTBOT_SYMBOL=ETH/USDT
    SPOTBOT_BUDGET=1000
    SPOTBOT_EXCHANGE=binance
"""

import os
from pathlib import Path
from dataclasses import dataclass, field
from typing import Dict, Any, Optional, Union
import yaml

from spotbot.utils.timeframe import duration_to_seconds


CONFIG_DIR = Path(__file__).parent.parent.parent / "config"

EXCHANGE_MODES = ("real", "testnet", "paper")


class ConfigError(ValueError):
    """잘못된 설정값"""


@dataclass
class RiskParams:
    """리스크 게이트 임계치 (비율, 0.15 = 15%)"""
    max_drawdown: float = 0.15
    daily_loss_limit: float = 0.05
    hourly_loss_limit: float = 0.02
    max_trades_per_day: int = 10
    consecutive_loss_limit: int = 3
    reduce_size_after_losses: int = 2
    reduced_size_multiplier: float = 0.5


@dataclass
class ExecutionParams:
    """주문 실행 파라미터"""
    max_position_pct: float = 0.15
    default_position_pct: float = 0.12
    fee_rate: float = 0.00075
    slippage_warn_pct: float = 0.001
    fill_wait: float = 2.0  # seconds
    stop_limit_offset: float = 0.99
    slippage_sample_size: int = 100


@dataclass
class ScheduleParams:
    """주기 체크 간격 (seconds)"""
    connection_check: float = 60.0
    balance_check: float = 600.0
    daily_window: float = 86400.0
    hourly_window: float = 3600.0
    balance_discrepancy_warn: float = 0.02
    multi_bot_ratio: float = 0.5


@dataclass
class ExchangeParams:
    """거래소 연결 설정"""
    id: str = "binance"
    mode: str = "paper"
    symbol: str = "BTC/USDT"
    default_type: str = "spot"
    enable_rate_limit: bool = True

    @property
    def base_asset(self) -> str:
        return self.symbol.split("/")[0]

    @property
    def quote_asset(self) -> str:
        return self.symbol.split("/")[1]


@dataclass
class EngineConfig:
    """통합 엔진 설정"""
    bot_name: str = "spotbot"
    strategy: str = "ema_cross"
    budget: float = 500.0
    exchange: ExchangeParams = field(default_factory=ExchangeParams)
    risk: RiskParams = field(default_factory=RiskParams)
    execution: ExecutionParams = field(default_factory=ExecutionParams)
    schedule: ScheduleParams = field(default_factory=ScheduleParams)
    log_level: str = "INFO"
    log_dir: str = "logs"
    raw: Dict[str, Any] = field(default_factory=dict)


def _load_yaml(path: Path) -> Dict[str, Any]:
    if not path.exists():
        return {}
    with open(path, 'r', encoding='utf-8') as f:
        return yaml.safe_load(f) or {}


def _deep_merge(base: Dict, override: Dict) -> Dict:
    result = base.copy()
    for key, value in override.items():
        if key in result and isinstance(result[key], dict) and isinstance(value, dict):
            result[key] = _deep_merge(result[key], value)
        else:
            result[key] = value
    return result


def _apply_env_overrides(config: Dict) -> Dict:
    if os.getenv("SPOTBOT_MODE"):
        config.setdefault("exchange", {})
        config["exchange"]["mode"] = os.getenv("SPOTBOT_MODE").lower()
    if os.getenv("SPOTBOT_SYMBOL"):
        config.setdefault("exchange", {})
        config["exchange"]["symbol"] = os.getenv("SPOTBOT_SYMBOL")
    if os.getenv("SPOTBOT_EXCHANGE"):
        config.setdefault("exchange", {})
        config["exchange"]["id"] = os.getenv("SPOTBOT_EXCHANGE")
    if os.getenv("SPOTBOT_BUDGET"):
        try:
            config["budget"] = float(os.getenv("SPOTBOT_BUDGET"))
        except ValueError:
            raise ConfigError(f"SPOTBOT_BUDGET is not a number: {os.getenv('SPOTBOT_BUDGET')!r}")
    return config


def _validate(config: EngineConfig) -> EngineConfig:
    if config.budget <= 0:
        raise ConfigError(f"budget must be positive, got {config.budget}")
    if config.exchange.mode not in EXCHANGE_MODES:
        raise ConfigError(f"exchange.mode must be one of {EXCHANGE_MODES}, got {config.exchange.mode!r}")
    if "/" not in config.exchange.symbol:
        raise ConfigError(f"exchange.symbol must look like BASE/QUOTE, got {config.exchange.symbol!r}")
    for name in ("max_drawdown", "daily_loss_limit", "hourly_loss_limit"):
        value = getattr(config.risk, name)
        if not 0 < value < 1:
            raise ConfigError(f"risk.{name} must be in (0, 1), got {value}")
    if not 0 < config.execution.default_position_pct <= 1:
        raise ConfigError("execution.default_position_pct must be in (0, 1]")
    if config.execution.fee_rate < 0:
        raise ConfigError("execution.fee_rate must be non-negative")
    return config


def build_config(merged: Dict[str, Any]) -> EngineConfig:
    """dict -> EngineConfig (기본값 보충 + 검증)"""
    exc = merged.get("exchange", {})
    risk = merged.get("risk", {})
    exe = merged.get("execution", {})
    sch = merged.get("schedule", {})
    log = merged.get("logging", {})

    try:
        config = EngineConfig(
            bot_name=merged.get("bot_name", "spotbot"),
            strategy=merged.get("strategy", "ema_cross"),
            budget=float(merged.get("budget", 500.0)),
            exchange=ExchangeParams(
                id=exc.get("id", "binance"),
                mode=str(exc.get("mode", "paper")).lower(),
                symbol=exc.get("symbol", "BTC/USDT"),
                default_type=exc.get("default_type", "spot"),
                enable_rate_limit=bool(exc.get("enable_rate_limit", True)),
            ),
            risk=RiskParams(
                max_drawdown=float(risk.get("max_drawdown", 0.15)),
                daily_loss_limit=float(risk.get("daily_loss_limit", 0.05)),
                hourly_loss_limit=float(risk.get("hourly_loss_limit", 0.02)),
                max_trades_per_day=int(risk.get("max_trades_per_day", 10)),
                consecutive_loss_limit=int(risk.get("consecutive_loss_limit", 3)),
                reduce_size_after_losses=int(risk.get("reduce_size_after_losses", 2)),
                reduced_size_multiplier=float(risk.get("reduced_size_multiplier", 0.5)),
            ),
            execution=ExecutionParams(
                max_position_pct=float(exe.get("max_position_pct", 0.15)),
                default_position_pct=float(exe.get("default_position_pct", 0.12)),
                fee_rate=float(exe.get("fee_rate", 0.00075)),
                slippage_warn_pct=float(exe.get("slippage_warn_pct", 0.001)),
                fill_wait=duration_to_seconds(exe.get("fill_wait", 2.0)),
                stop_limit_offset=float(exe.get("stop_limit_offset", 0.99)),
                slippage_sample_size=int(exe.get("slippage_sample_size", 100)),
            ),
            schedule=ScheduleParams(
                connection_check=duration_to_seconds(sch.get("connection_check", 60)),
                balance_check=duration_to_seconds(sch.get("balance_check", 600)),
                daily_window=duration_to_seconds(sch.get("daily_window", 86400)),
                hourly_window=duration_to_seconds(sch.get("hourly_window", 3600)),
                balance_discrepancy_warn=float(sch.get("balance_discrepancy_warn", 0.02)),
                multi_bot_ratio=float(sch.get("multi_bot_ratio", 0.5)),
            ),
            log_level=str(log.get("level", "INFO")).upper(),
            log_dir=log.get("dir", "logs"),
            raw=merged,
        )
    except ConfigError:
        raise
    except (TypeError, ValueError) as e:
        raise ConfigError(f"Invalid configuration: {e}") from e

    return _validate(config)


def load_config(path: Optional[Union[str, Path]] = None) -> EngineConfig:
    """설정 로드 (default.yaml + override 파일 + env)"""
    base = _load_yaml(CONFIG_DIR / "default.yaml")
    if path is not None:
        base = _deep_merge(base, _load_yaml(Path(path)))
    merged = _apply_env_overrides(base)
    return build_config(merged)
