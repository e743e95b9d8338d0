"""
Config Module
=============

엔진 파라미터 관리.
YAML 파일에서 설정 로드 + 환경변수 오버라이드.
"""

from .loader import (
    load_config,
    build_config,
    ConfigError,
    EngineConfig,
    RiskParams,
    ExecutionParams,
    ScheduleParams,
    ExchangeParams,
)

__all__ = [
    'load_config',
    'build_config',
    'ConfigError',
    'EngineConfig',
    'RiskParams',
    'ExecutionParams',
    'ScheduleParams',
    'ExchangeParams',
]
