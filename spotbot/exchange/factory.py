"""
Exchange Factory
================

설정(ExchangeParams)으로 거래소 클라이언트 생성.

- real:    ccxt.<id> (실거래, API 키 필요)
- testnet: ccxt.<id> + sandbox 모드 (API 키 필요)
- paper:   PaperExchange (인메모리, 키 불필요)

API 키 환경변수 (.env 파일 자동 로드):
    SPOTBOT_API_KEY
    SPOTBOT_API_SECRET
"""
import os
import logging
from pathlib import Path
from typing import Any, Dict, Optional

import ccxt
from dotenv import load_dotenv

from spotbot.config.loader import ConfigError, EngineConfig
from .paper import PaperExchange

logger = logging.getLogger(__name__)

ENV_FILE = Path(__file__).parent.parent.parent / ".env"


def load_credentials() -> Dict[str, Optional[str]]:
    """.env + 환경변수에서 API 키 로드"""
    if ENV_FILE.exists():
        load_dotenv(ENV_FILE)
    return {
        'apiKey': os.getenv("SPOTBOT_API_KEY"),
        'secret': os.getenv("SPOTBOT_API_SECRET"),
    }


def create_exchange(
    config: EngineConfig,
    api_key: Optional[str] = None,
    api_secret: Optional[str] = None,
) -> Any:
    """거래소 클라이언트 생성"""
    params = config.exchange

    if params.mode == "paper":
        paper = config.raw.get("paper", {})
        logger.info(f"Paper exchange for {params.symbol} (budget ${config.budget:,.2f})")
        return PaperExchange(
            symbol=params.symbol,
            price=float(paper.get("initial_price", 30000.0)),
            balances={params.quote_asset: float(paper.get("quote_balance", config.budget))},
            fee_rate=config.execution.fee_rate,
        )

    if api_key is None or api_secret is None:
        creds = load_credentials()
        api_key = api_key or creds['apiKey']
        api_secret = api_secret or creds['secret']
    if not api_key or not api_secret:
        raise ConfigError("API key and secret required for real/testnet trading mode")

    exchange_class = getattr(ccxt, params.id, None)
    if exchange_class is None:
        raise ConfigError(f"Unknown ccxt exchange id: {params.id!r}")

    exchange = exchange_class({
        'apiKey': api_key,
        'secret': api_secret,
        'enableRateLimit': params.enable_rate_limit,
        'options': {'defaultType': params.default_type},
    })
    if params.mode == "testnet":
        exchange.set_sandbox_mode(True)

    logger.info(f"ccxt {params.id} client ready ({params.mode}, {params.symbol})")
    return exchange
