"""
Trading Bot
===========

전략 + 엔진 + 시세 소스를 묶어서 tick 을 돌린다.

candle_source() 는 시간순 OHLCV DataFrame ('close' 컬럼 필수) 을 돌려준다.
현재가는 마지막 close. paper 모드에서는 PaperExchange 가격을 시세에 맞춘다.
"""
import logging
from typing import Any, Callable, Optional

import ccxt
import pandas as pd

from spotbot.engine import TradingEngine
from spotbot.exchange.paper import PaperExchange
from spotbot.strategy.base import Signal
from spotbot.utils.log import BotLogger

logger = logging.getLogger(__name__)

CandleSource = Callable[[], pd.DataFrame]

OHLCV_COLUMNS = ['timestamp', 'open', 'high', 'low', 'close', 'volume']


def ohlcv_candle_source(client: Any, symbol: str, timeframe: str = "1m", limit: int = 100) -> CandleSource:
    """
    ccxt fetch_ohlcv() -> DataFrame candle source

    시세 조회 실패 시 빈 DataFrame (다음 tick 에서 재시도).
    """
    def fetch() -> pd.DataFrame:
        try:
            rows = client.fetch_ohlcv(symbol, timeframe, limit=limit)
        except ccxt.BaseError as e:
            logger.warning(f"fetch_ohlcv failed: {e}")
            return pd.DataFrame(columns=OHLCV_COLUMNS)
        df = pd.DataFrame(rows, columns=OHLCV_COLUMNS)
        df['timestamp'] = pd.to_datetime(df['timestamp'], unit='ms', utc=True)
        return df

    return fetch


class TradingBot:
    """전략 -> 엔진 tick 드라이버"""

    def __init__(self, engine: TradingEngine, candle_source: CandleSource):
        self.engine = engine
        self.strategy = engine.strategy
        self.candle_source = candle_source
        self.log = BotLogger(logger, engine.bot_name)

    def start(self) -> bool:
        return self.engine.start()

    def stop(self) -> None:
        self.engine.stop()

    def run_once(self) -> Optional[Signal]:
        """한 tick: 시세 -> 전략 -> 엔진"""
        try:
            candles = self.candle_source()
            if candles is None or candles.empty:
                self.log.info("Waiting for market data...")
                return None
            current_price = float(candles['close'].iloc[-1])
            if current_price <= 0:
                self.log.info("Waiting for market data...")
                return None

            client = self.engine.gateway.client
            if isinstance(client, PaperExchange):
                client.set_price(current_price)

            signal = self.strategy.analyze(candles, current_price)
            self.engine.process_signal(signal, current_price)
            return signal
        except Exception as e:
            self.log.error(f"Analysis error: {e}", exc_info=True)
            return None
