"""
봇 실행 스크립트
================

설정 로드 -> 거래소 / 전략 / 엔진 구성 -> 주기적으로 tick 실행.
Ctrl+C 로 정지하면 오픈 포지션 청산 + 미체결 주문 취소 후 종료.

사용법:
    python scripts/run_bot.py                          # config/default.yaml (paper)
    python scripts/run_bot.py --config config/live.yaml
    python scripts/run_bot.py --mode testnet --interval 30

환경변수:
    SPOTBOT_API_KEY / SPOTBOT_API_SECRET (real / testnet 모드 필수, .env 가능)
    SPOTBOT_MODE, SPOTBOT_SYMBOL, SPOTBOT_BUDGET, SPOTBOT_EXCHANGE (설정 override)
"""
import argparse
import os
import sys
import time

import ccxt

sys.path.insert(0, os.path.dirname(os.path.dirname(os.path.abspath(__file__))))

from spotbot.bot import TradingBot, ohlcv_candle_source
from spotbot.config import load_config
from spotbot.engine import TradingEngine
from spotbot.strategy import create_strategy
from spotbot.utils.log import setup_logging


def main():
    parser = argparse.ArgumentParser(description='Run spotbot trading engine')
    parser.add_argument('--config', type=str, default=None, help='Override YAML file')
    parser.add_argument('--mode', type=str, default=None, help='real | testnet | paper')
    parser.add_argument('--interval', type=float, default=60.0, help='Seconds between ticks')
    parser.add_argument('--timeframe', type=str, default='1m', help='Candle timeframe for the strategy')
    parser.add_argument('--once', action='store_true', help='Run a single tick and exit')
    args = parser.parse_args()

    if args.mode:
        os.environ["SPOTBOT_MODE"] = args.mode
    config = load_config(args.config)

    strategy_params = config.raw.get("strategy_params", {})
    strategy = create_strategy(config.strategy, **strategy_params)
    engine = TradingEngine(strategy, config)
    setup_logging(engine.bot_name, log_dir=config.log_dir, level=config.log_level)

    # 시세는 인증 없는 public 클라이언트로 조회 (paper 모드 포함)
    market_data = getattr(ccxt, config.exchange.id)({'enableRateLimit': True})
    candles = ohlcv_candle_source(market_data, config.exchange.symbol, args.timeframe)
    bot = TradingBot(engine, candles)

    print("=" * 70)
    print(f"spotbot: {engine.bot_name} ({config.exchange.mode}, {config.exchange.symbol})")
    print("=" * 70)

    if not bot.start():
        print("Failed to start engine (exchange unreachable?)")
        sys.exit(1)

    try:
        while True:
            bot.run_once()
            if args.once:
                break
            time.sleep(args.interval)
    except KeyboardInterrupt:
        print("\nStopping...")
    finally:
        bot.stop()
        print(engine.stats.format_stats(engine.get_stats()))


if __name__ == "__main__":
    main()
