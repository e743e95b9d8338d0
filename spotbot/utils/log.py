"""
Logging Helpers
===============

봇 단위 로깅 설정.

- TRADE 레벨 (INFO 와 WARNING 사이): 체결 기록 전용
- BotLogger: 메시지 앞에 [bot_name] 을 붙이는 LoggerAdapter
- setup_logging(): 콘솔 + logs/<bot_name>.log 파일 핸들러

사용법:
    from spotbot.utils.log import setup_logging, BotLogger

    setup_logging("ema_cross-real", log_dir="logs")
    log = BotLogger(logging.getLogger(__name__), "ema_cross-real")
    log.trade("BUY 0.002 BTC @ $30,000.00")
"""
import logging
from pathlib import Path
from typing import Optional, Union

TRADE = 25
logging.addLevelName(TRADE, "TRADE")

LOG_FORMAT = "[%(asctime)s] [%(levelname)s] %(name)s: %(message)s"


class BotLogger(logging.LoggerAdapter):
    """[bot_name] prefix adapter"""

    def __init__(self, logger: logging.Logger, bot_name: str):
        super().__init__(logger, {'bot': bot_name})

    def process(self, msg, kwargs):
        return f"[{self.extra['bot']}] {msg}", kwargs

    def trade(self, msg, *args, **kwargs):
        self.log(TRADE, msg, *args, **kwargs)


def setup_logging(
    bot_name: str,
    log_dir: Optional[Union[str, Path]] = "logs",
    level: Union[int, str] = logging.INFO,
) -> logging.Logger:
    """
    spotbot 패키지 로거에 콘솔/파일 핸들러 부착

    여러 번 호출해도 같은 파일 핸들러를 중복 추가하지 않는다.
    """
    root = logging.getLogger("spotbot")
    root.setLevel(level)
    formatter = logging.Formatter(LOG_FORMAT)

    if not any(type(h) is logging.StreamHandler for h in root.handlers):
        console = logging.StreamHandler()
        console.setFormatter(formatter)
        root.addHandler(console)

    if log_dir is not None:
        path = Path(log_dir)
        path.mkdir(parents=True, exist_ok=True)
        log_file = (path / f"{bot_name}.log").resolve()
        existing = {
            Path(h.baseFilename).resolve()
            for h in root.handlers if isinstance(h, logging.FileHandler)
        }
        if log_file not in existing:
            file_handler = logging.FileHandler(log_file, encoding="utf-8")
            file_handler.setFormatter(formatter)
            root.addHandler(file_handler)

    return root
