"""
ロギング設定

標準loggingの初期化と外部ライブラリのログ抑制を行う。
Worker / Scheduler は user_id や period_key を extra で渡すので、
フォーマッタ側でそれらを「key=value」として行末に付ける。
"""

from __future__ import annotations

import logging
import pathlib
from logging.handlers import RotatingFileHandler


LOG_FORMAT = "%(asctime)s %(levelname)s %(name)s - %(message)s"
LLM_IO_LOGGER_NAME = "novelday.llm_io"

# LogRecord が元々持っている属性（extra ではないもの）
_RESERVED_RECORD_ATTRS = set(vars(logging.LogRecord("", 0, "", 0, "", None, None))) | {"message", "asctime"}

_NOISY_LOGGERS: list[tuple[str, int]] = [
    ("asyncio", logging.INFO),
    ("LiteLLM", logging.INFO),
    ("litellm", logging.INFO),
    ("openai", logging.INFO),
    ("httpcore", logging.WARNING),
    ("httpx", logging.WARNING),
    ("sqlalchemy.engine", logging.WARNING),
]


class ExtraContextFormatter(logging.Formatter):
    """extra で渡された値をメッセージ末尾に key=value で付けるフォーマッタ。"""

    def format(self, record: logging.LogRecord) -> str:
        base = super().format(record)
        context = {k: v for k, v in vars(record).items() if k not in _RESERVED_RECORD_ATTRS and not k.startswith("_")}
        if not context:
            return base
        suffix = " ".join(f"{k}={v}" for k, v in sorted(context.items()))
        # 例外のトレースバックより前（1行目の末尾）に付ける
        first, sep, rest = base.partition("\n")
        return f"{first} [{suffix}]{sep}{rest}"


class _UvicornAccessPathFilter(logging.Filter):
    """uvicornアクセスログから特定パス（ヘルスチェック等）を除外するフィルタ。"""

    def __init__(self, suppressed_paths: set[str]) -> None:
        super().__init__()
        self._suppressed_paths = suppressed_paths

    def filter(self, record: logging.LogRecord) -> bool:  # noqa: A003
        try:
            msg = record.getMessage()
        except Exception:  # noqa: BLE001
            return True
        return not any(path in msg for path in self._suppressed_paths)


def suppress_uvicorn_access_log_paths(*paths: str) -> None:
    """uvicornアクセスログから特定パスを除外する。"""
    if not paths:
        return
    logging.getLogger("uvicorn.access").addFilter(_UvicornAccessPathFilter(set(paths)))


def setup_logging(
    level: str = "INFO",
    *,
    log_file_enabled: bool = False,
    log_file_path: str = "logs/novelday.log",
) -> None:
    """
    ロギングを初期化する。

    - コンソール出力（常に有効）
    - ファイル出力（log_file_enabled のとき、1MBでローテーション）
    - LLM送受信ログは novelday.llm_io に分離し、root には流さない
    """
    root_level = getattr(logging, str(level or "INFO").upper(), logging.INFO)
    formatter = ExtraContextFormatter(LOG_FORMAT)

    console_handler = logging.StreamHandler()
    console_handler.setFormatter(formatter)
    handlers: list[logging.Handler] = [console_handler]

    if log_file_enabled:
        log_path = pathlib.Path(log_file_path)
        log_path.parent.mkdir(parents=True, exist_ok=True)
        file_handler = RotatingFileHandler(log_path, maxBytes=1_000_000, backupCount=1, encoding="utf-8")
        file_handler.setFormatter(formatter)
        handlers.append(file_handler)

    logging.basicConfig(level=root_level, handlers=handlers)
    _setup_llm_io_logger(root_level, handlers)
    for name, lib_level in _NOISY_LOGGERS:
        logging.getLogger(name).setLevel(lib_level)


def _setup_llm_io_logger(root_level: int, handlers: list[logging.Handler]) -> None:
    """LLM送受信ログ用のロガーを初期化する（root とは別に同じ出力先へ書く）。"""
    io_logger = logging.getLogger(LLM_IO_LOGGER_NAME)
    io_logger.handlers.clear()
    for handler in handlers:
        io_logger.addHandler(handler)
    io_logger.setLevel(root_level)
    io_logger.propagate = False
