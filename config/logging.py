"""集中式日志配置

向量存储各子系统的日志都带有方括号标签（[VECTOR]、[INDEX]、[SEARCH]、[EMBED]、[API]、[SERVER]），
控制台输出按标签着色，文件输出保持纯文本。

特性:
    - 按标签彩色输出，非 TTY 自动关闭颜色
    - 可选的滚动日志文件（10MB，保留5个备份）
    - 压制第三方库的冗余日志（httpx、uvicorn.access、lancedb）
"""
import logging
import logging.handlers
import re
import sys
from pathlib import Path
from typing import Optional


LOG_FORMAT = "%(asctime)s | %(levelname)-8s | %(name)s | %(message)s"
CONSOLE_TIME_FORMAT = "%H:%M:%S"
FILE_TIME_FORMAT = "%Y-%m-%d %H:%M:%S"

MAX_LOG_BYTES = 10 * 1024 * 1024
LOG_BACKUPS = 5

_RESET = "\033[0m"

LEVEL_COLORS = {
    logging.DEBUG: "\033[36m",
    logging.INFO: "\033[37m",
    logging.WARNING: "\033[33m",
    logging.ERROR: "\033[31m",
    logging.CRITICAL: "\033[35m",
}

TAG_COLORS = {
    "VECTOR": "\033[92m",
    "INDEX": "\033[96m",
    "SEARCH": "\033[93m",
    "EMBED": "\033[95m",
    "API": "\033[94m",
    "SERVER": "\033[1m",
}

_TAG = re.compile(r"^\[([A-Z]+)\]")

# Third-party loggers and the lowest level that still reaches the handlers
NOISY_LOGGERS = {
    "httpx": logging.WARNING,
    "lancedb": logging.WARNING,
    "uvicorn": logging.INFO,
    "uvicorn.access": logging.WARNING,
}


def should_colorize(stream=None) -> bool:
    stream = stream or sys.stdout
    return hasattr(stream, "isatty") and stream.isatty()


class TagColorFormatter(logging.Formatter):
    """Colors the level name and the leading ``[TAG]`` of each message."""

    def __init__(self, colorize: Optional[bool] = None):
        super().__init__(fmt=LOG_FORMAT, datefmt=CONSOLE_TIME_FORMAT)
        self.colorize = should_colorize() if colorize is None else colorize

    def formatMessage(self, record: logging.LogRecord) -> str:
        if not self.colorize:
            return super().formatMessage(record)

        original_level, original_message = record.levelname, record.message
        level_color = LEVEL_COLORS.get(record.levelno, "")
        record.levelname = f"{level_color}{record.levelname:8}{_RESET}"

        match = _TAG.match(record.message)
        if match and match.group(1) in TAG_COLORS:
            tag_color = TAG_COLORS[match.group(1)]
            record.message = f"{tag_color}{match.group(0)}{_RESET}{record.message[match.end():]}"

        try:
            return super().formatMessage(record)
        finally:
            record.levelname, record.message = original_level, original_message


def parse_log_level(level_str: str) -> int:
    """Parse a level name (DEBUG, INFO, ...) into a logging constant, INFO if unknown."""
    level = logging.getLevelName(str(level_str).upper())
    return level if isinstance(level, int) else logging.INFO


class QuietLogFilter(logging.Filter):
    """Drops per-request chatter.

    httpx logs one INFO line per embedding request, and request logging is
    done by the API middleware instead of uvicorn's access log.
    """

    def filter(self, record: logging.LogRecord) -> bool:
        if record.name == "httpx" and record.levelno <= logging.INFO:
            return False
        return not record.name.startswith("uvicorn.access")


def setup_logging(level: str = "INFO", log_file: Optional[Path] = None) -> None:
    """Configure application-wide logging.

    Args:
        level: Console and root log level name.
        log_file: Optional rotating log file; it always records DEBUG and up.
    """
    numeric_level = parse_log_level(level)
    root_logger = logging.getLogger()
    root_logger.setLevel(logging.DEBUG if log_file else numeric_level)
    root_logger.handlers.clear()

    console_handler = logging.StreamHandler(sys.stdout)
    console_handler.setFormatter(TagColorFormatter())
    console_handler.setLevel(numeric_level)
    console_handler.addFilter(QuietLogFilter())
    root_logger.addHandler(console_handler)

    if log_file:
        log_file = Path(log_file).expanduser()
        log_file.parent.mkdir(parents=True, exist_ok=True)
        file_handler = logging.handlers.RotatingFileHandler(
            log_file,
            maxBytes=MAX_LOG_BYTES,
            backupCount=LOG_BACKUPS,
            encoding="utf-8",
        )
        file_handler.setFormatter(logging.Formatter(fmt=LOG_FORMAT, datefmt=FILE_TIME_FORMAT))
        file_handler.setLevel(logging.DEBUG)
        file_handler.addFilter(QuietLogFilter())
        root_logger.addHandler(file_handler)

    for name, noisy_level in NOISY_LOGGERS.items():
        logging.getLogger(name).setLevel(noisy_level)


def get_logger(name: str) -> logging.Logger:
    return logging.getLogger(name)
