"""
Logging configuration for proflasher.

Human-readable output on stderr, with any ``extra={...}`` context fields
appended as ``key=value`` pairs.
"""
import logging
import sys
from typing import Optional

# Attributes every LogRecord carries; anything else came in through ``extra``
_STANDARD_ATTRS = frozenset({
    'name', 'msg', 'args', 'created', 'filename', 'funcName',
    'levelname', 'levelno', 'lineno', 'module', 'msecs',
    'message', 'pathname', 'process', 'processName', 'relativeCreated',
    'thread', 'threadName', 'exc_info', 'exc_text', 'stack_info',
    'asctime', 'taskName',
})


class ContextFormatter(logging.Formatter):
    """Formatter that appends structured context fields to log messages.

    Format: timestamp [LEVEL] logger_name: message | key1=value1 key2=value2
    """

    COLORS = {
        'DEBUG': '\033[36m',
        'INFO': '\033[32m',
        'WARNING': '\033[33m',
        'ERROR': '\033[31m',
        'CRITICAL': '\033[35m',
        'RESET': '\033[0m',
        'GRAY': '\033[90m',
    }

    def __init__(self, fmt: Optional[str] = None, datefmt: Optional[str] = None, use_colors: bool = True):
        super().__init__(fmt, datefmt)
        self.use_colors = use_colors

    def _color(self, name: str) -> str:
        return self.COLORS[name] if self.use_colors else ''

    def format(self, record: logging.LogRecord) -> str:
        base_msg = super().format(record)

        levelname = record.levelname
        if self.use_colors and levelname in self.COLORS:
            colored_level = f"{self._color(levelname)}[{levelname}]{self._color('RESET')}"
            base_msg = base_msg.replace(f"[{levelname}]", colored_level)

        extra_fields = [
            f"{key}={value}"
            for key, value in record.__dict__.items()
            if key not in _STANDARD_ATTRS and value is not None
        ]
        if extra_fields:
            return f"{base_msg}{self._color('GRAY')} | {' '.join(extra_fields)}{self._color('RESET')}"
        return base_msg


def setup_logging(level: str = "WARNING") -> None:
    """Configure the ``proflasher`` logger hierarchy.

    Args:
        level: Logging level name (DEBUG, INFO, WARNING, ERROR)
    """
    logger = logging.getLogger("proflasher")
    logger.setLevel(getattr(logging, level.upper(), logging.WARNING))
    logger.handlers.clear()

    handler = logging.StreamHandler(sys.stderr)
    handler.setFormatter(ContextFormatter(
        fmt='%(asctime)s [%(levelname)s] %(name)s: %(message)s',
        datefmt='%Y-%m-%d %H:%M:%S',
        use_colors=sys.stderr.isatty(),
    ))
    logger.addHandler(handler)
    logger.propagate = False

    # The SDK's HTTP client is chatty at INFO
    logging.getLogger("httpx").setLevel(logging.WARNING)
