"""Centralised logging configuration for the API and the command line tools.

Bot API URLs embed the bot token (``/bot<id>:<secret>/method``), so every
handler installed here carries :class:`BotTokenRedactor`, and the HTTP stack
loggers that print full URLs at DEBUG are held at WARNING.
"""
from __future__ import annotations

import logging
import re
from pathlib import Path
from typing import Iterable, Optional

DEFAULT_FORMAT = "%(asctime)s [%(levelname)s] %(name)s: %(message)s"
NOISY_LOGGERS = ("urllib3", "requests")
BOT_TOKEN_PATTERN = re.compile(r"bot\d+:[A-Za-z0-9_-]+")
REDACTED_TOKEN = "bot<redacted>"


class BotTokenRedactor(logging.Filter):
    """Mask Telegram bot tokens in the rendered log message."""

    def filter(self, record: logging.LogRecord) -> bool:
        message = record.getMessage()
        redacted = BOT_TOKEN_PATTERN.sub(REDACTED_TOKEN, message)
        if redacted != message:
            record.msg = redacted
            record.args = None
        return True


def _level_from_name(level_name: str | int | None) -> int:
    if isinstance(level_name, int):
        return level_name
    if not level_name:
        return logging.INFO
    return getattr(logging, str(level_name).upper(), logging.INFO)


def _install_redactor(handler: logging.Handler) -> None:
    if not any(isinstance(f, BotTokenRedactor) for f in handler.filters):
        handler.addFilter(BotTokenRedactor())


def _find_file_handler(
    logger: logging.Logger, path: Path
) -> logging.FileHandler | None:
    for handler in logger.handlers:
        if isinstance(handler, logging.FileHandler) and handler.baseFilename == str(
            path.resolve()
        ):
            return handler
    return None


def configure_logging(
    level: str | int = "INFO",
    log_file: Optional[str] = None,
    *,
    quiet: Iterable[str] = NOISY_LOGGERS,
) -> None:
    """Configure root handlers once; repeated calls only adjust levels."""

    numeric_level = _level_from_name(level)
    formatter = logging.Formatter(DEFAULT_FORMAT)
    root_logger = logging.getLogger()
    root_logger.setLevel(numeric_level)

    if not root_logger.handlers:
        root_logger.addHandler(logging.StreamHandler())
        root_logger.handlers[-1].setFormatter(formatter)

    if log_file:
        path = Path(log_file)
        path.parent.mkdir(parents=True, exist_ok=True)
        if _find_file_handler(root_logger, path) is None:
            file_handler = logging.FileHandler(path, encoding="utf-8")
            file_handler.setFormatter(formatter)
            root_logger.addHandler(file_handler)

    for handler in root_logger.handlers:
        handler.setLevel(numeric_level)
        _install_redactor(handler)

    for name in quiet:
        logging.getLogger(name).setLevel(max(numeric_level, logging.WARNING))
