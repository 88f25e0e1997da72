import sys
import logging
from pathlib import Path
from typing import Any, Optional

from loguru import logger

from cfb_reconcile.config.settings import settings

CONSOLE_FORMAT = (
    "<green>{time:YYYY-MM-DD HH:mm:ss.SSS}</green> | "
    "<level>{level: <8}</level> | "
    "<magenta>{extra[category]}</magenta> | "
    "<cyan>{name}</cyan>:<cyan>{function}</cyan>:<cyan>{line}</cyan> - "
    "<level>{message}</level>"
)


def noisy_library_filter(record: dict[str, Any]) -> bool:
    """Drops DEBUG chatter from the HTTP stack unless we are debugging ourselves."""
    name = record.get("name") or ""
    if name.startswith(("httpx", "httpcore")):
        return record["level"].no >= logger.level("INFO").no or settings.log_level == "DEBUG"
    return True


class InterceptHandler(logging.Handler):
    """Routes stdlib logging records (httpx, asyncio) into loguru."""

    def emit(self, record: logging.LogRecord) -> None:
        try:
            level = logger.level(record.levelname).name
        except ValueError:
            level = record.levelno

        # Walk out of the logging module so loguru reports the real caller
        frame, depth = logging.currentframe(), 2
        while frame.f_code.co_filename == logging.__file__:
            frame = frame.f_back
            depth += 1

        logger.opt(depth=depth, exception=record.exc_info).log(level, record.getMessage())


def setup_logging(level: Optional[str] = None, log_file: Optional[Path] = None) -> None:
    """Configures Loguru from settings; arguments override the configured level and file."""
    level = (level or settings.log_level).upper()
    log_file = log_file or settings.log_file

    logger.remove()
    logger.configure(extra={"category": settings.category.value})
    logger.add(
        sys.stderr,
        level=level,
        format=CONSOLE_FORMAT,
        colorize=True,
        backtrace=True,
        diagnose=True,
        filter=noisy_library_filter,
    )

    if log_file:
        # JSON lines, rotated
        logger.add(
            str(log_file),
            level="DEBUG",
            rotation="10 MB",
            retention="7 days",
            compression="zip",
            serialize=True,
            filter=noisy_library_filter,
        )

    logging.basicConfig(handlers=[InterceptHandler()], level=0, force=True)
    logger.info(f"Logging initialized with level {level}" + (f", file sink {log_file}" if log_file else ""))
