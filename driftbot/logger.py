from __future__ import annotations

import os
import sys
import time
from contextlib import contextmanager
from pathlib import Path
from typing import Any

from loguru import logger as _logger

_CONFIGURED = False
DEFAULT_LOG_DIR = Path(__file__).resolve().parent / "logs"
LOG_DIR_ENV = "APP_LOG_DIR"
LOG_LEVEL_ENV = "APP_LOG_LEVEL"

_LOG_FORMAT = (
    "<green>{time:YYYY-MM-DD HH:mm:ss.SSS}</green> | "
    "<level>{level: <8}</level> | "
    "<cyan>{name}</cyan>:<cyan>{function}</cyan>:<cyan>{line}</cyan> - "
    "<level>{message}</level> {extra}"
)


def _resolve_log_dir(explicit: str | Path | None) -> Path:
    if explicit is not None:
        return Path(explicit).expanduser().resolve()
    env_value = os.getenv(LOG_DIR_ENV)
    if env_value:
        return Path(env_value).expanduser().resolve()
    return DEFAULT_LOG_DIR


def configure_logger(*, log_dir: str | Path | None = None, level: str | None = None) -> None:
    """Configure the Loguru sinks once per process.

    Console output honours ``APP_LOG_LEVEL``; the daily file sink always
    records DEBUG so fallbacks and check-run transitions can be traced
    after the fact.
    """

    global _CONFIGURED
    if _CONFIGURED:
        return

    target_dir = _resolve_log_dir(log_dir)
    target_dir.mkdir(parents=True, exist_ok=True)
    log_level = level or os.getenv(LOG_LEVEL_ENV, "INFO")

    _logger.remove()
    _logger.add(
        sys.stdout,
        level=log_level,
        format=_LOG_FORMAT,
        colorize=sys.stdout.isatty(),
    )
    _logger.add(
        target_dir / "driftbot-{time:YYYY-MM-DD}.log",
        rotation="50 MB",
        retention="10 days",
        level="DEBUG",
        format=_LOG_FORMAT,
        enqueue=True,
        backtrace=True,
        diagnose=False,
    )

    _CONFIGURED = True


def get_logger(*, log_dir: str | Path | None = None, level: str | None = None):
    """Return the configured logger, configuring it on first access."""

    configure_logger(log_dir=log_dir, level=level)
    return _logger


def log_with_context(logger_instance, **context: str | int | None) -> Any:
    """Bind non-empty context fields (repository, pull_number, head_sha...) to a logger."""
    return logger_instance.bind(**{k: v for k, v in context.items() if v is not None})


def log_timing(logger_instance, operation: str, **context: str | int | None):
    """Context manager that logs how long ``operation`` took.

    Failures are logged with their duration and re-raised unchanged.
    """

    @contextmanager
    def _timing():
        start_time = time.perf_counter()
        ctx_logger = log_with_context(logger_instance, **context)
        ctx_logger.debug(f"Starting {operation}")
        try:
            yield ctx_logger
        except Exception as exc:
            duration = time.perf_counter() - start_time
            ctx_logger.error(f"Failed {operation} after {duration:.3f}s: {exc}")
            raise
        duration = time.perf_counter() - start_time
        ctx_logger.debug(f"Completed {operation} in {duration:.3f}s")

    return _timing()


def log_success(logger_instance, message: str, **context: str | int | None) -> None:
    log_with_context(logger_instance, **context).info(f"=== SUCCESS: {message} ===")


def log_failure(logger_instance, message: str, error: BaseException | None = None, **context: str | int | None) -> None:
    ctx_logger = log_with_context(logger_instance, **context)
    if error:
        ctx_logger.error(f"=== FAILURE: {message} | Error: {error} ===")
    else:
        ctx_logger.error(f"=== FAILURE: {message} ===")


logger = get_logger()
