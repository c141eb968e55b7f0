"""
Loguru setup for scripts and applications embedding the engine.

Library modules only ever call ``logger.debug/info/warning``; they never add
or remove sinks. Entry points (CLI scripts, services) call
``configure_logging`` once at startup.
"""

import sys
from pathlib import Path

from loguru import logger

from backtester.config.settings import LogSettings

_LOG_FORMAT = "{time:YYYY-MM-DD HH:mm:ss.SSS} | {level:<8} | {name}:{line} | {message}"

_configured = False


def configure_logging(settings: LogSettings | None = None, force: bool = False) -> None:
    """
    Install loguru sinks according to ``settings``.

    Replaces loguru's default handler with a stderr sink at the configured
    level and, when ``settings.log_dir`` is set, a daily-rotated file sink.
    Calling it again is a no-op unless ``force`` is True (tests use this to
    reconfigure levels).

    Args:
        settings: Logging settings. Defaults to ``LogSettings()`` (INFO, stderr only).
        force: Reconfigure even if logging was already configured.
    """
    global _configured

    if _configured and not force:
        return

    settings = settings or LogSettings()

    logger.remove()
    logger.add(sys.stderr, level=settings.level, format=_LOG_FORMAT)

    if settings.log_dir:
        log_dir = Path(settings.log_dir)
        log_dir.mkdir(parents=True, exist_ok=True)
        logger.add(
            str(log_dir / "backtest_{time:YYYY-MM-DD}.log"),
            level=settings.level,
            format=_LOG_FORMAT,
            rotation=settings.rotation,
            retention=settings.retention,
            enqueue=True,
        )

    _configured = True
    logger.debug("Logging configured (level={}, log_dir={})", settings.level, settings.log_dir)
