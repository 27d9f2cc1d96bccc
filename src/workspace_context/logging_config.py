"""Logging setup for the context engine.

All modules log through get_logger(__name__), which places them under the
"workspace_context" logger. setup_logging() attaches handlers to that logger
only, so embedding applications keep control of the root logger.
"""

import logging
import os
from typing import Optional

_LOG_FORMAT = "%(asctime)s - %(name)s - %(levelname)s - %(message)s"
_PACKAGE_LOGGER = "workspace_context"

# Libraries that log every HTTP request, model load or file event at INFO
_NOISY_LOGGERS = ("httpx", "openai", "sentence_transformers", "watchdog")

_configured = False


def _resolve_level(level: str) -> int:
    env_level = os.getenv("WORKSPACE_CONTEXT_LOG_LEVEL")
    name = (env_level or level).upper()
    return getattr(logging, name, logging.INFO)


def _build_handlers(log_level: int, log_file: Optional[str]) -> list[logging.Handler]:
    formatter = logging.Formatter(_LOG_FORMAT)
    handlers: list[logging.Handler] = [logging.StreamHandler()]

    if log_file:
        try:
            handlers.append(logging.FileHandler(log_file, encoding="utf-8"))
        except OSError:
            logging.getLogger(_PACKAGE_LOGGER).warning(
                "Could not open log file %s, logging to stderr only", log_file
            )

    for handler in handlers:
        handler.setLevel(log_level)
        handler.setFormatter(formatter)
    return handlers


def setup_logging(
    level: str = "INFO",
    log_file: Optional[str] = None,
) -> None:
    """Configure the package logger. Later calls are no-ops.

    WORKSPACE_CONTEXT_LOG_LEVEL and WORKSPACE_CONTEXT_LOG_FILE, when set,
    take precedence over the arguments.

    Args:
        level: Log level (DEBUG, INFO, WARNING, ERROR)
        log_file: Optional path to log file. If None, logs to stderr only.
    """
    global _configured
    if _configured:
        return

    env_file = os.getenv("WORKSPACE_CONTEXT_LOG_FILE")
    if env_file is not None:
        log_file = env_file

    log_level = _resolve_level(level)

    package_logger = logging.getLogger(_PACKAGE_LOGGER)
    package_logger.setLevel(log_level)
    package_logger.handlers.clear()
    for handler in _build_handlers(log_level, log_file):
        package_logger.addHandler(handler)

    if log_level > logging.DEBUG:
        for name in _NOISY_LOGGERS:
            logging.getLogger(name).setLevel(logging.WARNING)

    _configured = True


def get_logger(name: str) -> logging.Logger:
    """Return a logger under the package namespace.

    Args:
        name: Logger name, typically __name__ of the calling module.
    """
    if name == _PACKAGE_LOGGER or name.startswith(_PACKAGE_LOGGER + "."):
        return logging.getLogger(name)
    return logging.getLogger(f"{_PACKAGE_LOGGER}.{name}")
