"""
Centralized logging configuration.

``setup_logging`` configures the root logger once per process:
- console output on stdout (or the given stream) at the requested level
- optional file output to ``<log_dir>/<service_name>.log``, truncated on start
  unless ``LOG_APPEND=1``; it always records INFO and above
- third-party loggers (redis, asyncio) held at WARNING
"""

import logging
import logging.handlers
import sys
import threading
from pathlib import Path
from typing import Optional, TextIO, Union

from binrunner.config import env_bool, env_str

# Thread-safe lock for logging configuration
_config_lock = threading.Lock()
_MODULE_LOGGER = logging.getLogger(__name__)
_TECHNICAL_FORMAT = "%(asctime)s.%(msecs)03d - %(name)s - %(levelname)s - %(message)s"
_DATE_FORMAT = "%Y-%m-%d %H:%M:%S"


def _technical_formatter() -> logging.Formatter:
    return logging.Formatter(_TECHNICAL_FORMAT, _DATE_FORMAT)


def _close_handlers(logger: logging.Logger) -> None:
    for handler in list(logger.handlers):
        try:
            handler.close()
        except OSError as exc:
            _MODULE_LOGGER.debug("Handler close failed for logger '%s': %s", logger.name, exc)
        logger.removeHandler(handler)


def _build_console_handler(level: int, stream: Optional[TextIO]) -> logging.Handler:
    console_handler = logging.StreamHandler(stream or sys.stdout)
    console_handler.setFormatter(_technical_formatter())
    console_handler.setLevel(level)
    return console_handler


def _resolve_log_dir(log_dir: Optional[Union[str, Path]]) -> Optional[Path]:
    if log_dir is not None:
        return Path(log_dir).expanduser()
    configured = env_str("BINRUNNER_LOG_DIR")
    if configured:
        return Path(configured).expanduser()
    return None


def _configure_file_handler(service_name: Optional[str], log_dir: Optional[Path]) -> Optional[logging.Handler]:
    if not service_name or log_dir is None:
        return None

    log_dir.mkdir(parents=True, exist_ok=True)
    log_path = log_dir / f"{service_name}.log"
    file_mode = "a" if env_bool("LOG_APPEND", or_value=False) else "w"

    file_handler = logging.handlers.WatchedFileHandler(log_path, mode=file_mode)
    file_handler.setFormatter(_technical_formatter())
    file_handler.setLevel(logging.INFO)
    return file_handler


def _suppress_noisy_third_parties() -> None:
    logging.getLogger("asyncio").setLevel(logging.WARNING)
    logging.getLogger("redis").setLevel(logging.WARNING)
    logging.getLogger("redis.connection").setLevel(logging.WARNING)
    logging.getLogger("redis.asyncio").setLevel(logging.WARNING)


def setup_logging(
    service_name: Optional[str] = None,
    *,
    log_dir: Optional[Union[str, Path]] = None,
    level: int = logging.INFO,
    stream: Optional[TextIO] = None,
) -> None:
    """Configure logging for the application"""

    with _config_lock:
        root_logger = logging.getLogger()
        _close_handlers(root_logger)

        root_logger.addHandler(_build_console_handler(level, stream))

        root_level = level
        file_handler = _configure_file_handler(service_name, _resolve_log_dir(log_dir))
        if file_handler:
            root_logger.addHandler(file_handler)
            # The file records INFO and above whatever the console level.
            root_level = min(level, logging.INFO)

        root_logger.setLevel(root_level)
        _suppress_noisy_third_parties()
