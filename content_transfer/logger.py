"""Logging setup, progress tracking and configuration logging."""

import copy
import logging
import logging.handlers
import time
from typing import Any, Dict, Optional

import colorlog

LOGGER_NAME = 'content_transfer'
LOG_LEVELS = ("DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL")
SENSITIVE_FIELDS = ('password', 'secret', 'api_token', 'access_token', 'api_key', 'auth_header')
REDACTED = "***REDACTED***"


def setup_logging(
    verbosity: int = 0,
    log_file: Optional[str] = None,
    log_format: Optional[str] = None,
    date_format: Optional[str] = None,
    level: Optional[str] = None
) -> logging.Logger:
    """
    Configure the package logger.

    Args:
        verbosity: 0=WARNING, 1=INFO, 2+=DEBUG
        log_file: Optional path of a rotating log file
        log_format: Optional custom log format string
        date_format: Optional custom date format string
        level: Explicit level name, overrides verbosity

    Returns:
        The package logger

    Raises:
        ValueError: If `level` is not a valid level name
    """
    if level:
        if level.upper() not in LOG_LEVELS:
            raise ValueError(f"Invalid log level '{level}'. Must be one of: {list(LOG_LEVELS)}")
        log_level = getattr(logging, level.upper())
    elif verbosity >= 2:
        log_level = logging.DEBUG
    elif verbosity == 1:
        log_level = logging.INFO
    else:
        log_level = logging.WARNING

    log_format = log_format or '%(asctime)s - %(name)s - %(levelname)s - %(message)s'
    date_format = date_format or '%Y-%m-%d %H:%M:%S'

    # Dependencies stay at WARNING
    logging.basicConfig(level=logging.WARNING, format=log_format, datefmt=date_format)

    logger = logging.getLogger(LOGGER_NAME)
    logger.setLevel(log_level)
    logger.propagate = False
    logger.handlers.clear()

    console_handler = colorlog.StreamHandler()
    console_handler.setLevel(log_level)
    console_handler.setFormatter(colorlog.ColoredFormatter(
        fmt='%(log_color)s' + log_format,
        datefmt=date_format,
        log_colors={
            'DEBUG': 'cyan',
            'INFO': 'green',
            'WARNING': 'yellow',
            'ERROR': 'red',
            'CRITICAL': 'red,bg_white',
        }
    ))
    logger.addHandler(console_handler)

    if log_file:
        try:
            file_handler = logging.handlers.RotatingFileHandler(
                log_file,
                maxBytes=10 * 1024 * 1024,
                backupCount=5,
                encoding='utf-8'
            )
        except OSError as e:
            logger.warning(f"Failed to set up file logging: {e}")
        else:
            file_handler.setLevel(log_level)
            file_handler.setFormatter(logging.Formatter(fmt=log_format, datefmt=date_format))
            logger.addHandler(file_handler)
            logger.info(f"Logging to file: {log_file}")

    logger.debug(f"Log level: {logging.getLevelName(log_level)}")
    return logger


class ProgressTracker:
    """Counts handled items, per kind, and logs a summary when the block ends."""

    def __init__(self, total_items: int, item_type: str = "records", log_every: int = 100):
        """
        Args:
            total_items: Number of items expected
            item_type: Description used in log lines (e.g. "records", "start nodes")
            log_every: Log a progress line every this many items
        """
        self.total = total_items
        self.item_type = item_type
        self.log_every = max(1, log_every)
        self.done = 0
        self.by_kind: Dict[str, int] = {}
        self.started: Optional[float] = None
        self.logger = logging.getLogger(LOGGER_NAME)

    def __enter__(self) -> 'ProgressTracker':
        self.started = time.time()
        self.logger.info(f"{self.item_type.capitalize()} to handle: {self.total}")
        return self

    def __exit__(self, exc_type, exc_val, exc_tb):
        if self.started is None:
            return
        line = f"{self.item_type.capitalize()}: {self.done}/{self.total} in {format_duration(self.elapsed)}"
        if self.by_kind:
            kinds = ', '.join(f"{kind}: {count}" for kind, count in sorted(self.by_kind.items()))
            line += f" ({kinds})"
        if exc_type is not None:
            self.logger.error(f"{line}, stopped by {exc_type.__name__}")
        else:
            self.logger.info(line)

    @property
    def elapsed(self) -> float:
        return 0.0 if self.started is None else time.time() - self.started

    def increment(self, kind: Optional[str] = None) -> None:
        """Count one item, optionally under a kind such as its record type."""
        self.done += 1
        if kind:
            self.by_kind[kind] = self.by_kind.get(kind, 0) + 1
        if self.done % self.log_every == 0:
            self.logger.info(f"{self.done}/{self.total} {self.item_type}")


def format_duration(seconds: float) -> str:
    """Render seconds as `4.2s`, `3m 5s` or `1h 2m 5s`."""
    if seconds < 60:
        return f"{seconds:.1f}s"
    minutes, seconds = divmod(int(seconds), 60)
    if minutes < 60:
        return f"{minutes}m {seconds}s"
    hours, minutes = divmod(minutes, 60)
    return f"{hours}h {minutes}m {seconds}s"


def log_section(title: str) -> None:
    """Log a section header."""
    logger = logging.getLogger(LOGGER_NAME)
    separator = "=" * 60
    logger.info(separator)
    logger.info(f"  {title.upper()}")
    logger.info(separator)


def log_config(config: Dict[str, Any]) -> None:
    """Log the effective configuration with secrets redacted."""
    logger = logging.getLogger(LOGGER_NAME)
    sanitized = _sanitize_config(config)

    log_section("Configuration")
    for section in ('source', 'destination'):
        store = sanitized.get(section) or {}
        if not store:
            continue
        location = store.get('base_url') or store.get('path') or 'in memory'
        logger.info(f"{section.capitalize()}: {store.get('type', 'memory')} ({location})")
        if store.get('api_token'):
            logger.info(f"{section.capitalize()} API Token: {store['api_token']}")

    export_settings = sanitized.get('export') or {}
    if export_settings:
        included = [key[len('include_'):] for key, value in export_settings.items()
                    if key.startswith('include_') and value]
        logger.info(f"Export includes: {', '.join(included) or 'selected nodes only'}")
        logger.info(f"Embed file data: {export_settings.get('embed_file_data', True)}")

    import_settings = sanitized.get('import') or {}
    if import_settings:
        logger.info(f"Interactive: {import_settings.get('interactive', False)}")
        logger.info(f"Start node: {import_settings.get('start_node', 'destination root')}")
        for point, decision in (import_settings.get('policies') or {}).items():
            logger.info(f"Policy {point}: {decision}")

    transforms = sanitized.get('transforms') or {}
    if transforms:
        logger.info(f"Transforms configured for: {', '.join(transforms)}")


def _sanitize_config(config: Dict[str, Any]) -> Dict[str, Any]:
    """Copy of the configuration with sensitive string values masked."""

    def mask(data: Any) -> Any:
        if isinstance(data, dict):
            return {
                key: REDACTED if isinstance(value, str) and any(s in key.lower() for s in SENSITIVE_FIELDS)
                else mask(value)
                for key, value in data.items()
            }
        if isinstance(data, list):
            return [mask(item) for item in data]
        return data

    return mask(copy.deepcopy(config))


__all__ = [
    'setup_logging',
    'ProgressTracker',
    'format_duration',
    'log_section',
    'log_config',
    'LOGGER_NAME',
]
