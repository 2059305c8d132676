# Logger - Centralized Logging System
# One configured logger per component name

"""
Logger Module

Responsibilities:
- Setup named loggers once (registry keyed by name)
- Configure log levels
- Configure log handlers (console, rotating file)
- Log formatting
"""

import logging
import sys
import atexit
from pathlib import Path
from logging.handlers import RotatingFileHandler

# Global registry to track configured loggers
_configured_loggers = {}

# Set by set_level() / attach_file_handler(), applied to loggers created later
_level_override = None
_shared_handlers = []

def setup_logger(name: str = "chatlink", level: str = "INFO", log_file: str = None):
    """
    Setup logger with console and file handlers

    Returns the existing logger if the name was already configured, so
    components that are constructed many times do not stack handlers.

    Args:
        name: Logger name
        level: Log level (DEBUG, INFO, WARNING, ERROR, CRITICAL)
        log_file: Optional log file path

    Returns:
        Configured logger instance (existing or new)
    """
    if name in _configured_loggers:
        return _configured_loggers[name]

    logger = logging.getLogger(name)

    if logger.handlers:
        _configured_loggers[name] = logger
        return logger

    logger.setLevel(getattr(logging, (_level_override or level).upper()))
    logger.propagate = False

    formatter = logging.Formatter(
        '%(asctime)s - %(name)s - %(levelname)s - %(message)s',
        datefmt='%Y-%m-%d %H:%M:%S'
    )

    # Console handler
    console_handler = logging.StreamHandler(sys.stdout)
    console_handler.setFormatter(formatter)
    console_handler.setLevel(getattr(logging, (_level_override or "INFO").upper()))
    logger.addHandler(console_handler)

    if log_file:
        log_path = Path(log_file)
        log_path.parent.mkdir(parents=True, exist_ok=True)

        file_handler = RotatingFileHandler(
            log_file,
            maxBytes=10485760,  # 10MB
            backupCount=5,
            encoding='utf-8'
        )
        file_handler.setFormatter(formatter)
        file_handler.setLevel(logging.DEBUG)  # File gets all levels
        logger.addHandler(file_handler)

    for handler in _shared_handlers:
        logger.addHandler(handler)
        if logger.level > handler.level:
            logger.setLevel(handler.level)

    def cleanup_handlers():
        """Close all handlers on interpreter exit."""
        for handler in logger.handlers[:]:
            try:
                handler.close()
                logger.removeHandler(handler)
            except Exception:
                pass  # Ignore errors during cleanup

    atexit.register(cleanup_handlers)

    _configured_loggers[name] = logger

    return logger

def get_logger(name: str = "chatlink"):
    """
    Get existing logger or create new one if not exists.

    Args:
        name: Logger name

    Returns:
        Logger instance
    """
    if name in _configured_loggers:
        return _configured_loggers[name]
    return setup_logger(name)

def attach_file_handler(log_file: str, level: str = "DEBUG"):
    """
    Add a rotating file handler to every logger configured so far

    Used by the terminal client once the config (and its log file path)
    is known, after the component loggers already exist.

    Args:
        log_file: Log file path
        level: Minimum level written to the file
    """
    log_path = Path(log_file)
    log_path.parent.mkdir(parents=True, exist_ok=True)

    formatter = logging.Formatter(
        '%(asctime)s - %(name)s - %(levelname)s - %(message)s',
        datefmt='%Y-%m-%d %H:%M:%S'
    )
    file_handler = RotatingFileHandler(
        log_file,
        maxBytes=10485760,  # 10MB
        backupCount=5,
        encoding='utf-8'
    )
    file_handler.setFormatter(formatter)
    file_handler.setLevel(getattr(logging, level.upper()))

    _shared_handlers.append(file_handler)
    for logger in _configured_loggers.values():
        logger.addHandler(file_handler)
        if logger.level > file_handler.level:
            logger.setLevel(file_handler.level)
    atexit.register(file_handler.close)

def set_level(level: str):
    """
    Apply the configured log level to every component logger

    Loggers configured later pick the level up too. Console output follows
    the level; file handlers keep their own.

    Args:
        level: Log level (DEBUG, INFO, WARNING, ERROR, CRITICAL)
    """
    global _level_override
    _level_override = level
    log_level = getattr(logging, level.upper())

    for logger in _configured_loggers.values():
        floor = log_level
        for handler in logger.handlers:
            if isinstance(handler, RotatingFileHandler):
                floor = min(floor, handler.level)
            else:
                handler.setLevel(log_level)
        logger.setLevel(floor)
