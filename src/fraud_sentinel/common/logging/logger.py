"""Centralized logging configuration."""

import logging
from typing import Optional

LOG_FORMAT = "%(asctime)s - %(name)s - %(levelname)s - %(message)s"

# Audit levels use the incident-desk vocabulary; map them onto stdlib levels
_AUDIT_LEVELS = {
    "info": logging.INFO,
    "warn": logging.WARNING,
    "error": logging.ERROR,
    "critical": logging.CRITICAL,
}


def get_logger(name: str, level: Optional[str] = None) -> logging.Logger:
    """Get a configured logger instance.
    
    Args:
        name: Logger name, usually ``__name__``.
        level: Level name (``"INFO"``, ``"DEBUG"``...). Left untouched if None.
    """
    logger = logging.getLogger(name)
    if level is not None:
        logger.setLevel(getattr(logging, level.upper()))
    
    if not logger.handlers:
        handler = logging.StreamHandler()
        handler.setFormatter(logging.Formatter(LOG_FORMAT))
        logger.addHandler(handler)
    
    return logger


def audit_level_to_logging(level: str) -> int:
    """Translate an audit level (info/warn/error/critical) to a logging level."""
    return _AUDIT_LEVELS.get(level, logging.INFO)
