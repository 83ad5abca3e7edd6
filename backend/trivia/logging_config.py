"""Logging configuration helpers for the trivia server."""

import logging
from logging import Logger


def configure_logging(level: str = 'INFO') -> Logger:
    """Configure basic logging for the server and return the package logger."""
    logging.basicConfig(
        level=getattr(logging, str(level).upper(), logging.INFO),
        format='%(asctime)s | %(levelname)s | %(name)s | %(message)s',
    )
    return logging.getLogger('trivia')
