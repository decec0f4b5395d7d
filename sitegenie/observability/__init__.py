"""Logging and metrics for SiteGenie."""

from .logging import StructuredLogger, get_structured_logger, log_duration, setup_logging

__all__ = [
    'StructuredLogger',
    'get_structured_logger',
    'log_duration',
    'setup_logging',
]
