"""Shared utilities."""

from .logging_config import InterceptHandler, setup_logging

__all__ = ['InterceptHandler', 'setup_logging']
