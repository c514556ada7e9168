# backend/fundledger/utils/__init__.py
"""
Cross-cutting utilities.

- logging: Logging configuration with correlation ID support
- context: Request-scoped correlation ID storage
- date_utils: Date parsing and snapshot period boundaries

Usage:
    from fundledger.utils import setup_logging, get_logger
    from fundledger.utils import get_correlation_id, set_correlation_id
"""

from fundledger.utils.context import (
    get_correlation_id,
    set_correlation_id,
    clear_correlation_id,
)
from fundledger.utils.logging import setup_logging, get_logger

__all__ = [
    "setup_logging",
    "get_logger",
    "get_correlation_id",
    "set_correlation_id",
    "clear_correlation_id",
]
