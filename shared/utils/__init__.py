"""Shared utilities for the facility services."""

from shared.utils.logging import (
    configure_logging,
    correlation_scope,
    get_correlation_id,
    get_logger,
    set_correlation_id,
)
from shared.utils.db import (
    build_engine,
    build_session_factory,
    close_db,
    init_db,
)
from shared.utils.metrics import create_counter, create_histogram

__all__ = [
    "configure_logging",
    "correlation_scope",
    "get_correlation_id",
    "get_logger",
    "set_correlation_id",
    "build_engine",
    "build_session_factory",
    "close_db",
    "init_db",
    "create_counter",
    "create_histogram",
]
