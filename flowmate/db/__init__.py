"""Database connection management for FlowMate."""

from flowmate.db.connection import (
    get_connection,
    reset_connection_factory,
    set_connection_factory,
)

__all__ = [
    "get_connection",
    "reset_connection_factory",
    "set_connection_factory",
]
