"""Database models."""

from journal.models.trade import Trade

__all__ = [
    "Trade",
]
