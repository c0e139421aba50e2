"""
Services layer for StampOrderWeb.

This module contains the business logic services:
- OrderStore: Thread-safe in-memory storage with atomic patch sets
- OrderService: Order / stamp operations on top of the rule engines

Thread Model:
    Flask request threads share one OrderService and one OrderStore.
    The store serializes every write with a single lock; concurrent edits
    to the same stamp are last-write-wins.
"""

from .order_store import Commit, OrderStore
from .order_service import OrderService

__all__ = [
    "Commit",
    "OrderService",
    "OrderStore",
]
