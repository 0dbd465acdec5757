"""
Storage backends for X-Ray executions

    - EventStore: the contract XRaySession depends on
    - InMemoryStore: volatile, for tests and local runs
    - SQLStore: durable, SQLAlchemy async (SQLite by default)
"""

from .base import EventStore, supports
from .memory import InMemoryStore
from .sql import SQLStore

__all__ = [
    "EventStore",
    "InMemoryStore",
    "SQLStore",
    "supports",
]
