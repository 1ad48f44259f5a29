"""Store implementations behind the repository protocols in ``base``."""

from .base import Store, UnitOfWork
from .memory import InMemoryStore
from .postgres import PostgresStore

__all__ = ["InMemoryStore", "PostgresStore", "Store", "UnitOfWork"]
