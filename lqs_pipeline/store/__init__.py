"""Persistence backends for households, quotes and sales."""

from .base import DataStore, TableStore
from .memory import InMemoryStore
from .rest import FunctionStore, RestStore

__all__ = ["DataStore", "FunctionStore", "InMemoryStore", "RestStore", "TableStore"]
