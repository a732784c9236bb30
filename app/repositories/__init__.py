"""
app/repositories package marker.
"""

from app.repositories.base import AliasRegistry, ImportLedgerStore, TripStore
from app.repositories.memory import InMemoryAliasRegistry, InMemoryImportLedgerStore, InMemoryTripStore
from app.repositories.sqlalchemy_store import (
    SQLAlchemyAliasRegistry,
    SQLAlchemyImportLedgerStore,
    SQLAlchemyTripStore,
)

__all__ = [
    "AliasRegistry",
    "ImportLedgerStore",
    "InMemoryAliasRegistry",
    "InMemoryImportLedgerStore",
    "InMemoryTripStore",
    "SQLAlchemyAliasRegistry",
    "SQLAlchemyImportLedgerStore",
    "SQLAlchemyTripStore",
    "TripStore",
]
