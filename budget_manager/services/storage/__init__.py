"""
Storage Services Package

Provides abstract interfaces and concrete implementations for data storage.
SQLAlchemy is the persistent backend; the in-memory backend serves tests.
"""

from budget_manager.services.storage.interface import (
    AuditStorageInterface,
    ConnectionError,
    DuplicateError,
    LedgerStorageInterface,
    NotFoundError,
    StorageError,
)
from budget_manager.services.storage.memory import (
    InMemoryAuditStorage,
    InMemoryLedgerStorage,
)
from budget_manager.services.storage.sql import (
    SqlAuditStorage,
    SqlClient,
    SqlLedgerStorage,
)

__all__ = [
    # Interfaces
    "AuditStorageInterface",
    "LedgerStorageInterface",
    # Exceptions
    "ConnectionError",
    "DuplicateError",
    "NotFoundError",
    "StorageError",
    # In-memory implementation
    "InMemoryAuditStorage",
    "InMemoryLedgerStorage",
    # SQL implementation
    "SqlAuditStorage",
    "SqlClient",
    "SqlLedgerStorage",
]
