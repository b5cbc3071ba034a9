"""
Storage Services Package

Abstract interfaces plus two implementations: Google Sheets (hosted)
and in-memory (tests, local experiments).
"""

from splitledger.services.storage.interface import (
    AuditStorageInterface,
    ConnectionError,
    ConstraintViolationError,
    DuplicateError,
    LedgerStorageInterface,
    NotFoundError,
    StorageError,
)
from splitledger.services.storage.memory import (
    InMemoryAuditStorage,
    InMemoryLedgerStorage,
)
from splitledger.services.storage.google_sheets import (
    GoogleSheetsAuditStorage,
    GoogleSheetsClient,
    GoogleSheetsLedgerStorage,
)

__all__ = [
    # Interfaces
    "AuditStorageInterface",
    "LedgerStorageInterface",
    # Exceptions
    "ConnectionError",
    "ConstraintViolationError",
    "DuplicateError",
    "NotFoundError",
    "StorageError",
    # In-memory implementation
    "InMemoryAuditStorage",
    "InMemoryLedgerStorage",
    # Google Sheets implementation
    "GoogleSheetsAuditStorage",
    "GoogleSheetsClient",
    "GoogleSheetsLedgerStorage",
]
