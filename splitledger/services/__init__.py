"""Services package."""

from splitledger.services.receipts import (
    CloudinaryReceiptStore,
    MindeeReceiptScanner,
    ReceiptRejectedError,
    ReceiptScanError,
    ReceiptUploadError,
)
from splitledger.services.storage import (
    AuditStorageInterface,
    ConnectionError,
    ConstraintViolationError,
    DuplicateError,
    GoogleSheetsAuditStorage,
    GoogleSheetsClient,
    GoogleSheetsLedgerStorage,
    InMemoryAuditStorage,
    InMemoryLedgerStorage,
    LedgerStorageInterface,
    NotFoundError,
    StorageError,
)

__all__ = [
    # Receipt services
    "CloudinaryReceiptStore",
    "MindeeReceiptScanner",
    "ReceiptRejectedError",
    "ReceiptScanError",
    "ReceiptUploadError",
    # Storage services
    "AuditStorageInterface",
    "ConnectionError",
    "ConstraintViolationError",
    "DuplicateError",
    "GoogleSheetsAuditStorage",
    "GoogleSheetsClient",
    "GoogleSheetsLedgerStorage",
    "InMemoryAuditStorage",
    "InMemoryLedgerStorage",
    "LedgerStorageInterface",
    "NotFoundError",
    "StorageError",
]
