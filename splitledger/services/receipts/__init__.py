"""Receipt hosting and scanning services."""

from splitledger.services.receipts.hosting import (
    CloudinaryReceiptStore,
    ReceiptUploadError,
)
from splitledger.services.receipts.scanner import (
    MindeeReceiptScanner,
    ReceiptRejectedError,
    ReceiptScanError,
)

__all__ = [
    "CloudinaryReceiptStore",
    "MindeeReceiptScanner",
    "ReceiptRejectedError",
    "ReceiptScanError",
    "ReceiptUploadError",
]
