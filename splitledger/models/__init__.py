"""
Data Models Package

All Pydantic models used in SplitLedger. Data flowing between the
engine, the storage layer and the external services conforms to these.
"""

from splitledger.models.ledger import (
    Expense,
    ExpenseShare,
    Group,
    GroupOverview,
    GroupSummary,
    Member,
    ReceiptItem,
    SettlementInstruction,
    ShareAllocation,
)
from splitledger.models.split import (
    AmountSplit,
    EqualSplit,
    ItemizedSplit,
    PercentSplit,
    SplitMode,
    SplitRequest,
)
from splitledger.models.draft import (
    DraftValidationResult,
    HostedReceipt,
    ParsedExpense,
    ParsedItem,
    ReceiptDraft,
    ValidationIssue,
)
from splitledger.models.audit import (
    AuditEvent,
    AuditEventBuilder,
    AuditEventType,
    AuditSeverity,
)

__all__ = [
    # Ledger models
    "Expense",
    "ExpenseShare",
    "Group",
    "GroupOverview",
    "GroupSummary",
    "Member",
    "ReceiptItem",
    "SettlementInstruction",
    "ShareAllocation",
    # Split requests
    "AmountSplit",
    "EqualSplit",
    "ItemizedSplit",
    "PercentSplit",
    "SplitMode",
    "SplitRequest",
    # Drafts
    "DraftValidationResult",
    "HostedReceipt",
    "ParsedExpense",
    "ParsedItem",
    "ReceiptDraft",
    "ValidationIssue",
    # Audit models
    "AuditEvent",
    "AuditEventBuilder",
    "AuditEventType",
    "AuditSeverity",
]
