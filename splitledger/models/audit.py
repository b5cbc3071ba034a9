"""
Audit Models for SplitLedger

Every change to a group's ledger is logged: who was added or removed,
which expenses were logged, what was settled and what was purged.
Together with the append-only rule this lets a group reconstruct how its
balances got where they are, even after fully settled expenses have been
deleted.
"""

import json
from datetime import datetime, timezone
from decimal import Decimal
from enum import Enum
from typing import Any, Optional
from uuid import UUID, uuid4

from pydantic import BaseModel, Field


class AuditEventType(str, Enum):
    """Types of events we audit."""
    # Groups and members
    GROUP_CREATED = "group_created"
    GROUP_DELETED = "group_deleted"
    MEMBER_ADDED = "member_added"
    MEMBER_REMOVED = "member_removed"
    MEMBER_REMOVAL_REJECTED = "member_removal_rejected"

    # Expenses
    EXPENSE_ADDED = "expense_added"
    EXPENSE_DELETED = "expense_deleted"
    SPLIT_REJECTED = "split_rejected"

    # Settling
    SHARES_SETTLED = "shares_settled"
    GROUP_SETTLED = "group_settled"
    SETTLED_EXPENSES_PURGED = "settled_expenses_purged"

    # Drafts from external services
    RECEIPT_UPLOADED = "receipt_uploaded"
    RECEIPT_SCANNED = "receipt_scanned"
    TRANSCRIPT_PARSED = "transcript_parsed"
    DRAFT_VALIDATION_FAILED = "draft_validation_failed"

    # System events
    SYSTEM_ERROR = "system_error"
    EXTERNAL_SERVICE_ERROR = "external_service_error"


class AuditSeverity(str, Enum):
    """Severity level for audit events."""
    DEBUG = "debug"
    INFO = "info"
    WARNING = "warning"
    ERROR = "error"
    CRITICAL = "critical"


class AuditEvent(BaseModel):
    """A single audit event. Every ledger change creates one of these."""

    # Identity
    event_id: UUID = Field(default_factory=uuid4)
    timestamp: datetime = Field(
        default_factory=lambda: datetime.now(timezone.utc),
        description="When the event occurred (UTC)"
    )

    # Classification
    event_type: AuditEventType
    severity: AuditSeverity = Field(default=AuditSeverity.INFO)

    # What entity is this about?
    entity_type: Optional[str] = Field(
        default=None,
        description="Type of entity (e.g., 'group', 'member', 'expense')"
    )
    entity_id: Optional[UUID] = None

    # Group the event happened in, used for per-group history
    group_id: Optional[UUID] = None

    # For tracking related events (e.g. scan -> validate -> save)
    correlation_id: Optional[UUID] = None

    description: str = Field(
        ...,
        max_length=500,
        description="Human-readable description of what happened"
    )
    details: dict[str, Any] = Field(default_factory=dict)

    error_message: Optional[str] = None

    is_user_action: bool = Field(
        default=False,
        description="Was this triggered by a user action?"
    )

    def to_log_dict(self) -> dict:
        """Convert to a dictionary suitable for structured logging."""
        return {
            "event_id": str(self.event_id),
            "timestamp": self.timestamp.isoformat(),
            "event_type": self.event_type.value,
            "severity": self.severity.value,
            "entity_type": self.entity_type,
            "entity_id": str(self.entity_id) if self.entity_id else None,
            "group_id": str(self.group_id) if self.group_id else None,
            "correlation_id": str(self.correlation_id) if self.correlation_id else None,
            "description": self.description,
            "details": self.details,
            "error_message": self.error_message,
            "is_user_action": self.is_user_action,
        }

    def to_sheets_row(self) -> list:
        """
        Convert to a row suitable for Google Sheets storage.

        Returns columns in order:
        [event_id, timestamp, event_type, severity, entity_type, entity_id,
         group_id, correlation_id, description, details_json, error_message,
         is_user_action]
        """
        return [
            str(self.event_id),
            self.timestamp.isoformat(),
            self.event_type.value,
            self.severity.value,
            self.entity_type or "",
            str(self.entity_id) if self.entity_id else "",
            str(self.group_id) if self.group_id else "",
            str(self.correlation_id) if self.correlation_id else "",
            self.description,
            json.dumps(self.details) if self.details else "",
            self.error_message or "",
            str(self.is_user_action),
        ]


def _money(amount: Decimal) -> str:
    return f"{amount:.2f}"


class AuditEventBuilder:
    """
    Helper class to build audit events with common patterns.

    Usage:
        event = AuditEventBuilder.expense_added(expense, correlation_id)
    """

    @staticmethod
    def group_created(
        group_id: UUID,
        name: str,
        member_names: list[str],
        correlation_id: Optional[UUID] = None,
    ) -> AuditEvent:
        return AuditEvent(
            event_type=AuditEventType.GROUP_CREATED,
            entity_type="group",
            entity_id=group_id,
            group_id=group_id,
            correlation_id=correlation_id,
            description=f"Group created: {name}",
            details={"members": member_names},
            is_user_action=True,
        )

    @staticmethod
    def group_deleted(
        group_id: UUID,
        correlation_id: Optional[UUID] = None,
    ) -> AuditEvent:
        return AuditEvent(
            event_type=AuditEventType.GROUP_DELETED,
            entity_type="group",
            entity_id=group_id,
            group_id=group_id,
            correlation_id=correlation_id,
            description="Group deleted with all members and expenses",
            is_user_action=True,
        )

    @staticmethod
    def member_added(
        group_id: UUID,
        member_id: UUID,
        name: str,
        correlation_id: Optional[UUID] = None,
    ) -> AuditEvent:
        return AuditEvent(
            event_type=AuditEventType.MEMBER_ADDED,
            entity_type="member",
            entity_id=member_id,
            group_id=group_id,
            correlation_id=correlation_id,
            description=f"Member added: {name}",
            details={"name": name},
            is_user_action=True,
        )

    @staticmethod
    def member_removed(
        group_id: UUID,
        member_id: UUID,
        correlation_id: Optional[UUID] = None,
    ) -> AuditEvent:
        return AuditEvent(
            event_type=AuditEventType.MEMBER_REMOVED,
            entity_type="member",
            entity_id=member_id,
            group_id=group_id,
            correlation_id=correlation_id,
            description="Member removed",
            is_user_action=True,
        )

    @staticmethod
    def member_removal_rejected(
        group_id: UUID,
        member_id: UUID,
        reason: str,
        correlation_id: Optional[UUID] = None,
    ) -> AuditEvent:
        return AuditEvent(
            event_type=AuditEventType.MEMBER_REMOVAL_REJECTED,
            severity=AuditSeverity.WARNING,
            entity_type="member",
            entity_id=member_id,
            group_id=group_id,
            correlation_id=correlation_id,
            description="Member removal rejected",
            error_message=reason,
            is_user_action=True,
        )

    @staticmethod
    def expense_added(
        group_id: UUID,
        expense_id: UUID,
        description: str,
        total_amount: Decimal,
        mode: str,
        share_count: int,
        correlation_id: Optional[UUID] = None,
    ) -> AuditEvent:
        return AuditEvent(
            event_type=AuditEventType.EXPENSE_ADDED,
            entity_type="expense",
            entity_id=expense_id,
            group_id=group_id,
            correlation_id=correlation_id,
            description=f"Expense added: {description} - ${_money(total_amount)}",
            details={
                "total_amount": _money(total_amount),
                "split_mode": mode,
                "share_count": share_count,
            },
            is_user_action=True,
        )

    @staticmethod
    def expense_deleted(
        group_id: UUID,
        expense_id: UUID,
        correlation_id: Optional[UUID] = None,
    ) -> AuditEvent:
        return AuditEvent(
            event_type=AuditEventType.EXPENSE_DELETED,
            entity_type="expense",
            entity_id=expense_id,
            group_id=group_id,
            correlation_id=correlation_id,
            description="Expense deleted",
            is_user_action=True,
        )

    @staticmethod
    def split_rejected(
        group_id: UUID,
        mode: str,
        reason: str,
        correlation_id: Optional[UUID] = None,
    ) -> AuditEvent:
        return AuditEvent(
            event_type=AuditEventType.SPLIT_REJECTED,
            severity=AuditSeverity.WARNING,
            entity_type="group",
            entity_id=group_id,
            group_id=group_id,
            correlation_id=correlation_id,
            description=f"Split rejected ({mode})",
            details={"split_mode": mode},
            error_message=reason,
            is_user_action=True,
        )

    @staticmethod
    def shares_settled(
        group_id: UUID,
        share_ids: list[UUID],
        correlation_id: Optional[UUID] = None,
    ) -> AuditEvent:
        return AuditEvent(
            event_type=AuditEventType.SHARES_SETTLED,
            entity_type="group",
            entity_id=group_id,
            group_id=group_id,
            correlation_id=correlation_id,
            description=f"{len(share_ids)} share(s) marked as settled",
            details={"share_ids": [str(share_id) for share_id in share_ids]},
            is_user_action=True,
        )

    @staticmethod
    def group_settled(
        group_id: UUID,
        share_count: int,
        correlation_id: Optional[UUID] = None,
    ) -> AuditEvent:
        return AuditEvent(
            event_type=AuditEventType.GROUP_SETTLED,
            entity_type="group",
            entity_id=group_id,
            group_id=group_id,
            correlation_id=correlation_id,
            description="All outstanding shares marked as settled",
            details={"share_count": share_count},
            is_user_action=True,
        )

    @staticmethod
    def settled_expenses_purged(
        group_id: UUID,
        expense_ids: list[UUID],
        correlation_id: Optional[UUID] = None,
    ) -> AuditEvent:
        return AuditEvent(
            event_type=AuditEventType.SETTLED_EXPENSES_PURGED,
            entity_type="group",
            entity_id=group_id,
            group_id=group_id,
            correlation_id=correlation_id,
            description=f"{len(expense_ids)} fully settled expense(s) removed",
            details={"expense_ids": [str(expense_id) for expense_id in expense_ids]},
        )

    @staticmethod
    def receipt_uploaded(
        url: str,
        filename: str,
        correlation_id: Optional[UUID] = None,
    ) -> AuditEvent:
        return AuditEvent(
            event_type=AuditEventType.RECEIPT_UPLOADED,
            entity_type="receipt",
            correlation_id=correlation_id,
            description=f"Receipt uploaded: {filename}",
            details={"url": url},
            is_user_action=True,
        )

    @staticmethod
    def receipt_scanned(
        draft_id: UUID,
        confidence: float,
        item_count: int,
        correlation_id: Optional[UUID] = None,
    ) -> AuditEvent:
        return AuditEvent(
            event_type=AuditEventType.RECEIPT_SCANNED,
            entity_type="draft",
            entity_id=draft_id,
            correlation_id=correlation_id,
            description=f"Receipt scanned with {confidence:.0%} confidence",
            details={
                "confidence_score": confidence,
                "item_count": item_count,
            },
        )

    @staticmethod
    def transcript_parsed(
        draft_id: UUID,
        item_count: int,
        correlation_id: Optional[UUID] = None,
    ) -> AuditEvent:
        return AuditEvent(
            event_type=AuditEventType.TRANSCRIPT_PARSED,
            entity_type="draft",
            entity_id=draft_id,
            correlation_id=correlation_id,
            description=f"Transcript parsed into {item_count} item(s)",
            details={"item_count": item_count},
        )

    @staticmethod
    def draft_validation_failed(
        draft_id: UUID,
        issues: list[dict],
        correlation_id: Optional[UUID] = None,
    ) -> AuditEvent:
        return AuditEvent(
            event_type=AuditEventType.DRAFT_VALIDATION_FAILED,
            severity=AuditSeverity.WARNING,
            entity_type="draft",
            entity_id=draft_id,
            correlation_id=correlation_id,
            description=f"Draft validation failed with {len(issues)} issues",
            details={"issues": issues},
        )

    @staticmethod
    def system_error(
        error_type: str,
        error_message: str,
        details: Optional[dict] = None,
        correlation_id: Optional[UUID] = None,
    ) -> AuditEvent:
        return AuditEvent(
            event_type=AuditEventType.SYSTEM_ERROR,
            severity=AuditSeverity.ERROR,
            description=f"System error: {error_type}",
            error_message=error_message,
            details=details or {},
            correlation_id=correlation_id,
        )

    @staticmethod
    def external_service_error(
        service: str,
        error_message: str,
        correlation_id: Optional[UUID] = None,
    ) -> AuditEvent:
        return AuditEvent(
            event_type=AuditEventType.EXTERNAL_SERVICE_ERROR,
            severity=AuditSeverity.ERROR,
            description=f"External service error: {service}",
            error_message=error_message,
            details={"service": service},
            correlation_id=correlation_id,
        )
