"""
Audit Logger

DESIGN DECISION: Every change to a group's ledger is logged.
That gives:
1. A history a group can look back on ("who deleted the pizza?")
2. Debugging capability when balances look wrong
3. Traceability of multi-step flows via correlation IDs

The audit logger:
- Is async to not block main flow
- Gracefully handles failures (a failed audit write never fails the
  ledger operation that triggered it)
- Supports correlation IDs to trace related events
"""

import logging
from decimal import Decimal
from typing import Optional
from uuid import UUID, uuid4

import structlog

from splitledger.models.audit import AuditEvent, AuditEventBuilder, AuditSeverity
from splitledger.services.storage import AuditStorageInterface


def configure_logging(debug: bool = False) -> None:
    """Configure structlog to emit JSON lines through the stdlib logger."""
    logging.basicConfig(
        format="%(message)s",
        level=logging.DEBUG if debug else logging.INFO,
    )
    structlog.configure(
        processors=[
            structlog.stdlib.filter_by_level,
            structlog.stdlib.add_logger_name,
            structlog.stdlib.add_log_level,
            structlog.stdlib.PositionalArgumentsFormatter(),
            structlog.processors.TimeStamper(fmt="iso"),
            structlog.processors.StackInfoRenderer(),
            structlog.processors.format_exc_info,
            structlog.processors.UnicodeDecoder(),
            structlog.processors.JSONRenderer()
        ],
        wrapper_class=structlog.stdlib.BoundLogger,
        context_class=dict,
        logger_factory=structlog.stdlib.LoggerFactory(),
        cache_logger_on_first_use=True,
    )


configure_logging()


class AuditLogger:
    """
    Central audit logging service.

    Logs events both to:
    1. Structured local log (for debugging)
    2. Audit storage (for persistence and group history)
    """

    def __init__(
        self,
        storage: Optional[AuditStorageInterface] = None,
    ):
        """
        Initialize audit logger.

        Args:
            storage: Storage backend for persistence.
                    If None, only logs locally.
        """
        self._storage = storage
        self._logger = structlog.get_logger("splitledger.audit")

    async def log(self, event: AuditEvent) -> bool:
        """
        Log an audit event.

        Always logs locally. Persists to storage if available.

        Returns True if storage write succeeded (or no storage configured).
        """
        log_dict = event.to_log_dict()

        if event.severity == AuditSeverity.ERROR:
            self._logger.error("audit_event", **log_dict)
        elif event.severity == AuditSeverity.WARNING:
            self._logger.warning("audit_event", **log_dict)
        else:
            self._logger.info("audit_event", **log_dict)

        if self._storage:
            try:
                return await self._storage.append_event(event)
            except Exception as e:
                # Log failure but don't raise
                self._logger.error(
                    "audit_storage_failed",
                    error=str(e),
                    event_id=str(event.event_id),
                )
                return False

        return True

    # ----------------------------------------------------------------- groups

    async def log_group_created(
        self,
        group_id: UUID,
        name: str,
        member_names: list[str],
        correlation_id: Optional[UUID] = None,
    ) -> None:
        await self.log(AuditEventBuilder.group_created(
            group_id=group_id,
            name=name,
            member_names=member_names,
            correlation_id=correlation_id,
        ))

    async def log_group_deleted(
        self,
        group_id: UUID,
        correlation_id: Optional[UUID] = None,
    ) -> None:
        await self.log(AuditEventBuilder.group_deleted(
            group_id=group_id,
            correlation_id=correlation_id,
        ))

    # ---------------------------------------------------------------- members

    async def log_member_added(
        self,
        group_id: UUID,
        member_id: UUID,
        name: str,
        correlation_id: Optional[UUID] = None,
    ) -> None:
        await self.log(AuditEventBuilder.member_added(
            group_id=group_id,
            member_id=member_id,
            name=name,
            correlation_id=correlation_id,
        ))

    async def log_member_removed(
        self,
        group_id: UUID,
        member_id: UUID,
        correlation_id: Optional[UUID] = None,
    ) -> None:
        await self.log(AuditEventBuilder.member_removed(
            group_id=group_id,
            member_id=member_id,
            correlation_id=correlation_id,
        ))

    async def log_member_removal_rejected(
        self,
        group_id: UUID,
        member_id: UUID,
        reason: str,
        correlation_id: Optional[UUID] = None,
    ) -> None:
        await self.log(AuditEventBuilder.member_removal_rejected(
            group_id=group_id,
            member_id=member_id,
            reason=reason,
            correlation_id=correlation_id,
        ))

    # --------------------------------------------------------------- expenses

    async def log_expense_added(
        self,
        group_id: UUID,
        expense_id: UUID,
        description: str,
        total_amount: Decimal,
        mode: str,
        share_count: int,
        correlation_id: Optional[UUID] = None,
    ) -> None:
        await self.log(AuditEventBuilder.expense_added(
            group_id=group_id,
            expense_id=expense_id,
            description=description,
            total_amount=total_amount,
            mode=mode,
            share_count=share_count,
            correlation_id=correlation_id,
        ))

    async def log_expense_deleted(
        self,
        group_id: UUID,
        expense_id: UUID,
        correlation_id: Optional[UUID] = None,
    ) -> None:
        await self.log(AuditEventBuilder.expense_deleted(
            group_id=group_id,
            expense_id=expense_id,
            correlation_id=correlation_id,
        ))

    async def log_split_rejected(
        self,
        group_id: UUID,
        mode: str,
        reason: str,
        correlation_id: Optional[UUID] = None,
    ) -> None:
        await self.log(AuditEventBuilder.split_rejected(
            group_id=group_id,
            mode=mode,
            reason=reason,
            correlation_id=correlation_id,
        ))

    # ---------------------------------------------------------------- settling

    async def log_shares_settled(
        self,
        group_id: UUID,
        share_ids: list[UUID],
        correlation_id: Optional[UUID] = None,
    ) -> None:
        await self.log(AuditEventBuilder.shares_settled(
            group_id=group_id,
            share_ids=share_ids,
            correlation_id=correlation_id,
        ))

    async def log_group_settled(
        self,
        group_id: UUID,
        share_count: int,
        correlation_id: Optional[UUID] = None,
    ) -> None:
        await self.log(AuditEventBuilder.group_settled(
            group_id=group_id,
            share_count=share_count,
            correlation_id=correlation_id,
        ))

    async def log_settled_expenses_purged(
        self,
        group_id: UUID,
        expense_ids: list[UUID],
        correlation_id: Optional[UUID] = None,
    ) -> None:
        await self.log(AuditEventBuilder.settled_expenses_purged(
            group_id=group_id,
            expense_ids=expense_ids,
            correlation_id=correlation_id,
        ))

    # ----------------------------------------------------------------- drafts

    async def log_receipt_uploaded(
        self,
        url: str,
        filename: str,
        correlation_id: Optional[UUID] = None,
    ) -> None:
        await self.log(AuditEventBuilder.receipt_uploaded(
            url=url,
            filename=filename,
            correlation_id=correlation_id,
        ))

    async def log_receipt_scanned(
        self,
        draft_id: UUID,
        confidence: float,
        item_count: int,
        correlation_id: Optional[UUID] = None,
    ) -> None:
        await self.log(AuditEventBuilder.receipt_scanned(
            draft_id=draft_id,
            confidence=confidence,
            item_count=item_count,
            correlation_id=correlation_id,
        ))

    async def log_transcript_parsed(
        self,
        draft_id: UUID,
        item_count: int,
        correlation_id: Optional[UUID] = None,
    ) -> None:
        await self.log(AuditEventBuilder.transcript_parsed(
            draft_id=draft_id,
            item_count=item_count,
            correlation_id=correlation_id,
        ))

    async def log_draft_validation_failed(
        self,
        draft_id: UUID,
        issues: list[dict],
        correlation_id: Optional[UUID] = None,
    ) -> None:
        await self.log(AuditEventBuilder.draft_validation_failed(
            draft_id=draft_id,
            issues=issues,
            correlation_id=correlation_id,
        ))

    # ----------------------------------------------------------------- errors

    async def log_error(
        self,
        error_type: str,
        error_message: str,
        details: Optional[dict] = None,
        correlation_id: Optional[UUID] = None,
    ) -> None:
        """Log an error."""
        await self.log(AuditEventBuilder.system_error(
            error_type=error_type,
            error_message=error_message,
            details=details,
            correlation_id=correlation_id,
        ))

    async def log_external_service_error(
        self,
        service: str,
        error_message: str,
        correlation_id: Optional[UUID] = None,
    ) -> None:
        """Log external service error."""
        await self.log(AuditEventBuilder.external_service_error(
            service=service,
            error_message=error_message,
            correlation_id=correlation_id,
        ))


def create_correlation_id() -> UUID:
    """
    Create a new correlation ID for tracking related events.

    Use this at the start of a new user action (e.g., scanning a receipt).
    Pass it through all subsequent operations.
    """
    return uuid4()
