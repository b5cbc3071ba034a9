"""
Main Orchestrator for SplitLedger

This module ties the engine, storage, audit log and draft services
together and defines the end-to-end flows:
1. Ledger (groups, members, expenses, settling, load with balances)
2. Drafts (receipt photo or transcript -> draft -> validate -> save)

DESIGN DECISION: The orchestrator enforces the boundaries:
- Storage is the single source of truth; after every change the group
  is re-read and balances are recomputed from scratch
- Nothing from a scanner or parser is saved without validation and an
  explicit save call
- Every change is audited
"""

from collections.abc import Mapping, Sequence
from decimal import Decimal
from typing import Optional
from uuid import UUID, uuid4

import structlog

from splitledger.agents import GeminiExpenseParser
from splitledger.audit import AuditLogger, create_correlation_id
from splitledger.config import get_settings
from splitledger.engine import (
    SplitError,
    SplitValidationError,
    allocate_shares,
    compute_balances,
    has_unsettled_shares,
    minimize_transactions,
    round_money,
)
from splitledger.models.draft import (
    DraftValidationResult,
    HostedReceipt,
    ParsedExpense,
    ReceiptDraft,
)
from splitledger.models.ledger import (
    Expense,
    ExpenseShare,
    Group,
    GroupOverview,
    GroupSummary,
    Member,
    ReceiptItem,
)
from splitledger.models.split import ItemizedSplit, SplitRequest
from splitledger.services.receipts import (
    CloudinaryReceiptStore,
    MindeeReceiptScanner,
    ReceiptRejectedError,
)
from splitledger.services.storage import (
    ConstraintViolationError,
    GoogleSheetsAuditStorage,
    GoogleSheetsClient,
    GoogleSheetsLedgerStorage,
    InMemoryAuditStorage,
    InMemoryLedgerStorage,
    LedgerStorageInterface,
    NotFoundError,
)
from splitledger.validation import ExpenseDraftValidator


logger = structlog.get_logger("splitledger.orchestrator")


class GroupLedger:
    """
    Orchestrates every change to a group's ledger.

    Flow for each mutation:
    1. Load the group from storage
    2. Check the request against the loaded snapshot
    3. Write through storage
    4. Audit

    Reads go through load_group, which always recomputes balances and
    the settlement plan.
    """

    def __init__(
        self,
        storage: LedgerStorageInterface,
        audit_logger: Optional[AuditLogger] = None,
        self_member_name: Optional[str] = None,
    ):
        self._storage = storage
        self._audit_logger = audit_logger
        self._self_name = self_member_name or get_settings().ledger.self_member_name

    async def _require_group(self, group_id: UUID) -> Group:
        group = await self._storage.get_group(group_id)
        if group is None:
            raise NotFoundError(f"Group not found: {group_id}")
        return group

    # ----------------------------------------------------------------- groups

    async def create_group(
        self,
        name: str,
        member_names: Sequence[str] = (),
        correlation_id: Optional[UUID] = None,
    ) -> Group:
        """
        Create a group. The current user is always the first member.

        Extra names matching the self name (case-insensitively) are
        skipped, as are blanks and repeats.
        """
        group_id = uuid4()
        self_member = Member(group_id=group_id, name=self._self_name)
        members = [self_member]

        seen = {self._self_name.strip().lower(), "me"}
        for raw in member_names:
            member_name = raw.strip()
            if not member_name or member_name.lower() in seen:
                continue
            seen.add(member_name.lower())
            members.append(Member(group_id=group_id, name=member_name))

        group = await self._storage.create_group(Group(
            id=group_id,
            name=name,
            self_member_id=self_member.id,
            members=members,
        ))

        if self._audit_logger:
            await self._audit_logger.log_group_created(
                group_id=group.id,
                name=group.name,
                member_names=[m.name for m in group.members],
                correlation_id=correlation_id,
            )
        return group

    async def list_groups(self) -> list[GroupOverview]:
        return await self._storage.list_groups()

    async def delete_group(
        self,
        group_id: UUID,
        correlation_id: Optional[UUID] = None,
    ) -> bool:
        deleted = await self._storage.delete_group(group_id)
        if deleted and self._audit_logger:
            await self._audit_logger.log_group_deleted(
                group_id=group_id,
                correlation_id=correlation_id,
            )
        return deleted

    async def load_group(self, group_id: UUID) -> GroupSummary:
        """Load a group and derive its balances and settlement plan."""
        group = await self._require_group(group_id)
        balances = compute_balances(group)
        return GroupSummary(
            group=group,
            balances=balances,
            settlements=minimize_transactions(balances),
        )

    # ---------------------------------------------------------------- members

    async def add_member(
        self,
        group_id: UUID,
        name: str,
        correlation_id: Optional[UUID] = None,
    ) -> Member:
        await self._require_group(group_id)
        member = await self._storage.add_member(Member(group_id=group_id, name=name))

        if self._audit_logger:
            await self._audit_logger.log_member_added(
                group_id=group_id,
                member_id=member.id,
                name=member.name,
                correlation_id=correlation_id,
            )
        return member

    async def _reject_removal(
        self,
        group_id: UUID,
        member_id: UUID,
        reason: str,
        correlation_id: Optional[UUID],
    ) -> ConstraintViolationError:
        if self._audit_logger:
            await self._audit_logger.log_member_removal_rejected(
                group_id=group_id,
                member_id=member_id,
                reason=reason,
                correlation_id=correlation_id,
            )
        return ConstraintViolationError(reason)

    async def remove_member(
        self,
        group_id: UUID,
        member_id: UUID,
        correlation_id: Optional[UUID] = None,
    ) -> bool:
        """
        Remove a member from a group.

        Raises:
            NotFoundError: If the group doesn't exist
            ConstraintViolationError: If the member is the current user,
                still has unsettled shares, or is referenced by an expense
        """
        group = await self._require_group(group_id)
        if member_id not in group.member_by_id():
            return False

        if member_id == group.self_member_id:
            raise await self._reject_removal(
                group_id, member_id, "You can't remove yourself from a group.", correlation_id,
            )
        if has_unsettled_shares(group, member_id):
            raise await self._reject_removal(
                group_id,
                member_id,
                "Cannot remove a member with unsettled expenses. Settle up first.",
                correlation_id,
            )

        try:
            removed = await self._storage.remove_member(member_id)
        except ConstraintViolationError as e:
            raise await self._reject_removal(group_id, member_id, str(e), correlation_id) from e

        if removed and self._audit_logger:
            await self._audit_logger.log_member_removed(
                group_id=group_id,
                member_id=member_id,
                correlation_id=correlation_id,
            )
        return removed

    # --------------------------------------------------------------- expenses

    async def add_expense(
        self,
        group_id: UUID,
        payer_id: UUID,
        description: str,
        total_amount: Decimal,
        split: SplitRequest,
        participants: Optional[Sequence[UUID]] = None,
        line_items: Optional[Sequence[ReceiptItem]] = None,
        receipt_image_url: Optional[str] = None,
        correlation_id: Optional[UUID] = None,
    ) -> Expense:
        """
        Split an expense and save it together with its shares.

        Args:
            group_id: Group the expense belongs to
            payer_id: Member who paid
            description: What it was for
            total_amount: Amount paid
            split: How to divide it (equal / amount / percent / itemized)
            participants: Member ids sharing the expense, defaults to
                          everyone. Kept in group member order.
            line_items: Receipt lines to keep with the expense. Defaults
                        to the split's items for itemized splits.
            receipt_image_url: Link to the receipt photo, if any

        Raises:
            NotFoundError: If the group doesn't exist
            SplitValidationError: If the split doesn't add up
        """
        group = await self._require_group(group_id)
        members = group.member_by_id()
        mode = getattr(split, "mode", "unknown")
        mode_name = str(getattr(mode, "value", mode))

        try:
            if not description or not description.strip():
                raise SplitValidationError("Add a description.")
            if payer_id not in members:
                raise SplitValidationError("The payer must be a member of the group.")

            if participants is None:
                chosen = list(group.members)
            else:
                wanted = set(participants)
                if wanted - set(members):
                    raise SplitValidationError("Participants must be members of the group.")
                chosen = [m for m in group.members if m.id in wanted]

            total = round_money(total_amount)
            allocations = allocate_shares(split, chosen, total)
        except SplitError as e:
            if self._audit_logger:
                await self._audit_logger.log_split_rejected(
                    group_id=group_id,
                    mode=mode_name,
                    reason=str(e),
                    correlation_id=correlation_id,
                )
            raise

        if line_items is None and isinstance(split, ItemizedSplit):
            line_items = split.items

        expense_id = uuid4()
        expense = await self._storage.add_expense(Expense(
            id=expense_id,
            group_id=group_id,
            payer_id=payer_id,
            description=description.strip(),
            total_amount=total,
            line_items=list(line_items or []),
            receipt_image_url=receipt_image_url,
            shares=[
                ExpenseShare(
                    expense_id=expense_id,
                    member_id=allocation.member_id,
                    amount_owed=allocation.amount_owed,
                )
                for allocation in allocations
            ],
        ))

        if self._audit_logger:
            await self._audit_logger.log_expense_added(
                group_id=group_id,
                expense_id=expense.id,
                description=expense.description,
                total_amount=expense.total_amount,
                mode=mode_name,
                share_count=len(expense.shares),
                correlation_id=correlation_id,
            )
        return expense

    async def delete_expense(
        self,
        group_id: UUID,
        expense_id: UUID,
        correlation_id: Optional[UUID] = None,
    ) -> bool:
        deleted = await self._storage.delete_expense(expense_id)
        if deleted and self._audit_logger:
            await self._audit_logger.log_expense_deleted(
                group_id=group_id,
                expense_id=expense_id,
                correlation_id=correlation_id,
            )
        return deleted

    # ---------------------------------------------------------------- settling

    async def _purge_settled(
        self,
        group_id: UUID,
        correlation_id: Optional[UUID],
    ) -> list[UUID]:
        purged = await self._storage.delete_settled_expenses(group_id)
        if purged and self._audit_logger:
            await self._audit_logger.log_settled_expenses_purged(
                group_id=group_id,
                expense_ids=purged,
                correlation_id=correlation_id,
            )
        return purged

    async def _settle(
        self,
        group_id: UUID,
        share_ids: list[UUID],
        correlation_id: Optional[UUID],
    ) -> int:
        count = await self._storage.settle_shares(share_ids) if share_ids else 0
        if count and self._audit_logger:
            await self._audit_logger.log_shares_settled(
                group_id=group_id,
                share_ids=share_ids,
                correlation_id=correlation_id,
            )
        await self._purge_settled(group_id, correlation_id)
        return count

    async def settle_share(
        self,
        group_id: UUID,
        share_id: UUID,
        correlation_id: Optional[UUID] = None,
    ) -> int:
        """Mark one share as settled. Returns 1 if it changed, 0 if it already was."""
        group = await self._require_group(group_id)
        known = {share.id for expense in group.expenses for share in expense.shares}
        if share_id not in known:
            raise NotFoundError(f"Share not found: {share_id}")
        return await self._settle(group_id, [share_id], correlation_id)

    async def settle_pair(
        self,
        group_id: UUID,
        member_a: UUID,
        member_b: UUID,
        correlation_id: Optional[UUID] = None,
    ) -> int:
        """
        Settle everything directly between two members, in both directions.

        Returns the number of shares settled.
        """
        group = await self._require_group(group_id)
        pair = {member_a, member_b}
        share_ids = [
            share.id
            for expense in group.expenses
            for share in expense.shares
            if not share.is_settled
            and share.member_id != expense.payer_id
            and {share.member_id, expense.payer_id} == pair
        ]
        return await self._settle(group_id, share_ids, correlation_id)

    async def settle_all(
        self,
        group_id: UUID,
        correlation_id: Optional[UUID] = None,
    ) -> int:
        """Settle every outstanding share of the group. Returns the count."""
        await self._require_group(group_id)
        count = await self._storage.settle_all_in_group(group_id)
        if self._audit_logger:
            await self._audit_logger.log_group_settled(
                group_id=group_id,
                share_count=count,
                correlation_id=correlation_id,
            )
        await self._purge_settled(group_id, correlation_id)
        return count


class DraftFlow:
    """
    Orchestrates turning a receipt photo or a transcript into an expense.

    Flow:
    1. Capture  -> upload + scan a photo, or parse a transcript
    2. Resolve  -> match names to members, check the draft
    3. Review   -> present the draft and issues to the user (PAUSE)
    4. Save     -> hand the resolved itemized split to the ledger

    Saving is a separate, explicit call. The system NEVER auto-saves.
    """

    def __init__(
        self,
        ledger: GroupLedger,
        receipt_store: Optional[CloudinaryReceiptStore] = None,
        scanner: Optional[MindeeReceiptScanner] = None,
        parser: Optional[GeminiExpenseParser] = None,
        validator: Optional[ExpenseDraftValidator] = None,
        audit_logger: Optional[AuditLogger] = None,
    ):
        self._ledger = ledger
        self._receipt_store = receipt_store
        self._scanner = scanner
        self._parser = parser
        self._validator = validator or ExpenseDraftValidator()
        self._audit_logger = audit_logger

    def _get_receipt_store(self) -> CloudinaryReceiptStore:
        if self._receipt_store is None:
            self._receipt_store = CloudinaryReceiptStore()
        return self._receipt_store

    def _get_scanner(self) -> MindeeReceiptScanner:
        if self._scanner is None:
            self._scanner = MindeeReceiptScanner()
        return self._scanner

    def _get_parser(self) -> GeminiExpenseParser:
        if self._parser is None:
            self._parser = GeminiExpenseParser()
        return self._parser

    async def scan_receipt(
        self,
        image_bytes: bytes,
        filename: str,
        correlation_id: Optional[UUID] = None,
    ) -> tuple[HostedReceipt, ReceiptDraft]:
        """
        Upload a receipt photo and scan it.

        Raises:
            ReceiptUploadError: If the image is rejected or can't be stored
            ReceiptRejectedError: If the photo isn't a receipt
            ReceiptScanError: If scanning fails
        """
        correlation_id = correlation_id or create_correlation_id()

        try:
            hosted = await self._get_receipt_store().upload_receipt(image_bytes, filename)
        except Exception as e:
            if self._audit_logger:
                await self._audit_logger.log_external_service_error(
                    service="cloudinary",
                    error_message=str(e),
                    correlation_id=correlation_id,
                )
            raise

        if self._audit_logger:
            await self._audit_logger.log_receipt_uploaded(
                url=hosted.url,
                filename=filename,
                correlation_id=correlation_id,
            )

        try:
            draft = await self._get_scanner().scan_bytes(
                image_bytes,
                filename,
                receipt_image_url=hosted.url,
            )
        except ReceiptRejectedError:
            raise
        except Exception as e:
            if self._audit_logger:
                await self._audit_logger.log_external_service_error(
                    service="mindee",
                    error_message=str(e),
                    correlation_id=correlation_id,
                )
            raise

        if self._audit_logger:
            await self._audit_logger.log_receipt_scanned(
                draft_id=draft.draft_id,
                confidence=draft.confidence_score,
                item_count=len(draft.items),
                correlation_id=correlation_id,
            )
        return hosted, draft

    async def parse_transcript(
        self,
        transcript: str,
        correlation_id: Optional[UUID] = None,
    ) -> ParsedExpense:
        """
        Turn a spoken description into a draft.

        Raises:
            ExpenseParseError: If the transcript can't be understood
        """
        parsed = await self._get_parser().parse_transcript(transcript)
        if self._audit_logger:
            await self._audit_logger.log_transcript_parsed(
                draft_id=parsed.draft_id,
                item_count=len(parsed.items),
                correlation_id=correlation_id,
            )
        return parsed

    async def _report(
        self,
        result: DraftValidationResult,
        correlation_id: Optional[UUID],
    ) -> tuple[DraftValidationResult, str]:
        if self._audit_logger and not result.is_valid:
            await self._audit_logger.log_draft_validation_failed(
                draft_id=result.draft_id,
                issues=[
                    {"field": i.field, "type": i.issue_type, "message": i.message}
                    for i in result.issues
                ],
                correlation_id=correlation_id,
            )
        return result, self._validator.get_user_friendly_summary(result)

    async def review_parsed_expense(
        self,
        group_id: UUID,
        parsed: ParsedExpense,
        correlation_id: Optional[UUID] = None,
    ) -> tuple[DraftValidationResult, str]:
        """
        Resolve a parsed transcript against a group.

        Returns:
            (validation_result, user_message)
        """
        summary = await self._ledger.load_group(group_id)
        result = self._validator.validate_parsed_expense(parsed, summary.group)
        return await self._report(result, correlation_id)

    async def review_receipt(
        self,
        group_id: UUID,
        draft: ReceiptDraft,
        payer_id: UUID,
        assignments: Mapping[int, set[UUID]],
        correlation_id: Optional[UUID] = None,
    ) -> tuple[DraftValidationResult, str]:
        """
        Check a scanned receipt once its items have been claimed.

        Returns:
            (validation_result, user_message)
        """
        summary = await self._ledger.load_group(group_id)
        result = self._validator.validate_receipt(draft, summary.group, payer_id, assignments)
        return await self._report(result, correlation_id)

    async def save(
        self,
        group_id: UUID,
        result: DraftValidationResult,
        receipt_image_url: Optional[str] = None,
        correlation_id: Optional[UUID] = None,
    ) -> Expense:
        """
        Save a reviewed draft as an itemized expense.

        CRITICAL: This is called ONLY after the user has confirmed the draft.

        Raises:
            SplitValidationError: If the draft still has errors
        """
        if not result.is_valid or result.split is None or result.payer_id is None:
            raise SplitValidationError("Fix the issues with this draft before saving.")

        return await self._ledger.add_expense(
            group_id=group_id,
            payer_id=result.payer_id,
            description=result.description or "Receipt",
            total_amount=result.total_amount,
            split=result.split,
            receipt_image_url=receipt_image_url,
            correlation_id=correlation_id,
        )


def create_app_components(
    use_storage: bool = True,
) -> tuple[GroupLedger, DraftFlow, Optional[GoogleSheetsClient]]:
    """
    Factory function to create all application components.

    Args:
        use_storage: Whether to use Google Sheets storage.
                    Set to False to keep everything in memory.

    Returns:
        (group_ledger, draft_flow, sheets_client)
    """
    sheets_client = None

    if use_storage:
        try:
            sheets_client = GoogleSheetsClient()
            ledger_storage = GoogleSheetsLedgerStorage(sheets_client)
            audit_logger = AuditLogger(GoogleSheetsAuditStorage(sheets_client))
        except Exception as e:
            # Storage not configured - continue in memory
            logger.warning("storage_not_configured", error=str(e))
            sheets_client = None
            ledger_storage = InMemoryLedgerStorage()
            audit_logger = AuditLogger(InMemoryAuditStorage())
    else:
        ledger_storage = InMemoryLedgerStorage()
        audit_logger = AuditLogger(InMemoryAuditStorage())

    ledger = GroupLedger(ledger_storage, audit_logger=audit_logger)
    draft_flow = DraftFlow(ledger, audit_logger=audit_logger)

    return ledger, draft_flow, sheets_client
