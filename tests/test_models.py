"""
Tests for SplitLedger

Test strategy:
1. Unit tests for individual components (models, engine, validators)
2. Integration tests for flows (against in-memory storage)
3. No real API calls in tests (use fakes)
"""

import pytest
from decimal import Decimal
from uuid import uuid4

from pydantic import ValidationError

from splitledger.models.audit import (
    AuditEvent,
    AuditEventBuilder,
    AuditEventType,
    AuditSeverity,
)
from splitledger.models.draft import (
    DraftValidationResult,
    ReceiptDraft,
    ValidationIssue,
)
from splitledger.models.ledger import (
    Expense,
    ExpenseShare,
    Group,
    GroupSummary,
    Member,
    ReceiptItem,
    SettlementInstruction,
)
from splitledger.models.split import SplitMode


class TestLedgerModels:
    """Tests for ledger Pydantic models."""

    def test_member_strips_whitespace(self):
        """Test that whitespace is stripped from member names."""
        member = Member(group_id=uuid4(), name="  Alex  ")
        assert member.name == "Alex"

    def test_member_name_required(self):
        with pytest.raises(ValidationError):
            Member(group_id=uuid4(), name="   ")

    def test_receipt_item_rejects_negative_price(self):
        with pytest.raises(ValidationError):
            ReceiptItem(name="Refund", price=Decimal("-1.00"))

    def test_expense_total_must_be_positive(self):
        with pytest.raises(ValidationError):
            Expense(
                group_id=uuid4(),
                payer_id=uuid4(),
                description="Nothing",
                total_amount=Decimal("0"),
            )

    def test_expense_fully_settled(self):
        """An expense is fully settled once all its shares are."""
        expense_id = uuid4()
        shares = [
            ExpenseShare(expense_id=expense_id, member_id=uuid4(), amount_owed=Decimal("5.00"), is_settled=True),
            ExpenseShare(expense_id=expense_id, member_id=uuid4(), amount_owed=Decimal("5.00")),
        ]
        expense = Expense(
            id=expense_id,
            group_id=uuid4(),
            payer_id=uuid4(),
            description="Taxi",
            total_amount=Decimal("10.00"),
            shares=shares,
        )
        assert expense.is_fully_settled is False
        assert expense.shares_total == Decimal("10.00")

        shares[1].is_settled = True
        assert expense.is_fully_settled is True

    def test_group_self_member_must_be_a_member(self):
        group_id = uuid4()
        members = [Member(group_id=group_id, name="Me")]
        with pytest.raises(ValidationError):
            Group(id=group_id, name="Flat", self_member_id=uuid4(), members=members)

    def test_group_self_member_lookup(self):
        group_id = uuid4()
        me = Member(group_id=group_id, name="Me")
        group = Group(id=group_id, name="Flat", self_member_id=me.id, members=[me])
        assert group.self_member == me

    def test_settlement_amount_must_be_positive(self):
        with pytest.raises(ValidationError):
            SettlementInstruction(from_member_id=uuid4(), to_member_id=uuid4(), amount=Decimal("0"))


class TestGroupSummary:
    """Tests for GroupSummary derived views."""

    def test_owes_and_receives(self):
        group_id = uuid4()
        a, b, c = (Member(group_id=group_id, name=n) for n in ("A", "B", "C"))
        group = Group(id=group_id, name="Trip", self_member_id=a.id, members=[a, b, c])
        summary = GroupSummary(
            group=group,
            balances={a.id: Decimal("-7.00"), b.id: Decimal("4.00"), c.id: Decimal("3.00")},
            settlements=[
                SettlementInstruction(from_member_id=a.id, to_member_id=b.id, amount=Decimal("4.00")),
                SettlementInstruction(from_member_id=a.id, to_member_id=c.id, amount=Decimal("3.00")),
            ],
        )
        assert summary.self_balance == Decimal("-7.00")
        assert summary.owes(a.id) == Decimal("7.00")
        assert summary.receives(b.id) == Decimal("4.00")
        assert summary.receives(a.id) == 0
        assert summary.is_settled_up is False


class TestAuditModels:
    """Tests for audit-related models."""

    def test_audit_event_creation(self):
        """Test AuditEvent model creation."""
        event = AuditEvent(
            event_type=AuditEventType.GROUP_CREATED,
            description="Test group created",
        )
        assert event.event_type == AuditEventType.GROUP_CREATED
        assert event.severity == AuditSeverity.INFO

    def test_audit_event_to_log_dict(self):
        """Test conversion to log dictionary."""
        group_id = uuid4()
        event = AuditEvent(
            event_type=AuditEventType.EXPENSE_ADDED,
            group_id=group_id,
            description="Expense added",
            details={"total_amount": "24.00"},
        )
        log_dict = event.to_log_dict()
        assert "event_id" in log_dict
        assert log_dict["event_type"] == "expense_added"
        assert log_dict["group_id"] == str(group_id)
        assert log_dict["details"]["total_amount"] == "24.00"

    def test_audit_event_to_sheets_row(self):
        """Test conversion to sheets row."""
        event = AuditEvent(
            event_type=AuditEventType.SHARES_SETTLED,
            description="Shares settled",
            is_user_action=True,
        )
        row = event.to_sheets_row()
        assert len(row) == 12  # Expected number of columns
        assert row[2] == "shares_settled"  # event_type
        assert row[11] == "True"  # is_user_action

    def test_audit_event_builder_expense_added(self):
        """Test AuditEventBuilder.expense_added."""
        group_id = uuid4()
        expense_id = uuid4()
        correlation_id = uuid4()

        event = AuditEventBuilder.expense_added(
            group_id=group_id,
            expense_id=expense_id,
            description="Pizza",
            total_amount=Decimal("24"),
            mode=SplitMode.ITEMIZED.value,
            share_count=2,
            correlation_id=correlation_id,
        )

        assert event.event_type == AuditEventType.EXPENSE_ADDED
        assert event.entity_id == expense_id
        assert event.group_id == group_id
        assert event.details["total_amount"] == "24.00"
        assert event.details["split_mode"] == "itemized"
        assert event.is_user_action is True

    def test_audit_event_builder_removal_rejected_is_warning(self):
        event = AuditEventBuilder.member_removal_rejected(
            group_id=uuid4(),
            member_id=uuid4(),
            reason="Settle up first.",
        )
        assert event.severity == AuditSeverity.WARNING
        assert event.error_message == "Settle up first."


class TestDraftModels:
    """Tests for draft and validation result models."""

    def test_receipt_draft_description_limit(self):
        with pytest.raises(ValidationError):
            ReceiptDraft(confidence_score=0.9, description="x" * 41)

    def test_receipt_draft_confidence_bounds(self):
        with pytest.raises(ValidationError):
            ReceiptDraft(confidence_score=1.5)

    def test_validation_result_has_errors(self):
        """Test has_errors property."""
        result = DraftValidationResult(
            draft_id=uuid4(),
            is_valid=False,
            issues=[
                ValidationIssue(
                    field="total_amount",
                    issue_type="missing",
                    message="Total amount required",
                    severity="error",
                ),
            ],
        )
        assert result.has_errors is True
        assert result.error_count == 1

    def test_validation_result_warnings_only(self):
        """Test that warnings don't count as errors."""
        result = DraftValidationResult(
            draft_id=uuid4(),
            is_valid=True,
            issues=[
                ValidationIssue(
                    field="confidence_score",
                    issue_type="low_confidence",
                    message="Scan confidence is low",
                    severity="warning",
                ),
            ],
        )
        assert result.has_errors is False
        assert result.error_count == 0
        assert result.warnings == ["Scan confidence is low"]

    def test_issue_severity_is_restricted(self):
        with pytest.raises(ValidationError):
            ValidationIssue(field="x", issue_type="y", message="z", severity="fatal")


if __name__ == "__main__":
    pytest.main([__file__, "-v"])
