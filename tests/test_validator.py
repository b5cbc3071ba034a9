"""
Tests for the expense draft validator.

Name resolution, unassigned items and total checks for both draft
sources (transcripts and scanned receipts).
"""

import pytest
from decimal import Decimal
from uuid import uuid4

from splitledger.engine import compute_itemized_shares
from splitledger.models.draft import ParsedExpense, ParsedItem, ReceiptDraft
from splitledger.models.ledger import Group, Member, ReceiptItem
from splitledger.validation import ExpenseDraftValidator


@pytest.fixture
def group() -> Group:
    group_id = uuid4()
    members = [
        Member(group_id=group_id, name="Me"),
        Member(group_id=group_id, name="Sam"),
        Member(group_id=group_id, name="Alex"),
    ]
    return Group(id=group_id, name="Dinner club", self_member_id=members[0].id, members=members)


@pytest.fixture
def validator() -> ExpenseDraftValidator:
    return ExpenseDraftValidator(self_member_name="Me")


def issue_types(result) -> set[str]:
    return {issue.issue_type for issue in result.issues}


class TestNameResolution:
    """Tests for resolve_name."""

    @pytest.mark.parametrize("spoken", ["me", "Me", " ME ", "I", "myself"])
    def test_self_aliases(self, validator, group, spoken):
        assert validator.resolve_name(group, spoken) == group.self_member_id

    def test_case_insensitive_member_match(self, validator, group):
        assert validator.resolve_name(group, "sAm") == group.members[1].id

    def test_unknown_name(self, validator, group):
        assert validator.resolve_name(group, "Taylor") is None
        assert validator.resolve_name(group, "") is None

    def test_custom_self_name(self, group):
        validator = ExpenseDraftValidator(self_member_name="Jordan")
        assert validator.resolve_name(group, "jordan") == group.self_member_id


class TestParsedExpenseValidation:
    """Tests for validate_parsed_expense."""

    def test_valid_transcript_resolves_to_itemized_split(self, validator, group):
        me, sam, alex = group.members
        parsed = ParsedExpense(
            transcript="I paid 24 for pizza with Sam",
            description="Pizza",
            payer_name="me",
            total_amount=Decimal("24.00"),
            items=[ParsedItem(name="Pizza", price=Decimal("20.00"), claimants=["me", "Sam"])],
        )

        result = validator.validate_parsed_expense(parsed, group)

        assert result.is_valid
        assert result.payer_id == me.id
        assert result.split.assignments == {0: {me.id, sam.id}}

        shares = compute_itemized_shares(
            group.members, result.total_amount, result.split.items, result.split.assignments,
        )
        assert sorted(s.amount_owed for s in shares) == [Decimal("12.00"), Decimal("12.00")]

    def test_missing_payer_defaults_to_self(self, validator, group):
        parsed = ParsedExpense(
            transcript="coffee for Alex, 4 dollars",
            description="Coffee",
            total_amount=Decimal("4.00"),
            items=[ParsedItem(name="Coffee", price=Decimal("4.00"), claimants=["Alex"])],
        )

        result = validator.validate_parsed_expense(parsed, group)

        assert result.is_valid
        assert result.payer_id == group.self_member_id
        assert "assumed" in issue_types(result)

    def test_unknown_names_are_errors(self, validator, group):
        parsed = ParsedExpense(
            transcript="Taylor paid for Jo's burger",
            description="Burgers",
            payer_name="Taylor",
            total_amount=Decimal("10.00"),
            items=[ParsedItem(name="Burger", price=Decimal("10.00"), claimants=["Jo"])],
        )

        result = validator.validate_parsed_expense(parsed, group)

        assert not result.is_valid
        assert result.split is None
        assert "unknown_member" in issue_types(result)
        assert any("Jo" in issue.message for issue in result.issues)

    def test_item_without_claimants_is_unassigned(self, validator, group):
        parsed = ParsedExpense(
            transcript="nachos and beer",
            description="Bar",
            payer_name="Sam",
            total_amount=Decimal("15.00"),
            items=[
                ParsedItem(name="Nachos", price=Decimal("9.00"), claimants=["Sam"]),
                ParsedItem(name="Beer", price=Decimal("6.00")),
            ],
        )

        result = validator.validate_parsed_expense(parsed, group)

        assert not result.is_valid
        assert any(issue.message == "1 item still needs to be assigned." for issue in result.issues)

    def test_items_above_total_are_errors(self, validator, group):
        parsed = ParsedExpense(
            transcript="steak 30, total 20",
            description="Steak",
            total_amount=Decimal("20.00"),
            items=[ParsedItem(name="Steak", price=Decimal("30.00"), claimants=["me"])],
        )

        result = validator.validate_parsed_expense(parsed, group)

        assert not result.is_valid
        assert "inconsistent" in issue_types(result)

    def test_zero_total_is_rejected(self, validator, group):
        parsed = ParsedExpense(
            transcript="nothing",
            description="Nothing",
            total_amount=Decimal("0"),
            items=[ParsedItem(name="Water", price=Decimal("0"), claimants=["me"])],
        )
        result = validator.validate_parsed_expense(parsed, group)
        assert not result.is_valid


class TestReceiptValidation:
    """Tests for validate_receipt."""

    @staticmethod
    def draft(**overrides) -> ReceiptDraft:
        values = dict(
            confidence_score=0.9,
            description="Luigi's",
            subtotal=Decimal("30.00"),
            tax=Decimal("2.40"),
            tip=Decimal("5.60"),
            total=Decimal("38.00"),
            items=[
                ReceiptItem(name="Lasagna", price=Decimal("18.00")),
                ReceiptItem(name="Salad", price=Decimal("12.00")),
            ],
        )
        values.update(overrides)
        return ReceiptDraft(**values)

    def test_clean_receipt(self, validator, group):
        me, sam, _ = group.members
        result = validator.validate_receipt(self.draft(), group, me.id, {0: {me.id}, 1: {sam.id}})

        assert result.is_valid
        assert result.warnings == []
        assert result.total_amount == Decimal("38.00")
        assert validator.get_user_friendly_summary(result).startswith("✅")

    def test_low_confidence_and_mismatch_are_warnings(self, validator, group):
        me, sam, _ = group.members
        draft = self.draft(confidence_score=0.3, total=Decimal("40.00"))

        result = validator.validate_receipt(draft, group, me.id, {0: {me.id}, 1: {sam.id}})

        assert result.is_valid
        assert {"low_confidence", "inconsistent"} <= issue_types(result)
        assert "⚠️" in validator.get_user_friendly_summary(result)

    def test_missing_total_blocks_saving(self, validator, group):
        me = group.members[0]
        result = validator.validate_receipt(
            self.draft(total=None, subtotal=None), group, me.id, {0: {me.id}, 1: {me.id}},
        )
        assert not result.is_valid
        assert "missing" in issue_types(result)

    def test_unclaimed_items_block_saving(self, validator, group):
        me = group.members[0]
        result = validator.validate_receipt(self.draft(), group, me.id, {0: {me.id}})

        assert not result.is_valid
        summary = validator.get_user_friendly_summary(result)
        assert "1 item still needs to be assigned." in summary
        assert "Salad" in summary

    def test_strangers_and_unknown_payer(self, validator, group):
        stranger = uuid4()
        result = validator.validate_receipt(self.draft(), group, stranger, {0: {stranger}, 1: {stranger}})
        assert not result.is_valid
        assert result.error_count == 2


if __name__ == "__main__":
    pytest.main([__file__, "-v"])
