"""
Tests for the share allocator.

Every successful allocation sums to the expense total; every failure
carries a message that can be shown to the user as-is.
"""

import pytest
from decimal import Decimal
from uuid import uuid4

from pydantic import TypeAdapter

from splitledger.engine import (
    SplitValidationError,
    UnassignedItemsError,
    UnknownSplitModeError,
    allocate_shares,
    compute_itemized_shares,
    compute_shares,
)
from splitledger.models.ledger import Member, ReceiptItem
from splitledger.models.split import (
    AmountSplit,
    EqualSplit,
    ItemizedSplit,
    PercentSplit,
    SplitRequest,
)


def make_members(*names: str) -> list[Member]:
    group_id = uuid4()
    return [Member(group_id=group_id, name=name) for name in names]


def owed_by_name(members, allocations) -> dict[str, Decimal]:
    names = {m.id: m.name for m in members}
    return {names[a.member_id]: a.amount_owed for a in allocations}


def total_of(allocations) -> Decimal:
    return sum((a.amount_owed for a in allocations), Decimal("0"))


class TestEqualSplit:
    """Tests for the 'equal' mode."""

    def test_even_split(self):
        members = make_members("A", "B")
        shares = compute_shares("equal", members, Decimal("20.00"))
        assert owed_by_name(members, shares) == {"A": Decimal("10.00"), "B": Decimal("10.00")}

    def test_first_member_absorbs_remainder(self):
        """10 / 3 -> 3.34, 3.33, 3.33."""
        members = make_members("A", "B", "C")
        shares = compute_shares("equal", members, "10")
        assert [s.amount_owed for s in shares] == [
            Decimal("3.34"), Decimal("3.33"), Decimal("3.33"),
        ]
        assert total_of(shares) == Decimal("10.00")

    @pytest.mark.parametrize("total,count", [
        ("0.05", 10),
        ("100.00", 7),
        ("0.01", 3),
        ("99.99", 6),
    ])
    def test_always_sums_to_total_without_negatives(self, total, count):
        members = make_members(*[f"M{i}" for i in range(count)])
        shares = compute_shares("equal", members, Decimal(total))
        assert total_of(shares) == Decimal(total)
        assert all(s.amount_owed >= 0 for s in shares)

    def test_float_total_has_no_artifacts(self):
        members = make_members("A", "B")
        shares = compute_shares("equal", members, 0.1 + 0.2)
        assert total_of(shares) == Decimal("0.30")


class TestAmountSplit:
    """Tests for the 'amount' mode."""

    def test_exact_amounts(self):
        members = make_members("A", "B")
        a, b = members
        shares = compute_shares("amount", members, "30", {a.id: "12.50", b.id: "17.50"})
        assert owed_by_name(members, shares) == {"A": Decimal("12.50"), "B": Decimal("17.50")}

    def test_mismatch_is_rejected_with_both_sums(self):
        members = make_members("A", "B")
        a, b = members
        with pytest.raises(SplitValidationError) as exc:
            compute_shares("amount", members, "30", {a.id: "10", b.id: "10"})
        assert str(exc.value) == "Amounts must sum to $30.00 (currently $20.00)."

    def test_within_a_cent_is_accepted(self):
        members = make_members("A", "B")
        a, b = members
        shares = compute_shares("amount", members, "30", {a.id: "15", b.id: "14.99"})
        assert len(shares) == 2

    def test_blank_and_garbage_inputs_count_as_zero(self):
        members = make_members("A", "B", "C")
        a, b, c = members
        shares = compute_shares("amount", members, "30", {a.id: "30abc", b.id: ""})
        assert owed_by_name(members, shares) == {
            "A": Decimal("30.00"), "B": Decimal("0.00"), "C": Decimal("0.00"),
        }

    def test_negative_amount_is_rejected(self):
        members = make_members("A", "B")
        a, b = members
        with pytest.raises(SplitValidationError):
            compute_shares("amount", members, "10", {a.id: "20", b.id: "-10"})


class TestPercentSplit:
    """Tests for the 'percent' mode."""

    def test_percentages_not_summing_to_100_are_rejected(self):
        members = make_members("A", "B")
        a, b = members
        with pytest.raises(SplitValidationError) as exc:
            compute_shares("percent", members, 100, {a.id: "60", b.id: "30"})
        assert "Percentages must sum to 100%" in str(exc.value)
        assert "currently 90%" in str(exc.value)

    def test_fractional_percent_in_message(self):
        members = make_members("A", "B")
        a, b = members
        with pytest.raises(SplitValidationError) as exc:
            compute_shares("percent", members, 100, {a.id: "60", b.id: "32.5"})
        assert "currently 92.5%" in str(exc.value)

    def test_percent_amounts(self):
        members = make_members("A", "B")
        a, b = members
        shares = compute_shares("percent", members, "80", {a.id: "25", b.id: "75"})
        assert owed_by_name(members, shares) == {"A": Decimal("20.00"), "B": Decimal("60.00")}

    def test_shares_are_rounded_independently(self):
        """Seven sevenths of 1.00 round to 0.14 each, 0.98 in all."""
        members = make_members(*"ABCDEFG")
        inputs = {m.id: "14.285714" for m in members}

        shares = compute_shares("percent", members, "1.00", inputs)

        assert {s.amount_owed for s in shares} == {Decimal("0.14")}
        assert sum(s.amount_owed for s in shares) == Decimal("0.98")


class TestCommonChecks:
    """Checks shared by every mode."""

    def test_no_participants(self):
        with pytest.raises(SplitValidationError) as exc:
            compute_shares("equal", [], "10")
        assert str(exc.value) == "Select at least one participant."

    @pytest.mark.parametrize("total", ["0", "-5"])
    def test_non_positive_total(self, total):
        with pytest.raises(SplitValidationError) as exc:
            compute_shares("equal", make_members("A"), total)
        assert str(exc.value) == "Total must be greater than zero."

    def test_unknown_mode(self):
        with pytest.raises(UnknownSplitModeError) as exc:
            compute_shares("shares", make_members("A"), "10")
        assert str(exc.value) == "Unknown split mode: shares"


class TestItemizedSplit:
    """Tests for the itemized variant."""

    def test_tax_is_spread_proportionally(self):
        """Pizza 20 shared by A and B, total 24: both owe 12.00."""
        members = make_members("A", "B")
        a, b = members
        shares = compute_itemized_shares(
            members,
            Decimal("24.00"),
            [ReceiptItem(name="Pizza", price=Decimal("20.00"))],
            {0: {a.id, b.id}},
        )
        assert owed_by_name(members, shares) == {"A": Decimal("12.00"), "B": Decimal("12.00")}

    def test_uneven_items_with_tip(self):
        members = make_members("A", "B")
        a, b = members
        items = [
            ReceiptItem(name="Steak", price=Decimal("30.00")),
            ReceiptItem(name="Salad", price=Decimal("10.00")),
        ]
        shares = compute_itemized_shares(members, "48", items, {0: {a.id}, 1: {b.id}})
        assert owed_by_name(members, shares) == {"A": Decimal("36.00"), "B": Decimal("12.00")}

    def test_only_claimants_get_shares(self):
        members = make_members("A", "B", "C")
        a, b, c = members
        shares = compute_itemized_shares(
            members,
            "9",
            [ReceiptItem(name="Beer", price=Decimal("9.00"))],
            {0: {c.id}},
        )
        assert owed_by_name(members, shares) == {"C": Decimal("9.00")}

    def test_rounding_drift_goes_to_first_claimant(self):
        members = make_members("A", "B", "C")
        a, b, c = members
        shares = compute_itemized_shares(
            members,
            "10",
            [ReceiptItem(name="Nachos", price=Decimal("10.00"))],
            {0: {c.id, b.id, a.id}},
        )
        assert [s.amount_owed for s in shares] == [
            Decimal("3.34"), Decimal("3.33"), Decimal("3.33"),
        ]
        assert shares[0].member_id == a.id

    def test_drift_never_makes_a_share_negative(self):
        """A's free water can't absorb the -0.01 left by three-way gum."""
        members = make_members("A", "B", "C", "D")
        a, b, c, d = members
        items = [
            ReceiptItem(name="Water", price=Decimal("0.00")),
            ReceiptItem(name="Gum", price=Decimal("0.02")),
        ]

        shares = compute_itemized_shares(members, "0.02", items, {0: {a.id}, 1: {b.id, c.id, d.id}})

        assert all(s.amount_owed >= 0 for s in shares)
        assert sum(s.amount_owed for s in shares) == Decimal("0.02")
        assert owed_by_name(members, shares) == {
            "A": Decimal("0.00"),
            "B": Decimal("0.00"),
            "C": Decimal("0.01"),
            "D": Decimal("0.01"),
        }

    def test_one_unassigned_item(self):
        members = make_members("A")
        items = [
            ReceiptItem(name="Fries", price=Decimal("4.00")),
            ReceiptItem(name="Soda", price=Decimal("2.00")),
        ]
        with pytest.raises(UnassignedItemsError) as exc:
            compute_itemized_shares(members, "6", items, {0: {members[0].id}})
        assert exc.value.count == 1
        assert str(exc.value) == "1 item still needs to be assigned."

    def test_several_unassigned_items(self):
        members = make_members("A")
        items = [ReceiptItem(name=f"Item {i}", price=Decimal("1.00")) for i in range(3)]
        with pytest.raises(UnassignedItemsError) as exc:
            compute_itemized_shares(members, "3", items, {0: set()})
        assert str(exc.value) == "3 items still need to be assigned."

    def test_claimant_outside_group_is_rejected(self):
        members = make_members("A")
        with pytest.raises(SplitValidationError):
            compute_itemized_shares(
                members,
                "5",
                [ReceiptItem(name="Tea", price=Decimal("5.00"))],
                {0: {uuid4()}},
            )

    def test_free_items_spread_residual_equally(self):
        """All items priced zero: the whole total is split between claimants."""
        members = make_members("A", "B")
        a, b = members
        shares = compute_itemized_shares(
            members,
            "10",
            [ReceiptItem(name="Water", price=Decimal("0.00"))],
            {0: {a.id, b.id}},
        )
        assert total_of(shares) == Decimal("10.00")


class TestTypedSplitRequests:
    """Tests for allocate_shares with the tagged split variants."""

    def test_split_request_parses_from_json(self):
        members = make_members("A", "B")
        a, b = members
        split = TypeAdapter(SplitRequest).validate_python({
            "mode": "percent",
            "percentages": {str(a.id): "50", str(b.id): "50"},
        })
        assert isinstance(split, PercentSplit)
        shares = allocate_shares(split, members, "9.98")
        assert total_of(shares) == Decimal("9.98")

    def test_each_variant_dispatches(self):
        members = make_members("A", "B")
        a, b = members
        item = ReceiptItem(name="Cake", price=Decimal("8.00"))
        cases = [
            EqualSplit(),
            AmountSplit(amounts={a.id: "3", b.id: "5"}),
            PercentSplit(percentages={a.id: "50", b.id: "50"}),
            ItemizedSplit(items=[item], assignments={0: {a.id, b.id}}),
        ]
        for split in cases:
            assert total_of(allocate_shares(split, members, "8")) == Decimal("8.00")

    def test_unknown_variant(self):
        with pytest.raises(UnknownSplitModeError):
            allocate_shares(object(), make_members("A"), "5")


if __name__ == "__main__":
    pytest.main([__file__, "-v"])
