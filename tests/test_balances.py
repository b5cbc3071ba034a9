"""
Tests for the balance calculator.

Balances are derived from unsettled shares only, always sum to zero
and never depend on anything but the group snapshot.
"""

import pytest
from decimal import Decimal
from uuid import uuid4

from splitledger.engine import (
    compute_balances,
    has_outstanding_balance,
    has_unsettled_shares,
    minimize_transactions,
)
from splitledger.models.ledger import Expense, ExpenseShare, Group, Member


def make_group(*names: str) -> Group:
    group_id = uuid4()
    members = [Member(group_id=group_id, name=name) for name in names]
    return Group(id=group_id, name="Trip", self_member_id=members[0].id, members=members)


def make_expense(
    group: Group,
    payer: Member,
    owed: list,
    settled: bool = False,
) -> Expense:
    expense_id = uuid4()
    shares = [
        ExpenseShare(
            expense_id=expense_id,
            member_id=member.id,
            amount_owed=Decimal(amount),
            is_settled=settled,
        )
        for member, amount in owed
    ]
    return Expense(
        id=expense_id,
        group_id=group.id,
        payer_id=payer.id,
        description="Dinner",
        total_amount=sum((s.amount_owed for s in shares), Decimal("0")),
        shares=shares,
    )


class TestComputeBalances:
    """Tests for compute_balances."""

    def test_simple_debt(self):
        """A pays 20 split equally with B: A is owed 10, B owes 10."""
        group = make_group("A", "B")
        a, b = group.members
        group.expenses.append(make_expense(group, a, [(a, "10.00"), (b, "10.00")]))

        balances = compute_balances(group)

        assert balances == {a.id: Decimal("10.00"), b.id: Decimal("-10.00")}
        settlements = minimize_transactions(balances)
        assert len(settlements) == 1
        assert settlements[0].from_member_id == b.id
        assert settlements[0].to_member_id == a.id
        assert settlements[0].amount == Decimal("10.00")

    def test_every_member_gets_an_entry(self):
        """Members without activity show up with a zero balance."""
        group = make_group("A", "B", "C")
        balances = compute_balances(group)
        assert set(balances) == {m.id for m in group.members}
        assert all(amount == 0 for amount in balances.values())

    def test_payer_own_share_moves_nothing(self):
        """The payer's own share is not a debt to themselves."""
        group = make_group("A", "B")
        a, b = group.members
        group.expenses.append(make_expense(group, a, [(a, "15.00")]))

        balances = compute_balances(group)
        assert balances[a.id] == 0
        assert balances[b.id] == 0

    def test_settled_shares_are_ignored(self):
        """Settled shares no longer count toward balances."""
        group = make_group("A", "B")
        a, b = group.members
        group.expenses.append(make_expense(group, a, [(a, "5.00"), (b, "5.00")], settled=True))

        balances = compute_balances(group)
        assert not has_outstanding_balance(balances, b.id)

    def test_balances_always_sum_to_zero(self):
        """Conservation over several payers and uneven shares."""
        group = make_group("A", "B", "C", "D")
        a, b, c, d = group.members
        group.expenses.extend([
            make_expense(group, a, [(a, "3.34"), (b, "3.33"), (c, "3.33")]),
            make_expense(group, b, [(c, "12.50"), (d, "7.25")]),
            make_expense(group, d, [(a, "0.01"), (b, "99.99"), (d, "1.00")]),
        ])

        balances = compute_balances(group)
        assert sum(balances.values(), Decimal("0")) == 0

    def test_unknown_member_in_share_is_tolerated(self):
        """A share pointing at a removed member gets its own entry."""
        group = make_group("A")
        a = group.members[0]
        ghost = Member(group_id=group.id, name="Ghost")
        group.expenses.append(make_expense(group, a, [(ghost, "4.00")]))

        balances = compute_balances(group)
        assert balances[ghost.id] == Decimal("-4.00")
        assert balances[a.id] == Decimal("4.00")

    def test_recomputing_gives_the_same_result(self):
        """Computing twice on the same snapshot is idempotent."""
        group = make_group("A", "B", "C")
        a, b, c = group.members
        group.expenses.append(make_expense(group, b, [(a, "6.00"), (c, "9.00")]))
        assert compute_balances(group) == compute_balances(group)


class TestOutstandingChecks:
    """Tests for has_outstanding_balance and has_unsettled_shares."""

    def test_sub_cent_balance_is_not_outstanding(self):
        """Balances that round to zero are settled."""
        member_id = uuid4()
        assert not has_outstanding_balance({member_id: Decimal("0.004")}, member_id)
        assert has_outstanding_balance({member_id: Decimal("0.005")}, member_id)

    def test_missing_member_is_not_outstanding(self):
        assert not has_outstanding_balance({}, uuid4())

    def test_netted_debts_still_count_as_unsettled(self):
        """A owes B 5 and B owes A 5: balance is zero but shares are open."""
        group = make_group("A", "B")
        a, b = group.members
        group.expenses.extend([
            make_expense(group, a, [(b, "5.00")]),
            make_expense(group, b, [(a, "5.00")]),
        ])

        balances = compute_balances(group)
        assert not has_outstanding_balance(balances, a.id)
        assert has_unsettled_shares(group, a.id)

    def test_no_unsettled_shares_after_settling(self):
        group = make_group("A", "B")
        a, b = group.members
        group.expenses.append(make_expense(group, a, [(b, "5.00")], settled=True))
        assert not has_unsettled_shares(group, a.id)
        assert not has_unsettled_shares(group, b.id)


if __name__ == "__main__":
    pytest.main([__file__, "-v"])
