"""
Balance Calculator

Derives each member's net position from a loaded group:
positive = the member is owed money, negative = the member owes money.

Balances are never stored. They are recomputed from the full expense
history every time a group is loaded, so they cannot go stale.
"""

from collections.abc import Mapping
from decimal import Decimal
from uuid import UUID

from splitledger.engine.money import ZERO, round_money
from splitledger.models.ledger import Group


def compute_balances(group: Group) -> dict[UUID, Decimal]:
    """
    Compute every member's net balance.

    For each unsettled share, the share's member owes the expense's payer
    `amount_owed`. The payer's own share and settled shares move nothing.

    Every member gets an entry, even with no activity. Shares or payers
    that reference unknown members are tolerated: they get an entry
    of their own instead of raising.

    The result always sums to zero.
    """
    balances: dict[UUID, Decimal] = {member.id: ZERO for member in group.members}

    for expense in group.expenses:
        payer_id = expense.payer_id
        for share in expense.shares:
            if share.is_settled:
                continue
            if share.member_id == payer_id:
                continue

            balances[share.member_id] = balances.get(share.member_id, ZERO) - share.amount_owed
            balances[payer_id] = balances.get(payer_id, ZERO) + share.amount_owed

    return balances


def has_outstanding_balance(
    balances: Mapping[UUID, Decimal],
    member_id: UUID,
) -> bool:
    """True when the member's balance is non-zero at cent precision."""
    return round_money(balances.get(member_id, ZERO)) != ZERO


def has_unsettled_shares(group: Group, member_id: UUID) -> bool:
    """
    True when the member still owes, or is still owed, on any expense.

    Stricter than has_outstanding_balance: debts that happen to net to
    zero still count. Removing such a member would orphan their shares.
    """
    for expense in group.expenses:
        for share in expense.shares:
            if share.is_settled or share.member_id == expense.payer_id:
                continue
            if member_id in (share.member_id, expense.payer_id):
                return True
    return False
