"""
Settlement Minimizer

Turns a balance map into a short list of "A pays B x" instructions that
brings every balance to zero.

The algorithm is a GREEDY heuristic: largest debtor pays largest
creditor, repeat. It is fast and produces at most
creditors + debtors - 1 payments, but it is NOT guaranteed to find the
minimum possible number of payments. Finding that minimum is a
subset-sum style problem (e.g. balances +5, +5, -3, -7 can be cleared
with fewer payments by pairing subsets that cancel exactly). The greedy
result is the behavior callers rely on.
"""

from collections.abc import Mapping
from dataclasses import dataclass
from decimal import Decimal
from uuid import UUID

from splitledger.engine.money import TOLERANCE, ZERO, round_money
from splitledger.models.ledger import SettlementInstruction


@dataclass
class _Party:
    member_id: UUID
    remaining: Decimal


def minimize_transactions(
    balances: Mapping[UUID, Decimal],
) -> list[SettlementInstruction]:
    """
    Produce payment instructions that settle every balance.

    Balances are rounded to cents first, so sub-cent noise never turns
    into a payment. Ties in amount keep the balance map's order.
    """
    creditors: list[_Party] = []
    debtors: list[_Party] = []

    for member_id, amount in balances.items():
        rounded = round_money(amount)
        if rounded > ZERO:
            creditors.append(_Party(member_id, rounded))
        elif rounded < ZERO:
            debtors.append(_Party(member_id, -rounded))

    # Largest first; sort is stable so equal amounts keep input order
    creditors.sort(key=lambda p: p.remaining, reverse=True)
    debtors.sort(key=lambda p: p.remaining, reverse=True)

    transactions: list[SettlementInstruction] = []
    ci = 0
    di = 0

    while ci < len(creditors) and di < len(debtors):
        credit = creditors[ci]
        debt = debtors[di]
        payment = min(credit.remaining, debt.remaining)

        amount = round_money(payment)
        if amount > ZERO:
            transactions.append(SettlementInstruction(
                from_member_id=debt.member_id,
                to_member_id=credit.member_id,
                amount=amount,
            ))

        credit.remaining -= payment
        debt.remaining -= payment

        if credit.remaining < TOLERANCE:
            ci += 1
        if debt.remaining < TOLERANCE:
            di += 1

    return transactions
