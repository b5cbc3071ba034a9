"""
Share Allocator

Given an expense total and how the group wants to split it, compute how
much each participant owes. Runs once, when an expense is created; the
result is persisted as the expense's shares.

Equal and itemized allocations sum exactly to the expense total, and
amount allocations match it within a cent. Percent allocations round
each share on its own with no remainder correction, so with many
participants they can drift by more than a cent (seven shares of
14.285714% of 1.00 come to 0.98).

Errors raised here are meant to be shown to the user as-is. They are
never retried: the user has to correct the input.
"""

from collections.abc import Mapping, Sequence
from decimal import ROUND_DOWN, Decimal
from typing import Optional
from uuid import UUID

from splitledger.engine.money import (
    CENT,
    TOLERANCE,
    ZERO,
    Number,
    format_money,
    format_number,
    parse_amount,
    round_money,
    to_decimal,
)
from splitledger.models.ledger import Member, ReceiptItem, ShareAllocation
from splitledger.models.split import (
    AmountSplit,
    EqualSplit,
    ItemizedSplit,
    PercentSplit,
    SplitMode,
    SplitRequest,
)

HUNDRED = Decimal("100")


class SplitError(Exception):
    """Base exception for share allocation."""
    pass


class SplitValidationError(SplitError):
    """The split inputs are inconsistent; the user must fix them."""
    pass


class UnassignedItemsError(SplitValidationError):
    """Some receipt items have nobody claiming them."""

    def __init__(self, count: int):
        self.count = count
        noun = "item still needs" if count == 1 else "items still need"
        super().__init__(f"{count} {noun} to be assigned.")


class UnknownSplitModeError(SplitError):
    """Configuration error: the requested split mode does not exist."""

    def __init__(self, mode: str):
        self.mode = mode
        super().__init__(f"Unknown split mode: {mode}")


def _check_common(members: Sequence[Member], total: Decimal) -> None:
    if len(members) == 0:
        raise SplitValidationError("Select at least one participant.")
    if total <= ZERO:
        raise SplitValidationError("Total must be greater than zero.")


def _split_equal(members: Sequence[Member], total: Decimal) -> list[ShareAllocation]:
    each = round_money(total / len(members))
    # The first member absorbs the rounding remainder
    first = round_money(total - each * (len(members) - 1))
    if first < ZERO:
        # Rounding half-up overshot (e.g. 0.05 across 10); round down instead
        each = (total / len(members)).quantize(CENT, rounding=ROUND_DOWN)
        first = round_money(total - each * (len(members) - 1))
    return [
        ShareAllocation(member_id=m.id, amount_owed=first if i == 0 else each)
        for i, m in enumerate(members)
    ]


def _split_by_amount(
    members: Sequence[Member],
    total: Decimal,
    amounts: Mapping[UUID, str],
) -> list[ShareAllocation]:
    owed = [(m.id, round_money(parse_amount(amounts.get(m.id)))) for m in members]

    if any(amount < ZERO for _, amount in owed):
        raise SplitValidationError("Amounts cannot be negative.")

    entered = round_money(sum((amount for _, amount in owed), ZERO))
    if abs(entered - total) > TOLERANCE:
        raise SplitValidationError(
            f"Amounts must sum to ${format_money(total)} "
            f"(currently ${format_money(entered)})."
        )

    return [ShareAllocation(member_id=member_id, amount_owed=amount) for member_id, amount in owed]


def _split_by_percent(
    members: Sequence[Member],
    total: Decimal,
    percentages: Mapping[UUID, str],
) -> list[ShareAllocation]:
    percents = [(m.id, parse_amount(percentages.get(m.id))) for m in members]

    if any(pct < ZERO for _, pct in percents):
        raise SplitValidationError("Percentages cannot be negative.")

    total_pct = round_money(sum((pct for _, pct in percents), ZERO))
    if abs(total_pct - HUNDRED) > TOLERANCE:
        raise SplitValidationError(
            f"Percentages must sum to 100% (currently {format_number(total_pct)}%)."
        )

    return [
        ShareAllocation(member_id=member_id, amount_owed=round_money(pct / HUNDRED * total))
        for member_id, pct in percents
    ]


def _split_itemized(
    members: Sequence[Member],
    total: Decimal,
    items: Sequence[ReceiptItem],
    assignments: Mapping[int, set[UUID]],
) -> list[ShareAllocation]:
    unassigned = [i for i in range(len(items)) if not assignments.get(i)]
    if unassigned:
        raise UnassignedItemsError(len(unassigned))
    if not items:
        raise SplitValidationError("Add at least one item to split.")

    known = {m.id for m in members}
    strangers = {
        member_id
        for i in range(len(items))
        for member_id in assignments[i]
        if member_id not in known
    }
    if strangers:
        raise SplitValidationError("Items can only be claimed by members of the group.")

    # Unrounded per-member item subtotals
    subtotals: dict[UUID, Decimal] = {}
    for index, item in enumerate(items):
        claimants = assignments[index]
        portion = item.price / len(claimants)
        for member_id in claimants:
            subtotals[member_id] = subtotals.get(member_id, ZERO) + portion

    item_total = sum((item.price for item in items), ZERO)
    residual = max(ZERO, total - item_total)
    claimed_total = sum(subtotals.values(), ZERO)

    # Member order decides who absorbs rounding, not claim order
    claimants_in_order = [m.id for m in members if m.id in subtotals]

    raw: dict[UUID, Decimal] = {}
    for member_id in claimants_in_order:
        if claimed_total > ZERO:
            extra = residual * subtotals[member_id] / claimed_total
        else:
            extra = residual / len(claimants_in_order)
        raw[member_id] = subtotals[member_id] + extra

    target = round_money(item_total + residual)
    owed = {member_id: round_money(amount) for member_id, amount in raw.items()}
    drift = target - sum(owed.values(), ZERO)
    first = claimants_in_order[0]
    if owed[first] + drift >= ZERO:
        owed[first] = round_money(owed[first] + drift)
    else:
        # First claimant owes too little to absorb it; take a cent at a
        # time from the largest share (earliest member on ties)
        while drift < ZERO:
            largest = max(claimants_in_order, key=lambda member_id: owed[member_id])
            owed[largest] -= CENT
            drift += CENT

    return [
        ShareAllocation(member_id=member_id, amount_owed=owed[member_id])
        for member_id in claimants_in_order
    ]


def allocate_shares(
    split: SplitRequest,
    members: Sequence[Member],
    total_amount: Number,
) -> list[ShareAllocation]:
    """
    Compute each participant's share for a typed split request.

    Args:
        split: One of EqualSplit, AmountSplit, PercentSplit, ItemizedSplit
        members: Participants, in display order. The first one absorbs
                 rounding remainders.
        total_amount: The expense total

    Returns:
        One ShareAllocation per participant (per claimant for itemized)

    Raises:
        SplitValidationError: If the inputs don't add up
        UnknownSplitModeError: If `split` is not a known split type
    """
    total = round_money(to_decimal(total_amount))
    _check_common(members, total)

    if isinstance(split, EqualSplit):
        return _split_equal(members, total)
    if isinstance(split, AmountSplit):
        return _split_by_amount(members, total, split.amounts)
    if isinstance(split, PercentSplit):
        return _split_by_percent(members, total, split.percentages)
    if isinstance(split, ItemizedSplit):
        return _split_itemized(members, total, split.items, split.assignments)

    raise UnknownSplitModeError(getattr(split, "mode", type(split).__name__))


def build_split(mode: str, inputs: Optional[Mapping[UUID, str]] = None) -> SplitRequest:
    """Build a typed split request from a mode name and raw per-member inputs."""
    inputs = dict(inputs or {})
    try:
        split_mode = SplitMode(mode)
    except ValueError:
        raise UnknownSplitModeError(str(mode))

    if split_mode == SplitMode.EQUAL:
        return EqualSplit()
    if split_mode == SplitMode.AMOUNT:
        return AmountSplit(amounts=inputs)
    if split_mode == SplitMode.PERCENT:
        return PercentSplit(percentages=inputs)

    # Itemized splits need items and claims, not per-member strings
    raise UnknownSplitModeError(str(mode))


def compute_shares(
    mode: str,
    members: Sequence[Member],
    total_amount: Number,
    inputs: Optional[Mapping[UUID, str]] = None,
) -> list[ShareAllocation]:
    """
    Compute shares for the 'equal', 'amount' or 'percent' mode.

    `inputs` maps member id to the raw string the user typed (amounts or
    percentages); it is ignored for 'equal'.
    """
    return allocate_shares(build_split(mode, inputs), members, total_amount)


def compute_itemized_shares(
    members: Sequence[Member],
    total_amount: Number,
    items: Sequence[ReceiptItem],
    assignments: Mapping[int, set[UUID]],
) -> list[ShareAllocation]:
    """
    Compute shares from claimed receipt items.

    Each item is split equally between its claimants. Anything the total
    has on top of the items (tax, tip) is spread in proportion to each
    member's item subtotal. Every item must be claimed first, so the
    proportional base always covers the whole receipt.
    """
    split = ItemizedSplit(items=list(items), assignments=dict(assignments))
    return allocate_shares(split, members, total_amount)
