"""
Core Ledger Models for SplitLedger

These models define the shape of the data the balance and settlement
engine consumes and produces:

- Persisted entities: Group, Member, Expense, ExpenseShare
- Engine output rows: ShareAllocation, SettlementInstruction
- Derived views: GroupSummary

Money is always a Decimal with two fraction digits. Balances and
settlement instructions are derived on every load and never stored.
"""

from datetime import datetime, timezone
from decimal import Decimal
from typing import Optional
from uuid import UUID, uuid4

from pydantic import (
    BaseModel,
    ConfigDict,
    Field,
    model_validator,
)


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


# =============================================================================
# PERSISTED ENTITIES
# =============================================================================

class Member(BaseModel):
    """A named participant in a group. May or may not be a real account."""
    model_config = ConfigDict(str_strip_whitespace=True)

    id: UUID = Field(default_factory=uuid4)
    group_id: UUID
    name: str = Field(
        ...,
        min_length=1,
        max_length=100,
        description="Display name"
    )
    created_at: datetime = Field(default_factory=_utcnow)


class ReceiptItem(BaseModel):
    """A single line on a receipt or spoken expense."""
    model_config = ConfigDict(str_strip_whitespace=True)

    name: str = Field(
        ...,
        min_length=1,
        max_length=200,
        description="What the item is, e.g. 'Pizza'"
    )
    price: Decimal = Field(
        ...,
        ge=0,
        decimal_places=2,
        description="Total price of the line"
    )


class ExpenseShare(BaseModel):
    """
    One member's portion of an expense.

    Shares are created together with their expense and only ever
    mutated by settling (flipping is_settled).
    """

    id: UUID = Field(default_factory=uuid4)
    expense_id: UUID
    member_id: UUID
    amount_owed: Decimal = Field(
        ...,
        ge=0,
        decimal_places=2,
        description="Amount this member owes the payer"
    )
    is_settled: bool = Field(default=False)


class Expense(BaseModel):
    """
    A single charge paid by one member on behalf of several.

    The shares are expected to sum to total_amount (within a cent).
    That is guaranteed by the share allocator at creation time and
    not re-validated here, so stored data is always loadable.
    """
    model_config = ConfigDict(str_strip_whitespace=True)

    id: UUID = Field(default_factory=uuid4)
    group_id: UUID
    payer_id: UUID
    description: str = Field(
        ...,
        min_length=1,
        max_length=200,
    )
    total_amount: Decimal = Field(
        ...,
        gt=0,
        decimal_places=2,
        description="Total amount paid"
    )
    line_items: list[ReceiptItem] = Field(default_factory=list)
    receipt_image_url: Optional[str] = None
    created_at: datetime = Field(default_factory=_utcnow)
    shares: list[ExpenseShare] = Field(default_factory=list)

    @property
    def is_fully_settled(self) -> bool:
        """True once every share owed to the payer is settled (the payer's own share is ignored)."""
        return all(
            share.is_settled or share.member_id == self.payer_id
            for share in self.shares
        )

    @property
    def shares_total(self) -> Decimal:
        return sum((share.amount_owed for share in self.shares), Decimal("0"))


class Group(BaseModel):
    """
    A fully loaded group: members plus expenses (each with shares).

    self_member_id points at the member that represents the current
    user. It is set once when the group is created instead of being
    re-derived from member names.
    """
    model_config = ConfigDict(str_strip_whitespace=True)

    id: UUID = Field(default_factory=uuid4)
    name: str = Field(
        ...,
        min_length=1,
        max_length=100,
    )
    created_at: datetime = Field(default_factory=_utcnow)
    self_member_id: Optional[UUID] = None
    members: list[Member] = Field(default_factory=list)
    expenses: list[Expense] = Field(default_factory=list)

    @model_validator(mode='after')
    def validate_self_member(self) -> 'Group':
        """The self member, when set and members are loaded, must belong to the group."""
        if self.self_member_id and self.members:
            if not any(m.id == self.self_member_id for m in self.members):
                raise ValueError("Self member must be one of the group's members")
        return self

    def member_by_id(self) -> dict[UUID, Member]:
        return {member.id: member for member in self.members}

    @property
    def self_member(self) -> Optional[Member]:
        return self.member_by_id().get(self.self_member_id) if self.self_member_id else None


class GroupOverview(BaseModel):
    """Group header row used for listings."""

    id: UUID
    name: str
    created_at: datetime
    member_count: int = Field(ge=0)


# =============================================================================
# ENGINE OUTPUT
# =============================================================================

class ShareAllocation(BaseModel):
    """How much one participant owes for an expense being created."""

    member_id: UUID
    amount_owed: Decimal = Field(
        ...,
        ge=0,
        decimal_places=2,
    )


class SettlementInstruction(BaseModel):
    """'from_member_id should pay to_member_id this amount.'"""

    from_member_id: UUID
    to_member_id: UUID
    amount: Decimal = Field(
        ...,
        gt=0,
        decimal_places=2,
    )


class GroupSummary(BaseModel):
    """
    A group together with its derived balances and settlement plan.

    Rebuilt from scratch every time the group is loaded.
    """

    group: Group
    balances: dict[UUID, Decimal] = Field(default_factory=dict)
    settlements: list[SettlementInstruction] = Field(default_factory=list)

    @property
    def self_balance(self) -> Decimal:
        """Net balance of the current user (0 if the group has no self member)."""
        if self.group.self_member_id is None:
            return Decimal("0")
        return self.balances.get(self.group.self_member_id, Decimal("0"))

    @property
    def is_settled_up(self) -> bool:
        return not self.settlements

    def owes(self, member_id: UUID) -> Decimal:
        """Total this member is asked to pay across the settlement plan."""
        return sum(
            (s.amount for s in self.settlements if s.from_member_id == member_id),
            Decimal("0"),
        )

    def receives(self, member_id: UUID) -> Decimal:
        """Total this member is due to receive across the settlement plan."""
        return sum(
            (s.amount for s in self.settlements if s.to_member_id == member_id),
            Decimal("0"),
        )
