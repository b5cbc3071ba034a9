"""
Split Request Models

Each way of dividing an expense has its own input type instead of one
loosely-typed bag of per-member strings. The `mode` field is the tag of a
pydantic discriminated union, so a SplitRequest can be parsed straight
from a form post or JSON body.
"""

from enum import Enum
from typing import Annotated, Literal, Union
from uuid import UUID

from pydantic import BaseModel, Field

from splitledger.models.ledger import ReceiptItem


class SplitMode(str, Enum):
    """Supported split modes."""
    EQUAL = "equal"
    AMOUNT = "amount"
    PERCENT = "percent"
    ITEMIZED = "itemized"


class EqualSplit(BaseModel):
    """Everyone pays the same; the first participant absorbs rounding."""
    mode: Literal[SplitMode.EQUAL] = SplitMode.EQUAL


class AmountSplit(BaseModel):
    """
    Explicit amount per participant.

    Values are the raw strings typed by the user. Blank, missing or
    non-numeric values count as zero.
    """
    mode: Literal[SplitMode.AMOUNT] = SplitMode.AMOUNT
    amounts: dict[UUID, str] = Field(default_factory=dict)


class PercentSplit(BaseModel):
    """Percentage per participant, as raw user input. Must total 100."""
    mode: Literal[SplitMode.PERCENT] = SplitMode.PERCENT
    percentages: dict[UUID, str] = Field(default_factory=dict)


class ItemizedSplit(BaseModel):
    """
    Receipt-style split.

    `assignments` maps an item's index in `items` to the members who
    claimed it. Claimants of an item share its price equally; whatever
    the total has on top of the items (tax, tip) is spread in proportion
    to each member's item subtotal.
    """
    mode: Literal[SplitMode.ITEMIZED] = SplitMode.ITEMIZED
    items: list[ReceiptItem] = Field(default_factory=list)
    assignments: dict[int, set[UUID]] = Field(default_factory=dict)

    @property
    def unassigned_indexes(self) -> list[int]:
        return [
            index for index in range(len(self.items))
            if not self.assignments.get(index)
        ]

    @property
    def claimant_ids(self) -> set[UUID]:
        claimed: set[UUID] = set()
        for member_ids in self.assignments.values():
            claimed.update(member_ids)
        return claimed


SplitRequest = Annotated[
    Union[EqualSplit, AmountSplit, PercentSplit, ItemizedSplit],
    Field(discriminator="mode"),
]
