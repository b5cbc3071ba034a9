"""
Expense Draft Models

Receipts and spoken descriptions are turned into DRAFTS by external
services (Mindee for images, Gemini for transcripts). A draft is only a
proposal: names are free text, amounts may be missing, and nothing is
saved until the draft has been validated, resolved to member ids and
confirmed by the user.
"""

from datetime import datetime, timezone
from decimal import Decimal
from typing import Optional
from uuid import UUID, uuid4

from pydantic import BaseModel, ConfigDict, Field

from splitledger.models.ledger import ReceiptItem
from splitledger.models.split import ItemizedSplit


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


class ReceiptDraft(BaseModel):
    """What the receipt scanner thinks it read from a photo."""
    model_config = ConfigDict(str_strip_whitespace=True)

    draft_id: UUID = Field(default_factory=uuid4)
    scanned_at: datetime = Field(default_factory=_utcnow)
    confidence_score: float = Field(
        ...,
        ge=0.0,
        le=1.0,
        description="Mean confidence of the key fields (0-1)"
    )

    description: Optional[str] = Field(
        default=None,
        max_length=40,
        description="Merchant name or most prominent item"
    )
    subtotal: Optional[Decimal] = Field(default=None, ge=0, decimal_places=2)
    tax: Optional[Decimal] = Field(default=None, ge=0, decimal_places=2)
    tip: Optional[Decimal] = Field(default=None, ge=0, decimal_places=2)
    total: Optional[Decimal] = Field(default=None, ge=0, decimal_places=2)
    items: list[ReceiptItem] = Field(default_factory=list)
    receipt_image_url: Optional[str] = None


class ParsedItem(BaseModel):
    """An item from a spoken expense, with the names of whoever had it."""
    model_config = ConfigDict(str_strip_whitespace=True)

    name: str = Field(..., min_length=1, max_length=200)
    price: Decimal = Field(..., ge=0, decimal_places=2)
    claimants: list[str] = Field(default_factory=list)


class ParsedExpense(BaseModel):
    """
    Structured expense extracted from a transcript.

    The speaker is always reported as "me".
    """
    model_config = ConfigDict(str_strip_whitespace=True)

    draft_id: UUID = Field(default_factory=uuid4)
    transcript: str
    description: str = Field(..., min_length=1, max_length=40)
    payer_name: Optional[str] = None
    total_amount: Decimal = Field(..., ge=0, decimal_places=2)
    items: list[ParsedItem] = Field(default_factory=list)


class ValidationIssue(BaseModel):
    """A single problem found in a draft."""

    field: str = Field(
        ...,
        description="Field with the issue"
    )
    issue_type: str = Field(
        ...,
        description="Type of issue (e.g. 'unassigned', 'unknown_member', 'inconsistent')"
    )
    message: str = Field(
        ...,
        description="Human-readable description of the issue"
    )
    severity: str = Field(
        ...,
        pattern="^(error|warning|info)$",
    )
    suggested_fix: Optional[str] = None


class DraftValidationResult(BaseModel):
    """
    Result of validating and resolving a draft against a group.

    When `is_valid` is true, `payer_id` and `split` are ready to be
    handed to the ledger.
    """

    draft_id: UUID
    validated_at: datetime = Field(default_factory=_utcnow)
    is_valid: bool
    payer_id: Optional[UUID] = None
    description: Optional[str] = None
    total_amount: Optional[Decimal] = None
    split: Optional[ItemizedSplit] = None
    issues: list[ValidationIssue] = Field(default_factory=list)

    @property
    def has_errors(self) -> bool:
        return any(issue.severity == "error" for issue in self.issues)

    @property
    def error_count(self) -> int:
        return sum(1 for issue in self.issues if issue.severity == "error")

    @property
    def warnings(self) -> list[str]:
        return [issue.message for issue in self.issues if issue.severity == "warning"]


class HostedReceipt(BaseModel):
    """A receipt photo stored with the image host."""

    receipt_id: UUID = Field(default_factory=uuid4)
    uploaded_at: datetime = Field(default_factory=_utcnow)
    original_filename: str
    url: str = Field(..., min_length=1)
    width: int = Field(..., gt=0)
    height: int = Field(..., gt=0)
    quality_issues: list[str] = Field(default_factory=list)
