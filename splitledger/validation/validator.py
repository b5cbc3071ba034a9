"""
Expense Draft Validation

Drafts come from two places: the receipt scanner and the transcript
parser. Both produce free text (names, descriptions) and amounts that
may be missing or wrong. Before a draft becomes an expense it goes
through two stages:

STAGE 1 - RESOLUTION:
- Payer and claimant names are matched to member ids
- "me" and the configured self name map to the group's self member
- Everything else matches member names case-insensitively

STAGE 2 - CONSISTENCY:
- Every item needs at least one claimant
- Items cannot add up to more than the total
- Low scan confidence and mismatched subtotal/tax/tip are flagged

IMPORTANT: Validation NEVER silently fixes issues.
It reports them for the user to correct before saving.
"""

from collections.abc import Mapping
from decimal import Decimal
from typing import Optional
from uuid import UUID

from splitledger.config import get_settings
from splitledger.engine.money import TOLERANCE, ZERO, format_money
from splitledger.models.draft import (
    DraftValidationResult,
    ParsedExpense,
    ReceiptDraft,
    ValidationIssue,
)
from splitledger.models.ledger import Group, ReceiptItem
from splitledger.models.split import ItemizedSplit


SELF_ALIASES = {"me", "i", "myself"}


class ExpenseDraftValidator:
    """
    Resolves and validates expense drafts against a loaded group.

    Pure: needs no storage, only the group snapshot the user is looking at.
    """

    def __init__(self, self_member_name: Optional[str] = None):
        settings = get_settings().ledger
        self._self_name = (self_member_name or settings.self_member_name).strip().lower()
        self._min_confidence = settings.min_receipt_confidence

    def resolve_name(self, group: Group, name: Optional[str]) -> Optional[UUID]:
        """Match a spoken or typed name to a member id, or None."""
        if not name:
            return None
        key = name.strip().lower()
        if key in SELF_ALIASES or key == self._self_name:
            return group.self_member_id
        for member in group.members:
            if member.name.strip().lower() == key:
                return member.id
        return None

    # ------------------------------------------------------------- shared checks

    @staticmethod
    def _check_items(
        items: list[ReceiptItem],
        assignments: Mapping[int, set[UUID]],
        total: Optional[Decimal],
    ) -> list[ValidationIssue]:
        issues = []

        if not items:
            issues.append(ValidationIssue(
                field="items",
                issue_type="missing",
                message="No items were found to split",
                severity="error",
                suggested_fix="Add the items manually or split the expense another way",
            ))
            return issues

        unassigned = [i for i in range(len(items)) if not assignments.get(i)]
        if unassigned:
            count = len(unassigned)
            noun = "item still needs" if count == 1 else "items still need"
            issues.append(ValidationIssue(
                field="assignments",
                issue_type="unassigned",
                message=f"{count} {noun} to be assigned.",
                severity="error",
                suggested_fix=", ".join(items[i].name for i in unassigned),
            ))

        item_total = sum((item.price for item in items), ZERO)
        if total is not None and item_total - total > TOLERANCE:
            issues.append(ValidationIssue(
                field="items",
                issue_type="inconsistent",
                message=(
                    f"Items add up to ${format_money(item_total)}, "
                    f"more than the total of ${format_money(total)}"
                ),
                severity="error",
                suggested_fix="Check item prices and the total",
            ))

        return issues

    @staticmethod
    def _check_total(total: Optional[Decimal]) -> list[ValidationIssue]:
        if total is None:
            return [ValidationIssue(
                field="total_amount",
                issue_type="missing",
                message="Total amount is required but was not found",
                severity="error",
                suggested_fix="Enter the total manually",
            )]
        if total <= ZERO:
            return [ValidationIssue(
                field="total_amount",
                issue_type="invalid_value",
                message="Total must be greater than zero.",
                severity="error",
            )]
        return []

    def _result(
        self,
        draft_id: UUID,
        issues: list[ValidationIssue],
        payer_id: Optional[UUID],
        description: Optional[str],
        total: Optional[Decimal],
        split: ItemizedSplit,
    ) -> DraftValidationResult:
        is_valid = not any(issue.severity == "error" for issue in issues)
        return DraftValidationResult(
            draft_id=draft_id,
            is_valid=is_valid,
            payer_id=payer_id,
            description=description,
            total_amount=total,
            split=split if is_valid else None,
            issues=issues,
        )

    # ------------------------------------------------------------------ drafts

    def validate_parsed_expense(
        self,
        parsed: ParsedExpense,
        group: Group,
    ) -> DraftValidationResult:
        """
        Resolve a transcript-derived expense into a payer and an itemized split.

        A missing payer means the speaker paid.
        """
        issues: list[ValidationIssue] = []

        if parsed.payer_name:
            payer_id = self.resolve_name(group, parsed.payer_name)
            if payer_id is None:
                issues.append(ValidationIssue(
                    field="payer_name",
                    issue_type="unknown_member",
                    message=f"'{parsed.payer_name}' is not a member of {group.name}",
                    severity="error",
                    suggested_fix="Pick the payer from the member list",
                ))
        else:
            payer_id = group.self_member_id
            issues.append(ValidationIssue(
                field="payer_name",
                issue_type="assumed",
                message="No payer was mentioned, assuming you paid",
                severity="info",
            ))

        items = [ReceiptItem(name=item.name, price=item.price) for item in parsed.items]
        assignments: dict[int, set[UUID]] = {}
        unknown_names: list[str] = []
        for index, item in enumerate(parsed.items):
            claimants = set()
            for name in item.claimants:
                member_id = self.resolve_name(group, name)
                if member_id is None:
                    unknown_names.append(name)
                else:
                    claimants.add(member_id)
            if claimants:
                assignments[index] = claimants

        if unknown_names:
            issues.append(ValidationIssue(
                field="claimants",
                issue_type="unknown_member",
                message="Unknown names: " + ", ".join(sorted(set(unknown_names))),
                severity="error",
                suggested_fix="Add them to the group or assign their items to someone else",
            ))

        total = parsed.total_amount
        issues.extend(self._check_total(total))
        issues.extend(self._check_items(items, assignments, total))

        return self._result(
            draft_id=parsed.draft_id,
            issues=issues,
            payer_id=payer_id,
            description=parsed.description,
            total=total,
            split=ItemizedSplit(items=items, assignments=assignments),
        )

    def validate_receipt(
        self,
        draft: ReceiptDraft,
        group: Group,
        payer_id: UUID,
        assignments: Mapping[int, set[UUID]],
    ) -> DraftValidationResult:
        """
        Check a scanned receipt after the user has claimed its items.

        Args:
            draft: The scanner output (possibly edited by the user)
            group: Group the expense will belong to
            payer_id: Member who paid
            assignments: Item index -> claiming member ids
        """
        issues: list[ValidationIssue] = []
        known = group.member_by_id()

        if payer_id not in known:
            issues.append(ValidationIssue(
                field="payer_id",
                issue_type="unknown_member",
                message="The payer is not a member of this group",
                severity="error",
            ))

        strangers = {
            member_id
            for member_ids in assignments.values()
            for member_id in member_ids
            if member_id not in known
        }
        if strangers:
            issues.append(ValidationIssue(
                field="assignments",
                issue_type="unknown_member",
                message="Items can only be claimed by members of the group.",
                severity="error",
            ))

        if draft.confidence_score < self._min_confidence:
            issues.append(ValidationIssue(
                field="confidence_score",
                issue_type="low_confidence",
                message=f"Scan confidence is low ({draft.confidence_score:.0%})",
                severity="warning",
                suggested_fix="Please review all amounts carefully",
            ))

        if not draft.description:
            issues.append(ValidationIssue(
                field="description",
                issue_type="missing",
                message="No merchant or description was found",
                severity="warning",
                suggested_fix="Enter a description",
            ))

        if draft.subtotal is not None and draft.total is not None:
            expected = draft.subtotal + (draft.tax or ZERO) + (draft.tip or ZERO)
            if abs(expected - draft.total) > TOLERANCE:
                issues.append(ValidationIssue(
                    field="total",
                    issue_type="inconsistent",
                    message=(
                        f"Total (${format_money(draft.total)}) doesn't match "
                        f"subtotal + tax + tip (${format_money(expected)})"
                    ),
                    severity="warning",
                    suggested_fix="Please verify the amounts",
                ))

        issues.extend(self._check_total(draft.total))
        issues.extend(self._check_items(draft.items, assignments, draft.total))

        return self._result(
            draft_id=draft.draft_id,
            issues=issues,
            payer_id=payer_id,
            description=draft.description,
            total=draft.total,
            split=ItemizedSplit(
                items=list(draft.items),
                assignments={index: set(ids) for index, ids in assignments.items()},
            ),
        )

    def get_user_friendly_summary(
        self,
        result: DraftValidationResult,
    ) -> str:
        """
        Generate a user-friendly summary of validation results.

        This is what we show next to the draft before it is saved.
        """
        if result.is_valid and not result.warnings:
            return "✅ All checks passed! Please review the details below."

        lines = []

        if result.has_errors:
            lines.append("❌ Some things need fixing before this can be saved:")
            for issue in result.issues:
                if issue.severity == "error":
                    lines.append(f"   • {issue.message}")
                    if issue.suggested_fix:
                        lines.append(f"     💡 {issue.suggested_fix}")

        if result.warnings:
            lines.append("")
            lines.append("⚠️ Please verify the following:")
            for warning in result.warnings:
                lines.append(f"   • {warning}")

        lines.append("")
        if result.is_valid:
            lines.append("You can still save, but please review carefully.")
        else:
            lines.append("Please fix the issues above before continuing.")

        return "\n".join(lines).strip("\n")
