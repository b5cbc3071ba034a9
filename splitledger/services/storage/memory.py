"""
In-Memory Storage Implementation

Keeps the whole ledger in process memory. Used by the test suite and
handy for local experiments; data is lost when the process exits.

Every read returns a deep copy, so a loaded group is a snapshot that
later writes cannot change underneath the caller.
"""

from typing import Optional
from uuid import UUID

from splitledger.models.audit import AuditEvent
from splitledger.models.ledger import (
    Expense,
    Group,
    GroupOverview,
    Member,
)
from splitledger.services.storage.interface import (
    AuditStorageInterface,
    ConstraintViolationError,
    DuplicateError,
    LedgerStorageInterface,
    NotFoundError,
)


class InMemoryLedgerStorage(LedgerStorageInterface):
    """Dictionary-backed ledger storage."""

    def __init__(self):
        self._groups: dict[UUID, Group] = {}
        self._members: dict[UUID, Member] = {}
        self._expenses: dict[UUID, Expense] = {}

    def _require_group(self, group_id: UUID) -> None:
        if group_id not in self._groups:
            raise NotFoundError(f"Group not found: {group_id}")

    async def create_group(self, group: Group) -> Group:
        if group.id in self._groups:
            raise DuplicateError(f"Group already exists: {group.id}")

        self._groups[group.id] = group.model_copy(
            update={"members": [], "expenses": []},
            deep=True,
        )
        for member in group.members:
            self._members[member.id] = member.model_copy(deep=True)
        for expense in group.expenses:
            self._expenses[expense.id] = expense.model_copy(deep=True)

        return await self.get_group(group.id)

    async def get_group(self, group_id: UUID) -> Optional[Group]:
        header = self._groups.get(group_id)
        if header is None:
            return None

        members = sorted(
            (m for m in self._members.values() if m.group_id == group_id),
            key=lambda m: m.created_at,
        )
        expenses = sorted(
            (e for e in self._expenses.values() if e.group_id == group_id),
            key=lambda e: e.created_at,
            reverse=True,
        )
        return header.model_copy(
            update={
                "members": [m.model_copy(deep=True) for m in members],
                "expenses": [e.model_copy(deep=True) for e in expenses],
            },
            deep=True,
        )

    async def list_groups(self) -> list[GroupOverview]:
        overviews = [
            GroupOverview(
                id=group.id,
                name=group.name,
                created_at=group.created_at,
                member_count=sum(1 for m in self._members.values() if m.group_id == group.id),
            )
            for group in self._groups.values()
        ]
        overviews.sort(key=lambda g: g.created_at, reverse=True)
        return overviews

    async def delete_group(self, group_id: UUID) -> bool:
        if self._groups.pop(group_id, None) is None:
            return False

        self._members = {k: m for k, m in self._members.items() if m.group_id != group_id}
        self._expenses = {k: e for k, e in self._expenses.items() if e.group_id != group_id}
        return True

    async def add_member(self, member: Member) -> Member:
        self._require_group(member.group_id)
        if member.id in self._members:
            raise DuplicateError(f"Member already exists: {member.id}")

        self._members[member.id] = member.model_copy(deep=True)
        return member.model_copy(deep=True)

    async def remove_member(self, member_id: UUID) -> bool:
        if member_id not in self._members:
            return False

        for expense in self._expenses.values():
            referenced = expense.payer_id == member_id or any(
                share.member_id == member_id for share in expense.shares
            )
            if referenced:
                raise ConstraintViolationError(
                    "Cannot remove a member who has expenses. Delete their expenses first."
                )

        del self._members[member_id]
        return True

    async def add_expense(self, expense: Expense) -> Expense:
        self._require_group(expense.group_id)
        if expense.id in self._expenses:
            raise DuplicateError(f"Expense already exists: {expense.id}")

        self._expenses[expense.id] = expense.model_copy(deep=True)
        return expense.model_copy(deep=True)

    async def delete_expense(self, expense_id: UUID) -> bool:
        return self._expenses.pop(expense_id, None) is not None

    async def settle_shares(self, share_ids: list[UUID]) -> int:
        wanted = set(share_ids)
        changed = 0
        for expense in self._expenses.values():
            for share in expense.shares:
                if share.id in wanted and not share.is_settled:
                    share.is_settled = True
                    changed += 1
        return changed

    async def settle_all_in_group(self, group_id: UUID) -> int:
        changed = 0
        for expense in self._expenses.values():
            if expense.group_id != group_id:
                continue
            for share in expense.shares:
                if not share.is_settled:
                    share.is_settled = True
                    changed += 1
        return changed

    async def delete_settled_expenses(self, group_id: UUID) -> list[UUID]:
        doomed = [
            expense.id
            for expense in self._expenses.values()
            if expense.group_id == group_id and expense.is_fully_settled
        ]
        for expense_id in doomed:
            del self._expenses[expense_id]
        return doomed


class InMemoryAuditStorage(AuditStorageInterface):
    """Append-only list of audit events."""

    def __init__(self):
        self._events: list[AuditEvent] = []

    async def append_event(self, event: AuditEvent) -> bool:
        self._events.append(event.model_copy(deep=True))
        return True

    async def get_events_by_group(self, group_id: UUID) -> list[AuditEvent]:
        events = [e for e in self._events if e.group_id == group_id]
        events.sort(key=lambda e: e.timestamp)
        return events

    async def get_recent_events(self, limit: int = 100) -> list[AuditEvent]:
        events = sorted(self._events, key=lambda e: e.timestamp, reverse=True)
        return events[:limit]
