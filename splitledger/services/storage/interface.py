"""
Abstract Storage Interface

The ledger talks to its backing store only through these interfaces, so
Google Sheets can be swapped for a real database, and tests can run
against the in-memory implementation.

The store is the single source of truth. Callers re-fetch a group after
every mutation and never patch derived state. Implementations must
honor cascade deletes:
- deleting a group deletes its members, expenses and shares
- deleting an expense deletes its shares
"""

from abc import ABC, abstractmethod
from typing import Optional
from uuid import UUID

from splitledger.models.audit import AuditEvent
from splitledger.models.ledger import (
    Expense,
    Group,
    GroupOverview,
    Member,
)


class LedgerStorageInterface(ABC):
    """
    Abstract interface for group ledger storage.

    Any storage implementation (Google Sheets, PostgreSQL, in-memory...)
    must implement these methods.
    """

    # ----------------------------------------------------------------- groups

    @abstractmethod
    async def create_group(self, group: Group) -> Group:
        """
        Persist a new group together with any members it carries.

        Raises:
            DuplicateError: If a group with this ID already exists
        """
        pass

    @abstractmethod
    async def get_group(self, group_id: UUID) -> Optional[Group]:
        """
        Load a group with its members and expenses (each with shares).

        Members are ordered oldest first, expenses newest first.

        Returns:
            The group if found, None otherwise
        """
        pass

    @abstractmethod
    async def list_groups(self) -> list[GroupOverview]:
        """List all groups, newest first, with their member counts."""
        pass

    @abstractmethod
    async def delete_group(self, group_id: UUID) -> bool:
        """Delete a group and everything it owns. False if not found."""
        pass

    # ---------------------------------------------------------------- members

    @abstractmethod
    async def add_member(self, member: Member) -> Member:
        """
        Add a member to an existing group.

        Raises:
            NotFoundError: If the group doesn't exist
        """
        pass

    @abstractmethod
    async def remove_member(self, member_id: UUID) -> bool:
        """
        Remove a member.

        Raises:
            ConstraintViolationError: If any expense or share still
                references the member
        """
        pass

    # --------------------------------------------------------------- expenses

    @abstractmethod
    async def add_expense(self, expense: Expense) -> Expense:
        """
        Save an expense and its shares as one operation.

        Raises:
            NotFoundError: If the group doesn't exist
            StorageError: If the save fails (nothing is left half-written)
        """
        pass

    @abstractmethod
    async def delete_expense(self, expense_id: UUID) -> bool:
        """Delete an expense and its shares. False if not found."""
        pass

    # ---------------------------------------------------------------- settling

    @abstractmethod
    async def settle_shares(self, share_ids: list[UUID]) -> int:
        """
        Mark the given shares as settled.

        Returns:
            Number of shares that changed from unsettled to settled
        """
        pass

    @abstractmethod
    async def settle_all_in_group(self, group_id: UUID) -> int:
        """Mark every unsettled share of the group as settled. Returns the count."""
        pass

    @abstractmethod
    async def delete_settled_expenses(self, group_id: UUID) -> list[UUID]:
        """Delete every expense of the group whose shares are all settled. Returns their IDs."""
        pass


class AuditStorageInterface(ABC):
    """
    Abstract interface for audit log storage.

    Audit logs are append-only - we never delete or modify them.
    """

    @abstractmethod
    async def append_event(self, event: AuditEvent) -> bool:
        """Append an audit event. True if logged successfully."""
        pass

    @abstractmethod
    async def get_events_by_group(
        self,
        group_id: UUID,
    ) -> list[AuditEvent]:
        """All events for a group, in chronological order."""
        pass

    @abstractmethod
    async def get_recent_events(
        self,
        limit: int = 100,
    ) -> list[AuditEvent]:
        """The most recent audit events, newest first."""
        pass


class StorageError(Exception):
    """Base exception for storage operations."""
    pass


class NotFoundError(StorageError):
    """Entity not found in storage."""
    pass


class DuplicateError(StorageError):
    """Attempted to insert a duplicate entity."""
    pass


class ConstraintViolationError(StorageError):
    """The operation would break referential integrity."""
    pass


class ConnectionError(StorageError):
    """Could not connect to storage backend."""
    pass
