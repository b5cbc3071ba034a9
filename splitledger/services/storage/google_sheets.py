"""
Google Sheets Storage Implementation

Google Sheets is the hosted backend: a group can look at its raw ledger
in a spreadsheet, and there is no database to run.

One worksheet per entity (Groups, Members, Expenses, ExpenseShares) plus
an append-only AuditLog. Relations are plain ID columns; cascade deletes
are done here, children first, so an interrupted delete never leaves a
child pointing at a missing parent.

TRADEOFFS:
- No transactions: an expense row is written only after its share rows,
  a group row before its member rows, and a failed write removes the
  partial rows again
- Retries wrap single sheet writes, never a whole multi-step operation
- Whole-sheet reads with filtering in Python (fine for group-sized data)
"""

import json
from datetime import datetime
from decimal import Decimal
from typing import Optional
from uuid import UUID

import gspread
from google.oauth2.service_account import Credentials
from tenacity import retry, stop_after_attempt, wait_exponential

from splitledger.config import get_settings
from splitledger.models.audit import AuditEvent, AuditEventType, AuditSeverity
from splitledger.models.ledger import (
    Expense,
    ExpenseShare,
    Group,
    GroupOverview,
    Member,
    ReceiptItem,
)
from splitledger.services.storage.interface import (
    AuditStorageInterface,
    ConnectionError,
    ConstraintViolationError,
    DuplicateError,
    LedgerStorageInterface,
    NotFoundError,
    StorageError,
)


GROUP_COLUMNS = ["id", "name", "created_at", "self_member_id"]

MEMBER_COLUMNS = ["id", "group_id", "name", "created_at"]

EXPENSE_COLUMNS = [
    "id",
    "group_id",
    "payer_id",
    "description",
    "total_amount",
    "line_items_json",
    "receipt_image_url",
    "created_at",
]

SHARE_COLUMNS = ["id", "expense_id", "member_id", "amount_owed", "is_settled"]

AUDIT_COLUMNS = [
    "event_id",
    "timestamp",
    "event_type",
    "severity",
    "entity_type",
    "entity_id",
    "group_id",
    "correlation_id",
    "description",
    "details_json",
    "error_message",
    "is_user_action",
]


def _safe_get(row: list, index: int, default: str = "") -> str:
    """Read a cell, tolerating short rows."""
    try:
        return row[index] if row[index] else default
    except IndexError:
        return default


@retry(
    stop=stop_after_attempt(3),
    wait=wait_exponential(multiplier=1, min=2, max=10),
    reraise=True,
)
def _append_rows(sheet: gspread.Worksheet, rows: list[list]) -> None:
    """
    Append rows in a single API call.

    Only single writes are retried: retrying a multi-step write would
    repeat the steps that already succeeded.
    """
    if len(rows) == 1:
        sheet.append_row(rows[0], value_input_option="RAW")
    elif rows:
        sheet.append_rows(rows, value_input_option="RAW")


class GoogleSheetsClient:
    """
    Low-level Google Sheets client wrapper.

    Handles authentication, worksheet creation and retry logic.
    """

    def __init__(self):
        self._client: Optional[gspread.Client] = None
        self._spreadsheet: Optional[gspread.Spreadsheet] = None
        self._settings = get_settings().google_sheets

    @retry(
        stop=stop_after_attempt(3),
        wait=wait_exponential(multiplier=1, min=2, max=10),
        reraise=True,
    )
    def connect(self) -> gspread.Client:
        """Establish connection using service account credentials."""
        if self._client is None:
            try:
                scopes = [
                    "https://www.googleapis.com/auth/spreadsheets",
                    "https://www.googleapis.com/auth/drive",
                ]
                credentials = Credentials.from_service_account_file(
                    self._settings.credentials_path,
                    scopes=scopes,
                )
                self._client = gspread.authorize(credentials)
            except FileNotFoundError:
                raise ConnectionError(
                    f"Google credentials file not found: {self._settings.credentials_path}"
                )
            except Exception as e:
                raise ConnectionError(f"Failed to connect to Google Sheets: {e}")

        return self._client

    def get_spreadsheet(self) -> gspread.Spreadsheet:
        """Get the configured spreadsheet."""
        if self._spreadsheet is None:
            client = self.connect()
            try:
                self._spreadsheet = client.open_by_key(self._settings.spreadsheet_id)
            except gspread.SpreadsheetNotFound:
                raise ConnectionError(
                    f"Spreadsheet not found: {self._settings.spreadsheet_id}"
                )
        return self._spreadsheet

    def _get_or_create(self, title: str, columns: list[str], rows: int) -> gspread.Worksheet:
        spreadsheet = self.get_spreadsheet()
        try:
            sheet = spreadsheet.worksheet(title)
        except gspread.WorksheetNotFound:
            sheet = spreadsheet.add_worksheet(title=title, rows=rows, cols=len(columns))
            sheet.append_row(columns)
        return sheet

    def get_groups_sheet(self) -> gspread.Worksheet:
        return self._get_or_create(self._settings.groups_sheet_name, GROUP_COLUMNS, 500)

    def get_members_sheet(self) -> gspread.Worksheet:
        return self._get_or_create(self._settings.members_sheet_name, MEMBER_COLUMNS, 2000)

    def get_expenses_sheet(self) -> gspread.Worksheet:
        return self._get_or_create(self._settings.expenses_sheet_name, EXPENSE_COLUMNS, 5000)

    def get_shares_sheet(self) -> gspread.Worksheet:
        return self._get_or_create(self._settings.shares_sheet_name, SHARE_COLUMNS, 20000)

    def get_audit_sheet(self) -> gspread.Worksheet:
        return self._get_or_create(self._settings.audit_sheet_name, AUDIT_COLUMNS, 5000)


class GoogleSheetsLedgerStorage(LedgerStorageInterface):
    """
    Google Sheets implementation of ledger storage.

    Receipt line items are JSON-serialized into the expense row.
    """

    def __init__(self, client: Optional[GoogleSheetsClient] = None):
        self._client = client or GoogleSheetsClient()

    # ------------------------------------------------------------ row mapping

    @staticmethod
    def _group_to_row(group: Group) -> list:
        return [
            str(group.id),
            group.name,
            group.created_at.isoformat(),
            str(group.self_member_id) if group.self_member_id else "",
        ]

    @staticmethod
    def _row_to_group(row: list) -> Group:
        return Group(
            id=UUID(_safe_get(row, 0)),
            name=_safe_get(row, 1),
            created_at=datetime.fromisoformat(_safe_get(row, 2)),
            self_member_id=UUID(_safe_get(row, 3)) if _safe_get(row, 3) else None,
        )

    @staticmethod
    def _member_to_row(member: Member) -> list:
        return [
            str(member.id),
            str(member.group_id),
            member.name,
            member.created_at.isoformat(),
        ]

    @staticmethod
    def _row_to_member(row: list) -> Member:
        return Member(
            id=UUID(_safe_get(row, 0)),
            group_id=UUID(_safe_get(row, 1)),
            name=_safe_get(row, 2),
            created_at=datetime.fromisoformat(_safe_get(row, 3)),
        )

    @staticmethod
    def _expense_to_row(expense: Expense) -> list:
        return [
            str(expense.id),
            str(expense.group_id),
            str(expense.payer_id),
            expense.description,
            str(expense.total_amount),
            json.dumps([
                {"name": item.name, "price": str(item.price)}
                for item in expense.line_items
            ]),
            expense.receipt_image_url or "",
            expense.created_at.isoformat(),
        ]

    @staticmethod
    def _row_to_expense(row: list, shares: list[ExpenseShare]) -> Expense:
        items_json = _safe_get(row, 5)
        line_items = [
            ReceiptItem(name=item["name"], price=Decimal(item["price"]))
            for item in (json.loads(items_json) if items_json else [])
        ]
        return Expense(
            id=UUID(_safe_get(row, 0)),
            group_id=UUID(_safe_get(row, 1)),
            payer_id=UUID(_safe_get(row, 2)),
            description=_safe_get(row, 3),
            total_amount=Decimal(_safe_get(row, 4)),
            line_items=line_items,
            receipt_image_url=_safe_get(row, 6) or None,
            created_at=datetime.fromisoformat(_safe_get(row, 7)),
            shares=shares,
        )

    @staticmethod
    def _share_to_row(share: ExpenseShare) -> list:
        return [
            str(share.id),
            str(share.expense_id),
            str(share.member_id),
            str(share.amount_owed),
            str(share.is_settled),
        ]

    @staticmethod
    def _row_to_share(row: list) -> ExpenseShare:
        return ExpenseShare(
            id=UUID(_safe_get(row, 0)),
            expense_id=UUID(_safe_get(row, 1)),
            member_id=UUID(_safe_get(row, 2)),
            amount_owed=Decimal(_safe_get(row, 3)),
            is_settled=_safe_get(row, 4).lower() == "true",
        )

    # ---------------------------------------------------------------- helpers

    @staticmethod
    def _data_rows(sheet: gspread.Worksheet) -> list[tuple[int, list]]:
        """(sheet_row_number, row) for every non-empty data row. Row 1 is the header."""
        return [
            (idx, row)
            for idx, row in enumerate(sheet.get_all_values()[1:], start=2)
            if row and row[0]
        ]

    @staticmethod
    def _delete_rows(sheet: gspread.Worksheet, row_numbers: list[int]) -> None:
        # Bottom-up so earlier deletions don't shift later row numbers
        for row_number in sorted(row_numbers, reverse=True):
            sheet.delete_rows(row_number)

    def _find_group_row(self, group_id: UUID) -> Optional[list]:
        for _, row in self._data_rows(self._client.get_groups_sheet()):
            if row[0] == str(group_id):
                return row
        return None

    def _expense_ids_for_group(self, group_id: UUID) -> set[str]:
        return {
            row[0]
            for _, row in self._data_rows(self._client.get_expenses_sheet())
            if _safe_get(row, 1) == str(group_id)
        }

    def _set_settled(self, match) -> list[str]:
        """Flip is_settled on every unsettled share row `match(row)` accepts."""
        sheet = self._client.get_shares_sheet()
        settled_col = SHARE_COLUMNS.index("is_settled") + 1
        changed = []
        for idx, row in self._data_rows(sheet):
            if _safe_get(row, 4).lower() == "true":
                continue
            if match(row):
                sheet.update_cell(idx, settled_col, "True")
                changed.append(row[0])
        return changed

    def _append_new_members(self, members: list[Member]) -> None:
        """Append member rows, skipping ids that are already on the sheet."""
        sheet = self._client.get_members_sheet()
        existing = {row[0] for _, row in self._data_rows(sheet)}
        _append_rows(sheet, [
            self._member_to_row(m) for m in members if str(m.id) not in existing
        ])

    def _delete_group_rows(self, group_id: UUID) -> None:
        """Delete a group with its expenses, shares and members, children first."""
        self._delete_expense_rows(self._expense_ids_for_group(group_id))

        members_sheet = self._client.get_members_sheet()
        self._delete_rows(members_sheet, [
            idx for idx, row in self._data_rows(members_sheet)
            if _safe_get(row, 1) == str(group_id)
        ])

        groups_sheet = self._client.get_groups_sheet()
        self._delete_rows(groups_sheet, [
            idx for idx, row in self._data_rows(groups_sheet)
            if row[0] == str(group_id)
        ])

    def _delete_expense_rows(self, expense_ids: set[str]) -> None:
        shares_sheet = self._client.get_shares_sheet()
        self._delete_rows(shares_sheet, [
            idx for idx, row in self._data_rows(shares_sheet)
            if _safe_get(row, 1) in expense_ids
        ])
        expenses_sheet = self._client.get_expenses_sheet()
        self._delete_rows(expenses_sheet, [
            idx for idx, row in self._data_rows(expenses_sheet)
            if row[0] in expense_ids
        ])

    # ----------------------------------------------------------------- groups

    async def create_group(self, group: Group) -> Group:
        if self._find_group_row(group.id) is not None:
            raise DuplicateError(f"Group already exists: {group.id}")

        try:
            # Group row first, so member rows never point at a missing group
            _append_rows(self._client.get_groups_sheet(), [self._group_to_row(group)])
            self._append_new_members(group.members)
        except Exception as e:
            # Roll back whatever part of the group was written
            try:
                self._delete_group_rows(group.id)
            except Exception:
                pass
            raise StorageError(f"Failed to create group: {e}")

        return await self.get_group(group.id)

    async def get_group(self, group_id: UUID) -> Optional[Group]:
        try:
            group_row = self._find_group_row(group_id)
            if group_row is None:
                return None
            group = self._row_to_group(group_row)

            members = [
                self._row_to_member(row)
                for _, row in self._data_rows(self._client.get_members_sheet())
                if _safe_get(row, 1) == str(group_id)
            ]
            members.sort(key=lambda m: m.created_at)

            expense_rows = [
                row for _, row in self._data_rows(self._client.get_expenses_sheet())
                if _safe_get(row, 1) == str(group_id)
            ]
            expense_ids = {row[0] for row in expense_rows}

            shares_by_expense: dict[str, list[ExpenseShare]] = {}
            for _, row in self._data_rows(self._client.get_shares_sheet()):
                if _safe_get(row, 1) in expense_ids:
                    shares_by_expense.setdefault(row[1], []).append(self._row_to_share(row))

            expenses = [
                self._row_to_expense(row, shares_by_expense.get(row[0], []))
                for row in expense_rows
            ]
            expenses.sort(key=lambda e: e.created_at, reverse=True)

            return group.model_copy(update={"members": members, "expenses": expenses})
        except Exception as e:
            raise StorageError(f"Failed to load group: {e}")

    async def list_groups(self) -> list[GroupOverview]:
        try:
            member_counts: dict[str, int] = {}
            for _, row in self._data_rows(self._client.get_members_sheet()):
                group_key = _safe_get(row, 1)
                member_counts[group_key] = member_counts.get(group_key, 0) + 1

            overviews = []
            for _, row in self._data_rows(self._client.get_groups_sheet()):
                try:
                    group = self._row_to_group(row)
                except Exception:
                    continue  # Skip malformed rows
                overviews.append(GroupOverview(
                    id=group.id,
                    name=group.name,
                    created_at=group.created_at,
                    member_count=member_counts.get(row[0], 0),
                ))

            overviews.sort(key=lambda g: g.created_at, reverse=True)
            return overviews
        except Exception as e:
            raise StorageError(f"Failed to list groups: {e}")

    async def delete_group(self, group_id: UUID) -> bool:
        try:
            if self._find_group_row(group_id) is None:
                return False
            self._delete_group_rows(group_id)
            return True
        except Exception as e:
            raise StorageError(f"Failed to delete group: {e}")

    # ---------------------------------------------------------------- members

    async def add_member(self, member: Member) -> Member:
        if self._find_group_row(member.group_id) is None:
            raise NotFoundError(f"Group not found: {member.group_id}")
        try:
            self._append_new_members([member])
            return member
        except Exception as e:
            raise StorageError(f"Failed to add member: {e}")

    async def remove_member(self, member_id: UUID) -> bool:
        try:
            key = str(member_id)
            paying = any(
                _safe_get(row, 2) == key
                for _, row in self._data_rows(self._client.get_expenses_sheet())
            )
            sharing = any(
                _safe_get(row, 2) == key
                for _, row in self._data_rows(self._client.get_shares_sheet())
            )
            if paying or sharing:
                raise ConstraintViolationError(
                    "Cannot remove a member who has expenses. Delete their expenses first."
                )

            sheet = self._client.get_members_sheet()
            rows = [idx for idx, row in self._data_rows(sheet) if row[0] == key]
            self._delete_rows(sheet, rows)
            return bool(rows)
        except ConstraintViolationError:
            raise
        except Exception as e:
            raise StorageError(f"Failed to remove member: {e}")

    # --------------------------------------------------------------- expenses

    async def add_expense(self, expense: Expense) -> Expense:
        if self._find_group_row(expense.group_id) is None:
            raise NotFoundError(f"Group not found: {expense.group_id}")

        try:
            _append_rows(
                self._client.get_shares_sheet(),
                [self._share_to_row(s) for s in expense.shares],
            )
            _append_rows(self._client.get_expenses_sheet(), [self._expense_to_row(expense)])
            return expense
        except Exception as e:
            # Roll back share rows so no orphans are left behind
            try:
                self._delete_expense_rows({str(expense.id)})
            except Exception:
                pass
            raise StorageError(f"Failed to save expense: {e}")

    async def delete_expense(self, expense_id: UUID) -> bool:
        try:
            key = str(expense_id)
            exists = any(
                row[0] == key
                for _, row in self._data_rows(self._client.get_expenses_sheet())
            )
            if not exists:
                return False
            self._delete_expense_rows({key})
            return True
        except Exception as e:
            raise StorageError(f"Failed to delete expense: {e}")

    # ---------------------------------------------------------------- settling

    async def settle_shares(self, share_ids: list[UUID]) -> int:
        wanted = {str(share_id) for share_id in share_ids}
        try:
            return len(self._set_settled(lambda row: row[0] in wanted))
        except Exception as e:
            raise StorageError(f"Failed to settle shares: {e}")

    async def settle_all_in_group(self, group_id: UUID) -> int:
        try:
            expense_ids = self._expense_ids_for_group(group_id)
            if not expense_ids:
                return 0
            return len(self._set_settled(lambda row: _safe_get(row, 1) in expense_ids))
        except Exception as e:
            raise StorageError(f"Failed to settle group: {e}")

    async def delete_settled_expenses(self, group_id: UUID) -> list[UUID]:
        try:
            payers = {
                row[0]: _safe_get(row, 2)
                for _, row in self._data_rows(self._client.get_expenses_sheet())
                if _safe_get(row, 1) == str(group_id)
            }
            expense_ids = set(payers)
            # The payer's own share never needs settling
            open_expenses = {
                _safe_get(row, 1)
                for _, row in self._data_rows(self._client.get_shares_sheet())
                if _safe_get(row, 1) in expense_ids
                and _safe_get(row, 4).lower() != "true"
                and _safe_get(row, 2) != payers[_safe_get(row, 1)]
            }
            doomed = expense_ids - open_expenses
            if doomed:
                self._delete_expense_rows(doomed)
            return [UUID(expense_id) for expense_id in sorted(doomed)]
        except Exception as e:
            raise StorageError(f"Failed to delete settled expenses: {e}")


class GoogleSheetsAuditStorage(AuditStorageInterface):
    """
    Google Sheets implementation of audit log storage.

    Audit events are append-only.
    """

    def __init__(self, client: Optional[GoogleSheetsClient] = None):
        self._client = client or GoogleSheetsClient()

    def _row_to_event(self, row: list) -> AuditEvent:
        """Convert a spreadsheet row to an AuditEvent."""
        return AuditEvent(
            event_id=UUID(_safe_get(row, 0)),
            timestamp=datetime.fromisoformat(_safe_get(row, 1)),
            event_type=AuditEventType(_safe_get(row, 2)),
            severity=AuditSeverity(_safe_get(row, 3)),
            entity_type=_safe_get(row, 4) or None,
            entity_id=UUID(_safe_get(row, 5)) if _safe_get(row, 5) else None,
            group_id=UUID(_safe_get(row, 6)) if _safe_get(row, 6) else None,
            correlation_id=UUID(_safe_get(row, 7)) if _safe_get(row, 7) else None,
            description=_safe_get(row, 8),
            details=json.loads(_safe_get(row, 9)) if _safe_get(row, 9) else {},
            error_message=_safe_get(row, 10) or None,
            is_user_action=_safe_get(row, 11).lower() == "true",
        )

    def _all_events(self) -> list[AuditEvent]:
        events = []
        for row in self._client.get_audit_sheet().get_all_values()[1:]:
            if row and row[0]:
                try:
                    events.append(self._row_to_event(row))
                except Exception:
                    continue
        return events

    @retry(
        stop=stop_after_attempt(3),
        wait=wait_exponential(multiplier=1, min=2, max=10),
        reraise=True,
    )
    async def append_event(self, event: AuditEvent) -> bool:
        """Append an audit event."""
        try:
            sheet = self._client.get_audit_sheet()
            sheet.append_row(event.to_sheets_row(), value_input_option="RAW")
            return True
        except Exception as e:
            raise StorageError(f"Failed to write audit event: {e}")

    async def get_events_by_group(self, group_id: UUID) -> list[AuditEvent]:
        try:
            events = [e for e in self._all_events() if e.group_id == group_id]
            events.sort(key=lambda e: e.timestamp)
            return events
        except Exception as e:
            raise StorageError(f"Failed to get audit events: {e}")

    async def get_recent_events(self, limit: int = 100) -> list[AuditEvent]:
        try:
            events = self._all_events()
            events.sort(key=lambda e: e.timestamp, reverse=True)
            return events[:limit]
        except Exception as e:
            raise StorageError(f"Failed to get audit events: {e}")
