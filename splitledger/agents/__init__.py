"""AI Agents package."""

from splitledger.agents.expense_parser import (
    ExpenseParseError,
    GeminiExpenseParser,
    extract_expense_json,
    payload_to_expense,
)

__all__ = [
    "ExpenseParseError",
    "GeminiExpenseParser",
    "extract_expense_json",
    "payload_to_expense",
]
