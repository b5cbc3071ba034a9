"""Expense draft validation package."""

from splitledger.validation.validator import ExpenseDraftValidator

__all__ = ["ExpenseDraftValidator"]
