"""
SplitLedger - Source Package

Shared-expense tracking for small groups: who paid what, who owes
whom, and a short list of payments that settles everyone up.

DESIGN PRINCIPLES:
1. Balances are derived, never stored
2. Every split adds up to the expense, to the cent
3. Scanners and parsers propose -> the user confirms -> the ledger saves
4. Every change must be auditable
5. Storage layer is swappable
"""

__version__ = "1.0.0"
__author__ = "SplitLedger Team"
