"""
Balance and Settlement Engine

Pure, synchronous functions over an immutable snapshot of a group:

- compute_balances: group -> net balance per member
- minimize_transactions: balances -> greedy list of payments
- allocate_shares / compute_shares / compute_itemized_shares:
  expense total + split -> owed amount per participant

No I/O and no shared state. Callers re-run the whole pipeline on a
freshly loaded group after every change.
"""

from splitledger.engine.balances import (
    compute_balances,
    has_outstanding_balance,
    has_unsettled_shares,
)
from splitledger.engine.money import CENT, TOLERANCE, parse_amount, round_money
from splitledger.engine.settlement import minimize_transactions
from splitledger.engine.splitting import (
    SplitError,
    SplitValidationError,
    UnassignedItemsError,
    UnknownSplitModeError,
    allocate_shares,
    build_split,
    compute_itemized_shares,
    compute_shares,
)

__all__ = [
    "CENT",
    "TOLERANCE",
    "SplitError",
    "SplitValidationError",
    "UnassignedItemsError",
    "UnknownSplitModeError",
    "allocate_shares",
    "build_split",
    "compute_balances",
    "compute_itemized_shares",
    "compute_shares",
    "has_outstanding_balance",
    "has_unsettled_shares",
    "minimize_transactions",
    "parse_amount",
    "round_money",
]
