"""
Tier classification for loyalty accounts.

A tier is derived purely from the current balance. Customers and
representatives use separate ascending threshold tables; representatives
have an extra Platinum tier.
"""
from bisect import bisect_right
from enum import Enum
from typing import Dict, List, Tuple

from ..models import AccountRole


class TierName(str, Enum):
    NEW = 'New'
    BRONZE = 'Bronze'
    SILVER = 'Silver'
    GOLD = 'Gold'
    PLATINUM = 'Platinum'


# (minimum balance, tier), ascending by minimum balance
TIER_THRESHOLDS: Dict[AccountRole, List[Tuple[int, TierName]]] = {
    AccountRole.CUSTOMER: [
        (0, TierName.NEW),
        (10, TierName.BRONZE),
        (50, TierName.SILVER),
        (100, TierName.GOLD),
    ],
    AccountRole.REPRESENTATIVE: [
        (0, TierName.NEW),
        (10, TierName.BRONZE),
        (50, TierName.SILVER),
        (100, TierName.GOLD),
        (200, TierName.PLATINUM),
    ],
}


def classify_tier(balance: int, role) -> TierName:
    """
    Map a balance to its tier for the given role.

    Balances below the first threshold (including negatives, which a valid
    ledger never holds) classify as New.
    """
    table = TIER_THRESHOLDS[AccountRole.parse(role)]
    minimums = [minimum for minimum, _ in table]
    index = bisect_right(minimums, balance) - 1
    return table[max(index, 0)][1]


def next_tier(balance: int, role) -> Dict[str, object]:
    """
    Next tier above the current one and the points still needed.

    Returns None values when the account is already in the top tier.
    """
    table = TIER_THRESHOLDS[AccountRole.parse(role)]
    for minimum, tier in table:
        if balance < minimum:
            return {'tier': tier.value, 'points_needed': minimum - balance}
    return {'tier': None, 'points_needed': None}


def tier_table(role) -> List[Dict[str, object]]:
    """Threshold table for a role, shaped for API responses."""
    table = TIER_THRESHOLDS[AccountRole.parse(role)]
    rows = []
    for i, (minimum, tier) in enumerate(table):
        upper = table[i + 1][0] if i + 1 < len(table) else None
        rows.append({'tier': tier.value, 'min_balance': minimum, 'max_balance_exclusive': upper})
    return rows
