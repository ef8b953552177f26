"""
Leaderboard aggregation.

The all-time board ranks the cached balances (one row per account, no ledger
scan). A time-scoped board ranks net ledger points posted inside a window,
which the cache cannot answer.
"""
from datetime import datetime
from typing import Any, Dict, List, Optional

from flask import current_app
from sqlalchemy import func

from ..extensions import db
from ..models import LoyaltyAccount, LoyaltyTransaction
from ..utils.exceptions import ValidationError
from .ledger_service import normalize_role
from .tier_service import classify_tier


class LeaderboardService:
    """
    Ranked account summaries per role.

    Ordering is balance descending, ties broken by account_id ascending so
    equal balances always rank the same way.
    """

    def __init__(self, max_limit: int = None):
        if max_limit is None:
            max_limit = current_app.config.get('LEADERBOARD_MAX_LIMIT', 100)
        self.max_limit = max_limit

    def _check_limit(self, limit) -> int:
        if isinstance(limit, bool) or not isinstance(limit, int) or limit < 1:
            raise ValidationError("limit must be a positive integer", field='limit')
        return min(limit, self.max_limit)

    def leaderboard(
        self,
        role,
        limit: int = 10,
        since: Optional[datetime] = None,
        until: Optional[datetime] = None,
    ) -> List[Dict[str, Any]]:
        """
        Top accounts of a role.

        Args:
            role: AccountRole or its value
            limit: Number of entries to return (capped at max_limit)
            since: Optional inclusive window start; switches to ledger totals
            until: Optional exclusive window end

        Returns:
            List of dicts with rank_position, account_id, display_name,
            balance (or window points) and tier
        """
        role = normalize_role(role)
        limit = self._check_limit(limit)
        if since is not None and until is not None and since >= until:
            raise ValidationError("since must be earlier than until", field='since')

        if since is None and until is None:
            return self._all_time(role, limit)
        return self._windowed(role, limit, since, until)

    def _all_time(self, role, limit: int) -> List[Dict[str, Any]]:
        accounts = (
            LoyaltyAccount.query
            .filter_by(role=role.value)
            .order_by(LoyaltyAccount.balance.desc(), LoyaltyAccount.account_id.asc())
            .limit(limit)
            .all()
        )
        return [
            {
                'rank_position': position,
                'account_id': account.account_id,
                'display_name': account.display_name or account.account_id,
                'balance': account.balance,
                'total_earned': account.total_earned,
                'tier': classify_tier(account.balance, role).value,
            }
            for position, account in enumerate(accounts, start=1)
        ]

    def _windowed(self, role, limit: int, since, until) -> List[Dict[str, Any]]:
        window_points = func.sum(LoyaltyTransaction.points).label('points')
        query = (
            db.session.query(
                LoyaltyTransaction.account_id,
                window_points,
                LoyaltyAccount.display_name,
                LoyaltyAccount.balance,
            )
            .outerjoin(
                LoyaltyAccount,
                (LoyaltyAccount.role == LoyaltyTransaction.role)
                & (LoyaltyAccount.account_id == LoyaltyTransaction.account_id),
            )
            .filter(LoyaltyTransaction.role == role.value)
        )
        if since is not None:
            query = query.filter(LoyaltyTransaction.created_at >= since)
        if until is not None:
            query = query.filter(LoyaltyTransaction.created_at < until)

        rows = (
            query
            .group_by(LoyaltyTransaction.account_id, LoyaltyAccount.display_name, LoyaltyAccount.balance)
            .order_by(window_points.desc(), LoyaltyTransaction.account_id.asc())
            .limit(limit)
            .all()
        )
        return [
            {
                'rank_position': position,
                'account_id': row.account_id,
                'display_name': row.display_name or row.account_id,
                'balance': int(row.points),
                'current_balance': row.balance or 0,
                'tier': classify_tier(row.balance or 0, role).value,
            }
            for position, row in enumerate(rows, start=1)
        ]
