"""
Account summaries and admin adjustments.

This is the read side the admin screens use (summary with tier, history,
per-role listings, program stats) plus the manual adjustment entry point.
"""
from typing import Any, Dict, List

from flask import current_app
from sqlalchemy import case, func

from ..extensions import db
from ..models import AccountRole, LoyaltyAccount, TransactionKind
from ..utils.exceptions import AccountNotFoundError, ValidationError
from .ledger_service import (
    LedgerService,
    normalize_account_id,
    normalize_description,
    normalize_points,
    normalize_role,
)
from .tier_service import classify_tier, next_tier


def summarize(account: LoyaltyAccount) -> Dict[str, Any]:
    """Account summary with its tier, as returned by the API."""
    data = account.to_dict()
    data['tier'] = classify_tier(account.balance, account.role).value
    data['next_tier'] = next_tier(account.balance, account.role)
    data['exists'] = True
    return data


def empty_summary(account_id: str, role: AccountRole) -> Dict[str, Any]:
    """Zero-balance summary for an account with no history."""
    return {
        'account_id': account_id,
        'role': role.value,
        'display_name': None,
        'balance': 0,
        'total_earned': 0,
        'total_redeemed': 0,
        'last_activity_at': None,
        'tier': classify_tier(0, role).value,
        'next_tier': next_tier(0, role),
        'exists': False,
    }


class AccountService:
    """
    Admin-facing account operations.

    Usage:
        accounts = AccountService()
        summary = accounts.get_account_summary('C1', 'customer')
        accounts.admin_adjust('C1', 'customer', 25, 'Goodwill credit')
    """

    def __init__(self, ledger: LedgerService = None):
        self.ledger = ledger or LedgerService()

    def get_account_summary(self, account_id: str, role) -> Dict[str, Any]:
        """
        Balance, lifetime totals, tier and last activity for an account.

        Raises:
            AccountNotFoundError: The account has no history yet
        """
        return summarize(self.ledger.get_account(account_id, role))

    def get_account_summary_or_empty(self, account_id: str, role) -> Dict[str, Any]:
        """Like get_account_summary, but an unknown account reads as zero."""
        role = normalize_role(role)
        account_id = normalize_account_id(account_id)
        try:
            return self.get_account_summary(account_id, role)
        except AccountNotFoundError:
            return empty_summary(account_id, role)

    def admin_adjust(
        self,
        account_id: str,
        role,
        points: int,
        description: str,
        display_name: str = None,
    ) -> Dict[str, Any]:
        """
        Manually credit (positive) or debit (negative) an account.

        A debit may not take the balance below zero; rejected adjustments
        change nothing.

        Raises:
            ValidationError: Zero/non-integer points or missing description
            InsufficientPointsError: Debit larger than the balance
        """
        points = normalize_points(points)
        description = normalize_description(description)
        if not description:
            raise ValidationError("description is required for manual adjustments", field='description')

        transaction_id = self.ledger.append(
            account_id=account_id,
            role=role,
            kind=TransactionKind.ADMIN_ADJUSTMENT,
            points=points,
            description=f'Manual adjustment: {description}',
            display_name=display_name,
        )
        account = self.ledger.get_account(account_id, role)

        action = 'added' if points > 0 else 'removed'
        current_app.logger.info(
            f"Admin adjustment: {abs(points)} points {action} for {account.role}:{account.account_id}"
        )
        return {
            'success': True,
            'transaction_id': transaction_id,
            'account': summarize(account),
            'message': f'{abs(points)} points {action} for {account.account_id}',
        }

    def get_history(self, account_id: str, role, limit: int = 50, offset: int = 0) -> List[Dict[str, Any]]:
        return [t.to_dict() for t in self.ledger.history(account_id, role, limit=limit, offset=offset)]

    def list_summaries(self, role) -> List[Dict[str, Any]]:
        """Every account of a role, highest balance first."""
        role = normalize_role(role)
        accounts = (
            LoyaltyAccount.query
            .filter_by(role=role.value)
            .order_by(LoyaltyAccount.balance.desc(), LoyaltyAccount.account_id.asc())
            .all()
        )
        return [summarize(a) for a in accounts]

    def program_stats(self) -> Dict[str, Any]:
        """Totals per role for the loyalty dashboard."""
        rows = db.session.query(
            LoyaltyAccount.role,
            func.count(LoyaltyAccount.id),
            func.coalesce(func.sum(LoyaltyAccount.balance), 0),
            func.coalesce(func.max(LoyaltyAccount.balance), 0),
            func.sum(case((LoyaltyAccount.balance > 0, 1), else_=0)),
        ).group_by(LoyaltyAccount.role).all()

        stats = {
            role.value: {'accounts': 0, 'accounts_with_points': 0, 'active_points': 0, 'top_balance': 0}
            for role in AccountRole
        }
        for role, count, active_points, top_balance, with_points in rows:
            stats[role] = {
                'accounts': int(count),
                'accounts_with_points': int(with_points or 0),
                'active_points': int(active_points),
                'top_balance': int(top_balance),
            }
        stats['total_active_points'] = sum(
            stats[role.value]['active_points'] for role in AccountRole
        )
        return stats
