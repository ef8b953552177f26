"""
Redemption engine: debits points from customer accounts.
"""
from typing import Any, Dict

from flask import current_app

from ..models import AccountRole, TransactionKind
from ..utils.exceptions import ValidationError
from .ledger_service import LedgerService, normalize_points


class RedemptionService:
    """
    Redeem customer points for rewards.

    The balance check and the debit are one guarded UPDATE inside the
    ledger append, so two concurrent redemptions can never both pass against
    the same stale balance. A rejected redemption leaves no trace.
    """

    def __init__(self, ledger: LedgerService = None):
        self.ledger = ledger or LedgerService()

    def redeem(self, customer_account_id: str, points_to_redeem: int, description: str = None) -> Dict[str, Any]:
        """
        Redeem points from a customer account.

        Args:
            customer_account_id: Customer whose balance is debited
            points_to_redeem: Positive number of points
            description: Reason shown in the history

        Returns:
            Dict with transaction id and the account's new balance

        Raises:
            ValidationError: points_to_redeem is not a positive integer
            InsufficientPointsError: Balance is lower than points_to_redeem
        """
        points = normalize_points(points_to_redeem)
        if points < 0:
            raise ValidationError("points to redeem must be positive", field='points')

        transaction_id = self.ledger.append(
            account_id=customer_account_id,
            role=AccountRole.CUSTOMER,
            kind=TransactionKind.REDEEMED,
            points=-points,
            description=description or f'Redeemed {points} points',
        )
        account = self.ledger.get_account(customer_account_id, AccountRole.CUSTOMER)

        current_app.logger.info(
            f"Points redeemed: customer {account.account_id} -{points} pts. "
            f"New balance: {account.balance}"
        )

        return {
            'success': True,
            'transaction_id': transaction_id,
            'account_id': account.account_id,
            'points_redeemed': points,
            'new_balance': account.balance,
            'total_redeemed': account.total_redeemed,
        }
