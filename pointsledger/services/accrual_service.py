"""
Accrual trigger for completed orders.

Turns an order-completed event into earned ledger entries for the customer
and, when one is assigned, the representative. Events are delivered at least
once, so re-processing an order must be harmless: duplicates are detected by
the ledger's unique (account, order) key and reported as already processed.

The current rule is a flat number of points per completed order, read from
the settings store. The order value is carried on the event but does not
affect the amount.
"""
import logging
from datetime import datetime
from decimal import Decimal, InvalidOperation
from typing import Any, Dict, Optional

from ..models import AccountRole, TransactionKind
from ..utils.exceptions import DuplicateAccrualError, PointsLedgerError, ValidationError
from ..utils.settings_defaults import (
    CUSTOMER_POINTS_PER_ORDER,
    REPRESENTATIVE_POINTS_PER_ORDER,
    default_value,
)
from .ledger_service import LedgerService
from .settings_service import SettingsService

logger = logging.getLogger(__name__)

# Per-account outcomes
POSTED = 'posted'
DUPLICATE = 'duplicate'
FAILED = 'failed'
SKIPPED = 'skipped'

POINTS_SETTING_BY_ROLE = {
    AccountRole.CUSTOMER: CUSTOMER_POINTS_PER_ORDER,
    AccountRole.REPRESENTATIVE: REPRESENTATIVE_POINTS_PER_ORDER,
}


class OrderCompletedEvent:
    """
    Order-completed notification from the delivery workflow.

    Built from the webhook payload with from_payload(), which validates the
    required fields.
    """

    def __init__(
        self,
        order_id: str,
        customer_account_id: str,
        representative_account_id: Optional[str] = None,
        order_value: Optional[Decimal] = None,
        completed_at: Optional[datetime] = None,
        customer_name: Optional[str] = None,
        representative_name: Optional[str] = None,
    ):
        self.order_id = order_id
        self.customer_account_id = customer_account_id
        self.representative_account_id = representative_account_id
        self.order_value = order_value
        self.completed_at = completed_at
        self.customer_name = customer_name
        self.representative_name = representative_name

    def __repr__(self):
        return f'<OrderCompletedEvent order={self.order_id} customer={self.customer_account_id}>'

    @classmethod
    def from_payload(cls, data: Dict[str, Any]) -> 'OrderCompletedEvent':
        """
        Parse and validate a JSON payload.

        Raises:
            ValidationError: Missing order_id/customer_account_id or bad values
        """
        if not isinstance(data, dict):
            raise ValidationError("Event payload must be a JSON object")

        order_id = _clean_id(data.get('order_id'))
        if not order_id:
            raise ValidationError("order_id is required", field='order_id')

        customer_account_id = _clean_id(data.get('customer_account_id'))
        if not customer_account_id:
            raise ValidationError("customer_account_id is required", field='customer_account_id')

        order_value = None
        if data.get('order_value') is not None:
            try:
                order_value = Decimal(str(data['order_value']))
            except (InvalidOperation, ValueError):
                raise ValidationError("order_value must be a number", field='order_value')

        completed_at = None
        if data.get('completed_at'):
            try:
                completed_at = datetime.fromisoformat(str(data['completed_at']).replace('Z', '+00:00'))
            except ValueError:
                raise ValidationError("completed_at must be an ISO-8601 timestamp", field='completed_at')

        return cls(
            order_id=order_id,
            customer_account_id=customer_account_id,
            representative_account_id=_clean_id(data.get('representative_account_id')),
            order_value=order_value,
            completed_at=completed_at,
            customer_name=data.get('customer_name'),
            representative_name=data.get('representative_name'),
        )


def _clean_id(value) -> Optional[str]:
    if value is None:
        return None
    value = str(value).strip()
    return value or None


class AccrualService:
    """
    Posts order-completion points.

    The settings store and ledger are injected so the point rule can be
    swapped or stubbed without touching storage.

    Usage:
        accrual = AccrualService(SettingsService(), LedgerService())
        result = accrual.process_order_completed(event)
    """

    def __init__(self, settings: SettingsService = None, ledger: LedgerService = None):
        self.settings = settings or SettingsService()
        self.ledger = ledger or LedgerService()

    def points_for_order(self, role, order_value: Optional[Decimal] = None) -> int:
        """
        Points credited to an account of `role` for one completed order.

        Falls back to the built-in default when the setting is missing.
        order_value is accepted for future value-based rules and ignored.
        """
        role = AccountRole.parse(role)
        key = POINTS_SETTING_BY_ROLE[role]
        return self.settings.get_int(key, default=int(default_value(key)))

    def process_order_completed(self, event: OrderCompletedEvent) -> Dict[str, Any]:
        """
        Credit the customer and the representative (if any) for an order.

        Each account is posted independently: a failure for one is logged
        and reported without blocking or rolling back the other.

        Returns:
            Dict with order_id and per-role outcome details
        """
        results = {
            'order_id': event.order_id,
            'customer': self._accrue(
                AccountRole.CUSTOMER,
                event.customer_account_id,
                event,
                event.customer_name,
            ),
        }

        if event.representative_account_id:
            results['representative'] = self._accrue(
                AccountRole.REPRESENTATIVE,
                event.representative_account_id,
                event,
                event.representative_name,
            )
        else:
            results['representative'] = {'status': SKIPPED, 'reason': 'No representative assigned'}

        results['success'] = all(
            r['status'] != FAILED for r in (results['customer'], results['representative'])
        )
        return results

    def _accrue(
        self,
        role: AccountRole,
        account_id: str,
        event: OrderCompletedEvent,
        display_name: Optional[str],
    ) -> Dict[str, Any]:
        """
        Post one account's accrual and describe what happened.

        A failed outcome carries `retryable`: False when the event data itself
        was rejected (redelivering it cannot succeed), True for storage errors
        and a broken points rule, which may clear on a later delivery.
        """
        outcome = {'account_id': account_id}
        try:
            points = self.points_for_order(role, event.order_value)
        except PointsLedgerError as e:
            logger.error(f"Points rule for {role.value} unusable: {e.message}")
            outcome.update({'status': FAILED, 'error': e.message, 'code': e.code, 'retryable': True})
            return outcome

        if points <= 0:
            outcome.update({'status': SKIPPED, 'reason': f'{POINTS_SETTING_BY_ROLE[role]} is {points}'})
            return outcome

        try:
            transaction_id = self.ledger.append(
                account_id=account_id,
                role=role,
                kind=TransactionKind.EARNED,
                points=points,
                source_order_id=event.order_id,
                description=f'Order {event.order_id} completed',
                display_name=display_name,
            )
            outcome.update({'status': POSTED, 'points': points, 'transaction_id': transaction_id})

        except DuplicateAccrualError:
            logger.info(
                f"Order {event.order_id} already credited to {role.value}:{account_id}"
            )
            outcome['status'] = DUPLICATE

        except PointsLedgerError as e:
            logger.error(
                f"Accrual failed for {role.value}:{account_id} order {event.order_id}: {e.message}"
            )
            outcome.update({
                'status': FAILED,
                'error': e.message,
                'code': e.code,
                'retryable': not isinstance(e, ValidationError),
            })

        except Exception as e:
            logger.exception(
                f"Unexpected accrual error for {role.value}:{account_id} order {event.order_id}"
            )
            outcome.update({'status': FAILED, 'error': str(e), 'code': 'INTERNAL_ERROR', 'retryable': True})

        return outcome
