"""
Order lifecycle webhook handlers.

The delivery workflow calls /webhook/orders/completed exactly when a
delivery task transitions into "completed". Delivery is at-least-once, so
the same order may arrive several times; the accrual trigger makes repeats
no-ops.
"""
from flask import Blueprint, request, jsonify, current_app

from . import require_webhook_signature
from ..services import AccrualService, OrderCompletedEvent
from ..services.accrual_service import FAILED

order_events_bp = Blueprint('order_events', __name__)


@order_events_bp.route('/orders/completed', methods=['POST'])
@require_webhook_signature
def handle_order_completed():
    """
    Credit loyalty points for a completed order.

    JSON body:
        order_id: Order / delivery task id (required)
        customer_account_id: Customer id (required)
        representative_account_id: Assigned representative id (optional)
        order_value: Order amount (optional, not used by the current rule)
        completed_at: ISO-8601 completion time (optional)
        customer_name / representative_name: Optional display names

    Returns:
        Per-account outcome: posted, duplicate, skipped or failed. Responds
        200 when nothing failed. When an account failed the response is
        non-2xx so the sender redelivers or alerts: 400 when every failure
        was a rejected input that a retry cannot fix, otherwise 503.
    """
    event = OrderCompletedEvent.from_payload(request.get_json(silent=True))

    result = AccrualService().process_order_completed(event)

    current_app.logger.info(
        f"Order {event.order_id} completed: customer={result['customer']['status']} "
        f"representative={result['representative']['status']}"
    )

    return jsonify(result), _status_for(result)


def _status_for(result) -> int:
    failures = [
        outcome for outcome in (result['customer'], result['representative'])
        if outcome['status'] == FAILED
    ]
    if not failures:
        return 200
    if any(outcome.get('retryable', True) for outcome in failures):
        return 503
    return 400
