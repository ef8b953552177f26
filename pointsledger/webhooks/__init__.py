"""
Webhook handlers for the points ledger.
Receives business events (order completions) from the delivery workflow.
"""
import hmac
import hashlib
import base64
from functools import wraps
from flask import request, current_app

from ..utils.errors import unauthorized

SIGNATURE_HEADER = 'X-Signature-SHA256'


def verify_webhook_signature(data: bytes, signature_header: str, secret: str) -> bool:
    """
    Verify an HMAC-SHA256 webhook signature.

    The sender signs the raw request body with the shared secret and sends
    the base64 digest in the X-Signature-SHA256 header.

    Args:
        data: Raw request body bytes
        signature_header: The X-Signature-SHA256 header value
        secret: The shared webhook secret

    Returns:
        True if signature is valid, False otherwise
    """
    if not secret:
        current_app.logger.warning('No webhook secret configured for verification')
        return False

    if not signature_header:
        current_app.logger.warning('No signature header in webhook request')
        return False

    computed = base64.b64encode(
        hmac.new(secret.encode('utf-8'), data, hashlib.sha256).digest()
    ).decode('utf-8')

    # Timing-safe comparison
    return hmac.compare_digest(computed, signature_header)


def require_webhook_signature(f):
    """
    Require a valid signature when ORDER_WEBHOOK_SECRET is configured.

    With no secret configured (local development, tests) requests pass
    through unsigned.

    Usage:
        @order_events_bp.route('/orders/completed', methods=['POST'])
        @require_webhook_signature
        def handle_order_completed():
            ...
    """
    @wraps(f)
    def decorated_function(*args, **kwargs):
        secret = current_app.config.get('ORDER_WEBHOOK_SECRET')
        if not secret:
            return f(*args, **kwargs)

        signature = request.headers.get(SIGNATURE_HEADER, '')
        if not verify_webhook_signature(request.get_data(), signature, secret):
            current_app.logger.warning(f'Invalid webhook signature on {request.path}')
            return unauthorized('Invalid signature')

        return f(*args, **kwargs)

    return decorated_function


from .order_events import order_events_bp  # noqa: E402

__all__ = [
    'order_events_bp',
    'verify_webhook_signature',
    'require_webhook_signature',
]
