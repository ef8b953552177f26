"""
Loyalty points API endpoints.

Handles:
- Account summaries, history and per-role listings
- Manual point adjustments (admin)
- Customer redemptions
- Leaderboards and program stats
- Points-per-order rule preview

Domain errors raised by the services are rendered by the app-level
PointsLedgerError handler, so views only deal with request parsing.
"""
from datetime import datetime, timezone
from decimal import Decimal, InvalidOperation

from flask import Blueprint, request, jsonify, current_app

from ..models import AccountRole
from ..services import (
    AccountService,
    AccrualService,
    LeaderboardService,
    RedemptionService,
)
from ..services.ledger_service import normalize_role
from ..services.tier_service import tier_table
from ..utils.errors import bad_request, ErrorCode

loyalty_bp = Blueprint('loyalty', __name__)


def _parse_timestamp(name: str):
    """Parse an ISO-8601 query arg into naive UTC, or None when absent."""
    raw = request.args.get(name)
    if not raw:
        return None
    parsed = datetime.fromisoformat(raw.replace('Z', '+00:00'))
    if parsed.tzinfo is not None:
        parsed = parsed.astimezone(timezone.utc).replace(tzinfo=None)
    return parsed


# ==============================================================================
# ACCOUNTS
# ==============================================================================

@loyalty_bp.route('/accounts/<role>/<account_id>', methods=['GET'])
def get_account_summary(role, account_id):
    """
    Get an account's balance, lifetime totals and tier.

    An account that has never transacted answers with a zero summary and
    `exists: false` rather than 404.
    """
    return jsonify(AccountService().get_account_summary_or_empty(account_id, role))


@loyalty_bp.route('/accounts/<role>/<account_id>/transactions', methods=['GET'])
def get_account_transactions(role, account_id):
    """
    Get an account's transaction history, newest first.

    Query params:
        limit: Max transactions (default 50, max 200)
        offset: Rows to skip (default 0)
    """
    limit = min(request.args.get('limit', 50, type=int), 200)
    offset = request.args.get('offset', 0, type=int)
    if limit < 1 or offset < 0:
        return bad_request('limit must be positive and offset non-negative', ErrorCode.INVALID_FIELD)

    transactions = AccountService().get_history(account_id, role, limit=limit, offset=offset)
    return jsonify({
        'account_id': account_id,
        'role': role,
        'transactions': transactions,
        'count': len(transactions),
    })


@loyalty_bp.route('/accounts/<role>', methods=['GET'])
def list_accounts(role):
    """All accounts of a role, highest balance first."""
    summaries = AccountService().list_summaries(role)
    return jsonify({'role': role, 'accounts': summaries, 'total': len(summaries)})


@loyalty_bp.route('/accounts/<role>/<account_id>/adjust', methods=['POST'])
def adjust_points(role, account_id):
    """
    Manually adjust an account's points.

    JSON body:
        points: Points to add (positive) or remove (negative) (required)
        description: Reason for the adjustment (required)
        display_name: Optional name to show on leaderboards
    """
    data = request.get_json(silent=True) or {}

    if data.get('points') is None:
        return bad_request('points is required', ErrorCode.MISSING_FIELD)

    result = AccountService().admin_adjust(
        account_id=account_id,
        role=role,
        points=data.get('points'),
        description=data.get('description') or data.get('reason'),
        display_name=data.get('display_name'),
    )
    return jsonify(result), 201


@loyalty_bp.route('/accounts/customer/<account_id>/redeem', methods=['POST'])
def redeem_points(account_id):
    """
    Redeem points from a customer account.

    JSON body:
        points: Points to redeem, > 0 (required)
        description: Reward description

    Returns 422 with code INSUFFICIENT_POINTS when the balance is too low.
    """
    data = request.get_json(silent=True) or {}

    if data.get('points') is None:
        return bad_request('points is required', ErrorCode.MISSING_FIELD)

    result = RedemptionService().redeem(
        customer_account_id=account_id,
        points_to_redeem=data.get('points'),
        description=data.get('description'),
    )
    return jsonify(result), 201


# ==============================================================================
# LEADERBOARD & STATS
# ==============================================================================

@loyalty_bp.route('/leaderboard/<role>', methods=['GET'])
def get_leaderboard(role):
    """
    Ranked accounts for a role.

    Query params:
        limit: Entries to return (default LEADERBOARD_DEFAULT_LIMIT)
        since: Optional ISO-8601 window start (inclusive)
        until: Optional ISO-8601 window end (exclusive)

    With a window the ranking uses points posted inside it instead of the
    current balance.
    """
    limit = request.args.get('limit', current_app.config.get('LEADERBOARD_DEFAULT_LIMIT', 10), type=int)
    try:
        since = _parse_timestamp('since')
        until = _parse_timestamp('until')
    except ValueError:
        return bad_request('since/until must be ISO-8601 timestamps', ErrorCode.INVALID_FIELD)

    entries = LeaderboardService().leaderboard(role, limit=limit, since=since, until=until)
    return jsonify({
        'role': role,
        'limit': limit,
        'since': since.isoformat() if since else None,
        'until': until.isoformat() if until else None,
        'entries': entries,
    })


@loyalty_bp.route('/stats', methods=['GET'])
def get_program_stats():
    """Account counts and active points per role."""
    return jsonify(AccountService().program_stats())


@loyalty_bp.route('/tiers/<role>', methods=['GET'])
def get_tiers(role):
    """Tier threshold table for a role."""
    return jsonify({'role': normalize_role(role).value, 'tiers': tier_table(role)})


@loyalty_bp.route('/rules/points', methods=['GET'])
def preview_points_per_order():
    """
    Points a completed order would credit to each role.

    Query params:
        order_value: Optional order amount (accepted, does not change the result)
    """
    order_value = None
    if request.args.get('order_value'):
        try:
            order_value = Decimal(request.args['order_value'])
        except InvalidOperation:
            return bad_request('order_value must be a number', ErrorCode.INVALID_FIELD)

    accrual = AccrualService()
    return jsonify({
        'order_value': float(order_value) if order_value is not None else None,
        'customer_points': accrual.points_for_order(AccountRole.CUSTOMER, order_value),
        'representative_points': accrual.points_for_order(AccountRole.REPRESENTATIVE, order_value),
    })
