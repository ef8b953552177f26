"""
Representative evaluation API endpoints.

Monthly scorecards entered by managers, the per-month list and leaderboard,
and a score preview for the entry form. Months are passed as YYYY-MM.
"""
from flask import Blueprint, request, jsonify

from ..services import EvaluationService, calculate_evaluation_points
from ..services.evaluation_service import normalize_period_month
from ..utils.errors import bad_request, ErrorCode

evaluations_bp = Blueprint('evaluations', __name__)

METRIC_FIELDS = ('visits_count', 'deal_closing_rate', 'punctuality_score', 'customer_satisfaction')


@evaluations_bp.route('', methods=['POST'])
def record_evaluation():
    """
    Record a representative's evaluation for a month.

    JSON body:
        representative_id: Representative id (required)
        period_month: Month as YYYY-MM or YYYY-MM-DD (required)
        visits_count, deal_closing_rate, punctuality_score,
        customer_satisfaction: Metrics (required)
        comments: Optional free text
        total_points: Optional score overriding the computed one
        created_by: Optional name of the evaluating manager

    Returns 201 for a new month and 200 when it replaced an earlier one.
    """
    data = request.get_json(silent=True)
    if not isinstance(data, dict):
        return bad_request('JSON object body is required')

    representative_id = data.get('representative_id') or data.get('employee_id')
    if not representative_id:
        return bad_request('representative_id is required', ErrorCode.MISSING_FIELD)
    if not data.get('period_month'):
        return bad_request('period_month is required', ErrorCode.MISSING_FIELD)
    missing = [name for name in METRIC_FIELDS if data.get(name) is None]
    if missing:
        return bad_request(f"Missing metrics: {', '.join(missing)}", ErrorCode.MISSING_FIELD)

    evaluation, created = EvaluationService().record_evaluation(
        representative_id=representative_id,
        period_month=data['period_month'],
        visits_count=data['visits_count'],
        deal_closing_rate=data['deal_closing_rate'],
        punctuality_score=data['punctuality_score'],
        customer_satisfaction=data['customer_satisfaction'],
        comments=data.get('comments'),
        total_points=data.get('total_points'),
        created_by=data.get('created_by'),
    )
    return jsonify(evaluation.to_dict()), 201 if created else 200


@evaluations_bp.route('', methods=['GET'])
def list_evaluations():
    """
    Evaluations for one month, highest score first.

    Query params:
        period: Month as YYYY-MM (required)
    """
    period = request.args.get('period')
    if not period:
        return bad_request('period is required', ErrorCode.MISSING_FIELD)

    evaluations = EvaluationService().evaluations_for_period(period)
    return jsonify({
        'period_month': normalize_period_month(period).isoformat(),
        'evaluations': [e.to_dict() for e in evaluations],
    })


@evaluations_bp.route('/leaderboard', methods=['GET'])
def get_monthly_leaderboard():
    """
    Representatives ranked by evaluation points for a month.

    Query params:
        period: Month as YYYY-MM (required)
        limit: Optional number of entries
    """
    period = request.args.get('period')
    if not period:
        return bad_request('period is required', ErrorCode.MISSING_FIELD)
    limit = request.args.get('limit', type=int)

    entries = EvaluationService().monthly_leaderboard(period, limit=limit)
    return jsonify({
        'period_month': normalize_period_month(period).isoformat(),
        'entries': entries,
    })


@evaluations_bp.route('/score', methods=['GET'])
def preview_score():
    """
    Score the given metrics without storing anything.

    Query params:
        visits_count, deal_closing_rate, punctuality_score,
        customer_satisfaction (all required)
    """
    missing = [name for name in METRIC_FIELDS if not request.args.get(name)]
    if missing:
        return bad_request(f"Missing metrics: {', '.join(missing)}", ErrorCode.MISSING_FIELD)

    points = calculate_evaluation_points(**{name: request.args[name] for name in METRIC_FIELDS})
    return jsonify({'total_points': points})
