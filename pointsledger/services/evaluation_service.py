"""
Monthly representative evaluations.

Managers score each representative once per month. The score is a weighted
sum out of 100:

    visits (capped at 100)    30
    deal closing rate (%)     30
    punctuality (0-5)         20
    customer satisfaction     20

rounded half up to a whole number. Recording a second evaluation for the same
representative and month replaces the first. The monthly leaderboard ranks
representatives by their evaluation points for one month.
"""
import logging
from datetime import date, datetime
from decimal import Decimal, InvalidOperation, ROUND_HALF_UP
from typing import Any, Dict, List, Optional, Tuple

from flask import current_app
from sqlalchemy import func
from sqlalchemy.exc import IntegrityError

from ..extensions import db
from ..models import AccountRole, LoyaltyAccount, RepresentativeEvaluation, utc_now
from ..utils.exceptions import ValidationError
from .ledger_service import MAX_ACCOUNT_ID_LENGTH, MAX_POINTS

logger = logging.getLogger(__name__)

VISITS_CAP = 100
VISITS_WEIGHT = Decimal(30)
CLOSING_RATE_WEIGHT = Decimal(30)
PUNCTUALITY_WEIGHT = Decimal(20)
SATISFACTION_WEIGHT = Decimal(20)

MAX_CLOSING_RATE = Decimal(100)
MAX_RATING = Decimal(5)
MAX_CREATED_BY_LENGTH = 100


def _visits(value) -> int:
    if isinstance(value, bool):
        raise ValidationError("visits_count must be an integer", field='visits_count')
    if isinstance(value, str):
        try:
            value = int(value.strip())
        except ValueError:
            raise ValidationError("visits_count must be an integer", field='visits_count')
    if not isinstance(value, int):
        raise ValidationError("visits_count must be an integer", field='visits_count')
    if not 0 <= value <= MAX_POINTS:
        raise ValidationError("visits_count must be zero or more", field='visits_count')
    return value


def _metric(value, field: str, upper: Decimal) -> Decimal:
    """Decimal in [0, upper]; accepts ints, floats and numeric strings."""
    if value is None or isinstance(value, bool):
        raise ValidationError(f"{field} is required", field=field)
    try:
        number = Decimal(str(value).strip())
    except InvalidOperation:
        raise ValidationError(f"{field} must be a number", field=field)
    if not number.is_finite() or not Decimal(0) <= number <= upper:
        raise ValidationError(f"{field} must be between 0 and {upper}", field=field)
    return number


def calculate_evaluation_points(
    visits_count,
    deal_closing_rate,
    punctuality_score,
    customer_satisfaction,
) -> int:
    """
    Weighted evaluation score, 0 to 100.

    Raises:
        ValidationError: A metric is missing, not numeric or out of range
    """
    visits = _visits(visits_count)
    closing_rate = _metric(deal_closing_rate, 'deal_closing_rate', MAX_CLOSING_RATE)
    punctuality = _metric(punctuality_score, 'punctuality_score', MAX_RATING)
    satisfaction = _metric(customer_satisfaction, 'customer_satisfaction', MAX_RATING)

    score = (
        Decimal(min(visits, VISITS_CAP)) / VISITS_CAP * VISITS_WEIGHT
        + closing_rate / MAX_CLOSING_RATE * CLOSING_RATE_WEIGHT
        + punctuality / MAX_RATING * PUNCTUALITY_WEIGHT
        + satisfaction / MAX_RATING * SATISFACTION_WEIGHT
    )
    return int(score.quantize(Decimal(1), rounding=ROUND_HALF_UP))


def normalize_period_month(value) -> date:
    """
    First day of the month named by `value`.

    Accepts a date/datetime or a 'YYYY-MM' / 'YYYY-MM-DD' string.
    """
    if isinstance(value, datetime):
        return value.date().replace(day=1)
    if isinstance(value, date):
        return value.replace(day=1)
    if not isinstance(value, str) or not value.strip():
        raise ValidationError("period_month is required (YYYY-MM)", field='period_month')

    raw = value.strip()
    for fmt in ('%Y-%m', '%Y-%m-%d'):
        try:
            return datetime.strptime(raw, fmt).date().replace(day=1)
        except ValueError:
            continue
    raise ValidationError("period_month must look like YYYY-MM", field='period_month')


def _representative_id(value) -> str:
    if value is None or isinstance(value, bool):
        raise ValidationError("representative_id is required", field='representative_id')
    value = str(value).strip()
    if not value:
        raise ValidationError("representative_id is required", field='representative_id')
    if len(value) > MAX_ACCOUNT_ID_LENGTH:
        raise ValidationError(
            f"representative_id must be at most {MAX_ACCOUNT_ID_LENGTH} characters",
            field='representative_id'
        )
    return value


def _optional_text(value, field: str, max_length: Optional[int] = None) -> Optional[str]:
    if value is None:
        return None
    if not isinstance(value, str):
        raise ValidationError(f"{field} must be a string", field=field)
    value = value.strip()
    if max_length is not None:
        value = value[:max_length]
    return value or None


def _total_points_override(value) -> Optional[int]:
    if value is None:
        return None
    if isinstance(value, bool) or not isinstance(value, int) or not 0 <= value <= MAX_POINTS:
        raise ValidationError("total_points must be a non-negative integer", field='total_points')
    return value


class EvaluationService:
    """
    Record and rank monthly representative evaluations.

    Usage:
        evaluations = EvaluationService()
        evaluation, created = evaluations.record_evaluation(
            'R1', '2026-03', visits_count=40, deal_closing_rate=55,
            punctuality_score=4.5, customer_satisfaction=4.8,
        )
        board = evaluations.monthly_leaderboard('2026-03')
    """

    def __init__(self, max_limit: int = None):
        if max_limit is None:
            max_limit = current_app.config.get('LEADERBOARD_MAX_LIMIT', 100)
        self.max_limit = max_limit

    def record_evaluation(
        self,
        representative_id,
        period_month,
        visits_count,
        deal_closing_rate,
        punctuality_score,
        customer_satisfaction,
        comments: str = None,
        total_points: int = None,
        created_by: str = None,
    ) -> Tuple[RepresentativeEvaluation, bool]:
        """
        Insert or replace the evaluation for (representative, month).

        total_points overrides the computed score when given.

        Returns:
            (evaluation, created) where created is False when an existing
            evaluation for the month was replaced

        Raises:
            ValidationError: Malformed id, month, metrics or override
        """
        representative_id = _representative_id(representative_id)
        period = normalize_period_month(period_month)
        metrics = {
            'visits_count': _visits(visits_count),
            'deal_closing_rate': _metric(deal_closing_rate, 'deal_closing_rate', MAX_CLOSING_RATE),
            'punctuality_score': _metric(punctuality_score, 'punctuality_score', MAX_RATING),
            'customer_satisfaction': _metric(customer_satisfaction, 'customer_satisfaction', MAX_RATING),
        }
        computed = calculate_evaluation_points(**metrics)
        override = _total_points_override(total_points)

        values = {
            **metrics,
            'comments': _optional_text(comments, 'comments'),
            'total_points': computed if override is None else override,
            'created_by': _optional_text(created_by, 'created_by', MAX_CREATED_BY_LENGTH),
        }

        evaluation, created = self._upsert(representative_id, period, values)
        try:
            db.session.commit()
        except IntegrityError:
            # Another writer inserted this month first; replace its values.
            db.session.rollback()
            evaluation, created = self._upsert(representative_id, period, values)
            db.session.commit()

        logger.info(
            f"Evaluation {'recorded' if created else 'updated'}: {representative_id} "
            f"{period.isoformat()} = {evaluation.total_points} pts"
        )
        return evaluation, created

    def _upsert(self, representative_id: str, period: date, values: Dict[str, Any]):
        evaluation = RepresentativeEvaluation.query.filter_by(
            representative_id=representative_id, period_month=period
        ).first()
        created = evaluation is None
        if created:
            evaluation = RepresentativeEvaluation(representative_id=representative_id, period_month=period)
            db.session.add(evaluation)
        else:
            evaluation.updated_at = utc_now()
        for name, value in values.items():
            setattr(evaluation, name, value)
        return evaluation, created

    def get_evaluation(self, representative_id, period_month) -> Optional[RepresentativeEvaluation]:
        return RepresentativeEvaluation.query.filter_by(
            representative_id=_representative_id(representative_id),
            period_month=normalize_period_month(period_month),
        ).first()

    def evaluations_for_period(self, period_month) -> List[RepresentativeEvaluation]:
        """Every evaluation of a month, highest score first."""
        period = normalize_period_month(period_month)
        return (
            RepresentativeEvaluation.query
            .filter_by(period_month=period)
            .order_by(
                RepresentativeEvaluation.total_points.desc(),
                RepresentativeEvaluation.representative_id.asc(),
            )
            .all()
        )

    def monthly_leaderboard(self, period_month, limit: int = None) -> List[Dict[str, Any]]:
        """
        Representatives ranked by evaluation points for one month.

        Ties break on representative_id ascending. Display names come from
        the representative's loyalty account when one exists.

        Returns:
            List of dicts with rank_position, representative_id, display_name,
            points, avg_closing_rate, avg_punctuality, avg_csat, total_visits
        """
        period = normalize_period_month(period_month)
        if limit is not None:
            if isinstance(limit, bool) or not isinstance(limit, int) or limit < 1:
                raise ValidationError("limit must be a positive integer", field='limit')
            limit = min(limit, self.max_limit)

        points = func.sum(RepresentativeEvaluation.total_points).label('points')
        query = (
            db.session.query(
                RepresentativeEvaluation.representative_id,
                points,
                func.avg(RepresentativeEvaluation.deal_closing_rate).label('avg_closing_rate'),
                func.avg(RepresentativeEvaluation.punctuality_score).label('avg_punctuality'),
                func.avg(RepresentativeEvaluation.customer_satisfaction).label('avg_csat'),
                func.sum(RepresentativeEvaluation.visits_count).label('total_visits'),
                LoyaltyAccount.display_name,
            )
            .outerjoin(
                LoyaltyAccount,
                (LoyaltyAccount.role == AccountRole.REPRESENTATIVE.value)
                & (LoyaltyAccount.account_id == RepresentativeEvaluation.representative_id),
            )
            .filter(RepresentativeEvaluation.period_month == period)
            .group_by(RepresentativeEvaluation.representative_id, LoyaltyAccount.display_name)
            .order_by(points.desc(), RepresentativeEvaluation.representative_id.asc())
        )
        if limit is not None:
            query = query.limit(limit)

        return [
            {
                'rank_position': position,
                'period_month': period.isoformat(),
                'representative_id': row.representative_id,
                'display_name': row.display_name or row.representative_id,
                'points': int(row.points),
                'avg_closing_rate': round(float(row.avg_closing_rate), 2),
                'avg_punctuality': round(float(row.avg_punctuality), 2),
                'avg_csat': round(float(row.avg_csat), 2),
                'total_visits': int(row.total_visits),
            }
            for position, row in enumerate(query.all(), start=1)
        ]
