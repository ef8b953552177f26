"""
Monthly representative evaluation model.

A manager scores each representative once per calendar month on visits,
closing rate, punctuality and customer satisfaction. The weighted score is
stored in total_points and ranks the monthly leaderboard. Evaluations are a
separate record from the points ledger; they never change a balance.
"""
from typing import Any, Dict

from .loyalty import utc_now
from ..extensions import db


class RepresentativeEvaluation(db.Model):
    """One representative's scorecard for one month (period_month is the 1st)."""
    __tablename__ = 'representative_evaluations'

    id = db.Column(db.Integer, primary_key=True)
    representative_id = db.Column(db.String(64), nullable=False)
    period_month = db.Column(db.Date, nullable=False)

    visits_count = db.Column(db.Integer, nullable=False, default=0)
    deal_closing_rate = db.Column(db.Numeric(5, 2), nullable=False, default=0)  # percent, 0-100
    punctuality_score = db.Column(db.Numeric(3, 2), nullable=False, default=0)  # 0-5
    customer_satisfaction = db.Column(db.Numeric(3, 2), nullable=False, default=0)  # 0-5
    comments = db.Column(db.Text)

    total_points = db.Column(db.Integer, nullable=False)
    created_by = db.Column(db.String(100))

    created_at = db.Column(db.DateTime, default=utc_now)
    updated_at = db.Column(db.DateTime, default=utc_now, onupdate=utc_now)

    __table_args__ = (
        db.UniqueConstraint('representative_id', 'period_month', name='uq_representative_evaluation_month'),
        db.Index('ix_representative_evaluations_period_points', 'period_month', 'total_points'),
    )

    def __repr__(self):
        return f'<RepresentativeEvaluation {self.representative_id} {self.period_month} pts={self.total_points}>'

    def to_dict(self) -> Dict[str, Any]:
        return {
            'evaluation_id': self.id,
            'representative_id': self.representative_id,
            'period_month': self.period_month.isoformat(),
            'visits_count': self.visits_count,
            'deal_closing_rate': float(self.deal_closing_rate),
            'punctuality_score': float(self.punctuality_score),
            'customer_satisfaction': float(self.customer_satisfaction),
            'comments': self.comments,
            'total_points': self.total_points,
            'created_by': self.created_by,
            'created_at': self.created_at.isoformat() if self.created_at else None,
            'updated_at': self.updated_at.isoformat() if self.updated_at else None,
        }
