"""
Loyalty settings model.
"""
from .loyalty import utc_now
from ..extensions import db


class LoyaltySetting(db.Model):
    """Named configuration value. Values are strings; readers interpret them."""
    __tablename__ = 'loyalty_settings'

    id = db.Column(db.Integer, primary_key=True)
    key = db.Column(db.String(100), nullable=False, unique=True)
    value = db.Column(db.String(500), nullable=False)
    description = db.Column(db.String(500))

    created_at = db.Column(db.DateTime, default=utc_now)
    updated_at = db.Column(db.DateTime, default=utc_now, onupdate=utc_now)

    def __repr__(self):
        return f'<LoyaltySetting {self.key}={self.value}>'

    def to_dict(self):
        return {
            'key': self.key,
            'value': self.value,
            'description': self.description,
            'updated_at': self.updated_at.isoformat() if self.updated_at else None
        }
