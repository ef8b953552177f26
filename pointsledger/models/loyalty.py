"""
Loyalty points models.

One account table and one ledger table serve both customers and
representatives; rows are tagged by role.

- LoyaltyTransaction is the append-only ledger and the source of truth.
- LoyaltyAccount is the cached projection of that ledger (balance and
  lifetime totals) used by summaries, tiers and leaderboards.
"""
from datetime import datetime, timezone
from enum import Enum
from typing import Dict, Any

from sqlalchemy import text

from ..extensions import db


def utc_now() -> datetime:
    """Naive UTC timestamp, matching the DateTime columns."""
    return datetime.now(timezone.utc).replace(tzinfo=None)


# ==================== Enums ====================

class AccountRole(str, Enum):
    """Who owns a loyalty account."""
    CUSTOMER = 'customer'
    REPRESENTATIVE = 'representative'

    @classmethod
    def parse(cls, value) -> 'AccountRole':
        """Accept an AccountRole or its string value; raise ValueError otherwise."""
        if isinstance(value, cls):
            return value
        try:
            return cls(str(value).strip().lower())
        except ValueError:
            raise ValueError(f"Unknown account role: {value!r}") from None


class TransactionKind(str, Enum):
    """Kinds of ledger entries."""
    EARNED = 'earned'                      # Order accrual (positive)
    REDEEMED = 'redeemed'                  # Reward redemption (negative)
    ADMIN_ADJUSTMENT = 'admin_adjustment'  # Manual credit or debit (+/-)


# Kinds each role may post. Representatives never redeem.
PERMITTED_KINDS = {
    AccountRole.CUSTOMER: frozenset(TransactionKind),
    AccountRole.REPRESENTATIVE: frozenset({
        TransactionKind.EARNED,
        TransactionKind.ADMIN_ADJUSTMENT,
    }),
}


# ==================== Models ====================

class LoyaltyAccount(db.Model):
    """
    Cached points balance for one (role, account_id).

    Created lazily by the first transaction for an identity. Balance fields
    are only ever changed through guarded relative UPDATE statements issued
    by LedgerService, never by assigning attributes on a loaded row.
    """
    __tablename__ = 'loyalty_accounts'

    id = db.Column(db.Integer, primary_key=True)
    role = db.Column(db.String(20), nullable=False)
    account_id = db.Column(db.String(64), nullable=False)  # Owned by the customer/representative registry
    display_name = db.Column(db.String(255))  # Snapshot supplied by callers

    balance = db.Column(db.Integer, nullable=False, default=0)
    total_earned = db.Column(db.Integer, nullable=False, default=0)
    total_redeemed = db.Column(db.Integer, nullable=False, default=0)
    last_activity_at = db.Column(db.DateTime)

    created_at = db.Column(db.DateTime, default=utc_now)
    updated_at = db.Column(db.DateTime, default=utc_now)

    __table_args__ = (
        db.UniqueConstraint('role', 'account_id', name='uq_loyalty_account_role_id'),
        db.CheckConstraint('balance >= 0', name='ck_loyalty_account_balance_non_negative'),
        db.Index('ix_loyalty_accounts_role_balance', 'role', 'balance'),
    )

    def __repr__(self):
        return f'<LoyaltyAccount {self.role}:{self.account_id} pts={self.balance}>'

    def to_dict(self) -> Dict[str, Any]:
        return {
            'account_id': self.account_id,
            'role': self.role,
            'display_name': self.display_name,
            'balance': self.balance,
            'total_earned': self.total_earned,
            'total_redeemed': self.total_redeemed,
            'last_activity_at': self.last_activity_at.isoformat() if self.last_activity_at else None,
        }


class LoyaltyTransaction(db.Model):
    """
    Points ledger entry. Immutable once written.

    Corrections are new admin_adjustment rows, never edits. The partial
    unique index on (role, account_id, source_order_id) over earned rows
    makes order accrual idempotent; other kinds are outside the index.
    """
    __tablename__ = 'loyalty_transactions'

    id = db.Column(db.Integer, primary_key=True)
    role = db.Column(db.String(20), nullable=False)
    account_id = db.Column(db.String(64), nullable=False)

    kind = db.Column(db.String(30), nullable=False)  # TransactionKind
    points = db.Column(db.Integer, nullable=False)  # + for earn/credit, - for redeem/debit

    source_order_id = db.Column(db.String(100))
    description = db.Column(db.String(500))

    created_at = db.Column(db.DateTime, default=utc_now, nullable=False)

    __table_args__ = (
        db.CheckConstraint('points <> 0', name='ck_loyalty_transaction_points_nonzero'),
        # One accrual per order and account; other kinds never carry an order id
        db.Index(
            'uq_loyalty_transaction_order_accrual',
            'role', 'account_id', 'source_order_id',
            unique=True,
            postgresql_where=text("kind = 'earned'"),
            sqlite_where=text("kind = 'earned'"),
        ),
        db.Index('ix_loyalty_transactions_account_created', 'role', 'account_id', 'created_at'),
    )

    def __repr__(self):
        return f'<LoyaltyTransaction {self.id}: {self.points:+d} pts for {self.role}:{self.account_id}>'

    def to_dict(self) -> Dict[str, Any]:
        return {
            'transaction_id': self.id,
            'account_id': self.account_id,
            'role': self.role,
            'kind': self.kind,
            'points': self.points,
            'source_order_id': self.source_order_id,
            'description': self.description,
            'created_at': self.created_at.isoformat() if self.created_at else None,
        }
