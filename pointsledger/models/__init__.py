"""
Database models for the loyalty points ledger.
"""
from .loyalty import (
    AccountRole,
    TransactionKind,
    PERMITTED_KINDS,
    LoyaltyAccount,
    LoyaltyTransaction,
    utc_now,
)
from .settings import LoyaltySetting
from .evaluation import RepresentativeEvaluation

__all__ = [
    'AccountRole',
    'TransactionKind',
    'PERMITTED_KINDS',
    'LoyaltyAccount',
    'LoyaltyTransaction',
    'LoyaltySetting',
    'RepresentativeEvaluation',
    'utc_now',
]
