"""
Business logic services for the loyalty points ledger.
"""
from .settings_service import SettingsService
from .ledger_service import LedgerService
from .accrual_service import AccrualService, OrderCompletedEvent
from .redemption_service import RedemptionService
from .account_service import AccountService
from .leaderboard_service import LeaderboardService
from .evaluation_service import EvaluationService, calculate_evaluation_points
from .tier_service import TierName, classify_tier

__all__ = [
    'SettingsService',
    'LedgerService',
    'AccrualService',
    'OrderCompletedEvent',
    'RedemptionService',
    'AccountService',
    'LeaderboardService',
    'EvaluationService',
    'calculate_evaluation_points',
    'TierName',
    'classify_tier',
]
