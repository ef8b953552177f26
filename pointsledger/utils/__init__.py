"""
Utility modules for the points ledger.
"""
from .logging_config import setup_logging
from .errors import (
    ErrorCode,
    error_response,
    exception_response,
    bad_request,
    unauthorized,
    not_found,
    internal_error
)
from .exceptions import (
    PointsLedgerError,
    NotFoundError,
    AccountNotFoundError,
    SettingNotFoundError,
    ValidationError,
    InsufficientPointsError,
    DuplicateError,
    DuplicateAccrualError,
    LedgerConflictError
)
