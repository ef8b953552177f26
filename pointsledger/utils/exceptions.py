"""
Custom exceptions for the loyalty points ledger.

Services raise these instead of generic Exception so the API layer can map
each failure to a stable error code and HTTP status.
"""


class PointsLedgerError(Exception):
    """Base exception for all ledger business logic errors."""

    status_code = 400

    def __init__(self, message: str, code: str = "POINTS_LEDGER_ERROR"):
        self.message = message
        self.code = code
        super().__init__(message)


class NotFoundError(PointsLedgerError):
    """Resource not found."""

    status_code = 404

    def __init__(self, resource: str, identifier=None):
        message = f"{resource} not found"
        if identifier:
            message = f"{resource} with ID {identifier} not found"
        super().__init__(message, f"{resource.upper()}_NOT_FOUND")


class AccountNotFoundError(NotFoundError):
    """No loyalty history exists yet for this (role, account_id)."""

    def __init__(self, account_id=None, role: str = None):
        self.account_id = account_id
        self.role = role
        super().__init__("Account", account_id)
        if role:
            self.message = f"{role.capitalize()} account {account_id} has no loyalty history"


class SettingNotFoundError(NotFoundError):
    """Setting key is absent from the settings store."""

    def __init__(self, key: str):
        self.key = key
        super().__init__("Setting", key)
        self.message = f"Setting '{key}' not found"


class ValidationError(PointsLedgerError):
    """Invalid input data."""

    def __init__(self, message: str, field: str = None):
        self.field = field
        code = f"INVALID_{field.upper()}" if field else "VALIDATION_ERROR"
        super().__init__(message, code)


class InsufficientPointsError(PointsLedgerError):
    """Debit would drive the balance below zero."""

    status_code = 422

    def __init__(self, current: int, required: int):
        self.current = current
        self.required = required
        message = f"Insufficient points. Current: {current}, Required: {required}"
        super().__init__(message, "INSUFFICIENT_POINTS")


class DuplicateError(PointsLedgerError):
    """Resource already exists."""

    status_code = 409

    def __init__(self, resource: str, identifier=None):
        message = f"{resource} already exists"
        if identifier:
            message = f"{resource} with {identifier} already exists"
        super().__init__(message, "DUPLICATE_ENTRY")


class DuplicateAccrualError(DuplicateError):
    """An earned transaction already exists for this (account, order) pair."""

    def __init__(self, account_id, source_order_id):
        self.account_id = account_id
        self.source_order_id = source_order_id
        super().__init__("Accrual", f"account {account_id} and order {source_order_id}")
        self.code = "DUPLICATE_ACCRUAL"


class LedgerConflictError(PointsLedgerError):
    """Write kept colliding with concurrent writers and gave up."""

    status_code = 409

    def __init__(self, account_id, attempts: int):
        self.account_id = account_id
        self.attempts = attempts
        message = f"Could not post to account {account_id} after {attempts} attempts"
        super().__init__(message, "LEDGER_CONFLICT")
