"""
JSON error responses for the ledger API.

All failures share one body shape so admin screens and the delivery workflow
can branch on `code` without parsing messages:

    {"error": {"message": "Insufficient points. Current: 10, Required: 15",
               "code": "INSUFFICIENT_POINTS"}}

Views return these helpers directly for request-level problems (missing
field, bad query arg). Domain exceptions raised by services are turned into
the same shape by the app-level handler via exception_response().
"""
import logging
from enum import Enum
from typing import Optional, Union

from flask import jsonify

from .exceptions import PointsLedgerError

logger = logging.getLogger(__name__)


class ErrorCode(str, Enum):
    """Codes emitted in the `error.code` field."""

    # 401
    INVALID_SIGNATURE = "INVALID_SIGNATURE"

    # 400
    INVALID_REQUEST = "INVALID_REQUEST"
    MISSING_FIELD = "MISSING_FIELD"
    INVALID_FIELD = "INVALID_FIELD"
    VALIDATION_ERROR = "VALIDATION_ERROR"

    # 404
    NOT_FOUND = "NOT_FOUND"
    ACCOUNT_NOT_FOUND = "ACCOUNT_NOT_FOUND"
    SETTING_NOT_FOUND = "SETTING_NOT_FOUND"

    # 409
    DUPLICATE_ENTRY = "DUPLICATE_ENTRY"
    DUPLICATE_ACCRUAL = "DUPLICATE_ACCRUAL"
    LEDGER_CONFLICT = "LEDGER_CONFLICT"

    # 422
    INSUFFICIENT_POINTS = "INSUFFICIENT_POINTS"

    # 500
    INTERNAL_ERROR = "INTERNAL_ERROR"


def error_response(
    message: str,
    code: Union[ErrorCode, str] = ErrorCode.INTERNAL_ERROR,
    status_code: int = 500,
    log_error: bool = True,
    details: Optional[dict] = None
) -> tuple:
    """
    Build a (response, status) pair in the standard envelope.

    `details` goes to the log only; it is never sent to the client.
    """
    code_value = code.value if isinstance(code, ErrorCode) else code

    if log_error:
        level = logging.ERROR if status_code >= 500 else logging.WARNING
        logger.log(level, f"{status_code} {code_value}: {message}", extra={"details": details})

    return jsonify({"error": {"message": message, "code": code_value}}), status_code


def exception_response(exc: PointsLedgerError) -> tuple:
    """Envelope for a domain exception, using its own code and status."""
    return error_response(exc.message, exc.code, exc.status_code, log_error=exc.status_code >= 500)


def bad_request(message: str, code: ErrorCode = ErrorCode.INVALID_REQUEST) -> tuple:
    return error_response(message, code, 400, log_error=False)


def unauthorized(message: str = "Invalid signature", code: ErrorCode = ErrorCode.INVALID_SIGNATURE) -> tuple:
    return error_response(message, code, 401)


def not_found(message: str, code: ErrorCode = ErrorCode.NOT_FOUND) -> tuple:
    return error_response(message, code, 404, log_error=False)


def internal_error(message: str = "An unexpected error occurred", details: Optional[dict] = None) -> tuple:
    return error_response(message, ErrorCode.INTERNAL_ERROR, 500, details=details)
