"""Error taxonomy for the insurance ledger.

Every rejected call raises a subclass of ``LedgerError``.  Each class carries
an ``ErrorCategory`` and a stable ``code`` so callers (and keepers) can decide
whether to retry, change parameters or give up.
"""

from __future__ import annotations

from enum import Enum
from typing import Any, Dict, Optional


class ErrorCategory(Enum):
    """Why a call was rejected."""

    VALIDATION = "VALIDATION"
    AUTHORIZATION = "AUTHORIZATION"
    RESOURCE = "RESOURCE"
    EXTERNAL = "EXTERNAL"
    OPERATIONAL = "OPERATIONAL"


class LedgerError(Exception):
    """Base class for all ledger rejections."""

    category: ErrorCategory = ErrorCategory.OPERATIONAL
    code: str = "LEDGER_ERROR"

    def __init__(self, message: str = "", details: Optional[Dict[str, Any]] = None):
        self.message = message or self.code
        self.details = details or {}
        super().__init__(self.message)

    def __str__(self) -> str:
        return f"{self.code}: {self.message}"

    def to_dict(self) -> Dict[str, Any]:
        return {
            "code": self.code,
            "category": self.category.value,
            "message": self.message,
            "details": self.details,
        }


# ── Validation ────────────────────────────────────────────────────────

class ValidationError(LedgerError, ValueError):
    category = ErrorCategory.VALIDATION
    code = "VALIDATION_ERROR"


class InvalidCoordinate(ValidationError):
    code = "INVALID_COORDINATE"


class InvalidStartDate(ValidationError):
    code = "INVALID_START_DATE"


class IncorrectPremium(ValidationError):
    code = "INCORRECT_PREMIUM"


class InvalidAddress(ValidationError):
    code = "INVALID_ADDRESS"


class InvalidAmount(ValidationError):
    code = "INVALID_AMOUNT"


class InvalidPayload(ValidationError):
    code = "INVALID_PAYLOAD"


# ── Authorization ─────────────────────────────────────────────────────

class AuthorizationError(LedgerError, PermissionError):
    category = ErrorCategory.AUTHORIZATION
    code = "AUTHORIZATION_ERROR"


class Unauthorized(AuthorizationError):
    code = "UNAUTHORIZED"


class UnexpectedRequestId(AuthorizationError):
    code = "UNEXPECTED_REQUEST_ID"


# ── Resource ──────────────────────────────────────────────────────────

class ResourceError(LedgerError):
    category = ErrorCategory.RESOURCE
    code = "RESOURCE_ERROR"


class NotFound(ResourceError):
    code = "NOT_FOUND"


class PackageNotFound(NotFound):
    code = "PACKAGE_NOT_FOUND"


class PolicyNotFound(NotFound):
    code = "POLICY_NOT_FOUND"


class PackageInactive(ResourceError):
    code = "PACKAGE_INACTIVE"


class PolicyInactive(ResourceError):
    code = "POLICY_INACTIVE"


class ClaimAlreadySubmitted(ResourceError):
    code = "CLAIM_ALREADY_SUBMITTED"


class OutsideCoverageWindow(ResourceError):
    code = "OUTSIDE_COVERAGE_WINDOW"


class TokenNotAllowed(ResourceError):
    code = "TOKEN_NOT_ALLOWED"


class InsufficientBalance(ResourceError):
    code = "INSUFFICIENT_BALANCE"


class InsufficientAllowance(ResourceError):
    code = "INSUFFICIENT_ALLOWANCE"


class InsufficientFeeBalance(ResourceError):
    code = "INSUFFICIENT_FEE_BALANCE"


class SubscriptionNotSet(ResourceError):
    code = "SUBSCRIPTION_NOT_SET"


class OracleNotSet(ResourceError):
    code = "ORACLE_NOT_SET"


class JobNotSet(ResourceError):
    code = "JOB_NOT_SET"


class FeeNotSet(ResourceError):
    code = "FEE_NOT_SET"


class FeeTokenNotSet(ResourceError):
    code = "FEE_TOKEN_NOT_SET"


# ── External calls ────────────────────────────────────────────────────

class ExternalCallError(LedgerError):
    category = ErrorCategory.EXTERNAL
    code = "EXTERNAL_CALL_FAILED"


class TransferFailed(ExternalCallError):
    code = "TRANSFER_FAILED"


# ── Operational ───────────────────────────────────────────────────────

class OperationalError(LedgerError):
    category = ErrorCategory.OPERATIONAL
    code = "OPERATIONAL_ERROR"


class EnforcedPause(OperationalError):
    code = "ENFORCED_PAUSE"


class ExpectedPause(OperationalError):
    code = "EXPECTED_PAUSE"


class ReentrantCall(OperationalError):
    code = "REENTRANT_CALL"
