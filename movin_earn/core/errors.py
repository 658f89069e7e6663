"""Error normalization and handlers."""

import logging
import builtins
from typing import Optional
from uuid import uuid4

from fastapi import HTTPException
from fastapi.responses import JSONResponse
from starlette.requests import Request

from movin_earn.core.logging import get_request_id


class AppError(Exception):
    code = "app_error"
    status_code = 500

    def __init__(self, message: Optional[str] = None, *, code: Optional[str] = None, status_code: Optional[int] = None, request_id: Optional[str] = None):
        message = message or self.__class__.__doc__ or self.code
        super().__init__(message)
        self.message = message
        if code:
            self.code = code
        if status_code:
            self.status_code = status_code
        self.request_id = request_id


class ValidationError(AppError, ValueError):
    code = "validation_error"
    status_code = 400


class NotFoundError(AppError, ValueError):
    code = "not_found"
    status_code = 404


class PermissionError(AppError, builtins.PermissionError):
    code = "forbidden"
    status_code = 403


class ConflictError(AppError):
    code = "conflict"
    status_code = 409


class RateLimitError(AppError):
    code = "rate_limited"
    status_code = 429


# Engine precondition failures. Each one aborts the operation with no mutation.

class InvalidLockPeriod(ValidationError):
    """Lock period must be one of 1, 3, 6, 12 or 24 months."""
    code = "invalid_lock_period"


class ZeroAmountNotAllowed(ValidationError):
    """Amount must be greater than zero."""
    code = "zero_amount_not_allowed"


class InsufficientBalance(ValidationError):
    """Token balance is too low."""
    code = "insufficient_balance"


class InsufficientAllowance(ValidationError):
    """Token allowance for the engine is too low."""
    code = "insufficient_allowance"


class InvalidStakeIndex(NotFoundError):
    """No stake at this index."""
    code = "invalid_stake_index"


class LockPeriodActive(ConflictError):
    """Stake is still inside its lock period."""
    code = "lock_period_active"


class UnauthorizedAccess(PermissionError):
    """Caller is not allowed to perform this action."""
    code = "unauthorized_access"


class InvalidActivityInput(RateLimitError):
    """Activity submission is malformed or arrives too soon."""
    code = "invalid_activity_input"


class InvalidReferrer(ValidationError):
    """Referrer must be another account."""
    code = "invalid_referrer"


class AlreadyReferred(ConflictError):
    """Account already has a referrer."""
    code = "already_referred"


class NoRewardsAvailable(ConflictError):
    """Claimable rewards are below the minimum threshold."""
    code = "no_rewards_available"


class InvalidPremiumAmount(ValidationError):
    """Premium payment must match the monthly or yearly price."""
    code = "invalid_premium_amount"


class InvalidMealScore(ValidationError):
    """Meal score must be between 1 and 100."""
    code = "invalid_meal_score"


class MealClaimTooSoon(RateLimitError):
    """Meal rewards were claimed too recently."""
    code = "meal_claim_too_soon"


class ContractPaused(AppError):
    """Engine is paused."""
    code = "contract_paused"
    status_code = 503


def _extract_request_id(request: Request, fallback: Optional[str] = None) -> str:
    return (
        getattr(request.state, "request_id", None)
        or get_request_id()
        or fallback
        or str(uuid4())
    )


def _error_payload(code: str, message: str, request_id: str) -> dict:
    return {
        "error": {"code": code, "message": message, "request_id": request_id},
        "detail": message,
    }


async def app_error_handler(request: Request, exc: AppError):
    rid = exc.request_id or _extract_request_id(request)
    payload = _error_payload(exc.code, exc.message, rid)
    logger = logging.getLogger("movin_earn")
    log_level = logging.ERROR if exc.status_code >= 500 and not isinstance(exc, ContractPaused) else logging.WARNING
    logger.log(
        log_level,
        "app.error",
        extra={"request_id": rid, "error_code": exc.code, "error_message": exc.message, "status": exc.status_code},
    )
    response = JSONResponse(status_code=exc.status_code, content=payload)
    response.headers["x-request-id"] = rid
    return response


async def http_error_handler(request: Request, exc: HTTPException):
    rid = _extract_request_id(request)
    code = "not_found" if exc.status_code == 404 else "http_error"
    message = exc.detail if exc.detail else "HTTP error"
    payload = _error_payload(code, message, rid)
    logger = logging.getLogger("movin_earn")
    logger.warning("http.error", extra={"request_id": rid, "error_code": code, "status": exc.status_code})
    response = JSONResponse(status_code=exc.status_code, content=payload)
    response.headers["x-request-id"] = rid
    return response


async def unhandled_exception_handler(request: Request, exc: Exception):
    rid = _extract_request_id(request)
    logger = logging.getLogger("movin_earn")
    logger.error("unhandled.exception", exc_info=True, extra={"request_id": rid, "error_code": "internal_error"})
    payload = _error_payload("internal_error", "Unexpected error", rid)
    response = JSONResponse(status_code=500, content=payload)
    response.headers["x-request-id"] = rid
    return response
