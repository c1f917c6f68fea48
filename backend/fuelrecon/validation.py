from __future__ import annotations

from datetime import date
from decimal import Decimal, InvalidOperation, ROUND_HALF_UP
from typing import Any, Optional

from .time_utils import parse_business_date


# Quantities (liters, readings, percentages, prices, amounts) are kept to 2 places
CENT = Decimal("0.01")


class ReconError(ValueError):
    """
    Base for every rejection the engine can return.

    Rejections are normal, typed outcomes: the caller decides what to do.
    `category` is the error class, `code` the specific reason.
    """
    category = "VALIDATION"
    status_code = 400
    default_code = "VALIDATION"

    def __init__(self, message: str, *, code: str | None = None, details: dict | None = None):
        super().__init__(message)
        self.message = message
        self.code = code or self.default_code
        self.details = details or {}

    def to_dict(self) -> dict:
        payload = {
            "error": self.message,
            "category": self.category,
            "code": self.code,
        }
        if self.details:
            payload["details"] = self.details
        return payload


class ValidationError(ReconError):
    """400-level input problem."""


class ConflictError(ReconError):
    """409-level business rule conflict (e.g., shift already open)."""
    category = "CONFLICT"
    status_code = 409
    default_code = "CONFLICT"


class DayLockedError(ReconError):
    """Mutation rejected because the station-day is locked for this actor."""
    category = "LOCKED"
    status_code = 423
    default_code = "DAY_LOCKED"


class ReasonRequiredError(ReconError):
    """Admin override of a lock without a justification."""
    category = "REASON_REQUIRED"
    status_code = 422
    default_code = "REASON_REQUIRED"


class PermissionDeniedError(ReconError):
    """Actor lacks the role or station scope for the operation."""
    category = "FORBIDDEN"
    status_code = 403
    default_code = "FORBIDDEN"


class NotFoundError(ReconError):
    category = "NOT_FOUND"
    status_code = 404
    default_code = "NOT_FOUND"


def to_decimal(value: Any, field: str, *, allow_none: bool = False) -> Optional[Decimal]:
    """
    Coerce user input to Decimal.

    Floats go through str() so 31.34 stays 31.34 instead of its binary expansion.
    Booleans, NaN and infinities are rejected.
    """
    if value is None or (isinstance(value, str) and not value.strip()):
        if allow_none:
            return None
        raise ValidationError(f"{field} is required")
    if isinstance(value, bool):
        raise ValidationError(f"{field} must be a number")
    if isinstance(value, Decimal):
        result = value
    else:
        try:
            result = Decimal(str(value).strip())
        except (InvalidOperation, ValueError):
            raise ValidationError(f"{field} must be a number")
    if not result.is_finite():
        raise ValidationError(f"{field} must be a finite number")
    return result


def quantize(value: Decimal) -> Decimal:
    return value.quantize(CENT, rounding=ROUND_HALF_UP)


def require_non_negative(value: Any, field: str) -> Decimal:
    result = to_decimal(value, field)
    if result < 0:
        raise ValidationError(f"{field} cannot be negative", code="NEGATIVE_VALUE")
    return result


def require_positive(value: Any, field: str) -> Decimal:
    result = to_decimal(value, field)
    if result <= 0:
        raise ValidationError(f"{field} must be greater than zero", code="NON_POSITIVE_VALUE")
    return result


def require_percentage(value: Any, field: str) -> Decimal:
    result = to_decimal(value, field)
    if result < 0 or result > 100:
        raise ValidationError(f"{field} must be between 0 and 100", code="PERCENTAGE_OUT_OF_RANGE")
    return result


def require_int_in_range(value: Any, field: str, low: int, high: int) -> int:
    if isinstance(value, bool):
        raise ValidationError(f"{field} must be an integer")
    if isinstance(value, str) and value.strip().lstrip("-").isdigit():
        value = int(value.strip())
    if not isinstance(value, int):
        raise ValidationError(f"{field} must be an integer")
    if value < low or value > high:
        raise ValidationError(f"{field} must be between {low} and {high}", code="OUT_OF_RANGE")
    return value


def require_business_date(value: Any, field: str = "date") -> date:
    if value is None or value == "":
        raise ValidationError(f"{field} is required")
    try:
        return parse_business_date(value)
    except (TypeError, ValueError):
        raise ValidationError(f"{field} must be a YYYY-MM-DD date")


def clean_optional_str(value: Any, max_length: int = 255) -> Optional[str]:
    if value is None:
        return None
    s = str(value).strip()
    if not s:
        return None
    if len(s) > max_length:
        raise ValidationError(f"value exceeds {max_length} characters")
    return s


def decimal_to_str(value: Optional[Decimal]) -> Optional[str]:
    """JSON-safe rendering of a stored quantity."""
    if value is None:
        return None
    return str(quantize(Decimal(str(value))))
