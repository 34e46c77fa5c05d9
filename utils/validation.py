"""
Validation utilities for purchase input (quote, customer, payment fields)
Keeps bad data out of the policies table before anything is persisted
"""
import math
import re
from datetime import datetime, date, timezone, timedelta
from typing import Any, Optional, Tuple

from models.policy import PaymentProvider, PaymentStatus

EMAIL_RE = re.compile(r'^[^\s@]+@[^\s@]+\.[^\s@]+$')

# Accepted gap between (endAt - startAt) and the quoted durationMs
DURATION_TOLERANCE_MS = 5 * 60 * 1000

LICENCE_TYPES = ("UK", "International", "Learner")

PAYMENT_PROVIDERS = tuple(p.value for p in PaymentProvider)
PAYMENT_STATUSES = tuple(s.value for s in PaymentStatus)

REQUIRED_FINALIZE_FIELDS = (
    "vrm",
    "startAt",
    "endAt",
    "durationMs",
    "totalAmountPence",
    "fullName",
    "dob",
    "email",
    "licenceType",
    "address",
    "paymentProvider",
    "paymentId",
    "paymentStatus",
)


def normalise_email(value: str) -> str:
    return (value or "").strip().lower()


def normalise_policy_number(value: str) -> str:
    return re.sub(r'\s+', '', (value or "").strip().upper())


def normalise_vrm(value: str) -> str:
    return re.sub(r'\s+', '', value or "").upper().strip()


def coerce_licence_type(value: Any) -> str:
    """Map free-form licence input onto the supported set, defaulting to UK."""
    s = str(value if value is not None else "").strip()
    if s in LICENCE_TYPES:
        return s
    return "UK"


def parse_iso_datetime(value: Any) -> Optional[datetime]:
    """
    Parse an ISO-8601 date or datetime string into an aware UTC datetime.
    Date-only strings resolve to midnight UTC. Returns None when unparseable.
    """
    if isinstance(value, datetime):
        dt = value
    elif isinstance(value, date):
        dt = datetime(value.year, value.month, value.day)
    else:
        s = str(value or "").strip()
        if not s:
            return None
        if s.endswith("Z") or s.endswith("z"):
            s = s[:-1] + "+00:00"
        try:
            dt = datetime.fromisoformat(s)
        except ValueError:
            return None
    if dt.tzinfo is None:
        dt = dt.replace(tzinfo=timezone.utc)
    return dt.astimezone(timezone.utc)


def _to_number(value: Any) -> Optional[float]:
    if value is None or isinstance(value, bool):
        return None
    if isinstance(value, (int, float)):
        return float(value)
    try:
        return float(str(value).strip())
    except (TypeError, ValueError):
        return None


def _is_blank(value: Any) -> bool:
    return value is None or (isinstance(value, str) and not value.strip())


def validate_email(email: str) -> Tuple[bool, str]:
    """
    Validate email address format.
    Returns (is_valid, error_message).
    """
    trimmed = (email or "").strip()

    if not trimmed:
        return False, "Email is required"

    if not EMAIL_RE.match(trimmed):
        return False, "Invalid email format"

    return True, ""


def validate_finalize_input(data: dict, now: Optional[datetime] = None) -> Tuple[bool, list[str]]:
    """
    Validate the flat quote + customer + payment payload used to finalize a policy.
    Returns (is_valid, errors). Every failing rule contributes one message.
    """
    errors: list[str] = []
    data = data if isinstance(data, dict) else {}
    now = now or datetime.now(timezone.utc)

    for key in REQUIRED_FINALIZE_FIELDS:
        if _is_blank(data.get(key)):
            errors.append(f"{key} is required")

    # numeric sanity
    duration = _to_number(data.get("durationMs"))
    total = _to_number(data.get("totalAmountPence"))

    if duration is None or not math.isfinite(duration):
        errors.append("durationMs must be a number")
    elif duration != int(duration):
        errors.append("durationMs must be an integer")
    elif duration <= 0:
        errors.append("durationMs must be > 0")

    if total is None or not math.isfinite(total):
        errors.append("totalAmountPence must be a number")
    elif total != int(total):
        errors.append("totalAmountPence must be an integer")
    elif total < 0:
        errors.append("totalAmountPence must be >= 0")

    start = parse_iso_datetime(data.get("startAt"))
    end = parse_iso_datetime(data.get("endAt"))

    if start is None or end is None:
        errors.append("startAt/endAt must be valid ISO dates")
    else:
        if end <= start:
            errors.append("endAt must be after startAt")
        window_ms = (end - start) / timedelta(milliseconds=1)
        if duration is not None and math.isfinite(duration):
            if abs(window_ms - duration) > DURATION_TOLERANCE_MS:
                errors.append("durationMs does not match startAt/endAt")

    provider = str(data.get("paymentProvider") or "").strip().upper()
    if provider and provider not in PAYMENT_PROVIDERS:
        errors.append(f"paymentProvider must be one of {', '.join(PAYMENT_PROVIDERS)}")
    status = str(data.get("paymentStatus") or "").strip().upper()
    if status and status not in PAYMENT_STATUSES:
        errors.append(f"paymentStatus must be one of {', '.join(PAYMENT_STATUSES)}")

    email_ok, _ = validate_email(str(data.get("email") or ""))
    if not email_ok:
        errors.append("email is invalid")

    dob = parse_iso_datetime(data.get("dob"))
    if dob is None:
        errors.append("dob is invalid")
    elif dob > now:
        errors.append("dob cannot be in the future")

    return len(errors) == 0, errors
