"""
Idempotent policy creation from a paid purchase.

The (payment_provider, payment_id) pair is the idempotency key: repeated
webhook deliveries or client retries for the same payment always resolve to
the same policy row.
"""
from datetime import timedelta
from typing import Optional

from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from core.config import logger
from models.policy import Policy, PolicyEvent, PolicyEventType, PolicyStatus
from utils.policy_number import generate_policy_number
from utils.validation import validate_finalize_input, parse_iso_datetime, normalise_email, normalise_vrm

MAX_POLICY_NUMBER_ATTEMPTS = 5


class PolicyValidationError(ValueError):
    def __init__(self, errors: list[str]):
        self.errors = list(errors or [])
        super().__init__(" • ".join(self.errors))


class PolicyNumberExhaustedError(RuntimeError):
    def __init__(self):
        super().__init__("Failed to generate a unique policy number")


def find_by_payment(db: Session, provider: str, payment_id: str) -> Optional[Policy]:
    return (
        db.query(Policy)
        .filter(Policy.payment_provider == (provider or "").strip().upper(), Policy.payment_id == str(payment_id or "").strip())
        .first()
    )


def _is_policy_number_collision(ex: IntegrityError) -> bool:
    # sqlite reports the column ("policies.policy_number"), postgres the constraint name
    return "policy_number" in str(getattr(ex, "orig", ex))


def _build_policy(data: dict, policy_number: str, provider: str) -> Policy:
    start_at = parse_iso_datetime(data.get("startAt"))
    end_at = parse_iso_datetime(data.get("endAt"))
    dob = parse_iso_datetime(data.get("dob"))
    year = data.get("year")
    return Policy(
        policy_number=policy_number,
        status=PolicyStatus.PAID.value,
        vrm=normalise_vrm(str(data.get("vrm") or "")),
        make=(str(data.get("make")).strip() or None) if data.get("make") else None,
        model=(str(data.get("model")).strip() or None) if data.get("model") else None,
        year=str(year).strip() if year not in (None, "") else None,
        start_at=start_at,
        end_at=end_at,
        duration_ms=int(float(data.get("durationMs"))),
        total_amount_pence=int(float(data.get("totalAmountPence"))),
        full_name=str(data.get("fullName") or "").strip(),
        dob=dob.date() if dob else None,
        email=normalise_email(str(data.get("email") or "")),
        licence_type=str(data.get("licenceType") or "").strip(),
        address=str(data.get("address") or "").strip(),
        payment_provider=provider,
        payment_id=str(data.get("paymentId") or "").strip(),
        payment_status=str(data.get("paymentStatus") or "").strip().upper(),
        currency=(str(data.get("currency") or "GBP").strip().upper() or "GBP"),
        stripe_payment_intent_id=(data.get("stripePaymentIntentId") or None),
    )


def finalize_policy(db: Session, data: dict) -> dict:
    """Create (or return the existing) policy for a paid purchase.

    Returns {"ok": True, "policyId", "policyNumber"}. Raises
    PolicyValidationError on bad input and PolicyNumberExhaustedError when
    every generated number collided.
    """
    ok, errors = validate_finalize_input(data)
    if not ok:
        raise PolicyValidationError(errors)

    provider = str(data.get("paymentProvider") or "").strip().upper()
    payment_id = str(data.get("paymentId") or "").strip()

    existing = find_by_payment(db, provider, payment_id)
    if existing:
        logger.info(f"[policy.finalize] existing policy {existing.policy_number} for {provider}:{payment_id}")
        return {"ok": True, "policyId": existing.id, "policyNumber": existing.policy_number}

    for attempt in range(1, MAX_POLICY_NUMBER_ATTEMPTS + 1):
        policy_number = generate_policy_number()
        policy = _build_policy(data, policy_number, provider)
        db.add(policy)
        try:
            db.flush()
            db.add(PolicyEvent(
                policy_id=policy.id,
                type=PolicyEventType.POLICY_CREATED.value,
                data={
                    "paymentProvider": provider,
                    "paymentId": payment_id,
                    "totalAmountPence": policy.total_amount_pence,
                },
            ))
            db.commit()
        except IntegrityError as ex:
            db.rollback()
            # A concurrent delivery for the same payment may have won the insert
            winner = find_by_payment(db, provider, payment_id)
            if winner:
                logger.info(f"[policy.finalize] concurrent insert resolved to {winner.policy_number}")
                return {"ok": True, "policyId": winner.id, "policyNumber": winner.policy_number}
            if _is_policy_number_collision(ex):
                logger.warning(f"[policy.finalize] policy number collision on {policy_number} (attempt {attempt})")
                continue
            raise

        logger.info(f"[policy.finalize] created {policy_number} for {provider}:{payment_id}")
        return {"ok": True, "policyId": policy.id, "policyNumber": policy.policy_number}

    raise PolicyNumberExhaustedError()
