import json

import stripe
from fastapi import APIRouter, Request, Depends
from fastapi.responses import JSONResponse
from sqlalchemy.orm import Session
from starlette.concurrency import run_in_threadpool

from core.config import logger, require_env, MissingConfigError
from core.database import get_db
from utils.finalize import finalize_policy, PolicyValidationError
from utils.fulfill import fulfill_policy
from utils.validation import coerce_licence_type

router = APIRouter(prefix="/api/stripe", tags=["stripe"])


def _session_to_finalize_input(session: dict) -> dict:
    md = session.get("metadata") or {}
    payment_intent = session.get("payment_intent")
    return {
        # quote
        "vrm": md.get("vrm") or "",
        "make": md.get("make") or None,
        "model": md.get("model") or None,
        "year": md.get("year") or None,
        "startAt": md.get("startAt") or "",
        "endAt": md.get("endAt") or "",
        "durationMs": md.get("durationMs") or 0,
        "totalAmountPence": md.get("totalAmountPence") or 0,
        # customer
        "fullName": md.get("fullName") or "",
        "dob": md.get("dob") or "",
        "email": md.get("email") or session.get("customer_email") or "",
        "licenceType": coerce_licence_type(md.get("licenceType")),
        "address": md.get("address") or "",
        # payment
        "paymentProvider": "STRIPE",
        "paymentId": session.get("id") or "",
        "paymentStatus": "PAID",
        "currency": (session.get("currency") or "gbp").upper(),
        "stripePaymentIntentId": payment_intent if isinstance(payment_intent, str) else None,
    }


@router.post("/webhook")
async def stripe_webhook(request: Request, db: Session = Depends(get_db)):
    try:
        require_env("STRIPE_SECRET_KEY")
        webhook_secret = require_env("STRIPE_WEBHOOK_SECRET")
    except MissingConfigError as ex:
        return JSONResponse({"error": str(ex)}, status_code=500)

    sig = request.headers.get("stripe-signature")
    if not sig:
        return JSONResponse({"error": "Missing stripe-signature header"}, status_code=400)

    # Signature verification requires the raw body
    raw = await request.body()
    try:
        payload = raw.decode("utf-8")
        stripe.WebhookSignature.verify_header(payload, sig, webhook_secret, stripe.Webhook.DEFAULT_TOLERANCE)
        event = json.loads(payload)
    except (ValueError, stripe.SignatureVerificationError) as ex:
        logger.warning(f"[stripe.webhook] signature verification failed: {ex}")
        return JSONResponse({"error": f"Webhook signature verification failed: {ex}"}, status_code=400)

    event_type = str(event.get("type") or "")
    logger.info(f"[stripe.webhook] {event_type} {event.get('id', '')}")

    if event_type != "checkout.session.completed":
        return {"received": True}

    session = ((event.get("data") or {}).get("object")) or {}
    if session.get("payment_status") != "paid":
        logger.info(f"[stripe.webhook] ignoring unpaid session {session.get('id')} ({session.get('payment_status')})")
        return {"received": True}

    md = session.get("metadata") or {}
    if not md.get("vrm") or not md.get("startAt") or not md.get("endAt") or not (md.get("email") or session.get("customer_email")):
        logger.error(f"[stripe.webhook] missing required metadata on {session.get('id')}: keys={sorted(md.keys())}")
        return JSONResponse({"error": "Missing required checkout metadata"}, status_code=400)

    # Bad metadata never heals on redelivery (400); anything else is retried by Stripe (500)
    try:
        result = finalize_policy(db, _session_to_finalize_input(session))
    except PolicyValidationError as ex:
        logger.error(f"[stripe.webhook] finalize rejected session {session.get('id')}: {ex}")
        return JSONResponse({"error": str(ex)}, status_code=400)
    except Exception as ex:
        logger.exception(f"[stripe.webhook] finalize failed for session {session.get('id')}: {ex}")
        return JSONResponse({"error": "Finalize failed"}, status_code=500)

    logger.info(f"[stripe.webhook] finalized {result['policyNumber']} ({result['policyId']})")

    # Fulfillment failures are acknowledged; a resend is possible through retrieval
    try:
        fulfilled = await run_in_threadpool(fulfill_policy, db, result["policyId"])
        logger.info(f"[stripe.webhook] fulfilled {fulfilled['policyNumber']}")
    except Exception as ex:
        logger.exception(f"[policy.fulfill] failed for {result['policyNumber']} (acknowledging to Stripe): {ex}")

    return {"received": True}
