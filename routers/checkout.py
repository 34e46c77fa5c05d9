import os

import stripe
from fastapi import APIRouter, Request, Body
from fastapi.responses import JSONResponse
from starlette.concurrency import run_in_threadpool

from core.config import logger, require_env, MissingConfigError

router = APIRouter(prefix="/api/stripe", tags=["stripe"])

LINE_ITEM_NAME = "Temporary Insurance Policy"


def _origin(request: Request) -> str:
    # Prefer explicit env var (works in prod + preview + local)
    explicit = (os.getenv("PUBLIC_BASE_URL") or os.getenv("SITE_URL") or "").strip()
    if explicit:
        return explicit.rstrip("/")
    hdr = (request.headers.get("origin") or "").strip()
    if hdr:
        return hdr.rstrip("/")
    host = request.headers.get("host") or request.url.netloc
    proto = request.headers.get("x-forwarded-proto") or request.url.scheme
    return f"{proto}://{host}"


def _s(v) -> str:
    return "" if v is None else str(v)


@router.post("/checkout")
async def create_checkout(request: Request, payload: dict = Body(...)):
    """
    Create a Stripe Checkout Session for a quote.
    Body: { quote: {vrm, make, model, year, startAt, endAt, durationMs, totalAmountPence},
            customer: {fullName, dob, email, licenceType, address} }
    Returns: { url }
    """
    try:
        stripe.api_key = require_env("STRIPE_SECRET_KEY")
    except MissingConfigError as ex:
        return JSONResponse({"error": str(ex)}, status_code=500)

    quote = (payload or {}).get("quote") or {}
    customer = (payload or {}).get("customer") or {}

    email = _s(customer.get("email")).strip()
    if not email:
        return JSONResponse({"error": "Missing customer.email"}, status_code=400)
    if not _s(quote.get("vrm")).strip():
        return JSONResponse({"error": "Missing quote.vrm"}, status_code=400)
    amount = quote.get("totalAmountPence")
    if isinstance(amount, bool) or not isinstance(amount, int) or amount <= 0:
        return JSONResponse({"error": "Invalid quote.totalAmountPence"}, status_code=400)

    origin = _origin(request)

    # Stripe metadata values must be strings
    metadata = {
        "vrm": _s(quote.get("vrm")),
        "make": _s(quote.get("make")),
        "model": _s(quote.get("model")),
        "year": _s(quote.get("year")),
        "startAt": _s(quote.get("startAt")),
        "endAt": _s(quote.get("endAt")),
        "durationMs": _s(quote.get("durationMs")),
        "totalAmountPence": _s(amount),
        "fullName": _s(customer.get("fullName")),
        "dob": _s(customer.get("dob")),
        "email": email,
        "licenceType": _s(customer.get("licenceType")),
        "address": _s(customer.get("address")),
    }

    try:
        session = await run_in_threadpool(
            stripe.checkout.Session.create,
            mode="payment",
            customer_email=email,
            line_items=[{
                "quantity": 1,
                "price_data": {
                    "currency": "gbp",
                    "unit_amount": amount,
                    "product_data": {"name": LINE_ITEM_NAME},
                },
            }],
            success_url=f"{origin}/checkout/success?session_id={{CHECKOUT_SESSION_ID}}",
            cancel_url=f"{origin}/checkout/cancel",
            metadata=metadata,
        )
    except stripe.StripeError as ex:
        logger.error(f"[stripe.checkout] session create failed: {ex}")
        return JSONResponse({"error": str(ex) or "Failed to create checkout session"}, status_code=500)

    url = getattr(session, "url", None)
    if not url:
        return JSONResponse({"error": "Stripe did not return a Checkout URL"}, status_code=500)

    logger.info(f"[stripe.checkout] session {getattr(session, 'id', '')} for {metadata['vrm']} ({amount}p)")
    return {"url": url}
