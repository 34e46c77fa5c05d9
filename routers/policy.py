from fastapi import APIRouter, Request, Depends, Query
from fastapi.responses import JSONResponse
from sqlalchemy.orm import Session

from core.config import logger
from core.database import get_db
from models.policy import Policy, PolicyEvent
from utils.finalize import finalize_policy, find_by_payment, PolicyValidationError
from utils.validation import normalise_policy_number

router = APIRouter(prefix="/api/policy", tags=["policy"])

RECENT_EVENTS_LIMIT = 25


async def _json_body(request: Request):
    try:
        body = await request.json()
    except ValueError:
        return None
    return body if isinstance(body, dict) else None


@router.post("/finalize")
async def policy_finalize(request: Request, db: Session = Depends(get_db)):
    body = await _json_body(request)
    if body is None:
        return JSONResponse({"ok": False, "error": "Invalid JSON"}, status_code=400)

    # Only paid purchases become policies
    if str(body.get("paymentStatus") or "").upper() != "PAID":
        return JSONResponse({"ok": False, "error": "Payment not confirmed"}, status_code=402)

    try:
        return finalize_policy(db, body)
    except PolicyValidationError as ex:
        return JSONResponse({"ok": False, "error": "Invalid policy data", "message": str(ex), "errors": ex.errors}, status_code=400)
    except Exception as ex:
        logger.exception(f"[policy.finalize] failed: {ex}")
        return JSONResponse({"ok": False, "error": "Finalize failed", "message": str(ex)}, status_code=500)


@router.get("/by-payment")
async def policy_by_payment(
    provider: str = Query(""),
    id: str = Query(""),
    db: Session = Depends(get_db),
):
    provider = (provider or "").strip()
    payment_id = (id or "").strip()
    if not provider or not payment_id:
        return JSONResponse({"ok": False, "error": "Missing provider or id"}, status_code=400)

    try:
        policy = find_by_payment(db, provider, payment_id)
    except Exception as ex:
        logger.exception(f"[policy.by_payment] lookup failed: {ex}")
        return JSONResponse({"ok": False, "error": "Lookup failed", "message": str(ex)}, status_code=500)

    if not policy:
        return JSONResponse({"ok": False, "found": False}, status_code=404)

    data = policy.to_dict()
    return {
        "ok": True,
        "found": True,
        "policy": {
            "id": data["id"],
            "policyNumber": data["policyNumber"],
            "paymentStatus": data["paymentStatus"],
            "createdAt": data["createdAt"],
        },
    }


@router.get("/{policy_number}")
async def policy_get(policy_number: str, db: Session = Depends(get_db)):
    cleaned = normalise_policy_number(policy_number)
    if not cleaned:
        return JSONResponse({"ok": False, "error": "Missing policyNumber"}, status_code=400)

    try:
        policy = db.query(Policy).filter(Policy.policy_number == cleaned).first()
        if not policy:
            return JSONResponse({"ok": False, "error": "Policy not found"}, status_code=404)

        events = (
            db.query(PolicyEvent)
            .filter(PolicyEvent.policy_id == policy.id)
            .order_by(PolicyEvent.created_at.desc())
            .limit(RECENT_EVENTS_LIMIT)
            .all()
        )
        data = policy.to_dict()
        data["documents"] = [d.to_dict() for d in policy.documents]
        data["events"] = [e.to_dict() for e in events]
        return {"ok": True, "policy": data}
    except Exception as ex:
        logger.exception(f"[policy.get] failed for {cleaned}: {ex}")
        return JSONResponse({"ok": False, "error": "Failed to load policy", "message": str(ex)}, status_code=500)
