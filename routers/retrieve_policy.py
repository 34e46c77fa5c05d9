"""
Customer self-service: view or re-send policy documents by policy number + email.

Responses never reveal whether a policy number exists or whom it belongs to.
"""
from typing import Optional

from fastapi import APIRouter, Request, Depends
from fastapi.responses import JSONResponse
from sqlalchemy.orm import Session
from starlette.concurrency import run_in_threadpool

from core.auth import get_client_ip
from core.config import logger
from core.database import get_db
from models.policy import Policy, PolicyDocument, PolicyEvent, DocumentKind, PolicyEventType, as_utc
from utils.policy_email import send_policy_email
from utils.rate_limit import retrieve_policy_throttle, check_rate_limit
from utils.storage import get_presigned_url
from utils.validation import normalise_email, normalise_policy_number

router = APIRouter(prefix="/api/retrieve-policy", tags=["retrieve-policy"])

SIGNED_URL_TTL_SECONDS = 60 * 10


async def _credentials(request: Request) -> tuple[str, str]:
    try:
        body = await request.json()
    except ValueError:
        body = None
    body = body if isinstance(body, dict) else {}
    return str(body.get("policyNumber") or ""), str(body.get("email") or "")


def _match_policy(db: Session, policy_number: str, email: str) -> Optional[Policy]:
    policy = db.query(Policy).filter(Policy.policy_number == normalise_policy_number(policy_number)).first()
    if not policy:
        return None
    if normalise_email(policy.email) != normalise_email(email):
        return None
    return policy


def _document(policy: Policy, kind: DocumentKind) -> Optional[PolicyDocument]:
    for d in policy.documents:
        if d.kind == kind.value:
            return d
    return None


def _signed_or_public(doc: Optional[PolicyDocument]) -> Optional[str]:
    if not doc:
        return None
    if doc.storage_key:
        url = get_presigned_url(doc.storage_key, expires_in=SIGNED_URL_TTL_SECONDS)
        if url:
            return url
    return doc.url or None


def _summary(policy: Policy, include_email: bool = False) -> dict:
    out = {
        "policyNumber": policy.policy_number,
        "vrm": policy.vrm,
        "make": policy.make,
        "model": policy.model,
        "year": policy.year,
        "startAt": as_utc(policy.start_at).isoformat() if policy.start_at else None,
        "endAt": as_utc(policy.end_at).isoformat() if policy.end_at else None,
    }
    if include_email:
        out["email"] = policy.email
    return out


def _throttled(request: Request) -> Optional[JSONResponse]:
    ip = get_client_ip(request)
    allowed, message = check_rate_limit(retrieve_policy_throttle, f"retrieve_policy:{ip}")
    if not allowed:
        logger.warning(f"[retrieve.policy] rate limited IP: {ip}")
        return JSONResponse({"ok": False, "error": message}, status_code=429)
    return None


@router.post("/view")
async def retrieve_policy_view(request: Request, db: Session = Depends(get_db)):
    limited = _throttled(request)
    if limited:
        return limited

    policy_number, email = await _credentials(request)
    if not policy_number.strip() or not email.strip():
        return JSONResponse({"ok": False, "error": "Missing policyNumber or email"}, status_code=400)

    try:
        policy = _match_policy(db, policy_number, email)
        if not policy:
            return {"ok": False}

        cert = _document(policy, DocumentKind.CERTIFICATE)
        if not cert:
            return {"ok": False, "reason": "DOCS_NOT_READY"}

        certificate_url = _signed_or_public(cert)
        if not certificate_url:
            return {"ok": False}

        return {"ok": True, "certificateUrl": certificate_url, "policy": _summary(policy)}
    except Exception as ex:
        # Generic response to avoid leakage
        logger.warning(f"[retrieve.policy] view failed: {ex}")
        return {"ok": False}


@router.post("")
async def retrieve_policy(request: Request, db: Session = Depends(get_db)):
    limited = _throttled(request)
    if limited:
        return limited

    policy_number, email = await _credentials(request)
    if not policy_number.strip() or not email.strip():
        return JSONResponse({"error": "Missing policyNumber or email"}, status_code=400)

    try:
        policy = _match_policy(db, policy_number, email)
        # Avoid leaking whether a policy exists
        if not policy:
            return {"ok": True}

        cert = _document(policy, DocumentKind.CERTIFICATE)
        prop = _document(policy, DocumentKind.PROPOSAL)

        if not cert or not (cert.url or cert.storage_key):
            db.add(PolicyEvent(
                policy_id=policy.id,
                type=PolicyEventType.EMAIL_SENT.value,
                data={"ok": False, "reason": "DOCS_NOT_READY"},
            ))
            db.commit()
            logger.info(f"[retrieve.policy] docs not ready for {policy.policy_number}")
            return {"ok": True}

        certificate_url = _signed_or_public(cert) or cert.url or ""
        proposal_url = _signed_or_public(prop) or (prop.url if prop else "") or ""

        res = await run_in_threadpool(
            send_policy_email,
            to=policy.email,
            policy_number=policy.policy_number,
            certificate_url=certificate_url,
            proposal_url=proposal_url,
            certificate_key=cert.storage_key,
            proposal_key=prop.storage_key if prop else None,
            vrm=policy.vrm,
            make=policy.make,
            model=policy.model,
            year=policy.year,
            start_at=as_utc(policy.start_at),
            end_at=as_utc(policy.end_at),
        )

        db.add(PolicyEvent(
            policy_id=policy.id,
            type=PolicyEventType.EMAIL_SENT.value,
            data={"ok": True, "to": policy.email, "messageId": (res or {}).get("id"), "resend": True},
        ))
        db.commit()
        logger.info(f"[retrieve.policy] re-sent documents for {policy.policy_number}")

        return {"ok": True, "certificateUrl": certificate_url, "policy": _summary(policy, include_email=True)}
    except Exception as ex:
        db.rollback()
        logger.exception(f"[retrieve.policy] resend failed: {ex}")
        return JSONResponse({"error": str(ex) or "Failed to retrieve policy"}, status_code=500)
