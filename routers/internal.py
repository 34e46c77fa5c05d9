"""
Server-to-server endpoints: PDF rendering, fulfillment, dev helpers.
Every route requires the x-internal-key header.
"""
import time
from datetime import datetime, timedelta, timezone

from fastapi import APIRouter, Request, Depends, Response
from fastapi.responses import JSONResponse
from sqlalchemy.orm import Session
from starlette.concurrency import run_in_threadpool

from core.auth import internal_key_ok
from core.config import APP_ENV, APP_NAME, logger
from core.database import get_db
from utils.emailing import render_email, send_email_smtp
from utils.finalize import finalize_policy, PolicyValidationError
from utils.fulfill import fulfill_policy, PolicyNotFoundError
from utils.policy_documents import generate_certificate_pdf, generate_proposal_pdf, default_window

router = APIRouter(prefix="/api/internal", tags=["internal"])


def _unauthorized() -> Response:
    return Response("Unauthorized", status_code=401, media_type="text/plain")


async def _json_body(request: Request):
    try:
        body = await request.json()
    except ValueError:
        return None
    return body if isinstance(body, dict) else None


def _pdf_response(pdf: bytes, filename: str) -> Response:
    return Response(
        content=pdf,
        media_type="application/pdf",
        headers={
            "Content-Disposition": f'inline; filename="{filename}"',
            "Cache-Control": "no-store",
        },
    )


@router.post("/policy/render-certificate")
async def render_certificate(request: Request):
    if not internal_key_ok(request):
        return _unauthorized()
    body = await _json_body(request)
    if body is None:
        return JSONResponse({"ok": False, "error": "Invalid JSON"}, status_code=400)

    default_start, default_end = default_window(hours=24)
    certificate_number = str(body.get("certificateNumber") or "GTC-CERT-TEST-0001")
    try:
        pdf = await run_in_threadpool(
            generate_certificate_pdf,
            certificate_number=certificate_number,
            policy_number=str(body["policyNumber"]) if body.get("policyNumber") else None,
            vrm=str(body.get("vrm") or "AB12CDE"),
            make=body.get("make"),
            model=body.get("model"),
            year=body.get("year"),
            policyholder_name=str(body.get("policyholderName") or "Test Policyholder"),
            start_at=str(body.get("startAtISO") or default_start),
            end_at=str(body.get("endAtISO") or default_end),
        )
    except Exception as ex:
        logger.exception(f"[pdf.certificate] render failed: {ex}")
        return JSONResponse({"ok": False, "error": "Render failed", "message": str(ex)}, status_code=500)

    return _pdf_response(pdf, f"certificate-{certificate_number}.pdf")


@router.post("/policy/render-proposal")
async def render_proposal(request: Request):
    if not internal_key_ok(request):
        return _unauthorized()
    body = await _json_body(request)
    if body is None:
        return JSONResponse({"ok": False, "error": "Invalid JSON"}, status_code=400)

    default_start, default_end = default_window(hours=6)
    policy_number = str(body.get("policyNumber") or "GTC-TEST-0000")
    try:
        pdf = await run_in_threadpool(
            generate_proposal_pdf,
            policy_number=policy_number,
            created_at=body.get("createdAtISO") or datetime.now(timezone.utc).isoformat(),
            vrm=str(body.get("vrm") or "AB12CDE"),
            make=body.get("make"),
            model=body.get("model"),
            year=body.get("year"),
            start_at=str(body.get("startAtISO") or default_start),
            end_at=str(body.get("endAtISO") or default_end),
            duration_ms=body.get("durationMs") or 6 * 3600 * 1000,
            full_name=str(body.get("fullName") or "Test Driver"),
            dob=str(body.get("dobISO") or "2001-05-28"),
            email=str(body.get("email") or "test@example.com"),
            address=str(body.get("address") or "22 Millais Road, London, E11 4HD"),
            licence_type=str(body.get("licenceType") or "UK"),
            issued_by=str(body.get("issuedBy") or "Accelerant"),
        )
    except Exception as ex:
        logger.exception(f"[pdf.proposal] render failed: {ex}")
        return JSONResponse({"ok": False, "error": "Render failed", "message": str(ex)}, status_code=500)

    return _pdf_response(pdf, f"proposal-{policy_number}.pdf")


@router.post("/policy/fulfill")
async def internal_fulfill(request: Request, db: Session = Depends(get_db)):
    if not internal_key_ok(request):
        return _unauthorized()
    body = await _json_body(request) or {}
    policy_id = str(body.get("policyId") or "").strip()
    if not policy_id:
        return JSONResponse({"ok": False, "error": "policyId is required"}, status_code=400)

    try:
        # Threadpool: fulfillment calls back into the render routes above
        result = await run_in_threadpool(fulfill_policy, db, policy_id)
    except PolicyNotFoundError as ex:
        return JSONResponse({"ok": False, "error": str(ex)}, status_code=404)
    except Exception as ex:
        logger.exception(f"[policy.fulfill] internal fulfill failed for {policy_id}: {ex}")
        return JSONResponse({"ok": False, "error": str(ex) or "fulfill failed"}, status_code=500)

    return {"ok": True, **result}


@router.post("/policy/test-finalize")
async def internal_test_finalize(request: Request, db: Session = Depends(get_db)):
    if not internal_key_ok(request):
        return _unauthorized()
    if APP_ENV == "production":
        return JSONResponse({"ok": False, "error": "Not available in production"}, status_code=404)

    overrides = await _json_body(request) or {}
    start = datetime.now(timezone.utc) + timedelta(minutes=5)
    end = start + timedelta(hours=2)

    payload = {
        # quote
        "vrm": "MD15UOA",
        "make": "Ford",
        "model": "Fiesta",
        "year": "2015",
        "startAt": start.isoformat(),
        "endAt": end.isoformat(),
        "durationMs": int((end - start) / timedelta(milliseconds=1)),
        "totalAmountPence": 199 * 2,
        # customer
        "fullName": "Test Customer",
        "dob": "1995-01-01",
        "email": "test@example.com",
        "licenceType": "UK",
        "address": "1 Test Street, London, SW1A 1AA",
        # payment
        "paymentProvider": "TEST",
        "paymentId": f"test_{int(time.time() * 1000)}",
        "paymentStatus": "PAID",
        "currency": "GBP",
    }
    payload.update({k: v for k, v in overrides.items() if v is not None})

    try:
        return finalize_policy(db, payload)
    except PolicyValidationError as ex:
        return JSONResponse({"ok": False, "error": "Test finalize failed", "message": str(ex)}, status_code=400)
    except Exception as ex:
        logger.exception(f"[policy.finalize] test finalize failed: {ex}")
        return JSONResponse({"ok": False, "error": "Test finalize failed", "message": str(ex)}, status_code=500)


@router.post("/email/test")
async def internal_email_test(request: Request):
    if not internal_key_ok(request):
        return _unauthorized()
    body = await _json_body(request) or {}
    to = str(body.get("to") or "").strip()
    if not to:
        return JSONResponse(
            {"ok": False, "error": "Missing `to` in JSON body. Example: {\"to\":\"you@gmail.com\"}"},
            status_code=400,
        )

    html = render_email("email_test.html")
    message_id = await run_in_threadpool(
        send_email_smtp,
        to,
        f"{APP_NAME} - email test",
        html,
        "If you can read this, sending is working.",
    )
    if not message_id:
        return JSONResponse({"ok": False, "error": "Failed to send email"}, status_code=500)
    return {"ok": True, "id": message_id}
