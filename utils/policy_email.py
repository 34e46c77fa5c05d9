"""
Policy documents email: confirmation with the certificate and statement of
fact attached, plus links for clients that strip attachments.
"""
import re
from typing import Any, Optional
from urllib.parse import urlparse

import httpx

from core.config import APP_NAME, MAIL_REPLY_TO, SUPPORT_EMAIL, logger
from utils.emailing import render_email, send_email_smtp
from utils.policy_documents import (
    UK_TZ,
    REGULATORY_CERTIFY,
    REGULATORY_GIBRALTAR,
    REGULATORY_FCA,
    REGULATORY_REGISTERED,
)
from utils.storage import read_bytes_key
from utils.validation import validate_email, parse_iso_datetime

_PDF_PATH_RE = re.compile(r'\.pdf(\?|#|$)', re.IGNORECASE)


class EmailDeliveryError(RuntimeError):
    pass


def _clean_pdf_url(url: str, label: str) -> str:
    u = (url or "").strip()
    try:
        parsed = urlparse(u)
    except ValueError:
        parsed = None
    if not parsed or parsed.scheme not in ("http", "https") or not parsed.netloc:
        raise EmailDeliveryError(f"{label} must be a valid http(s) URL")
    if not _PDF_PATH_RE.search(u):
        raise EmailDeliveryError(f"{label} must point to a .pdf")
    return u


def _fmt_period(value: Any) -> Optional[str]:
    dt = parse_iso_datetime(value) if value else None
    if not dt:
        return None
    return dt.astimezone(UK_TZ).strftime("%a %d %b %Y, %H:%M")


def _vehicle_line(vrm: Optional[str], make: Optional[str], model: Optional[str], year: Any) -> Optional[str]:
    mm = " ".join(p for p in (make, model) if p).strip()
    year_s = str(year).strip() if year else ""
    parts = [p for p in ((vrm or "").strip(), mm, f"({year_s})" if year_s else "") if p]
    return " ".join(parts) if parts else None


def _load_attachment(key: Optional[str], url: str) -> bytes:
    if key:
        data = read_bytes_key(key)
        if data:
            return data
    try:
        resp = httpx.get(url, timeout=25.0, follow_redirects=True)
        resp.raise_for_status()
        return resp.content
    except httpx.HTTPError as ex:
        raise EmailDeliveryError(f"Could not fetch attachment {url}: {ex}")


def send_policy_email(
    to: str,
    policy_number: str,
    certificate_url: str,
    proposal_url: str,
    certificate_key: Optional[str] = None,
    proposal_key: Optional[str] = None,
    vrm: Optional[str] = None,
    make: Optional[str] = None,
    model: Optional[str] = None,
    year: Any = None,
    start_at: Any = None,
    end_at: Any = None,
) -> dict:
    """Send the cover-confirmed email. Returns {"ok": True, "id": message_id}."""
    policy_number = (policy_number or "").strip()
    if not policy_number:
        raise EmailDeliveryError("policyNumber is required")
    ok, _ = validate_email(to)
    if not ok:
        raise EmailDeliveryError("to must be a valid email")
    to = to.strip()

    certificate_url = _clean_pdf_url(certificate_url, "certificateUrl")
    proposal_url = _clean_pdf_url(proposal_url, "proposalUrl")

    context = {
        "to": to,
        "policy_number": policy_number,
        "certificate_url": certificate_url,
        "proposal_url": proposal_url,
        "vehicle_line": _vehicle_line(vrm, make, model, year),
        "start": _fmt_period(start_at),
        "end": _fmt_period(end_at),
        "support_email": MAIL_REPLY_TO or SUPPORT_EMAIL,
        "legal_lines": [REGULATORY_CERTIFY, REGULATORY_GIBRALTAR, REGULATORY_FCA, REGULATORY_REGISTERED],
    }
    html = render_email("policy_documents.html", **context)
    text = render_email("policy_documents.txt", **context)

    attachments = [
        {
            "filename": f"certificate-{policy_number}.pdf",
            "content": _load_attachment(certificate_key, certificate_url),
            "mime_type": "application/pdf",
        },
        {
            "filename": f"statement-of-fact-{policy_number}.pdf",
            "content": _load_attachment(proposal_key, proposal_url),
            "mime_type": "application/pdf",
        },
    ]

    subject = f"Cover confirmed — Policy {policy_number}"
    message_id = send_email_smtp(
        to,
        subject,
        html,
        text,
        reply_to=MAIL_REPLY_TO or SUPPORT_EMAIL,
        attachments=attachments,
    )
    if not message_id:
        raise EmailDeliveryError(f"{APP_NAME} policy email to {to} was not accepted by the mail relay")

    logger.info(f"[policy.email] sent {policy_number} to {to} ({message_id})")
    return {"ok": True, "id": message_id}
