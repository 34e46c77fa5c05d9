"""
Post-payment fulfillment: render documents, store them, email the customer.

Each side effect is guarded by database state so re-running for the same
policy never duplicates document rows and sends the confirmation email once.
"""
import os

import httpx
from sqlalchemy.orm import Session

from core.config import POLICY_DOCS_PREFIX, get_site_url, logger
from models.policy import Policy, PolicyDocument, PolicyEvent, DocumentKind, PolicyEventType, as_utc
from utils.policy_email import send_policy_email
from utils.storage import upload_bytes, storage_provider

RENDER_TIMEOUT_SECONDS = 25.0
RENDER_CERTIFICATE_PATH = "/api/internal/policy/render-certificate"
RENDER_PROPOSAL_PATH = "/api/internal/policy/render-proposal"


class PolicyNotFoundError(LookupError):
    def __init__(self, policy_id: str):
        self.policy_id = policy_id
        super().__init__("Policy not found")


class RenderError(RuntimeError):
    pass


def _render_pdf(path: str, payload: dict) -> bytes:
    url = f"{get_site_url()}{path}"
    headers = {
        "content-type": "application/json",
        "x-internal-key": os.getenv("INTERNAL_RENDER_KEY", ""),
    }
    try:
        with httpx.Client(timeout=RENDER_TIMEOUT_SECONDS) as client:
            resp = client.post(url, json=payload, headers=headers)
    except httpx.TimeoutException:
        raise RenderError(f"Render request failed {path}: Render timed out")
    except httpx.HTTPError as ex:
        raise RenderError(f"Render request failed {path}: {ex}")
    if resp.status_code >= 400:
        raise RenderError(f"Render failed {path} ({resp.status_code}): {resp.text[:500]}")
    return resp.content


def document_keys(policy_number: str) -> dict:
    base = f"{POLICY_DOCS_PREFIX}/{policy_number}"
    return {
        DocumentKind.PROPOSAL.value: f"{base}/proposal-{policy_number}.pdf",
        DocumentKind.CERTIFICATE.value: f"{base}/certificate-{policy_number}.pdf",
    }


def proposal_payload(policy: Policy) -> dict:
    return {
        "policyNumber": policy.policy_number,
        "createdAtISO": as_utc(policy.created_at).isoformat() if policy.created_at else None,
        "vrm": policy.vrm,
        "make": policy.make,
        "model": policy.model,
        "year": policy.year,
        "startAtISO": as_utc(policy.start_at).isoformat(),
        "endAtISO": as_utc(policy.end_at).isoformat(),
        "durationMs": int(policy.duration_ms),
        "fullName": policy.full_name,
        "dobISO": policy.dob.isoformat() if policy.dob else None,
        "email": policy.email,
        "address": policy.address,
        "licenceType": policy.licence_type,
        "issuedBy": "Accelerant",
    }


def certificate_payload(policy: Policy) -> dict:
    return {
        "certificateNumber": policy.policy_number,
        "policyNumber": policy.policy_number,
        "vrm": policy.vrm,
        "make": policy.make,
        "model": policy.model,
        "year": policy.year,
        "policyholderName": policy.full_name,
        "startAtISO": as_utc(policy.start_at).isoformat(),
        "endAtISO": as_utc(policy.end_at).isoformat(),
    }


def _documents_by_kind(db: Session, policy_id: str) -> dict:
    docs = db.query(PolicyDocument).filter(PolicyDocument.policy_id == policy_id).all()
    by_kind = {}
    for d in docs:
        by_kind.setdefault(d.kind, d)
    return by_kind


def fulfill_policy(db: Session, policy_id: str) -> dict:
    """Make sure a paid policy has its documents and the customer has been emailed.

    Returns {proposalUrl, certificateUrl, policyNumber, email}.
    """
    policy = db.query(Policy).filter(Policy.id == policy_id).first()
    if not policy:
        raise PolicyNotFoundError(policy_id)

    existing = _documents_by_kind(db, policy.id)
    keys = document_keys(policy.policy_number)
    proposal = existing.get(DocumentKind.PROPOSAL.value)
    certificate = existing.get(DocumentKind.CERTIFICATE.value)

    proposal_url = proposal.url if proposal and proposal.url else ""
    certificate_url = certificate.url if certificate and certificate.url else ""
    proposal_key = proposal.storage_key if proposal else keys[DocumentKind.PROPOSAL.value]
    certificate_key = certificate.storage_key if certificate else keys[DocumentKind.CERTIFICATE.value]

    if not (proposal_url and certificate_url):
        logger.info(f"[policy.fulfill] generating documents for {policy.policy_number}")
        proposal_pdf = _render_pdf(RENDER_PROPOSAL_PATH, proposal_payload(policy))
        certificate_pdf = _render_pdf(RENDER_CERTIFICATE_PATH, certificate_payload(policy))

        proposal_key = keys[DocumentKind.PROPOSAL.value]
        certificate_key = keys[DocumentKind.CERTIFICATE.value]
        proposal_url = upload_bytes(proposal_key, proposal_pdf, "application/pdf")
        certificate_url = upload_bytes(certificate_key, certificate_pdf, "application/pdf")

        provider = storage_provider()
        try:
            # Re-read inside the transaction so a concurrent run's rows are not duplicated
            current = _documents_by_kind(db, policy.id)
            if DocumentKind.PROPOSAL.value not in current:
                db.add(PolicyDocument(
                    policy_id=policy.id,
                    kind=DocumentKind.PROPOSAL.value,
                    filename=os.path.basename(proposal_key),
                    storage_provider=provider,
                    storage_key=proposal_key,
                    url=proposal_url,
                ))
            if DocumentKind.CERTIFICATE.value not in current:
                db.add(PolicyDocument(
                    policy_id=policy.id,
                    kind=DocumentKind.CERTIFICATE.value,
                    filename=os.path.basename(certificate_key),
                    storage_provider=provider,
                    storage_key=certificate_key,
                    url=certificate_url,
                ))
            db.add(PolicyEvent(
                policy_id=policy.id,
                type=PolicyEventType.DOCS_GENERATED.value,
                data={"proposalUrl": proposal_url, "certificateUrl": certificate_url},
            ))
            db.commit()
        except Exception:
            db.rollback()
            raise
        logger.info(f"[policy.fulfill] documents stored for {policy.policy_number}")

    already_emailed = (
        db.query(PolicyEvent.id)
        .filter(PolicyEvent.policy_id == policy.id, PolicyEvent.type == PolicyEventType.EMAIL_SENT.value)
        .first()
    )
    if not already_emailed:
        res = send_policy_email(
            to=policy.email,
            policy_number=policy.policy_number,
            certificate_url=certificate_url,
            proposal_url=proposal_url,
            certificate_key=certificate_key,
            proposal_key=proposal_key,
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
            data={"ok": True, "to": policy.email, "messageId": (res or {}).get("id")},
        ))
        db.commit()
    else:
        logger.info(f"[policy.fulfill] email already sent for {policy.policy_number}")

    return {
        "proposalUrl": proposal_url,
        "certificateUrl": certificate_url,
        "policyNumber": policy.policy_number,
        "email": policy.email,
    }
