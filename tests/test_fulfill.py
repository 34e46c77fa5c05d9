import pytest

from conftest import purchase
from models.policy import PolicyDocument, PolicyEvent
from utils.finalize import finalize_policy
from utils.fulfill import (
    PolicyNotFoundError,
    RENDER_CERTIFICATE_PATH,
    RENDER_PROPOSAL_PATH,
    document_keys,
    fulfill_policy,
)
from utils.policy_email import EmailDeliveryError


def _events(db, policy_id, kind):
    return db.query(PolicyEvent).filter(PolicyEvent.policy_id == policy_id, PolicyEvent.type == kind).all()


def test_fulfill_generates_stores_and_emails(db, smtp, render_calls, local_storage):
    created = finalize_policy(db, purchase())
    number = created["policyNumber"]

    res = fulfill_policy(db, created["policyId"])

    assert res["policyNumber"] == number
    assert res["email"] == "jane.driver@example.com"
    assert res["certificateUrl"] == f"http://localhost:8000/static/policies/{number}/certificate-{number}.pdf"
    assert res["proposalUrl"].endswith(f"/proposal-{number}.pdf")
    assert [p for p, _ in render_calls] == [RENDER_PROPOSAL_PATH, RENDER_CERTIFICATE_PATH]

    keys = document_keys(number)
    for key in keys.values():
        assert (local_storage / key).read_bytes().startswith(b"%PDF")

    docs = db.query(PolicyDocument).filter(PolicyDocument.policy_id == created["policyId"]).all()
    assert sorted(d.kind for d in docs) == ["CERTIFICATE", "PROPOSAL"]
    assert all(d.storage_provider == "LOCAL" for d in docs)

    assert len(smtp.sent) == 1
    msg = smtp.sent[0]
    assert msg["to"] == ["jane.driver@example.com"]
    assert f'filename="certificate-{number}.pdf"' in msg["msg"]
    assert f'filename="statement-of-fact-{number}.pdf"' in msg["msg"]

    sent = _events(db, created["policyId"], "EMAIL_SENT")
    assert len(sent) == 1
    assert sent[0].data["ok"] is True
    assert sent[0].data["messageId"]


def test_fulfill_twice_is_idempotent(db, smtp, render_calls):
    created = finalize_policy(db, purchase())

    first = fulfill_policy(db, created["policyId"])
    second = fulfill_policy(db, created["policyId"])

    assert first == second
    assert len(render_calls) == 2
    assert db.query(PolicyDocument).filter(PolicyDocument.policy_id == created["policyId"]).count() == 2
    assert len(_events(db, created["policyId"], "DOCS_GENERATED")) == 1
    assert len(_events(db, created["policyId"], "EMAIL_SENT")) == 1
    assert len(smtp.sent) == 1


def test_failed_email_is_retried_on_next_run(db, smtp):
    created = finalize_policy(db, purchase())
    smtp.fail_next = 1

    with pytest.raises(EmailDeliveryError):
        fulfill_policy(db, created["policyId"])
    db.rollback()

    # Documents were committed before the email attempt
    assert db.query(PolicyDocument).filter(PolicyDocument.policy_id == created["policyId"]).count() == 2
    assert _events(db, created["policyId"], "EMAIL_SENT") == []

    fulfill_policy(db, created["policyId"])
    assert len(smtp.sent) == 1
    assert len(_events(db, created["policyId"], "EMAIL_SENT")) == 1


def test_render_failure_stores_nothing(db, smtp, monkeypatch):
    import utils.fulfill
    from utils.fulfill import RenderError

    def broken(path, payload):
        raise RenderError(f"Render failed {path} (500): boom")

    monkeypatch.setattr(utils.fulfill, "_render_pdf", broken)
    created = finalize_policy(db, purchase())

    with pytest.raises(RenderError):
        fulfill_policy(db, created["policyId"])
    assert db.query(PolicyDocument).count() == 0
    assert smtp.sent == []


def test_unknown_policy(db):
    with pytest.raises(PolicyNotFoundError):
        fulfill_policy(db, "00000000-0000-0000-0000-000000000000")


def test_payloads_carry_policy_facts(db, render_calls):
    created = finalize_policy(db, purchase())
    fulfill_policy(db, created["policyId"])

    payloads = dict(render_calls)
    proposal = payloads[RENDER_PROPOSAL_PATH]
    certificate = payloads[RENDER_CERTIFICATE_PATH]
    assert proposal["policyNumber"] == created["policyNumber"]
    assert proposal["durationMs"] == 2 * 3600 * 1000
    assert proposal["dobISO"] == "1990-05-28"
    assert proposal["startAtISO"].startswith("2027-03-03T14:05:00")
    assert certificate["certificateNumber"] == created["policyNumber"]
    assert certificate["policyholderName"] == "Jane Driver"
