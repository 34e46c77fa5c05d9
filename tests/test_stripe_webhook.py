import hashlib
import hmac
import json
import time

from models.policy import Policy, PolicyDocument, PolicyEvent

SECRET = "whsec_test_secret"


def _sign(payload: str, secret: str = SECRET, timestamp: int = None) -> str:
    ts = int(timestamp or time.time())
    signature = hmac.new(secret.encode("utf-8"), f"{ts}.{payload}".encode("utf-8"), hashlib.sha256).hexdigest()
    return f"t={ts},v1={signature}"


def _session(**overrides):
    session = {
        "id": "cs_test_webhook_1",
        "object": "checkout.session",
        "payment_status": "paid",
        "payment_intent": "pi_test_1",
        "currency": "gbp",
        "customer_email": "jane@example.com",
        "metadata": {
            "vrm": "MD15UOA",
            "make": "Ford",
            "model": "Fiesta",
            "year": "2015",
            "startAt": "2027-03-03T14:05:00.000Z",
            "endAt": "2027-03-03T16:05:00.000Z",
            "durationMs": "7200000",
            "totalAmountPence": "398",
            "fullName": "Jane Driver",
            "dob": "1990-05-28",
            "email": "jane@example.com",
            "licenceType": "UK",
            "address": "1 Test Street, London, SW1A 1AA",
        },
    }
    session.update(overrides)
    return session


def _event(session, event_type="checkout.session.completed"):
    return {"id": "evt_test_1", "type": event_type, "data": {"object": session}}


def _post(client, event, signature=None):
    payload = json.dumps(event)
    headers = {"content-type": "application/json"}
    headers["stripe-signature"] = signature if signature is not None else _sign(payload)
    return client.post("/api/stripe/webhook", content=payload, headers=headers)


def test_completed_checkout_creates_and_fulfils_policy(client, db, smtp):
    res = _post(client, _event(_session()))
    assert res.status_code == 200
    assert res.json() == {"received": True}

    policy = db.query(Policy).one()
    assert policy.payment_provider == "STRIPE"
    assert policy.payment_id == "cs_test_webhook_1"
    assert policy.stripe_payment_intent_id == "pi_test_1"
    assert policy.currency == "GBP"
    assert db.query(PolicyDocument).filter(PolicyDocument.policy_id == policy.id).count() == 2
    assert len(smtp.sent) == 1


def test_redelivery_is_idempotent(client, db, smtp):
    event = _event(_session())
    assert _post(client, event).status_code == 200
    assert _post(client, event).status_code == 200

    assert db.query(Policy).count() == 1
    assert db.query(PolicyDocument).count() == 2
    assert db.query(PolicyEvent).filter(PolicyEvent.type == "EMAIL_SENT").count() == 1
    assert len(smtp.sent) == 1


def test_missing_signature_header(client, db):
    res = client.post("/api/stripe/webhook", content=json.dumps(_event(_session())))
    assert res.status_code == 400
    assert db.query(Policy).count() == 0


def test_bad_signature_rejected(client, db):
    event = _event(_session())
    res = _post(client, event, signature=_sign(json.dumps(event), secret="whsec_wrong"))
    assert res.status_code == 400
    assert "signature" in res.json()["error"].lower()
    assert db.query(Policy).count() == 0


def test_other_event_types_acknowledged(client, db):
    res = _post(client, _event({"id": "pi_1"}, event_type="payment_intent.succeeded"))
    assert res.status_code == 200
    assert res.json() == {"received": True}
    assert db.query(Policy).count() == 0


def test_unpaid_session_acknowledged_without_policy(client, db):
    res = _post(client, _event(_session(payment_status="unpaid")))
    assert res.status_code == 200
    assert db.query(Policy).count() == 0


def test_missing_metadata_rejected(client, db):
    session = _session()
    del session["metadata"]["startAt"]
    res = _post(client, _event(session))
    assert res.status_code == 400
    assert res.json()["error"] == "Missing required checkout metadata"
    assert db.query(Policy).count() == 0


def test_invalid_metadata_is_rejected_without_retry(client, db):
    session = _session()
    session["metadata"]["durationMs"] = "60000"
    res = _post(client, _event(session))
    assert res.status_code == 400
    assert "durationMs does not match startAt/endAt" in res.json()["error"]
    assert db.query(Policy).count() == 0


def test_reversed_cover_window_is_rejected(client, db):
    session = _session()
    session["metadata"]["startAt"], session["metadata"]["endAt"] = (
        session["metadata"]["endAt"],
        session["metadata"]["startAt"],
    )
    res = _post(client, _event(session))
    assert res.status_code == 400
    assert "endAt must be after startAt" in res.json()["error"]
    assert db.query(Policy).count() == 0


def test_fulfillment_failure_still_acknowledged(client, db, smtp):
    smtp.fail_next = 1
    res = _post(client, _event(_session()))
    assert res.status_code == 200
    assert db.query(Policy).count() == 1
    assert db.query(PolicyEvent).filter(PolicyEvent.type == "EMAIL_SENT").count() == 0


def test_missing_webhook_secret(client, monkeypatch):
    monkeypatch.delenv("STRIPE_WEBHOOK_SECRET")
    res = _post(client, _event(_session()))
    assert res.status_code == 500
    assert res.json()["error"] == "Missing STRIPE_WEBHOOK_SECRET"


def test_unexpected_finalize_failure_is_retried(client, db, monkeypatch):
    import routers.stripe_webhook as webhook
    from utils.finalize import PolicyNumberExhaustedError

    def exhausted(db, data):
        raise PolicyNumberExhaustedError()

    monkeypatch.setattr(webhook, "finalize_policy", exhausted)
    res = _post(client, _event(_session()))
    assert res.status_code == 500
    assert res.json()["error"] == "Finalize failed"
