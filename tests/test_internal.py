import pytest

from conftest import INTERNAL_HEADERS, purchase
from models.policy import Policy
from utils.finalize import finalize_policy

INTERNAL_ROUTES = [
    "/api/internal/policy/render-certificate",
    "/api/internal/policy/render-proposal",
    "/api/internal/policy/fulfill",
    "/api/internal/policy/test-finalize",
    "/api/internal/email/test",
]


@pytest.mark.parametrize("path", INTERNAL_ROUTES)
def test_internal_routes_require_key(client, path):
    assert client.post(path, json={}).status_code == 401
    res = client.post(path, json={}, headers={"x-internal-key": "wrong"})
    assert res.status_code == 401
    assert res.text == "Unauthorized"


def test_unset_key_refuses_everything(client, monkeypatch):
    monkeypatch.delenv("INTERNAL_RENDER_KEY")
    res = client.post(INTERNAL_ROUTES[0], json={}, headers=INTERNAL_HEADERS)
    assert res.status_code == 401


def test_render_certificate_with_defaults(client):
    res = client.post("/api/internal/policy/render-certificate", json={}, headers=INTERNAL_HEADERS)
    assert res.status_code == 200
    assert res.headers["content-type"] == "application/pdf"
    assert res.headers["cache-control"] == "no-store"
    assert res.content.startswith(b"%PDF")


def test_render_proposal(client):
    body = {
        "policyNumber": "GTC-27-ABCDEFGH",
        "vrm": "MD15UOA",
        "startAtISO": "2027-03-03T14:05:00Z",
        "endAtISO": "2027-03-03T16:05:00Z",
        "durationMs": 7200000,
        "fullName": "Jane Driver",
    }
    res = client.post("/api/internal/policy/render-proposal", json=body, headers=INTERNAL_HEADERS)
    assert res.status_code == 200
    assert 'filename="proposal-GTC-27-ABCDEFGH.pdf"' in res.headers["content-disposition"]
    assert res.content.startswith(b"%PDF")


def test_render_rejects_invalid_json(client):
    res = client.post(
        "/api/internal/policy/render-certificate",
        content=b"{not json",
        headers={**INTERNAL_HEADERS, "content-type": "application/json"},
    )
    assert res.status_code == 400


def test_fulfill_endpoint(client, db, smtp):
    created = finalize_policy(db, purchase())

    res = client.post("/api/internal/policy/fulfill", json={"policyId": created["policyId"]}, headers=INTERNAL_HEADERS)
    assert res.status_code == 200
    body = res.json()
    assert body["ok"] is True
    assert body["policyNumber"] == created["policyNumber"]
    assert body["certificateUrl"].endswith(".pdf")
    assert len(smtp.sent) == 1


def test_fulfill_endpoint_errors(client):
    assert client.post("/api/internal/policy/fulfill", json={}, headers=INTERNAL_HEADERS).status_code == 400
    res = client.post("/api/internal/policy/fulfill", json={"policyId": "missing"}, headers=INTERNAL_HEADERS)
    assert res.status_code == 404
    assert res.json()["error"] == "Policy not found"


def test_test_finalize_applies_overrides(client, db):
    res = client.post(
        "/api/internal/policy/test-finalize",
        json={"email": "dev@example.com", "vrm": "AB12CDE"},
        headers=INTERNAL_HEADERS,
    )
    assert res.status_code == 200
    body = res.json()
    assert body["ok"] is True

    policy = db.query(Policy).filter(Policy.id == body["policyId"]).one()
    assert policy.payment_provider == "TEST"
    assert policy.email == "dev@example.com"
    assert policy.vrm == "AB12CDE"


def test_test_finalize_hidden_in_production(client, monkeypatch):
    monkeypatch.setattr("routers.internal.APP_ENV", "production")
    res = client.post("/api/internal/policy/test-finalize", json={}, headers=INTERNAL_HEADERS)
    assert res.status_code == 404


def test_email_test(client, smtp):
    assert client.post("/api/internal/email/test", json={}, headers=INTERNAL_HEADERS).status_code == 400

    res = client.post("/api/internal/email/test", json={"to": "dev@example.com"}, headers=INTERNAL_HEADERS)
    assert res.status_code == 200
    assert res.json()["ok"] is True
    assert smtp.sent[0]["to"] == ["dev@example.com"]
