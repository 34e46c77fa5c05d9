import os
import smtplib
import sys
import uuid

import pytest

# Configuration must be in place before any app module is imported
os.environ["DATABASE_URL"] = "sqlite://"
os.environ["APP_ENV"] = "test"
os.environ["SITE_URL"] = "http://localhost:8000"
os.environ["CANONICAL_HOST"] = "www.gotempcover.co.uk"
os.environ["INTERNAL_RENDER_KEY"] = "test-internal-key"
os.environ["STRIPE_SECRET_KEY"] = "sk_test_123"
os.environ["STRIPE_WEBHOOK_SECRET"] = "whsec_test_secret"
os.environ["SMTP_HOST"] = "smtp.test.local"
os.environ["MAIL_FROM"] = "GoTempCover <no-reply@gotempcover.co.uk>"
os.environ["VEHICLE_DATA_GLOBAL_API_KEY"] = "vdg-key"
os.environ["VEHICLE_DATA_GLOBAL_ENDPOINT"] = "https://vdg.test/r2/lookup"
os.environ["VEHICLE_DATA_GLOBAL_PACKAGE"] = "VehicleDetails"
os.environ["REDIS_URL"] = ""
for _name in ("R2_ACCOUNT_ID", "R2_ACCESS_KEY_ID", "R2_SECRET_ACCESS_KEY", "R2_BUCKET", "R2_CUSTOM_DOMAIN"):
    os.environ[_name] = ""

sys.path.insert(0, os.path.dirname(os.path.dirname(os.path.abspath(__file__))))

from fastapi.testclient import TestClient  # noqa: E402

from core.database import Base, SessionLocal, engine  # noqa: E402
import models.policy  # noqa: E402,F401
import utils.fulfill  # noqa: E402
import utils.storage  # noqa: E402
from main import app  # noqa: E402

INTERNAL_HEADERS = {"x-internal-key": "test-internal-key"}


class FakeSMTP:
    """Stands in for smtplib.SMTP and records every accepted message."""

    sent: list = []
    fail_next = 0

    def __init__(self, host, port, timeout=None):
        self.host = host
        self.port = port

    def __enter__(self):
        return self

    def __exit__(self, *exc):
        return False

    def starttls(self):
        pass

    def login(self, user, password):
        pass

    def sendmail(self, from_addr, to_addrs, msg):
        if FakeSMTP.fail_next:
            FakeSMTP.fail_next -= 1
            raise smtplib.SMTPRecipientsRefused({to_addrs[0]: (550, b"rejected")})
        FakeSMTP.sent.append({"from": from_addr, "to": list(to_addrs), "msg": msg})


@pytest.fixture(autouse=True)
def _reset_db():
    Base.metadata.drop_all(bind=engine)
    Base.metadata.create_all(bind=engine)
    yield


@pytest.fixture(autouse=True)
def local_storage(tmp_path, monkeypatch):
    static_dir = tmp_path / "static"
    static_dir.mkdir()
    monkeypatch.setattr(utils.storage, "STATIC_DIR", str(static_dir))
    utils.storage._URL_CACHE.clear()
    return static_dir


@pytest.fixture(autouse=True)
def smtp(monkeypatch):
    FakeSMTP.sent = []
    FakeSMTP.fail_next = 0
    monkeypatch.setattr(smtplib, "SMTP", FakeSMTP)
    return FakeSMTP


@pytest.fixture(autouse=True)
def render_calls(monkeypatch):
    """Replace the HTTP round-trip to the render endpoints with canned PDF bytes."""
    calls = []

    def fake_render(path, payload):
        calls.append((path, payload))
        return b"%PDF-1.4\n% " + path.encode("utf-8") + b"\n%%EOF"

    monkeypatch.setattr(utils.fulfill, "_render_pdf", fake_render)
    return calls


@pytest.fixture
def db():
    session = SessionLocal()
    try:
        yield session
    finally:
        session.close()


@pytest.fixture
def client():
    with TestClient(app) as c:
        yield c


@pytest.fixture
def client_ip():
    """A fresh source address so per-IP rate limits do not leak between tests."""
    return f"10.{uuid.uuid4().int % 250}.{uuid.uuid4().int % 250}.{uuid.uuid4().int % 250}"


def purchase(**overrides):
    """A valid finalize payload for a two hour cover window next year."""
    data = {
        "vrm": "md15 uoa",
        "make": "Ford",
        "model": "Fiesta",
        "year": "2015",
        "startAt": "2027-03-03T14:05:00Z",
        "endAt": "2027-03-03T16:05:00Z",
        "durationMs": 2 * 3600 * 1000,
        "totalAmountPence": 398,
        "fullName": "Jane Driver",
        "dob": "1990-05-28",
        "email": "Jane.Driver@Example.com",
        "licenceType": "UK",
        "address": "1 Test Street, London, SW1A 1AA",
        "paymentProvider": "STRIPE",
        "paymentId": f"cs_test_{uuid.uuid4().hex[:12]}",
        "paymentStatus": "PAID",
        "currency": "GBP",
    }
    data.update(overrides)
    return data
