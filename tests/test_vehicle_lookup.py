import httpx
import pytest

import routers.vehicle as vehicle
from routers.vehicle import build_summary

PROVIDER_OK = {
    "ResponseInformation": {"StatusCode": 0, "StatusMessage": "Success"},
    "Results": {
        "VehicleDetails": {
            "VehicleIdentification": {
                "DvlaMake": "FORD",
                "DvlaModel": "FIESTA ZETEC-S",
                "YearOfManufacture": "2015",
                "DvlaFuelType": "PETROL",
            },
            "VehicleHistory": {"ColourDetails": {"CurrentColour": "MOONDUST SILVER"}},
        }
    },
}


@pytest.fixture
def upstream(monkeypatch):
    """Route the lookup's AsyncClient through a MockTransport; returns the captured requests."""
    state = {"status": 200, "json": PROVIDER_OK, "requests": [], "error": None}

    def handler(request: httpx.Request):
        state["requests"].append(request)
        if state["error"]:
            raise state["error"]
        return httpx.Response(state["status"], json=state["json"])

    real_client = httpx.AsyncClient

    def factory(*args, **kwargs):
        kwargs["transport"] = httpx.MockTransport(handler)
        return real_client(*args, **kwargs)

    monkeypatch.setattr(vehicle.httpx, "AsyncClient", factory)
    return state


def _lookup(client, ip, body):
    return client.post("/api/vehicle/lookup", json=body, headers={"X-Forwarded-For": ip})


def test_lookup_returns_summary(client, upstream, client_ip):
    res = _lookup(client, client_ip, {"vrm": " md15 uoa "})
    assert res.status_code == 200
    body = res.json()
    assert body["ok"] is True
    assert body["vrm"] == "MD15UOA"
    assert body["summary"] == {
        "make": "Ford",
        "model": "Fiesta Zetec-S",
        "year": 2015,
        "colour": "Moondust Silver",
        "fuelType": "Petrol",
        "providerStatus": 0,
        "providerMessage": "Success",
    }

    sent = upstream["requests"][0]
    assert sent.url.params["vrm"] == "MD15UOA"
    assert sent.url.params["apiKey"] == "vdg-key"
    assert sent.url.params["packageName"] == "VehicleDetails"


@pytest.mark.parametrize("body", [{}, {"vrm": ""}, {"vrm": 1234}])
def test_vrm_required(client, upstream, client_ip, body):
    res = _lookup(client, client_ip, body)
    assert res.status_code == 400
    assert upstream["requests"] == []


@pytest.mark.parametrize("vrm", ["AB1", "ABCDEFGHJ"])
def test_vrm_length(client, upstream, client_ip, vrm):
    res = _lookup(client, client_ip, {"vrm": vrm})
    assert res.status_code == 400
    assert res.json()["error"] == "Please enter a valid registration number"


def test_upstream_error_is_502(client, upstream, client_ip):
    upstream["status"] = 404
    upstream["json"] = {"ResponseInformation": {"StatusCode": 13, "StatusMessage": "No vehicle found"}}
    res = _lookup(client, client_ip, {"vrm": "AB12CDE"})
    assert res.status_code == 502
    detail = res.json()["detail"]
    assert detail["status"] == 404
    assert detail["providerMessage"] == "No vehicle found"


def test_upstream_unreachable_is_502(client, upstream, client_ip):
    upstream["error"] = httpx.ConnectError("connection refused")
    res = _lookup(client, client_ip, {"vrm": "AB12CDE"})
    assert res.status_code == 502


def test_missing_provider_config(client, upstream, client_ip, monkeypatch):
    monkeypatch.delenv("VEHICLE_DATA_GLOBAL_API_KEY")
    res = _lookup(client, client_ip, {"vrm": "AB12CDE"})
    assert res.status_code == 500
    assert upstream["requests"] == []


def test_summary_handles_camel_case_and_gaps():
    payload = {
        "results": {"vehicleDetails": {"vehicleIdentification": {"dvlaMake": "land rover", "yearOfManufacture": "n/a"}}},
        "responseInformation": {"statusCode": 0, "statusMessage": "ok"},
    }
    summary = build_summary(payload)
    assert summary["make"] == "Land Rover"
    assert summary["model"] is None
    assert summary["year"] is None
    assert summary["colour"] is None
    assert summary["providerMessage"] == "ok"


def test_summary_of_non_dict():
    assert build_summary("garbage")["make"] is None
