from fastapi import APIRouter, Request, HTTPException
from fastapi.responses import JSONResponse
import httpx
from typing import Any, Optional

from core.auth import get_client_ip
from core.config import logger, require_env, MissingConfigError
from utils.rate_limit import vehicle_lookup_throttle, check_rate_limit
from utils.validation import normalise_vrm

router = APIRouter(prefix="/api/vehicle", tags=["vehicle"])

VRM_MIN_LEN = 5
VRM_MAX_LEN = 8


def _get(obj: Any, *path) -> Any:
    for key in path:
        if not isinstance(obj, dict) or obj.get(key) is None:
            return None
        obj = obj[key]
    return obj


def _first(*values) -> Any:
    for v in values:
        if v is not None:
            return v
    return None


def _title(s: Any) -> Optional[str]:
    if not s or not isinstance(s, str):
        return None
    cleaned = s.strip().lower()
    if not cleaned:
        return None
    # Capitalise the first letter of each word, leave the rest lower-case
    out = []
    prev_alnum = False
    for ch in cleaned:
        out.append(ch.upper() if (ch.isalpha() and not prev_alnum) else ch)
        prev_alnum = ch.isalnum() or ch == "_"
    return "".join(out)


def _year(v: Any) -> Optional[int]:
    if v is None or isinstance(v, bool):
        return None
    try:
        return int(v)
    except (TypeError, ValueError):
        return None


def build_summary(payload: Any) -> dict:
    """Flatten the provider payload into the fields the quote form needs."""
    vi = _first(
        _get(payload, "Results", "VehicleDetails", "VehicleIdentification"),
        _get(payload, "results", "vehicleDetails", "vehicleIdentification"),
    )
    colour = _first(
        _get(payload, "Results", "VehicleDetails", "VehicleHistory", "ColourDetails", "CurrentColour"),
        _get(payload, "Results", "VehicleDetails", "VehicleHistory", "ColourDetails", "currentColour"),
    )
    make = _first(_get(vi, "DvlaMake"), _get(vi, "dvlaMake"), _get(payload, "Results", "ModelDetails", "ModelIdentification", "Make"))
    model = _first(_get(vi, "DvlaModel"), _get(vi, "dvlaModel"), _get(payload, "Results", "ModelDetails", "ModelIdentification", "Model"))
    year = _first(_get(vi, "YearOfManufacture"), _get(vi, "yearOfManufacture"))
    fuel = _first(_get(vi, "DvlaFuelType"), _get(vi, "dvlaFuelType"), _get(payload, "Results", "ModelDetails", "Powertrain", "FuelType"))

    return {
        "make": _title(make),
        "model": _title(model),
        "year": _year(year),
        "colour": _title(colour),
        "fuelType": _title(fuel),
        "providerStatus": _first(_get(payload, "ResponseInformation", "StatusCode"), _get(payload, "responseInformation", "statusCode")),
        "providerMessage": _first(_get(payload, "ResponseInformation", "StatusMessage"), _get(payload, "responseInformation", "statusMessage")),
    }


@router.post("/lookup")
async def vehicle_lookup(request: Request):
    ip = get_client_ip(request)
    allowed, message = check_rate_limit(vehicle_lookup_throttle, f"vehicle_lookup:{ip}")
    if not allowed:
        return JSONResponse({"ok": False, "error": message}, status_code=429)

    try:
        body = await request.json()
    except ValueError:
        body = None
    vrm_raw = body.get("vrm") if isinstance(body, dict) else None
    if not vrm_raw or not isinstance(vrm_raw, str):
        return JSONResponse({"ok": False, "error": "Vehicle registration is required"}, status_code=400)

    try:
        api_key = require_env("VEHICLE_DATA_GLOBAL_API_KEY")
        endpoint = require_env("VEHICLE_DATA_GLOBAL_ENDPOINT")
        package = require_env("VEHICLE_DATA_GLOBAL_PACKAGE")
    except MissingConfigError as ex:
        logger.error(f"[vehicle.lookup] {ex}")
        return JSONResponse({"ok": False, "error": "Server misconfigured (missing Vehicle Data Global env vars)"}, status_code=500)

    vrm = normalise_vrm(vrm_raw)
    if len(vrm) < VRM_MIN_LEN or len(vrm) > VRM_MAX_LEN:
        return JSONResponse({"ok": False, "error": "Please enter a valid registration number"}, status_code=400)

    params = {"apiKey": api_key, "packageName": package, "vrm": vrm}
    logger.info(f"[vehicle.lookup] upstream request vrm={vrm}")

    async with httpx.AsyncClient(timeout=20.0) as client:
        try:
            r = await client.get(endpoint, params=params, headers={"accept": "application/json"})
        except httpx.RequestError as ex:
            logger.error(f"[vehicle.lookup] upstream request error: {ex}")
            raise HTTPException(status_code=502, detail={"ok": False, "error": "Vehicle lookup failed"})

    try:
        provider_data = r.json()
    except ValueError:
        provider_data = {"raw": r.text}

    if r.status_code < 200 or r.status_code >= 300:
        provider_message = _first(
            _get(provider_data, "ResponseInformation", "StatusMessage"),
            _get(provider_data, "responseInformation", "statusMessage"),
        )
        logger.warning(f"[vehicle.lookup] upstream {r.status_code} for {vrm}: {provider_message}")
        raise HTTPException(
            status_code=502,
            detail={"ok": False, "error": "Vehicle lookup failed", "status": r.status_code, "providerMessage": provider_message},
        )

    return {
        "ok": True,
        "vrm": vrm,
        "vehicle": provider_data,
        "summary": build_summary(provider_data),
    }
