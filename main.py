from fastapi import FastAPI, Request
from fastapi.responses import RedirectResponse
from fastapi.middleware.cors import CORSMiddleware
from fastapi.staticfiles import StaticFiles
import os

from core.config import logger, APP_NAME, CANONICAL_HOST, STATIC_DIR  # type: ignore

# Routers
from routers import (
    policy, stripe_webhook, checkout, internal, retrieve_policy, vehicle,
)  # type: ignore

app = FastAPI(title=f"{APP_NAME} API")

# ---- CORS setup ----
# Prefer ALLOWED_ORIGINS, but also support legacy env names used in .env
_default_origins = ",".join([
    "https://gotempcover.co.uk",
    "https://www.gotempcover.co.uk",
    "http://localhost:3000",
    "http://localhost:5173",
    "http://127.0.0.1:3000",
    "http://127.0.0.1:5173",
])
_origins_env = os.getenv("ALLOWED_ORIGINS") or os.getenv("CORS_ORIGINS") or os.getenv("FRONTEND_ORIGIN") or _default_origins
ALLOWED_ORIGINS = [o.strip() for o in _origins_env.split(",") if o.strip()]
# Optional regex to match preview deployments - never allow .* here
_origin_regex_raw = os.getenv("ALLOWED_ORIGINS_REGEX") or os.getenv("CORS_ORIGIN_REGEX") or ""
_origin_regex_env = _origin_regex_raw if (_origin_regex_raw and _origin_regex_raw.strip() not in (".*", "^.*$", ".+")) else None
app.add_middleware(
    CORSMiddleware,
    allow_origins=ALLOWED_ORIGINS,
    allow_origin_regex=_origin_regex_env,
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)


# --- Security headers ---
@app.middleware("http")
async def add_security_headers(request, call_next):
    response = await call_next(request)
    try:
        response.headers.setdefault("Strict-Transport-Security", "max-age=63072000; includeSubDomains; preload")
        response.headers.setdefault("X-Content-Type-Options", "nosniff")
        response.headers.setdefault("Referrer-Policy", "strict-origin-when-cross-origin")
        response.headers.setdefault("X-Frame-Options", "DENY")
        response.headers.setdefault("Permissions-Policy", "geolocation=(), microphone=(), camera=()")
        # PDFs are served inline from /static when no bucket is configured
        response.headers.setdefault(
            "Content-Security-Policy",
            "default-src 'self'; img-src 'self' data: https:; object-src 'none'; base-uri 'self'; frame-ancestors 'none'",
        )
    except Exception:
        pass
    return response


def _get_request_host(request: Request) -> str:
    host = (request.headers.get("x-forwarded-host") or request.headers.get("host") or "")
    host = (host.split(":")[0] or "").strip().lower().strip(".")
    return host


def _bare_domain(host: str) -> str:
    return host[4:] if host.startswith("www.") else host


# --- Canonical host (apex -> www) ---
@app.middleware("http")
async def canonical_host_redirect(request: Request, call_next):
    path = request.url.path
    if CANONICAL_HOST and not path.startswith("/api"):
        host = _get_request_host(request)
        if host and host != CANONICAL_HOST and host == _bare_domain(CANONICAL_HOST):
            target = f"https://{CANONICAL_HOST}{path}"
            if request.url.query:
                target = f"{target}?{request.url.query}"
            return RedirectResponse(url=target, status_code=308)
    return await call_next(request)


# ---- Static mount (local document storage) ----
os.makedirs(STATIC_DIR, exist_ok=True)
app.mount("/static", StaticFiles(directory=STATIC_DIR), name="static")


# ---- Include routers ----
app.include_router(policy.router)
app.include_router(stripe_webhook.router)
app.include_router(checkout.router)
app.include_router(internal.router)
app.include_router(retrieve_policy.router)
app.include_router(vehicle.router)


@app.on_event("startup")
async def _init_schema():
    try:
        from core.database import init_db
        init_db()
    except Exception as _ex:
        logger.warning(f"init_db failed: {_ex}")


@app.get("/api/health")
async def health():
    return {"ok": True, "service": APP_NAME}
