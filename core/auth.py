import hmac
import os
from fastapi import Request

from core.config import logger


def internal_key_ok(request: Request) -> bool:
    """True when the request carries the shared internal key.

    Internal endpoints (PDF rendering, fulfillment, dev helpers) are only ever
    called server-to-server. An unset INTERNAL_RENDER_KEY refuses everything.
    """
    expected = (os.getenv("INTERNAL_RENDER_KEY") or "").strip()
    if not expected:
        logger.warning("[auth.internal] INTERNAL_RENDER_KEY not configured; refusing internal call")
        return False
    provided = (request.headers.get("x-internal-key") or "").strip()
    return hmac.compare_digest(provided.encode("utf-8"), expected.encode("utf-8"))


def get_client_ip(request: Request) -> str:
    ip = request.client.host if request.client else "unknown"
    forwarded = request.headers.get("X-Forwarded-For")
    if forwarded:
        ip = forwarded.split(",")[0].strip()
    return ip
