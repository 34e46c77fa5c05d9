import os
import time
from typing import Optional
from urllib.parse import quote

from botocore.exceptions import ClientError

from core.config import s3, s3_presign_client, R2_BUCKET, R2_PUBLIC_BASE_URL, R2_CUSTOM_DOMAIN, STATIC_DIR, logger, get_site_url

# Simple in-process cache for presigned URLs
_URL_CACHE: dict[str, tuple[str, float]] = {}
_CACHE_TTL = int(os.getenv("URL_CACHE_TTL_SEC", "300") or "300")


def bucket_configured() -> bool:
    return bool(s3 and R2_BUCKET)


def storage_provider() -> str:
    """Name recorded on policy_documents rows for where the bytes live."""
    return "R2" if bucket_configured() else "LOCAL"


def public_url(key: str) -> str:
    """Absolute, durable URL for a stored object.

    With a bucket this is R2_PUBLIC_BASE_URL + key; locally the file is served
    from the /static mount of this app.
    """
    k = quote(str(key or "").lstrip("/"), safe="/")
    if bucket_configured():
        if not R2_PUBLIC_BASE_URL:
            logger.warning("[storage.public_url] R2_PUBLIC_BASE_URL not set; stored URL will be bucket-relative")
            return f"/{k}"
        return f"{R2_PUBLIC_BASE_URL}/{k}"
    return f"{get_site_url()}/static/{k}"


def upload_bytes(key: str, data: bytes, content_type: str = "application/pdf") -> str:
    """Store bytes under key, overwriting any existing object. Returns the public URL."""
    if not bucket_configured():
        local_path = os.path.join(STATIC_DIR, key)
        os.makedirs(os.path.dirname(local_path), exist_ok=True)
        with open(local_path, "wb") as f:
            f.write(data)
        logger.info(f"[storage.upload] saved locally: {local_path}")
        return public_url(key)

    bucket = s3.Bucket(R2_BUCKET)
    try:
        bucket.put_object(Key=key, Body=data, ContentType=content_type, ACL="private", CacheControl="private, max-age=0")
    except ClientError:
        # Some S3-compatible stores reject the ACL/CacheControl pair
        bucket.put_object(Key=key, Body=data, ContentType=content_type)
    logger.info(f"[storage.upload] {R2_BUCKET}/{key} ({len(data)} bytes)")
    return public_url(key)


def get_presigned_url(key: str, expires_in: int = 3600) -> str:
    """Central helper: returns cached presigned URL if available, otherwise generates.
    Falls back to the public/local URL when no bucket client exists.
    """
    try:
        k = f"{key}|{int(expires_in)}"
        now = time.time()
        cached = _URL_CACHE.get(k)
        if cached and cached[1] > now:
            return cached[0]

        url = ""
        if R2_CUSTOM_DOMAIN and s3_presign_client:
            url = s3_presign_client.generate_presigned_url(
                "get_object",
                Params={"Bucket": R2_BUCKET, "Key": key},
                ExpiresIn=expires_in,
            )
        elif bucket_configured():
            url = s3.meta.client.generate_presigned_url(
                "get_object",
                Params={"Bucket": R2_BUCKET, "Key": key},
                ExpiresIn=expires_in,
            )
        else:
            return public_url(key)

        if url:
            _URL_CACHE[k] = (url, now + max(1, min(_CACHE_TTL, int(expires_in))))
        return url
    except Exception as ex:
        logger.warning(f"[storage.presign] failed for {key}: {ex}")
        return ""


def read_bytes_key(key: str) -> Optional[bytes]:
    try:
        if bucket_configured():
            obj = s3.Object(R2_BUCKET, key)
            try:
                return obj.get()["Body"].read()
            except ClientError as ce:
                # Treat missing object as None without warning noise
                if ce.response.get('Error', {}).get('Code') in ('NoSuchKey', '404'):
                    return None
                raise
        path = os.path.join(STATIC_DIR, key)
        if not os.path.isfile(path):
            return None
        with open(path, "rb") as f:
            return f.read()
    except Exception as ex:
        logger.warning(f"[storage.read] failed for {key}: {ex}")
        return None
