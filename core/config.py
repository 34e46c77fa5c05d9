import os
import logging
from dotenv import load_dotenv
from botocore.client import Config as BotoConfig
import boto3

# Load .env from project root
try:
    load_dotenv(dotenv_path=os.path.abspath(os.path.join(os.path.dirname(__file__), "..", ".env")))
except Exception:
    load_dotenv()


class MissingConfigError(RuntimeError):
    """Raised when a required environment variable is absent at request time."""

    def __init__(self, name: str):
        self.name = name
        super().__init__(f"Missing {name}")


def require_env(name: str) -> str:
    v = (os.getenv(name) or "").strip()
    if not v:
        raise MissingConfigError(name)
    return v


APP_ENV = (os.getenv("APP_ENV", "development") or "development").strip().lower()

# Storage (Cloudflare R2 / any S3-compatible bucket)
R2_ACCOUNT_ID = os.getenv("R2_ACCOUNT_ID", "")
R2_ACCESS_KEY_ID = os.getenv("R2_ACCESS_KEY_ID", "")
R2_SECRET_ACCESS_KEY = os.getenv("R2_SECRET_ACCESS_KEY", "")
R2_BUCKET = os.getenv("R2_BUCKET", "")
R2_PUBLIC_BASE_URL = (os.getenv("R2_PUBLIC_BASE_URL", "") or "").strip().strip('"').strip("'").rstrip("/")
R2_CUSTOM_DOMAIN = (os.getenv("R2_CUSTOM_DOMAIN", "") or "").strip().strip('"').strip("'")

# Policy documents live under this prefix in the bucket
POLICY_DOCS_PREFIX = (os.getenv("POLICY_DOCS_PREFIX", "policies") or "policies").strip().strip("/")

# Branding
APP_NAME = os.getenv("APP_NAME", "GoTempCover")
SUPPORT_EMAIL = os.getenv("SUPPORT_EMAIL", "support@gotempcover.co.uk")
CANONICAL_HOST = (os.getenv("CANONICAL_HOST", "www.gotempcover.co.uk") or "").strip().lower()

# Email (SMTP relay)
MAIL_FROM = os.getenv("MAIL_FROM", "GoTempCover <no-reply@gotempcover.co.uk>")
MAIL_REPLY_TO = os.getenv("MAIL_REPLY_TO", "").strip()
SMTP_HOST = os.getenv("SMTP_HOST", "")
SMTP_PORT = int(os.getenv("SMTP_PORT", "587"))
SMTP_USER = os.getenv("SMTP_USER", "")
SMTP_PASS = os.getenv("SMTP_PASS", "")

# Logging
logging.basicConfig(level=logging.INFO, format="%(asctime)s | %(levelname)s | %(message)s")
logger = logging.getLogger("tempcover")

# Static dir helper (local document storage when no bucket is configured)
STATIC_DIR = os.path.join(os.path.dirname(__file__), "..", "static")
STATIC_DIR = os.path.abspath(STATIC_DIR)

# Signature image stamped on the PDFs (optional)
SIGNATURE_IMAGE_PATH = os.getenv("SIGNATURE_IMAGE_PATH", os.path.join(STATIC_DIR, "brand", "signature.png"))


def get_site_url() -> str:
    """Public base URL of this deployment, used for internal render calls and local links."""
    raw = (
        os.getenv("SITE_URL")
        or os.getenv("PUBLIC_SITE_URL")
        or os.getenv("PUBLIC_BASE_URL")
        or ""
    ).strip()
    if raw:
        return raw.rstrip("/")
    if APP_ENV != "production":
        return "http://localhost:8000"
    raise MissingConfigError("SITE_URL")


# S3/R2 client for storage operations
s3 = None
s3_presign_client = None  # Separate client for presigned URLs with custom domain

if R2_ACCOUNT_ID and R2_ACCESS_KEY_ID and R2_SECRET_ACCESS_KEY:
    s3 = boto3.resource(
        "s3",
        endpoint_url=f"https://{R2_ACCOUNT_ID}.r2.cloudflarestorage.com",
        aws_access_key_id=R2_ACCESS_KEY_ID,
        aws_secret_access_key=R2_SECRET_ACCESS_KEY,
        config=BotoConfig(signature_version="s3v4"),
        region_name="auto",
    )

    # Normalize custom domain to remove protocol if mistakenly included
    _CUSTOM = R2_CUSTOM_DOMAIN.replace("https://", "").replace("http://", "") if R2_CUSTOM_DOMAIN else ""
    if _CUSTOM:
        s3_presign_client = boto3.client(
            "s3",
            endpoint_url=f"https://{_CUSTOM}",
            aws_access_key_id=R2_ACCESS_KEY_ID,
            aws_secret_access_key=R2_SECRET_ACCESS_KEY,
            config=BotoConfig(signature_version="s3v4"),
            region_name="auto",
        )
