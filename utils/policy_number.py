import secrets
from datetime import datetime, timezone
from typing import Optional

# No 0/O, 1/I: numbers are read out over the phone
POLICY_NUMBER_ALPHABET = "ABCDEFGHJKLMNPQRSTUVWXYZ23456789"
POLICY_NUMBER_PREFIX = "GTC"
POLICY_NUMBER_SUFFIX_LEN = 8


def generate_policy_number(timestamp: Optional[datetime] = None) -> str:
    """Generate a human-readable policy number, e.g. GTC-26-7KQ2MZ9P.

    The random suffix carries no checksum; uniqueness is enforced by the
    database and callers retry on collision.
    """
    ts = timestamp or datetime.now(timezone.utc)
    year_part = ts.strftime("%y")
    suffix = "".join(secrets.choice(POLICY_NUMBER_ALPHABET) for _ in range(POLICY_NUMBER_SUFFIX_LEN))
    return f"{POLICY_NUMBER_PREFIX}-{year_part}-{suffix}"
