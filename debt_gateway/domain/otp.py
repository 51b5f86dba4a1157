"""One-time password issuance and verification rules"""

import hmac
import secrets
from datetime import datetime, timedelta
from typing import Optional
from debt_gateway.utils.date_utils import as_utc


def generate_otp(length: int = 6) -> str:
    """Random numeric code, zero-padded to length digits"""
    if length <= 0:
        raise ValueError("OTP length must be positive")
    return f"{secrets.randbelow(10 ** length):0{length}d}"


def otp_expiry(issued_at: datetime, ttl: timedelta) -> datetime:
    return as_utc(issued_at) + ttl


def is_otp_valid(
    stored_code: Optional[str],
    expires_at: Optional[datetime],
    submitted_code: str,
    now: datetime,
) -> bool:
    """
    Check a submitted OTP against the stored challenge.

    Requirements:
    - Code must match exactly (compared in constant time)
    - Current time must be strictly before the expiry
    - A challenge without code or expiry never verifies
    """
    if not stored_code or expires_at is None or submitted_code is None:
        return False
    if not hmac.compare_digest(str(stored_code), str(submitted_code)):
        return False
    return as_utc(now) < as_utc(expires_at)
