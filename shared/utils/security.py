"""
shared/utils/security.py
JWT creation/verification, password hashing, and payment signature helpers.
"""

import hashlib
import hmac
from datetime import datetime, timedelta, timezone
from typing import Optional

from jose import JWTError, jwt
from passlib.context import CryptContext

from config.settings import settings

pwd_context = CryptContext(schemes=["bcrypt"], deprecated="auto")

MIN_PASSWORD_LENGTH = 6


# ── JWT ───────────────────────────────────────────────────────

def create_access_token(
    admin_id: str,
    username: str,
    email: str,
    role: str,
    expires_delta: Optional[timedelta] = None,
) -> tuple[str, datetime]:
    """
    Create a signed JWT carrying the admin's identity and role.
    Returns (token, expires_at). There is no server-side revocation:
    a token stays valid until `exp`.
    """
    now = datetime.now(timezone.utc)
    expire = now + (expires_delta if expires_delta is not None else timedelta(days=settings.JWT_EXPIRE_DAYS))

    payload = {
        "sub": str(admin_id),
        "username": username,
        "email": email,
        "role": role,
        "iat": now,
        "exp": expire,
        "type": "access",
    }

    token = jwt.encode(payload, settings.JWT_SECRET_KEY, algorithm=settings.JWT_ALGORITHM)
    return token, expire


def verify_access_token(token: str) -> dict:
    """
    Decode and verify a JWT access token.
    Raises JWTError on invalid/expired token.
    """
    payload = jwt.decode(
        token,
        settings.JWT_SECRET_KEY,
        algorithms=[settings.JWT_ALGORITHM],
    )
    if payload.get("type") != "access":
        raise JWTError("Invalid token type")
    for claim in ("sub", "username", "role"):
        if claim not in payload:
            raise JWTError(f"Missing claim: {claim}")
    return payload


# ── Password ──────────────────────────────────────────────────

def hash_password(password: str) -> str:
    return pwd_context.hash(password)


def verify_password(plain_password: str, hashed_password: str) -> bool:
    try:
        return pwd_context.verify(plain_password, hashed_password)
    except (ValueError, TypeError):
        # Unrecognised or corrupt hash in the row
        return False


# ── Razorpay Signature ────────────────────────────────────────

def compute_razorpay_signature(order_id: str, payment_id: str, secret: str) -> str:
    """Hex HMAC-SHA256 of "order_id|payment_id" keyed with the API secret."""
    body = f"{order_id}|{payment_id}"
    return hmac.new(secret.encode(), body.encode(), hashlib.sha256).hexdigest()


def verify_razorpay_signature(
    order_id: str,
    payment_id: str,
    signature: str,
    secret: Optional[str] = None,
) -> bool:
    """Verify a Razorpay checkout signature in constant time."""
    expected = compute_razorpay_signature(
        order_id, payment_id, secret if secret is not None else settings.RAZORPAY_KEY_SECRET
    )
    return hmac.compare_digest(expected.encode(), (signature or "").encode())
