import hashlib
import hmac
import logging
from datetime import datetime, timedelta, timezone
from typing import Optional, Any
import uuid

from jose import JWTError, jwt

from app.config import settings

logger = logging.getLogger(__name__)


def create_access_token(
    subject: str | uuid.UUID,
    expires_delta: Optional[timedelta] = None,
    additional_claims: Optional[dict[str, Any]] = None
) -> str:
    """
    Create a JWT access token.

    In production tokens are minted by the identity provider; this helper
    produces compatible tokens for service-to-service calls and tests.
    """
    expire = datetime.now(timezone.utc) + (expires_delta or timedelta(minutes=30))
    to_encode = {
        "sub": str(subject),
        "exp": expire,
        "type": "access",
    }
    if additional_claims:
        to_encode.update(additional_claims)
    return jwt.encode(to_encode, settings.SECRET_KEY, algorithm=settings.ALGORITHM)


def verify_access_token(token: str) -> Optional[str]:
    """
    Verify an access token and return the subject (user id).
    Returns None if the token is invalid, expired or of the wrong type.
    """
    try:
        payload = jwt.decode(token, settings.SECRET_KEY, algorithms=[settings.ALGORITHM])
    except JWTError:
        return None

    if payload.get("type", "access") != "access":
        return None
    return payload.get("sub")


def verify_webhook_signature(body: bytes, signature: Optional[str]) -> bool:
    """
    Check the HMAC-SHA256 hex digest of a raw webhook body.
    Always False when ORDER_WEBHOOK_SECRET is not configured.
    """
    if not settings.ORDER_WEBHOOK_SECRET:
        logger.warning("Order webhook secret not configured")
        return False
    if not signature:
        return False

    expected = hmac.new(
        settings.ORDER_WEBHOOK_SECRET.encode(),
        body,
        hashlib.sha256
    ).hexdigest()
    return hmac.compare_digest(expected, signature)
