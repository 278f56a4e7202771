"""FastAPI dependencies for authentication, rate limiting and idempotency."""

import time
from collections import deque
from typing import Deque, Dict, Optional
from uuid import UUID

import jwt
from fastapi import Depends, Header, Request
from jwt import PyJWTError

from .config import settings
from .database import get_db
from .exceptions import ForbiddenError, RateLimitedError, UnauthorizedError, ValidationError

SUPER_ADMIN = "super_admin"


def _extract_bearer_token(authorization: str) -> str:
    try:
        scheme, token = authorization.split()
    except ValueError:
        raise UnauthorizedError("Invalid authorization header format")
    if scheme.lower() != "bearer":
        raise UnauthorizedError("Invalid authentication scheme")
    return token


def decode_access_token(token: str) -> dict:
    """
    Verify a bearer token and build the user context.

    Tokens are HS256 JWTs signed by the identity provider with the shared
    secret. `sub` must be the user's UUID; `exp` is required.

    Raises:
        UnauthorizedError: If the token is invalid, expired or malformed
    """
    options = {"require": ["exp", "sub"], "verify_aud": settings.jwt_audience is not None}
    try:
        payload = jwt.decode(
            token,
            settings.bearer_token_secret,
            algorithms=["HS256"],
            audience=settings.jwt_audience,
            options=options,
        )
    except jwt.ExpiredSignatureError:
        raise UnauthorizedError("Token has expired")
    except PyJWTError:
        raise UnauthorizedError("Invalid or malformed token")

    try:
        user_id = UUID(str(payload["sub"]))
    except ValueError:
        raise UnauthorizedError("Invalid token subject")

    metadata = payload.get("user_metadata") or {}
    user_type = payload.get("user_type") or metadata.get("user_type") or "guest"
    roles = list(payload.get("roles") or [])
    if user_type not in roles:
        roles.append(user_type)

    return {
        "user_id": user_id,
        "email": payload.get("email"),
        "user_type": user_type,
        "roles": roles,
    }


async def get_current_user(
    authorization: Optional[str] = Header(None, alias="Authorization")
) -> dict:
    """
    Authentication dependency that validates Bearer tokens.

    Returns:
        dict: user_id, email, user_type and roles of the caller

    Raises:
        UnauthorizedError: If the header is missing or the token is invalid
    """
    if not authorization:
        raise UnauthorizedError("Authorization header missing")
    return decode_access_token(_extract_bearer_token(authorization))


async def get_optional_user(
    authorization: Optional[str] = Header(None, alias="Authorization")
) -> Optional[dict]:
    """Like `get_current_user`, but anonymous callers yield None."""
    if not authorization:
        return None
    return decode_access_token(_extract_bearer_token(authorization))


def is_super_admin(user: Optional[dict]) -> bool:
    return bool(user) and SUPER_ADMIN in user.get("roles", [])


async def require_super_admin(user: dict = Depends(get_current_user)) -> dict:
    if not is_super_admin(user):
        raise ForbiddenError("Super admin access required")
    return user


# Sliding-window request log per client (single process; use Redis when scaled out)
_rate_limit_windows: Dict[str, Deque[float]] = {}

# Idle keys are swept once this many are tracked
_RATE_LIMIT_SWEEP_AT = 1024


def client_ip(request: Request) -> str:
    """
    Client address used for logging and rate limiting.

    Proxy headers are honoured only when the direct peer is listed in
    `settings.trusted_proxies`; any other caller could set them freely.
    """
    peer = request.client.host if request.client else None
    if peer and peer in settings.trusted_proxies:
        forwarded_for = request.headers.get("X-Forwarded-For")
        if forwarded_for:
            return forwarded_for.split(",")[0].strip()
        real_ip = request.headers.get("X-Real-IP")
        if real_ip:
            return real_ip.strip()
    return peer or "unknown"


def _sweep_rate_limits(now: float, window_seconds: int) -> None:
    stale = [
        key for key, window in _rate_limit_windows.items()
        if not window or now - window[-1] >= window_seconds
    ]
    for key in stale:
        del _rate_limit_windows[key]


def check_rate_limit(key: str, limit: int, window_seconds: int, now: Optional[float] = None) -> None:
    """
    Record one hit for `key`, raising when the window is already full.

    Raises:
        RateLimitedError: With the seconds until the oldest hit leaves the window
    """
    if now is None:
        now = time.monotonic()
    if len(_rate_limit_windows) >= _RATE_LIMIT_SWEEP_AT:
        _sweep_rate_limits(now, window_seconds)

    window = _rate_limit_windows.setdefault(key, deque())
    while window and now - window[0] >= window_seconds:
        window.popleft()

    if len(window) >= limit:
        retry_after = max(1, int(window_seconds - (now - window[0])) + 1)
        raise RateLimitedError(retry_after=retry_after, limit=limit, window_seconds=window_seconds)

    window.append(now)


def reset_rate_limits() -> None:
    _rate_limit_windows.clear()


async def rate_limit_quote_submissions(request: Request) -> None:
    """Throttle public quote request submissions per client IP."""
    check_rate_limit(
        f"quote:{client_ip(request)}",
        settings.quote_rate_limit_requests,
        settings.quote_rate_limit_window_seconds,
    )


async def get_idempotency_key(
    idempotency_key: Optional[str] = Header(None, alias="Idempotency-Key")
) -> Optional[str]:
    """
    Extract and validate the optional Idempotency-Key header.

    Raises:
        ValidationError: If the key is longer than 255 characters
    """
    if not idempotency_key:
        return None
    if len(idempotency_key) > 255:
        raise ValidationError("Idempotency key must be between 1 and 255 characters")
    return idempotency_key


RequiredAuth = Depends(get_current_user)
OptionalAuth = Depends(get_optional_user)
SuperAdmin = Depends(require_super_admin)
DatabaseSession = Depends(get_db)
IdempotencyKey = Depends(get_idempotency_key)
QuoteRateLimit = Depends(rate_limit_quote_submissions)
