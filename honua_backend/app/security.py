import logging
import time
from dataclasses import dataclass, field

from fastapi import HTTPException, Request
from jose import JWTError, jwt

from app.config import settings

PROFILE_CLAIMS = ("email", "username", "full_name", "avatar_url")
logger = logging.getLogger("honua.security")


@dataclass
class Identity:
    user_id: str
    claims: dict = field(default_factory=dict)


def _mask_user_id(user_id: str | None) -> str:
    value = (user_id or "").strip()
    if not value:
        return "-"
    if len(value) <= 8:
        return value
    return f"{value[:4]}...{value[-4:]}"


def _audit_auth_failure(
    request: Request | None,
    reason: str,
    *,
    claimed_user_id: str | None = None,
    token_present: bool | None = None,
) -> None:
    if not request:
        logger.warning("AUTH_DENY reason=%s", reason)
        return
    path = getattr(getattr(request, "url", None), "path", "-")
    method = getattr(request, "method", "-")
    client = getattr(request, "client", None)
    ip = getattr(client, "host", "-") if client else "-"
    if token_present is None:
        token_present = bool(_extract_auth_token(request))
    logger.warning(
        "AUTH_DENY reason=%s method=%s path=%s ip=%s claimed=%s token_present=%s",
        reason,
        method,
        path,
        ip,
        _mask_user_id(claimed_user_id),
        int(bool(token_present)),
    )


def _extract_auth_token(request: Request) -> str | None:
    if not request:
        return None
    headers = getattr(request, "headers", None)
    if headers:
        raw = (headers.get("authorization") or "").strip()
        if raw.lower().startswith("bearer "):
            token = raw.split(" ", 1)[1].strip()
            if token:
                return token
    cookies = getattr(request, "cookies", None) or {}
    token = (cookies.get(settings.AUTH_SESSION_COOKIE) or "").strip()
    return token or None


def _decode_token(token: str, request: Request | None = None) -> Identity:
    try:
        payload = jwt.decode(token, settings.AUTH_JWT_SECRET, algorithms=[settings.AUTH_JWT_ALGORITHM])
    except JWTError:
        _audit_auth_failure(request, "invalid_token", token_present=True)
        raise HTTPException(status_code=401, detail="Unauthorized")
    subject = payload.get("sub")
    if not subject:
        _audit_auth_failure(request, "token_missing_sub", token_present=True)
        raise HTTPException(status_code=401, detail="Unauthorized")
    claims = {key: payload[key] for key in PROFILE_CLAIMS if payload.get(key)}
    return Identity(user_id=str(subject), claims=claims)


def get_optional_identity(request: Request) -> Identity | None:
    """Resolve the session if one is presented; a bad token is still 401."""
    token = _extract_auth_token(request)
    if not token:
        return None
    return _decode_token(token, request)


def get_current_identity(request: Request) -> Identity:
    identity = get_optional_identity(request)
    if identity is None:
        _audit_auth_failure(request, "missing_identity", token_present=False)
        raise HTTPException(status_code=401, detail="Unauthorized")
    return identity


def get_current_user_id(request: Request) -> str:
    return get_current_identity(request).user_id


def get_optional_user_id(request: Request) -> str | None:
    identity = get_optional_identity(request)
    return identity.user_id if identity else None


def create_session_token(user_id: str, *, ttl_seconds: int | None = None, **claims) -> str:
    now = int(time.time())
    payload = {key: value for key, value in claims.items() if value is not None}
    payload.update({
        "sub": user_id,
        "iat": now,
        "exp": now + (ttl_seconds or settings.AUTH_TOKEN_TTL_SECONDS),
    })
    return jwt.encode(payload, settings.AUTH_JWT_SECRET, algorithm=settings.AUTH_JWT_ALGORITHM)
