import base64
import hashlib
import hmac
import json
import secrets
import time
from typing import Any

from fastapi import Depends, Header, HTTPException

from attendanceiq.config import AUTH_TOKEN_TTL_SECONDS, SIGNING_KEY
from attendanceiq.session import SessionContext, order_roles
from database.db import get_user_by_id, get_user_roles, is_token_revoked


def _b64url_encode(raw: bytes) -> str:
    return base64.urlsafe_b64encode(raw).rstrip(b"=").decode("ascii")


def _b64url_decode(value: str) -> bytes:
    padding = "=" * (-len(value) % 4)
    return base64.urlsafe_b64decode(value + padding)


def _sign(payload_b64: str) -> str:
    digest = hmac.new(
        SIGNING_KEY.encode("utf-8"),
        payload_b64.encode("ascii"),
        hashlib.sha256,
    ).digest()
    return _b64url_encode(digest)


def issue_session_token(user_id: str, *, email: str) -> tuple[str, dict[str, Any]]:
    now = int(time.time())
    exp = now + AUTH_TOKEN_TTL_SECONDS
    payload = {
        "sub": user_id.strip(),
        "email": email,
        "jti": secrets.token_hex(16),
        "iat": now,
        "exp": exp,
    }
    payload_json = json.dumps(payload, separators=(",", ":"), sort_keys=True)
    payload_b64 = _b64url_encode(payload_json.encode("utf-8"))
    token = f"{payload_b64}.{_sign(payload_b64)}"
    return token, payload


def decode_session_token(token: str) -> dict[str, Any] | None:
    if not token or "." not in token:
        return None

    payload_b64, signature = token.split(".", 1)
    expected = _sign(payload_b64)
    if not hmac.compare_digest(signature, expected):
        return None

    try:
        payload_raw = _b64url_decode(payload_b64).decode("utf-8")
        payload = json.loads(payload_raw)
    except (ValueError, UnicodeDecodeError):
        return None

    if not isinstance(payload, dict):
        return None

    sub = payload.get("sub")
    exp = payload.get("exp")
    jti = payload.get("jti")
    if not isinstance(sub, str) or not sub.strip():
        return None
    if not isinstance(exp, int):
        return None
    if not isinstance(jti, str) or not jti:
        return None
    if exp < int(time.time()):
        return None

    return payload


def bearer_token(authorization: str | None) -> str | None:
    """Return the token of a `Bearer <token>` header, or None."""
    if not authorization:
        return None
    scheme, _, token = authorization.partition(" ")
    if scheme.lower() != "bearer" or not token.strip():
        return None
    return token.strip()


def authenticate_token(token: str) -> SessionContext | None:
    """
    Verify a session token against the identity store.

    Returns the caller's session context, or None when the token is forged,
    expired, revoked or belongs to a deleted identity.
    """
    payload = decode_session_token(token)
    if not payload:
        return None
    if is_token_revoked(payload["jti"]):
        return None

    user = get_user_by_id(payload["sub"])
    if not user:
        return None

    return SessionContext(
        user_id=user["id"],
        email=user["email"],
        roles=order_roles(get_user_roles(user["id"])) or ("user",),
        token_id=payload["jti"],
        expires_at=payload["exp"],
    )


def require_session(authorization: str | None = Header(default=None)) -> SessionContext:
    if not authorization:
        raise HTTPException(status_code=401, detail="Missing bearer token.")

    token = bearer_token(authorization)
    if not token:
        raise HTTPException(status_code=401, detail="Invalid authorization scheme.")

    session = authenticate_token(token)
    if not session:
        raise HTTPException(status_code=401, detail="Invalid or expired session token.")

    return session


def require_admin(session: SessionContext = Depends(require_session)) -> SessionContext:
    if not session.is_admin:
        raise HTTPException(status_code=403, detail="Administrator role required.")
    return session
