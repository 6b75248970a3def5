import logging
import sqlite3
import time

from fastapi import APIRouter, Depends, HTTPException
from pydantic import BaseModel

from attendanceiq.config import ADMIN_EMAILS
from attendanceiq.security import issue_session_token, require_session
from attendanceiq.session import SessionContext
from database.db import (
    create_tables,
    create_user,
    get_profile,
    grant_role,
    revoke_token,
    verify_user_credentials,
)

logger = logging.getLogger(__name__)

router = APIRouter()


class SignupRequest(BaseModel):
    email: str
    password: str
    full_name: str | None = None


class LoginRequest(BaseModel):
    email: str
    password: str


def _issue_token(user_id: str, email: str) -> dict:
    token, claims = issue_session_token(user_id, email=email)
    now = int(time.time())
    return {
        "access_token": token,
        "token_type": "bearer",
        "user_id": claims["sub"],
        "email": claims["email"],
        "expires_at": claims["exp"],
        "expires_in": max(0, int(claims["exp"]) - now),
    }


@router.post("/auth/signup", status_code=201)
def signup(payload: SignupRequest):
    email = payload.email.strip().lower()
    password = payload.password.strip()

    if not email or "@" not in email:
        raise HTTPException(status_code=400, detail="A valid email is required.")
    if len(password) < 6:
        raise HTTPException(status_code=400, detail="Password must be at least 6 characters.")

    try:
        user_id = create_user(email, password, payload.full_name)
    except sqlite3.IntegrityError:
        raise HTTPException(status_code=409, detail="Email already registered.")

    if email in ADMIN_EMAILS:
        grant_role(user_id, "admin")
        logger.info("Granted admin role to bootstrap identity %s", email)

    logger.info("Created identity %s", user_id)
    return _issue_token(user_id, email)


@router.post("/auth/login")
def login(payload: LoginRequest):
    email = payload.email.strip()
    password = payload.password.strip()

    if not email:
        raise HTTPException(status_code=400, detail="Email is required.")
    if not password:
        raise HTTPException(status_code=400, detail="Password is required.")

    try:
        user = verify_user_credentials(email, password)
    except sqlite3.OperationalError:
        # Self-heal when DB schema is missing (e.g., startup skipped).
        try:
            create_tables()
            user = verify_user_credentials(email, password)
        except sqlite3.OperationalError:
            raise HTTPException(
                status_code=503,
                detail="Authentication service unavailable. Please retry.",
            )

    if not user:
        raise HTTPException(status_code=401, detail="Invalid email or password.")

    return _issue_token(user["id"], user["email"])


@router.get("/auth/me")
def auth_me(session: SessionContext = Depends(require_session)):
    return {
        "user_id": session.user_id,
        "email": session.email,
        "roles": list(session.roles),
        "role": session.role,
        "is_admin": session.is_admin,
        "profile": get_profile(session.user_id),
        "expires_at": session.expires_at,
    }


@router.post("/auth/logout")
def logout(session: SessionContext = Depends(require_session)):
    if session.token_id and session.expires_at is not None:
        revoke_token(session.token_id, session.expires_at)
    return {"ok": True}
