import os
import secrets
from pathlib import Path

BASE_DIR = Path(__file__).resolve().parents[1]


def _parse_bool(value: str | None, fallback: bool) -> bool:
    if value is None:
        return fallback
    normalized = value.strip().lower()
    if normalized in {"1", "true", "yes", "on"}:
        return True
    if normalized in {"0", "false", "no", "off"}:
        return False
    return fallback


def _parse_csv(value: str | None, fallback: list[str]) -> list[str]:
    if not value:
        return fallback
    parsed = [item.strip() for item in value.split(",") if item.strip()]
    return parsed or fallback


def _parse_int(value: str | None, fallback: int, *, minimum: int | None = None, maximum: int | None = None) -> int:
    try:
        parsed = int(value) if value is not None and value.strip() else fallback
    except ValueError:
        parsed = fallback
    if minimum is not None:
        parsed = max(minimum, parsed)
    if maximum is not None:
        parsed = min(maximum, parsed)
    return parsed


DB_PATH = Path(os.getenv("ATTENDANCEIQ_DB_PATH", BASE_DIR / "database" / "attendanceiq.db"))
SIGNING_KEY = os.getenv("ATTENDANCEIQ_SIGNING_KEY", "").strip() or secrets.token_urlsafe(32)
AUTH_TOKEN_TTL_SECONDS = _parse_int(os.getenv("ATTENDANCEIQ_AUTH_TOKEN_TTL_SECONDS"), 43200, minimum=60)
# Identities signing up with one of these emails are granted the admin role.
ADMIN_EMAILS = {email.lower() for email in _parse_csv(os.getenv("ATTENDANCEIQ_ADMIN_EMAILS"), [])}

LOG_LEVEL = os.getenv("ATTENDANCEIQ_LOG_LEVEL", "INFO").strip().upper() or "INFO"

CORS_ALLOW_ORIGINS = _parse_csv(os.getenv("ATTENDANCEIQ_CORS_ALLOW_ORIGINS"), ["*"])
CORS_ALLOW_METHODS = _parse_csv(
    os.getenv("ATTENDANCEIQ_CORS_ALLOW_METHODS"),
    ["GET", "POST", "PUT", "PATCH", "DELETE", "OPTIONS"],
)
CORS_ALLOW_HEADERS = _parse_csv(
    os.getenv("ATTENDANCEIQ_CORS_ALLOW_HEADERS"),
    ["Authorization", "Content-Type", "Accept", "X-Client-Info", "Apikey"],
)
CORS_ALLOW_CREDENTIALS = _parse_bool(os.getenv("ATTENDANCEIQ_CORS_ALLOW_CREDENTIALS"), False)
ENABLE_DEBUG_ENDPOINTS = _parse_bool(os.getenv("ATTENDANCEIQ_ENABLE_DEBUG_ENDPOINTS"), False)

# Check-ins at or after this hour are marked late.
LATE_CUTOFF_HOUR = _parse_int(os.getenv("ATTENDANCEIQ_LATE_CUTOFF_HOUR"), 9, minimum=0, maximum=23)
RECENT_RECORDS_LIMIT = _parse_int(os.getenv("ATTENDANCEIQ_RECENT_RECORDS_LIMIT"), 5, minimum=1)

# AI assistant gateway (OpenAI-compatible chat completions)
AI_GATEWAY_URL = os.getenv(
    "ATTENDANCEIQ_AI_GATEWAY_URL",
    "https://ai.gateway.lovable.dev/v1/chat/completions",
).strip()
AI_GATEWAY_API_KEY = (
    os.getenv("ATTENDANCEIQ_AI_GATEWAY_API_KEY", "").strip()
    or os.getenv("LOVABLE_API_KEY", "").strip()
)
AI_MODEL = os.getenv("ATTENDANCEIQ_AI_MODEL", "google/gemini-3-flash-preview").strip()
AI_CONTEXT_RECORD_LIMIT = _parse_int(os.getenv("ATTENDANCEIQ_AI_CONTEXT_RECORD_LIMIT"), 100, minimum=1)
AI_GATEWAY_TIMEOUT_SECONDS = float(os.getenv("ATTENDANCEIQ_AI_GATEWAY_TIMEOUT_SECONDS", "120"))

# Chat client side
ASSISTANT_URL = os.getenv("ATTENDANCEIQ_ASSISTANT_URL", "http://127.0.0.1:8000/attendance-ai").strip()
ASSISTANT_READ_TIMEOUT_SECONDS = float(os.getenv("ATTENDANCEIQ_ASSISTANT_READ_TIMEOUT_SECONDS", "60"))
