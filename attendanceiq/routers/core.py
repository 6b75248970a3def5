from fastapi import APIRouter, Depends, HTTPException

from attendanceiq.config import (
    AI_CONTEXT_RECORD_LIMIT,
    AI_GATEWAY_API_KEY,
    DB_PATH,
    ENABLE_DEBUG_ENDPOINTS,
    LATE_CUTOFF_HOUR,
    RECENT_RECORDS_LIMIT,
)
from attendanceiq.security import require_admin
from attendanceiq.session import ROLE_PRECEDENCE
from database.db import ATTENDANCE_STATUSES

router = APIRouter()


@router.get("/health")
def health():
    return {"status": "ok"}


@router.get("/debug/dbpath")
def dbpath(_session=Depends(require_admin)):
    if not ENABLE_DEBUG_ENDPOINTS:
        raise HTTPException(status_code=404, detail="Not found.")
    return {"db_path": str(DB_PATH)}


@router.get("/config/attendance")
def attendance_config():
    return {
        "late_cutoff": f"{LATE_CUTOFF_HOUR:02d}:00",
        "late_cutoff_hour": LATE_CUTOFF_HOUR,
        "statuses": list(ATTENDANCE_STATUSES),
        "roles": list(ROLE_PRECEDENCE),
        "recent_records_limit": RECENT_RECORDS_LIMIT,
        "assistant_context_records": AI_CONTEXT_RECORD_LIMIT,
        "assistant_configured": bool(AI_GATEWAY_API_KEY),
    }
