from datetime import date, datetime

from fastapi import APIRouter, Depends, HTTPException, Query
from pydantic import BaseModel

from attendanceiq.config import RECENT_RECORDS_LIMIT
from attendanceiq.errors import (
    AlreadyCheckedOutError,
    DuplicateCheckInError,
    NotCheckedInError,
    RecordNotFoundError,
)
from attendanceiq.security import require_admin, require_session
from attendanceiq.services.attendance import (
    attendance_state,
    check_in,
    check_out,
    mark_record,
    override_record,
    remove_record,
    todays_record,
    work_duration,
)
from attendanceiq.session import SessionContext
from database.db import AttendanceRecord, AttendanceStatus, list_attendance

router = APIRouter()


class CheckInRequest(BaseModel):
    notes: str | None = None


class CheckOutRequest(BaseModel):
    notes: str | None = None


class RecordUpdate(BaseModel):
    status: AttendanceStatus | None = None
    notes: str | None = None


class RecordCreate(BaseModel):
    user_id: str
    date: date
    status: AttendanceStatus
    notes: str | None = None


def _now() -> datetime:
    return datetime.now()


def serialize_record(record: AttendanceRecord | None) -> dict | None:
    if record is None:
        return None
    duration = work_duration(record)
    return {
        **record,
        "state": attendance_state(record).value,
        "work_duration": str(duration) if duration else None,
    }


def scoped_user_id(session: SessionContext, user_id: str | None) -> str | None:
    """
    Owner filter for record reads.

    Users only ever see their own rows. Administrators see everyone's unless
    they ask for one user.
    """
    if user_id and user_id != session.user_id and not session.is_admin:
        raise HTTPException(status_code=403, detail="Cannot read another user's attendance.")
    if session.is_admin:
        return user_id or None
    return session.user_id


@router.get("/attendance/today")
def attendance_today(session: SessionContext = Depends(require_session)):
    today = _now().date()
    record = todays_record(session, today)
    return {
        "date": today.isoformat(),
        "state": attendance_state(record).value,
        "record": serialize_record(record),
    }


@router.post("/attendance/check-in", status_code=201)
def attendance_check_in(payload: CheckInRequest, session: SessionContext = Depends(require_session)):
    try:
        record = check_in(session, _now(), payload.notes)
    except DuplicateCheckInError as exc:
        raise HTTPException(status_code=409, detail=str(exc))
    return serialize_record(record)


@router.post("/attendance/{record_id}/check-out")
def attendance_check_out(
    record_id: str,
    payload: CheckOutRequest,
    session: SessionContext = Depends(require_session),
):
    try:
        record = check_out(session, record_id, _now(), payload.notes)
    except NotCheckedInError as exc:
        raise HTTPException(status_code=404, detail=str(exc))
    except RecordNotFoundError as exc:
        raise HTTPException(status_code=404, detail=str(exc))
    except AlreadyCheckedOutError as exc:
        raise HTTPException(status_code=409, detail=str(exc))
    except ValueError as exc:
        raise HTTPException(status_code=400, detail=str(exc))
    return serialize_record(record)


@router.get("/attendance")
def attendance(
    start: date | None = None,
    end: date | None = None,
    user_id: str | None = None,
    session: SessionContext = Depends(require_session),
):
    if start and end and start > end:
        raise HTTPException(status_code=400, detail="start must not be after end.")
    rows = list_attendance(
        user_id=scoped_user_id(session, user_id),
        start=start.isoformat() if start else None,
        end=end.isoformat() if end else None,
    )
    return [serialize_record(r) for r in rows]


@router.get("/attendance/recent")
def attendance_recent(
    limit: int = Query(default=RECENT_RECORDS_LIMIT, ge=1, le=100),
    session: SessionContext = Depends(require_session),
):
    rows = list_attendance(user_id=session.user_id, descending=True, limit=limit)
    return [serialize_record(r) for r in rows]


@router.patch("/attendance/{record_id}")
def update_record(record_id: str, payload: RecordUpdate, session: SessionContext = Depends(require_admin)):
    try:
        record = override_record(session, record_id, status=payload.status, notes=payload.notes)
    except RecordNotFoundError as exc:
        raise HTTPException(status_code=404, detail=str(exc))
    return serialize_record(record)


@router.delete("/attendance/{record_id}")
def delete_record(record_id: str, session: SessionContext = Depends(require_admin)):
    try:
        remove_record(session, record_id)
    except RecordNotFoundError as exc:
        raise HTTPException(status_code=404, detail=str(exc))
    return {"ok": True}


@router.post("/admin/attendance", status_code=201)
def create_record(payload: RecordCreate, session: SessionContext = Depends(require_admin)):
    try:
        record = mark_record(session, payload.user_id, payload.date, payload.status, payload.notes)
    except RecordNotFoundError as exc:
        raise HTTPException(status_code=404, detail=str(exc))
    except DuplicateCheckInError as exc:
        raise HTTPException(status_code=409, detail=str(exc))
    return serialize_record(record)
