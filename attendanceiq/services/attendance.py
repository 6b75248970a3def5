import logging
import sqlite3
from dataclasses import dataclass
from datetime import date, datetime
from enum import Enum

from attendanceiq.config import LATE_CUTOFF_HOUR
from attendanceiq.errors import (
    AlreadyCheckedOutError,
    AuthorizationError,
    DuplicateCheckInError,
    NotCheckedInError,
    RecordNotFoundError,
)
from attendanceiq.session import SessionContext
from database.db import (
    ATTENDANCE_STATUSES,
    AttendanceRecord,
    delete_attendance,
    get_attendance_by_id,
    get_attendance_for_date,
    get_user_by_id,
    insert_attendance,
    set_attendance_check_out,
    update_attendance,
)

logger = logging.getLogger(__name__)


class AttendanceState(str, Enum):
    """Where a user's day stands. CHECKED_OUT is terminal."""

    UNMARKED = "unmarked"
    CHECKED_IN = "checked_in"
    CHECKED_OUT = "checked_out"


@dataclass(frozen=True)
class WorkDuration:
    hours: int
    minutes: int

    def __str__(self) -> str:
        return f"{self.hours}h {self.minutes}m"


def _stamp(value: datetime) -> str:
    return value.isoformat(timespec="seconds")


def _clean_notes(notes: str | None) -> str | None:
    if notes is None:
        return None
    return notes.strip() or None


def attendance_state(record: AttendanceRecord | None) -> AttendanceState:
    if record is None or not record.get("check_in"):
        return AttendanceState.UNMARKED
    if record.get("check_out"):
        return AttendanceState.CHECKED_OUT
    return AttendanceState.CHECKED_IN


def status_for_check_in(now: datetime, cutoff_hour: int | None = None) -> str:
    cutoff = LATE_CUTOFF_HOUR if cutoff_hour is None else cutoff_hour
    return "late" if now.hour >= cutoff else "present"


def work_duration(record: AttendanceRecord | None) -> WorkDuration | None:
    """
    Whole hours and leftover minutes between check-in and check-out.

    Callers guarantee check_out >= check_in; negative spans are not handled.
    """
    if not record or not record.get("check_in") or not record.get("check_out"):
        return None
    check_in = datetime.fromisoformat(str(record["check_in"]))
    check_out = datetime.fromisoformat(str(record["check_out"]))
    total_minutes = int((check_out - check_in).total_seconds() // 60)
    return WorkDuration(hours=total_minutes // 60, minutes=total_minutes % 60)


def _load_record(record_id: str) -> AttendanceRecord:
    record = get_attendance_by_id(record_id)
    if record is None:
        raise RecordNotFoundError("Attendance record not found.")
    return record


def todays_record(session: SessionContext, today: date) -> AttendanceRecord | None:
    return get_attendance_for_date(session.user_id, today.isoformat())


def check_in(session: SessionContext, now: datetime, notes: str | None = None) -> AttendanceRecord:
    """
    Open the caller's record for `now`'s date.

    The status is fixed here and never recomputed later.
    """
    status = status_for_check_in(now)
    try:
        record_id = insert_attendance(
            session.user_id,
            now.date().isoformat(),
            status,
            check_in=_stamp(now),
            notes=_clean_notes(notes),
        )
    except sqlite3.IntegrityError as exc:
        raise DuplicateCheckInError("Attendance already marked for today.") from exc

    record = _load_record(record_id)
    logger.info("User %s checked in at %s (%s)", session.user_id, record["check_in"], status)
    return record


def check_out(
    session: SessionContext,
    record_id: str,
    now: datetime,
    notes: str | None = None,
) -> AttendanceRecord:
    owner_filter = None if session.is_admin else session.user_id
    record = get_attendance_by_id(record_id, user_id=owner_filter)
    if record is None or not record["check_in"]:
        raise NotCheckedInError("You have not checked in yet.")
    if record["check_out"]:
        raise AlreadyCheckedOutError("You have already checked out.")

    stamp = _stamp(now)
    if stamp < str(record["check_in"]):
        raise ValueError("Check-out cannot be earlier than check-in.")

    updated = set_attendance_check_out(
        record_id,
        stamp,
        notes=_clean_notes(notes),
        keep_notes=notes is None,
    )
    if not updated:
        # Lost a race against another check-out of the same record.
        raise AlreadyCheckedOutError("You have already checked out.")

    logger.info("User %s checked out of record %s at %s", session.user_id, record_id, stamp)
    return _load_record(record_id)


def _require_admin(session: SessionContext) -> None:
    if not session.is_admin:
        raise AuthorizationError("Administrator role required.")


def _validate_status(status: str) -> str:
    if status not in ATTENDANCE_STATUSES:
        raise ValueError(f"Unknown attendance status: {status}")
    return status


def mark_record(
    session: SessionContext,
    user_id: str,
    day: date,
    status: str,
    notes: str | None = None,
) -> AttendanceRecord:
    """Administrator creates a record for any user, e.g. absent or leave."""
    _require_admin(session)
    if get_user_by_id(user_id) is None:
        raise RecordNotFoundError("User not found.")
    try:
        record_id = insert_attendance(
            user_id,
            day.isoformat(),
            _validate_status(status),
            notes=_clean_notes(notes),
        )
    except sqlite3.IntegrityError as exc:
        raise DuplicateCheckInError("Attendance already marked for that day.") from exc
    record = _load_record(record_id)
    logger.info("Admin %s marked %s as %s on %s", session.user_id, user_id, status, record["date"])
    return record


def override_record(
    session: SessionContext,
    record_id: str,
    *,
    status: str | None = None,
    notes: str | None = None,
) -> AttendanceRecord:
    """Explicit administrator overwrite; the only way a status changes after check-in."""
    _require_admin(session)
    if get_attendance_by_id(record_id) is None:
        raise RecordNotFoundError("Attendance record not found.")

    fields: dict[str, str | None] = {}
    if status is not None:
        fields["status"] = _validate_status(status)
    if notes is not None:
        fields["notes"] = _clean_notes(notes)

    record = update_attendance(record_id, **fields)
    if record is None:
        raise RecordNotFoundError("Attendance record not found.")
    logger.info("Admin %s updated record %s: %s", session.user_id, record_id, sorted(fields))
    return record


def remove_record(session: SessionContext, record_id: str) -> None:
    _require_admin(session)
    if not delete_attendance(record_id):
        raise RecordNotFoundError("Attendance record not found.")
    logger.info("Admin %s deleted record %s", session.user_id, record_id)
