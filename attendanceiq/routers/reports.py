import calendar
from datetime import date, datetime

from fastapi import APIRouter, Depends, HTTPException

from attendanceiq.config import RECENT_RECORDS_LIMIT
from attendanceiq.routers.attendance import scoped_user_id, serialize_record
from attendanceiq.security import require_session
from attendanceiq.services.attendance import todays_record
from attendanceiq.services.reports import dashboard_summary, period_report
from attendanceiq.session import SessionContext
from database.db import list_attendance

router = APIRouter()


def _today() -> date:
    return datetime.now().date()


def _month_bounds(day: date) -> tuple[date, date]:
    last_day = calendar.monthrange(day.year, day.month)[1]
    return day.replace(day=1), day.replace(day=last_day)


@router.get("/reports")
def report(
    start: date | None = None,
    end: date | None = None,
    user_id: str | None = None,
    session: SessionContext = Depends(require_session),
):
    month_start, month_end = _month_bounds(_today())
    start = start or month_start
    end = end or month_end
    if start > end:
        raise HTTPException(status_code=400, detail="start must not be after end.")

    rows = list_attendance(
        user_id=scoped_user_id(session, user_id),
        start=start.isoformat(),
        end=end.isoformat(),
    )
    return {
        "start": start.isoformat(),
        "end": end.isoformat(),
        **period_report(rows),
        "records": [serialize_record(r) for r in rows],
    }


@router.get("/dashboard")
def dashboard(session: SessionContext = Depends(require_session)):
    today = _today()
    month_start, month_end = _month_bounds(today)
    month_rows = list_attendance(
        user_id=session.user_id,
        start=month_start.isoformat(),
        end=month_end.isoformat(),
    )
    recent = list_attendance(user_id=session.user_id, descending=True, limit=RECENT_RECORDS_LIMIT)
    summary = dashboard_summary(month_rows, recent, todays_record(session, today))
    return {
        "month": today.strftime("%Y-%m"),
        "stats": summary["stats"],
        "recent": [serialize_record(r) for r in summary["recent"]],
        "today": serialize_record(summary["today"]),
    }
