from datetime import date, datetime

import pytest

import attendanceiq.routers.attendance as attendance_router
import attendanceiq.routers.core as core
import attendanceiq.routers.reports as reports_router
import database.db as db


@pytest.fixture()
def clock(monkeypatch):
    """Freeze the time the attendance routes see. Call with a datetime to move it."""
    current = {"now": datetime(2026, 3, 2, 8, 30)}

    def set_now(value: datetime) -> None:
        current["now"] = value

    monkeypatch.setattr(attendance_router, "_now", lambda: current["now"])
    monkeypatch.setattr(reports_router, "_today", lambda: current["now"].date())
    return set_now


def test_health(client):
    res = client.get("/health")
    assert res.status_code == 200
    assert res.json() == {"status": "ok"}


def test_attendance_config(client):
    res = client.get("/config/attendance")
    assert res.status_code == 200
    body = res.json()
    assert body["late_cutoff"] == "09:00"
    assert body["statuses"] == ["present", "absent", "late", "half_day", "leave"]
    assert body["roles"] == ["admin", "user"]


def test_debug_dbpath_disabled_by_default(client, admin):
    res = client.get("/debug/dbpath", headers=admin["headers"])
    assert res.status_code == 404
    assert res.json()["detail"] == "Not found."


def test_debug_dbpath_requires_admin_when_enabled(client, monkeypatch, user, admin):
    monkeypatch.setattr(core, "ENABLE_DEBUG_ENDPOINTS", True)

    assert client.get("/debug/dbpath").status_code == 401
    assert client.get("/debug/dbpath", headers=user["headers"]).status_code == 403

    res = client.get("/debug/dbpath", headers=admin["headers"])
    assert res.status_code == 200
    assert "db_path" in res.json()


# -----------------------------
# Auth
# -----------------------------
def test_signup_creates_profile_and_default_role(client, user):
    res = client.get("/auth/me", headers=user["headers"])
    assert res.status_code == 200
    body = res.json()
    assert body["email"] == "alice@example.com"
    assert body["roles"] == ["user"]
    assert body["role"] == "user"
    assert body["is_admin"] is False
    assert body["profile"]["full_name"] == "Alice Example"


def test_signup_without_name_uses_email(client):
    res = client.post("/auth/signup", json={"email": "noname@example.com", "password": "secret-pass"})
    assert res.status_code == 201
    token = res.json()["access_token"]

    me = client.get("/auth/me", headers={"Authorization": f"Bearer {token}"}).json()
    assert me["profile"]["full_name"] == "noname@example.com"


def test_signup_rejects_duplicate_email(client, user):
    res = client.post(
        "/auth/signup",
        json={"email": "Alice@Example.com", "password": "another-pass"},
    )
    assert res.status_code == 409


@pytest.mark.parametrize(
    ("email", "password"),
    [("not-an-email", "secret-pass"), ("short@example.com", "12345")],
)
def test_signup_validates_input(client, email, password):
    res = client.post("/auth/signup", json={"email": email, "password": password})
    assert res.status_code == 400


def test_login_rejects_invalid_credentials(client, user):
    res = client.post("/auth/login", json={"email": "alice@example.com", "password": "wrong"})
    assert res.status_code == 401
    assert res.json()["detail"] == "Invalid email or password."


def test_login_returns_bearer_token(client, user):
    res = client.post("/auth/login", json={"email": "alice@example.com", "password": "secret-pass"})
    assert res.status_code == 200
    body = res.json()
    assert body["token_type"] == "bearer"
    assert body["user_id"] == user["user_id"]
    assert body["expires_in"] > 0


def test_protected_routes_require_token(client):
    res = client.get("/attendance/today")
    assert res.status_code == 401
    assert res.json()["detail"] == "Missing bearer token."

    res = client.get("/attendance/today", headers={"Authorization": "Basic abc"})
    assert res.status_code == 401
    assert res.json()["detail"] == "Invalid authorization scheme."

    res = client.get("/attendance/today", headers={"Authorization": "Bearer not-a-token"})
    assert res.status_code == 401


def test_logout_revokes_token(client, user):
    res = client.post("/auth/logout", headers=user["headers"])
    assert res.status_code == 200

    res = client.get("/auth/me", headers=user["headers"])
    assert res.status_code == 401


def test_admin_emails_are_bootstrapped(client, monkeypatch):
    import attendanceiq.routers.auth as auth_router

    monkeypatch.setattr(auth_router, "ADMIN_EMAILS", {"root@example.com"})
    res = client.post("/auth/signup", json={"email": "root@example.com", "password": "secret-pass"})
    token = res.json()["access_token"]

    me = client.get("/auth/me", headers={"Authorization": f"Bearer {token}"}).json()
    assert me["roles"] == ["admin", "user"]
    assert me["role"] == "admin"


# -----------------------------
# Attendance
# -----------------------------
def test_check_in_and_out_flow(client, user, clock):
    res = client.get("/attendance/today", headers=user["headers"])
    assert res.json()["state"] == "unmarked"
    assert res.json()["record"] is None

    res = client.post("/attendance/check-in", json={}, headers=user["headers"])
    assert res.status_code == 201
    record = res.json()
    assert record["status"] == "present"
    assert record["state"] == "checked_in"
    assert record["work_duration"] is None

    clock(datetime(2026, 3, 2, 17, 0))
    res = client.post(f"/attendance/{record['id']}/check-out", json={}, headers=user["headers"])
    assert res.status_code == 200
    closed = res.json()
    assert closed["state"] == "checked_out"
    assert closed["work_duration"] == "8h 30m"

    today = client.get("/attendance/today", headers=user["headers"]).json()
    assert today["date"] == "2026-03-02"
    assert today["state"] == "checked_out"


def test_late_check_in(client, user, clock):
    clock(datetime(2026, 3, 2, 9, 0))
    res = client.post("/attendance/check-in", json={"notes": "bus"}, headers=user["headers"])
    assert res.status_code == 201
    assert res.json()["status"] == "late"
    assert res.json()["notes"] == "bus"


def test_duplicate_check_in_conflicts(client, user, clock):
    assert client.post("/attendance/check-in", json={}, headers=user["headers"]).status_code == 201
    res = client.post("/attendance/check-in", json={}, headers=user["headers"])
    assert res.status_code == 409

    rows = client.get("/attendance", headers=user["headers"]).json()
    assert len(rows) == 1


def test_check_out_twice_conflicts(client, user, clock):
    record = client.post("/attendance/check-in", json={}, headers=user["headers"]).json()
    clock(datetime(2026, 3, 2, 12, 0))
    client.post(f"/attendance/{record['id']}/check-out", json={}, headers=user["headers"])

    res = client.post(f"/attendance/{record['id']}/check-out", json={}, headers=user["headers"])
    assert res.status_code == 409


def test_check_out_without_check_in(client, user, clock):
    res = client.post("/attendance/unknown/check-out", json={}, headers=user["headers"])
    assert res.status_code == 404


def test_check_out_earlier_than_check_in(client, user, clock):
    record = client.post("/attendance/check-in", json={}, headers=user["headers"]).json()
    clock(datetime(2026, 3, 2, 7, 0))

    res = client.post(f"/attendance/{record['id']}/check-out", json={}, headers=user["headers"])
    assert res.status_code == 400

    today = client.get("/attendance/today", headers=user["headers"]).json()
    assert today["state"] == "checked_in"


def test_users_only_see_their_own_records(client, user, make_user, clock):
    bob = make_user("bob@example.com")
    client.post("/attendance/check-in", json={}, headers=user["headers"])
    client.post("/attendance/check-in", json={}, headers=bob["headers"])

    rows = client.get("/attendance", headers=user["headers"]).json()
    assert [r["user_id"] for r in rows] == [user["user_id"]]

    res = client.get("/attendance", params={"user_id": bob["user_id"]}, headers=user["headers"])
    assert res.status_code == 403


def test_admin_sees_all_records(client, user, admin, clock):
    client.post("/attendance/check-in", json={}, headers=user["headers"])
    client.post("/attendance/check-in", json={}, headers=admin["headers"])

    rows = client.get("/attendance", headers=admin["headers"]).json()
    assert {r["user_id"] for r in rows} == {user["user_id"], admin["user_id"]}

    rows = client.get("/attendance", params={"user_id": user["user_id"]}, headers=admin["headers"]).json()
    assert [r["user_id"] for r in rows] == [user["user_id"]]


def test_recent_records_are_newest_first(client, user):
    for day in ("2026-03-02", "2026-03-04", "2026-03-03"):
        db.insert_attendance(user["user_id"], day, "present")

    rows = client.get("/attendance/recent", params={"limit": 2}, headers=user["headers"]).json()
    assert [r["date"] for r in rows] == ["2026-03-04", "2026-03-03"]


def test_record_overrides_are_admin_only(client, user, admin, clock):
    clock(datetime(2026, 3, 2, 9, 45))
    record = client.post("/attendance/check-in", json={}, headers=user["headers"]).json()

    res = client.patch(f"/attendance/{record['id']}", json={"status": "present"}, headers=user["headers"])
    assert res.status_code == 403
    assert res.json()["detail"] == "Administrator role required."

    res = client.patch(f"/attendance/{record['id']}", json={"status": "present"}, headers=admin["headers"])
    assert res.status_code == 200
    assert res.json()["status"] == "present"

    assert client.delete(f"/attendance/{record['id']}", headers=user["headers"]).status_code == 403
    assert client.delete(f"/attendance/{record['id']}", headers=admin["headers"]).status_code == 200
    assert client.delete(f"/attendance/{record['id']}", headers=admin["headers"]).status_code == 404


def test_admin_marks_absence(client, user, admin):
    payload = {"user_id": user["user_id"], "date": "2026-03-05", "status": "absent"}
    res = client.post("/admin/attendance", json=payload, headers=admin["headers"])
    assert res.status_code == 201
    assert res.json()["state"] == "unmarked"

    assert client.post("/admin/attendance", json=payload, headers=admin["headers"]).status_code == 409

    payload["user_id"] = "nobody"
    assert client.post("/admin/attendance", json=payload, headers=admin["headers"]).status_code == 404


# -----------------------------
# Reports and dashboard
# -----------------------------
def _seed_month(user_id: str) -> None:
    statuses = ["present"] * 7 + ["late"] + ["absent"] * 2
    for offset, status in enumerate(statuses, start=1):
        db.insert_attendance(user_id, date(2026, 3, offset).isoformat(), status)


def test_report_for_period(client, user, clock):
    _seed_month(user["user_id"])
    db.insert_attendance(user["user_id"], "2026-02-27", "absent")

    res = client.get("/reports", headers=user["headers"])
    assert res.status_code == 200
    body = res.json()
    assert body["start"] == "2026-03-01"
    assert body["end"] == "2026-03-31"
    assert body["total"] == 10
    assert body["attendance_rate"] == pytest.approx(80.0)
    assert body["status_counts"]["absent"] == 2
    assert body["weekly"] == [
        {"name": "Week 1", "present": 7, "late": 0, "absent": 0},
        {"name": "Week 2", "present": 0, "late": 1, "absent": 2},
    ]


def test_report_rejects_inverted_range(client, user):
    res = client.get("/reports", params={"start": "2026-03-10", "end": "2026-03-01"}, headers=user["headers"])
    assert res.status_code == 400


def test_dashboard(client, user, clock):
    _seed_month(user["user_id"])
    clock(datetime(2026, 3, 11, 8, 0))
    client.post("/attendance/check-in", json={}, headers=user["headers"])

    body = client.get("/dashboard", headers=user["headers"]).json()
    assert body["month"] == "2026-03"
    assert body["stats"]["total_days"] == 11
    assert body["stats"]["present_days"] == 8
    assert body["stats"]["late_days"] == 1
    assert body["stats"]["absent_days"] == 2
    assert body["today"]["state"] == "checked_in"
    assert body["recent"][0]["date"] == "2026-03-11"
    assert len(body["recent"]) == 5


def test_dashboard_empty(client, user, clock):
    body = client.get("/dashboard", headers=user["headers"]).json()
    assert body["stats"]["total_days"] == 0
    assert body["stats"]["attendance_rate"] == 0
    assert body["recent"] == []
    assert body["today"] is None


# -----------------------------
# Profiles and roles
# -----------------------------
def test_profile_update(client, user, make_user):
    res = client.patch(
        f"/profiles/{user['user_id']}",
        json={"full_name": "  Alice Cooper ", "department": "Ops"},
        headers=user["headers"],
    )
    assert res.status_code == 200
    assert res.json()["full_name"] == "Alice Cooper"
    assert res.json()["department"] == "Ops"

    res = client.patch(f"/profiles/{user['user_id']}", json={"full_name": "  "}, headers=user["headers"])
    assert res.status_code == 400

    bob = make_user("bob@example.com")
    res = client.patch(f"/profiles/{user['user_id']}", json={"department": "Sales"}, headers=bob["headers"])
    assert res.status_code == 403


def test_admin_lists_users_with_roles(client, user, admin):
    res = client.get("/admin/users", headers=user["headers"])
    assert res.status_code == 403

    body = client.get("/admin/users", headers=admin["headers"]).json()
    assert body["total"] == 2
    roles = {row["email"]: row["role"] for row in body["rows"]}
    assert roles == {"alice@example.com": "user", "boss@example.com": "admin"}

    body = client.get("/admin/users", params={"search": "alice"}, headers=admin["headers"]).json()
    assert [row["email"] for row in body["rows"]] == ["alice@example.com"]


def test_admin_changes_role(client, user, admin):
    res = client.put(
        f"/admin/users/{user['user_id']}/role",
        json={"role": "admin"},
        headers=admin["headers"],
    )
    assert res.status_code == 200
    assert db.get_user_roles(user["user_id"]) == ["admin"]

    me = client.get("/auth/me", headers=user["headers"]).json()
    assert me["is_admin"] is True

    res = client.put("/admin/users/nobody/role", json={"role": "user"}, headers=admin["headers"])
    assert res.status_code == 404

    res = client.put(f"/admin/users/{user['user_id']}/role", json={"role": "owner"}, headers=admin["headers"])
    assert res.status_code == 422


def test_non_admin_cannot_change_roles(client, user, make_user):
    bob = make_user("bob@example.com")
    res = client.put(f"/admin/users/{bob['user_id']}/role", json={"role": "admin"}, headers=user["headers"])
    assert res.status_code == 403
    assert db.get_user_roles(bob["user_id"]) == ["user"]
