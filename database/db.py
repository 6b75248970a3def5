import hashlib
import hmac
import secrets
import sqlite3
from pathlib import Path
from typing import Any, Literal, TypedDict

from attendanceiq.config import DB_PATH


PASSWORD_HASH_ALGO = "pbkdf2_sha256"
PASSWORD_HASH_ITERATIONS = 120_000
MIGRATIONS_DIR = Path(__file__).resolve().parent / "migrations"

AttendanceStatus = Literal["present", "absent", "late", "half_day", "leave"]
ATTENDANCE_STATUSES: tuple[str, ...] = ("present", "absent", "late", "half_day", "leave")
APP_ROLES: tuple[str, ...] = ("admin", "user")

PROFILE_COLUMNS = ("user_id", "full_name", "email", "department", "avatar_url", "created_at", "updated_at")
ATTENDANCE_COLUMNS = (
    "id",
    "user_id",
    "date",
    "check_in",
    "check_out",
    "status",
    "notes",
    "created_at",
    "updated_at",
)
_UPDATABLE_PROFILE_FIELDS = {"full_name", "department", "avatar_url"}
_UPDATABLE_ATTENDANCE_FIELDS = {"status", "notes", "check_in", "check_out"}


class AttendanceRecord(TypedDict):
    id: str
    user_id: str
    date: str
    check_in: str | None
    check_out: str | None
    status: AttendanceStatus
    notes: str | None
    created_at: str
    updated_at: str


class Profile(TypedDict):
    user_id: str
    full_name: str
    email: str
    department: str | None
    avatar_url: str | None
    created_at: str
    updated_at: str


def _hash_password(password: str, *, salt: str | None = None) -> str:
    salt_value = salt or secrets.token_hex(16)
    digest = hashlib.pbkdf2_hmac(
        "sha256",
        password.encode("utf-8"),
        salt_value.encode("utf-8"),
        PASSWORD_HASH_ITERATIONS,
    ).hex()
    return f"{PASSWORD_HASH_ALGO}${PASSWORD_HASH_ITERATIONS}${salt_value}${digest}"


def _verify_password(password: str, password_hash: str) -> bool:
    try:
        algo, rounds_text, salt_value, expected_digest = password_hash.split("$", 3)
        rounds = int(rounds_text)
    except (ValueError, TypeError):
        return False

    if algo != PASSWORD_HASH_ALGO or rounds <= 0:
        return False

    candidate_digest = hashlib.pbkdf2_hmac(
        "sha256",
        password.encode("utf-8"),
        salt_value.encode("utf-8"),
        rounds,
    ).hex()
    return hmac.compare_digest(candidate_digest, expected_digest)


def connect_db():
    conn = sqlite3.connect(str(DB_PATH), check_same_thread=False)
    conn.row_factory = sqlite3.Row
    # recommended with FK tables
    conn.execute("PRAGMA foreign_keys = ON;")
    return conn


def create_tables():
    """Apply every SQL migration in `database/migrations/` in file-name order."""
    DB_PATH.parent.mkdir(parents=True, exist_ok=True)
    conn = connect_db()
    try:
        for migration in sorted(MIGRATIONS_DIR.glob("*.sql")):
            conn.executescript(migration.read_text(encoding="utf-8"))
        conn.commit()
    finally:
        conn.close()


def _record_from_row(row: sqlite3.Row | None) -> AttendanceRecord | None:
    if row is None:
        return None
    return {col: row[col] for col in ATTENDANCE_COLUMNS}  # type: ignore[return-value]


def _profile_from_row(row: sqlite3.Row | None) -> Profile | None:
    if row is None:
        return None
    return {col: row[col] for col in PROFILE_COLUMNS}  # type: ignore[return-value]


# -----------------------------
# Identities
# -----------------------------
def create_user(email: str, password: str, full_name: str | None = None) -> str:
    """
    Insert an identity and return its id.

    The `on_user_created` trigger provisions the profile and the default
    'user' role in the same transaction. Raises `sqlite3.IntegrityError`
    when the email is taken.
    """
    clean_email = email.strip().lower()
    clean_password = password.strip()
    if not clean_email or not clean_password:
        raise ValueError("Email and password are required.")

    user_id = secrets.token_hex(16)
    conn = connect_db()
    try:
        conn.execute(
            """
            INSERT INTO users (id, email, password_hash, full_name)
            VALUES (?, ?, ?, ?)
            """,
            (user_id, clean_email, _hash_password(clean_password), (full_name or "").strip() or None),
        )
        conn.commit()
    finally:
        conn.close()
    return user_id


def verify_user_credentials(email: str, password: str) -> dict | None:
    clean_email = email.strip()
    clean_password = password.strip()
    if not clean_email or not clean_password:
        return None

    conn = connect_db()
    cur = conn.cursor()
    cur.execute(
        """
        SELECT id, email, password_hash
        FROM users
        WHERE email = ? COLLATE NOCASE
        """,
        (clean_email,),
    )
    row = cur.fetchone()
    conn.close()

    if not row:
        return None

    if not _verify_password(clean_password, row["password_hash"]):
        return None

    return {"id": row["id"], "email": row["email"]}


def get_user_by_id(user_id: str) -> dict | None:
    conn = connect_db()
    cur = conn.cursor()
    cur.execute(
        """
        SELECT id, email, created_at
        FROM users
        WHERE id = ?
        """,
        (user_id,),
    )
    row = cur.fetchone()
    conn.close()
    return dict(row) if row else None


def revoke_token(jti: str, expires_at: int) -> None:
    conn = connect_db()
    try:
        conn.execute(
            """
            INSERT OR IGNORE INTO revoked_tokens (jti, expires_at)
            VALUES (?, ?)
            """,
            (jti, int(expires_at)),
        )
        conn.commit()
    finally:
        conn.close()


def is_token_revoked(jti: str) -> bool:
    conn = connect_db()
    cur = conn.cursor()
    cur.execute("SELECT 1 FROM revoked_tokens WHERE jti = ?", (jti,))
    row = cur.fetchone()
    conn.close()
    return row is not None


# -----------------------------
# Roles
# -----------------------------
def get_user_roles(user_id: str) -> list[str]:
    conn = connect_db()
    cur = conn.cursor()
    cur.execute(
        """
        SELECT role
        FROM user_roles
        WHERE user_id = ?
        ORDER BY created_at ASC
        """,
        (user_id,),
    )
    rows = cur.fetchall()
    conn.close()
    return [str(r["role"]) for r in rows]


def get_all_user_roles() -> dict[str, list[str]]:
    conn = connect_db()
    cur = conn.cursor()
    cur.execute("SELECT user_id, role FROM user_roles ORDER BY created_at ASC")
    rows = cur.fetchall()
    conn.close()

    out: dict[str, list[str]] = {}
    for row in rows:
        out.setdefault(str(row["user_id"]), []).append(str(row["role"]))
    return out


def grant_role(user_id: str, role: str) -> None:
    if role not in APP_ROLES:
        raise ValueError(f"Unknown role: {role}")
    conn = connect_db()
    try:
        conn.execute(
            "INSERT OR IGNORE INTO user_roles (user_id, role) VALUES (?, ?)",
            (user_id, role),
        )
        conn.commit()
    finally:
        conn.close()


def replace_user_role(user_id: str, role: str) -> None:
    """Drop every role row of the user and insert `role`, atomically."""
    if role not in APP_ROLES:
        raise ValueError(f"Unknown role: {role}")
    conn = connect_db()
    try:
        with conn:
            conn.execute("DELETE FROM user_roles WHERE user_id = ?", (user_id,))
            conn.execute(
                "INSERT INTO user_roles (user_id, role) VALUES (?, ?)",
                (user_id, role),
            )
    finally:
        conn.close()


# -----------------------------
# Profiles
# -----------------------------
def get_profile(user_id: str) -> Profile | None:
    conn = connect_db()
    cur = conn.cursor()
    cur.execute(
        f"""
        SELECT {", ".join(PROFILE_COLUMNS)}
        FROM profiles
        WHERE user_id = ?
        """,
        (user_id,),
    )
    row = cur.fetchone()
    conn.close()
    return _profile_from_row(row)


def list_profiles(search: str | None = None) -> list[Profile]:
    where = ""
    params: list[Any] = []
    clean_search = (search or "").strip().lower()
    if clean_search:
        where = "WHERE lower(full_name) LIKE ? OR lower(email) LIKE ?"
        params = [f"%{clean_search}%", f"%{clean_search}%"]

    conn = connect_db()
    cur = conn.cursor()
    cur.execute(
        f"""
        SELECT {", ".join(PROFILE_COLUMNS)}
        FROM profiles
        {where}
        ORDER BY created_at DESC, full_name ASC
        """,
        params,
    )
    rows = cur.fetchall()
    conn.close()
    return [p for p in (_profile_from_row(r) for r in rows) if p is not None]


def update_profile(user_id: str, **fields: Any) -> Profile | None:
    updates = {k: v for k, v in fields.items() if k in _UPDATABLE_PROFILE_FIELDS}
    if updates:
        assignments = ", ".join(f"{col} = ?" for col in updates)
        conn = connect_db()
        try:
            conn.execute(
                f"UPDATE profiles SET {assignments} WHERE user_id = ?",
                (*updates.values(), user_id),
            )
            conn.commit()
        finally:
            conn.close()
    return get_profile(user_id)


# -----------------------------
# Attendance
# -----------------------------
def insert_attendance(
    user_id: str,
    date: str,
    status: str,
    *,
    check_in: str | None = None,
    check_out: str | None = None,
    notes: str | None = None,
) -> str:
    """
    Insert one day's record and return its id. Raises
    `sqlite3.IntegrityError` when (user_id, date) already exists.
    """
    record_id = secrets.token_hex(16)
    conn = connect_db()
    try:
        conn.execute(
            """
            INSERT INTO attendance (id, user_id, date, check_in, check_out, status, notes)
            VALUES (?, ?, ?, ?, ?, ?, ?)
            """,
            (record_id, user_id, date, check_in, check_out, status, notes),
        )
        conn.commit()
    finally:
        conn.close()
    return record_id


def get_attendance_by_id(record_id: str, *, user_id: str | None = None) -> AttendanceRecord | None:
    where = ["id = ?"]
    params: list[Any] = [record_id]
    if user_id is not None:
        where.append("user_id = ?")
        params.append(user_id)

    conn = connect_db()
    cur = conn.cursor()
    cur.execute(
        f"""
        SELECT {", ".join(ATTENDANCE_COLUMNS)}
        FROM attendance
        WHERE {" AND ".join(where)}
        """,
        params,
    )
    row = cur.fetchone()
    conn.close()
    return _record_from_row(row)


def get_attendance_for_date(user_id: str, date: str) -> AttendanceRecord | None:
    conn = connect_db()
    cur = conn.cursor()
    cur.execute(
        f"""
        SELECT {", ".join(ATTENDANCE_COLUMNS)}
        FROM attendance
        WHERE user_id = ? AND date = ?
        """,
        (user_id, date),
    )
    row = cur.fetchone()
    conn.close()
    return _record_from_row(row)


def list_attendance(
    *,
    user_id: str | None = None,
    start: str | None = None,
    end: str | None = None,
    descending: bool = False,
    limit: int | None = None,
) -> list[AttendanceRecord]:
    """
    Records ordered by date. `user_id=None` returns every user's rows and
    must only be reachable by administrators.
    """
    where: list[str] = []
    params: list[Any] = []
    if user_id is not None:
        where.append("user_id = ?")
        params.append(user_id)
    if start:
        where.append("date >= ?")
        params.append(start)
    if end:
        where.append("date <= ?")
        params.append(end)

    query = f"""
        SELECT {", ".join(ATTENDANCE_COLUMNS)}
        FROM attendance
        {"WHERE " + " AND ".join(where) if where else ""}
        ORDER BY date {"DESC" if descending else "ASC"}, created_at ASC
    """
    if limit is not None:
        query += " LIMIT ?"
        params.append(max(0, int(limit)))

    conn = connect_db()
    cur = conn.cursor()
    cur.execute(query, params)
    rows = cur.fetchall()
    conn.close()
    return [r for r in (_record_from_row(row) for row in rows) if r is not None]


def set_attendance_check_out(record_id: str, check_out: str, *, notes: str | None = None, keep_notes: bool = True) -> bool:
    """
    Stamp check_out on a record that has none yet.

    Returns False when the row is missing or already checked out; the
    `check_out IS NULL` guard makes concurrent check-outs race safely.
    """
    conn = connect_db()
    try:
        if keep_notes:
            cur = conn.execute(
                """
                UPDATE attendance
                SET check_out = ?
                WHERE id = ? AND check_out IS NULL
                """,
                (check_out, record_id),
            )
        else:
            cur = conn.execute(
                """
                UPDATE attendance
                SET check_out = ?,
                    notes = ?
                WHERE id = ? AND check_out IS NULL
                """,
                (check_out, notes, record_id),
            )
        conn.commit()
        return cur.rowcount > 0
    finally:
        conn.close()


def update_attendance(record_id: str, **fields: Any) -> AttendanceRecord | None:
    updates = {k: v for k, v in fields.items() if k in _UPDATABLE_ATTENDANCE_FIELDS}
    if updates:
        assignments = ", ".join(f"{col} = ?" for col in updates)
        conn = connect_db()
        try:
            conn.execute(
                f"UPDATE attendance SET {assignments} WHERE id = ?",
                (*updates.values(), record_id),
            )
            conn.commit()
        finally:
            conn.close()
    return get_attendance_by_id(record_id)


def delete_attendance(record_id: str) -> bool:
    conn = connect_db()
    try:
        cur = conn.execute("DELETE FROM attendance WHERE id = ?", (record_id,))
        conn.commit()
        return cur.rowcount > 0
    finally:
        conn.close()

