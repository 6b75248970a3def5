import pytest
from fastapi.testclient import TestClient

import attendanceiq.config as config
import attendanceiq.main as main
import database.db as db
from attendanceiq.security import authenticate_token


@pytest.fixture()
def temp_db(tmp_path, monkeypatch):
    test_db = tmp_path / "attendanceiq_test.db"

    # Point DB to a temp file for isolation.
    monkeypatch.setattr(config, "DB_PATH", test_db)
    monkeypatch.setattr(db, "DB_PATH", test_db)

    db.create_tables()
    return test_db


@pytest.fixture()
def client(temp_db):
    with TestClient(main.app) as c:
        yield c
    main.app.dependency_overrides.clear()


def _signup(client, email: str, *, full_name: str = "Test User", password: str = "secret-pass") -> dict:
    res = client.post(
        "/auth/signup",
        json={"email": email, "password": password, "full_name": full_name},
    )
    assert res.status_code == 201, res.text
    body = res.json()
    return {
        "user_id": body["user_id"],
        "token": body["access_token"],
        "headers": {"Authorization": f"Bearer {body['access_token']}"},
    }


def _promote(user: dict) -> dict:
    db.grant_role(user["user_id"], "admin")
    return user


@pytest.fixture()
def make_user(client):
    def factory(email: str, *, full_name: str = "Test User", admin: bool = False) -> dict:
        created = _signup(client, email, full_name=full_name)
        return _promote(created) if admin else created

    return factory


@pytest.fixture()
def user(make_user):
    return make_user("alice@example.com", full_name="Alice Example")


@pytest.fixture()
def admin(make_user):
    return make_user("boss@example.com", full_name="Boss Example", admin=True)


@pytest.fixture()
def user_session(user):
    session = authenticate_token(user["token"])
    assert session is not None
    return session


@pytest.fixture()
def admin_session(admin):
    session = authenticate_token(admin["token"])
    assert session is not None
    return session
