# tests/conftest.py
# Test setup: temporary SQLite DB, seeded users and a TestClient per test.

from pathlib import Path

import pytest
from fastapi.testclient import TestClient
from sqlmodel import Session

from weam.config import Settings
from weam.db import Database
from weam.main import create_app
from weam.models import INCOME, Project, Transaction, User
from weam.security import hash_password

ADMIN_PASSWORD = "admin-pass-123"
USER_PASSWORD = "user-pass-123"


def make_settings(db_file: Path, **overrides) -> Settings:
    values = dict(
        env="test",
        jwt_secret="x" * 40,
        refresh_secret="y" * 40,
        database_file=str(db_file),
        public_dir=str(db_file.parent / "build"),
        client_origins=["http://localhost:5173"],
        rate_limit_api_max=10000,
        rate_limit_login_max=1000,
    )
    values.update(overrides)
    return Settings(**values)


@pytest.fixture()
def tmp_db_path(tmp_path: Path) -> Path:
    return tmp_path / "test_weam.sqlite"


@pytest.fixture()
def db(tmp_db_path: Path):
    # File-based SQLite so the app and the fixtures share the same DB
    database = Database(str(tmp_db_path))
    database.create_all()
    try:
        yield database
    finally:
        database.dispose()


@pytest.fixture()
def seed(db):
    """Two users (admin + user) and one project owned by the user."""
    with Session(db.engine) as s:
        admin = User(login="admin", password_hash=hash_password(ADMIN_PASSWORD), role="admin", nickname="Boss")
        user = User(login="alice", password_hash=hash_password(USER_PASSWORD), role="user", nickname="Alice")
        s.add(admin)
        s.add(user)
        s.commit()
        s.refresh(admin)
        s.refresh(user)

        project = Project(
            contractor="Acme",
            project="Tower",
            section="Foundation",
            direction="нам должны",
            amount=1000,
            user_id=user.id,
            name="Acme / Tower",
        )
        s.add(project)
        s.commit()
        s.refresh(project)
        return {"admin_id": admin.id, "user_id": user.id, "project_id": project.id}


@pytest.fixture()
def settings(tmp_db_path: Path) -> Settings:
    return make_settings(tmp_db_path)


@pytest.fixture()
def client(db, seed, settings):
    app = create_app(settings)
    with TestClient(app) as c:
        yield c


def login(client: TestClient, name: str, password: str):
    return client.post("/api/login", json={"login": name, "password": password})


@pytest.fixture()
def admin_client(client):
    r = login(client, "admin", ADMIN_PASSWORD)
    assert r.status_code == 200, r.text
    return client


@pytest.fixture()
def user_client(client):
    r = login(client, "alice", USER_PASSWORD)
    assert r.status_code == 200, r.text
    return client


def add_tx(db, **fields) -> int:
    values = dict(responsible="alice", date="", total=0, operationType=INCOME, note="")
    values.update(fields)
    with Session(db.engine) as s:
        tx = Transaction(**values)
        s.add(tx)
        s.commit()
        s.refresh(tx)
        return tx.id
