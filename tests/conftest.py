import asyncio
from typing import Any, Dict

import pytest
from fastapi.testclient import TestClient
from mongomock_motor import AsyncMongoMockClient

from coaching_backend.config import Settings
from coaching_backend.models import UserRecord
from coaching_backend.security import get_password_hash
from coaching_backend.server import create_app

PASSWORD = "secret123"


@pytest.fixture
def settings() -> Settings:
    return Settings(
        jwt_secret="test-secret-key-that-is-at-least-32-chars",
        enable_scheduler=False,
        report_renderer="canvas",
        report_retry_delay=0,
    )


@pytest.fixture
def db():
    return AsyncMongoMockClient()["coaching_test"]


@pytest.fixture
def client(settings, db):
    app = create_app(settings, database=db)
    with TestClient(app) as test_client:
        yield test_client


def run(coro):
    return asyncio.run(coro)


def seed_user(db, role: str, username: str, **extra: Any) -> Dict[str, Any]:
    record = UserRecord(
        username=username,
        email=f"{username}@example.com",
        first_name=extra.pop("first_name", username.capitalize()),
        last_name=extra.pop("last_name", "Test"),
        role=role,
        **extra,
    )
    doc = record.model_dump()
    doc["password_hash"] = get_password_hash(PASSWORD)
    run(db.users.insert_one(doc))
    doc.pop("_id", None)
    return doc


def login(client: TestClient, username: str, password: str = PASSWORD) -> Dict[str, str]:
    response = client.post("/api/auth/login", json={"username": username, "password": password})
    assert response.status_code == 200, response.text
    # Requests in tests authenticate with the bearer header so several users can share one client.
    client.cookies.clear()
    return {"Authorization": f"Bearer {response.json()['access_token']}"}


@pytest.fixture
def teacher(db):
    return seed_user(db, "teacher", "ayse", first_name="Ayşe", last_name="Yılmaz")


@pytest.fixture
def teacher_headers(client, teacher):
    return login(client, "ayse")


@pytest.fixture
def admin_headers(client, db):
    seed_user(db, "admin", "admin")
    return login(client, "admin")
