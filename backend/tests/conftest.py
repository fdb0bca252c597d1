"""
Shared fixtures: in-memory Mongo (mongomock-motor) patched into every
module that imported `db` from config, captured notification intents,
test profiles and an ASGI client for the API.
"""

import uuid
from datetime import timedelta

import httpx
import pytest
import pytest_asyncio
from mongomock_motor import AsyncMongoMockClient

import config
from config import hash_password, to_iso, utc_now
from services import (
    client_delivery,
    event_logger,
    financials,
    lead_calls,
    promotion_consensus,
    task_lifecycle,
    task_reminders,
    team,
)
from routes import auth as auth_routes

DB_MODULES = [
    config,
    client_delivery,
    event_logger,
    financials,
    lead_calls,
    promotion_consensus,
    task_lifecycle,
    task_reminders,
    team,
    auth_routes,
]

TEST_PASSWORD = "secret123"


@pytest.fixture
def mock_db(monkeypatch):
    db = AsyncMongoMockClient()[f"crm_test_{uuid.uuid4().hex[:8]}"]
    for module in DB_MODULES:
        monkeypatch.setattr(module, "db", db)
    monkeypatch.setattr(config, "NOTIFY_FUNCTION_URL", "")
    monkeypatch.setattr(config, "PROMOTION_THRESHOLD_MODE", "frozen")
    return db


@pytest.fixture
def intents(monkeypatch):
    """Every notification intent the core emits, in order"""
    captured = []

    async def _record(task_id, user_id, assigned_by_name, notification_type="task_assigned"):
        captured.append({
            "task_id": task_id,
            "user_id": user_id,
            "assigned_by_name": assigned_by_name,
            "notification_type": notification_type,
        })
        return {"success": True}

    monkeypatch.setattr(task_lifecycle, "notify_task", _record)
    monkeypatch.setattr(task_reminders, "notify_task", _record)
    return captured


async def make_profile(db, full_name: str, role: str = "member") -> dict:
    profile = {
        "id": str(uuid.uuid4()),
        "email": f"{full_name.lower().replace(' ', '.')}@test.local",
        "full_name": full_name,
        "role": role,
        "status": "active",
        "password_hash": hash_password(TEST_PASSWORD),
        "created_at": to_iso(utc_now()),
    }
    await db.profiles.insert_one(dict(profile))
    profile.pop("password_hash")
    return profile


@pytest_asyncio.fixture
async def admin(mock_db):
    return await make_profile(mock_db, "Ada Admin", "admin")


@pytest_asyncio.fixture
async def alice(mock_db):
    return await make_profile(mock_db, "Alice Member")


@pytest_asyncio.fixture
async def bob(mock_db):
    return await make_profile(mock_db, "Bob Member")


async def auth_headers(db, profile: dict) -> dict:
    token = uuid.uuid4().hex
    await db.sessions.insert_one({
        "token": token,
        "user_id": profile["id"],
        "created_at": to_iso(utc_now()),
        "expires_at": to_iso(utc_now() + timedelta(days=1)),
    })
    return {"Authorization": f"Bearer {token}"}


@pytest_asyncio.fixture
async def api(mock_db, intents):
    from server import app

    transport = httpx.ASGITransport(app=app)
    async with httpx.AsyncClient(transport=transport, base_url="http://test") as client:
        yield client
