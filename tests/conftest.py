"""Shared fixtures: a throwaway SQLite database per test and an in-process client."""

import os
import tempfile

# Must be set before eams.config is imported.
_DB_DIR = tempfile.mkdtemp(prefix="eams-tests-")
os.environ["DATABASE_URL"] = f"sqlite+aiosqlite:///{os.path.join(_DB_DIR, 'eams.db')}"

import pytest
from httpx import ASGITransport, AsyncClient

from eams.database import Base, async_session_maker, engine
from eams.engine.audit import drain_audit_events
from eams.engine.quota import reset_quota_tracker
from eams.main import create_app
from eams.storage import directory
from eams.storage.repositories import create_account


@pytest.fixture(autouse=True)
async def database():
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)
    yield
    await drain_audit_events()
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.drop_all)
    directory.clear_cache()
    reset_quota_tracker()


@pytest.fixture
async def client():
    app = create_app()
    transport = ASGITransport(app=app)
    async with AsyncClient(transport=transport, base_url="http://test") as c:
        yield c


@pytest.fixture
def make_account(client):
    """POST /enterprise and return (account json, auth headers)."""
    counter = {"n": 0}

    async def _make(**overrides):
        counter["n"] += 1
        body = {"user_id": f"user-{counter['n']}", "name": f"Cleaners {counter['n']}"}
        body.update(overrides)
        response = await client.post("/enterprise", json=body)
        assert response.status_code == 201, response.text
        data = response.json()
        return data, {"x-api-key": data["api_key"]}

    return _make


@pytest.fixture
def seed_account():
    """Insert an account directly, bypassing HTTP. Returns (account, raw_key)."""

    async def _seed(**fields):
        fields.setdefault("user_id", "seeded-user")
        fields.setdefault("name", "Seeded Cleaners")
        async with async_session_maker() as session:
            account, api_key = await create_account(session, fields)
            await session.commit()
        return account, api_key

    return _seed
