"""
Convo Backend — Test Configuration (conftest.py)
=================================================

What:  Shared pytest fixtures for the whole suite.
How:   The environment is pointed at a throwaway SQLite file BEFORE any
       `convo` import, because settings and the engine are built at import.

Fixtures (function-scoped):
    ├── db:               fresh tables for one test, dropped afterwards
    ├── profile_factory:  registers user profiles through ProfileService
    ├── auth_headers:     Authorization header + refresh cookie for a profile
    └── test_client:      HTTPX AsyncClient talking to the app in-process
"""

import os
import tempfile

# ══════════════════════════════════════════════════════════════════════════
# Environment Setup
# ══════════════════════════════════════════════════════════════════════════

_TEST_DIR = tempfile.mkdtemp(prefix="convo_test_")
os.environ["DATABASE_URL"] = f"sqlite+aiosqlite:///{os.path.join(_TEST_DIR, 'convo.db')}"
os.environ["JWT_ACCESS_SECRET_KEY"] = "test-access-secret-0123456789abcdef"
os.environ["JWT_REFRESH_SECRET_KEY"] = "test-refresh-secret-0123456789abcdef"
os.environ["SERVER_DOMAIN"] = "http://test"
os.environ["BCRYPT_ROUNDS"] = "4"
os.environ["REFRESH_COOKIE_SECURE"] = "false"
os.environ["RATE_LIMIT_REQUESTS"] = "10000"
os.environ["RETRY_MIN_WAIT"] = "0"
os.environ["RETRY_MAX_WAIT"] = "0"
os.environ["LOG_LEVEL"] = "WARNING"

from itertools import count  # noqa: E402
from typing import Any, Dict  # noqa: E402

import pytest  # noqa: E402
import pytest_asyncio  # noqa: E402
from httpx import ASGITransport, AsyncClient  # noqa: E402

from convo.core.security import tokens  # noqa: E402
from convo.database import create_tables, drop_tables, engine  # noqa: E402


# ══════════════════════════════════════════════════════════════════════════
# Database
# ══════════════════════════════════════════════════════════════════════════


@pytest_asyncio.fixture
async def db():
    """Creates every table for one test and drops them afterwards."""
    await create_tables()
    yield
    await drop_tables()
    await engine.dispose()


# ══════════════════════════════════════════════════════════════════════════
# Profiles & Auth
# ══════════════════════════════════════════════════════════════════════════


@pytest.fixture
def profile_factory(db):
    """
    Registers profiles with unique emails.

    Usage:
        ann = await profile_factory(username="ann")
        bob = await profile_factory(username="bob", password="hunter22")
    """
    from convo.services.resource_service import profile_service

    sequence = count(1)

    async def _create(**fields: Any) -> Dict[str, Any]:
        n = next(sequence)
        data = {"email": f"user{n}@example.com", "password": "secret1", **fields}
        return await profile_service.create(data)

    return _create


@pytest.fixture
def auth_headers():
    """Builds request headers authenticating as `profile_id`."""

    def _headers(profile_id: str, access: str = None, refresh: str = None) -> Dict[str, str]:
        access = access if access is not None else tokens.access_token(profile_id)
        refresh = refresh if refresh is not None else tokens.refresh_token(profile_id)
        return {"Authorization": f"JWT {access}", "Cookie": f"refresh={refresh}"}

    return _headers


# ══════════════════════════════════════════════════════════════════════════
# HTTP
# ══════════════════════════════════════════════════════════════════════════


@pytest_asyncio.fixture
async def test_client(db):
    """
    In-process client for endpoint tests.

    Unhandled exceptions are answered by the app's 500 handler instead of
    being re-raised into the test.
    """
    from convo.main import app

    transport = ASGITransport(app=app, raise_app_exceptions=False)
    async with AsyncClient(transport=transport, base_url="http://test") as client:
        yield client
