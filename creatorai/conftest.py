# creatorai/conftest.py
import os
import tempfile
import time
from pathlib import Path

import jwt
import pytest

# Throwaway SQLite file; must be set before creatorai modules build the engine
_TMP_DIR = tempfile.mkdtemp(prefix="creatorai-tests-")
os.environ.setdefault("TEST_DATABASE_URL", f"sqlite:///{Path(_TMP_DIR) / 'test.db'}")
os.environ.setdefault("AUTH_JWT_SECRET", "test-secret")
os.environ.setdefault("ENV", "test")

from sqlalchemy import delete  # noqa: E402

from creatorai.core.config import settings  # noqa: E402
from creatorai.core.database import create_all_tables, get_db_session, metadata, subscriptions  # noqa: E402
from creatorai.features.tokens.ledger import TokenLedger  # noqa: E402
from creatorai.features.users.service import get_or_create_user  # noqa: E402
from creatorai.models.plan import Plan, token_limit_for  # noqa: E402


@pytest.fixture(scope="session", autouse=True)
def create_tables():
    """Create all database tables once per test session."""
    create_all_tables()
    yield


@pytest.fixture(scope="function", autouse=True)
def reset_db(create_tables):
    """Clear every table before each test so tests never share rows."""
    with get_db_session() as session:
        for table in reversed(metadata.sorted_tables):
            session.execute(delete(table))
    yield


@pytest.fixture
def ledger():
    return TokenLedger()


@pytest.fixture
def make_user(ledger):
    """
    Factory: provision a user with a subscription.

    make_user("u1", plan=Plan.CREATOR, tokens=3)
    """

    def _make(user_id: str = "user_1", plan: Plan = Plan.FREE, tokens=None, email=None):
        get_or_create_user(user_id, email)
        ledger.ensure_subscription(user_id)
        if plan is not Plan.FREE:
            ledger.set_plan(user_id, plan, token_limit_for(plan), True)
        if tokens is not None:
            with get_db_session() as session:
                session.execute(
                    subscriptions.update()
                    .where(subscriptions.c.user_id == user_id)
                    .values(tokens_remaining=tokens)
                )
        return ledger.get_subscription(user_id)

    return _make


def make_token(user_id: str, email=None, expires_in: int = 3600, secret=None) -> str:
    claims = {"sub": user_id, "exp": int(time.time()) + expires_in}
    if email:
        claims["email"] = email
    return jwt.encode(claims, secret or settings.AUTH_JWT_SECRET, algorithm="HS256")


@pytest.fixture
def auth_headers():
    def _headers(user_id: str = "user_1", email=None):
        return {"Authorization": f"Bearer {make_token(user_id, email)}"}

    return _headers


@pytest.fixture
def app():
    from creatorai.main import app as fastapi_app

    yield fastapi_app
    fastapi_app.dependency_overrides.clear()


@pytest.fixture
def client(app):
    from fastapi.testclient import TestClient

    return TestClient(app)
