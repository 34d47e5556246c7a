from __future__ import annotations
# ruff: noqa: E402

import os
import sys
import time
import uuid
from collections.abc import AsyncGenerator, Callable, Generator
from datetime import datetime
from pathlib import Path

import pytest
from alembic import command
from alembic.config import Config
from httpx import ASGITransport, AsyncClient
from sqlalchemy import create_engine, text
from sqlalchemy.orm import Session, sessionmaker
from sqlalchemy.pool import StaticPool

API_ROOT = Path(__file__).resolve().parents[1]
WORKER_ROOT = Path(__file__).resolve().parents[2] / "worker"
if str(API_ROOT) not in sys.path:
    sys.path.insert(0, str(API_ROOT))
if str(WORKER_ROOT) not in sys.path:
    sys.path.insert(0, str(WORKER_ROOT))

from listing_api.clock import utcnow
from listing_api.db import get_db
from listing_api.main import app
from listing_api.models import Base, SubscriptionTier, UserProfile
from listing_api.settings import settings

TEST_USER_ID = uuid.UUID("aaaaaaaa-aaaa-aaaa-aaaa-aaaaaaaaaaaa")
OTHER_USER_ID = uuid.UUID("cccccccc-cccc-cccc-cccc-cccccccccccc")


class FakeRedis:
    def __init__(self) -> None:
        self.values: dict[str, int] = {}

    def incr(self, key: str) -> int:
        self.values[key] = self.values.get(key, 0) + 1
        return self.values[key]

    def expire(self, key: str, seconds: int) -> bool:
        return True

    def ping(self) -> bool:
        return True


@pytest.fixture(autouse=True)
def offline_settings(monkeypatch: pytest.MonkeyPatch) -> None:
    monkeypatch.setattr(settings, "ai_mode", "mock")
    monkeypatch.setattr(settings, "staging_mode", "mock")
    monkeypatch.setattr(settings, "geocodio_api_key", None)
    monkeypatch.setattr(settings, "google_maps_api_key", None)
    monkeypatch.setattr(settings, "dev_auth_bypass", False)
    monkeypatch.setattr(settings, "cron_secret", None)
    monkeypatch.setattr(settings, "stripe_webhook_secret", None)


@pytest.fixture(autouse=True)
def fake_redis(monkeypatch: pytest.MonkeyPatch) -> FakeRedis:
    redis = FakeRedis()
    monkeypatch.setattr("listing_api.services.rate_limit.get_redis_client", lambda: redis)
    monkeypatch.setattr("listing_api.routers.health.get_redis_client", lambda: redis)
    return redis


@pytest.fixture(autouse=True)
def dispatched(monkeypatch: pytest.MonkeyPatch) -> list[uuid.UUID]:
    sent: list[uuid.UUID] = []

    def _record(entry_id: uuid.UUID) -> bool:
        sent.append(entry_id)
        return True

    monkeypatch.setattr("listing_api.routers.staging.dispatch_submit", _record)
    return sent


@pytest.fixture()
def sqlite_session() -> Generator[Session, None, None]:
    engine = create_engine(
        "sqlite+pysqlite://",
        connect_args={"check_same_thread": False},
        poolclass=StaticPool,
    )
    Base.metadata.create_all(engine)
    factory = sessionmaker(bind=engine, autocommit=False, autoflush=False, class_=Session)
    with factory() as session:
        yield session
    engine.dispose()


@pytest.fixture()
def make_profile(sqlite_session: Session) -> Callable[..., UserProfile]:
    def _make(
        tier: SubscriptionTier = SubscriptionTier.PRO,
        user_id: uuid.UUID | None = None,
        email: str | None = None,
        last_reset_date: datetime | None = None,
        **fields: object,
    ) -> UserProfile:
        profile_id = user_id or uuid.uuid4()
        profile = UserProfile(
            id=profile_id,
            email=email or f"{profile_id.hex[:8]}@listing.local",
            subscription_tier=tier,
            last_reset_date=last_reset_date or utcnow(),
            **fields,
        )
        sqlite_session.add(profile)
        sqlite_session.commit()
        return profile

    return _make


@pytest.fixture()
def current_user_id() -> uuid.UUID:
    return TEST_USER_ID


@pytest.fixture()
def other_user_id() -> uuid.UUID:
    return OTHER_USER_ID


@pytest.fixture()
def auth_headers(current_user_id: uuid.UUID) -> dict[str, str]:
    return {"X-Listing-User-Id": str(current_user_id)}


@pytest.fixture()
async def client(sqlite_session: Session) -> AsyncGenerator[AsyncClient, None]:
    def _override_db() -> Generator[Session, None, None]:
        yield sqlite_session

    app.dependency_overrides[get_db] = _override_db
    async with AsyncClient(transport=ASGITransport(app=app), base_url="http://test") as http_client:
        yield http_client
    app.dependency_overrides.clear()


def _build_default_db_url() -> str:
    user = os.environ.get("POSTGRES_USER", "listing")
    password = os.environ.get("POSTGRES_PASSWORD", "listing")
    database = os.environ.get("POSTGRES_DB", "listing")
    host = os.environ.get("TEST_POSTGRES_HOST", os.environ.get("POSTGRES_HOST", "localhost"))
    port = os.environ.get("TEST_POSTGRES_PORT", os.environ.get("POSTGRES_PORT", "5432"))
    return f"postgresql+psycopg://{user}:{password}@{host}:{port}/{database}"


def _wait_for_database(db_url: str, timeout_seconds: int = 60) -> None:
    deadline = time.time() + timeout_seconds
    last_error: Exception | None = None
    while time.time() < deadline:
        engine = create_engine(db_url, pool_pre_ping=True)
        try:
            with engine.connect() as connection:
                connection.execute(text("SELECT 1"))
            return
        except Exception as exc:  # noqa: BLE001
            last_error = exc
            time.sleep(2)
        finally:
            engine.dispose()
    raise RuntimeError(f"Postgres not reachable for integration tests at {db_url}") from last_error


@pytest.fixture(scope="session")
def db_url() -> str:
    return os.environ.get("DATABASE_URL", _build_default_db_url())


@pytest.fixture(scope="session")
def migrated_db(db_url: str) -> Generator[None, None, None]:
    _wait_for_database(db_url)
    config = Config(str(API_ROOT / "alembic.ini"))
    config.set_main_option("sqlalchemy.url", db_url)
    command.upgrade(config, "head")
    yield
    command.downgrade(config, "base")


@pytest.fixture()
def db_session(migrated_db: None, db_url: str) -> Generator[Session, None, None]:
    engine = create_engine(db_url, pool_pre_ping=True)
    factory = sessionmaker(bind=engine, autocommit=False, autoflush=False, class_=Session)
    with factory() as session:
        session.execute(
            text(
                "TRUNCATE TABLE audit_logs, mls_connections, market_reports, comparable_listings, analytics_events, "
                "staging_rate_limits, staging_queue, anonymous_generations, bulk_job_items, generations, bulk_jobs, "
                "team_members, user_profiles, teams RESTART IDENTITY CASCADE"
            )
        )
        session.commit()
    with factory() as session:
        yield session
        session.rollback()
    engine.dispose()
