import sys
import os

# Ensure src directory is in Python path
sys.path.insert(0, os.path.join(os.path.dirname(__file__), "..", "src"))

from datetime import timedelta

import pytest
import pytest_asyncio
from httpx import AsyncClient, ASGITransport
from sqlalchemy.ext.asyncio import AsyncSession, create_async_engine, async_sessionmaker

from probewatch.auth import create_access_token
from probewatch.database import Base, get_db
from probewatch.dispatcher import HealthCheckDispatcher, get_dispatcher
from probewatch.main import app
from probewatch.models import StatusApp, StatusComponent, StatusPlatform
from probewatch.probes import ProbeOutcome


class FakeProbe:
    """Stands in for run_probe: returns queued outcomes per target, recording every call."""

    def __init__(self, default: ProbeOutcome | None = None):
        self.default = default or ProbeOutcome(True, "HTTP 200 (5ms)", 5)
        self.outcomes: dict[str, list[ProbeOutcome]] = {}
        self.calls: list[tuple[str, str]] = []

    def queue(self, target: str, *outcomes: ProbeOutcome) -> None:
        self.outcomes.setdefault(target, []).extend(outcomes)

    async def __call__(self, check_type, target, timeout_seconds, expected_status=None):
        self.calls.append((check_type, target))
        queued = self.outcomes.get(target)
        if queued:
            return queued.pop(0)
        return self.default


@pytest_asyncio.fixture
async def session_factory(tmp_path):
    # File-backed so concurrent probe sessions each get their own connection
    engine = create_async_engine(f"sqlite+aiosqlite:///{tmp_path / 'test.db'}", echo=False)
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)
    yield async_sessionmaker(engine, class_=AsyncSession, expire_on_commit=False)
    await engine.dispose()


@pytest_asyncio.fixture
async def db(session_factory):
    async with session_factory() as session:
        yield session


@pytest.fixture
def fake_probe():
    return FakeProbe()


@pytest.fixture
def dispatcher(session_factory, fake_probe):
    return HealthCheckDispatcher(session_factory=session_factory, probe=fake_probe)


@pytest_asyncio.fixture
async def client(session_factory, dispatcher):
    async def override_get_db():
        async with session_factory() as session:
            try:
                yield session
                await session.commit()
            except Exception:
                await session.rollback()
                raise

    app.dependency_overrides[get_db] = override_get_db
    app.dependency_overrides[get_dispatcher] = lambda: dispatcher
    app.state._testing = True

    transport = ASGITransport(app=app)
    async with AsyncClient(transport=transport, base_url="http://test") as c:
        yield c

    app.dependency_overrides.clear()


def auth_headers(role: str = "ADMIN", sub: str = "operator-1") -> dict:
    token = create_access_token({"sub": sub, "role": role}, expires_delta=timedelta(minutes=5))
    return {"Authorization": f"Bearer {token}"}


@pytest.fixture
def admin_headers():
    return auth_headers("ADMIN")


@pytest.fixture
def manager_headers():
    return auth_headers("MANAGER")


@pytest.fixture
def viewer_headers():
    return auth_headers("VIEWER")


@pytest_asyncio.fixture
async def checked_app(db):
    """An HTTP-checked app with one inheriting and one self-checked component."""
    platform = StatusPlatform(name="Core Platform")
    db.add(platform)
    await db.flush()

    app_row = StatusApp(
        platform_id=platform.id,
        name="Billing API",
        check_enabled=True,
        check_type="HTTP_GET",
        check_url="https://billing.example.com/health",
        check_interval_seconds=60,
        check_timeout_seconds=5,
        check_expected_status=200,
        check_failure_threshold=3,
    )
    db.add(app_row)
    await db.flush()

    inheriting = StatusComponent(app_id=app_row.id, name="Invoices", check_inherit_from_app=True)
    own = StatusComponent(
        app_id=app_row.id,
        name="Payments DB",
        check_inherit_from_app=False,
        check_enabled=True,
        check_type="TCP_PORT",
        check_url="db.example.com:5432",
        check_interval_seconds=30,
        check_timeout_seconds=3,
        check_failure_threshold=2,
    )
    db.add_all([inheriting, own])
    await db.commit()
    return {"platform": platform, "app": app_row, "inheriting": inheriting, "own": own}
