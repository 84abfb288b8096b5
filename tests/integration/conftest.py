"""Integration-test fixtures.

All integration tests share a single event loop so that the engine pool and
Redis pool built by the application lifespan remain valid across the whole
session. The payment provider is replaced by the scriptable fake; everything
else (PostgreSQL, Redis, migrations) is real. Requires `alembic upgrade head`
against DATABASE_URL; the session is skipped when the database is unreachable.
"""

import os

os.environ.setdefault("JWT_SECRET", "test-secret-do-not-use-in-production")

import uuid
from collections.abc import AsyncGenerator
from types import SimpleNamespace

import pytest
import pytest_asyncio
from httpx import ASGITransport, AsyncClient
from sqlalchemy import text
from sqlalchemy.exc import DBAPIError

from config.settings import settings
from src.ft_settlement.application.coordinator import SettlementCoordinator
from src.main import app
from tests.fakes import FakeProvider, RecordingNotifier

_SEED_PRODUCT = text("""
    INSERT INTO products (id, vendor_id, name, price, quantity)
    VALUES (:id, :vendor_id, :name, :price, :quantity)
""")


@pytest_asyncio.fixture(loop_scope="session", scope="session")
async def env() -> AsyncGenerator[SimpleNamespace, None]:
    """Running app with a fake provider, plus an HTTP client over it."""
    try:
        lifespan = app.router.lifespan_context(app)
        await lifespan.__aenter__()
    except (OSError, DBAPIError) as e:
        pytest.skip(f"database not reachable at {settings.DATABASE_URL}: {e}")

    provider = FakeProvider()
    notifier = RecordingNotifier()
    app.state.coordinator = SettlementCoordinator(
        provider=provider,
        notifier=notifier,
        auto_release_days=settings.ESCROW_AUTO_RELEASE_DAYS,
        pending_sweep_minutes=settings.PENDING_PAYMENT_SWEEP_MINUTES,
    )
    transport = ASGITransport(app=app)
    async with AsyncClient(transport=transport, base_url="http://test") as ac:
        yield SimpleNamespace(client=ac, provider=provider, notifier=notifier)
    await lifespan.__aexit__(None, None, None)


@pytest_asyncio.fixture(loop_scope="session")
async def product(env: SimpleNamespace) -> SimpleNamespace:
    """A fresh catalog product with 10 units, owned by a fresh vendor."""
    uid = uuid.uuid4().hex[:8]
    p = SimpleNamespace(
        id=f"prod-{uid}", vendor_id=f"vendor-{uid}", name="Cassava (25kg)",
        price=120000, quantity=10,
    )
    async with app.state.session_factory() as db:
        await db.execute(_SEED_PRODUCT, vars(p))
        await db.commit()
    return p


@pytest.fixture
def stock_of():
    """Reads a product's current stock straight from the database."""
    async def _read(product_id: str) -> int:
        async with app.state.session_factory() as db:
            row = (
                await db.execute(
                    text("SELECT quantity FROM products WHERE id = :id"), {"id": product_id}
                )
            ).fetchone()
        return int(row.quantity)

    return _read
