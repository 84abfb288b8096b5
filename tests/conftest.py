"""Shared test fixtures."""

import os

# Settings require a JWT secret at import time
os.environ.setdefault("JWT_SECRET", "test-secret-do-not-use-in-production")

from types import SimpleNamespace

import pytest
from httpx import ASGITransport, AsyncClient

from src.ft_catalog.application.service import StockReservationService
from src.ft_catalog.domain.models import Product
from src.ft_common.database import get_db_session
from src.ft_escrow.application.ledger import EscrowLedger
from src.ft_settlement.application.coordinator import SettlementCoordinator
from src.main import app
from tests.fakes import (
    FakeProvider,
    FakeSession,
    InMemoryEscrowRepository,
    InMemoryOrderRepository,
    InMemoryProductRepository,
    RecordingNotifier,
)

TOMATOES = Product(id="prod-tomato", vendor_id="vendor-1", name="Tomatoes (5kg)",
                   price=15000, quantity=10)
RICE = Product(id="prod-rice", vendor_id="vendor-2", name="Local rice (50kg)",
               price=450000, quantity=3)
RETIRED = Product(id="prod-retired", vendor_id="vendor-1", name="Old stock",
                  price=1000, quantity=5, is_active=False)


@pytest.fixture
def world() -> SimpleNamespace:
    """A fully wired coordinator over in-memory repositories."""
    products = InMemoryProductRepository(TOMATOES, RICE, RETIRED)
    orders = InMemoryOrderRepository()
    escrows = InMemoryEscrowRepository(orders)
    stock = StockReservationService(products)
    ledger = EscrowLedger(escrows)
    provider = FakeProvider()
    notifier = RecordingNotifier()
    coordinator = SettlementCoordinator(
        provider=provider,
        notifier=notifier,
        orders=orders,
        ledger=ledger,
        stock=stock,
        auto_release_days=3,
        pending_sweep_minutes=15,
    )
    return SimpleNamespace(
        products=products,
        orders=orders,
        escrows=escrows,
        stock=stock,
        ledger=ledger,
        provider=provider,
        notifier=notifier,
        coordinator=coordinator,
        db=FakeSession(),
    )


@pytest.fixture
async def client(world: SimpleNamespace) -> AsyncClient:
    """Async HTTP client over the app, wired to the in-memory world.

    ASGITransport does not run the lifespan, so app.state is filled here.
    """
    async def _session():
        yield world.db

    app.state.coordinator = world.coordinator
    app.state.redis = None
    app.dependency_overrides[get_db_session] = _session
    transport = ASGITransport(app=app)
    async with AsyncClient(transport=transport, base_url="http://test") as ac:
        yield ac
    app.dependency_overrides.clear()

