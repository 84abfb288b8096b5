"""In-memory doubles for repositories, the payment provider and the notifier.

They follow the concrete repositories' contracts (guarded transitions, error
types, argument order) so application services can be exercised end to end
without PostgreSQL. Stored objects are deep-copied in and out, so a change is
only visible after the service writes it back. The scenario helpers at the
bottom drive a `world` fixture to a given point of the order lifecycle.
"""

import copy
from datetime import datetime
from types import SimpleNamespace
from typing import Any

from src.ft_catalog.domain.models import Product, Reservation
from src.ft_common.errors import (
    InsufficientStockError,
    InvalidQuantityError,
    PaymentNotConfiguredError,
    ProductNotFoundError,
    ProviderError,
)
from src.ft_escrow.domain.models import Escrow, EscrowEvent
from src.ft_gateway.auth.jwt_handler import create_access_token
from src.ft_order.application.schemas import CreateOrderRequest
from src.ft_order.domain.models import Order
from src.ft_payment.domain.models import ProviderPayment


class FakeSession:
    """Stands in for AsyncSession; only transaction boundaries are recorded."""

    def __init__(self) -> None:
        self.commits = 0
        self.rollbacks = 0

    async def commit(self) -> None:
        self.commits += 1

    async def rollback(self) -> None:
        self.rollbacks += 1


class InMemoryProductRepository:
    def __init__(self, *products: Product) -> None:
        self.products = {p.id: copy.deepcopy(p) for p in products}

    async def get_by_id(self, db: Any, product_id: str) -> Product | None:
        p = self.products.get(product_id)
        return copy.deepcopy(p) if p else None

    async def reserve(self, db: Any, product_id: str, quantity: int) -> Reservation:
        if quantity <= 0:
            raise InvalidQuantityError(quantity)
        p = self.products.get(product_id)
        if p is None or not p.is_active:
            raise ProductNotFoundError(product_id)
        if p.quantity < quantity:
            raise InsufficientStockError(product_id, quantity, p.quantity)
        p.quantity -= quantity
        return Reservation(
            product_id=p.id,
            vendor_id=p.vendor_id,
            name=p.name,
            quantity=quantity,
            price=p.price,
            remaining_stock=p.quantity,
        )

    async def release(self, db: Any, product_id: str, quantity: int) -> None:
        if quantity <= 0:
            raise InvalidQuantityError(quantity)
        p = self.products.get(product_id)
        if p is None:
            raise ProductNotFoundError(product_id)
        p.quantity += quantity


class InMemoryOrderRepository:
    def __init__(self) -> None:
        self.orders: dict[str, Order] = {}
        self.locked: list[str] = []

    async def save(self, order: Order, db: Any) -> None:
        self.orders[order.id] = copy.deepcopy(order)

    async def get_by_id(
        self, order_id: str, db: Any, for_update: bool = False
    ) -> Order | None:
        if for_update:
            self.locked.append(order_id)
        o = self.orders.get(order_id)
        return copy.deepcopy(o) if o else None

    async def get_by_payment_ref(
        self, ref: str, db: Any, for_update: bool = False
    ) -> Order | None:
        for o in self.orders.values():
            p = o.payment
            if p and ref in (p.reference, p.transaction_id, p.provider_payment_id):
                if for_update:
                    self.locked.append(o.id)
                return copy.deepcopy(o)
        return None

    async def update(self, order: Order, db: Any) -> None:
        self.orders[order.id] = copy.deepcopy(order)

    async def list_orders(
        self,
        buyer_id: str | None,
        statuses: list[str] | None,
        limit: int,
        cursor_id: str | None,
        db: Any,
    ) -> list[Order]:
        rows = sorted(self.orders.values(), key=lambda o: o.id, reverse=True)
        rows = [
            o for o in rows
            if (buyer_id is None or o.buyer_id == buyer_id)
            and (not statuses or o.status in statuses)
            and (cursor_id is None or o.id < cursor_id)
        ]
        return copy.deepcopy(rows[:limit])

    async def list_payments(
        self, buyer_id: str | None, limit: int, cursor_id: str | None, db: Any
    ) -> list[Order]:
        rows = sorted(self.orders.values(), key=lambda o: o.id, reverse=True)
        rows = [
            o for o in rows
            if o.payment is not None
            and (buyer_id is None or o.buyer_id == buyer_id)
            and (cursor_id is None or o.id < cursor_id)
        ]
        return copy.deepcopy(rows[:limit])

    async def list_stale_payments(
        self, initiated_before: datetime, limit: int, db: Any
    ) -> list[Order]:
        rows = [
            o for o in self.orders.values()
            if o.payment_status in ("pending", "processing")
            and o.payment is not None
            and o.payment.initiated_at is not None
            and o.payment.initiated_at < initiated_before
        ]
        return copy.deepcopy(sorted(rows, key=lambda o: o.id)[:limit])


class InMemoryEscrowRepository:
    def __init__(self, orders: InMemoryOrderRepository | None = None) -> None:
        self.escrows: dict[str, Escrow] = {}
        self.events: list[EscrowEvent] = []
        self.locked: list[str] = []
        self._orders = orders

    async def insert(self, db: Any, escrow: Escrow) -> Escrow:
        if any(e.order_id == escrow.order_id for e in self.escrows.values()):
            raise AssertionError(f"duplicate escrow for order {escrow.order_id}")
        self.escrows[escrow.id] = copy.deepcopy(escrow)
        return copy.deepcopy(escrow)

    async def get_by_id(
        self, db: Any, escrow_id: str, for_update: bool = False
    ) -> Escrow | None:
        if for_update:
            self.locked.append(escrow_id)
        e = self.escrows.get(escrow_id)
        return copy.deepcopy(e) if e else None

    async def get_by_order(self, db: Any, order_id: str) -> Escrow | None:
        for e in self.escrows.values():
            if e.order_id == order_id:
                return copy.deepcopy(e)
        return None

    def _guard(self, escrow_id: str, expected: tuple[str, ...]) -> Escrow | None:
        e = self.escrows.get(escrow_id)
        if e is None or e.status not in expected:
            return None
        return e

    async def relink_pending(
        self, db: Any, escrow_id: str, reference: str, provider_payment_id: str | None
    ) -> Escrow | None:
        e = self._guard(escrow_id, ("pending",))
        if e is None:
            return None
        e.payment_reference = reference
        e.provider_payment_id = provider_payment_id
        return copy.deepcopy(e)

    async def mark_funded(
        self, db: Any, escrow_id: str, provider_payment_id: str | None
    ) -> Escrow | None:
        e = self._guard(escrow_id, ("pending",))
        if e is None:
            return None
        e.status = "funded"
        e.funded_at = datetime.now()
        e.provider_payment_id = provider_payment_id or e.provider_payment_id
        return copy.deepcopy(e)

    async def mark_released(
        self, db: Any, escrow_id: str, reason: str, notes: str | None
    ) -> Escrow | None:
        e = self._guard(escrow_id, ("funded",))
        if e is None:
            return None
        e.status = "released_to_vendor"
        e.released_at = datetime.now()
        e.release_reason = reason
        e.admin_notes = notes or e.admin_notes
        return copy.deepcopy(e)

    async def mark_refunded(
        self, db: Any, escrow_id: str, reason: str, notes: str | None
    ) -> Escrow | None:
        e = self._guard(escrow_id, ("pending", "funded"))
        if e is None:
            return None
        e.status = "refunded_to_buyer"
        e.refunded_at = datetime.now()
        e.refund_reason = reason
        e.admin_notes = notes or e.admin_notes
        return copy.deepcopy(e)

    async def append_event(self, db: Any, event: EscrowEvent) -> None:
        event.id = len(self.events) + 1
        self.events.append(copy.deepcopy(event))

    async def list_events(self, db: Any, escrow_id: str) -> list[EscrowEvent]:
        return [copy.deepcopy(ev) for ev in self.events if ev.escrow_id == escrow_id]

    def _in_scope(self, e: Escrow, buyer_id: str | None, vendor_id: str | None) -> bool:
        if buyer_id is not None and e.buyer_id != buyer_id:
            return False
        if vendor_id is not None:
            assert self._orders is not None
            o = self._orders.orders.get(e.order_id)
            return o is not None and vendor_id in o.vendor_ids
        return True

    async def list_escrows(
        self,
        db: Any,
        status: str | None,
        limit: int,
        cursor_id: str | None,
        buyer_id: str | None = None,
        vendor_id: str | None = None,
    ) -> list[Escrow]:
        rows = sorted(self.escrows.values(), key=lambda e: e.id, reverse=True)
        rows = [
            e for e in rows
            if (status is None or e.status == status)
            and (cursor_id is None or e.id < cursor_id)
            and self._in_scope(e, buyer_id, vendor_id)
        ]
        return copy.deepcopy(rows[:limit])

    async def list_release_candidates(
        self, db: Any, delivered_before: datetime, limit: int
    ) -> list[Escrow]:
        assert self._orders is not None
        out = []
        for e in self.escrows.values():
            o = self._orders.orders.get(e.order_id)
            if (
                e.status == "funded"
                and o is not None
                and o.status == "delivered"
                and o.delivered_at is not None
                and o.delivered_at < delivered_before
            ):
                out.append(copy.deepcopy(e))
        return out[:limit]

    async def status_totals(
        self, db: Any, buyer_id: str | None = None, vendor_id: str | None = None
    ) -> list[Any]:
        totals: dict[str, list[int]] = {}
        for e in self.escrows.values():
            if not self._in_scope(e, buyer_id, vendor_id):
                continue
            t = totals.setdefault(e.status, [0, 0])
            t[0] += 1
            t[1] += e.amount
        return [SimpleNamespace(status=s, count=c, amount=a) for s, (c, a) in totals.items()]


class FakeProvider:
    """Scriptable payment provider.

    `create_result` / `create_error` drive create_mobile_money_payment;
    `remote_status` maps reference -> status (or an exception) for verify.
    """

    WEBHOOK_SIGNATURE = "sha256=valid"

    def __init__(self, configured: bool = True) -> None:
        self.configured = configured
        self.create_error: Exception | None = None
        self.remote_status: dict[str, str | Exception] = {}
        self.create_calls: list[dict[str, Any]] = []
        self.verify_calls: list[str] = []

    def is_configured(self) -> bool:
        return self.configured

    def ensure_configured(self) -> None:
        if not self.configured:
            raise PaymentNotConfiguredError(["MONIME_API_KEY"])

    async def create_mobile_money_payment(self, **kwargs: Any) -> ProviderPayment:
        self.create_calls.append(kwargs)
        if self.create_error is not None:
            raise self.create_error
        reference = kwargs["reference"]
        return ProviderPayment(
            payment_id=f"pay_{reference}",
            reference=reference,
            status="pending",
            amount=kwargs["amount"],
            currency="SLE",
            checkout_url=f"https://checkout.example/{reference}",
            expires_at="2026-10-17T12:00:00Z",
        )

    async def verify_payment(self, reference: str) -> ProviderPayment:
        self.verify_calls.append(reference)
        status = self.remote_status.get(reference, "pending")
        if isinstance(status, Exception):
            raise status
        return ProviderPayment(
            payment_id=f"pay_{reference}",
            reference=reference,
            status=status,
            transaction_id=f"txn_{reference}",
        )

    def validate_webhook_signature(self, payload: bytes, signature: str) -> bool:
        return signature == self.WEBHOOK_SIGNATURE


class RecordingNotifier:
    def __init__(self, fail: bool = False) -> None:
        self.sent: list[tuple[str, str, dict[str, Any]]] = []
        self.fail = fail

    async def send(self, template: str, recipient_id: str, context: dict[str, Any]) -> None:
        if self.fail:
            raise RuntimeError("notification backend down")
        self.sent.append((template, recipient_id, context))

    def templates(self) -> list[str]:
        return [t for t, _, _ in self.sent]


def provider_down() -> ProviderError:
    return ProviderError("request timed out")


def bearer(user_id: str, role: str = "buyer") -> dict[str, str]:
    return {"Authorization": f"Bearer {create_access_token(user_id, role)}"}


def order_request(*items: tuple[str, int, int], total: int | None = None,
                  **delivery: str) -> CreateOrderRequest:
    """A camelCase order body as the storefront sends it; items are (product, qty, price)."""
    body: dict[str, Any] = {
        "items": [{"productId": p, "quantity": q, "price": price} for p, q, price in items],
        "delivery": {
            "firstName": "Aminata",
            "lastName": "Kamara",
            "phone": "23276123456",
            "address": "12 Wilkinson Road",
            "district": "Western Area Urban",
            **delivery,
        },
    }
    if total is not None:
        body["total"] = total
    return CreateOrderRequest.model_validate(body)


async def placed_order(world: Any, buyer_id: str = "buyer-1", quantity: int = 2) -> Order:
    return await world.coordinator.create_order(
        world.db, buyer_id, order_request(("prod-tomato", quantity, 15000))
    )


async def pending_payment(world: Any, buyer_id: str = "buyer-1") -> tuple[Order, str]:
    """An order with an initiated payment; returns the order and its reference."""
    order = await placed_order(world, buyer_id)
    handle = await world.coordinator.initiate_payment(
        world.db, order.id, buyer_id, "orange_money", "23276123456"
    )
    return order, handle.reference


async def paid_order(world: Any, buyer_id: str = "buyer-1") -> Order:
    """An order whose payment completed, so its escrow is funded."""
    order, reference = await pending_payment(world, buyer_id)
    world.provider.remote_status[reference] = "completed"
    await world.coordinator.reconcile(world.db, reference)
    return world.orders.orders[order.id]
