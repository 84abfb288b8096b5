# src/ft_order/application/service.py
"""OrderBuilder: turns a buyer's cart into a persisted, stock-reserved order.

Reads (get/list/by reference) live here too; every status change after
creation goes through the settlement coordinator.
"""
import logging

from sqlalchemy.ext.asyncio import AsyncSession

from src.ft_catalog.application.service import StockReservationService
from src.ft_common.enums import OrderStatus
from src.ft_common.errors import (
    ForbiddenError,
    OrderNotFoundError,
    PaymentNotFoundError,
)
from src.ft_common.id_generator import generate_id, generate_order_number
from src.ft_common.leones import CURRENCY
from src.ft_gateway.auth.jwt_handler import CurrentUser
from src.ft_order.application.schemas import (
    CreateOrderRequest,
    OrderListResponse,
    OrderResponse,
)
from src.ft_order.domain.builder import OrderLine, normalize_delivery, validate_lines
from src.ft_order.domain.models import Order, OrderItem
from src.ft_order.domain.repository import OrderRepositoryProtocol
from src.ft_order.infrastructure.persistence import OrderRepository

logger = logging.getLogger("ft.order")


def ensure_can_view(order: Order, user: CurrentUser) -> None:
    if user.is_admin or order.buyer_id == user.user_id:
        return
    if user.is_vendor and user.user_id in order.vendor_ids:
        return
    raise ForbiddenError("Not allowed to access this order")


class OrderBuilder:
    def __init__(
        self,
        repo: OrderRepositoryProtocol | None = None,
        stock: StockReservationService | None = None,
    ) -> None:
        self._repo: OrderRepositoryProtocol = repo or OrderRepository()
        self._stock = stock or StockReservationService()

    async def create_order(
        self, db: AsyncSession, buyer_id: str, req: CreateOrderRequest
    ) -> Order:
        lines = [OrderLine(i.product_id, i.quantity, i.price) for i in req.items]
        validate_lines(lines)
        delivery = normalize_delivery(req.delivery.model_dump())

        taken: list[tuple[str, int]] = []
        items: list[OrderItem] = []
        try:
            for line in lines:
                reservation = await self._stock.reserve(
                    db, line.product_id, line.quantity
                )
                taken.append((line.product_id, line.quantity))
                items.append(
                    OrderItem(
                        product_id=reservation.product_id,
                        vendor_id=reservation.vendor_id,
                        name=reservation.name,
                        quantity=line.quantity,
                        unit_price=reservation.price,
                    )
                )
                if line.price != reservation.price:
                    logger.info(
                        "Client price differs from catalog: product=%s client=%d catalog=%d",
                        line.product_id, line.price, reservation.price,
                    )

            order = Order(
                id=generate_id(),
                order_number=generate_order_number(),
                buyer_id=buyer_id,
                items=items,
                delivery=delivery,
                total=sum(i.subtotal for i in items),
                currency=CURRENCY,
                status=OrderStatus.PENDING.value,
                client_total=req.total,
            )
            if req.total is not None and req.total != order.total:
                logger.warning(
                    "Client total mismatch on %s: client=%d server=%d",
                    order.order_number, req.total, order.total,
                )
            await self._repo.save(order, db)
            await db.commit()
        except Exception:
            if taken:
                # put back what earlier lines took before the failing one
                await self._release_taken(db, taken)
            await db.rollback()
            raise

        logger.info(
            "Order created: %s buyer=%s items=%d total=%d",
            order.order_number, buyer_id, len(items), order.total,
        )
        return order

    async def _release_taken(
        self, db: AsyncSession, taken: list[tuple[str, int]]
    ) -> None:
        """Compensate earlier reservations; the rollback that follows still decides.

        Must not mask the error that triggered it: an aborted transaction
        refuses further statements, and the original exception is re-raised.
        """
        try:
            await self._stock.release_all(db, taken)
        except Exception as e:
            logger.warning("Stock compensation skipped for %s: %s", taken, e)

    async def get_order(
        self, db: AsyncSession, order_id: str, user: CurrentUser | None = None
    ) -> Order:
        order = await self._repo.get_by_id(order_id, db)
        if order is None:
            raise OrderNotFoundError(order_id)
        if user is not None:
            ensure_can_view(order, user)
        return order

    async def get_order_by_reference(self, db: AsyncSession, ref: str) -> Order:
        order = await self._repo.get_by_payment_ref(ref, db)
        if order is None:
            raise PaymentNotFoundError(ref)
        return order

    async def list_orders(
        self,
        db: AsyncSession,
        user: CurrentUser,
        status: str | None,
        limit: int,
        cursor: str | None,
    ) -> OrderListResponse:
        buyer_id = None if user.is_admin else user.user_id
        statuses = [s.strip() for s in status.split(",") if s.strip()] if status else None
        # Fetch limit+1 to detect has_more without a COUNT(*) query
        orders = await self._repo.list_orders(buyer_id, statuses, limit + 1, cursor, db)
        has_more = len(orders) > limit
        page = orders[:limit]
        return OrderListResponse(
            items=[OrderResponse.from_domain(o) for o in page],
            next_cursor=page[-1].id if has_more and page else None,
            has_more=has_more,
        )
