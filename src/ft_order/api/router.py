# src/ft_order/api/router.py
"""Order REST API: all endpoints require JWT authentication."""
from typing import Annotated

from fastapi import APIRouter, Depends, Query, Request
from pydantic import BaseModel
from sqlalchemy.ext.asyncio import AsyncSession

from src.ft_common.database import get_db_session
from src.ft_common.response import ApiResponse, respond
from src.ft_escrow.application.schemas import EscrowResponse
from src.ft_gateway.auth.dependencies import get_current_user, require_vendor_or_admin
from src.ft_gateway.auth.jwt_handler import CurrentUser
from src.ft_order.application.schemas import (
    CancelOrderRequest,
    CreateOrderRequest,
    OrderResponse,
    UpdateOrderStatusRequest,
)
from src.ft_settlement.api.dependencies import get_coordinator
from src.ft_settlement.application.coordinator import SettlementCoordinator

router = APIRouter(prefix="/orders", tags=["orders"])

User = Annotated[CurrentUser, Depends(get_current_user)]
Db = Annotated[AsyncSession, Depends(get_db_session)]
Coordinator = Annotated[SettlementCoordinator, Depends(get_coordinator)]


class DisputeRequest(BaseModel):
    reason: str


@router.post("", status_code=201)
async def create_order(
    body: CreateOrderRequest,
    request: Request,
    current_user: User,
    db: Db,
    coordinator: Coordinator,
) -> ApiResponse:
    order = await coordinator.create_order(db, current_user.user_id, body)
    return respond(request, OrderResponse.from_domain(order).dump(), "Order created")


@router.get("")
async def list_orders(
    request: Request,
    current_user: User,
    db: Db,
    coordinator: Coordinator,
    status: str | None = Query(None, description="Filter by status, comma separated"),
    limit: int = Query(20, ge=1, le=100, description="Items per page"),
    cursor: str | None = Query(None, description="Pagination cursor (order ID)"),
) -> ApiResponse:
    data = await coordinator.list_orders(db, current_user, status, limit, cursor)
    return respond(request, data.dump())


@router.get("/{order_id}")
async def get_order(
    order_id: str, request: Request, current_user: User, db: Db, coordinator: Coordinator
) -> ApiResponse:
    order = await coordinator.get_order(db, order_id, current_user)
    return respond(request, OrderResponse.from_domain(order).dump())


@router.post("/{order_id}/cancel")
async def cancel_order(
    order_id: str,
    request: Request,
    current_user: User,
    db: Db,
    coordinator: Coordinator,
    body: CancelOrderRequest | None = None,
) -> ApiResponse:
    reason = body.reason if body else None
    order = await coordinator.cancel_order(db, order_id, current_user, reason)
    return respond(request, OrderResponse.from_domain(order).dump(), "Order cancelled")


@router.post("/{order_id}/status")
async def update_status(
    order_id: str,
    body: UpdateOrderStatusRequest,
    request: Request,
    current_user: Annotated[CurrentUser, Depends(require_vendor_or_admin)],
    db: Db,
    coordinator: Coordinator,
) -> ApiResponse:
    order = await coordinator.update_order_status(db, order_id, body.status, current_user)
    return respond(request, OrderResponse.from_domain(order).dump())


@router.post("/{order_id}/confirm-delivery")
async def confirm_delivery(
    order_id: str, request: Request, current_user: User, db: Db, coordinator: Coordinator
) -> ApiResponse:
    order = await coordinator.on_delivered(db, order_id, current_user)
    return respond(request, OrderResponse.from_domain(order).dump(), "Delivery confirmed")


@router.post("/{order_id}/dispute")
async def open_dispute(
    order_id: str,
    body: DisputeRequest,
    request: Request,
    current_user: User,
    db: Db,
    coordinator: Coordinator,
) -> ApiResponse:
    order = await coordinator.open_dispute(db, order_id, current_user, body.reason)
    return respond(request, OrderResponse.from_domain(order).dump(), "Dispute opened")


@router.get("/{order_id}/escrow-status")
async def escrow_status(
    order_id: str, request: Request, current_user: User, db: Db, coordinator: Coordinator
) -> ApiResponse:
    escrow = await coordinator.get_escrow_status(db, order_id, current_user)
    return respond(request, EscrowResponse.from_domain(escrow).dump())
