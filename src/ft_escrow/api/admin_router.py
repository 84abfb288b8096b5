"""Admin escrow REST API: dashboard, audit trail, settlement jobs."""

from typing import Annotated

from fastapi import APIRouter, Depends, Query, Request
from sqlalchemy.ext.asyncio import AsyncSession

from src.ft_common.database import get_db_session
from src.ft_common.response import ApiResponse, respond
from src.ft_escrow.application.schemas import (
    EscrowEventResponse,
    EscrowListResponse,
    EscrowResponse,
    EscrowStatsResponse,
    ResolveDisputeRequest,
)
from src.ft_gateway.auth.dependencies import require_admin
from src.ft_gateway.auth.jwt_handler import CurrentUser
from src.ft_order.application.schemas import OrderResponse
from src.ft_settlement.api.dependencies import get_coordinator
from src.ft_settlement.application.coordinator import SettlementCoordinator

router = APIRouter(prefix="/admin", tags=["admin"])

Admin = Annotated[CurrentUser, Depends(require_admin)]
Db = Annotated[AsyncSession, Depends(get_db_session)]
Coordinator = Annotated[SettlementCoordinator, Depends(get_coordinator)]


@router.get("/escrow")
async def list_escrows(
    request: Request,
    admin: Admin,
    db: Db,
    coordinator: Coordinator,
    status: str | None = Query(None, description="Filter by escrow status"),
    limit: int = Query(20, ge=1, le=100),
    cursor: str | None = Query(None, description="Pagination cursor (escrow ID)"),
) -> ApiResponse:
    escrows = await coordinator.ledger.list_escrows(db, status, limit + 1, cursor)
    has_more = len(escrows) > limit
    page = escrows[:limit]
    data = EscrowListResponse(
        items=[EscrowResponse.from_domain(e) for e in page],
        next_cursor=page[-1].id if has_more and page else None,
        has_more=has_more,
    )
    return respond(request, data.dump())


@router.get("/escrow/stats")
async def escrow_stats(
    request: Request, admin: Admin, db: Db, coordinator: Coordinator
) -> ApiResponse:
    stats = await coordinator.ledger.get_stats(db)
    return respond(request, EscrowStatsResponse.from_domain(stats).dump())


@router.get("/escrow/{escrow_id}/events")
async def escrow_events(
    escrow_id: str, request: Request, admin: Admin, db: Db, coordinator: Coordinator
) -> ApiResponse:
    events = await coordinator.ledger.list_events(db, escrow_id)
    return respond(request, [EscrowEventResponse.from_domain(e).dump() for e in events])


@router.post("/escrow/auto-release")
async def auto_release(
    request: Request, admin: Admin, db: Db, coordinator: Coordinator
) -> ApiResponse:
    result = await coordinator.process_auto_release(db)
    return respond(request, result, "Auto-release processed")


@router.post("/payments/sweep")
async def sweep_payments(
    request: Request, admin: Admin, db: Db, coordinator: Coordinator
) -> ApiResponse:
    results = await coordinator.sweep_pending_payments(db)
    return respond(request, {"processed": len(results), "results": results})


@router.post("/disputes/{order_id}/resolve")
async def resolve_dispute(
    order_id: str,
    body: ResolveDisputeRequest,
    request: Request,
    admin: Admin,
    db: Db,
    coordinator: Coordinator,
) -> ApiResponse:
    order = await coordinator.on_dispute_resolved(
        db, order_id, body.outcome, admin.user_id, body.notes
    )
    return respond(request, OrderResponse.from_domain(order).dump(), "Dispute resolved")
