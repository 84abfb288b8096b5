"""Payment REST API: initiation, verification and the provider webhook.

Also the buyer's payment history, escrow views scoped to the caller, and
direct escrow release/refund outside the dispute flow.
"""

import logging
from typing import Annotated

from fastapi import APIRouter, Depends, Query, Request
from sqlalchemy.ext.asyncio import AsyncSession

from src.ft_common.database import get_db_session
from src.ft_common.response import ApiResponse, respond
from src.ft_escrow.application.schemas import (
    EscrowListResponse,
    EscrowResponse,
    EscrowStatsResponse,
)
from src.ft_gateway.auth.dependencies import get_current_user
from src.ft_gateway.auth.jwt_handler import CurrentUser
from src.ft_payment.application.schemas import (
    EscrowSettlementResponse,
    InitializePaymentRequest,
    PaymentHandleResponse,
    PaymentMethodResponse,
    ReconciliationResponse,
    RefundEscrowRequest,
    ReleaseEscrowRequest,
    VerifyPaymentRequest,
)
from src.ft_settlement.api.dependencies import get_coordinator
from src.ft_settlement.application.coordinator import SettlementCoordinator

logger = logging.getLogger("ft.payment")

router = APIRouter(prefix="/payments", tags=["payments"])

User = Annotated[CurrentUser, Depends(get_current_user)]
Db = Annotated[AsyncSession, Depends(get_db_session)]
Coordinator = Annotated[SettlementCoordinator, Depends(get_coordinator)]


@router.post("/initialize")
async def initialize_payment(
    body: InitializePaymentRequest,
    request: Request,
    current_user: User,
    db: Db,
    coordinator: Coordinator,
) -> ApiResponse:
    handle = await coordinator.initiate_payment(
        db, body.order_id, current_user.user_id, body.payment_method, body.phone_number
    )
    return respond(
        request,
        PaymentHandleResponse.from_handle(handle).dump(),
        "Payment initialized successfully",
    )


@router.post("/verify")
async def verify_payment(
    body: VerifyPaymentRequest,
    request: Request,
    current_user: User,
    db: Db,
    coordinator: Coordinator,
) -> ApiResponse:
    outcome = await coordinator.verify_payment(
        db, body.transaction_id, current_user, body.admin_notes, body.status
    )
    return respond(request, ReconciliationResponse.from_outcome(outcome).dump())


@router.get("/verify")
async def poll_payment(
    request: Request,
    current_user: User,
    db: Db,
    coordinator: Coordinator,
    reference: str = Query(..., min_length=1, description="Payment reference"),
) -> ApiResponse:
    outcome = await coordinator.poll_status(db, reference, current_user)
    return respond(request, ReconciliationResponse.from_outcome(outcome).dump())


@router.post("/monime/webhook")
async def monime_webhook(
    request: Request, db: Db, coordinator: Coordinator
) -> ApiResponse:
    # Signature covers the exact bytes received
    raw_body = await request.body()
    signature = request.headers.get("x-monime-signature", "")
    outcome = await coordinator.handle_webhook(db, raw_body, signature)
    return respond(
        request,
        ReconciliationResponse.from_outcome(outcome).dump(),
        "Webhook processed successfully",
    )


@router.get("/methods")
async def payment_methods(request: Request, coordinator: Coordinator) -> ApiResponse:
    methods = coordinator.list_payment_methods()
    return respond(request, [PaymentMethodResponse.from_info(m).dump() for m in methods])


@router.get("/history")
async def payment_history(
    request: Request,
    current_user: User,
    db: Db,
    coordinator: Coordinator,
    limit: int = Query(10, ge=1, le=100),
    cursor: str | None = Query(None, description="Pagination cursor (order ID)"),
) -> ApiResponse:
    history = await coordinator.payment_history(db, current_user, limit, cursor)
    return respond(request, history.dump())


@router.post("/release/{order_id}")
async def release_escrow(
    order_id: str,
    body: ReleaseEscrowRequest,
    request: Request,
    current_user: User,
    db: Db,
    coordinator: Coordinator,
) -> ApiResponse:
    order, escrow = await coordinator.release_order_escrow(
        db, order_id, current_user, body.release_reason
    )
    return respond(
        request,
        EscrowSettlementResponse.from_domain(order, escrow).dump(),
        "Escrow released successfully",
    )


@router.post("/refund/{order_id}")
async def refund_escrow(
    order_id: str,
    body: RefundEscrowRequest,
    request: Request,
    current_user: User,
    db: Db,
    coordinator: Coordinator,
) -> ApiResponse:
    order, escrow = await coordinator.refund_order_escrow(
        db, order_id, current_user, body.refund_reason
    )
    return respond(
        request,
        EscrowSettlementResponse.from_domain(order, escrow).dump(),
        "Escrow refunded successfully",
    )


@router.get("/escrows")
async def my_escrows(
    request: Request,
    current_user: User,
    db: Db,
    coordinator: Coordinator,
    status: str | None = Query(None, description="Filter by escrow status"),
    limit: int = Query(10, ge=1, le=100),
    cursor: str | None = Query(None, description="Pagination cursor (escrow ID)"),
) -> ApiResponse:
    escrows = await coordinator.list_escrows(db, current_user, status, limit + 1, cursor)
    has_more = len(escrows) > limit
    page = escrows[:limit]
    data = EscrowListResponse(
        items=[EscrowResponse.from_domain(e) for e in page],
        next_cursor=page[-1].id if has_more and page else None,
        has_more=has_more,
    )
    return respond(request, data.dump())


@router.get("/escrows/stats")
async def my_escrow_stats(
    request: Request, current_user: User, db: Db, coordinator: Coordinator
) -> ApiResponse:
    stats = await coordinator.escrow_stats(db, current_user)
    return respond(request, EscrowStatsResponse.from_domain(stats).dump())
