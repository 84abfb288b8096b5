# src/ft_order/application/schemas.py
from datetime import datetime

from src.ft_common.leones import leones_to_display
from src.ft_common.schemas import CamelModel
from src.ft_order.domain.models import Order, PaymentRecord


class OrderItemRequest(CamelModel):
    product_id: str
    quantity: int
    price: int


class DeliveryRequest(CamelModel):
    # Presence is checked after trimming by the order builder
    first_name: str | None = None
    last_name: str | None = None
    phone: str | None = None
    address: str | None = None
    district: str | None = None
    city: str | None = None
    notes: str | None = None


class CreateOrderRequest(CamelModel):
    items: list[OrderItemRequest]
    delivery: DeliveryRequest
    total: int | None = None


class CancelOrderRequest(CamelModel):
    reason: str | None = None


class UpdateOrderStatusRequest(CamelModel):
    status: str


class OrderItemResponse(CamelModel):
    product_id: str
    vendor_id: str
    name: str
    quantity: int
    unit_price: int
    subtotal: int


class DeliveryResponse(CamelModel):
    first_name: str
    last_name: str
    phone: str
    address: str
    district: str
    city: str
    notes: str


class PaymentResponse(CamelModel):
    provider: str
    method: str
    reference: str
    status: str
    amount: int
    currency: str
    attempt: int
    provider_payment_id: str | None = None
    transaction_id: str | None = None
    initiated_at: datetime | None = None
    completed_at: datetime | None = None

    @classmethod
    def from_record(cls, p: PaymentRecord) -> "PaymentResponse":
        return cls(
            provider=p.provider,
            method=p.method,
            reference=p.reference,
            status=p.status,
            amount=p.amount,
            currency=p.currency,
            attempt=p.attempt,
            provider_payment_id=p.provider_payment_id,
            transaction_id=p.transaction_id,
            initiated_at=p.initiated_at,
            completed_at=p.completed_at,
        )


class OrderResponse(CamelModel):
    id: str
    order_number: str
    buyer_id: str
    items: list[OrderItemResponse]
    delivery: DeliveryResponse
    total: int
    total_display: str
    client_total: int | None = None
    currency: str
    status: str
    payment_status: str | None = None
    payment: PaymentResponse | None = None
    cancel_reason: str | None = None
    dispute_reason: str | None = None
    confirmed_at: datetime | None = None
    delivered_at: datetime | None = None
    completed_at: datetime | None = None
    cancelled_at: datetime | None = None
    created_at: datetime | None = None
    updated_at: datetime | None = None

    @classmethod
    def from_domain(cls, order: Order) -> "OrderResponse":
        return cls(
            id=order.id,
            order_number=order.order_number,
            buyer_id=order.buyer_id,
            items=[OrderItemResponse(**i.to_dict()) for i in order.items],
            delivery=DeliveryResponse(**order.delivery.to_dict()),
            total=order.total,
            total_display=leones_to_display(order.total),
            client_total=order.client_total,
            currency=order.currency,
            status=order.status,
            payment_status=order.payment_status,
            payment=PaymentResponse.from_record(order.payment) if order.payment else None,
            cancel_reason=order.cancel_reason,
            dispute_reason=order.dispute_reason,
            confirmed_at=order.confirmed_at,
            delivered_at=order.delivered_at,
            completed_at=order.completed_at,
            cancelled_at=order.cancelled_at,
            created_at=order.created_at,
            updated_at=order.updated_at,
        )


class OrderListResponse(CamelModel):
    items: list[OrderResponse]
    next_cursor: str | None
    has_more: bool
