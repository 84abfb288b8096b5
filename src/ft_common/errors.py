"""Unified error codes and custom exceptions.

Error code ranges:
  1xxx: Auth
  2xxx: Catalog / stock
  3xxx: Order
  4xxx: Payment
  5xxx: Escrow
  9xxx: System
"""


class AppError(Exception):
    """Base application error."""

    def __init__(
        self,
        code: int,
        message: str,
        http_status: int = 500,
    ) -> None:
        self.code = code
        self.message = message
        self.http_status = http_status
        super().__init__(message)


# --- 1xxx: Auth ---

class InvalidCredentialsError(AppError):
    def __init__(self) -> None:
        super().__init__(1001, "Invalid or expired token", 401)


class ForbiddenError(AppError):
    def __init__(self, detail: str = "Forbidden") -> None:
        super().__init__(1002, detail, 403)


# --- 2xxx: Catalog / stock ---

class ProductNotFoundError(AppError):
    def __init__(self, product_id: str) -> None:
        self.product_id = product_id
        super().__init__(2001, f"Product not found or unavailable: {product_id}", 404)


class InsufficientStockError(AppError):
    def __init__(self, product_id: str, requested: int, available: int) -> None:
        self.product_id = product_id
        self.requested = requested
        self.available = available
        super().__init__(
            2002,
            f"Insufficient stock for product {product_id}: "
            f"requested {requested}, available {available}",
            409,
        )


class InvalidQuantityError(AppError):
    def __init__(self, quantity: int) -> None:
        super().__init__(2003, f"Quantity must be positive, got {quantity}", 422)


# --- 3xxx: Order ---

class OrderValidationError(AppError):
    def __init__(self, detail: str) -> None:
        super().__init__(3001, detail, 422)


class OrderNotFoundError(AppError):
    def __init__(self, order_id: str) -> None:
        super().__init__(3002, f"Order not found: {order_id}", 404)


class OrderNotCancellableError(AppError):
    def __init__(self, order_id: str, status: str) -> None:
        super().__init__(3003, f"Order {order_id} in status {status} cannot be cancelled", 409)


class InvalidOrderTransitionError(AppError):
    def __init__(self, current: str, target: str) -> None:
        super().__init__(
            3004, f"Invalid order status transition from {current} to {target}", 409
        )


class OrderNotPayableError(AppError):
    def __init__(self, order_id: str, status: str) -> None:
        super().__init__(3005, f"Order {order_id} in status {status} cannot be paid", 409)


# --- 4xxx: Payment ---

class PaymentValidationError(AppError):
    def __init__(self, detail: str) -> None:
        super().__init__(4001, detail, 422)


class OrderAlreadyPaidError(AppError):
    def __init__(self, order_id: str) -> None:
        super().__init__(4002, f"Order is already paid: {order_id}", 409)


class PaymentAlreadyPendingError(AppError):
    def __init__(self, order_id: str, reference: str) -> None:
        self.reference = reference
        super().__init__(
            4003, f"Payment already initiated for order {order_id} (reference {reference})", 409
        )


class PaymentNotConfiguredError(AppError):
    """Deployment problem: never retried automatically."""

    def __init__(self, missing: list[str]) -> None:
        self.missing = missing
        super().__init__(
            4004, f"Payment service not available. Missing configuration: {', '.join(missing)}", 503
        )


class ProviderError(AppError):
    """Transient provider failure: safe to retry with the same reference."""

    def __init__(self, detail: str) -> None:
        super().__init__(4005, f"Payment provider error: {detail}", 502)


class InvalidWebhookSignatureError(AppError):
    def __init__(self) -> None:
        super().__init__(4006, "Invalid webhook signature", 401)


class PaymentNotFoundError(AppError):
    def __init__(self, reference: str) -> None:
        super().__init__(4007, f"No order matches payment reference: {reference}", 404)


# --- 5xxx: Escrow ---

class EscrowNotFoundError(AppError):
    def __init__(self, ref: str) -> None:
        super().__init__(5001, f"Escrow not found: {ref}", 404)


class EscrowAlreadyFundedError(AppError):
    def __init__(self, escrow_id: str) -> None:
        super().__init__(5002, f"Escrow {escrow_id} is already funded", 409)


class EscrowNotPendingError(AppError):
    def __init__(self, escrow_id: str, status: str) -> None:
        super().__init__(5003, f"Escrow {escrow_id} is not pending (status={status})", 409)


class EscrowNotFundedError(AppError):
    def __init__(self, escrow_id: str, status: str) -> None:
        super().__init__(5004, f"Escrow {escrow_id} is not funded (status={status})", 409)


class EscrowAlreadyTerminalError(AppError):
    def __init__(self, escrow_id: str, status: str) -> None:
        super().__init__(5005, f"Escrow {escrow_id} is already settled (status={status})", 409)


# --- 9xxx: System ---

class RateLimitError(AppError):
    def __init__(self, retry_after: int = 60) -> None:
        self.retry_after = retry_after
        super().__init__(9001, "Rate limit exceeded", 429)


class InternalError(AppError):
    def __init__(self, detail: str = "Internal server error") -> None:
        super().__init__(9002, detail, 500)
