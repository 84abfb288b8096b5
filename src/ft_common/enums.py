"""Global enums: must match DB CHECK constraints exactly."""

from enum import Enum


class UserRole(str, Enum):
    BUYER = "buyer"
    VENDOR = "vendor"
    ADMIN = "admin"


class OrderStatus(str, Enum):
    PENDING = "pending"
    PENDING_PAYMENT = "pending_payment"
    PAID = "paid"
    CONFIRMED = "confirmed"
    PROCESSING = "processing"
    SHIPPED = "shipped"
    DELIVERED = "delivered"
    COMPLETED = "completed"
    CANCELLED = "cancelled"
    PAYMENT_FAILED = "payment_failed"
    DISPUTED = "disputed"
    REFUNDED = "refunded"


class PaymentStatus(str, Enum):
    """Provider-side payment status, mirrored on Order.payment.status."""
    PENDING = "pending"
    PROCESSING = "processing"
    COMPLETED = "completed"
    FAILED = "failed"
    CANCELLED = "cancelled"


class PaymentMethod(str, Enum):
    ORANGE_MONEY = "orange_money"
    AFRIMONEY = "afrimoney"
    AFRICELL_MONEY = "africell_money"


class EscrowStatus(str, Enum):
    PENDING = "pending"
    FUNDED = "funded"
    RELEASED_TO_VENDOR = "released_to_vendor"
    REFUNDED_TO_BUYER = "refunded_to_buyer"


class ReleaseReason(str, Enum):
    BUYER_CONFIRMATION = "buyer_confirmation"
    AUTO_RELEASE = "auto_release"
    ADMIN_RELEASE = "admin_release"
    DISPUTE_RESOLUTION = "dispute_resolution"


class DisputeOutcome(str, Enum):
    RELEASE_TO_VENDOR = "release_to_vendor"
    REFUND_TO_BUYER = "refund_to_buyer"


class ReconcileSource(str, Enum):
    """Which path delivered a payment outcome to the reconciler."""
    WEBHOOK = "webhook"
    VERIFY = "verify"
    POLL = "poll"
    MANUAL = "manual"
    SWEEP = "sweep"
