"""Order status state machine.

Payment-driven moves (pending_payment → confirmed / payment_failed /
cancelled) are applied by the reconciler; the rest are triggered by vendors,
admins and the delivery/dispute collaborators.
"""

from src.ft_common.enums import OrderStatus as S
from src.ft_common.errors import InvalidOrderTransitionError

ORDER_TRANSITIONS: dict[str, frozenset[str]] = {
    S.PENDING.value: frozenset({S.PENDING_PAYMENT.value, S.CANCELLED.value}),
    S.PENDING_PAYMENT.value: frozenset({
        S.PENDING_PAYMENT.value,
        S.CONFIRMED.value,
        S.PAYMENT_FAILED.value,
        S.CANCELLED.value,
    }),
    S.PAYMENT_FAILED.value: frozenset({
        S.PENDING_PAYMENT.value,
        S.CONFIRMED.value,
        S.CANCELLED.value,
    }),
    S.PAID.value: frozenset({S.CONFIRMED.value}),
    # completed / refunded from a paid order: direct escrow release or refund
    S.CONFIRMED.value: frozenset({
        S.PROCESSING.value, S.SHIPPED.value, S.DISPUTED.value,
        S.COMPLETED.value, S.REFUNDED.value,
    }),
    S.PROCESSING.value: frozenset({
        S.SHIPPED.value, S.DISPUTED.value, S.COMPLETED.value, S.REFUNDED.value,
    }),
    S.SHIPPED.value: frozenset({
        S.DELIVERED.value, S.DISPUTED.value, S.COMPLETED.value, S.REFUNDED.value,
    }),
    S.DELIVERED.value: frozenset({S.COMPLETED.value, S.DISPUTED.value, S.REFUNDED.value}),
    S.DISPUTED.value: frozenset({S.COMPLETED.value, S.REFUNDED.value}),
    S.COMPLETED.value: frozenset(),
    S.CANCELLED.value: frozenset(),
    S.REFUNDED.value: frozenset(),
}

# Statuses a vendor or admin may set directly through the status endpoint.
FULFILMENT_STATUSES = frozenset({S.PROCESSING.value, S.SHIPPED.value, S.DELIVERED.value})

CANCELLABLE_STATUSES = frozenset({
    S.PENDING.value,
    S.PENDING_PAYMENT.value,
    S.PAYMENT_FAILED.value,
})

# Paid and not in dispute: held money may be released or refunded directly.
SETTLEABLE_STATUSES = frozenset({
    S.CONFIRMED.value,
    S.PROCESSING.value,
    S.SHIPPED.value,
    S.DELIVERED.value,
})


def can_transition(current: str, target: str) -> bool:
    return target in ORDER_TRANSITIONS.get(current, frozenset())


def ensure_transition(current: str, target: str) -> None:
    if not can_transition(current, target):
        raise InvalidOrderTransitionError(current, target)
