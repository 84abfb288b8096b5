"""Escrow state machine.

    pending ──fund──▶ funded ──release──▶ released_to_vendor
       │                 │
       └─────refund──────┴──────────────▶ refunded_to_buyer

Terminal states are sinks. The database enforces the same table through
guarded UPDATEs; this module classifies a rejected transition.
"""

from src.ft_common.enums import EscrowStatus
from src.ft_common.errors import (
    AppError,
    EscrowAlreadyFundedError,
    EscrowAlreadyTerminalError,
    EscrowNotFundedError,
    EscrowNotPendingError,
)

_P = EscrowStatus.PENDING.value
_F = EscrowStatus.FUNDED.value
_R = EscrowStatus.RELEASED_TO_VENDOR.value
_B = EscrowStatus.REFUNDED_TO_BUYER.value

ESCROW_TRANSITIONS: dict[str, frozenset[str]] = {
    _P: frozenset({_F, _B}),
    _F: frozenset({_R, _B}),
    _R: frozenset(),
    _B: frozenset(),
}

TERMINAL_STATUSES = frozenset({_R, _B})


def can_transition(current: str, target: str) -> bool:
    return target in ESCROW_TRANSITIONS.get(current, frozenset())


def is_terminal(status: str) -> bool:
    return status in TERMINAL_STATUSES


def rejection(escrow_id: str, current: str, target: str) -> AppError:
    """The error to raise when `current -> target` was refused."""
    if target == _F:
        if current == _F:
            return EscrowAlreadyFundedError(escrow_id)
        return EscrowNotPendingError(escrow_id, current)
    if target == _R:
        return EscrowNotFundedError(escrow_id, current)
    return EscrowAlreadyTerminalError(escrow_id, current)
