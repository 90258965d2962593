"""
Dispute sub-lifecycle rules (pure, no I/O)

OPEN -> {UNDER_REVIEW, AWAITING_SELLER, AWAITING_BUYER} -> {RESOLVED_BUYER, RESOLVED_SELLER, CLOSED}
"""

from typing import Dict, FrozenSet
import enum

from payloom.core.disputes.models import DisputeStatus as D
from payloom.core.escrow.errors import InvalidTransitionError
from payloom.core.escrow.state_machine import EscrowAction


class DisputeWinner(str, enum.Enum):
    BUYER = "BUYER"
    SELLER = "SELLER"


TERMINAL_DISPUTE_STATUSES: FrozenSet[D] = frozenset({D.RESOLVED_BUYER, D.RESOLVED_SELLER, D.CLOSED})

_REVIEW_STATUSES = frozenset({D.UNDER_REVIEW, D.AWAITING_SELLER, D.AWAITING_BUYER})

# Admin review moves (resolution and close are separate operations)
REVIEW_MOVES: Dict[D, FrozenSet[D]] = {
    D.OPEN: _REVIEW_STATUSES,
    D.UNDER_REVIEW: _REVIEW_STATUSES - {D.UNDER_REVIEW},
    D.AWAITING_SELLER: _REVIEW_STATUSES - {D.AWAITING_SELLER},
    D.AWAITING_BUYER: _REVIEW_STATUSES - {D.AWAITING_BUYER},
}

_RESOLUTION = {
    DisputeWinner.BUYER: (D.RESOLVED_BUYER, EscrowAction.RESOLVE_FOR_BUYER),
    DisputeWinner.SELLER: (D.RESOLVED_SELLER, EscrowAction.RESOLVE_FOR_SELLER),
}


def is_terminal(status: D) -> bool:
    return D(status) in TERMINAL_DISPUTE_STATUSES


def check_review_move(current: D, target: D) -> None:
    """Raise InvalidTransitionError unless current -> target is an admin review move"""
    current, target = D(current), D(target)
    if target not in REVIEW_MOVES.get(current, frozenset()):
        raise InvalidTransitionError(f"Dispute cannot move from {current.value} to {target.value}")


def resolution_for(current: D, winner: DisputeWinner):
    """
    Return (dispute status, parent transaction action) for resolving in favour of winner.

    Resolution is allowed from any non-terminal dispute status.
    """
    if is_terminal(current):
        raise InvalidTransitionError(f"Dispute already {D(current).value}")
    return _RESOLUTION[DisputeWinner(winner)]


def check_can_close(current: D) -> None:
    if is_terminal(current):
        raise InvalidTransitionError(f"Dispute already {D(current).value}")


def check_can_append_message(current: D) -> None:
    if is_terminal(current):
        raise InvalidTransitionError("Messages cannot be added to a closed dispute")
