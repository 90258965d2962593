"""
Transaction state machine - The transition table is the only source of truth

Every handler (API endpoint, gateway webhook, periodic sweep) asks
resolve_transition() whether an action is legal; nothing is inferred from
the status alone. Actor/party checks live in authorize_actor().
"""

from dataclasses import dataclass
from typing import Dict, FrozenSet, List, Optional, Tuple
import enum

from payloom.core.escrow.errors import InvalidTransitionError, UnauthorizedActorError
from payloom.core.security.models import Role
from payloom.core.transactions.models import TransactionStatus as S


class EscrowAction(str, enum.Enum):
    """Actions that move a transaction between statuses"""
    INITIATE_PAYMENT = "INITIATE_PAYMENT"
    CONFIRM_PAYMENT = "CONFIRM_PAYMENT"
    ACCEPT_ORDER = "ACCEPT_ORDER"
    REJECT_ORDER = "REJECT_ORDER"
    ADD_SHIPPING = "ADD_SHIPPING"
    CONFIRM_DELIVERY = "CONFIRM_DELIVERY"
    CONFIRM_RECEIPT = "CONFIRM_RECEIPT"
    OPEN_DISPUTE = "OPEN_DISPUTE"
    RESOLVE_FOR_BUYER = "RESOLVE_FOR_BUYER"
    RESOLVE_FOR_SELLER = "RESOLVE_FOR_SELLER"
    CLOSE_DISPUTE = "CLOSE_DISPUTE"
    EXPIRE = "EXPIRE"
    AUTO_RELEASE = "AUTO_RELEASE"


@dataclass(frozen=True)
class Actor:
    """Who is asking. user_id is None for SYSTEM."""
    role: Role
    user_id: Optional[str] = None

    @classmethod
    def system(cls) -> "Actor":
        return cls(role=Role.SYSTEM)


@dataclass(frozen=True)
class Transition:
    action: EscrowAction
    from_status: S
    to_status: Optional[S]  # None: back to the status the dispute interrupted
    actors: FrozenSet[Role]
    event_type: str
    timestamps: Tuple[str, ...] = ()  # columns set to "now", each written once
    releases_escrow: bool = False  # compute payout and credit the seller
    refunds_buyer: bool = False


DISPUTABLE_STATUSES = (S.PAID, S.ACCEPTED, S.SHIPPED, S.DELIVERED)

_BUYER = frozenset({Role.BUYER})
_SELLER = frozenset({Role.SELLER})
_ADMIN = frozenset({Role.ADMIN})
_SYSTEM = frozenset({Role.SYSTEM})


def _build_table() -> Dict[Tuple[S, EscrowAction], Transition]:
    rows = [
        Transition(EscrowAction.INITIATE_PAYMENT, S.PENDING, S.PROCESSING, _BUYER, "PAYMENT_INITIATED"),
        Transition(EscrowAction.CONFIRM_PAYMENT, S.PROCESSING, S.PAID, _SYSTEM, "PAYMENT_RECEIVED",
                   timestamps=("paid_at",)),
        Transition(EscrowAction.ACCEPT_ORDER, S.PAID, S.ACCEPTED, _SELLER, "ORDER_ACCEPTED",
                   timestamps=("accepted_at",)),
        Transition(EscrowAction.REJECT_ORDER, S.ACCEPTED, S.CANCELLED, _SELLER, "ORDER_REJECTED",
                   timestamps=("rejected_at", "cancelled_at"), refunds_buyer=True),
        Transition(EscrowAction.ADD_SHIPPING, S.ACCEPTED, S.SHIPPED, _SELLER, "ITEM_SHIPPED",
                   timestamps=("shipped_at",)),
        Transition(EscrowAction.CONFIRM_DELIVERY, S.SHIPPED, S.DELIVERED, _BUYER, "DELIVERY_CONFIRMED",
                   timestamps=("delivered_at",)),
        Transition(EscrowAction.CONFIRM_RECEIPT, S.DELIVERED, S.COMPLETED, _BUYER, "PAYMENT_RELEASED",
                   timestamps=("completed_at",), releases_escrow=True),
        Transition(EscrowAction.RESOLVE_FOR_BUYER, S.DISPUTED, S.REFUNDED, _ADMIN, "DISPUTE_RESOLVED",
                   timestamps=("refunded_at",), refunds_buyer=True),
        Transition(EscrowAction.RESOLVE_FOR_SELLER, S.DISPUTED, S.COMPLETED, _ADMIN, "DISPUTE_RESOLVED",
                   timestamps=("completed_at",), releases_escrow=True),
        Transition(EscrowAction.CLOSE_DISPUTE, S.DISPUTED, None, _ADMIN, "DISPUTE_UPDATE"),
        Transition(EscrowAction.EXPIRE, S.PENDING, S.EXPIRED, _SYSTEM, "LINK_EXPIRED"),
        Transition(EscrowAction.AUTO_RELEASE, S.SHIPPED, S.COMPLETED, _SYSTEM, "PAYMENT_RELEASED",
                   timestamps=("completed_at",), releases_escrow=True),
    ]
    rows.extend(
        Transition(EscrowAction.OPEN_DISPUTE, status, S.DISPUTED, frozenset({Role.BUYER, Role.SELLER}),
                   "DISPUTE_OPENED")
        for status in DISPUTABLE_STATUSES
    )
    return {(row.from_status, row.action): row for row in rows}


TRANSITIONS: Dict[Tuple[S, EscrowAction], Transition] = _build_table()


def resolve_transition(status: S, action: EscrowAction, role: Role) -> Transition:
    """
    Look up the transition for (status, action) and check the role may fire it.

    Raises:
        InvalidTransitionError: no row for (status, action)
        UnauthorizedActorError: row exists but role is not allowed
    """
    transition = TRANSITIONS.get((S(status), EscrowAction(action)))
    if transition is None:
        raise InvalidTransitionError(f"Cannot {action.value} a transaction in status {S(status).value}")
    if role not in transition.actors:
        raise UnauthorizedActorError(f"{role.value} may not {action.value}")
    return transition


def allowed_actions(status: S, role: Optional[Role] = None) -> List[EscrowAction]:
    """Actions available from status (optionally for one role), in table order"""
    return [
        t.action for (from_status, _), t in TRANSITIONS.items()
        if from_status == status and (role is None or role in t.actors)
    ]


def authorize_actor(
    transition: Transition,
    actor: Actor,
    *,
    seller_id: str,
    buyer_id: Optional[str],
) -> None:
    """
    Party check on top of the role check.

    A buyer may act only where buyer_id == actor; before a buyer is attached
    (INITIATE_PAYMENT) any user except the seller may claim the purchase.
    A seller may act only where seller_id == actor. Admin and system actions
    carry no party constraint.
    """
    if actor.role not in transition.actors:
        raise UnauthorizedActorError(f"{actor.role.value} may not {transition.action.value}")

    if actor.role == Role.SELLER:
        if not actor.user_id or actor.user_id != seller_id:
            raise UnauthorizedActorError("Only the seller of this transaction may do this")
    elif actor.role == Role.BUYER:
        if not actor.user_id:
            raise UnauthorizedActorError("Buyer identity required")
        if buyer_id is None and transition.action == EscrowAction.INITIATE_PAYMENT:
            if actor.user_id == seller_id:
                raise UnauthorizedActorError("Sellers cannot buy from their own payment link")
        elif actor.user_id != buyer_id:
            raise UnauthorizedActorError("Only the buyer of this transaction may do this")
