"""Escrow transaction state machine and permitted-action derivation.

Statuses are plain strings as the remote authority sends them. Every consumer
that needs to know which step a transaction is on asks
`derive_permitted_actions` rather than checking status membership itself.
"""

PENDING = "PENDING"
PROCESSING = "PROCESSING"
PAID = "PAID"
ACCEPTED = "ACCEPTED"
SHIPPED = "SHIPPED"
DELIVERED = "DELIVERED"
CONFIRMED = "CONFIRMED"
COMPLETED = "COMPLETED"
CANCELLED = "CANCELLED"
DISPUTED = "DISPUTED"
REFUNDED = "REFUNDED"

STATUSES: tuple[str, ...] = (
    PENDING,
    PROCESSING,
    PAID,
    ACCEPTED,
    SHIPPED,
    DELIVERED,
    CONFIRMED,
    COMPLETED,
    CANCELLED,
    DISPUTED,
    REFUNDED,
)

ALLOWED_TRANSITIONS: dict[str, frozenset[str]] = {
    PENDING: frozenset({PROCESSING, CANCELLED}),
    PROCESSING: frozenset({PAID, CANCELLED}),
    PAID: frozenset({ACCEPTED, DISPUTED}),
    ACCEPTED: frozenset({SHIPPED, DISPUTED}),
    SHIPPED: frozenset({DELIVERED, DISPUTED}),
    DELIVERED: frozenset({CONFIRMED, DISPUTED}),
    CONFIRMED: frozenset({COMPLETED}),
    COMPLETED: frozenset(),
    CANCELLED: frozenset(),
    DISPUTED: frozenset(),
    REFUNDED: frozenset(),
}

# Refunds are issued by an administrator, never by buyer or seller flows.
ADMIN_TRANSITIONS: dict[str, frozenset[str]] = {
    COMPLETED: frozenset({REFUNDED}),
    DISPUTED: frozenset({REFUNDED}),
}

TERMINAL_STATES: frozenset[str] = frozenset({CANCELLED, COMPLETED, REFUNDED})

SHOW_PAYMENT_WIDGET = "showPaymentWidget"
SHOW_SELLER_ACCEPT_OR_REJECT = "showSellerAcceptOrReject"
SHOW_SHIPPING_ENTRY = "showShippingEntry"
SHOW_BUYER_CONFIRMATION = "showBuyerConfirmation"

PERMITTED_ACTIONS: dict[str, frozenset[str]] = {
    PENDING: frozenset({SHOW_PAYMENT_WIDGET}),
    PROCESSING: frozenset({SHOW_PAYMENT_WIDGET}),
    PAID: frozenset({SHOW_SELLER_ACCEPT_OR_REJECT}),
    ACCEPTED: frozenset({SHOW_SHIPPING_ENTRY}),
    SHIPPED: frozenset({SHOW_SHIPPING_ENTRY}),
    DELIVERED: frozenset({SHOW_BUYER_CONFIRMATION}),
}

# Statuses an action can move a transaction into, before intersecting with the
# transitions allowed out of the current status.
ACTION_TARGETS: dict[str, frozenset[str]] = {
    SHOW_PAYMENT_WIDGET: frozenset({PROCESSING, PAID}),
    SHOW_SELLER_ACCEPT_OR_REJECT: frozenset({ACCEPTED, CANCELLED}),
    SHOW_SHIPPING_ENTRY: frozenset({SHIPPED, DELIVERED}),
    SHOW_BUYER_CONFIRMATION: frozenset({CONFIRMED, DISPUTED}),
}

_MILESTONE_FIELDS: dict[str, str] = {
    PAID: "paid_at",
    SHIPPED: "shipped_at",
    DELIVERED: "delivered_at",
}


def parse_status(raw) -> str | None:
    """Return the canonical status for `raw`, or None when it is unknown."""

    if not isinstance(raw, str):
        return None
    status = raw.strip().upper()
    return status if status in ALLOWED_TRANSITIONS else None


def is_terminal(status: str) -> bool:
    return status in TERMINAL_STATES


def can_transition(current: str, new: str, administrative: bool = False) -> bool:
    """Whether `current -> new` is an edge of the transition graph."""

    if new in ALLOWED_TRANSITIONS.get(current, frozenset()):
        return True
    return administrative and new in ADMIN_TRANSITIONS.get(current, frozenset())


def validate_transition(current: str, new: str, administrative: bool = False) -> None:
    """Raise when a transition is not allowed by the state machine."""

    if not can_transition(current, new, administrative=administrative):
        raise ValueError(f"Invalid transition: {current} -> {new}")


def derive_permitted_actions(status) -> frozenset[str]:
    """Action tags exposed for `status`.

    Unknown statuses yield the empty set so callers can render a neutral
    fallback instead of failing.
    """

    known = parse_status(status)
    if known is None:
        return frozenset()
    return PERMITTED_ACTIONS.get(known, frozenset())


def action_transitions(status: str, action: str) -> frozenset[str]:
    """Statuses reachable from `status` in one step through `action`."""

    if action not in derive_permitted_actions(status):
        return frozenset()
    return ACTION_TARGETS[action] & ALLOWED_TRANSITIONS[status]


def milestone_field(status: str) -> str | None:
    """Name of the timestamp field a status sets on reaching it, if any."""

    return _MILESTONE_FIELDS.get(status)


def reachable_from(start: str = PENDING) -> frozenset[str]:
    """Every status reachable from `start`, administrative edges included."""

    seen = {start}
    frontier = [start]
    while frontier:
        current = frontier.pop()
        nxt = ALLOWED_TRANSITIONS.get(current, frozenset()) | ADMIN_TRANSITIONS.get(current, frozenset())
        for status in nxt - seen:
            seen.add(status)
            frontier.append(status)
    return frozenset(seen)
