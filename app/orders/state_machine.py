"""Order status graph.

created -> awaiting_payment -> payment_pending -> paid -> processing -> completed,
with failed/cancelled reachable from awaiting_payment, payment_pending and processing.
payment_pending -> payment_pending is allowed so checkout can be re-initialized
with a fresh reference.
"""

CREATED = "created"
AWAITING_PAYMENT = "awaiting_payment"
PAYMENT_PENDING = "payment_pending"
PAID = "paid"
PROCESSING = "processing"
COMPLETED = "completed"
FAILED = "failed"
CANCELLED = "cancelled"

ALL_STATUSES = frozenset(
    {CREATED, AWAITING_PAYMENT, PAYMENT_PENDING, PAID, PROCESSING, COMPLETED, FAILED, CANCELLED}
)

TRANSITIONS: dict[str, frozenset[str]] = {
    CREATED: frozenset({AWAITING_PAYMENT}),
    AWAITING_PAYMENT: frozenset({PAYMENT_PENDING, PAID, FAILED, CANCELLED}),
    PAYMENT_PENDING: frozenset({PAYMENT_PENDING, PAID, FAILED, CANCELLED}),
    PAID: frozenset({PROCESSING}),
    PROCESSING: frozenset({COMPLETED, FAILED}),
    COMPLETED: frozenset(),
    FAILED: frozenset(),
    CANCELLED: frozenset(),
}

# Statuses in which payment has been confirmed; detection must not be re-triggered.
SETTLED_STATUSES = frozenset({PAID, PROCESSING, COMPLETED})

# Statuses from which a payment may still be accepted.
PAYABLE_STATUSES = frozenset({AWAITING_PAYMENT, PAYMENT_PENDING})


def can_transition(current: str, target: str) -> bool:
    return target in TRANSITIONS.get(current, frozenset())


def sources_for(target: str) -> tuple[str, ...]:
    """Return every status that may legally move to `target`, sorted for stable SQL params."""
    if target not in ALL_STATUSES:
        raise ValueError(f"Unknown order status '{target}'")
    return tuple(sorted(s for s, targets in TRANSITIONS.items() if target in targets))
