from typing import Dict, Tuple

PENDING = "pending"
CONFIRMED = "confirmed"
PROCESSING = "processing"
SHIPPED = "shipped"
DELIVERED = "delivered"
CANCELLED = "cancelled"

ORDER_STATUSES: Tuple[str, ...] = (
    PENDING,
    CONFIRMED,
    PROCESSING,
    SHIPPED,
    DELIVERED,
    CANCELLED,
)

TERMINAL_STATUSES = frozenset({DELIVERED, CANCELLED})

# forward step for each non-terminal status
_NEXT: Dict[str, str] = {
    PENDING: CONFIRMED,
    CONFIRMED: PROCESSING,
    PROCESSING: SHIPPED,
    SHIPPED: DELIVERED,
}


def allowed_transitions(status: str) -> Tuple[str, ...]:
    """Statuses an order in `status` may move to (excluding itself)."""
    if status in TERMINAL_STATUSES or status not in ORDER_STATUSES:
        return ()
    return (_NEXT[status], CANCELLED)


def can_transition(current: str, new: str) -> bool:
    return new in allowed_transitions(current)
