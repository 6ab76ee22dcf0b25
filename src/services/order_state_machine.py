"""Order lifecycle state machine.

Every domain change of ``orders.status`` goes through ``transition``. The
table below is the only source of truth for which event may move an order
from which status:

    payment_succeeded   pending             -> confirmed
    payment_failed      pending             -> failed
    cancel              pending, confirmed  -> failed
    ship                confirmed           -> shipping
    deliver             shipping            -> success

``success`` and ``failed`` are terminal. Administrative overrides that
bypass this table live on the order service and are audited separately.
"""

from enum import Enum

from src.models.order import OrderStatus


class OrderEvent(str, Enum):
    """Events that drive the order lifecycle."""

    PAYMENT_SUCCEEDED = "payment_succeeded"
    PAYMENT_FAILED = "payment_failed"
    CANCEL = "cancel"
    SHIP = "ship"
    DELIVER = "deliver"


TRANSITIONS: dict[OrderEvent, dict[OrderStatus, OrderStatus]] = {
    OrderEvent.PAYMENT_SUCCEEDED: {OrderStatus.PENDING: OrderStatus.CONFIRMED},
    OrderEvent.PAYMENT_FAILED: {OrderStatus.PENDING: OrderStatus.FAILED},
    OrderEvent.CANCEL: {
        OrderStatus.PENDING: OrderStatus.FAILED,
        OrderStatus.CONFIRMED: OrderStatus.FAILED,
    },
    OrderEvent.SHIP: {OrderStatus.CONFIRMED: OrderStatus.SHIPPING},
    OrderEvent.DELIVER: {OrderStatus.SHIPPING: OrderStatus.SUCCESS},
}

TERMINAL_STATUSES = frozenset({OrderStatus.SUCCESS, OrderStatus.FAILED})

# Events an administrator may apply through the transitions endpoint.
ADMIN_EVENTS = frozenset({OrderEvent.SHIP, OrderEvent.DELIVER, OrderEvent.CANCEL})


class InvalidTransitionError(Exception):
    """Raised when an event is not allowed from the current status."""

    def __init__(self, status: OrderStatus, event: OrderEvent) -> None:
        self.status = status
        self.event = event
        super().__init__(f"Cannot apply '{event.value}' to an order in status '{status.value}'")


def can_transition(status: OrderStatus | str, event: OrderEvent | str) -> bool:
    """Check whether an event is allowed from a status."""
    return OrderStatus(status) in TRANSITIONS[OrderEvent(event)]


def transition(status: OrderStatus | str, event: OrderEvent | str) -> OrderStatus:
    """Return the status reached by applying an event.

    Args:
        status: Current order status.
        event: Event to apply.

    Returns:
        OrderStatus: The next status.

    Raises:
        InvalidTransitionError: If the event is not allowed from status.
    """
    current = OrderStatus(status)
    event = OrderEvent(event)
    try:
        return TRANSITIONS[event][current]
    except KeyError:
        raise InvalidTransitionError(current, event) from None


def is_terminal(status: OrderStatus | str) -> bool:
    """Check whether no further lifecycle events apply to a status."""
    return OrderStatus(status) in TERMINAL_STATUSES
