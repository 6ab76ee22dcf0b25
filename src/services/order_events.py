"""In-process events published after order state changes.

Peripheral reactions to a confirmed payment (clearing the cart, sending
notifications) subscribe here instead of being called inline by the
order service. A failing handler is logged and never affects the
publisher or the other handlers.
"""

import logging
from collections import defaultdict
from dataclasses import dataclass
from typing import Awaitable, Callable

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class PaymentConfirmed:
    """A payment for an order was confirmed.

    source is "webhook" or "callback" depending on which path confirmed it.
    """

    order_id: str
    order_code: str
    customer_id: str
    amount: int
    source: str


Handler = Callable[[object], Awaitable[None]]


class OrderEventBus:
    """Minimal publish/subscribe dispatcher keyed by event class."""

    def __init__(self) -> None:
        self._handlers: dict[type, list[Handler]] = defaultdict(list)

    def subscribe(self, event_type: type, handler: Handler) -> None:
        """Register an async handler for an event type."""
        self._handlers[event_type].append(handler)

    async def publish(self, event: object) -> int:
        """Deliver an event to every handler of its type, in order.

        Args:
            event: The event instance.

        Returns:
            int: Number of handlers that completed without raising.
        """
        delivered = 0
        for handler in self._handlers.get(type(event), []):
            name = getattr(handler, "__qualname__", repr(handler))
            try:
                await handler(event)
                delivered += 1
            except Exception as e:
                logger.error(
                    "Handler %s failed for %s: %s",
                    name,
                    type(event).__name__,
                    str(e),
                    exc_info=True,
                )
        return delivered
