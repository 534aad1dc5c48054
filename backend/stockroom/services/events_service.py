# Overview: Best-effort in-process broadcast of committed ledger events.

"""
Event channel.

Services publish strictly after their transaction commits. Delivery is
best-effort and not durable: a failing subscriber is logged and skipped,
and nothing here can roll back a ledger mutation. Subscribers (a WebSocket
gateway, tests) receive (event, payload, room) and reconcile by polling the
API if they miss messages.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from typing import Any, Callable

logger = logging.getLogger(__name__)


ADJUSTMENTS_CREATED = "adjustmentsCreated"
ADJUSTMENT_UPDATED = "adjustmentUpdated"
INVENTORY_ADJUSTED = "inventoryAdjusted"
INVENTORY_UPDATE = "inventoryUpdate"
TRANSFER_CREATED = "transferCreated"
TRANSFER_SHIPPED = "transferShipped"
TRANSFER_RECEIVED = "transferReceived"
TRANSFER_CANCELLED = "transferCancelled"
PURCHASE_RECEIVED = "purchaseReceived"
SALE_CREATED = "saleCreated"
SALE_COMPLETED = "saleCompleted"
LOW_STOCK = "lowStock"

ROOM_PRODUCTS = "products"
ROOM_STOCK_ADJUSTMENTS = "stock_adjustments"
ROOM_PURCHASES = "purchases"


def location_room(location_id: int) -> str:
    return f"location_{location_id}"


Subscriber = Callable[[str, Any, "str | None"], None]


@dataclass
class EventBus:
    subscribers: list[Subscriber] = field(default_factory=list)

    def subscribe(self, callback: Subscriber) -> Callable[[], None]:
        """Register callback; returns a function that unregisters it."""
        self.subscribers.append(callback)

        def _unsubscribe() -> None:
            if callback in self.subscribers:
                self.subscribers.remove(callback)

        return _unsubscribe

    def publish(self, event: str, payload: Any, room: str | None = None) -> None:
        for callback in list(self.subscribers):
            try:
                callback(event, payload, room)
            except Exception:
                logger.warning("Event subscriber failed for %s (room=%s)", event, room, exc_info=True)


bus = EventBus()


def publish(event: str, payload: Any, room: str | None = None) -> None:
    bus.publish(event, payload, room)


def subscribe(callback: Subscriber) -> Callable[[], None]:
    return bus.subscribe(callback)


def publish_inventory_changes(records, *, reason: str) -> None:
    """
    Broadcast the new state of each touched record.

    inventoryAdjusted goes to the record's location room, inventoryUpdate to
    the product-wide room.
    """
    for record in records:
        payload = {
            "inventory_id": record.id,
            "product_id": record.product_id,
            "location_id": record.location_id,
            "quantity": record.quantity,
            "reason": reason,
        }
        publish(INVENTORY_ADJUSTED, payload, room=location_room(record.location_id))
        publish(INVENTORY_UPDATE, payload, room=ROOM_PRODUCTS)
