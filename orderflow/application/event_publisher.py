import logging
from typing import Iterable

from orderflow.core.clock import utc_now
from orderflow.domain.enums import EventType, OrderStatus, Role
from orderflow.domain.schemas import OrderEvent
from orderflow.domain.state_machine import LIVE_TRACKING_STATES, status_message
from orderflow.interfaces.IEventBroadcaster import IEventBroadcaster

logger = logging.getLogger(__name__)


def customer_topic(customer_id: int) -> str:
    return f"user_{customer_id}"


def restaurant_topic(restaurant_id: int) -> str:
    return f"restaurant_{restaurant_id}"


def partner_topic(partner_id: int) -> str:
    return f"delivery_{partner_id}"


_OWNER_TOPICS = {
    Role.CUSTOMER: customer_topic,
    Role.RESTAURANT: restaurant_topic,
    Role.DELIVERY_PARTNER: partner_topic,
}


class EventPublisher:
    """
    Builds domain events and hands them to the broadcaster, one topic at a time.

    Fire-and-forget: a broadcaster failure is logged and swallowed, so an
    unreachable pub/sub never fails the order operation that triggered it.
    """

    def __init__(self, broadcaster: IEventBroadcaster, clock=utc_now):
        self.broadcaster = broadcaster
        self.clock = clock

    def _event(self, event_type: EventType, order=None, **fields) -> OrderEvent:
        if order is not None:
            fields.setdefault("order_id", order.id)
            fields.setdefault("order_number", order.order_number)
            fields.setdefault("status", order.status)
            fields.setdefault("user_id", order.customer_id)
            fields.setdefault("restaurant_id", order.restaurant_id)
            fields.setdefault("delivery_partner_id", order.delivery_partner_id)
        return OrderEvent(event_type=event_type, timestamp=self.clock(), **fields)

    def _send(self, topics: Iterable[str], event: OrderEvent) -> int:
        sent = 0
        for topic in topics:
            try:
                self.broadcaster.publish(topic, event)
                sent += 1
            except Exception:
                logger.exception(f"❌ Broadcast of {event.event_type.value} to {topic} failed. Continuing.")
        return sent

    # ---------------------------------------------------------
    # Order events
    # ---------------------------------------------------------

    def order_created(self, order) -> None:
        event = self._event(EventType.ORDER_CREATED, order, message=status_message(OrderStatus.PLACED))
        self._send([customer_topic(order.customer_id), restaurant_topic(order.restaurant_id)], event)

    def status_changed(self, order) -> None:
        """Customer gets the human copy; restaurant and partner get a generic update."""
        status = order.status
        extras = {
            "live_location_enabled": status in LIVE_TRACKING_STATES,
            "rating_prompt": status == OrderStatus.DELIVERED,
        }
        self._send(
            [customer_topic(order.customer_id)],
            self._event(EventType.STATUS_UPDATED, order, message=status_message(status), **extras),
        )

        generic = self._event(EventType.STATUS_UPDATED, order,
                              message=f"Order status updated to {status.value}", **extras)
        topics = [restaurant_topic(order.restaurant_id)]
        if order.delivery_partner_id is not None:
            topics.append(partner_topic(order.delivery_partner_id))
        self._send(topics, generic)

    def new_order_ready(self, order, partner_ids: Iterable[int]) -> int:
        partner_ids = sorted(partner_ids)
        if not partner_ids:
            logger.info(f"⚠️ No online delivery partners for order {order.order_number}; it waits in the queue.")
            return 0
        event = self._event(EventType.NEW_ORDER_READY, order,
                            message=f"New order {order.order_number} ready for pickup")
        return self._send([partner_topic(p) for p in partner_ids], event)

    def order_assigned(self, order, partner_summary) -> None:
        event = self._event(
            EventType.ORDER_ASSIGNED, order,
            message=status_message(OrderStatus.ASSIGNED),
            partner_details=partner_summary,
            live_location_enabled=True,
        )
        self._send([
            customer_topic(order.customer_id),
            restaurant_topic(order.restaurant_id),
            partner_topic(order.delivery_partner_id),
        ], event)

    def location_update(self, order, partner_id: int, location) -> None:
        event = self._event(
            EventType.LOCATION_UPDATE, order,
            delivery_partner_id=partner_id,
            latitude=location.latitude,
            longitude=location.longitude,
        )
        self._send([customer_topic(order.customer_id), restaurant_topic(order.restaurant_id)], event)

    # ---------------------------------------------------------
    # Wallet events
    # ---------------------------------------------------------

    def wallet_updated(self, owner_ref, amount, new_balance, order_id=None, message=None) -> None:
        fields = {"amount": amount, "new_balance": new_balance, "order_id": order_id, "message": message}
        if owner_ref.owner_type is Role.DELIVERY_PARTNER:
            fields["delivery_partner_id"] = owner_ref.owner_id
        elif owner_ref.owner_type is Role.RESTAURANT:
            fields["restaurant_id"] = owner_ref.owner_id
        else:
            fields["user_id"] = owner_ref.owner_id
        event = self._event(EventType.WALLET_UPDATED, **fields)
        self._send([_OWNER_TOPICS[owner_ref.owner_type](owner_ref.owner_id)], event)
