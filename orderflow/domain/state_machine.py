"""
Order lifecycle rules.

PLACED -> ACCEPTED -> READY_FOR_PICKUP -> ASSIGNED -> AT_RESTAURANT -> PICKED_UP -> DELIVERED
CANCELLED branches off the first three states. DELIVERED and CANCELLED are terminal.

READY_FOR_PICKUP -> ASSIGNED is deliberately absent from TRANSITIONS: only the
assignment arbiter may move an order there, through its own conditional update.
"""
from orderflow.domain.enums import OrderStatus, Role
from orderflow.domain.errors import InvalidTransition, Forbidden

S = OrderStatus

TRANSITIONS = {
    S.PLACED: frozenset({S.ACCEPTED, S.CANCELLED}),
    S.ACCEPTED: frozenset({S.READY_FOR_PICKUP, S.CANCELLED}),
    S.READY_FOR_PICKUP: frozenset({S.CANCELLED}),
    S.ASSIGNED: frozenset({S.AT_RESTAURANT}),
    S.AT_RESTAURANT: frozenset({S.PICKED_UP}),
    S.PICKED_UP: frozenset({S.DELIVERED}),
}

TERMINAL_STATES = frozenset({S.DELIVERED, S.CANCELLED})

UNASSIGNED_STATES = frozenset({S.PLACED, S.ACCEPTED, S.READY_FOR_PICKUP})

# Statuses during which the customer can follow the partner on a map.
LIVE_TRACKING_STATES = frozenset({S.ASSIGNED, S.AT_RESTAURANT, S.PICKED_UP})

# Which role may request which target status.
AUTHORITY = {
    Role.RESTAURANT: frozenset({S.ACCEPTED, S.READY_FOR_PICKUP, S.CANCELLED}),
    Role.DELIVERY_PARTNER: frozenset({S.AT_RESTAURANT, S.PICKED_UP, S.DELIVERED}),
    Role.CUSTOMER: frozenset(),
}

# Customer-facing copy, one line per status.
STATUS_MESSAGES = {
    S.PLACED: "Order placed successfully",
    S.ACCEPTED: "Restaurant accepted your order",
    S.READY_FOR_PICKUP: "Looking for a delivery partner",
    S.ASSIGNED: "Your delivery partner is on the way",
    S.AT_RESTAURANT: "Your delivery partner has arrived at the restaurant",
    S.PICKED_UP: "Order picked up, on the way to you",
    S.DELIVERED: "Order delivered successfully",
    S.CANCELLED: "Order has been cancelled",
}


def allowed_next(current: OrderStatus) -> frozenset:
    return TRANSITIONS.get(current, frozenset())


def is_terminal(status: OrderStatus) -> bool:
    return status in TERMINAL_STATES


def validate_transition(current: OrderStatus, requested: OrderStatus) -> None:
    """Raise InvalidTransition unless `requested` is directly reachable from `current`.

    A request for the status the order already has is rejected like any other
    unreachable target, so a replayed call never re-runs side effects.
    """
    if requested not in allowed_next(current):
        raise InvalidTransition(current, requested)


def authorize(order, role: Role, actor_id: int, requested: OrderStatus) -> None:
    """Raise Forbidden unless this actor may drive `order` to `requested`."""
    if requested not in AUTHORITY.get(role, frozenset()):
        raise Forbidden(f"Role {role.value} cannot set status {requested.value}")

    if role is Role.RESTAURANT and order.restaurant_id != actor_id:
        raise Forbidden("Access denied: Order does not belong to this restaurant")

    if role is Role.DELIVERY_PARTNER and order.delivery_partner_id != actor_id:
        raise Forbidden("Order not assigned to you")


def status_message(status: OrderStatus) -> str:
    return STATUS_MESSAGES.get(status, "Order status updated")
