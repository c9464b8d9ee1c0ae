from enum import Enum

from orderflow.domain.errors import ValidationFailed


class OrderStatus(str, Enum):
    PLACED = "PLACED"
    ACCEPTED = "ACCEPTED"
    READY_FOR_PICKUP = "READY_FOR_PICKUP"
    ASSIGNED = "ASSIGNED"
    AT_RESTAURANT = "AT_RESTAURANT"
    PICKED_UP = "PICKED_UP"
    DELIVERED = "DELIVERED"
    CANCELLED = "CANCELLED"


class Role(str, Enum):
    CUSTOMER = "CUSTOMER"
    RESTAURANT = "RESTAURANT"
    DELIVERY_PARTNER = "DELIVERY_PARTNER"


# Every spelling the clients have been seen sending.
_ROLE_ALIASES = {
    "customer": Role.CUSTOMER,
    "user": Role.CUSTOMER,
    "restaurant": Role.RESTAURANT,
    "restaurant-owner": Role.RESTAURANT,
    "restaurant_owner": Role.RESTAURANT,
    "delivery-partner": Role.DELIVERY_PARTNER,
    "delivery_partner": Role.DELIVERY_PARTNER,
    "delivery": Role.DELIVERY_PARTNER,
    "partner": Role.DELIVERY_PARTNER,
}


def normalize_role(raw) -> Role:
    """Map an inbound role (enum or any known alias) onto the closed Role set.

    Called once at the edge; nothing past the router compares raw strings.
    """
    if isinstance(raw, Role):
        return raw
    key = str(raw or "").strip().lower()
    role = _ROLE_ALIASES.get(key)
    if role is None:
        raise ValidationFailed(f"Unknown role: {raw}")
    return role


class TransactionDirection(str, Enum):
    CREDIT = "credit"
    DEBIT = "debit"


class EventType(str, Enum):
    ORDER_CREATED = "ORDER_CREATED"
    STATUS_UPDATED = "STATUS_UPDATED"
    ORDER_ASSIGNED = "ORDER_ASSIGNED"
    NEW_ORDER_READY = "NEW_ORDER_READY"
    WALLET_UPDATED = "WALLET_UPDATED"
    LOCATION_UPDATE = "LOCATION_UPDATE"
