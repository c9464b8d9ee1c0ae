from datetime import datetime
from decimal import Decimal
from typing import List, Optional

from pydantic import BaseModel, ConfigDict, Field
from pydantic.alias_generators import to_camel

from orderflow.domain.enums import EventType, OrderStatus, Role, TransactionDirection


class CamelModel(BaseModel):
    # Clients (web dashboards, mobile app) speak camelCase.
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True,
                              from_attributes=True)


# ---------------------------------------------------------
# Value objects
# ---------------------------------------------------------

class Location(CamelModel):
    latitude: float = Field(ge=-90, le=90)
    longitude: float = Field(ge=-180, le=180)


class LineItemIn(CamelModel):
    menu_item_id: int
    quantity: int = Field(default=1, ge=1)
    unit_price: Decimal = Field(ge=0)


class PartnerSummary(CamelModel):
    id: int
    name: str
    phone: Optional[str] = None
    rating: Optional[float] = None
    total_ratings: Optional[int] = None
    vehicle_type: Optional[str] = None
    vehicle_number: Optional[str] = None


class WalletOwnerRef(CamelModel):
    owner_type: Role
    owner_id: int

    def key(self) -> str:
        return f"{self.owner_type.value}:{self.owner_id}"


# ---------------------------------------------------------
# Read models
# ---------------------------------------------------------

class OrderItemOut(CamelModel):
    menu_item_id: int
    quantity: int
    unit_price: Decimal


class OrderOut(CamelModel):
    id: int
    order_number: str
    customer_id: int
    restaurant_id: int
    delivery_partner_id: Optional[int] = None
    address_id: Optional[int] = None
    status: OrderStatus
    subtotal: Decimal
    delivery_fee: Decimal
    handling_charge: Decimal
    tax: Decimal
    total_price: Decimal
    created_at: Optional[datetime] = None
    delivered_at: Optional[datetime] = None
    items: List[OrderItemOut] = []


class OrderSummary(CamelModel):
    """What a partner sees when browsing orders waiting for pickup."""
    order_id: int
    order_number: str
    restaurant_id: int
    customer_id: int
    total_price: Decimal
    delivery_fee: Decimal
    address_id: Optional[int] = None
    item_count: int = 0
    enqueued_at: datetime


class WalletTransactionOut(CamelModel):
    id: int
    amount: Decimal
    direction: TransactionDirection
    description: str
    order_id: Optional[int] = None
    created_at: Optional[datetime] = None


class WalletOut(CamelModel):
    id: int
    owner_type: Role
    owner_id: int
    balance: Decimal


class EarningsWindow(CamelModel):
    earnings: Decimal
    orders: int


class EarningsSummary(CamelModel):
    partner_id: int
    wallet_balance: Decimal
    daily: EarningsWindow
    weekly: EarningsWindow
    lifetime: EarningsWindow


# ---------------------------------------------------------
# Outbound events
# ---------------------------------------------------------

class OrderEvent(CamelModel):
    event_type: EventType
    timestamp: datetime
    order_id: Optional[int] = None
    order_number: Optional[str] = None
    status: Optional[OrderStatus] = None
    user_id: Optional[int] = None
    restaurant_id: Optional[int] = None
    delivery_partner_id: Optional[int] = None
    message: Optional[str] = None

    # ORDER_ASSIGNED / STATUS_UPDATED extras
    partner_details: Optional[PartnerSummary] = None
    live_location_enabled: Optional[bool] = None
    rating_prompt: Optional[bool] = None

    # WALLET_UPDATED
    amount: Optional[Decimal] = None
    new_balance: Optional[Decimal] = None

    # LOCATION_UPDATE
    latitude: Optional[float] = None
    longitude: Optional[float] = None

    def to_json(self) -> str:
        return self.model_dump_json(by_alias=True, exclude_none=True)


# ---------------------------------------------------------
# Request bodies
# ---------------------------------------------------------

class PlaceOrderRequest(CamelModel):
    customer_id: int
    restaurant_id: int
    items: List[LineItemIn]
    address_id: Optional[int] = None
    customer_phone: Optional[str] = None


class TransitionRequest(CamelModel):
    actor_role: str
    actor_id: int
    status: OrderStatus


class ClaimRequest(CamelModel):
    partner_id: int


class PresenceRequest(CamelModel):
    partner_id: int
    online: bool
    # Online but busy (mid-delivery) partners stay registered with is_available=False.
    is_available: bool = True
    location: Optional[Location] = None


class LocationRequest(CamelModel):
    partner_id: int
    location: Location
    order_id: Optional[int] = None
