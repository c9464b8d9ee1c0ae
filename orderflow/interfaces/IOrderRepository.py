from abc import ABC, abstractmethod
from datetime import datetime
from decimal import Decimal
from typing import Iterable, List, Optional, Tuple

from orderflow.domain.enums import OrderStatus


class IOrderRepository(ABC):
    @abstractmethod
    def create_order(self, order_number: str, customer_id: int, restaurant_id: int,
                     items: list, breakdown, address_id: Optional[int] = None,
                     customer_phone: Optional[str] = None):
        pass

    @abstractmethod
    def get_order(self, order_id: int):
        pass

    @abstractmethod
    def get_orders(self, order_ids: List[int]) -> list:
        pass

    @abstractmethod
    def compare_and_set_status(self, order_id: int, expected: OrderStatus, new: OrderStatus,
                               restaurant_id: Optional[int] = None,
                               partner_id: Optional[int] = None,
                               delivered_at: Optional[datetime] = None):
        """Move the order to `new` only if it is still in `expected`.

        Returns the refreshed order, or None when the row no longer matched.
        """
        pass

    @abstractmethod
    def assign_partner(self, order_id: int, partner_id: int):
        """READY_FOR_PICKUP + no partner -> ASSIGNED to `partner_id`, in one statement.

        Returns the refreshed order, or None when another update got there first.
        """
        pass

    @abstractmethod
    def list_orders_for(self, role, actor_id: int, statuses: Optional[Iterable[OrderStatus]] = None) -> list:
        """Orders owned by one customer, restaurant or delivery partner, newest first."""
        pass

    @abstractmethod
    def get_partner_summary(self, partner_id: int):
        pass

    @abstractmethod
    def delivered_fees(self, partner_id: int, since: Optional[datetime] = None) -> Tuple[Decimal, int]:
        pass
