import logging
from datetime import datetime
from decimal import Decimal
from typing import List, Optional, Tuple

from sqlalchemy import func
from sqlalchemy.exc import SQLAlchemyError

from orderflow.interfaces.IOrderRepository import IOrderRepository
from orderflow.domain.enums import OrderStatus, Role
from orderflow.domain.models import Order, OrderItem, DeliveryPartner
from orderflow.domain.pricing import CENT
from orderflow.domain.schemas import PartnerSummary
from orderflow.infrastructure.database import SessionLocal

logger = logging.getLogger(__name__)


class PostgresOrderRepository(IOrderRepository):
    """
    Orders live here. Status and delivery_partner_id are only ever written
    through conditional UPDATEs (compare-and-swap on the row); there is no
    plain "save" for an existing order.
    """

    def __init__(self, session_factory=SessionLocal):
        self.session_factory = session_factory

    def create_order(self, order_number, customer_id, restaurant_id, items, breakdown,
                     address_id=None, customer_phone=None) -> Order:
        session = self.session_factory()
        try:
            order = Order(
                order_number=order_number,
                customer_id=customer_id,
                restaurant_id=restaurant_id,
                address_id=address_id,
                customer_phone=customer_phone,
                status=OrderStatus.PLACED,
                delivery_partner_id=None,
                subtotal=breakdown.subtotal,
                delivery_fee=breakdown.delivery_fee,
                handling_charge=breakdown.handling_charge,
                tax=breakdown.tax,
                total_price=breakdown.total,
                items=[
                    OrderItem(menu_item_id=i.menu_item_id, quantity=i.quantity, unit_price=i.unit_price)
                    for i in items
                ],
            )
            session.add(order)
            session.commit()
            return self._reload(session, order.id)
        except SQLAlchemyError as e:
            logger.error(f"❌ DB Error creating order {order_number}: {e}")
            session.rollback()
            raise
        finally:
            session.close()

    def get_order(self, order_id: int) -> Optional[Order]:
        session = self.session_factory()
        try:
            return session.get(Order, order_id)
        finally:
            session.close()

    def get_orders(self, order_ids: List[int]) -> List[Order]:
        if not order_ids:
            return []
        session = self.session_factory()
        try:
            return session.query(Order).filter(Order.id.in_(order_ids)).all()
        finally:
            session.close()

    def compare_and_set_status(self, order_id, expected, new, restaurant_id=None,
                               partner_id=None, delivered_at=None) -> Optional[Order]:
        values = {Order.status: new}
        if delivered_at is not None:
            values[Order.delivered_at] = delivered_at

        session = self.session_factory()
        try:
            query = session.query(Order).filter(Order.id == order_id, Order.status == expected)
            # Ownership is re-asserted in the WHERE clause too, not just checked beforehand.
            if restaurant_id is not None:
                query = query.filter(Order.restaurant_id == restaurant_id)
            if partner_id is not None:
                query = query.filter(Order.delivery_partner_id == partner_id)

            updated = query.update(values, synchronize_session=False)
            session.commit()
            if updated != 1:
                logger.info(f"⚠️ Stale transition on order {order_id}: expected {expected.value} -> {new.value}")
                return None
            return self._reload(session, order_id)
        except SQLAlchemyError as e:
            logger.error(f"❌ DB Error updating order {order_id}: {e}")
            session.rollback()
            raise
        finally:
            session.close()

    def assign_partner(self, order_id: int, partner_id: int) -> Optional[Order]:
        session = self.session_factory()
        try:
            # One statement: the WHERE clause is the lock. Of N concurrent claims,
            # exactly one sees rowcount == 1.
            updated = (
                session.query(Order)
                .filter(
                    Order.id == order_id,
                    Order.status == OrderStatus.READY_FOR_PICKUP,
                    Order.delivery_partner_id.is_(None),
                )
                .update(
                    {Order.delivery_partner_id: partner_id, Order.status: OrderStatus.ASSIGNED},
                    synchronize_session=False,
                )
            )
            session.commit()
            if updated != 1:
                return None
            return self._reload(session, order_id)
        except SQLAlchemyError as e:
            logger.error(f"❌ DB Error assigning order {order_id} to partner {partner_id}: {e}")
            session.rollback()
            raise
        finally:
            session.close()

    def list_orders_for(self, role, actor_id: int, statuses=None) -> List[Order]:
        owner_column = {
            Role.CUSTOMER: Order.customer_id,
            Role.RESTAURANT: Order.restaurant_id,
            Role.DELIVERY_PARTNER: Order.delivery_partner_id,
        }[role]
        session = self.session_factory()
        try:
            query = session.query(Order).filter(owner_column == actor_id)
            if statuses is not None:
                query = query.filter(Order.status.in_(list(statuses)))
            return query.order_by(Order.created_at.desc(), Order.id.desc()).all()
        finally:
            session.close()

    def get_partner_summary(self, partner_id: int) -> Optional[PartnerSummary]:
        session = self.session_factory()
        try:
            partner = session.get(DeliveryPartner, partner_id)
            return PartnerSummary.model_validate(partner) if partner else None
        finally:
            session.close()

    def delivered_fees(self, partner_id: int, since: Optional[datetime] = None) -> Tuple[Decimal, int]:
        session = self.session_factory()
        try:
            query = session.query(
                func.coalesce(func.sum(Order.delivery_fee), 0),
                func.count(Order.id),
            ).filter(
                Order.delivery_partner_id == partner_id,
                Order.status == OrderStatus.DELIVERED,
            )
            if since is not None:
                query = query.filter(Order.delivered_at >= since)
            total, count = query.one()
            return Decimal(str(total)).quantize(CENT), int(count)
        finally:
            session.close()

    @staticmethod
    def _reload(session, order_id: int) -> Order:
        return session.get(Order, order_id, populate_existing=True)
