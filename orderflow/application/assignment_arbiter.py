import logging

from orderflow.domain.errors import AlreadyAssigned, NotFound, NotReady
from orderflow.domain.schemas import PartnerSummary
from orderflow.interfaces.IOrderRepository import IOrderRepository

logger = logging.getLogger(__name__)


class AssignmentArbiter:
    """
    Turns N simultaneous "accept" taps on one ready order into one winner.

    The decision is a single conditional UPDATE in the store
    (status = READY_FOR_PICKUP AND delivery_partner_id IS NULL), never a
    read followed by a write. Losers are diagnosed afterwards from a fresh read,
    purely to pick the right error.
    """

    def __init__(self, order_repo: IOrderRepository, queue, publisher):
        self.order_repo = order_repo
        self.queue = queue
        self.publisher = publisher

    def claim(self, order_id: int, partner_id: int):
        logger.info(f"🚴 Delivery partner {partner_id} attempting to accept order {order_id}")

        order = self.order_repo.assign_partner(order_id, partner_id)
        if order is None:
            error = self._diagnose(order_id, partner_id)
            logger.info(f"❌ Claim of order {order_id} by partner {partner_id} rejected: {error.message}")
            raise error

        logger.info(f"✅ Order {order.order_number} assigned to delivery partner {partner_id}, status: ASSIGNED")

        self.queue.remove(order_id)

        summary = self.order_repo.get_partner_summary(partner_id)
        if summary is None:
            # Profile service has no row yet; still tell the customer who is coming.
            summary = PartnerSummary(id=partner_id, name=f"Partner #{partner_id}")
        self.publisher.order_assigned(order, summary)
        return order

    def _diagnose(self, order_id: int, partner_id: int):
        current = self.order_repo.get_order(order_id)
        if current is None:
            return NotFound("Order not found")
        if current.delivery_partner_id is not None:
            if current.delivery_partner_id == partner_id:
                return AlreadyAssigned("Order is already assigned to you")
            return AlreadyAssigned("Order already assigned to another delivery partner")
        return NotReady(f"Order is not ready for pickup. Current status: {current.status.value}")
