import logging
import uuid
from datetime import datetime, timedelta
from decimal import Decimal
from typing import List, Optional

import pytz
from pydantic import ValidationError

from orderflow.core.clock import utc_now, parse_timestamp
from orderflow.core.config import settings
from orderflow.domain.enums import OrderStatus, Role, normalize_role
from orderflow.domain.errors import NotFound, InvalidTransition, ValidationFailed, WalletOperationFailed
from orderflow.domain.pricing import compute_breakdown
from orderflow.domain.schemas import (EarningsSummary, EarningsWindow, LineItemIn, OrderSummary,
                                      WalletOwnerRef)
from orderflow.domain import state_machine
from orderflow.interfaces.IOrderRepository import IOrderRepository
from orderflow.interfaces.IWalletRepository import IWalletRepository
from orderflow.application.assignment_arbiter import AssignmentArbiter
from orderflow.application.dispatch_queue import DispatchQueue
from orderflow.application.event_publisher import EventPublisher
from orderflow.application.partner_registry import PartnerRegistry
from orderflow.application.wallet_ledger import WalletLedger, delivery_credit_key

logger = logging.getLogger(__name__)


class Orchestrator:
    """
    Entry point for every order-lifecycle operation the request handlers need.

    Each call is one unit of work. Status changes are conditional updates keyed on
    the status we just read, so a stale or replayed request is rejected instead of
    applied twice. Side effects (queue, broadcasts, payout, WhatsApp) run after the
    status write has committed and never undo it.
    """

    def __init__(self, order_repo: IOrderRepository, wallet_repo: IWalletRepository,
                 queue: DispatchQueue, registry: PartnerRegistry, publisher: EventPublisher,
                 notifier=None, clock=utc_now, timezone: str = settings.TIMEZONE):
        self.order_repo = order_repo
        self.queue = queue
        self.registry = registry
        self.publisher = publisher
        self.notifier = notifier  # Injected NotificationService (optional)
        self.clock = clock
        self.timezone = pytz.timezone(timezone)

        self.arbiter = AssignmentArbiter(order_repo, queue, publisher)
        self.ledger = WalletLedger(wallet_repo, publisher)

    # ---------------------------------------------------------
    # ORDERS
    # ---------------------------------------------------------

    def place_order(self, customer_id: int, restaurant_id: int, items: list,
                    address_id: Optional[int] = None, customer_phone: Optional[str] = None):
        if not items:
            raise ValidationFailed("Restaurant ID and items are required")
        try:
            line_items = [i if isinstance(i, LineItemIn) else LineItemIn.model_validate(i) for i in items]
        except ValidationError as e:
            raise ValidationFailed(f"Invalid order items: {e.errors()[0]['msg']}")

        breakdown = compute_breakdown(line_items)
        order_number = self._order_number(customer_id)
        logger.info(f"📦 Creating order {order_number} for customer {customer_id}")

        order = self.order_repo.create_order(
            order_number, customer_id, restaurant_id, line_items, breakdown,
            address_id=address_id, customer_phone=customer_phone,
        )
        logger.info(f"✅ Order {order.order_number} created, total ₹{order.total_price}")
        self.publisher.order_created(order)
        return order

    def transition_order(self, order_id: int, actor_role, actor_id: int, new_status):
        role = normalize_role(actor_role)
        try:
            new_status = OrderStatus(new_status)
        except ValueError:
            raise ValidationFailed(f"Unknown status: {new_status}")

        order = self.order_repo.get_order(order_id)
        if order is None:
            raise NotFound("Order not found")

        logger.info(f"🔁 {role.value} {actor_id} moving order {order.order_number}: "
                    f"{order.status.value} → {new_status.value}")

        state_machine.validate_transition(order.status, new_status)
        state_machine.authorize(order, role, actor_id, new_status)

        updated = self.order_repo.compare_and_set_status(
            order.id, order.status, new_status,
            restaurant_id=actor_id if role is Role.RESTAURANT else None,
            partner_id=actor_id if role is Role.DELIVERY_PARTNER else None,
            delivered_at=self.clock() if new_status == OrderStatus.DELIVERED else None,
        )
        if updated is None:
            # Someone moved the order between our read and our write.
            fresh = self.order_repo.get_order(order_id)
            if fresh is None:
                raise NotFound("Order not found")
            raise InvalidTransition(fresh.status, new_status)

        logger.info(f"✅ Order {updated.order_number} status updated to {new_status.value}")
        self._after_transition(updated)
        return updated

    def claim_order(self, order_id: int, partner_id: int):
        order = self.arbiter.claim(order_id, partner_id)
        self._notify_customer(order)
        return order

    def list_orders_for(self, actor_role, actor_id: int, active_only: bool = False) -> list:
        """An actor's own orders, newest first. `active_only` drops DELIVERED and CANCELLED."""
        role = normalize_role(actor_role)
        statuses = None
        if active_only:
            statuses = [s for s in OrderStatus if not state_machine.is_terminal(s)]
        return self.order_repo.list_orders_for(role, actor_id, statuses)

    def list_available_orders(self) -> List[OrderSummary]:
        entries = self.queue.list_all()
        orders = {o.id: o for o in self.order_repo.get_orders([e["orderId"] for e in entries])}

        summaries = []
        for entry in entries:
            order = orders.get(entry["orderId"])
            # The queue can lag the store (cancel, claim in flight); the store wins.
            if order is None or order.status != OrderStatus.READY_FOR_PICKUP or order.delivery_partner_id is not None:
                continue
            summaries.append(OrderSummary(
                order_id=order.id,
                order_number=order.order_number,
                restaurant_id=order.restaurant_id,
                customer_id=order.customer_id,
                total_price=order.total_price,
                delivery_fee=order.delivery_fee,
                address_id=order.address_id,
                item_count=len(order.items),
                enqueued_at=parse_timestamp(entry["enqueuedAt"]),
            ))
        return summaries

    # ---------------------------------------------------------
    # PARTNERS
    # ---------------------------------------------------------

    def set_partner_presence(self, partner_id: int, online: bool, location=None, available: bool = True):
        if online:
            return self.registry.register(partner_id, location, available=available)
        self.registry.unregister(partner_id)
        return None

    def update_partner_location(self, partner_id: int, location, order_id: Optional[int] = None) -> bool:
        """Refresh presence; stream the position to the customer when it is their active delivery."""
        logger.debug(f"📍 Delivery partner {partner_id} location update: {location.latitude}, {location.longitude}")
        self.registry.register(partner_id, location)

        if order_id is None:
            return False
        order = self.order_repo.get_order(order_id)
        if order is None or order.delivery_partner_id != partner_id:
            return False
        if order.status not in state_machine.LIVE_TRACKING_STATES:
            return False

        self.publisher.location_update(order, partner_id, location)
        return True

    # ---------------------------------------------------------
    # WALLETS
    # ---------------------------------------------------------

    def credit_wallet(self, owner_ref: WalletOwnerRef, amount, description: str,
                      linked_order_id: Optional[int] = None, idempotency_key: Optional[str] = None):
        return self.ledger.credit(owner_ref, amount, description, linked_order_id, idempotency_key)

    def get_wallet(self, owner_ref: WalletOwnerRef):
        return self.ledger.get_wallet(owner_ref)

    def list_wallet_transactions(self, owner_ref: WalletOwnerRef, page: int = 1, limit: int = 50) -> dict:
        return self.ledger.list_transactions(owner_ref, page, limit)

    def partner_earnings(self, partner_id: int) -> EarningsSummary:
        now_local = self.clock().astimezone(self.timezone)
        start_of_day = self.timezone.localize(datetime(now_local.year, now_local.month, now_local.day))
        start_of_week = start_of_day - timedelta(days=7)

        def window(since=None) -> EarningsWindow:
            total, count = self.order_repo.delivered_fees(
                partner_id, since.astimezone(pytz.utc) if since else None
            )
            return EarningsWindow(earnings=total, orders=count)

        wallet = self.ledger.get_wallet(WalletOwnerRef(owner_type=Role.DELIVERY_PARTNER, owner_id=partner_id))
        return EarningsSummary(
            partner_id=partner_id,
            wallet_balance=wallet.balance,
            daily=window(start_of_day),
            weekly=window(start_of_week),
            lifetime=window(),
        )

    # ---------------------------------------------------------
    # SIDE EFFECTS
    # ---------------------------------------------------------

    def _after_transition(self, order) -> None:
        status = order.status

        if status == OrderStatus.READY_FOR_PICKUP:
            logger.info(f"📦 Order {order.order_number} is now READY_FOR_PICKUP, exposing to delivery partners")
            self.queue.enqueue(order.id, {
                "orderNumber": order.order_number,
                "restaurantId": order.restaurant_id,
                "userId": order.customer_id,
                "totalPrice": str(order.total_price),
                "deliveryFee": str(order.delivery_fee),
                "addressId": order.address_id,
            })
        elif status == OrderStatus.CANCELLED:
            self.queue.remove(order.id)

        self.publisher.status_changed(order)

        if status == OrderStatus.READY_FOR_PICKUP:
            self.publisher.new_order_ready(order, self.registry.list_available())
        elif status == OrderStatus.DELIVERED:
            self._credit_delivery_fee(order)

        self._notify_customer(order)

    def _credit_delivery_fee(self, order) -> None:
        if Decimal(order.delivery_fee) <= 0:
            return
        key = delivery_credit_key(order.id)
        logger.info(f"💰 Processing wallet credit for order {order.order_number}: ₹{order.delivery_fee}")
        try:
            self.ledger.credit(
                WalletOwnerRef(owner_type=Role.DELIVERY_PARTNER, owner_id=order.delivery_partner_id),
                order.delivery_fee,
                f"Delivery fee for order #{order.order_number}",
                linked_order_id=order.id,
                idempotency_key=key,
            )
        except WalletOperationFailed as e:
            # The delivery stands; payout is reconciled later by replaying `key`.
            logger.error(f"❌ Wallet credit for order {order.order_number} failed (key={key}): {e.message}")

    def _notify_customer(self, order) -> None:
        if self.notifier is None or not order.customer_phone:
            return
        # Runs after the status write committed; a messaging outage must not turn it into an error.
        try:
            self.notifier.notify_customer_status(
                order.customer_phone, order.order_number, order.status.value,
                state_machine.status_message(order.status),
            )
        except Exception:
            logger.exception(f"❌ WhatsApp update for order {order.order_number} failed. Continuing.")

    def _order_number(self, customer_id: int) -> str:
        millis = int(self.clock().timestamp() * 1000)
        return f"ORD-{millis}-{customer_id}-{uuid.uuid4().hex[:4].upper()}"
