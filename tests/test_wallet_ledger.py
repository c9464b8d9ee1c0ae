import logging
from datetime import timedelta
from decimal import Decimal

import pytest
from sqlalchemy.exc import OperationalError

from orderflow.application.wallet_ledger import delivery_credit_key
from orderflow.domain.enums import EventType, OrderStatus, Role, TransactionDirection
from orderflow.domain.errors import ValidationFailed, WalletOperationFailed
from orderflow.domain.schemas import WalletOwnerRef

from conftest import PARTNER_ID

S = OrderStatus

PARTNER = WalletOwnerRef(owner_type=Role.DELIVERY_PARTNER, owner_id=PARTNER_ID)


def _consistent(services, owner):
    wallet = services.wallet_repo.get_or_create_wallet(owner)
    return wallet.balance == services.wallet_repo.ledger_sum(wallet.id)


def test_first_credit_creates_wallet(services):
    txn = services.orchestrator.credit_wallet(PARTNER, 40, "Delivery fee for order #1", linked_order_id=None)

    assert txn.amount == Decimal("40")
    assert txn.direction == TransactionDirection.CREDIT
    assert services.orchestrator.get_wallet(PARTNER).balance == Decimal("40")


def test_balance_always_matches_ledger(services):
    for amount in ("40", "12.50", "0.01", "99.99"):
        services.orchestrator.credit_wallet(PARTNER, amount, "credit")
        assert _consistent(services, PARTNER)
    assert services.orchestrator.get_wallet(PARTNER).balance == Decimal("152.50")
    assert services.orchestrator.ledger.is_consistent(PARTNER)


def test_owners_are_kept_apart(services):
    restaurant = WalletOwnerRef(owner_type=Role.RESTAURANT, owner_id=PARTNER_ID)
    services.orchestrator.credit_wallet(PARTNER, 10, "partner")
    services.orchestrator.credit_wallet(restaurant, 25, "restaurant")

    assert services.orchestrator.get_wallet(PARTNER).balance == Decimal("10")
    assert services.orchestrator.get_wallet(restaurant).balance == Decimal("25")


@pytest.mark.parametrize("amount", [0, -5, "abc"])
def test_rejects_non_positive_amounts(services, amount):
    with pytest.raises(ValidationFailed):
        services.orchestrator.credit_wallet(PARTNER, amount, "bad")


def test_replayed_key_is_applied_once(services):
    first = services.orchestrator.credit_wallet(PARTNER, 40, "fee", idempotency_key="order:1:DELIVERED-credit")
    again = services.orchestrator.credit_wallet(PARTNER, 40, "fee", idempotency_key="order:1:DELIVERED-credit")

    assert again.id == first.id
    assert services.orchestrator.get_wallet(PARTNER).balance == Decimal("40")
    wallet_events = services.broadcaster.events_for(f"delivery_{PARTNER_ID}")
    assert [e.event_type for e in wallet_events] == [EventType.WALLET_UPDATED]
    assert wallet_events[0].new_balance == Decimal("40")


def test_transactions_page_newest_first(services):
    for i in range(5):
        services.orchestrator.credit_wallet(PARTNER, i + 1, f"credit {i}")

    page = services.orchestrator.list_wallet_transactions(PARTNER, page=1, limit=2)
    assert [t.description for t in page["transactions"]] == ["credit 4", "credit 3"]
    assert page["pagination"] == {"page": 1, "limit": 2, "total": 5, "pages": 3}

    last = services.orchestrator.list_wallet_transactions(PARTNER, page=3, limit=2)
    assert [t.description for t in last["transactions"]] == ["credit 0"]


def test_no_wallet_means_no_transactions(services):
    result = services.orchestrator.list_wallet_transactions(
        WalletOwnerRef(owner_type=Role.CUSTOMER, owner_id=999))
    assert result["transactions"] == []
    assert result["pagination"]["total"] == 0


class ExplodingWalletRepo:
    def credit(self, *args, **kwargs):
        raise OperationalError("UPDATE wallets", {}, Exception("disk I/O error"))


def test_storage_failure_surfaces_as_wallet_operation_failed(services):
    services.orchestrator.ledger.wallet_repo = ExplodingWalletRepo()
    with pytest.raises(WalletOperationFailed):
        services.orchestrator.credit_wallet(PARTNER, 40, "fee")


def test_failed_payout_does_not_undo_delivery(services, assigned_order, caplog):
    orch = services.orchestrator
    order = assigned_order()
    orch.transition_order(order.id, "delivery-partner", PARTNER_ID, S.AT_RESTAURANT)
    orch.transition_order(order.id, "delivery-partner", PARTNER_ID, S.PICKED_UP)

    real_repo = orch.ledger.wallet_repo
    orch.ledger.wallet_repo = ExplodingWalletRepo()
    with caplog.at_level(logging.ERROR):
        delivered = orch.transition_order(order.id, "delivery-partner", PARTNER_ID, S.DELIVERED)

    assert delivered.status == S.DELIVERED
    assert services.order_repo.get_order(order.id).status == S.DELIVERED
    assert delivery_credit_key(order.id) in caplog.text

    # Reconciliation replays the same key and pays exactly once.
    orch.ledger.wallet_repo = real_repo
    for _ in range(2):
        orch.credit_wallet(PARTNER, delivered.delivery_fee, "reconciled",
                           linked_order_id=order.id, idempotency_key=delivery_credit_key(order.id))
    assert orch.get_wallet(PARTNER).balance == Decimal("40")


def test_partner_earnings_windows(services, assigned_order, clock):
    orch = services.orchestrator

    def deliver():
        order = assigned_order()
        for status in (S.AT_RESTAURANT, S.PICKED_UP, S.DELIVERED):
            orch.transition_order(order.id, "delivery-partner", PARTNER_ID, status)

    clock.current -= timedelta(days=10)
    deliver()                       # lifetime only
    clock.current += timedelta(days=7)
    deliver()                       # this week
    clock.current += timedelta(days=3)
    deliver()                       # today

    earnings = orch.partner_earnings(PARTNER_ID)
    assert (earnings.daily.orders, earnings.daily.earnings) == (1, Decimal("40"))
    assert (earnings.weekly.orders, earnings.weekly.earnings) == (2, Decimal("80"))
    assert (earnings.lifetime.orders, earnings.lifetime.earnings) == (3, Decimal("120"))
    assert earnings.wallet_balance == Decimal("120")
