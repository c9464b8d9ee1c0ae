import threading

import pytest

from orderflow.domain.enums import EventType, OrderStatus
from orderflow.domain.errors import AlreadyAssigned, ClaimError, NotFound, NotReady

from conftest import CUSTOMER_ID, OTHER_PARTNER_ID, PARTNER_ID, RESTAURANT_ID

S = OrderStatus


def _race(orchestrator, order_id, partner_ids):
    barrier = threading.Barrier(len(partner_ids))
    winners, losers = [], []
    lock = threading.Lock()

    def claim(partner_id):
        barrier.wait()
        try:
            order = orchestrator.claim_order(order_id, partner_id)
            with lock:
                winners.append((partner_id, order))
        except ClaimError as e:
            with lock:
                losers.append((partner_id, e))

    threads = [threading.Thread(target=claim, args=(p,)) for p in partner_ids]
    for t in threads:
        t.start()
    for t in threads:
        t.join()
    return winners, losers


def test_two_partners_one_winner(services, ready_order):
    order = ready_order()
    winners, losers = _race(services.orchestrator, order.id, [PARTNER_ID, OTHER_PARTNER_ID])

    assert len(winners) == 1
    assert len(losers) == 1
    winner_id, assigned = winners[0]
    assert assigned.status == S.ASSIGNED
    assert assigned.delivery_partner_id == winner_id
    assert isinstance(losers[0][1], AlreadyAssigned)

    stored = services.order_repo.get_order(order.id)
    assert stored.delivery_partner_id == winner_id
    assert services.orchestrator.list_available_orders() == []
    assert not services.queue.contains(order.id)


def test_many_partners_exactly_one_winner(services, ready_order):
    order = ready_order()
    partner_ids = list(range(100, 108))
    winners, losers = _race(services.orchestrator, order.id, partner_ids)

    assert len(winners) == 1
    assert len(losers) == len(partner_ids) - 1
    assert all(isinstance(e, (AlreadyAssigned, NotReady)) for _, e in losers)
    assert services.order_repo.get_order(order.id).delivery_partner_id == winners[0][0]

    assigned_events = [e for _, e in services.broadcaster.published if e.event_type == EventType.ORDER_ASSIGNED]
    # one event per topic (customer, restaurant, partner) for the single winner
    assert len(assigned_events) == 3


def test_assignment_tells_customer_who_is_coming(services, ready_order):
    order = ready_order()
    services.orchestrator.claim_order(order.id, PARTNER_ID)

    for topic in (f"user_{CUSTOMER_ID}", f"restaurant_{RESTAURANT_ID}"):
        event = services.broadcaster.events_for(topic)[-1]
        assert event.event_type == EventType.ORDER_ASSIGNED
        assert event.live_location_enabled is True
        assert event.partner_details.name == "Ravi Kumar"
        assert event.partner_details.vehicle_number == "KA01AB1234"
        assert event.message == "Your delivery partner is on the way"

    payload = services.broadcaster.events_for(f"user_{CUSTOMER_ID}")[-1].to_json()
    assert '"liveLocationEnabled":true' in payload
    assert '"eventType":"ORDER_ASSIGNED"' in payload


def test_unknown_partner_profile_still_gets_summary(services, ready_order):
    order = ready_order()
    services.orchestrator.claim_order(order.id, 555)
    event = services.broadcaster.events_for(f"user_{CUSTOMER_ID}")[-1]
    assert event.partner_details.id == 555


def test_claim_before_ready_is_not_ready(services, place_order):
    order = place_order()
    services.orchestrator.transition_order(order.id, "restaurant", RESTAURANT_ID, S.ACCEPTED)

    with pytest.raises(NotReady) as exc:
        services.orchestrator.claim_order(order.id, PARTNER_ID)
    assert exc.value.message == "Order is not ready for pickup. Current status: ACCEPTED"
    assert services.order_repo.get_order(order.id).delivery_partner_id is None


def test_claim_after_cancel_is_not_ready(services, ready_order):
    order = ready_order()
    services.orchestrator.transition_order(order.id, "restaurant", RESTAURANT_ID, S.CANCELLED)
    with pytest.raises(NotReady):
        services.orchestrator.claim_order(order.id, PARTNER_ID)


def test_claim_unknown_order_is_not_found(services):
    with pytest.raises(NotFound):
        services.orchestrator.claim_order(4040, PARTNER_ID)


def test_late_claim_is_already_assigned(services, assigned_order):
    order = assigned_order(partner_id=PARTNER_ID)
    with pytest.raises(AlreadyAssigned) as exc:
        services.orchestrator.claim_order(order.id, OTHER_PARTNER_ID)
    assert "another delivery partner" in exc.value.message


def test_winner_retrying_does_not_succeed_twice(services, assigned_order):
    order = assigned_order(partner_id=PARTNER_ID)
    with pytest.raises(AlreadyAssigned) as exc:
        services.orchestrator.claim_order(order.id, PARTNER_ID)
    assert exc.value.message == "Order is already assigned to you"


def test_partner_is_never_reassigned(services, assigned_order):
    order = assigned_order(partner_id=PARTNER_ID)
    services.orchestrator.transition_order(order.id, "delivery-partner", PARTNER_ID, S.AT_RESTAURANT)
    with pytest.raises(AlreadyAssigned):
        services.orchestrator.claim_order(order.id, OTHER_PARTNER_ID)
    assert services.order_repo.get_order(order.id).delivery_partner_id == PARTNER_ID
