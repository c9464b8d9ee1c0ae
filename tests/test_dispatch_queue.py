import pytest

from orderflow.application.dispatch_queue import DispatchQueue
from orderflow.application.partner_registry import PartnerRegistry
from orderflow.domain.schemas import Location
from orderflow.infrastructure.kv_store import InMemoryKeyValueStore


@pytest.fixture
def store(clock):
    return InMemoryKeyValueStore(clock=clock.monotonic)


@pytest.fixture
def queue(store, clock):
    return DispatchQueue(store, ttl_seconds=1800, clock=clock.now)


@pytest.fixture
def registry(store, clock):
    return PartnerRegistry(store, ttl_seconds=300, clock=clock.now)


def test_enqueued_orders_are_listed_oldest_first(queue, clock):
    queue.enqueue(2, {"orderNumber": "ORD-2"})
    clock.advance(5)
    queue.enqueue(1, {"orderNumber": "ORD-1"})

    listed = queue.list_all()
    assert [e["orderId"] for e in listed] == [2, 1]
    assert listed[0]["orderNumber"] == "ORD-2"
    assert queue.contains(1)


def test_removed_order_is_gone(queue):
    queue.enqueue(1, {})
    queue.enqueue(2, {})
    queue.remove(1)
    assert [e["orderId"] for e in queue.list_all()] == [2]
    assert not queue.contains(1)


def test_remove_unknown_order_is_harmless(queue):
    queue.remove(404)
    assert queue.list_all() == []


def test_stale_entries_are_excluded_at_read_time(queue, clock):
    queue.enqueue(1, {})
    clock.advance(1799)
    queue.enqueue(2, {})
    assert {e["orderId"] for e in queue.list_all()} == {1, 2}

    clock.advance(1)
    assert [e["orderId"] for e in queue.list_all()] == [2]


def test_reenqueue_refreshes_entry(queue, clock):
    queue.enqueue(1, {"orderNumber": "old"})
    clock.advance(1000)
    queue.enqueue(1, {"orderNumber": "new"})
    clock.advance(1000)
    listed = queue.list_all()
    assert len(listed) == 1
    assert listed[0]["orderNumber"] == "new"


def test_registered_partner_is_online(registry):
    presence = registry.register(7, Location(latitude=12.97, longitude=77.59))
    assert presence.is_online and presence.is_available
    assert registry.list_online() == {7}
    assert registry.get(7).latitude == pytest.approx(12.97)


def test_partner_drops_out_after_liveness_ttl(registry, clock):
    registry.register(7)
    registry.register(8)
    clock.advance(200)
    registry.register(8)
    clock.advance(100)
    assert registry.list_online() == {8}
    assert registry.get(7) is None


def test_refresh_without_location_keeps_last_known_position(registry, clock):
    registry.register(7, Location(latitude=12.9, longitude=77.6))
    clock.advance(60)
    presence = registry.register(7)
    assert (presence.latitude, presence.longitude) == (12.9, 77.6)
    assert presence.last_seen == clock.now()


def test_unregister_is_immediate(registry):
    registry.register(7)
    registry.unregister(7)
    assert registry.list_online() == set()
    assert registry.get(7) is None


def test_busy_partner_stays_online_but_unavailable(registry, clock):
    registry.register(7, available=False)
    registry.register(8)
    assert registry.list_online() == {7, 8}
    assert registry.list_available() == {8}

    # A location ping does not flip a busy partner back to available.
    clock.advance(30)
    registry.register(7, Location(latitude=12.9, longitude=77.6))
    assert registry.get(7).is_available is False

    registry.register(7, available=True)
    assert registry.list_available() == {7, 8}
