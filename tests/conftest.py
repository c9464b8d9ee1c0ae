import threading
from datetime import datetime, timedelta
from types import SimpleNamespace

import pytest
import pytz
from sqlalchemy import create_engine, event
from sqlalchemy.orm import sessionmaker

from orderflow.infrastructure.database import Base
from orderflow.domain.enums import OrderStatus
from orderflow.domain.models import DeliveryPartner
from orderflow.infrastructure.kv_store import InMemoryKeyValueStore
from orderflow.infrastructure.broadcaster import InMemoryEventBroadcaster
from orderflow.infrastructure.repositories.order_repository import PostgresOrderRepository
from orderflow.infrastructure.repositories.wallet_repository import PostgresWalletRepository
from orderflow.application.dispatch_queue import DispatchQueue
from orderflow.application.partner_registry import PartnerRegistry
from orderflow.application.event_publisher import EventPublisher
from orderflow.application.orchestrator import Orchestrator

RESTAURANT_ID = 11
CUSTOMER_ID = 21
PARTNER_ID = 31
OTHER_PARTNER_ID = 32

# 2 x 400 => subtotal 800, delivery fee 40, handling 16, tax 40, total 896
DEFAULT_ITEMS = [{"menu_item_id": 5, "quantity": 2, "unit_price": "400.00"}]


class FakeClock:
    """Drives every TTL and timestamp in a test; thread-safe so claim races can share it."""

    def __init__(self, start=None):
        self.current = start or datetime(2026, 10, 19, 9, 30, tzinfo=pytz.utc)
        self._lock = threading.Lock()

    def now(self) -> datetime:
        with self._lock:
            return self.current

    def monotonic(self) -> float:
        return self.now().timestamp()

    def advance(self, seconds: float) -> None:
        with self._lock:
            self.current += timedelta(seconds=seconds)


@pytest.fixture
def clock():
    return FakeClock()


@pytest.fixture
def engine(tmp_path):
    # File-backed so worker threads get their own connections.
    engine = create_engine(
        f"sqlite:///{tmp_path / 'orderflow.db'}",
        connect_args={"check_same_thread": False, "timeout": 30},
    )

    # pysqlite's deferred BEGIN can deadlock concurrent writers; take the write
    # lock up front so transactions queue on the busy timeout instead.
    @event.listens_for(engine, "connect")
    def _disable_pysqlite_begin(dbapi_connection, connection_record):
        dbapi_connection.isolation_level = None

    @event.listens_for(engine, "begin")
    def _begin_immediate(conn):
        conn.exec_driver_sql("BEGIN IMMEDIATE")

    Base.metadata.create_all(engine)
    yield engine
    engine.dispose()


@pytest.fixture
def session_factory(engine):
    return sessionmaker(bind=engine, autoflush=False, expire_on_commit=False)


@pytest.fixture
def partners(session_factory):
    session = session_factory()
    session.add_all([
        DeliveryPartner(id=PARTNER_ID, name="Ravi Kumar", phone="+919800000031", rating=4.8,
                        total_ratings=120, vehicle_type="scooter", vehicle_number="KA01AB1234"),
        DeliveryPartner(id=OTHER_PARTNER_ID, name="Asha Rao", phone="+919800000032", rating=4.6,
                        total_ratings=75, vehicle_type="bike", vehicle_number="KA02CD5678"),
    ])
    session.commit()
    session.close()


@pytest.fixture
def services(session_factory, clock, partners):
    store = InMemoryKeyValueStore(clock=clock.monotonic)
    broadcaster = InMemoryEventBroadcaster()
    publisher = EventPublisher(broadcaster, clock=clock.now)
    queue = DispatchQueue(store, ttl_seconds=1800, clock=clock.now)
    registry = PartnerRegistry(store, ttl_seconds=300, clock=clock.now)
    order_repo = PostgresOrderRepository(session_factory)
    wallet_repo = PostgresWalletRepository(session_factory)
    orchestrator = Orchestrator(
        order_repo=order_repo,
        wallet_repo=wallet_repo,
        queue=queue,
        registry=registry,
        publisher=publisher,
        clock=clock.now,
        timezone="Asia/Kolkata",
    )
    return SimpleNamespace(
        store=store,
        broadcaster=broadcaster,
        publisher=publisher,
        queue=queue,
        registry=registry,
        order_repo=order_repo,
        wallet_repo=wallet_repo,
        orchestrator=orchestrator,
    )


@pytest.fixture
def place_order(services):
    def _place(items=None, **kwargs):
        return services.orchestrator.place_order(
            kwargs.pop("customer_id", CUSTOMER_ID),
            kwargs.pop("restaurant_id", RESTAURANT_ID),
            DEFAULT_ITEMS if items is None else items,
            **kwargs,
        )
    return _place


@pytest.fixture
def ready_order(services, place_order):
    def _ready(**kwargs):
        order = place_order(**kwargs)
        restaurant_id = order.restaurant_id
        services.orchestrator.transition_order(order.id, "restaurant", restaurant_id, OrderStatus.ACCEPTED)
        return services.orchestrator.transition_order(
            order.id, "restaurant", restaurant_id, OrderStatus.READY_FOR_PICKUP
        )
    return _ready


@pytest.fixture
def assigned_order(services, ready_order):
    def _assigned(partner_id=PARTNER_ID, **kwargs):
        order = ready_order(**kwargs)
        return services.orchestrator.claim_order(order.id, partner_id)
    return _assigned
