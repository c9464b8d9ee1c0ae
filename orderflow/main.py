import logging
import time
from fastapi import FastAPI
from sqlalchemy.exc import OperationalError
from orderflow.core.config import settings

# 1. Infrastructure & Domain Imports
from orderflow.domain import models  # noqa: F401  (registers tables on Base.metadata)
from orderflow.infrastructure.database import engine, Base
from orderflow.infrastructure.kv_store import RedisKeyValueStore
from orderflow.infrastructure.broadcaster import RedisEventBroadcaster
from orderflow.infrastructure.notification_service import NotificationService
from orderflow.infrastructure.repositories.order_repository import PostgresOrderRepository
from orderflow.infrastructure.repositories.wallet_repository import PostgresWalletRepository
from orderflow.application.dispatch_queue import DispatchQueue
from orderflow.application.partner_registry import PartnerRegistry
from orderflow.application.event_publisher import EventPublisher
from orderflow.application.orchestrator import Orchestrator
from orderflow.interfaces import order_routes

logging.basicConfig(
    level=settings.LOG_LEVEL,
    format="%(asctime)s %(levelname)s %(name)s: %(message)s",
)
logger = logging.getLogger(__name__)

app = FastAPI(title=settings.PROJECT_NAME)

# ---------------------------------------------------------
# DATABASE CONNECTION (With Retry Logic)
# ---------------------------------------------------------
MAX_RETRIES = 10
WAIT_SECONDS = 3

for attempt in range(MAX_RETRIES):
    try:
        logger.info(f"🔄 Attempting DB connection ({attempt + 1}/{MAX_RETRIES})...")
        Base.metadata.create_all(bind=engine)
        logger.info("✅ DB Connected and Tables Created.")
        break
    except OperationalError:
        logger.warning(f"⚠️ DB not ready yet. Waiting {WAIT_SECONDS}s...")
        time.sleep(WAIT_SECONDS)
else:
    logger.error("❌ Could not connect to DB after retries. Requests will fail until it is up.")

# ---------------------------------------------------------
# COMPOSITION ROOT
# ---------------------------------------------------------
store = RedisKeyValueStore(settings.REDIS_URL)
publisher = EventPublisher(RedisEventBroadcaster(settings.REDIS_URL))

app.state.orchestrator = Orchestrator(
    order_repo=PostgresOrderRepository(),
    wallet_repo=PostgresWalletRepository(),
    queue=DispatchQueue(store),
    registry=PartnerRegistry(store),
    publisher=publisher,
    notifier=NotificationService(),
)

# Include Routers
app.include_router(order_routes.router)
order_routes.register_error_handlers(app)


@app.get("/")
def health_check():
    store_mode = "redis" if store.redis_available else "ram-fallback"
    status = "active" if store.redis_available else "degraded"
    return {"status": status, "store": store_mode, "system": "OrderFlow Dispatch Core"}
