import logging
from dataclasses import dataclass
from datetime import datetime, timedelta
from typing import Optional, Set

from orderflow.core.clock import utc_now, parse_timestamp
from orderflow.core.config import settings
from orderflow.interfaces.IKeyValueStore import IKeyValueStore

logger = logging.getLogger(__name__)

ONLINE_SET = "online_partners"


def _presence_key(partner_id: int) -> str:
    return f"delivery_partner:{partner_id}"


@dataclass
class PartnerPresence:
    partner_id: int
    is_online: bool
    is_available: bool
    last_seen: datetime
    latitude: Optional[float] = None
    longitude: Optional[float] = None


class PartnerRegistry:
    """
    Who is online right now. Every register() refreshes a short liveness TTL;
    a partner whose app stops pinging just stops showing up in list_online().
    Nobody is told about the timeout.
    """

    def __init__(self, store: IKeyValueStore, ttl_seconds: int = settings.PRESENCE_TTL_SECONDS,
                 clock=utc_now):
        self.store = store
        self.ttl_seconds = ttl_seconds
        self.clock = clock

    def register(self, partner_id: int, location=None, available: Optional[bool] = None) -> PartnerPresence:
        previous = self.get(partner_id)
        if available is None:
            # Location pings keep whatever availability the partner last set.
            available = previous.is_available if previous else True
        latitude = location.latitude if location else (previous.latitude if previous else None)
        longitude = location.longitude if location else (previous.longitude if previous else None)

        presence = PartnerPresence(
            partner_id=partner_id,
            is_online=True,
            is_available=available,
            last_seen=self.clock(),
            latitude=latitude,
            longitude=longitude,
        )
        self.store.put(_presence_key(partner_id), {
            "partnerId": partner_id,
            "isOnline": True,
            "isAvailable": available,
            "lastSeen": presence.last_seen.isoformat(),
            "latitude": latitude,
            "longitude": longitude,
        }, self.ttl_seconds)
        self.store.add_member(ONLINE_SET, str(partner_id))
        if previous is None:
            logger.info(f"🚴 Delivery partner {partner_id} registered as available")
        return presence

    def unregister(self, partner_id: int) -> None:
        self.store.remove_member(ONLINE_SET, str(partner_id))
        self.store.delete(_presence_key(partner_id))
        logger.info(f"🚴 Delivery partner {partner_id} unregistered")

    def get(self, partner_id: int) -> Optional[PartnerPresence]:
        data = self.store.get(_presence_key(partner_id))
        if data is None:
            return None
        last_seen = parse_timestamp(data["lastSeen"])
        if last_seen + timedelta(seconds=self.ttl_seconds) <= self.clock():
            return None
        return PartnerPresence(
            partner_id=int(data["partnerId"]),
            is_online=bool(data["isOnline"]),
            is_available=bool(data["isAvailable"]),
            last_seen=last_seen,
            latitude=data.get("latitude"),
            longitude=data.get("longitude"),
        )

    def list_online(self) -> Set[int]:
        online = set()
        for member in self.store.members(ONLINE_SET):
            if self.get(int(member)) is not None:
                online.add(int(member))
        return online

    def list_available(self) -> Set[int]:
        """Online partners who have not marked themselves busy."""
        available = set()
        for partner_id in self.list_online():
            presence = self.get(partner_id)
            if presence is not None and presence.is_available:
                available.add(partner_id)
        return available
