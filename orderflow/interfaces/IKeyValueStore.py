from abc import ABC, abstractmethod
from typing import Optional, Set


class IKeyValueStore(ABC):
    """Small slice of a Redis-like store: JSON values with TTL plus string sets."""

    @abstractmethod
    def put(self, key: str, value: dict, ttl_seconds: int) -> None:
        pass

    @abstractmethod
    def get(self, key: str) -> Optional[dict]:
        pass

    @abstractmethod
    def delete(self, key: str) -> None:
        pass

    @abstractmethod
    def add_member(self, set_name: str, member: str) -> None:
        pass

    @abstractmethod
    def remove_member(self, set_name: str, member: str) -> None:
        pass

    @abstractmethod
    def members(self, set_name: str) -> Set[str]:
        pass
