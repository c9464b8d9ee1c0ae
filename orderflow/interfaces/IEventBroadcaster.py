from abc import ABC, abstractmethod


class IEventBroadcaster(ABC):
    @abstractmethod
    def publish(self, topic: str, event) -> None:
        pass
