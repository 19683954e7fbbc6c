"""
In-memory push dispatcher.

Records every notification instead of sending it. Used by the test suite
and for dry runs of the alert dispatch job.
"""

from typing import Optional

from finledger.services.notifications.interface import (
    PushDeliveryError,
    PushDispatcherInterface,
    PushNotification,
)


class InMemoryPushDispatcher(PushDispatcherInterface):
    """
    Args:
        subscribers: Owner ids treated as subscribed
        unreachable: Owner ids whose sends raise PushDeliveryError
        rejected: Owner ids whose sends return False (no device accepted)
    """

    def __init__(
        self,
        subscribers: Optional[list[str]] = None,
        unreachable: Optional[set[str]] = None,
        rejected: Optional[set[str]] = None,
    ):
        self._subscribers = list(subscribers or [])
        self._unreachable = unreachable or set()
        self._rejected = rejected or set()
        self.sent: list[tuple[str, PushNotification]] = []

    async def active_subscribers(self) -> list[str]:
        return list(self._subscribers)

    async def send(self, owner_id: str, notification: PushNotification) -> bool:
        if owner_id in self._unreachable:
            raise PushDeliveryError(f"Push service unreachable for {owner_id}")
        if owner_id in self._rejected:
            return False
        self.sent.append((owner_id, notification))
        return True

    def sent_to(self, owner_id: str) -> list[PushNotification]:
        return [n for owner, n in self.sent if owner == owner_id]
