"""Push notification delivery."""

from finledger.services.notifications.interface import (
    PushDeliveryError,
    PushDispatcherInterface,
    PushNotification,
    notification_for,
)
from finledger.services.notifications.memory import InMemoryPushDispatcher

__all__ = [
    "InMemoryPushDispatcher",
    "PushDeliveryError",
    "PushDispatcherInterface",
    "PushNotification",
    "notification_for",
]
