"""
Abstract Push Dispatcher Interface

The engine decides WHAT to push (critical and warning alerts not sent in
the last few hours); a dispatcher only knows HOW to reach a user's
devices. Transport details (web push keys, subscriptions) stay behind
this interface.
"""

from abc import ABC, abstractmethod
from typing import Optional

from pydantic import BaseModel, Field

from finledger.errors import UpstreamError
from finledger.models.alerts import Alert, AlertSeverity, AlertType


ALERT_URLS = {
    AlertType.BUDGET: "/planning",
    AlertType.SAVINGS: "/planning",
    AlertType.BALANCE: "/accounts",
}
DEFAULT_URL = "/dashboard"


class PushNotification(BaseModel):
    """Payload handed to the push transport."""

    title: str
    body: str
    tag: Optional[str] = Field(
        default=None,
        description="Notifications with the same tag replace each other on the device"
    )
    url: str = "/"
    require_interaction: bool = False
    icon: str = "/pwa/icon-192x192.png"
    badge: str = "/pwa/badge-icon.png"


def notification_for(alert: Alert) -> PushNotification:
    """Build the push payload for an alert."""
    return PushNotification(
        title=alert.title,
        body=alert.message,
        tag=f"alert-{alert.type.value}-{alert.id}",
        url=ALERT_URLS.get(alert.type, DEFAULT_URL),
        require_interaction=alert.severity == AlertSeverity.CRITICAL,
    )


class PushDispatcherInterface(ABC):
    """Delivers notifications to a user's subscribed devices."""

    @abstractmethod
    async def active_subscribers(self) -> list[str]:
        """Owner ids with at least one active push subscription."""
        pass

    @abstractmethod
    async def send(self, owner_id: str, notification: PushNotification) -> bool:
        """
        Push to every active device of `owner_id`.

        Returns:
            True if at least one device accepted the notification

        Raises:
            PushDeliveryError: If the transport is unreachable
        """
        pass


class PushDeliveryError(UpstreamError):
    """The push transport could not be reached."""
    pass
