"""
Outbound donor/patient notifications.

Services never talk to a messaging provider directly. They hand a template id
and a payload to ``NotificationDispatcher.dispatch``, which sends it through a
``NotificationPort`` on a background task. Delivery is fire-and-forget: a
failed or slow send is logged and dropped, it never rolls back the caller.
"""

import asyncio
from abc import ABC, abstractmethod
from enum import Enum
from typing import Any, Dict, Optional, Set

import httpx

from app.config import settings
from app.utils.logging_config import get_logger
from app.utils.phone import mask_phone

logger = get_logger(__name__)


class NotificationTemplate(str, Enum):
    DONATION_REQUEST = "donation_request"
    THANK_YOU = "thank_you"
    ELIGIBILITY_REMINDER = "eligibility_reminder"
    BLOOD_SHORTAGE_ALERT = "blood_shortage_alert"
    RESERVATION_CONFIRMATION = "reservation_confirmation"
    RESERVATION_STATUS = "reservation_status"


# Endpoint of the messaging service for every template
TEMPLATE_PATHS: Dict[NotificationTemplate, str] = {
    NotificationTemplate.DONATION_REQUEST: "/api/whatsapp/send-donation-request",
    NotificationTemplate.THANK_YOU: "/api/whatsapp/send-thank-you",
    NotificationTemplate.ELIGIBILITY_REMINDER: "/api/whatsapp/send-eligibility-reminder",
    NotificationTemplate.BLOOD_SHORTAGE_ALERT: "/api/whatsapp/send-blood-shortage-alert",
    NotificationTemplate.RESERVATION_CONFIRMATION: "/api/whatsapp/send-confirmation",
    NotificationTemplate.RESERVATION_STATUS: "/api/whatsapp/send-status-update",
}


class NotificationPort(ABC):
    """Anything that can deliver a templated message to one recipient."""

    @abstractmethod
    async def send(self, template_id: str, payload: Dict[str, Any]) -> bool:
        """Deliver the message. Returns False (or raises) when it was not sent."""


class LoggingNotificationPort(NotificationPort):
    """Default port: records the message in the log and reports success."""

    async def send(self, template_id: str, payload: Dict[str, Any]) -> bool:
        logger.info(
            f"Notification '{template_id}' to {mask_phone(payload.get('phoneNumber'))}",
            extra={
                "extra_fields": {
                    "action": "notification_logged",
                    "template": template_id,
                }
            },
        )
        return True


class HttpNotificationPort(NotificationPort):
    """Posts the payload as JSON to the external messaging service."""

    def __init__(self, base_url: str, timeout: float = 10.0):
        self.base_url = base_url.rstrip("/")
        self.timeout = timeout

    def url_for(self, template_id: str) -> str:
        template = NotificationTemplate(template_id)
        return f"{self.base_url}{TEMPLATE_PATHS[template]}"

    async def send(self, template_id: str, payload: Dict[str, Any]) -> bool:
        async with httpx.AsyncClient(timeout=self.timeout) as client:
            response = await client.post(self.url_for(template_id), json=payload)
            response.raise_for_status()
        return True


class NotificationDispatcher:
    """Schedules sends on the running loop and keeps failures local."""

    def __init__(self, port: NotificationPort, timeout: Optional[float] = None):
        self.port = port
        self.timeout = settings.NOTIFICATION_TIMEOUT_SECONDS if timeout is None else timeout
        self._pending: Set[asyncio.Task] = set()

    def dispatch(self, template, payload: Dict[str, Any]) -> Optional[asyncio.Task]:
        template_id = template.value if isinstance(template, NotificationTemplate) else template
        try:
            loop = asyncio.get_running_loop()
        except RuntimeError:
            logger.warning(f"No running event loop, notification '{template_id}' dropped")
            return None

        task = loop.create_task(self._deliver(template_id, dict(payload)))
        self._pending.add(task)
        task.add_done_callback(self._pending.discard)
        return task

    async def _deliver(self, template_id: str, payload: Dict[str, Any]) -> bool:
        recipient = mask_phone(payload.get("phoneNumber"))
        try:
            sent = await asyncio.wait_for(
                self.port.send(template_id, payload), timeout=self.timeout
            )
        except asyncio.TimeoutError:
            logger.warning(
                f"Notification '{template_id}' to {recipient} timed out after {self.timeout}s"
            )
            return False
        except Exception as e:
            logger.warning(f"Notification '{template_id}' to {recipient} failed: {e}")
            return False

        if not sent:
            logger.warning(f"Notification '{template_id}' to {recipient} was not accepted")
            return False
        return True

    async def drain(self) -> None:
        """Wait for every in-flight notification to finish."""
        if self._pending:
            await asyncio.gather(*list(self._pending), return_exceptions=True)


def build_notification_port() -> NotificationPort:
    if settings.NOTIFICATION_SERVICE_URL:
        logger.info(f"Notifications go to {settings.NOTIFICATION_SERVICE_URL}")
        return HttpNotificationPort(
            settings.NOTIFICATION_SERVICE_URL,
            timeout=settings.NOTIFICATION_TIMEOUT_SECONDS,
        )
    return LoggingNotificationPort()
