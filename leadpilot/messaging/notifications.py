"""Coach notifications and the email/SMS senders used by automations."""

from __future__ import annotations

import logging
from collections import deque
from typing import Any, Protocol
from uuid import UUID

import requests

logger = logging.getLogger(__name__)


class DeliveryError(RuntimeError):
    pass


class Notifier(Protocol):
    def notify(self, tenant_id: UUID, subject: str, body: str) -> None: ...


class OutboundSender(Protocol):
    """Email or SMS delivery keyed by a free-form address."""

    channel: str

    def send(self, tenant_id: UUID, to: str, subject: str | None, body: str) -> None: ...


class _WebhookPoster:
    def __init__(
        self, url: str, *, timeout: float = 10.0, session: requests.Session | None = None
    ) -> None:
        self._url = url
        self._timeout = timeout
        self.session = session or requests.Session()

    def _post(self, payload: dict[str, Any]) -> None:
        try:
            resp = self.session.post(self._url, json=payload, timeout=self._timeout)
            resp.raise_for_status()
        except requests.RequestException as exc:
            raise DeliveryError(f"Webhook delivery to {self._url} failed: {exc}") from exc


class WebhookNotifier(_WebhookPoster):
    """POST escalation alerts to a configured webhook (Slack, n8n, ...)."""

    def notify(self, tenant_id: UUID, subject: str, body: str) -> None:
        self._post({"tenant_id": str(tenant_id), "subject": subject, "body": body})


class WebhookSender(_WebhookPoster):
    def __init__(self, channel: str, url: str, **kwargs: Any) -> None:
        super().__init__(url, **kwargs)
        self.channel = channel

    def send(self, tenant_id: UUID, to: str, subject: str | None, body: str) -> None:
        self._post(
            {
                "tenant_id": str(tenant_id),
                "channel": self.channel,
                "to": to,
                "subject": subject,
                "body": body,
            }
        )


class LoggingNotifier:
    """Fallback notifier that only writes to the application log.

    The most recent ``history_size`` notifications stay readable in ``sent``.
    """

    def __init__(self, *, history_size: int = 500) -> None:
        self.sent: deque[tuple[UUID, str, str]] = deque(maxlen=history_size)

    def notify(self, tenant_id: UUID, subject: str, body: str) -> None:
        self.sent.append((tenant_id, subject, body))
        logger.info("Notification for tenant %s: %s", tenant_id, subject)


class LoggingSender:
    def __init__(self, channel: str, *, history_size: int = 500) -> None:
        self.channel = channel
        self.sent: deque[dict[str, Any]] = deque(maxlen=history_size)

    def send(self, tenant_id: UUID, to: str, subject: str | None, body: str) -> None:
        self.sent.append({"tenant_id": tenant_id, "to": to, "subject": subject, "body": body})
        logger.info("Queued %s for tenant %s", self.channel, tenant_id)


__all__ = [
    "DeliveryError",
    "LoggingNotifier",
    "LoggingSender",
    "Notifier",
    "OutboundSender",
    "WebhookNotifier",
    "WebhookSender",
]
