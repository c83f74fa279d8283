"""Outbound WhatsApp transport collaborators."""

from __future__ import annotations

import logging
import threading
import uuid
from collections import deque
from dataclasses import dataclass, field
from datetime import datetime
from typing import Any, Protocol
from uuid import UUID

import requests

from ..timeutils import utcnow

logger = logging.getLogger(__name__)


class TransportError(RuntimeError):
    """Raised when the transport refuses or fails to deliver a message."""


@dataclass(frozen=True)
class DeliveryReceipt:
    message_id: str
    recipient: str
    sent_at: datetime = field(default_factory=utcnow)
    raw: dict[str, Any] = field(default_factory=dict)


class MessageTransport(Protocol):
    def send(self, tenant_id: UUID, recipient: str, body: str) -> DeliveryReceipt: ...

    def is_connected(self, tenant_id: UUID) -> bool: ...


def to_jid(phone: str) -> str:
    """Address a phone number the way the WhatsApp Web gateway expects."""

    if "@" in phone:
        return phone
    digits = "".join(ch for ch in phone if ch.isdigit())
    return f"{digits}@s.whatsapp.net"


class HttpWhatsAppTransport:
    """Talk to a WhatsApp Web session gateway over HTTP.

    The gateway keeps one authenticated session per tenant and exposes
    ``GET /sessions/{tenant}/status`` and ``POST /sessions/{tenant}/messages``.
    """

    def __init__(
        self,
        base_url: str,
        *,
        api_key: str | None = None,
        timeout: float = 10.0,
        session: requests.Session | None = None,
    ) -> None:
        self._base_url = base_url.rstrip("/")
        self._timeout = timeout
        self.session = session or requests.Session()
        self._headers: dict[str, str] = {}
        if api_key:
            self._headers["Authorization"] = f"Bearer {api_key}"

    def is_connected(self, tenant_id: UUID) -> bool:
        try:
            resp = self.session.get(
                f"{self._base_url}/sessions/{tenant_id}/status",
                headers=self._headers,
                timeout=self._timeout,
            )
            resp.raise_for_status()
            return bool(resp.json().get("connected"))
        except (requests.RequestException, ValueError) as exc:
            logger.warning("WhatsApp status check failed for tenant %s: %s", tenant_id, exc)
            return False

    def send(self, tenant_id: UUID, recipient: str, body: str) -> DeliveryReceipt:
        try:
            resp = self.session.post(
                f"{self._base_url}/sessions/{tenant_id}/messages",
                json={"jid": to_jid(recipient), "text": body},
                headers=self._headers,
                timeout=self._timeout,
            )
            resp.raise_for_status()
            data = resp.json()
        except (requests.RequestException, ValueError) as exc:
            raise TransportError(f"WhatsApp send failed: {exc}") from exc
        if not isinstance(data, dict):
            # Delivered already; a retry would send the message twice.
            logger.warning("Unexpected WhatsApp gateway response for tenant %s: %r", tenant_id, data)
            return DeliveryReceipt(message_id=uuid.uuid4().hex, recipient=recipient)
        key = data.get("key") if isinstance(data.get("key"), dict) else {}
        message_id = key.get("id") or data.get("id") or uuid.uuid4().hex
        return DeliveryReceipt(message_id=str(message_id), recipient=recipient, raw=data)


class RecordingTransport:
    """In-memory transport for development and tests.

    Only the last ``history_size`` deliveries are kept in ``sent``.
    """

    def __init__(self, *, connected: bool = True, history_size: int = 500) -> None:
        self.sent: deque[tuple[UUID, str, str, datetime]] = deque(maxlen=history_size)
        self._connected: dict[UUID, bool] = {}
        self._default_connected = connected
        self._lock = threading.Lock()

    def set_connected(self, tenant_id: UUID, connected: bool) -> None:
        self._connected[tenant_id] = connected

    def is_connected(self, tenant_id: UUID) -> bool:
        return self._connected.get(tenant_id, self._default_connected)

    def send(self, tenant_id: UUID, recipient: str, body: str) -> DeliveryReceipt:
        if not self.is_connected(tenant_id):
            raise TransportError(f"WhatsApp session for tenant {tenant_id} is not connected")
        receipt = DeliveryReceipt(message_id=uuid.uuid4().hex, recipient=recipient)
        with self._lock:
            self.sent.append((tenant_id, recipient, body, receipt.sent_at))
        return receipt

    def bodies(self) -> list[str]:
        with self._lock:
            return [body for _, _, body, _ in self.sent]


__all__ = [
    "DeliveryReceipt",
    "HttpWhatsAppTransport",
    "MessageTransport",
    "RecordingTransport",
    "TransportError",
    "to_jid",
]
