"""Outbound delivery collaborators."""

from .notifications import (
    DeliveryError,
    LoggingNotifier,
    LoggingSender,
    Notifier,
    OutboundSender,
    WebhookNotifier,
    WebhookSender,
)
from .transport import (
    DeliveryReceipt,
    HttpWhatsAppTransport,
    MessageTransport,
    RecordingTransport,
    TransportError,
    to_jid,
)

__all__ = [
    "DeliveryError",
    "DeliveryReceipt",
    "HttpWhatsAppTransport",
    "LoggingNotifier",
    "LoggingSender",
    "MessageTransport",
    "Notifier",
    "OutboundSender",
    "RecordingTransport",
    "TransportError",
    "WebhookNotifier",
    "WebhookSender",
    "to_jid",
]
