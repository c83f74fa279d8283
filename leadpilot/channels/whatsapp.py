"""WhatsApp Web (``messages.upsert``) channel adapter."""

from __future__ import annotations

import logging
from collections.abc import Iterable, Mapping
from datetime import datetime, timezone
from typing import Any

from ..conversations.models import ContentType, NormalizedMessage
from .base import ChannelAdapter

logger = logging.getLogger(__name__)

GROUP_SUFFIX = "@g.us"
BROADCAST_SUFFIX = "@broadcast"

_MEDIA_TYPES = {
    "imageMessage": (ContentType.IMAGE, "Image message"),
    "videoMessage": (ContentType.VIDEO, "Video message"),
    "documentMessage": (ContentType.DOCUMENT, "Document message"),
    "audioMessage": (ContentType.AUDIO, "Audio message"),
}
_WRAPPERS = ("ephemeralMessage", "viewOnceMessage", "viewOnceMessageV2")


def _mapping(value: Any) -> Mapping[str, Any]:
    return value if isinstance(value, Mapping) else {}


def _string(value: Any) -> str | None:
    return value if isinstance(value, str) and value else None


def clean_jid(jid: str | None) -> str:
    """``"5511999:3@s.whatsapp.net"`` -> ``"5511999"``."""

    if not jid:
        return ""
    return jid.split("@", 1)[0].split(":", 1)[0]


def _unwrap(message: Mapping[str, Any]) -> Mapping[str, Any]:
    for wrapper in _WRAPPERS:
        inner = _mapping(message.get(wrapper)).get("message")
        if isinstance(inner, Mapping):
            return _unwrap(inner)
    return message


def _timestamp(value: Any) -> datetime:
    if isinstance(value, Mapping):
        value = value.get("low")
    try:
        if value is not None and value != "":
            return datetime.fromtimestamp(int(value), tz=timezone.utc)
    except (TypeError, ValueError, OverflowError, OSError):
        pass
    return datetime.now(timezone.utc)


def _content(message: Mapping[str, Any]) -> tuple[ContentType, str, str | None]:
    if message.get("conversation"):
        return ContentType.TEXT, str(message["conversation"]), None
    extended = _mapping(message.get("extendedTextMessage"))
    if extended.get("text"):
        return ContentType.TEXT, str(extended["text"]), None
    for key, (content_type, label) in _MEDIA_TYPES.items():
        media = message.get(key)
        if not isinstance(media, Mapping):
            continue
        if key == "audioMessage" and media.get("ptt"):
            content_type = ContentType.VOICE_NOTE
        text = media.get("caption")
        if not text and key == "documentMessage":
            text = media.get("title") or media.get("fileName")
        return content_type, str(text or label), _string(media.get("url"))
    return ContentType.UNKNOWN, "", None


def normalize(raw: Mapping[str, Any], *, recipient: str | None = None) -> NormalizedMessage:
    """Convert one raw WhatsApp Web message.

    Missing or malformed parts default to empty values; this never raises on
    payload shape.
    """

    raw = _mapping(raw)
    key = _mapping(raw.get("key"))
    remote_jid = _string(key.get("remoteJid")) or ""
    is_group = remote_jid.endswith(GROUP_SUFFIX)
    sender_jid = (_string(key.get("participant")) or remote_jid) if is_group else remote_jid
    phone = clean_jid(sender_jid)
    content_type, text, media_url = _content(_unwrap(_mapping(raw.get("message"))))
    external_id = key.get("id")
    return NormalizedMessage(
        sender=phone,
        phone=phone,
        text=text,
        message_type=content_type,
        recipient=recipient,
        external_id=str(external_id) if external_id not in (None, "") else None,
        sender_name=_string(raw.get("pushName")),
        media_url=media_url,
        is_group=is_group,
        metadata={"remote_jid": remote_jid, "group_id": clean_jid(remote_jid) if is_group else None},
        sent_at=_timestamp(raw.get("messageTimestamp")),
    )


class WhatsAppAdapter(ChannelAdapter):
    channel_name = "whatsapp"
    signature_header = "X-Hub-Signature-256"

    def parse_incoming(
        self,
        payload: Mapping[str, Any],
        headers: Mapping[str, str],
        config: Mapping[str, Any],
    ) -> Iterable[NormalizedMessage]:
        payload = _mapping(payload)
        batch = payload.get("data") if isinstance(payload.get("data"), Mapping) else payload
        upsert_type = batch.get("type")
        if upsert_type is not None and upsert_type != "notify":
            return
        recipient = _string(_mapping(config).get("phone_number"))
        messages = batch.get("messages")
        if not isinstance(messages, list):
            return
        for raw in messages:
            if not isinstance(raw, Mapping):
                continue
            key = _mapping(raw.get("key"))
            if key.get("fromMe"):
                continue
            if (_string(key.get("remoteJid")) or "").endswith(BROADCAST_SUFFIX):
                continue
            message = normalize(raw, recipient=recipient)
            if not message.phone:
                logger.warning("Skipping WhatsApp message without sender: %s", key.get("id"))
                continue
            message.tenant_id = self.tenant_id
            yield message
