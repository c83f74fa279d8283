import hashlib
import hmac
import uuid

import pytest

from leadpilot.channels import get_adapter
from leadpilot.channels.whatsapp import WhatsAppAdapter, clean_jid, normalize
from leadpilot.conversations.models import ContentType


def _raw(message: dict, *, jid: str = "5511999990000@s.whatsapp.net", **key) -> dict:
    return {
        "key": {"remoteJid": jid, "id": "ABC123", "fromMe": False, **key},
        "pushName": "Ana Souza",
        "messageTimestamp": 1709283600,
        "message": message,
    }


def test_clean_jid_strips_device_and_domain():
    assert clean_jid("5511999990000:12@s.whatsapp.net") == "5511999990000"
    assert clean_jid("120363@g.us") == "120363"
    assert clean_jid(None) == ""


def test_normalize_plain_and_extended_text():
    msg = normalize(_raw({"conversation": "Hi, I want to book a session"}))
    assert msg.phone == "5511999990000"
    assert msg.text == "Hi, I want to book a session"
    assert msg.message_type is ContentType.TEXT
    assert msg.external_id == "ABC123"
    assert msg.sender_name == "Ana Souza"
    assert msg.sent_at.timestamp() == 1709283600
    assert not msg.is_group

    extended = normalize(_raw({"extendedTextMessage": {"text": "see https://x.io"}}))
    assert extended.text == "see https://x.io"


@pytest.mark.parametrize(
    "message, content_type, text",
    [
        ({"imageMessage": {"caption": "my results", "url": "https://m/1"}}, ContentType.IMAGE, "my results"),
        ({"imageMessage": {}}, ContentType.IMAGE, "Image message"),
        ({"videoMessage": {}}, ContentType.VIDEO, "Video message"),
        ({"documentMessage": {"fileName": "plan.pdf"}}, ContentType.DOCUMENT, "plan.pdf"),
        ({"audioMessage": {"ptt": True}}, ContentType.VOICE_NOTE, "Audio message"),
        ({"audioMessage": {}}, ContentType.AUDIO, "Audio message"),
        ({"ephemeralMessage": {"message": {"conversation": "poof"}}}, ContentType.TEXT, "poof"),
        ({"reactionMessage": {"text": "+1"}}, ContentType.UNKNOWN, ""),
    ],
)
def test_normalize_media_and_wrapped_messages(message, content_type, text):
    msg = normalize(_raw(message))
    assert msg.message_type is content_type
    assert msg.text == text


def test_normalize_group_uses_participant_and_tolerates_missing_parts():
    msg = normalize(
        _raw({"conversation": "hey"}, jid="120363@g.us", participant="5511888887777@s.whatsapp.net")
    )
    assert msg.is_group
    assert msg.phone == "5511888887777"
    assert msg.metadata["group_id"] == "120363"

    empty = normalize({})
    assert empty.phone == "" and empty.text == ""
    assert empty.message_type is ContentType.UNKNOWN


@pytest.mark.parametrize(
    "raw",
    [
        None,
        "not a message",
        {"key": "x"},
        {"key": ["5511999990000@s.whatsapp.net"]},
        {"key": {"remoteJid": 5511999990000}},
        {"key": {"remoteJid": "120363@g.us", "participant": 42}},
        {"message": "text"},
        {"message": {"ephemeralMessage": "x", "extendedTextMessage": ["hi"]}},
        {"pushName": 7, "messageTimestamp": "yesterday"},
    ],
)
def test_normalize_never_raises_on_malformed_payload(raw):
    msg = normalize(raw)
    assert msg.text == ""
    assert msg.message_type is ContentType.UNKNOWN
    assert msg.sender_name is None


def test_normalize_keeps_text_when_key_is_malformed():
    msg = normalize({"key": {"remoteJid": 123, "id": 99}, "message": {"conversation": "hi"}})
    assert msg.phone == ""
    assert msg.text == "hi"
    assert msg.external_id == "99"


def test_adapter_skips_malformed_entries():
    adapter = WhatsAppAdapter(tenant_id=uuid.uuid4())
    payload = {
        "data": {
            "type": "notify",
            "messages": [
                {"key": "x"},
                {"key": {"remoteJid": 5}, "message": {"conversation": "lost"}},
                _raw({"conversation": "kept"}),
            ],
        }
    }
    assert [m.text for m in adapter.parse_incoming(payload, {}, {})] == ["kept"]
    assert list(adapter.parse_incoming({"data": {"messages": "oops"}}, {}, {})) == []
    assert list(adapter.parse_incoming(["not", "a", "payload"], {}, {})) == []


def test_normalize_timestamp_object_form():
    raw = _raw({"conversation": "x"})
    raw["messageTimestamp"] = {"low": 1709283600, "high": 0}
    assert normalize(raw).sent_at.timestamp() == 1709283600


def test_adapter_filters_batch():
    tenant_id = uuid.uuid4()
    adapter = get_adapter("WhatsApp")(tenant_id=tenant_id)
    payload = {
        "event": "messages.upsert",
        "data": {
            "type": "notify",
            "messages": [
                _raw({"conversation": "first"}),
                _raw({"conversation": "mine"}, fromMe=True),
                _raw({"conversation": "status"}, jid="status@broadcast"),
                _raw({"conversation": "second"}, jid="5511777776666@s.whatsapp.net"),
            ],
        },
    }
    messages = list(adapter.parse_incoming(payload, {}, {}))
    assert [m.text for m in messages] == ["first", "second"]
    assert all(m.tenant_id == tenant_id for m in messages)

    history_sync = {"type": "append", "messages": [_raw({"conversation": "old"})]}
    assert list(adapter.parse_incoming(history_sync, {}, {})) == []


def test_adapter_signature_check():
    adapter = WhatsAppAdapter(tenant_id=uuid.uuid4())
    body = b'{"messages": []}'
    config = {"webhook_secret": "s3cret"}
    signature = "sha256=" + hmac.new(b"s3cret", body, hashlib.sha256).hexdigest()

    assert adapter.verify_signature(body, {}, {})
    assert adapter.verify_signature(body, {"X-Hub-Signature-256": signature}, config)
    assert not adapter.verify_signature(body, {"X-Hub-Signature-256": "sha256=bad"}, config)
    assert not adapter.verify_signature(body, {}, config)


def test_unknown_channel_raises_key_error():
    with pytest.raises(KeyError):
        get_adapter("telegram")
