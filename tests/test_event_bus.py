import threading
import uuid

from leadpilot.events import TRIGGER_CHANNEL, EventType, InMemoryEventBus, TriggerEvent, emit_trigger


def test_exchange_and_event_name_subscribers_both_receive(bus):
    by_exchange, by_name = [], []
    bus.subscribe(TRIGGER_CHANNEL, by_exchange.append)
    bus.subscribe("lead_created", by_name.append)

    bus.publish(TRIGGER_CHANNEL, "lead_created", {"n": 1})
    bus.publish(TRIGGER_CHANNEL, "lead_status_changed", {"n": 2})

    assert by_exchange == [{"n": 1}, {"n": 2}]
    assert by_name == [{"n": 1}]


def test_failing_handler_does_not_stop_others(bus):
    received = []

    def explode(payload):
        raise RuntimeError("boom")

    bus.subscribe(TRIGGER_CHANNEL, explode)
    bus.subscribe(TRIGGER_CHANNEL, received.append)

    bus.publish(TRIGGER_CHANNEL, "lead_created", "payload")

    assert received == ["payload"]


def test_unsubscribe(bus):
    received = []
    bus.subscribe(TRIGGER_CHANNEL, received.append)
    bus.unsubscribe(TRIGGER_CHANNEL, received.append)
    bus.unsubscribe(TRIGGER_CHANNEL, received.append)

    bus.publish(TRIGGER_CHANNEL, "lead_created", {})

    assert received == []


def test_threaded_bus_delivers_off_thread_and_drains():
    bus = InMemoryEventBus(max_workers=2)
    threads = []
    done = threading.Event()

    def handler(payload):
        threads.append(threading.current_thread().name)
        done.set()

    bus.subscribe(TRIGGER_CHANNEL, handler)
    bus.publish(TRIGGER_CHANNEL, "lead_created", {})
    bus.drain(timeout=5)
    bus.shutdown()

    assert done.is_set()
    assert threads[0].startswith("event-bus")


def test_emit_trigger_builds_envelope(bus, captured_events, tenant_id):
    lead_id = uuid.uuid4()

    event = emit_trigger(bus, EventType.LEAD_CREATED, tenant_id=tenant_id, lead_id=lead_id, source="whatsapp")

    assert captured_events == [event]
    assert isinstance(event, TriggerEvent)
    assert event.event_type == "lead_created"
    context = event.context()
    assert context["source"] == "whatsapp"
    assert context["tenant_id"] == str(tenant_id)
    assert context["lead_id"] == str(lead_id)


def test_emit_trigger_without_bus_still_returns_event():
    event = emit_trigger(None, "custom_event", value=1)
    assert event.event_type == "custom_event"
    assert event.payload == {"value": 1}


def test_envelope_identifiers_override_payload(tenant_id):
    event = TriggerEvent(event_type="x", tenant_id=tenant_id, payload={"tenant_id": "spoofed", "k": "v"})
    assert event.context()["tenant_id"] == str(tenant_id)
    assert event.context()["k"] == "v"
