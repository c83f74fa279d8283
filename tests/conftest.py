import datetime as dt
import pathlib
import sys
import uuid
from typing import Any

import pytest
from sqlalchemy.orm import Session, sessionmaker

sys.path.append(str(pathlib.Path(__file__).resolve().parents[1]))
from leadpilot.ai.client import AnalysisClient
from leadpilot.config import Settings
from leadpilot.container import build_container
from leadpilot.conversations.models import NormalizedMessage
from leadpilot.events import TRIGGER_CHANNEL, InMemoryEventBus
from leadpilot.leads.repository import InMemoryLeadRepository
from leadpilot.leads.schemas import LeadDefaults
from leadpilot.messaging.notifications import LoggingNotifier
from leadpilot.messaging.transport import RecordingTransport
from leadpilot.models.session import create_schema, get_engine, session_factory_for


class ManualClock:
    """Callable clock that only moves when told to."""

    def __init__(self, start: dt.datetime | None = None) -> None:
        self.now = start or dt.datetime(2024, 3, 1, 9, 0, tzinfo=dt.timezone.utc)

    def __call__(self) -> dt.datetime:
        return self.now

    def advance(self, **delta: float) -> dt.datetime:
        self.now += dt.timedelta(**delta)
        return self.now


class StubClassifier:
    """Return a fixed analysis regardless of the text."""

    def __init__(self, **overrides: Any) -> None:
        self.result: dict[str, Any] = {
            "sentiment": "neutral",
            "sentimentScore": 0.5,
            "intent": "general",
            "urgency": "low",
            "keywords": [],
            "confidence": 0.9,
        }
        self.result.update(overrides)
        self.calls: list[tuple[str, str]] = []

    def set(self, **overrides: Any) -> None:
        self.result.update(overrides)

    def classify(self, text: str, task: str) -> dict[str, Any]:
        self.calls.append((text, task))
        return dict(self.result)


class StubWriter:
    def __init__(self) -> None:
        self.prompts: list[str] = []

    def generate_copy(self, prompt: str, context) -> str:
        self.prompts.append(prompt)
        return f"Copy for {context.get('lead', {}).get('name', 'lead')}"

    def score_lead(self, lead) -> dict[str, Any]:
        return {"score": 80, "summary": f"{lead['name']} looks ready"}


@pytest.fixture
def tenant_id() -> uuid.UUID:
    return uuid.uuid4()


@pytest.fixture
def clock() -> ManualClock:
    return ManualClock()


@pytest.fixture
def classifier() -> StubClassifier:
    return StubClassifier()


@pytest.fixture
def analysis(classifier) -> AnalysisClient:
    return AnalysisClient(classifier)


@pytest.fixture
def transport() -> RecordingTransport:
    return RecordingTransport()


@pytest.fixture
def notifier() -> LoggingNotifier:
    return LoggingNotifier()


@pytest.fixture
def bus() -> InMemoryEventBus:
    return InMemoryEventBus(max_workers=0)


@pytest.fixture
def captured_events(bus) -> list:
    events: list = []
    bus.subscribe(TRIGGER_CHANNEL, events.append)
    return events


@pytest.fixture
def leads() -> InMemoryLeadRepository:
    return InMemoryLeadRepository()


@pytest.fixture
def make_lead(leads, tenant_id):
    def _make(phone: str = "5511999990000", name: str = "Ana Souza", **defaults: Any):
        lead, _ = leads.upsert_for_contact(
            tenant_id, phone, LeadDefaults(name=name, score=defaults.pop("score", 10), **defaults)
        )
        return lead

    return _make


@pytest.fixture
def make_message(clock):
    def _make(text: str = "Hello there", phone: str = "5511999990000", **fields: Any) -> NormalizedMessage:
        fields.setdefault("sender_name", "Ana Souza")
        fields.setdefault("sent_at", clock())
        return NormalizedMessage(sender=phone, phone=phone, text=text, **fields)

    return _make


@pytest.fixture
def session_factory(tmp_path) -> sessionmaker[Session]:
    engine = get_engine(f"sqlite+pysqlite:///{tmp_path / 'leadpilot.db'}")
    create_schema(engine)
    factory = session_factory_for(engine)
    yield factory
    engine.dispose()


@pytest.fixture
def settings() -> Settings:
    return Settings()


@pytest.fixture
def container(settings, transport, classifier, notifier, bus, clock):
    return build_container(
        settings,
        transport=transport,
        classifier=classifier,
        writer=StubWriter(),
        notifier=notifier,
        event_bus=bus,
        clock=clock,
    )


@pytest.fixture
def sql_container(settings, session_factory, transport, classifier, notifier, bus, clock):
    return build_container(
        settings,
        session_factory=session_factory,
        transport=transport,
        classifier=classifier,
        writer=StubWriter(),
        notifier=notifier,
        event_bus=bus,
        clock=clock,
    )
