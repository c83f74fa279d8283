"""Assemble the service graph from :class:`~leadpilot.config.Settings`."""

from __future__ import annotations

import logging
from collections.abc import Callable
from dataclasses import dataclass
from datetime import datetime

from sqlalchemy.orm import Session, sessionmaker

from .ai.client import AnalysisClient, Classifier, CopyWriter, HttpAIClient, KeywordClassifier
from .automation.actions import build_registry
from .automation.processor import AutomationProcessor
from .automation.repository import (
    AutomationRuleRepository,
    ConversationRuleRepository,
    InMemoryAutomationRuleRepository,
    InMemoryConversationRuleRepository,
    InMemoryStepStore,
    SqlAlchemyAutomationRuleRepository,
    SqlAlchemyConversationRuleRepository,
    SqlAlchemyStepStore,
    StepStore,
)
from .automation.rules import ConversationRuleEngine
from .automation.scheduler import SchedulerWorker, StepScheduler
from .config import Settings, get_settings
from .conversations.repository import (
    ConversationRepository,
    InMemoryConversationRepository,
    SqlAlchemyConversationRepository,
)
from .conversations.service import ConversationService
from .escalation.policy import EscalationPolicy
from .escalation.repository import (
    EscalationQueue,
    InMemoryEscalationQueue,
    SqlAlchemyEscalationQueue,
)
from .events import InMemoryEventBus
from .leads.repository import InMemoryLeadRepository, LeadRepository, SqlAlchemyLeadRepository
from .leads.resolver import LeadResolver
from .leads.scoring import LeadScoringUpdater
from .messaging.notifications import (
    LoggingNotifier,
    LoggingSender,
    Notifier,
    OutboundSender,
    WebhookNotifier,
    WebhookSender,
)
from .messaging.transport import HttpWhatsAppTransport, MessageTransport, RecordingTransport
from .models.session import get_sessionmaker
from .timeutils import utcnow

logger = logging.getLogger(__name__)


@dataclass
class Container:
    settings: Settings
    event_bus: InMemoryEventBus
    leads: LeadRepository
    conversations: ConversationRepository
    escalation_queue: EscalationQueue
    conversation_rules: ConversationRuleRepository
    automation_rules: AutomationRuleRepository
    steps: StepStore
    transport: MessageTransport
    scheduler: StepScheduler
    escalation: EscalationPolicy
    rule_engine: ConversationRuleEngine
    processor: AutomationProcessor
    service: ConversationService
    worker: SchedulerWorker

    def start(self) -> None:
        self.worker.start()

    def stop(self) -> None:
        self.worker.stop()
        self.event_bus.shutdown()


def _sender(channel: str, url: str | None, timeout: float) -> OutboundSender:
    return WebhookSender(channel, url, timeout=timeout) if url else LoggingSender(channel)


def build_container(
    settings: Settings | None = None,
    *,
    session_factory: sessionmaker[Session] | None = None,
    transport: MessageTransport | None = None,
    classifier: Classifier | None = None,
    writer: CopyWriter | None = None,
    notifier: Notifier | None = None,
    event_bus: InMemoryEventBus | None = None,
    clock: Callable[[], datetime] = utcnow,
) -> Container:
    """Build every collaborator.

    With a ``session_factory`` (or ``DATABASE_URL``) state lives in SQL;
    otherwise in-process stores are used, which only suits a single
    instance.
    """

    settings = settings or get_settings()
    if session_factory is None and settings.database_url:
        session_factory = get_sessionmaker(settings.database_url, pool_pre_ping=True)

    if session_factory is not None:
        leads: LeadRepository = SqlAlchemyLeadRepository(session_factory)
        conversations: ConversationRepository = SqlAlchemyConversationRepository(session_factory)
        queue: EscalationQueue = SqlAlchemyEscalationQueue(session_factory)
        conversation_rules: ConversationRuleRepository = SqlAlchemyConversationRuleRepository(session_factory)
        automation_rules: AutomationRuleRepository = SqlAlchemyAutomationRuleRepository(session_factory)
        steps: StepStore = SqlAlchemyStepStore(session_factory)
    else:
        logger.warning("DATABASE_URL not configured; using in-memory stores")
        leads = InMemoryLeadRepository()
        conversations = InMemoryConversationRepository()
        queue = InMemoryEscalationQueue()
        conversation_rules = InMemoryConversationRuleRepository()
        automation_rules = InMemoryAutomationRuleRepository()
        steps = InMemoryStepStore()

    bus = event_bus or InMemoryEventBus(max_workers=settings.event_bus_workers)

    if transport is None:
        if settings.transport_url:
            transport = HttpWhatsAppTransport(
                settings.transport_url,
                api_key=settings.transport_api_key,
                timeout=settings.ai_timeout_seconds,
            )
        else:
            logger.warning("WHATSAPP_TRANSPORT_URL not configured; outbound messages stay in memory")
            transport = RecordingTransport()

    ai_http = (
        HttpAIClient(
            settings.ai_classifier_url,
            api_key=settings.ai_classifier_api_key,
            timeout=settings.ai_timeout_seconds,
        )
        if settings.ai_classifier_url
        else None
    )
    analysis = AnalysisClient(classifier or ai_http or KeywordClassifier())
    writer = writer or ai_http

    if notifier is None:
        notifier = (
            WebhookNotifier(settings.notification_webhook_url)
            if settings.notification_webhook_url
            else LoggingNotifier()
        )

    scheduler = StepScheduler(
        steps,
        max_attempts=settings.scheduler_max_attempts,
        batch_size=settings.scheduler_batch_size,
        clock=clock,
    )
    resolver = LeadResolver(leads, event_bus=bus, initial_score=settings.initial_lead_score)
    scoring = LeadScoringUpdater(leads)
    escalation = EscalationPolicy(
        settings.escalation, queue, leads, event_bus=bus, notifier=notifier
    )
    rule_engine = ConversationRuleEngine(
        conversation_rules,
        scheduler,
        leads=leads,
        transport=transport,
        conversations=conversations,
    )
    registry = build_registry(
        leads=leads,
        transport=transport,
        analysis=analysis,
        conversations=conversations,
        writer=writer,
        notifier=notifier,
        email_sender=_sender("email", settings.email_webhook_url, settings.ai_timeout_seconds),
        sms_sender=_sender("sms", settings.sms_webhook_url, settings.ai_timeout_seconds),
        event_bus=bus,
    )
    processor = AutomationProcessor(automation_rules, registry, scheduler=scheduler)
    processor.bind(bus)

    service = ConversationService(
        conversations=conversations,
        leads=leads,
        resolver=resolver,
        analysis=analysis,
        scoring=scoring,
        escalation=escalation,
        rules=rule_engine,
        scheduler=scheduler,
        transport=transport,
        event_bus=bus,
    )
    worker = SchedulerWorker(scheduler, poll_seconds=settings.scheduler_poll_seconds)
    return Container(
        settings=settings,
        event_bus=bus,
        leads=leads,
        conversations=conversations,
        escalation_queue=queue,
        conversation_rules=conversation_rules,
        automation_rules=automation_rules,
        steps=steps,
        transport=transport,
        scheduler=scheduler,
        escalation=escalation,
        rule_engine=rule_engine,
        processor=processor,
        service=service,
        worker=worker,
    )


__all__ = ["Container", "build_container"]
