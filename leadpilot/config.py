"""Runtime settings loaded from the environment."""

from __future__ import annotations

import dataclasses
import os
from functools import lru_cache

DEFAULT_URGENT_KEYWORDS = ("urgent", "emergency", "help", "problem", "issue")


def _env_float(name: str, default: float) -> float:
    raw = os.getenv(name)
    if raw is None or not raw.strip():
        return default
    return float(raw)


def _env_int(name: str, default: int) -> int:
    raw = os.getenv(name)
    if raw is None or not raw.strip():
        return default
    return int(raw)


def _env_list(name: str, default: tuple[str, ...]) -> tuple[str, ...]:
    raw = os.getenv(name)
    if raw is None:
        return default
    return tuple(item.strip().lower() for item in raw.split(",") if item.strip())


@dataclasses.dataclass(frozen=True)
class EscalationSettings:
    """Thresholds deciding when a conversation is handed to a human."""

    negative_sentiment_threshold: float = 0.6
    urgent_keywords: tuple[str, ...] = DEFAULT_URGENT_KEYWORDS
    negative_message_threshold: int = 3


@dataclasses.dataclass(frozen=True)
class Settings:
    """Application configuration.

    Every field maps to an environment variable; see :func:`get_settings`.
    """

    database_url: str | None = None
    ai_classifier_url: str | None = None
    ai_classifier_api_key: str | None = None
    ai_timeout_seconds: float = 10.0
    transport_url: str | None = None
    transport_api_key: str | None = None
    webhook_secret: str | None = None
    notification_webhook_url: str | None = None
    email_webhook_url: str | None = None
    sms_webhook_url: str | None = None
    escalation: EscalationSettings = dataclasses.field(default_factory=EscalationSettings)
    initial_lead_score: int = 10
    scheduler_poll_seconds: float = 5.0
    scheduler_batch_size: int = 50
    scheduler_max_attempts: int = 3
    event_bus_workers: int = 4


@lru_cache(maxsize=1)
def get_settings() -> Settings:
    """Load settings from the environment with development defaults."""

    escalation = EscalationSettings(
        negative_sentiment_threshold=_env_float("ESCALATION_NEGATIVE_THRESHOLD", 0.6),
        urgent_keywords=_env_list("ESCALATION_URGENT_KEYWORDS", DEFAULT_URGENT_KEYWORDS),
        negative_message_threshold=_env_int("ESCALATION_NEGATIVE_COUNT", 3),
    )
    return Settings(
        database_url=os.getenv("DATABASE_URL") or None,
        ai_classifier_url=os.getenv("AI_CLASSIFIER_URL") or None,
        ai_classifier_api_key=os.getenv("AI_CLASSIFIER_API_KEY") or None,
        ai_timeout_seconds=_env_float("AI_TIMEOUT_SECONDS", 10.0),
        transport_url=os.getenv("WHATSAPP_TRANSPORT_URL") or None,
        transport_api_key=os.getenv("WHATSAPP_TRANSPORT_API_KEY") or None,
        webhook_secret=os.getenv("WHATSAPP_WEBHOOK_SECRET") or None,
        notification_webhook_url=os.getenv("NOTIFICATION_WEBHOOK_URL") or None,
        email_webhook_url=os.getenv("EMAIL_WEBHOOK_URL") or None,
        sms_webhook_url=os.getenv("SMS_WEBHOOK_URL") or None,
        escalation=escalation,
        initial_lead_score=_env_int("LEAD_INITIAL_SCORE", 10),
        scheduler_poll_seconds=_env_float("SCHEDULER_POLL_SECONDS", 5.0),
        scheduler_batch_size=_env_int("SCHEDULER_BATCH_SIZE", 50),
        scheduler_max_attempts=_env_int("SCHEDULER_MAX_ATTEMPTS", 3),
        event_bus_workers=_env_int("EVENT_BUS_WORKERS", 4),
    )


def reset_settings_cache() -> None:
    """Clear cached settings; useful in tests when env vars change."""

    get_settings.cache_clear()


__all__ = [
    "DEFAULT_URGENT_KEYWORDS",
    "EscalationSettings",
    "Settings",
    "get_settings",
    "reset_settings_cache",
]
