"""Shared contract for inbound messaging channels."""

from __future__ import annotations

import hashlib
import hmac
from abc import ABC, abstractmethod
from collections.abc import Iterable, Mapping
from typing import Any
from uuid import UUID

from ..conversations.models import NormalizedMessage


class ChannelAdapter(ABC):
    """Verify and unpack one tenant's webhook deliveries for a channel.

    When ``config`` carries a ``webhook_secret`` the body must be signed with
    HMAC-SHA256 and the hex digest sent as ``sha256=<digest>`` in
    :attr:`signature_header`. Without a secret every delivery is accepted.
    """

    #: Lowercase identifier used in the webhook route.
    channel_name: str
    signature_header: str = "X-Signature-256"

    def __init__(self, *, tenant_id: UUID) -> None:
        self.tenant_id = tenant_id

    @abstractmethod
    def parse_incoming(
        self,
        payload: Mapping[str, Any],
        headers: Mapping[str, str],
        config: Mapping[str, Any],
    ) -> Iterable[NormalizedMessage]:
        """Yield one normalized message per actionable item in ``payload``."""

    def verify_signature(
        self,
        body: bytes,
        headers: Mapping[str, str],
        config: Mapping[str, Any],
    ) -> bool:
        secret = (config or {}).get("webhook_secret")
        if not secret:
            return True
        received = headers.get(self.signature_header)
        if not received:
            return False
        digest = hmac.new(secret.encode("utf-8"), body, hashlib.sha256).hexdigest()
        return hmac.compare_digest(received, f"sha256={digest}")
