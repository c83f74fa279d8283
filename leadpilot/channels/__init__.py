"""Inbound channel adapters, looked up by the webhook route."""

from __future__ import annotations

from .base import ChannelAdapter
from .whatsapp import WhatsAppAdapter, normalize

_ADAPTERS: dict[str, type[ChannelAdapter]] = {}


def register_adapter(adapter: type[ChannelAdapter]) -> None:
    _ADAPTERS[adapter.channel_name.lower()] = adapter


def available_channels() -> list[str]:
    return sorted(_ADAPTERS)


def get_adapter(name: str) -> type[ChannelAdapter]:
    """Return the adapter class for ``name``; unknown channels raise ``KeyError``."""
    try:
        return _ADAPTERS[name.lower()]
    except KeyError:
        supported = ", ".join(available_channels())
        raise KeyError(f"Unsupported channel '{name}' (supported: {supported})") from None


register_adapter(WhatsAppAdapter)

__all__ = [
    "ChannelAdapter",
    "WhatsAppAdapter",
    "available_channels",
    "get_adapter",
    "normalize",
    "register_adapter",
]
