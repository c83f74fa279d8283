"""Inbound message pipeline and conversation storage."""
