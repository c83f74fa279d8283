"""Automation engines: conversation rules and event-driven rules."""
