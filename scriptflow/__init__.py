"""Scriptflow: event-driven automation with a rule scripting language and node workflows."""

__version__ = "1.0.0"
