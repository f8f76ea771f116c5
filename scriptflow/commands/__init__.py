"""Command handlers for the automation engine."""

from .default_handlers import StudioState, register_default_handlers, random_number

__all__ = [
    "StudioState",
    "register_default_handlers",
    "random_number",
]
