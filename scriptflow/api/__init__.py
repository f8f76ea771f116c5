"""REST API for the automation engine."""

from .endpoints import router, init_dependencies

__all__ = ["router", "init_dependencies"]
