"""Route group exports."""

from . import health, routes, services

__all__ = ["health", "routes", "services"]
