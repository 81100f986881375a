"""Service priority classification and ranking."""

from .classifier import classify_priority
from .ranker import rank_services, resolve_priority, stop_priority

__all__ = ["classify_priority", "rank_services", "resolve_priority", "stop_priority"]
