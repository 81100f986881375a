"""Priority ordering for services and stops."""

from __future__ import annotations

from typing import Iterable

from ...models.domain import Priority, Service
from .classifier import classify_priority


def resolve_priority(service: Service) -> Priority:
    """Explicit priority when set, otherwise derived from the observations."""
    if service.priority is not None:
        return service.priority
    return classify_priority(service.observations)


def rank_services(services: Iterable[Service]) -> list[Service]:
    """Return services HIGH first, then MEDIUM, then NORMAL.

    Services sharing a priority keep chronological order (earliest
    ``created_at`` first); exact ties keep their input order.
    """
    return sorted(services, key=lambda service: (-resolve_priority(service).rank, service.created_at))


def stop_priority(services: Iterable[Service]) -> Priority:
    priorities = [resolve_priority(service) for service in services]
    if not priorities:
        return Priority.NORMAL
    return max(priorities, key=lambda priority: priority.rank)
