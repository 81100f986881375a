"""Error hierarchy raised by the dispatch engine.

Every error names the entity or field at fault so the transport layer can
return an actionable message. None of them is fatal to the process.
"""

from __future__ import annotations

from typing import Sequence


class DispatchError(Exception):
    """Base class for recoverable engine errors."""


class NotFound(DispatchError):
    def __init__(self, kind: str, identifier: str) -> None:
        self.kind = kind
        self.identifier = identifier
        super().__init__(f"{kind} '{identifier}' not found.")


class InvalidTransition(DispatchError):
    """A service or route state change that the state machine forbids."""

    def __init__(self, entity: str, entity_id: str, current: str, target: str, reason: str | None = None) -> None:
        self.entity = entity
        self.entity_id = entity_id
        self.current = current
        self.target = target
        message = f"Cannot move {entity} '{entity_id}' from {current} to {target}."
        if reason:
            message = f"{message} {reason}"
        super().__init__(message)


class RouteNotPending(InvalidTransition):
    def __init__(self, route_id: str, current: str) -> None:
        super().__init__("route", route_id, current, "IN_PROGRESS", "Only PENDING routes can be started.")


class RouteNotInProgress(InvalidTransition):
    def __init__(self, route_id: str, current: str, target: str) -> None:
        super().__init__("route", route_id, current, target, "The route is not IN_PROGRESS.")


class RouteOwnershipError(InvalidTransition):
    def __init__(self, route_id: str, owner_id: str, actor_id: str | None) -> None:
        self.owner_id = owner_id
        self.actor_id = actor_id
        super().__init__(
            "route",
            route_id,
            "PENDING",
            "IN_PROGRESS",
            f"Route belongs to agent '{owner_id}', not '{actor_id}'.",
        )


class RouteIncomplete(InvalidTransition):
    def __init__(self, route_id: str, open_stop_ids: Sequence[str]) -> None:
        self.open_stop_ids = list(open_stop_ids)
        super().__init__(
            "route",
            route_id,
            "IN_PROGRESS",
            "COMPLETED",
            f"Open stops: {', '.join(self.open_stop_ids)}.",
        )


class MissingRequiredField(DispatchError):
    def __init__(self, field: str, target: str | None = None) -> None:
        self.field = field
        self.target = target
        suffix = f" to enter {target}" if target else ""
        super().__init__(f"Missing required field '{field}'{suffix}.")


class InvalidFieldValue(DispatchError):
    def __init__(self, field: str, reason: str) -> None:
        self.field = field
        self.reason = reason
        super().__init__(f"Invalid value for '{field}': {reason}")


class Conflict(DispatchError):
    """Optimistic concurrency violation or duplicate work assignment."""

    def __init__(self, entity: str, entity_id: str, reason: str) -> None:
        self.entity = entity
        self.entity_id = entity_id
        self.reason = reason
        super().__init__(f"Conflict on {entity} '{entity_id}': {reason}")


class RoutesAlreadyExist(Conflict):
    def __init__(self, route_date: str, agent_ids: Sequence[str]) -> None:
        self.agent_ids = list(agent_ids)
        super().__init__(
            "routes",
            route_date,
            f"agents {', '.join(self.agent_ids)} already hold active routes; clear the date to regenerate.",
        )
