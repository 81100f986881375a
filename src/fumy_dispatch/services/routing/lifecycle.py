"""Route state machine: PENDING -> IN_PROGRESS -> COMPLETED, plus stop bookkeeping."""

from __future__ import annotations

import logging
from dataclasses import replace
from datetime import date, datetime
from typing import Callable, Mapping

from ...errors import (
    Conflict,
    NotFound,
    RouteIncomplete,
    RouteNotInProgress,
    RouteNotPending,
    RouteOwnershipError,
)
from ...models.domain import Route, RouteStatus, ServiceStatus, Stop, utcnow
from ...persistence.repositories import RouteFilter, RouteRepository
from ..audit import AuditLog
from .models import StopCompletion

CLOSED_DELIVERY_STATUSES = frozenset({ServiceStatus.COMPLETED, ServiceStatus.CANCELLED})


def stop_is_satisfied(stop: Stop, statuses: Mapping[str, ServiceStatus]) -> bool:
    """True once no pickup is still pending and every delivery is closed.

    Services missing from ``statuses`` count as unresolved.
    """
    for service_id in stop.pickup_service_ids:
        status = statuses.get(service_id)
        if status is None or status is ServiceStatus.PENDING_PICKUP:
            return False
    for service_id in stop.delivery_service_ids:
        if statuses.get(service_id) not in CLOSED_DELIVERY_STATUSES:
            return False
    return True


class RouteLifecycleManager:
    def __init__(
        self,
        routes: RouteRepository,
        *,
        audit: AuditLog | None = None,
        clock: Callable[[], datetime] = utcnow,
    ) -> None:
        self.routes = routes
        self.audit = audit or AuditLog()
        self.clock = clock

    def get_route(self, route_id: str) -> Route:
        return self.routes.get_route(route_id)

    def list_routes(
        self,
        route_date: date,
        *,
        agent_id: str | None = None,
        status: RouteStatus | None = None,
    ) -> list[Route]:
        return self.routes.list_routes(RouteFilter(date=route_date, agent_id=agent_id, status=status))

    def running_routes_with_service(self, service_id: str) -> list[Route]:
        """IN_PROGRESS routes of any date with a stop holding the service."""
        return self.routes.list_routes(RouteFilter(status=RouteStatus.IN_PROGRESS, service_id=service_id))

    def start(self, route_id: str, actor_id: str | None, *, as_admin: bool = False) -> Route:
        route = self.routes.get_route(route_id)
        if route.status is not RouteStatus.PENDING:
            raise RouteNotPending(route_id, route.status.value)
        if not as_admin and actor_id != route.agent_id:
            raise RouteOwnershipError(route_id, route.agent_id, actor_id)

        running = self.list_routes(route.route_date, agent_id=route.agent_id, status=RouteStatus.IN_PROGRESS)
        if any(other.route_id != route_id for other in running):
            raise Conflict(
                "route",
                route_id,
                f"agent '{route.agent_id}' already has a route in progress on {route.route_date.isoformat()}",
            )

        started = replace(route, status=RouteStatus.IN_PROGRESS, started_at=self.clock(), version=route.version + 1)
        self.routes.save_route(started, expected_status=RouteStatus.PENDING, expected_version=route.version)
        self.audit.record(
            "route",
            route_id,
            "route.start",
            f"Route #{route.route_number} started",
            actor_id=actor_id,
            previous_status=route.status.value,
            new_status=started.status.value,
            at=started.started_at,
        )
        return started

    def mark_stop_complete(
        self,
        route_id: str,
        stop_id: str,
        completion: StopCompletion | None = None,
    ) -> Route:
        """Complete one stop; a stop that is already complete is left untouched."""
        route = self.routes.get_route(route_id)
        if route.status is not RouteStatus.IN_PROGRESS:
            raise RouteNotInProgress(route_id, route.status.value, "stop completion")
        return self._complete_stop(route, stop_id, completion or StopCompletion())

    def _complete_stop(self, route: Route, stop_id: str, completion: StopCompletion) -> Route:
        stop = route.find_stop(stop_id)
        if stop is None:
            raise NotFound("stop", stop_id)
        if stop.completed:
            return route

        finished = replace(
            stop,
            completed=True,
            completed_at=completion.completed_at or self.clock(),
            notes=completion.notes or stop.notes,
        )
        updated = replace(
            route,
            stops=tuple(finished if item.stop_id == stop_id else item for item in route.stops),
            version=route.version + 1,
        )
        # Whole-route write: the version check keeps a concurrent stop update from being overwritten.
        self.routes.save_route(updated, expected_status=RouteStatus.IN_PROGRESS, expected_version=route.version)
        self.audit.record(
            "route",
            route.route_id,
            "route.stop_complete",
            f"Stop {stop_id} at {stop.hotel_name} completed",
            actor_id=completion.actor_id,
            at=finished.completed_at,
        )
        return updated

    def refresh_stop(self, route_id: str, stop_id: str, statuses: Mapping[str, ServiceStatus]) -> Route:
        """Mark the stop complete when its services allow it; otherwise leave the route as is.

        A concurrent write to the same route is retried once against the fresh copy.
        """
        try:
            return self._refresh_once(route_id, stop_id, statuses)
        except Conflict:
            logging.info(f"Route {route_id} changed while completing stop {stop_id}; retrying")
            return self._refresh_once(route_id, stop_id, statuses)

    def _refresh_once(self, route_id: str, stop_id: str, statuses: Mapping[str, ServiceStatus]) -> Route:
        route = self.routes.get_route(route_id)
        stop = route.find_stop(stop_id)
        if stop is None:
            raise NotFound("stop", stop_id)
        if stop.completed or route.status is not RouteStatus.IN_PROGRESS:
            return route
        if not stop_is_satisfied(stop, statuses):
            return route
        logging.info(f"All services at stop {stop_id} of route {route_id} are settled")
        return self._complete_stop(route, stop_id, StopCompletion())

    def complete(self, route_id: str, *, actor_id: str | None = None, force: bool = False) -> Route:
        route = self.routes.get_route(route_id)
        if route.status is not RouteStatus.IN_PROGRESS:
            raise RouteNotInProgress(route_id, route.status.value, RouteStatus.COMPLETED.value)
        open_stops = route.open_stop_ids
        if open_stops and not force:
            raise RouteIncomplete(route_id, open_stops)

        forced = bool(open_stops) and force
        finished = replace(
            route,
            status=RouteStatus.COMPLETED,
            ended_at=self.clock(),
            completion_override=forced,
            completed_by=actor_id,
            version=route.version + 1,
        )
        self.routes.save_route(finished, expected_status=RouteStatus.IN_PROGRESS, expected_version=route.version)

        if forced:
            logging.warning(f"Route {route_id} force-completed by {actor_id} with open stops {open_stops}")
            message = f"Route #{route.route_number} force-completed with {len(open_stops)} open stops"
        else:
            message = f"Route #{route.route_number} completed"
        self.audit.record(
            "route",
            route_id,
            "route.force_complete" if forced else "route.complete",
            message,
            actor_id=actor_id,
            previous_status=route.status.value,
            new_status=finished.status.value,
            forced=forced,
            at=finished.ended_at,
        )
        return finished
