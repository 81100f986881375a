"""Repository contracts for services and routes plus in-memory implementations."""

from __future__ import annotations

import copy
import threading
from dataclasses import dataclass
from datetime import date
from typing import Optional, Protocol

from ..errors import Conflict, NotFound
from ..models.domain import Route, RouteStatus, Service, ServiceStatus


@dataclass(slots=True, frozen=True)
class ServiceFilter:
    """Service query; ``date`` selects services outstanding on that day (created on or before it)."""

    date: Optional[date] = None
    zone: Optional[str] = None
    agent_id: Optional[str] = None
    status: Optional[ServiceStatus] = None

    def matches(self, service: Service) -> bool:
        if self.date is not None and service.created_at.date() > self.date:
            return False
        if self.zone is not None and service.zone != self.zone:
            return False
        if self.agent_id is not None and self.agent_id not in (service.pickup_agent_id, service.delivery_agent_id):
            return False
        if self.status is not None and service.status is not self.status:
            return False
        return True


@dataclass(slots=True, frozen=True)
class RouteFilter:
    """Route query; ``service_id`` keeps routes with a stop holding that service."""

    date: Optional[date] = None
    agent_id: Optional[str] = None
    status: Optional[RouteStatus] = None
    service_id: Optional[str] = None

    def matches(self, route: Route) -> bool:
        if self.date is not None and route.route_date != self.date:
            return False
        if self.agent_id is not None and route.agent_id != self.agent_id:
            return False
        if self.status is not None and route.status is not self.status:
            return False
        if self.service_id is not None and route.stop_for_service(self.service_id) is None:
            return False
        return True


def route_order(route: Route) -> tuple[date, int]:
    return route.route_date, route.route_number


class ServiceRepository(Protocol):
    def list_services(self, query: ServiceFilter) -> list[Service]: ...

    def get_service(self, service_id: str) -> Service: ...

    def save_service(
        self,
        service: Service,
        *,
        expected_status: ServiceStatus | None = None,
        expected_version: int | None = None,
    ) -> None: ...


class RouteRepository(Protocol):
    def list_routes(self, query: RouteFilter) -> list[Route]: ...

    def get_route(self, route_id: str) -> Route: ...

    def create_route(self, route: Route) -> None: ...

    def save_route(
        self,
        route: Route,
        *,
        expected_status: RouteStatus | None = None,
        expected_version: int | None = None,
    ) -> None: ...

    def delete_routes(self, route_date: date) -> int: ...


class InMemoryServiceRepository:
    """Thread-safe store keyed by service id; hands out copies only."""

    def __init__(self, services: list[Service] | None = None) -> None:
        self._lock = threading.Lock()
        self._services: dict[str, Service] = {}
        for service in services or []:
            self._services[service.service_id] = copy.deepcopy(service)

    def list_services(self, query: ServiceFilter) -> list[Service]:
        with self._lock:
            matches = [service for service in self._services.values() if query.matches(service)]
            return [copy.deepcopy(service) for service in matches]

    def get_service(self, service_id: str) -> Service:
        with self._lock:
            service = self._services.get(service_id)
            if service is None:
                raise NotFound("service", service_id)
            return copy.deepcopy(service)

    def save_service(
        self,
        service: Service,
        *,
        expected_status: ServiceStatus | None = None,
        expected_version: int | None = None,
    ) -> None:
        with self._lock:
            current = self._services.get(service.service_id)
            if expected_status is not None or expected_version is not None:
                if current is None:
                    raise NotFound("service", service.service_id)
                if expected_status is not None and current.status is not expected_status:
                    raise Conflict(
                        "service",
                        service.service_id,
                        f"expected status {expected_status.value}, found {current.status.value}",
                    )
                if expected_version is not None and current.version != expected_version:
                    raise Conflict(
                        "service",
                        service.service_id,
                        f"expected version {expected_version}, found {current.version}",
                    )
            self._services[service.service_id] = copy.deepcopy(service)


class InMemoryRouteRepository:
    def __init__(self, routes: list[Route] | None = None) -> None:
        self._lock = threading.Lock()
        self._routes: dict[str, Route] = {}
        for route in routes or []:
            self._routes[route.route_id] = copy.deepcopy(route)

    def list_routes(self, query: RouteFilter) -> list[Route]:
        with self._lock:
            matches = [route for route in self._routes.values() if query.matches(route)]
            matches.sort(key=route_order)
            return [copy.deepcopy(route) for route in matches]

    def get_route(self, route_id: str) -> Route:
        with self._lock:
            route = self._routes.get(route_id)
            if route is None:
                raise NotFound("route", route_id)
            return copy.deepcopy(route)

    def create_route(self, route: Route) -> None:
        with self._lock:
            if route.route_id in self._routes:
                raise Conflict("route", route.route_id, "a route with this id already exists")
            self._routes[route.route_id] = copy.deepcopy(route)

    def save_route(
        self,
        route: Route,
        *,
        expected_status: RouteStatus | None = None,
        expected_version: int | None = None,
    ) -> None:
        with self._lock:
            if expected_status is not None or expected_version is not None:
                current = self._routes.get(route.route_id)
                if current is None:
                    raise NotFound("route", route.route_id)
                if expected_status is not None and current.status is not expected_status:
                    raise Conflict(
                        "route",
                        route.route_id,
                        f"expected status {expected_status.value}, found {current.status.value}",
                    )
                if expected_version is not None and current.version != expected_version:
                    raise Conflict(
                        "route",
                        route.route_id,
                        f"expected version {expected_version}, found {current.version}",
                    )
            self._routes[route.route_id] = copy.deepcopy(route)

    def delete_routes(self, route_date: date) -> int:
        with self._lock:
            doomed = [route_id for route_id, route in self._routes.items() if route.route_date == route_date]
            for route_id in doomed:
                del self._routes[route_id]
            return len(doomed)
