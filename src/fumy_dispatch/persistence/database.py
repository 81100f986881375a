"""Supabase-backed repositories and directories."""

from __future__ import annotations

import logging
from datetime import date, timedelta
from typing import Any, Optional

from postgrest.exceptions import APIError

from ..db.supabase import AGENTS_TABLE, HOTELS_TABLE, ROUTES_TABLE, SERVICES_TABLE, get_supabase_client
from ..data.directory import agent_from_row, hotel_from_row
from ..errors import Conflict, NotFound
from ..models.domain import Agent, Hotel, Route, RouteStatus, Service, ServiceStatus
from ..schemas.routing import RouteModel
from ..schemas.services import ServiceRecord
from .repositories import RouteFilter, ServiceFilter, route_order

DELETE_BATCH_SIZE = 100
UNIQUE_VIOLATION = "23505"


def _require_client(client: Any) -> Any:
    client = client or get_supabase_client()
    if client is None:
        raise RuntimeError("Supabase is not configured; set FUMY_SUPABASE_URL and FUMY_SUPABASE_KEY.")
    return client


def _execute(query: Any, action: str) -> list[dict[str, Any]]:
    try:
        response = query.execute()
    except Exception as e:
        logging.error(f"Supabase request failed while trying to {action}: {e}")
        raise
    return response.data or []


def _service_row(service: Service) -> dict[str, Any]:
    return ServiceRecord.from_domain(service).model_dump(mode="json")


def _route_row(route: Route) -> dict[str, Any]:
    return RouteModel.from_domain(route).model_dump(mode="json")


class SupabaseServiceRepository:
    def __init__(self, client: Any = None) -> None:
        self.client = _require_client(client)

    def list_services(self, query: ServiceFilter) -> list[Service]:
        request = self.client.table(SERVICES_TABLE).select("*")
        if query.zone is not None:
            request = request.eq("zone", query.zone)
        if query.status is not None:
            request = request.eq("status", query.status.value)
        if query.date is not None:
            request = request.lt("created_at", (query.date + timedelta(days=1)).isoformat())
        rows = _execute(request.order("created_at"), "list services")
        services = [ServiceRecord.model_validate(row).to_domain() for row in rows]
        return [service for service in services if query.matches(service)]

    def get_service(self, service_id: str) -> Service:
        rows = _execute(
            self.client.table(SERVICES_TABLE).select("*").eq("service_id", service_id).limit(1),
            f"load service {service_id}",
        )
        if not rows:
            raise NotFound("service", service_id)
        return ServiceRecord.model_validate(rows[0]).to_domain()

    def save_service(
        self,
        service: Service,
        *,
        expected_status: ServiceStatus | None = None,
        expected_version: int | None = None,
    ) -> None:
        row = _service_row(service)
        if expected_status is None and expected_version is None:
            _execute(self.client.table(SERVICES_TABLE).upsert(row), f"save service {service.service_id}")
            return

        # Compare-and-set: the filtered update touches no row when the stored state moved on.
        request = self.client.table(SERVICES_TABLE).update(row).eq("service_id", service.service_id)
        if expected_status is not None:
            request = request.eq("status", expected_status.value)
        if expected_version is not None:
            request = request.eq("version", expected_version)
        if _execute(request, f"update service {service.service_id}"):
            return

        current = self.get_service(service.service_id)
        raise Conflict(
            "service",
            service.service_id,
            f"stored state is {current.status.value} v{current.version}, "
            f"expected {expected_status.value if expected_status else 'any'} v{expected_version}",
        )


class SupabaseRouteRepository:
    def __init__(self, client: Any = None) -> None:
        self.client = _require_client(client)

    def list_routes(self, query: RouteFilter) -> list[Route]:
        request = self.client.table(ROUTES_TABLE).select("*")
        if query.date is not None:
            request = request.eq("route_date", query.date.isoformat())
        if query.agent_id is not None:
            request = request.eq("agent_id", query.agent_id)
        if query.status is not None:
            request = request.eq("status", query.status.value)
        rows = _execute(request.order("route_number"), "list routes")
        routes = [RouteModel.model_validate(row).to_domain() for row in rows]
        # Stops are stored as JSON; the service filter runs here.
        return sorted((route for route in routes if query.matches(route)), key=route_order)

    def get_route(self, route_id: str) -> Route:
        rows = _execute(
            self.client.table(ROUTES_TABLE).select("*").eq("route_id", route_id).limit(1),
            f"load route {route_id}",
        )
        if not rows:
            raise NotFound("route", route_id)
        return RouteModel.model_validate(rows[0]).to_domain()

    def create_route(self, route: Route) -> None:
        """Insert a new route; a taken route id means another build for the date got there first."""
        try:
            _execute(self.client.table(ROUTES_TABLE).insert(_route_row(route)), f"create route {route.route_id}")
        except APIError as e:
            if e.code == UNIQUE_VIOLATION:
                raise Conflict("route", route.route_id, "a route with this id already exists") from e
            raise

    def save_route(
        self,
        route: Route,
        *,
        expected_status: RouteStatus | None = None,
        expected_version: int | None = None,
    ) -> None:
        row = _route_row(route)
        if expected_status is None and expected_version is None:
            _execute(self.client.table(ROUTES_TABLE).upsert(row), f"save route {route.route_id}")
            return

        request = self.client.table(ROUTES_TABLE).update(row).eq("route_id", route.route_id)
        if expected_status is not None:
            request = request.eq("status", expected_status.value)
        if expected_version is not None:
            request = request.eq("version", expected_version)
        if _execute(request, f"update route {route.route_id}"):
            return
        current = self.get_route(route.route_id)
        raise Conflict(
            "route",
            route.route_id,
            f"stored state is {current.status.value} v{current.version}, "
            f"expected {expected_status.value if expected_status else 'any'} v{expected_version}",
        )

    def delete_routes(self, route_date: date) -> int:
        rows = _execute(
            self.client.table(ROUTES_TABLE).select("route_id").eq("route_date", route_date.isoformat()),
            f"list routes to clear for {route_date.isoformat()}",
        )
        route_ids = [row["route_id"] for row in rows]
        for start in range(0, len(route_ids), DELETE_BATCH_SIZE):
            batch = route_ids[start : start + DELETE_BATCH_SIZE]
            _execute(self.client.table(ROUTES_TABLE).delete().in_("route_id", batch), "delete routes")
        logging.info(f"Deleted {len(route_ids)} routes for {route_date.isoformat()} from database")
        return len(route_ids)


class SupabaseHotelDirectory:
    def __init__(self, client: Any = None) -> None:
        self.client = _require_client(client)

    def get_hotel(self, hotel_id: str) -> Hotel:
        rows = _execute(self.client.table(HOTELS_TABLE).select("*").eq("id", hotel_id).limit(1), f"load hotel {hotel_id}")
        hotel = hotel_from_row(rows[0]) if rows else None
        if hotel is None:
            raise NotFound("hotel", hotel_id)
        return hotel


class SupabaseAgentDirectory:
    def __init__(self, client: Any = None) -> None:
        self.client = _require_client(client)

    def list_active_agents(self, zone: str | None = None) -> list[Agent]:
        request = self.client.table(AGENTS_TABLE).select("*").eq("role", "repartidor")
        if zone is not None:
            request = request.eq("zone", zone)
        rows = _execute(request.order("name"), "list agents")
        agents = (agent_from_row(row) for row in rows)
        return [agent for agent in agents if agent is not None and agent.active]

    def get_agent(self, agent_id: str) -> Agent:
        rows = _execute(self.client.table(AGENTS_TABLE).select("*").eq("id", agent_id).limit(1), f"load agent {agent_id}")
        agent: Optional[Agent] = agent_from_row(rows[0]) if rows else None
        if agent is None:
            raise NotFound("agent", agent_id)
        return agent
