"""Route builder: groups claimed services into per-agent, multi-stop routes."""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from datetime import date, datetime, time
from typing import Iterable, Optional, Sequence

from ...config import settings
from ...data.directory import AgentDirectory, HotelDirectory
from ...errors import NotFound, RoutesAlreadyExist
from ...models.domain import Agent, Hotel, Route, Service, ServiceStatus, Stop, utcnow
from ..priority.ranker import rank_services, stop_priority
from .models import DataIntegrityWarning, PlanningStatus, RoutePlanningResult

DELIVERY_STATUSES = frozenset({ServiceStatus.READY_FOR_DELIVERY, ServiceStatus.PARTIAL_DELIVERY})


@dataclass(slots=True)
class PlanningConstraints:
    minutes_per_stop: int = settings.minutes_per_stop
    start_time: time = settings.route_start_time


@dataclass(slots=True)
class _StopDraft:
    hotel: Hotel
    pickups: list[Service] = field(default_factory=list)
    deliveries: list[Service] = field(default_factory=list)


def is_pickup_candidate(service: Service) -> bool:
    return service.status is ServiceStatus.PENDING_PICKUP


def is_delivery_candidate(service: Service) -> bool:
    if service.status in DELIVERY_STATUSES:
        return True
    return service.status is ServiceStatus.COMPLETED and service.delivered_at is None


def resolve_agent_id(service: Service) -> Optional[str]:
    """Agent that owns the next leg of the service, None while it sits in the zone pool."""
    if is_pickup_candidate(service):
        return service.pickup_agent_id
    if is_delivery_candidate(service):
        return service.delivery_agent_id or service.pickup_agent_id
    return None


def make_route_id(route_date: date, route_number: int) -> str:
    return f"R{route_date:%Y%m%d}-{route_number:03d}"


def format_eta_slot(start: time, index: int, minutes_per_stop: int) -> str:
    begin = start.hour * 60 + start.minute + index * minutes_per_stop
    end = begin + minutes_per_stop

    def _clock(minutes: int) -> str:
        minutes %= 24 * 60
        return f"{minutes // 60:02d}:{minutes % 60:02d}"

    return f"{_clock(begin)}-{_clock(end)}"


def _skip(warnings: list[DataIntegrityWarning], service: Service, reference: str, reference_id: str | None, message: str) -> None:
    logging.warning(f"Skipping service {service.service_id} while planning: {message}")
    warnings.append(
        DataIntegrityWarning(
            service_id=service.service_id,
            reference=reference,
            reference_id=reference_id,
            message=message,
        )
    )


def _group_services(
    services: Iterable[Service],
    agents: dict[str, Agent],
    hotels: HotelDirectory,
    warnings: list[DataIntegrityWarning],
) -> dict[str, dict[str, _StopDraft]]:
    candidates = sorted(
        (service for service in services if is_pickup_candidate(service) or is_delivery_candidate(service)),
        key=lambda service: (service.created_at, service.service_id),
    )

    grouped: dict[str, dict[str, _StopDraft]] = {}
    for service in candidates:
        agent_id = resolve_agent_id(service)
        if agent_id is None:
            continue
        try:
            hotel = hotels.get_hotel(service.hotel_id)
        except NotFound:
            _skip(warnings, service, "hotel", service.hotel_id, f"hotel '{service.hotel_id}' does not exist")
            continue
        if agent_id not in agents:
            _skip(warnings, service, "agent", agent_id, f"agent '{agent_id}' is not an active agent")
            continue

        stops = grouped.setdefault(agent_id, {})
        draft = stops.get(hotel.hotel_id)
        if draft is None:
            draft = stops[hotel.hotel_id] = _StopDraft(hotel=hotel)
        if is_pickup_candidate(service):
            draft.pickups.append(service)
        else:
            draft.deliveries.append(service)
    return grouped


def _synthesize_route(
    *,
    route_date: date,
    route_number: int,
    agent_id: str,
    agent_name: str,
    drafts: Sequence[_StopDraft],
    constraints: PlanningConstraints,
    created_at: datetime,
) -> Route:
    route_id = make_route_id(route_date, route_number)
    # sorted() is stable: equal priorities keep first-encounter order.
    ordered = sorted(drafts, key=lambda draft: -stop_priority(draft.pickups + draft.deliveries).rank)

    stops: list[Stop] = []
    for index, draft in enumerate(ordered):
        stops.append(
            Stop(
                stop_id=f"{route_id}-S{index + 1:02d}",
                hotel_id=draft.hotel.hotel_id,
                hotel_name=draft.hotel.name,
                pickup_service_ids=tuple(service.service_id for service in rank_services(draft.pickups)),
                delivery_service_ids=tuple(service.service_id for service in rank_services(draft.deliveries)),
                priority=stop_priority(draft.pickups + draft.deliveries),
                eta_slot=format_eta_slot(constraints.start_time, index, constraints.minutes_per_stop),
            )
        )

    return Route(
        route_id=route_id,
        route_number=route_number,
        route_date=route_date,
        agent_id=agent_id,
        agent_name=agent_name,
        stops=tuple(stops),
        created_at=created_at,
        estimated_duration_min=len(stops) * constraints.minutes_per_stop,
        total_pickups=sum(len(stop.pickup_service_ids) for stop in stops),
        total_deliveries=sum(len(stop.delivery_service_ids) for stop in stops),
    )


def build_routes(
    *,
    route_date: date,
    services: Iterable[Service],
    agents: AgentDirectory,
    hotels: HotelDirectory,
    existing_routes: Sequence[Route] = (),
    constraints: PlanningConstraints | None = None,
    now: datetime | None = None,
) -> RoutePlanningResult:
    """Plan one route per agent with assigned work for ``route_date``.

    Services whose hotel or agent does not resolve are skipped and reported
    as warnings. Agents that already hold a PENDING or IN_PROGRESS route for
    the date are left untouched; when that leaves nothing to create,
    ``RoutesAlreadyExist`` is raised so the caller can clear the date first.
    """
    constraints = constraints or PlanningConstraints()
    created_at = now or utcnow()
    warnings: list[DataIntegrityWarning] = []

    active_agents = {agent.agent_id: agent for agent in agents.list_active_agents()}
    grouped = _group_services(services, active_agents, hotels, warnings)

    if not grouped:
        logging.info(f"No eligible work to plan for {route_date.isoformat()}")
        return RoutePlanningResult(route_date=route_date, status=PlanningStatus.NO_ELIGIBLE_WORK, warnings=warnings)

    covered_agents = {route.agent_id for route in existing_routes if route.status.is_active}
    next_number = max((route.route_number for route in existing_routes), default=0) + 1

    routes: list[Route] = []
    skipped_agents: list[str] = []
    for agent_id, stops in grouped.items():
        if agent_id in covered_agents:
            skipped_agents.append(agent_id)
            continue
        route = _synthesize_route(
            route_date=route_date,
            route_number=next_number,
            agent_id=agent_id,
            agent_name=active_agents[agent_id].name,
            drafts=list(stops.values()),
            constraints=constraints,
            created_at=created_at,
        )
        routes.append(route)
        next_number += 1

    if not routes:
        raise RoutesAlreadyExist(route_date.isoformat(), skipped_agents)

    logging.info(
        f"Planned {len(routes)} routes for {route_date.isoformat()}: "
        f"{sum(r.total_pickups for r in routes)} pickups, {sum(r.total_deliveries for r in routes)} deliveries"
    )
    if skipped_agents:
        logging.warning(f"Agents already holding active routes on {route_date.isoformat()}: {skipped_agents}")

    return RoutePlanningResult(
        route_date=route_date,
        status=PlanningStatus.PLANNED,
        routes=routes,
        warnings=warnings,
        covered_agents=skipped_agents,
    )
