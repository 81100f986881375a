from datetime import date, datetime, time, timedelta, timezone
from decimal import Decimal

import pytest

from fumy_dispatch.data.directory import StaticAgentDirectory, StaticHotelDirectory
from fumy_dispatch.errors import RoutesAlreadyExist
from fumy_dispatch.models.domain import Agent, Hotel, Priority, RouteStatus, Service, ServiceStatus
from fumy_dispatch.services.routing.builder import (
    PlanningConstraints,
    build_routes,
    format_eta_slot,
    make_route_id,
)
from fumy_dispatch.services.routing.models import NoEligibleWork, PlanningStatus

ROUTE_DATE = date(2026, 3, 2)
BASE = datetime(2026, 3, 2, 6, 0, tzinfo=timezone.utc)
NOW = datetime(2026, 3, 2, 7, 30, tzinfo=timezone.utc)
CONSTRAINTS = PlanningConstraints(minutes_per_stop=45, start_time=time(8, 0))


def _service(
    sid: str,
    hotel_id: str,
    *,
    agent_id: str | None = "A7",
    priority: Priority | None = None,
    status: ServiceStatus = ServiceStatus.PENDING_PICKUP,
    minutes: int = 0,
    delivery_agent_id: str | None = None,
) -> Service:
    return Service(
        service_id=sid,
        hotel_id=hotel_id,
        zone="SUR",
        guest_name=f"Guest {sid}",
        room_number="200",
        bag_count=2,
        created_at=BASE + timedelta(minutes=minutes),
        priority=priority,
        status=status,
        pickup_agent_id=agent_id,
        delivery_agent_id=delivery_agent_id,
    )


def _hotels() -> StaticHotelDirectory:
    return StaticHotelDirectory(
        [
            Hotel(hotel_id="HX", name="Hotel X", zone="SUR", price_per_kg=Decimal("3.50")),
            Hotel(hotel_id="HY", name="Hotel Y", zone="SUR", price_per_kg=Decimal("4.00")),
            Hotel(hotel_id="HZ", name="Hotel Z", zone="NORTE"),
        ]
    )


def _agents() -> StaticAgentDirectory:
    return StaticAgentDirectory(
        [
            Agent(agent_id="A7", name="Agent 7", zone="SUR"),
            Agent(agent_id="A8", name="Agent 8", zone="NORTE"),
            Agent(agent_id="A9", name="Retired", zone="SUR", active=False),
        ]
    )


def _build(services, existing_routes=()):
    return build_routes(
        route_date=ROUTE_DATE,
        services=services,
        agents=_agents(),
        hotels=_hotels(),
        existing_routes=existing_routes,
        constraints=CONSTRAINTS,
        now=NOW,
    )


def test_high_priority_hotel_is_visited_first():
    services = [
        _service("X-normal", "HX", priority=Priority.NORMAL, minutes=0),
        _service("Y-medium", "HY", priority=Priority.MEDIUM, minutes=5),
        _service("X-high", "HX", priority=Priority.HIGH, minutes=10),
    ]

    result = _build(services)

    assert result.status is PlanningStatus.PLANNED
    assert len(result.routes) == 1
    route = result.routes[0]
    assert route.agent_id == "A7"
    assert [stop.hotel_id for stop in route.stops] == ["HX", "HY"]
    assert route.stops[0].pickup_service_ids == ("X-high", "X-normal")
    assert route.stops[0].priority is Priority.HIGH
    assert route.stops[1].priority is Priority.MEDIUM


def test_route_synthesis_fields():
    services = [
        _service("S1", "HX", minutes=0),
        _service("S2", "HY", minutes=1),
        _service(
            "S3",
            "HY",
            status=ServiceStatus.READY_FOR_DELIVERY,
            agent_id="A8",
            delivery_agent_id="A7",
            minutes=2,
        ),
    ]

    route = _build(services).routes[0]

    assert route.route_id == make_route_id(ROUTE_DATE, 1) == "R20260302-001"
    assert route.route_number == 1
    assert route.status is RouteStatus.PENDING
    assert route.created_at == NOW
    assert route.estimated_duration_min == 90
    assert route.total_pickups == 2
    assert route.total_deliveries == 1
    assert [stop.eta_slot for stop in route.stops] == ["08:00-08:45", "08:45-09:30"]
    assert route.stops[1].stop_id == "R20260302-001-S02"
    assert route.stops[1].delivery_service_ids == ("S3",)


def test_delivery_falls_back_to_pickup_agent():
    service = _service("S1", "HX", status=ServiceStatus.PARTIAL_DELIVERY, agent_id="A7")

    route = _build([service]).routes[0]

    assert route.agent_id == "A7"
    assert route.stops[0].delivery_service_ids == ("S1",)


def test_ineligible_and_unassigned_services_are_ignored():
    services = [
        _service("pool", "HX", agent_id=None),
        _service("washing", "HX", status=ServiceStatus.IN_PROCESS),
        _service("done", "HX", status=ServiceStatus.CANCELLED),
    ]

    result = _build(services)

    assert result.status is NoEligibleWork
    assert result.no_eligible_work
    assert result.routes == []


def test_unknown_hotel_is_skipped_with_warning():
    services = [_service("orphan", "GHOST"), _service("ok", "HX", minutes=1)]

    result = _build(services)

    assert len(result.routes) == 1
    assert result.routes[0].stops[0].pickup_service_ids == ("ok",)
    assert len(result.warnings) == 1
    warning = result.warnings[0]
    assert warning.service_id == "orphan"
    assert warning.reference == "hotel"
    assert warning.reference_id == "GHOST"


def test_inactive_agent_is_skipped_with_warning():
    result = _build([_service("S1", "HX", agent_id="A9")])

    assert result.no_eligible_work
    assert [warning.reference for warning in result.warnings] == ["agent"]


def test_one_route_per_agent():
    services = [
        _service("S1", "HX", agent_id="A7"),
        _service("S2", "HZ", agent_id="A8", minutes=1),
        _service("S3", "HY", agent_id="A7", minutes=2),
    ]

    routes = _build(services).routes

    assert [(route.route_number, route.agent_id) for route in routes] == [(1, "A7"), (2, "A8")]
    assert [len(route.stops) for route in routes] == [2, 1]


def test_build_is_idempotent_for_same_inputs():
    services = [
        _service("S1", "HX", priority=Priority.NORMAL),
        _service("S2", "HY", priority=Priority.NORMAL),
        _service("S3", "HX", agent_id="A8", minutes=3),
    ]

    first = _build(services)
    second = _build(list(reversed(services)))

    assert first.routes == second.routes


def test_covered_agents_are_skipped_and_numbering_continues():
    existing = _build([_service("S1", "HX")]).routes
    services = [_service("S1", "HX"), _service("S2", "HZ", agent_id="A8", minutes=1)]

    result = _build(services, existing_routes=existing)

    assert result.covered_agents == ["A7"]
    assert [(route.route_number, route.agent_id) for route in result.routes] == [(2, "A8")]


def test_regeneration_without_new_agents_is_a_conflict():
    existing = _build([_service("S1", "HX")]).routes

    with pytest.raises(RoutesAlreadyExist) as excinfo:
        _build([_service("S1", "HX")], existing_routes=existing)

    assert excinfo.value.agent_ids == ["A7"]


def test_completed_routes_do_not_cover_agents():
    from dataclasses import replace

    finished = [replace(route, status=RouteStatus.COMPLETED) for route in _build([_service("S1", "HX")]).routes]

    result = _build([_service("S2", "HY")], existing_routes=finished)

    assert [route.route_number for route in result.routes] == [2]


def test_format_eta_slot():
    assert format_eta_slot(time(8, 0), 0, 45) == "08:00-08:45"
    assert format_eta_slot(time(8, 0), 3, 45) == "10:15-11:00"
