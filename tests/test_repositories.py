import threading
from dataclasses import replace
from datetime import date, datetime, timezone

import pytest

from fumy_dispatch.errors import Conflict, NotFound
from fumy_dispatch.models.domain import Route, RouteStatus, Service, ServiceStatus, Stop
from fumy_dispatch.persistence.repositories import (
    InMemoryRouteRepository,
    InMemoryServiceRepository,
    RouteFilter,
    ServiceFilter,
)


def _service(sid: str = "S1", created: datetime | None = None, zone: str = "Sur") -> Service:
    return Service(
        service_id=sid,
        hotel_id="H1",
        zone=zone,
        guest_name="Guest",
        room_number="12",
        bag_count=2,
        created_at=created or datetime(2026, 3, 2, 7, 0, tzinfo=timezone.utc),
    )


def _route(route_id: str, number: int, route_date: date = date(2026, 3, 2), agent_id: str = "A1") -> Route:
    return Route(
        route_id=route_id,
        route_number=number,
        route_date=route_date,
        agent_id=agent_id,
        agent_name="Agent",
        stops=(),
        created_at=datetime(2026, 3, 2, 7, 0, tzinfo=timezone.utc),
    )


def test_concurrent_saves_with_same_expectation_only_one_wins():
    repository = InMemoryServiceRepository([_service()])
    original = repository.get_service("S1")
    barrier = threading.Barrier(8)
    outcomes: list[str] = []
    lock = threading.Lock()

    def attempt(agent_id: str) -> None:
        claimed = replace(original, pickup_agent_id=agent_id, version=original.version + 1)
        barrier.wait()
        try:
            repository.save_service(claimed, expected_status=original.status, expected_version=original.version)
            result = "ok"
        except Conflict:
            result = "conflict"
        with lock:
            outcomes.append(result)

    threads = [threading.Thread(target=attempt, args=(f"A{i}",)) for i in range(8)]
    for thread in threads:
        thread.start()
    for thread in threads:
        thread.join()

    assert outcomes.count("ok") == 1
    assert outcomes.count("conflict") == 7
    assert repository.get_service("S1").version == 2


def test_status_expectation_is_checked():
    repository = InMemoryServiceRepository([_service()])
    stored = repository.get_service("S1")

    with pytest.raises(Conflict):
        repository.save_service(stored, expected_status=ServiceStatus.PICKED_UP)


def test_repository_hands_out_copies():
    repository = InMemoryServiceRepository([_service()])

    copy = repository.get_service("S1")
    copy.guest_name = "Changed"

    assert repository.get_service("S1").guest_name == "Guest"


def test_missing_service():
    repository = InMemoryServiceRepository()

    with pytest.raises(NotFound):
        repository.get_service("nope")
    with pytest.raises(NotFound):
        repository.save_service(_service(), expected_version=1)


def test_service_filter_selects_outstanding_services():
    repository = InMemoryServiceRepository(
        [
            _service("old", datetime(2026, 3, 1, 9, 0, tzinfo=timezone.utc)),
            _service("today", datetime(2026, 3, 2, 9, 0, tzinfo=timezone.utc)),
            _service("tomorrow", datetime(2026, 3, 3, 9, 0, tzinfo=timezone.utc)),
            _service("north", datetime(2026, 3, 2, 9, 0, tzinfo=timezone.utc), zone="Norte"),
        ]
    )

    selected = repository.list_services(ServiceFilter(date=date(2026, 3, 2), zone="Sur"))

    assert sorted(service.service_id for service in selected) == ["old", "today"]


def test_route_repository_lists_by_number_and_deletes_by_date():
    repository = InMemoryRouteRepository(
        [
            _route("R-2", 2),
            _route("R-1", 1, agent_id="A2"),
            _route("R-other", 1, route_date=date(2026, 3, 3)),
        ]
    )

    listed = repository.list_routes(RouteFilter(date=date(2026, 3, 2)))
    assert [route.route_id for route in listed] == ["R-1", "R-2"]
    assert [r.route_id for r in repository.list_routes(RouteFilter(date=date(2026, 3, 2), agent_id="A2"))] == ["R-1"]

    assert repository.delete_routes(date(2026, 3, 2)) == 2
    assert repository.list_routes(RouteFilter(date=date(2026, 3, 2))) == []
    assert repository.get_route("R-other").route_number == 1


def test_route_save_checks_expected_status():
    repository = InMemoryRouteRepository([_route("R-1", 1)])
    started = replace(repository.get_route("R-1"), status=RouteStatus.IN_PROGRESS)

    repository.save_route(started, expected_status=RouteStatus.PENDING)

    with pytest.raises(Conflict):
        repository.save_route(started, expected_status=RouteStatus.PENDING)


def test_route_save_checks_expected_version():
    repository = InMemoryRouteRepository([_route("R-1", 1)])
    stored = repository.get_route("R-1")
    repository.save_route(replace(stored, agent_name="First", version=2), expected_version=1)

    with pytest.raises(Conflict):
        repository.save_route(replace(stored, agent_name="Second", version=2), expected_version=1)
    assert repository.get_route("R-1").agent_name == "First"


def test_create_route_refuses_a_taken_id():
    repository = InMemoryRouteRepository()
    repository.create_route(_route("R-1", 1))

    with pytest.raises(Conflict):
        repository.create_route(_route("R-1", 1, agent_id="A2"))
    assert repository.get_route("R-1").agent_id == "A1"


def test_route_filter_by_service_spans_dates():
    holding = replace(
        _route("R-old", 1, route_date=date(2026, 3, 1)),
        stops=(Stop(stop_id="R-old-S01", hotel_id="H1", hotel_name="Hotel", pickup_service_ids=("S9",)),),
        status=RouteStatus.IN_PROGRESS,
    )
    repository = InMemoryRouteRepository([holding, _route("R-new", 1)])

    found = repository.list_routes(RouteFilter(status=RouteStatus.IN_PROGRESS, service_id="S9"))

    assert [route.route_id for route in found] == ["R-old"]
    assert repository.list_routes(RouteFilter(service_id="S404")) == []
