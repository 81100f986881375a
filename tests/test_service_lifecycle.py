from datetime import date, datetime, timezone
from decimal import Decimal

import pytest

from fumy_dispatch.data.directory import StaticAgentDirectory, StaticHotelDirectory
from fumy_dispatch.errors import Conflict, InvalidFieldValue, InvalidTransition, MissingRequiredField, NotFound
from fumy_dispatch.models.domain import Agent, Hotel, Priority, RouteStatus, ServiceStatus
from fumy_dispatch.persistence.repositories import InMemoryRouteRepository, InMemoryServiceRepository
from fumy_dispatch.services.audit import AuditLog
from fumy_dispatch.services.lifecycle import ServiceLifecycleManager, TransitionPayload
from fumy_dispatch.services.routing.lifecycle import RouteLifecycleManager
from fumy_dispatch.services.routing.service import RoutePlanner

ROUTE_DATE = date(2026, 3, 2)
NOW = datetime(2026, 3, 2, 8, 0, tzinfo=timezone.utc)


def _hotels() -> StaticHotelDirectory:
    return StaticHotelDirectory(
        [
            Hotel(hotel_id="H-SUR", name="Hotel Playa", zone="Sur", price_per_kg=Decimal("2.50")),
            Hotel(hotel_id="H-NORTE", name="Hotel Centro", zone="Norte", price_per_kg=Decimal("3.00")),
        ]
    )


def _agents() -> StaticAgentDirectory:
    return StaticAgentDirectory(
        [
            Agent(agent_id="A-SUR", name="Maria", zone="Sur"),
            Agent(agent_id="A-SUR-2", name="Pedro", zone="Sur"),
            Agent(agent_id="A-NORTE", name="Luis", zone="Norte"),
            Agent(agent_id="A-OFF", name="Ana", zone="Sur", active=False),
        ]
    )


class Ids:
    def __init__(self) -> None:
        self.count = 0

    def __call__(self) -> str:
        self.count += 1
        return f"SRV-{self.count:03d}"


@pytest.fixture
def audit() -> AuditLog:
    return AuditLog()


@pytest.fixture
def routes() -> InMemoryRouteRepository:
    return InMemoryRouteRepository()


@pytest.fixture
def services() -> InMemoryServiceRepository:
    return InMemoryServiceRepository()


@pytest.fixture
def manager(services, routes, audit) -> ServiceLifecycleManager:
    route_lifecycle = RouteLifecycleManager(routes, audit=audit, clock=lambda: NOW)
    return ServiceLifecycleManager(
        services,
        _hotels(),
        _agents(),
        route_lifecycle=route_lifecycle,
        audit=audit,
        clock=lambda: NOW,
        id_factory=Ids(),
    )


def _register(manager: ServiceLifecycleManager, bags: int = 3, **kwargs):
    kwargs.setdefault("hotel_id", "H-SUR")
    return manager.register(
        kwargs.pop("hotel_id"),
        "Guest",
        "101",
        bags,
        **kwargs,
    )


def _to_ready(manager: ServiceLifecycleManager, service_id: str) -> None:
    manager.pick_up(service_id, "4.2", actor_id="A-SUR")
    manager.label(service_id, ["bag-1"])
    manager.start_processing(service_id)
    manager.mark_ready(service_id)


def test_register_sets_zone_and_priority(manager: ServiceLifecycleManager):
    service = _register(manager, observations="Huésped sale al aeropuerto")

    assert service.service_id == "SRV-001"
    assert service.zone == "Sur"
    assert service.status is ServiceStatus.PENDING_PICKUP
    assert service.priority is Priority.HIGH
    assert service.pickup_agent_id is None
    assert _register(manager, priority="media").priority is Priority.MEDIUM


@pytest.mark.parametrize(
    "hotel_id, guest, room, bags, error",
    [
        ("H-SUR", "", "101", 1, MissingRequiredField),
        ("H-SUR", "Guest", "", 1, MissingRequiredField),
        ("H-SUR", "Guest", "101", 0, InvalidFieldValue),
        ("GHOST", "Guest", "101", 1, NotFound),
    ],
)
def test_register_validates_required_data(manager, hotel_id, guest, room, bags, error):
    with pytest.raises(error):
        manager.register(hotel_id, guest, room, bags)


def test_register_auto_assigns_agent_by_zone(manager: ServiceLifecycleManager):
    service = _register(manager, hotel_id="H-NORTE", auto_assign=True)

    assert service.pickup_agent_id == "A-NORTE"


def test_unclaimed_service_is_claimable_in_zone(manager: ServiceLifecycleManager):
    service = _register(manager, bags=3)

    assert service.claimable_zone == "Sur"
    assert [s.service_id for s in manager.claimable_services("A-SUR")] == [service.service_id]
    assert [s.service_id for s in manager.claimable_services("A-SUR-2")] == [service.service_id]
    assert manager.claimable_services("A-NORTE") == []

    claimed = manager.claim(service.service_id, "A-SUR")

    assert claimed.pickup_agent_id == "A-SUR"
    assert claimed.status is ServiceStatus.PENDING_PICKUP
    assert claimed.claimable_zone is None
    assert manager.claimable_services("A-SUR-2") == []


def test_claim_rules(manager: ServiceLifecycleManager):
    service = _register(manager)

    with pytest.raises(InvalidFieldValue):
        manager.claim(service.service_id, "A-NORTE")
    with pytest.raises(InvalidFieldValue):
        manager.claim(service.service_id, "A-OFF")

    manager.claim(service.service_id, "A-SUR")
    with pytest.raises(Conflict):
        manager.claim(service.service_id, "A-SUR-2")


def test_pickup_without_weight_fails(manager: ServiceLifecycleManager, services):
    service = _register(manager)

    with pytest.raises(MissingRequiredField) as excinfo:
        manager.transition(service.service_id, ServiceStatus.PICKED_UP, TransitionPayload(actor_id="A-SUR"))

    assert excinfo.value.field == "weight"
    assert services.get_service(service.service_id).status is ServiceStatus.PENDING_PICKUP


def test_pickup_with_negative_weight_fails(manager: ServiceLifecycleManager):
    service = _register(manager)

    with pytest.raises(InvalidFieldValue) as excinfo:
        manager.pick_up(service.service_id, -1)

    assert excinfo.value.field == "weight"


def test_pickup_records_weight_price_and_agent(manager: ServiceLifecycleManager):
    service = _register(manager)

    picked = manager.pick_up(service.service_id, "4.2", actor_id="A-SUR", signature="sig-1")

    assert picked.status is ServiceStatus.PICKED_UP
    assert picked.weight == Decimal("4.2")
    assert picked.price == Decimal("10.50")
    assert picked.picked_up_at == NOW
    assert picked.pickup_agent_id == "A-SUR"
    assert picked.signature == "sig-1"
    assert picked.version == service.version + 1


def test_label_requires_references(manager: ServiceLifecycleManager):
    service = _register(manager)
    manager.pick_up(service.service_id, 1)

    with pytest.raises(MissingRequiredField):
        manager.label(service.service_id, [])


def test_steps_cannot_be_skipped(manager: ServiceLifecycleManager):
    service = _register(manager)

    with pytest.raises(InvalidTransition):
        manager.start_processing(service.service_id)
    with pytest.raises(InvalidTransition):
        manager.deliver(service.service_id, 3)


def test_partial_delivery(manager: ServiceLifecycleManager):
    service = _register(manager, bags=10)
    _to_ready(manager, service.service_id)

    partial = manager.deliver(service.service_id, 6, actor_id="A-SUR")

    assert partial.status is ServiceStatus.PARTIAL_DELIVERY
    assert partial.delivered_bag_count == 6
    assert partial.remaining_bags == 4
    assert partial.delivery_percentage == 60
    assert partial.delivered_at is None


def test_partial_delivery_must_finish_with_remaining_bags(manager: ServiceLifecycleManager):
    service = _register(manager, bags=10)
    _to_ready(manager, service.service_id)
    manager.deliver(service.service_id, 6)

    with pytest.raises(InvalidTransition):
        manager.deliver(service.service_id, 2)
    with pytest.raises(InvalidFieldValue):
        manager.deliver(service.service_id, 5)

    completed = manager.deliver(service.service_id, 4)
    assert completed.status is ServiceStatus.COMPLETED
    assert completed.delivered_bag_count == completed.bag_count == 10
    assert completed.delivery_percentage == 100
    assert completed.delivered_at == NOW


def test_completed_implies_full_delivery(manager: ServiceLifecycleManager):
    service = _register(manager, bags=4)
    _to_ready(manager, service.service_id)

    with pytest.raises(InvalidFieldValue):
        manager.transition(service.service_id, ServiceStatus.COMPLETED, TransitionPayload(delivered_bags=3))

    completed = manager.transition(service.service_id, ServiceStatus.COMPLETED)
    assert completed.delivered_bag_count == 4


def test_reported_percentage_must_match(manager: ServiceLifecycleManager):
    service = _register(manager, bags=3)
    _to_ready(manager, service.service_id)

    with pytest.raises(InvalidFieldValue):
        manager.deliver(service.service_id, 1, delivery_percentage=50)

    assert manager.deliver(service.service_id, 1, delivery_percentage=34).delivery_percentage == 33


def test_delivery_percentage_rounds_halves_up(manager: ServiceLifecycleManager):
    service = _register(manager, bags=8)
    _to_ready(manager, service.service_id)

    assert manager.deliver(service.service_id, 1).delivery_percentage == 13


def test_cancel_requires_reason_and_is_terminal(manager: ServiceLifecycleManager, audit: AuditLog):
    service = _register(manager)

    with pytest.raises(MissingRequiredField):
        manager.cancel(service.service_id, "  ")

    cancelled = manager.cancel(service.service_id, "Guest checked out", actor_id="front-desk")
    assert cancelled.status is ServiceStatus.CANCELLED
    assert cancelled.cancel_reason == "Guest checked out"
    with pytest.raises(InvalidTransition):
        manager.pick_up(service.service_id, 1)

    actions = [entry.action for entry in audit.entries_for(service.service_id)]
    assert actions == ["service.register", "service.cancelled"]


def test_stale_version_is_a_conflict(manager: ServiceLifecycleManager, services):
    service = _register(manager)
    manager.claim(service.service_id, "A-SUR")

    with pytest.raises(Conflict):
        services.save_service(service, expected_status=service.status, expected_version=service.version)


def test_delivery_completes_stop_in_running_route(manager: ServiceLifecycleManager, services, routes):
    service = _register(manager, bags=2, pickup_agent_id="A-SUR")
    _to_ready(manager, service.service_id)

    planner = RoutePlanner(services, routes, _hotels(), _agents(), clock=lambda: NOW)
    route = planner.generate_routes(ROUTE_DATE).routes[0]
    stop_id = route.stops[0].stop_id
    manager.route_lifecycle.start(route.route_id, "A-SUR")

    manager.deliver(service.service_id, 1)
    assert not routes.get_route(route.route_id).find_stop(stop_id).completed

    manager.deliver(service.service_id, 1)
    refreshed = routes.get_route(route.route_id)
    assert refreshed.find_stop(stop_id).completed
    assert refreshed.status is RouteStatus.IN_PROGRESS
    assert manager.route_lifecycle.complete(route.route_id, actor_id="A-SUR").status is RouteStatus.COMPLETED


def test_cancel_after_midnight_closes_stop_of_running_route(services, routes, audit):
    clock = {"now": NOW}
    route_lifecycle = RouteLifecycleManager(routes, audit=audit, clock=lambda: clock["now"])
    manager = ServiceLifecycleManager(
        services,
        _hotels(),
        _agents(),
        route_lifecycle=route_lifecycle,
        audit=audit,
        clock=lambda: clock["now"],
        id_factory=Ids(),
    )
    service = _register(manager, pickup_agent_id="A-SUR")
    route = RoutePlanner(services, routes, _hotels(), _agents(), clock=lambda: NOW).generate_routes(ROUTE_DATE).routes[0]
    route_lifecycle.start(route.route_id, "A-SUR")

    clock["now"] = datetime(2026, 3, 3, 0, 30, tzinfo=timezone.utc)
    manager.cancel(service.service_id, "Guest checked out")

    stop = routes.get_route(route.route_id).stops[0]
    assert stop.completed
    assert stop.completed_at == clock["now"]
