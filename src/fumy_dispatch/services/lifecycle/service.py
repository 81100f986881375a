"""Service lifecycle orchestration: registration, claiming and guarded transitions."""

from __future__ import annotations

import logging
import uuid
from dataclasses import replace
from datetime import datetime
from typing import Callable, Optional, Sequence

from ...config import settings
from ...data.directory import AgentDirectory, HotelDirectory, suggest_agent
from ...errors import Conflict, InvalidFieldValue, InvalidTransition, MissingRequiredField, NotFound
from ...models.domain import Agent, Priority, Service, ServiceStatus, utcnow
from ...persistence.repositories import ServiceFilter, ServiceRepository
from ..audit import AuditEntry, AuditLog
from ..priority.classifier import classify_priority
from ..priority.ranker import rank_services
from ..routing.lifecycle import RouteLifecycleManager
from .rules import TransitionPayload, apply_transition


def new_service_id() -> str:
    return f"SRV-{uuid.uuid4().hex[:10].upper()}"


class ServiceLifecycleManager:
    """Owns every write to a service record.

    Each write reads the current record, builds the next state on a copy and
    stores it with a compare-and-set on status and version. When a route
    lifecycle manager is attached, the stop holding the service inside an
    IN_PROGRESS route is re-evaluated after each transition.
    """

    def __init__(
        self,
        services: ServiceRepository,
        hotels: HotelDirectory,
        agents: AgentDirectory,
        *,
        route_lifecycle: RouteLifecycleManager | None = None,
        audit: AuditLog | None = None,
        clock: Callable[[], datetime] = utcnow,
        tolerance: int = settings.delivery_percentage_tolerance,
        id_factory: Callable[[], str] = new_service_id,
    ) -> None:
        self.services = services
        self.hotels = hotels
        self.agents = agents
        self.route_lifecycle = route_lifecycle
        self.audit = audit or (route_lifecycle.audit if route_lifecycle else AuditLog())
        self.clock = clock
        self.tolerance = tolerance
        self.id_factory = id_factory

    # ------------------------------------------------------------------ reads

    def get_service(self, service_id: str) -> Service:
        return self.services.get_service(service_id)

    def list_services(self, query: ServiceFilter | None = None) -> list[Service]:
        return self.services.list_services(query or ServiceFilter())

    def claimable_services(self, agent_id: str) -> list[Service]:
        """Unclaimed pickups in the agent's zone, most urgent first."""
        agent = self.agents.get_agent(agent_id)
        pool = self.services.list_services(ServiceFilter(zone=agent.zone, status=ServiceStatus.PENDING_PICKUP))
        return rank_services(service for service in pool if service.is_claimable_by(agent))

    def audit_trail(self, service_id: str) -> list[AuditEntry]:
        self.services.get_service(service_id)
        return self.audit.entries_for(service_id)

    # ----------------------------------------------------------- registration

    def register(
        self,
        hotel_id: str,
        guest_name: str,
        room_number: str,
        bag_count: int,
        *,
        priority: Priority | str | None = None,
        observations: str = "",
        pickup_agent_id: str | None = None,
        auto_assign: bool = False,
        service_id: str | None = None,
        actor_id: str | None = None,
    ) -> Service:
        if not hotel_id:
            raise MissingRequiredField("hotel_id", ServiceStatus.PENDING_PICKUP.value)
        hotel = self.hotels.get_hotel(hotel_id)
        if not guest_name or not guest_name.strip():
            raise MissingRequiredField("guest_name", ServiceStatus.PENDING_PICKUP.value)
        if not room_number or not str(room_number).strip():
            raise MissingRequiredField("room_number", ServiceStatus.PENDING_PICKUP.value)
        if bag_count is None:
            raise MissingRequiredField("bag_count", ServiceStatus.PENDING_PICKUP.value)
        if bag_count < 1:
            raise InvalidFieldValue("bag_count", "at least one bag is required")

        try:
            resolved_priority = Priority.parse(priority)
        except ValueError as exc:
            raise InvalidFieldValue("priority", str(exc)) from exc
        if resolved_priority is None:
            resolved_priority = classify_priority(observations)

        if pickup_agent_id is not None:
            self._require_active_agent(pickup_agent_id)
        elif auto_assign:
            suggested = suggest_agent(hotel, self.agents.list_active_agents())
            if suggested is None:
                logging.warning(f"No active agent available for hotel {hotel.hotel_id}; service left in zone pool")
            else:
                pickup_agent_id = suggested.agent_id

        now = self.clock()
        service = Service(
            service_id=service_id or self.id_factory(),
            hotel_id=hotel.hotel_id,
            zone=hotel.zone,
            guest_name=guest_name.strip(),
            room_number=str(room_number).strip(),
            bag_count=bag_count,
            created_at=now,
            priority=resolved_priority,
            observations=observations or "",
            pickup_agent_id=pickup_agent_id,
            updated_at=now,
        )
        self.services.save_service(service)
        logging.info(
            f"Registered service {service.service_id} for {hotel.name} room {service.room_number} "
            f"({service.bag_count} bags, {resolved_priority.value})"
        )
        self.audit.record(
            "service",
            service.service_id,
            "service.register",
            f"Service registered for {service.guest_name}, room {service.room_number}",
            actor_id=actor_id,
            new_status=service.status.value,
            at=now,
        )
        return service

    # ------------------------------------------------------------- assignment

    def claim(self, service_id: str, agent_id: str) -> Service:
        """Take an unclaimed pickup out of the zone pool."""
        agent = self._require_active_agent(agent_id)
        service = self.services.get_service(service_id)
        if service.pickup_agent_id is not None:
            raise Conflict("service", service_id, f"already claimed by agent '{service.pickup_agent_id}'")
        if service.status is not ServiceStatus.PENDING_PICKUP:
            raise InvalidTransition(
                "service", service_id, service.status.value, service.status.value, "Only pending pickups can be claimed."
            )
        if not service.is_claimable_by(agent):
            raise InvalidFieldValue("agent_id", f"agent zone '{agent.zone}' does not serve zone '{service.zone}'")

        now = self.clock()
        claimed = replace(service, pickup_agent_id=agent.agent_id, updated_at=now, version=service.version + 1)
        self.services.save_service(claimed, expected_status=service.status, expected_version=service.version)
        self.audit.record(
            "service",
            service_id,
            "service.claim",
            f"Claimed by {agent.name}",
            actor_id=agent.agent_id,
            at=now,
        )
        return claimed

    def assign_delivery_agent(self, service_id: str, agent_id: str, *, actor_id: str | None = None) -> Service:
        agent = self._require_active_agent(agent_id)
        service = self.services.get_service(service_id)
        if service.status.is_terminal:
            raise InvalidTransition(
                "service", service_id, service.status.value, service.status.value, "Service is closed."
            )

        now = self.clock()
        updated = replace(service, delivery_agent_id=agent.agent_id, updated_at=now, version=service.version + 1)
        self.services.save_service(updated, expected_status=service.status, expected_version=service.version)
        self.audit.record(
            "service",
            service_id,
            "service.assign_delivery",
            f"Delivery assigned to {agent.name}",
            actor_id=actor_id,
            at=now,
        )
        return updated

    # ------------------------------------------------------------ transitions

    def transition(
        self,
        service_id: str,
        target: ServiceStatus,
        payload: TransitionPayload | None = None,
    ) -> Service:
        payload = payload or TransitionPayload()
        service = self.services.get_service(service_id)
        hotel = self.hotels.get_hotel(service.hotel_id) if target is ServiceStatus.PICKED_UP else None

        updated = apply_transition(service, target, payload, now=self.clock(), hotel=hotel, tolerance=self.tolerance)
        self.services.save_service(updated, expected_status=service.status, expected_version=service.version)

        logging.info(f"Service {service_id}: {service.status.value} -> {updated.status.value}")
        self.audit.record(
            "service",
            service_id,
            f"service.{target.value.lower()}",
            self._describe(updated),
            actor_id=payload.actor_id,
            previous_status=service.status.value,
            new_status=updated.status.value,
            at=updated.updated_at,
        )
        self._refresh_route_stops(updated)
        return updated

    def pick_up(
        self,
        service_id: str,
        weight,
        *,
        actor_id: str | None = None,
        picked_up_at: datetime | None = None,
        signature: str | None = None,
    ) -> Service:
        payload = TransitionPayload(actor_id=actor_id, at=picked_up_at, weight=weight, signature=signature)
        return self.transition(service_id, ServiceStatus.PICKED_UP, payload)

    def label(self, service_id: str, label_refs: Sequence[str], *, actor_id: str | None = None) -> Service:
        payload = TransitionPayload(actor_id=actor_id, label_refs=tuple(label_refs))
        return self.transition(service_id, ServiceStatus.LABELED, payload)

    def start_processing(self, service_id: str, *, actor_id: str | None = None) -> Service:
        return self.transition(service_id, ServiceStatus.IN_PROCESS, TransitionPayload(actor_id=actor_id))

    def mark_ready(self, service_id: str, *, actor_id: str | None = None) -> Service:
        return self.transition(service_id, ServiceStatus.READY_FOR_DELIVERY, TransitionPayload(actor_id=actor_id))

    def deliver(
        self,
        service_id: str,
        delivered_bags: int,
        *,
        actor_id: str | None = None,
        delivery_percentage: int | None = None,
        delivered_at: datetime | None = None,
    ) -> Service:
        """Record a delivery event; completes the service once every bag is back."""
        service = self.services.get_service(service_id)
        total = (service.delivered_bag_count or 0) + delivered_bags
        target = ServiceStatus.COMPLETED if total >= service.bag_count else ServiceStatus.PARTIAL_DELIVERY
        payload = TransitionPayload(
            actor_id=actor_id,
            at=delivered_at,
            delivered_bags=delivered_bags,
            delivery_percentage=delivery_percentage,
        )
        return self.transition(service_id, target, payload)

    def cancel(self, service_id: str, reason: str, *, actor_id: str | None = None) -> Service:
        return self.transition(service_id, ServiceStatus.CANCELLED, TransitionPayload(actor_id=actor_id, reason=reason))

    # ---------------------------------------------------------------- helpers

    def _require_active_agent(self, agent_id: str) -> Agent:
        agent = self.agents.get_agent(agent_id)
        if not agent.active:
            raise InvalidFieldValue("agent_id", f"agent '{agent_id}' is inactive")
        return agent

    @staticmethod
    def _describe(service: Service) -> str:
        status = service.status
        if status is ServiceStatus.PICKED_UP:
            return f"Picked up {service.bag_count} bags, {service.weight} kg"
        if status is ServiceStatus.LABELED:
            return f"Labeled with {len(service.label_refs)} references"
        if status in (ServiceStatus.PARTIAL_DELIVERY, ServiceStatus.COMPLETED):
            return f"Delivered {service.delivered_bag_count}/{service.bag_count} bags ({service.delivery_percentage}%)"
        if status is ServiceStatus.CANCELLED:
            return f"Cancelled: {service.cancel_reason}"
        return f"Moved to {status.value}"

    def _status_of(self, service_id: str) -> Optional[ServiceStatus]:
        try:
            return self.services.get_service(service_id).status
        except NotFound:
            logging.warning(f"Route stop references unknown service {service_id}")
            return None

    def _refresh_route_stops(self, service: Service) -> None:
        if self.route_lifecycle is None:
            return
        for route in self.route_lifecycle.running_routes_with_service(service.service_id):
            stop = route.stop_for_service(service.service_id)
            if stop is None or stop.completed:
                continue
            statuses = {}
            for service_id in stop.service_ids:
                status = self._status_of(service_id)
                if status is not None:
                    statuses[service_id] = status
            try:
                self.route_lifecycle.refresh_stop(route.route_id, stop.stop_id, statuses)
            except Conflict as exc:
                # The service write already landed; the route moved on concurrently.
                logging.warning(f"Stop {stop.stop_id} not refreshed: {exc}")
