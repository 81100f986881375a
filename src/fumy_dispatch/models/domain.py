"""Domain models for hotels, agents, laundry services and routes."""

from __future__ import annotations

from dataclasses import dataclass
from datetime import date, datetime, timezone
from decimal import Decimal
from enum import Enum
from typing import Optional


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


class Priority(str, Enum):
    """Urgency of a service; stops inherit the highest one."""

    HIGH = "HIGH"
    MEDIUM = "MEDIUM"
    NORMAL = "NORMAL"

    @property
    def rank(self) -> int:
        return _PRIORITY_RANK[self]

    @classmethod
    def parse(cls, value: "Priority | str | None") -> Optional["Priority"]:
        """Accept enum names as well as the Spanish labels used by the front desk."""
        if value is None or isinstance(value, Priority):
            return value
        normalized = str(value).strip().upper()
        if not normalized:
            return None
        normalized = _PRIORITY_ALIASES.get(normalized, normalized)
        try:
            return cls(normalized)
        except ValueError as exc:
            raise ValueError(f"Unknown priority '{value}'.") from exc


_PRIORITY_RANK = {Priority.HIGH: 3, Priority.MEDIUM: 2, Priority.NORMAL: 1}
_PRIORITY_ALIASES = {"ALTA": "HIGH", "MEDIA": "MEDIUM", "BAJA": "NORMAL"}


class ServiceStatus(str, Enum):
    PENDING_PICKUP = "PENDING_PICKUP"
    PICKED_UP = "PICKED_UP"
    LABELED = "LABELED"
    IN_PROCESS = "IN_PROCESS"
    READY_FOR_DELIVERY = "READY_FOR_DELIVERY"
    PARTIAL_DELIVERY = "PARTIAL_DELIVERY"
    COMPLETED = "COMPLETED"
    CANCELLED = "CANCELLED"

    @property
    def is_terminal(self) -> bool:
        return self in (ServiceStatus.COMPLETED, ServiceStatus.CANCELLED)


class RouteStatus(str, Enum):
    PENDING = "PENDING"
    IN_PROGRESS = "IN_PROGRESS"
    COMPLETED = "COMPLETED"

    @property
    def is_active(self) -> bool:
        return self in (RouteStatus.PENDING, RouteStatus.IN_PROGRESS)


@dataclass(slots=True)
class Hotel:
    """A client hotel; read-only for the engine."""

    hotel_id: str
    name: str
    zone: str
    price_per_kg: Decimal = Decimal("0")
    address: Optional[str] = None


@dataclass(slots=True)
class Agent:
    """A field agent (repartidor) serving one zone."""

    agent_id: str
    name: str
    zone: str
    active: bool = True


@dataclass(slots=True)
class Service:
    """One guest's laundry bag pickup and delivery request."""

    service_id: str
    hotel_id: str
    zone: str
    guest_name: str
    room_number: str
    bag_count: int
    created_at: datetime
    priority: Optional[Priority] = None
    observations: str = ""
    status: ServiceStatus = ServiceStatus.PENDING_PICKUP
    pickup_agent_id: Optional[str] = None
    delivery_agent_id: Optional[str] = None
    weight: Optional[Decimal] = None
    price: Optional[Decimal] = None
    label_refs: tuple[str, ...] = ()
    signature: Optional[str] = None
    picked_up_at: Optional[datetime] = None
    labeled_at: Optional[datetime] = None
    processed_at: Optional[datetime] = None
    delivered_at: Optional[datetime] = None
    delivered_bag_count: Optional[int] = None
    delivery_percentage: Optional[int] = None
    cancel_reason: Optional[str] = None
    cancelled_at: Optional[datetime] = None
    updated_at: Optional[datetime] = None
    version: int = 1

    @property
    def remaining_bags(self) -> int:
        return self.bag_count - (self.delivered_bag_count or 0)

    @property
    def claimable_zone(self) -> Optional[str]:
        """Zone whose agents may claim this service, None once it has an owner."""
        if self.status is ServiceStatus.PENDING_PICKUP and self.pickup_agent_id is None:
            return self.zone
        return None

    def is_claimable_by(self, agent: Agent) -> bool:
        return agent.active and self.claimable_zone is not None and self.claimable_zone == agent.zone


@dataclass(slots=True)
class Stop:
    """One hotel visit; services are referenced by id in visiting order."""

    stop_id: str
    hotel_id: str
    hotel_name: str
    pickup_service_ids: tuple[str, ...] = ()
    delivery_service_ids: tuple[str, ...] = ()
    priority: Priority = Priority.NORMAL
    eta_slot: Optional[str] = None
    completed: bool = False
    completed_at: Optional[datetime] = None
    notes: str = ""

    @property
    def service_ids(self) -> tuple[str, ...]:
        return self.pickup_service_ids + self.delivery_service_ids


@dataclass(slots=True)
class Route:
    """One agent's ordered work plan for one date."""

    route_id: str
    route_number: int
    route_date: date
    agent_id: str
    agent_name: str
    stops: tuple[Stop, ...]
    created_at: datetime
    status: RouteStatus = RouteStatus.PENDING
    estimated_duration_min: int = 0
    total_pickups: int = 0
    total_deliveries: int = 0
    started_at: Optional[datetime] = None
    ended_at: Optional[datetime] = None
    completion_override: bool = False
    completed_by: Optional[str] = None
    version: int = 1

    def find_stop(self, stop_id: str) -> Optional[Stop]:
        return next((stop for stop in self.stops if stop.stop_id == stop_id), None)

    def stop_for_service(self, service_id: str) -> Optional[Stop]:
        return next((stop for stop in self.stops if service_id in stop.service_ids), None)

    @property
    def open_stop_ids(self) -> list[str]:
        return [stop.stop_id for stop in self.stops if not stop.completed]
