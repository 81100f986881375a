"""Routing request/response schemas and the persisted route record."""

from __future__ import annotations

from datetime import date, datetime
from typing import List, Optional

from pydantic import BaseModel, ConfigDict, Field

from ..models.domain import Priority, Route, RouteStatus, Stop
from ..services.routing.models import RoutePlanningResult


class StopModel(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    stop_id: str
    hotel_id: str
    hotel_name: str
    pickup_service_ids: List[str] = Field(default_factory=list)
    delivery_service_ids: List[str] = Field(default_factory=list)
    priority: Priority = Priority.NORMAL
    eta_slot: Optional[str] = None
    completed: bool = False
    completed_at: Optional[datetime] = None
    notes: str = ""

    def to_domain(self) -> Stop:
        return Stop(
            stop_id=self.stop_id,
            hotel_id=self.hotel_id,
            hotel_name=self.hotel_name,
            pickup_service_ids=tuple(self.pickup_service_ids),
            delivery_service_ids=tuple(self.delivery_service_ids),
            priority=self.priority,
            eta_slot=self.eta_slot,
            completed=self.completed,
            completed_at=self.completed_at,
            notes=self.notes,
        )


class RouteModel(BaseModel):
    """Storage and API shape of a route; stops keep their creation order."""

    model_config = ConfigDict(from_attributes=True)

    route_id: str
    route_number: int
    route_date: date
    agent_id: str
    agent_name: str
    stops: List[StopModel] = Field(default_factory=list)
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

    @classmethod
    def from_domain(cls, route: Route) -> "RouteModel":
        return cls.model_validate(route)

    def to_domain(self) -> Route:
        return Route(
            route_id=self.route_id,
            route_number=self.route_number,
            route_date=self.route_date,
            agent_id=self.agent_id,
            agent_name=self.agent_name,
            stops=tuple(stop.to_domain() for stop in self.stops),
            created_at=self.created_at,
            status=self.status,
            estimated_duration_min=self.estimated_duration_min,
            total_pickups=self.total_pickups,
            total_deliveries=self.total_deliveries,
            started_at=self.started_at,
            ended_at=self.ended_at,
            completion_override=self.completion_override,
            completed_by=self.completed_by,
            version=self.version,
        )


class GenerateRoutesRequest(BaseModel):
    route_date: date
    persist: bool = Field(default=False, description="Also write summary.json / assignments.csv exports.")
    requested_by: Optional[str] = Field(default=None, description="Person or system requesting the run.")


class DataIntegrityWarningModel(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    service_id: str
    reference: str
    reference_id: Optional[str] = None
    message: str


class GenerateRoutesResponse(BaseModel):
    route_date: date
    status: str
    message: str
    routes: List[RouteModel]
    warnings: List[DataIntegrityWarningModel]
    covered_agents: List[str]
    total_pickups: int
    total_deliveries: int

    @classmethod
    def from_result(cls, result: RoutePlanningResult) -> "GenerateRoutesResponse":
        if result.no_eligible_work:
            message = f"No eligible work for {result.route_date.isoformat()}."
        else:
            message = f"Generated {len(result.routes)} routes for {result.route_date.isoformat()}."
        return cls(
            route_date=result.route_date,
            status=result.status.value,
            message=message,
            routes=[RouteModel.from_domain(route) for route in result.routes],
            warnings=[DataIntegrityWarningModel.model_validate(warning) for warning in result.warnings],
            covered_agents=list(result.covered_agents),
            total_pickups=result.total_pickups,
            total_deliveries=result.total_deliveries,
        )


class StartRouteRequest(BaseModel):
    actor_id: Optional[str] = None
    as_admin: bool = False


class CompleteStopRequest(BaseModel):
    notes: str = ""
    actor_id: Optional[str] = None
    completed_at: Optional[datetime] = None


class CompleteRouteRequest(BaseModel):
    actor_id: Optional[str] = None
    force: bool = Field(default=False, description="Administrator override: complete with open stops.")


class ClearRoutesResponse(BaseModel):
    route_date: date
    removed: int
