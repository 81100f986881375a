"""Route planning result models."""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import date, datetime
from enum import Enum
from typing import List, Optional

from ...models.domain import Route


class PlanningStatus(str, Enum):
    PLANNED = "PLANNED"
    NO_ELIGIBLE_WORK = "NO_ELIGIBLE_WORK"


# Sentinel outcome: nothing to plan is not a failure.
NoEligibleWork = PlanningStatus.NO_ELIGIBLE_WORK


@dataclass(slots=True)
class DataIntegrityWarning:
    """A service skipped during planning because a reference did not resolve."""

    service_id: str
    reference: str
    reference_id: Optional[str]
    message: str


@dataclass(slots=True)
class StopCompletion:
    completed_at: Optional[datetime] = None
    notes: str = ""
    actor_id: Optional[str] = None


@dataclass(slots=True)
class RoutePlanningResult:
    route_date: date
    status: PlanningStatus
    routes: List[Route] = field(default_factory=list)
    warnings: List[DataIntegrityWarning] = field(default_factory=list)
    covered_agents: List[str] = field(default_factory=list)

    @property
    def no_eligible_work(self) -> bool:
        return self.status is PlanningStatus.NO_ELIGIBLE_WORK

    @property
    def total_pickups(self) -> int:
        return sum(route.total_pickups for route in self.routes)

    @property
    def total_deliveries(self) -> int:
        return sum(route.total_deliveries for route in self.routes)
