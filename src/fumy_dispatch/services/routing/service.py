"""Route planning orchestration."""

from __future__ import annotations

import logging
import threading
from datetime import date, datetime
from pathlib import Path
from typing import Callable, Optional

from ...config import settings
from ...data.directory import AgentDirectory, HotelDirectory
from ...errors import Conflict
from ...models.domain import utcnow
from ...persistence.filesystem import FileStorage
from ...persistence.repositories import RouteFilter, RouteRepository, ServiceFilter, ServiceRepository
from ..outputs.routing_formatter import routes_to_csv, routes_to_json
from .builder import PlanningConstraints, build_routes
from .models import RoutePlanningResult


class RoutePlanner:
    """Reads outstanding work, builds routes for a date and stores them.

    "Read existing routes, build, save" runs under a per-date lock inside one
    process. New routes are stored with an insert that refuses a taken route
    id, so a concurrent build in another worker fails with a Conflict instead
    of replacing routes.
    """

    def __init__(
        self,
        services: ServiceRepository,
        routes: RouteRepository,
        hotels: HotelDirectory,
        agents: AgentDirectory,
        *,
        constraints: PlanningConstraints | None = None,
        storage_factory: Callable[[], FileStorage] = FileStorage,
        clock: Callable[[], datetime] = utcnow,
    ) -> None:
        self.services = services
        self.routes = routes
        self.hotels = hotels
        self.agents = agents
        self.constraints = constraints or PlanningConstraints()
        self.storage_factory = storage_factory
        self.clock = clock
        self._locks: dict[date, threading.Lock] = {}
        self._locks_guard = threading.Lock()

    def _lock_for(self, route_date: date) -> threading.Lock:
        with self._locks_guard:
            return self._locks.setdefault(route_date, threading.Lock())

    def generate_routes(self, route_date: date, *, persist: bool = False) -> RoutePlanningResult:
        with self._lock_for(route_date):
            existing = self.routes.list_routes(RouteFilter(date=route_date))
            services = self.services.list_services(ServiceFilter(date=route_date))
            logging.info(
                f"Generating routes for {route_date.isoformat()}: "
                f"{len(services)} outstanding services, {len(existing)} existing routes"
            )
            result = build_routes(
                route_date=route_date,
                services=services,
                agents=self.agents,
                hotels=self.hotels,
                existing_routes=existing,
                constraints=self.constraints,
                now=self.clock(),
            )
            for route in result.routes:
                try:
                    self.routes.create_route(route)
                except Conflict:
                    logging.warning(
                        f"Route {route.route_id} was created concurrently; "
                        f"generation for {route_date.isoformat()} stopped"
                    )
                    raise

        if result.routes and (persist or settings.export_routes):
            self.export(result)
        return result

    def export(self, result: RoutePlanningResult) -> Optional[Path]:
        try:
            storage = self.storage_factory()
            run_dir = storage.make_run_directory(prefix=f"routes_{result.route_date:%Y%m%d}")
            storage.write_json(run_dir / "summary.json", routes_to_json(result))
            storage.write_csv(run_dir / "assignments.csv", routes_to_csv(result))
        except OSError as exc:
            # Routes are already stored; a failed export must not undo the plan.
            logging.error(f"Failed to export routes for {result.route_date.isoformat()}: {exc}")
            return None
        logging.info(f"Route export written to {run_dir}")
        return run_dir

    def clear_routes(self, route_date: date) -> int:
        """Remove every route of the date so it can be regenerated."""
        with self._lock_for(route_date):
            removed = self.routes.delete_routes(route_date)
        logging.warning(f"Cleared {removed} routes for {route_date.isoformat()}")
        return removed
