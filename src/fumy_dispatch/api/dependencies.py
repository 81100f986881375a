"""Engine wiring for the HTTP layer."""

from __future__ import annotations

import logging
from dataclasses import dataclass
from functools import lru_cache

from ..config import settings
from ..data.directory import (
    AgentDirectory,
    HotelDirectory,
    StaticAgentDirectory,
    StaticHotelDirectory,
    load_agents_from_file,
    load_hotels_from_file,
)
from ..persistence.repositories import (
    InMemoryRouteRepository,
    InMemoryServiceRepository,
    RouteRepository,
    ServiceRepository,
)
from ..services.audit import AuditLog
from ..services.lifecycle.service import ServiceLifecycleManager
from ..services.routing.lifecycle import RouteLifecycleManager
from ..services.routing.service import RoutePlanner


@dataclass(slots=True)
class DispatchContainer:
    planner: RoutePlanner
    routes: RouteLifecycleManager
    services: ServiceLifecycleManager
    audit: AuditLog


def build_container(
    *,
    services: ServiceRepository,
    routes: RouteRepository,
    hotels: HotelDirectory,
    agents: AgentDirectory,
    audit: AuditLog | None = None,
) -> DispatchContainer:
    audit = audit or AuditLog()
    route_lifecycle = RouteLifecycleManager(routes, audit=audit)
    return DispatchContainer(
        planner=RoutePlanner(services, routes, hotels, agents),
        routes=route_lifecycle,
        services=ServiceLifecycleManager(services, hotels, agents, route_lifecycle=route_lifecycle, audit=audit),
        audit=audit,
    )


def _file_directories() -> tuple[HotelDirectory, AgentDirectory]:
    try:
        hotels = load_hotels_from_file()
        agents = load_agents_from_file()
    except FileNotFoundError as exc:
        logging.warning(f"Directory files not available ({exc}); starting with empty directories")
        return StaticHotelDirectory(()), StaticAgentDirectory(())
    logging.info(f"Loaded {len(hotels)} hotels and {len(agents)} agents from files")
    return StaticHotelDirectory(hotels), StaticAgentDirectory(agents)


@lru_cache()
def get_container() -> DispatchContainer:
    """Process-wide container; tests override this dependency."""
    if settings.storage_backend == "supabase":
        from ..persistence.database import (
            SupabaseAgentDirectory,
            SupabaseHotelDirectory,
            SupabaseRouteRepository,
            SupabaseServiceRepository,
        )

        logging.info("Using Supabase storage backend")
        return build_container(
            services=SupabaseServiceRepository(),
            routes=SupabaseRouteRepository(),
            hotels=SupabaseHotelDirectory(),
            agents=SupabaseAgentDirectory(),
        )

    hotels, agents = _file_directories()
    return build_container(
        services=InMemoryServiceRepository(),
        routes=InMemoryRouteRepository(),
        hotels=hotels,
        agents=agents,
    )
