"""Route planning and execution endpoints."""

from __future__ import annotations

import logging
from datetime import date
from typing import List, Optional

from fastapi import APIRouter, Depends, HTTPException, Query, status

from ...errors import DispatchError
from ...models.domain import RouteStatus
from ...schemas.routing import (
    ClearRoutesResponse,
    CompleteRouteRequest,
    CompleteStopRequest,
    GenerateRoutesRequest,
    GenerateRoutesResponse,
    RouteModel,
    StartRouteRequest,
)
from ...services.routing.models import StopCompletion
from ..dependencies import DispatchContainer, get_container
from ..errors import to_http_exception

router = APIRouter(prefix="/routes", tags=["routes"])


def _server_error(action: str, exc: Exception) -> HTTPException:
    logging.exception(f"Error trying to {action}: {exc}")
    return HTTPException(
        status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
        detail=f"Failed to {action}: {str(exc)}",
    )


@router.post("/generate", response_model=GenerateRoutesResponse, status_code=status.HTTP_200_OK)
def generate(payload: GenerateRoutesRequest, container: DispatchContainer = Depends(get_container)) -> GenerateRoutesResponse:
    """Build routes for a date. A date without eligible work answers 200 with status NO_ELIGIBLE_WORK."""
    try:
        result = container.planner.generate_routes(payload.route_date, persist=payload.persist)
    except DispatchError as exc:
        raise to_http_exception(exc) from exc
    except Exception as exc:
        raise _server_error("generate routes", exc) from exc
    return GenerateRoutesResponse.from_result(result)


@router.get("/", response_model=List[RouteModel])
def list_routes(
    route_date: date = Query(..., description="Date of the routes (YYYY-MM-DD)."),
    agent_id: Optional[str] = Query(None),
    route_status: Optional[RouteStatus] = Query(None, alias="status"),
    container: DispatchContainer = Depends(get_container),
) -> List[RouteModel]:
    try:
        routes = container.routes.list_routes(route_date, agent_id=agent_id, status=route_status)
    except Exception as exc:
        raise _server_error("list routes", exc) from exc
    return [RouteModel.from_domain(route) for route in routes]


@router.delete("/", response_model=ClearRoutesResponse)
def clear_routes(
    route_date: date = Query(..., description="Date whose routes are removed."),
    container: DispatchContainer = Depends(get_container),
) -> ClearRoutesResponse:
    try:
        removed = container.planner.clear_routes(route_date)
    except Exception as exc:
        raise _server_error("clear routes", exc) from exc
    return ClearRoutesResponse(route_date=route_date, removed=removed)


@router.get("/{route_id}", response_model=RouteModel)
def get_route(route_id: str, container: DispatchContainer = Depends(get_container)) -> RouteModel:
    try:
        return RouteModel.from_domain(container.routes.get_route(route_id))
    except DispatchError as exc:
        raise to_http_exception(exc) from exc


@router.post("/{route_id}/start", response_model=RouteModel)
def start_route(
    route_id: str,
    payload: StartRouteRequest,
    container: DispatchContainer = Depends(get_container),
) -> RouteModel:
    try:
        route = container.routes.start(route_id, payload.actor_id, as_admin=payload.as_admin)
    except DispatchError as exc:
        raise to_http_exception(exc) from exc
    except Exception as exc:
        raise _server_error(f"start route {route_id}", exc) from exc
    return RouteModel.from_domain(route)


@router.post("/{route_id}/stops/{stop_id}/complete", response_model=RouteModel)
def complete_stop(
    route_id: str,
    stop_id: str,
    payload: CompleteStopRequest,
    container: DispatchContainer = Depends(get_container),
) -> RouteModel:
    completion = StopCompletion(completed_at=payload.completed_at, notes=payload.notes, actor_id=payload.actor_id)
    try:
        route = container.routes.mark_stop_complete(route_id, stop_id, completion)
    except DispatchError as exc:
        raise to_http_exception(exc) from exc
    except Exception as exc:
        raise _server_error(f"complete stop {stop_id}", exc) from exc
    return RouteModel.from_domain(route)


@router.post("/{route_id}/complete", response_model=RouteModel)
def complete_route(
    route_id: str,
    payload: CompleteRouteRequest,
    container: DispatchContainer = Depends(get_container),
) -> RouteModel:
    try:
        route = container.routes.complete(route_id, actor_id=payload.actor_id, force=payload.force)
    except DispatchError as exc:
        raise to_http_exception(exc) from exc
    except Exception as exc:
        raise _server_error(f"complete route {route_id}", exc) from exc
    return RouteModel.from_domain(route)
