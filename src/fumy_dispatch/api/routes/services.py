"""Laundry service endpoints: registration, claiming and state changes."""

from __future__ import annotations

import logging
from datetime import date
from typing import Callable, List, Optional

from fastapi import APIRouter, Depends, HTTPException, Query, status

from ...errors import DispatchError
from ...models.domain import Service, ServiceStatus
from ...persistence.repositories import ServiceFilter
from ...schemas.services import (
    ActorRequest,
    AuditEntryModel,
    CancelRequest,
    ClaimRequest,
    DeliverRequest,
    LabelRequest,
    PickupRequest,
    RegisterServiceRequest,
    ServiceRecord,
)
from ..dependencies import DispatchContainer, get_container
from ..errors import to_http_exception

router = APIRouter(prefix="/services", tags=["services"])


def _run(action: str, operation: Callable[[], Service]) -> ServiceRecord:
    try:
        return ServiceRecord.from_domain(operation())
    except DispatchError as exc:
        raise to_http_exception(exc) from exc
    except Exception as exc:
        logging.exception(f"Error trying to {action}: {exc}")
        raise HTTPException(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            detail=f"Failed to {action}: {str(exc)}",
        ) from exc


@router.post("/", response_model=ServiceRecord, status_code=status.HTTP_201_CREATED)
def register_service(
    payload: RegisterServiceRequest,
    container: DispatchContainer = Depends(get_container),
) -> ServiceRecord:
    return _run(
        "register service",
        lambda: container.services.register(
            payload.hotel_id,
            payload.guest_name,
            payload.room_number,
            payload.bag_count,
            priority=payload.priority,
            observations=payload.observations,
            pickup_agent_id=payload.pickup_agent_id,
            auto_assign=payload.auto_assign,
            actor_id=payload.requested_by,
        ),
    )


@router.get("/", response_model=List[ServiceRecord])
def list_services(
    outstanding_on: Optional[date] = Query(None, description="Services created on or before this date."),
    zone: Optional[str] = Query(None),
    agent_id: Optional[str] = Query(None),
    service_status: Optional[ServiceStatus] = Query(None, alias="status"),
    container: DispatchContainer = Depends(get_container),
) -> List[ServiceRecord]:
    query = ServiceFilter(date=outstanding_on, zone=zone, agent_id=agent_id, status=service_status)
    try:
        services = container.services.list_services(query)
    except Exception as exc:
        logging.exception(f"Error listing services: {exc}")
        raise HTTPException(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            detail=f"Failed to list services: {str(exc)}",
        ) from exc
    return [ServiceRecord.from_domain(service) for service in services]


@router.get("/claimable/{agent_id}", response_model=List[ServiceRecord])
def claimable_services(agent_id: str, container: DispatchContainer = Depends(get_container)) -> List[ServiceRecord]:
    try:
        services = container.services.claimable_services(agent_id)
    except DispatchError as exc:
        raise to_http_exception(exc) from exc
    return [ServiceRecord.from_domain(service) for service in services]


@router.get("/{service_id}", response_model=ServiceRecord)
def get_service(service_id: str, container: DispatchContainer = Depends(get_container)) -> ServiceRecord:
    return _run(f"load service {service_id}", lambda: container.services.get_service(service_id))


@router.get("/{service_id}/audit", response_model=List[AuditEntryModel])
def service_audit(service_id: str, container: DispatchContainer = Depends(get_container)) -> List[AuditEntryModel]:
    try:
        entries = container.services.audit_trail(service_id)
    except DispatchError as exc:
        raise to_http_exception(exc) from exc
    return [AuditEntryModel.from_domain(entry) for entry in entries]


@router.post("/{service_id}/claim", response_model=ServiceRecord)
def claim_service(
    service_id: str,
    payload: ClaimRequest,
    container: DispatchContainer = Depends(get_container),
) -> ServiceRecord:
    return _run(f"claim service {service_id}", lambda: container.services.claim(service_id, payload.agent_id))


@router.post("/{service_id}/pickup", response_model=ServiceRecord)
def pick_up_service(
    service_id: str,
    payload: PickupRequest,
    container: DispatchContainer = Depends(get_container),
) -> ServiceRecord:
    return _run(
        f"pick up service {service_id}",
        lambda: container.services.pick_up(
            service_id,
            payload.weight,
            actor_id=payload.actor_id,
            picked_up_at=payload.picked_up_at,
            signature=payload.signature,
        ),
    )


@router.post("/{service_id}/label", response_model=ServiceRecord)
def label_service(
    service_id: str,
    payload: LabelRequest,
    container: DispatchContainer = Depends(get_container),
) -> ServiceRecord:
    return _run(
        f"label service {service_id}",
        lambda: container.services.label(service_id, payload.label_refs, actor_id=payload.actor_id),
    )


@router.post("/{service_id}/process", response_model=ServiceRecord)
def process_service(
    service_id: str,
    payload: ActorRequest,
    container: DispatchContainer = Depends(get_container),
) -> ServiceRecord:
    return _run(
        f"start processing service {service_id}",
        lambda: container.services.start_processing(service_id, actor_id=payload.actor_id),
    )


@router.post("/{service_id}/ready", response_model=ServiceRecord)
def ready_service(
    service_id: str,
    payload: ActorRequest,
    container: DispatchContainer = Depends(get_container),
) -> ServiceRecord:
    return _run(
        f"mark service {service_id} ready",
        lambda: container.services.mark_ready(service_id, actor_id=payload.actor_id),
    )


@router.post("/{service_id}/deliver", response_model=ServiceRecord)
def deliver_service(
    service_id: str,
    payload: DeliverRequest,
    container: DispatchContainer = Depends(get_container),
) -> ServiceRecord:
    return _run(
        f"deliver service {service_id}",
        lambda: container.services.deliver(
            service_id,
            payload.delivered_bags,
            actor_id=payload.actor_id,
            delivery_percentage=payload.delivery_percentage,
            delivered_at=payload.delivered_at,
        ),
    )


@router.post("/{service_id}/cancel", response_model=ServiceRecord)
def cancel_service(
    service_id: str,
    payload: CancelRequest,
    container: DispatchContainer = Depends(get_container),
) -> ServiceRecord:
    return _run(
        f"cancel service {service_id}",
        lambda: container.services.cancel(service_id, payload.reason, actor_id=payload.actor_id),
    )
