"""Service request/response schemas and the persisted service record."""

from __future__ import annotations

from datetime import datetime
from decimal import Decimal
from typing import List, Optional

from pydantic import BaseModel, ConfigDict, Field

from ..models.domain import Priority, Service, ServiceStatus
from ..services.audit import AuditEntry


class RegisterServiceRequest(BaseModel):
    hotel_id: str
    guest_name: str
    room_number: str
    bag_count: int = Field(..., ge=1)
    priority: Optional[str] = Field(
        default=None,
        description="HIGH / MEDIUM / NORMAL (alta / media / baja accepted). Derived from observations when omitted.",
    )
    observations: str = ""
    pickup_agent_id: Optional[str] = None
    auto_assign: bool = Field(default=False, description="Assign the first active agent of the hotel's zone.")
    requested_by: Optional[str] = None


class ClaimRequest(BaseModel):
    agent_id: str


class PickupRequest(BaseModel):
    weight: Optional[Decimal] = Field(default=None, description="Weight in kg; required.")
    actor_id: Optional[str] = None
    picked_up_at: Optional[datetime] = None
    signature: Optional[str] = None


class LabelRequest(BaseModel):
    label_refs: List[str] = Field(default_factory=list)
    actor_id: Optional[str] = None


class ActorRequest(BaseModel):
    actor_id: Optional[str] = None


class DeliverRequest(BaseModel):
    delivered_bags: int = Field(..., ge=1)
    delivery_percentage: Optional[int] = Field(default=None, ge=0, le=100)
    delivered_at: Optional[datetime] = None
    actor_id: Optional[str] = None


class CancelRequest(BaseModel):
    reason: str
    actor_id: Optional[str] = None


class ServiceRecord(BaseModel):
    """Storage and API shape of a service; round-trips every domain attribute."""

    model_config = ConfigDict(from_attributes=True)

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
    label_refs: List[str] = Field(default_factory=list)
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

    @classmethod
    def from_domain(cls, service: Service) -> "ServiceRecord":
        return cls.model_validate(service)

    def to_domain(self) -> Service:
        data = self.model_dump()
        data["label_refs"] = tuple(data["label_refs"])
        return Service(**data)


class AuditEntryModel(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    entity: str
    entity_id: str
    action: str
    message: str
    at: datetime
    actor_id: Optional[str] = None
    previous_status: Optional[str] = None
    new_status: Optional[str] = None
    forced: bool = False

    @classmethod
    def from_domain(cls, entry: AuditEntry) -> "AuditEntryModel":
        return cls.model_validate(entry)
