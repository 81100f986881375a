"""Service state machine: allowed transitions and the data each state requires."""

from __future__ import annotations

from dataclasses import dataclass, replace
from datetime import datetime
from decimal import ROUND_HALF_UP, Decimal, InvalidOperation
from typing import Any, Optional, Sequence

from ...errors import InvalidFieldValue, InvalidTransition, MissingRequiredField
from ...models.domain import Hotel, Service, ServiceStatus

S = ServiceStatus

ALLOWED_TRANSITIONS: dict[ServiceStatus, frozenset[ServiceStatus]] = {
    S.PENDING_PICKUP: frozenset({S.PICKED_UP, S.CANCELLED}),
    S.PICKED_UP: frozenset({S.LABELED, S.CANCELLED}),
    S.LABELED: frozenset({S.IN_PROCESS, S.CANCELLED}),
    S.IN_PROCESS: frozenset({S.READY_FOR_DELIVERY, S.PARTIAL_DELIVERY, S.COMPLETED, S.CANCELLED}),
    S.READY_FOR_DELIVERY: frozenset({S.PARTIAL_DELIVERY, S.COMPLETED, S.CANCELLED}),
    S.PARTIAL_DELIVERY: frozenset({S.COMPLETED, S.CANCELLED}),
    S.COMPLETED: frozenset(),
    S.CANCELLED: frozenset(),
}

PRICE_QUANTUM = Decimal("0.01")


@dataclass(slots=True)
class TransitionPayload:
    """Data carried by a state change; only the fields the target state needs are read."""

    actor_id: Optional[str] = None
    at: Optional[datetime] = None
    weight: Any = None
    signature: Optional[str] = None
    label_refs: Sequence[str] = ()
    delivered_bags: Optional[int] = None
    delivery_percentage: Optional[int] = None
    reason: Optional[str] = None


def can_transition(current: ServiceStatus, target: ServiceStatus) -> bool:
    return target in ALLOWED_TRANSITIONS[current]


def ensure_transition_allowed(service: Service, target: ServiceStatus) -> None:
    if can_transition(service.status, target):
        return
    if service.status.is_terminal:
        reason = f"{service.status.value} is terminal."
    elif service.status is S.PARTIAL_DELIVERY and target is S.PARTIAL_DELIVERY:
        reason = f"Deliver the remaining {service.remaining_bags} bags to complete the service."
    else:
        allowed = ", ".join(sorted(status.value for status in ALLOWED_TRANSITIONS[service.status]))
        reason = f"Allowed targets: {allowed}."
    raise InvalidTransition("service", service.service_id, service.status.value, target.value, reason)


def parse_weight(value: Any) -> Decimal:
    if value is None or value == "":
        raise MissingRequiredField("weight", S.PICKED_UP.value)
    try:
        weight = Decimal(str(value))
    except InvalidOperation as exc:
        raise InvalidFieldValue("weight", f"'{value}' is not a number") from exc
    if not weight.is_finite():
        raise InvalidFieldValue("weight", f"'{value}' is not a number")
    if weight < 0:
        raise InvalidFieldValue("weight", "must be zero or greater")
    return weight


def delivery_percentage(delivered: int, bag_count: int) -> int:
    # Halves round up: 1 of 8 bags is 13%.
    return int((Decimal(delivered) * 100 / bag_count).quantize(Decimal("1"), ROUND_HALF_UP))


def _check_percentage(reported: Optional[int], expected: int, tolerance: int) -> None:
    if reported is None:
        return
    if abs(reported - expected) > tolerance:
        raise InvalidFieldValue(
            "delivery_percentage",
            f"{reported}% does not match the delivered bags ({expected}%)",
        )


def _apply_delivery(
    service: Service,
    target: ServiceStatus,
    payload: TransitionPayload,
    now: datetime,
    tolerance: int,
) -> Service:
    already = service.delivered_bag_count or 0
    bags = payload.delivered_bags
    if bags is None:
        if target is S.PARTIAL_DELIVERY:
            raise MissingRequiredField("delivered_bags", target.value)
        bags = service.remaining_bags
    if bags <= 0:
        raise InvalidFieldValue("delivered_bags", "must be at least 1")

    total = already + bags
    if total > service.bag_count:
        raise InvalidFieldValue(
            "delivered_bags",
            f"{total} bags delivered exceeds the {service.bag_count} registered",
        )
    if target is S.PARTIAL_DELIVERY and total >= service.bag_count:
        raise InvalidFieldValue("delivered_bags", "a partial delivery must leave bags outstanding")
    if target is S.COMPLETED and total != service.bag_count:
        raise InvalidFieldValue(
            "delivered_bags",
            f"completion requires all {service.bag_count} bags, got {total}",
        )

    percentage = delivery_percentage(total, service.bag_count)
    _check_percentage(payload.delivery_percentage, percentage, tolerance)

    changes: dict[str, Any] = {"delivered_bag_count": total, "delivery_percentage": percentage}
    if target is S.COMPLETED:
        changes["delivered_at"] = payload.at or now
    if service.delivery_agent_id is None and payload.actor_id:
        changes["delivery_agent_id"] = payload.actor_id
    return replace(service, **changes)


def apply_transition(
    service: Service,
    target: ServiceStatus,
    payload: TransitionPayload | None = None,
    *,
    now: datetime,
    hotel: Hotel | None = None,
    tolerance: int = 1,
) -> Service:
    """Return a copy of ``service`` in ``target`` state.

    Raises before building anything when the move is not allowed or the
    payload lacks what the target state requires; ``service`` itself is
    never mutated.
    """
    payload = payload or TransitionPayload()
    ensure_transition_allowed(service, target)

    if target is S.PICKED_UP:
        weight = parse_weight(payload.weight)
        price = None
        if hotel is not None:
            price = (weight * hotel.price_per_kg).quantize(PRICE_QUANTUM)
        updated = replace(
            service,
            weight=weight,
            price=price,
            picked_up_at=payload.at or now,
            signature=payload.signature or service.signature,
            pickup_agent_id=service.pickup_agent_id or payload.actor_id,
        )
    elif target is S.LABELED:
        refs = tuple(service.label_refs) + tuple(ref for ref in payload.label_refs if ref)
        if not refs:
            raise MissingRequiredField("label_refs", target.value)
        updated = replace(service, label_refs=refs, labeled_at=payload.at or now)
    elif target is S.IN_PROCESS:
        updated = replace(service, processed_at=payload.at or now)
    elif target is S.READY_FOR_DELIVERY:
        updated = replace(service)
    elif target in (S.PARTIAL_DELIVERY, S.COMPLETED):
        updated = _apply_delivery(service, target, payload, now, tolerance)
    elif target is S.CANCELLED:
        if not payload.reason or not payload.reason.strip():
            raise MissingRequiredField("cancel_reason", target.value)
        updated = replace(service, cancel_reason=payload.reason.strip(), cancelled_at=payload.at or now)
    else:
        raise InvalidTransition("service", service.service_id, service.status.value, target.value)

    return replace(updated, status=target, updated_at=now, version=service.version + 1)
