"""Serializers for route plan exports."""

from __future__ import annotations

import csv
import io

from ..routing.models import RoutePlanningResult


def routes_to_json(result: RoutePlanningResult) -> dict:
    return {
        "route_date": result.route_date.isoformat(),
        "status": result.status.value,
        "total_pickups": result.total_pickups,
        "total_deliveries": result.total_deliveries,
        "covered_agents": list(result.covered_agents),
        "warnings": [
            {
                "service_id": warning.service_id,
                "reference": warning.reference,
                "reference_id": warning.reference_id,
                "message": warning.message,
            }
            for warning in result.warnings
        ],
        "routes": [
            {
                "route_id": route.route_id,
                "route_number": route.route_number,
                "agent_id": route.agent_id,
                "agent_name": route.agent_name,
                "status": route.status.value,
                "estimated_duration_min": route.estimated_duration_min,
                "total_pickups": route.total_pickups,
                "total_deliveries": route.total_deliveries,
                "stops": [
                    {
                        "stop_id": stop.stop_id,
                        "hotel_id": stop.hotel_id,
                        "hotel_name": stop.hotel_name,
                        "priority": stop.priority.value,
                        "eta_slot": stop.eta_slot,
                        "pickup_service_ids": list(stop.pickup_service_ids),
                        "delivery_service_ids": list(stop.delivery_service_ids),
                    }
                    for stop in route.stops
                ],
            }
            for route in result.routes
        ],
    }


def routes_to_csv(result: RoutePlanningResult) -> str:
    """One row per service visit, in route and stop order."""
    buffer = io.StringIO()
    fieldnames = [
        "route_id",
        "route_number",
        "agent_id",
        "sequence",
        "stop_id",
        "hotel_id",
        "hotel_name",
        "eta_slot",
        "priority",
        "kind",
        "service_id",
    ]
    writer = csv.DictWriter(buffer, fieldnames=fieldnames)
    writer.writeheader()
    for route in result.routes:
        for sequence, stop in enumerate(route.stops, start=1):
            visits = [("pickup", sid) for sid in stop.pickup_service_ids]
            visits += [("delivery", sid) for sid in stop.delivery_service_ids]
            for kind, service_id in visits:
                writer.writerow(
                    {
                        "route_id": route.route_id,
                        "route_number": route.route_number,
                        "agent_id": route.agent_id,
                        "sequence": sequence,
                        "stop_id": stop.stop_id,
                        "hotel_id": stop.hotel_id,
                        "hotel_name": stop.hotel_name,
                        "eta_slot": stop.eta_slot,
                        "priority": stop.priority.value,
                        "kind": kind,
                        "service_id": service_id,
                    }
                )
    return buffer.getvalue()
