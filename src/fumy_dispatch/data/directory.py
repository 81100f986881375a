"""Hotel and agent directories: lookup contracts, static implementations and file loaders."""

from __future__ import annotations

import functools
import json
import logging
from decimal import Decimal, InvalidOperation
from pathlib import Path
from typing import Any, Iterable, Optional, Protocol, Sequence

from ..config import settings
from ..errors import NotFound
from ..models.domain import Agent, Hotel


class HotelDirectory(Protocol):
    def get_hotel(self, hotel_id: str) -> Hotel: ...


class AgentDirectory(Protocol):
    def list_active_agents(self, zone: str | None = None) -> list[Agent]: ...

    def get_agent(self, agent_id: str) -> Agent: ...


class StaticHotelDirectory:
    def __init__(self, hotels: Iterable[Hotel]) -> None:
        self._hotels = {hotel.hotel_id: hotel for hotel in hotels}

    def get_hotel(self, hotel_id: str) -> Hotel:
        hotel = self._hotels.get(hotel_id)
        if hotel is None:
            raise NotFound("hotel", hotel_id)
        return hotel

    def list_hotels(self) -> list[Hotel]:
        return list(self._hotels.values())


class StaticAgentDirectory:
    def __init__(self, agents: Iterable[Agent]) -> None:
        self._agents = {agent.agent_id: agent for agent in agents}

    def list_active_agents(self, zone: str | None = None) -> list[Agent]:
        return [
            agent
            for agent in self._agents.values()
            if agent.active and (zone is None or agent.zone == zone)
        ]

    def get_agent(self, agent_id: str) -> Agent:
        agent = self._agents.get(agent_id)
        if agent is None:
            raise NotFound("agent", agent_id)
        return agent


def suggest_agent(hotel: Hotel, agents: Sequence[Agent]) -> Optional[Agent]:
    """First active agent of the hotel's zone, else the first active agent."""
    active = [agent for agent in agents if agent.active]
    if not active:
        return None
    for agent in active:
        if agent.zone == hotel.zone:
            return agent
    return active[0]


def _first(row: dict[str, Any], *keys: str) -> Any:
    for key in keys:
        value = row.get(key)
        if value not in (None, ""):
            return value
    return None


FALSE_FLAGS = frozenset({"false", "0", "no", "off", "n", "f"})


def _coerce_flag(value: Any, default: bool = True) -> bool:
    """Read booleans stored as text ("false", "0") as well as real ones."""
    if value is None or value == "":
        return default
    if isinstance(value, str):
        return value.strip().lower() not in FALSE_FLAGS
    return bool(value)


def _coerce_decimal(value: Any) -> Decimal:
    if value in (None, ""):
        return Decimal("0")
    try:
        return Decimal(str(value).replace(",", ""))
    except InvalidOperation as exc:
        raise ValueError(f"Unable to parse decimal from value '{value}'") from exc


def _read_rows(path: Path) -> list[dict[str, Any]]:
    if not path.exists():
        raise FileNotFoundError(f"Directory file not found: {path}")
    with path.open(mode="r", encoding="utf-8") as handle:
        payload = json.load(handle)
    if isinstance(payload, dict):
        payload = payload.get("data") or payload.get("items") or []
    if not isinstance(payload, list):
        raise ValueError(f"Directory file '{path}' must contain a JSON list.")
    return payload


def hotel_from_row(row: dict[str, Any]) -> Optional[Hotel]:
    """Map a JSON or database row to a Hotel; None when id or zone is missing."""
    hotel_id = _first(row, "hotel_id", "id", "hotelId")
    zone = _first(row, "zone", "zona")
    if hotel_id is None or zone is None:
        return None
    return Hotel(
        hotel_id=str(hotel_id).strip(),
        name=str(_first(row, "name", "nombre") or hotel_id).strip(),
        zone=str(zone).strip(),
        price_per_kg=_coerce_decimal(_first(row, "price_per_kg", "pricePerKg")),
        address=_first(row, "address", "direccion"),
    )


def agent_from_row(row: dict[str, Any]) -> Optional[Agent]:
    """Map a user row to an Agent; None for other roles or rows without id."""
    role = str(row.get("role") or "repartidor").strip().lower()
    if role != "repartidor":
        return None
    agent_id = _first(row, "agent_id", "id")
    if agent_id is None:
        return None
    active = _coerce_flag(row.get("active", row.get("is_active")))
    return Agent(
        agent_id=str(agent_id).strip(),
        name=str(_first(row, "name", "nombre") or agent_id).strip(),
        zone=str(_first(row, "zone", "zona") or "").strip(),
        active=active,
    )


@functools.lru_cache(maxsize=1)
def load_hotels_from_file(source: Optional[Path] = None) -> tuple[Hotel, ...]:
    """Load hotels from the configured JSON file, skipping rows without id or zone."""
    hotels: list[Hotel] = []
    for row in _read_rows(source or settings.hotels_file):
        hotel = hotel_from_row(row)
        if hotel is None:
            logging.warning(f"Skipping hotel row without id or zone: {row}")
            continue
        hotels.append(hotel)
    return tuple(hotels)


@functools.lru_cache(maxsize=1)
def load_agents_from_file(source: Optional[Path] = None) -> tuple[Agent, ...]:
    """Load delivery agents; rows with a role other than repartidor are ignored."""
    agents = (agent_from_row(row) for row in _read_rows(source or settings.agents_file))
    return tuple(agent for agent in agents if agent is not None)
