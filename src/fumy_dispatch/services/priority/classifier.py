"""Keyword heuristic that derives a service priority from free-text observations."""

from __future__ import annotations

from typing import Optional

from ...models.domain import Priority

# Matched as lowercase substrings, so "ya" also fires inside longer words.
# Route contents depend on this table; changing it reorders existing plans.
URGENT_KEYWORDS: tuple[str, ...] = (
    "urgente", "evento", "prisa", "importante", "vip", "emergencia",
    "asap", "inmediato", "ya", "hoy", "rapido", "rápido", "express",
    "boda", "matrimonio", "conferencia", "reunión", "reunion", "viaje",
    "checkout", "check-out", "salida", "vuelo", "aeropuerto",
)
CARE_KEYWORDS: tuple[str, ...] = (
    "delicada", "especial", "cuidado", "fragil", "frágil", "costosa",
    "exclusiva", "premium", "fina", "seda", "cashmere", "lana",
)


def classify_priority(observations: Optional[str]) -> Priority:
    if not observations:
        return Priority.NORMAL

    lowered = observations.lower()
    if any(keyword in lowered for keyword in URGENT_KEYWORDS):
        return Priority.HIGH
    if any(keyword in lowered for keyword in CARE_KEYWORDS):
        return Priority.MEDIUM
    return Priority.NORMAL
