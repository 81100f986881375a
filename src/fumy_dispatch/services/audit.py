"""Audit trail of service and route state changes."""

from __future__ import annotations

import logging
import threading
from dataclasses import dataclass
from datetime import datetime
from typing import Optional

from ..models.domain import utcnow


@dataclass(slots=True)
class AuditEntry:
    entity: str
    entity_id: str
    action: str
    message: str
    at: datetime
    actor_id: Optional[str] = None
    previous_status: Optional[str] = None
    new_status: Optional[str] = None
    forced: bool = False


class AuditLog:
    """Append-only, in-process audit sink."""

    def __init__(self) -> None:
        self._lock = threading.Lock()
        self._entries: list[AuditEntry] = []

    def record(
        self,
        entity: str,
        entity_id: str,
        action: str,
        message: str,
        *,
        actor_id: str | None = None,
        previous_status: str | None = None,
        new_status: str | None = None,
        forced: bool = False,
        at: datetime | None = None,
    ) -> AuditEntry:
        entry = AuditEntry(
            entity=entity,
            entity_id=entity_id,
            action=action,
            message=message,
            at=at or utcnow(),
            actor_id=actor_id,
            previous_status=previous_status,
            new_status=new_status,
            forced=forced,
        )
        with self._lock:
            self._entries.append(entry)
        logging.info(f"[audit] {entity} {entity_id} {action}: {message}")
        return entry

    def entries_for(self, entity_id: str) -> list[AuditEntry]:
        with self._lock:
            return [entry for entry in self._entries if entry.entity_id == entity_id]

    def entries(self) -> list[AuditEntry]:
        with self._lock:
            return list(self._entries)
