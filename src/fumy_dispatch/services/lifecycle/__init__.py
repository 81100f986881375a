"""Service registration, claiming and state transitions."""

from .rules import ALLOWED_TRANSITIONS, TransitionPayload, apply_transition, can_transition
from .service import ServiceLifecycleManager

__all__ = [
    "ALLOWED_TRANSITIONS",
    "ServiceLifecycleManager",
    "TransitionPayload",
    "apply_transition",
    "can_transition",
]
