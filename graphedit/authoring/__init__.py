"""Authoring overlay (pending changes) and their validation."""

from .state import (
    AuthoringEvent,
    AuthoringKind,
    AuthoringState,
    EntityChange,
    RelationChange,
    TemporaryState,
)
from .validation import (
    Severity,
    ValidationItem,
    ValidationPipeline,
    ValidationResult,
    ValidationState,
)

__all__ = [
    "AuthoringEvent",
    "AuthoringKind",
    "AuthoringState",
    "EntityChange",
    "RelationChange",
    "Severity",
    "TemporaryState",
    "ValidationItem",
    "ValidationPipeline",
    "ValidationResult",
    "ValidationState",
]
