"""External collaborator protocols and a reference in-memory data provider."""

from .base import (
    DataProvider,
    EntityValidationEvent,
    LinkQuery,
    LookupQuery,
    MetadataProvider,
    RelationValidationEvent,
    ValidationProvider,
)
from .memory import InMemoryDataProvider

__all__ = [
    "DataProvider",
    "EntityValidationEvent",
    "InMemoryDataProvider",
    "LinkQuery",
    "LookupQuery",
    "MetadataProvider",
    "RelationValidationEvent",
    "ValidationProvider",
]
