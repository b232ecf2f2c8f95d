"""
Provider protocols consumed by the editing core.

Providers are external collaborators: the core never knows how records
are stored or how constraints are checked. Every call is async and takes
a cancellation token; a provider may ignore the token, in which case the
caller discards the result.
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import TYPE_CHECKING, Protocol, Sequence, runtime_checkable

from ..cancellation import CancellationToken
from ..model import (
    DirectedLinkType,
    ElementIri,
    ElementModel,
    ElementTypeIri,
    LinkModel,
    LinkTypeIri,
)

if TYPE_CHECKING:
    from ..authoring.state import AuthoringState
    from ..authoring.validation import ValidationItem


@dataclass(frozen=True)
class LinkQuery:
    """Relations with an endpoint in `primary` (and the other in `secondary`, if given)."""

    primary: tuple[ElementIri, ...]
    secondary: tuple[ElementIri, ...] | None = None
    link_types: tuple[LinkTypeIri, ...] | None = None


@dataclass(frozen=True)
class LookupQuery:
    text: str | None = None
    element_type: ElementTypeIri | None = None
    limit: int = 100


@runtime_checkable
class DataProvider(Protocol):
    async def elements(
        self,
        ids: Sequence[ElementIri],
        token: CancellationToken | None = None,
    ) -> dict[ElementIri, ElementModel]: ...

    async def links(
        self,
        query: LinkQuery,
        token: CancellationToken | None = None,
    ) -> list[LinkModel]: ...

    async def lookup(
        self,
        query: LookupQuery,
        token: CancellationToken | None = None,
    ) -> list[ElementModel]: ...


@runtime_checkable
class MetadataProvider(Protocol):
    async def types_of_elements_dragged_from(
        self,
        source: ElementModel,
        token: CancellationToken | None = None,
    ) -> list[ElementTypeIri]: ...

    async def possible_link_types(
        self,
        source: ElementModel,
        target: ElementModel,
        token: CancellationToken | None = None,
    ) -> list[DirectedLinkType]: ...

    async def generate_new_element(
        self,
        types: Sequence[ElementTypeIri],
        token: CancellationToken | None = None,
    ) -> ElementModel: ...

    async def can_delete_element(
        self,
        element: ElementModel,
        token: CancellationToken | None = None,
    ) -> bool: ...

    async def can_edit_element(
        self,
        element: ElementModel,
        token: CancellationToken | None = None,
    ) -> bool: ...


@dataclass(frozen=True)
class EntityValidationEvent:
    target: ElementModel
    outbound_links: tuple[LinkModel, ...]
    state: AuthoringState


@dataclass(frozen=True)
class RelationValidationEvent:
    target: LinkModel
    source: ElementModel | None
    target_entity: ElementModel | None
    state: AuthoringState


@runtime_checkable
class ValidationProvider(Protocol):
    async def validate_entity(
        self,
        event: EntityValidationEvent,
        token: CancellationToken | None = None,
    ) -> list[ValidationItem]: ...

    async def validate_relation(
        self,
        event: RelationValidationEvent,
        token: CancellationToken | None = None,
    ) -> list[ValidationItem]: ...
