"""
Diagram cells: entity nodes, entity groups, relation edges, relation groups.

Cells are plain records kept in the Graph arena and addressed by instance
id. They carry no event machinery; the Graph mutates them and emits the
events. Per-variant behaviour goes through the dispatch functions at the
bottom of this module.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from enum import Enum
from functools import singledispatch
from typing import Any, Iterable, Iterator, Mapping, Union

from ..errors import UnrelatedEndpointError
from ..model import ElementIri, ElementModel, LinkKey, LinkModel, LinkTypeIri
from ..util import new_cell_id


TemplateState = Mapping[str, Any]


@dataclass(frozen=True)
class Vector:
    x: float = 0.0
    y: float = 0.0

    def to_dict(self) -> dict[str, float]:
        return {"x": self.x, "y": self.y}

    @classmethod
    def from_dict(cls, data: Any) -> Vector:
        if not isinstance(data, dict):
            return cls()
        return cls(x=float(data.get("x", 0)), y=float(data.get("y", 0)))


class LinkTypeVisibility(str, Enum):
    VISIBLE = "visible"
    WITHOUT_LABEL = "withoutLabel"
    HIDDEN = "hidden"


@dataclass(eq=False)
class EntityElement:
    """A node displaying a single entity."""

    data: ElementModel
    id: str = field(default_factory=new_cell_id)
    position: Vector = Vector()
    expanded: bool = False
    element_state: TemplateState | None = None

    @property
    def iri(self) -> ElementIri:
        return self.data.id


@dataclass(frozen=True)
class EntityGroupItem:
    data: ElementModel
    element_state: TemplateState | None = None


class EntityGroup:
    """A node displaying several collapsed entities."""

    def __init__(
        self,
        items: Iterable[EntityGroupItem],
        *,
        id: str | None = None,
        position: Vector = Vector(),
        expanded: bool = False,
        element_state: TemplateState | None = None,
    ) -> None:
        self.id = id or new_cell_id()
        self.position = position
        self.expanded = expanded
        self.element_state = element_state
        self.items = tuple(items)

    @property
    def items(self) -> tuple[EntityGroupItem, ...]:
        return self._items

    @items.setter
    def items(self, value: Iterable[EntityGroupItem]) -> None:
        self._items = tuple(value)
        self._item_iris = frozenset(item.data.id for item in self._items)

    @property
    def item_iris(self) -> frozenset[ElementIri]:
        return self._item_iris

    def __repr__(self) -> str:
        return f"EntityGroup(id={self.id!r}, items={len(self._items)})"


@dataclass(eq=False)
class RelationLink:
    """An edge displaying a single relation between two element cells."""

    source_id: str
    target_id: str
    data: LinkModel
    id: str = field(default_factory=new_cell_id)
    vertices: tuple[Vector, ...] = ()
    link_state: TemplateState | None = None

    @property
    def type_id(self) -> LinkTypeIri:
        return self.data.link_type_id

    def with_direction(self, data: LinkModel) -> RelationLink:
        """
        New link for `data` between the same two cells.

        Endpoints are swapped when `data` runs the other way; any endpoint
        IRI that is not one of the current ones is an error.
        """
        current = (self.data.source_id, self.data.target_id)
        if data.source_id not in current:
            raise UnrelatedEndpointError("New relation source IRI is unrelated to the original relation")
        if data.target_id not in current:
            raise UnrelatedEndpointError("New relation target IRI is unrelated to the original relation")
        source_id = self.source_id if data.source_id == self.data.source_id else self.target_id
        target_id = self.target_id if data.target_id == self.data.target_id else self.source_id
        return RelationLink(source_id=source_id, target_id=target_id, data=data)


@dataclass(frozen=True)
class RelationGroupItem:
    data: LinkModel
    link_state: TemplateState | None = None


class RelationGroup:
    """An edge displaying several relations of one type between the same two cells."""

    def __init__(
        self,
        source_id: str,
        target_id: str,
        type_id: LinkTypeIri,
        items: Iterable[RelationGroupItem],
        *,
        id: str | None = None,
        vertices: tuple[Vector, ...] = (),
        link_state: TemplateState | None = None,
    ) -> None:
        self.id = id or new_cell_id()
        self.source_id = source_id
        self.target_id = target_id
        self.type_id = type_id
        self.vertices = tuple(vertices)
        self.link_state = link_state
        self.items = tuple(items)

    @property
    def items(self) -> tuple[RelationGroupItem, ...]:
        return self._items

    @items.setter
    def items(self, value: Iterable[RelationGroupItem]) -> None:
        self._items = tuple(value)
        self._item_keys = frozenset(item.data.key for item in self._items)

    @property
    def item_keys(self) -> frozenset[LinkKey]:
        return self._item_keys

    def __repr__(self) -> str:
        return f"RelationGroup(id={self.id!r}, type_id={self.type_id!r}, items={len(self._items)})"


Element = Union[EntityElement, EntityGroup]
Link = Union[RelationLink, RelationGroup]
Cell = Union[EntityElement, EntityGroup, RelationLink, RelationGroup]


def is_element(cell: Any) -> bool:
    return isinstance(cell, (EntityElement, EntityGroup))


def is_link(cell: Any) -> bool:
    return isinstance(cell, (RelationLink, RelationGroup))


@singledispatch
def iterate_entities_of(element: Any) -> Iterator[ElementModel]:
    raise TypeError(f"Not an element cell: {element!r}")


@iterate_entities_of.register
def _(element: EntityElement) -> Iterator[ElementModel]:
    yield element.data


@iterate_entities_of.register
def _(element: EntityGroup) -> Iterator[ElementModel]:
    for item in element.items:
        yield item.data


@singledispatch
def iterate_relations_of(link: Any) -> Iterator[LinkModel]:
    raise TypeError(f"Not a link cell: {link!r}")


@iterate_relations_of.register
def _(link: RelationLink) -> Iterator[LinkModel]:
    yield link.data


@iterate_relations_of.register
def _(link: RelationGroup) -> Iterator[LinkModel]:
    for item in link.items:
        yield item.data


@singledispatch
def holds_entity(element: Any, iri: ElementIri) -> bool:
    raise TypeError(f"Not an element cell: {element!r}")


@holds_entity.register
def _(element: EntityElement, iri: ElementIri) -> bool:
    return element.iri == iri


@holds_entity.register
def _(element: EntityGroup, iri: ElementIri) -> bool:
    return iri in element.item_iris


@singledispatch
def link_type_of(link: Any) -> LinkTypeIri:
    raise TypeError(f"Not a link cell: {link!r}")


@link_type_of.register
def _(link: RelationLink) -> LinkTypeIri:
    return link.type_id


@link_type_of.register
def _(link: RelationGroup) -> LinkTypeIri:
    return link.type_id
