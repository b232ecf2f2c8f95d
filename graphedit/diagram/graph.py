"""
Graph store: the arena of diagram cells.

Elements and links are kept by instance id in insertion order, with an
adjacency index from element id to incident links. Structural changes are
announced as `change_cells`; property changes as `element_event` /
`link_event` and on the per-cell keyed dispatcher.

Listeners always observe a fully-applied mutation: events are triggered
only after the arena and the adjacency index are consistent again.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from enum import Enum
from typing import Any, Iterable, Iterator

from ..errors import DanglingReferenceError, DuplicateCellError, InvariantViolation
from ..events import EventSource, KeyedEventSource, PropertyChange
from ..model import ElementModel, LinkModel, LinkTypeIri
from .cells import (
    Cell,
    Element,
    EntityElement,
    EntityGroup,
    EntityGroupItem,
    Link,
    LinkTypeVisibility,
    RelationGroup,
    RelationGroupItem,
    RelationLink,
    TemplateState,
    Vector,
    holds_entity,
    link_type_of,
)

logger = logging.getLogger(__name__)


class CellChange(str, Enum):
    """Sub-event tag for per-cell property changes."""

    DATA = "change_data"
    POSITION = "change_position"
    EXPANDED = "change_expanded"
    ELEMENT_STATE = "change_element_state"
    ITEMS = "change_items"
    VERTICES = "change_vertices"
    LINK_STATE = "change_link_state"


@dataclass(frozen=True)
class CellEvent:
    kind: CellChange
    source: Cell
    previous: Any


@dataclass(frozen=True)
class CellsChanged:
    added: tuple[Cell, ...] = ()
    removed: tuple[Cell, ...] = ()


class Graph:
    """Cells keyed by instance id plus an element-to-links adjacency index."""

    def __init__(self) -> None:
        self.events = EventSource()
        self.cell_events = KeyedEventSource()
        self._elements: dict[str, Element] = {}
        self._links: dict[str, Link] = {}
        self._adjacency: dict[str, list[Link]] = {}
        self._link_visibility: dict[LinkTypeIri, LinkTypeVisibility] = {}
        self._transient_links: set[str] = set()

    # ------------------------------------------------------------------
    # Reads
    # ------------------------------------------------------------------

    @property
    def elements(self) -> list[Element]:
        return list(self._elements.values())

    @property
    def links(self) -> list[Link]:
        return list(self._links.values())

    def get_element(self, element_id: str) -> Element | None:
        return self._elements.get(element_id)

    def get_link(self, link_id: str) -> Link | None:
        return self._links.get(link_id)

    def get_cell(self, cell_id: str) -> Cell | None:
        return self._elements.get(cell_id) or self._links.get(cell_id)

    def get_element_links(self, element: Element | str) -> list[Link]:
        element_id = element if isinstance(element, str) else element.id
        return list(self._adjacency.get(element_id, ()))

    def iterate_links(self, source_id: str, target_id: str, type_id: LinkTypeIri | None = None) -> Iterator[Link]:
        for link in self._adjacency.get(source_id, ()):
            if link.source_id != source_id or link.target_id != target_id:
                continue
            if type_id is not None and link_type_of(link) != type_id:
                continue
            yield link

    def source_of(self, link: Link) -> Element:
        return self._elements[link.source_id]

    def target_of(self, link: Link) -> Element:
        return self._elements[link.target_id]

    # ------------------------------------------------------------------
    # Structure
    # ------------------------------------------------------------------

    def add_element(self, element: Element) -> None:
        if element.id in self._elements or element.id in self._links:
            raise DuplicateCellError(f"Cell already exists: {element.id}")
        self._elements[element.id] = element
        self._adjacency[element.id] = []
        self.events.trigger("change_cells", CellsChanged(added=(element,)))

    def remove_element(self, element_id: str) -> Element | None:
        """Remove an element and, silently, its incident links; one event for all."""
        element = self._elements.get(element_id)
        if element is None:
            return None
        removed_links: list[Link] = []
        for link in list(self._adjacency.get(element_id, ())):
            self._detach_link(link)
            removed_links.append(link)
        del self._elements[element_id]
        del self._adjacency[element_id]
        self.events.trigger("change_cells", CellsChanged(removed=(element, *removed_links)))
        return element

    def add_link(self, link: Link) -> None:
        if link.id in self._links or link.id in self._elements:
            raise DuplicateCellError(f"Cell already exists: {link.id}")
        source = self._elements.get(link.source_id)
        target = self._elements.get(link.target_id)
        if source is None or target is None:
            missing = link.source_id if source is None else link.target_id
            raise DanglingReferenceError(f"Link {link.id} references missing element {missing}")
        self._check_endpoints(link, source, target)
        self._links[link.id] = link
        self._adjacency[link.source_id].append(link)
        if link.target_id != link.source_id:
            self._adjacency[link.target_id].append(link)
        self.events.trigger("change_cells", CellsChanged(added=(link,)))

    def remove_link(self, link_id: str) -> Link | None:
        link = self._links.get(link_id)
        if link is None:
            return None
        self._detach_link(link)
        self.events.trigger("change_cells", CellsChanged(removed=(link,)))
        return link

    def mark_transient(self, link: Link) -> None:
        """Keep `link` out of the links an element removal captures for its undo."""
        if link.id in self._links:
            self._transient_links.add(link.id)

    def is_transient(self, link: Link) -> bool:
        return link.id in self._transient_links

    def _detach_link(self, link: Link) -> None:
        del self._links[link.id]
        self._transient_links.discard(link.id)
        for endpoint in {link.source_id, link.target_id}:
            incident = self._adjacency.get(endpoint)
            if incident is not None and link in incident:
                incident.remove(link)

    @staticmethod
    def _check_endpoints(link: Link, source: Element, target: Element) -> None:
        if isinstance(link, RelationLink):
            relations: Iterable[LinkModel] = (link.data,)
        else:
            relations = (item.data for item in link.items)
        for data in relations:
            if not holds_entity(source, data.source_id) or not holds_entity(target, data.target_id):
                raise InvariantViolation(
                    f"Relation {data.source_id} -> {data.target_id} does not match "
                    f"the entities of link endpoints {link.source_id} -> {link.target_id}"
                )

    # ------------------------------------------------------------------
    # Property mutators (called by commands only)
    # ------------------------------------------------------------------

    def _element_changed(self, element: Element, kind: CellChange, previous: Any) -> None:
        event = CellEvent(kind=kind, source=element, previous=previous)
        self.cell_events.trigger(element.id, kind.value, event)
        self.events.trigger("element_event", event)

    def _link_changed(self, link: Link, kind: CellChange, previous: Any) -> None:
        event = CellEvent(kind=kind, source=link, previous=previous)
        self.cell_events.trigger(link.id, kind.value, event)
        self.events.trigger("link_event", event)

    def set_element_data(self, element: EntityElement, data: ElementModel) -> None:
        previous = element.data
        if previous == data:
            return
        element.data = data
        self._element_changed(element, CellChange.DATA, previous)

    def set_position(self, element: Element, position: Vector) -> None:
        previous = element.position
        if previous == position:
            return
        element.position = position
        self._element_changed(element, CellChange.POSITION, previous)

    def set_expanded(self, element: Element, expanded: bool) -> None:
        previous = element.expanded
        if previous == expanded:
            return
        element.expanded = expanded
        self._element_changed(element, CellChange.EXPANDED, previous)

    def set_element_state(self, element: Element, state: TemplateState | None) -> None:
        previous = element.element_state
        if previous == state:
            return
        element.element_state = state
        self._element_changed(element, CellChange.ELEMENT_STATE, previous)

    def set_group_items(self, group: EntityGroup, items: Iterable[EntityGroupItem]) -> None:
        previous = group.items
        group.items = items
        if group.items == previous:
            return
        self._element_changed(group, CellChange.ITEMS, previous)

    def set_link_data(self, link: RelationLink, data: LinkModel) -> None:
        previous = link.data
        if previous == data:
            return
        link.data = data
        self._link_changed(link, CellChange.DATA, previous)

    def set_vertices(self, link: Link, vertices: Iterable[Vector]) -> None:
        previous = link.vertices
        vertices = tuple(vertices)
        if previous == vertices:
            return
        link.vertices = vertices
        self._link_changed(link, CellChange.VERTICES, previous)

    def set_link_state(self, link: Link, state: TemplateState | None) -> None:
        previous = link.link_state
        if previous == state:
            return
        link.link_state = state
        self._link_changed(link, CellChange.LINK_STATE, previous)

    def set_relation_group_items(self, group: RelationGroup, items: Iterable[RelationGroupItem]) -> None:
        previous = group.items
        group.items = items
        if group.items == previous:
            return
        self._link_changed(group, CellChange.ITEMS, previous)

    # ------------------------------------------------------------------
    # Link type visibility
    # ------------------------------------------------------------------

    def get_link_visibility(self, link_type_id: LinkTypeIri) -> LinkTypeVisibility:
        return self._link_visibility.get(link_type_id, LinkTypeVisibility.VISIBLE)

    def set_link_visibility(self, link_type_id: LinkTypeIri, visibility: LinkTypeVisibility) -> None:
        previous = self.get_link_visibility(link_type_id)
        if previous == visibility:
            return
        if visibility == LinkTypeVisibility.VISIBLE:
            self._link_visibility.pop(link_type_id, None)
        else:
            self._link_visibility[link_type_id] = visibility
        self.events.trigger("change_link_visibility", PropertyChange(source=link_type_id, previous=previous))

    def link_visibility_overrides(self) -> dict[LinkTypeIri, LinkTypeVisibility]:
        return dict(self._link_visibility)
