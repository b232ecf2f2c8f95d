"""
Graph commands.

Each command holds the graph and the values it applies as plain fields;
`execute()` mutates the graph through its mutators and returns a command
built from the values it replaced.
"""

from __future__ import annotations

from dataclasses import replace
from typing import Iterable

from ..errors import InvariantViolation
from ..history import Command
from ..model import ElementIri, ElementModel, LinkModel, LinkTypeIri, rebind_link
from .cells import (
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
)
from .graph import Graph


class AddElementCommand(Command):
    def __init__(
        self,
        graph: Graph,
        element: Element,
        connected_links: Iterable[Link] = (),
        title: str = "Add element",
    ) -> None:
        self.graph = graph
        self.element = element
        self.connected_links = tuple(connected_links)
        self.title = title

    def execute(self) -> Command:
        self.graph.add_element(self.element)
        for link in self.connected_links:
            if self.graph.get_link(link.id) is None:
                self.graph.add_link(link)
        return RemoveElementCommand(self.graph, self.element, title=self.title)


class RemoveElementCommand(Command):
    """Removes an element; the inverse restores it with its incident non-transient links."""

    def __init__(self, graph: Graph, element: Element, title: str = "Remove element") -> None:
        self.graph = graph
        self.element = element
        self.title = title

    def execute(self) -> Command:
        links = [link for link in self.graph.get_element_links(self.element) if not self.graph.is_transient(link)]
        self.graph.remove_element(self.element.id)
        return AddElementCommand(self.graph, self.element, links, title=self.title)


class AddLinkCommand(Command):
    def __init__(self, graph: Graph, link: Link, title: str = "Add link") -> None:
        self.graph = graph
        self.link = link
        self.title = title

    def execute(self) -> Command:
        self.graph.add_link(self.link)
        return RemoveLinkCommand(self.graph, self.link, title=self.title)


class RemoveLinkCommand(Command):
    def __init__(self, graph: Graph, link: Link, title: str = "Remove link") -> None:
        self.graph = graph
        self.link = link
        self.title = title

    def execute(self) -> Command:
        self.graph.remove_link(self.link.id)
        return AddLinkCommand(self.graph, self.link, title=self.title)


class SetEntityData(Command):
    """
    Replace an entity record everywhere it is displayed.

    When the IRI changes, every relation touching the old IRI is rebound
    to the new one in the same step, so the graph never holds a relation
    pointing at an IRI no element carries.
    """

    title = "Set element data"

    def __init__(self, graph: Graph, target: ElementIri, data: ElementModel) -> None:
        self.graph = graph
        self.target = target
        self.data = data

    def execute(self) -> Command:
        previous: ElementModel | None = None
        for element in self.graph.elements:
            if isinstance(element, EntityElement) and element.iri == self.target:
                previous = element.data
                self.graph.set_element_data(element, self.data)
            elif isinstance(element, EntityGroup) and self.target in element.item_iris:
                items = []
                for item in element.items:
                    if item.data.id == self.target:
                        previous = item.data
                        item = replace(item, data=self.data)
                    items.append(item)
                self.graph.set_group_items(element, items)

        if previous is None:
            return Command.identity(self.title)

        if self.data.id != self.target:
            _rebind_relations(self.graph, self.target, self.data.id)
        return SetEntityData(self.graph, self.data.id, previous)


def _rebind_relations(graph: Graph, old_iri: ElementIri, new_iri: ElementIri) -> None:
    for link in graph.links:
        if isinstance(link, RelationLink):
            graph.set_link_data(link, rebind_link(link.data, old_iri, new_iri))
        else:
            items = [replace(item, data=rebind_link(item.data, old_iri, new_iri)) for item in link.items]
            graph.set_relation_group_items(link, items)


class SetRelationData(Command):
    """Replace relation data (same key) on every link displaying it."""

    title = "Set link data"

    def __init__(self, graph: Graph, old: LinkModel, new: LinkModel) -> None:
        if old.key != new.key:
            raise InvariantViolation("Cannot change relation type or endpoints in place")
        self.graph = graph
        self.old = old
        self.new = new

    def execute(self) -> Command:
        key = self.new.key
        for link in self.graph.links:
            if isinstance(link, RelationLink):
                if link.data.key == key:
                    self.graph.set_link_data(link, self.new)
            elif key in link.item_keys:
                items = [replace(item, data=self.new) if item.data.key == key else item for item in link.items]
                self.graph.set_relation_group_items(link, items)
        return SetRelationData(self.graph, self.new, self.old)


class SetLinkData(Command):
    """Replace the data of a single relation link."""

    title = "Set link data"

    def __init__(self, graph: Graph, link: RelationLink, data: LinkModel) -> None:
        self.graph = graph
        self.link = link
        self.data = data

    def execute(self) -> Command:
        previous = self.link.data
        self.graph.set_link_data(self.link, self.data)
        return SetLinkData(self.graph, self.link, previous)


class SetEntityGroupItems(Command):
    title = "Set entity group items"

    def __init__(self, graph: Graph, group: EntityGroup, items: Iterable[EntityGroupItem]) -> None:
        self.graph = graph
        self.group = group
        self.items = tuple(items)

    def execute(self) -> Command:
        previous = self.group.items
        self.graph.set_group_items(self.group, self.items)
        return SetEntityGroupItems(self.graph, self.group, previous)


class SetRelationGroupItems(Command):
    title = "Set relation group items"

    def __init__(self, graph: Graph, group: RelationGroup, items: Iterable[RelationGroupItem]) -> None:
        self.graph = graph
        self.group = group
        self.items = tuple(items)

    def execute(self) -> Command:
        previous = self.group.items
        self.graph.set_relation_group_items(self.group, self.items)
        return SetRelationGroupItems(self.graph, self.group, previous)


class SetElementExpanded(Command):
    def __init__(self, graph: Graph, element: Element, expanded: bool) -> None:
        self.graph = graph
        self.element = element
        self.expanded = expanded
        self.title = "Expand element" if expanded else "Collapse element"

    def execute(self) -> Command:
        previous = self.element.expanded
        self.graph.set_expanded(self.element, self.expanded)
        return SetElementExpanded(self.graph, self.element, previous)


class SetElementState(Command):
    title = "Set element state"

    def __init__(self, graph: Graph, element: Element, state: TemplateState | None) -> None:
        self.graph = graph
        self.element = element
        self.state = state

    def execute(self) -> Command:
        previous = self.element.element_state
        self.graph.set_element_state(self.element, self.state)
        return SetElementState(self.graph, self.element, previous)


class SetLinkState(Command):
    title = "Set link state"

    def __init__(self, graph: Graph, link: Link, state: TemplateState | None) -> None:
        self.graph = graph
        self.link = link
        self.state = state

    def execute(self) -> Command:
        previous = self.link.link_state
        self.graph.set_link_state(self.link, self.state)
        return SetLinkState(self.graph, self.link, previous)


class ChangeLinkTypeVisibility(Command):
    title = "Change link type visibility"

    def __init__(self, graph: Graph, link_type_id: LinkTypeIri, visibility: LinkTypeVisibility) -> None:
        self.graph = graph
        self.link_type_id = link_type_id
        self.visibility = visibility

    def execute(self) -> Command:
        previous = self.graph.get_link_visibility(self.link_type_id)
        self.graph.set_link_visibility(self.link_type_id, self.visibility)
        return ChangeLinkTypeVisibility(self.graph, self.link_type_id, previous)


class RestoreGeometry(Command):
    """Element positions and link vertices; applying it restores them."""

    layout_only = True

    def __init__(
        self,
        graph: Graph,
        elements: Iterable[tuple[Element, Vector]],
        links: Iterable[tuple[Link, tuple[Vector, ...]]],
        title: str = "Move elements and links",
    ) -> None:
        self.graph = graph
        self.elements = tuple(elements)
        self.links = tuple(links)
        self.title = title

    @classmethod
    def capture(cls, graph: Graph) -> RestoreGeometry:
        return cls.capture_partial(graph, graph.elements, graph.links)

    @classmethod
    def capture_partial(cls, graph: Graph, elements: Iterable[Element], links: Iterable[Link]) -> RestoreGeometry:
        return cls(
            graph,
            [(element, element.position) for element in elements],
            [(link, link.vertices) for link in links],
        )

    def has_changes(self) -> bool:
        return bool(self.elements) or bool(self.links)

    def filter_out_unchanged(self) -> RestoreGeometry:
        return RestoreGeometry(
            self.graph,
            [(e, p) for e, p in self.elements if e.position != p],
            [(link, v) for link, v in self.links if link.vertices != v],
            title=self.title,
        )

    def execute(self) -> Command:
        inverse = RestoreGeometry.capture_partial(
            self.graph,
            (e for e, _ in self.elements),
            (link for link, _ in self.links),
        )
        inverse.title = self.title
        for element, position in self.elements:
            self.graph.set_position(element, position)
        for link, vertices in self.links:
            self.graph.set_vertices(link, vertices)
        return inverse


def set_element_position(graph: Graph, element: Element, position: Vector) -> Command:
    """Command moving one element; layout only."""
    return RestoreGeometry(graph, [(element, position)], [], title="Move element")
