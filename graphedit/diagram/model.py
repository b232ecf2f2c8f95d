"""
Diagram model: the graph store, its type descriptors, selection and the
command history guarding them.

Every structural change goes through a history command. The higher-level
operations (creating relations between all elements displaying their
endpoints, grouping and ungrouping) each run in one batch so they undo as
a single step.
"""

from __future__ import annotations

import logging
from dataclasses import replace
from typing import TYPE_CHECKING, Any, Callable, Iterable, Sequence

from ..cancellation import CancellationToken
from ..events import EventObserver, EventSource, PropertyChange
from ..history import CommandHistory
from ..model import ElementIri, ElementModel, LinkKey, LinkModel, LinkTypeIri, placeholder_entity
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
    iterate_entities_of,
    iterate_relations_of,
)
from .commands import (
    AddElementCommand,
    AddLinkCommand,
    ChangeLinkTypeVisibility,
    RemoveElementCommand,
    RemoveLinkCommand,
    SetEntityData,
    SetEntityGroupItems,
    SetLinkData,
    SetLinkState,
    SetRelationGroupItems,
)
from .graph import CellsChanged, Graph
from .types import TypeRegistry

if TYPE_CHECKING:
    from ..providers.base import DataProvider

logger = logging.getLogger(__name__)


class DiagramModel:
    """Graph store plus history, types and selection for one diagram."""

    def __init__(self, history: CommandHistory | None = None) -> None:
        self.graph = Graph()
        self.history = history or CommandHistory()
        self.types = TypeRegistry()
        self.events = EventSource()
        self._selection: tuple[Cell, ...] = ()
        self._observer = EventObserver()
        self._observer.listen_any(self.graph.events, self.events.trigger)
        self._observer.listen(self.graph.events, "change_cells", self._on_cells_changed)

    def dispose(self) -> None:
        self._observer.stop_listening()

    # ------------------------------------------------------------------
    # Graph access
    # ------------------------------------------------------------------

    @property
    def elements(self) -> list[Element]:
        return self.graph.elements

    @property
    def links(self) -> list[Link]:
        return self.graph.links

    def get_element(self, element_id: str) -> Element | None:
        return self.graph.get_element(element_id)

    def get_link(self, link_id: str) -> Link | None:
        return self.graph.get_link(link_id)

    def get_element_links(self, element: Element | str) -> list[Link]:
        return self.graph.get_element_links(element)

    def find_entities(self, iri: ElementIri) -> list[Element]:
        """All elements displaying the entity `iri`, directly or as a group member."""
        return [element for element in self.graph.elements if holds_entity(element, iri)]

    def find_entity_data(self, iri: ElementIri) -> ElementModel | None:
        for element in self.find_entities(iri):
            for data in iterate_entities_of(element):
                if data.id == iri:
                    return data
        return None

    def find_link(self, type_id: LinkTypeIri, source_id: str, target_id: str) -> Link | None:
        """First link of `type_id` between two element cells, by instance id."""
        return next(self.graph.iterate_links(source_id, target_id, type_id), None)

    def has_relation(self, key: LinkKey | LinkModel) -> bool:
        key = key if isinstance(key, LinkKey) else key.key
        for link in self.graph.links:
            for relation in iterate_relations_of(link):
                if relation.key == key:
                    return True
        return False

    # ------------------------------------------------------------------
    # Structural changes (each recorded in history)
    # ------------------------------------------------------------------

    def add_element(self, element: Element) -> None:
        for data in iterate_entities_of(element):
            for type_iri in data.types:
                self.types.create_element_type(type_iri)
        self.history.execute(AddElementCommand(self.graph, element))

    def remove_element(self, element_id: str) -> None:
        element = self.graph.get_element(element_id)
        if element is None:
            return
        self.history.execute(RemoveElementCommand(self.graph, element))

    def add_link(self, link: Link) -> None:
        type_id = link.type_id
        self.types.create_link_type(type_id)
        self.history.execute(AddLinkCommand(self.graph, link))

    def remove_link(self, link_id: str) -> None:
        link = self.graph.get_link(link_id)
        if link is None:
            return
        self.history.execute(RemoveLinkCommand(self.graph, link))

    def create_element(self, data: ElementModel | ElementIri, *, position: Vector = Vector()) -> EntityElement:
        """Reuse an element displaying this entity alone, or add a new one."""
        if isinstance(data, str):
            data = placeholder_entity(data)
        for element in self.graph.elements:
            if isinstance(element, EntityElement) and element.iri == data.id:
                return element
        element = EntityElement(data=data, position=position)
        self.add_element(element)
        return element

    def set_entity_data(self, target: ElementIri, data: ElementModel) -> None:
        self.history.execute(SetEntityData(self.graph, target, data))

    def set_link_visibility(self, link_type_id: LinkTypeIri, visibility: LinkTypeVisibility) -> None:
        self.history.execute(ChangeLinkTypeVisibility(self.graph, link_type_id, visibility))

    def create_links(self, data: LinkModel, link_state: TemplateState | None = None) -> list[Link]:
        """
        Display a relation between every pair of elements holding its endpoints.

        On each pair an existing link for the same relation is updated, a
        link of the same type is merged into a relation group, or a new
        relation link is added.
        """
        sources = self.find_entities(data.source_id)
        targets = self.find_entities(data.target_id)
        created: list[Link] = []
        with self.history.start_batch("Create links"):
            for source in sources:
                for target in targets:
                    created.append(self._create_relation(source, target, data, link_state))
        return created

    def _create_relation(
        self,
        source: Element,
        target: Element,
        data: LinkModel,
        link_state: TemplateState | None,
    ) -> Link:
        existing = list(self.graph.iterate_links(source.id, target.id, data.link_type_id))
        for link in existing:
            if isinstance(link, RelationLink) and link.data.key == data.key:
                self.history.execute(SetLinkData(self.graph, link, data))
                if link_state is not None:
                    self.history.execute(SetLinkState(self.graph, link, link_state))
                return link
            if isinstance(link, RelationGroup) and data.key in link.item_keys:
                items = [
                    replace(item, data=data, link_state=link_state if link_state is not None else item.link_state)
                    if item.data.key == data.key
                    else item
                    for item in link.items
                ]
                self.history.execute(SetRelationGroupItems(self.graph, link, items))
                return link

        for link in existing:
            if isinstance(link, RelationLink):
                group = RelationGroup(
                    source_id=source.id,
                    target_id=target.id,
                    type_id=data.link_type_id,
                    items=[
                        RelationGroupItem(data=link.data, link_state=link.link_state),
                        RelationGroupItem(data=data, link_state=link_state),
                    ],
                )
                self.remove_link(link.id)
                self.add_link(group)
                return group
            items = [*link.items, RelationGroupItem(data=data, link_state=link_state)]
            self.history.execute(SetRelationGroupItems(self.graph, link, items))
            return link

        relation = RelationLink(source_id=source.id, target_id=target.id, data=data, link_state=link_state)
        self.add_link(relation)
        return relation

    def regroup_links(self, groups: Iterable[RelationGroup]) -> None:
        """Collapse relation groups left with one item; drop empty ones."""
        for group in groups:
            if self.graph.get_link(group.id) is None:
                continue
            if len(group.items) > 1:
                continue
            self.remove_link(group.id)
            if group.items:
                (item,) = group.items
                self.add_link(
                    RelationLink(
                        source_id=group.source_id,
                        target_id=group.target_id,
                        data=item.data,
                        vertices=group.vertices,
                        link_state=item.link_state,
                    )
                )

    def remove_relations(self, links: Iterable[Link], match: Callable[[LinkModel], bool]) -> None:
        """Remove relations matching `match(LinkModel)` from the given links."""
        to_remove: list[Link] = []
        to_regroup: list[RelationGroup] = []
        for link in links:
            if isinstance(link, RelationLink):
                if match(link.data):
                    to_remove.append(link)
            elif any(match(item.data) for item in link.items):
                items = [item for item in link.items if not match(item.data)]
                self.history.execute(SetRelationGroupItems(self.graph, link, items))
                to_regroup.append(link)
        for link in to_remove:
            self.remove_link(link.id)
        self.regroup_links(to_regroup)

    # ------------------------------------------------------------------
    # Grouping
    # ------------------------------------------------------------------

    def group(self, entities: Sequence[EntityElement]) -> EntityGroup:
        """Collapse entity elements into one group node, re-homing their links."""
        with self.history.start_batch("Group entities"):
            items: list[EntityGroupItem] = []
            links: dict[str, Link] = {}
            for entity in entities:
                items.append(EntityGroupItem(data=entity.data, element_state=entity.element_state))
                for link in self.graph.get_element_links(entity):
                    links[link.id] = link

            for link in links.values():
                self.remove_link(link.id)
            # Elements go only after all their links were collected.
            for entity in entities:
                self.remove_element(entity.id)

            group = EntityGroup(items, position=_center_of(entities))
            self.add_element(group)
            self._recreate_links(links.values())
        return group

    def ungroup_all(self, groups: Sequence[EntityGroup]) -> list[EntityElement]:
        with self.history.start_batch("Ungroup entities"):
            ungrouped: list[EntityElement] = []
            links: dict[str, Link] = {}
            for group in groups:
                for link in self.graph.get_element_links(group):
                    links[link.id] = link
                self.remove_element(group.id)
                for item in group.items:
                    entity = EntityElement(
                        data=item.data,
                        position=group.position,
                        element_state=item.element_state,
                    )
                    self.add_element(entity)
                    ungrouped.append(entity)
            # Both endpoints of every link exist only after all groups are expanded.
            self._recreate_links(links.values())
        return ungrouped

    def ungroup_some(self, group: EntityGroup, iris: Iterable[ElementIri]) -> list[EntityElement]:
        """Pull the entities `iris` out of `group`; a group left with one item is dissolved."""
        iris = set(iris)
        left = [item for item in group.items if item.data.id not in iris]
        if len(left) <= 1:
            return self.ungroup_all([group])

        with self.history.start_batch("Ungroup entities"):
            links: dict[str, Link] = {}
            for link in self.graph.get_element_links(group):
                if any(r.source_id in iris or r.target_id in iris for r in iterate_relations_of(link)):
                    links[link.id] = link
            for link in links.values():
                self.remove_link(link.id)

            ungrouped: list[EntityElement] = []
            for item in group.items:
                if item.data.id in iris:
                    entity = EntityElement(
                        data=item.data,
                        position=group.position,
                        element_state=item.element_state,
                    )
                    self.add_element(entity)
                    ungrouped.append(entity)

            self.history.execute(SetEntityGroupItems(self.graph, group, left))
            self._recreate_links(links.values())
        return ungrouped

    def _recreate_links(self, links: Iterable[Link]) -> None:
        for link in links:
            if isinstance(link, RelationLink):
                self.create_links(link.data, link.link_state)
            else:
                for item in link.items:
                    self.create_links(item.data, item.link_state)

    # ------------------------------------------------------------------
    # Selection
    # ------------------------------------------------------------------

    @property
    def selection(self) -> tuple[Cell, ...]:
        return self._selection

    def set_selection(self, cells: Iterable[Cell]) -> None:
        previous = self._selection
        selection = tuple(cells)
        if selection == previous:
            return
        self._selection = selection
        self.events.trigger("change_selection", PropertyChange(source=self, previous=previous))

    def _on_cells_changed(self, event: CellsChanged) -> None:
        if not event.removed or not self._selection:
            return
        removed = {cell.id for cell in event.removed}
        if any(cell.id in removed for cell in self._selection):
            self.set_selection(cell for cell in self._selection if cell.id not in removed)

    # ------------------------------------------------------------------
    # Data provider integration
    # ------------------------------------------------------------------

    async def fetch_entity_data(
        self,
        provider: DataProvider,
        iris: Iterable[ElementIri] | None = None,
        token: CancellationToken | None = None,
    ) -> int:
        """
        Replace displayed entity records with the provider's.

        The update is bookkeeping and is not recorded in history.
        Returns the number of records applied.
        """
        if iris is None:
            wanted = {data.id for element in self.graph.elements for data in iterate_entities_of(element)}
        else:
            wanted = set(iris)
        if not wanted:
            return 0
        records = await provider.elements(sorted(wanted), token=token)
        if token is not None:
            token.raise_if_cancelled()

        batch = self.history.start_batch("Fetch entity data")
        try:
            for iri, data in records.items():
                if iri in wanted and data.id == iri:
                    self.history.execute(SetEntityData(self.graph, iri, data))
        finally:
            batch.discard()
        return len(records)

    async def restore_links(self, provider: DataProvider, token: CancellationToken | None = None) -> list[Link]:
        """Ask the provider for relations among displayed entities and display them."""
        from ..providers.base import LinkQuery

        iris = sorted({data.id for element in self.graph.elements for data in iterate_entities_of(element)})
        if not iris:
            return []
        relations = await provider.links(LinkQuery(primary=tuple(iris)), token=token)
        if token is not None:
            token.raise_if_cancelled()

        created: list[Link] = []
        batch = self.history.start_batch("Create loaded links")
        try:
            for relation in relations:
                self.types.create_link_type(relation.link_type_id)
                created.extend(self.create_links(relation))
        finally:
            batch.discard()
        return created

    # ------------------------------------------------------------------
    # Persistence
    # ------------------------------------------------------------------

    def export_layout(self) -> dict[str, Any]:
        from .serialization import export_layout

        return export_layout(self)

    def import_layout(
        self,
        diagram: dict[str, Any],
        preloaded: dict[ElementIri, ElementModel] | None = None,
    ) -> None:
        from .serialization import import_layout

        import_layout(self, diagram, preloaded)


def _center_of(elements: Sequence[Element]) -> Vector:
    if not elements:
        return Vector()
    xs = [e.position.x for e in elements]
    ys = [e.position.y for e in elements]
    return Vector(x=(min(xs) + max(xs)) / 2, y=(min(ys) + max(ys)) / 2)
