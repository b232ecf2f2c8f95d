"""
Editor controller: authoring operations over a diagram model.

The controller owns the authoring state (pending changes), the temporary
state (previews kept out of history) and the validation pipeline. It is
constructed with its collaborators; nothing here is global.

Every authoring operation runs in one history batch, so the graph change
and the authoring-state change undo together. Temporary previews run in
discarded batches and never reach the undo stack.
"""

from __future__ import annotations

import asyncio
import logging
from dataclasses import replace
from enum import Enum
from typing import Any, Awaitable, Callable, Iterable, Sequence, TypeVar

from .authoring.state import (
    EMPTY,
    EMPTY_TEMPORARY,
    AuthoringEvent,
    AuthoringKind,
    AuthoringState,
    EntityChange,
    TemporaryState,
    add_entity,
    add_relation,
    change_entity,
    change_relation,
    delete_entity,
    delete_new_relations_connected_to,
    delete_relation,
    discard,
    is_deleted_relation,
    is_new_relation,
    temporary_add_entity,
    temporary_add_relation,
    temporary_delete_entity,
    temporary_delete_relation,
)
from .authoring.validation import ValidationPipeline, ValidationState, changed_validation_targets
from .cancellation import CancellationToken, LatestRequests
from .config import EditorSettings
from .diagram.cells import (
    Cell,
    EntityElement,
    EntityGroup,
    Link,
    RelationLink,
    Vector,
    is_element,
    iterate_entities_of,
    iterate_relations_of,
)
from .diagram.commands import RestoreGeometry, SetEntityData, SetEntityGroupItems, SetRelationData
from .diagram.model import DiagramModel
from .errors import InvariantViolation, NotInAuthoringModeError, OperationCancelled
from .events import EventObserver, EventSource, PropertyChange
from .history import Command, CommandBatch, CommandHistory, HistoryChanged
from .model import (
    DirectedLinkType,
    ElementIri,
    ElementModel,
    ElementTypeIri,
    LinkKey,
    LinkModel,
    is_connected_to,
    placeholder_entity,
)
from .providers.base import (
    EntityValidationEvent,
    MetadataProvider,
    RelationValidationEvent,
    ValidationProvider,
)
from .util import new_entity_iri

logger = logging.getLogger(__name__)

T = TypeVar("T")


class EditorMode(str, Enum):
    READONLY = "readonly"
    AUTHORING = "authoring"


class _SetAuthoringState(Command):
    title = "Create or delete entities and links"

    def __init__(self, editor: EditorController, state: AuthoringState) -> None:
        self.editor = editor
        self.state = state

    def execute(self) -> Command:
        previous = self.editor.authoring_state
        self.editor._apply_authoring_state(self.state)
        return _SetAuthoringState(self.editor, previous)


class EditorController:
    def __init__(
        self,
        model: DiagramModel,
        *,
        metadata_provider: MetadataProvider | None = None,
        validation_provider: ValidationProvider | None = None,
        settings: EditorSettings | None = None,
    ) -> None:
        self.model = model
        self.settings = settings or EditorSettings()
        self.metadata_provider = metadata_provider
        self.validation = ValidationPipeline(validation_provider, delay=self.settings.validation_delay)
        self.events = EventSource()

        self._mode = EditorMode(self.settings.default_mode)
        self._authoring_state: AuthoringState = EMPTY
        self._temporary_state: TemporaryState = EMPTY_TEMPORARY
        self._lookups: LatestRequests[str] = LatestRequests()

        self._observer = EventObserver()
        self._observer.listen(self.validation.events, "change_validation_state", self._on_validation_changed)
        self._observer.listen(self.model.history.events, "history_changed", self._on_history_changed)

    def dispose(self) -> None:
        self._observer.stop_listening()
        self.validation.cancel_all()
        self._lookups.cancel_all()

    @property
    def history(self) -> CommandHistory:
        return self.model.history

    # ------------------------------------------------------------------
    # Mode and state
    # ------------------------------------------------------------------

    @property
    def mode(self) -> EditorMode:
        return self._mode

    @property
    def in_authoring_mode(self) -> bool:
        return self._mode == EditorMode.AUTHORING

    def set_mode(self, mode: EditorMode | str) -> None:
        mode = EditorMode(mode)
        previous = self._mode
        if mode == previous:
            return
        self._mode = mode
        self.events.trigger("change_mode", PropertyChange(source=self, previous=previous))

    def _require_authoring(self) -> None:
        if not self.in_authoring_mode:
            raise NotInAuthoringModeError("Editor is not in authoring mode")

    @property
    def authoring_state(self) -> AuthoringState:
        return self._authoring_state

    def set_authoring_state(self, state: AuthoringState) -> None:
        if state is self._authoring_state:
            return
        self.history.execute(_SetAuthoringState(self, state))

    def _apply_authoring_state(self, state: AuthoringState) -> None:
        previous = self._authoring_state
        self._authoring_state = state
        self.events.trigger("change_authoring_state", PropertyChange(source=self, previous=previous))
        self._schedule_validation(previous, state)

    @property
    def temporary_state(self) -> TemporaryState:
        return self._temporary_state

    def set_temporary_state(self, state: TemporaryState) -> None:
        previous = self._temporary_state
        if state == previous:
            return
        self._temporary_state = state
        self.events.trigger("change_temporary_state", PropertyChange(source=self, previous=previous))

    @property
    def validation_state(self) -> ValidationState:
        return self.validation.state

    def _on_validation_changed(self, event: PropertyChange) -> None:
        self.events.trigger("change_validation_state", PropertyChange(source=self, previous=event.previous))

    # ------------------------------------------------------------------
    # Entities
    # ------------------------------------------------------------------

    def create_entity(
        self,
        types: Sequence[ElementTypeIri] = (),
        *,
        data: ElementModel | None = None,
        position: Vector | None = None,
        temporary: bool = False,
    ) -> EntityElement:
        """Add a new entity to the diagram and record it as added."""
        self._require_authoring()
        if data is None:
            data = placeholder_entity(new_entity_iri(self.settings.entity_iri_prefix), tuple(types))

        batch = self.history.start_batch("Create new entity")
        try:
            element = EntityElement(data=data, position=position or Vector(), expanded=True)
            self.model.add_element(element)
        except Exception:
            batch.discard()
            raise

        if temporary:
            batch.discard()
            self.set_temporary_state(temporary_add_entity(self._temporary_state, data.id))
        else:
            self.set_authoring_state(add_entity(self._authoring_state, data))
            batch.store()
        return element

    async def generate_entity(
        self,
        types: Sequence[ElementTypeIri],
        *,
        position: Vector | None = None,
        temporary: bool = False,
        token: CancellationToken | None = None,
    ) -> EntityElement | None:
        """Ask the metadata provider for a new record, then create it; None if cancelled."""
        self._require_authoring()
        if self.metadata_provider is None:
            return self.create_entity(types, position=position, temporary=temporary)

        try:
            data = await self.metadata_provider.generate_new_element(types, token)
        except OperationCancelled:
            return None
        except Exception:
            logger.error("Failed to generate a new entity of types %s", list(types), exc_info=True)
            return None
        if token is not None and token.cancelled:
            return None
        return self.create_entity(types, data=data, position=position, temporary=temporary)

    def change_entity_data(self, iri: ElementIri, new_data: ElementModel) -> Command:
        """Replace the record of entity `iri`; returns the history entry made."""
        self._require_authoring()
        old_data = self.model.find_entity_data(iri)
        if old_data is None:
            logger.debug("Entity %s is not on the diagram", iri)
            return Command.identity("Edit entity")
        if old_data == new_data:
            return Command.identity("Edit entity")

        def body() -> None:
            new_state = change_entity(self._authoring_state, old_data, new_data)
            self.history.execute(SetEntityData(self.model.graph, iri, new_data))
            self.set_authoring_state(new_state)

        entry = self._in_batch("Edit entity", body)
        return entry or Command.identity("Edit entity")

    def delete_entity(self, iri: ElementIri) -> None:
        """Mark entity `iri` deleted; new relations touching it are removed."""
        self._require_authoring()
        state = self._authoring_state
        data = self.model.find_entity_data(iri)
        if data is None:
            return

        def body() -> None:
            for element in self.model.find_entities(iri):
                self.model.remove_relations(
                    self.model.get_element_links(element),
                    lambda relation: is_new_relation(state, relation),
                )
            event = state.entities.get(iri)
            if event is not None:
                self.discard_change(event)
            self.set_authoring_state(delete_entity(state, data))

        self._in_batch("Delete entity", body)

    # ------------------------------------------------------------------
    # Relations
    # ------------------------------------------------------------------

    def create_relation(self, base: RelationLink, *, temporary: bool = False) -> RelationLink:
        """
        Add `base` to the diagram and record its relation as added.

        A temporary relation only gets the link and a temporary-state entry.
        """
        self._require_authoring()
        if self.model.find_link(base.type_id, base.source_id, base.target_id) is not None:
            raise InvariantViolation("The link already exists")

        batch = self.history.start_batch("Create new link")
        try:
            self.model.add_link(base)
            if not temporary:
                self.model.create_links(base.data)
        except Exception:
            batch.discard()
            raise

        if not self.model.has_relation(base.data):
            batch.discard()
        elif temporary:
            batch.discard()
            self.model.graph.mark_transient(base)
            self.set_temporary_state(temporary_add_relation(self._temporary_state, base.data.key))
        else:
            self.set_authoring_state(add_relation(self._authoring_state, base.data))
            batch.store()
        return base

    def change_relation_data(self, old_data: LinkModel, new_data: LinkModel) -> None:
        """Edit a relation; a different key is recorded as delete plus add."""
        self._require_authoring()
        if old_data == new_data:
            return

        def body() -> None:
            state = self._authoring_state
            if old_data.key == new_data.key:
                self.history.execute(SetRelationData(self.model.graph, old_data, new_data))
                self.set_authoring_state(change_relation(state, old_data, new_data))
                return

            new_state = add_relation(delete_relation(state, old_data), new_data)
            if is_new_relation(state, old_data):
                self.model.remove_relations(self.model.links, lambda relation: relation.key == old_data.key)
            self.model.create_links(new_data)
            self.set_authoring_state(new_state)

        self._in_batch("Change link", body)

    def move_relation_source(self, link: RelationLink, new_source: EntityElement) -> Link | None:
        return self._move_relation(link, replace(link.data, source_id=new_source.iri), new_source.id, link.target_id)

    def move_relation_target(self, link: RelationLink, new_target: EntityElement) -> Link | None:
        return self._move_relation(link, replace(link.data, target_id=new_target.iri), link.source_id, new_target.id)

    def _move_relation(self, link: RelationLink, data: LinkModel, source_id: str, target_id: str) -> Link | None:
        self._require_authoring()
        moved: list[Link | None] = [None]

        def body() -> None:
            self.change_relation_data(link.data, data)
            new_link = self.model.find_link(link.type_id, source_id, target_id)
            if new_link is not None and link.vertices:
                self.history.execute(RestoreGeometry(self.model.graph, [], [(new_link, link.vertices)]))
            moved[0] = new_link

        self._in_batch("Move link to another element", body)
        return moved[0]

    def delete_relation(self, data: LinkModel) -> None:
        self._require_authoring()
        state = self._authoring_state
        if is_deleted_relation(state, data):
            return

        def body() -> None:
            new_state = delete_relation(state, data)
            if is_new_relation(state, data):
                self.model.remove_relations(self.model.links, lambda relation: relation.key == data.key)
            self.set_authoring_state(new_state)

        self._in_batch("Delete link", body)

    # ------------------------------------------------------------------
    # Discarding changes
    # ------------------------------------------------------------------

    def discard_change(self, event: AuthoringEvent) -> None:
        """Revert the diagram to match the state before `event`, then drop it."""
        new_state = discard(self._authoring_state, event)
        if new_state is self._authoring_state:
            return

        def body() -> None:
            if isinstance(event, EntityChange):
                self._revert_entity(event)
            elif event.kind == AuthoringKind.CHANGE and event.previous is not None:
                self.history.execute(SetRelationData(self.model.graph, event.data, event.previous))
            elif event.kind == AuthoringKind.ADD:
                self.model.remove_relations(self.model.links, lambda relation: relation.key == event.key)
            self.set_authoring_state(new_state)

        self._in_batch("Discard change", body)

    def _revert_entity(self, event: EntityChange) -> None:
        if event.kind == AuthoringKind.DELETE:
            return
        if event.kind == AuthoringKind.CHANGE and event.previous is not None:
            self.history.execute(SetEntityData(self.model.graph, event.data.id, event.previous))
            return
        for element in self.model.find_entities(event.data.id):
            if isinstance(element, EntityElement):
                self.model.remove_element(element.id)
            else:
                self._discard_item_from_group(element, event.data.id)

    def _discard_item_from_group(self, group: EntityGroup, iri: ElementIri) -> None:
        items = [item for item in group.items if item.data.id != iri]
        self.history.execute(SetEntityGroupItems(self.model.graph, group, items))
        self.model.remove_relations(
            self.model.get_element_links(group),
            lambda relation: is_connected_to(relation, iri),
        )
        if len(items) <= 1:
            self.model.ungroup_all([group])

    # ------------------------------------------------------------------
    # Removing cells
    # ------------------------------------------------------------------

    def remove_selected_elements(self) -> None:
        selection = self.model.selection
        if not selection:
            return
        self.model.set_selection(())
        self.remove_items(selection)

    def remove_items(self, cells: Iterable[Cell]) -> None:
        """
        Remove cells from the diagram.

        In authoring mode, a removed entity that was added is discarded;
        any other removed entity is recorded as deleted.
        """
        cells = list(cells)
        authoring = self.in_authoring_mode

        def body() -> None:
            removed: dict[ElementIri, ElementModel] = {}
            for cell in cells:
                if is_element(cell):
                    for data in iterate_entities_of(cell):
                        removed[data.id] = data
                    self.model.remove_element(cell.id)
                else:
                    if authoring:
                        for relation in list(iterate_relations_of(cell)):
                            if is_new_relation(self._authoring_state, relation):
                                self.delete_relation(relation)
                    if self.model.get_link(cell.id) is not None:
                        self.model.remove_link(cell.id)

            if not authoring or not removed:
                return
            for data in removed.values():
                event = self._authoring_state.entities.get(data.id)
                if event is not None and event.kind == AuthoringKind.ADD:
                    self.discard_change(event)
                else:
                    self.set_authoring_state(delete_entity(self._authoring_state, data))
            self.set_authoring_state(delete_new_relations_connected_to(self._authoring_state, removed))

        self._in_batch("Remove elements", body)

    def remove_temporary_cells(self, cells: Iterable[Cell]) -> None:
        """Remove preview cells; nothing is recorded in history."""
        state = self._temporary_state
        batch = self.history.start_batch()
        try:
            for cell in cells:
                if isinstance(cell, EntityElement) and cell.iri in state.entities:
                    state = temporary_delete_entity(state, cell.iri)
                    self.model.remove_element(cell.id)
                elif isinstance(cell, RelationLink) and cell.data.key in state.relations:
                    state = temporary_delete_relation(state, cell.data.key)
                    self.model.remove_link(cell.id)
        finally:
            batch.discard()
        self.set_temporary_state(state)

    def remove_all_temporary_cells(self) -> None:
        state = self._temporary_state
        cells: list[Cell] = []
        if state.entities:
            cells.extend(e for e in self.model.elements if isinstance(e, EntityElement) and e.iri in state.entities)
        if state.relations:
            cells.extend(
                link for link in self.model.links if isinstance(link, RelationLink) and link.data.key in state.relations
            )
        if cells:
            self.remove_temporary_cells(cells)

    def promote_temporary_relation(self, link: RelationLink) -> RelationLink:
        """Replace a temporary relation preview with a committed relation."""
        self._require_authoring()
        if link.data.key not in self._temporary_state.relations:
            raise InvariantViolation("Link is not a temporary relation")
        self.remove_temporary_cells([link])
        committed = RelationLink(
            source_id=link.source_id,
            target_id=link.target_id,
            data=link.data,
            vertices=link.vertices,
            link_state=link.link_state,
        )
        return self.create_relation(committed)

    # ------------------------------------------------------------------
    # Grouping
    # ------------------------------------------------------------------

    def group(self, entities: Sequence[EntityElement]) -> EntityGroup:
        return self.model.group(entities)

    def ungroup_all(self, groups: Sequence[EntityGroup]) -> list[EntityElement]:
        return self.model.ungroup_all(groups)

    def ungroup_some(self, group: EntityGroup, iris: Iterable[ElementIri]) -> list[EntityElement]:
        return self.model.ungroup_some(group, iris)

    # ------------------------------------------------------------------
    # Metadata lookups
    # ------------------------------------------------------------------

    async def suggest_entity_types(
        self,
        source: ElementModel,
        token: CancellationToken | None = None,
    ) -> list[ElementTypeIri] | None:
        """Entity types creatable by dragging from `source`; None when superseded."""
        if self.metadata_provider is None:
            return []
        provider = self.metadata_provider
        return await self._lookup(
            "entity_types",
            token,
            lambda t: provider.types_of_elements_dragged_from(source, t),
        )

    async def suggest_link_types(
        self,
        source: ElementModel,
        target: ElementModel,
        token: CancellationToken | None = None,
    ) -> list[DirectedLinkType] | None:
        if self.metadata_provider is None:
            return []
        provider = self.metadata_provider
        return await self._lookup(
            "link_types",
            token,
            lambda t: provider.possible_link_types(source, target, t),
        )

    async def _lookup(
        self,
        key: str,
        token: CancellationToken | None,
        call: Callable[[CancellationToken], Awaitable[list[T]]],
    ) -> list[T] | None:
        request = self._lookups.issue(key, parent=token)
        try:
            result = await call(request)
        except OperationCancelled:
            self._lookups.complete(key, request)
            return None
        except Exception:
            if not self._lookups.is_current(key, request):
                return None
            self._lookups.complete(key, request)
            logger.error("Metadata lookup %r failed", key, exc_info=True)
            return []
        if not self._lookups.is_current(key, request):
            return None
        self._lookups.complete(key, request)
        return result

    # ------------------------------------------------------------------
    # Validation
    # ------------------------------------------------------------------

    def _schedule_validation(self, previous: AuthoringState, current: AuthoringState) -> None:
        entities, relations = changed_validation_targets(previous, current)
        for iri in entities:
            self._validate_entity(iri, current)
        for key in relations:
            self._validate_relation(key, current)

    def _validate_entity(self, iri: ElementIri, state: AuthoringState) -> asyncio.Task | None:
        data = self.model.find_entity_data(iri)
        if data is None:
            self.validation.forget_entity(iri)
            return None
        outbound = tuple(
            relation
            for key, relation in self._relations_on_diagram().items()
            if key.source_id == iri
        )
        return self.validation.schedule_entity(EntityValidationEvent(target=data, outbound_links=outbound, state=state))

    def _validate_relation(self, key: LinkKey, state: AuthoringState) -> asyncio.Task | None:
        relation = self._relations_on_diagram().get(key)
        if relation is None:
            self.validation.forget_relation(key)
            return None
        return self.validation.schedule_relation(
            RelationValidationEvent(
                target=relation,
                source=self.model.find_entity_data(key.source_id),
                target_entity=self.model.find_entity_data(key.target_id),
                state=state,
            )
        )

    def _on_history_changed(self, event: HistoryChanged) -> None:
        # Undo restores the authoring state before removing cells, so
        # results for targets that left the diagram are dropped here.
        state = self.validation.state
        if state.entities:
            present = self._entities_on_diagram()
            for iri in [iri for iri in state.entities if iri not in present]:
                self.validation.forget_entity(iri)
        if state.relations:
            on_diagram = self._relations_on_diagram()
            for key in [key for key in state.relations if key not in on_diagram]:
                self.validation.forget_relation(key)
        self._prune_temporary_state()

    def _prune_temporary_state(self) -> None:
        # Previews removed along with an element by undo or redo.
        temporary = self._temporary_state
        if not temporary.relations:
            return
        shown = {link.data.key for link in self.model.links if isinstance(link, RelationLink)}
        for key in temporary.relations - shown:
            temporary = temporary_delete_relation(temporary, key)
        self.set_temporary_state(temporary)

    def _entities_on_diagram(self) -> set[ElementIri]:
        return {data.id for element in self.model.elements for data in iterate_entities_of(element)}

    def _relations_on_diagram(self) -> dict[LinkKey, LinkModel]:
        relations: dict[LinkKey, LinkModel] = {}
        for link in self.model.links:
            for relation in iterate_relations_of(link):
                relations.setdefault(relation.key, relation)
        return relations

    def validate_all(self) -> list[asyncio.Task]:
        """Schedule validation of every entity and relation on the diagram."""
        state = self._authoring_state
        tasks: list[asyncio.Task | None] = []
        iris = self._entities_on_diagram()
        for iri in sorted(iris):
            tasks.append(self._validate_entity(iri, state))
        for key in self._relations_on_diagram():
            tasks.append(self._validate_relation(key, state))
        return [task for task in tasks if task is not None]

    # ------------------------------------------------------------------

    def _in_batch(self, title: str, body: Callable[[], Any]) -> Command | None:
        batch: CommandBatch = self.history.start_batch(title)
        try:
            body()
        except Exception:
            batch.discard()
            raise
        return batch.store()
