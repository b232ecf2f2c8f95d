"""
Authoring state: pending changes not yet confirmed by the backing store.

The state is immutable. Every mutator takes a state and returns a new one,
folding the new operation into the event already recorded for the key:

    add    + delete -> (no event)          entity never existed upstream
    add    + change -> add(latest data)
    change + delete -> delete(original data)
    delete + add    -> change(previous = deleted data)

Entity events are keyed by the current entity IRI, relation events by
LinkKey. A `change` event keeps the upstream record in `previous`; when
the IRI was changed, `previous.id` differs from `data.id`.

TemporaryState tracks previews that are on the diagram but not in history.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from enum import Enum
from types import MappingProxyType
from typing import Iterable, Mapping, Union

from ..errors import InvariantViolation
from ..model import ElementIri, ElementModel, LinkKey, LinkModel, is_connected_to, rebind_link


class AuthoringKind(str, Enum):
    ADD = "add"
    CHANGE = "change"
    DELETE = "delete"


@dataclass(frozen=True)
class EntityChange:
    kind: AuthoringKind
    data: ElementModel
    previous: ElementModel | None = None

    @property
    def key(self) -> ElementIri:
        return self.data.id

    @property
    def iri_changed(self) -> bool:
        return self.previous is not None and self.previous.id != self.data.id


@dataclass(frozen=True)
class RelationChange:
    kind: AuthoringKind
    data: LinkModel
    previous: LinkModel | None = None

    @property
    def key(self) -> LinkKey:
        return self.data.key


AuthoringEvent = Union[EntityChange, RelationChange]


def _freeze(mapping: Mapping) -> Mapping:
    return MappingProxyType(dict(mapping))


@dataclass(frozen=True)
class AuthoringState:
    entities: Mapping[ElementIri, EntityChange] = field(default_factory=lambda: _freeze({}))
    relations: Mapping[LinkKey, RelationChange] = field(default_factory=lambda: _freeze({}))

    @property
    def is_empty(self) -> bool:
        return not self.entities and not self.relations

    def events(self) -> list[AuthoringEvent]:
        return [*self.entities.values(), *self.relations.values()]

    def has(self, event: AuthoringEvent) -> bool:
        """True if `event` itself (by identity) is the current event for its key."""
        if isinstance(event, EntityChange):
            return self.entities.get(event.key) is event
        return self.relations.get(event.key) is event


EMPTY = AuthoringState()


def _make(entities: dict[ElementIri, EntityChange], relations: dict[LinkKey, RelationChange]) -> AuthoringState:
    return AuthoringState(entities=_freeze(entities), relations=_freeze(relations))


def _without_connected(relations: dict[LinkKey, RelationChange], iri: ElementIri) -> dict[LinkKey, RelationChange]:
    return {key: event for key, event in relations.items() if not is_connected_to(key, iri)}


def _rebind_relations(
    relations: dict[LinkKey, RelationChange],
    old_iri: ElementIri,
    new_iri: ElementIri,
) -> dict[LinkKey, RelationChange]:
    result: dict[LinkKey, RelationChange] = {}
    for key, event in relations.items():
        if is_connected_to(key, old_iri):
            event = RelationChange(event.kind, rebind_link(event.data, old_iri, new_iri), event.previous)
        result[event.key] = event
    return result


# ----------------------------------------------------------------------
# Entities
# ----------------------------------------------------------------------


def add_entity(state: AuthoringState, data: ElementModel) -> AuthoringState:
    entities = dict(state.entities)
    existing = entities.get(data.id)
    if existing is not None and existing.kind == AuthoringKind.DELETE:
        entities[data.id] = EntityChange(AuthoringKind.CHANGE, data, previous=existing.previous)
    else:
        entities[data.id] = EntityChange(AuthoringKind.ADD, data)
    return _make(entities, dict(state.relations))


def change_entity(state: AuthoringState, before: ElementModel, after: ElementModel) -> AuthoringState:
    """
    Record an edit of the entity currently known as `before.id`.

    An IRI change moves the event to `after.id` and rebinds relation
    events touching the old IRI; the classification is kept.
    """
    entities = dict(state.entities)
    relations = dict(state.relations)
    existing = entities.pop(before.id, None)

    if existing is not None and existing.kind == AuthoringKind.ADD:
        entities[after.id] = EntityChange(AuthoringKind.ADD, after)
    else:
        original = existing.previous if existing is not None and existing.previous is not None else before
        if after != original:
            entities[after.id] = EntityChange(AuthoringKind.CHANGE, after, previous=original)

    if before.id != after.id:
        relations = _rebind_relations(relations, before.id, after.id)
    return _make(entities, relations)


def delete_entity(state: AuthoringState, data: ElementModel) -> AuthoringState:
    """Record deletion of an entity; relation events touching it are dropped."""
    entities = dict(state.entities)
    relations = _without_connected(dict(state.relations), data.id)
    existing = entities.pop(data.id, None)

    if existing is None:
        entities[data.id] = EntityChange(AuthoringKind.DELETE, data, previous=data)
    elif existing.kind == AuthoringKind.CHANGE:
        original = existing.previous or data
        relations = _without_connected(relations, original.id)
        entities[original.id] = EntityChange(AuthoringKind.DELETE, original, previous=original)
    elif existing.kind == AuthoringKind.DELETE:
        entities[data.id] = existing
    # ADD: the entity never existed upstream, nothing to record.
    return _make(entities, relations)


# ----------------------------------------------------------------------
# Relations
# ----------------------------------------------------------------------


def add_relation(state: AuthoringState, data: LinkModel) -> AuthoringState:
    relations = dict(state.relations)
    existing = relations.get(data.key)
    if existing is not None and existing.kind == AuthoringKind.DELETE:
        relations[data.key] = RelationChange(AuthoringKind.CHANGE, data, previous=existing.previous)
    else:
        relations[data.key] = RelationChange(AuthoringKind.ADD, data)
    return _make(dict(state.entities), relations)


def change_relation(state: AuthoringState, before: LinkModel, after: LinkModel) -> AuthoringState:
    if before.key != after.key:
        raise InvariantViolation("Cannot move a relation to other entities or change its type")
    relations = dict(state.relations)
    existing = relations.get(before.key)

    if existing is not None and existing.kind == AuthoringKind.ADD:
        relations[after.key] = RelationChange(AuthoringKind.ADD, after)
    else:
        original = existing.previous if existing is not None and existing.previous is not None else before
        if after == original:
            relations.pop(after.key, None)
        else:
            relations[after.key] = RelationChange(AuthoringKind.CHANGE, after, previous=original)
    return _make(dict(state.entities), relations)


def delete_relation(state: AuthoringState, data: LinkModel) -> AuthoringState:
    relations = dict(state.relations)
    existing = relations.pop(data.key, None)
    if existing is None:
        relations[data.key] = RelationChange(AuthoringKind.DELETE, data, previous=data)
    elif existing.kind == AuthoringKind.CHANGE:
        original = existing.previous or data
        relations[data.key] = RelationChange(AuthoringKind.DELETE, original, previous=original)
    elif existing.kind == AuthoringKind.DELETE:
        relations[data.key] = existing
    return _make(dict(state.entities), relations)


def delete_new_relations_connected_to(state: AuthoringState, iris: Iterable[ElementIri]) -> AuthoringState:
    iris = set(iris)
    relations = {
        key: event
        for key, event in state.relations.items()
        if not (event.kind == AuthoringKind.ADD and (key.source_id in iris or key.target_id in iris))
    }
    if len(relations) == len(state.relations):
        return state
    return _make(dict(state.entities), relations)


def discard(state: AuthoringState, event: AuthoringEvent) -> AuthoringState:
    """Drop `event` if it is still current; discarding an added entity drops its relation events."""
    if not state.has(event):
        return state
    entities = dict(state.entities)
    relations = dict(state.relations)
    if isinstance(event, EntityChange):
        del entities[event.key]
        if event.kind == AuthoringKind.ADD:
            relations = _without_connected(relations, event.key)
    else:
        del relations[event.key]
    return _make(entities, relations)


# ----------------------------------------------------------------------
# Queries
# ----------------------------------------------------------------------


def is_new_entity(state: AuthoringState, iri: ElementIri) -> bool:
    event = state.entities.get(iri)
    return event is not None and event.kind == AuthoringKind.ADD


def is_deleted_entity(state: AuthoringState, iri: ElementIri) -> bool:
    event = state.entities.get(iri)
    return event is not None and event.kind == AuthoringKind.DELETE


def is_entity_with_changed_iri(state: AuthoringState, iri: ElementIri) -> bool:
    event = state.entities.get(iri)
    return event is not None and event.iri_changed


def is_new_relation(state: AuthoringState, key: LinkKey | LinkModel) -> bool:
    key = key if isinstance(key, LinkKey) else key.key
    event = state.relations.get(key)
    return event is not None and event.kind == AuthoringKind.ADD


def is_deleted_relation(state: AuthoringState, key: LinkKey | LinkModel) -> bool:
    """Deleted itself, or attached to a deleted entity."""
    key = key if isinstance(key, LinkKey) else key.key
    event = state.relations.get(key)
    if event is not None and event.kind == AuthoringKind.DELETE:
        return True
    return is_deleted_entity(state, key.source_id) or is_deleted_entity(state, key.target_id)


# ----------------------------------------------------------------------
# Temporary state
# ----------------------------------------------------------------------


@dataclass(frozen=True)
class TemporaryState:
    """Entities and relations shown as previews, outside of history."""

    entities: frozenset[ElementIri] = frozenset()
    relations: frozenset[LinkKey] = frozenset()

    @property
    def is_empty(self) -> bool:
        return not self.entities and not self.relations


EMPTY_TEMPORARY = TemporaryState()


def temporary_add_entity(state: TemporaryState, iri: ElementIri) -> TemporaryState:
    if iri in state.entities:
        return state
    return TemporaryState(state.entities | {iri}, state.relations)


def temporary_delete_entity(state: TemporaryState, iri: ElementIri) -> TemporaryState:
    if iri not in state.entities:
        return state
    return TemporaryState(state.entities - {iri}, state.relations)


def temporary_add_relation(state: TemporaryState, key: LinkKey) -> TemporaryState:
    if key in state.relations:
        return state
    return TemporaryState(state.entities, state.relations | {key})


def temporary_delete_relation(state: TemporaryState, key: LinkKey) -> TemporaryState:
    if key not in state.relations:
        return state
    return TemporaryState(state.entities, state.relations - {key})
