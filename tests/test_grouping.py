"""
Tests for grouping entities into group nodes and relation merging.

Grouping and ungrouping must keep the set of displayed relations intact;
only the cells that display them change.
"""

from __future__ import annotations

from conftest import KNOWS, PERSON, person, relation
from graphedit.diagram.cells import (
    EntityElement,
    EntityGroup,
    RelationGroup,
    RelationLink,
    iterate_entities_of,
    iterate_relations_of,
)
from graphedit.diagram.model import DiagramModel
from graphedit.editor import EditorController


def _relation_keys(model: DiagramModel) -> list:
    return sorted(relation.key for link in model.links for relation in iterate_relations_of(link))


def _entity_iris(model: DiagramModel) -> list[str]:
    return sorted(data.id for element in model.elements for data in iterate_entities_of(element))


def _fan_in(model: DiagramModel) -> tuple[EntityElement, EntityElement, EntityElement]:
    """alice -> carol and bob -> carol, both of one link type."""
    alice = EntityElement(data=person("http://example.com/alice"))
    bob = EntityElement(data=person("http://example.com/bob"))
    carol = EntityElement(data=person("http://example.com/carol"))
    for element in (alice, bob, carol):
        model.add_element(element)
    model.add_link(RelationLink(alice.id, carol.id, relation(KNOWS, alice.iri, carol.iri)))
    model.add_link(RelationLink(bob.id, carol.id, relation(KNOWS, bob.iri, carol.iri)))
    model.history.reset()
    return alice, bob, carol


# -----------------------------------------------------------------------------
# Group and ungroup
# -----------------------------------------------------------------------------


def test_group_then_ungroup_preserves_relations(model: DiagramModel, populated: dict) -> None:
    iris_before = _entity_iris(model)
    keys_before = _relation_keys(model)
    original_ids = {populated[name].id for name in ("alice", "bob", "carol")}

    group = model.group([populated["alice"], populated["bob"]])

    assert isinstance(group, EntityGroup)
    assert group.item_iris == {"http://example.com/alice", "http://example.com/bob"}
    assert len(model.elements) == 2
    assert _entity_iris(model) == iris_before
    assert _relation_keys(model) == keys_before
    # alice -> bob now runs from the group to itself.
    assert any(link.source_id == group.id and link.target_id == group.id for link in model.links)

    ungrouped = model.ungroup_all([group])

    assert len(ungrouped) == 2
    assert len(model.elements) == 3
    assert _entity_iris(model) == iris_before
    assert _relation_keys(model) == keys_before
    assert not {element.id for element in ungrouped} & original_ids


def test_group_position_is_center(model: DiagramModel, populated: dict) -> None:
    group = model.group([populated["alice"], populated["carol"]])
    assert (group.position.x, group.position.y) == (100, 0)


def test_group_is_one_undo_step(model: DiagramModel, populated: dict) -> None:
    model.group([populated["alice"], populated["bob"]])
    assert len(model.history.undo_stack) == 1

    model.history.undo()

    assert {element.id for element in model.elements} == {populated[n].id for n in ("alice", "bob", "carol")}
    assert {link.id for link in model.links} == {populated["ab"].id, populated["bc"].id}


def test_ungroup_some_keeps_group(model: DiagramModel, populated: dict) -> None:
    keys_before = _relation_keys(model)
    group = model.group([populated["alice"], populated["bob"], populated["carol"]])

    (alice,) = model.ungroup_some(group, ["http://example.com/alice"])

    assert alice.iri == "http://example.com/alice"
    assert group.item_iris == {"http://example.com/bob", "http://example.com/carol"}
    assert model.get_element(group.id) is group
    assert _relation_keys(model) == keys_before
    assert [link.source_id for link in model.get_element_links(alice)] == [alice.id]


def test_ungroup_some_dissolves_group_left_with_one_item(model: DiagramModel, populated: dict) -> None:
    group = model.group([populated["alice"], populated["bob"]])
    model.ungroup_some(group, ["http://example.com/alice"])

    assert model.get_element(group.id) is None
    assert all(isinstance(element, EntityElement) for element in model.elements)
    assert len(model.elements) == 3


# -----------------------------------------------------------------------------
# Relation groups
# -----------------------------------------------------------------------------


def test_parallel_relations_merge_into_relation_group(model: DiagramModel) -> None:
    alice, bob, carol = _fan_in(model)
    group = model.group([alice, bob])

    (link,) = model.links
    assert isinstance(link, RelationGroup)
    assert (link.source_id, link.target_id, link.type_id) == (group.id, carol.id, KNOWS)
    assert len(link.items) == 2

    model.ungroup_all([group])
    assert len(model.links) == 2
    assert all(isinstance(link, RelationLink) for link in model.links)


def test_removing_relation_collapses_group_to_single_link(model: DiagramModel) -> None:
    alice, bob, _ = _fan_in(model)
    model.group([alice, bob])

    model.remove_relations(model.links, lambda relation: relation.source_id == "http://example.com/alice")

    (link,) = model.links
    assert isinstance(link, RelationLink)
    assert link.data.source_id == "http://example.com/bob"


def test_create_links_updates_grouped_relation(model: DiagramModel) -> None:
    alice, bob, _ = _fan_in(model)
    model.group([alice, bob])
    (group_link,) = model.links

    (created,) = model.create_links(relation(KNOWS, "http://example.com/alice", "http://example.com/carol"))

    assert created is group_link
    assert len(model.links) == 1
    assert len(group_link.items) == 2


# -----------------------------------------------------------------------------
# Authoring inside groups
# -----------------------------------------------------------------------------


def test_discarding_new_entity_inside_group(editor: EditorController, model: DiagramModel, populated: dict) -> None:
    new = editor.create_entity([PERSON])
    editor.create_relation(RelationLink(new.id, populated["carol"].id, relation(KNOWS, new.iri, populated["carol"].iri)))
    group = editor.group([new, populated["alice"]])

    editor.discard_change(editor.authoring_state.entities[new.iri])

    assert model.get_element(group.id) is None
    assert new.iri not in _entity_iris(model)
    assert "http://example.com/alice" in _entity_iris(model)
    assert editor.authoring_state.is_empty
