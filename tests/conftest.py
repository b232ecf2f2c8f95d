"""Pytest configuration and fixtures."""

import json
from pathlib import Path

import pytest

from graphedit.diagram.cells import EntityElement, RelationLink, Vector
from graphedit.diagram.model import DiagramModel
from graphedit.editor import EditorController
from graphedit.model import ElementModel, LinkModel, LiteralTerm

PERSON = "http://example.com/Person"
COMPANY = "http://example.com/Company"
KNOWS = "http://example.com/knows"
WORKS_AT = "http://example.com/worksAt"


def person(iri: str, label: str | None = None) -> ElementModel:
    return ElementModel(
        id=iri,
        types=(PERSON,),
        label=(LiteralTerm(label or iri.rsplit("/", 1)[-1]),),
    )


def company(iri: str) -> ElementModel:
    return ElementModel(id=iri, types=(COMPANY,), label=(LiteralTerm(iri.rsplit("/", 1)[-1]),))


def relation(link_type: str, source: str, target: str) -> LinkModel:
    return LinkModel(link_type_id=link_type, source_id=source, target_id=target)


@pytest.fixture
def model() -> DiagramModel:
    """Empty diagram model with its own history."""
    return DiagramModel()


@pytest.fixture
def editor(model: DiagramModel) -> EditorController:
    """Editor in authoring mode without providers."""
    return EditorController(model)


@pytest.fixture
def populated(model: DiagramModel) -> dict:
    """Three people and two relations, added directly to the model with history cleared."""
    alice = EntityElement(data=person("http://example.com/alice"), position=Vector(0, 0))
    bob = EntityElement(data=person("http://example.com/bob"), position=Vector(100, 0))
    carol = EntityElement(data=person("http://example.com/carol"), position=Vector(200, 0))
    for element in (alice, bob, carol):
        model.add_element(element)

    ab = RelationLink(alice.id, bob.id, relation(KNOWS, alice.iri, bob.iri))
    bc = RelationLink(bob.id, carol.id, relation(KNOWS, bob.iri, carol.iri))
    model.add_link(ab)
    model.add_link(bc)
    model.history.reset()
    return {"alice": alice, "bob": bob, "carol": carol, "ab": ab, "bc": bc}


@pytest.fixture
def dataset_path(tmp_path: Path) -> Path:
    """JSON dataset with two people and a company."""
    data = {
        "elements": [
            person("http://example.com/alice").to_dict(),
            person("http://example.com/bob").to_dict(),
            company("http://example.com/acme").to_dict(),
        ],
        "links": [
            relation(KNOWS, "http://example.com/alice", "http://example.com/bob").to_dict(),
            relation(WORKS_AT, "http://example.com/bob", "http://example.com/acme").to_dict(),
        ],
    }
    path = tmp_path / "dataset.json"
    path.write_text(json.dumps(data), encoding="utf-8")
    return path
