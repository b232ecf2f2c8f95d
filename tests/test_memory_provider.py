"""Tests for the in-memory data provider and model data loading."""

from __future__ import annotations

import asyncio
from pathlib import Path

import pytest

from conftest import COMPANY, KNOWS
from graphedit.cancellation import CancellationToken
from graphedit.diagram.model import DiagramModel
from graphedit.errors import OperationCancelled
from graphedit.providers import DataProvider, InMemoryDataProvider, LinkQuery, LookupQuery


def test_load_dataset(dataset_path: Path) -> None:
    provider = InMemoryDataProvider.load(dataset_path)
    assert isinstance(provider, DataProvider)
    assert sorted(provider.records) == [
        "http://example.com/acme",
        "http://example.com/alice",
        "http://example.com/bob",
    ]


def test_load_rejects_non_object(tmp_path: Path) -> None:
    path = tmp_path / "dataset.json"
    path.write_text("[]", encoding="utf-8")
    with pytest.raises(ValueError, match="must be a JSON object"):
        InMemoryDataProvider.load(path)


class TestQueries:
    def test_elements_skips_unknown(self, dataset_path: Path) -> None:
        provider = InMemoryDataProvider.load(dataset_path)
        found = asyncio.run(provider.elements(["http://example.com/alice", "http://example.com/nobody"]))
        assert list(found) == ["http://example.com/alice"]

    def test_links_between_primary(self, dataset_path: Path) -> None:
        provider = InMemoryDataProvider.load(dataset_path)
        query = LinkQuery(primary=("http://example.com/alice", "http://example.com/bob"))
        links = asyncio.run(provider.links(query))
        assert [link.link_type_id for link in links] == [KNOWS]

    def test_links_with_secondary_and_type(self, dataset_path: Path) -> None:
        provider = InMemoryDataProvider.load(dataset_path)
        query = LinkQuery(
            primary=("http://example.com/acme",),
            secondary=("http://example.com/bob",),
            link_types=(KNOWS,),
        )
        assert asyncio.run(provider.links(query)) == []

    def test_lookup_by_text_and_type(self, dataset_path: Path) -> None:
        provider = InMemoryDataProvider.load(dataset_path)
        assert [e.id for e in asyncio.run(provider.lookup(LookupQuery(text="ALI")))] == ["http://example.com/alice"]
        assert [e.id for e in asyncio.run(provider.lookup(LookupQuery(element_type=COMPANY)))] == [
            "http://example.com/acme"
        ]
        assert len(asyncio.run(provider.lookup(LookupQuery(limit=1)))) == 1

    def test_cancelled_token(self, dataset_path: Path) -> None:
        provider = InMemoryDataProvider.load(dataset_path)
        token = CancellationToken()
        token.cancel()
        with pytest.raises(OperationCancelled):
            asyncio.run(provider.elements(["http://example.com/alice"], token))


class TestModelLoading:
    def test_fetch_entity_data_replaces_placeholders(self, model: DiagramModel, dataset_path: Path) -> None:
        provider = InMemoryDataProvider.load(dataset_path)
        alice = model.create_element("http://example.com/alice")
        model.create_element("http://example.com/unknown")
        model.history.reset()

        count = asyncio.run(model.fetch_entity_data(provider))

        assert count == 1
        assert alice.data.label[0].value == "alice"
        assert model.history.undo_stack == ()

    def test_restore_links_between_displayed_entities(self, model: DiagramModel, dataset_path: Path) -> None:
        provider = InMemoryDataProvider.load(dataset_path)
        model.create_element("http://example.com/alice")
        model.create_element("http://example.com/bob")
        model.history.reset()

        created = asyncio.run(model.restore_links(provider))

        assert len(created) == 1
        assert created[0].data.link_type_id == KNOWS
        assert model.types.get_link_type(KNOWS) is not None
        assert model.history.undo_stack == ()
