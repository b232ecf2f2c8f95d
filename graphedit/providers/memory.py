"""In-memory data provider, loadable from a JSON dataset."""

from __future__ import annotations

import json
import logging
from pathlib import Path
from typing import Iterable, Sequence

from ..cancellation import CancellationToken
from ..model import ElementIri, ElementModel, LinkModel, format_label
from .base import LinkQuery, LookupQuery

logger = logging.getLogger(__name__)


class InMemoryDataProvider:
    """
    Serves entity and relation records from dicts.

    Dataset file shape: {"elements": [ElementModel...], "links": [LinkModel...]}
    using the `to_dict` forms of the records.
    """

    def __init__(self, elements: Iterable[ElementModel] = (), links: Iterable[LinkModel] = ()) -> None:
        self._elements: dict[ElementIri, ElementModel] = {e.id: e for e in elements}
        self._links: list[LinkModel] = list(links)

    @classmethod
    def from_dict(cls, data: dict) -> InMemoryDataProvider:
        elements = [ElementModel.from_dict(raw) for raw in data.get("elements", [])]
        links = [LinkModel.from_dict(raw) for raw in data.get("links", [])]
        return cls(elements, links)

    @classmethod
    def load(cls, path: Path) -> InMemoryDataProvider:
        data = json.loads(path.read_text(encoding="utf-8"))
        if not isinstance(data, dict):
            raise ValueError(f"Dataset {path} must be a JSON object")
        provider = cls.from_dict(data)
        logger.debug("Loaded %d elements and %d links from %s", len(provider._elements), len(provider._links), path)
        return provider

    @property
    def records(self) -> dict[ElementIri, ElementModel]:
        return dict(self._elements)

    async def elements(
        self,
        ids: Sequence[ElementIri],
        token: CancellationToken | None = None,
    ) -> dict[ElementIri, ElementModel]:
        if token is not None:
            token.raise_if_cancelled()
        return {iri: self._elements[iri] for iri in ids if iri in self._elements}

    async def links(self, query: LinkQuery, token: CancellationToken | None = None) -> list[LinkModel]:
        if token is not None:
            token.raise_if_cancelled()
        primary = set(query.primary)
        secondary = set(query.secondary) if query.secondary is not None else primary
        types = set(query.link_types) if query.link_types is not None else None
        result = []
        for link in self._links:
            if types is not None and link.link_type_id not in types:
                continue
            if (link.source_id in primary and link.target_id in secondary) or (
                link.target_id in primary and link.source_id in secondary
            ):
                result.append(link)
        return result

    async def lookup(self, query: LookupQuery, token: CancellationToken | None = None) -> list[ElementModel]:
        if token is not None:
            token.raise_if_cancelled()
        text = (query.text or "").lower().strip()
        found = []
        for element in self._elements.values():
            if query.element_type and query.element_type not in element.types:
                continue
            if text and text not in format_label(element).lower() and text not in element.id.lower():
                continue
            found.append(element)
            if len(found) >= query.limit:
                break
        return found
