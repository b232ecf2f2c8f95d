"""
Ontology descriptors: element, link and property types.

Descriptors are created lazily by IRI and filled in whenever metadata
arrives. They are used for display only (labels, counts); identity of
entities and relations never depends on them.
"""

from __future__ import annotations

from typing import Generic, TypeVar

from ..errors import TypeIdMismatchError
from ..events import EventSource, PropertyChange
from ..model import ElementTypeModel, LinkTypeModel, PropertyTypeModel

M = TypeVar("M", ElementTypeModel, LinkTypeModel, PropertyTypeModel)


class _Descriptor(Generic[M]):
    def __init__(self, id: str, data: M | None = None) -> None:
        self.id = id
        self.events = EventSource()
        self._data: M | None = None
        if data is not None:
            self.set_data(data)

    @property
    def data(self) -> M | None:
        return self._data

    def set_data(self, value: M | None) -> None:
        if value is not None and value.id != self.id:
            raise TypeIdMismatchError(
                f"{type(self).__name__} data id {value.id!r} does not match {self.id!r}"
            )
        previous = self._data
        if previous == value:
            return
        self._data = value
        self.events.trigger("change_data", PropertyChange(source=self, previous=previous))

    @property
    def label(self) -> str:
        if self._data is None or not self._data.label:
            return self.id
        for term in self._data.label:
            if not term.language:
                return term.value
        return self._data.label[0].value

    def __repr__(self) -> str:
        return f"{type(self).__name__}({self.id!r})"


class ElementType(_Descriptor[ElementTypeModel]):
    pass


class LinkType(_Descriptor[LinkTypeModel]):
    pass


class PropertyType(_Descriptor[PropertyTypeModel]):
    pass


class TypeRegistry:
    """Lazily populated descriptors, re-emitting their change events."""

    def __init__(self) -> None:
        self.events = EventSource()
        self._element_types: dict[str, ElementType] = {}
        self._link_types: dict[str, LinkType] = {}
        self._property_types: dict[str, PropertyType] = {}

    def get_element_type(self, iri: str) -> ElementType | None:
        return self._element_types.get(iri)

    def get_link_type(self, iri: str) -> LinkType | None:
        return self._link_types.get(iri)

    def get_property_type(self, iri: str) -> PropertyType | None:
        return self._property_types.get(iri)

    def create_element_type(self, iri: str) -> ElementType:
        existing = self._element_types.get(iri)
        if existing is None:
            existing = self._element_types[iri] = ElementType(iri)
            existing.events.on("change_data", lambda e: self.events.trigger("element_type_event", e))
        return existing

    def create_link_type(self, iri: str) -> LinkType:
        existing = self._link_types.get(iri)
        if existing is None:
            existing = self._link_types[iri] = LinkType(iri)
            existing.events.on("change_data", lambda e: self.events.trigger("link_type_event", e))
        return existing

    def create_property_type(self, iri: str) -> PropertyType:
        existing = self._property_types.get(iri)
        if existing is None:
            existing = self._property_types[iri] = PropertyType(iri)
            existing.events.on("change_data", lambda e: self.events.trigger("property_type_event", e))
        return existing

    @property
    def link_types(self) -> list[LinkType]:
        return list(self._link_types.values())

    @property
    def element_types(self) -> list[ElementType]:
        return list(self._element_types.values())

    def format_types(self, iris: tuple[str, ...]) -> list[str]:
        """Display labels for a list of element type IRIs, sorted."""
        labels = []
        for iri in iris:
            descriptor = self._element_types.get(iri)
            labels.append(descriptor.label if descriptor else iri)
        return sorted(labels)
