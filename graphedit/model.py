"""
Data contracts for entities and relations.

These are pure value types: an entity record is identified by its IRI,
a relation by its (type, source, target) key. Diagram cells wrap them,
authoring events carry them, providers produce them.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Mapping, NamedTuple, Union


ElementIri = str
ElementTypeIri = str
LinkTypeIri = str
PropertyTypeIri = str


@dataclass(frozen=True)
class LiteralTerm:
    """A literal property value with an optional language tag."""

    value: str
    language: str = ""

    def to_dict(self) -> dict[str, Any]:
        d: dict[str, Any] = {"termType": "Literal", "value": self.value}
        if self.language:
            d["language"] = self.language
        return d


@dataclass(frozen=True)
class NamedNode:
    """An IRI-valued property value."""

    iri: str

    def to_dict(self) -> dict[str, Any]:
        return {"termType": "NamedNode", "value": self.iri}


Term = Union[LiteralTerm, NamedNode]
PropertyMap = Mapping[PropertyTypeIri, tuple[Term, ...]]


def term_from_dict(data: Any) -> Term:
    if isinstance(data, str):
        return LiteralTerm(value=data)
    if data.get("termType") == "NamedNode":
        return NamedNode(iri=str(data["value"]))
    return LiteralTerm(value=str(data.get("value", "")), language=str(data.get("language", "")))


def _properties_to_dict(properties: PropertyMap) -> dict[str, list[dict[str, Any]]]:
    return {key: [term.to_dict() for term in values] for key, values in properties.items()}


def _properties_from_dict(data: Any) -> dict[str, tuple[Term, ...]]:
    if not isinstance(data, dict):
        return {}
    return {str(key): tuple(term_from_dict(v) for v in (values or [])) for key, values in data.items()}


@dataclass(frozen=True)
class ElementModel:
    """An external entity record."""

    id: ElementIri
    types: tuple[ElementTypeIri, ...] = ()
    label: tuple[LiteralTerm, ...] = ()
    image: str | None = None
    properties: PropertyMap = field(default_factory=dict)

    def to_dict(self) -> dict[str, Any]:
        d: dict[str, Any] = {
            "id": self.id,
            "types": list(self.types),
            "label": [term.to_dict() for term in self.label],
            "properties": _properties_to_dict(self.properties),
        }
        if self.image:
            d["image"] = self.image
        return d

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> ElementModel:
        label = data.get("label", [])
        if isinstance(label, (str, dict)):
            label = [label]
        return cls(
            id=str(data["id"]),
            types=tuple(str(t) for t in data.get("types", [])),
            label=tuple(term_from_dict(x) for x in label),  # type: ignore[misc]
            image=data.get("image"),
            properties=_properties_from_dict(data.get("properties")),
        )


class LinkKey(NamedTuple):
    """Identity of a relation: equal keys mean the same relation."""

    link_type_id: LinkTypeIri
    source_id: ElementIri
    target_id: ElementIri


@dataclass(frozen=True)
class LinkModel:
    """An external relation record."""

    link_type_id: LinkTypeIri
    source_id: ElementIri
    target_id: ElementIri
    properties: PropertyMap = field(default_factory=dict)

    @property
    def key(self) -> LinkKey:
        return LinkKey(self.link_type_id, self.source_id, self.target_id)

    def to_dict(self) -> dict[str, Any]:
        return {
            "linkTypeId": self.link_type_id,
            "sourceId": self.source_id,
            "targetId": self.target_id,
            "properties": _properties_to_dict(self.properties),
        }

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> LinkModel:
        return cls(
            link_type_id=str(data["linkTypeId"]),
            source_id=str(data["sourceId"]),
            target_id=str(data["targetId"]),
            properties=_properties_from_dict(data.get("properties")),
        )


def link_key(link: LinkModel | LinkKey) -> LinkKey:
    if isinstance(link, LinkKey):
        return link
    return link.key


def equal_links(a: LinkModel | LinkKey, b: LinkModel | LinkKey) -> bool:
    return link_key(a) == link_key(b)


def is_connected_to(link: LinkModel | LinkKey, iri: ElementIri) -> bool:
    return link.source_id == iri or link.target_id == iri


def rebind_link(link: LinkModel, old_iri: ElementIri, new_iri: ElementIri) -> LinkModel:
    """Return `link` with endpoints referring to `old_iri` moved to `new_iri`."""
    if not is_connected_to(link, old_iri):
        return link
    return LinkModel(
        link_type_id=link.link_type_id,
        source_id=new_iri if link.source_id == old_iri else link.source_id,
        target_id=new_iri if link.target_id == old_iri else link.target_id,
        properties=link.properties,
    )


def placeholder_entity(iri: ElementIri, types: tuple[ElementTypeIri, ...] = ()) -> ElementModel:
    """Entity record used before real data is fetched."""
    return ElementModel(id=iri, types=tuple(types))


def format_label(model: ElementModel, language: str = "") -> str:
    """Pick a display label, preferring `language`, falling back to the IRI."""
    for term in model.label:
        if term.language == language:
            return term.value
    if model.label:
        return model.label[0].value
    return model.id


@dataclass(frozen=True)
class ElementTypeModel:
    id: ElementTypeIri
    label: tuple[LiteralTerm, ...] = ()
    count: int | None = None


@dataclass(frozen=True)
class LinkTypeModel:
    id: LinkTypeIri
    label: tuple[LiteralTerm, ...] = ()
    count: int | None = None


@dataclass(frozen=True)
class PropertyTypeModel:
    id: PropertyTypeIri
    label: tuple[LiteralTerm, ...] = ()


class LinkDirection(str, Enum):
    """Direction of a relation relative to a source entity."""

    IN = "in"
    OUT = "out"


@dataclass(frozen=True)
class DirectedLinkType:
    link_type_iri: LinkTypeIri
    direction: LinkDirection = LinkDirection.OUT
