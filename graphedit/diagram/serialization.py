"""
Persisted diagram shape.

A diagram document is a JSON-LD flavoured dict:

    {
      "@context": ...,
      "@type": "Diagram",
      "layoutData": {"@type": "Layout", "elements": [...], "links": [...]},
      "linkTypeOptions": [...]
    }

Only layout is stored; entity records are looked up by IRI on import
(from `preloaded`, or as placeholders to be fetched later). Cell ids are
stored, so export -> import -> export is stable.
"""

from __future__ import annotations

import json
import logging
from pathlib import Path
from typing import TYPE_CHECKING, Any

from ..model import ElementIri, ElementModel, LinkModel, placeholder_entity
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
    Vector,
)
from .commands import ChangeLinkTypeVisibility, RemoveElementCommand

if TYPE_CHECKING:
    from .model import DiagramModel

logger = logging.getLogger(__name__)

DIAGRAM_CONTEXT_URL = "https://graphedit.dev/context/v1.json"


def make_serialized_layout(elements: list[dict[str, Any]], links: list[dict[str, Any]]) -> dict[str, Any]:
    return {"@type": "Layout", "elements": elements, "links": links}


def make_serialized_diagram(
    layout_data: dict[str, Any] | None = None,
    link_type_options: list[dict[str, Any]] | None = None,
) -> dict[str, Any]:
    return {
        "@context": DIAGRAM_CONTEXT_URL,
        "@type": "Diagram",
        "layoutData": layout_data or make_serialized_layout([], []),
        "linkTypeOptions": link_type_options or [],
    }


def empty_diagram() -> dict[str, Any]:
    return make_serialized_diagram()


# ----------------------------------------------------------------------
# Export
# ----------------------------------------------------------------------


def _with_state(d: dict[str, Any], key: str, state: Any) -> dict[str, Any]:
    if state:
        d[key] = dict(state)
    return d


def _serialize_element(element: Element) -> dict[str, Any]:
    if isinstance(element, EntityElement):
        d: dict[str, Any] = {
            "@type": "Element",
            "@id": element.id,
            "iri": element.iri,
            "position": element.position.to_dict(),
            "isExpanded": element.expanded,
        }
    else:
        d = {
            "@type": "Group",
            "@id": element.id,
            "items": [
                _with_state({"@type": "GroupItem", "iri": item.data.id}, "elementState", item.element_state)
                for item in element.items
            ],
            "position": element.position.to_dict(),
            "isExpanded": element.expanded,
        }
    return _with_state(d, "elementState", element.element_state)


def _serialize_link(link: Link) -> dict[str, Any]:
    if isinstance(link, RelationLink):
        d: dict[str, Any] = {
            "@type": "Link",
            "@id": link.id,
            "property": link.type_id,
            "source": {"@id": link.source_id},
            "target": {"@id": link.target_id},
            "sourceIri": link.data.source_id,
            "targetIri": link.data.target_id,
            "vertices": [v.to_dict() for v in link.vertices],
        }
    else:
        d = {
            "@type": "LinkGroup",
            "@id": link.id,
            "property": link.type_id,
            "source": {"@id": link.source_id},
            "target": {"@id": link.target_id},
            "items": [
                _with_state(
                    {"@type": "LinkGroupItem", "sourceIri": item.data.source_id, "targetIri": item.data.target_id},
                    "linkState",
                    item.link_state,
                )
                for item in link.items
            ],
            "vertices": [v.to_dict() for v in link.vertices],
        }
    return _with_state(d, "linkState", link.link_state)


def export_layout(model: DiagramModel) -> dict[str, Any]:
    elements = [_serialize_element(e) for e in model.elements]
    links = [_serialize_link(link) for link in model.links]
    options = [
        {
            "@type": "LinkTypeOptions",
            "property": type_id,
            "visible": visibility != LinkTypeVisibility.HIDDEN,
            "showLabel": visibility == LinkTypeVisibility.VISIBLE,
        }
        for type_id, visibility in model.graph.link_visibility_overrides().items()
    ]
    return make_serialized_diagram(make_serialized_layout(elements, links), options)


# ----------------------------------------------------------------------
# Import
# ----------------------------------------------------------------------


def _entity(iri: ElementIri, preloaded: dict[ElementIri, ElementModel]) -> ElementModel:
    return preloaded.get(iri) or placeholder_entity(iri)


def _deserialize_element(raw: dict[str, Any], preloaded: dict[ElementIri, ElementModel]) -> Element | None:
    kind = raw.get("@type")
    common = {
        "id": raw["@id"],
        "position": Vector.from_dict(raw.get("position")),
        "expanded": bool(raw.get("isExpanded", False)),
        "element_state": raw.get("elementState"),
    }
    if kind == "Element":
        return EntityElement(data=_entity(raw["iri"], preloaded), **common)
    if kind == "Group":
        items = [
            EntityGroupItem(data=_entity(item["iri"], preloaded), element_state=item.get("elementState"))
            for item in raw.get("items", [])
        ]
        return EntityGroup(items, **common)
    logger.warning("Skipping element %s of unknown type %r", raw.get("@id"), kind)
    return None


def _deserialize_link(raw: dict[str, Any]) -> Link | None:
    kind = raw.get("@type")
    type_id = raw["property"]
    source_id = raw["source"]["@id"]
    target_id = raw["target"]["@id"]
    vertices = tuple(Vector.from_dict(v) for v in raw.get("vertices", []))
    if kind == "Link":
        data = LinkModel(link_type_id=type_id, source_id=raw["sourceIri"], target_id=raw["targetIri"])
        return RelationLink(
            source_id=source_id,
            target_id=target_id,
            data=data,
            id=raw["@id"],
            vertices=vertices,
            link_state=raw.get("linkState"),
        )
    if kind == "LinkGroup":
        items = [
            RelationGroupItem(
                data=LinkModel(link_type_id=type_id, source_id=item["sourceIri"], target_id=item["targetIri"]),
                link_state=item.get("linkState"),
            )
            for item in raw.get("items", [])
        ]
        return RelationGroup(
            source_id,
            target_id,
            type_id,
            items,
            id=raw["@id"],
            vertices=vertices,
            link_state=raw.get("linkState"),
        )
    logger.warning("Skipping link %s of unknown type %r", raw.get("@id"), kind)
    return None


def _visibility_of(option: dict[str, Any]) -> LinkTypeVisibility:
    if not option.get("visible", True):
        return LinkTypeVisibility.HIDDEN
    if not option.get("showLabel", True):
        return LinkTypeVisibility.WITHOUT_LABEL
    return LinkTypeVisibility.VISIBLE


def import_layout(
    model: DiagramModel,
    diagram: dict[str, Any],
    preloaded: dict[ElementIri, ElementModel] | None = None,
) -> None:
    """
    Replace the model contents with a diagram document and reset history.

    Links whose endpoints are missing from the document are skipped with a
    warning rather than failing the whole import.
    """
    if diagram.get("@type") != "Diagram":
        raise ValueError(f"Not a diagram document: @type={diagram.get('@type')!r}")
    preloaded = preloaded or {}
    layout = diagram.get("layoutData") or {}

    batch = model.history.start_batch("Import layout")
    try:
        for element in model.elements:
            model.history.execute(RemoveElementCommand(model.graph, element))
        for type_id in model.graph.link_visibility_overrides():
            model.history.execute(ChangeLinkTypeVisibility(model.graph, type_id, LinkTypeVisibility.VISIBLE))

        for raw in layout.get("elements", []):
            element = _deserialize_element(raw, preloaded)
            if element is not None:
                model.add_element(element)

        for raw in layout.get("links", []):
            link = _deserialize_link(raw)
            if link is None:
                continue
            if model.get_element(link.source_id) is None or model.get_element(link.target_id) is None:
                logger.warning("Skipping link %s with missing endpoint", link.id)
                continue
            model.add_link(link)

        for option in diagram.get("linkTypeOptions", []):
            type_id = option.get("property")
            if isinstance(type_id, str):
                model.history.execute(ChangeLinkTypeVisibility(model.graph, type_id, _visibility_of(option)))
    finally:
        batch.discard()
    model.history.reset()


def load_diagram(path: Path) -> dict[str, Any]:
    return json.loads(path.read_text(encoding="utf-8"))


def save_diagram(path: Path, diagram: dict[str, Any]) -> None:
    path.parent.mkdir(parents=True, exist_ok=True)
    path.write_text(json.dumps(diagram, indent=2, sort_keys=True) + "\n", encoding="utf-8")
