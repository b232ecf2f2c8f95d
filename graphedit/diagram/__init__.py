"""Diagram cells, the graph store and the diagram model."""

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
    Vector,
    iterate_entities_of,
    iterate_relations_of,
)
from .graph import CellChange, CellEvent, CellsChanged, Graph
from .model import DiagramModel
from .serialization import export_layout, import_layout

__all__ = [
    "Cell",
    "CellChange",
    "CellEvent",
    "CellsChanged",
    "DiagramModel",
    "Element",
    "EntityElement",
    "EntityGroup",
    "EntityGroupItem",
    "Graph",
    "Link",
    "LinkTypeVisibility",
    "RelationGroup",
    "RelationGroupItem",
    "RelationLink",
    "Vector",
    "export_layout",
    "import_layout",
    "iterate_entities_of",
    "iterate_relations_of",
]
