"""Inspect command - summarise a diagram document."""

from __future__ import annotations

import json
from pathlib import Path
from typing import Any

from rich.console import Console
from rich.table import Table

from ..diagram.cells import EntityElement, EntityGroup, RelationGroup, RelationLink, iterate_relations_of
from ..diagram.model import DiagramModel
from ..diagram.serialization import load_diagram


def _load_model(diagram_path: Path) -> DiagramModel:
    model = DiagramModel()
    model.import_layout(load_diagram(diagram_path))
    return model


def summarize(model: DiagramModel) -> dict[str, Any]:
    """Counts and per-cell rows for a loaded diagram."""
    elements = []
    for element in model.elements:
        if isinstance(element, EntityElement):
            elements.append({"id": element.id, "kind": "element", "iris": [element.iri]})
        else:
            elements.append({"id": element.id, "kind": "group", "iris": [item.data.id for item in element.items]})

    links = []
    for link in model.links:
        links.append(
            {
                "id": link.id,
                "kind": "link" if isinstance(link, RelationLink) else "group",
                "type": link.type_id,
                "relations": [
                    {"source": r.source_id, "target": r.target_id} for r in iterate_relations_of(link)
                ],
            }
        )

    visibility = {type_id: v.value for type_id, v in model.graph.link_visibility_overrides().items()}
    return {
        "summary": {
            "elements": sum(1 for e in model.elements if isinstance(e, EntityElement)),
            "entity_groups": sum(1 for e in model.elements if isinstance(e, EntityGroup)),
            "links": sum(1 for link in model.links if isinstance(link, RelationLink)),
            "relation_groups": sum(1 for link in model.links if isinstance(link, RelationGroup)),
            "relations": sum(len(entry["relations"]) for entry in links),
        },
        "elements": elements,
        "links": links,
        "link_type_visibility": visibility,
    }


def run_inspect(diagram_path: Path, *, output_json: bool = False) -> int:
    """Print a diagram summary.

    Returns:
        Exit code (0 = success, 1 = diagram could not be read)
    """
    console = Console(stderr=True)

    try:
        model = _load_model(diagram_path)
    except (OSError, ValueError, KeyError) as e:
        console.print(f"Failed to read diagram {diagram_path}: {e}", style="bold red")
        return 1

    report = summarize(model)
    if output_json:
        print(json.dumps(report, indent=2))
        return 0

    counts = report["summary"]
    console.print(f"Diagram: {diagram_path}", style="bold")
    console.print(
        f"{counts['elements']} element(s), {counts['entity_groups']} group(s), "
        f"{counts['links']} link(s), {counts['relation_groups']} link group(s), "
        f"{counts['relations']} relation(s)",
        style="dim",
    )

    if report["elements"]:
        table = Table(title="Elements")
        table.add_column("Id", style="cyan")
        table.add_column("Kind")
        table.add_column("Entities")
        for row in report["elements"]:
            table.add_row(row["id"], row["kind"], "\n".join(row["iris"]))
        console.print(table)

    if report["links"]:
        table = Table(title="Links")
        table.add_column("Id", style="cyan")
        table.add_column("Kind")
        table.add_column("Type")
        table.add_column("Relations")
        for row in report["links"]:
            relations = "\n".join(f"{r['source']} -> {r['target']}" for r in row["relations"])
            table.add_row(row["id"], row["kind"], row["type"], relations)
        console.print(table)

    if report["link_type_visibility"]:
        table = Table(title="Link type options")
        table.add_column("Link type", style="cyan")
        table.add_column("Visibility")
        for type_id, visibility in sorted(report["link_type_visibility"].items()):
            table.add_row(type_id, visibility)
        console.print(table)

    return 0
