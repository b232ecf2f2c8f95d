"""Normalize command - re-export a diagram as canonical JSON."""

from __future__ import annotations

import json
from pathlib import Path

from rich.console import Console

from ..diagram.model import DiagramModel
from ..diagram.serialization import load_diagram, save_diagram


def canonical_json(diagram: dict) -> str:
    return json.dumps(diagram, indent=2, sort_keys=True) + "\n"


def run_normalize(diagram_path: Path, output: Path | None = None) -> int:
    """Import a diagram and export it again.

    Args:
        diagram_path: Diagram JSON to read
        output: Where to write the result; stdout when None

    Returns:
        Exit code (0 = success, 1 = diagram could not be read)
    """
    console = Console(stderr=True)

    try:
        original = load_diagram(diagram_path)
        model = DiagramModel()
        model.import_layout(original)
    except (OSError, ValueError, KeyError) as e:
        console.print(f"Failed to read diagram {diagram_path}: {e}", style="bold red")
        return 1

    normalized = model.export_layout()
    if output is None:
        print(canonical_json(normalized), end="")
    else:
        save_diagram(output, normalized)
        console.print(f"Wrote {output}", style="dim")

    if canonical_json(original) == canonical_json(normalized):
        console.print("Diagram was already normalized", style="green")
    else:
        console.print("Diagram normalized", style="yellow")
    return 0
