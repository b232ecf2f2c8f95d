"""Validate command - check a diagram against a constraint ruleset."""

from __future__ import annotations

import asyncio
import json
from dataclasses import dataclass, replace
from pathlib import Path

from rich.console import Console
from rich.table import Table

from ..authoring.validation import Severity, ValidationState
from ..config import EditorSettings
from ..constraints import RulesetDef, RulesetValidationProvider, load_ruleset
from ..diagram.model import DiagramModel
from ..diagram.serialization import load_diagram
from ..editor import EditorController
from ..errors import ProviderError
from ..providers.memory import InMemoryDataProvider


@dataclass(frozen=True)
class Finding:
    target: str
    kind: str
    severity: str
    message: str
    property_type: str | None = None

    def to_dict(self) -> dict:
        return {
            "target": self.target,
            "kind": self.kind,
            "severity": self.severity,
            "message": self.message,
            "property_type": self.property_type,
        }


def _load_dataset(path: Path) -> InMemoryDataProvider:
    try:
        return InMemoryDataProvider.load(path)
    except (OSError, ValueError, KeyError) as e:
        raise ProviderError(f"Failed to load dataset {path}: {e}") from e


def _findings(state: ValidationState) -> list[Finding]:
    findings: list[Finding] = []
    for iri, result in sorted(state.entities.items()):
        for item in result.items:
            findings.append(Finding(iri, "entity", item.severity.value, item.message, item.property_type))
    for key, result in sorted(state.relations.items()):
        target = f"{key.source_id} -[{key.link_type_id}]-> {key.target_id}"
        for item in result.items:
            findings.append(Finding(target, "relation", item.severity.value, item.message, item.property_type))
    return findings


async def validate_model(
    model: DiagramModel,
    ruleset: RulesetDef,
    dataset: InMemoryDataProvider,
    settings: EditorSettings | None = None,
) -> ValidationState:
    """Validate every entity and relation on the diagram and wait for the results."""
    settings = replace(settings or EditorSettings(), validation_delay=0.0)
    records = dataset.records
    editor = EditorController(
        model,
        validation_provider=RulesetValidationProvider(ruleset, lookup=records.get),
        settings=settings,
    )
    try:
        editor.validate_all()
        await editor.validation.drain()
        return editor.validation_state
    finally:
        editor.dispose()


def run_validate(
    diagram_path: Path,
    data_path: Path,
    rules_path: Path | None = None,
    *,
    settings: EditorSettings | None = None,
    fail_on: str = "error",
    output_json: bool = False,
) -> int:
    """Validate a diagram.

    Args:
        diagram_path: Diagram JSON to validate
        data_path: Dataset providing entity records
        rules_path: Ruleset TOML; without one no rules apply
        fail_on: Exit with error if this level or higher found ("error" or "warning")
        output_json: Output results as JSON instead of human-readable

    Returns:
        Exit code (0 = success, 1 = failures found or inputs unreadable)
    """
    console = Console(stderr=True)

    try:
        dataset = _load_dataset(data_path)
        if rules_path is not None:
            ruleset = load_ruleset(rules_path)
        else:
            console.print("No ruleset given; nothing to check", style="yellow")
            ruleset = RulesetDef(ruleset_id="empty", version=1)
        model = DiagramModel()
        model.import_layout(load_diagram(diagram_path), preloaded=dataset.records)
    except (ProviderError, OSError, ValueError, KeyError) as e:
        console.print(str(e), style="bold red")
        return 1

    state = asyncio.run(validate_model(model, ruleset, dataset, settings))
    findings = _findings(state)

    counts = {severity.value: 0 for severity in Severity}
    for finding in findings:
        counts[finding.severity] += 1

    if output_json:
        output = {
            "ruleset": {"ruleset_id": ruleset.ruleset_id, "version": ruleset.version},
            "findings": [f.to_dict() for f in findings],
            "summary": {
                "entities": len(state.entities),
                "relations": len(state.relations),
                "errors": counts["error"],
                "warnings": counts["warning"],
                "info": counts["info"],
            },
        }
        print(json.dumps(output, indent=2))
    else:
        _print_human_output(console, findings, counts)

    if fail_on == "warning":
        if counts["error"] > 0 or counts["warning"] > 0:
            return 1
    else:
        if counts["error"] > 0:
            return 1
    return 0


def _print_human_output(console: Console, findings: list[Finding], counts: dict[str, int]) -> None:
    if not findings:
        console.print("✓ No issues found", style="bold green")
        return

    table = Table(title="Validation results")
    table.add_column("Level")
    table.add_column("Kind")
    table.add_column("Target", style="cyan")
    table.add_column("Message")
    styles = {"error": "bold red", "warning": "yellow", "info": "dim"}
    for finding in findings:
        table.add_row(
            f"[{styles[finding.severity]}]{finding.severity.upper()}[/]",
            finding.kind,
            finding.target,
            finding.message,
        )
    console.print(table)
    console.print(
        f"{counts['error']} error(s), {counts['warning']} warning(s), {counts['info']} info(s)",
        style="dim",
    )
