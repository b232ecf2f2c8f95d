"""
Tests for the command line interface and the run_* command functions.
"""

from __future__ import annotations

import json
from pathlib import Path

import pytest
from click.testing import CliRunner

from conftest import KNOWS, WORKS_AT, company, person, relation
from graphedit import __version__
from graphedit.cli import cli
from graphedit.commands.inspect_cmd import run_inspect
from graphedit.commands.normalize_cmd import run_normalize
from graphedit.commands.validate_cmd import run_validate
from graphedit.diagram.cells import EntityElement, LinkTypeVisibility, RelationLink, Vector
from graphedit.diagram.model import DiagramModel
from graphedit.diagram.serialization import load_diagram, save_diagram

RULES = """
ruleset_id = "ruleset/cli"
version = 1

[[rules]]
id = "person.email"
scope = "entity"
severity = "warning"
selector = { kind = "type", type = "http://example.com/Person" }
predicate = { name = "required-property", params = { properties = ["http://example.com/email"] } }

[[rules]]
id = "knows.endpoints"
scope = "relation"
selector = { kind = "link-type", type = "http://example.com/knows" }
predicate = { name = "endpoint-types", params = { source_types = ["http://example.com/Person"] } }
"""


def _write(path: Path, text: str) -> None:
    path.parent.mkdir(parents=True, exist_ok=True)
    path.write_text(text, encoding="utf-8")


@pytest.fixture
def diagram_path(tmp_path: Path) -> Path:
    """alice knows bob, bob works at acme, and acme (a company) knows alice."""
    model = DiagramModel()
    alice = EntityElement(data=person("http://example.com/alice"), position=Vector(0.0, 0.0))
    bob = EntityElement(data=person("http://example.com/bob"), position=Vector(100.0, 0.0))
    acme = EntityElement(data=company("http://example.com/acme"), position=Vector(200.0, 0.0))
    for element in (alice, bob, acme):
        model.add_element(element)
    model.add_link(RelationLink(alice.id, bob.id, relation(KNOWS, alice.iri, bob.iri)))
    model.add_link(RelationLink(bob.id, acme.id, relation(WORKS_AT, bob.iri, acme.iri)))
    model.add_link(RelationLink(acme.id, alice.id, relation(KNOWS, acme.iri, alice.iri)))
    model.set_link_visibility(WORKS_AT, LinkTypeVisibility.WITHOUT_LABEL)

    path = tmp_path / "diagram.json"
    save_diagram(path, model.export_layout())
    return path


@pytest.fixture
def rules_path(tmp_path: Path) -> Path:
    path = tmp_path / "rules.toml"
    _write(path, RULES)
    return path


# -----------------------------------------------------------------------------
# inspect
# -----------------------------------------------------------------------------


class TestInspect:
    def test_json_summary(self, diagram_path: Path, capsys: pytest.CaptureFixture[str]) -> None:
        assert run_inspect(diagram_path, output_json=True) == 0
        report = json.loads(capsys.readouterr().out)

        assert report["summary"] == {
            "elements": 3,
            "entity_groups": 0,
            "links": 3,
            "relation_groups": 0,
            "relations": 3,
        }
        assert report["link_type_visibility"] == {WORKS_AT: "withoutLabel"}

    def test_human_output(self, diagram_path: Path, capsys: pytest.CaptureFixture[str]) -> None:
        assert run_inspect(diagram_path) == 0
        err = capsys.readouterr().err
        assert "3 element(s)" in err
        assert "Elements" in err
        assert "Link type options" in err

    def test_unreadable_diagram(self, tmp_path: Path, capsys: pytest.CaptureFixture[str]) -> None:
        path = tmp_path / "broken.json"
        _write(path, '{"@type": "Nope"}')
        assert run_inspect(path) == 1
        assert "Failed to read diagram" in capsys.readouterr().err


# -----------------------------------------------------------------------------
# validate
# -----------------------------------------------------------------------------


class TestValidate:
    def test_json_findings(
        self,
        diagram_path: Path,
        dataset_path: Path,
        rules_path: Path,
        capsys: pytest.CaptureFixture[str],
    ) -> None:
        exit_code = run_validate(diagram_path, dataset_path, rules_path, output_json=True)
        output = json.loads(capsys.readouterr().out)

        assert exit_code == 1
        assert output["ruleset"] == {"ruleset_id": "ruleset/cli", "version": 1}
        assert output["summary"] == {
            "entities": 3,
            "relations": 3,
            "errors": 2,
            "warnings": 2,
            "info": 0,
        }
        relation_findings = [f for f in output["findings"] if f["kind"] == "relation"]
        assert relation_findings == [
            {
                "target": f"http://example.com/acme -[{KNOWS}]-> http://example.com/alice",
                "kind": "relation",
                "severity": "error",
                "message": "Relation source must be one of: http://example.com/Person",
                "property_type": None,
            }
        ]

    def test_warnings_only_pass_unless_fail_on_warning(
        self,
        tmp_path: Path,
        diagram_path: Path,
        dataset_path: Path,
    ) -> None:
        rules = tmp_path / "warnings.toml"
        _write(rules, RULES.split("[[rules]]\nid = \"knows.endpoints\"")[0])

        assert run_validate(diagram_path, dataset_path, rules) == 0
        assert run_validate(diagram_path, dataset_path, rules, fail_on="warning") == 1

    def test_without_ruleset(
        self,
        diagram_path: Path,
        dataset_path: Path,
        capsys: pytest.CaptureFixture[str],
    ) -> None:
        assert run_validate(diagram_path, dataset_path, None) == 0
        err = capsys.readouterr().err
        assert "No ruleset given" in err
        assert "No issues found" in err

    def test_human_output(
        self,
        diagram_path: Path,
        dataset_path: Path,
        rules_path: Path,
        capsys: pytest.CaptureFixture[str],
    ) -> None:
        run_validate(diagram_path, dataset_path, rules_path)
        err = capsys.readouterr().err
        assert "Validation results" in err
        assert "2 error(s), 2 warning(s)" in err

    def test_unreadable_dataset(
        self,
        tmp_path: Path,
        diagram_path: Path,
        capsys: pytest.CaptureFixture[str],
    ) -> None:
        dataset = tmp_path / "bad.json"
        _write(dataset, "not json")
        assert run_validate(diagram_path, dataset, None) == 1
        assert "Failed to load dataset" in capsys.readouterr().err


# -----------------------------------------------------------------------------
# normalize
# -----------------------------------------------------------------------------


class TestNormalize:
    def test_exported_diagram_is_already_normalized(
        self,
        diagram_path: Path,
        capsys: pytest.CaptureFixture[str],
    ) -> None:
        assert run_normalize(diagram_path) == 0
        captured = capsys.readouterr()
        assert json.loads(captured.out) == load_diagram(diagram_path)
        assert "already normalized" in captured.err

    def test_fills_in_defaults(self, tmp_path: Path, diagram_path: Path, capsys: pytest.CaptureFixture[str]) -> None:
        diagram = load_diagram(diagram_path)
        for link in diagram["layoutData"]["links"]:
            del link["vertices"]
        sparse = tmp_path / "sparse.json"
        _write(sparse, json.dumps(diagram))
        output = tmp_path / "out" / "normalized.json"

        assert run_normalize(sparse, output) == 0
        assert "Diagram normalized" in capsys.readouterr().err
        assert all(link["vertices"] == [] for link in load_diagram(output)["layoutData"]["links"])

        assert run_normalize(output) == 0
        assert "already normalized" in capsys.readouterr().err


# -----------------------------------------------------------------------------
# click wiring
# -----------------------------------------------------------------------------


class TestCli:
    def test_version(self) -> None:
        result = CliRunner().invoke(cli, ["--version"])
        assert result.exit_code == 0
        assert __version__ in result.output

    def test_inspect_json(self, diagram_path: Path, tmp_path: Path, monkeypatch: pytest.MonkeyPatch) -> None:
        monkeypatch.chdir(tmp_path)
        result = CliRunner().invoke(cli, ["inspect", str(diagram_path), "--json"])
        assert result.exit_code == 0
        assert json.loads(result.stdout)["summary"]["elements"] == 3

    def test_validate_uses_configured_ruleset(
        self,
        tmp_path: Path,
        diagram_path: Path,
        dataset_path: Path,
        rules_path: Path,
        monkeypatch: pytest.MonkeyPatch,
    ) -> None:
        _write(tmp_path / "graphedit.toml", '[graphedit]\nruleset = "rules.toml"\n')
        monkeypatch.chdir(tmp_path)

        result = CliRunner().invoke(cli, ["validate", str(diagram_path), "--data", str(dataset_path), "--json"])

        assert result.exit_code == 1
        assert json.loads(result.stdout)["ruleset"]["ruleset_id"] == "ruleset/cli"

    def test_invalid_config(self, tmp_path: Path, diagram_path: Path) -> None:
        config = tmp_path / "bad.toml"
        _write(config, "[graphedit]\nvalidation_delay = -5\n")
        result = CliRunner().invoke(cli, ["--config", str(config), "inspect", str(diagram_path)])
        assert result.exit_code == 2
        assert "validation_delay" in result.output
