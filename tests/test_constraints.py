"""
Tests for declarative constraint rulesets and the providers built on them.
"""

from __future__ import annotations

import asyncio
import logging
from pathlib import Path

import pytest

from conftest import COMPANY, KNOWS, PERSON, WORKS_AT, company, person, relation
from graphedit.authoring.state import EMPTY
from graphedit.authoring.validation import Severity
from graphedit.constraints import (
    ConstraintContext,
    RulesetMetadataProvider,
    RulesetValidationProvider,
    evaluate_entity,
    evaluate_relation,
    load_ruleset,
    ruleset_from_dict,
)
from graphedit.constraints.predicates import PREDICATES
from graphedit.constraints.schema import Predicate, RuleDef
from graphedit.model import DirectedLinkType, ElementModel, LinkDirection, LiteralTerm
from graphedit.providers.base import EntityValidationEvent, MetadataProvider, RelationValidationEvent

RULESET = """
ruleset_id = "ruleset/people"
version = 1
description = "People and where they work"

[[rules]]
id = "person.label"
scope = "entity"
selector = { kind = "type", type = "http://example.com/Person" }
predicate = { name = "required-label" }

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
predicate = { name = "endpoint-types", params = { source_types = ["http://example.com/Person"], target_types = ["http://example.com/Person"] } }

[[rules]]
id = "works-at.endpoints"
scope = "relation"
selector = { kind = "link-type", type = "http://example.com/worksAt" }
predicate = { name = "endpoint-types", params = { source_types = ["http://example.com/Person"], target_types = ["http://example.com/Company"] } }

[[rules]]
id = "no-loops"
scope = "relation"
severity = "info"
predicate = { name = "no-self-loop" }
message = "Self loop."

[[rules]]
id = "future.rule"
predicate = { name = "not-implemented-yet" }
"""


def _write(path: Path, text: str) -> None:
    path.parent.mkdir(parents=True, exist_ok=True)
    path.write_text(text, encoding="utf-8")


@pytest.fixture
def ruleset(tmp_path: Path):
    path = tmp_path / "rules" / "people.toml"
    _write(path, RULESET)
    return load_ruleset(path)


# -----------------------------------------------------------------------------
# Loading
# -----------------------------------------------------------------------------


def test_load_ruleset(ruleset) -> None:
    assert ruleset.ruleset_id == "ruleset/people"
    assert ruleset.version == 1
    assert ruleset.description == "People and where they work"
    assert [r.id for r in ruleset.rules_for("entity")] == ["person.label", "person.email", "future.rule"]
    assert len(ruleset.rules_for("relation")) == 3
    email = ruleset.rules[1]
    assert email.selector.params == {"type": PERSON}
    assert email.predicate.params == {"properties": ["http://example.com/email"]}


def test_ruleset_requires_id_and_version() -> None:
    with pytest.raises(ValueError, match="ruleset_id"):
        ruleset_from_dict({"version": 1})
    with pytest.raises(ValueError, match="version"):
        ruleset_from_dict({"ruleset_id": "x", "version": 0})


def test_unknown_severity_is_an_error() -> None:
    with pytest.raises(ValueError, match="unknown severity"):
        ruleset_from_dict({"ruleset_id": "x", "version": 1, "rules": [{"id": "r", "severity": "fatal"}]})


def test_defaults_and_skipped_rules() -> None:
    ruleset = ruleset_from_dict(
        {
            "ruleset_id": "x",
            "version": 2,
            "defaults": {"scope": "relation", "severity": "warning"},
            "rules": [
                {"id": "a"},
                {"id": "b", "scope": "diagram"},
                {"scope": "entity"},
                "not a table",
            ],
        }
    )
    (rule,) = ruleset.rules
    assert (rule.id, rule.scope, rule.severity) == ("a", "relation", "warning")
    assert rule.predicate.name == "noop"


# -----------------------------------------------------------------------------
# Evaluation
# -----------------------------------------------------------------------------


def test_entity_rules(ruleset) -> None:
    unlabeled = ElementModel(id="http://example.com/x", types=(PERSON,))
    items = evaluate_entity(ruleset, unlabeled, ConstraintContext())

    assert [(i.severity, i.message) for i in items] == [
        (Severity.ERROR, "Entity has no label"),
        (Severity.WARNING, "Missing required property http://example.com/email"),
    ]
    assert items[1].property_type == "http://example.com/email"
    # Companies are not selected by the person rules.
    assert evaluate_entity(ruleset, company("http://example.com/acme"), ConstraintContext()) == []


def test_unknown_predicate_is_skipped(ruleset, caplog: pytest.LogCaptureFixture) -> None:
    with caplog.at_level(logging.WARNING, logger="graphedit.constraints.engine"):
        evaluate_entity(ruleset, company("http://example.com/acme"), ConstraintContext())
    assert "unknown predicate 'not-implemented-yet'" in caplog.text


def test_relation_rules(ruleset) -> None:
    ctx = ConstraintContext(
        entities={
            "http://example.com/alice": person("http://example.com/alice"),
            "http://example.com/acme": company("http://example.com/acme"),
        }
    )
    items = evaluate_relation(ruleset, relation(KNOWS, "http://example.com/alice", "http://example.com/acme"), ctx)
    assert [i.message for i in items] == ["Relation target must be one of: http://example.com/Person"]

    loop = relation(KNOWS, "http://example.com/alice", "http://example.com/alice")
    assert [(i.severity, i.message) for i in evaluate_relation(ruleset, loop, ctx)] == [(Severity.INFO, "Self loop.")]


def test_unknown_endpoints_are_not_reported(ruleset) -> None:
    items = evaluate_relation(ruleset, relation(WORKS_AT, "http://example.com/a", "http://example.com/b"), ConstraintContext())
    assert items == []


class TestPredicates:
    def test_max_values(self) -> None:
        rule = RuleDef(
            id="one-email",
            scope="entity",
            predicate=Predicate("max-values", {"property": "http://example.com/email", "max": 1}),
        )
        entity = ElementModel(
            id="http://example.com/a",
            properties={"http://example.com/email": (LiteralTerm("a@x"), LiteralTerm("b@x"))},
        )
        (item,) = PREDICATES["max-values"](entity, rule, ConstraintContext())
        assert item.message == "Property http://example.com/email has 2 values, at most 1 allowed"

    def test_required_label_language(self) -> None:
        rule = RuleDef(id="label-de", scope="entity", predicate=Predicate("required-label", {"language": "de"}))
        entity = ElementModel(id="http://example.com/a", label=(LiteralTerm("Alice", "en"),))
        (item,) = PREDICATES["required-label"](entity, rule, ConstraintContext())
        assert item.message == "Entity has no label in language 'de'"

    def test_misconfigured_params_yield_nothing(self) -> None:
        rule = RuleDef(id="broken", scope="entity", predicate=Predicate("max-values", {"property": 3}))
        assert PREDICATES["max-values"](person("http://example.com/a"), rule, ConstraintContext()) == []


# -----------------------------------------------------------------------------
# Providers
# -----------------------------------------------------------------------------


class TestRulesetValidationProvider:
    def test_entity_with_outbound_relations(self, ruleset) -> None:
        records = {"http://example.com/acme": company("http://example.com/acme")}
        provider = RulesetValidationProvider(ruleset, lookup=records.get)
        event = EntityValidationEvent(
            target=person("http://example.com/alice"),
            outbound_links=(relation(KNOWS, "http://example.com/alice", "http://example.com/acme"),),
            state=EMPTY,
        )

        items = asyncio.run(provider.validate_entity(event))

        messages = [i.message for i in items]
        assert "Missing required property http://example.com/email" in messages
        assert (
            f"{KNOWS} -> http://example.com/acme: Relation target must be one of: {PERSON}" in messages
        )

    def test_relation_uses_lookup_for_missing_endpoint(self, ruleset) -> None:
        records = {"http://example.com/alice": person("http://example.com/alice")}
        provider = RulesetValidationProvider(ruleset, lookup=records.get)
        event = RelationValidationEvent(
            target=relation(WORKS_AT, "http://example.com/alice", "http://example.com/bob"),
            source=None,
            target_entity=person("http://example.com/bob"),
            state=EMPTY,
        )
        items = asyncio.run(provider.validate_relation(event))
        assert [i.message for i in items] == [f"Relation target must be one of: {COMPANY}"]


class TestRulesetMetadataProvider:
    def test_is_a_metadata_provider(self, ruleset) -> None:
        assert isinstance(RulesetMetadataProvider(ruleset), MetadataProvider)

    def test_types_dragged_from(self, ruleset) -> None:
        provider = RulesetMetadataProvider(ruleset)
        types = asyncio.run(provider.types_of_elements_dragged_from(person("http://example.com/a")))
        assert types == [COMPANY, PERSON]
        assert asyncio.run(provider.types_of_elements_dragged_from(company("http://example.com/c"))) == []

    def test_possible_link_types(self, ruleset) -> None:
        provider = RulesetMetadataProvider(ruleset)
        alice = person("http://example.com/alice")
        acme = company("http://example.com/acme")

        assert asyncio.run(provider.possible_link_types(alice, acme)) == [DirectedLinkType(WORKS_AT)]
        assert asyncio.run(provider.possible_link_types(acme, alice)) == [
            DirectedLinkType(WORKS_AT, LinkDirection.IN)
        ]
        assert asyncio.run(provider.possible_link_types(alice, alice)) == [DirectedLinkType(KNOWS)]

    def test_generate_new_element(self, ruleset) -> None:
        provider = RulesetMetadataProvider(ruleset, entity_iri_prefix="urn:test:")
        element = asyncio.run(provider.generate_new_element([PERSON]))
        assert element.id.startswith("urn:test:")
        assert element.types == (PERSON,)
        assert element.label == (LiteralTerm("New Person"),)
