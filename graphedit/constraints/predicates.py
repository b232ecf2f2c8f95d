from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any, Callable, Mapping

from ..authoring.state import AuthoringState
from ..authoring.validation import Severity, ValidationItem
from ..model import ElementIri, ElementModel, LinkModel
from .schema import RuleDef


@dataclass(frozen=True)
class ConstraintContext:
    state: AuthoringState = field(default_factory=AuthoringState)
    # Entity records for relation endpoints, by IRI.
    entities: Mapping[ElementIri, ElementModel] = field(default_factory=dict)

    def entity(self, iri: ElementIri) -> ElementModel | None:
        return self.entities.get(iri)


PredicateFn = Callable[[Any, RuleDef, ConstraintContext], list[ValidationItem]]


def _item(rule: RuleDef, message: str, property_type: str | None = None) -> ValidationItem:
    return ValidationItem(
        message=rule.message or message,
        severity=Severity(rule.severity),
        property_type=property_type,
    )


def _str_list(value: Any) -> list[str] | None:
    if not isinstance(value, list) or not all(isinstance(v, str) for v in value):
        return None
    return value


def predicate_noop(item: Any, rule: RuleDef, ctx: ConstraintContext) -> list[ValidationItem]:
    return []


def predicate_required_property(entity: ElementModel, rule: RuleDef, ctx: ConstraintContext) -> list[ValidationItem]:
    properties = _str_list(rule.predicate.params.get("properties"))
    if not properties:
        return []
    return [
        _item(rule, f"Missing required property {prop}", property_type=prop)
        for prop in properties
        if not entity.properties.get(prop)
    ]


def predicate_required_label(entity: ElementModel, rule: RuleDef, ctx: ConstraintContext) -> list[ValidationItem]:
    language = rule.predicate.params.get("language")
    labels = [term for term in entity.label if term.value.strip()]
    if isinstance(language, str):
        labels = [term for term in labels if term.language == language]
    if labels:
        return []
    suffix = f" in language {language!r}" if isinstance(language, str) else ""
    return [_item(rule, f"Entity has no label{suffix}")]


def predicate_max_values(entity: ElementModel, rule: RuleDef, ctx: ConstraintContext) -> list[ValidationItem]:
    prop = rule.predicate.params.get("property")
    limit = rule.predicate.params.get("max")
    if not isinstance(prop, str) or not isinstance(limit, int):
        return []
    count = len(entity.properties.get(prop, ()))
    if count <= limit:
        return []
    return [_item(rule, f"Property {prop} has {count} values, at most {limit} allowed", property_type=prop)]


def predicate_endpoint_types(relation: LinkModel, rule: RuleDef, ctx: ConstraintContext) -> list[ValidationItem]:
    source_types = _str_list(rule.predicate.params.get("source_types"))
    target_types = _str_list(rule.predicate.params.get("target_types"))
    results: list[ValidationItem] = []

    source = ctx.entity(relation.source_id)
    if source_types and source is not None and not set(source.types) & set(source_types):
        results.append(_item(rule, f"Relation source must be one of: {', '.join(source_types)}"))

    target = ctx.entity(relation.target_id)
    if target_types and target is not None and not set(target.types) & set(target_types):
        results.append(_item(rule, f"Relation target must be one of: {', '.join(target_types)}"))
    return results


def predicate_no_self_loop(relation: LinkModel, rule: RuleDef, ctx: ConstraintContext) -> list[ValidationItem]:
    if relation.source_id != relation.target_id:
        return []
    return [_item(rule, "Relation connects an entity to itself")]


PREDICATES: dict[str, PredicateFn] = {
    "noop": predicate_noop,
    "required-property": predicate_required_property,
    "required-label": predicate_required_label,
    "max-values": predicate_max_values,
    "endpoint-types": predicate_endpoint_types,
    "no-self-loop": predicate_no_self_loop,
}
