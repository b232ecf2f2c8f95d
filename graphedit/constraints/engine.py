from __future__ import annotations

import logging
from typing import Callable, Sequence

from ..authoring.validation import ValidationItem
from ..cancellation import CancellationToken
from ..model import (
    DirectedLinkType,
    ElementIri,
    ElementModel,
    ElementTypeIri,
    LinkDirection,
    LinkModel,
    LiteralTerm,
)
from ..providers.base import EntityValidationEvent, RelationValidationEvent
from ..util import new_entity_iri
from .predicates import PREDICATES, ConstraintContext
from .schema import RuleDef, RulesetDef

logger = logging.getLogger(__name__)

EntityLookup = Callable[[ElementIri], "ElementModel | None"]


def _selects_entity(rule: RuleDef, entity: ElementModel) -> bool:
    kind = (rule.selector.kind or "all").strip().lower()
    if kind == "all":
        return True
    if kind == "type":
        wanted = rule.selector.params.get("type")
        return isinstance(wanted, str) and wanted in entity.types
    logger.warning("Rule %s: selector %r does not apply to entities", rule.id, kind)
    return False


def _selects_relation(rule: RuleDef, relation: LinkModel) -> bool:
    kind = (rule.selector.kind or "all").strip().lower()
    if kind == "all":
        return True
    if kind == "link-type":
        return rule.selector.params.get("type") == relation.link_type_id
    logger.warning("Rule %s: selector %r does not apply to relations", rule.id, kind)
    return False


def _run(rule: RuleDef, item, ctx: ConstraintContext) -> list[ValidationItem]:
    fn = PREDICATES.get(rule.predicate.name)
    if fn is None:
        logger.warning("Rule %s: unknown predicate %r", rule.id, rule.predicate.name)
        return []
    return fn(item, rule, ctx)


def evaluate_entity(ruleset: RulesetDef, entity: ElementModel, ctx: ConstraintContext) -> list[ValidationItem]:
    results: list[ValidationItem] = []
    for rule in ruleset.rules_for("entity"):
        if _selects_entity(rule, entity):
            results.extend(_run(rule, entity, ctx))
    return results


def evaluate_relation(ruleset: RulesetDef, relation: LinkModel, ctx: ConstraintContext) -> list[ValidationItem]:
    results: list[ValidationItem] = []
    for rule in ruleset.rules_for("relation"):
        if _selects_relation(rule, relation):
            results.extend(_run(rule, relation, ctx))
    return results


class RulesetValidationProvider:
    """
    Validation provider backed by a declarative ruleset.

    `lookup` resolves endpoint IRIs to entity records so relation rules
    can inspect endpoint types.
    """

    def __init__(self, ruleset: RulesetDef, lookup: EntityLookup | None = None) -> None:
        self.ruleset = ruleset
        self.lookup = lookup

    def _context(self, state, *entities: ElementModel | None) -> ConstraintContext:
        known = {e.id: e for e in entities if e is not None}
        return ConstraintContext(state=state, entities=_LookupMapping(known, self.lookup))

    async def validate_entity(
        self,
        event: EntityValidationEvent,
        token: CancellationToken | None = None,
    ) -> list[ValidationItem]:
        ctx = self._context(event.state, event.target)
        items = evaluate_entity(self.ruleset, event.target, ctx)
        for relation in event.outbound_links:
            if token is not None:
                token.raise_if_cancelled()
            for item in evaluate_relation(self.ruleset, relation, ctx):
                items.append(
                    ValidationItem(
                        message=f"{relation.link_type_id} -> {relation.target_id}: {item.message}",
                        severity=item.severity,
                        property_type=item.property_type,
                    )
                )
        return items

    async def validate_relation(
        self,
        event: RelationValidationEvent,
        token: CancellationToken | None = None,
    ) -> list[ValidationItem]:
        ctx = self._context(event.state, event.source, event.target_entity)
        return evaluate_relation(self.ruleset, event.target, ctx)


class _LookupMapping(dict):
    """Known records first, then the lookup callback."""

    def __init__(self, known: dict[ElementIri, ElementModel], lookup: EntityLookup | None) -> None:
        super().__init__(known)
        self._lookup = lookup

    def get(self, key, default=None):
        if key in self:
            return self[key]
        if self._lookup is not None:
            found = self._lookup(key)
            if found is not None:
                return found
        return default


class RulesetMetadataProvider:
    """
    Metadata provider deriving allowed types from `endpoint-types` rules.

    A relation rule selecting `link-type` with an `endpoint-types`
    predicate declares which entity types may be linked by that type.
    """

    def __init__(self, ruleset: RulesetDef, *, entity_iri_prefix: str = "urn:graphedit:entity:") -> None:
        self.ruleset = ruleset
        self.entity_iri_prefix = entity_iri_prefix

    def _endpoint_rules(self) -> list[tuple[str, set[str] | None, set[str] | None]]:
        rules = []
        for rule in self.ruleset.rules_for("relation"):
            if rule.predicate.name != "endpoint-types" or rule.selector.kind != "link-type":
                continue
            link_type = rule.selector.params.get("type")
            if not isinstance(link_type, str):
                continue
            params = rule.predicate.params
            sources = set(params["source_types"]) if isinstance(params.get("source_types"), list) else None
            targets = set(params["target_types"]) if isinstance(params.get("target_types"), list) else None
            rules.append((link_type, sources, targets))
        return rules

    @staticmethod
    def _matches(allowed: set[str] | None, entity: ElementModel) -> bool:
        return allowed is None or bool(allowed & set(entity.types))

    async def types_of_elements_dragged_from(
        self,
        source: ElementModel,
        token: CancellationToken | None = None,
    ) -> list[ElementTypeIri]:
        found: set[str] = set()
        for _, sources, targets in self._endpoint_rules():
            if self._matches(sources, source) and targets:
                found.update(targets)
        return sorted(found)

    async def possible_link_types(
        self,
        source: ElementModel,
        target: ElementModel,
        token: CancellationToken | None = None,
    ) -> list[DirectedLinkType]:
        result: list[DirectedLinkType] = []
        for link_type, sources, targets in self._endpoint_rules():
            if self._matches(sources, source) and self._matches(targets, target):
                result.append(DirectedLinkType(link_type, LinkDirection.OUT))
            elif self._matches(sources, target) and self._matches(targets, source):
                result.append(DirectedLinkType(link_type, LinkDirection.IN))
        return result

    async def generate_new_element(
        self,
        types: Sequence[ElementTypeIri],
        token: CancellationToken | None = None,
    ) -> ElementModel:
        if token is not None:
            token.raise_if_cancelled()
        type_name = _local_name(types[0]) if types else "entity"
        return ElementModel(
            id=new_entity_iri(self.entity_iri_prefix),
            types=tuple(types),
            label=(LiteralTerm(f"New {type_name}"),),
        )

    async def can_delete_element(self, element: ElementModel, token: CancellationToken | None = None) -> bool:
        return True

    async def can_edit_element(self, element: ElementModel, token: CancellationToken | None = None) -> bool:
        return True


def _local_name(iri: str) -> str:
    for sep in ("#", "/", ":"):
        if sep in iri:
            iri = iri.rsplit(sep, 1)[1]
    return iri or "entity"
