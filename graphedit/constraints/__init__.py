"""Declarative validation rulesets: rules are data, predicates are code."""

from .engine import (
    RulesetMetadataProvider,
    RulesetValidationProvider,
    evaluate_entity,
    evaluate_relation,
)
from .load import load_ruleset, ruleset_from_dict
from .predicates import PREDICATES, ConstraintContext
from .schema import Predicate, RuleDef, RulesetDef, Selector

__all__ = [
    "PREDICATES",
    "ConstraintContext",
    "Predicate",
    "RuleDef",
    "RulesetDef",
    "RulesetMetadataProvider",
    "RulesetValidationProvider",
    "Selector",
    "evaluate_entity",
    "evaluate_relation",
    "load_ruleset",
    "ruleset_from_dict",
]
