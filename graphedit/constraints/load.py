from __future__ import annotations

import logging
from pathlib import Path
from typing import Any

from .schema import Predicate, RuleDef, RulesetDef, Selector

logger = logging.getLogger(__name__)

_SCOPES = {"entity", "relation"}
_SEVERITIES = {"error", "warning", "info"}


def _coerce_dict(value: Any) -> dict[str, Any]:
    return value if isinstance(value, dict) else {}


def _optional_str(value: Any) -> str | None:
    if isinstance(value, str) and value.strip():
        return value
    return None


def ruleset_from_dict(data: dict[str, Any]) -> RulesetDef:
    """
    Build a ruleset from parsed TOML.

    The schema is intentionally small: rules are data, evaluation is code.
    """
    ruleset_id = str(data.get("ruleset_id", "")).strip()
    if not ruleset_id:
        raise ValueError("ruleset_id is required")

    version = int(data.get("version", 0))
    if version <= 0:
        raise ValueError("version must be a positive integer")

    defaults = _coerce_dict(data.get("defaults"))
    default_scope = str(defaults.get("scope", "entity")).strip() or "entity"
    default_severity = str(defaults.get("severity", "error")).strip() or "error"

    rules: list[RuleDef] = []
    for raw in data.get("rules", []):
        if not isinstance(raw, dict):
            continue

        rule_id = str(raw.get("id", "")).strip()
        if not rule_id:
            continue

        scope = str(raw.get("scope", default_scope)).strip() or default_scope
        if scope not in _SCOPES:
            logger.warning("Skipping rule %s with unknown scope %r", rule_id, scope)
            continue

        severity = str(raw.get("severity", default_severity)).strip() or default_severity
        if severity not in _SEVERITIES:
            raise ValueError(f"rule {rule_id}: unknown severity {severity!r}")

        selector_raw = _coerce_dict(raw.get("selector"))
        selector_kind = str(selector_raw.get("kind", "all")).strip() or "all"
        selector_params = {k: v for k, v in selector_raw.items() if k != "kind"}

        pred_raw = _coerce_dict(raw.get("predicate"))
        pred_name = str(pred_raw.get("name", "noop")).strip() or "noop"
        pred_params = _coerce_dict(pred_raw.get("params"))

        rules.append(
            RuleDef(
                id=rule_id,
                scope=scope,  # type: ignore[arg-type]
                severity=severity,  # type: ignore[arg-type]
                selector=Selector(kind=selector_kind, params=selector_params),
                predicate=Predicate(name=pred_name, params=pred_params),
                message=_optional_str(raw.get("message")),
                rationale=_optional_str(raw.get("rationale")),
            )
        )

    return RulesetDef(
        ruleset_id=ruleset_id,
        version=version,
        description=_optional_str(data.get("description")),
        rules=rules,
    )


def load_ruleset(path: Path) -> RulesetDef:
    """Load a ruleset from TOML."""
    import tomllib

    data = tomllib.loads(path.read_text(encoding="utf-8"))
    return ruleset_from_dict(data)
