"""
Editor settings loader.

Settings live in the `[graphedit]` table of a `graphedit.toml` file:

    [graphedit]
    validation_delay = 0.25
    entity_iri_prefix = "urn:example:entity:"
    default_mode = "authoring"
    ruleset = "rules.toml"
    log_level = "INFO"
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, fields
from pathlib import Path
from typing import Any

logger = logging.getLogger(__name__)

SETTINGS_FILENAME = "graphedit.toml"
_MODES = {"authoring", "readonly"}


@dataclass(frozen=True)
class EditorSettings:
    validation_delay: float = 0.0
    entity_iri_prefix: str = "urn:graphedit:entity:"
    default_mode: str = "authoring"
    ruleset: Path | None = None
    log_level: str = "WARNING"


def settings_from_dict(data: dict[str, Any], base_dir: Path | None = None) -> EditorSettings:
    """
    Build settings from the `[graphedit]` table.

    Unknown keys are ignored; a relative `ruleset` path resolves against `base_dir`.
    """
    known = {f.name for f in fields(EditorSettings)}
    values: dict[str, Any] = {}
    for key, value in data.items():
        if key not in known:
            logger.debug("Ignoring unknown setting %r", key)
            continue
        values[key] = value

    delay = values.get("validation_delay", 0.0)
    if isinstance(delay, bool) or not isinstance(delay, (int, float)) or delay < 0:
        raise ValueError("validation_delay must be a non-negative number")
    values["validation_delay"] = float(delay)

    for key in ("entity_iri_prefix", "default_mode", "log_level"):
        if key in values and not isinstance(values[key], str):
            raise ValueError(f"{key} must be a string")

    mode = values.get("default_mode", "authoring")
    if mode not in _MODES:
        raise ValueError(f"default_mode must be one of: {', '.join(sorted(_MODES))}")

    if "log_level" in values:
        values["log_level"] = values["log_level"].upper()

    ruleset = values.get("ruleset")
    if ruleset is not None:
        if not isinstance(ruleset, str) or not ruleset.strip():
            raise ValueError("ruleset must be a path string")
        path = Path(ruleset)
        if base_dir is not None and not path.is_absolute():
            path = base_dir / path
        values["ruleset"] = path

    return EditorSettings(**values)


def load_settings(path: Path | None) -> EditorSettings:
    """Load settings from TOML; a missing file gives the defaults."""
    if path is None or not path.exists():
        return EditorSettings()

    import tomllib

    try:
        data = tomllib.loads(path.read_text(encoding="utf-8"))
    except tomllib.TOMLDecodeError as e:
        raise ValueError(f"Failed to parse settings TOML: {e}") from e

    table = data.get("graphedit", {})
    if not isinstance(table, dict):
        raise ValueError("[graphedit] must be a table")
    return settings_from_dict(table, base_dir=path.parent)


def find_settings_file(start: Path) -> Path | None:
    """Find graphedit.toml by walking up from `start`."""
    cur = start.resolve()
    for p in (cur, *cur.parents):
        candidate = p / SETTINGS_FILENAME
        if candidate.is_file():
            return candidate
    return None
