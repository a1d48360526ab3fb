"""
Blueprint Loader (``broker_config.loader``).

Responsibility
--------------
Loads the role catalog and blueprint YAML files and parses them into the
frozen dataclasses of ``broker_config.schema``.  This is build/test
tooling; runtime callers obtain compiled blueprints through
``broker_config.get_registry()``.

Architecture position
---------------------
**Config layer** -- infrastructure tooling.  No dependency on kernel
services, engines, or the executor.

Invariants enforced
-------------------
* Parse errors raise ``ValueError`` or ``KeyError`` with descriptive
  messages; no silent defaults for required keys.
* ``compute_checksum`` produces a deterministic SHA-256 hash of the raw
  document for identity and change detection.

Failure modes
-------------
* Missing YAML file  -> ``FileNotFoundError`` propagates.
* Malformed YAML  -> ``yaml.YAMLError`` propagates.
* Missing required keys  -> ``KeyError`` propagates.
"""

from __future__ import annotations

import hashlib
import json
from pathlib import Path
from typing import Any

import yaml

from broker_config.schema import (
    BlueprintDef,
    RoleCatalogDef,
    StateRuleDef,
    TransitionDef,
)


def load_yaml_file(path: Path) -> dict[str, Any]:
    """
    Load a single YAML file and return its contents as a dict.

    Raises:
        FileNotFoundError: if the file does not exist.
        yaml.YAMLError: if the file contains invalid YAML.
        ValueError: if the document is not a mapping.
    """
    with open(path, encoding="utf-8") as f:
        data = yaml.safe_load(f) or {}
    if not isinstance(data, dict):
        raise ValueError(f"{path}: expected a mapping at the top level")
    return data


def _names(value: Any, where: str) -> tuple[str, ...]:
    """A YAML list of names (or null) as a tuple of strings."""
    if value is None:
        return ()
    if isinstance(value, str) or not isinstance(value, (list, tuple)):
        raise ValueError(f"{where}: expected a list of names, got {value!r}")
    return tuple(str(v) for v in value)


def parse_roles(data: dict[str, Any]) -> RoleCatalogDef:
    """Parse the role catalog document (``roles.yaml``)."""
    roles = _names(data["roles"], "roles")
    groups = tuple(
        (str(name), _names(members, f"groups.{name}"))
        for name, members in sorted((data.get("groups") or {}).items())
    )
    return RoleCatalogDef(roles=roles, groups=groups)


def parse_transition(target: str, data: dict[str, Any] | None, where: str) -> TransitionDef:
    data = data or {}
    if not isinstance(data, dict):
        raise ValueError(f"{where}: expected a mapping or null, got {data!r}")
    return TransitionDef(
        target=str(target),
        requires=_names(data.get("requires"), f"{where}.requires"),
        inputs=_names(data.get("inputs"), f"{where}.inputs"),
    )


def parse_state(name: str, data: dict[str, Any] | None) -> StateRuleDef:
    data = data or {}
    where = f"states.{name}"
    transitions = data.get("transitions") or {}
    if not isinstance(transitions, dict):
        raise ValueError(f"{where}.transitions: expected a mapping of target states")
    return StateRuleDef(
        name=str(name),
        label=str(data.get("label", "")),
        editors=_names(data.get("editors"), f"{where}.editors"),
        editable=_names(data.get("editable"), f"{where}.editable"),
        transitions=tuple(
            parse_transition(target, body, f"{where}.transitions.{target}")
            for target, body in transitions.items()
        ),
    )


def parse_blueprint(data: dict[str, Any], source_path: str | None = None) -> BlueprintDef:
    """
    Parse one blueprint document into a ``BlueprintDef``.

    Postconditions:
        - ``checksum`` is the SHA-256 of the canonical document.
        - States keep their authored order.
    Raises:
        KeyError: if ``entity_kind``, ``initial_state``, ``fields`` or
            ``states`` is missing.
    """
    states = data["states"]
    if not isinstance(states, dict):
        raise ValueError("states: expected a mapping of state name to rules")
    override = data.get("override_role")
    return BlueprintDef(
        entity_kind=str(data["entity_kind"]),
        initial_state=str(data["initial_state"]),
        fields=_names(data["fields"], "fields"),
        states=tuple(parse_state(name, rules) for name, rules in states.items()),
        version=int(data.get("version", 1)),
        override_role=str(override) if override is not None else None,
        status_field=str(data.get("status_field", "status")),
        checksum=compute_checksum(data),
        source_path=source_path,
    )


def load_roles(path: Path) -> RoleCatalogDef:
    return parse_roles(load_yaml_file(path))


def load_blueprint(path: Path) -> BlueprintDef:
    return parse_blueprint(load_yaml_file(path), source_path=str(path))


def compute_checksum(data: dict[str, Any]) -> str:
    """
    Compute SHA-256 checksum of canonical JSON serialization.

    Postconditions:
        - Identical ``data`` always produces identical checksums.
    """
    canonical = json.dumps(data, sort_keys=True, default=str)
    return hashlib.sha256(canonical.encode()).hexdigest()
