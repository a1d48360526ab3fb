"""
Blueprint configuration schema.

Defines the human-authored, reviewable source artifacts for lifecycle
configuration.  YAML files are parsed into these types by the loader,
checked by the validator, and compiled into kernel
``LifecycleBlueprint`` objects by the compiler.

Key distinction:
  BlueprintDef       = source artifact (human-authored, may reference groups)
  LifecycleBlueprint = runtime artifact (validated, groups expanded, frozen)
"""

from __future__ import annotations

from dataclasses import dataclass, field

GROUP_PREFIX = "@"


# ---------------------------------------------------------------------------
# Roles
# ---------------------------------------------------------------------------


@dataclass(frozen=True)
class RoleCatalogDef:
    """Known role identifiers and named groups of them."""

    roles: tuple[str, ...]
    groups: tuple[tuple[str, tuple[str, ...]], ...] = ()

    def group(self, name: str) -> tuple[str, ...] | None:
        for group_name, members in self.groups:
            if group_name == name:
                return members
        return None

    @property
    def group_names(self) -> frozenset[str]:
        return frozenset(name for name, _ in self.groups)


# ---------------------------------------------------------------------------
# Blueprint
# ---------------------------------------------------------------------------


@dataclass(frozen=True)
class TransitionDef:
    """One allowed target of a state, with its prerequisites."""

    target: str
    requires: tuple[str, ...] = ()
    inputs: tuple[str, ...] = ()  # transient values, never persisted


@dataclass(frozen=True)
class StateRuleDef:
    """Authored rules for one state."""

    name: str
    label: str = ""
    editors: tuple[str, ...] = ()  # role ids or "@group" references
    editable: tuple[str, ...] = ()
    transitions: tuple[TransitionDef, ...] = ()

    @property
    def targets(self) -> tuple[str, ...]:
        return tuple(t.target for t in self.transitions)


@dataclass(frozen=True)
class BlueprintDef:
    """Authored lifecycle of one entity kind."""

    entity_kind: str
    initial_state: str
    fields: tuple[str, ...]
    states: tuple[StateRuleDef, ...]
    version: int = 1
    override_role: str | None = None
    status_field: str = "status"
    checksum: str = ""
    source_path: str | None = field(default=None, compare=False)

    @property
    def state_names(self) -> tuple[str, ...]:
        return tuple(s.name for s in self.states)

    def state(self, name: str) -> StateRuleDef | None:
        for rule in self.states:
            if rule.name == name:
                return rule
        return None
