"""
Blueprint Compiler (``broker_config.compiler``).

Responsibility
--------------
Turns a validated ``BlueprintDef`` into the kernel's runtime
``LifecycleBlueprint``: group references are expanded to concrete roles
and every collection is frozen.

Architecture position
---------------------
**Config layer** -- bridge into the kernel.  ``broker_kernel`` never
imports from ``broker_config``; compiled blueprints are plain kernel
domain objects.

Invariants enforced
-------------------
* Deterministic: the same ``BlueprintDef`` always compiles to an equal
  ``LifecycleBlueprint`` carrying the source checksum.
* Only validated definitions are compiled (caller's responsibility).
"""

from __future__ import annotations

from broker_config.schema import GROUP_PREFIX, BlueprintDef, RoleCatalogDef, StateRuleDef
from broker_kernel.domain.lifecycle import LifecycleBlueprint, StateRule


def expand_editors(editors: tuple[str, ...], roles: RoleCatalogDef) -> frozenset[str]:
    """Concrete role ids for a list of role / ``@group`` references."""
    expanded: set[str] = set()
    for ref in editors:
        if ref.startswith(GROUP_PREFIX):
            expanded.update(roles.group(ref[len(GROUP_PREFIX):]) or ())
        else:
            expanded.add(ref)
    return frozenset(expanded)


def compile_state(rule: StateRuleDef, roles: RoleCatalogDef) -> StateRule:
    return StateRule(
        state=rule.name,
        label=rule.label,
        allowed_editors=expand_editors(rule.editors, roles),
        editable_fields=frozenset(rule.editable),
        allowed_transitions=frozenset(rule.targets),
        transition_requirements={
            t.target: frozenset(t.requires) for t in rule.transitions if t.requires
        },
        transition_inputs={
            t.target: frozenset(t.inputs) for t in rule.transitions if t.inputs
        },
    )


def compile_blueprint(defn: BlueprintDef, roles: RoleCatalogDef) -> LifecycleBlueprint:
    """
    Compile one blueprint definition.

    Preconditions:
        - ``validate_blueprint(defn, roles)`` returned no errors.
    """
    return LifecycleBlueprint(
        entity_kind=defn.entity_kind,
        initial_state=defn.initial_state,
        states={rule.name: compile_state(rule, roles) for rule in defn.states},
        fields=frozenset(defn.fields),
        override_role=defn.override_role,
        status_field=defn.status_field,
        version=defn.version,
        checksum=defn.checksum,
    )
