"""
broker_engines.lifecycle -- Pure lifecycle rule evaluation engine.

Responsibility:
    Decide whether an edit request is acceptable for a record in a given
    state: may the actor edit at all (permission), are all touched fields
    editable here (field scope), is the requested status reachable
    (transition legality), and are the transition's prerequisite fields
    populated on the merged record (requirements).

Architecture position:
    Engines -- pure calculation layer, zero I/O.
    May only import broker_kernel/domain/ types and kernel exceptions.

Invariants enforced:
    - Fixed check order: permission, scope, transition, requirement.
      The first failing check wins and is the only one reported.
    - Scope and requirement failures list every offending field, never
      just the first.
    - Requirement checks run against the merged record (stored values
      overridden by explicitly-set payload values), not the payload alone.
    - Purity: same inputs always yield the same evaluation.

Failure modes:
    - Returns ``EditEvaluation(rejection=...)``; never raises for a
      rejected edit.  The orchestrator decides how to surface it.
"""

from __future__ import annotations

from typing import Any, Iterable, Mapping

from broker_kernel.domain.lifecycle import (
    EditEvaluation,
    EditRequest,
    LifecycleBlueprint,
    RequirementCheck,
    ScopeCheck,
    StateRule,
    TransitionCheck,
    TransitionOutcome,
)
from broker_kernel.exceptions import (
    ForbiddenFieldsError,
    IllegalTransitionError,
    MissingRequirementsError,
    UnauthorizedEditError,
)


def can_edit(rule: StateRule | None, role: str, override_role: str | None = None) -> bool:
    """Whether ``role`` may submit any edit to a record governed by ``rule``.

    An empty editor set freezes the state for everyone except the
    blueprint's override role.  An undeclared state (``rule is None``)
    admits nobody.
    """
    if rule is None:
        return False
    if role in rule.allowed_editors:
        return True
    return not rule.allowed_editors and override_role is not None and role == override_role


def scope_check(rule: StateRule, edited_field_names: Iterable[str]) -> ScopeCheck:
    """Touched field names not editable in ``rule``'s state."""
    return ScopeCheck(
        forbidden_fields=frozenset(edited_field_names) - rule.editable_fields
    )


def transition_check(
    rule: StateRule,
    current_status: str,
    requested_status: str | None,
) -> TransitionCheck:
    """Classify the requested status against ``rule.allowed_transitions``.

    No status, or the current status, is a pure field edit.  Anything
    else must be a declared transition, so a target unknown to the
    blueprint is illegal.
    """
    if requested_status is None or requested_status == current_status:
        return TransitionCheck(TransitionOutcome.NO_TRANSITION, current_status)
    if requested_status in rule.allowed_transitions:
        return TransitionCheck(TransitionOutcome.OK, current_status, requested_status)
    return TransitionCheck(TransitionOutcome.ILLEGAL, current_status, requested_status)


def merge_fields(current: Mapping[str, Any], proposed: Mapping[str, Any]) -> dict[str, Any]:
    """Stored values overridden by every explicitly-set proposed value."""
    merged = dict(current)
    merged.update(proposed)
    return merged


def is_missing(value: Any) -> bool:
    """A requirement is unmet by None or the empty string."""
    return value is None or value == ""


def requirement_check(
    rule: StateRule,
    requested_status: str,
    current_fields: Mapping[str, Any],
    proposed_fields: Mapping[str, Any],
) -> RequirementCheck:
    """Required fields for ``requested_status`` that the merged record lacks."""
    merged = merge_fields(current_fields, proposed_fields)
    missing = frozenset(
        name
        for name in rule.requirements_for(requested_status)
        if is_missing(merged.get(name))
    )
    return RequirementCheck(missing_fields=missing)


def evaluate_edit(
    blueprint: LifecycleBlueprint,
    current_status: str,
    current_fields: Mapping[str, Any],
    role: str,
    request: EditRequest,
) -> EditEvaluation:
    """Run the four checks in order and return the first rejection, if any.

    Transition inputs declared for the requested transition are accepted
    alongside it, take part in the requirement merge, and are returned
    separately from the fields to persist.
    """
    kind = blueprint.entity_kind
    rule = blueprint.rule_for(current_status)

    if rule is None or not can_edit(rule, role, blueprint.override_role):
        return EditEvaluation(
            rejection=UnauthorizedEditError(kind, current_status, role)
        )

    requested = request.requested_status
    touched = request.touched_fields
    inputs_allowed = rule.inputs_for(requested) if requested != current_status else frozenset()
    input_names = touched & inputs_allowed

    scope = scope_check(rule, touched - input_names)
    if not scope.ok:
        return EditEvaluation(
            rejection=ForbiddenFieldsError(kind, current_status, scope.forbidden_fields)
        )

    transition = transition_check(rule, current_status, requested)
    if not transition.ok:
        return EditEvaluation(
            rejection=IllegalTransitionError(kind, current_status, transition.to_state)
        )

    payload = request.proposed_fields
    proposed = {k: v for k, v in payload.items() if k not in input_names}
    inputs = {k: v for k, v in payload.items() if k in input_names}

    if transition.outcome == TransitionOutcome.OK:
        requirements = requirement_check(
            rule,
            transition.to_state,
            current_fields,
            merge_fields(proposed, inputs),
        )
        if not requirements.ok:
            return EditEvaluation(
                rejection=MissingRequirementsError(
                    kind,
                    current_status,
                    transition.to_state,
                    requirements.missing_fields,
                )
            )

    return EditEvaluation(
        transition=transition.transition,
        proposed_fields=proposed,
        transition_inputs=inputs,
    )
