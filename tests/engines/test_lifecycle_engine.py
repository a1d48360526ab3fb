"""
Tests for the pure lifecycle rule evaluation engine.

Tests cover:
- can_edit: editor membership, override role on frozen states
- scope_check: every forbidden field reported, subset monotonicity
- transition_check: pure edits, legal and illegal targets, terminal states
- requirement_check: merged-record semantics, empty string, explicit None
- evaluate_edit: fixed check order, transition inputs
"""

from datetime import date
from decimal import Decimal
from itertools import combinations

import pytest

from broker_engines.lifecycle import (
    can_edit,
    evaluate_edit,
    is_missing,
    merge_fields,
    requirement_check,
    scope_check,
    transition_check,
)
from broker_kernel.domain.lifecycle import (
    EditRequest,
    LifecycleBlueprint,
    StateRule,
    StatusTransition,
    TransitionOutcome,
)
from broker_kernel.exceptions import (
    ForbiddenFieldsError,
    IllegalTransitionError,
    MissingRequirementsError,
    UnauthorizedEditError,
)

SETTLEMENT_REQUIREMENTS = {
    "amount_approved",
    "amount_denied",
    "amount_unprocessed",
    "deductible_applied",
    "copay_applied",
    "settlement_date",
    "settlement_number",
}


def empty_claim_fields(blueprint: LifecycleBlueprint) -> dict:
    return {name: None for name in blueprint.fields}


def evaluate(blueprint, current_status, role, fields=None, **payload):
    current = empty_claim_fields(blueprint)
    current.update(fields or {})
    return evaluate_edit(blueprint, current_status, current, role, EditRequest.of("rec-1", **payload))


# =========================================================================
# Permission
# =========================================================================


class TestCanEdit:
    def test_listed_role_may_edit(self, claim_blueprint):
        rule = claim_blueprint.rule_for("DRAFT")
        assert can_edit(rule, "CLAIMS_EMPLOYEE")
        assert can_edit(rule, "SUPER_ADMIN")

    def test_unlisted_role_may_not_edit(self, claim_blueprint):
        rule = claim_blueprint.rule_for("DRAFT")
        assert not can_edit(rule, "OPERATIONS_EMPLOYEE", claim_blueprint.override_role)

    def test_override_role_only_applies_to_frozen_states(self):
        frozen = StateRule(state="LOCKED")
        staffed = StateRule(state="OPEN", allowed_editors={"CLERK"})
        assert can_edit(frozen, "ROOT", override_role="ROOT")
        assert not can_edit(frozen, "CLERK", override_role="ROOT")
        assert not can_edit(staffed, "ROOT", override_role="ROOT")

    def test_frozen_state_without_override_admits_nobody(self):
        assert not can_edit(StateRule(state="LOCKED"), "ROOT")

    def test_undeclared_state_admits_nobody(self):
        assert not can_edit(None, "ROOT", override_role="ROOT")

    def test_unauthorized_rejection(self, claim_blueprint):
        evaluation = evaluate(claim_blueprint, "DRAFT", "OPERATIONS_EMPLOYEE", care_type="X")
        assert isinstance(evaluation.rejection, UnauthorizedEditError)
        assert evaluation.rejection.code == "UNAUTHORIZED"

    def test_undeclared_current_status_is_unauthorized(self, claim_blueprint):
        evaluation = evaluate(claim_blueprint, "ARCHIVED", "SUPER_ADMIN", care_type="X")
        assert isinstance(evaluation.rejection, UnauthorizedEditError)


# =========================================================================
# Field scope
# =========================================================================


class TestScopeCheck:
    def test_editable_fields_pass(self, claim_blueprint):
        result = scope_check(claim_blueprint.rule_for("DRAFT"), {"care_type", "description"})
        assert result.ok

    def test_every_forbidden_field_is_reported(self, claim_blueprint):
        evaluation = evaluate(
            claim_blueprint,
            "DRAFT",
            "CLAIMS_EMPLOYEE",
            care_type="AMBULATORY",
            amount_approved=Decimal("10"),
            settlement_number="L-1",
        )
        assert isinstance(evaluation.rejection, ForbiddenFieldsError)
        assert evaluation.rejection.forbidden_fields == {"amount_approved", "settlement_number"}

    def test_explicit_none_counts_as_touched(self, claim_blueprint):
        evaluation = evaluate(claim_blueprint, "DRAFT", "CLAIMS_EMPLOYEE", settlement_notes=None)
        assert isinstance(evaluation.rejection, ForbiddenFieldsError)

    def test_scope_is_monotone_under_subsets(self, claim_blueprint):
        """Every subset of an accepted payload's fields is also accepted."""
        rule = claim_blueprint.rule_for("SUBMITTED")
        names = sorted(rule.editable_fields)[:5]
        assert scope_check(rule, names).ok
        for size in range(len(names) + 1):
            for subset in combinations(names, size):
                assert scope_check(rule, subset).ok

    def test_terminal_state_has_empty_scope(self, claim_blueprint):
        evaluation = evaluate(claim_blueprint, "SETTLED", "SUPER_ADMIN", description="late note")
        assert isinstance(evaluation.rejection, ForbiddenFieldsError)


# =========================================================================
# Transition legality
# =========================================================================


class TestTransitionCheck:
    def test_no_status_is_pure_edit(self, claim_blueprint):
        check = transition_check(claim_blueprint.rule_for("DRAFT"), "DRAFT", None)
        assert check.outcome == TransitionOutcome.NO_TRANSITION

    def test_same_status_is_pure_edit(self, claim_blueprint):
        evaluation = evaluate(claim_blueprint, "DRAFT", "CLAIMS_EMPLOYEE", status="DRAFT")
        assert evaluation.ok
        assert evaluation.transition is None

    def test_declared_target_is_legal(self, claim_blueprint):
        check = transition_check(claim_blueprint.rule_for("VALIDATION"), "VALIDATION", "RETURNED")
        assert check.outcome == TransitionOutcome.OK
        assert check.transition == StatusTransition("VALIDATION", "RETURNED")

    def test_skipping_states_is_illegal(self, claim_blueprint):
        evaluation = evaluate(claim_blueprint, "DRAFT", "CLAIMS_EMPLOYEE", status="SETTLED")
        assert isinstance(evaluation.rejection, IllegalTransitionError)
        assert evaluation.rejection.from_state == "DRAFT"
        assert evaluation.rejection.to_state == "SETTLED"

    def test_unknown_target_is_illegal(self, claim_blueprint):
        evaluation = evaluate(claim_blueprint, "DRAFT", "CLAIMS_EMPLOYEE", status="ARCHIVED")
        assert isinstance(evaluation.rejection, IllegalTransitionError)

    @pytest.mark.parametrize("terminal", ["RETURNED", "SETTLED", "CANCELLED"])
    def test_terminal_claim_states_allow_no_transition(self, claim_blueprint, terminal):
        """Even the override role cannot move a claim out of a terminal state."""
        for target in claim_blueprint.state_names - {terminal}:
            evaluation = evaluate(claim_blueprint, terminal, "SUPER_ADMIN", status=target)
            assert isinstance(evaluation.rejection, IllegalTransitionError), target

    def test_terminal_state_rejects_non_admin_as_unauthorized(self, claim_blueprint):
        evaluation = evaluate(claim_blueprint, "SETTLED", "CLAIMS_EMPLOYEE", status="DRAFT")
        assert isinstance(evaluation.rejection, UnauthorizedEditError)

    def test_expired_policy_may_be_reactivated(self, policy_blueprint):
        rule = policy_blueprint.rule_for("EXPIRED")
        assert transition_check(rule, "EXPIRED", "ACTIVE").ok
        assert not transition_check(rule, "EXPIRED", "PENDING").ok


# =========================================================================
# Requirements on the merged record
# =========================================================================


class TestRequirementCheck:
    def test_is_missing(self):
        assert is_missing(None)
        assert is_missing("")
        assert not is_missing(0)
        assert not is_missing(Decimal("0.00"))
        assert not is_missing(False)
        assert not is_missing(" ")

    def test_merge_prefers_payload(self):
        assert merge_fields({"a": 1, "b": 2}, {"b": None}) == {"a": 1, "b": None}

    def test_every_missing_field_is_reported(self, claim_blueprint):
        evaluation = evaluate(
            claim_blueprint,
            "SUBMITTED",
            "CLAIMS_EMPLOYEE",
            status="SETTLED",
            amount_approved=Decimal("100.00"),
        )
        assert isinstance(evaluation.rejection, MissingRequirementsError)
        assert evaluation.rejection.missing_fields == SETTLEMENT_REQUIREMENTS - {"amount_approved"}

    def test_stored_values_satisfy_requirements(self, claim_blueprint):
        stored = {name: Decimal("1.00") for name in SETTLEMENT_REQUIREMENTS}
        stored["settlement_date"] = date(2025, 2, 1)
        stored["settlement_number"] = "L-1"
        evaluation = evaluate(claim_blueprint, "SUBMITTED", "CLAIMS_EMPLOYEE", stored, status="SETTLED")
        assert evaluation.ok
        assert evaluation.transition == StatusTransition("SUBMITTED", "SETTLED")

    def test_payload_none_overrides_stored_value(self, claim_blueprint):
        """Clearing a required field in the same edit fails the requirement."""
        stored = {name: Decimal("1.00") for name in SETTLEMENT_REQUIREMENTS}
        stored["settlement_date"] = date(2025, 2, 1)
        stored["settlement_number"] = "L-1"
        evaluation = evaluate(
            claim_blueprint,
            "SUBMITTED",
            "CLAIMS_EMPLOYEE",
            stored,
            status="SETTLED",
            settlement_number=None,
        )
        assert isinstance(evaluation.rejection, MissingRequirementsError)
        assert evaluation.rejection.missing_fields == {"settlement_number"}

    def test_empty_string_is_missing(self, claim_blueprint):
        rule = claim_blueprint.rule_for("DRAFT")
        result = requirement_check(
            rule,
            "VALIDATION",
            {"care_type": "AMBULATORY"},
            {"diagnosis_description": ""},
        )
        assert "diagnosis_description" in result.missing_fields
        assert "care_type" not in result.missing_fields

    def test_transition_without_requirements(self, claim_blueprint):
        evaluation = evaluate(claim_blueprint, "DRAFT", "CLAIMS_EMPLOYEE", status="CANCELLED")
        assert evaluation.ok

    def test_policy_activation_requires_every_term(self, policy_blueprint):
        evaluation = evaluate(policy_blueprint, "PENDING", "OPERATIONS_EMPLOYEE", status="ACTIVE")
        assert isinstance(evaluation.rejection, MissingRequirementsError)
        assert evaluation.rejection.missing_fields == policy_blueprint.fields

    def test_invoice_discrepancy_resolution_needs_notes(self, invoice_blueprint):
        evaluation = evaluate(invoice_blueprint, "DISCREPANCY", "ADMIN_EMPLOYEE", status="VALIDATED")
        assert evaluation.rejection.missing_fields == {"discrepancy_notes"}

        evaluation = evaluate(
            invoice_blueprint,
            "DISCREPANCY",
            "ADMIN_EMPLOYEE",
            status="VALIDATED",
            discrepancy_notes="Insurer billed two extra affiliates",
        )
        assert evaluation.ok


# =========================================================================
# Check order
# =========================================================================


class TestCheckOrder:
    """Permission, scope, transition, requirement: first failure wins."""

    def test_permission_before_everything(self, claim_blueprint):
        evaluation = evaluate(
            claim_blueprint,
            "DRAFT",
            "AFFILIATE",
            settlement_number="L-1",
            status="SETTLED",
        )
        assert isinstance(evaluation.rejection, UnauthorizedEditError)

    def test_scope_before_transition(self, claim_blueprint):
        evaluation = evaluate(
            claim_blueprint,
            "DRAFT",
            "CLAIMS_EMPLOYEE",
            settlement_number="L-1",
            status="SETTLED",
        )
        assert isinstance(evaluation.rejection, ForbiddenFieldsError)

    def test_transition_before_requirements(self, claim_blueprint):
        evaluation = evaluate(claim_blueprint, "VALIDATION", "CLAIMS_EMPLOYEE", status="SETTLED")
        assert isinstance(evaluation.rejection, IllegalTransitionError)

    def test_accepted_edit_splits_payload(self, claim_blueprint):
        evaluation = evaluate(
            claim_blueprint,
            "DRAFT",
            "CLAIMS_EMPLOYEE",
            care_type="AMBULATORY",
            description=None,
        )
        assert evaluation.ok
        assert evaluation.proposed_fields == {"care_type": "AMBULATORY", "description": None}
        assert evaluation.transition_inputs == {}

    def test_evaluation_is_pure(self, claim_blueprint):
        first = evaluate(claim_blueprint, "DRAFT", "CLAIMS_EMPLOYEE", status="VALIDATION")
        second = evaluate(claim_blueprint, "DRAFT", "CLAIMS_EMPLOYEE", status="VALIDATION")
        assert first.rejection.missing_fields == second.rejection.missing_fields


# =========================================================================
# Transition inputs
# =========================================================================


class TestTransitionInputs:
    def test_inputs_are_accepted_with_their_transition(self, claim_blueprint):
        evaluation = evaluate(
            claim_blueprint,
            "PENDING_INFO",
            "CLAIMS_EMPLOYEE",
            status="SUBMITTED",
            reprocess_date=date(2025, 3, 1),
            reprocess_description="Missing invoice received",
            business_days=4,
        )
        assert evaluation.ok
        assert evaluation.proposed_fields == {"business_days": 4}
        assert evaluation.transition_inputs == {
            "reprocess_date": date(2025, 3, 1),
            "reprocess_description": "Missing invoice received",
        }

    def test_inputs_are_required(self, claim_blueprint):
        evaluation = evaluate(claim_blueprint, "PENDING_INFO", "CLAIMS_EMPLOYEE", status="SUBMITTED")
        assert isinstance(evaluation.rejection, MissingRequirementsError)
        assert evaluation.rejection.missing_fields == {"reprocess_date", "reprocess_description"}

    def test_inputs_without_transition_are_forbidden(self, claim_blueprint):
        evaluation = evaluate(
            claim_blueprint,
            "PENDING_INFO",
            "CLAIMS_EMPLOYEE",
            reprocess_description="no transition requested",
        )
        assert isinstance(evaluation.rejection, ForbiddenFieldsError)
        assert evaluation.rejection.forbidden_fields == {"reprocess_description"}

    def test_inputs_with_other_transition_are_forbidden(self, claim_blueprint):
        evaluation = evaluate(
            claim_blueprint,
            "PENDING_INFO",
            "CLAIMS_EMPLOYEE",
            status="CANCELLED",
            reprocess_date=date(2025, 3, 1),
        )
        assert isinstance(evaluation.rejection, ForbiddenFieldsError)
