"""
Lifecycle domain types -- blueprints, edit requests, check results.

Responsibility:
    Declares the inspectable data structures the lifecycle engine
    evaluates: a ``LifecycleBlueprint`` maps each state of an entity kind
    to a ``StateRule`` saying who may edit, which fields may be written,
    where the record may move next, and what must be populated first.

Architecture position:
    Kernel > Domain -- pure functional core, zero I/O.  Consumed by
    ``broker_engines.lifecycle`` (evaluation), ``broker_config``
    (compilation target) and ``broker_services`` (orchestration).

Invariants enforced:
    - Frozen dataclasses; mappings are exposed read-only.
    - ``EditRequest`` implements the partial-update convention: a key
      absent from the payload or bound to ``UNSET`` is untouched; an
      explicit ``None`` is a touched field that clears the stored value.
    - The status key is never a touched field; it is read separately as
      the requested transition.

Audit relevance:
    ``AuditEntry`` is the DTO form of one accepted edit: before/after
    snapshots plus the {from, to} pair when the status changed.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum
from types import MappingProxyType
from typing import Any, Mapping
from uuid import UUID

from broker_kernel.exceptions import LifecycleRejection


class EntityKind(str, Enum):
    """Entity kinds governed by a lifecycle blueprint."""

    CLAIM = "claim"
    POLICY = "policy"
    INVOICE = "invoice"


class _Unset:
    """Marker for a payload key that is present but carries no value."""

    _instance: _Unset | None = None

    def __new__(cls) -> _Unset:
        if cls._instance is None:
            cls._instance = super().__new__(cls)
        return cls._instance

    def __repr__(self) -> str:
        return "UNSET"

    def __bool__(self) -> bool:
        return False


UNSET: Any = _Unset()


def _state_value(value: Any) -> str:
    return value.value if isinstance(value, Enum) else str(value)


def _freeze_map(data: Mapping[str, Any] | None) -> Mapping[str, frozenset[str]]:
    return MappingProxyType(
        {_state_value(k): frozenset(v) for k, v in (data or {}).items()}
    )


# ---------------------------------------------------------------------------
# Blueprint
# ---------------------------------------------------------------------------


@dataclass(frozen=True)
class StateRule:
    """
    Edit rules for one lifecycle state.

    ``transition_requirements[target]`` lists the fields that must hold a
    value on the merged record before moving to ``target``.
    ``transition_inputs[target]`` lists transient values accepted only
    alongside that transition; they are checked like requirements but
    never written to the record.
    """

    state: str
    label: str = ""
    allowed_editors: frozenset[str] = frozenset()
    editable_fields: frozenset[str] = frozenset()
    allowed_transitions: frozenset[str] = frozenset()
    transition_requirements: Mapping[str, frozenset[str]] = field(
        default_factory=dict
    )
    transition_inputs: Mapping[str, frozenset[str]] = field(default_factory=dict)

    def __post_init__(self) -> None:
        object.__setattr__(self, "state", _state_value(self.state))
        object.__setattr__(self, "allowed_editors", frozenset(self.allowed_editors))
        object.__setattr__(self, "editable_fields", frozenset(self.editable_fields))
        object.__setattr__(
            self,
            "allowed_transitions",
            frozenset(_state_value(s) for s in self.allowed_transitions),
        )
        object.__setattr__(
            self, "transition_requirements", _freeze_map(self.transition_requirements)
        )
        object.__setattr__(
            self, "transition_inputs", _freeze_map(self.transition_inputs)
        )

    @property
    def is_terminal(self) -> bool:
        return not self.allowed_transitions

    def requirements_for(self, target: str) -> frozenset[str]:
        return self.transition_requirements.get(_state_value(target), frozenset())

    def inputs_for(self, target: str | None) -> frozenset[str]:
        if target is None:
            return frozenset()
        return self.transition_inputs.get(_state_value(target), frozenset())


@dataclass(frozen=True)
class LifecycleBlueprint:
    """
    The declarative lifecycle of one entity kind.

    Contract:
        ``states`` maps every declared state name to its ``StateRule``.
        ``fields`` enumerates the field names governed by the blueprint.
        A blueprint reaching the kernel has already been validated by
        ``broker_config`` (no dangling transitions, no unknown fields).

    Guarantees:
        Immutable; safe to share across threads and requests.
    """

    entity_kind: str
    initial_state: str
    states: Mapping[str, StateRule]
    fields: frozenset[str] = frozenset()
    override_role: str | None = None
    status_field: str = "status"
    version: int = 1
    checksum: str = ""

    def __post_init__(self) -> None:
        object.__setattr__(self, "entity_kind", _state_value(self.entity_kind))
        object.__setattr__(self, "initial_state", _state_value(self.initial_state))
        object.__setattr__(
            self,
            "states",
            MappingProxyType({_state_value(k): v for k, v in self.states.items()}),
        )
        object.__setattr__(self, "fields", frozenset(self.fields))

    def rule_for(self, state: Any) -> StateRule | None:
        """Rule for ``state``, or None when the state is not declared."""
        return self.states.get(_state_value(state))

    @property
    def state_names(self) -> frozenset[str]:
        return frozenset(self.states)

    @property
    def terminal_states(self) -> frozenset[str]:
        return frozenset(name for name, rule in self.states.items() if rule.is_terminal)

    def label_for(self, state: Any) -> str:
        rule = self.rule_for(state)
        return rule.label if rule is not None else _state_value(state)


# ---------------------------------------------------------------------------
# Edit request
# ---------------------------------------------------------------------------


@dataclass(frozen=True)
class EditRequest:
    """
    One caller-submitted edit: record id plus a partial field mapping.

    The mapping may carry the status key, which is read as the requested
    transition.  Types have already been coerced upstream.
    """

    record_id: UUID | str
    fields: Mapping[str, Any] = field(default_factory=dict)
    status_field: str = "status"

    def __post_init__(self) -> None:
        object.__setattr__(self, "fields", MappingProxyType(dict(self.fields)))

    @classmethod
    def of(cls, record_id: UUID | str, **fields: Any) -> EditRequest:
        return cls(record_id=record_id, fields=fields)

    @property
    def requested_status(self) -> str | None:
        value = self.fields.get(self.status_field, UNSET)
        if value is UNSET or value is None:
            return None
        return _state_value(value)

    @property
    def touched_fields(self) -> frozenset[str]:
        return frozenset(
            name
            for name, value in self.fields.items()
            if name != self.status_field and value is not UNSET
        )

    @property
    def proposed_fields(self) -> dict[str, Any]:
        return {
            name: value
            for name, value in self.fields.items()
            if name != self.status_field and value is not UNSET
        }


# ---------------------------------------------------------------------------
# Check results
# ---------------------------------------------------------------------------


@dataclass(frozen=True)
class ScopeCheck:
    forbidden_fields: frozenset[str] = frozenset()

    @property
    def ok(self) -> bool:
        return not self.forbidden_fields


class TransitionOutcome(str, Enum):
    NO_TRANSITION = "no_transition"
    OK = "ok"
    ILLEGAL = "illegal"


@dataclass(frozen=True)
class StatusTransition:
    """A {from, to} status pair."""

    from_state: str
    to_state: str

    def to_dict(self) -> dict[str, str]:
        return {"from": self.from_state, "to": self.to_state}


@dataclass(frozen=True)
class TransitionCheck:
    outcome: TransitionOutcome
    from_state: str
    to_state: str | None = None

    @property
    def ok(self) -> bool:
        return self.outcome != TransitionOutcome.ILLEGAL

    @property
    def transition(self) -> StatusTransition | None:
        if self.outcome != TransitionOutcome.OK or self.to_state is None:
            return None
        return StatusTransition(self.from_state, self.to_state)


@dataclass(frozen=True)
class RequirementCheck:
    missing_fields: frozenset[str] = frozenset()

    @property
    def ok(self) -> bool:
        return not self.missing_fields


@dataclass(frozen=True)
class EditEvaluation:
    """
    Outcome of running the four checks against one edit request.

    Exactly one of ``rejection`` (first failing check) or an accepted
    evaluation carrying the fields to persist, the transient transition
    inputs and the transition (if any).
    """

    rejection: LifecycleRejection | None = None
    transition: StatusTransition | None = None
    proposed_fields: Mapping[str, Any] = field(default_factory=dict)
    transition_inputs: Mapping[str, Any] = field(default_factory=dict)

    @property
    def ok(self) -> bool:
        return self.rejection is None


# ---------------------------------------------------------------------------
# Audit
# ---------------------------------------------------------------------------


@dataclass(frozen=True)
class AuditEntry:
    """Immutable DTO of one accepted edit as recorded in the audit trail."""

    id: UUID
    entity_kind: str
    record_id: UUID
    seq: int
    actor_id: UUID
    actor_role: str
    occurred_at: datetime
    before: Mapping[str, Any]
    after: Mapping[str, Any]
    changes: Mapping[str, Any]
    transition: StatusTransition | None
    metadata: Mapping[str, Any]
    payload_hash: str
    prev_hash: str | None
    hash: str

    @property
    def is_genesis(self) -> bool:
        return self.prev_hash is None
