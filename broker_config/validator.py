"""
Blueprint Validator (``broker_config.validator``).

Responsibility
--------------
Checks a ``BlueprintDef`` for referential integrity before it is compiled,
so that a broken blueprint stops the process at startup instead of
failing one edit at a time in production.

Architecture position
---------------------
**Config layer** -- build-time validation.  Called by the registry after
loading and before compilation.

Invariants enforced
-------------------
* Initial state is declared; every transition target is declared.
* Every editable and required field is a governed field, except that a
  requirement may name an input of the same transition.
* Field and input names are valid identifiers; inputs never shadow
  governed fields.
* Every editor reference resolves to a known role or group; the override
  role is known.
* The status field is never directly editable.

Failure modes
-------------
* Validation errors (``ConfigValidationResult.errors``)  -> blueprint
  MUST NOT be compiled.
* Validation warnings  -> blueprint may be compiled but should be reviewed
  (unreachable states, states nobody can edit).
"""

from __future__ import annotations

from dataclasses import dataclass, field

from broker_config.schema import GROUP_PREFIX, BlueprintDef, RoleCatalogDef


@dataclass
class ConfigValidationResult:
    """
    Result of blueprint validation.

    Contract
    --------
    * ``is_valid`` returns ``True`` only when ``errors`` is empty.
    * Warnings do not block compilation but should be reviewed.
    """

    errors: list[str] = field(default_factory=list)
    warnings: list[str] = field(default_factory=list)

    @property
    def is_valid(self) -> bool:
        return len(self.errors) == 0

    def add_error(self, msg: str) -> None:
        self.errors.append(msg)

    def add_warning(self, msg: str) -> None:
        self.warnings.append(msg)


def validate_blueprint(defn: BlueprintDef, roles: RoleCatalogDef) -> ConfigValidationResult:
    """
    Validate one blueprint against the role catalog.

    Postconditions:
        - Returns a ``ConfigValidationResult`` listing every problem found,
          not just the first.
    """
    result = ConfigValidationResult()
    kind = defn.entity_kind
    declared = set(defn.state_names)
    governed = set(defn.fields)

    if len(declared) != len(defn.states):
        result.add_error(f"{kind}: duplicate state names")

    if defn.initial_state not in declared:
        result.add_error(f"{kind}: initial state {defn.initial_state} is not declared")

    for name in defn.fields:
        if not name.isidentifier():
            result.add_error(f"{kind}: field name {name!r} is not a valid identifier")
    if defn.status_field in governed:
        result.add_error(
            f"{kind}: status field {defn.status_field} must not be listed in fields"
        )

    if defn.override_role is not None and defn.override_role not in roles.roles:
        result.add_error(f"{kind}: unknown override role {defn.override_role}")

    for rule in defn.states:
        where = f"{kind}.{rule.name}"
        _check_editors(rule.editors, roles, where, result)

        for name in rule.editable:
            if name == defn.status_field:
                result.add_error(f"{where}: status field {name} is listed as editable")
            elif name not in governed:
                result.add_error(f"{where}: editable field {name} is not a governed field")

        targets = rule.targets
        if len(set(targets)) != len(targets):
            result.add_error(f"{where}: duplicate transition targets")

        for transition in rule.transitions:
            t_where = f"{where} -> {transition.target}"
            if transition.target not in declared:
                result.add_error(f"{t_where}: transition to undeclared state")
            if transition.target == rule.name:
                result.add_error(f"{t_where}: self-transition is not a transition")

            inputs = set(transition.inputs)
            for name in transition.inputs:
                if not name.isidentifier():
                    result.add_error(f"{t_where}: input name {name!r} is not a valid identifier")
                if name in governed or name == defn.status_field:
                    result.add_error(f"{t_where}: input {name} shadows a record field")

            for name in transition.requires:
                if name not in governed and name not in inputs:
                    result.add_error(
                        f"{t_where}: required field {name} is neither a governed "
                        f"field nor an input of this transition"
                    )

        if not rule.editors and defn.override_role is None:
            result.add_warning(f"{where}: no editors and no override role, state is frozen")

    for name in sorted(declared - _reachable(defn)):
        result.add_warning(f"{kind}.{name}: unreachable from {defn.initial_state}")

    return result


def _check_editors(
    editors: tuple[str, ...],
    roles: RoleCatalogDef,
    where: str,
    result: ConfigValidationResult,
) -> None:
    known_roles = set(roles.roles)
    for ref in editors:
        if ref.startswith(GROUP_PREFIX):
            group = ref[len(GROUP_PREFIX):]
            members = roles.group(group)
            if members is None:
                result.add_error(f"{where}: unknown role group {ref}")
                continue
            for role in members:
                if role not in known_roles:
                    result.add_error(f"{where}: group {ref} names unknown role {role}")
        elif ref not in known_roles:
            result.add_error(f"{where}: unknown editor role {ref}")


def _reachable(defn: BlueprintDef) -> set[str]:
    seen: set[str] = set()
    frontier = [defn.initial_state]
    while frontier:
        name = frontier.pop()
        if name in seen:
            continue
        seen.add(name)
        rule = defn.state(name)
        if rule is not None:
            frontier.extend(rule.targets)
    return seen


def validate_roles(roles: RoleCatalogDef) -> ConfigValidationResult:
    """Every group member must be a declared role."""
    result = ConfigValidationResult()
    known = set(roles.roles)
    if len(known) != len(roles.roles):
        result.add_error("roles: duplicate role identifiers")
    for name, members in roles.groups:
        for role in members:
            if role not in known:
                result.add_error(f"groups.{name}: unknown role {role}")
    return result
