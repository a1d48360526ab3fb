"""
Blueprint / model alignment.

A blueprint is only useful if the records it governs can hold what it
describes: every declared state must be a value of the model's status
enum (and vice versa), and every governed field must be a mapped column.
Misalignment is reported as a list of messages; the registry turns a
non-empty list into ``BlueprintIntegrityError``.
"""

from __future__ import annotations

from sqlalchemy import inspect

from broker_kernel.domain.lifecycle import LifecycleBlueprint


def verify_model_alignment(blueprint: LifecycleBlueprint, model: type) -> list[str]:
    """Problems preventing ``model`` from storing records of ``blueprint``.

    Returns:
        Error messages; empty when the model and blueprint align.
    """
    kind = blueprint.entity_kind
    errors: list[str] = []
    columns = {attr.key for attr in inspect(model).column_attrs}

    status_enum = getattr(model, "STATUS_ENUM", None)
    if status_enum is not None:
        enum_states = {member.value for member in status_enum}
        for name in sorted(blueprint.state_names - enum_states):
            errors.append(f"{kind}: state {name} is not a {status_enum.__name__} value")
        for name in sorted(enum_states - blueprint.state_names):
            errors.append(f"{kind}: {status_enum.__name__}.{name} has no blueprint state")

    if blueprint.status_field not in columns:
        errors.append(
            f"{kind}: status field {blueprint.status_field} is not a column of "
            f"{model.__name__}"
        )
    for name in sorted(blueprint.fields - columns):
        errors.append(f"{kind}: field {name} is not a column of {model.__name__}")

    return errors
