"""
broker_config -- single public entrypoint for lifecycle blueprints.

Responsibility:
    Provides the ONLY way to obtain lifecycle blueprints at runtime through
    ``get_registry()`` / ``get_blueprint()``.  No other component reads the
    blueprint YAML.  Returns kernel ``LifecycleBlueprint`` objects, which
    are the sole runtime artifact.

Architecture position:
    Configuration -- YAML-driven blueprint pipeline, startup validation.
    Sits above ``broker_kernel`` and below ``broker_services``.  The
    kernel MUST NEVER import from ``broker_config``.

Invariants enforced:
    - Fail fast: every blueprint must pass referential-integrity checks and
      align with its ORM model before a registry is produced.  Any error
      raises ``BlueprintIntegrityError`` and the process refuses to start.
    - Deterministic compilation: the same YAML always produces the same
      blueprints and checksums.

Failure modes:
    - ``FileNotFoundError`` -- configuration directory or file missing.
    - ``BlueprintIntegrityError`` -- validation or model alignment failed;
      the error lists every problem.
    - ``UnknownEntityKindError`` -- registry lookup of an unconfigured kind.

Audit relevance:
    Every successful ``get_registry()`` call emits a
    ``BLUEPRINT_REGISTRY_TRACE`` log entry with each blueprint's version
    and checksum, tying every audited edit back to the rules in force.
"""

from __future__ import annotations

import logging
from pathlib import Path
from types import MappingProxyType
from typing import Iterator, Mapping

from broker_config.compiler import compile_blueprint
from broker_config.integrity import verify_model_alignment
from broker_config.loader import load_blueprint, load_roles
from broker_config.validator import validate_blueprint, validate_roles
from broker_kernel.domain.lifecycle import LifecycleBlueprint
from broker_kernel.exceptions import BlueprintIntegrityError, UnknownEntityKindError

_logger = logging.getLogger("broker_kernel.config")

_DEFAULT_CONFIG_DIR = Path(__file__).parent

ROLES_FILE = "roles.yaml"
BLUEPRINTS_DIR = "blueprints"


class BlueprintRegistry:
    """Immutable mapping of entity kind to compiled blueprint."""

    def __init__(self, blueprints: Mapping[str, LifecycleBlueprint]):
        self._blueprints = MappingProxyType(dict(blueprints))

    def get(self, entity_kind) -> LifecycleBlueprint:
        kind = str(getattr(entity_kind, "value", entity_kind))
        try:
            return self._blueprints[kind]
        except KeyError:
            raise UnknownEntityKindError(kind) from None

    def __contains__(self, entity_kind) -> bool:
        return str(getattr(entity_kind, "value", entity_kind)) in self._blueprints

    def __iter__(self) -> Iterator[str]:
        return iter(sorted(self._blueprints))

    def __len__(self) -> int:
        return len(self._blueprints)

    @property
    def kinds(self) -> tuple[str, ...]:
        return tuple(sorted(self._blueprints))


def get_registry(
    config_dir: Path | None = None,
    models: Mapping[str, type] | None = None,
) -> BlueprintRegistry:
    """Load, validate and compile every blueprint.

    Guarantees:
        - Every blueprint in the returned registry has passed
          ``validate_blueprint`` and ``verify_model_alignment``.
        - A ``BLUEPRINT_REGISTRY_TRACE`` log entry is emitted.

    Args:
        config_dir: Directory holding ``roles.yaml`` and ``blueprints/``.
            Defaults to this package's directory.
        models: Entity kind -> ORM model used for alignment checks.
            Defaults to ``broker_kernel.models.MODEL_FOR_KIND``.  A kind
            with no model is not alignment-checked.

    Raises:
        FileNotFoundError: If the roles file or blueprints directory is
            missing.
        BlueprintIntegrityError: If any blueprint fails validation or
            alignment.
    """
    base = Path(config_dir) if config_dir is not None else _DEFAULT_CONFIG_DIR
    if models is None:
        from broker_kernel.models import MODEL_FOR_KIND

        models = MODEL_FOR_KIND

    roles = load_roles(base / ROLES_FILE)
    role_check = validate_roles(roles)
    if not role_check.is_valid:
        raise BlueprintIntegrityError(ROLES_FILE, role_check.errors)

    blueprints_dir = base / BLUEPRINTS_DIR
    if not blueprints_dir.is_dir():
        raise FileNotFoundError(f"Blueprints directory not found: {blueprints_dir}")

    compiled: dict[str, LifecycleBlueprint] = {}
    for path in sorted(blueprints_dir.glob("*.yaml")):
        defn = load_blueprint(path)
        validation = validate_blueprint(defn, roles)
        for warning in validation.warnings:
            _logger.warning(
                "blueprint_validation_warning",
                extra={"entity_kind": defn.entity_kind, "detail": warning},
            )
        if not validation.is_valid:
            raise BlueprintIntegrityError(defn.entity_kind, validation.errors)
        if defn.entity_kind in compiled:
            raise BlueprintIntegrityError(
                defn.entity_kind, [f"{path.name}: duplicate blueprint for kind"]
            )

        blueprint = compile_blueprint(defn, roles)
        model = models.get(defn.entity_kind)
        if model is not None:
            misaligned = verify_model_alignment(blueprint, model)
            if misaligned:
                raise BlueprintIntegrityError(defn.entity_kind, misaligned)
        compiled[defn.entity_kind] = blueprint

    registry = BlueprintRegistry(compiled)

    _logger.info(
        "BLUEPRINT_REGISTRY_TRACE",
        extra={
            "trace_type": "BLUEPRINT_REGISTRY_TRACE",
            "config_dir": str(base),
            "blueprint_count": len(registry),
            "blueprints": {
                kind: {"version": bp.version, "checksum": bp.checksum}
                for kind, bp in compiled.items()
            },
        },
    )
    return registry


_default_registry: BlueprintRegistry | None = None


def get_blueprint(entity_kind) -> LifecycleBlueprint:
    """Blueprint for ``entity_kind`` from the default registry (loaded once)."""
    global _default_registry
    if _default_registry is None:
        _default_registry = get_registry()
    return _default_registry.get(entity_kind)


def reset_default_registry() -> None:
    """Drop the cached default registry (tests, configuration reloads)."""
    global _default_registry
    _default_registry = None


__all__ = [
    "BlueprintRegistry",
    "get_blueprint",
    "get_registry",
    "reset_default_registry",
    "verify_model_alignment",
]
