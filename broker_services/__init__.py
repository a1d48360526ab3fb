"""
broker_services -- Stateful orchestration over the broker kernel.

Services layer.  May import from broker_engines/ (pure engines),
broker_config/ (blueprints) and broker_kernel/ (domain, services, models).
"""

from broker_services.hooks import (
    ClaimReprocessHook,
    EditContext,
    EditHook,
    PrincipalDeactivationHook,
    default_hooks,
)
from broker_services.lifecycle_executor import (
    EditResult,
    EditStatus,
    LifecycleExecutor,
)
from broker_services.retry import retry_transient

__all__ = [
    "ClaimReprocessHook",
    "EditContext",
    "EditHook",
    "EditResult",
    "EditStatus",
    "LifecycleExecutor",
    "PrincipalDeactivationHook",
    "default_hooks",
    "retry_transient",
]
