"""ORM models for the broker kernel."""

from broker_kernel.domain.lifecycle import EntityKind
from broker_kernel.models.audit_entry import AuditAction, LifecycleAuditEntry
from broker_kernel.models.claim import Claim, ClaimStatus
from broker_kernel.models.claim_reprocess import ClaimReprocess
from broker_kernel.models.invoice import Invoice, InvoiceStatus
from broker_kernel.models.policy import Policy, PolicyStatus
from broker_kernel.models.user_session import UserSession

# Entity kind -> model class for blueprint-governed records
MODEL_FOR_KIND: dict[str, type] = {
    EntityKind.CLAIM.value: Claim,
    EntityKind.POLICY.value: Policy,
    EntityKind.INVOICE.value: Invoice,
}

__all__ = [
    "AuditAction",
    "Claim",
    "ClaimReprocess",
    "ClaimStatus",
    "Invoice",
    "InvoiceStatus",
    "LifecycleAuditEntry",
    "MODEL_FOR_KIND",
    "Policy",
    "PolicyStatus",
    "UserSession",
]
