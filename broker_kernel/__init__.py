"""
Broker Kernel - lifecycle core for the insurance broker backend.

Governs how claims, policies and invoices move through their lifecycles:
- Declarative per-state edit rules (who, which fields, which transitions)
- Row-locked check-and-apply of every edit
- Append-only, hash-chained audit trail of accepted edits
"""

__version__ = "0.1.0"
