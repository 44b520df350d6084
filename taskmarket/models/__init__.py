"""Models module - imports all models for SQLModel registration."""

from taskmarket.models.audit_log import AuditLog

__all__ = [
    "AuditLog",
]
