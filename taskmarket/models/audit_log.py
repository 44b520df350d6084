"""Audit log model (WORM - Write Once Read Many)."""

from datetime import datetime, timezone
from uuid import UUID, uuid4

from sqlalchemy import JSON, Column, DateTime
from sqlmodel import Field, SQLModel


class AuditLog(SQLModel, table=True):
    """Immutable audit trail of admin actions.

    Append-only: rows are inserted by the audit writer and never updated.
    """

    __tablename__ = "audit_logs"

    id: UUID = Field(default_factory=uuid4, primary_key=True)
    user_id: str = Field(max_length=64, index=True)
    action: str = Field(max_length=100, index=True)  # 'MODERATE_USER', 'VIEW_DASHBOARD', etc.
    resource_type: str | None = Field(default=None, max_length=50, index=True)
    resource_id: str | None = Field(default=None, max_length=128, index=True)
    ip_address: str | None = Field(default=None, max_length=64)
    user_agent: str | None = None
    request_id: str | None = Field(default=None, max_length=128, index=True)
    # Generic JSON so the model works on both Postgres and SQLite
    metadata_json: dict = Field(default_factory=dict, sa_column=Column(JSON))
    created_at: datetime = Field(
        default_factory=lambda: datetime.now(timezone.utc),
        sa_column=Column(DateTime(timezone=True), index=True)
    )
