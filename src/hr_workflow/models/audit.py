"""Audit trail model."""

from __future__ import annotations

from datetime import datetime
from typing import Any
from uuid import UUID

from sqlalchemy import Index, String
from sqlalchemy.orm import Mapped, mapped_column

from hr_workflow.models.base import Base, UUIDPrimaryKeyMixin, utcnow


class AuditEntry(Base, UUIDPrimaryKeyMixin):
    """Audit trail entry. Write-once.

    Actor and target names are copied at write time so the trail stays
    readable after profiles are renamed or removed.
    """

    __tablename__ = "audit_entry"

    organization_id: Mapped[UUID] = mapped_column(nullable=False)
    actor_id: Mapped[UUID | None] = mapped_column(nullable=True)
    actor_name: Mapped[str] = mapped_column(String, nullable=False)
    target_id: Mapped[UUID | None] = mapped_column(nullable=True)
    target_name: Mapped[str | None] = mapped_column(String, nullable=True)
    entity_type: Mapped[str] = mapped_column(String, nullable=False)
    entity_id: Mapped[UUID | None] = mapped_column(nullable=True)
    action: Mapped[str] = mapped_column(String, nullable=False)
    metadata_json: Mapped[dict[str, Any]] = mapped_column(nullable=False, default=dict)
    created_at: Mapped[datetime] = mapped_column(nullable=False, default=utcnow)

    __table_args__ = (
        Index("ix_audit_entry_org_created", "organization_id", "created_at"),
        Index("ix_audit_entry_entity", "entity_type", "entity_id"),
        Index("ix_audit_entry_actor", "actor_id"),
    )
