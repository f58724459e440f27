"""Directory models: profiles and organization-scoped role assignments."""

from __future__ import annotations

from enum import Enum
from uuid import UUID

from sqlalchemy import CheckConstraint, ForeignKey, String, UniqueConstraint
from sqlalchemy.orm import Mapped, mapped_column

from hr_workflow.models.base import Base, TimestampMixin, UUIDPrimaryKeyMixin, status_check


class Role(str, Enum):
    """Organization-scoped role labels."""

    ADMIN = "admin"
    HR = "hr"
    FINANCE = "finance"
    MANAGER = "manager"
    EMPLOYEE = "employee"


class ProfileStatus(str, Enum):
    """Employment status of a profile."""

    ACTIVE = "active"
    ON_LEAVE = "on_leave"
    INACTIVE = "inactive"


class Profile(Base, UUIDPrimaryKeyMixin, TimestampMixin):
    """Organization-scoped person record backing a principal."""

    __tablename__ = "profile"
    __entity_type__ = "profile"

    user_id: Mapped[UUID] = mapped_column(nullable=False, index=True)
    organization_id: Mapped[UUID] = mapped_column(nullable=False, index=True)
    manager_id: Mapped[UUID | None] = mapped_column(
        ForeignKey("profile.id", ondelete="SET NULL"),
        nullable=True,
        index=True,
    )
    full_name: Mapped[str] = mapped_column(String, nullable=False)
    email: Mapped[str | None] = mapped_column(String, nullable=True)
    phone: Mapped[str | None] = mapped_column(String, nullable=True)
    department: Mapped[str | None] = mapped_column(String, nullable=True)
    job_title: Mapped[str | None] = mapped_column(String, nullable=True)
    status: Mapped[str] = mapped_column(String, nullable=False, default=ProfileStatus.ACTIVE.value)
    working_week_policy: Mapped[str] = mapped_column(String, nullable=False, default="mon_fri")

    __table_args__ = (
        UniqueConstraint("user_id", "organization_id", name="profile_user_org_key"),
        CheckConstraint(
            status_check("status", tuple(s.value for s in ProfileStatus)),
            name="profile_status_check",
        ),
        CheckConstraint(
            status_check("working_week_policy", ("mon_fri", "mon_sat", "alt_saturday")),
            name="profile_working_week_policy_check",
        ),
    )

    # A profile is owned by the principal it belongs to.
    @property
    def profile_id(self) -> UUID:
        return self.id


class RoleAssignment(Base, UUIDPrimaryKeyMixin, TimestampMixin):
    """(principal, organization, role) triple."""

    __tablename__ = "role_assignment"

    user_id: Mapped[UUID] = mapped_column(nullable=False, index=True)
    organization_id: Mapped[UUID] = mapped_column(nullable=False, index=True)
    role: Mapped[str] = mapped_column(String, nullable=False)

    __table_args__ = (
        UniqueConstraint("user_id", "organization_id", "role", name="role_assignment_key"),
        CheckConstraint(
            status_check("role", tuple(r.value for r in Role)),
            name="role_assignment_role_check",
        ),
    )
