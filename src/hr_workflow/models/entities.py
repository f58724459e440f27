"""Workflow entity models: memos, requests, expenses and Form 16 records."""

from __future__ import annotations

from datetime import date, datetime
from decimal import Decimal
from enum import Enum
from typing import Any
from uuid import UUID

from sqlalchemy import JSON, CheckConstraint, Date, ForeignKey, Numeric, String, Text, UniqueConstraint
from sqlalchemy.orm import Mapped, declared_attr, mapped_column

from hr_workflow.models.base import Base, TimestampMixin, UUIDPrimaryKeyMixin, status_check


class MemoStatus(str, Enum):
    DRAFT = "draft"
    PENDING_APPROVAL = "pending_approval"
    PUBLISHED = "published"
    REJECTED = "rejected"


class ReviewStatus(str, Enum):
    """Statuses shared by leave, attendance correction and profile change requests."""

    PENDING = "pending"
    APPROVED = "approved"
    REJECTED = "rejected"


class ExpenseStatus(str, Enum):
    SUBMITTED = "submitted"
    APPROVED = "approved"
    REJECTED = "rejected"
    PAID = "paid"


class Form16Status(str, Enum):
    DRAFT = "draft"
    GENERATED = "generated"


class WorkflowMixin(UUIDPrimaryKeyMixin, TimestampMixin):
    """Columns common to every workflow entity.

    ``user_id`` is the owning principal and ``profile_id`` that principal's
    profile. Form 16 records are created by admin/finance on the owner's
    behalf; every other entity is created by its owner.
    """

    __entity_type__: str
    __status_enum__: type[Enum]

    user_id: Mapped[UUID] = mapped_column(nullable=False, index=True)
    organization_id: Mapped[UUID] = mapped_column(nullable=False, index=True)
    status: Mapped[str] = mapped_column(String, nullable=False)
    reviewed_by: Mapped[UUID | None] = mapped_column(nullable=True)
    reviewed_at: Mapped[datetime | None] = mapped_column(nullable=True)
    reviewer_notes: Mapped[str | None] = mapped_column(Text, nullable=True)

    @declared_attr
    def profile_id(cls) -> Mapped[UUID]:
        return mapped_column(ForeignKey("profile.id", ondelete="CASCADE"), nullable=False, index=True)

    @declared_attr.directive
    def __table_args__(cls) -> tuple[Any, ...]:
        values = tuple(s.value for s in cls.__status_enum__)
        return (
            CheckConstraint(status_check("status", values), name=f"{cls.__tablename__}_status_check"),
            *cls.__extra_table_args__,
        )

    __extra_table_args__: tuple[Any, ...] = ()


class Memo(WorkflowMixin, Base):
    """Internal memo published after review."""

    __tablename__ = "memo"
    __entity_type__ = "memo"
    __status_enum__ = MemoStatus

    title: Mapped[str] = mapped_column(String, nullable=False)
    subject: Mapped[str | None] = mapped_column(String, nullable=True)
    content: Mapped[str | None] = mapped_column(Text, nullable=True)
    priority: Mapped[str] = mapped_column(String, nullable=False, default="medium")
    department: Mapped[str] = mapped_column(String, nullable=False, default="All")
    recipients: Mapped[list[str]] = mapped_column(JSON, nullable=False, default=list)
    attachment_path: Mapped[str | None] = mapped_column(String, nullable=True)
    published_at: Mapped[datetime | None] = mapped_column(nullable=True)

    __extra_table_args__ = (
        CheckConstraint(status_check("priority", ("low", "medium", "high")), name="memo_priority_check"),
    )


class LeaveRequest(WorkflowMixin, Base):
    """Leave request reviewed by the owner's manager, HR or admin."""

    __tablename__ = "leave_request"
    __entity_type__ = "leave"
    __status_enum__ = ReviewStatus

    leave_type: Mapped[str] = mapped_column(String, nullable=False)
    from_date: Mapped[date] = mapped_column(Date, nullable=False)
    to_date: Mapped[date] = mapped_column(Date, nullable=False)
    days: Mapped[Decimal] = mapped_column(Numeric(5, 1), nullable=False)
    reason: Mapped[str | None] = mapped_column(Text, nullable=True)

    __extra_table_args__ = (
        CheckConstraint("to_date >= from_date", name="leave_request_date_order_check"),
        CheckConstraint("days > 0", name="leave_request_days_check"),
    )


class AttendanceCorrection(WorkflowMixin, Base):
    """Request to correct a day's check-in/check-out."""

    __tablename__ = "attendance_correction"
    __entity_type__ = "attendance_correction"
    __status_enum__ = ReviewStatus

    attendance_date: Mapped[date] = mapped_column(Date, nullable=False)
    requested_check_in: Mapped[str | None] = mapped_column(String, nullable=True)
    requested_check_out: Mapped[str | None] = mapped_column(String, nullable=True)
    reason: Mapped[str] = mapped_column(Text, nullable=False)


class Expense(WorkflowMixin, Base):
    """Expense claim; posting to the ledger happens on entry into ``paid``."""

    __tablename__ = "expense"
    __entity_type__ = "expense"
    __status_enum__ = ExpenseStatus

    category: Mapped[str] = mapped_column(String, nullable=False)
    amount: Mapped[Decimal] = mapped_column(Numeric(14, 2), nullable=False)
    expense_date: Mapped[date] = mapped_column(Date, nullable=False)
    description: Mapped[str | None] = mapped_column(Text, nullable=True)
    attachment_path: Mapped[str | None] = mapped_column(String, nullable=True)
    journal_entry_id: Mapped[UUID | None] = mapped_column(nullable=True)
    paid_at: Mapped[datetime | None] = mapped_column(nullable=True)

    __extra_table_args__ = (CheckConstraint("amount > 0", name="expense_amount_check"),)


class ProfileChangeRequest(WorkflowMixin, Base):
    """Request to change a field of a profile, reviewed by its manager, HR or admin."""

    __tablename__ = "profile_change_request"
    __entity_type__ = "profile_change"
    __status_enum__ = ReviewStatus

    section: Mapped[str] = mapped_column(String, nullable=False, default="personal")
    field_name: Mapped[str] = mapped_column(String, nullable=False)
    current_value: Mapped[str | None] = mapped_column(Text, nullable=True)
    requested_value: Mapped[str | None] = mapped_column(Text, nullable=True)


class Form16Record(WorkflowMixin, Base):
    """Annual tax certificate generation record."""

    __tablename__ = "form16_record"
    __entity_type__ = "form16"
    __status_enum__ = Form16Status

    financial_year: Mapped[str] = mapped_column(String, nullable=False)
    total_salary: Mapped[Decimal] = mapped_column(Numeric(14, 2), nullable=False, default=Decimal("0"))
    total_tds: Mapped[Decimal] = mapped_column(Numeric(14, 2), nullable=False, default=Decimal("0"))
    attachment_path: Mapped[str | None] = mapped_column(String, nullable=True)
    generated_at: Mapped[datetime | None] = mapped_column(nullable=True)
    generated_by: Mapped[UUID | None] = mapped_column(nullable=True)

    __extra_table_args__ = (
        UniqueConstraint("organization_id", "financial_year", "profile_id", name="form16_org_year_profile_key"),
    )
