"""Pydantic schemas for API request/response models."""

from datetime import date, datetime
from decimal import Decimal
from typing import Any, Literal
from uuid import UUID

from pydantic import AliasChoices, BaseModel, ConfigDict, Field


class StrictPayload(BaseModel):
    """Request body that rejects unknown fields."""

    model_config = ConfigDict(extra="forbid")


# ============================================================================
# Entity submission schemas
# ============================================================================


class MemoCreate(StrictPayload):
    title: str = Field(min_length=1)
    subject: str | None = None
    content: str | None = None
    priority: Literal["low", "medium", "high"] = "medium"
    department: str = "All"
    recipients: list[str] = Field(default_factory=list)
    attachment_path: str | None = None


class LeaveCreate(StrictPayload):
    leave_type: str = Field(min_length=1)
    from_date: date
    to_date: date
    days: Decimal = Field(gt=0)
    reason: str | None = None


class AttendanceCorrectionCreate(StrictPayload):
    attendance_date: date
    requested_check_in: str | None = None
    requested_check_out: str | None = None
    reason: str = Field(min_length=1)


class ExpenseCreate(StrictPayload):
    category: str = Field(min_length=1)
    amount: Decimal = Field(gt=0)
    expense_date: date
    description: str | None = None
    attachment_path: str | None = None


class ProfileChangeCreate(StrictPayload):
    """Change request for the caller's own profile."""

    section: str = "personal"
    field_name: str
    requested_value: str | None = None
    profile_id: UUID | None = None


class Form16Create(StrictPayload):
    """Form 16 record created by admin/finance for an employee."""

    profile_id: UUID
    financial_year: str = Field(pattern=r"^\d{4}-\d{2}$")
    total_salary: Decimal = Field(default=Decimal("0"), ge=0)
    total_tds: Decimal = Field(default=Decimal("0"), ge=0)
    attachment_path: str | None = None


CREATE_SCHEMAS: dict[str, type[StrictPayload]] = {
    "memo": MemoCreate,
    "leave": LeaveCreate,
    "attendance_correction": AttendanceCorrectionCreate,
    "expense": ExpenseCreate,
    "profile_change": ProfileChangeCreate,
    "form16": Form16Create,
}


# ============================================================================
# Entity update schemas (all fields optional; status is never accepted)
# ============================================================================


class MemoUpdate(StrictPayload):
    title: str | None = Field(default=None, min_length=1)
    subject: str | None = None
    content: str | None = None
    priority: Literal["low", "medium", "high"] | None = None
    department: str | None = None
    recipients: list[str] | None = None
    attachment_path: str | None = None


class LeaveUpdate(StrictPayload):
    leave_type: str | None = None
    from_date: date | None = None
    to_date: date | None = None
    days: Decimal | None = Field(default=None, gt=0)
    reason: str | None = None


class AttendanceCorrectionUpdate(StrictPayload):
    attendance_date: date | None = None
    requested_check_in: str | None = None
    requested_check_out: str | None = None
    reason: str | None = None


class ExpenseUpdate(StrictPayload):
    category: str | None = None
    amount: Decimal | None = Field(default=None, gt=0)
    expense_date: date | None = None
    description: str | None = None
    attachment_path: str | None = None


class ProfileChangeUpdate(StrictPayload):
    section: str | None = None
    field_name: str | None = None
    requested_value: str | None = None


class Form16Update(StrictPayload):
    financial_year: str | None = Field(default=None, pattern=r"^\d{4}-\d{2}$")
    total_salary: Decimal | None = Field(default=None, ge=0)
    total_tds: Decimal | None = Field(default=None, ge=0)
    attachment_path: str | None = None


UPDATE_SCHEMAS: dict[str, type[StrictPayload]] = {
    "memo": MemoUpdate,
    "leave": LeaveUpdate,
    "attendance_correction": AttendanceCorrectionUpdate,
    "expense": ExpenseUpdate,
    "profile_change": ProfileChangeUpdate,
    "form16": Form16Update,
}


# ============================================================================
# Entity responses
# ============================================================================

COMMON_FIELDS = (
    "id",
    "organization_id",
    "user_id",
    "profile_id",
    "status",
    "reviewed_by",
    "reviewed_at",
    "reviewer_notes",
    "created_at",
    "updated_at",
)


class EntityResponse(BaseModel):
    """Workflow record with its type-specific fields under ``attributes``."""

    id: UUID
    entity_type: str
    organization_id: UUID
    user_id: UUID
    profile_id: UUID
    status: str
    reviewed_by: UUID | None = None
    reviewed_at: datetime | None = None
    reviewer_notes: str | None = None
    created_at: datetime
    updated_at: datetime
    attributes: dict[str, Any] = Field(default_factory=dict)

    @classmethod
    def of(cls, entity: Any) -> "EntityResponse":
        data = entity.to_dict()
        return cls(
            entity_type=entity.__entity_type__,
            attributes={k: v for k, v in data.items() if k not in COMMON_FIELDS},
            **{k: data[k] for k in COMMON_FIELDS},
        )


class EntityListResponse(BaseModel):
    items: list[EntityResponse]
    total: int


class TransitionRequest(StrictPayload):
    target_state: str
    reviewer_notes: str | None = None


class TransitionResponse(BaseModel):
    entity_type: str
    entity_id: UUID
    from_state: str
    state: str
    changed: bool
    journal_entry_id: UUID | None = None


# ============================================================================
# Profile schemas
# ============================================================================


class ProfileResponse(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: UUID
    user_id: UUID
    organization_id: UUID
    manager_id: UUID | None = None
    full_name: str
    email: str | None = None
    phone: str | None = None
    department: str | None = None
    job_title: str | None = None
    status: str
    working_week_policy: str


class ProfileUpdate(StrictPayload):
    full_name: str | None = None
    email: str | None = None
    phone: str | None = None
    department: str | None = None
    job_title: str | None = None
    manager_id: UUID | None = None
    status: Literal["active", "on_leave", "inactive"] | None = None
    working_week_policy: Literal["mon_fri", "mon_sat", "alt_saturday"] | None = None


# ============================================================================
# Audit and storage schemas
# ============================================================================


class AuditEntryResponse(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: UUID
    organization_id: UUID
    actor_id: UUID | None = None
    actor_name: str
    target_id: UUID | None = None
    target_name: str | None = None
    entity_type: str
    entity_id: UUID | None = None
    action: str
    metadata: dict[str, Any] = Field(validation_alias=AliasChoices("metadata_json", "metadata"))
    created_at: datetime


class AuditListResponse(BaseModel):
    items: list[AuditEntryResponse]
    limit: int | None = None
    offset: int = 0


class StorageAccessResponse(BaseModel):
    bucket: str
    path: str
    action: str
    permitted: bool
    basis: str | None = None


class ErrorResponse(BaseModel):
    """Schema for error response."""

    detail: str
    code: str | None = None
    context: dict[str, Any] | None = None
